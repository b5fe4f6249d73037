"""
Error taxonomy for the carbonfin engine.

Every fatal condition aborts the whole calculation and surfaces one of the
classes below. Each carries a machine-readable ``kind`` and the offending
``field`` so callers (CLI, scenario batch runner, UI layer) can decide on
user-facing messaging without parsing message strings.

Non-fatal outcomes (zero denominators, IRR without a root, payback beyond
the horizon) are *not* exceptions; see ``carbonfin.finance.utils.Sentinel``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CarbonFinError(ValueError):
    """Base class for structured engine / normalizer errors."""

    kind: str = "error"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "field": self.field, "message": self.message}


class ShapeMismatch(CarbonFinError):
    """A per-year array does not match the length of ``years``."""

    kind = "shape_mismatch"


class InvalidConfig(CarbonFinError):
    """Scalar or ordering problem (durations, year gaps, rate domain...)."""

    kind = "invalid_config"


class UnknownInputKey(InvalidConfig):
    """A tagged input record names a (category, input_key) nobody owns."""

    kind = "unknown_input"


class IssuanceOverrun(CarbonFinError):
    """Cumulative issued credits would exceed cumulative generated credits."""

    kind = "issuance_overrun"


class BalanceIdentityError(CarbonFinError, RuntimeError):
    """Internal invariant failure: assets != liabilities + equity."""

    kind = "balance_identity"


__all__ = [
    "CarbonFinError",
    "ShapeMismatch",
    "InvalidConfig",
    "UnknownInputKey",
    "IssuanceOverrun",
    "BalanceIdentityError",
]
