"""
Single home for default modelling assumptions.

Forms that do not own a field used to hardcode their own placeholder values
(the 15% COGS rate appeared in several places). Here every default lives in
one frozen dataclass that is injected at the normalizer boundary.

Defaults can be overridden from YAML / JSON::

    cogs_rate_pct: 12.5
    debt_duration_years: 7
    amortization_style: annuity

Rate overrides are given in UI units (percent), same as the forms.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from carbonfin.errors import InvalidConfig

logger = logging.getLogger(__name__)

AMORTIZATION_STYLES = ("annuity", "straight_line")


@dataclass(frozen=True)
class DefaultAssumptions:
    """Per-field defaults, rates in percent (UI units)."""

    cogs_rate_pct: float = 15.0
    ar_rate_pct: float = 0.0
    ap_rate_pct: float = 0.0
    income_tax_rate_pct: float = 25.0
    interest_rate_pct: float = 0.0
    discount_rate_pct: float = 10.0
    purchase_share_pct: float = 0.0
    debt_duration_years: int = 5
    initial_equity_t0: float = 0.0
    opening_cash_y1: float = 0.0
    initial_ppe: float = 0.0
    price_per_credit: float = 0.0
    issuance_flag: int = 0
    amortization_style: str = "straight_line"

    def __post_init__(self) -> None:
        if self.amortization_style not in AMORTIZATION_STYLES:
            raise InvalidConfig(
                f"amortization_style must be one of {AMORTIZATION_STYLES}, "
                f"got {self.amortization_style!r}",
                field="amortization_style",
            )

    @classmethod
    def from_mapping(
        cls,
        data: Optional[Mapping[str, Any]],
        base: Optional["DefaultAssumptions"] = None,
    ) -> "DefaultAssumptions":
        """Overlay ``data`` on ``base`` (or the built-in defaults).

        Unknown keys are rejected so that a typo in a defaults file does not
        silently fall back to the built-in value.
        """
        base = base or cls()
        if not data:
            return base

        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise InvalidConfig(
                f"Unknown default assumption(s): {', '.join(unknown)}",
                field=unknown[0],
            )

        overrides: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "amortization_style":
                overrides[key] = str(value)
            elif key in ("debt_duration_years", "issuance_flag"):
                overrides[key] = int(value)
            else:
                overrides[key] = float(value)
        return replace(base, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


DEFAULT_ASSUMPTIONS = DefaultAssumptions()


def load_default_assumptions(path: Union[str, Path]) -> DefaultAssumptions:
    """Read a YAML/JSON overrides file into DefaultAssumptions."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidConfig(
            f"Expected a mapping at top level of {path}, got {type(data).__name__}"
        )

    logger.debug("Loaded %d default override(s) from %s", len(data), path)
    return DefaultAssumptions.from_mapping(data)


__all__ = [
    "AMORTIZATION_STYLES",
    "DefaultAssumptions",
    "DEFAULT_ASSUMPTIONS",
    "load_default_assumptions",
]
