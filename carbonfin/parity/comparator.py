"""Field comparison with unit-aware tolerances, and engine path lookup."""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from carbonfin.errors import InvalidConfig

# Field names compared in basis points rather than absolute currency. Whole
# words only, so "credits_generated" stays an absolute comparison.
PERCENT_FIELD_RE = re.compile(r"(?<![a-z])(rate|irr|discount)(?![a-z])", re.IGNORECASE)


@dataclass(frozen=True)
class Tolerance:
    default_abs: float = 0.01
    percent_bps: float = 1.0
    irr_bps: float = 5.0

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "Tolerance":
        if not data:
            return cls()
        unknown = sorted(set(data) - {"default_abs", "percent_bps", "irr_bps"})
        if unknown:
            raise InvalidConfig(f"Unknown tolerance key(s): {', '.join(unknown)}", field=unknown[0])
        return cls(**{k: float(v) for k, v in data.items()})


@dataclass
class ComparisonResult:
    field: str
    year: Optional[int]
    reference: Any
    engine: Any
    match: bool
    delta: Optional[float] = None
    tolerance: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def compare_values(
    reference: Any,
    engine: Any,
    field: str,
    tolerance: Tolerance,
    year: Optional[int] = None,
) -> ComparisonResult:
    """Compare one reference value with the engine's.

    - strings (sentinels included) compare by equality;
    - fields named like a rate / IRR / discount compare in basis points
      against ``irr_bps`` (name contains "irr") or ``percent_bps``;
    - everything else compares by absolute delta against ``default_abs``;
    - NaN on either side never matches.
    """
    if isinstance(reference, str) or isinstance(engine, str):
        return ComparisonResult(field, year, reference, engine, str(reference) == str(engine))

    try:
        ref = float(reference)
        eng = float(engine)
    except (TypeError, ValueError):
        return ComparisonResult(field, year, reference, engine, False)

    if _is_nan(ref) or _is_nan(eng):
        return ComparisonResult(field, year, reference, engine, False)

    if PERCENT_FIELD_RE.search(field):
        delta = abs(eng - ref) * 10000.0
        tol = tolerance.irr_bps if "irr" in field.lower() else tolerance.percent_bps
    else:
        delta = abs(eng - ref)
        tol = tolerance.default_abs

    return ComparisonResult(field, year, ref, eng, delta <= tol, delta, tol)


def _nested(obj: Any, path: str) -> Any:
    current = obj
    for key in path.split("."):
        if not key:
            continue
        if isinstance(current, Mapping) and key in current:
            current = current[key]
        else:
            return None
    return current


def get_value_from_path(data: Any, path: str) -> Any:
    """Resolve ``"a.b"`` or ``"incomeStatements[*].total_revenue"``.

    ``[*]`` maps the remainder of the path over a list. Missing keys give
    None.
    """
    if "[*]" in path:
        array_path, _, field_path = path.partition("[*]")
        array = _nested(data, array_path)
        if not isinstance(array, list):
            return None
        field_path = field_path.lstrip(".")
        return [_nested(item, field_path) for item in array]
    return _nested(data, path)


__all__ = [
    "ComparisonResult",
    "PERCENT_FIELD_RE",
    "Tolerance",
    "compare_values",
    "get_value_from_path",
]
