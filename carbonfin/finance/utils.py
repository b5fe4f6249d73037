"""Consolidated utility functions for the finance module."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, Optional, Union

from carbonfin.errors import InvalidConfig


class Sentinel(str, Enum):
    """Explicit non-numeric results that UI and report layers render as text."""

    NOT_APPLICABLE = "n/a"
    BEYOND_HORIZON = "beyond_horizon"
    NO_SOLUTION = "no_solution"

    def __str__(self) -> str:
        return self.value


Number = Union[float, Sentinel]


def get_nested(d: Dict[str, Any], path: Iterable[str], default: Any = None) -> Any:
    """Safely get nested dict value using a key path."""
    result = d
    for key in path:
        if not isinstance(result, dict):
            return default
        result = result.get(key, default)
        if result is default:
            return default
    return result


def parse_number(v: Any, field: Optional[str] = None) -> float:
    """Loose numeric parsing for values typed into forms.

    Accepts ints/floats and strings such as ``"1,250"``, ``" $ 10 "`` or
    ``"12.5%"`` (the percent sign is stripped, not applied). ``None`` and
    empty strings are zero. Anything else raises InvalidConfig naming
    ``field``.
    """
    if v is None:
        return 0.0
    if isinstance(v, bool):
        return 1.0 if v else 0.0
    if isinstance(v, (int, float)):
        out = float(v)
    else:
        text = str(v).replace(",", "").replace("$", "").replace("%", "").strip()
        text = "".join(text.split())
        if text == "":
            return 0.0
        try:
            out = float(text)
        except ValueError:
            raise InvalidConfig(f"Cannot parse {v!r} as a number", field=field) from None
    if out != out or out in (float("inf"), float("-inf")):
        raise InvalidConfig(f"Non-finite value {v!r}", field=field)
    return out


def safe_div(numerator: float, denominator: float) -> Number:
    """Divide, returning Sentinel.NOT_APPLICABLE for a zero denominator."""
    if denominator == 0:
        return Sentinel.NOT_APPLICABLE
    return numerator / denominator


def is_number(v: Any) -> bool:
    """True for real numbers (not sentinels, not bools)."""
    return isinstance(v, (int, float)) and not isinstance(v, bool)
