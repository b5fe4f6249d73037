"""Canonical engine inputs and their validation.

``EngineInputs`` is the single record the calculation engine consumes. All
values are in engine units:

- rates are decimal fractions in [0, 1];
- cost arrays are signed cash amounts (outflows negative);
- financing inflows (equity, debt draws, pre-purchase cash) are >= 0.

Validation is fail-fast and always names the offending field.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping

from carbonfin.defaults import AMORTIZATION_STYLES
from carbonfin.errors import InvalidConfig, ShapeMismatch

PER_YEAR_FIELDS = (
    "credits_generated",
    "price_per_credit",
    "issuance_flag",
    "feasibility_costs",
    "pdd_costs",
    "mrv_costs",
    "staff_costs",
    "capex",
    "depreciation",
    "equity_injection",
    "debt_draw",
    "purchase_amount",
)

COST_FIELDS = (
    "feasibility_costs",
    "pdd_costs",
    "mrv_costs",
    "staff_costs",
    "capex",
    "depreciation",
)

INFLOW_FIELDS = ("equity_injection", "debt_draw", "purchase_amount")

RATE_FIELDS = (
    "cogs_rate",
    "ar_rate",
    "ap_rate",
    "income_tax_rate",
    "interest_rate",
    "discount_rate",
    "purchase_share",
)

AMOUNT_FIELDS = ("initial_equity_t0", "opening_cash_y1", "initial_ppe")

_OPTIONAL_FIELDS = {
    "initial_ppe": 0.0,
    "opening_cash_y1": 0.0,
    "amortization_style": "straight_line",
}


@dataclass
class EngineInputs:
    """One model run's worth of canonical assumptions."""

    years: List[int]
    credits_generated: List[float]
    price_per_credit: List[float]
    issuance_flag: List[int]
    feasibility_costs: List[float]
    pdd_costs: List[float]
    mrv_costs: List[float]
    staff_costs: List[float]
    capex: List[float]
    depreciation: List[float]
    equity_injection: List[float]
    debt_draw: List[float]
    purchase_amount: List[float]
    cogs_rate: float
    ar_rate: float
    ap_rate: float
    income_tax_rate: float
    interest_rate: float
    discount_rate: float
    purchase_share: float
    debt_duration_years: int
    initial_equity_t0: float
    opening_cash_y1: float = 0.0
    initial_ppe: float = 0.0
    amortization_style: str = field(default="straight_line")

    @property
    def horizon(self) -> int:
        return len(self.years)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineInputs":
        """Build from a canonical mapping (e.g. ``engine_inputs.json``).

        Every field is required except ``initial_ppe``, ``opening_cash_y1``
        and ``amortization_style``. Unknown keys are rejected.
        """
        names = [f.name for f in fields(cls)]
        unknown = sorted(set(data) - set(names))
        if unknown:
            raise InvalidConfig(f"Unknown engine input(s): {', '.join(unknown)}", field=unknown[0])

        kwargs: Dict[str, Any] = {}
        for name in names:
            if name in data:
                value = data[name]
            elif name in _OPTIONAL_FIELDS:
                value = _OPTIONAL_FIELDS[name]
            else:
                raise InvalidConfig(f"Missing engine input '{name}'", field=name)
            kwargs[name] = value

        try:
            kwargs["years"] = [int(y) for y in kwargs["years"]]
            for name in PER_YEAR_FIELDS:
                kwargs[name] = [float(v) for v in kwargs[name]]
            kwargs["issuance_flag"] = [int(v) for v in kwargs["issuance_flag"]]
            for name in RATE_FIELDS + AMOUNT_FIELDS:
                kwargs[name] = float(kwargs[name])
        except (TypeError, ValueError) as exc:
            raise InvalidConfig(f"Non-numeric engine input: {exc}") from exc

        duration = kwargs["debt_duration_years"]
        if isinstance(duration, float) and not duration.is_integer():
            raise InvalidConfig(
                f"debt_duration_years must be a whole number, got {duration}",
                field="debt_duration_years",
            )
        try:
            kwargs["debt_duration_years"] = int(duration)
        except (TypeError, ValueError) as exc:
            raise InvalidConfig(
                f"debt_duration_years is not an integer: {duration!r}",
                field="debt_duration_years",
            ) from exc
        kwargs["amortization_style"] = str(kwargs["amortization_style"])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = list(value) if isinstance(value, list) else value
        return out


def validate_engine_inputs(inputs: EngineInputs) -> None:
    """Raise on the first structural or domain violation.

    Order: years ordering, per-year shapes, then value domains.
    """
    years = inputs.years
    if not years:
        raise InvalidConfig("years must contain at least one year", field="years")
    for i in range(1, len(years)):
        if years[i] <= years[i - 1]:
            raise InvalidConfig(
                f"years must be ascending; {years[i]} follows {years[i - 1]}",
                field="years",
            )
        if years[i] != years[i - 1] + 1:
            raise InvalidConfig(
                f"years must be contiguous; gap between {years[i - 1]} and {years[i]}",
                field="years",
            )

    n = len(years)
    for name in PER_YEAR_FIELDS:
        arr = getattr(inputs, name)
        if len(arr) != n:
            raise ShapeMismatch(
                f"{name} has {len(arr)} value(s) but the horizon has {n} year(s)",
                field=name,
            )
        for v in arr:
            if not math.isfinite(v):
                raise InvalidConfig(f"{name} contains a non-finite value", field=name)

    for i, flag in enumerate(inputs.issuance_flag):
        if flag not in (0, 1):
            raise InvalidConfig(
                f"issuance_flag must be 0 or 1, got {flag} for {years[i]}",
                field="issuance_flag",
            )

    for name in ("credits_generated", "price_per_credit") + INFLOW_FIELDS:
        for i, v in enumerate(getattr(inputs, name)):
            if v < 0:
                raise InvalidConfig(
                    f"{name} must be non-negative, got {v} for {years[i]}",
                    field=name,
                )

    for name in RATE_FIELDS:
        rate = getattr(inputs, name)
        if not (0.0 <= rate <= 1.0):
            raise InvalidConfig(
                f"{name} must be a decimal fraction in [0, 1], got {rate}",
                field=name,
            )

    if inputs.debt_duration_years <= 0:
        raise InvalidConfig(
            f"debt_duration_years must be positive, got {inputs.debt_duration_years}",
            field="debt_duration_years",
        )

    for name in AMOUNT_FIELDS:
        v = getattr(inputs, name)
        if not math.isfinite(v) or v < 0:
            raise InvalidConfig(f"{name} must be a non-negative amount, got {v}", field=name)

    if inputs.amortization_style not in AMORTIZATION_STYLES:
        raise InvalidConfig(
            f"Unknown amortization_style {inputs.amortization_style!r}",
            field="amortization_style",
        )


__all__ = [
    "EngineInputs",
    "validate_engine_inputs",
    "PER_YEAR_FIELDS",
    "COST_FIELDS",
    "INFLOW_FIELDS",
    "RATE_FIELDS",
    "AMOUNT_FIELDS",
]
