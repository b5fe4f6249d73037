"""
Scenario templates and one-at-a-time sensitivity for EngineInputs.

Template adjustments are percentages applied to three groups of inputs:

- revenue: credits_generated, price_per_credit
- costs: cogs_rate, the four OPEX arrays, capex, depreciation
- financing: interest_rate, discount_rate

Adjusted rates are clipped to [0, 1]. Inputs are never mutated; every
function returns a new EngineInputs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from carbonfin.errors import CarbonFinError, InvalidConfig
from carbonfin.finance.engine import calculate
from carbonfin.finance.inputs import PER_YEAR_FIELDS, RATE_FIELDS, EngineInputs
from carbonfin.finance.utils import get_nested, is_number

logger = logging.getLogger(__name__)

REVENUE_FIELDS = ("credits_generated", "price_per_credit")
COST_ADJUSTED_FIELDS = (
    "cogs_rate",
    "feasibility_costs",
    "pdd_costs",
    "mrv_costs",
    "staff_costs",
    "capex",
    "depreciation",
)
FINANCING_FIELDS = ("interest_rate", "discount_rate")


@dataclass(frozen=True)
class ScenarioAdjustment:
    """Percentage adjustments (20 means +20%)."""

    revenue: float = 0.0
    costs: float = 0.0
    financing: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"revenue": self.revenue, "costs": self.costs, "financing": self.financing}


SCENARIO_TEMPLATES: Dict[str, ScenarioAdjustment] = {
    "optimistic": ScenarioAdjustment(revenue=20, costs=-10, financing=0),
    "pessimistic": ScenarioAdjustment(revenue=-20, costs=15, financing=0),
    "conservative": ScenarioAdjustment(revenue=-10, costs=10, financing=0),
    "market_stress": ScenarioAdjustment(revenue=-25, costs=5, financing=25),
    "best_case": ScenarioAdjustment(revenue=30, costs=-15, financing=-20),
    "cost_overrun": ScenarioAdjustment(revenue=0, costs=30, financing=10),
}


def get_template(name: str) -> ScenarioAdjustment:
    try:
        return SCENARIO_TEMPLATES[name]
    except KeyError:
        raise InvalidConfig(
            f"Unknown scenario template '{name}'; "
            f"choose from {', '.join(sorted(SCENARIO_TEMPLATES))}",
            field="template",
        ) from None


def scale_field(inputs: EngineInputs, name: str, factor: float) -> EngineInputs:
    """Return a copy with one numeric input multiplied by ``factor``."""
    if name in PER_YEAR_FIELDS:
        if name == "issuance_flag":
            raise InvalidConfig("issuance_flag cannot be scaled", field=name)
        return replace(inputs, **{name: [v * factor for v in getattr(inputs, name)]})
    if name in RATE_FIELDS:
        value = min(1.0, max(0.0, getattr(inputs, name) * factor))
        return replace(inputs, **{name: value})
    if name in ("initial_equity_t0", "opening_cash_y1", "initial_ppe"):
        return replace(inputs, **{name: getattr(inputs, name) * factor})
    raise InvalidConfig(f"'{name}' is not a scalable input", field=name)


def apply_adjustments(
    inputs: EngineInputs, adjustment: ScenarioAdjustment | Mapping[str, float]
) -> EngineInputs:
    """Apply revenue / costs / financing percentage adjustments."""
    if not isinstance(adjustment, ScenarioAdjustment):
        unknown = sorted(set(adjustment) - {"revenue", "costs", "financing"})
        if unknown:
            raise InvalidConfig(
                f"Unknown adjustment group(s): {', '.join(unknown)}", field=unknown[0]
            )
        adjustment = ScenarioAdjustment(**{k: float(v) for k, v in adjustment.items()})

    out = inputs
    groups = (
        (REVENUE_FIELDS, adjustment.revenue),
        (COST_ADJUSTED_FIELDS, adjustment.costs),
        (FINANCING_FIELDS, adjustment.financing),
    )
    for names, pct in groups:
        if pct == 0:
            continue
        factor = 1.0 + pct / 100.0
        for name in names:
            out = scale_field(out, name, factor)

    logger.debug("Applied scenario adjustment %s", adjustment.to_dict())
    return out


def apply_template(inputs: EngineInputs, name: str) -> EngineInputs:
    return apply_adjustments(inputs, get_template(name))


# ---------------------------------------------------------------------------
# Sensitivity
# ---------------------------------------------------------------------------

SENSITIVITY_CONFIG: List[Dict[str, Any]] = [
    {"field": "price_per_credit", "label": "Credit price", "stress": [0.8, 1.2]},
    {"field": "credits_generated", "label": "Credit volume", "stress": [0.8, 1.2]},
    {"field": "cogs_rate", "label": "COGS rate", "stress": [0.8, 1.2]},
    {"field": "staff_costs", "label": "Staff costs", "stress": [0.8, 1.2]},
    {"field": "mrv_costs", "label": "MRV costs", "stress": [0.8, 1.2]},
    {"field": "capex", "label": "CAPEX", "stress": [0.8, 1.2]},
    {"field": "interest_rate", "label": "Interest rate", "stress": [0.8, 1.2]},
    {"field": "discount_rate", "label": "Discount rate", "stress": [0.8, 1.2]},
]


def _metric(bundle_metrics: Mapping[str, Any], metric: str) -> Optional[float]:
    value = get_nested(dict(bundle_metrics), metric.split("."))
    return float(value) if is_number(value) else None


def run_sensitivity(
    inputs: EngineInputs,
    metric: str = "npv",
    config: Optional[Sequence[Mapping[str, Any]]] = None,
) -> pd.DataFrame:
    """
    One-at-a-time stress test (tornado chart compatible).

    Parameters
    ----------
    inputs : EngineInputs
        Base case.
    metric : str
        Metric key, dotted for nested values (``"returns.project.npv"``).
    config : sequence of mappings, optional
        ``{"field", "label", "stress": [low, high]}`` multipliers; defaults
        to SENSITIVITY_CONFIG.

    Returns
    -------
    pd.DataFrame
        One row per variable: field, label, low/high multiplier, base metric,
        metric at low/high and swing. Non-numeric metric results (n/a,
        no_solution) are left empty and give no swing.
    """
    if config is None:
        config = SENSITIVITY_CONFIG

    base_value = _metric(calculate(inputs).metrics, metric)
    rows: List[Dict[str, Any]] = []

    for entry in config:
        name = entry["field"]
        low, high = entry["stress"]
        try:
            low_value = _metric(calculate(scale_field(inputs, name, low)).metrics, metric)
            high_value = _metric(calculate(scale_field(inputs, name, high)).metrics, metric)
        except CarbonFinError as exc:
            logger.warning("Sensitivity for %s failed: %s", name, exc)
            continue

        swing = (
            abs(high_value - low_value)
            if low_value is not None and high_value is not None
            else None
        )
        rows.append(
            {
                "field": name,
                "label": entry.get("label", name),
                "low_multiplier": low,
                "high_multiplier": high,
                "base_metric": base_value,
                "metric_low": low_value,
                "metric_high": high_value,
                "swing": swing,
            }
        )

    columns = [
        "field",
        "label",
        "low_multiplier",
        "high_multiplier",
        "base_metric",
        "metric_low",
        "metric_high",
        "swing",
    ]
    return pd.DataFrame(rows, columns=columns)


def create_tornado_data(df: pd.DataFrame) -> pd.DataFrame:
    """Sort sensitivity results by swing, largest first; rows without a swing last."""
    if df.empty:
        return df
    out = df.copy()
    out["swing"] = pd.to_numeric(out["swing"])
    return out.sort_values("swing", ascending=False, na_position="last").reset_index(drop=True)


__all__ = [
    "ScenarioAdjustment",
    "SCENARIO_TEMPLATES",
    "SENSITIVITY_CONFIG",
    "get_template",
    "scale_field",
    "apply_adjustments",
    "apply_template",
    "run_sensitivity",
    "create_tornado_data",
]
