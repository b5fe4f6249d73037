"""Shared input builders for the carbonfin test-suite."""

import json
from typing import Any, Dict, Optional, Sequence

import pytest
import yaml

from carbonfin.finance.inputs import EngineInputs

PER_YEAR_ZERO_FIELDS = (
    "credits_generated",
    "price_per_credit",
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


def build_inputs(years: Sequence[int] = (2025, 2026, 2027), **overrides: Any) -> EngineInputs:
    """Neutral inputs (everything zero) with selected fields overridden."""
    n = len(years)
    data: Dict[str, Any] = {name: [0.0] * n for name in PER_YEAR_ZERO_FIELDS}
    data.update(
        years=list(years),
        issuance_flag=[0] * n,
        cogs_rate=0.0,
        ar_rate=0.0,
        ap_rate=0.0,
        income_tax_rate=0.0,
        interest_rate=0.0,
        discount_rate=0.10,
        purchase_share=0.0,
        debt_duration_years=5,
        initial_equity_t0=0.0,
    )
    data.update(overrides)
    return EngineInputs(**data)


# Three-year acceptance case with spreadsheet-verified results.
ACCEPTANCE_CASE: Dict[str, Any] = {
    "years": [2025, 2026, 2027],
    "credits_generated": [1000.0, 0.0, 0.0],
    "price_per_credit": [10.0, 10.0, 10.0],
    "issuance_flag": [0, 1, 0],
    "cogs_rate": 0.10,
    "income_tax_rate": 0.20,
    "ar_rate": 0.05,
    "ap_rate": 0.10,
    "feasibility_costs": [-5000.0, 0.0, 0.0],
    "pdd_costs": [-2000.0, 0.0, 0.0],
    "mrv_costs": [0.0, -1000.0, 0.0],
    "staff_costs": [-10000.0, -10000.0, -10000.0],
    "depreciation": [-3000.0, -3000.0, -3000.0],
    "capex": [-20000.0, 0.0, 0.0],
    "interest_rate": 0.10,
    "debt_duration_years": 2,
    "debt_draw": [10000.0, 0.0, 0.0],
    "equity_injection": [0.0, 0.0, 0.0],
    "initial_equity_t0": 5000.0,
    "opening_cash_y1": 0.0,
    "purchase_amount": [0.0, 2000.0, 0.0],
    "purchase_share": 0.20,
    "discount_rate": 0.12,
}


@pytest.fixture
def make_inputs():
    return build_inputs


@pytest.fixture
def acceptance_inputs() -> EngineInputs:
    return EngineInputs.from_dict(ACCEPTANCE_CASE)


@pytest.fixture
def acceptance_case() -> Dict[str, Any]:
    return {k: list(v) if isinstance(v, list) else v for k, v in ACCEPTANCE_CASE.items()}


@pytest.fixture
def write_scenario(tmp_path, acceptance_case):
    """Write a scenario file; defaults to the acceptance case in engine units."""
    def _write(name: str = "base.yaml", body: Optional[Dict[str, Any]] = None, directory=None) -> Any:
        target = (directory or tmp_path) / name
        target.parent.mkdir(parents=True, exist_ok=True)
        data = body if body is not None else {"engine_inputs": acceptance_case}
        if target.suffix == ".json":
            target.write_text(json.dumps(data), encoding="utf-8")
        else:
            target.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return target

    return _write


@pytest.fixture
def parity_fixtures(tmp_path, acceptance_case):
    """Reference exports generated from the engine itself, so parity passes."""
    from carbonfin.analytics.export_helpers import flatten_metrics
    from carbonfin.finance.engine import calculate
    from carbonfin.parity.runner import TABLE_KEYS

    root = tmp_path / "fixtures"
    scenario_dir = root / "acceptance"
    scenario_dir.mkdir(parents=True)
    (scenario_dir / "engine_inputs.json").write_text(
        json.dumps(acceptance_case), encoding="utf-8"
    )

    bundle = calculate(EngineInputs.from_dict(acceptance_case))
    frames = bundle.to_frames()
    for table, key in TABLE_KEYS.items():
        frames[key].to_csv(scenario_dir / f"excel_{table}.csv", index=False)
    flatten_metrics(bundle.metrics).to_csv(scenario_dir / "excel_metrics.csv", index=False)
    return root
