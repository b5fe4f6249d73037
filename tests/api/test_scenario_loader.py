import pytest

from carbonfin.analytics.scenario_loader import (
    ScenarioConfigError,
    engine_inputs_from_config,
    load_engine_inputs,
    load_scenario_config,
)
from carbonfin.defaults import DefaultAssumptions


def test_engine_inputs_section(write_scenario, acceptance_inputs):
    path = write_scenario()
    cfg = load_scenario_config(path)
    assert cfg["meta"]["source_path"] == str(path)
    assert engine_inputs_from_config(cfg) == acceptance_inputs


def test_json_scenario(write_scenario, acceptance_inputs):
    path = write_scenario("base.json")
    assert load_engine_inputs(path) == acceptance_inputs


def test_ui_section_uses_scenario_defaults(write_scenario):
    ui = {
        "years": [2025, 2026],
        "credits_generated": [10, 10],
        "price_per_credit": [5, 5],
        "issue": [0, 1],
        "feasibility_costs": [0, 0],
        "pdd_costs": [0, 0],
        "mrv_costs": [0, 0],
        "staff_costs": [1, 1],
        "capex": [0, 0],
        "depreciation": [0, 0],
        "cogs_rate": 10,
        "ar_rate": 0,
        "ap_rate": 0,
        "income_tax_rate": 0,
        "equity_injection": [0, 0],
        "debt_draw": [100, 0],
        "purchase_amount": [0, 0],
        "interest_rate": 5,
        "debt_duration_years": 2,
        "purchase_share": 0,
        "discount_rate": 8,
        "opening_cash_y1": 0,
        "initial_equity_t0": 0,
        "initial_ppe": 0,
    }
    path = write_scenario(
        "ui.yaml", {"ui": ui, "defaults": {"amortization_style": "annuity"}}
    )
    inputs = load_engine_inputs(path)
    assert inputs.staff_costs == [-1.0, -1.0]
    assert inputs.discount_rate == pytest.approx(0.08)
    assert inputs.amortization_style == "annuity"


def test_records_section(write_scenario):
    body = {
        "years": [2025, 2026],
        "records": [
            {"category": "operational_metrics", "input_key": "credits_generated", "input_value": 100},
            {"category": "operational_metrics", "input_key": "price_per_credit", "input_value": 8},
            {"category": "operational_metrics", "input_key": "issuance_flag", "input_value": 1, "year": 2026},
        ],
    }
    path = write_scenario("records.yaml", body)
    inputs = load_engine_inputs(path, DefaultAssumptions(cogs_rate_pct=20))
    assert inputs.issuance_flag == [0, 1]
    assert inputs.cogs_rate == pytest.approx(0.2)


def test_records_need_years(write_scenario):
    path = write_scenario("records.yaml", {"records": []})
    with pytest.raises(ScenarioConfigError):
        load_engine_inputs(path)


@pytest.mark.parametrize(
    "body",
    [{"meta": {"name": "x"}}, {"ui": {}, "engine_inputs": {}}, {"engine_inputs": [1, 2]}],
    ids=["no-section", "two-sections", "not-a-mapping"],
)
def test_structural_errors(write_scenario, body):
    path = write_scenario("bad.yaml", body)
    with pytest.raises(ScenarioConfigError):
        load_engine_inputs(path)


def test_empty_missing_and_unsupported_files(tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(ScenarioConfigError):
        load_scenario_config(empty)

    with pytest.raises(FileNotFoundError):
        load_scenario_config(tmp_path / "missing.yaml")

    txt = tmp_path / "scenario.txt"
    txt.write_text("engine_inputs: {}", encoding="utf-8")
    with pytest.raises(ScenarioConfigError):
        load_scenario_config(txt)
