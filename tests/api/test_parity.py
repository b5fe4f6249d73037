import json
import xml.etree.ElementTree as ET

import pandas as pd
import pytest

from carbonfin.errors import InvalidConfig
from carbonfin.finance.engine import calculate
from carbonfin.parity import (
    ParityConfig,
    Tolerance,
    compare_values,
    get_value_from_path,
    run_all,
    run_parity,
    save_reports,
    validate_invariants,
)
from carbonfin.parity.reporter import generate_markdown_report


def test_engine_matches_its_own_exports(parity_fixtures):
    report = run_parity(parity_fixtures, "acceptance")
    assert report.overall == "PASS", report.missing_fields
    summary = report.summary
    assert summary["failed"] == 0
    assert summary["completeness"] == 1.0
    assert summary["total_comparisons"] > 100
    assert all(inv.passed for inv in report.invariants)


def test_perturbed_reference_fails(parity_fixtures):
    csv = parity_fixtures / "acceptance" / "excel_income_statement.csv"
    df = pd.read_csv(csv)
    df.loc[df["year"] == 2026, "total_revenue"] += 100.0
    df.to_csv(csv, index=False)

    report = run_parity(parity_fixtures, "acceptance")
    assert report.overall == "FAIL"
    failed = [c for c in report.comparisons if not c.match]
    assert [(c.field, c.year) for c in failed] == [("total_revenue", 2026)]
    assert failed[0].delta == pytest.approx(100.0)


def test_dscr_sentinel_is_compared_as_text(parity_fixtures):
    report = run_parity(parity_fixtures, "acceptance")
    dscr_2027 = [c for c in report.comparisons if (c.field, c.year) == ("dscr", 2027)]
    assert len(dscr_2027) == 1
    assert dscr_2027[0].match
    assert dscr_2027[0].engine == "n/a"


@pytest.mark.parametrize("year, cell", [(2025, "n/a"), (2027, "1.5")])
def test_dscr_sentinel_mismatch_fails(parity_fixtures, year, cell):
    csv = parity_fixtures / "acceptance" / "excel_debt_schedule.csv"
    df = pd.read_csv(csv, dtype=str, keep_default_na=False)
    df.loc[df["year"] == str(year), "dscr"] = cell
    df.to_csv(csv, index=False)

    report = run_parity(parity_fixtures, "acceptance")
    assert report.overall == "FAIL"
    failed = [c for c in report.comparisons if not c.match]
    assert [(c.field, c.year) for c in failed] == [("dscr", year)]


def test_missing_reference_table_fails(parity_fixtures):
    (parity_fixtures / "acceptance" / "excel_carbon_stream.csv").unlink()
    report = run_parity(parity_fixtures, "acceptance")
    assert report.overall == "FAIL"
    assert "excel_carbon_stream.csv" in report.missing_fields


def test_required_tables_from_config(parity_fixtures):
    (parity_fixtures / "acceptance" / "excel_carbon_stream.csv").unlink()
    (parity_fixtures / "parity.config.yaml").write_text(
        "required_tables: [income_statement, metrics]\ntolerance:\n  default_abs: 0.5\n",
        encoding="utf-8",
    )
    reports = run_all(parity_fixtures)
    assert [r.scenario for r in reports] == ["acceptance"]
    assert reports[0].overall == "PASS"
    assert set(reports[0].statements) == {"income_statement", "metrics"}


def test_column_mapping(parity_fixtures):
    csv = parity_fixtures / "acceptance" / "excel_income_statement.csv"
    pd.DataFrame({"Year": [2025, 2026, 2027], "Revenue": [0.0, 10000.0, 0.0]}).to_csv(
        csv, index=False
    )
    config = ParityConfig.from_mapping(
        {
            "required_tables": ["income_statement"],
            "mapping": {
                "income_statement": {
                    "year_col": "Year",
                    "columns": {"Revenue": "incomeStatements[*].total_revenue"},
                }
            },
        }
    )
    report = run_parity(parity_fixtures, "acceptance", config)
    assert report.overall == "PASS"
    assert len(report.comparisons) == 3


def test_engine_error_becomes_fail_report(parity_fixtures):
    inputs = parity_fixtures / "acceptance" / "engine_inputs.json"
    data = json.loads(inputs.read_text(encoding="utf-8"))
    data["staff_costs"] = [0.0]
    inputs.write_text(json.dumps(data), encoding="utf-8")

    reports = run_all(parity_fixtures)
    assert reports[0].overall == "FAIL"
    assert "staff_costs" in reports[0].error


def test_reports_written(parity_fixtures, tmp_path):
    report = run_parity(parity_fixtures, "acceptance")
    paths = save_reports(report, tmp_path / "out")

    assert json.loads(paths["json"].read_text(encoding="utf-8"))["overall"] == "PASS"
    suite = ET.fromstring(paths["junit"].read_text(encoding="utf-8").split("\n", 1)[1])
    assert suite.get("failures") == "0"
    assert int(suite.get("tests")) >= report.summary["total_comparisons"]
    assert "acceptance" in generate_markdown_report(report)


# ---------------------------------------------------------------------------
# Comparator and invariants
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "field, reference, engine, match",
    [
        ("total_revenue", 100.0, 100.009, True),
        ("total_revenue", 100.0, 100.02, False),
        ("credits_generated", 1000.0, 1000.005, True),
        ("company_irr", 0.1000, 0.1004, True),
        ("company_irr", 0.1000, 0.1006, False),
        ("discount_rate_used", 0.12, 0.12005, True),
        ("discount_rate_used", 0.12, 0.1202, False),
        ("dscr", "n/a", "n/a", True),
        ("dscr", "n/a", 1.2, False),
        ("total_revenue", float("nan"), 1.0, False),
    ],
)
def test_compare_values(field, reference, engine, match):
    assert compare_values(reference, engine, field, Tolerance()).match is match


def test_tolerance_rejects_unknown_keys():
    with pytest.raises(InvalidConfig):
        Tolerance.from_mapping({"abs": 1})
    with pytest.raises(InvalidConfig):
        ParityConfig.from_mapping({"required_tables": ["ledger"]})


def test_get_value_from_path():
    data = {"rows": [{"a": 1}, {"a": 2}], "metrics": {"x": {"y": 3}}}
    assert get_value_from_path(data, "rows[*].a") == [1, 2]
    assert get_value_from_path(data, "metrics.x.y") == 3
    assert get_value_from_path(data, "metrics.z") is None
    assert get_value_from_path(data, "missing[*].a") is None


def test_invariants_pass_on_engine_output(acceptance_inputs):
    results = validate_invariants(calculate(acceptance_inputs).to_dict())
    assert results
    assert all(r.passed for r in results), [r.to_dict() for r in results if not r.passed]


def test_invariants_catch_broken_balance(acceptance_inputs):
    data = calculate(acceptance_inputs).to_dict()
    data["balanceSheets"][1]["total_assets"] += 50.0
    failed = [r.name for r in validate_invariants(data) if not r.passed]
    assert failed
