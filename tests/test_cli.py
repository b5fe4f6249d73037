"""CLI smoke tests through ``main(argv)``."""

import json

import pytest

from carbonfin.cli import EXIT_ERROR, EXIT_OK, EXIT_PARITY_FAIL, build_parser, main


def test_run_writes_json_and_excel(write_scenario, tmp_path):
    scenario = write_scenario()
    out_json = tmp_path / "out" / "bundle.json"
    out_xlsx = tmp_path / "out" / "bundle.xlsx"
    code = main(["run", str(scenario), "--json", str(out_json), "--excel", str(out_xlsx)])
    assert code == EXIT_OK
    data = json.loads(out_json.read_text(encoding="utf-8"))
    assert data["metrics"]["total_revenue"] == pytest.approx(10000.0)
    assert out_xlsx.exists()


def test_run_with_template(write_scenario):
    assert main(["run", str(write_scenario()), "--template", "optimistic"]) == EXIT_OK


def test_run_reports_input_errors(write_scenario, acceptance_case, capsys):
    scenario = write_scenario("bad.yaml", {"engine_inputs": dict(acceptance_case, cogs_rate=5)})
    assert main(["run", str(scenario)]) == EXIT_ERROR
    assert "cogs_rate" in capsys.readouterr().err


def test_missing_scenario_file_is_an_error(tmp_path):
    assert main(["run", str(tmp_path / "missing.yaml")]) == EXIT_ERROR


def test_sensitivity_outputs(write_scenario, tmp_path):
    csv = tmp_path / "sens.csv"
    chart = tmp_path / "charts" / "tornado.png"
    code = main(["sensitivity", str(write_scenario()), "--csv", str(csv), "--chart", str(chart)])
    assert code == EXIT_OK
    assert csv.exists()
    assert chart.exists()


def test_scenarios_batch(write_scenario, tmp_path):
    directory = tmp_path / "scenarios"
    write_scenario("one.yaml", directory=directory)
    write_scenario("two.json", directory=directory)
    out = tmp_path / "batch.xlsx"
    assert main(["scenarios", str(directory), "--excel", str(out)]) == EXIT_OK
    assert out.exists()


def test_scenarios_empty_directory_is_an_error(tmp_path):
    assert main(["scenarios", str(tmp_path)]) == EXIT_ERROR


def test_parity_pass_and_fail(parity_fixtures, tmp_path):
    out = tmp_path / "reports"
    assert main(["parity", str(parity_fixtures), "--all", "--out", str(out)]) == EXIT_OK
    assert (out / "acceptance.junit.xml").exists()

    (parity_fixtures / "acceptance" / "excel_metrics.csv").unlink()
    code = main(["parity", str(parity_fixtures), "--scenario", "acceptance", "--out", str(out)])
    assert code == EXIT_PARITY_FAIL


@pytest.mark.parametrize(
    "body",
    ["year,dscr\n2025,1.0\n2026,1,2,3\n", "year,dscr\n,1.0\n"],
    ids=["ragged-row", "empty-year"],
)
def test_parity_malformed_reference_is_an_error(parity_fixtures, body, capsys):
    (parity_fixtures / "acceptance" / "excel_debt_schedule.csv").write_text(body, encoding="utf-8")
    code = main(["parity", str(parity_fixtures), "--scenario", "acceptance"])
    assert code == EXIT_ERROR
    assert "Error" in capsys.readouterr().err


def test_parity_without_scenarios(tmp_path):
    empty = tmp_path / "fixtures"
    empty.mkdir()
    assert main(["parity", str(empty), "--all"]) == EXIT_PARITY_FAIL


def test_schema_csv(tmp_path):
    csv = tmp_path / "schema.csv"
    assert main(["schema", "--csv", str(csv)]) == EXIT_OK
    assert "credits_generated" in csv.read_text(encoding="utf-8")


def test_parity_requires_a_scenario_choice():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["parity", "fixtures"])
