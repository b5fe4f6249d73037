import pytest
from openpyxl import load_workbook

from carbonfin.analytics.scenario_analytics import (
    TIMESERIES_FIELDS,
    ScenarioAnalytics,
    compare_templates,
)
from carbonfin.errors import InvalidConfig


@pytest.fixture
def scenarios_dir(tmp_path, write_scenario, acceptance_case):
    directory = tmp_path / "scenarios"
    write_scenario("a_base.yaml", directory=directory)
    broken = dict(acceptance_case, cogs_rate=2.0)
    write_scenario("b_broken.json", {"engine_inputs": broken}, directory=directory)
    (directory / "notes.txt").write_text("not a scenario", encoding="utf-8")
    return directory


def test_discovery_ignores_other_files(scenarios_dir):
    paths = ScenarioAnalytics(scenarios_dir).discover_scenarios()
    assert [p.name for p in paths] == ["a_base.yaml", "b_broken.json"]


def test_failing_scenario_does_not_stop_the_batch(scenarios_dir):
    sa = ScenarioAnalytics(scenarios_dir)
    summary_df, timeseries_df = sa.run()

    assert list(summary_df["scenario_name"]) == ["a_base"]
    assert len(timeseries_df) == 3
    assert {column for _, column in TIMESERIES_FIELDS} <= set(timeseries_df.columns)
    # years without debt service are gaps, not text
    assert timeseries_df["dscr"].isna().tolist() == [False, False, True]

    assert len(sa.failures) == 1
    failure = sa.failures[0]
    assert failure.name == "b_broken"
    assert failure.kind == "invalid_config"
    assert failure.field == "cogs_rate"
    assert list(sa.failures_frame()["scenario_name"]) == ["b_broken"]


def test_strict_mode_reraises(scenarios_dir):
    with pytest.raises(InvalidConfig):
        ScenarioAnalytics(scenarios_dir, strict=True).run()


def test_missing_or_empty_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        ScenarioAnalytics(tmp_path / "nope").run()
    empty = tmp_path / "empty"
    empty.mkdir()
    with pytest.raises(RuntimeError):
        ScenarioAnalytics(empty).run()


def test_batch_exports_workbook_and_charts(scenarios_dir, tmp_path):
    out = tmp_path / "out" / "scenarios.xlsx"
    charts = tmp_path / "charts"
    sa = ScenarioAnalytics(scenarios_dir, output_path=out)
    sa.run(export_excel=True, export_charts=True, charts_dir=charts)

    wb = load_workbook(out)
    assert {"Summary", "Timeseries", "Failures", "DSCR_View", "IRR_View"} <= set(wb.sheetnames)
    assert (charts / "dscr_series.png").exists()
    assert (charts / "cash_end.png").exists()


def test_compare_templates(acceptance_inputs):
    summary_df, timeseries_df = compare_templates(
        acceptance_inputs, templates=["optimistic", "pessimistic"]
    )
    assert list(summary_df["scenario_name"]) == ["base", "optimistic", "pessimistic"]
    revenue = dict(zip(summary_df["scenario_name"], summary_df["total_revenue"]))
    assert revenue["optimistic"] > revenue["base"] > revenue["pessimistic"]
    assert len(timeseries_df) == 9
