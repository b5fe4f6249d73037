import pandas as pd
from openpyxl import load_workbook

from carbonfin.analytics.export_helpers import (
    STATEMENT_SHEETS,
    ChartExporter,
    ExcelExporter,
    flatten_metrics,
)
from carbonfin.analytics.adjustments import create_tornado_data, run_sensitivity
from carbonfin.finance.engine import calculate


def test_flatten_metrics_skips_nested_groups(acceptance_inputs):
    df = flatten_metrics(calculate(acceptance_inputs).metrics)
    values = dict(zip(df["metric"], df["value"]))
    assert "returns" not in values
    assert values["company_irr"] == "no_solution"
    assert values["total_revenue"] == 10000.0


def test_export_bundle_writes_every_statement(acceptance_inputs, tmp_path):
    path = ExcelExporter(tmp_path / "run.xlsx").export_bundle(calculate(acceptance_inputs))
    wb = load_workbook(path)
    assert wb.sheetnames == list(STATEMENT_SHEETS.values()) + ["Metrics"]

    ws = wb["Income Statement"]
    header = [c.value for c in ws[1]]
    assert header[0] == "year"
    assert ws[1][0].font.bold
    assert ws.cell(row=2, column=1).value == 2025

    debt = wb["Debt Schedule"]
    dscr_col = [c.value for c in debt[1]].index("dscr") + 1
    assert debt.cell(row=4, column=dscr_col).value == "n/a"


def test_nothing_written_without_sheets(tmp_path):
    exporter = ExcelExporter(tmp_path / "unused.xlsx")
    exporter.save()
    assert not (tmp_path / "unused.xlsx").exists()


def test_charts_skip_missing_columns(tmp_path):
    charts = ChartExporter(tmp_path)
    assert charts.export_dscr_chart(pd.DataFrame({"year": [2025]})) is None
    frame = pd.DataFrame(
        {"scenario_name": ["a", "a"], "year": [2025, 2026], "dscr": [None, None]}
    )
    assert charts.export_dscr_chart(frame) is None


def test_tornado_chart(acceptance_inputs, tmp_path):
    df = create_tornado_data(run_sensitivity(acceptance_inputs))
    path = ChartExporter(tmp_path).export_tornado_chart(df)
    assert path is not None and path.exists()
    assert ChartExporter(tmp_path).export_tornado_chart(df.iloc[0:0]) is None
