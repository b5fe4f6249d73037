"""
Command-line entry point.

    carbonfin run SCENARIO [--json OUT] [--excel OUT] [--defaults FILE] [--template NAME]
    carbonfin sensitivity SCENARIO [--metric KEY] [--csv OUT] [--chart OUT]
    carbonfin scenarios DIR [--excel OUT] [--charts DIR] [--strict]
    carbonfin parity FIXTURES_DIR (--scenario NAME | --all) [--config FILE] [--out DIR]
    carbonfin schema [--csv OUT]

Exit codes: 0 success, 1 parity FAIL, 2 fatal input / engine error.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Iterable, List, Optional

import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from carbonfin.analytics.adjustments import (
    SCENARIO_TEMPLATES,
    apply_template,
    create_tornado_data,
    run_sensitivity,
)
from carbonfin.analytics.export_helpers import ChartExporter, ExcelExporter
from carbonfin.analytics.input_schema import build_schema_dataframe
from carbonfin.analytics.scenario_analytics import ScenarioAnalytics
from carbonfin.analytics.scenario_loader import ScenarioConfigError, load_engine_inputs
from carbonfin.defaults import DefaultAssumptions, load_default_assumptions
from carbonfin.errors import CarbonFinError
from carbonfin.finance.engine import calculate
from carbonfin.finance.utils import Sentinel, is_number
from carbonfin.parity.reporter import ParityReport, save_reports
from carbonfin.parity.runner import load_parity_config, run_all, run_parity

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_PARITY_FAIL = 1
EXIT_ERROR = 2

HEADLINE_METRICS = (
    ("total_revenue", "Total revenue"),
    ("total_ebitda", "Total EBITDA"),
    ("total_net_income", "Total net income"),
    ("npv", "Equity NPV"),
    ("company_irr", "Equity IRR"),
    ("project_irr", "Project IRR"),
    ("payback_year", "Payback year"),
    ("dscr_minimum", "Minimum DSCR"),
    ("peak_funding_required", "Peak funding"),
    ("lcoc", "LCOC"),
)


def _fmt(value: Any) -> str:
    if isinstance(value, Sentinel):
        return value.value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if is_number(value):
        return f"{value:,.4f}" if abs(value) < 10 else f"{value:,.2f}"
    return str(value)


def _print_error(exc: BaseException) -> None:
    if isinstance(exc, CarbonFinError):
        payload = exc.to_dict()
    else:
        payload = {"kind": type(exc).__name__, "field": None, "message": str(exc)}
    err_console.print(
        Panel(Text(json.dumps(payload, indent=2)), title="Error", style="bold red")
    )


def _load_defaults(path: Optional[str]) -> Optional[DefaultAssumptions]:
    return load_default_assumptions(path) if path else None


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def cmd_run(args: argparse.Namespace) -> int:
    inputs = load_engine_inputs(args.scenario, _load_defaults(args.defaults))
    if args.template:
        inputs = apply_template(inputs, args.template)
    bundle = calculate(inputs)

    title = Path(args.scenario).stem
    if args.template:
        title += f" [{args.template}]"
    table = Table(title=title)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key, label in HEADLINE_METRICS:
        table.add_row(label, _fmt(bundle.metrics.get(key)))
    console.print(table)

    if args.json:
        out = Path(args.json)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(bundle.to_json(), encoding="utf-8")
        console.print(f"[green]JSON written to {out}[/green]")
    if args.excel:
        path = ExcelExporter(args.excel).export_bundle(bundle)
        console.print(f"[green]Workbook written to {path}[/green]")
    return EXIT_OK


def cmd_sensitivity(args: argparse.Namespace) -> int:
    inputs = load_engine_inputs(args.scenario, _load_defaults(args.defaults))
    df = create_tornado_data(run_sensitivity(inputs, metric=args.metric))

    table = Table(title=f"Sensitivity of {args.metric}")
    for col in ("label", "metric_low", "metric_high", "swing"):
        table.add_column(col, justify="left" if col == "label" else "right")
    for row in df.itertuples(index=False):
        table.add_row(str(row.label), _fmt(row.metric_low), _fmt(row.metric_high), _fmt(row.swing))
    console.print(table)

    if args.csv:
        Path(args.csv).parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(args.csv, index=False)
    if args.chart:
        chart = Path(args.chart)
        ChartExporter(chart.parent).export_tornado_chart(df, output_file=chart.name)
    return EXIT_OK


def cmd_scenarios(args: argparse.Namespace) -> int:
    sa = ScenarioAnalytics(
        scenarios_dir=Path(args.directory),
        output_path=Path(args.excel) if args.excel else None,
        strict=args.strict,
        defaults=_load_defaults(args.defaults),
    )
    summary_df, _ = sa.run(
        export_excel=bool(args.excel),
        export_charts=bool(args.charts),
        charts_dir=Path(args.charts) if args.charts else None,
    )

    table = Table(title="Scenarios")
    table.add_column("Scenario")
    for _, label in HEADLINE_METRICS[3:7]:
        table.add_column(label, justify="right")
    for _, rec in summary_df.iterrows():
        table.add_row(
            str(rec["scenario_name"]),
            *[_fmt(rec.get(key)) for key, _ in HEADLINE_METRICS[3:7]],
        )
    console.print(table)

    for failure in sa.failures:
        err_console.print(
            f"[red]{failure.name}[/red]: {failure.kind} "
            f"({failure.field or '-'}) {failure.message}"
        )
    return EXIT_OK


def _print_parity(report: ParityReport) -> None:
    summary = report.summary
    style = "green" if report.overall == "PASS" else "bold red"
    body = (
        f"comparisons {summary['passed']}/{summary['total_comparisons']} passed, "
        f"completeness {summary['completeness'] * 100:.1f}%, "
        f"invariants {sum(i.passed for i in report.invariants)}/{len(report.invariants)}"
    )
    if report.error:
        body += f"\nerror: {report.error}"
    console.print(Panel.fit(body, title=f"{report.scenario}: {report.overall}", style=style))


def cmd_parity(args: argparse.Namespace) -> int:
    config = load_parity_config(args.config, search_dir=args.fixtures)
    if args.all:
        reports: List[ParityReport] = run_all(args.fixtures, config)
    else:
        reports = [run_parity(args.fixtures, args.scenario, config)]

    out_dir = Path(args.out) if args.out else Path(args.fixtures).parent / "out"
    for report in reports:
        save_reports(report, out_dir)
        _print_parity(report)

    if not reports:
        err_console.print("[yellow]No parity scenarios found.[/yellow]")
        return EXIT_PARITY_FAIL
    return EXIT_OK if all(r.overall == "PASS" for r in reports) else EXIT_PARITY_FAIL


def cmd_schema(args: argparse.Namespace) -> int:
    df = build_schema_dataframe()
    if args.csv:
        Path(args.csv).parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(args.csv, index=False)

    table = Table(title="Model inputs")
    for col in ("category", "input_key", "kind", "per_year", "default_attr"):
        table.add_column(col)
    for row in df.itertuples(index=False):
        table.add_row(
            row.category, row.input_key, row.kind, str(row.per_year), str(row.default_attr or "")
        )
    console.print(table)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="carbonfin",
        description="Carbon-credit project financial statements, metrics and parity checks.",
    )
    p.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run one scenario and print headline metrics.")
    run.add_argument("scenario", help="Scenario YAML/JSON file.")
    run.add_argument("--json", help="Write the full statement bundle as JSON.")
    run.add_argument("--excel", help="Write statements and metrics to an Excel workbook.")
    run.add_argument("--defaults", help="YAML/JSON file overriding default assumptions.")
    run.add_argument(
        "--template",
        choices=sorted(SCENARIO_TEMPLATES),
        help="Apply a scenario template before running.",
    )
    run.set_defaults(func=cmd_run)

    sens = sub.add_parser("sensitivity", help="One-at-a-time sensitivity (tornado).")
    sens.add_argument("scenario", help="Scenario YAML/JSON file.")
    sens.add_argument("--metric", default="npv", help="Metric key, dotted for nested values.")
    sens.add_argument("--csv", help="Write results to CSV.")
    sens.add_argument("--chart", help="Write a tornado chart PNG.")
    sens.add_argument("--defaults", help="YAML/JSON file overriding default assumptions.")
    sens.set_defaults(func=cmd_sensitivity)

    scen = sub.add_parser("scenarios", help="Batch-run every scenario in a directory.")
    scen.add_argument("directory", help="Directory of scenario YAML/JSON files.")
    scen.add_argument("--excel", help="Excel output path for summary + timeseries.")
    scen.add_argument("--charts", help="Directory for DSCR / cash PNG charts.")
    scen.add_argument("--defaults", help="YAML/JSON file overriding default assumptions.")
    scen.add_argument(
        "--strict",
        action="store_true",
        help="Stop at the first failing scenario instead of continuing.",
    )
    scen.set_defaults(func=cmd_scenarios)

    par = sub.add_parser("parity", help="Compare engine output with reference exports.")
    par.add_argument("fixtures", help="Fixtures directory (one sub-directory per scenario).")
    which = par.add_mutually_exclusive_group(required=True)
    which.add_argument("--scenario", help="Run one fixture scenario.")
    which.add_argument("--all", action="store_true", help="Run every fixture scenario.")
    par.add_argument("--config", help="Parity config YAML/JSON.")
    par.add_argument("--out", help="Report output directory (default: <fixtures>/../out).")
    par.set_defaults(func=cmd_parity)

    schema = sub.add_parser("schema", help="List every registered model input.")
    schema.add_argument("--csv", help="Write the schema to CSV.")
    schema.set_defaults(func=cmd_schema)

    return p


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        return args.func(args)
    except (
        CarbonFinError,
        ScenarioConfigError,
        FileNotFoundError,
        ValueError,
        yaml.YAMLError,
        RuntimeError,
    ) as exc:
        _print_error(exc)
        return EXIT_ERROR


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
