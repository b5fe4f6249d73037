"""Batch scenario analytics over the carbon-project engine.

This module:
  * scans a scenarios directory for YAML / JSON configs,
  * loads each config via carbonfin.analytics.scenario_loader,
  * runs the engine (statements + metrics),
  * aggregates headline metrics and per-year series into DataFrames,
  * optionally exports Excel and charts.

Business logic lives in carbonfin.finance; this is orchestration only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
import yaml

from carbonfin.analytics.adjustments import SCENARIO_TEMPLATES, apply_template
from carbonfin.analytics.export_helpers import ChartExporter, ExcelExporter, flatten_metrics
from carbonfin.analytics.scenario_loader import (
    SCENARIO_SUFFIXES,
    engine_inputs_from_config,
    load_scenario_config,
)
from carbonfin.defaults import DefaultAssumptions
from carbonfin.errors import CarbonFinError
from carbonfin.finance.engine import calculate
from carbonfin.finance.inputs import EngineInputs
from carbonfin.finance.statements import StatementBundle

logger = logging.getLogger(__name__)

# Per-year columns carried into the timeseries layer.
TIMESERIES_FIELDS = (
    ("incomeStatements", "total_revenue"),
    ("incomeStatements", "ebitda"),
    ("incomeStatements", "net_income"),
    ("cashFlowStatements", "operating_cash_flow"),
    ("cashFlowStatements", "cash_end"),
    ("balanceSheets", "debt_balance"),
    ("debtSchedule", "debt_service"),
    ("debtSchedule", "dscr"),
    ("freeCashFlow", "fcf_to_equity"),
)


@dataclass
class ScenarioResult:
    """Container for per-scenario results."""

    name: str
    config_path: Optional[Path]
    inputs: EngineInputs
    bundle: StatementBundle


@dataclass
class ScenarioFailure:
    name: str
    config_path: Path
    kind: str
    field: Optional[str]
    message: str


def _summary_record(result: ScenarioResult) -> Dict[str, Any]:
    df = flatten_metrics(result.bundle.metrics)
    rec: Dict[str, Any] = {"scenario_name": result.name}
    rec.update(zip(df["metric"], df["value"]))
    return rec


def _timeseries_records(result: ScenarioResult) -> List[Dict[str, Any]]:
    frames = result.bundle.to_frames()
    records: List[Dict[str, Any]] = []
    for t, year in enumerate(result.bundle.years):
        row: Dict[str, Any] = {"scenario_name": result.name, "year": year}
        for table, column in TIMESERIES_FIELDS:
            row[column] = frames[table][column].iloc[t]
        records.append(row)
    return records


def build_dataframes(results: Sequence[ScenarioResult]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Summary (one row per scenario) and timeseries (one row per scenario-year)."""
    summary_df = pd.DataFrame([_summary_record(r) for r in results])
    timeseries_records: List[Dict[str, Any]] = []
    for r in results:
        timeseries_records.extend(_timeseries_records(r))
    timeseries_df = pd.DataFrame(timeseries_records)
    if "dscr" in timeseries_df.columns:
        # n/a years become gaps for charting
        timeseries_df["dscr"] = pd.to_numeric(timeseries_df["dscr"], errors="coerce")
    return summary_df, timeseries_df


class ScenarioAnalytics:
    """Orchestrator for batch scenario runs.

    Responsibilities:
      * discover scenario definitions under a directory,
      * load and normalise each one to EngineInputs,
      * run the engine,
      * collate outputs into summary/timeseries DataFrames,
      * (optionally) hand off to ExcelExporter/ChartExporter.

    A failing scenario is recorded in ``failures`` and the batch carries on,
    unless ``strict`` is set.
    """

    def __init__(
        self,
        scenarios_dir: Path,
        output_path: Optional[Path] = None,
        strict: bool = False,
        defaults: Optional[DefaultAssumptions] = None,
    ) -> None:
        self.scenarios_dir = Path(scenarios_dir)
        self.output_path = Path(output_path) if output_path is not None else None
        self.strict = bool(strict)
        self.defaults = defaults
        self.results: List[ScenarioResult] = []
        self.failures: List[ScenarioFailure] = []

    # ------------------------------------------------------------------
    # Scenario discovery
    # ------------------------------------------------------------------
    def discover_scenarios(self) -> List[Path]:
        """Return a sorted list of scenario config paths under scenarios_dir."""
        if not self.scenarios_dir.exists():
            raise FileNotFoundError(f"Scenarios directory not found: {self.scenarios_dir}")

        return sorted(
            p for p in self.scenarios_dir.iterdir()
            if p.is_file() and p.suffix.lower() in SCENARIO_SUFFIXES
        )

    def _run_single(self, config_path: Path) -> ScenarioResult:
        name = config_path.stem
        logger.info("Processing scenario: %s", name)
        config = load_scenario_config(config_path)
        inputs = engine_inputs_from_config(config, self.defaults)
        bundle = calculate(inputs)
        return ScenarioResult(name=name, config_path=config_path, inputs=inputs, bundle=bundle)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(
        self,
        export_excel: bool = False,
        export_charts: bool = False,
        charts_dir: Optional[Path] = None,
    ) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """Run every scenario in scenarios_dir.

        Returns:
          (summary_df, timeseries_df)
        """
        paths = self.discover_scenarios()
        if not paths:
            raise RuntimeError(f"No scenario configs found under {self.scenarios_dir}")

        self.results = []
        self.failures = []
        for path in paths:
            try:
                self.results.append(self._run_single(path))
            except (ValueError, OSError, yaml.YAMLError) as exc:
                logger.error("ERROR processing %s: %s", path.name, exc)
                if isinstance(exc, CarbonFinError):
                    kind, field = exc.kind, exc.field
                else:
                    kind, field = type(exc).__name__, None
                self.failures.append(ScenarioFailure(path.stem, path, kind, field, str(exc)))
                if self.strict:
                    raise

        if not self.results:
            raise RuntimeError("All scenarios failed; no results to summarise")

        summary_df, timeseries_df = build_dataframes(self.results)

        logger.info("Batch analysis complete")
        logger.info("  Successful scenarios: %d", len(self.results))
        logger.info("  Failed scenarios:     %d", len(self.failures))
        for failure in self.failures:
            logger.info("    - %s: %s", failure.name, failure.message)

        if export_excel and self.output_path is not None:
            ExcelExporter(self.output_path).export_summary_and_timeseries(
                summary_df, timeseries_df, failures_df=self.failures_frame()
            )

        if export_charts:
            out_dir = charts_dir or (
                self.output_path.parent if self.output_path is not None else None
            )
            if out_dir is None:
                logger.warning("Charts requested but no output directory given; skipped")
            else:
                charts = ChartExporter(out_dir)
                charts.export_dscr_chart(timeseries_df)
                charts.export_cash_chart(timeseries_df)

        return summary_df, timeseries_df

    def failures_frame(self) -> pd.DataFrame:
        columns = ["scenario_name", "config_path", "kind", "field", "message"]
        return pd.DataFrame(
            [
                {
                    "scenario_name": f.name,
                    "config_path": str(f.config_path),
                    "kind": f.kind,
                    "field": f.field,
                    "message": f.message,
                }
                for f in self.failures
            ],
            columns=columns,
        )


def compare_templates(
    inputs: EngineInputs,
    templates: Optional[Iterable[str]] = None,
    include_base: bool = True,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Run the base case and each named template; same frames as a batch run."""
    names = list(templates) if templates is not None else list(SCENARIO_TEMPLATES)
    results: List[ScenarioResult] = []
    if include_base:
        results.append(ScenarioResult("base", None, inputs, calculate(inputs)))
    for name in names:
        adjusted = apply_template(inputs, name)
        results.append(ScenarioResult(name, None, adjusted, calculate(adjusted)))
    return build_dataframes(results)


__all__ = [
    "ScenarioResult",
    "ScenarioFailure",
    "ScenarioAnalytics",
    "build_dataframes",
    "compare_templates",
    "TIMESERIES_FIELDS",
]
