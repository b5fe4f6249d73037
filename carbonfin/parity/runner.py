"""
Run the engine on parity fixtures and compare against reference exports.

Fixture layout::

    <fixtures>/<scenario>/engine_inputs.json
    <fixtures>/<scenario>/excel_income_statement.csv
    <fixtures>/<scenario>/excel_balance_sheet.csv
    ...
    <fixtures>/<scenario>/excel_metrics.csv      (key,value)

Time-series CSVs carry a year column; every other column is compared with
the engine field of the same name unless a mapping overrides it.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import pandas as pd
import yaml

from carbonfin.errors import CarbonFinError, InvalidConfig
from carbonfin.finance.engine import calculate
from carbonfin.finance.inputs import EngineInputs
from carbonfin.parity.comparator import Tolerance, compare_values, get_value_from_path
from carbonfin.parity.invariants import validate_invariants
from carbonfin.parity.reporter import ParityReport, StatementComparison

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Reference table name -> engine statement key.
TABLE_KEYS: Dict[str, str] = {
    "income_statement": "incomeStatements",
    "balance_sheet": "balanceSheets",
    "cash_flow": "cashFlowStatements",
    "debt_schedule": "debtSchedule",
    "carbon_stream": "carbonStream",
    "free_cash_flow": "freeCashFlow",
}

METRICS_TABLE = "metrics"

DEFAULT_REQUIRED_TABLES = tuple(TABLE_KEYS) + (METRICS_TABLE,)

CONFIG_FILENAMES = ("parity.config.yaml", "parity.config.yml", "parity.config.json")


@dataclass
class ParityConfig:
    """
    Tolerances, the tables a run must cover and optional column mappings.

    ``mapping`` entries look like::

        income_statement:
          year_col: Year
          columns: {Revenue: "incomeStatements[*].total_revenue"}
        metrics:
          scalar: {Equity IRR: "metrics.company_irr"}
    """

    tolerance: Tolerance = field(default_factory=Tolerance)
    required_tables: List[str] = field(default_factory=lambda: list(DEFAULT_REQUIRED_TABLES))
    mapping: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ParityConfig":
        data = dict(data or {})
        tables = list(data.get("required_tables") or DEFAULT_REQUIRED_TABLES)
        unknown = [t for t in tables if t not in DEFAULT_REQUIRED_TABLES]
        if unknown:
            raise InvalidConfig(
                f"Unknown parity table(s): {', '.join(unknown)}", field="required_tables"
            )
        mapping = data.get("mapping") or {}
        if not isinstance(mapping, dict):
            raise InvalidConfig("parity mapping must be a mapping", field="mapping")
        return cls(
            tolerance=Tolerance.from_mapping(data.get("tolerance")),
            required_tables=tables,
            mapping=mapping,
        )


def _read_mapping_file(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfig(f"Expected a mapping at top level of {path}")
    return data


def load_parity_config(
    path: Optional[PathLike] = None, search_dir: Optional[PathLike] = None
) -> ParityConfig:
    """Load an explicit config file, else the first config found in search_dir, else defaults."""
    if path is not None:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Parity config not found: {p}")
        return ParityConfig.from_mapping(_read_mapping_file(p))

    if search_dir is not None:
        for name in CONFIG_FILENAMES:
            candidate = Path(search_dir) / name
            if candidate.exists():
                logger.debug("Using parity config %s", candidate)
                return ParityConfig.from_mapping(_read_mapping_file(candidate))
    return ParityConfig()


# ---------------------------------------------------------------------------
# CSV loading
# ---------------------------------------------------------------------------


def _plain_value(value: Any) -> Any:
    """numpy scalars to Python; empty cells (NaN) to None."""
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return text
    return value


def load_table_csv(path: Path) -> List[Dict[str, Any]]:
    """One dict per row. Sentinel text such as ``n/a`` is kept as a string."""
    df = pd.read_csv(path, keep_default_na=False)
    return [
        {str(k): _plain_value(v) for k, v in row.items()} for row in df.to_dict(orient="records")
    ]


def load_scalar_csv(path: Path) -> Dict[str, Any]:
    """First column is the key, second the value."""
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    if df.shape[1] < 2:
        raise InvalidConfig(f"{path.name} needs a key column and a value column")
    key_col, value_col = df.columns[0], df.columns[1]
    return {
        str(row[key_col]).strip(): _plain_value(row[value_col])
        for _, row in df.iterrows()
        if str(row[key_col]).strip()
    }


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


def compare_series_table(
    table: str,
    rows: List[Dict[str, Any]],
    engine_data: Mapping[str, Any],
    config: ParityConfig,
) -> StatementComparison:
    """Compare reference rows year by year against the engine statement."""
    result = StatementComparison()
    spec = config.mapping.get(table, {})
    year_col = spec.get("year_col", "year")
    statement_key = TABLE_KEYS[table]

    if rows and year_col not in rows[0]:
        raise InvalidConfig(f"{table}: year column '{year_col}' not found", field=year_col)

    columns: Dict[str, str] = spec.get("columns") or {
        col: f"{statement_key}[*].{col}" for col in (rows[0] if rows else {}) if col != year_col
    }
    engine_years = get_value_from_path(engine_data, f"{statement_key}[*].year") or []
    position = {int(y): i for i, y in enumerate(engine_years)}

    for ref_col, engine_path in columns.items():
        values = get_value_from_path(engine_data, engine_path)
        if not isinstance(values, list) or all(v is None for v in values):
            result.missing_fields.append(ref_col)
            continue
        for row in rows:
            ref = row.get(ref_col)
            if ref is None:
                continue
            year_value = row.get(year_col)
            if not isinstance(year_value, (int, float)):
                raise InvalidConfig(
                    f"{table}: year cell {year_value!r} is not a number", field=year_col
                )
            year = int(year_value)
            idx = position.get(year)
            if idx is None or values[idx] is None:
                result.missing_fields.append(f"{ref_col} (Year {year})")
                continue
            result.comparisons.append(
                compare_values(ref, values[idx], ref_col, config.tolerance, year)
            )
    return result


def compare_metrics_table(
    values: Dict[str, Any],
    engine_data: Mapping[str, Any],
    config: ParityConfig,
) -> StatementComparison:
    result = StatementComparison()
    spec = config.mapping.get(METRICS_TABLE, {})
    scalar: Dict[str, str] = spec.get("scalar") or {key: f"metrics.{key}" for key in values}
    for ref_key, engine_path in scalar.items():
        ref = values.get(ref_key)
        if ref is None:
            continue
        engine_value = get_value_from_path(engine_data, engine_path)
        if engine_value is None:
            result.missing_fields.append(ref_key)
            continue
        result.comparisons.append(compare_values(ref, engine_value, ref_key, config.tolerance))
    return result


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def run_parity(
    fixtures_dir: PathLike,
    scenario: str,
    config: Optional[ParityConfig] = None,
) -> ParityReport:
    """Run one fixture scenario. Engine errors propagate."""
    config = config or load_parity_config(search_dir=fixtures_dir)
    scenario_dir = Path(fixtures_dir) / scenario
    inputs_path = scenario_dir / "engine_inputs.json"
    if not inputs_path.exists():
        raise FileNotFoundError(f"Engine inputs not found: {inputs_path}")

    logger.info("Running parity check for scenario: %s", scenario)
    with inputs_path.open("r", encoding="utf-8") as f:
        inputs = EngineInputs.from_dict(json.load(f))
    engine_data = calculate(inputs).to_dict()

    report = ParityReport(scenario=scenario, timestamp=_timestamp())
    for table in config.required_tables:
        csv_path = scenario_dir / f"excel_{table}.csv"
        if not csv_path.exists():
            logger.warning("Reference file not found: %s", csv_path)
            report.statements[table] = StatementComparison(missing_fields=[f"excel_{table}.csv"])
            continue
        if table == METRICS_TABLE:
            comparison = compare_metrics_table(load_scalar_csv(csv_path), engine_data, config)
        else:
            comparison = compare_series_table(
                table, load_table_csv(csv_path), engine_data, config
            )
        report.statements[table] = comparison
        logger.info(
            "%s: %d/%d comparisons passed",
            table,
            comparison.passed,
            len(comparison.comparisons),
        )

    report.invariants = validate_invariants(engine_data)
    logger.info(
        "Invariants: %d/%d passed",
        sum(1 for i in report.invariants if i.passed),
        len(report.invariants),
    )
    return report


def discover_fixture_scenarios(fixtures_dir: PathLike) -> List[str]:
    root = Path(fixtures_dir)
    if not root.exists():
        raise FileNotFoundError(f"Fixtures directory not found: {root}")
    return sorted(
        p.name for p in root.iterdir() if p.is_dir() and (p / "engine_inputs.json").exists()
    )


def run_all(fixtures_dir: PathLike, config: Optional[ParityConfig] = None) -> List[ParityReport]:
    """Run every scenario; a scenario whose engine run fails becomes a FAIL report."""
    config = config or load_parity_config(search_dir=fixtures_dir)
    reports: List[ParityReport] = []
    for scenario in discover_fixture_scenarios(fixtures_dir):
        try:
            reports.append(run_parity(fixtures_dir, scenario, config))
        except (CarbonFinError, OSError, ValueError) as exc:
            logger.error("Parity scenario %s errored: %s", scenario, exc)
            reports.append(ParityReport(scenario=scenario, timestamp=_timestamp(), error=str(exc)))
    return reports


__all__ = [
    "ParityConfig",
    "TABLE_KEYS",
    "DEFAULT_REQUIRED_TABLES",
    "load_parity_config",
    "load_table_csv",
    "load_scalar_csv",
    "compare_series_table",
    "compare_metrics_table",
    "run_parity",
    "discover_fixture_scenarios",
    "run_all",
]
