"""Parity harness: engine output vs. reference spreadsheet exports."""

from carbonfin.parity.comparator import (
    ComparisonResult,
    Tolerance,
    compare_values,
    get_value_from_path,
)
from carbonfin.parity.invariants import InvariantResult, validate_invariants
from carbonfin.parity.reporter import ParityReport, save_reports
from carbonfin.parity.runner import ParityConfig, load_parity_config, run_all, run_parity

__all__ = [
    "ComparisonResult",
    "InvariantResult",
    "ParityConfig",
    "ParityReport",
    "Tolerance",
    "compare_values",
    "get_value_from_path",
    "load_parity_config",
    "run_all",
    "run_parity",
    "save_reports",
    "validate_invariants",
]
