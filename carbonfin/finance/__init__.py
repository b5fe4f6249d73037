"""Core financial calculation: inputs, carbon stream, debt, statements, metrics."""

from carbonfin.finance.engine import build_statements, calculate
from carbonfin.finance.inputs import EngineInputs, validate_engine_inputs
from carbonfin.finance.statements import StatementBundle
from carbonfin.finance.utils import Sentinel

__all__ = [
    "EngineInputs",
    "Sentinel",
    "StatementBundle",
    "build_statements",
    "calculate",
    "validate_engine_inputs",
]
