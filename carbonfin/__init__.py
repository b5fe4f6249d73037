"""carbonfin: financial statements and returns for carbon-credit projects."""

from carbonfin.defaults import DEFAULT_ASSUMPTIONS, DefaultAssumptions
from carbonfin.errors import (
    BalanceIdentityError,
    CarbonFinError,
    InvalidConfig,
    IssuanceOverrun,
    ShapeMismatch,
    UnknownInputKey,
)
from carbonfin.finance import EngineInputs, Sentinel, StatementBundle, calculate

__version__ = "1.0.0"

__all__ = [
    "BalanceIdentityError",
    "CarbonFinError",
    "DEFAULT_ASSUMPTIONS",
    "DefaultAssumptions",
    "EngineInputs",
    "InvalidConfig",
    "IssuanceOverrun",
    "Sentinel",
    "ShapeMismatch",
    "StatementBundle",
    "UnknownInputKey",
    "calculate",
]
