"""Statement row types and the engine's output bundle.

Sign conventions (what a reader of the tables sees):

- income statement: revenue, COGS and income tax positive; OPEX lines,
  depreciation and interest negative (as entered / as charged);
- cash flow statement: every line is its cash effect (outflows negative),
  so ``change_ar`` is ``-(AR_t - AR_t-1)``;
- debt schedule: balances, draws and interest positive, principal
  repayments negative;
- balance sheet: all balances positive in the normal case, accumulated
  depreciation shown as a positive contra amount.

Rows are frozen: consumers read the bundle, they never edit it.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Tuple, Type

import pandas as pd

from carbonfin.finance.utils import Number, Sentinel


@dataclass(frozen=True)
class IncomeStatementYear:
    year: int
    credits_generated: float
    credits_issued: float
    spot_revenue: float
    pre_purchase_revenue: float
    total_revenue: float
    cogs: float
    gross_profit: float
    feasibility_costs: float
    pdd_costs: float
    mrv_costs: float
    staff_costs: float
    total_opex: float
    ebitda: float
    depreciation: float
    interest_expense: float
    earnings_before_tax: float
    income_tax: float
    net_income: float


@dataclass(frozen=True)
class BalanceSheetYear:
    year: int
    cash: float
    accounts_receivable: float
    ppe_gross: float
    accumulated_depreciation: float
    ppe_net: float
    total_assets: float
    accounts_payable: float
    unearned_revenue: float
    debt_balance: float
    total_liabilities: float
    contributed_capital: float
    retained_earnings: float
    total_equity: float
    total_liabilities_equity: float
    balance_check: float


@dataclass(frozen=True)
class CashFlowYear:
    year: int
    net_income: float
    depreciation_addback: float
    change_ar: float
    change_ap: float
    change_unearned: float
    operating_cash_flow: float
    capex: float
    investing_cash_flow: float
    debt_draw: float
    debt_repayment: float
    equity_injection: float
    financing_cash_flow: float
    unearned_inflow: float
    unearned_release: float
    cash_start: float
    net_change_cash: float
    cash_end: float


@dataclass(frozen=True)
class DebtScheduleYear:
    year: int
    beginning_balance: float
    draw: float
    principal_payment: float
    interest_expense: float
    ending_balance: float
    debt_service: float
    dscr: Number


@dataclass(frozen=True)
class CarbonStreamYear:
    year: int
    credits_generated: float
    cumulative_generated: float
    credits_issued: float
    cumulative_issued: float
    purchased_credits: float
    spot_credits: float
    price_per_credit: float
    purchase_amount: float
    implied_purchase_price: float
    spot_revenue: float
    pre_purchase_revenue: float
    investor_cash_flow: float


@dataclass(frozen=True)
class FCFEYear:
    year: int
    net_income: float
    depreciation_addback: float
    change_working_capital: float
    capex: float
    net_borrowing: float
    fcf_to_equity: float


# Output contract key -> (bundle attribute, row type)
STATEMENT_KEYS: Dict[str, Tuple[str, Type[Any]]] = {
    "incomeStatements": ("income_statements", IncomeStatementYear),
    "balanceSheets": ("balance_sheets", BalanceSheetYear),
    "cashFlowStatements": ("cash_flow_statements", CashFlowYear),
    "debtSchedule": ("debt_schedule", DebtScheduleYear),
    "carbonStream": ("carbon_stream", CarbonStreamYear),
    "freeCashFlow": ("free_cash_flow", FCFEYear),
}


@dataclass(frozen=True)
class StatementBundle:
    """Everything one engine run produces."""

    income_statements: Tuple[IncomeStatementYear, ...]
    balance_sheets: Tuple[BalanceSheetYear, ...]
    cash_flow_statements: Tuple[CashFlowYear, ...]
    debt_schedule: Tuple[DebtScheduleYear, ...]
    carbon_stream: Tuple[CarbonStreamYear, ...]
    free_cash_flow: Tuple[FCFEYear, ...]
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def years(self) -> Tuple[int, ...]:
        return tuple(row.year for row in self.income_statements)

    def to_dict(self) -> Dict[str, Any]:
        """camelCase statement keys, snake_case row fields."""
        out: Dict[str, Any] = {}
        for key, (attr, _row_type) in STATEMENT_KEYS.items():
            out[key] = [_plain(asdict(row)) for row in getattr(self, attr)]
        out["metrics"] = _plain(self.metrics)
        return out

    def to_json(self, indent: int = 2) -> str:
        """Deterministic JSON: sorted keys, NaN/Infinity rejected."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True, allow_nan=False)

    def to_frames(self) -> Dict[str, pd.DataFrame]:
        """One DataFrame per statement, indexed by position, with a ``year`` column."""
        frames: Dict[str, pd.DataFrame] = {}
        for key, (attr, row_type) in STATEMENT_KEYS.items():
            rows = [_plain(asdict(row)) for row in getattr(self, attr)]
            columns = [f.name for f in fields(row_type)]
            frames[key] = pd.DataFrame(rows, columns=columns)
        return frames


def _plain(value: Any) -> Any:
    """Tuples to lists and sentinels to their plain string, recursively."""
    if isinstance(value, Sentinel):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


__all__ = [
    "IncomeStatementYear",
    "BalanceSheetYear",
    "CashFlowYear",
    "DebtScheduleYear",
    "CarbonStreamYear",
    "FCFEYear",
    "StatementBundle",
    "STATEMENT_KEYS",
]
