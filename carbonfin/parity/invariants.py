"""Accounting identities checked on every parity run.

Works on the plain ``StatementBundle.to_dict()`` structure so reference
data loaded from disk can be checked the same way.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional

from carbonfin.finance.utils import Sentinel, is_number

INVARIANT_TOLERANCE = 0.01


@dataclass
class InvariantResult:
    name: str
    description: str
    passed: bool
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _num(row: Mapping[str, Any], key: str) -> float:
    value = row.get(key)
    return float(value) if is_number(value) else 0.0


def _check(
    results: List[InvariantResult],
    name: str,
    description: str,
    expected: float,
    actual: float,
) -> None:
    delta = abs(expected - actual)
    passed = delta < INVARIANT_TOLERANCE
    details = None if passed else f"Expected: {expected}, Actual: {actual}, Delta: {delta}"
    results.append(InvariantResult(name, description, passed, details))


def validate_invariants(data: Mapping[str, Any]) -> List[InvariantResult]:
    results: List[InvariantResult] = []
    income = data.get("incomeStatements") or []
    balance = data.get("balanceSheets") or []
    cash_flows = data.get("cashFlowStatements") or []
    schedule = data.get("debtSchedule") or []

    for row in income:
        year = row.get("year")
        _check(
            results,
            f"Revenue Identity {year}",
            "Total Revenue = Spot Revenue + Pre-purchase Revenue",
            _num(row, "spot_revenue") + _num(row, "pre_purchase_revenue"),
            _num(row, "total_revenue"),
        )
        _check(
            results,
            f"OPEX Total {year}",
            "OPEX Total = Feasibility + PDD + MRV + Staff",
            _num(row, "feasibility_costs")
            + _num(row, "pdd_costs")
            + _num(row, "mrv_costs")
            + _num(row, "staff_costs"),
            _num(row, "total_opex"),
        )

    for row in balance:
        year = row.get("year")
        _check(
            results,
            f"Balance Sheet Balance {year}",
            "Total Assets = Total Liabilities + Equity",
            _num(row, "total_liabilities_equity"),
            _num(row, "total_assets"),
        )

    for row in cash_flows:
        year = row.get("year")
        _check(
            results,
            f"Cash Flow Identity {year}",
            "Net Change = Operating + Investing + Financing CF",
            _num(row, "operating_cash_flow")
            + _num(row, "investing_cash_flow")
            + _num(row, "financing_cash_flow"),
            _num(row, "net_change_cash"),
        )
        _check(
            results,
            f"Cash End Identity {year}",
            "Cash End = Cash Start + Net Change",
            _num(row, "cash_start") + _num(row, "net_change_cash"),
            _num(row, "cash_end"),
        )

    for is_row, debt in zip(income, schedule):
        year = is_row.get("year")
        _check(
            results,
            f"Interest Sign Convention {year}",
            "IS Interest = -Schedule Interest",
            -_num(debt, "interest_expense"),
            _num(is_row, "interest_expense"),
        )

        service = abs(_num(debt, "principal_payment")) + abs(_num(debt, "interest_expense"))
        dscr = debt.get("dscr")
        description = "DSCR = EBITDA / (|Principal| + |Interest|)"
        if service > 0:
            if is_number(dscr):
                _check(
                    results,
                    f"DSCR Calculation {year}",
                    description,
                    _num(is_row, "ebitda") / service,
                    float(dscr),
                )
            else:
                results.append(
                    InvariantResult(
                        f"DSCR Calculation {year}",
                        description,
                        False,
                        f"Debt service {service} but DSCR is {dscr!r}",
                    )
                )
        else:
            passed = str(dscr) == Sentinel.NOT_APPLICABLE.value
            results.append(
                InvariantResult(
                    f"DSCR Calculation {year}",
                    "DSCR is n/a without debt service",
                    passed,
                    None if passed else f"No debt service but DSCR is {dscr!r}",
                )
            )

    return results


__all__ = ["InvariantResult", "validate_invariants", "INVARIANT_TOLERANCE"]
