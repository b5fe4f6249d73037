"""Metrics calculator for a carbon-project statement bundle.

Computes the headline figures every consumer needs plus grouped detail:

- profitability: margins per year and in total
- unit_economics: per-credit price / cost figures (LCOC etc.)
- working_capital: AR, AP, NWC, DSO, DPO
- liquidity: current / cash ratios, leverage, interest cover
- debt: DSCR series, minimum DSCR and when debt is repaid
- cash_health: runway, minimum cash, peak funding
- returns: equity (FCFE), project (OCF + ICF) and investor streams
- carbon: issuance and pre-purchase KPIs
- break_even: operating break-even price and volume
- compliance: per-year accounting checks

Conventions
-----------
- Ratios are decimal fractions (0.25 = 25%).
- Zero denominators give ``Sentinel.NOT_APPLICABLE``; undefined IRR/MIRR
  give ``Sentinel.NO_SOLUTION``; payback never reached gives
  ``Sentinel.BEYOND_HORIZON``. No NaN or Infinity is ever emitted.
- Return series are prefixed with ``-initial_equity_t0`` at t=0
  (undiscounted); year 1 of the horizon is t=1.
- Minimum DSCR ignores years without debt service. If no year has debt
  service the minimum is ``Sentinel.NOT_APPLICABLE``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from carbonfin.finance.inputs import EngineInputs
from carbonfin.finance.irr import (
    cumulative_npv,
    discounted_payback,
    irr,
    mirr,
    npv,
    payback,
    payback_period,
)
from carbonfin.finance.statements import StatementBundle
from carbonfin.finance.utils import Number, Sentinel, is_number, safe_div

logger = logging.getLogger(__name__)

# Absolute tolerance for the compliance checks (currency units).
COMPLIANCE_TOLERANCE = 0.01

DAYS_PER_YEAR = 365.0


def _min_with_year(years: Sequence[int], values: Sequence[Number]) -> Dict[str, Any]:
    """Minimum over numeric values only, with the year it occurs in."""
    best: Any = Sentinel.NOT_APPLICABLE
    best_year: Any = Sentinel.NOT_APPLICABLE
    for year, value in zip(years, values):
        if not is_number(value):
            continue
        if not is_number(best) or value < best:
            best, best_year = value, year
    return {"value": best, "year": best_year}


def _returns_block(series: Sequence[float], rate: float) -> Dict[str, Any]:
    return {
        "irr": irr(series),
        "npv": npv(rate, series),
        "mirr": mirr(series, rate, rate),
        "payback": payback(series),
        "discounted_payback": discounted_payback(series, rate),
        "cumulative_npv": [
            {"period": t, "value": value} for t, value in cumulative_npv(series, rate)
        ],
    }


# ---------------------------------------------------------------------------
# Category calculators
# ---------------------------------------------------------------------------


def profitability_metrics(bundle: StatementBundle) -> Dict[str, Any]:
    rows = bundle.income_statements
    yearly = [
        {
            "year": r.year,
            "gross_margin": safe_div(r.gross_profit, r.total_revenue),
            "ebitda_margin": safe_div(r.ebitda, r.total_revenue),
            "net_margin": safe_div(r.net_income, r.total_revenue),
        }
        for r in rows
    ]
    revenue = sum(r.total_revenue for r in rows)
    return {
        "yearly": yearly,
        "gross_margin": safe_div(sum(r.gross_profit for r in rows), revenue),
        "ebitda_margin": safe_div(sum(r.ebitda for r in rows), revenue),
        "net_margin": safe_div(sum(r.net_income for r in rows), revenue),
    }


def unit_economics(bundle: StatementBundle) -> Dict[str, Any]:
    """Per-credit figures; every ratio divides by issued credits."""

    def _per_credit(revenue: float, cogs: float, opex: float, dep: float, issued: float):
        return {
            "wa_price": safe_div(revenue, issued),
            "cogs_per_credit": safe_div(cogs, issued),
            "gross_profit_per_credit": safe_div(revenue - cogs, issued),
            "opex_per_credit": safe_div(opex, issued),
            "lcoc": safe_div(cogs + opex, issued),
            "all_in_cost_per_credit": safe_div(cogs + opex + dep, issued),
        }

    yearly: List[Dict[str, Any]] = []
    for r in bundle.income_statements:
        entry = {"year": r.year, "credits_issued": r.credits_issued}
        entry.update(
            _per_credit(
                r.total_revenue, r.cogs, abs(r.total_opex), abs(r.depreciation), r.credits_issued
            )
        )
        yearly.append(entry)

    rows = bundle.income_statements
    totals = _per_credit(
        sum(r.total_revenue for r in rows),
        sum(r.cogs for r in rows),
        sum(abs(r.total_opex) for r in rows),
        sum(abs(r.depreciation) for r in rows),
        sum(r.credits_issued for r in rows),
    )
    return {"yearly": yearly, **totals}


def working_capital_metrics(bundle: StatementBundle) -> Dict[str, Any]:
    yearly = []
    for r, b in zip(bundle.income_statements, bundle.balance_sheets):
        nwc = b.accounts_receivable - b.accounts_payable - b.unearned_revenue
        yearly.append(
            {
                "year": r.year,
                "accounts_receivable": b.accounts_receivable,
                "accounts_payable": b.accounts_payable,
                "unearned_revenue": b.unearned_revenue,
                "nwc": nwc,
                "dso": safe_div(DAYS_PER_YEAR * b.accounts_receivable, r.total_revenue),
                "dpo": safe_div(DAYS_PER_YEAR * b.accounts_payable, abs(r.total_opex)),
                "nwc_pct_revenue": safe_div(nwc, r.total_revenue),
            }
        )
    return {"yearly": yearly}


def liquidity_metrics(bundle: StatementBundle) -> Dict[str, Any]:
    yearly = []
    for r, b in zip(bundle.income_statements, bundle.balance_sheets):
        current_assets = b.cash + b.accounts_receivable
        current_liabilities = b.accounts_payable + b.unearned_revenue
        net_debt = max(b.debt_balance - b.cash, 0.0)
        yearly.append(
            {
                "year": r.year,
                "current_ratio": safe_div(current_assets, current_liabilities),
                "cash_ratio": safe_div(b.cash, current_liabilities),
                "debt_to_equity": (
                    safe_div(b.debt_balance, b.total_equity)
                    if b.total_equity > 0
                    else Sentinel.NOT_APPLICABLE
                ),
                "net_debt": net_debt,
                "net_debt_to_ebitda": (
                    safe_div(net_debt, r.ebitda) if r.ebitda > 0 else Sentinel.NOT_APPLICABLE
                ),
                "interest_coverage": safe_div(r.ebitda, abs(r.interest_expense)),
            }
        )
    return {"yearly": yearly}


def debt_metrics(bundle: StatementBundle) -> Dict[str, Any]:
    schedule = bundle.debt_schedule
    years = [d.year for d in schedule]
    dscr_series = [d.dscr for d in schedule]
    minimum = _min_with_year(years, dscr_series)

    # First year-end with zero balance after the last year carrying debt.
    repaid_by: Any = Sentinel.NOT_APPLICABLE
    if any(d.draw > 0 for d in schedule):
        if schedule[-1].ending_balance > 0:
            repaid_by = Sentinel.BEYOND_HORIZON
        else:
            last_with_debt = None
            for i, d in enumerate(schedule):
                if d.ending_balance > 0:
                    last_with_debt = i
            if last_with_debt is None:
                repaid_by = next(d.year for d in schedule if d.draw > 0)
            else:
                repaid_by = years[last_with_debt + 1]

    return {
        "dscr_series": [{"year": y, "dscr": v} for y, v in zip(years, dscr_series)],
        "min_dscr": minimum["value"],
        "min_dscr_year": minimum["year"],
        "total_debt_drawn": sum(d.draw for d in schedule),
        "total_interest": sum(d.interest_expense for d in schedule),
        "closing_debt": schedule[-1].ending_balance,
        "debt_repaid_by": repaid_by,
    }


def cash_health_metrics(bundle: StatementBundle) -> Dict[str, Any]:
    yearly = []
    cumulative = 0.0
    trough = 0.0
    for cf in bundle.cash_flow_statements:
        pre_financing = cf.operating_cash_flow + cf.investing_cash_flow
        core_burn = -min(pre_financing, 0.0)
        cumulative += pre_financing
        trough = min(trough, cumulative)
        yearly.append(
            {
                "year": cf.year,
                "operating_cash_flow": cf.operating_cash_flow,
                "investing_cash_flow": cf.investing_cash_flow,
                "financing_cash_flow": cf.financing_cash_flow,
                "cash_end": cf.cash_end,
                "runway_months": safe_div(12.0 * cf.cash_end, core_burn),
            }
        )

    years = [cf.year for cf in bundle.cash_flow_statements]
    cash_ends = [cf.cash_end for cf in bundle.cash_flow_statements]
    lowest = _min_with_year(years, cash_ends)
    return {
        "yearly": yearly,
        "min_cash_end": lowest["value"],
        "min_cash_year": lowest["year"],
        "peak_funding": abs(trough),
    }


def carbon_metrics(bundle: StatementBundle) -> Dict[str, Any]:
    stream = bundle.carbon_stream
    generated = sum(c.credits_generated for c in stream)
    issued = sum(c.credits_issued for c in stream)
    purchased = sum(c.purchased_credits for c in stream)
    spot_credits = sum(c.spot_credits for c in stream)
    spot_revenue = sum(c.spot_revenue for c in stream)
    prep_revenue = sum(c.pre_purchase_revenue for c in stream)
    pre_purchase_cash = sum(c.purchase_amount for c in stream)
    return {
        "total_generated": generated,
        "total_issued": issued,
        "unissued_credits": generated - issued,
        "issuance_ratio": safe_div(issued, generated),
        "total_purchased": purchased,
        "pre_purchase_share_of_issued": safe_div(purchased, issued),
        "implied_purchase_price": stream[0].implied_purchase_price if stream else 0.0,
        "pre_purchase_cash": pre_purchase_cash,
        "pre_purchase_coverage": safe_div(prep_revenue, pre_purchase_cash),
        "wa_spot_price": safe_div(spot_revenue, spot_credits),
        "wa_realised_price": safe_div(spot_revenue + prep_revenue, issued),
    }


def break_even_metrics(bundle: StatementBundle, cogs_rate: float) -> Dict[str, Any]:
    """Operating break-even: revenue after COGS covers OPEX.

    price * issued * (1 - cogs_rate) = |OPEX|
    """
    rows = bundle.income_statements
    issued = sum(r.credits_issued for r in rows)
    revenue = sum(r.total_revenue for r in rows)
    opex = sum(abs(r.total_opex) for r in rows)
    contribution = 1.0 - cogs_rate

    wa_price = safe_div(revenue, issued)
    be_price = safe_div(opex, issued * contribution)

    if is_number(wa_price) and is_number(be_price):
        spread: Number = wa_price - be_price
        safety_margin = safe_div(spread, wa_price)
    else:
        spread = Sentinel.NOT_APPLICABLE
        safety_margin = Sentinel.NOT_APPLICABLE

    be_volume = (
        safe_div(opex, wa_price * contribution) if is_number(wa_price) else Sentinel.NOT_APPLICABLE
    )
    return {
        "break_even_price": be_price,
        "safety_spread": spread,
        "safety_margin": safety_margin,
        "break_even_volume": be_volume,
    }


def compliance_checks(bundle: StatementBundle) -> Dict[str, Any]:
    tol = COMPLIANCE_TOLERANCE
    yearly = []
    for b, cf, d in zip(bundle.balance_sheets, bundle.cash_flow_statements, bundle.debt_schedule):
        checks = {
            "balance_identity": abs(b.total_assets - b.total_liabilities_equity) < tol,
            "cash_tie_out": abs(cf.cash_end - b.cash) < tol,
            "equity_identity": abs(b.total_equity - (b.contributed_capital + b.retained_earnings))
            < tol,
            "liability_signs": b.accounts_payable >= -tol and b.debt_balance >= -tol,
            "debt_roll_forward": abs(
                d.beginning_balance + d.draw + d.principal_payment - d.ending_balance
            )
            < tol,
        }
        checks["all_pass"] = all(checks.values())
        yearly.append({"year": b.year, **checks})
    return {"yearly": yearly, "all_pass": all(y["all_pass"] for y in yearly)}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def calculate_metrics(bundle: StatementBundle, inputs: EngineInputs) -> Dict[str, Any]:
    """
    Calculate headline and grouped metrics for an assembled bundle.

    Parameters
    ----------
    bundle : StatementBundle
        Statements from the engine (metrics may be empty).
    inputs : EngineInputs
        The inputs the bundle was built from; supplies the discount rate,
        initial equity, equity injections and COGS rate.

    Returns
    -------
    Dict[str, Any]
        Headline keys (``npv``, ``company_irr``, ``payback_period``,
        ``dscr_minimum`` ...) plus one nested dict per category.
    """
    rate = inputs.discount_rate
    e0 = inputs.initial_equity_t0
    years = list(inputs.years)

    # -------------------------------------------------------------------------
    # Cash-flow series for returns
    #   T0: -initial_equity_t0
    #   T1..Tn: FCFE (equity), OCF + ICF (project), investor stream
    # -------------------------------------------------------------------------
    fcfe = [f.fcf_to_equity for f in bundle.free_cash_flow]
    equity_series = [-e0] + fcfe
    project_series = [-e0] + [
        cf.operating_cash_flow + cf.investing_cash_flow for cf in bundle.cash_flow_statements
    ]
    investor_series = [0.0] + [c.investor_cash_flow for c in bundle.carbon_stream]

    logger.debug(
        "Return series: equity=%d project=%d investor=%d period(s), rate=%.4f",
        len(equity_series),
        len(project_series),
        len(investor_series),
        rate,
    )

    equity = _returns_block(equity_series, rate)
    project = _returns_block(project_series, rate)
    investor = _returns_block(investor_series, rate)

    if equity["irr"] is Sentinel.NO_SOLUTION:
        logger.debug("Equity IRR undefined (no sign change in FCFE series)")

    # Payback: cumulative FCFE against cumulative equity invested.
    invested = list(inputs.equity_injection)
    invested[0] += e0
    payback_idx = payback_period(fcfe, invested)
    payback_year: Any = (
        years[payback_idx - 1] if isinstance(payback_idx, int) else Sentinel.BEYOND_HORIZON
    )

    profitability = profitability_metrics(bundle)
    units = unit_economics(bundle)
    debt = debt_metrics(bundle)
    cash_health = cash_health_metrics(bundle)

    rows = bundle.income_statements
    result: Dict[str, Any] = {
        "total_revenue": sum(r.total_revenue for r in rows),
        "total_cogs": sum(r.cogs for r in rows),
        "total_gross_profit": sum(r.gross_profit for r in rows),
        "total_opex": sum(r.total_opex for r in rows),
        "total_ebitda": sum(r.ebitda for r in rows),
        "total_net_income": sum(r.net_income for r in rows),
        "gross_margin": profitability["gross_margin"],
        "ebitda_margin": profitability["ebitda_margin"],
        "net_margin": profitability["net_margin"],
        "total_capex": sum(abs(c) for c in inputs.capex),
        "peak_funding_required": cash_health["peak_funding"],
        "npv": equity["npv"],
        "company_irr": equity["irr"],
        "equity_mirr": equity["mirr"],
        "payback_period": payback_idx,
        "payback_year": payback_year,
        "project_npv": project["npv"],
        "project_irr": project["irr"],
        "investor_npv": investor["npv"],
        "investor_irr": investor["irr"],
        "dscr_minimum": debt["min_dscr"],
        "dscr_minimum_year": debt["min_dscr_year"],
        "wa_price": units["wa_price"],
        "cogs_per_credit": units["cogs_per_credit"],
        "lcoc": units["lcoc"],
        "discount_rate_used": rate,
        "profitability": profitability,
        "unit_economics": units,
        "working_capital": working_capital_metrics(bundle),
        "liquidity": liquidity_metrics(bundle),
        "debt": debt,
        "cash_health": cash_health,
        "returns": {"equity": equity, "project": project, "investor": investor},
        "carbon": carbon_metrics(bundle),
        "break_even": break_even_metrics(bundle, inputs.cogs_rate),
        "compliance": compliance_checks(bundle),
    }
    return result


__all__ = [
    "calculate_metrics",
    "profitability_metrics",
    "unit_economics",
    "working_capital_metrics",
    "liquidity_metrics",
    "debt_metrics",
    "cash_health_metrics",
    "carbon_metrics",
    "break_even_metrics",
    "compliance_checks",
    "COMPLIANCE_TOLERANCE",
]
