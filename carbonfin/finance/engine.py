"""Calculation engine: EngineInputs -> StatementBundle.

Pipeline
--------
1. validate inputs (fatal errors abort before anything is built);
2. carbon stream for the whole horizon (depends on inputs only);
3. debt roll-forward (interest on beginning balance, so no year depends on
   its own cash position);
4. one ordered pass per year: income statement, working capital, cash
   flow, balance sheet (identity checked), FCFE;
5. metrics over the assembled statements.

The engine keeps no state between calls. Every intermediate lives in local
variables of :func:`calculate`, so independent runs can execute side by side.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List

from carbonfin.errors import BalanceIdentityError
from carbonfin.finance.carbon import build_carbon_stream
from carbonfin.finance.debt import build_debt_schedule, debt_service_coverage
from carbonfin.finance.inputs import EngineInputs, validate_engine_inputs
from carbonfin.finance.metrics import calculate_metrics
from carbonfin.finance.statements import (
    BalanceSheetYear,
    CarbonStreamYear,
    CashFlowYear,
    DebtScheduleYear,
    FCFEYear,
    IncomeStatementYear,
    StatementBundle,
)

logger = logging.getLogger(__name__)

# Relative tolerance for assets == liabilities + equity.
BALANCE_TOLERANCE = 1e-6


def _check_balance(year: int, assets: float, liabilities_equity: float) -> float:
    diff = assets - liabilities_equity
    scale = max(1.0, abs(assets), abs(liabilities_equity))
    if abs(diff) > BALANCE_TOLERANCE * scale:
        raise BalanceIdentityError(
            f"Balance sheet does not balance in {year}: assets {assets:,.6f} vs "
            f"liabilities + equity {liabilities_equity:,.6f}",
            field="balance_sheet",
        )
    return diff


def build_statements(inputs: EngineInputs) -> StatementBundle:
    """Assemble the six statements without metrics."""
    validate_engine_inputs(inputs)

    years = inputs.years
    carbon = build_carbon_stream(inputs)
    debt_rows = build_debt_schedule(
        inputs.debt_draw,
        inputs.interest_rate,
        inputs.debt_duration_years,
        inputs.amortization_style,
    )

    opening_plug = inputs.opening_cash_y1 + inputs.initial_ppe - inputs.initial_equity_t0
    if opening_plug != 0:
        logger.warning(
            "Opening balance sheet: cash %.2f + PPE %.2f vs initial equity %.2f; "
            "difference %.2f carried in opening retained earnings",
            inputs.opening_cash_y1,
            inputs.initial_ppe,
            inputs.initial_equity_t0,
            opening_plug,
        )

    income: List[IncomeStatementYear] = []
    balance: List[BalanceSheetYear] = []
    cash_flows: List[CashFlowYear] = []
    schedule: List[DebtScheduleYear] = []
    stream: List[CarbonStreamYear] = []
    fcfe: List[FCFEYear] = []

    cash = inputs.opening_cash_y1
    ar_prev = 0.0
    ap_prev = 0.0
    unearned_prev = 0.0
    ppe_gross = inputs.initial_ppe
    accumulated_dep = 0.0
    contributed = inputs.initial_equity_t0
    retained = opening_plug

    for t, year in enumerate(years):
        # --- income statement -------------------------------------------
        spot_rev = carbon.spot_revenue[t]
        prep_rev = carbon.pre_purchase_revenue[t]
        revenue = spot_rev + prep_rev
        cogs = inputs.cogs_rate * revenue
        gross = revenue - cogs

        feas = inputs.feasibility_costs[t]
        pdd = inputs.pdd_costs[t]
        mrv = inputs.mrv_costs[t]
        staff = inputs.staff_costs[t]
        opex = feas + pdd + mrv + staff
        ebitda = gross + opex

        dep = inputs.depreciation[t]
        debt = debt_rows[t]
        interest = -debt.interest
        ebt = ebitda + dep + interest
        tax = max(0.0, ebt * inputs.income_tax_rate)
        net_income = ebt - tax

        income.append(
            IncomeStatementYear(
                year=year,
                credits_generated=carbon.generated[t],
                credits_issued=carbon.issued[t],
                spot_revenue=spot_rev,
                pre_purchase_revenue=prep_rev,
                total_revenue=revenue,
                cogs=cogs,
                gross_profit=gross,
                feasibility_costs=feas,
                pdd_costs=pdd,
                mrv_costs=mrv,
                staff_costs=staff,
                total_opex=opex,
                ebitda=ebitda,
                depreciation=dep,
                interest_expense=interest,
                earnings_before_tax=ebt,
                income_tax=tax,
                net_income=net_income,
            )
        )

        # --- debt schedule ----------------------------------------------
        schedule.append(
            DebtScheduleYear(
                year=year,
                beginning_balance=debt.beginning_balance,
                draw=debt.draw,
                principal_payment=-debt.principal,
                interest_expense=debt.interest,
                ending_balance=debt.ending_balance,
                debt_service=debt.debt_service,
                dscr=debt_service_coverage(ebitda, debt.principal, debt.interest),
            )
        )

        # --- working capital --------------------------------------------
        ar = inputs.ar_rate * revenue
        ap = -inputs.ap_rate * opex
        unearned_inflow = inputs.purchase_amount[t]
        unearned_release = prep_rev
        unearned = unearned_prev + unearned_inflow - unearned_release

        change_ar = -(ar - ar_prev)
        change_ap = ap - ap_prev
        change_unearned = unearned - unearned_prev

        # --- cash flow --------------------------------------------------
        dep_addback = -dep
        ocf = net_income + dep_addback + change_ar + change_ap + change_unearned
        capex = inputs.capex[t]
        icf = capex
        draw = inputs.debt_draw[t]
        repayment = -debt.principal
        injection = inputs.equity_injection[t]
        fin_cf = draw + repayment + injection
        net_change = ocf + icf + fin_cf
        cash_start = cash
        cash = cash_start + net_change

        cash_flows.append(
            CashFlowYear(
                year=year,
                net_income=net_income,
                depreciation_addback=dep_addback,
                change_ar=change_ar,
                change_ap=change_ap,
                change_unearned=change_unearned,
                operating_cash_flow=ocf,
                capex=capex,
                investing_cash_flow=icf,
                debt_draw=draw,
                debt_repayment=repayment,
                equity_injection=injection,
                financing_cash_flow=fin_cf,
                unearned_inflow=unearned_inflow,
                unearned_release=-unearned_release,
                cash_start=cash_start,
                net_change_cash=net_change,
                cash_end=cash,
            )
        )

        # --- balance sheet ----------------------------------------------
        ppe_gross += -capex
        accumulated_dep += -dep
        ppe_net = ppe_gross - accumulated_dep
        contributed += injection
        retained += net_income

        total_assets = cash + ar + ppe_net
        total_liabilities = ap + unearned + debt.ending_balance
        total_equity = contributed + retained
        total_le = total_liabilities + total_equity
        check = _check_balance(year, total_assets, total_le)

        balance.append(
            BalanceSheetYear(
                year=year,
                cash=cash,
                accounts_receivable=ar,
                ppe_gross=ppe_gross,
                accumulated_depreciation=accumulated_dep,
                ppe_net=ppe_net,
                total_assets=total_assets,
                accounts_payable=ap,
                unearned_revenue=unearned,
                debt_balance=debt.ending_balance,
                total_liabilities=total_liabilities,
                contributed_capital=contributed,
                retained_earnings=retained,
                total_equity=total_equity,
                total_liabilities_equity=total_le,
                balance_check=check,
            )
        )

        # --- carbon stream ----------------------------------------------
        stream.append(
            CarbonStreamYear(
                year=year,
                credits_generated=carbon.generated[t],
                cumulative_generated=carbon.cumulative_generated[t],
                credits_issued=carbon.issued[t],
                cumulative_issued=carbon.cumulative_issued[t],
                purchased_credits=carbon.purchased[t],
                spot_credits=carbon.spot[t],
                price_per_credit=inputs.price_per_credit[t],
                purchase_amount=inputs.purchase_amount[t],
                implied_purchase_price=carbon.implied_price,
                spot_revenue=spot_rev,
                pre_purchase_revenue=prep_rev,
                investor_cash_flow=carbon.investor_cash_flow[t],
            )
        )

        # --- FCFE -------------------------------------------------------
        change_wc = change_ar + change_ap + change_unearned
        net_borrowing = draw + repayment
        fcfe.append(
            FCFEYear(
                year=year,
                net_income=net_income,
                depreciation_addback=dep_addback,
                change_working_capital=change_wc,
                capex=capex,
                net_borrowing=net_borrowing,
                fcf_to_equity=net_income + dep_addback + change_wc + capex + net_borrowing,
            )
        )

        ar_prev, ap_prev, unearned_prev = ar, ap, unearned

    return StatementBundle(
        income_statements=tuple(income),
        balance_sheets=tuple(balance),
        cash_flow_statements=tuple(cash_flows),
        debt_schedule=tuple(schedule),
        carbon_stream=tuple(stream),
        free_cash_flow=tuple(fcfe),
    )


def calculate(inputs: EngineInputs) -> StatementBundle:
    """Run the full engine: statements plus metrics.

    Raises
    ------
    ShapeMismatch, InvalidConfig, IssuanceOverrun
        On invalid inputs; no partial bundle is returned.
    BalanceIdentityError
        If the assembled balance sheet fails the accounting identity.
    """
    bundle = build_statements(inputs)
    metrics = calculate_metrics(bundle, inputs)
    logger.info(
        "Engine run complete: %d year(s) %s-%s",
        len(inputs.years),
        inputs.years[0],
        inputs.years[-1],
    )
    return replace(bundle, metrics=metrics)


__all__ = ["build_statements", "calculate", "BALANCE_TOLERANCE"]
