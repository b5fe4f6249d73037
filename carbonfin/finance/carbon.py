"""Carbon stream: issuance, pre-purchase split and credit pricing.

Generation and issuance are decoupled in time. Credits generated
accumulate until a year flagged for issuance, which issues everything
generated but not yet issued:

    issued[t] = flag[t] * (cum_generated[t] - cum_issued[t-1])

From the first year with a pre-purchase payment onwards, ``purchase_share``
of each issuance is delivered to the pre-purchaser. All deliveries are
valued at one implied price fixed by that first payment; the rest is sold
spot at the year's ``price_per_credit``.

Delivery does not depend on a payment in the same year: once the first
payment is made, every later issuance delivers ``purchase_share`` even in
years where ``purchase_amount`` is zero. A model that only delivers in
years carrying a payment would book less pre-purchase revenue and leave
unearned revenue on the balance sheet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from carbonfin.errors import IssuanceOverrun
from carbonfin.finance.inputs import EngineInputs

logger = logging.getLogger(__name__)

# Absolute slack on credit counts before an overrun is reported.
_CREDIT_TOLERANCE = 1e-9


@dataclass
class CarbonStreamResult:
    """Per-year carbon arrays shared by the statement assembler."""

    generated: List[float]
    cumulative_generated: List[float]
    issued: List[float]
    cumulative_issued: List[float]
    purchased: List[float]
    spot: List[float]
    spot_revenue: List[float]
    pre_purchase_revenue: List[float]
    investor_cash_flow: List[float]
    implied_price: float
    first_purchase_index: Optional[int]


def compute_issuance(
    generated: Sequence[float], issuance_flag: Sequence[int]
) -> List[float]:
    """Issued credits per year from generation and the issuance flags."""
    issued: List[float] = []
    cum_generated = 0.0
    cum_issued = 0.0
    for gen, flag in zip(generated, issuance_flag):
        cum_generated += gen
        q = (cum_generated - cum_issued) if flag else 0.0
        issued.append(q)
        cum_issued += q
    return issued


def check_credit_conservation(
    years: Sequence[int],
    generated: Sequence[float],
    issued: Sequence[float],
) -> None:
    """Raise IssuanceOverrun if cumulative issuance ever passes generation."""
    cum_generated = 0.0
    cum_issued = 0.0
    for year, gen, q in zip(years, generated, issued):
        cum_generated += gen
        cum_issued += q
        if cum_issued > cum_generated + _CREDIT_TOLERANCE:
            raise IssuanceOverrun(
                f"Cumulative issued credits {cum_issued:,.2f} exceed cumulative "
                f"generated credits {cum_generated:,.2f} in {year}",
                field="issuance_flag",
            )


def first_purchase_index(purchase_amount: Sequence[float]) -> Optional[int]:
    for i, amount in enumerate(purchase_amount):
        if amount > 0:
            return i
    return None


def build_carbon_stream(inputs: EngineInputs) -> CarbonStreamResult:
    """Compute the full-horizon carbon stream.

    The stream depends only on inputs, so it is built once up front and the
    yearly statement pipeline reads from it.
    """
    generated = list(inputs.credits_generated)
    issued = compute_issuance(generated, inputs.issuance_flag)
    check_credit_conservation(inputs.years, generated, issued)

    first = first_purchase_index(inputs.purchase_amount)
    share = inputs.purchase_share

    purchased = [
        q * share if first is not None and t >= first else 0.0
        for t, q in enumerate(issued)
    ]
    total_purchased = sum(purchased)

    implied_price = 0.0
    if first is not None:
        if total_purchased > 0:
            implied_price = inputs.purchase_amount[first] / total_purchased
        else:
            logger.warning(
                "Pre-purchase of %.2f in %s but no credits are ever delivered; "
                "implied purchase price set to 0",
                inputs.purchase_amount[first],
                inputs.years[first],
            )
    logger.debug("Implied purchase price %.6f (first purchase index %s)", implied_price, first)

    spot = [q - p for q, p in zip(issued, purchased)]
    spot_revenue = [s * price for s, price in zip(spot, inputs.price_per_credit)]
    pre_purchase_revenue = [p * implied_price for p in purchased]
    investor_cash_flow = [
        -amount + p * price
        for amount, p, price in zip(inputs.purchase_amount, purchased, inputs.price_per_credit)
    ]

    cumulative_generated: List[float] = []
    cumulative_issued: List[float] = []
    running_gen = running_iss = 0.0
    for gen, q in zip(generated, issued):
        running_gen += gen
        running_iss += q
        cumulative_generated.append(running_gen)
        cumulative_issued.append(running_iss)

    return CarbonStreamResult(
        generated=generated,
        cumulative_generated=cumulative_generated,
        issued=issued,
        cumulative_issued=cumulative_issued,
        purchased=purchased,
        spot=spot,
        spot_revenue=spot_revenue,
        pre_purchase_revenue=pre_purchase_revenue,
        investor_cash_flow=investor_cash_flow,
        implied_price=implied_price,
        first_purchase_index=first,
    )


__all__ = [
    "CarbonStreamResult",
    "build_carbon_stream",
    "check_credit_conservation",
    "compute_issuance",
    "first_purchase_index",
]
