"""Debt schedule for carbon-project financing.

Each year's ``debt_draw`` opens an independent cohort that amortizes over
``debt_duration_years`` periods starting in the draw year:

- ``straight_line`` (default): equal principal instalments of
  ``amount / term``;
- ``annuity``: constant payment, principal per period is the Excel PPMT of
  the cohort.

Cohort principals are summed across all cohorts still outstanding. Interest
is charged on the *beginning* balance of the year, so a cohort accrues no
interest in its draw year and the schedule never depends on the current
year's cash position. Principal falling due after the final model year stays
in the closing balance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import numpy_financial as npf

from carbonfin.errors import InvalidConfig
from carbonfin.finance.utils import Number, safe_div

logger = logging.getLogger(__name__)

# Relative to cumulative drawn debt; smaller balances count as fully repaid.
_BALANCE_EPSILON = 1e-9


# ============================================================================
# COHORTS
# ============================================================================


class DrawCohort:
    """A single year's draw and its amortization terms."""

    __slots__ = ("draw_index", "amount", "rate", "term")

    def __init__(self, draw_index: int, amount: float, rate: float, term: int) -> None:
        self.draw_index = int(draw_index)
        self.amount = float(amount)
        self.rate = float(rate)
        self.term = int(term)

    def principal_schedule(self, style: str = "straight_line") -> List[float]:
        """Principal repaid in each of the ``term`` periods.

        The final instalment is whatever is left of the cohort, so the
        instalments always sum to ``amount``.
        """
        if style == "annuity" and self.rate != 0:
            periods = np.arange(1, self.term + 1)
            principal = [float(p) for p in -npf.ppmt(self.rate, periods, self.term, self.amount)]
        elif style in ("annuity", "straight_line"):
            principal = [self.amount / self.term] * self.term
        else:
            raise InvalidConfig(f"Unknown amortization_style {style!r}", field="amortization_style")
        principal[-1] = self.amount - sum(principal[:-1])
        return principal


def amortization_profile(
    draws: Sequence[float],
    rate: float,
    term: int,
    style: str = "straight_line",
) -> List[float]:
    """Total scheduled principal per model year, summed across cohorts."""
    if term <= 0:
        raise InvalidConfig(
            f"debt_duration_years must be positive, got {term}",
            field="debt_duration_years",
        )

    horizon = len(draws)
    profile = [0.0] * horizon
    for idx, amount in enumerate(draws):
        if amount <= 0:
            continue
        cohort = DrawCohort(idx, amount, rate, term)
        for k, principal in enumerate(cohort.principal_schedule(style)):
            t = idx + k
            if t >= horizon:
                break
            profile[t] += principal
        logger.debug(
            "Cohort %d: %.2f over %d period(s) (%s)", idx, amount, term, style
        )
    return profile


# ============================================================================
# SCHEDULE
# ============================================================================


@dataclass
class DebtYear:
    """Debt roll-forward for one year. All amounts positive."""

    beginning_balance: float
    draw: float
    principal: float
    interest: float
    ending_balance: float

    @property
    def debt_service(self) -> float:
        return self.principal + self.interest


def build_debt_schedule(
    draws: Sequence[float],
    rate: float,
    term: int,
    style: str = "straight_line",
) -> List[DebtYear]:
    """Roll the debt balance forward year by year."""
    profile = amortization_profile(draws, rate, term, style)

    rows: List[DebtYear] = []
    balance = 0.0
    drawn = 0.0
    for draw, principal in zip(draws, profile):
        beginning = balance
        interest = beginning * rate
        drawn += draw
        ending = beginning + draw - principal
        if ending != 0.0 and abs(ending) <= _BALANCE_EPSILON * max(1.0, drawn):
            # Rounding residue: close the balance and absorb it in principal.
            principal = beginning + draw
            ending = 0.0
        rows.append(
            DebtYear(
                beginning_balance=beginning,
                draw=float(draw),
                principal=principal,
                interest=interest,
                ending_balance=ending,
            )
        )
        balance = ending
    return rows


def debt_service_coverage(ebitda: float, principal: float, interest: float) -> Number:
    """DSCR = EBITDA / (principal + interest); Sentinel.NOT_APPLICABLE without service."""
    return safe_div(ebitda, abs(principal) + abs(interest))


__all__ = [
    "DrawCohort",
    "DebtYear",
    "amortization_profile",
    "build_debt_schedule",
    "debt_service_coverage",
]
