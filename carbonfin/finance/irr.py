"""Return metrics on annual cash-flow series: NPV, IRR, MIRR and paybacks.

All series are periodic (annual). Unless stated otherwise a series starts at
t=0, which is never discounted.

Undefined results are reported with ``Sentinel`` members instead of None,
NaN or exceptions, so they survive JSON serialization and render as text:

- IRR / MIRR without a root: ``Sentinel.NO_SOLUTION``
- payback never reached: ``Sentinel.BEYOND_HORIZON``
"""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

import numpy_financial as npf

from carbonfin.finance.utils import Number, Sentinel

# Bisection search domain for IRR (-99.99% to 1000%).
IRR_LOWER = -0.9999
IRR_UPPER = 10.0


# ============================================================================
# PERIODIC NPV/IRR (Standard Annual Cashflows)
# ============================================================================


def npv(rate: float, cashflows: Sequence[float]) -> float:
    """Classic periodic Net Present Value.

    NPV(r) = sum_{t=0..N} CF[t] / (1+r)^t

    Parameters
    ----------
    rate : float
        Discount rate (decimal, e.g. 0.12 for 12%)
    cashflows : Sequence[float]
        Cashflow series starting at t=0

    Returns
    -------
    float
        Net Present Value

    Examples
    --------
    >>> npv(0.10, [-1000, 500, 500, 500])
    243.426...
    """
    r = float(rate)
    if r <= -1.0:
        r = -0.999999

    total = 0.0
    for t, cf in enumerate(cashflows):
        total += float(cf) / ((1.0 + r) ** t)
    return total


def _has_sign_change(cashflows: Sequence[float]) -> bool:
    return any(cf > 0 for cf in cashflows) and any(cf < 0 for cf in cashflows)


def irr(cashflows: Sequence[float]) -> Number:
    """Periodic Internal Rate of Return.

    Finds rate r such that NPV(r, cashflows) = 0 using numpy-financial,
    falling back to a bisection over [IRR_LOWER, IRR_UPPER] when the
    Newton-style solver does not return a finite root.

    Parameters
    ----------
    cashflows : Sequence[float]
        Cashflow series starting at t=0

    Returns
    -------
    float or Sentinel
        IRR as decimal (e.g. 0.18 = 18%), or Sentinel.NO_SOLUTION when the
        series never changes sign or no root is bracketed.

    Examples
    --------
    >>> irr([-1000, 500, 500, 500])
    0.2343...
    """
    cfs = [float(x) for x in cashflows]
    if not _has_sign_change(cfs):
        return Sentinel.NO_SOLUTION

    val = float(npf.irr(cfs))
    if math.isfinite(val) and IRR_LOWER <= val <= IRR_UPPER:
        return val

    return _irr_bisect(cfs)


def _irr_bisect(cashflows: Sequence[float]) -> Number:
    """Bisection solver for IRR. Internal use only.

    Convergence: |NPV| < 1e-10
    Max iterations: 200
    """
    lo, hi = IRR_LOWER, IRR_UPPER
    f_lo = npv(lo, cashflows)
    f_hi = npv(hi, cashflows)

    if abs(f_lo) < 1e-12:
        return lo
    if abs(f_hi) < 1e-12:
        return hi

    if (f_lo > 0 and f_hi > 0) or (f_lo < 0 and f_hi < 0):
        return Sentinel.NO_SOLUTION

    for _ in range(200):
        mid = (lo + hi) / 2.0
        f_mid = npv(mid, cashflows)

        if abs(f_mid) < 1e-10:
            return mid

        if (f_lo < 0 and f_mid > 0) or (f_lo > 0 and f_mid < 0):
            hi, f_hi = mid, f_mid
        else:
            lo, f_lo = mid, f_mid

    return (lo + hi) / 2.0


def mirr(cashflows: Sequence[float], finance_rate: float, reinvest_rate: float) -> Number:
    """Modified IRR (Excel MIRR).

    Negative flows are discounted to t=0 at ``finance_rate``; positive
    flows are compounded to t=N at ``reinvest_rate``. Returns
    Sentinel.NO_SOLUTION for series shorter than two periods or without
    both an outflow and an inflow.
    """
    cfs = [float(x) for x in cashflows]
    if len(cfs) < 2 or not _has_sign_change(cfs):
        return Sentinel.NO_SOLUTION

    val = float(npf.mirr(cfs, finance_rate, reinvest_rate))
    if not math.isfinite(val):
        return Sentinel.NO_SOLUTION
    return val


# ============================================================================
# PAYBACK
# ============================================================================


def payback_period(inflows: Sequence[float], invested: Sequence[float]) -> Number:
    """First 1-based year in which cumulative inflows cover cumulative investment.

    ``inflows[t]`` and ``invested[t]`` are cumulative-summed independently;
    ``invested`` should already include any t=0 investment in its first
    element. Returns Sentinel.BEYOND_HORIZON if coverage is never reached.
    """
    cum_in = 0.0
    cum_invested = 0.0
    for t, (cf, inv) in enumerate(zip(inflows, invested)):
        cum_in += float(cf)
        cum_invested += float(inv)
        if cum_in >= cum_invested:
            return t + 1
    return Sentinel.BEYOND_HORIZON


def payback(cashflows: Sequence[float]) -> Number:
    """Interpolated payback on a t0-prefixed series (fractional periods).

    A series whose running total never goes negative pays back at 0.
    """
    cum = 0.0
    ever_negative = False
    for t, cf in enumerate(cashflows):
        prev = cum
        cum += float(cf)
        if cum < 0:
            ever_negative = True
        if prev < 0 <= cum:
            return t - 1 + (-prev / float(cf))
    return Sentinel.BEYOND_HORIZON if ever_negative else 0.0


def discounted_payback(cashflows: Sequence[float], rate: float) -> Number:
    """Interpolated payback on discounted flows of a t0-prefixed series."""
    cum = 0.0
    ever_negative = False
    for t, cf in enumerate(cashflows):
        disc = float(cf) / (1.0 + rate) ** t
        prev = cum
        cum += disc
        if cum < 0:
            ever_negative = True
        if prev < 0 <= cum:
            return t - 1 + (-prev / disc)
    return Sentinel.BEYOND_HORIZON if ever_negative else 0.0


def cumulative_npv(cashflows: Sequence[float], rate: float) -> List[Tuple[int, float]]:
    """Running discounted total, one (t, value) pair per period."""
    out: List[Tuple[int, float]] = []
    cum = 0.0
    for t, cf in enumerate(cashflows):
        cum += float(cf) / (1.0 + rate) ** t
        out.append((t, cum))
    return out


__all__ = [
    "npv",
    "irr",
    "mirr",
    "payback_period",
    "payback",
    "discounted_payback",
    "cumulative_npv",
    "IRR_LOWER",
    "IRR_UPPER",
]
