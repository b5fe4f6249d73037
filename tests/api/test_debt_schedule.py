"""Tests for the cohort-based debt schedule."""

import pytest

from carbonfin.errors import InvalidConfig
from carbonfin.finance.debt import (
    DrawCohort,
    amortization_profile,
    build_debt_schedule,
    debt_service_coverage,
)
from carbonfin.finance.utils import Sentinel


def test_annuity_principal_matches_ppmt():
    cohort = DrawCohort(0, 10000.0, 0.10, 2)
    principal = cohort.principal_schedule("annuity")
    assert principal[0] == pytest.approx(4761.90, abs=0.01)
    assert principal[1] == pytest.approx(5238.10, abs=0.01)
    assert sum(principal) == pytest.approx(10000.0)


def test_straight_line_and_zero_rate_are_equal_instalments():
    assert DrawCohort(0, 900.0, 0.05, 3).principal_schedule("straight_line") == [300.0] * 3
    assert DrawCohort(0, 900.0, 0.0, 3).principal_schedule("annuity") == [300.0] * 3


def test_unknown_style_is_rejected():
    with pytest.raises(InvalidConfig) as excinfo:
        DrawCohort(0, 100.0, 0.1, 2).principal_schedule("balloon")
    assert excinfo.value.field == "amortization_style"


def test_five_year_loan_repaid_in_equal_instalments_by_default():
    rows = build_debt_schedule([100000.0, 0, 0, 0, 0], 0.10, 5)
    assert [r.principal for r in rows] == pytest.approx([20000.0] * 5)
    assert rows[-1].ending_balance == 0.0
    # Interest is charged on the opening balance, so none in the draw year.
    assert rows[0].interest == 0.0
    assert rows[1].interest == pytest.approx(rows[0].ending_balance * 0.10)


def test_overlapping_cohorts_are_summed():
    profile = amortization_profile([100.0, 200.0, 0.0], 0.0, 2, "straight_line")
    assert profile == [50.0, 150.0, 100.0]


def test_principal_beyond_horizon_stays_outstanding():
    rows = build_debt_schedule([0.0, 1000.0], 0.0, 4, "straight_line")
    assert rows[-1].ending_balance == pytest.approx(750.0)


def test_non_positive_term_is_rejected():
    with pytest.raises(InvalidConfig):
        amortization_profile([100.0], 0.1, 0)


def test_roll_forward_identity_each_year():
    rows = build_debt_schedule([5000.0, 3000.0, 0.0, 0.0], 0.08, 3, "annuity")
    for r in rows:
        assert r.beginning_balance + r.draw - r.principal == pytest.approx(
            r.ending_balance, abs=1e-9
        )
        assert r.debt_service == pytest.approx(r.principal + r.interest)


def test_dscr_without_debt_service_is_not_applicable():
    assert debt_service_coverage(1000.0, 0.0, 0.0) is Sentinel.NOT_APPLICABLE
    assert debt_service_coverage(1000.0, 400.0, 100.0) == pytest.approx(2.0)


@pytest.mark.parametrize("amount", [1e6, 3.7e7, 2.5e8])
@pytest.mark.parametrize("rate", [0.05, 0.08, 0.12])
@pytest.mark.parametrize("term", [3, 7, 10])
def test_annuity_loan_closes_at_exactly_zero(amount, rate, term):
    rows = build_debt_schedule([amount] + [0.0] * term, rate, term, "annuity")
    assert rows[term - 1].ending_balance == 0.0
    assert rows[term].beginning_balance == 0.0
    assert rows[term].interest == 0.0
    assert rows[term].debt_service == 0.0
    for r in rows:
        assert r.beginning_balance + r.draw - r.principal == pytest.approx(
            r.ending_balance, abs=1e-6
        )
