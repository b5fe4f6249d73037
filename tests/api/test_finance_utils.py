import pytest

from carbonfin.errors import InvalidConfig, ShapeMismatch
from carbonfin.finance.utils import (
    Sentinel,
    get_nested,
    is_number,
    parse_number,
    safe_div,
)


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 0.0), ("", 0.0), ("1,250", 1250.0), (" $ 10 ", 10.0), ("12.5%", 12.5), (7, 7.0), (True, 1.0)],
)
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


@pytest.mark.parametrize("raw", ["ten", "1.2.3", float("nan"), float("inf")])
def test_parse_number_rejects(raw):
    with pytest.raises(InvalidConfig) as excinfo:
        parse_number(raw, field="price_per_credit")
    assert excinfo.value.field == "price_per_credit"


def test_safe_div():
    assert safe_div(1.0, 4.0) == 0.25
    assert safe_div(1.0, 0.0) is Sentinel.NOT_APPLICABLE


def test_sentinel_renders_as_text():
    assert str(Sentinel.NO_SOLUTION) == "no_solution"
    assert Sentinel.NOT_APPLICABLE == "n/a"
    assert not is_number(Sentinel.BEYOND_HORIZON)
    assert not is_number(True)
    assert is_number(3)


def test_loose_helpers():
    assert get_nested({"a": {"b": 2}}, ["a", "b"]) == 2
    assert get_nested({"a": 1}, ["a", "b"]) is None


def test_error_to_dict():
    err = ShapeMismatch("staff_costs has 2 values", field="staff_costs")
    assert err.to_dict() == {
        "kind": "shape_mismatch",
        "field": "staff_costs",
        "message": "staff_costs has 2 values",
    }
    assert isinstance(err, ValueError)
