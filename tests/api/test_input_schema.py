import pytest

from carbonfin.analytics.input_schema import (
    InputFieldSpec,
    build_schema_dataframe,
    get_input_fields,
    lookup_field,
    register_input_fields,
)
from carbonfin.errors import UnknownInputKey
from carbonfin.finance.inputs import PER_YEAR_FIELDS, RATE_FIELDS


def test_every_engine_field_has_an_owner():
    keys = {s.input_key for s in get_input_fields() if s.kind != "text"}
    assert set(PER_YEAR_FIELDS) <= keys
    assert set(RATE_FIELDS) <= keys
    assert {"initial_equity_t0", "opening_cash_y1", "initial_ppe", "debt_duration_years"} <= keys


def test_rates_have_defaults():
    for spec in get_input_fields():
        if spec.kind == "rate":
            assert spec.default_attr and spec.default_attr.endswith("_pct")


def test_lookup_unknown_key_raises():
    with pytest.raises(UnknownInputKey) as excinfo:
        lookup_field("expenses", "tariff")
    assert excinfo.value.field == "expenses.tariff"


def test_lookup_uses_ui_key_for_payload():
    spec = lookup_field("operational_metrics", "issuance_flag")
    assert spec.payload_key == "issue"


def test_conflicting_registration_rejected():
    existing = lookup_field("expenses", "capex")
    register_input_fields([existing])  # identical spec is a no-op
    with pytest.raises(ValueError):
        register_input_fields(
            [InputFieldSpec("expenses", "capex", "inflow", per_year=True)]
        )


def test_unknown_category_rejected():
    with pytest.raises(ValueError):
        register_input_fields([InputFieldSpec("revenue", "tariff", "price")])


def test_schema_dataframe_sorted():
    df = build_schema_dataframe()
    assert list(df.columns) == [
        "category", "input_key", "kind", "per_year", "default_attr", "description",
    ]
    assert len(df) == len(get_input_fields())
    assert list(df["category"]) == sorted(df["category"])
    assert set(df["category"]) == {"operational_metrics", "expenses", "financing"}
