"""Validation of canonical EngineInputs."""

import pytest

from carbonfin.errors import CarbonFinError, InvalidConfig, ShapeMismatch
from carbonfin.finance.inputs import EngineInputs, validate_engine_inputs


def test_from_dict_round_trips_to_dict(acceptance_case):
    inputs = EngineInputs.from_dict(acceptance_case)
    again = EngineInputs.from_dict(inputs.to_dict())
    assert again == inputs
    assert inputs.horizon == 3
    assert inputs.amortization_style == "straight_line"


def test_from_dict_rejects_unknown_and_missing_keys(acceptance_case):
    with pytest.raises(InvalidConfig) as excinfo:
        EngineInputs.from_dict({**acceptance_case, "tariff": 1})
    assert excinfo.value.field == "tariff"

    data = dict(acceptance_case)
    del data["cogs_rate"]
    with pytest.raises(InvalidConfig) as excinfo:
        EngineInputs.from_dict(data)
    assert excinfo.value.field == "cogs_rate"


def test_from_dict_rejects_fractional_duration(acceptance_case):
    with pytest.raises(InvalidConfig) as excinfo:
        EngineInputs.from_dict({**acceptance_case, "debt_duration_years": 2.5})
    assert excinfo.value.field == "debt_duration_years"


def test_shape_mismatch_names_the_field(make_inputs):
    inputs = make_inputs(staff_costs=[0.0, 0.0])
    with pytest.raises(ShapeMismatch) as excinfo:
        validate_engine_inputs(inputs)
    assert excinfo.value.field == "staff_costs"
    assert excinfo.value.kind == "shape_mismatch"


@pytest.mark.parametrize(
    "years",
    [[2025, 2025, 2026], [2027, 2026, 2025], [2025, 2027, 2028]],
)
def test_years_must_be_ascending_and_contiguous(make_inputs, years):
    inputs = make_inputs(years=years)
    with pytest.raises(CarbonFinError) as excinfo:
        validate_engine_inputs(inputs)
    assert excinfo.value.field == "years"


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"issuance_flag": [0, 2, 0]}, "issuance_flag"),
        ({"cogs_rate": 1.5}, "cogs_rate"),
        ({"discount_rate": -0.1}, "discount_rate"),
        ({"debt_duration_years": 0}, "debt_duration_years"),
        ({"credits_generated": [1.0, -1.0, 0.0]}, "credits_generated"),
        ({"debt_draw": [-5.0, 0.0, 0.0]}, "debt_draw"),
        ({"amortization_style": "bullet"}, "amortization_style"),
    ],
)
def test_domain_violations_are_invalid_config(make_inputs, overrides, field):
    with pytest.raises(InvalidConfig) as excinfo:
        validate_engine_inputs(make_inputs(**overrides))
    assert excinfo.value.field == field


def test_empty_horizon_is_rejected(make_inputs):
    inputs = make_inputs(years=[])
    with pytest.raises(InvalidConfig) as excinfo:
        validate_engine_inputs(inputs)
    assert excinfo.value.field == "years"
