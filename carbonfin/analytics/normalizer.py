"""
Input normalizer: UI representation <-> canonical EngineInputs.

UI side
    percentages as whole numbers (15 = 15%), costs typed as positive
    magnitudes, checkboxes for issuance, values possibly typed with
    thousands separators or a currency sign.

Engine side
    decimal rates, costs as negative cash amounts, inflows non-negative,
    issuance flags as 0/1.

Three entry points:

- ``to_engine_inputs(ui_payload)``: a fully populated UI payload. Nothing
  is inferred; a missing field is an error.
- ``from_engine_to_ui(engine_inputs)``: the inverse, for display/editing.
- ``inputs_from_records(records, years)``: tagged ``(category, input_key,
  year)`` records from the persistence layer. Unknown tags are rejected and
  absent fields take their value from ``DefaultAssumptions``.

This module also registers every input field with
``carbonfin.analytics.input_schema``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from carbonfin.analytics.input_schema import (
    InputFieldSpec,
    get_input_fields,
    lookup_field,
    register_input_fields,
)
from carbonfin.defaults import DEFAULT_ASSUMPTIONS, DefaultAssumptions
from carbonfin.errors import InvalidConfig, ShapeMismatch, UnknownInputKey
from carbonfin.finance.inputs import EngineInputs, validate_engine_inputs
from carbonfin.finance.utils import parse_number

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Field registration
# ---------------------------------------------------------------------------

_OPERATIONAL_FIELDS = [
    InputFieldSpec(
        "operational_metrics", "credits_generated", "credits", per_year=True,
        description="Credits generated in the year (before issuance).",
    ),
    InputFieldSpec(
        "operational_metrics", "price_per_credit", "price", per_year=True,
        description="Spot price per credit.", default_attr="price_per_credit",
    ),
    InputFieldSpec(
        "operational_metrics", "issuance_flag", "flag", per_year=True,
        description="1 when accumulated credits are issued this year.",
        default_attr="issuance_flag", ui_key="issue",
    ),
    InputFieldSpec("operational_metrics", "notes", "text", description="Free-text notes."),
]

_EXPENSE_FIELDS = [
    InputFieldSpec("expenses", "feasibility_costs", "cost", per_year=True,
                   description="Feasibility study costs."),
    InputFieldSpec("expenses", "pdd_costs", "cost", per_year=True,
                   description="Project design document costs."),
    InputFieldSpec("expenses", "mrv_costs", "cost", per_year=True,
                   description="Monitoring, reporting and verification costs."),
    InputFieldSpec("expenses", "staff_costs", "cost", per_year=True,
                   description="Staff costs."),
    InputFieldSpec("expenses", "capex", "cost", per_year=True,
                   description="Capital expenditure."),
    InputFieldSpec("expenses", "depreciation", "cost", per_year=True,
                   description="Depreciation charge."),
    InputFieldSpec("expenses", "cogs_rate", "rate",
                   description="COGS as % of revenue.", default_attr="cogs_rate_pct"),
    InputFieldSpec("expenses", "ar_rate", "rate",
                   description="Receivables as % of revenue.", default_attr="ar_rate_pct"),
    InputFieldSpec("expenses", "ap_rate", "rate",
                   description="Payables as % of OPEX.", default_attr="ap_rate_pct"),
    InputFieldSpec("expenses", "income_tax_rate", "rate",
                   description="Income tax rate.", default_attr="income_tax_rate_pct"),
    InputFieldSpec("expenses", "notes", "text", description="Free-text notes."),
]

_FINANCING_FIELDS = [
    InputFieldSpec("financing", "equity_injection", "inflow", per_year=True,
                   description="Equity injected during the year."),
    InputFieldSpec("financing", "debt_draw", "inflow", per_year=True,
                   description="Debt drawn during the year."),
    InputFieldSpec("financing", "purchase_amount", "inflow", per_year=True,
                   description="Pre-purchase cash received."),
    InputFieldSpec("financing", "interest_rate", "rate",
                   description="Interest rate on debt.", default_attr="interest_rate_pct"),
    InputFieldSpec("financing", "debt_duration_years", "integer",
                   description="Amortization term per draw.", default_attr="debt_duration_years"),
    InputFieldSpec("financing", "purchase_share", "rate",
                   description="Share of issuance delivered to the pre-purchaser.",
                   default_attr="purchase_share_pct"),
    InputFieldSpec("financing", "discount_rate", "rate",
                   description="Discount rate for NPV.", default_attr="discount_rate_pct"),
    InputFieldSpec("financing", "opening_cash_y1", "amount",
                   description="Cash at the start of year 1.", default_attr="opening_cash_y1"),
    InputFieldSpec("financing", "initial_equity_t0", "amount",
                   description="Equity invested before year 1.", default_attr="initial_equity_t0"),
    InputFieldSpec("financing", "initial_ppe", "amount",
                   description="PPE on the opening balance sheet.", default_attr="initial_ppe"),
    InputFieldSpec("financing", "notes", "text", description="Free-text notes."),
]

register_input_fields(_OPERATIONAL_FIELDS + _EXPENSE_FIELDS + _FINANCING_FIELDS)


# ---------------------------------------------------------------------------
# Scalar normalisers
# ---------------------------------------------------------------------------

_TRUE_STRINGS = {"1", "true", "yes", "y", "on"}
_FALSE_STRINGS = {"0", "false", "no", "n", "off", ""}


def normalize_rate(value: Any, field: Optional[str] = None) -> float:
    """Percent (``15``, ``"15%"``, ``"15"``) -> decimal in [0, 1]."""
    rate = parse_number(value, field=field) / 100.0
    if not (0.0 <= rate <= 1.0):
        raise InvalidConfig(
            f"{field or 'rate'} must be between 0% and 100%, got {value!r}", field=field
        )
    return rate


def normalize_outflow(value: Any, field: Optional[str] = None) -> float:
    """Costs are stored negative whatever sign was typed."""
    return -abs(parse_number(value, field=field))


def normalize_inflow(value: Any, field: Optional[str] = None) -> float:
    return abs(parse_number(value, field=field))


def normalize_flag(value: Any, field: Optional[str] = None) -> int:
    """Checkbox / 0-1 / "true" -> 0 or 1."""
    if isinstance(value, bool):
        return 1 if value else 0
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        if value in (0, 1):
            return int(value)
        raise InvalidConfig(f"Issuance flag must be 0 or 1, got {value!r}", field=field)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return 1
    if text in _FALSE_STRINGS:
        return 0
    raise InvalidConfig(f"Cannot read {value!r} as an issuance flag", field=field)


def _convert(spec: InputFieldSpec, value: Any) -> Any:
    kind = spec.kind
    name = spec.input_key
    if kind == "cost":
        return normalize_outflow(value, name)
    if kind in ("inflow", "amount"):
        return normalize_inflow(value, name)
    if kind == "flag":
        return normalize_flag(value, name)
    if kind == "rate":
        return normalize_rate(value, name)
    if kind == "integer":
        return int(parse_number(value, field=name))
    return parse_number(value, field=name)


def _payload_key(payload: Mapping[str, Any], spec: InputFieldSpec) -> Optional[str]:
    """UI key first, then the canonical name (``issuance_flag`` for ``issue``)."""
    for key in (spec.payload_key, spec.input_key):
        if key in payload:
            return key
    return None


def _require_series(
    payload: Mapping[str, Any], key: str, spec: InputFieldSpec, horizon: int
) -> List[Any]:
    series = payload[key]
    if isinstance(series, (str, bytes)) or not isinstance(series, Sequence):
        raise ShapeMismatch(f"{key} must be a list with one value per year", field=spec.input_key)
    if len(series) != horizon:
        raise ShapeMismatch(
            f"Length of {key} ({len(series)}) must equal years.length ({horizon})",
            field=spec.input_key,
        )
    return list(series)


# ---------------------------------------------------------------------------
# UI -> engine
# ---------------------------------------------------------------------------


def to_engine_inputs(
    ui_payload: Mapping[str, Any],
    defaults: DefaultAssumptions = DEFAULT_ASSUMPTIONS,
) -> EngineInputs:
    """Convert a fully populated UI payload to canonical EngineInputs.

    Every registered (non-text) field must be present under its UI key.
    ``defaults`` only supplies the engine option ``amortization_style``
    when the payload has none.
    """
    if "years" not in ui_payload:
        raise InvalidConfig("UI payload is missing 'years'", field="years")
    try:
        years = [int(parse_number(y, field="years")) for y in ui_payload["years"]]
    except TypeError as exc:
        raise InvalidConfig("years must be a list of integers", field="years") from exc
    horizon = len(years)

    values: Dict[str, Any] = {"years": years}
    for spec in get_input_fields():
        if spec.kind == "text":
            continue
        key = _payload_key(ui_payload, spec)
        if key is None:
            raise InvalidConfig(
                f"UI payload is missing '{spec.payload_key}'", field=spec.input_key
            )
        if spec.per_year:
            series = _require_series(ui_payload, key, spec, horizon)
            values[spec.input_key] = [_convert(spec, v) for v in series]
        else:
            values[spec.input_key] = _convert(spec, ui_payload[key])

    values["amortization_style"] = str(
        ui_payload.get("amortization_style", defaults.amortization_style)
    )

    inputs = EngineInputs(**values)
    validate_engine_inputs(inputs)
    return inputs


# ---------------------------------------------------------------------------
# engine -> UI
# ---------------------------------------------------------------------------


def from_engine_to_ui(inputs: EngineInputs) -> Dict[str, Any]:
    """Display values: rates x100, costs/inflows as magnitudes, flags as bools."""
    ui: Dict[str, Any] = {"years": list(inputs.years)}
    for spec in get_input_fields():
        if spec.kind == "text":
            continue
        value = getattr(inputs, spec.input_key)
        key = spec.payload_key
        if spec.kind == "flag":
            ui[key] = [bool(v) for v in value]
        elif spec.kind == "rate":
            ui[key] = value * 100.0
        elif spec.kind == "integer":
            ui[key] = int(value)
        elif spec.per_year:
            ui[key] = [abs(v) for v in value]
        else:
            ui[key] = abs(value)
    ui["amortization_style"] = inputs.amortization_style
    return ui


# ---------------------------------------------------------------------------
# Tagged records -> engine
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InputRecord:
    """One persisted value, tagged by form category and key."""

    category: str
    input_key: str
    value: Any
    year: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "InputRecord":
        """Read a persistence row: ``{category, input_key, input_value, year?}``.

        ``input_value`` may be the bare value or a ``{"value": ...}`` mapping.
        """
        try:
            category = row["category"]
            input_key = row["input_key"]
        except KeyError as exc:
            raise InvalidConfig(f"Input record missing {exc.args[0]!r}") from exc
        raw = row.get("input_value", row.get("value"))
        if isinstance(raw, Mapping):
            raw = raw.get("value")
        year = row.get("year")
        return cls(str(category), str(input_key), raw, None if year is None else int(year))


def _default_value(spec: InputFieldSpec, defaults: DefaultAssumptions) -> Any:
    if spec.default_attr is None:
        return 0
    return getattr(defaults, spec.default_attr)


def inputs_from_records(
    records: Iterable[InputRecord],
    years: Sequence[int],
    defaults: DefaultAssumptions = DEFAULT_ASSUMPTIONS,
) -> EngineInputs:
    """Group tagged records into a UI payload and normalise it.

    - per-year fields: a record with ``year`` sets that year; a record
      without a year sets every year (a list value must cover the horizon);
      a dated record overrides an undated one;
    - scalar fields must not carry a year;
    - a key recorded twice for the same year is rejected;
    - fields with no record take their DefaultAssumptions value.
    """
    years = [int(y) for y in years]
    horizon = len(years)
    year_index = {y: i for i, y in enumerate(years)}

    undated: Dict[Tuple[str, str], Any] = {}
    dated: Dict[Tuple[str, str], Dict[int, Any]] = {}
    unknown: List[str] = []

    for rec in records:
        try:
            spec = lookup_field(rec.category, rec.input_key)
        except UnknownInputKey:
            unknown.append(f"{rec.category}.{rec.input_key}")
            continue
        if spec.kind == "text":
            continue

        if rec.year is None:
            if spec.key in undated:
                raise InvalidConfig(
                    f"Duplicate record for {spec.category}.{spec.input_key}",
                    field=spec.input_key,
                )
            undated[spec.key] = rec.value
            continue

        if not spec.per_year:
            raise InvalidConfig(
                f"{spec.category}.{spec.input_key} is not a per-year input "
                f"but a record for {rec.year} was given",
                field=spec.input_key,
            )
        if rec.year not in year_index:
            raise InvalidConfig(
                f"Record for {spec.input_key} in {rec.year} is outside the model "
                f"horizon {years[0] if years else '?'}-{years[-1] if years else '?'}",
                field=spec.input_key,
            )
        by_year = dated.setdefault(spec.key, {})
        if rec.year in by_year:
            raise InvalidConfig(
                f"Duplicate record for {spec.input_key} in {rec.year}", field=spec.input_key
            )
        by_year[rec.year] = rec.value

    if unknown:
        raise UnknownInputKey(
            f"Unknown input record(s): {', '.join(sorted(set(unknown)))}",
            field=sorted(set(unknown))[0],
        )

    payload: Dict[str, Any] = {"years": years}
    for spec in get_input_fields():
        if spec.kind == "text":
            continue
        key = spec.key
        if spec.per_year:
            base = undated.get(key, _default_value(spec, defaults))
            if isinstance(base, (list, tuple)):
                if len(base) != horizon:
                    raise ShapeMismatch(
                        f"Length of {spec.input_key} ({len(base)}) must equal "
                        f"years.length ({horizon})",
                        field=spec.input_key,
                    )
                series = list(base)
            else:
                series = [base] * horizon
            for year, value in dated.get(key, {}).items():
                series[year_index[year]] = value
            payload[spec.payload_key] = series
        else:
            payload[spec.payload_key] = undated.get(key, _default_value(spec, defaults))

    logger.debug(
        "Assembled payload from records: %d undated, %d dated field(s)",
        len(undated),
        len(dated),
    )
    payload["amortization_style"] = defaults.amortization_style
    return to_engine_inputs(payload, defaults)


__all__ = [
    "InputRecord",
    "normalize_rate",
    "normalize_outflow",
    "normalize_inflow",
    "normalize_flag",
    "to_engine_inputs",
    "from_engine_to_ui",
    "inputs_from_records",
]
