from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from carbonfin.errors import UnknownInputKey

FieldKey = Tuple[str, str]

CATEGORIES = ("operational_metrics", "expenses", "financing")

# How a UI value is converted into engine units.
KINDS = (
    "credits",  # per-year count, >= 0
    "price",  # per-year price, >= 0
    "flag",  # per-year 0/1
    "cost",  # per-year outflow, stored as -abs
    "inflow",  # per-year inflow, stored as abs
    "rate",  # scalar percent in UI, decimal in engine
    "amount",  # scalar money amount, abs
    "integer",  # scalar whole number
    "text",  # free text, not passed to the engine
)


@dataclass(frozen=True)
class InputFieldSpec:
    """
    Canonical description of one persisted model input.

    Attributes
    ----------
    category:
        Form that owns the field ("operational_metrics", "expenses",
        "financing").
    input_key:
        Key the persistence layer stores the record under.
    kind:
        One of KINDS; decides parsing and sign normalisation.
    per_year:
        True when one record per model year is expected.
    description:
        Human-friendly explanation used in error messages / schema dumps.
    default_attr:
        Attribute of DefaultAssumptions supplying the value when no record
        exists. None means the neutral value (0 / empty).
    ui_key:
        Key in the UI payload, when it differs from ``input_key``.
    """

    category: str
    input_key: str
    kind: str
    per_year: bool = False
    description: str = ""
    default_attr: Optional[str] = None
    ui_key: Optional[str] = None

    @property
    def key(self) -> FieldKey:
        return (self.category, self.input_key)

    @property
    def payload_key(self) -> str:
        return self.ui_key or self.input_key


# Global registry keyed by (category, input_key)
_REGISTRY: Dict[FieldKey, InputFieldSpec] = {}

# Modules whose import registers fields.
_OWNER_MODULES = ("carbonfin.analytics.normalizer",)


def register_input_fields(specs: Iterable[InputFieldSpec]) -> None:
    """
    Register InputFieldSpec objects, intended for module import time::

        _EXPENSE_FIELDS = [
            InputFieldSpec("expenses", "cogs_rate", "rate", ...),
            ...
        ]
        register_input_fields(_EXPENSE_FIELDS)

    Re-registering an identical spec is a no-op; a conflicting spec for an
    existing key raises ValueError.
    """
    for spec in specs:
        if spec.category not in CATEGORIES:
            raise ValueError(f"Unknown input category '{spec.category}'")
        if spec.kind not in KINDS:
            raise ValueError(f"Unknown input kind '{spec.kind}' for {spec.input_key}")
        existing = _REGISTRY.get(spec.key)
        if existing is not None and existing != spec:
            raise ValueError(f"Conflicting registration for {spec.category}.{spec.input_key}")
        _REGISTRY[spec.key] = spec


def _ensure_registered() -> None:
    for module_path in _OWNER_MODULES:
        importlib.import_module(module_path)


def get_input_fields(category: Optional[str] = None) -> List[InputFieldSpec]:
    """
    Return all registered specs, optionally filtered by category, in
    registration order.
    """
    _ensure_registered()
    specs = list(_REGISTRY.values())
    if category is None:
        return specs
    return [s for s in specs if s.category == category]


def lookup_field(category: str, input_key: str) -> InputFieldSpec:
    """Resolve a record's tag, rejecting anything nobody registered."""
    _ensure_registered()
    spec = _REGISTRY.get((category, input_key))
    if spec is None:
        raise UnknownInputKey(
            f"Unknown input '{input_key}' in category '{category}'",
            field=f"{category}.{input_key}",
        )
    return spec


def build_schema_dataframe() -> pd.DataFrame:
    """
    Flatten the registry into a DataFrame for inspection/debugging.

    Columns: category, input_key, kind, per_year, default_attr, description.
    """
    columns = ["category", "input_key", "kind", "per_year", "default_attr", "description"]
    rows: List[Dict[str, Any]] = [
        {
            "category": spec.category,
            "input_key": spec.input_key,
            "kind": spec.kind,
            "per_year": spec.per_year,
            "default_attr": spec.default_attr,
            "description": spec.description,
        }
        for spec in get_input_fields()
    ]

    if not rows:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(rows, columns=columns)
    df = df.sort_values(["category", "input_key"]).reset_index(drop=True)
    return df


__all__ = [
    "CATEGORIES",
    "KINDS",
    "InputFieldSpec",
    "register_input_fields",
    "get_input_fields",
    "lookup_field",
    "build_schema_dataframe",
]
