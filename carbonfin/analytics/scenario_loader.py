"""
Scenario configuration loader.

Responsibilities:
- Load YAML / JSON scenario files.
- Perform light structural checks only; value validation lives with the
  normalizer and the engine.
- Turn a loaded scenario into canonical ``EngineInputs``.

A scenario file holds exactly one of:

- ``engine_inputs``: canonical engine units, used as-is;
- ``ui``: a UI payload (percent rates, positive costs), run through
  ``to_engine_inputs``;
- ``records``: a list of tagged input records with a ``years`` list,
  assembled via ``inputs_from_records``.

Optional ``defaults`` overrides ``DefaultAssumptions`` for that scenario;
``meta`` is free-form.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from carbonfin.analytics.normalizer import InputRecord, inputs_from_records, to_engine_inputs
from carbonfin.defaults import DEFAULT_ASSUMPTIONS, DefaultAssumptions
from carbonfin.finance.inputs import EngineInputs

logger = logging.getLogger(__name__)

SCENARIO_SUFFIXES = (".yml", ".yaml", ".json")

INPUT_SECTIONS = ("engine_inputs", "ui", "records")


class ScenarioConfigError(ValueError):
    """Configuration-level error for scenario loading."""


# ---------------------------------------------------------------------------
# Core helpers
# ---------------------------------------------------------------------------


def _load_raw_config(path: Path) -> Dict[str, Any]:
    """
    Load a raw scenario configuration from YAML or JSON.

    Only checks that the top level is a mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Scenario config not found: {path}")

    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as f:
        if suffix in (".yml", ".yaml"):
            data = yaml.safe_load(f)
        elif suffix == ".json":
            data = json.load(f)
        else:
            raise ScenarioConfigError(
                f"Unsupported scenario config extension '{suffix}' for {path}"
            )

    if data is None:
        raise ScenarioConfigError(f"Empty configuration in file: {path}")

    if not isinstance(data, dict):
        raise ScenarioConfigError(
            f"Expected a mapping at top level of {path}, "
            f"got {type(data).__name__}"
        )

    return data


def _ensure_meta_source(cfg: Dict[str, Any], path: Path) -> None:
    """Attach a 'meta.source_path' breadcrumb, if not already present."""
    meta = cfg.setdefault("meta", {})
    meta.setdefault("source_path", str(path))


def _input_section(cfg: Dict[str, Any], origin: str) -> str:
    present = [name for name in INPUT_SECTIONS if name in cfg]
    if not present:
        raise ScenarioConfigError(
            f"{origin}: expected one of {', '.join(INPUT_SECTIONS)}"
        )
    if len(present) > 1:
        raise ScenarioConfigError(
            f"{origin}: only one input section allowed, found {', '.join(present)}"
        )
    return present[0]


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_scenario_config(path: str | Path) -> Dict[str, Any]:
    """
    Load and lightly normalise a scenario configuration.

    - Loads YAML/JSON and ensures a top-level mapping.
    - Attaches meta.source_path for traceability.
    - Requires exactly one input section (engine_inputs / ui / records).
    """
    p = Path(path)
    cfg = _load_raw_config(p)
    _ensure_meta_source(cfg, p)
    _input_section(cfg, str(p))
    return cfg


def resolve_defaults(
    cfg: Dict[str, Any], base: DefaultAssumptions = DEFAULT_ASSUMPTIONS
) -> DefaultAssumptions:
    overrides = cfg.get("defaults")
    if overrides is None:
        return base
    if not isinstance(overrides, dict):
        raise ScenarioConfigError("'defaults' must be a mapping")
    return DefaultAssumptions.from_mapping(overrides, base=base)


def engine_inputs_from_config(
    cfg: Dict[str, Any], defaults: Optional[DefaultAssumptions] = None
) -> EngineInputs:
    """Build canonical inputs from an already-loaded scenario mapping."""
    origin = str(cfg.get("meta", {}).get("source_path", "<scenario>"))
    section = _input_section(cfg, origin)
    assumptions = resolve_defaults(cfg, defaults or DEFAULT_ASSUMPTIONS)
    body = cfg[section]

    if section == "engine_inputs":
        if not isinstance(body, dict):
            raise ScenarioConfigError(f"{origin}: 'engine_inputs' must be a mapping")
        return EngineInputs.from_dict(body)

    if section == "ui":
        if not isinstance(body, dict):
            raise ScenarioConfigError(f"{origin}: 'ui' must be a mapping")
        return to_engine_inputs(body, assumptions)

    if not isinstance(body, list):
        raise ScenarioConfigError(f"{origin}: 'records' must be a list")
    years = cfg.get("years")
    if not isinstance(years, list):
        raise ScenarioConfigError(f"{origin}: 'records' scenarios need a 'years' list")
    records = []
    for row in body:
        if not isinstance(row, dict):
            raise ScenarioConfigError(f"{origin}: every record must be a mapping")
        records.append(InputRecord.from_row(row))
    logger.debug("Loaded %d input record(s) from %s", len(records), origin)
    return inputs_from_records(records, years, assumptions)


def load_engine_inputs(
    path: str | Path, defaults: Optional[DefaultAssumptions] = None
) -> EngineInputs:
    """Load a scenario file straight to ``EngineInputs``."""
    cfg = load_scenario_config(path)
    return engine_inputs_from_config(cfg, defaults)


__all__ = [
    "ScenarioConfigError",
    "SCENARIO_SUFFIXES",
    "load_scenario_config",
    "resolve_defaults",
    "engine_inputs_from_config",
    "load_engine_inputs",
]
