"""Helpers for constructing catalogs, signals, and graphs in tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping

from infraplan.catalog import ModuleCatalog, load_catalog
from infraplan.models import FeatureSignal, LiteralValue, ModuleSpec, OutputRef, ParamRef

STANDARD_CATALOG = Path(__file__).resolve().parents[2] / "catalogs" / "standard.yml"

DEFAULT_PARAMETERS: Dict[str, Any] = {"project": "demo", "location": "eastus"}


def standard_catalog() -> ModuleCatalog:
    return load_catalog(STANDARD_CATALOG)


def make_catalog(
    module_types: Mapping[str, Any],
    patterns: Mapping[str, Any] | None = None,
    *,
    version: str = "test",
) -> ModuleCatalog:
    """Build an in-memory catalog from plain dictionaries."""
    return ModuleCatalog.from_dict(
        {"version": version, "module_types": dict(module_types), "patterns": dict(patterns or {})}
    )


def signals(**flags: bool) -> list[FeatureSignal]:
    """`signals(uses_llm_calls=True)` -> [FeatureSignal("uses-llm-calls", True)]."""
    return [FeatureSignal(id=name.replace("_", "-"), present=value) for name, value in flags.items()]


def module(module_id: str, module_type: str, produces: tuple[str, ...] = (), **params: Any) -> ModuleSpec:
    """Hand-craft a module; `"@other.output"` strings become output references."""
    bound: Dict[str, ParamRef] = {}
    for name, value in params.items():
        if isinstance(value, str) and value.startswith("@"):
            bound[name] = OutputRef.parse(value[1:])
        else:
            bound[name] = LiteralValue(value)
    return ModuleSpec(id=module_id, type=module_type, params=bound, produces=produces)


__all__ = [
    "DEFAULT_PARAMETERS",
    "STANDARD_CATALOG",
    "make_catalog",
    "module",
    "signals",
    "standard_catalog",
]
