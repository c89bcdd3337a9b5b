"""Configuration loading for infraplan (.infraplan.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ConfigError

CONFIG_FILENAME = ".infraplan.yml"
DEFAULT_STORE_PATH = Path(".infraplan") / "plan.json"


@dataclass
class ClassifierConfig:
    """Decision-table override; rows are parsed by the classifier."""

    rules: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class PolicyConfig:
    """Policy rule enablement and tunables."""

    disabled: List[str] = field(default_factory=list)
    forbidden_skus: List[str] = field(default_factory=list)


@dataclass
class PlanConfig:
    """Where re-runs persist and compare plans."""

    store_path: Path = DEFAULT_STORE_PATH


@dataclass
class EngineConfig:
    """Represents the settings defined in .infraplan.yml."""

    root: Path
    catalog: Optional[Path] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    modules: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    plan: PlanConfig = field(default_factory=PlanConfig)

    @property
    def store_path(self) -> Path:
        path = self.plan.store_path
        return path if path.is_absolute() else self.root / path


def load_config(config_path: Path) -> EngineConfig:
    """Load configuration from disk, returning defaults when the file is absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return EngineConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    catalog_str = _as_str(data.get("catalog"))
    catalog = None
    if catalog_str:
        catalog = Path(catalog_str).expanduser()
        if not catalog.is_absolute():
            catalog = root / catalog

    parameters = _as_dict(data.get("parameters"), "parameters")

    modules: Dict[str, Dict[str, Any]] = {}
    for module_id, overrides in _as_dict(data.get("modules"), "modules").items():
        if not isinstance(overrides, dict):
            raise ConfigError(f"modules.{module_id} must be a mapping of parameter overrides")
        modules[str(module_id)] = {str(key): value for key, value in overrides.items()}

    classifier_data = _as_dict(data.get("classifier"), "classifier")
    classifier = ClassifierConfig()
    rules = classifier_data.get("rules")
    if rules is not None:
        if not isinstance(rules, list) or not all(isinstance(row, dict) for row in rules):
            raise ConfigError("classifier.rules must be a list of mappings")
        classifier.rules = [dict(row) for row in rules]

    policy_data = _as_dict(data.get("policy"), "policy")
    policy = PolicyConfig(
        disabled=_as_str_list(policy_data.get("disabled")),
        forbidden_skus=_as_str_list(policy_data.get("forbidden_skus")),
    )

    plan_data = _as_dict(data.get("plan"), "plan")
    plan = PlanConfig()
    store_path = _as_str(plan_data.get("store_path"))
    if store_path:
        plan.store_path = Path(store_path)

    return EngineConfig(
        root=root,
        catalog=catalog,
        parameters={str(key): value for key, value in parameters.items()},
        modules=modules,
        classifier=classifier,
        policy=policy,
        plan=plan,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _as_dict(value: Any, key: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ClassifierConfig",
    "EngineConfig",
    "PlanConfig",
    "PolicyConfig",
    "load_config",
]
