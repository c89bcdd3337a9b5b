"""Module catalog: versioned registry of infrastructure module templates."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

import yaml

from .classifier import SignalPredicate
from .errors import CatalogError, ConfigError, UnknownModuleType
from .logging import get_logger
from .models import ArchitecturePattern

logger = get_logger("catalog")

_PARAM_TYPES: Dict[str, Tuple[type, ...]] = {
    "string": (str,),
    "bool": (bool,),
    "int": (int,),
    "number": (int, float),
    "list": (list, tuple),
    "object": (dict,),
}


@dataclass(frozen=True)
class SourceBinding:
    """Candidate upstream output a parameter may be wired to."""

    module_type: str
    output: str

    def __str__(self) -> str:
        return f"{self.module_type}.{self.output}"


@dataclass(frozen=True)
class ParamSpec:
    """Declared module parameter."""

    name: str
    type: str = "string"
    required: bool = False
    default: Any = None
    sources: Tuple[SourceBinding, ...] = ()
    # Module types whose bound `name` this parameter copies at plan time.
    name_of: Tuple[str, ...] = ()

    def accepts(self, value: Any) -> bool:
        if self.type == "any":
            return True
        expected = _PARAM_TYPES[self.type]
        if isinstance(value, bool) and bool not in expected:
            return False
        return isinstance(value, expected)


@dataclass(frozen=True)
class OutputSpec:
    """Declared module output; optional outputs are pruned when unreferenced."""

    name: str
    type: str = "string"
    optional: bool = False


@dataclass(frozen=True)
class ModuleTemplate:
    """Catalog entry describing one module type."""

    type: str
    params: Mapping[str, ParamSpec]
    outputs: Mapping[str, OutputSpec]
    depends_on: Tuple[str, ...] = ()
    roles: Tuple[str, ...] = ()
    prunable: bool = False
    description: str = ""

    def has_role(self, role: str) -> bool:
        return role in self.roles


@dataclass(frozen=True)
class PatternEntry:
    """Module slot in a pattern; entries without a predicate are required."""

    id: str
    type: str
    when: Optional[SignalPredicate] = None

    @property
    def required(self) -> bool:
        return self.when is None


@dataclass(frozen=True)
class PatternBlueprint:
    """Required/optional module set and mandatory capability roles of a pattern."""

    pattern: ArchitecturePattern
    entries: Tuple[PatternEntry, ...]
    roles: Tuple[str, ...] = ()

    @property
    def required(self) -> List[PatternEntry]:
        return [entry for entry in self.entries if entry.required]

    @property
    def optional(self) -> List[PatternEntry]:
        return [entry for entry in self.entries if not entry.required]


@dataclass(frozen=True)
class ModuleCatalog:
    """Read-only registry keyed by module type."""

    version: str
    templates: Mapping[str, ModuleTemplate]
    patterns: Mapping[ArchitecturePattern, PatternBlueprint] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def lookup(self, module_type: str) -> ModuleTemplate:
        try:
            return self.templates[module_type]
        except KeyError:
            raise UnknownModuleType(module_type) from None

    def blueprint(self, pattern: ArchitecturePattern) -> PatternBlueprint:
        try:
            return self.patterns[pattern]
        except KeyError:
            raise CatalogError(
                f"Catalog {self.version} does not define pattern '{pattern.value}'"
            ) from None

    def signal_ids(self) -> Set[str]:
        """Signal ids referenced by pattern predicates."""
        ids: Set[str] = set()
        for blueprint in self.patterns.values():
            for entry in blueprint.entries:
                if entry.when is not None:
                    ids.update(entry.when.signal_ids())
        return ids

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, source: str = "<memory>") -> "ModuleCatalog":
        if not isinstance(data, Mapping):
            raise CatalogError(f"{source}: catalog must contain a mapping at the root")
        version = data.get("version")
        if not isinstance(version, (str, int, float)) or isinstance(version, bool):
            raise CatalogError(f"{source}: 'version' is required")

        raw_types = data.get("module_types")
        if not isinstance(raw_types, Mapping) or not raw_types:
            raise CatalogError(f"{source}: 'module_types' must be a non-empty mapping")
        templates = {
            str(name): _parse_template(str(name), raw, source) for name, raw in raw_types.items()
        }

        raw_patterns = data.get("patterns") or {}
        if not isinstance(raw_patterns, Mapping):
            raise CatalogError(f"{source}: 'patterns' must be a mapping")
        patterns: Dict[ArchitecturePattern, PatternBlueprint] = {}
        for name, raw in raw_patterns.items():
            try:
                pattern = ArchitecturePattern.parse(str(name))
            except ValueError as exc:
                raise CatalogError(f"{source}: {exc}") from exc
            patterns[pattern] = _parse_blueprint(pattern, raw, source)

        catalog = cls(
            version=str(version),
            templates=MappingProxyType(templates),
            patterns=MappingProxyType(patterns),
        )
        catalog._check_references(source)
        return catalog

    def _check_references(self, source: str) -> None:
        for template in self.templates.values():
            for dependency in template.depends_on:
                if dependency not in self.templates:
                    raise CatalogError(
                        f"{source}: module type '{template.type}' depends on unknown type '{dependency}'"
                    )
            for param in template.params.values():
                for binding in param.sources:
                    target = self.templates.get(binding.module_type)
                    if target is None:
                        raise CatalogError(
                            f"{source}: {template.type}.{param.name} sources unknown type '{binding.module_type}'"
                        )
                    if binding.output not in target.outputs:
                        raise CatalogError(
                            f"{source}: {template.type}.{param.name} sources undeclared output '{binding}'"
                        )
                for module_type in param.name_of:
                    target = self.templates.get(module_type)
                    if target is None:
                        raise CatalogError(
                            f"{source}: {template.type}.{param.name} takes the name of unknown type '{module_type}'"
                        )
                    target_name = target.params.get("name")
                    if target_name is None or target_name.name_of:
                        raise CatalogError(
                            f"{source}: {template.type}.{param.name} takes the name of '{module_type}', which has no plain 'name' param"
                        )
        for blueprint in self.patterns.values():
            for entry in blueprint.entries:
                if entry.type not in self.templates:
                    raise CatalogError(
                        f"{source}: pattern '{blueprint.pattern.value}' uses unknown type '{entry.type}'"
                    )


def load_catalog(path: Path) -> ModuleCatalog:
    """Load a catalog document from YAML (JSON is accepted as a YAML subset)."""
    path = path.expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise CatalogError(f"Catalog file not found: {path}") from None
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise CatalogError(f"Failed to parse {path.name}: {exc}") from exc
    catalog = ModuleCatalog.from_dict(data or {}, source=path.name)
    logger.debug(
        "Loaded catalog %s from %s (%d module types, %d patterns)",
        catalog.version,
        path,
        len(catalog.templates),
        len(catalog.patterns),
    )
    return catalog


def _parse_template(name: str, raw: Any, source: str) -> ModuleTemplate:
    where = f"{source}: module type '{name}'"
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise CatalogError(f"{where} must be a mapping")

    params: Dict[str, ParamSpec] = {}
    raw_params = raw.get("params") or {}
    if not isinstance(raw_params, Mapping):
        raise CatalogError(f"{where}: 'params' must be a mapping")
    for param_name, spec in raw_params.items():
        params[str(param_name)] = _parse_param(str(param_name), spec, where)

    outputs: Dict[str, OutputSpec] = {}
    raw_outputs = raw.get("outputs") or {}
    if isinstance(raw_outputs, list):
        raw_outputs = {str(item): {} for item in raw_outputs}
    if not isinstance(raw_outputs, Mapping):
        raise CatalogError(f"{where}: 'outputs' must be a list or mapping")
    for output_name, spec in raw_outputs.items():
        spec = spec or {}
        if not isinstance(spec, Mapping):
            raise CatalogError(f"{where}: output '{output_name}' must be a mapping")
        outputs[str(output_name)] = OutputSpec(
            name=str(output_name),
            type=str(spec.get("type", "string")),
            optional=bool(spec.get("optional", False)),
        )

    return ModuleTemplate(
        type=name,
        params=MappingProxyType(params),
        outputs=MappingProxyType(outputs),
        depends_on=_str_tuple(raw.get("depends_on"), f"{where}: depends_on"),
        roles=_str_tuple(raw.get("roles"), f"{where}: roles"),
        prunable=bool(raw.get("prunable", False)),
        description=str(raw.get("description", "")),
    )


def _parse_param(name: str, spec: Any, where: str) -> ParamSpec:
    if spec is None:
        spec = {}
    if isinstance(spec, str):
        spec = {"type": spec}
    if not isinstance(spec, Mapping):
        raise CatalogError(f"{where}: param '{name}' must be a mapping or type name")
    param_type = str(spec.get("type", "string"))
    if param_type != "any" and param_type not in _PARAM_TYPES:
        raise CatalogError(f"{where}: param '{name}' has unknown type '{param_type}'")
    sources: List[SourceBinding] = []
    for item in _str_tuple(spec.get("sources"), f"{where}: param '{name}' sources"):
        module_type, sep, output = item.rpartition(".")
        if not sep or not module_type or not output:
            raise CatalogError(f"{where}: param '{name}' source '{item}' must look like 'type.output'")
        sources.append(SourceBinding(module_type=module_type, output=output))
    name_of = _str_tuple(spec.get("name_of"), f"{where}: param '{name}' name_of")
    if name_of and sources:
        raise CatalogError(f"{where}: param '{name}' cannot combine 'sources' and 'name_of'")
    return ParamSpec(
        name=name,
        type=param_type,
        required=bool(spec.get("required", False)),
        default=spec.get("default"),
        sources=tuple(sources),
        name_of=name_of,
    )


def _parse_blueprint(pattern: ArchitecturePattern, raw: Any, source: str) -> PatternBlueprint:
    where = f"{source}: pattern '{pattern.value}'"
    if not isinstance(raw, Mapping):
        raise CatalogError(f"{where} must be a mapping")
    raw_modules = raw.get("modules")
    if not isinstance(raw_modules, list) or not raw_modules:
        raise CatalogError(f"{where}: 'modules' must be a non-empty list")

    entries: List[PatternEntry] = []
    seen: Set[str] = set()
    for index, item in enumerate(raw_modules):
        if not isinstance(item, Mapping) or not isinstance(item.get("type"), str):
            raise CatalogError(f"{where}: modules[{index}] needs a 'type'")
        module_type = str(item["type"])
        module_id = str(item.get("id") or module_type)
        if module_id in seen:
            raise CatalogError(f"{where}: duplicate module id '{module_id}'")
        seen.add(module_id)
        when = None
        if "when" in item:
            try:
                when = SignalPredicate.from_value(item["when"], where=f"{where}: modules[{index}].when")
            except ConfigError as exc:
                raise CatalogError(str(exc)) from exc
        entries.append(PatternEntry(id=module_id, type=module_type, when=when))

    return PatternBlueprint(
        pattern=pattern,
        entries=tuple(entries),
        roles=_str_tuple(raw.get("roles"), f"{where}: roles"),
    )


def _str_tuple(value: Any, where: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise CatalogError(f"{where} must be a string or list of strings")


__all__ = [
    "ModuleCatalog",
    "ModuleTemplate",
    "OutputSpec",
    "ParamSpec",
    "PatternBlueprint",
    "PatternEntry",
    "SourceBinding",
    "load_catalog",
]
