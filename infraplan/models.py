"""Core data models shared across infraplan components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

# Signal vocabulary understood by the default decision table and standard catalog.
USES_LLM_CALLS = "uses-llm-calls"
USES_KV_STORAGE = "uses-kv-storage"
USES_RELATIONAL_STORAGE = "uses-relational-storage"
USES_COMPLEX_STORAGE = "uses-complex-storage"
USES_FILE_STORAGE = "uses-file-storage"
USES_VECTOR_SEARCH = "uses-vector-search"
HAS_CUSTOM_BACKEND = "has-custom-backend"
NEEDS_WORKFLOW_AUTOMATION = "needs-workflow-automation"
NEEDS_OBSERVABILITY = "needs-observability"

KNOWN_SIGNALS: Tuple[str, ...] = (
    USES_LLM_CALLS,
    USES_KV_STORAGE,
    USES_RELATIONAL_STORAGE,
    USES_COMPLEX_STORAGE,
    USES_FILE_STORAGE,
    USES_VECTOR_SEARCH,
    HAS_CUSTOM_BACKEND,
    NEEDS_WORKFLOW_AUTOMATION,
    NEEDS_OBSERVABILITY,
)

# Signals that imply the application needs something beyond static hosting.
BACKEND_SIGNALS: Tuple[str, ...] = tuple(
    name for name in KNOWN_SIGNALS if name != NEEDS_OBSERVABILITY
)

PLAN_FORMAT_VERSION = 1


@dataclass(frozen=True)
class FeatureSignal:
    """Boolean fact about the source application reported by an analyzer."""

    id: str
    present: bool
    evidence: Optional[str] = None


class ArchitecturePattern(str, Enum):
    """Closed set of deployment architectures the engine can select."""

    STATIC_SITE = "static-site"
    CONTAINER_STACK = "container-stack"
    SERVERLESS_API = "serverless-api"
    WORKFLOW_AUTOMATION = "workflow-automation"

    @classmethod
    def parse(cls, value: str) -> "ArchitecturePattern":
        normalized = value.strip().lower().replace("_", "-")
        for member in cls:
            if normalized in {member.value, member.name.lower().replace("_", "-")}:
                return member
        raise ValueError(f"Unknown architecture pattern '{value}'")


@dataclass(frozen=True)
class LiteralValue:
    """Parameter bound to a concrete value."""

    value: Any


@dataclass(frozen=True)
class OutputRef:
    """Parameter bound to an output of another module."""

    module_id: str
    output: str

    def __str__(self) -> str:
        return f"{self.module_id}.{self.output}"

    @classmethod
    def parse(cls, text: str) -> "OutputRef":
        module_id, sep, output = text.rpartition(".")
        if not sep or not module_id or not output:
            raise ValueError(f"Output reference must look like 'module.output', got '{text}'")
        return cls(module_id=module_id, output=output)


@dataclass(frozen=True)
class Placeholder:
    """Parameter that still needs a value before scheduling."""

    name: str
    reason: str = ""


ParamRef = Union[LiteralValue, OutputRef, Placeholder]


def param_to_dict(ref: ParamRef) -> Dict[str, Any]:
    if isinstance(ref, OutputRef):
        return {"ref": str(ref)}
    if isinstance(ref, Placeholder):
        payload: Dict[str, Any] = {"placeholder": ref.name}
        if ref.reason:
            payload["reason"] = ref.reason
        return payload
    return {"value": ref.value}


def param_from_dict(payload: Mapping[str, Any]) -> ParamRef:
    if "ref" in payload:
        return OutputRef.parse(str(payload["ref"]))
    if "placeholder" in payload:
        return Placeholder(name=str(payload["placeholder"]), reason=str(payload.get("reason", "")))
    if "value" in payload:
        return LiteralValue(payload["value"])
    raise ValueError(f"Unrecognised parameter payload: {dict(payload)!r}")


@dataclass(frozen=True)
class ModuleSpec:
    """One infrastructure module instance inside a resource graph."""

    id: str
    type: str
    params: Dict[str, ParamRef] = field(default_factory=dict)
    produces: Tuple[str, ...] = ()

    def references(self) -> Iterator[Tuple[str, OutputRef]]:
        """Yield `(param, ref)` for every parameter bound to another module's output."""
        for name, ref in self.params.items():
            if isinstance(ref, OutputRef):
                yield name, ref

    def placeholders(self) -> Iterator[Tuple[str, Placeholder]]:
        for name, ref in self.params.items():
            if isinstance(ref, Placeholder):
                yield name, ref

    def literal(self, name: str, default: Any = None) -> Any:
        """Return the literal value bound to `name`, or `default`."""
        ref = self.params.get(name)
        if isinstance(ref, LiteralValue):
            return ref.value
        return default


@dataclass(frozen=True)
class DependencyEdge:
    """`dependency` must be realized before `dependent` can bind its parameters."""

    dependent: str
    dependency: str
    reason: str = "static"


@dataclass(frozen=True)
class ResourceGraph:
    """Dependency-annotated module instances for one provisioning request."""

    nodes: Tuple[ModuleSpec, ...]
    edges: Tuple[DependencyEdge, ...]
    pattern: Optional[ArchitecturePattern] = None

    @property
    def ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def node(self, module_id: str) -> ModuleSpec:
        for node in self.nodes:
            if node.id == module_id:
                return node
        raise KeyError(module_id)

    def dependencies_of(self, module_id: str) -> List[str]:
        return _unique(edge.dependency for edge in self.edges if edge.dependent == module_id)

    def dependents_of(self, module_id: str) -> List[str]:
        return _unique(edge.dependent for edge in self.edges if edge.dependency == module_id)

    def upstream_of(self, module_id: str) -> List[str]:
        """Every module `module_id` depends on, directly or transitively."""
        found: List[str] = []
        frontier = self.dependencies_of(module_id)
        while frontier:
            current = frontier.pop(0)
            if current in found or current == module_id:
                continue
            found.append(current)
            frontier.extend(self.dependencies_of(current))
        return found


class Severity(str, Enum):
    """How a policy violation affects plan production."""

    FATAL = "fatal"
    WARNING = "warning"


@dataclass(frozen=True)
class PolicyViolation:
    """A single rule failure, optionally attributed to one module."""

    rule_id: str
    severity: Severity
    message: str
    module_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule_id,
            "severity": self.severity.value,
            "message": self.message,
            "module": self.module_id,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PolicyViolation":
        module = payload.get("module")
        return cls(
            rule_id=str(payload["rule"]),
            severity=Severity(str(payload.get("severity", Severity.WARNING.value))),
            message=str(payload.get("message", "")),
            module_id=str(module) if module is not None else None,
        )


@dataclass
class ValidationResult:
    """Collected policy violations for one graph."""

    violations: List[PolicyViolation] = field(default_factory=list)

    @property
    def fatal(self) -> List[PolicyViolation]:
        return [item for item in self.violations if item.severity is Severity.FATAL]

    @property
    def warnings(self) -> List[PolicyViolation]:
        return [item for item in self.violations if item.severity is Severity.WARNING]

    @property
    def ok(self) -> bool:
        return not self.fatal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "violations": [item.to_dict() for item in self.violations],
        }


@dataclass(frozen=True)
class PlannedModule:
    """Module entry in a provisioning plan, as handed to the apply executor."""

    id: str
    type: str
    params: Dict[str, ParamRef]
    outputs: Tuple[str, ...]

    @classmethod
    def from_spec(cls, spec: ModuleSpec) -> "PlannedModule":
        return cls(id=spec.id, type=spec.type, params=dict(spec.params), outputs=tuple(spec.produces))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "params": {name: param_to_dict(ref) for name, ref in sorted(self.params.items())},
            "outputs": list(self.outputs),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PlannedModule":
        params_payload = payload.get("params") or {}
        if not isinstance(params_payload, Mapping):
            raise ValueError(f"Module '{payload.get('id')}' params must be a mapping")
        return cls(
            id=str(payload["id"]),
            type=str(payload["type"]),
            params={str(name): param_from_dict(value) for name, value in params_payload.items()},
            outputs=tuple(str(item) for item in payload.get("outputs") or []),
        )


@dataclass(frozen=True)
class ProvisioningPlan:
    """Tiered execution order; modules inside a tier may run concurrently."""

    tiers: Tuple[Tuple[PlannedModule, ...], ...]
    pattern: Optional[ArchitecturePattern] = None
    catalog_version: Optional[str] = None
    warnings: Tuple[PolicyViolation, ...] = ()

    def modules(self) -> Iterator[PlannedModule]:
        for tier in self.tiers:
            yield from tier

    def module(self, module_id: str) -> PlannedModule:
        for module in self.modules():
            if module.id == module_id:
                return module
        raise KeyError(module_id)

    def tier_of(self, module_id: str) -> int:
        for index, tier in enumerate(self.tiers):
            if any(module.id == module_id for module in tier):
                return index
        raise KeyError(module_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format_version": PLAN_FORMAT_VERSION,
            "pattern": self.pattern.value if self.pattern else None,
            "catalog_version": self.catalog_version,
            "tiers": [[module.to_dict() for module in tier] for tier in self.tiers],
            "warnings": [item.to_dict() for item in self.warnings],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ProvisioningPlan":
        tiers_payload = payload.get("tiers")
        if not isinstance(tiers_payload, list):
            raise ValueError("Plan document must contain a list of tiers")
        pattern = payload.get("pattern")
        version = payload.get("catalog_version")
        return cls(
            tiers=tuple(
                tuple(PlannedModule.from_dict(item) for item in tier) for tier in tiers_payload
            ),
            pattern=ArchitecturePattern.parse(str(pattern)) if pattern else None,
            catalog_version=str(version) if version is not None else None,
            warnings=tuple(PolicyViolation.from_dict(item) for item in payload.get("warnings") or []),
        )


def _unique(values: Iterator[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen
