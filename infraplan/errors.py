"""Error kinds raised by the engine stages."""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Sequence

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .models import PolicyViolation


class InfraPlanError(RuntimeError):
    """Base class for every failure the engine reports."""

    kind = "error"


class ConfigError(InfraPlanError):
    """Raised when .infraplan.yml cannot be parsed."""

    kind = "config"


class CatalogError(InfraPlanError):
    """Raised when a catalog document is malformed or inconsistent."""

    kind = "catalog"


class UnknownModuleType(CatalogError):
    """Raised when a module type is not declared in the catalog."""

    kind = "unknown-module-type"

    def __init__(self, module_type: str) -> None:
        super().__init__(f"Unknown module type '{module_type}'")
        self.module_type = module_type


class SignalDocumentError(InfraPlanError):
    """Raised when a feature-signal document cannot be read."""

    kind = "signal-document"


class ClassificationAmbiguous(InfraPlanError):
    """Raised when no decision-table row matches the supplied signals."""

    kind = "classification-ambiguous"

    def __init__(self, signals: Mapping[str, bool], reasons: Sequence[str]) -> None:
        considered = ", ".join(
            f"{name}={'true' if present else 'false'}" for name, present in sorted(signals.items())
        ) or "(none)"
        message = f"No architecture pattern matched signals [{considered}]"
        if reasons:
            message += ": " + "; ".join(reasons)
        super().__init__(message)
        self.signals = dict(signals)
        self.reasons = list(reasons)


class InvalidParameter(InfraPlanError):
    """Raised when a configured literal does not match the declared parameter type."""

    kind = "invalid-parameter"

    def __init__(self, module_id: str, param: str, detail: str) -> None:
        super().__init__(f"Invalid value for {module_id}.{param}: {detail}")
        self.module_id = module_id
        self.param = param


class UnresolvedParameter(InfraPlanError):
    """Raised when a parameter cannot be bound to a literal or an upstream output."""

    kind = "unresolved-parameter"

    def __init__(self, module_id: str, param: str, detail: str) -> None:
        super().__init__(f"Unresolved parameter {module_id}.{param}: {detail}")
        self.module_id = module_id
        self.param = param


class GraphCycleError(InfraPlanError):
    """Raised when module dependencies form a cycle."""

    kind = "graph-cycle"

    def __init__(self, cycle: Sequence[str], *, detail: str | None = None) -> None:
        chain = " -> ".join([*cycle, cycle[0]]) if cycle else "(unknown)"
        message = f"Dependency cycle detected: {chain}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.cycle = list(cycle)


class PolicyViolationError(InfraPlanError):
    """Raised when validation reports one or more fatal policy violations."""

    kind = "policy-violation"

    def __init__(self, violations: Sequence["PolicyViolation"]) -> None:
        lines = [f"[{item.rule_id}] {item.message}" for item in violations]
        super().__init__(
            f"{len(lines)} fatal policy violation(s): " + "; ".join(lines)
        )
        self.violations = list(violations)


__all__ = [
    "CatalogError",
    "ClassificationAmbiguous",
    "ConfigError",
    "GraphCycleError",
    "InfraPlanError",
    "InvalidParameter",
    "PolicyViolationError",
    "SignalDocumentError",
    "UnknownModuleType",
    "UnresolvedParameter",
]
