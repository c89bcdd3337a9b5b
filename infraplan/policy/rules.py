"""Built-in policy rules reifying deployment conventions."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Tuple

from ..errors import CatalogError
from ..models import ModuleSpec, PolicyViolation, ResourceGraph, Severity

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..catalog import ModuleCatalog

ROLE_REMOTE_AUTH = "remote-auth"
ROLE_PUBLIC_ENDPOINT = "public-endpoint"
ROLE_COMPUTE = "compute"
ROLE_MONITORING = "monitoring"

MANAGED_IDENTITY = "managed-identity"
# Any of these enabled means the module accepts shared secrets (keys, admin passwords).
SHARED_SECRET_FLAGS = ("shared_key_access", "admin_user_enabled", "local_auth_enabled")
MIN_TLS_VERSION: Tuple[int, ...] = (1, 2)

_VERSION_PARTS = re.compile(r"\d+")


class _CatalogRule:
    id = ""
    severity = Severity.FATAL
    message = ""

    def __init__(self, catalog: "ModuleCatalog") -> None:
        self.catalog = catalog

    def _modules_with_role(self, graph: ResourceGraph, role: str) -> List[ModuleSpec]:
        return [node for node in graph.nodes if self.catalog.lookup(node.type).has_role(role)]

    def _violation(self, detail: str, module_id: Optional[str] = None) -> PolicyViolation:
        return PolicyViolation(
            rule_id=self.id, severity=self.severity, message=detail, module_id=module_id
        )


class IdentityAuthRule(_CatalogRule):
    """Remote-auth modules must use managed identity and never shared secrets."""

    id = "identity-auth"
    message = "Modules that authenticate remote callers must use managed identity only."

    def check(self, graph: ResourceGraph) -> List[PolicyViolation]:
        violations: List[PolicyViolation] = []
        for node in self._modules_with_role(graph, ROLE_REMOTE_AUTH):
            problems: List[str] = []
            auth_mode = node.literal("auth_mode")
            if auth_mode != MANAGED_IDENTITY:
                problems.append(f"auth_mode is {auth_mode!r}, expected '{MANAGED_IDENTITY}'")
            enabled = [flag for flag in SHARED_SECRET_FLAGS if node.literal(flag) is True]
            if enabled:
                problems.append("shared-secret auth enabled via " + ", ".join(enabled))
            if problems:
                violations.append(self._violation(f"{node.id}: " + "; ".join(problems), node.id))
        return violations


class TransportSecurityRule(_CatalogRule):
    """Publicly reachable modules must require HTTPS and TLS 1.2 or later."""

    id = "transport-security"
    message = "Public endpoints must enforce HTTPS with TLS 1.2 or newer."

    def check(self, graph: ResourceGraph) -> List[PolicyViolation]:
        violations: List[PolicyViolation] = []
        for node in self._modules_with_role(graph, ROLE_PUBLIC_ENDPOINT):
            problems: List[str] = []
            if node.literal("https_only") is not True:
                problems.append("https_only is not enabled")
            tls = node.literal("min_tls_version")
            if not _tls_at_least(tls, MIN_TLS_VERSION):
                problems.append(f"min_tls_version is {tls!r}, expected 1.2 or newer")
            if problems:
                violations.append(self._violation(f"{node.id}: " + "; ".join(problems), node.id))
        return violations


class MandatoryRolesRule(_CatalogRule):
    """Every mandatory capability role of the pattern must be provided."""

    id = "mandatory-roles"
    message = "The graph must provide every capability role its pattern requires."

    def check(self, graph: ResourceGraph) -> List[PolicyViolation]:
        if graph.pattern is None:
            return []
        try:
            blueprint = self.catalog.blueprint(graph.pattern)
        except CatalogError:
            return []
        violations: List[PolicyViolation] = []
        for role in blueprint.roles:
            if not self._modules_with_role(graph, role):
                violations.append(
                    self._violation(
                        f"{graph.pattern.value} graph has no module providing role '{role}'"
                    )
                )
        return violations


class ForbiddenSkuRule(_CatalogRule):
    """Modules must not select a SKU/plan the organisation has banned."""

    id = "forbidden-sku"
    message = "Modules must not use forbidden SKUs."

    def __init__(self, catalog: "ModuleCatalog", forbidden: Iterable[str] = ()) -> None:
        super().__init__(catalog)
        self.forbidden = {item.lower() for item in forbidden}

    def check(self, graph: ResourceGraph) -> List[PolicyViolation]:
        if not self.forbidden:
            return []
        violations: List[PolicyViolation] = []
        for node in graph.nodes:
            sku = node.literal("sku")
            if isinstance(sku, str) and sku.lower() in self.forbidden:
                violations.append(self._violation(f"{node.id}: sku '{sku}' is forbidden", node.id))
        return violations


class MonitoringSinkRule(_CatalogRule):
    """Compute modules should ship diagnostics to a monitoring module."""

    id = "monitoring-sink"
    severity = Severity.WARNING
    message = "Compute modules should send diagnostics to a monitoring module."

    def check(self, graph: ResourceGraph) -> List[PolicyViolation]:
        sinks = {node.id for node in self._modules_with_role(graph, ROLE_MONITORING)}
        violations: List[PolicyViolation] = []
        for node in self._modules_with_role(graph, ROLE_COMPUTE):
            if sinks and sinks.intersection(graph.upstream_of(node.id)):
                continue
            detail = (
                f"{node.id}: not connected to a monitoring module"
                if sinks
                else f"{node.id}: graph has no monitoring module"
            )
            violations.append(self._violation(detail, node.id))
        return violations


def default_rules(
    catalog: "ModuleCatalog", *, forbidden_skus: Iterable[str] = ()
) -> List[_CatalogRule]:
    return [
        IdentityAuthRule(catalog),
        TransportSecurityRule(catalog),
        MandatoryRolesRule(catalog),
        ForbiddenSkuRule(catalog, forbidden_skus),
        MonitoringSinkRule(catalog),
    ]


def _tls_at_least(value: Any, minimum: Tuple[int, ...]) -> bool:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return False
    parts = tuple(int(part) for part in _VERSION_PARTS.findall(value))
    if not parts:
        return False
    return parts >= minimum


__all__ = [
    "ForbiddenSkuRule",
    "IdentityAuthRule",
    "MandatoryRolesRule",
    "MonitoringSinkRule",
    "TransportSecurityRule",
    "default_rules",
]
