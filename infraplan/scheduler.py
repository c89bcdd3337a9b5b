"""Orders a validated graph into parallel execution tiers."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

from .errors import CatalogError, GraphCycleError, UnresolvedParameter
from .logging import get_logger
from .models import PlannedModule, PolicyViolation, ProvisioningPlan, ResourceGraph

logger = get_logger("scheduler")


def schedule(
    graph: ResourceGraph,
    *,
    warnings: Iterable[PolicyViolation] = (),
    catalog_version: Optional[str] = None,
) -> ProvisioningPlan:
    """Kahn's algorithm over tiers; ties inside a tier keep declaration order."""
    for node in graph.nodes:
        for name, placeholder in node.placeholders():
            detail = placeholder.reason or "placeholder was never bound"
            raise UnresolvedParameter(node.id, name, detail)

    order = {node.id: index for index, node in enumerate(graph.nodes)}
    if len(order) != len(graph.nodes):
        duplicates = sorted({node.id for node in graph.nodes if graph.ids.count(node.id) > 1})
        raise CatalogError("Duplicate module id(s) in graph: " + ", ".join(duplicates))
    pending: Dict[str, Set[str]] = {node.id: set() for node in graph.nodes}
    dependents: Dict[str, Set[str]] = {node.id: set() for node in graph.nodes}
    for edge in graph.edges:
        if edge.dependent not in pending or edge.dependency not in pending:
            raise UnresolvedParameter(
                edge.dependent, edge.reason, f"edge points at unknown module '{edge.dependency}'"
            )
        pending[edge.dependent].add(edge.dependency)
        dependents[edge.dependency].add(edge.dependent)

    tiers: List[List[str]] = []
    ready = sorted((module_id for module_id, deps in pending.items() if not deps), key=order.__getitem__)
    while ready:
        tiers.append(ready)
        for module_id in ready:
            del pending[module_id]
        released: Set[str] = set()
        for module_id in ready:
            for dependent in dependents[module_id]:
                deps = pending[dependent]
                deps.discard(module_id)
                if not deps:
                    released.add(dependent)
        ready = sorted(released, key=order.__getitem__)

    if pending:
        # Unreachable when the builder's cycle check ran; kept as a consistency check.
        residual = sorted(pending, key=order.__getitem__)
        raise GraphCycleError(residual, detail="residual modules after topological sort")

    nodes = {node.id: node for node in graph.nodes}
    plan = ProvisioningPlan(
        tiers=tuple(
            tuple(PlannedModule.from_spec(nodes[module_id]) for module_id in tier) for tier in tiers
        ),
        pattern=graph.pattern,
        catalog_version=catalog_version,
        warnings=tuple(warnings),
    )
    for index, tier in enumerate(tiers):
        logger.debug("Tier %d: %s", index, ", ".join(tier))
    logger.info("Scheduled %d modules into %d tier(s)", len(nodes), len(tiers))
    return plan


__all__ = ["schedule"]
