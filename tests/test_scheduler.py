from __future__ import annotations

import pytest

from infraplan.builder import GraphBuilder
from infraplan.catalog import ModuleCatalog
from infraplan.errors import CatalogError, GraphCycleError, UnresolvedParameter
from infraplan.models import (
    ArchitecturePattern,
    DependencyEdge,
    PolicyViolation,
    ResourceGraph,
    Severity,
)
from infraplan.scheduler import schedule

from tests._fixtures.catalogs import module, signals


def _tier_ids(plan) -> list[list[str]]:
    return [[item.id for item in tier] for tier in plan.tiers]


def test_serverless_plan_has_two_tiers(builder: GraphBuilder) -> None:
    graph = builder.build(
        ArchitecturePattern.SERVERLESS_API, signals(uses_llm_calls=True, uses_kv_storage=True)
    )

    plan = schedule(graph, catalog_version="2025.06")

    assert _tier_ids(plan) == [["ai", "kv", "api"], ["web"]]
    assert plan.pattern is ArchitecturePattern.SERVERLESS_API
    assert plan.catalog_version == "2025.06"


def test_every_dependency_lands_in_an_earlier_tier(builder: GraphBuilder) -> None:
    graph = builder.build(
        ArchitecturePattern.CONTAINER_STACK,
        signals(
            has_custom_backend=True,
            uses_relational_storage=True,
            uses_llm_calls=True,
            uses_file_storage=True,
        ),
    )

    plan = schedule(graph)

    scheduled = [item.id for item in plan.modules()]
    assert sorted(scheduled) == sorted(graph.ids)
    assert len(scheduled) == len(set(scheduled))
    for edge in graph.edges:
        assert plan.tier_of(edge.dependency) < plan.tier_of(edge.dependent)


def test_container_stack_tiers_follow_dependencies(builder: GraphBuilder) -> None:
    graph = builder.build(
        ArchitecturePattern.CONTAINER_STACK,
        signals(has_custom_backend=True, uses_relational_storage=True),
    )

    plan = schedule(graph)

    assert _tier_ids(plan) == [
        ["logs", "identity"],
        ["registry", "env", "db", "secrets-store"],
        ["api"],
        ["web"],
    ]


def test_scheduling_is_deterministic(builder: GraphBuilder) -> None:
    graph = builder.build(
        ArchitecturePattern.WORKFLOW_AUTOMATION,
        signals(needs_workflow_automation=True, uses_llm_calls=True, needs_observability=True),
    )

    assert schedule(graph).to_dict() == schedule(graph).to_dict()


def test_warnings_are_carried_into_plan(builder: GraphBuilder) -> None:
    graph = builder.build(ArchitecturePattern.STATIC_SITE, [])
    warning = PolicyViolation("monitoring-sink", Severity.WARNING, "api: graph has no monitoring module", "api")

    plan = schedule(graph, warnings=[warning])

    assert plan.warnings == (warning,)


def test_placeholder_blocks_scheduling(catalog: ModuleCatalog) -> None:
    graph = GraphBuilder(catalog, parameters={"project": "demo"}).build(
        ArchitecturePattern.STATIC_SITE, []
    )

    with pytest.raises(UnresolvedParameter) as excinfo:
        schedule(graph)

    assert excinfo.value.module_id == "web"
    assert excinfo.value.param == "location"


def test_residual_cycle_is_reported() -> None:
    graph = ResourceGraph(
        nodes=(module("a", "kv-storage", ("endpoint",)), module("b", "kv-storage", ("endpoint",))),
        edges=(DependencyEdge("a", "b"), DependencyEdge("b", "a")),
    )

    with pytest.raises(GraphCycleError) as excinfo:
        schedule(graph)

    assert excinfo.value.cycle == ["a", "b"]


def test_edge_to_unknown_module_is_rejected() -> None:
    graph = ResourceGraph(
        nodes=(module("a", "kv-storage", ("endpoint",)),),
        edges=(DependencyEdge("a", "ghost", reason="param:data_principal"),),
    )

    with pytest.raises(UnresolvedParameter):
        schedule(graph)


def test_duplicate_module_ids_are_rejected() -> None:
    graph = ResourceGraph(
        nodes=(
            module("store", "kv-storage", ("endpoint",)),
            module("web", "static-web-app", ("url",)),
            module("store", "blob-storage", ("blob-endpoint",)),
        ),
        edges=(),
    )

    with pytest.raises(CatalogError, match="store"):
        schedule(graph)
