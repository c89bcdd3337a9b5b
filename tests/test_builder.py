"""Tests for the graph builder."""

from __future__ import annotations

import pytest

from infraplan.builder import GraphBuilder, find_cycle
from infraplan.catalog import ModuleCatalog
from infraplan.errors import GraphCycleError, InvalidParameter, UnknownModuleType, UnresolvedParameter
from infraplan.models import ArchitecturePattern, DependencyEdge, LiteralValue, OutputRef, Placeholder

from tests._fixtures.catalogs import DEFAULT_PARAMETERS, make_catalog, module, signals


def _cycle_catalog() -> ModuleCatalog:
    return make_catalog({"svc": {"params": {"upstream": {}}, "outputs": ["out"]}})


def test_serverless_graph_wires_api_endpoint_into_frontend(builder: GraphBuilder) -> None:
    graph = builder.build(
        ArchitecturePattern.SERVERLESS_API,
        signals(uses_llm_calls=True, uses_kv_storage=True, has_custom_backend=False),
    )

    assert graph.ids == ["ai", "kv", "api", "web"]
    assert [node.type for node in graph.nodes] == [
        "ai-service",
        "kv-storage",
        "serverless-api",
        "static-web-app",
    ]
    assert graph.node("web").params["backend_url"] == OutputRef("api", "endpoint")
    assert graph.edges == (DependencyEdge("web", "api", "param:backend_url"),)


def test_static_site_has_no_backend_module(builder: GraphBuilder) -> None:
    graph = builder.build(ArchitecturePattern.STATIC_SITE, signals(has_custom_backend=False))

    assert graph.ids == ["web"]
    assert "backend_url" not in graph.node("web").params
    assert graph.edges == ()


def test_literal_defaults_are_templated(builder: GraphBuilder) -> None:
    graph = builder.build(ArchitecturePattern.STATIC_SITE, signals(has_custom_backend=False))
    web = graph.node("web")

    assert web.params["name"] == LiteralValue("demo-web")
    assert web.params["location"] == LiteralValue("eastus")
    assert web.params["https_only"] == LiteralValue(True)


def test_static_dependency_is_auto_added(builder: GraphBuilder) -> None:
    graph = builder.build(
        ArchitecturePattern.CONTAINER_STACK,
        signals(has_custom_backend=True, uses_relational_storage=True),
    )

    assert graph.ids == ["logs", "identity", "registry", "env", "db", "api", "web", "secrets-store"]
    assert DependencyEdge("api", "secrets-store", "static") in graph.edges
    assert graph.node("api").params["vault_uri"] == OutputRef("secrets-store", "vault-uri")
    assert graph.node("api").params["db_endpoint"] == OutputRef("db", "connection-endpoint")
    assert graph.node("web").params["backend_url"] == OutputRef("api", "endpoint")


def test_unreferenced_prunable_module_is_removed(builder: GraphBuilder) -> None:
    graph = builder.build(
        ArchitecturePattern.WORKFLOW_AUTOMATION, signals(needs_workflow_automation=True)
    )
    assert graph.ids == ["flow"]


def test_referenced_prunable_module_is_kept(builder: GraphBuilder) -> None:
    graph = builder.build(
        ArchitecturePattern.WORKFLOW_AUTOMATION,
        signals(needs_workflow_automation=True, uses_llm_calls=True),
    )
    assert graph.ids == ["identity", "ai", "flow"]
    assert graph.node("ai").params["data_principal"] == OutputRef("identity", "principal-id")


def test_unreferenced_optional_outputs_are_pruned(builder: GraphBuilder) -> None:
    graph = builder.build(
        ArchitecturePattern.SERVERLESS_API, signals(uses_llm_calls=True, uses_kv_storage=True)
    )
    assert graph.node("kv").produces == ("endpoint",)
    assert graph.node("ai").produces == ("endpoint",)
    assert graph.node("api").produces == ("endpoint",)


def test_missing_global_parameter_leaves_placeholder(catalog: ModuleCatalog) -> None:
    graph = GraphBuilder(catalog).build(
        ArchitecturePattern.STATIC_SITE, signals(has_custom_backend=False)
    )
    web = graph.node("web")

    assert isinstance(web.params["location"], Placeholder)
    name = web.params["name"]
    assert isinstance(name, Placeholder)
    assert "project" in name.reason


def test_module_override_takes_precedence(catalog: ModuleCatalog) -> None:
    builder = GraphBuilder(
        catalog,
        parameters=DEFAULT_PARAMETERS,
        module_overrides={"kv": {"shared_key_access": True, "name": "legacy-kv"}},
    )
    graph = builder.build(ArchitecturePattern.SERVERLESS_API, signals(uses_kv_storage=True))

    assert graph.node("kv").params["shared_key_access"] == LiteralValue(True)
    assert graph.node("kv").params["name"] == LiteralValue("legacy-kv")


def test_override_type_mismatch_is_rejected(catalog: ModuleCatalog) -> None:
    builder = GraphBuilder(
        catalog,
        parameters=DEFAULT_PARAMETERS,
        module_overrides={"kv": {"shared_key_access": "yes"}},
    )
    with pytest.raises(InvalidParameter) as excinfo:
        builder.build(ArchitecturePattern.SERVERLESS_API, signals(uses_kv_storage=True))
    assert (excinfo.value.module_id, excinfo.value.param) == ("kv", "shared_key_access")


def test_override_of_undeclared_param_is_rejected(catalog: ModuleCatalog) -> None:
    builder = GraphBuilder(catalog, module_overrides={"web": {"colour": "blue"}})
    with pytest.raises(InvalidParameter, match="not declared"):
        builder.build(ArchitecturePattern.STATIC_SITE, signals(has_custom_backend=False))


def test_required_source_without_upstream_is_unresolved() -> None:
    catalog = make_catalog(
        {
            "env": {"outputs": ["id"]},
            "app": {"params": {"env_id": {"required": True, "sources": ["env.id"]}}},
        },
        {"static-site": {"modules": [{"id": "app", "type": "app"}]}},
    )
    with pytest.raises(UnresolvedParameter) as excinfo:
        GraphBuilder(catalog).build(ArchitecturePattern.STATIC_SITE, [])
    assert (excinfo.value.module_id, excinfo.value.param) == ("app", "env_id")


def test_mutual_references_raise_cycle_error() -> None:
    builder = GraphBuilder(_cycle_catalog())
    specs = [
        module("A", "svc", ("out",), upstream="@B.out"),
        module("B", "svc", ("out",), upstream="@A.out"),
    ]

    with pytest.raises(GraphCycleError) as excinfo:
        builder.assemble(specs)

    assert excinfo.value.cycle == ["A", "B"]
    assert "A -> B -> A" in str(excinfo.value)


def test_assemble_rejects_reference_to_missing_output() -> None:
    builder = GraphBuilder(_cycle_catalog())
    specs = [
        module("A", "svc", ("out",)),
        module("B", "svc", ("out",), upstream="@A.secret"),
    ]
    with pytest.raises(UnresolvedParameter, match="does not produce 'secret'"):
        builder.assemble(specs)


def test_assemble_rejects_unknown_type() -> None:
    with pytest.raises(UnknownModuleType):
        GraphBuilder(_cycle_catalog()).assemble([module("A", "mystery")])


def test_find_cycle_returns_none_for_dag() -> None:
    nodes = [module("A", "svc"), module("B", "svc"), module("C", "svc")]
    edges = [DependencyEdge("C", "B"), DependencyEdge("B", "A"), DependencyEdge("C", "A")]
    assert find_cycle(nodes, edges) is None


def test_find_cycle_reports_only_cycle_members() -> None:
    nodes = [module("entry", "svc"), module("A", "svc"), module("B", "svc"), module("C", "svc")]
    edges = [
        DependencyEdge("entry", "A"),
        DependencyEdge("A", "B"),
        DependencyEdge("B", "C"),
        DependencyEdge("C", "A"),
    ]
    assert find_cycle(nodes, edges) == ["A", "B", "C"]


def test_build_is_deterministic(builder: GraphBuilder) -> None:
    flags = signals(has_custom_backend=True, uses_kv_storage=True, uses_llm_calls=True)
    first = builder.build(ArchitecturePattern.CONTAINER_STACK, flags)
    second = builder.build(ArchitecturePattern.CONTAINER_STACK, list(reversed(flags)))
    assert first == second


def test_api_follows_renamed_backing_services(catalog: ModuleCatalog) -> None:
    builder = GraphBuilder(
        catalog,
        parameters=DEFAULT_PARAMETERS,
        module_overrides={"ai": {"name": "corp-llm"}},
    )
    graph = builder.build(
        ArchitecturePattern.SERVERLESS_API, signals(uses_llm_calls=True, uses_kv_storage=True)
    )
    api = graph.node("api")

    assert api.params["ai_account_name"] == graph.node("ai").params["name"] == LiteralValue("corp-llm")
    assert api.params["kv_account_name"] == LiteralValue("demo-kv")


def test_name_binding_is_omitted_without_backing_service(builder: GraphBuilder) -> None:
    graph = builder.build(ArchitecturePattern.SERVERLESS_API, signals(uses_kv_storage=True))

    assert graph.ids == ["kv", "api", "web"]
    assert "ai_account_name" not in graph.node("api").params
    assert graph.node("api").params["kv_account_name"] == LiteralValue("demo-kv")


def test_name_binding_copies_unbound_name_as_placeholder(catalog: ModuleCatalog) -> None:
    graph = GraphBuilder(catalog, parameters={"location": "eastus"}).build(
        ArchitecturePattern.SERVERLESS_API, signals(uses_llm_calls=True)
    )

    copied = graph.node("api").params["ai_account_name"]
    assert isinstance(copied, Placeholder)
    assert "'ai'" in copied.reason


def test_named_prunable_module_is_kept() -> None:
    catalog = make_catalog(
        {
            "identity": {"prunable": True, "params": {"name": {"default": "{module_id}"}}},
            "app": {"params": {"identity_name": {"name_of": ["identity"]}}},
        },
        {
            "static-site": {
                "modules": [{"id": "id1", "type": "identity"}, {"id": "app", "type": "app"}]
            }
        },
    )

    graph = GraphBuilder(catalog).build(ArchitecturePattern.STATIC_SITE, [])

    assert graph.ids == ["id1", "app"]
    assert graph.node("app").params["identity_name"] == LiteralValue("id1")
    assert graph.edges == ()


def test_numeric_literal_for_string_param_is_kept_as_text(catalog: ModuleCatalog) -> None:
    builder = GraphBuilder(
        catalog,
        parameters=DEFAULT_PARAMETERS,
        module_overrides={"web": {"min_tls_version": 1.3}},
    )
    graph = builder.build(ArchitecturePattern.STATIC_SITE, [])

    assert graph.node("web").params["min_tls_version"] == LiteralValue("1.3")
