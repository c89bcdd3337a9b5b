"""Expands an architecture pattern into a wired, acyclic resource graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .catalog import ModuleCatalog, ModuleTemplate, ParamSpec
from .errors import CatalogError, GraphCycleError, InvalidParameter, UnresolvedParameter
from .logging import get_logger
from .models import (
    ArchitecturePattern,
    DependencyEdge,
    FeatureSignal,
    LiteralValue,
    ModuleSpec,
    OutputRef,
    ParamRef,
    Placeholder,
    ResourceGraph,
)

logger = get_logger("builder")


@dataclass
class _Slot:
    id: str
    template: ModuleTemplate
    auto: bool = False
    params: Dict[str, ParamRef] = field(default_factory=dict)


class GraphBuilder:
    """Instantiates catalog templates for a pattern and wires their parameters."""

    def __init__(
        self,
        catalog: ModuleCatalog,
        *,
        parameters: Mapping[str, Any] | None = None,
        module_overrides: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self.catalog = catalog
        self.parameters: Dict[str, Any] = dict(parameters or {})
        self.module_overrides: Dict[str, Dict[str, Any]] = {
            module_id: dict(values) for module_id, values in (module_overrides or {}).items()
        }

    def build(
        self, pattern: ArchitecturePattern, signals: Iterable[FeatureSignal]
    ) -> ResourceGraph:
        """Instantiate the pattern's module set and return the verified graph."""
        blueprint = self.catalog.blueprint(pattern)
        present = {signal.id for signal in signals if signal.present}

        slots: List[_Slot] = []
        for entry in blueprint.entries:
            if entry.when is not None and not entry.when.matches(present):
                logger.debug("Skipping optional module %s (%s)", entry.id, entry.type)
                continue
            slots.append(_Slot(id=entry.id, template=self.catalog.lookup(entry.type)))

        self._add_static_dependencies(slots)

        first_of_type: Dict[str, str] = {}
        for slot in slots:
            first_of_type.setdefault(slot.template.type, slot.id)
        for slot in slots:
            slot.params = self._resolve_params(slot, first_of_type)
        named = self._bind_names(slots, first_of_type)

        nodes = [
            ModuleSpec(
                id=slot.id,
                type=slot.template.type,
                params=slot.params,
                produces=tuple(slot.template.outputs),
            )
            for slot in slots
        ]
        edges = self._derive_edges(nodes)
        self._check_references(nodes)
        _raise_on_cycle(nodes, edges)

        nodes, edges = self._prune(nodes, edges, keep=named)
        graph = ResourceGraph(nodes=tuple(nodes), edges=tuple(edges), pattern=pattern)
        logger.info(
            "Built %s graph with %d modules and %d edges",
            pattern.value,
            len(graph.nodes),
            len(graph.edges),
        )
        return graph

    def assemble(
        self,
        specs: Sequence[ModuleSpec],
        *,
        pattern: Optional[ArchitecturePattern] = None,
    ) -> ResourceGraph:
        """Derive edges for hand-crafted modules and verify the result."""
        seen: Set[str] = set()
        for spec in specs:
            if spec.id in seen:
                raise CatalogError(f"Duplicate module id '{spec.id}'")
            seen.add(spec.id)
            self.catalog.lookup(spec.type)
        nodes = list(specs)
        edges = self._derive_edges(nodes)
        self._check_references(nodes)
        _raise_on_cycle(nodes, edges)
        return ResourceGraph(nodes=tuple(nodes), edges=tuple(edges), pattern=pattern)

    # ------------------------------------------------------------------
    # Internal helpers

    def _add_static_dependencies(self, slots: List[_Slot]) -> None:
        index = 0
        while index < len(slots):
            slot = slots[index]
            for dependency in slot.template.depends_on:
                if any(other.template.type == dependency for other in slots):
                    continue
                clash = next((other for other in slots if other.id == dependency), None)
                if clash is not None:
                    raise CatalogError(
                        f"Cannot auto-add '{dependency}' for {slot.id}: id already used by a {clash.template.type} module"
                    )
                logger.debug("Adding static dependency %s required by %s", dependency, slot.id)
                slots.append(_Slot(id=dependency, template=self.catalog.lookup(dependency), auto=True))
            index += 1

    def _resolve_params(self, slot: _Slot, first_of_type: Mapping[str, str]) -> Dict[str, ParamRef]:
        overrides = self.module_overrides.get(slot.id, {})
        for name in overrides:
            if name not in slot.template.params:
                raise InvalidParameter(
                    slot.id, name, f"not declared by module type '{slot.template.type}'"
                )

        resolved: Dict[str, ParamRef] = {}
        for name, spec in slot.template.params.items():
            ref = self._resolve_param(slot, spec, overrides, first_of_type)
            if ref is not None:
                resolved[name] = ref
        return resolved

    def _resolve_param(
        self,
        slot: _Slot,
        spec: ParamSpec,
        overrides: Mapping[str, Any],
        first_of_type: Mapping[str, str],
    ) -> Optional[ParamRef]:
        if spec.name in overrides:
            return self._literal(slot.id, spec, overrides[spec.name])
        if spec.name in self.parameters:
            return self._literal(slot.id, spec, self.parameters[spec.name])
        if spec.name_of:
            return None

        for binding in spec.sources:
            upstream = first_of_type.get(binding.module_type)
            if upstream is not None and upstream != slot.id:
                return OutputRef(module_id=upstream, output=binding.output)

        if spec.default is not None:
            return self._default(slot.id, spec)
        if spec.required:
            if spec.sources:
                candidates = ", ".join(str(binding) for binding in spec.sources)
                raise UnresolvedParameter(
                    slot.id, spec.name, f"no module in the graph produces any of {candidates}"
                )
            return Placeholder(name=spec.name, reason="no value configured")
        return None

    def _bind_names(self, slots: Sequence[_Slot], first_of_type: Mapping[str, str]) -> Set[str]:
        """Copy the bound `name` of the first present module of a `name_of` type.

        Names are plan-time literals, so the copy adds no dependency edge.
        Returns the ids whose name was copied.
        """
        by_id = {slot.id: slot for slot in slots}
        named: Set[str] = set()
        for slot in slots:
            overrides = self.module_overrides.get(slot.id, {})
            for name, spec in slot.template.params.items():
                if not spec.name_of or name in overrides or name in self.parameters:
                    continue
                upstream = next(
                    (
                        first_of_type[module_type]
                        for module_type in spec.name_of
                        if first_of_type.get(module_type, slot.id) != slot.id
                    ),
                    None,
                )
                if upstream is None:
                    if spec.required:
                        raise UnresolvedParameter(
                            slot.id, name, "no module in the graph is of type " + ", ".join(spec.name_of)
                        )
                    continue
                bound = by_id[upstream].params.get("name")
                if isinstance(bound, LiteralValue):
                    slot.params[name] = LiteralValue(bound.value)
                else:
                    slot.params[name] = Placeholder(name=name, reason=f"name of '{upstream}' is not bound")
                named.add(upstream)
                logger.debug("Bound %s.%s to the name of %s", slot.id, name, upstream)
        return named

    def _literal(self, module_id: str, spec: ParamSpec, value: Any) -> LiteralValue:
        if spec.type == "string" and isinstance(value, (int, float)) and not isinstance(value, bool):
            # YAML reads a bare `1.2` as a number; quote it to keep exact text such as "1.10".
            value = str(value)
        if not spec.accepts(value):
            raise InvalidParameter(
                module_id, spec.name, f"expected {spec.type}, got {type(value).__name__}"
            )
        return LiteralValue(value)

    def _default(self, module_id: str, spec: ParamSpec) -> ParamRef:
        value = spec.default
        if not isinstance(value, str) or "{" not in value:
            return LiteralValue(value)
        variables = {"module_id": module_id, **self.parameters}
        try:
            return LiteralValue(value.format_map(variables))
        except KeyError as exc:
            missing = exc.args[0]
            return Placeholder(name=spec.name, reason=f"parameter '{missing}' is not configured")
        except (IndexError, ValueError) as exc:
            raise CatalogError(f"Invalid default for {module_id}.{spec.name}: {exc}") from exc

    def _derive_edges(self, nodes: Sequence[ModuleSpec]) -> List[DependencyEdge]:
        edges: List[DependencyEdge] = []
        seen: Set[Tuple[str, str, str]] = set()

        def _add(edge: DependencyEdge) -> None:
            key = (edge.dependent, edge.dependency, edge.reason)
            if key not in seen:
                seen.add(key)
                edges.append(edge)

        for node in nodes:
            for name, ref in node.references():
                _add(DependencyEdge(dependent=node.id, dependency=ref.module_id, reason=f"param:{name}"))
            for dependency_type in self.catalog.lookup(node.type).depends_on:
                for other in nodes:
                    if other.type == dependency_type and other.id != node.id:
                        _add(DependencyEdge(dependent=node.id, dependency=other.id, reason="static"))
        return edges

    def _check_references(self, nodes: Sequence[ModuleSpec]) -> None:
        by_id = {node.id: node for node in nodes}
        for node in nodes:
            for name, ref in node.references():
                upstream = by_id.get(ref.module_id)
                if upstream is None:
                    raise UnresolvedParameter(node.id, name, f"module '{ref.module_id}' is not in the graph")
                if ref.output not in upstream.produces:
                    raise UnresolvedParameter(
                        node.id, name, f"module '{ref.module_id}' does not produce '{ref.output}'"
                    )

    def _prune(
        self,
        nodes: List[ModuleSpec],
        edges: List[DependencyEdge],
        *,
        keep: Iterable[str] = (),
    ) -> Tuple[List[ModuleSpec], List[DependencyEdge]]:
        keep = set(keep)
        while True:
            depended_on = {edge.dependency for edge in edges}
            dead = {
                node.id
                for node in nodes
                if node.id not in depended_on
                and node.id not in keep
                and self.catalog.lookup(node.type).prunable
            }
            if not dead:
                break
            logger.debug("Pruning unreferenced modules: %s", ", ".join(sorted(dead)))
            nodes = [node for node in nodes if node.id not in dead]
            edges = [edge for edge in edges if edge.dependent not in dead]

        referenced: Set[Tuple[str, str]] = {
            (ref.module_id, ref.output) for node in nodes for _, ref in node.references()
        }
        pruned: List[ModuleSpec] = []
        for node in nodes:
            template = self.catalog.lookup(node.type)
            produces = tuple(
                output
                for output in node.produces
                if not template.outputs[output].optional or (node.id, output) in referenced
            )
            if produces != node.produces:
                node = ModuleSpec(id=node.id, type=node.type, params=node.params, produces=produces)
            pruned.append(node)
        return pruned, edges


def find_cycle(
    nodes: Sequence[ModuleSpec], edges: Sequence[DependencyEdge]
) -> Optional[List[str]]:
    """Depth-first search with a recursion stack; returns the first cycle found."""
    dependencies: Dict[str, List[str]] = {node.id: [] for node in nodes}
    for edge in edges:
        targets = dependencies.setdefault(edge.dependent, [])
        if edge.dependency not in targets:
            targets.append(edge.dependency)

    visited: Set[str] = set()
    stack: List[str] = []
    on_stack: Set[str] = set()

    def _visit(module_id: str) -> Optional[List[str]]:
        visited.add(module_id)
        stack.append(module_id)
        on_stack.add(module_id)
        for dependency in dependencies.get(module_id, []):
            if dependency in on_stack:
                return stack[stack.index(dependency):]
            if dependency not in visited:
                cycle = _visit(dependency)
                if cycle is not None:
                    return cycle
        stack.pop()
        on_stack.discard(module_id)
        return None

    for node in nodes:
        if node.id not in visited:
            cycle = _visit(node.id)
            if cycle is not None:
                return list(cycle)
    return None


def _raise_on_cycle(nodes: Sequence[ModuleSpec], edges: Sequence[DependencyEdge]) -> None:
    cycle = find_cycle(nodes, edges)
    if cycle is not None:
        raise GraphCycleError(cycle)


__all__ = ["GraphBuilder", "find_cycle"]
