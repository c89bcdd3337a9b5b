"""Pipeline orchestration: classify -> build -> validate -> schedule."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .builder import GraphBuilder
from .catalog import ModuleCatalog
from .classifier import PatternClassifier
from .config import EngineConfig
from .errors import InfraPlanError, PolicyViolationError
from .logging import get_logger
from .models import (
    KNOWN_SIGNALS,
    ArchitecturePattern,
    FeatureSignal,
    ProvisioningPlan,
    ResourceGraph,
    ValidationResult,
    param_to_dict,
)
from .policy import PolicyValidator
from .scheduler import schedule
from .signals import dump_signals


class PipelineState(str, Enum):
    """Pipeline lifecycle; FAILED is reachable from every other state."""

    SIGNALS_COLLECTED = "signals-collected"
    CLASSIFIED = "classified"
    GRAPH_BUILT = "graph-built"
    VALIDATED = "validated"
    SCHEDULED = "scheduled"
    PLAN_READY = "plan-ready"
    FAILED = "failed"


_ORDER: Sequence[PipelineState] = (
    PipelineState.SIGNALS_COLLECTED,
    PipelineState.CLASSIFIED,
    PipelineState.GRAPH_BUILT,
    PipelineState.VALIDATED,
    PipelineState.SCHEDULED,
    PipelineState.PLAN_READY,
)


@dataclass
class StageFailure:
    """The stage that was being entered and the error that stopped it."""

    stage: PipelineState
    error: InfraPlanError

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "stage": self.stage.value,
            "kind": self.error.kind,
            "message": str(self.error),
        }
        if isinstance(self.error, PolicyViolationError):
            payload["violations"] = [item.to_dict() for item in self.error.violations]
        return payload


@dataclass
class PipelineResult:
    """Everything a pipeline run produced, up to the last completed stage."""

    state: PipelineState
    signals: List[FeatureSignal] = field(default_factory=list)
    pattern: Optional[ArchitecturePattern] = None
    graph: Optional[ResourceGraph] = None
    validation: Optional[ValidationResult] = None
    plan: Optional[ProvisioningPlan] = None
    failure: Optional[StageFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "state": self.state.value,
            "signals": dump_signals(self.signals),
            "pattern": self.pattern.value if self.pattern else None,
        }
        if self.graph is not None:
            payload["graph"] = graph_to_dict(self.graph)
        if self.validation is not None:
            payload["validation"] = self.validation.to_dict()
        if self.plan is not None:
            payload["plan"] = self.plan.to_dict()
        if self.failure is not None:
            payload["failure"] = self.failure.to_dict()
        return payload


class Pipeline:
    """Coordinates the engine stages for one catalog and configuration."""

    def __init__(
        self,
        catalog: ModuleCatalog,
        *,
        classifier: PatternClassifier | None = None,
        builder: GraphBuilder | None = None,
        validator: PolicyValidator | None = None,
    ) -> None:
        self.catalog = catalog
        self.classifier = classifier or PatternClassifier(
            vocabulary=set(KNOWN_SIGNALS) | catalog.signal_ids()
        )
        self.builder = builder or GraphBuilder(catalog)
        self.validator = validator or PolicyValidator(catalog)
        self.logger = get_logger("pipeline")

    @classmethod
    def from_config(cls, catalog: ModuleCatalog, config: EngineConfig) -> "Pipeline":
        vocabulary = set(KNOWN_SIGNALS) | catalog.signal_ids()
        if config.classifier.rules:
            classifier = PatternClassifier.from_rules(config.classifier.rules, vocabulary=vocabulary)
        else:
            classifier = PatternClassifier(vocabulary=vocabulary)
        builder = GraphBuilder(
            catalog,
            parameters=config.parameters,
            module_overrides=config.modules,
        )
        validator = PolicyValidator.from_config(catalog, config.policy)
        return cls(catalog, classifier=classifier, builder=builder, validator=validator)

    def run(
        self,
        signals: Iterable[FeatureSignal],
        *,
        until: PipelineState = PipelineState.PLAN_READY,
    ) -> PipelineResult:
        """Advance through the stages, stopping at `until` or the first failure."""
        if until is PipelineState.FAILED:
            raise ValueError("'failed' is not a stage that can be targeted")
        result = PipelineResult(state=PipelineState.SIGNALS_COLLECTED, signals=list(signals))
        self.logger.debug("Collected %d signals", len(result.signals))
        target_index = _ORDER.index(until)

        for stage in _ORDER[1 : target_index + 1]:
            try:
                self._advance(stage, result)
            except InfraPlanError as exc:
                self.logger.error("Stage %s failed: %s", stage.value, exc)
                result.failure = StageFailure(stage=stage, error=exc)
                result.state = PipelineState.FAILED
                return result
            result.state = stage
            self.logger.debug("Pipeline entered state %s", stage.value)
        return result

    def _advance(self, stage: PipelineState, result: PipelineResult) -> None:
        if stage is PipelineState.CLASSIFIED:
            result.pattern = self.classifier.classify(result.signals)
            self.logger.info("Classified application as %s", result.pattern.value)
        elif stage is PipelineState.GRAPH_BUILT:
            assert result.pattern is not None
            result.graph = self.builder.build(result.pattern, result.signals)
        elif stage is PipelineState.VALIDATED:
            assert result.graph is not None
            result.validation = self.validator.validate(result.graph)
            if not result.validation.ok:
                raise PolicyViolationError(result.validation.fatal)
        elif stage is PipelineState.SCHEDULED:
            assert result.graph is not None and result.validation is not None
            result.plan = schedule(
                result.graph,
                warnings=result.validation.warnings,
                catalog_version=self.catalog.version,
            )
        elif stage is PipelineState.PLAN_READY:
            self.logger.info("Plan ready with %d tier(s)", len(result.plan.tiers) if result.plan else 0)


def graph_to_dict(graph: ResourceGraph) -> Dict[str, Any]:
    return {
        "pattern": graph.pattern.value if graph.pattern else None,
        "modules": [
            {
                "id": node.id,
                "type": node.type,
                "params": {name: param_to_dict(ref) for name, ref in sorted(node.params.items())},
                "outputs": list(node.produces),
            }
            for node in graph.nodes
        ],
        "edges": [
            {"from": edge.dependent, "to": edge.dependency, "reason": edge.reason}
            for edge in graph.edges
        ],
    }


__all__ = ["Pipeline", "PipelineResult", "PipelineState", "StageFailure", "graph_to_dict"]
