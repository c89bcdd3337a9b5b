"""Core policy data structures and the validator that runs them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Protocol, Sequence

from ..logging import get_logger
from ..models import PolicyViolation, ResourceGraph, Severity, ValidationResult

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..catalog import ModuleCatalog
    from ..config import PolicyConfig

logger = get_logger("policy")


class PolicyRule(Protocol):
    """Protocol implemented by graph policy rules."""

    id: str
    severity: Severity
    message: str

    def check(self, graph: ResourceGraph) -> Iterable[PolicyViolation]:
        """Return violations for `graph`; must not mutate it."""


@dataclass(frozen=True)
class PredicateRule:
    """Graph-wide rule backed by a boolean predicate."""

    id: str
    predicate: Callable[[ResourceGraph], bool]
    severity: Severity
    message: str

    def check(self, graph: ResourceGraph) -> List[PolicyViolation]:
        if self.predicate(graph):
            return []
        return [PolicyViolation(rule_id=self.id, severity=self.severity, message=self.message)]


class PolicyValidator:
    """Runs every enabled rule against the full graph and collects violations."""

    def __init__(
        self,
        catalog: "ModuleCatalog",
        rules: Optional[Sequence[PolicyRule]] = None,
        *,
        disabled: Iterable[str] = (),
        forbidden_skus: Iterable[str] = (),
    ) -> None:
        if rules is None:
            from .rules import default_rules

            rules = default_rules(catalog, forbidden_skus=forbidden_skus)
        disabled_set = set(disabled)
        self.rules: List[PolicyRule] = [rule for rule in rules if rule.id not in disabled_set]
        self.catalog = catalog

    @classmethod
    def from_config(cls, catalog: "ModuleCatalog", config: "PolicyConfig") -> "PolicyValidator":
        return cls(catalog, disabled=config.disabled, forbidden_skus=config.forbidden_skus)

    def validate(self, graph: ResourceGraph) -> ValidationResult:
        result = ValidationResult()
        for rule in self.rules:
            found = list(rule.check(graph))
            if found:
                logger.debug("Rule %s reported %d violation(s)", rule.id, len(found))
            result.violations.extend(found)
        logger.info(
            "Validated graph: %d fatal, %d warning violation(s)",
            len(result.fatal),
            len(result.warnings),
        )
        return result


__all__ = ["PolicyRule", "PolicyValidator", "PredicateRule"]
