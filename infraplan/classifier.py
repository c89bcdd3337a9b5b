"""Ordered decision table mapping feature signals to an architecture pattern."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .errors import ClassificationAmbiguous, ConfigError
from .logging import get_logger
from .models import (
    BACKEND_SIGNALS,
    HAS_CUSTOM_BACKEND,
    KNOWN_SIGNALS,
    NEEDS_WORKFLOW_AUTOMATION,
    USES_COMPLEX_STORAGE,
    USES_KV_STORAGE,
    USES_LLM_CALLS,
    USES_RELATIONAL_STORAGE,
    ArchitecturePattern,
    FeatureSignal,
)

logger = get_logger("classifier")


@dataclass(frozen=True)
class SignalPredicate:
    """Conjunction of signal tests; empty groups are vacuously true."""

    all_of: Tuple[str, ...] = ()
    any_of: Tuple[str, ...] = ()
    none_of: Tuple[str, ...] = ()

    def matches(self, present: Set[str]) -> bool:
        return self.explain(present) is None

    def explain(self, present: Set[str]) -> Optional[str]:
        """Return why the predicate fails for `present`, or None when it holds."""
        missing = [name for name in self.all_of if name not in present]
        if missing:
            return "missing " + ", ".join(missing)
        if self.any_of and not any(name in present for name in self.any_of):
            return "none of " + ", ".join(self.any_of)
        blocked = [name for name in self.none_of if name in present]
        if blocked:
            return "excluded by " + ", ".join(blocked)
        return None

    def signal_ids(self) -> Set[str]:
        return {*self.all_of, *self.any_of, *self.none_of}

    @classmethod
    def from_value(cls, value: Any, *, where: str) -> "SignalPredicate":
        """Parse `signal-id`, `[ids...]` (all of), or an `all_of/any_of/none_of` mapping."""
        if value is None:
            return cls()
        if isinstance(value, str):
            return cls(all_of=(value,))
        if isinstance(value, list):
            return cls(all_of=_id_tuple(value, where))
        if isinstance(value, Mapping):
            unknown = set(value) - {"all_of", "any_of", "none_of"}
            if unknown:
                raise ConfigError(f"{where}: unsupported predicate keys {sorted(unknown)}")
            return cls(
                all_of=_id_tuple(value.get("all_of"), where),
                any_of=_id_tuple(value.get("any_of"), where),
                none_of=_id_tuple(value.get("none_of"), where),
            )
        raise ConfigError(f"{where}: predicate must be a string, list, or mapping")


@dataclass(frozen=True)
class DecisionRow:
    """One row of the decision table; the first matching row wins."""

    pattern: ArchitecturePattern
    predicate: SignalPredicate
    label: str = ""

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], index: int) -> "DecisionRow":
        where = f"classifier.rules[{index}]"
        raw_pattern = payload.get("pattern")
        if not isinstance(raw_pattern, str):
            raise ConfigError(f"{where}: 'pattern' is required")
        try:
            pattern = ArchitecturePattern.parse(raw_pattern)
        except ValueError as exc:
            raise ConfigError(f"{where}: {exc}") from exc
        predicate = SignalPredicate.from_value(
            {key: payload[key] for key in ("all_of", "any_of", "none_of") if key in payload},
            where=where,
        )
        return cls(pattern=pattern, predicate=predicate, label=str(payload.get("label", "")))


DEFAULT_DECISION_TABLE: Tuple[DecisionRow, ...] = (
    DecisionRow(
        ArchitecturePattern.WORKFLOW_AUTOMATION,
        SignalPredicate(all_of=(NEEDS_WORKFLOW_AUTOMATION,)),
        "explicit workflow automation",
    ),
    DecisionRow(
        ArchitecturePattern.CONTAINER_STACK,
        SignalPredicate(any_of=(HAS_CUSTOM_BACKEND, USES_RELATIONAL_STORAGE, USES_COMPLEX_STORAGE)),
        "custom backend or persistent relational/complex storage",
    ),
    DecisionRow(
        ArchitecturePattern.SERVERLESS_API,
        SignalPredicate(any_of=(USES_LLM_CALLS, USES_KV_STORAGE), none_of=(HAS_CUSTOM_BACKEND,)),
        "AI calls or key-value state without a custom backend",
    ),
    DecisionRow(
        ArchitecturePattern.STATIC_SITE,
        SignalPredicate(none_of=BACKEND_SIGNALS),
        "no backend signals",
    ),
)


class PatternClassifier:
    """Evaluates decision-table rows top to bottom against a signal set."""

    def __init__(
        self,
        rows: Sequence[DecisionRow] | None = None,
        *,
        vocabulary: Iterable[str] | None = None,
    ) -> None:
        self.rows: Tuple[DecisionRow, ...] = tuple(rows) if rows is not None else DEFAULT_DECISION_TABLE
        if not self.rows:
            raise ConfigError("Decision table must contain at least one row")
        known = set(vocabulary) if vocabulary is not None else set(KNOWN_SIGNALS)
        for row in self.rows:
            known.update(row.predicate.signal_ids())
        self.vocabulary: frozenset[str] = frozenset(known)

    @classmethod
    def from_rules(
        cls, rules: Sequence[Mapping[str, Any]], *, vocabulary: Iterable[str] | None = None
    ) -> "PatternClassifier":
        rows = [DecisionRow.from_mapping(row, index) for index, row in enumerate(rules)]
        return cls(rows or None, vocabulary=vocabulary)

    def normalize(self, signals: Iterable[FeatureSignal]) -> Dict[str, bool]:
        """Return `id -> present` for known signals; unknown ids are dropped."""
        result: Dict[str, bool] = {}
        for signal in signals:
            if signal.id not in self.vocabulary:
                logger.debug("Ignoring unknown signal '%s'", signal.id)
                continue
            result[signal.id] = result.get(signal.id, False) or bool(signal.present)
        return result

    def classify(self, signals: Iterable[FeatureSignal]) -> ArchitecturePattern:
        considered = self.normalize(signals)
        if not considered:
            raise ClassificationAmbiguous(considered, ["no known signals were reported"])
        present = {name for name, flag in considered.items() if flag}

        reasons: List[str] = []
        for index, row in enumerate(self.rows):
            failure = row.predicate.explain(present)
            if failure is None:
                logger.debug(
                    "Decision row %d (%s) matched -> %s",
                    index,
                    row.label or row.pattern.value,
                    row.pattern.value,
                )
                return row.pattern
            reasons.append(f"row {index} ({row.label or row.pattern.value}): {failure}")
        raise ClassificationAmbiguous(considered, reasons)


def classify(signals: Iterable[FeatureSignal]) -> ArchitecturePattern:
    """Classify using the default decision table."""
    return PatternClassifier().classify(signals)


def _id_tuple(value: Any, where: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise ConfigError(f"{where}: signal lists must contain strings")


__all__ = [
    "DEFAULT_DECISION_TABLE",
    "DecisionRow",
    "PatternClassifier",
    "SignalPredicate",
    "classify",
]
