"""Compares a freshly generated plan against a previously persisted one."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .models import PlannedModule, ProvisioningPlan


class ChangeKind(str, Enum):
    UNCHANGED = "unchanged"
    MODIFIED = "modified"
    NEW = "new"
    REMOVED = "removed"


@dataclass(frozen=True)
class ModuleChange:
    """Classification of one module id across two plans."""

    module_id: str
    kind: ChangeKind
    fields: tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"module": self.module_id, "change": self.kind.value}
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload


@dataclass
class PlanDiff:
    """Ordered list of per-module changes."""

    changes: List[ModuleChange] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any(change.kind is not ChangeKind.UNCHANGED for change in self.changes)

    def of_kind(self, kind: ChangeKind) -> List[str]:
        return [change.module_id for change in self.changes if change.kind is kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_changes": self.has_changes,
            "changes": [change.to_dict() for change in self.changes],
        }


def diff_plans(previous: Optional[ProvisioningPlan], current: ProvisioningPlan) -> PlanDiff:
    """Classify modules as unchanged, modified, new, or removed."""
    before: Dict[str, PlannedModule] = (
        {module.id: module for module in previous.modules()} if previous is not None else {}
    )
    diff = PlanDiff()
    seen = set()
    for module in current.modules():
        seen.add(module.id)
        old = before.get(module.id)
        if old is None:
            diff.changes.append(ModuleChange(module.id, ChangeKind.NEW))
            continue
        changed = _changed_fields(old, module)
        kind = ChangeKind.MODIFIED if changed else ChangeKind.UNCHANGED
        diff.changes.append(ModuleChange(module.id, kind, changed))
    for module_id in before:
        if module_id not in seen:
            diff.changes.append(ModuleChange(module_id, ChangeKind.REMOVED))
    return diff


def _changed_fields(old: PlannedModule, new: PlannedModule) -> tuple[str, ...]:
    changed: List[str] = []
    if old.type != new.type:
        changed.append("type")
    for name in sorted(set(old.params) | set(new.params)):
        if old.params.get(name) != new.params.get(name):
            changed.append(f"params.{name}")
    if old.outputs != new.outputs:
        changed.append("outputs")
    return tuple(changed)


__all__ = ["ChangeKind", "ModuleChange", "PlanDiff", "diff_plans"]
