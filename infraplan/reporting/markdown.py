"""Markdown operator summary of a provisioning plan."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader

from ..differ import PlanDiff
from ..models import LiteralValue, OutputRef, ParamRef, ProvisioningPlan

_TEMPLATES_DIR = Path(__file__).parent / "templates"


def render_markdown(plan: ProvisioningPlan, *, diff: PlanDiff | None = None) -> str:
    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    template = env.get_template("plan.md.j2")
    return template.render(
        pattern=plan.pattern.value if plan.pattern else "unknown",
        catalog_version=plan.catalog_version or "unversioned",
        tiers=_tier_rows(plan),
        warnings=[item.to_dict() for item in plan.warnings],
        changes=[change.to_dict() for change in diff.changes] if diff is not None else None,
    ).strip() + "\n"


def _tier_rows(plan: ProvisioningPlan) -> List[List[Dict[str, Any]]]:
    rows: List[List[Dict[str, Any]]] = []
    for tier in plan.tiers:
        rows.append(
            [
                {
                    "id": module.id,
                    "type": module.type,
                    "bindings": [
                        (name, _describe(ref)) for name, ref in sorted(module.params.items())
                    ],
                    "outputs": ", ".join(module.outputs) or "-",
                }
                for module in tier
            ]
        )
    return rows


def _describe(ref: ParamRef) -> str:
    if isinstance(ref, OutputRef):
        return f"<- `{ref}`"
    if isinstance(ref, LiteralValue):
        return f"`{ref.value!r}`" if not isinstance(ref.value, str) else f"`{ref.value}`"
    return f"(unbound: {ref.name})"


__all__ = ["render_markdown"]
