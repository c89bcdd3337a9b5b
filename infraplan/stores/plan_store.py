"""Persistent store for the last generated provisioning plan."""

from __future__ import annotations

from datetime import UTC, datetime
import json
from pathlib import Path
from typing import Dict, Optional

from ..logging import get_logger
from ..models import ProvisioningPlan

_STORE_VERSION = 1

logger = get_logger("stores.plan")


class PlanStore:
    """Keeps one plan on disk so re-runs can be diffed against it."""

    def __init__(self, path: Path | None) -> None:
        self._path = path
        self._payload: Optional[Dict[str, object]] = None
        self._dirty = False
        if self._path is not None:
            self._load(self._path)

    def get(self) -> Optional[ProvisioningPlan]:
        if self._payload is None:
            return None
        try:
            return ProvisioningPlan.from_dict(self._payload)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring unreadable stored plan: %s", exc)
            return None

    def store(self, plan: ProvisioningPlan) -> None:
        self._payload = plan.to_dict()
        self._dirty = True

    def persist(self) -> None:
        if not self._dirty or self._path is None or self._payload is None:
            return
        payload = {
            "version": _STORE_VERSION,
            "plan": self._payload,
            "updated_at": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        self._dirty = False

    def clear(self) -> None:
        self._payload = None
        self._dirty = False
        if self._path is not None and self._path.exists():
            self._path.unlink()

    # ------------------------------------------------------------------
    # Internal helpers

    def _load(self, path: Path) -> None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read stored plan %s: %s", path, exc)
            return
        if not isinstance(data, dict) or data.get("version") != _STORE_VERSION:
            return
        plan = data.get("plan")
        if isinstance(plan, dict):
            self._payload = plan


__all__ = ["PlanStore"]
