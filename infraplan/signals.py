"""Reading feature-signal documents produced by an application analyzer."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from .errors import SignalDocumentError
from .models import FeatureSignal


def parse_signals(data: Any) -> List[FeatureSignal]:
    """Accept a record list, a `{"signals": [...]}` wrapper, or an `id -> bool` mapping."""
    if isinstance(data, Mapping) and "signals" in data:
        data = data["signals"]

    records: List[FeatureSignal] = []
    if isinstance(data, Mapping):
        for key, value in data.items():
            records.append(_from_mapping_entry(str(key), value))
    elif isinstance(data, list):
        for index, item in enumerate(data):
            records.append(_from_record(item, index))
    else:
        raise SignalDocumentError("Signal document must be a list of records or a mapping")

    seen: Dict[str, bool] = {}
    for signal in records:
        previous = seen.get(signal.id)
        if previous is not None and previous != signal.present:
            raise SignalDocumentError(f"Signal '{signal.id}' is reported with conflicting values")
        seen[signal.id] = signal.present
    return records


def loads_signals(text: str) -> List[FeatureSignal]:
    if not text.strip():
        raise SignalDocumentError("Signal document is empty")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SignalDocumentError(f"Failed to parse signal document: {exc}") from exc
    return parse_signals(data)


def load_signals(path: Path) -> List[FeatureSignal]:
    try:
        text = path.expanduser().read_text(encoding="utf-8")
    except FileNotFoundError:
        raise SignalDocumentError(f"Signal document not found: {path}") from None
    return loads_signals(text)


def dump_signals(signals: List[FeatureSignal]) -> List[Dict[str, Any]]:
    payload: List[Dict[str, Any]] = []
    for signal in signals:
        record: Dict[str, Any] = {"id": signal.id, "present": signal.present}
        if signal.evidence:
            record["evidence"] = signal.evidence
        payload.append(record)
    return payload


def _from_record(item: Any, index: int) -> FeatureSignal:
    if not isinstance(item, Mapping):
        raise SignalDocumentError(f"signals[{index}] must be a mapping")
    signal_id = item.get("id")
    if not isinstance(signal_id, str) or not signal_id.strip():
        raise SignalDocumentError(f"signals[{index}] needs a string 'id'")
    present = item.get("present")
    if not isinstance(present, bool):
        raise SignalDocumentError(f"signals[{index}] ('{signal_id}') needs a boolean 'present'")
    evidence = item.get("evidence")
    if evidence is not None and not isinstance(evidence, str):
        evidence = str(evidence)
    return FeatureSignal(id=signal_id.strip(), present=present, evidence=evidence)


def _from_mapping_entry(key: str, value: Any) -> FeatureSignal:
    if isinstance(value, bool):
        return FeatureSignal(id=key, present=value)
    if isinstance(value, Mapping):
        return _from_record({"id": key, **value}, 0)
    raise SignalDocumentError(f"Signal '{key}' must map to a boolean or a record")


__all__ = ["dump_signals", "load_signals", "loads_signals", "parse_signals"]
