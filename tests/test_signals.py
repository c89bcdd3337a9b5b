from __future__ import annotations

from pathlib import Path

import pytest

from infraplan.errors import SignalDocumentError
from infraplan.models import FeatureSignal
from infraplan.signals import dump_signals, load_signals, loads_signals, parse_signals


def test_record_list_is_parsed() -> None:
    parsed = parse_signals(
        [
            {"id": "uses-llm-calls", "present": True, "evidence": "openai import in api/chat.py"},
            {"id": "has-custom-backend", "present": False},
        ]
    )

    assert parsed == [
        FeatureSignal("uses-llm-calls", True, "openai import in api/chat.py"),
        FeatureSignal("has-custom-backend", False),
    ]


def test_wrapper_and_mapping_forms_are_accepted() -> None:
    wrapped = parse_signals({"signals": [{"id": "uses-kv-storage", "present": True}]})
    mapping = parse_signals({"uses-kv-storage": True, "uses-llm-calls": {"present": False}})

    assert wrapped == [FeatureSignal("uses-kv-storage", True)]
    assert mapping == [FeatureSignal("uses-kv-storage", True), FeatureSignal("uses-llm-calls", False)]


def test_repeated_consistent_signal_is_allowed() -> None:
    parsed = parse_signals({"signals": [{"id": "a", "present": True}, {"id": "a", "present": True}]})

    assert len(parsed) == 2


def test_conflicting_signal_is_rejected() -> None:
    with pytest.raises(SignalDocumentError, match="conflicting"):
        parse_signals([{"id": "a", "present": True}, {"id": "a", "present": False}])


@pytest.mark.parametrize(
    "data",
    ["uses-llm-calls", [1, 2], [{"present": True}], [{"id": "a", "present": "yes"}], {"a": 1}],
)
def test_malformed_records_are_rejected(data) -> None:
    with pytest.raises(SignalDocumentError):
        parse_signals(data)


def test_yaml_and_json_text_are_both_read() -> None:
    from_yaml = loads_signals("uses-llm-calls: true\nuses-kv-storage: false\n")
    from_json = loads_signals('[{"id": "uses-llm-calls", "present": true}]')

    assert from_yaml[0] == from_json[0]


def test_empty_document_is_rejected() -> None:
    with pytest.raises(SignalDocumentError, match="empty"):
        loads_signals("   \n")


def test_missing_file_is_reported(tmp_path: Path) -> None:
    with pytest.raises(SignalDocumentError, match="not found"):
        load_signals(tmp_path / "signals.json")


def test_dump_omits_missing_evidence() -> None:
    payload = dump_signals([FeatureSignal("a", True), FeatureSignal("b", False, "checked routes")])

    assert payload == [
        {"id": "a", "present": True},
        {"id": "b", "present": False, "evidence": "checked routes"},
    ]
