"""Tests for the append-only event log."""

from __future__ import annotations

from pathlib import Path

import pytest

from skein.events import EVENT_VERSION, EventLog
from skein.jsonl import read_jsonl
from skein.models import ChangeRecord, PropertyChange


def test_emit_writes_versioned_envelope(tmp_path: Path) -> None:
    log = EventLog.from_state_dir(tmp_path / ".skein")
    event = log.emit("issue.note", source="cli", payload={"k": 1}, ts_ms=42)

    rows = read_jsonl(tmp_path / ".skein" / "events.jsonl")
    assert rows == [event]
    assert event == {
        "v": EVENT_VERSION,
        "ts_ms": 42,
        "type": "issue.note",
        "source": "cli",
        "payload": {"k": 1},
    }


def test_emit_rejects_non_dict_payload(tmp_path: Path) -> None:
    log = EventLog(tmp_path / "events.jsonl")
    with pytest.raises(TypeError):
        log.emit("x", source="cli", payload=["nope"])  # type: ignore[arg-type]


def test_record_and_read_filters(tmp_path: Path) -> None:
    log = EventLog(tmp_path / "events.jsonl")
    for idx, issue_id in enumerate(["aaa111", "bbb222", "aaa111"]):
        log.record(
            ChangeRecord(
                change_id=f"c{idx}",
                issue_id=issue_id,
                type="updated",
                changed_by="alice",
                changed_at=100 + idx,
                property_changes=(PropertyChange("title", "a", "b", 100 + idx),),
            ),
            source="store",
        )

    rows = log.read()
    assert [row["type"] for row in rows] == ["issue.updated"] * 3
    assert rows[0]["payload"]["property_changes"][0]["property_name"] == "title"

    only_a = log.read(issue_id="AAA111")
    assert [row["ts_ms"] for row in only_a] == [100, 102]
    assert [row["ts_ms"] for row in log.read(limit=1)] == [102]
    assert log.read(limit=0) == []


def test_read_missing_log_is_empty(tmp_path: Path) -> None:
    assert EventLog(tmp_path / "missing.jsonl").read() == []
