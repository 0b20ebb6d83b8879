"""Append-only JSONL audit log of issue changes.

Every line is a versioned envelope and lines are never rewritten. Each event
goes out as one ``os.write`` while holding an exclusive flock, so concurrent
invocations cannot interleave partial lines.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .jsonl import now_ms, read_jsonl
from .models import ChangeRecord, normalize_id

try:
    import fcntl
except ImportError:  # Windows: appends go unlocked
    fcntl = None  # type: ignore[assignment]

EVENT_VERSION = 1
EVENTS_FILE_NAME = "events.jsonl"


@contextmanager
def _locked_append(path: Path) -> Iterator[int]:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
    try:
        if fcntl is not None:
            fcntl.flock(fd, fcntl.LOCK_EX)
        yield fd
    finally:
        # Closing the descriptor releases the lock.
        os.close(fd)


class EventLog:
    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def from_state_dir(cls, state_dir: Path) -> EventLog:
        return cls(state_dir / EVENTS_FILE_NAME)

    def emit(
        self,
        event_type: str,
        *,
        source: str,
        payload: dict[str, Any] | None = None,
        issue_id: str | None = None,
        ts_ms: int | None = None,
    ) -> dict[str, Any]:
        body = {} if payload is None else payload
        if not isinstance(body, dict):
            raise TypeError("payload must be a dict")

        event: dict[str, Any] = {
            "v": EVENT_VERSION,
            "ts_ms": now_ms() if ts_ms is None else int(ts_ms),
            "type": event_type,
            "source": source,
        }
        if issue_id is not None:
            event["issue_id"] = issue_id
        event["payload"] = body
        self._write(event)
        return event

    def record(self, change: ChangeRecord, *, source: str) -> dict[str, Any]:
        """Log a ChangeRecord as an ``issue.<type>`` event."""
        return self.emit(
            f"issue.{change.type}",
            source=source,
            payload=change.to_dict(),
            issue_id=change.issue_id,
            ts_ms=change.changed_at,
        )

    def read(
        self,
        *,
        issue_id: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return logged events oldest first, keeping the newest ``limit``."""
        rows = read_jsonl(self.path)
        if issue_id is not None:
            wanted = normalize_id(issue_id)
            rows = [row for row in rows if row.get("issue_id") == wanted]
        if limit is None:
            return rows
        return rows[-limit:] if limit > 0 else []

    def _write(self, event: dict[str, Any]) -> None:
        data = (json.dumps(event, separators=(",", ":")) + "\n").encode("utf-8")
        with _locked_append(self.path) as fd:
            view = memoryview(data)
            while view:
                written = os.write(fd, view)
                if written <= 0:
                    raise OSError(f"short write to {self.path}")
                view = view[written:]
