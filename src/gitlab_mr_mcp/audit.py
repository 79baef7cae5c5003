"""Structured audit logging.

One JSONL event per tool invocation, written to stderr and optionally appended to a file.
Events never contain the GitLab access token or tool argument values.
"""

from __future__ import annotations

import json
import sys
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """A single audit event."""

    timestamp: str
    correlation_id: str
    operation: str
    target_project: str | None
    outcome: str
    reason: str | None
    duration_ms: int | None


class AuditLogger:
    """Writes audit events as JSONL to stderr and optionally to a file."""

    def __init__(self, *, sink_path: Path | None) -> None:
        self._sink_path = sink_path

    def write_event(self, event: AuditEvent) -> None:
        """Write an audit event; sink failures never break tool execution."""
        payload = {k: v for k, v in asdict(event).items() if v is not None}
        line = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        print(line, file=sys.stderr)
        if self._sink_path is None:
            return
        try:
            self._sink_path.parent.mkdir(parents=True, exist_ok=True)
            with self._sink_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:  # pragma: no cover  # pylint: disable=broad-exception-caught
            return

    def measure_start(self) -> float:
        return time.monotonic()

    def measure_duration_ms(self, start: float) -> int:
        return int((time.monotonic() - start) * 1000)


def build_event(
    *,
    correlation_id: str,
    operation: str,
    target_project: str | None,
    outcome: str,
    reason: str | None = None,
    duration_ms: int | None = None,
) -> AuditEvent:
    """Construct an audit event."""
    return AuditEvent(
        timestamp=_now_rfc3339(),
        correlation_id=correlation_id,
        operation=operation,
        target_project=target_project,
        outcome=outcome,
        reason=reason,
        duration_ms=duration_ms,
    )
