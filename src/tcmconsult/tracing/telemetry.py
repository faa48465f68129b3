"""Telemetry sinks for pipeline runs.

Sinks are fire-and-forget: ``record`` never raises to the caller, so a
broken sink cannot fail a consultation.
"""

from __future__ import annotations

import abc
import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Any
from uuid import uuid4

import structlog

logger = structlog.get_logger()


def _json_safe(value: Any) -> Any:
    """Convert nested values into JSON-serializable primitives."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    if hasattr(value, "model_dump"):
        try:
            return _json_safe(value.model_dump(mode="json"))
        except Exception:
            return str(value)
    return str(value)


class TelemetrySink(abc.ABC):
    @abc.abstractmethod
    def record(self, event: str, payload: dict[str, Any] | None = None) -> None:
        """Record one event. Implementations must not raise."""


class NullTelemetrySink(TelemetrySink):
    def record(self, event: str, payload: dict[str, Any] | None = None) -> None:
        return None


class InMemoryTelemetrySink(TelemetrySink):
    """Keeps events in a list; used by tests and the CLI dry run."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self._lock = Lock()

    def record(self, event: str, payload: dict[str, Any] | None = None) -> None:
        with self._lock:
            self.events.append({"event": event, "payload": _json_safe(payload or {})})


class JsonlTelemetrySink(TelemetrySink):
    """Append-only JSONL telemetry writer."""

    def __init__(self, path: Path, session_id: str | None = None):
        self.path = Path(path)
        self.session_id = session_id or f"tcm-{datetime.now(tz=UTC):%Y%m%d-%H%M%S}-{uuid4().hex[:8]}"
        self._lock = Lock()

    def record(self, event: str, payload: dict[str, Any] | None = None) -> None:
        """Append one event to the telemetry file. Never raises to caller."""
        try:
            entry = {
                "ts": datetime.now(tz=UTC).isoformat(),
                "session_id": self.session_id,
                "event": event,
                "payload": _json_safe(payload or {}),
            }
            line = json.dumps(entry, ensure_ascii=False)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except Exception:
            logger.warning(
                "telemetry_write_failed",
                session_id=self.session_id,
                path=str(self.path),
                event=event,
                exc_info=True,
            )


def emit(sink: TelemetrySink, event: str, payload: dict[str, Any]) -> None:
    """Record through any sink, shielding the caller from faulty implementations."""
    try:
        sink.record(event, payload)
    except Exception:
        logger.warning("telemetry_sink_raised", sink=type(sink).__name__, event=event, exc_info=True)


async def emit_async(sink: TelemetrySink, event: str, payload: dict[str, Any]) -> None:
    """``emit`` on a worker thread so file sinks never block the event loop."""
    await asyncio.to_thread(emit, sink, event, payload)
