"""Rolling per-model performance history.

Each model keeps a bounded FIFO window of attempt outcomes. Appends and
reads go through one lock so append-and-truncate is atomic and readers only
ever see immutable snapshots.
"""

from __future__ import annotations

from collections import deque
from datetime import UTC, datetime
from threading import Lock

import structlog

from tcmconsult.routing.schema import PerformanceEntry, PerformanceStats

logger = structlog.get_logger()


class PerformanceStore:
    """Bounded attempt history keyed by model id."""

    def __init__(self, window_size: int = 100):
        if window_size < 1:
            msg = f"window_size must be >= 1, got {window_size}"
            raise ValueError(msg)
        self._window_size = window_size
        self._windows: dict[str, deque[PerformanceEntry]] = {}
        self._lock = Lock()

    @property
    def window_size(self) -> int:
        return self._window_size

    def record(
        self,
        model_id: str,
        success: bool,
        latency_ms: float,
        error_type: str | None = None,
        attempt_index: int = 0,
    ) -> PerformanceEntry:
        entry = PerformanceEntry(
            model_id=model_id,
            success=success,
            latency_ms=latency_ms,
            error_type=error_type,
            attempt_index=attempt_index,
            timestamp=datetime.now(tz=UTC),
        )
        with self._lock:
            window = self._windows.get(model_id)
            if window is None:
                window = deque(maxlen=self._window_size)
                self._windows[model_id] = window
            window.append(entry)
        return entry

    def snapshot(self, model_id: str) -> tuple[PerformanceEntry, ...]:
        with self._lock:
            return tuple(self._windows.get(model_id, ()))

    def stats(self, model_id: str) -> PerformanceStats:
        entries = self.snapshot(model_id)
        total = len(entries)
        if total == 0:
            return PerformanceStats(
                model_id=model_id, total_requests=0, success_rate=0.0, average_latency_ms=0.0
            )
        successes = [e for e in entries if e.success]
        avg_latency = (
            sum(e.latency_ms for e in successes) / len(successes)
            if successes
            else sum(e.latency_ms for e in entries) / total
        )
        return PerformanceStats(
            model_id=model_id,
            total_requests=total,
            success_rate=len(successes) / total,
            average_latency_ms=avg_latency,
            recent_errors=[e.error_type for e in entries[-5:] if e.error_type],
        )

    def history_score(self, model_id: str, min_samples: int = 5) -> float:
        """0-20 ranking contribution; neutral 10 until enough samples exist."""
        stats = self.stats(model_id)
        if stats.total_requests < min_samples:
            return 10.0
        return stats.success_rate * 15 + max(0.0, 5 - stats.average_latency_ms / 2000)

    def analytics(self) -> dict:
        """Totals plus per-model stats for every model seen so far."""
        with self._lock:
            model_ids = list(self._windows)
        per_model = {model_id: self.stats(model_id) for model_id in model_ids}
        total = sum(s.total_requests for s in per_model.values())
        successes = sum(s.success_rate * s.total_requests for s in per_model.values())
        return {
            "total_requests": total,
            "success_rate": successes / total if total else 0.0,
            "models": {k: v.model_dump() for k, v in per_model.items()},
        }

    def reset(self, model_id: str | None = None) -> None:
        with self._lock:
            if model_id is None:
                self._windows.clear()
            else:
                self._windows.pop(model_id, None)
        logger.info("performance_history_reset", model=model_id or "all")
