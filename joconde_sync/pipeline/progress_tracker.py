"""Import progress tracking with callback-based listener notification.

Tracks the current stage and record counts for each synchronization run
and broadcasts updates to registered listener callbacks.  Listeners are
keyed by run ID so a background sync and a foreground status query never
see each other's updates.

# ─── HOW PROGRESS TRACKING WORKS ──────────────────────────────────────
#
#   RecordParser ──on_progress(processed, total)
#        │
#   ImportEngine ──on_progress("parsing" | stage, current, total)
#        │
#   ProgressTracker.sink(run_id) ──update()──→ listeners ──→ CLI printer
#
# Progress sinks are best-effort: ``notify_progress`` logs and swallows
# any exception a sink raises, so a broken listener never aborts an
# import that may have been running for hours.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from joconde_sync.utils.logging import get_logger

PARSING_STAGE = "parsing"

_logger = get_logger(__name__)


async def notify_progress(callback: Callable | None, *args: Any) -> None:
    """Invoke a progress sink, awaiting it when it is a coroutine function.

    Sink failures are logged as ``progress_callback_error`` and swallowed.
    """
    if callback is None:
        return
    try:
        result = callback(*args)
        if asyncio.iscoroutine(result):
            await result
    except Exception as exc:
        _logger.warning(
            "progress_callback_error",
            error=str(exc),
            callback=getattr(callback, "__name__", repr(callback)),
        )


@dataclass
class _RunStatus:
    """Internal snapshot of a single run's progress."""

    stage: str = PARSING_STAGE
    current: int = 0
    total: int = 0

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return max(0.0, min(100.0, self.current * 100.0 / self.total))


class ProgressTracker:
    """Tracks and broadcasts import progress via callbacks.

    Each run is identified by the ``run_id`` of its SyncLog row.  Consumers
    register sync or async callbacks accepting
    ``(run_id, stage, current, total)``.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, _RunStatus] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(self, run_id: str, stage: str, current: int, total: int) -> None:
        """Record a progress update and notify all registered listeners."""
        self._statuses[run_id] = _RunStatus(stage=stage, current=current, total=total)

        self._logger.debug(
            "progress_update",
            run_id=run_id,
            stage=stage,
            current=current,
            total=total,
        )

        for callback in list(self._listeners.get(run_id, [])):
            await notify_progress(callback, run_id, stage, current, total)

    def sink(self, run_id: str) -> Callable:
        """Return an ``on_progress(stage, current, total)`` sink bound to *run_id*."""

        async def _on_progress(stage: str, current: int, total: int) -> None:
            await self.update(run_id, stage, current, total)

        return _on_progress

    def register_listener(self, run_id: str, callback: Callable) -> None:
        if run_id not in self._listeners:
            self._listeners[run_id] = []

        if callback not in self._listeners[run_id]:
            self._listeners[run_id].append(callback)
            self._logger.debug(
                "listener_registered",
                run_id=run_id,
                total_listeners=len(self._listeners[run_id]),
            )

    def unregister_listener(self, run_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(run_id, [])
        if callback in listeners:
            listeners.remove(callback)

    def get_status(self, run_id: str) -> dict:
        """Return the latest stage and counts for a run.

        Returns zeroed defaults when the run has not reported yet.
        """
        status = self._statuses.get(run_id) or _RunStatus()
        return {
            "stage": status.stage,
            "current": status.current,
            "total": status.total,
            "percent": round(status.percent, 1),
        }

    def forget(self, run_id: str) -> None:
        """Drop the snapshot and listeners of a finished run."""
        self._statuses.pop(run_id, None)
        self._listeners.pop(run_id, None)
