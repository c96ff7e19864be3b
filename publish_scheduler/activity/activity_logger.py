"""Best-effort audit trail for the publish pipeline.

``ActivityLogger`` accepts activity records synchronously and writes them to
the configured sink (normally the Supabase ``user_activities`` table) in
tracked background tasks, so the dispatch pipeline never waits on, or fails
because of, the audit log.

When the sink rejects a record the failure goes to a fallback channel: an
error line on the stdlib logger plus a JSON line appended (via ``aiofiles``)
to ``<log_dir>/activity_fallback.log``.  If even that fails, ``stderr`` is
the last resort.

A lightweight in-memory ring buffer allows fast ``get_recent()`` queries
without hitting the sink.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import aiofiles

from publish_scheduler.activity.models import ActivityEntry, ActivityType
from publish_scheduler.exceptions import LogSinkError
from publish_scheduler.utils import utc_now

logger = logging.getLogger(__name__)

FALLBACK_FILENAME = "activity_fallback.log"


class ActivityLogger:
    """Fire-and-forget activity recorder.

    Parameters:
        sink: Object with an async ``record(owner_id, activity_type,
            description, metadata)`` method, or ``None`` to keep records in
            memory only.
        log_dir: Directory for the fallback file (created on first use).
        max_recent: Size of the in-memory ring buffer.
    """

    def __init__(
        self,
        sink: Any = None,
        log_dir: Union[str, Path] = "logs",
        max_recent: int = 1000,
    ) -> None:
        self.sink = sink
        self.log_dir = Path(log_dir)
        self._fallback_log = self.log_dir / FALLBACK_FILENAME

        # In-memory ring buffer for quick access
        self._recent: List[ActivityEntry] = []
        self._max_recent = max_recent

        # Track pending async tasks to prevent garbage collection
        self._pending_tasks: Set["asyncio.Task[None]"] = set()

    # ------------------------------------------------------------------
    # Core record method
    # ------------------------------------------------------------------

    def record(
        self,
        owner_id: str,
        activity_type: ActivityType,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ActivityEntry:
        """Record an activity without blocking the caller.

        Must be called from inside a running event loop.  Never raises
        because of the sink.

        Returns:
            The ``ActivityEntry`` that was queued.
        """
        entry = ActivityEntry(
            timestamp=utc_now(),
            owner_id=owner_id,
            activity_type=activity_type,
            description=description,
            metadata=metadata or {},
        )

        self._recent.append(entry)
        if len(self._recent) > self._max_recent:
            self._recent.pop(0)

        if self.sink is not None:
            task = asyncio.create_task(self._write_to_sink(entry))
            self._pending_tasks.add(task)
            task.add_done_callback(self._pending_tasks.discard)

        return entry

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_recent(
        self,
        limit: int = 20,
        owner_id: Optional[str] = None,
        activity_type: Optional[ActivityType] = None,
    ) -> List[ActivityEntry]:
        """Return recent entries from the in-memory ring buffer."""
        entries = self._recent.copy()

        if owner_id is not None:
            entries = [e for e in entries if e.owner_id == owner_id]
        if activity_type is not None:
            entries = [e for e in entries if e.activity_type == activity_type]

        return entries[-limit:]

    # ------------------------------------------------------------------
    # Flush (call before shutdown)
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        """Wait for all pending sink writes."""
        while self._pending_tasks:
            await asyncio.gather(*list(self._pending_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Private output methods
    # ------------------------------------------------------------------

    async def _write_to_sink(self, entry: ActivityEntry) -> None:
        try:
            await self.sink.record(
                entry.owner_id,
                entry.activity_type.value,
                entry.description,
                entry.metadata,
            )
        except Exception as exc:
            await self._write_fallback(entry, LogSinkError(str(exc)))

    async def _write_fallback(self, entry: ActivityEntry, error: LogSinkError) -> None:
        logger.error(
            "[ACTIVITY] Failed to record %s for owner %s: %s",
            entry.activity_type.value,
            entry.owner_id,
            error,
        )
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            line = entry.to_json() + "\n"
            async with aiofiles.open(self._fallback_log, "a", encoding="utf-8") as f:
                await f.write(line)
        except (OSError, TypeError, ValueError) as exc:
            print(
                f"[ACTIVITY] Fallback write failed: {exc}; entry: {entry.to_readable()}",
                file=sys.stderr,
            )


__all__ = [
    "ActivityLogger",
    "FALLBACK_FILENAME",
]
