"""
File status board — per-file progress for running batches.

The orchestrator is the only writer.  Readers (the status endpoint, UI
callbacks) get snapshots.  Progress never goes down within a batch and a
file that reached a terminal state stays there; terminal entries are
removed after a delay so a client polling for status still sees the
final state for a moment.

Progress stages:
    queued        0
    uploading    10
    processing   50 → 99  (per-record advance)
    terminal    100
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone

from policy_intake.core.constants import FileState
from policy_intake.core.logging import get_logger
from policy_intake.pipeline.context import FileProcessingStatus

logger = get_logger(__name__)

PROGRESS_QUEUED = 0
PROGRESS_UPLOADING = 10
PROGRESS_PROCESSING = 50
PROGRESS_DONE = 100


class FileStatusBoard:
    """Statuses keyed by (batch_id, filename)."""

    def __init__(self) -> None:
        self._statuses: dict[str, dict[str, FileProcessingStatus]] = {}

    # ─── Writes ────────────────────────────────────────

    def start_batch(self, batch_id: str, filenames: list[str]) -> list[FileProcessingStatus]:
        self._statuses[batch_id] = {
            name: FileProcessingStatus(batch_id=batch_id, filename=name)
            for name in filenames
        }
        return self.snapshot(batch_id)

    def update(
        self,
        batch_id: str,
        filename: str,
        *,
        state: FileState,
        progress: int,
        message: str,
        policies_saved: int | None = None,
    ) -> FileProcessingStatus | None:
        """
        Apply a transition and return a snapshot of the new status.

        Returns None when the file is unknown or already terminal.
        """
        current = self._statuses.get(batch_id, {}).get(filename)
        if current is None or current.is_terminal:
            return None

        current.state = state
        current.progress = max(current.progress, min(progress, PROGRESS_DONE))
        if state.is_terminal:
            current.progress = PROGRESS_DONE
        current.message = message
        if policies_saved is not None:
            current.policies_saved = policies_saved
        current.updated_at = datetime.now(timezone.utc)
        return replace(current)

    def schedule_removal(self, batch_id: str, filename: str, delay_seconds: float) -> None:
        """Drop the entry after ``delay_seconds`` (needs a running loop)."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.remove(batch_id, filename)
            return
        loop.call_later(delay_seconds, self.remove, batch_id, filename)

    def remove(self, batch_id: str, filename: str) -> None:
        files = self._statuses.get(batch_id)
        if files is None:
            return
        files.pop(filename, None)
        if not files:
            del self._statuses[batch_id]

    # ─── Reads ─────────────────────────────────────────

    def get(self, batch_id: str, filename: str) -> FileProcessingStatus | None:
        status = self._statuses.get(batch_id, {}).get(filename)
        return replace(status) if status else None

    def snapshot(self, batch_id: str) -> list[FileProcessingStatus]:
        return [replace(s) for s in self._statuses.get(batch_id, {}).values()]

    def all_statuses(self) -> list[FileProcessingStatus]:
        return [replace(s) for files in self._statuses.values() for s in files.values()]


# Process-wide board shared by the API and inline batch runs
status_board = FileStatusBoard()
