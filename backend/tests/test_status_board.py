"""Tests for the per-file status board."""

import asyncio

import pytest

from policy_intake.core.constants import FileState


@pytest.fixture
def started(board):
    board.start_batch("batch-1", ["a.pdf", "b.pdf"])
    return board


class TestUpdates:
    def test_start_batch_queues_every_file(self, board):
        statuses = board.start_batch("batch-1", ["a.pdf", "b.pdf"])
        assert [(s.filename, s.state, s.progress) for s in statuses] == [
            ("a.pdf", FileState.QUEUED, 0),
            ("b.pdf", FileState.QUEUED, 0),
        ]

    def test_progress_is_monotonic(self, started):
        started.update("batch-1", "a.pdf", state=FileState.PROCESSING, progress=60, message="working")
        snapshot = started.update("batch-1", "a.pdf", state=FileState.PROCESSING, progress=20, message="still working")

        assert snapshot.progress == 60
        assert snapshot.message == "still working"

    def test_terminal_forces_full_progress(self, started):
        snapshot = started.update("batch-1", "a.pdf", state=FileState.FAILED, progress=10, message="boom")
        assert snapshot.progress == 100

    def test_terminal_state_is_final(self, started):
        started.update("batch-1", "a.pdf", state=FileState.FAILED, progress=100, message="boom")
        assert started.update("batch-1", "a.pdf", state=FileState.COMPLETED, progress=100, message="ok") is None
        assert started.get("batch-1", "a.pdf").state == FileState.FAILED

    def test_unknown_file(self, started):
        assert started.update("batch-1", "zzz.pdf", state=FileState.PROCESSING, progress=50, message="") is None
        assert started.update("other", "a.pdf", state=FileState.PROCESSING, progress=50, message="") is None

    def test_policies_saved(self, started):
        snapshot = started.update(
            "batch-1", "a.pdf", state=FileState.COMPLETED, progress=100, message="done", policies_saved=3,
        )
        assert snapshot.policies_saved == 3


class TestSnapshots:
    def test_snapshots_are_copies(self, started):
        copy = started.get("batch-1", "a.pdf")
        copy.progress = 99
        assert started.get("batch-1", "a.pdf").progress == 0

    def test_all_statuses_spans_batches(self, started):
        started.start_batch("batch-2", ["c.pdf"])
        assert {s.filename for s in started.all_statuses()} == {"a.pdf", "b.pdf", "c.pdf"}
        assert [s.filename for s in started.snapshot("batch-2")] == ["c.pdf"]


class TestRemoval:
    def test_immediate_removal_without_loop(self, started):
        started.schedule_removal("batch-1", "a.pdf", 5.0)
        assert started.get("batch-1", "a.pdf") is None
        assert started.get("batch-1", "b.pdf") is not None

    def test_batch_dropped_with_its_last_file(self, started):
        started.remove("batch-1", "a.pdf")
        started.remove("batch-1", "b.pdf")
        assert started.snapshot("batch-1") == []
        assert started.all_statuses() == []

    @pytest.mark.asyncio
    async def test_delayed_removal(self, started):
        started.schedule_removal("batch-1", "a.pdf", 0.01)
        assert started.get("batch-1", "a.pdf") is not None

        await asyncio.sleep(0.05)
        assert started.get("batch-1", "a.pdf") is None
