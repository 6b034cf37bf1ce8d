"""
Pipeline state objects.

    UploadedDocument       — one submitted file (bytes + name)
    FileProcessingStatus   — UI-facing progress for one file
    DuplicateEvent         — emitted when a natural-key match is updated
    StepResult             — outcome of one record step
    RecordContext          — mutable state carried through the record steps
    RecordFailure          — a record that could not be stored
    BatchResult            — aggregate outcome of one batch run
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from policy_intake.core.constants import BatchStatus, FileState
from policy_intake.ingestion.file_fingerprint import compute_content_hash
from policy_intake.processing.schemas import CanonicalPolicy


# ═══════════════════════════════════════════════════════════
#  Submitted documents
# ═══════════════════════════════════════════════════════════

@dataclass
class UploadedDocument:
    """A document submitted for extraction."""

    filename: str
    content: bytes
    content_type: str = "application/pdf"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def content_hash(self) -> str:
        return compute_content_hash(self.content)


# ═══════════════════════════════════════════════════════════
#  FileProcessingStatus
# ═══════════════════════════════════════════════════════════

@dataclass
class FileProcessingStatus:
    """
    Progress of one file within a batch run.

    Args:
        filename: Submitted filename (key within the batch).
        state: FileState value.
        progress: 0–100, never decreases within a run.
        message: Human-readable status line.
        policies_saved: Policies stored from this file so far.
    """

    batch_id: str
    filename: str
    state: FileState = FileState.QUEUED
    progress: int = 0
    message: str = "Queued"
    policies_saved: int = 0
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "filename": self.filename,
            "state": self.state.value,
            "progress": self.progress,
            "message": self.message,
            "policies_saved": self.policies_saved,
            "updated_at": self.updated_at.isoformat(),
        }


# ═══════════════════════════════════════════════════════════
#  DuplicateEvent
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DuplicateEvent:
    """A submitted policy matched one already stored and replaced it."""

    policy_number: str
    existing_policy_id: str
    display_name: str
    source_file: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "policy_number": self.policy_number,
            "existing_policy_id": self.existing_policy_id,
            "display_name": self.display_name,
            "source_file": self.source_file,
        }


# ═══════════════════════════════════════════════════════════
#  StepResult
# ═══════════════════════════════════════════════════════════

@dataclass
class StepResult:
    """Outcome of a single record step execution."""

    step_name: str
    status: str                     # StepStatus value
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    error: str | None = None
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_name": self.step_name,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "error_type": self.error_type,
            "metadata": self.metadata,
        }


# ═══════════════════════════════════════════════════════════
#  RecordContext
# ═══════════════════════════════════════════════════════════

@dataclass
class RecordContext:
    """
    Carries one extracted record through the record steps.

    Populated progressively — identity first, then the canonical
    policy, then the persistence outcome.
    """

    # ─── Set at init ───────────────────────────────────
    batch_id: str
    index: int
    raw: Any
    source_file: str | None = None
    source_file_hash: str | None = None
    caller_identity: str | None = None
    caller_email: str | None = None
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # ─── Filled by steps ───────────────────────────────
    owner_id: str | None = None
    policy: CanonicalPolicy | None = None
    policy_id: str | None = None
    is_update: bool = False

    step_results: list[StepResult] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════
#  Batch outcome
# ═══════════════════════════════════════════════════════════

@dataclass
class RecordFailure:
    """A record skipped by the batch loop."""

    index: int
    source_file: str | None
    step_name: str
    error_type: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "source_file": self.source_file,
            "step_name": self.step_name,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass
class BatchResult:
    """Final outcome of a batch run."""

    batch_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    policies: list[CanonicalPolicy] = field(default_factory=list)
    failures: list[RecordFailure] = field(default_factory=list)
    duplicates: list[DuplicateEvent] = field(default_factory=list)
    file_statuses: list[FileProcessingStatus] = field(default_factory=list)
    records_received: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def succeeded(self) -> int:
        return len(self.policies)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def status(self) -> BatchStatus:
        if not self.failures:
            return BatchStatus.COMPLETED
        if self.policies:
            return BatchStatus.PARTIALLY_COMPLETED
        return BatchStatus.FAILED

    def to_summary_dict(self) -> dict[str, Any]:
        """Compact summary for logging / task results."""
        return {
            "batch_id": self.batch_id,
            "status": self.status.value,
            "records_received": self.records_received,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "duplicates": len(self.duplicates),
            "files": [s.to_dict() for s in self.file_statuses],
            "failures": [f.to_dict() for f in self.failures],
        }
