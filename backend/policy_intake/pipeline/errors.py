"""
Domain-specific exception hierarchy for the policy intake pipeline.

All pipeline exceptions inherit from PipelineError so callers can
catch broadly or narrowly as needed.  Two branches matter to the
orchestrator:

    ExtractionError  — batch-fatal.  Every file in the batch is marked
                       failed and the batch is aborted.
    RecordError      — record-local.  Only the record's file is marked
                       failed; the loop continues with the next record.

Each exception carries structured context (batch ID, step name, etc.)
for logging/debugging.
"""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(
        self,
        message: str,
        *,
        batch_id: str | None = None,
        step_name: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.batch_id = batch_id
        self.step_name = step_name
        self.details = details or {}
        super().__init__(message)


# ═══════════════════════════════════════════════════════════
#  Batch-fatal
# ═══════════════════════════════════════════════════════════

class ExtractionError(PipelineError):
    """The batched extraction call could not produce records."""
    pass


class BatchSizeExceededError(ExtractionError):
    """Too many (or zero) files submitted in one batch."""

    def __init__(self, message: str, *, file_count: int = 0, limit: int = 0, **kwargs) -> None:
        self.file_count = file_count
        self.limit = limit
        super().__init__(message, **kwargs)


class UnsupportedDocumentError(ExtractionError):
    """A submitted document has a disallowed extension or is too large."""
    pass


class ExtractionTimeoutError(ExtractionError):
    """The extraction service did not answer within the hard timeout."""
    pass


class ExtractionHTTPError(ExtractionError):
    """Transport failure or non-2xx answer from the extraction service."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message, **kwargs)


class EmptyResponseError(ExtractionError):
    """The extraction service answered with an empty body."""
    pass


class MalformedResponseError(ExtractionError):
    """The extraction service answered with something other than records."""
    pass


class NoRecordsReturnedError(ExtractionError):
    """The extraction service answered with an empty record list."""
    pass


class BatchAbortedError(PipelineError):
    """
    Raised by the orchestrator after a batch-fatal failure.

    ``cause`` is the original error, normally an ExtractionError;
    ``file_statuses`` is the final per-file status list (every entry failed).
    """

    def __init__(
        self,
        message: str,
        *,
        cause: Exception,
        file_statuses: list[Any] | None = None,
        **kwargs,
    ) -> None:
        self.cause = cause
        self.file_statuses = file_statuses or []
        super().__init__(message, **kwargs)


# ═══════════════════════════════════════════════════════════
#  Record-local
# ═══════════════════════════════════════════════════════════

class RecordError(PipelineError):
    """A single extracted record could not be turned into a stored policy."""
    pass


class UnresolvedIdentityError(RecordError):
    """No strategy could determine which account owns the record."""
    pass


class InvalidRecordError(RecordError):
    """The record is structurally unusable."""

    def __init__(self, message: str, *, reasons: list[str] | None = None, **kwargs) -> None:
        self.reasons = reasons or []
        super().__init__(message, **kwargs)


class PersistenceError(RecordError):
    """Writing the policy aggregate to the store failed."""
    pass
