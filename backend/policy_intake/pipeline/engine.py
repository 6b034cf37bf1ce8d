"""
BatchOrchestrator — drives one batch of uploaded documents end to end.

Responsibilities:
    - Track per-file status (queued → uploading → processing → completed | failed)
    - Make ONE extraction call for the whole batch
    - Run every extracted record through the record steps, sequentially
    - Retry retryable steps with exponential backoff
    - Fold each record into the success or failure list; a bad record
      never stops the batch
    - Abort the batch (every file failed) when extraction itself fails
    - Emit DuplicateEvents for updated policies
    - Return a BatchResult with per-file statuses and counts
"""

from __future__ import annotations

import asyncio
import traceback
from collections import Counter
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any, Callable, Sequence

import structlog

from policy_intake.core.config import settings
from policy_intake.core.constants import FileState, StepStatus
from policy_intake.pipeline.context import (
    BatchResult,
    DuplicateEvent,
    FileProcessingStatus,
    RecordContext,
    RecordFailure,
    StepResult,
    UploadedDocument,
)
from policy_intake.pipeline.errors import BatchAbortedError, ExtractionError, RecordError
from policy_intake.pipeline.status_board import (
    PROGRESS_DONE,
    PROGRESS_PROCESSING,
    PROGRESS_UPLOADING,
    FileStatusBoard,
)
from policy_intake.pipeline.step import PipelineStep
from policy_intake.processing import coercion
from policy_intake.processing.extraction_client import ExtractionClient
from policy_intake.processing.schemas import CanonicalPolicy

SOURCE_FILE_KEYS = ("arquivo", "nome_arquivo", "file_name", "fileName", "filename", "source_file")

ProgressCallback = Callable[[FileProcessingStatus], Any]
DuplicateCallback = Callable[[DuplicateEvent], Any]
PolicyCallback = Callable[[CanonicalPolicy], Any]


def assign_source_files(records: Sequence[Any], filenames: Sequence[str]) -> list[str | None]:
    """
    Map each record to the submitted file it came from.

    A filename carried by the record wins; otherwise records map by
    position when the counts match, or to the only file of a single-file
    batch.  Anything else stays unassigned.
    """
    by_name = {name: name for name in filenames}
    by_name.update({PurePath(name).name: name for name in filenames})

    assigned: list[str | None] = []
    for position, raw in enumerate(records):
        claimed = coercion.to_text(coercion.pick(raw, SOURCE_FILE_KEYS)) if isinstance(raw, dict) else None
        if claimed and (claimed in by_name or PurePath(claimed).name in by_name):
            assigned.append(by_name.get(claimed) or by_name[PurePath(claimed).name])
        elif len(records) == len(filenames):
            assigned.append(filenames[position])
        elif len(filenames) == 1:
            assigned.append(filenames[0])
        else:
            assigned.append(None)
    return assigned


class BatchOrchestrator:
    """
    Runs a batch of documents through extraction and the record steps.

    Usage::

        orchestrator = BatchOrchestrator(
            extraction_client=HttpExtractionClient.from_settings(),
            steps=build_record_steps(resolver, detector),
        )
        result = await orchestrator.run(documents, caller_identity=user_id)
    """

    def __init__(
        self,
        extraction_client: ExtractionClient,
        steps: list[PipelineStep],
        *,
        board: FileStatusBoard | None = None,
        clock: Callable[[], datetime] | None = None,
        retry_backoff_seconds: float | None = None,
        clear_delay_success: float | None = None,
        clear_delay_failure: float | None = None,
    ) -> None:
        self.extraction_client = extraction_client
        self.steps = steps
        self.board = board or FileStatusBoard()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.retry_backoff_seconds = (
            settings.RECORD_RETRY_BACKOFF_SECONDS if retry_backoff_seconds is None else retry_backoff_seconds
        )
        self.clear_delay_success = (
            settings.STATUS_CLEAR_DELAY_SUCCESS_SECONDS if clear_delay_success is None else clear_delay_success
        )
        self.clear_delay_failure = (
            settings.STATUS_CLEAR_DELAY_FAILURE_SECONDS if clear_delay_failure is None else clear_delay_failure
        )
        self.logger = structlog.get_logger("pipeline.orchestrator")

    async def run(
        self,
        documents: Sequence[UploadedDocument],
        caller_identity: str | None = None,
        caller_email: str | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        on_duplicate: DuplicateCallback | None = None,
        on_policy: PolicyCallback | None = None,
    ) -> BatchResult:
        """
        Process one batch.

        Raises:
            BatchAbortedError: extraction failed; every file is marked
                failed and ``file_statuses`` carries the final states.
        """
        result = BatchResult(started_at=self.clock())
        batch_id = result.batch_id
        filenames = list(dict.fromkeys(doc.filename for doc in documents))
        hashes = {doc.filename: doc.content_hash for doc in documents}
        latest: dict[str, FileProcessingStatus] = {}

        log = self.logger.bind(batch_id=batch_id, total_files=len(filenames))
        log.info("Batch started", files=filenames, caller_identity=caller_identity)

        def transition(filename: str, state: FileState, progress: int, message: str, **extra) -> None:
            snapshot = self.board.update(batch_id, filename, state=state, progress=progress, message=message, **extra)
            if snapshot is None:
                return
            latest[filename] = snapshot
            self._notify(on_progress, snapshot, log)
            if state.is_terminal:
                delay = self.clear_delay_success if state == FileState.COMPLETED else self.clear_delay_failure
                self.board.schedule_removal(batch_id, filename, delay)

        for status in self.board.start_batch(batch_id, filenames):
            latest[status.filename] = status
            self._notify(on_progress, status, log)

        # ── Extraction (one call) ─────────────────────
        for name in filenames:
            transition(name, FileState.UPLOADING, PROGRESS_UPLOADING, "Sending to extraction service")

        try:
            records = await self.extraction_client.extract(documents, owner_hint=caller_identity)
        except ExtractionError as exc:
            for name in filenames:
                transition(name, FileState.FAILED, PROGRESS_DONE, f"Extraction failed: {exc}")
            result.file_statuses = [latest[name] for name in filenames]
            log.error("Batch aborted", error=str(exc), error_type=type(exc).__name__)
            raise BatchAbortedError(
                f"Batch aborted: {exc}",
                cause=exc,
                file_statuses=result.file_statuses,
                batch_id=batch_id,
            ) from exc
        except Exception as exc:
            for name in filenames:
                transition(name, FileState.FAILED, PROGRESS_DONE, f"Unexpected error: {exc}")
            result.file_statuses = [latest[name] for name in filenames]
            log.exception("Batch crashed during extraction", error=str(exc))
            raise BatchAbortedError(
                f"Batch aborted by unexpected error: {exc}",
                cause=exc,
                file_statuses=result.file_statuses,
                batch_id=batch_id,
            ) from exc

        result.records_received = len(records)
        for name in filenames:
            transition(
                name,
                FileState.PROCESSING,
                PROGRESS_PROCESSING,
                f"Extraction returned {len(records)} policies; processing",
            )

        # ── Per-record fold ───────────────────────────
        assignments = assign_source_files(records, filenames)
        expected = Counter(name for name in assignments if name)
        handled: Counter[str] = Counter()
        saved: Counter[str] = Counter()

        for index, raw in enumerate(records):
            filename = assignments[index]
            ctx = RecordContext(
                batch_id=batch_id,
                index=index,
                raw=raw,
                source_file=filename,
                source_file_hash=hashes.get(filename) if filename else None,
                caller_identity=caller_identity,
                caller_email=caller_email,
                now=self.clock(),
            )
            record_log = log.bind(record_index=index, source_file=filename)

            failure = await self.run_steps(ctx, record_log)

            if failure is None:
                result.policies.append(ctx.policy)
                self._notify(on_policy, ctx.policy, record_log)
                if filename:
                    saved[filename] += 1
                if ctx.is_update:
                    event = DuplicateEvent(
                        policy_number=ctx.policy.policy_number,
                        existing_policy_id=ctx.policy_id,
                        display_name=ctx.policy.display_name,
                        source_file=filename,
                    )
                    result.duplicates.append(event)
                    self._notify(on_duplicate, event, record_log)
            else:
                result.failures.append(RecordFailure(
                    index=index,
                    source_file=filename,
                    step_name=failure.step_name,
                    error_type=failure.error_type or "Error",
                    message=failure.error or "",
                ))
                if filename:
                    transition(filename, FileState.FAILED, PROGRESS_DONE, f"Policy {index + 1}: {failure.error}")

            if filename:
                handled[filename] += 1
                if handled[filename] == expected[filename]:
                    transition(
                        filename,
                        FileState.COMPLETED,
                        PROGRESS_DONE,
                        f"{saved[filename]} policies saved",
                        policies_saved=saved[filename],
                    )
                else:
                    span = PROGRESS_DONE - PROGRESS_PROCESSING - 1
                    transition(
                        filename,
                        FileState.PROCESSING,
                        PROGRESS_PROCESSING + span * handled[filename] // expected[filename],
                        f"Processed {handled[filename]} of {expected[filename]} policies",
                        policies_saved=saved[filename],
                    )

        # ── Files no record mapped to ─────────────────
        for name in filenames:
            if latest[name].is_terminal:
                continue
            if result.policies:
                transition(name, FileState.COMPLETED, PROGRESS_DONE,
                           f"Processed in batch; {result.succeeded} policies saved")
            else:
                transition(name, FileState.FAILED, PROGRESS_DONE, "No policy from this batch could be saved")

        result.file_statuses = [latest[name] for name in filenames]
        result.completed_at = self.clock()

        log.info(
            "Batch finished",
            status=result.status,
            records=result.records_received,
            succeeded=result.succeeded,
            failed=result.failed,
            duplicates=len(result.duplicates),
        )
        return result

    async def run_steps(
        self,
        ctx: RecordContext,
        log: structlog.BoundLogger,
    ) -> StepResult | None:
        """
        Execute the record steps in order.

        Returns the failed StepResult, or None when every step completed.
        """
        for step in self.steps:
            result = await self._execute_with_retry(step, ctx, log)
            ctx.step_results.append(result)

            if result.status != StepStatus.COMPLETED:
                log.warning(
                    "Record skipped",
                    step_name=step.name,
                    error=result.error,
                    error_type=result.error_type,
                )
                return result

            log.debug("Step completed", step_name=step.name, duration_ms=result.duration_ms, metadata=result.metadata)
        return None

    async def _execute_with_retry(
        self,
        step: PipelineStep,
        ctx: RecordContext,
        log: structlog.BoundLogger,
    ) -> StepResult:
        """
        Execute a step.  Retryable steps are retried on ``step.retry_on``
        errors up to ``step.max_retries`` times.
        """
        max_attempts = step.max_retries + 1 if step.retryable else 1

        for attempt in range(1, max_attempts + 1):
            started_at = datetime.now(timezone.utc)
            try:
                return await step.execute(ctx)

            except RecordError as exc:
                if step.retryable and isinstance(exc, step.retry_on) and attempt < max_attempts:
                    wait_seconds = self.retry_backoff_seconds * 2 ** (attempt - 1)
                    log.warning(
                        f"Step failed (attempt {attempt}/{max_attempts}), retrying in {wait_seconds}s",
                        step_name=step.name,
                        error=str(exc),
                    )
                    await asyncio.sleep(wait_seconds)
                    continue

                return StepResult(
                    step_name=step.name,
                    status=StepStatus.FAILED,
                    started_at=started_at,
                    completed_at=datetime.now(timezone.utc),
                    error=str(exc),
                    error_type=type(exc).__name__,
                    metadata={"attempts": attempt, **exc.details},
                )

            except Exception as exc:
                # Unexpected error, never retried
                log.exception("Unexpected error in step", step_name=step.name, error=str(exc))
                return StepResult(
                    step_name=step.name,
                    status=StepStatus.FAILED,
                    started_at=started_at,
                    completed_at=datetime.now(timezone.utc),
                    error=f"Unexpected: {exc}",
                    error_type=type(exc).__name__,
                    metadata={"traceback": traceback.format_exc()},
                )

        return StepResult(
            step_name=step.name,
            status=StepStatus.FAILED,
            error="Retry loop exited unexpectedly",
        )

    def _notify(self, callback: Callable[[Any], Any] | None, payload: Any, log: structlog.BoundLogger) -> None:
        """Fire-and-forget notification; callback errors are logged only."""
        if callback is None:
            return
        try:
            callback(payload)
        except Exception as exc:
            log.warning("Notification callback raised", callback=getattr(callback, "__name__", repr(callback)), error=str(exc))
