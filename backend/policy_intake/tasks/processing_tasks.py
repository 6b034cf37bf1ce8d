"""
Celery tasks — queued policy batches.

The upload endpoint stores the PDFs under UPLOAD_DIR and hands their paths
to ``process_policy_batch``; the worker runs the same BatchOrchestrator as
the inline endpoint.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import structlog

from policy_intake.core.config import settings
from policy_intake.db.session import make_session_factory
from policy_intake.pipeline.context import BatchResult, UploadedDocument
from policy_intake.pipeline.engine import BatchOrchestrator
from policy_intake.pipeline.errors import BatchAbortedError
from policy_intake.pipeline.flow_resolver import build_orchestrator
from policy_intake.tasks import celery_app

logger = structlog.get_logger("tasks.processing")


@asynccontextmanager
async def _orchestrator_scope() -> AsyncIterator[BatchOrchestrator]:
    """Orchestrator on a fresh engine (the worker's loop is not the app's)."""
    engine, factory = make_session_factory(settings.DATABASE_URL)
    try:
        yield build_orchestrator(factory)
    finally:
        await engine.dispose()


async def _run_batch(
    documents: list[UploadedDocument],
    caller_identity: str | None,
    caller_email: str | None,
) -> BatchResult:
    async with _orchestrator_scope() as orchestrator:
        return await orchestrator.run(documents, caller_identity=caller_identity, caller_email=caller_email)


def load_documents(files: list[dict]) -> list[UploadedDocument]:
    """Read the stored uploads described by ``{"filename", "path", "content_type"}``."""
    documents = []
    for entry in files:
        path = Path(entry["path"])
        documents.append(UploadedDocument(
            filename=entry.get("filename") or path.name,
            content=path.read_bytes(),
            content_type=entry.get("content_type") or "application/pdf",
        ))
    return documents


def discard_stored_files(files: list[dict]) -> None:
    """Delete the stored uploads, then their batch directories once empty."""
    directories = set()
    for entry in files:
        path = Path(entry["path"])
        path.unlink(missing_ok=True)
        directories.add(path.parent)
    for directory in directories:
        if directory.is_dir() and not any(directory.iterdir()):
            directory.rmdir()


@celery_app.task(bind=True, name="policy_intake.tasks.processing_tasks.process_policy_batch")
def process_policy_batch(
    self,
    files: list[dict],
    caller_identity: str | None = None,
    caller_email: str | None = None,
):
    """
    Process a stored batch of policy PDFs.

    Returns the batch summary.  A batch aborted by the extraction service
    is reported as a failed summary rather than retried.  The stored
    uploads are deleted once read.
    """
    task_log = logger.bind(
        task_id=self.request.id,
        files=[entry.get("filename") for entry in files],
        caller_identity=caller_identity,
    )
    task_log.info("Policy batch task started")

    try:
        documents = load_documents(files)
    finally:
        discard_stored_files(files)

    try:
        result = asyncio.run(_run_batch(documents, caller_identity, caller_email))
    except BatchAbortedError as exc:
        task_log.warning("Policy batch aborted", error=str(exc.cause), error_type=type(exc.cause).__name__)
        return {
            "batch_id": exc.batch_id,
            "status": "FAILED",
            "error": str(exc.cause),
            "error_type": type(exc.cause).__name__,
            "files": [s.to_dict() for s in exc.file_statuses],
        }
    except Exception as exc:
        task_log.exception("Policy batch task failed", error=str(exc))
        raise

    summary = result.to_summary_dict()
    task_log.info(
        "Policy batch task finished",
        batch_id=result.batch_id,
        status=summary["status"],
        succeeded=result.succeeded,
        failed=result.failed,
    )
    return summary
