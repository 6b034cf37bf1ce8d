"""
Policy endpoints — batch upload (inline or queued), listing, and live
file status.
"""

from __future__ import annotations

import uuid
from pathlib import Path, PurePath

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from policy_intake.api.deps import get_batch_orchestrator, get_db, get_status_board
from policy_intake.api.schemas.policies import (
    BatchResponse,
    FileStatusResponse,
    PolicyResponse,
    QueuedBatchResponse,
)
from policy_intake.core.config import settings
from policy_intake.core.logging import get_logger
from policy_intake.pipeline.context import UploadedDocument
from policy_intake.pipeline.engine import BatchOrchestrator
from policy_intake.pipeline.errors import (
    BatchAbortedError,
    BatchSizeExceededError,
    ExtractionError,
    ExtractionTimeoutError,
    UnsupportedDocumentError,
)
from policy_intake.pipeline.status_board import FileStatusBoard
from policy_intake.repositories import policies as policy_repository

logger = get_logger(__name__)

router = APIRouter(prefix="/policies", tags=["Policies"])


def _abort_status_code(exc: BatchAbortedError) -> int:
    if not isinstance(exc.cause, ExtractionError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc.cause, (BatchSizeExceededError, UnsupportedDocumentError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc.cause, ExtractionTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    return status.HTTP_502_BAD_GATEWAY


# ─── Upload (inline) ──────────────────────────────────────
@router.post("/upload", response_model=BatchResponse)
async def upload_policies(
    files: list[UploadFile] = File(...),
    user_id: str | None = Form(None),
    email: str | None = Form(None),
    orchestrator: BatchOrchestrator = Depends(get_batch_orchestrator),
):
    """
    Extract, reconcile and store the policies found in the uploaded PDFs.

    Record-level problems are reported in ``failures`` and per-file
    statuses; only batch-level failures produce an error response.
    """
    documents = [
        UploadedDocument(
            filename=PurePath(upload.filename or f"file{n}.pdf").name,
            content=await upload.read(),
            content_type=upload.content_type or "application/pdf",
        )
        for n, upload in enumerate(files, start=1)
    ]

    try:
        result = await orchestrator.run(documents, caller_identity=user_id, caller_email=email)
    except BatchAbortedError as exc:
        raise HTTPException(
            status_code=_abort_status_code(exc),
            detail={
                "message": str(exc.cause),
                "error_type": type(exc.cause).__name__,
                "files": [FileStatusResponse.from_status(s).model_dump(mode="json") for s in exc.file_statuses],
            },
        ) from exc

    return BatchResponse.from_result(result)


# ─── Upload (queued) ──────────────────────────────────────
@router.post("/upload/async", response_model=QueuedBatchResponse, status_code=status.HTTP_202_ACCEPTED)
async def upload_policies_async(
    files: list[UploadFile] = File(...),
    user_id: str | None = Form(None),
    email: str | None = Form(None),
):
    """Store the uploads and hand the batch to a Celery worker."""
    from policy_intake.tasks.processing_tasks import process_policy_batch

    if not files or len(files) > settings.EXTRACTION_MAX_BATCH_FILES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Between 1 and {settings.EXTRACTION_MAX_BATCH_FILES} files are accepted",
        )

    batch_dir = Path(settings.UPLOAD_DIR) / uuid.uuid4().hex
    batch_dir.mkdir(parents=True, exist_ok=True)

    stored: list[dict[str, str]] = []
    for n, upload in enumerate(files, start=1):
        filename = PurePath(upload.filename or f"file{n}.pdf").name
        # position prefix keeps same-named uploads apart
        path = batch_dir / f"{n:02d}_{filename}"
        path.write_bytes(await upload.read())
        stored.append({
            "filename": filename,
            "path": str(path),
            "content_type": upload.content_type or "application/pdf",
        })

    task = process_policy_batch.delay(files=stored, caller_identity=user_id, caller_email=email)
    logger.info("Batch queued", celery_task_id=task.id, files=len(stored), batch_dir=str(batch_dir))

    return QueuedBatchResponse(
        message="Batch queued",
        celery_task_id=task.id,
        files=[f["filename"] for f in stored],
    )


# ─── Live status ──────────────────────────────────────────
@router.get("/status", response_model=list[FileStatusResponse])
async def list_file_statuses(
    batch_id: str | None = None,
    board: FileStatusBoard = Depends(get_status_board),
):
    """Files of running (or just finished) batches."""
    statuses = board.snapshot(batch_id) if batch_id else board.all_statuses()
    return [FileStatusResponse.from_status(s) for s in statuses]


# ─── List ─────────────────────────────────────────────────
@router.get("", response_model=list[PolicyResponse])
async def list_policies(
    owner_id: str = Query(..., min_length=1),
    policy_status: str | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Stored policies of one owner, with installments and coverage lines."""
    return await policy_repository.list_policies_for_owner(
        db,
        owner_id,
        status=policy_status,
        offset=offset,
        limit=limit,
    )
