"""
Extraction Client — sends a batch of documents to the external extraction
service in ONE multipart request and translates its answer into a list of
raw records.

Request (multipart form):
    file1..fileN   binary document content
    timestamp      ISO-8601 batch submission time
    totalFiles     N as a decimal string
    userId         optional owner hint

Response handling:
    empty body                       → EmptyResponseError
    non-JSON body                    → MalformedResponseError
    bare array                       → records
    object with a known array key    → records
    any other object                 → a single record
    empty array                      → NoRecordsReturnedError

The whole call (including the one retry on 5xx / connection errors) is
bounded by a hard timeout; expiry raises ExtractionTimeoutError.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import AbstractAsyncContextManager, nullcontext
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any, Protocol, Sequence

import httpx

from policy_intake.core.config import settings
from policy_intake.core.logging import get_logger
from policy_intake.pipeline.context import UploadedDocument
from policy_intake.pipeline.errors import (
    BatchSizeExceededError,
    EmptyResponseError,
    ExtractionHTTPError,
    ExtractionTimeoutError,
    MalformedResponseError,
    NoRecordsReturnedError,
    UnsupportedDocumentError,
)

logger = get_logger(__name__)

BODY_PREVIEW_CHARS = 200


class ExtractionClient(Protocol):
    """What the orchestrator needs from an extraction backend."""

    async def extract(
        self,
        documents: Sequence[UploadedDocument],
        owner_hint: str | None = None,
    ) -> list[Any]:
        ...


def should_retry(status_code: int, attempt: int, max_retries: int) -> bool:
    """Only server errors are retried."""
    if attempt > max_retries:
        return False
    return status_code >= 500


def describe_status(status_code: int) -> str:
    if status_code == 400:
        return "Extraction service rejected the request (400); check the submitted documents"
    if status_code == 403:
        return "Extraction service refused access (403); check its credentials"
    if status_code == 404:
        return "Extraction endpoint not found (404); check EXTRACTION_SERVICE_URL and that the workflow is active"
    if status_code >= 500:
        return f"Extraction service internal error ({status_code})"
    return f"Extraction service returned HTTP {status_code}"


class HttpExtractionClient:
    """
    httpx-based ExtractionClient.

    Pass ``http_client`` to reuse a connection pool or to inject a
    transport in tests; otherwise a client is opened per call.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 600.0,
        max_batch_files: int = 10,
        max_file_size_mb: int = 20,
        allowed_extensions: Sequence[str] = (".pdf",),
        response_keys: Sequence[str] = ("policies",),
        max_retries: int = 1,
        retry_backoff_seconds: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.max_batch_files = max_batch_files
        self.max_file_size_bytes = max_file_size_mb * 1024 * 1024
        self.allowed_extensions = tuple(ext.lower() for ext in allowed_extensions)
        self.response_keys = tuple(response_keys)
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self._http_client = http_client

    @classmethod
    def from_settings(cls, http_client: httpx.AsyncClient | None = None) -> HttpExtractionClient:
        return cls(
            settings.EXTRACTION_SERVICE_URL,
            timeout_seconds=settings.EXTRACTION_TIMEOUT_SECONDS,
            max_batch_files=settings.EXTRACTION_MAX_BATCH_FILES,
            max_file_size_mb=settings.EXTRACTION_MAX_FILE_SIZE_MB,
            allowed_extensions=settings.EXTRACTION_ALLOWED_EXTENSIONS,
            response_keys=settings.EXTRACTION_RESPONSE_KEYS,
            max_retries=settings.EXTRACTION_MAX_RETRIES,
            retry_backoff_seconds=settings.EXTRACTION_RETRY_BACKOFF_SECONDS,
            http_client=http_client,
        )

    # ─── Public API ────────────────────────────────────

    async def extract(
        self,
        documents: Sequence[UploadedDocument],
        owner_hint: str | None = None,
    ) -> list[Any]:
        self.validate_batch(documents)

        log = logger.bind(total_files=len(documents), url=self.url)
        log.info("Sending batch to extraction service", files=[d.filename for d in documents])

        try:
            response = await asyncio.wait_for(
                self._post_with_retry(documents, owner_hint, log),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            log.error("Extraction timed out", timeout_seconds=self.timeout_seconds)
            raise ExtractionTimeoutError(
                f"Extraction service did not answer within {self.timeout_seconds:g}s",
                details={"timeout_seconds": self.timeout_seconds},
            ) from exc

        records = self.parse_response(response.text)
        log.info("Extraction finished", records=len(records))
        return records

    async def check_connection(self) -> bool:
        """Probe the endpoint with OPTIONS.  405 still proves it exists."""
        try:
            async with self._client() as client:
                response = await client.options(self.url)
        except httpx.HTTPError as exc:
            logger.warning("Extraction service unreachable", url=self.url, error=str(exc))
            return False
        return response.is_success or response.status_code == 405

    # ─── Validation ────────────────────────────────────

    def validate_batch(self, documents: Sequence[UploadedDocument]) -> None:
        count = len(documents)
        if count == 0 or count > self.max_batch_files:
            raise BatchSizeExceededError(
                f"Batch has {count} files; between 1 and {self.max_batch_files} are accepted",
                file_count=count,
                limit=self.max_batch_files,
            )

        problems: list[str] = []
        for doc in documents:
            suffix = PurePath(doc.filename).suffix.lower()
            if suffix not in self.allowed_extensions:
                problems.append(f"{doc.filename}: extension '{suffix or '(none)'}' not accepted")
            if doc.size > self.max_file_size_bytes:
                problems.append(
                    f"{doc.filename}: {doc.size / (1024 * 1024):.1f}MB exceeds "
                    f"{self.max_file_size_bytes // (1024 * 1024)}MB"
                )
            elif doc.size == 0:
                problems.append(f"{doc.filename}: file is empty")
        if problems:
            raise UnsupportedDocumentError(
                "; ".join(problems),
                details={"problems": problems},
            )

    # ─── Transport ─────────────────────────────────────

    def _client(self) -> AbstractAsyncContextManager[httpx.AsyncClient]:
        if self._http_client is not None:
            return nullcontext(self._http_client)
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))

    def _build_form(
        self,
        documents: Sequence[UploadedDocument],
        owner_hint: str | None,
    ) -> tuple[dict[str, str], list[tuple[str, tuple[str, bytes, str]]]]:
        data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "totalFiles": str(len(documents)),
        }
        if owner_hint:
            data["userId"] = owner_hint
        files = [
            (f"file{n}", (doc.filename, doc.content, doc.content_type))
            for n, doc in enumerate(documents, start=1)
        ]
        return data, files

    async def _post_with_retry(self, documents, owner_hint, log) -> httpx.Response:
        data, files = self._build_form(documents, owner_hint)
        attempt = 0

        async with self._client() as client:
            while True:
                attempt += 1
                try:
                    response = await client.post(self.url, data=data, files=files)
                except httpx.TimeoutException:
                    raise
                except httpx.TransportError as exc:
                    if attempt <= self.max_retries:
                        log.warning("Extraction request failed, retrying", attempt=attempt, error=str(exc))
                        await asyncio.sleep(self.retry_backoff_seconds * attempt)
                        continue
                    raise ExtractionHTTPError(
                        f"Could not reach extraction service: {exc}",
                    ) from exc

                if response.is_success:
                    return response

                if should_retry(response.status_code, attempt, self.max_retries):
                    log.warning(
                        "Extraction service error, retrying",
                        attempt=attempt,
                        status_code=response.status_code,
                    )
                    await asyncio.sleep(self.retry_backoff_seconds * attempt)
                    continue

                raise ExtractionHTTPError(
                    describe_status(response.status_code),
                    status_code=response.status_code,
                    response_body=response.text[:BODY_PREVIEW_CHARS],
                )

    # ─── Response parsing ──────────────────────────────

    def parse_response(self, body: str) -> list[Any]:
        """Translate a raw response body into a list of record objects."""
        if not body or not body.strip():
            raise EmptyResponseError(
                "Extraction service returned an empty response; the upstream workflow "
                "is probably not configured to return its result",
            )

        try:
            payload = json.loads(body)
        except (ValueError, RecursionError) as exc:
            raise MalformedResponseError(
                f"Extraction service returned invalid JSON: {body[:BODY_PREVIEW_CHARS]}",
                details={"body_preview": body[:BODY_PREVIEW_CHARS]},
            ) from exc

        if isinstance(payload, dict):
            for key in self.response_keys:
                if key in payload:
                    payload = payload[key]
                    break
            else:
                payload = [payload]

        if not isinstance(payload, list):
            raise MalformedResponseError(
                f"Expected a list of records, got {type(payload).__name__}",
            )
        if not payload:
            raise NoRecordsReturnedError(
                "Extraction service returned no policies for a non-empty batch",
            )

        not_objects = [i for i, item in enumerate(payload) if not isinstance(item, dict)]
        if not_objects:
            raise MalformedResponseError(
                f"Records at positions {not_objects} are not objects",
                details={"positions": not_objects},
            )
        return payload

