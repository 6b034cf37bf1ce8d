"""Tests for the batched extraction HTTP client (httpx MockTransport)."""

import asyncio
import json

import httpx
import pytest

from conftest import PDF_BYTES, make_documents
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
from policy_intake.processing.extraction_client import HttpExtractionClient, describe_status, should_retry

URL = "https://extraction.test/webhook/policies"


def make_client(handler, **kwargs) -> HttpExtractionClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_backoff_seconds", 0)
    kwargs.setdefault("response_keys", ("policies", "apolices", "data", "results"))
    return HttpExtractionClient(URL, http_client=http_client, **kwargs)


class RecordingHandler:
    """Replays the given responses in order and keeps every request."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class TestRequest:
    @pytest.mark.asyncio
    async def test_single_multipart_request(self):
        handler = RecordingHandler(httpx.Response(200, json=[{"segurado": "Ana"}]))
        client = make_client(handler)

        await client.extract(make_documents("a.pdf", "b.pdf"), owner_hint="user-1")

        assert len(handler.requests) == 1
        request = handler.requests[0]
        body = request.content
        assert request.method == "POST"
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="file1"; filename="a.pdf"' in body
        assert b'name="file2"; filename="b.pdf"' in body
        assert b'name="totalFiles"\r\n\r\n2' in body
        assert b'name="timestamp"' in body
        assert b'name="userId"\r\n\r\nuser-1' in body

    @pytest.mark.asyncio
    async def test_user_id_omitted_without_hint(self):
        handler = RecordingHandler(httpx.Response(200, json=[{"segurado": "Ana"}]))
        await make_client(handler).extract(make_documents("a.pdf"))
        assert b'name="userId"' not in handler.requests[0].content


class TestResponseShapes:
    @pytest.mark.asyncio
    async def test_bare_array(self):
        handler = RecordingHandler(httpx.Response(200, json=[{"a": 1}, {"b": 2}]))
        assert await make_client(handler).extract(make_documents("a.pdf")) == [{"a": 1}, {"b": 2}]

    @pytest.mark.asyncio
    async def test_wrapped_array(self):
        handler = RecordingHandler(httpx.Response(200, json={"apolices": [{"a": 1}]}))
        assert await make_client(handler).extract(make_documents("a.pdf")) == [{"a": 1}]

    @pytest.mark.asyncio
    async def test_single_object(self):
        handler = RecordingHandler(httpx.Response(200, json={"segurado": "Ana"}))
        assert await make_client(handler).extract(make_documents("a.pdf")) == [{"segurado": "Ana"}]

    @pytest.mark.asyncio
    async def test_empty_body(self):
        handler = RecordingHandler(httpx.Response(200, text=""))
        with pytest.raises(EmptyResponseError):
            await make_client(handler).extract(make_documents("a.pdf"))

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        handler = RecordingHandler(httpx.Response(200, text="<html>Workflow started</html>"))
        with pytest.raises(MalformedResponseError) as exc_info:
            await make_client(handler).extract(make_documents("a.pdf"))
        assert "Workflow started" in exc_info.value.details["body_preview"]

    @pytest.mark.asyncio
    async def test_deeply_nested_body(self):
        handler = RecordingHandler(httpx.Response(200, text="[" * 100_000 + "]" * 100_000))
        with pytest.raises(MalformedResponseError):
            await make_client(handler).extract(make_documents("a.pdf"))

    @pytest.mark.asyncio
    async def test_empty_array(self):
        handler = RecordingHandler(httpx.Response(200, json=[]))
        with pytest.raises(NoRecordsReturnedError):
            await make_client(handler).extract(make_documents("a.pdf"))

    @pytest.mark.asyncio
    async def test_wrapped_non_list(self):
        handler = RecordingHandler(httpx.Response(200, json={"data": "processing"}))
        with pytest.raises(MalformedResponseError):
            await make_client(handler).extract(make_documents("a.pdf"))

    @pytest.mark.asyncio
    async def test_non_object_items(self):
        handler = RecordingHandler(httpx.Response(200, content=json.dumps([{"a": 1}, "x"]).encode()))
        with pytest.raises(MalformedResponseError) as exc_info:
            await make_client(handler).extract(make_documents("a.pdf"))
        assert exc_info.value.details["positions"] == [1]


class TestRetries:
    @pytest.mark.asyncio
    async def test_server_error_retried_once(self):
        handler = RecordingHandler(httpx.Response(502), httpx.Response(200, json=[{"a": 1}]))
        assert await make_client(handler).extract(make_documents("a.pdf")) == [{"a": 1}]
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_server_error_gives_up(self):
        handler = RecordingHandler(httpx.Response(503, text="down"))
        with pytest.raises(ExtractionHTTPError) as exc_info:
            await make_client(handler).extract(make_documents("a.pdf"))
        assert exc_info.value.status_code == 503
        assert exc_info.value.response_body == "down"
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        handler = RecordingHandler(httpx.Response(404))
        with pytest.raises(ExtractionHTTPError) as exc_info:
            await make_client(handler).extract(make_documents("a.pdf"))
        assert exc_info.value.status_code == 404
        assert "404" in str(exc_info.value)
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_connection_error(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExtractionHTTPError):
            await make_client(handler).extract(make_documents("a.pdf"))
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=[{"a": 1}])

        client = make_client(handler, timeout_seconds=0.05)
        with pytest.raises(ExtractionTimeoutError):
            await client.extract(make_documents("a.pdf"))


class TestBatchValidation:
    @pytest.mark.asyncio
    async def test_too_many_files_sends_nothing(self):
        handler = RecordingHandler(httpx.Response(200, json=[{"a": 1}]))
        names = [f"doc{n}.pdf" for n in range(11)]

        with pytest.raises(BatchSizeExceededError) as exc_info:
            await make_client(handler).extract(make_documents(*names))

        assert exc_info.value.file_count == 11
        assert exc_info.value.limit == 10
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        handler = RecordingHandler(httpx.Response(200, json=[{"a": 1}]))
        with pytest.raises(BatchSizeExceededError):
            await make_client(handler).extract([])

    @pytest.mark.asyncio
    async def test_wrong_extension(self):
        handler = RecordingHandler(httpx.Response(200, json=[{"a": 1}]))
        with pytest.raises(UnsupportedDocumentError):
            await make_client(handler).extract([UploadedDocument("notes.txt", b"hello")])

    @pytest.mark.asyncio
    async def test_oversized_file(self):
        handler = RecordingHandler(httpx.Response(200, json=[{"a": 1}]))
        big = UploadedDocument("big.pdf", PDF_BYTES + b"0" * (2 * 1024 * 1024))
        with pytest.raises(UnsupportedDocumentError):
            await make_client(handler, max_file_size_mb=1).extract([big])


class TestCheckConnection:
    @pytest.mark.asyncio
    async def test_method_not_allowed_means_reachable(self):
        handler = RecordingHandler(httpx.Response(405))
        assert await make_client(handler).check_connection() is True
        assert handler.requests[0].method == "OPTIONS"

    @pytest.mark.asyncio
    async def test_not_found(self):
        handler = RecordingHandler(httpx.Response(404))
        assert await make_client(handler).check_connection() is False

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert await make_client(handler).check_connection() is False


class TestHelpers:
    def test_should_retry(self):
        assert should_retry(500, attempt=1, max_retries=1) is True
        assert should_retry(500, attempt=2, max_retries=1) is False
        assert should_retry(429, attempt=1, max_retries=1) is False

    def test_describe_status(self):
        assert "403" in describe_status(403)
        assert "EXTRACTION_SERVICE_URL" in describe_status(404)
