"""Tests for the statement transform client (retry, timeout, classification)."""

import asyncio
import json

import httpx
import pytest

from apps.api.core.config import Settings
from apps.api.core.errors import UpstreamRejectedError, UpstreamUnavailableError
from apps.api.domains.ingestion.transform_client import (
    MULTI_UPLOAD_PATH,
    SINGLE_UPLOAD_PATH,
    StatementFile,
    StatementTransformClient,
    normalize_pdf_file,
    read_upstream_error_message,
    sanitize_upstream_message,
)

VALID_PAYLOAD = [
    {
        "ref": "QAB12CD3",
        "time": "2026-02-01 12:00:00",
        "details": "Grocery Shop",
        "status": "Completed",
        "money_in": "0",
        "money_out": "100",
    }
]

PDF = StatementFile(filename="statement.pdf", content=b"%PDF-1.4", content_type="application/pdf")


class Upstream:
    """Scripted transform service: replays responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_client(upstream, sleep=None, **kwargs) -> StatementTransformClient:
    return StatementTransformClient(
        "https://parser.test/",
        transport=httpx.MockTransport(upstream),
        sleep=sleep or SleepRecorder(),
        **kwargs,
    )


class TestRetryPolicy:
    """Transient failures are retried; rejections are not."""

    @pytest.mark.asyncio
    async def test_503_then_success(self):
        upstream = Upstream(httpx.Response(503), httpx.Response(200, json=VALID_PAYLOAD))
        sleep = SleepRecorder()

        entries = await make_client(upstream, sleep=sleep).upload(PDF)

        assert len(upstream.requests) == 2
        assert entries[0].details == "Grocery Shop"
        assert sleep.delays == [pytest.approx(0.3)]

    @pytest.mark.asyncio
    async def test_422_is_terminal(self):
        upstream = Upstream(httpx.Response(422, json={"message": "Encrypted PDF"}))

        with pytest.raises(UpstreamRejectedError) as exc_info:
            await make_client(upstream).upload(PDF)

        assert len(upstream.requests) == 1
        assert exc_info.value.status_code == 422
        assert exc_info.value.detail == "Encrypted PDF"

    @pytest.mark.asyncio
    async def test_400_without_message_uses_default(self):
        upstream = Upstream(httpx.Response(400))

        with pytest.raises(UpstreamRejectedError) as exc_info:
            await make_client(upstream).upload(PDF)

        assert exc_info.value.detail == "Statement parser rejected the file"

    @pytest.mark.asyncio
    async def test_5xx_exhausts_retries(self):
        upstream = Upstream(httpx.Response(500), httpx.Response(502), httpx.Response(503, text="busy"))
        sleep = SleepRecorder()

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await make_client(upstream, sleep=sleep).upload(PDF)

        assert len(upstream.requests) == 3
        assert sleep.delays == [pytest.approx(0.3), pytest.approx(0.6)]
        assert exc_info.value.status_code == 502
        assert exc_info.value.detail == "Statement parser failed with status 503: busy"

    @pytest.mark.asyncio
    async def test_429_is_retried(self):
        upstream = Upstream(httpx.Response(429), httpx.Response(200, json=VALID_PAYLOAD))
        await make_client(upstream).upload(PDF)
        assert len(upstream.requests) == 2

    @pytest.mark.asyncio
    async def test_other_status_retried_as_upstream_failure(self):
        """Anything but a rejection is treated as a 502-class outage."""
        upstream = Upstream(httpx.Response(404), httpx.Response(404), httpx.Response(404))

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await make_client(upstream).upload(PDF)

        assert len(upstream.requests) == 3
        assert exc_info.value.status_code == 502
        assert exc_info.value.detail == "Statement parser failed with status 404"

    @pytest.mark.asyncio
    async def test_invalid_payload_not_retried(self):
        upstream = Upstream(httpx.Response(200, json={"not": "a list"}))

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await make_client(upstream).upload(PDF)

        assert len(upstream.requests) == 1
        assert exc_info.value.detail == "Statement parser returned an invalid payload"

    @pytest.mark.asyncio
    async def test_non_json_success_body(self):
        upstream = Upstream(httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(UpstreamUnavailableError):
            await make_client(upstream).upload(PDF)

    @pytest.mark.asyncio
    async def test_oversized_payload_rejected(self):
        upstream = Upstream(httpx.Response(200, json=VALID_PAYLOAD * 5001))

        with pytest.raises(UpstreamUnavailableError):
            await make_client(upstream).upload(PDF)

    @pytest.mark.asyncio
    async def test_transport_error_retried(self):
        upstream = Upstream(httpx.ConnectError("refused"), httpx.Response(200, json=VALID_PAYLOAD))
        entries = await make_client(upstream).upload(PDF)
        assert len(upstream.requests) == 2
        assert len(entries) == 1

    @pytest.mark.asyncio
    async def test_transport_error_exhausted(self):
        upstream = Upstream(*(httpx.ConnectError("refused") for _ in range(3)))

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await make_client(upstream).upload(PDF)

        assert exc_info.value.detail == "Statement parser request failed"

    @pytest.mark.asyncio
    async def test_timeout_exhausted(self):
        upstream = Upstream(*(httpx.ReadTimeout("slow") for _ in range(3)))

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await make_client(upstream).upload(PDF)

        assert len(upstream.requests) == 3
        assert exc_info.value.detail == "Statement parser request timed out"

    @pytest.mark.asyncio
    async def test_hard_timeout_bounds_each_attempt(self):
        """A stalled upstream is cut off by the per-attempt deadline."""

        async def stalled(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=VALID_PAYLOAD)

        client = StatementTransformClient(
            "https://parser.test",
            timeout=0.01,
            max_retries=0,
            transport=httpx.MockTransport(stalled),
        )

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.upload(PDF)

        assert exc_info.value.detail == "Statement parser request timed out"


class TestRequests:
    @pytest.mark.asyncio
    async def test_single_upload_request(self):
        upstream = Upstream(httpx.Response(200, json=[]))

        entries = await make_client(upstream).upload(PDF, password="1234")

        assert entries == []
        request = upstream.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"https://parser.test{SINGLE_UPLOAD_PATH}"
        body = request.content
        assert b'name="file"; filename="statement.pdf"' in body
        assert b'name="password"' in body
        assert b"1234" in body

    @pytest.mark.asyncio
    async def test_single_upload_without_password(self):
        upstream = Upstream(httpx.Response(200, json=[]))
        await make_client(upstream).upload(PDF)
        assert b'name="password"' not in upstream.requests[0].content

    @pytest.mark.asyncio
    async def test_multi_upload_request(self):
        upstream = Upstream(httpx.Response(200, json=VALID_PAYLOAD))
        files = [
            StatementFile("jan.pdf", b"%PDF-a", "application/pdf"),
            StatementFile("feb.pdf", b"%PDF-b", "application/pdf"),
        ]

        await make_client(upstream).upload_many(files, passwords={"feb.pdf": "secret"})

        request = upstream.requests[0]
        assert str(request.url) == f"https://parser.test{MULTI_UPLOAD_PATH}"
        body = request.content
        assert body.count(b'name="files"') == 2
        assert b'filename="jan.pdf"' in body
        assert b'filename="feb.pdf"' in body
        assert b'name="passwords"' in body
        assert json.dumps({"feb.pdf": "secret"}).encode() in body

    @pytest.mark.asyncio
    async def test_multi_upload_rejection_message(self):
        upstream = Upstream(httpx.Response(422))

        with pytest.raises(UpstreamRejectedError) as exc_info:
            await make_client(upstream).upload_many([PDF, PDF])

        assert exc_info.value.detail == "Statement parser rejected the files"

    @pytest.mark.asyncio
    async def test_generic_mime_rewrapped_as_pdf(self):
        upstream = Upstream(httpx.Response(200, json=[]))
        file = StatementFile("scan.PDF", b"%PDF", "application/octet-stream")

        await make_client(upstream).upload(file)

        assert b"Content-Type: application/pdf" in upstream.requests[0].content


class TestHelpers:
    def test_normalize_pdf_file(self):
        assert normalize_pdf_file(StatementFile("a.pdf", b"x", "")).content_type == "application/pdf"
        assert normalize_pdf_file(StatementFile("a.txt", b"x", "text/plain")).content_type == "text/plain"
        assert normalize_pdf_file(PDF) is PDF

    def test_sanitize_upstream_message(self):
        assert sanitize_upstream_message("  bad \n  file ") == "bad file"
        assert sanitize_upstream_message("<!DOCTYPE html><html></html>") is None
        assert sanitize_upstream_message("<html>gateway</html>") is None
        assert sanitize_upstream_message("") is None
        assert len(sanitize_upstream_message("x" * 500)) == 240

    def test_read_upstream_error_message_json_keys(self):
        assert read_upstream_error_message(httpx.Response(500, json={"error": "boom"})) == "boom"
        assert read_upstream_error_message(httpx.Response(500, json={"detail": "nope"})) == "nope"
        assert read_upstream_error_message(httpx.Response(500, json=["x"])) is None
        assert read_upstream_error_message(httpx.Response(500, json={"detail": {"a": 1}})) is None

    def test_read_upstream_error_message_text(self):
        assert read_upstream_error_message(httpx.Response(500, text="plain failure")) == "plain failure"


class TestFromSettings:
    def test_builds_from_settings(self):
        settings = Settings(
            SUPABASE_URL="https://x.supabase.co",
            SUPABASE_ANON_KEY="anon",
            API_BASE_URL="https://parser.test/",
            TRANSFORM_TIMEOUT_SECONDS=5,
            TRANSFORM_MAX_RETRIES=1,
        )
        client = StatementTransformClient.from_settings(settings)
        assert client.base_url == "https://parser.test"
        assert client.timeout == 5
        assert client.max_retries == 1

    def test_missing_base_url(self):
        settings = Settings(SUPABASE_URL="https://x.supabase.co", SUPABASE_ANON_KEY="anon", API_BASE_URL="")
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            StatementTransformClient.from_settings(settings)
        assert exc_info.value.status_code == 500
