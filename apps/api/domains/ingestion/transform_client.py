"""Client for the external statement transform (PDF parsing) service.

Uploads statement PDFs and returns the parsed rows. Owns the retry,
timeout and upstream-error classification:

- 2xx: body must match the entry array schema, else UpstreamUnavailableError
  (not retried; the transport already succeeded).
- 400/422: UpstreamRejectedError, the file itself is unreadable. Never retried.
- Any other status: retried, then UpstreamUnavailableError (502) naming the
  last status.
- Timeouts and transport errors: retried, then UpstreamUnavailableError.

Backoff is linear, ``(attempt + 1) * backoff_seconds``, without jitter.
"""

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from apps.api.core.config import Settings
from apps.api.core.errors import UpstreamRejectedError, UpstreamUnavailableError
from apps.api.domains.ingestion.schemas import RawStatementEntry, StatementTransformResponse

logger = structlog.get_logger()

SINGLE_UPLOAD_PATH = "/statements/upload-pdf"
MULTI_UPLOAD_PATH = "/statements/upload-pdfs"

REQUEST_TIMEOUT_SECONDS = 15.0
MAX_RETRIES = 2
BACKOFF_SECONDS = 0.3
MAX_UPSTREAM_MESSAGE_LENGTH = 240

PDF_CONTENT_TYPE = "application/pdf"
DEFAULT_FILENAME = "statement.pdf"

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class StatementFile:
    """An uploaded statement held in memory."""

    filename: str
    content: bytes
    content_type: str = ""


def normalize_pdf_file(file: StatementFile) -> StatementFile:
    """Force ``application/pdf`` on ``*.pdf`` files sent with a generic or empty type."""
    is_pdf_name = file.filename.lower().endswith(".pdf")
    if not is_pdf_name or file.content_type == PDF_CONTENT_TYPE:
        return file
    return StatementFile(filename=file.filename, content=file.content, content_type=PDF_CONTENT_TYPE)


def sanitize_upstream_message(value: Optional[str]) -> Optional[str]:
    if not value:
        return None

    normalized = _WHITESPACE.sub(" ", value).strip()
    if not normalized:
        return None
    # Gateway error pages are noise to the caller
    if normalized.startswith("<!DOCTYPE") or normalized.startswith("<html"):
        return None
    return normalized[:MAX_UPSTREAM_MESSAGE_LENGTH]


def read_upstream_error_message(response: httpx.Response) -> Optional[str]:
    """Best-effort human message from an upstream error response."""
    content_type = response.headers.get("content-type", "").lower()

    if "application/json" in content_type:
        try:
            payload = response.json()
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, str):
                return sanitize_upstream_message(value)
        return None

    return sanitize_upstream_message(response.text)


def _multipart_part(file: StatementFile) -> tuple[str, bytes, str]:
    return (file.filename or DEFAULT_FILENAME, file.content, file.content_type or PDF_CONTENT_TYPE)


class StatementTransformClient:
    """Async uploader with bounded retries.

    Args:
        base_url: Transform service root, e.g. ``https://parser.internal``.
        timeout: Hard per-attempt limit in seconds.
        max_retries: Retries after the first attempt.
        backoff_seconds: Linear backoff step.
        transport: Optional httpx transport (tests use httpx.MockTransport).
        sleep: Coroutine used for backoff waits.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
        backoff_seconds: float = BACKOFF_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "StatementTransformClient":
        if not settings.API_BASE_URL:
            raise UpstreamUnavailableError("API_BASE_URL is not configured", status_code=500)
        return cls(
            base_url=settings.transform_base_url,
            timeout=settings.TRANSFORM_TIMEOUT_SECONDS,
            max_retries=settings.TRANSFORM_MAX_RETRIES,
            backoff_seconds=settings.TRANSFORM_BACKOFF_SECONDS,
        )

    async def upload(self, file: StatementFile, password: Optional[str] = None) -> list[RawStatementEntry]:
        """Parse a single statement."""
        file = normalize_pdf_file(file)
        data = {"password": password} if password else None
        return await self._post_with_retry(
            SINGLE_UPLOAD_PATH,
            files=[("file", _multipart_part(file))],
            data=data,
            rejected_message="Statement parser rejected the file",
        )

    async def upload_many(
        self,
        files: list[StatementFile],
        passwords: Optional[dict[str, str]] = None,
    ) -> list[RawStatementEntry]:
        """Parse several statements in one call; passwords are keyed by filename."""
        parts = [("files", _multipart_part(normalize_pdf_file(file))) for file in files]
        data = {"passwords": json.dumps(passwords)} if passwords else None
        return await self._post_with_retry(
            MULTI_UPLOAD_PATH,
            files=parts,
            data=data,
            rejected_message="Statement parser rejected the files",
        )

    async def _backoff(self, attempt: int) -> None:
        await self._sleep((attempt + 1) * self.backoff_seconds)

    async def _post_with_retry(
        self,
        path: str,
        files: list,
        data: Optional[dict],
        rejected_message: str,
    ) -> list[RawStatementEntry]:
        url = f"{self.base_url}{path}"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(self.max_retries + 1):
                can_retry = attempt < self.max_retries

                try:
                    response = await asyncio.wait_for(
                        client.post(url, files=files, data=data),
                        timeout=self.timeout,
                    )
                except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                    if can_retry:
                        logger.warning("statement_transform.timeout_retry", attempt=attempt + 1)
                        await self._backoff(attempt)
                        continue
                    raise UpstreamUnavailableError("Statement parser request timed out") from exc
                except httpx.HTTPError as exc:
                    if can_retry:
                        logger.warning(
                            "statement_transform.retry",
                            attempt=attempt + 1,
                            error=type(exc).__name__,
                        )
                        await self._backoff(attempt)
                        continue
                    raise UpstreamUnavailableError("Statement parser request failed") from exc

                if response.is_success:
                    return self._parse_entries(response)

                status = response.status_code
                message = read_upstream_error_message(response)

                if status in (400, 422):
                    raise UpstreamRejectedError(message or rejected_message)

                if can_retry:
                    logger.warning("statement_transform.retry", attempt=attempt + 1, status=status)
                    await self._backoff(attempt)
                    continue

                if message:
                    raise UpstreamUnavailableError(
                        f"Statement parser failed with status {status}: {message}"
                    )
                raise UpstreamUnavailableError(f"Statement parser failed with status {status}")

        raise UpstreamUnavailableError("Statement parser request failed")

    @staticmethod
    def _parse_entries(response: httpx.Response) -> list[RawStatementEntry]:
        try:
            return StatementTransformResponse.validate_python(response.json())
        except (ValueError, PydanticValidationError) as exc:
            raise UpstreamUnavailableError("Statement parser returned an invalid payload") from exc
