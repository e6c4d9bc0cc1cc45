"""Ingestion router — statement PDF upload and import.

Thin HTTP layer: validates the upload, enforces the per-family import
rate limit, hands the files to the transform service and the parsed rows
to the import service.
"""

import json
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile

from apps.api.core.auth import FamilyContext, get_app_settings, get_family_context
from apps.api.core.config import Settings
from apps.api.core.errors import ValidationError
from apps.api.core.rate_limit import enforce_rate_limit
from apps.api.core.store import LedgerStore
from apps.api.deps import get_ledger_store, get_transform_client
from apps.api.domains.ingestion.schemas import ImportSummary
from apps.api.domains.ingestion.service import import_statement_transactions
from apps.api.domains.ingestion.transform_client import (
    PDF_CONTENT_TYPE,
    StatementFile,
    StatementTransformClient,
)

router = APIRouter(prefix="/ingest", tags=["ingestion"])
logger = structlog.get_logger()


async def read_statement_file(upload: UploadFile, max_bytes: int) -> StatementFile:
    """Read and validate one uploaded statement."""
    filename = upload.filename or ""
    content_type = upload.content_type or ""

    if content_type != PDF_CONTENT_TYPE and not filename.lower().endswith(".pdf"):
        raise ValidationError("Only PDF statements are supported")

    contents = await upload.read()
    if not contents:
        raise ValidationError("Statement file cannot be empty")
    if len(contents) > max_bytes:
        raise ValidationError(
            f"Statement file must be {max_bytes // (1024 * 1024)}MB or smaller"
        )

    return StatementFile(filename=filename, content=contents, content_type=content_type)


def parse_passwords(raw: Optional[str]) -> dict[str, str]:
    """Decode the ``passwords`` form field: a JSON object keyed by filename."""
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except ValueError:
        raise ValidationError("passwords must be a JSON object keyed by filename")
    if not isinstance(payload, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in payload.items()
    ):
        raise ValidationError("passwords must be a JSON object keyed by filename")
    return {key: value for key, value in payload.items() if value}


@router.post("/statements", response_model=ImportSummary)
async def import_statements(
    file: Optional[UploadFile] = File(None),
    files: Optional[list[UploadFile]] = File(None),
    password: Optional[str] = Form(None),
    passwords: Optional[str] = Form(None),
    family: FamilyContext = Depends(get_family_context),
    store: LedgerStore = Depends(get_ledger_store),
    transform_client: StatementTransformClient = Depends(get_transform_client),
    settings: Settings = Depends(get_app_settings),
):
    """Upload one or more statement PDFs and import their rows into the ledger.

    Returns the import summary: rows inserted, duplicates skipped, and
    rows dropped as unreadable.
    """
    uploads = ([file] if file is not None else []) + list(files or [])
    if not uploads:
        raise ValidationError("At least one statement file is required")

    password_map = parse_passwords(passwords)

    enforce_rate_limit(
        f"statement_import:{family.family_id}",
        settings.IMPORT_RATE_LIMIT,
        settings.IMPORT_RATE_LIMIT_WINDOW_SECONDS,
    )

    statements = [await read_statement_file(upload, settings.MAX_UPLOAD_BYTES) for upload in uploads]

    logger.info(
        "statement_upload_received",
        family_id=family.family_id,
        file_count=len(statements),
    )

    if len(statements) == 1:
        statement = statements[0]
        entries = await transform_client.upload(
            statement,
            password=password or password_map.get(statement.filename),
        )
    else:
        entries = await transform_client.upload_many(statements, passwords=password_map)

    return await import_statement_transactions(
        store,
        family_id=family.family_id,
        user_id=family.user_id,
        entries=entries,
    )
