"""Ingestion service — statement import into the family ledger.

Pipeline per import: load categories, normalize entries, deduplicate
against the ledger and the batch, insert the survivors in one request,
and account for every entry in an ImportSummary.
"""

from datetime import datetime, timezone
from typing import Iterable

import structlog

from apps.api.domains.categorization.service import load_categories
from apps.api.domains.ingestion.dedup import (
    candidate_date_span,
    filter_duplicates,
    fingerprints_for_rows,
)
from apps.api.domains.ingestion.normalizer import normalize_entries
from apps.api.domains.ingestion.schemas import (
    ImportSummary,
    NormalizedTransaction,
    RawStatementEntry,
)

logger = structlog.get_logger()


def build_insert_rows(
    transactions: Iterable[NormalizedTransaction],
    family_id: str,
    user_id: str,
    created_at: datetime,
) -> list[dict]:
    """Ledger rows for the bulk insert; every row shares one created_at."""
    stamp = created_at.isoformat()
    return [
        {
            "family_id": family_id,
            "category_id": transaction.category_id,
            "user_id": user_id,
            "amount": str(transaction.amount),
            "transaction_date": transaction.transaction_date.isoformat(),
            "description": transaction.description,
            "reference": transaction.reference,
            "fingerprint": transaction.fingerprint,
            "created_at": stamp,
        }
        for transaction in transactions
    ]


async def import_statement_transactions(
    store,
    family_id: str,
    user_id: str,
    entries: list[RawStatementEntry],
) -> ImportSummary:
    """Import parsed statement entries for a family.

    Args:
        store: LedgerStore (or any object with the same coroutines).
        family_id: Tenant the rows belong to.
        user_id: Member performing the import.
        entries: Rows returned by the statement parser.

    Returns:
        ImportSummary whose three counts add up to ``len(entries)``.

    Raises:
        InternalError: the family has no Uncategorized category.
    """
    categories = await load_categories(store, family_id)
    candidates, errors_count = normalize_entries(entries, family_id, categories)

    if not candidates:
        logger.info(
            "statement_import.completed",
            family_id=family_id,
            inserted_count=0,
            skipped_duplicates_count=0,
            errors_count=errors_count,
        )
        return ImportSummary(errors_count=errors_count)

    min_date, max_date = candidate_date_span(candidates)
    persisted_rows = await store.list_transactions_between(family_id, min_date, max_date)
    survivors = filter_duplicates(candidates, fingerprints_for_rows(persisted_rows, family_id))

    rows = build_insert_rows(survivors, family_id, user_id, datetime.now(timezone.utc))
    inserted_count = await store.insert_transactions(rows)

    summary = ImportSummary(
        inserted_count=inserted_count,
        # Rows lost to a concurrent import of the same statement are duplicates too.
        skipped_duplicates_count=len(candidates) - inserted_count,
        errors_count=errors_count,
    )
    logger.info(
        "statement_import.completed",
        family_id=family_id,
        persisted_in_span=len(persisted_rows),
        **summary.model_dump(),
    )
    return summary
