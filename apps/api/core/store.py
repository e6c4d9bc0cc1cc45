"""Ledger persistence over Supabase (PostgREST).

The only module that knows table and column names. Services receive a
LedgerStore and work with plain row dicts, so tests can swap in an
in-memory fake with the same coroutine methods.

Inserts go through one upsert request that ignores rows conflicting on
``(family_id, fingerprint)``. A single PostgREST request runs as a single
statement, so the batch lands all-or-nothing, and the unique index makes
a double insert from two concurrent imports impossible.
"""

from datetime import date
from typing import Any, Callable

import structlog
from supabase import AsyncClient

logger = structlog.get_logger()

CATEGORY_TABLE = "category"
TRANSACTION_TABLE = "transaction"
FINGERPRINT_CONFLICT_TARGET = "family_id,fingerprint"

# PostgREST caps responses (1000 rows by default); page explicitly.
PAGE_SIZE = 1000


class LedgerStore:
    """Async access to a family's categories and transactions."""

    def __init__(self, client: AsyncClient, page_size: int = PAGE_SIZE):
        self.client = client
        self.page_size = page_size

    async def _fetch_all(self, build_query: Callable[[], Any]) -> list[dict]:
        rows: list[dict] = []
        start = 0
        while True:
            result = await build_query().range(start, start + self.page_size - 1).execute()
            batch = result.data or []
            rows.extend(batch)
            if len(batch) < self.page_size:
                return rows
            start += self.page_size

    async def list_categories(self, family_id: str) -> list[dict]:
        """All categories of the family with their tag lists."""
        result = await (
            self.client.table(CATEGORY_TABLE)
            .select("id, name, tags")
            .eq("family_id", family_id)
            .execute()
        )
        return result.data or []

    async def list_transactions_between(
        self, family_id: str, start: date, end: date
    ) -> list[dict]:
        """Persisted rows with ``start <= transaction_date <= end``."""
        return await self._fetch_all(
            lambda: self.client.table(TRANSACTION_TABLE)
            .select("id, amount, transaction_date, description, reference")
            .eq("family_id", family_id)
            .gte("transaction_date", start.isoformat())
            .lte("transaction_date", end.isoformat())
            .order("id")
        )

    async def list_transactions_in_category(self, family_id: str, category_id: str) -> list[dict]:
        return await self._fetch_all(
            lambda: self.client.table(TRANSACTION_TABLE)
            .select("id, description")
            .eq("family_id", family_id)
            .eq("category_id", category_id)
            .order("id")
        )

    async def insert_transactions(self, rows: list[dict]) -> int:
        """Bulk insert; returns the number of rows actually written."""
        if not rows:
            return 0
        result = await (
            self.client.table(TRANSACTION_TABLE)
            .upsert(
                rows,
                on_conflict=FINGERPRINT_CONFLICT_TARGET,
                ignore_duplicates=True,
            )
            .execute()
        )
        inserted = len(result.data or [])
        if inserted < len(rows):
            logger.info(
                "ledger_insert_conflicts",
                requested=len(rows),
                inserted=inserted,
            )
        return inserted

    async def reassign_categories(self, family_id: str, assignments: dict[str, str]) -> int:
        """Move transactions to new categories; one request per target category.

        ``assignments`` maps transaction id to its new category id.
        """
        by_category: dict[str, list[str]] = {}
        for transaction_id, category_id in assignments.items():
            by_category.setdefault(category_id, []).append(transaction_id)

        updated = 0
        for category_id, transaction_ids in by_category.items():
            result = await (
                self.client.table(TRANSACTION_TABLE)
                .update({"category_id": category_id})
                .eq("family_id", family_id)
                .in_("id", transaction_ids)
                .execute()
            )
            updated += len(result.data or [])
        return updated
