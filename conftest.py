"""Shared pytest fixtures.

Settings are read at import time, so the required env vars are set here
before any apps.api module is imported.
"""

import os
from datetime import date

import pytest

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("API_BASE_URL", "https://parser.test")

from apps.api.core.rate_limit import reset_rate_limits  # noqa: E402

FAMILY_ID = "42"
USER_ID = "user-1"


class FakeLedgerStore:
    """In-memory stand-in for LedgerStore with the same coroutines.

    Enforces the (family_id, fingerprint) uniqueness the real table has.
    """

    def __init__(self, categories=None, transactions=None):
        self.categories = list(categories or [])
        self.transactions = list(transactions or [])
        self.calls: list[str] = []
        self._next_id = 1000

    async def list_categories(self, family_id):
        self.calls.append("list_categories")
        return [c for c in self.categories if c.get("family_id", family_id) == family_id]

    async def list_transactions_between(self, family_id, start: date, end: date):
        self.calls.append("list_transactions_between")
        return [
            t
            for t in self.transactions
            if t.get("family_id", family_id) == family_id
            and start.isoformat() <= str(t["transaction_date"]) <= end.isoformat()
        ]

    async def list_transactions_in_category(self, family_id, category_id):
        self.calls.append("list_transactions_in_category")
        return [
            t
            for t in self.transactions
            if t.get("family_id", family_id) == family_id and str(t["category_id"]) == category_id
        ]

    async def insert_transactions(self, rows):
        self.calls.append("insert_transactions")
        taken = {
            (t.get("family_id"), t.get("fingerprint"))
            for t in self.transactions
            if t.get("fingerprint")
        }
        inserted = 0
        for row in rows:
            key = (row["family_id"], row["fingerprint"])
            if key in taken:
                continue
            taken.add(key)
            self._next_id += 1
            self.transactions.append({"id": str(self._next_id), **row})
            inserted += 1
        return inserted

    async def reassign_categories(self, family_id, assignments):
        self.calls.append("reassign_categories")
        updated = 0
        for t in self.transactions:
            if str(t["id"]) in assignments:
                t["category_id"] = assignments[str(t["id"])]
                updated += 1
        return updated


@pytest.fixture
def default_categories():
    return [
        {"id": "1", "name": "Uncategorized", "tags": []},
        {"id": "2", "name": "Food", "tags": ["shop"]},
        {"id": "3", "name": "Transport", "tags": ["uber", "matatu"]},
    ]


@pytest.fixture
def ledger_store(default_categories):
    return FakeLedgerStore(categories=default_categories)


@pytest.fixture
def make_store():
    """Factory for stores with custom seed data."""
    return FakeLedgerStore


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()
