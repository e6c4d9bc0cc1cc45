"""FastAPI dependencies wiring storage and the transform service.

Handlers receive ready-made collaborators; tests replace them through
``app.dependency_overrides``.
"""

from fastapi import Depends
from supabase import AsyncClient

from apps.api.core.auth import get_app_settings, get_user_client
from apps.api.core.config import Settings
from apps.api.core.store import LedgerStore
from apps.api.domains.ingestion.transform_client import StatementTransformClient


async def get_ledger_store(client: AsyncClient = Depends(get_user_client)) -> LedgerStore:
    """Ledger access scoped to the caller's JWT (RLS enforced)."""
    return LedgerStore(client)


def get_transform_client(settings: Settings = Depends(get_app_settings)) -> StatementTransformClient:
    return StatementTransformClient.from_settings(settings)
