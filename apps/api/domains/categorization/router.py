"""Categorization router — tag-based resolve and bulk recategorize."""

from fastapi import APIRouter, Depends

from apps.api.core.auth import FamilyContext, get_family_context
from apps.api.core.store import LedgerStore
from apps.api.deps import get_ledger_store
from apps.api.domains.categorization.schemas import (
    RecategorizeSummary,
    ResolveCategoryRequest,
    ResolveCategoryResponse,
)
from apps.api.domains.categorization.service import (
    find_category_id_by_tags,
    load_categories,
    recategorize_transactions,
    split_default_category,
)

router = APIRouter(prefix="/categorization", tags=["categorization"])


@router.post("/resolve", response_model=ResolveCategoryResponse)
async def resolve_category(
    request: ResolveCategoryRequest,
    family: FamilyContext = Depends(get_family_context),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Pick the category a description would be filed under.

    Used by the transaction form to pre-select a category.
    """
    categories = await load_categories(store, family.family_id)
    default, matchable = split_default_category(categories)
    category_id = find_category_id_by_tags(request.description, matchable, default.id)
    return ResolveCategoryResponse(category_id=category_id)


@router.post("/recategorize", response_model=RecategorizeSummary)
async def recategorize(
    family: FamilyContext = Depends(get_family_context),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Re-file uncategorized transactions that the current tags now match."""
    return await recategorize_transactions(store, family.family_id)
