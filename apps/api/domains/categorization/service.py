"""Categorization service — tag rules shared by import and recategorize.

A category carries free-form tags ("coffee shop", "uber"). A transaction
belongs to the category owning the longest tag found inside its
description; anything unmatched stays on the family's default
"Uncategorized" category.

The matcher is a linear scan, O(descriptions x tags). Family tag sets are
small, so no index is kept.
"""

from typing import Iterable, Optional

import structlog

from apps.api.core.errors import InternalError
from apps.api.domains.categorization.schemas import CategoryRecord, RecategorizeSummary

logger = structlog.get_logger()

DEFAULT_CATEGORY_NAME = "uncategorized"


def find_category_id_by_tags(
    description: Optional[str],
    categories: Iterable[CategoryRecord],
    default_category_id: str,
) -> str:
    """Return the id of the category whose tag matches ``description``.

    Longer tags are tried first so that "coffee shop" beats "shop". Ties
    keep category order. Matching is a case-insensitive substring test.
    """
    if not description:
        return default_category_id

    tag_entries = [
        (category.id, tag.strip())
        for category in categories
        for tag in category.tags
        if tag and tag.strip()
    ]
    if not tag_entries:
        return default_category_id

    tag_entries.sort(key=lambda entry: len(entry[1]), reverse=True)

    haystack = description.lower()
    for category_id, tag in tag_entries:
        if tag.lower() in haystack:
            return category_id

    return default_category_id


def find_default_category(categories: Iterable[CategoryRecord]) -> CategoryRecord:
    """Locate the family's Uncategorized category.

    Its absence is a seed-data defect, not a per-request problem.
    """
    for category in categories:
        if category.name.strip().lower() == DEFAULT_CATEGORY_NAME:
            return category
    raise InternalError("Default Uncategorized category not found. Run database seed.")


def split_default_category(
    categories: Iterable[CategoryRecord],
) -> tuple[CategoryRecord, list[CategoryRecord]]:
    """Return the default category and the categories eligible for matching."""
    categories = list(categories)
    default = find_default_category(categories)
    matchable = [category for category in categories if category.id != default.id]
    return default, matchable


async def load_categories(store, family_id: str) -> list[CategoryRecord]:
    rows = await store.list_categories(family_id)
    return [CategoryRecord.model_validate(row) for row in rows]


async def recategorize_transactions(store, family_id: str) -> RecategorizeSummary:
    """Re-run the tag rules over every transaction still on the default category.

    Only transactions that now match a tag are touched.
    """
    categories = await load_categories(store, family_id)
    default, matchable = split_default_category(categories)

    rows = await store.list_transactions_in_category(family_id, default.id)

    assignments: dict[str, str] = {}
    for row in rows:
        category_id = find_category_id_by_tags(row.get("description"), matchable, default.id)
        if category_id != default.id:
            assignments[str(row["id"])] = category_id

    updated = 0
    if assignments:
        updated = await store.reassign_categories(family_id, assignments)

    logger.info(
        "recategorize_complete",
        family_id=family_id,
        scanned=len(rows),
        updated=updated,
    )
    return RecategorizeSummary(updated=updated, scanned=len(rows))
