"""Statement entry normalization.

Turns raw parser rows into NormalizedTransaction candidates. A row with an
unreadable date or no positive amount is dropped and counted, never
raised: one bad row must not sink an otherwise good statement.
"""

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional, Union

from apps.api.domains.categorization.schemas import CategoryRecord
from apps.api.domains.categorization.service import (
    find_category_id_by_tags,
    split_default_category,
)
from apps.api.domains.ingestion.fingerprint import (
    build_fingerprint,
    extract_reference,
    normalize_reference,
)
from apps.api.domains.ingestion.schemas import NormalizedTransaction, RawStatementEntry

# Tried in order; the first format that parses wins.
STATEMENT_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y",
)

MAX_DESCRIPTION_LENGTH = 1000

_ZERO = Decimal("0")
_CENT = Decimal("0.01")
_WHITESPACE = re.compile(r"\s+")


def parse_statement_date(value: Optional[str]) -> Optional[date]:
    """Parse a statement timestamp into a calendar date, or None."""
    if not value:
        return None

    normalized = value.strip()
    for fmt in STATEMENT_DATE_FORMATS:
        try:
            return datetime.strptime(normalized, fmt).date()
        except ValueError:
            continue
    return None


def parse_money(value: Union[float, int, str, None]) -> Decimal:
    """Absolute amount of a money cell; anything unreadable counts as zero.

    Accepts numbers and numeric strings with thousands separators
    (``"1,250.50"``).
    """
    if value is None or isinstance(value, bool):
        return _ZERO

    if isinstance(value, (int, float)):
        raw = str(value)
    else:
        raw = value.replace(",", "").strip()
        if not raw:
            return _ZERO

    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError):
        return _ZERO

    if not amount.is_finite():
        return _ZERO
    return abs(amount)


def select_amount(entry: RawStatementEntry) -> Decimal:
    """Pick ``money_in`` when it is positive, else ``money_out``.

    The choice is made on the unrounded values.
    """
    money_in = parse_money(entry.money_in)
    return money_in if money_in > 0 else parse_money(entry.money_out)


def quantize_amount(amount: Decimal) -> Optional[Decimal]:
    """Round to cents; None when the value is too large to hold at 2 dp."""
    try:
        return amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def normalize_description(entry: RawStatementEntry) -> Optional[str]:
    """Build ``"{details} | Ref: {ref} | Status: {status}"`` from the present parts.

    Ledger rows without a ``reference`` column are matched on the ``Ref:``
    token, so keep the format.
    """
    details = (entry.details or "").strip()
    ref = (entry.ref or "").strip()
    status = (entry.status or "").strip()

    chunks = [
        details,
        f"Ref: {ref}" if ref else "",
        f"Status: {status}" if status else "",
    ]
    merged = _WHITESPACE.sub(" ", " | ".join(chunk for chunk in chunks if chunk)).strip()
    merged = merged[:MAX_DESCRIPTION_LENGTH]
    return merged or None


def normalize_entry(
    entry: RawStatementEntry,
    family_id: str,
    matchable: list[CategoryRecord],
    default_category_id: str,
) -> Optional[NormalizedTransaction]:
    """Normalize one entry; None when the row is unusable."""
    transaction_date = parse_statement_date(entry.time)
    if transaction_date is None:
        return None

    # A positive amount under half a cent rounds to zero and is dropped
    amount = quantize_amount(select_amount(entry))
    if amount is None or amount <= 0:
        return None

    description = normalize_description(entry)
    reference = normalize_reference(entry.ref) or extract_reference(description)
    category_id = find_category_id_by_tags(description, matchable, default_category_id)

    return NormalizedTransaction(
        category_id=category_id,
        amount=amount,
        transaction_date=transaction_date,
        description=description,
        reference=reference,
        fingerprint=build_fingerprint(
            family_id=family_id,
            transaction_date=transaction_date,
            amount=amount,
            description=description,
            reference=reference,
        ),
    )


def normalize_entries(
    entries: Iterable[RawStatementEntry],
    family_id: str,
    categories: Iterable[CategoryRecord],
) -> tuple[list[NormalizedTransaction], int]:
    """Normalize a statement batch.

    Returns:
        (candidates, errors_count), candidates in input order.

    Raises:
        InternalError: the family has no Uncategorized category.
    """
    default, matchable = split_default_category(categories)

    candidates: list[NormalizedTransaction] = []
    errors_count = 0
    for entry in entries:
        candidate = normalize_entry(entry, family_id, matchable, default.id)
        if candidate is None:
            errors_count += 1
            continue
        candidates.append(candidate)

    return candidates, errors_count
