"""Transaction fingerprints — the dedup key for statement imports.

A fingerprint is a SHA256 over the family and the economic identity of a
row. When the statement carries a reference code, identity is
``(reference, date, amount)``. Without one the lower-cased description
stands in for the reference.

Candidates take the reference from the statement row itself, trimmed and
upper-cased (a ``Ref:`` token in the details is the fallback), and it is
stored in the ``reference`` column. Older ledger rows have no such column;
for them the reference is read back out of the description with
REFERENCE_PATTERN, which stops at the first character that is not a letter
or digit.
"""

import hashlib
import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

REFERENCE_PATTERN = re.compile(r"Ref:\s*([A-Z0-9]+)", re.IGNORECASE)

_CENT = Decimal("0.01")


def normalize_reference(value: Optional[str]) -> Optional[str]:
    """Canonical form of a statement reference code, or None when blank."""
    normalized = (value or "").strip().upper()
    return normalized or None


def extract_reference(description: Optional[str]) -> Optional[str]:
    """Pull the ``Ref: XXXX`` token out of a stored description, upper-cased."""
    if not description:
        return None
    match = REFERENCE_PATTERN.search(description)
    return match.group(1).upper() if match else None


def format_amount(amount: Union[Decimal, float, int, str]) -> str:
    """Render an amount as a fixed 2-decimal string (``50`` -> ``"50.00"``)."""
    return str(Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP))


def build_fingerprint(
    family_id: str,
    transaction_date: Union[date, str],
    amount: Union[Decimal, float, int, str],
    description: Optional[str] = None,
    reference: Optional[str] = None,
) -> str:
    """Generate the deterministic dedup fingerprint for a transaction.

    Args:
        family_id: Tenant the row belongs to.
        transaction_date: Calendar date, or its ISO ``YYYY-MM-DD`` string.
        amount: Positive amount; normalized to 2 decimals.
        description: Only used when there is no reference.
        reference: Statement reference code, if any.

    Returns:
        64-character lowercase hex SHA256 hash.
    """
    if isinstance(transaction_date, date):
        normalized_date = transaction_date.isoformat()
    else:
        normalized_date = str(transaction_date)[:10]

    normalized_amount = format_amount(amount)

    reference = normalize_reference(reference)
    if reference:
        parts = [str(family_id), f"ref:{reference}", normalized_date, normalized_amount]
    else:
        parts = [str(family_id), normalized_date, normalized_amount, (description or "").lower()]

    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
