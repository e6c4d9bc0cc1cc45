"""Batch deduplication against the ledger and within the batch itself.

Re-importing a statement, even one mixed with new rows, must never create
a second ledger row for the same economic event. Two checks give that:
the candidate's fingerprint must be absent from the persisted rows in the
batch's date span, and absent from the candidates already kept earlier in
the same batch.
"""

from datetime import date
from typing import Iterable

from apps.api.domains.ingestion.fingerprint import build_fingerprint, extract_reference
from apps.api.domains.ingestion.schemas import NormalizedTransaction


def candidate_date_span(candidates: Iterable[NormalizedTransaction]) -> tuple[date, date]:
    """Inclusive ``(min_date, max_date)`` covering every candidate."""
    dates = [candidate.transaction_date for candidate in candidates]
    if not dates:
        raise ValueError("candidate_date_span() needs at least one candidate")
    return min(dates), max(dates)


def fingerprint_persisted_row(row: dict, family_id: str) -> str:
    """Rebuild the fingerprint of a stored transaction row.

    Rows written by the importer carry an explicit ``reference``; rows
    entered by hand may still hold a ``Ref:`` token in the description.
    """
    description = row.get("description")
    reference = row.get("reference") or extract_reference(description)
    return build_fingerprint(
        family_id=family_id,
        transaction_date=str(row["transaction_date"]),
        amount=row["amount"],
        description=description,
        reference=reference,
    )


def fingerprints_for_rows(rows: Iterable[dict], family_id: str) -> set[str]:
    return {fingerprint_persisted_row(row, family_id) for row in rows}


def filter_duplicates(
    candidates: Iterable[NormalizedTransaction],
    persisted_fingerprints: set[str],
) -> list[NormalizedTransaction]:
    """Keep first occurrences that are not already in the ledger, in input order."""
    seen: set[str] = set()
    survivors: list[NormalizedTransaction] = []
    for candidate in candidates:
        if candidate.fingerprint in persisted_fingerprints:
            continue
        if candidate.fingerprint in seen:
            continue
        seen.add(candidate.fingerprint)
        survivors.append(candidate)
    return survivors
