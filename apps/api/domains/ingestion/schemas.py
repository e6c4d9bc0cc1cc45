"""Pydantic schemas for the ingestion domain."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Annotated, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

MAX_STATEMENT_ROWS = 5000

MoneyValue = Optional[Union[float, str]]


class RawStatementEntry(BaseModel):
    """One row as returned by the statement parser. Untrusted."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    ref: Optional[str] = Field(default=None, max_length=255)
    time: Optional[str] = Field(default=None, max_length=64)
    details: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[str] = Field(default=None, max_length=64)
    money_in: MoneyValue = None
    money_out: MoneyValue = None


# Whole parser response: a bounded JSON array of entries.
StatementTransformResponse = TypeAdapter(
    Annotated[list[RawStatementEntry], Field(max_length=MAX_STATEMENT_ROWS)]
)


@dataclass(frozen=True)
class NormalizedTransaction:
    """A candidate ledger row, not yet checked for duplicates."""

    category_id: str
    amount: Decimal
    transaction_date: date
    description: Optional[str]
    fingerprint: str
    reference: Optional[str] = None


class ImportSummary(BaseModel):
    """Accounting for every entry handed to an import.

    inserted_count + skipped_duplicates_count + errors_count equals the
    number of entries.
    """

    inserted_count: int = 0
    skipped_duplicates_count: int = 0
    errors_count: int = 0
