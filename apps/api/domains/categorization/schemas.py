"""Pydantic schemas for the categorization domain."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CategoryRecord(BaseModel):
    """A family category as the tag matcher sees it."""

    id: str
    name: str = ""
    tags: list[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []


class ResolveCategoryRequest(BaseModel):
    """Description to run through the family's tag rules."""

    description: Optional[str] = Field(default=None, max_length=1000)


class ResolveCategoryResponse(BaseModel):
    category_id: str


class RecategorizeSummary(BaseModel):
    """Outcome of rescanning the uncategorized transactions."""

    updated: int
    scanned: int
