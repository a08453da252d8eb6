"""Shared response pieces."""

from typing import Optional

from pydantic import BaseModel


class Pagination(BaseModel):
    """Page metadata returned with every list."""

    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: Optional[int]) -> "Pagination":
        total = total or 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            pages=(total + limit - 1) // limit if total else 0,
        )


class PartySummary(BaseModel):
    """Public view of a buyer or seller."""

    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    model_config = {"from_attributes": True}
