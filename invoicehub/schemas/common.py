from decimal import Decimal
from typing import Generic, List, Optional, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field

T = TypeVar("T")

MAX_PAGE_SIZE = 100


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T] = Field(default_factory=list)  # type: ignore[assignment]
    pagination: PaginationMeta


def build_pagination(page: int, limit: int, total: int) -> PaginationMeta:
    pages = -(-total // limit) or 1
    return PaginationMeta(
        page=page,
        limit=limit,
        total=total,
        total_pages=pages,
        has_next=page < pages,
        has_prev=page > 1,
    )


class PageParams:
    """`?page=&limit=` query dependency for list endpoints."""

    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    ):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def response(self, items: Sequence, total: int) -> PaginatedResponse:
        return PaginatedResponse(
            data=list(items), pagination=build_pagination(self.page, self.limit, total)
        )


def money(value) -> str:
    """Render a Decimal/float/str amount as a fixed 2-decimal string."""
    if value is None:
        return "0.00"
    return f"{Decimal(str(value)):.2f}"


def iso(value) -> Optional[str]:
    return value.isoformat() if value else None
