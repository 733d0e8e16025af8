"""Response envelope and pagination schemas."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from app.core.logging import get_trace_id

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope wrapping every successful response."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    trace_id: str | None = Field(default_factory=get_trace_id, alias="traceId")
    message: str | None = None
    data: T | None = None


class Page(BaseModel, Generic[T]):
    """One page of a listing."""

    items: list[T]
    total: int
    page: int
    page_size: int
    pages: int

    @classmethod
    def build(cls, items: list, total: int, page: int, page_size: int) -> "Page":
        pages = (total + page_size - 1) // page_size if page_size else 0
        return cls(items=items, total=total, page=page, page_size=page_size, pages=pages)
