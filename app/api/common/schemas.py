"""Schemas shared by list endpoints."""

from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar('T')


class PaginationMetadata(BaseModel):
    """
    Paging window of a list response.

    Attributes:
        skip: Number of rows skipped
        limit: Page size requested
        total: Number of rows matching the filters, ignoring skip and limit
    """

    skip: int
    limit: int
    total: int


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of results, e.g. the visit history browsed by reception."""

    items: List[T]
    pagination: PaginationMetadata
