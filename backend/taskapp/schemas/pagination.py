"""Shared pagination schemas for list endpoints."""

import math

from pydantic import BaseModel, ConfigDict, Field


class Pagination(BaseModel):
    """Page-based cursor info; total is counted under the same filter as the items."""

    model_config = ConfigDict(populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit) if limit else 0)


class PaginatedResponse(BaseModel):
    """Standard paginated envelope: success + data + pagination."""

    success: bool = True
    data: list
    pagination: Pagination
