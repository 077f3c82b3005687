"""
1-indexed page requests and the pagination block every list response carries.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from recipeshare.config import settings

T = TypeVar("T")


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @classmethod
    def of(cls, page: Optional[int] = None, limit: Optional[int] = None,
           default_limit: Optional[int] = None) -> "PageRequest":
        """Clamp page to >= 1 and limit to [1, max_page_size]."""
        page = max(1, page or 1)
        limit = limit or default_limit or settings.default_page_size
        limit = min(max(1, limit), settings.max_page_size)
        return cls(page=page, limit=limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, request: PageRequest, total: int) -> "Pagination":
        total_pages = math.ceil(total / request.limit)
        return cls(
            page=request.page,
            limit=request.limit,
            total=total,
            total_pages=total_pages,
            has_next_page=request.page < total_pages,
            has_prev_page=request.page > 1,
        )


@dataclass
class Page(Generic[T]):
    items: list[T]
    pagination: Pagination
