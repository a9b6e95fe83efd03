"""Pagination helpers (1-indexed pages)."""

import math


def paginate(page: int, page_size: int, max_page_size: int = 100) -> tuple[int, int]:
    """Clamp page/page_size; return (page, page_size)."""
    page = max(1, page)
    page_size = max(1, min(page_size, max_page_size))
    return page, page_size


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if page_size > 0 else 0
