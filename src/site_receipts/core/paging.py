from __future__ import annotations

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


def clamp_paging(page: int | None, page_size: int | None) -> tuple[int, int]:
    page = max(page or 1, 1)
    page_size = min(max(page_size or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)
    return page, page_size


def total_pages(total: int, page_size: int) -> int:
    return max(-(-total // page_size), 1)
