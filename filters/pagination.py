"""
Pagination arithmetic for 1-based, fixed-size pages.
"""

import math
from typing import NamedTuple


class PageWindow(NamedTuple):
    """Contiguous run of page numbers shown in the pagination bar."""
    start: int
    end: int
    leading_ellipsis: bool
    trailing_ellipsis: bool


def page_offset(page: int, page_size: int) -> int:
    return (max(1, page) - 1) * page_size


def total_pages(total: int, page_size: int) -> int:
    if not total or not page_size:
        return 0
    return math.ceil(total / page_size)


def item_range(page: int, page_size: int, total: int):
    """1-based (first, last) item numbers on a page; (0, 0) when empty."""
    if not total or not page_size:
        return 0, 0
    return page_offset(page, page_size) + 1, min(page * page_size, total)


def page_window(current: int, pages: int, max_visible: int = 5) -> PageWindow:
    """Window of at most max_visible pages around current, shifted to stay in range."""
    if pages <= 0:
        return PageWindow(1, 0, False, False)

    start = max(1, current - max_visible // 2)
    end = min(pages, start + max_visible - 1)

    # Near the end: slide the window back so it stays full
    if end - start + 1 < max_visible:
        start = max(1, end - max_visible + 1)

    return PageWindow(start, end, start > 1, end < pages)
