"""Pagination helpers for list endpoints."""

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def calculate_total_pages(total: int, page_size: int) -> int:
    """Return the number of pages needed for ``total`` items; at least 1."""
    if total <= 0:
        return 1
    return (total + page_size - 1) // page_size


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size
