"""Estimate how many A4 pages an invoice table needs."""

from __future__ import annotations

# Table rows (line items plus their additional-charge lines) per A4 page.
FIRST_PAGE_CAPACITY = 18
MID_PAGE_CAPACITY = 32
LAST_PAGE_CAPACITY = 24


def estimate_page_count(row_count: int) -> int:
    if row_count <= FIRST_PAGE_CAPACITY:
        return 1
    remaining = row_count - FIRST_PAGE_CAPACITY
    if remaining <= LAST_PAGE_CAPACITY:
        return 2
    mid_rows = remaining - LAST_PAGE_CAPACITY
    mid_pages = (mid_rows + MID_PAGE_CAPACITY - 1) // MID_PAGE_CAPACITY
    return 2 + mid_pages


def max_rows_for_pages(page_count: int) -> int:
    if page_count <= 1:
        return FIRST_PAGE_CAPACITY
    return FIRST_PAGE_CAPACITY + LAST_PAGE_CAPACITY + MID_PAGE_CAPACITY * (page_count - 2)
