"""
Pagination module for docrecords - range-based page starts.

Invariants:
    - Pages never overlap and never skip records while data is unchanged
    - Page starts are plain mappings; encode_page_start() makes them opaque
"""

from .paginator import (
    DEFAULT_PAGE_SIZE,
    Page,
    decode_page_start,
    encode_page_start,
    normalize_sort,
    page,
    page_start_of,
    paging_predicate,
    reverse_sort,
)

__all__ = [
    "Page",
    "page",
    "DEFAULT_PAGE_SIZE",
    "normalize_sort",
    "reverse_sort",
    "paging_predicate",
    "page_start_of",
    "encode_page_start",
    "decode_page_start",
]
