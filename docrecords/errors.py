"""
Error types for docrecords.

This module defines the exceptions raised by the engine itself:
- DocRecordsError: Base exception
- InvalidIdentifierError: Malformed record identifier
- PaginationError: Unsupported pagination request
- InvalidPageStartError: Page start token could not be decoded

Store-level failures are defined in docrecords.store.base and never leave
the lifecycle engine as exceptions; they are turned into Outcome values.

Invariants:
    - All errors inherit from DocRecordsError
    - Errors include context for debugging
    - Expected failures (validation, store writes) are returned, not raised
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DocRecordsError(Exception):
    """Base exception for all docrecords errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DOCRECORDS_ERROR"
        self.details = details or {}


class InvalidIdentifierError(DocRecordsError, ValueError):
    """A record identifier could not be coerced to a store identifier.

    Raised when:
    - The identifier is None or an empty string
    - A string identifier is not a valid ObjectId encoding
    """

    def __init__(self, value: Any) -> None:
        super().__init__(
            f"Invalid record identifier: {value!r}",
            code="INVALID_IDENTIFIER",
            details={"value": repr(value)},
        )
        self.value = value


class PaginationError(DocRecordsError, ValueError):
    """Pagination request cannot be served.

    Raised when:
    - page_size is smaller than 1
    - More than one sort field besides _id is requested
    """

    def __init__(self, message: str, sort: Any = None) -> None:
        super().__init__(message, code="PAGINATION_ERROR", details={"sort": sort})
        self.sort = sort


class InvalidPageStartError(DocRecordsError, ValueError):
    """A transported page start token is malformed."""

    def __init__(self, token: str, reason: str) -> None:
        super().__init__(
            f"Invalid page start token: {reason}",
            code="INVALID_PAGE_START",
            details={"token": token},
        )
        self.token = token
