from __future__ import annotations

from typing import List, Optional


class RailOpsError(Exception):
    """Base class for every error raised by the core package."""


class ValidationError(RailOpsError):
    """Missing or invalid request input, e.g. a date range with ``to < from``."""


class NotFoundError(RailOpsError):
    """A record id that does not exist in the store.

    An empty dimension filter is never a NotFoundError; it yields zero-filled rows.
    """


class ImportValidationError(RailOpsError):
    """Raised when an uploaded workbook cannot be read at all.

    Row-level failures are collected on the import result instead of raised.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])
