from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError


class LibraryError(Exception):
    """Base class for all library catalogue errors."""

    pass


class InvalidLibraryError(LibraryError, ValueError):
    """A library model, or a request against it, is invalid."""

    pass


class DuplicateNameError(InvalidLibraryError):
    """A name is already used within its scope."""

    pass


class LibraryNotFoundError(LibraryError, LookupError):
    """No library exists with the requested identifier."""

    pass


class StorageUnavailableError(LibraryError):
    """The SQLite database cannot be opened, or the connection is closed."""

    pass


class ConstraintViolationError(LibraryError):
    """The storage engine rejected a write (foreign key, unique or primary key)."""

    pass


class SchemaError(LibraryError):
    """A table cannot be defined, e.g. its referenced tables are missing."""

    pass


@dataclass
class ErrorInfo:
    """Normalized information about a failed storage operation.

    This is what the command line reports, so failures are easy to
    aggregate and inspect.
    """

    code: str
    message: str
    operation: str
    exception_type: str

    def to_details_dict(self) -> dict[str, Any]:
        return {
            "reason": self.message,
            "reason_code": self.code,
            "operation": self.operation,
            "exception_type": self.exception_type,
        }


def _integrity_code(lower_msg: str) -> str:
    if "foreign key" in lower_msg:
        return "missing_parent"
    if "unique" in lower_msg or "primary key" in lower_msg:
        return "duplicate_row"
    if "not null" in lower_msg:
        return "missing_field"
    return "constraint_violation"


def classify_storage_error(exc: Exception, operation: str = "unknown") -> ErrorInfo:
    """Map a raw exception to a structured ErrorInfo.

    Classification is based on exception type plus the well-known SQLite
    message fragments.
    """

    msg = str(exc) or exc.__class__.__name__
    etype = exc.__class__.__name__
    lower_msg = msg.lower()

    if isinstance(exc, DuplicateNameError):
        return ErrorInfo("duplicate_name", msg, operation, etype)

    if isinstance(exc, LibraryNotFoundError):
        return ErrorInfo("library_not_found", msg, operation, etype)

    if isinstance(exc, StorageUnavailableError):
        return ErrorInfo("storage_unavailable", msg, operation, etype)

    if isinstance(exc, SchemaError):
        return ErrorInfo("schema_error", msg, operation, etype)

    if isinstance(exc, ConstraintViolationError):
        cause = exc.__cause__
        cause_msg = str(cause).lower() if cause is not None else lower_msg
        return ErrorInfo(_integrity_code(cause_msg), msg, operation, etype)

    if isinstance(exc, sqlite3.IntegrityError):
        return ErrorInfo(_integrity_code(lower_msg), msg, operation, etype)

    # pydantic's ValidationError is itself a ValueError; check it first.
    if isinstance(exc, ValidationError):
        return ErrorInfo(
            "invalid_model",
            f"Invalid library model: {exc.error_count()} validation error(s).",
            operation,
            etype,
        )

    if isinstance(exc, InvalidLibraryError):
        return ErrorInfo("invalid_library", msg, operation, etype)

    if isinstance(exc, sqlite3.OperationalError):
        if "locked" in lower_msg or "busy" in lower_msg:
            return ErrorInfo(
                "database_locked",
                "Database is locked by another writer; try again later.",
                operation,
                etype,
            )
        if "no such table" in lower_msg:
            return ErrorInfo(
                "schema_missing",
                "Database schema is missing; run 'arm5library init' first.",
                operation,
                etype,
            )
        return ErrorInfo("storage_error", msg, operation, etype)

    return ErrorInfo("unexpected_error", msg, operation, etype)
