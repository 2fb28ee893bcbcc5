"""Backend error taxonomy.

Errors raised by the statement adapter and the database backends. They sit
below the API error classes: repositories translate the few they can act on
(uniqueness violations) and let the rest propagate unchanged.
"""

from collections.abc import Sequence
from typing import Any

__all__ = [
    "BackendError",
    "BackendUnsupported",
    "D1QueryError",
    "QueryFailed",
    "UNIQUE_VIOLATION_MARKER",
]

# SQLite and D1 both report uniqueness violations with this prefix.
UNIQUE_VIOLATION_MARKER = "UNIQUE constraint failed"


class BackendError(Exception):
    """Base class for all database backend errors."""

    pass


class BackendUnsupported(BackendError):
    """The backend handle lacks a capability the caller needs.

    Raised at gateway construction when no statement-execution shape is
    found. Configuration error: the handle is the wrong object. Not retryable.
    """

    def __init__(
        self, handle: object, capability: str = "statement execution"
    ) -> None:
        self.handle_type = type(handle).__name__
        self.capability = capability
        super().__init__(
            f"Backend handle {self.handle_type!r} does not support {capability}"
        )


class QueryFailed(BackendError):
    """The backend raised while executing a statement.

    ``str(error)`` is the backend's own message, unmodified, so callers can
    match on text such as ``UNIQUE constraint failed: users.email``.

    Attributes:
        sql: The literal SQL text that failed.
        params: The bound parameter list.
    """

    def __init__(self, message: str, *, sql: str, params: Sequence[Any]) -> None:
        super().__init__(message)
        self.sql = sql
        self.params = list(params)

    @property
    def is_unique_violation(self) -> bool:
        """Whether the backend reported a uniqueness constraint violation."""
        return UNIQUE_VIOLATION_MARKER in str(self)


class D1QueryError(BackendError):
    """The D1 REST API reported a failed query.

    Raised inside the managed backend handle; the statement adapter wraps it
    in ``QueryFailed`` like any other driver error.

    Attributes:
        status_code: HTTP status of the API response, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
