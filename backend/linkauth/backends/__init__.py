"""Database backend layer.

Exports:
    Shape and result types for the statement adapter
    Error classes for backend error handling
    Concrete backend handles and the mode-based factory
"""

from linkauth.backends.base import (
    BackendCapabilities,
    BatchStatement,
    RunResult,
    StatementShape,
    resolve_capabilities,
)
from linkauth.backends.d1_adapter import D1HttpDatabase
from linkauth.backends.errors import (
    BackendError,
    BackendUnsupported,
    D1QueryError,
    QueryFailed,
)
from linkauth.backends.factory import create_backend
from linkauth.backends.sqlite_adapter import InMemoryDatabase, SQLiteDatabase
from linkauth.backends.statement import StatementAdapter

__all__ = [
    # Types
    "BackendCapabilities",
    "BatchStatement",
    "RunResult",
    "StatementShape",
    "resolve_capabilities",
    # Errors
    "BackendError",
    "BackendUnsupported",
    "D1QueryError",
    "QueryFailed",
    # Handles
    "D1HttpDatabase",
    "InMemoryDatabase",
    "SQLiteDatabase",
    "create_backend",
    # Adapter
    "StatementAdapter",
]
