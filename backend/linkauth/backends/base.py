"""Backend shapes, capability detection, and shared result types.

A backend handle is whatever object the deployment gives us for talking to
the database. Three calling conventions exist:

- CHAINED: ``handle.prepare(sql).bind(*params).all()`` (managed D1 style).
- POSITIONAL: ``handle.prepare(sql).all(*params)`` (in-process driver style).
- RAW_EXEC: ``handle.exec(sql, params)`` with no prepare step.

The shape is resolved once, from attribute presence only, and never
re-detected per call.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from linkauth.backends.errors import BackendUnsupported

# Prepared but never executed while inspecting a handle.
_INSPECT_SQL = "SELECT 1"

_EXECUTION_METHODS = ("all", "first", "run")


class StatementShape(Enum):
    """Closed set of statement-execution conventions."""

    CHAINED = "chained"
    POSITIONAL = "positional"
    RAW_EXEC = "raw_exec"


@dataclass(frozen=True)
class BackendCapabilities:
    """What a backend handle can do, resolved once per handle.

    Attributes:
        shape: The statement-execution convention to use.
        native_batch: Whether the handle executes a list of bound
            statements atomically via ``batch()``.
    """

    shape: StatementShape
    native_batch: bool = False


@dataclass(frozen=True)
class RunResult:
    """Write acknowledgment.

    Attributes:
        success: Whether the backend accepted the statement.
        changes: Number of rows affected.
        last_insert_id: Generated row id for inserts into rowid tables.
    """

    success: bool
    changes: int = 0
    last_insert_id: int | None = None


@dataclass(frozen=True)
class BatchStatement:
    """One statement in a batch write.

    Attributes:
        sql: SQL text with ``?`` placeholders.
        params: Ordered parameter values.
    """

    sql: str
    params: Sequence[Any] = field(default_factory=tuple)


class ChainedStatement(Protocol):
    """Prepared statement that binds parameters before execution."""

    def bind(self, *params: Any) -> "ChainedStatement": ...

    async def all(self) -> Any: ...

    async def first(self) -> Any: ...

    async def run(self) -> Any: ...


class PositionalStatement(Protocol):
    """Prepared statement that takes parameters at call time."""

    async def all(self, *params: Any) -> Any: ...

    async def first(self, *params: Any) -> Any: ...

    async def run(self, *params: Any) -> Any: ...


class RawExecHandle(Protocol):
    """Handle that executes SQL text directly."""

    async def exec(self, sql: str, params: Sequence[Any]) -> Any: ...


def _has_method(obj: object, name: str) -> bool:
    return callable(getattr(obj, name, None))


def resolve_capabilities(handle: object) -> BackendCapabilities:
    """Detect the execution shape of a backend handle.

    Checks CHAINED first, then POSITIONAL, then RAW_EXEC. Detection looks at
    which methods exist; nothing is executed and no exception is used for
    dispatch.

    Args:
        handle: Raw backend handle.

    Returns:
        Resolved BackendCapabilities.

    Raises:
        BackendUnsupported: If the handle matches none of the shapes.
    """
    if _has_method(handle, "prepare"):
        stmt = handle.prepare(_INSPECT_SQL)  # type: ignore[attr-defined]
        has_execution = all(_has_method(stmt, m) for m in _EXECUTION_METHODS)
        if has_execution and _has_method(stmt, "bind"):
            return BackendCapabilities(
                shape=StatementShape.CHAINED,
                native_batch=_has_method(handle, "batch"),
            )
        if has_execution:
            return BackendCapabilities(shape=StatementShape.POSITIONAL)

    if _has_method(handle, "exec"):
        return BackendCapabilities(shape=StatementShape.RAW_EXEC)

    raise BackendUnsupported(handle)
