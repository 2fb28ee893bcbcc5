"""Statement adapter: one calling convention over three backend shapes.

Turns ``(sql, params)`` into rows, a single row, or a write acknowledgment,
whatever shape the handle has. Every execution is logged with its literal
SQL and parameters; every backend failure becomes ``QueryFailed`` carrying
the backend's own message.
"""

from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from linkauth.backends.base import (
    BackendCapabilities,
    BatchStatement,
    RunResult,
    StatementShape,
    resolve_capabilities,
)
from linkauth.backends.errors import BackendUnsupported, QueryFailed

logger = structlog.get_logger()

Row = dict[str, Any]


def _rows(result: Any) -> list[Row]:
    """Normalize an ``all`` result (envelope or bare rows) to a list of dicts."""
    if result is None:
        return []
    if isinstance(result, Mapping):
        return [dict(row) for row in result.get("results") or []]
    return [dict(row) for row in result]


def _first_row(result: Any, shape: StatementShape) -> Row | None:
    """Normalize a ``first`` result to one dict or None.

    Prepared shapes return the row itself; RAW_EXEC has no ``first`` and
    returns the full result envelope.
    """
    if result is None:
        return None
    if shape is StatementShape.RAW_EXEC:
        rows = _rows(result)
        return rows[0] if rows else None
    return dict(result)


def _run_result(result: Any) -> RunResult:
    """Normalize a ``run`` result envelope to a RunResult."""
    if not isinstance(result, Mapping):
        return RunResult(success=True)
    meta = result.get("meta") or {}
    last_row_id = meta.get("last_row_id")
    return RunResult(
        success=bool(result.get("success", True)),
        changes=int(meta.get("changes") or 0),
        last_insert_id=int(last_row_id) if last_row_id is not None else None,
    )


class StatementAdapter:
    """Executes statements against a backend handle of any supported shape.

    Args:
        handle: Raw backend handle.
        capabilities: Pre-resolved capabilities. Detected from the handle when
            omitted.

    Raises:
        BackendUnsupported: If the handle matches no execution shape.
    """

    def __init__(
        self,
        handle: object,
        capabilities: BackendCapabilities | None = None,
    ) -> None:
        self._handle = handle
        self.capabilities = capabilities or resolve_capabilities(handle)

    @property
    def shape(self) -> StatementShape:
        """The resolved execution shape."""
        return self.capabilities.shape

    async def query_all(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        """Return every matching row."""
        return _rows(await self._execute(sql, params, "all"))

    async def query_one(self, sql: str, params: Sequence[Any] = ()) -> Row | None:
        """Return the first matching row, or None when there is none."""
        return _first_row(await self._execute(sql, params, "first"), self.shape)

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> RunResult:
        """Run a write statement and return its acknowledgment."""
        return _run_result(await self._execute(sql, params, "run"))

    async def execute_batch(
        self, statements: Sequence[BatchStatement]
    ) -> list[RunResult]:
        """Run statements through the handle's native atomic batch.

        Args:
            statements: Statements to execute, in order.

        Returns:
            One RunResult per statement.

        Raises:
            BackendUnsupported: If the handle has no native batch.
            QueryFailed: If the backend rejects the batch.
        """
        if not self.capabilities.native_batch:
            raise BackendUnsupported(self._handle, "native batch execution")

        sql = "; ".join(s.sql for s in statements)
        params = [p for s in statements for p in s.params]
        logger.debug(
            "statement.batch",
            statements=[(s.sql, list(s.params)) for s in statements],
        )
        try:
            bound = [
                self._handle.prepare(s.sql).bind(*s.params)  # type: ignore[attr-defined]
                for s in statements
            ]
            results = await self._handle.batch(bound)  # type: ignore[attr-defined]
        except Exception as exc:
            logger.warning("statement.failed", sql=sql, params=params, error=str(exc))
            raise QueryFailed(str(exc), sql=sql, params=params) from exc
        return [_run_result(r) for r in results]

    async def _execute(self, sql: str, params: Sequence[Any], method: str) -> Any:
        """Dispatch one statement using the resolved shape."""
        params = list(params)
        shape = self.capabilities.shape
        logger.debug(
            "statement.execute",
            sql=sql,
            params=params,
            method=method,
            shape=shape.value,
        )
        try:
            if shape is StatementShape.CHAINED:
                bound = self._handle.prepare(sql).bind(*params)  # type: ignore[attr-defined]
                return await getattr(bound, method)()
            if shape is StatementShape.POSITIONAL:
                prepared = self._handle.prepare(sql)  # type: ignore[attr-defined]
                return await getattr(prepared, method)(*params)
            return await self._handle.exec(sql, params)  # type: ignore[attr-defined]
        except Exception as exc:
            logger.warning("statement.failed", sql=sql, params=params, error=str(exc))
            raise QueryFailed(str(exc), sql=sql, params=params) from exc
