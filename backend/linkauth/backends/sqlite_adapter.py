"""SQLite backends on the SQLAlchemy async engine.

Two handles share one executor:

- SQLiteDatabase: file-backed, in-process development database. POSITIONAL
  shape (``prepare(sql).all(*params)``).
- InMemoryDatabase: in-memory test database on a single shared connection.
  RAW_EXEC shape (``exec(sql, params)``).

Neither offers a native batch; the gateway falls back to sequential writes.
Driver errors surface as the underlying ``sqlite3`` exception so the
message reads exactly as SQLite wrote it.
"""

import asyncio
from collections.abc import Sequence
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

_MEMORY_URL = "sqlite+aiosqlite:///:memory:"


def _enable_foreign_keys(engine: AsyncEngine) -> None:
    """Turn on FK enforcement (and ON DELETE CASCADE) for every connection."""

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class _SQLiteExecutor:
    """Runs one statement per transaction and returns a D1-style envelope."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        _enable_foreign_keys(engine)

    async def _execute(self, sql: str, params: Sequence[Any]) -> dict[str, Any]:
        try:
            async with self._engine.begin() as conn:
                result = await conn.exec_driver_sql(sql, tuple(params))
                if result.returns_rows:
                    rows = [dict(row) for row in result.mappings().all()]
                    return {
                        "success": True,
                        "results": rows,
                        "meta": {"changes": 0, "last_row_id": None},
                    }
                return {
                    "success": True,
                    "results": [],
                    "meta": {
                        "changes": max(result.rowcount, 0),
                        "last_row_id": result.lastrowid,
                    },
                }
        except DBAPIError as exc:
            if exc.orig is not None:
                raise exc.orig from exc
            raise

    async def aclose(self) -> None:
        """Dispose of the engine and its pooled connections."""
        await self._engine.dispose()


class _PositionalStatement:
    """Prepared statement that receives its parameters at call time."""

    def __init__(self, database: "SQLiteDatabase", sql: str) -> None:
        self._database = database
        self.sql = sql

    async def all(self, *params: Any) -> list[dict[str, Any]]:
        envelope = await self._database._execute(self.sql, params)
        return envelope["results"]

    async def first(self, *params: Any) -> dict[str, Any] | None:
        rows = await self.all(*params)
        return rows[0] if rows else None

    async def run(self, *params: Any) -> dict[str, Any]:
        return await self._database._execute(self.sql, params)


class SQLiteDatabase(_SQLiteExecutor):
    """File-backed SQLite handle for local development.

    Args:
        path: Database file path.
        echo: Echo SQL through SQLAlchemy's logger.
    """

    def __init__(self, path: str, *, echo: bool = False) -> None:
        self.path = path
        super().__init__(create_async_engine(f"sqlite+aiosqlite:///{path}", echo=echo))

    def prepare(self, sql: str) -> _PositionalStatement:
        """Prepare a statement. Nothing runs until it is called."""
        return _PositionalStatement(self, sql)


class InMemoryDatabase(_SQLiteExecutor):
    """In-memory SQLite handle for tests.

    All statements share one connection (``StaticPool``) so the database
    lives as long as the handle. The connection cannot interleave
    transactions, so statements run one at a time.
    """

    def __init__(self) -> None:
        super().__init__(create_async_engine(_MEMORY_URL, poolclass=StaticPool))
        self._lock = asyncio.Lock()

    async def exec(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any]:
        """Execute SQL text directly and return a result envelope."""
        async with self._lock:
            return await self._execute(sql, params)
