"""Database gateway.

One gateway per process owns the backend handle and routes every read and
write. It is constructed explicitly by the entrypoint and passed to
repositories; nothing reaches a driver directly.

Batch semantics depend on the backend: handles with a native atomic batch
(managed D1) apply all statements or none. Other handles run the statements
one by one, and a failure at statement N leaves statements before N
applied. ``DatabaseGateway.atomic_batch`` tells callers which case they are
in.
"""

import uuid
from collections.abc import AsyncGenerator, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog

from linkauth.backends.base import BatchStatement, RunResult, StatementShape
from linkauth.backends.factory import create_backend
from linkauth.backends.statement import Row, StatementAdapter
from linkauth.core.config import Settings, settings
from linkauth.core.schema import MIGRATIONS, MIGRATIONS_TABLE_SQL, Migration

logger = structlog.get_logger()

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as a fixed-width UTC ISO 8601 string.

    Fixed width keeps SQL string comparison (``expires_at > ?``) in
    chronological order. Naive datetimes are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime."""
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _as_batch_statement(item: BatchStatement | Mapping[str, Any]) -> BatchStatement:
    if isinstance(item, BatchStatement):
        return item
    return BatchStatement(sql=item["sql"], params=tuple(item.get("params") or ()))


class DatabaseGateway:
    """Unified data access over whichever backend the deployment provides.

    Args:
        handle: Raw backend handle (D1, SQLite file, or in-memory).
        clock: Returns the current time. Defaults to ``datetime.now(UTC)``.
        migrations: Schema versions applied lazily on first use.

    Raises:
        BackendUnsupported: If the handle has no usable execution shape.
    """

    def __init__(
        self,
        handle: object,
        *,
        clock: Callable[[], datetime] | None = None,
        migrations: Sequence[Migration] = MIGRATIONS,
    ) -> None:
        self._clock = clock or _utcnow
        self._migrations = tuple(migrations)
        self._attach(handle)

    def _attach(self, handle: object) -> None:
        self._handle = handle
        self._adapter = StatementAdapter(handle)
        self._initialized = False
        logger.info(
            "gateway.backend_selected",
            backend=type(handle).__name__,
            shape=self._adapter.shape.value,
            native_batch=self._adapter.capabilities.native_batch,
        )

    @property
    def handle(self) -> object:
        """The raw backend handle. Exposed for teardown and diagnostics."""
        return self._handle

    @property
    def shape(self) -> StatementShape:
        """Execution shape resolved for the current handle."""
        return self._adapter.shape

    @property
    def atomic_batch(self) -> bool:
        """Whether ``batch()`` is all-or-nothing on this backend."""
        return self._adapter.capabilities.native_batch

    @property
    def is_initialized(self) -> bool:
        """Whether schema setup has completed."""
        return self._initialized

    async def initialize(self) -> None:
        """Apply pending schema migrations once.

        Migrations run in version order, one statement at a time. A failing
        statement raises and leaves the gateway uninitialized; the partial
        schema stays in place and the next call retries, which is safe
        because every statement is idempotent.

        Raises:
            QueryFailed: If a schema statement fails.
        """
        if self._initialized:
            return

        await self._adapter.execute(MIGRATIONS_TABLE_SQL)
        applied = {
            row["version"]
            for row in await self._adapter.query_all(
                "SELECT version FROM schema_migrations"
            )
        }
        for migration in self._migrations:
            if migration.version in applied:
                continue
            for statement in migration.statements:
                await self._adapter.execute(statement)
            await self._adapter.execute(
                "INSERT OR IGNORE INTO schema_migrations (version, name, applied_at) "
                "VALUES (?, ?, ?)",
                [migration.version, migration.name, self.timestamp()],
            )
            logger.info(
                "schema.migration_applied",
                version=migration.version,
                name=migration.name,
            )

        self._initialized = True

    async def all(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        """Return every row matched by a query."""
        await self.initialize()
        return await self._adapter.query_all(sql, params)

    async def first(self, sql: str, params: Sequence[Any] = ()) -> Row | None:
        """Return the first matching row, or None. Zero rows is not an error."""
        await self.initialize()
        return await self._adapter.query_one(sql, params)

    async def run(self, sql: str, params: Sequence[Any] = ()) -> RunResult:
        """Execute a write and return ``RunResult(success, changes, last_insert_id)``."""
        await self.initialize()
        return await self._adapter.execute(sql, params)

    async def batch(
        self, statements: Sequence[BatchStatement | Mapping[str, Any]]
    ) -> list[RunResult]:
        """Execute a sequence of writes.

        Uses the backend's native atomic batch when it has one. Otherwise the
        statements run sequentially and are NOT atomic: if statement N
        fails, its error is raised and statements 1..N-1 remain applied.
        Check ``atomic_batch`` before relying on all-or-nothing behavior.

        Args:
            statements: ``BatchStatement`` items or ``{"sql", "params"}`` dicts.

        Returns:
            One RunResult per statement, in order.

        Raises:
            QueryFailed: From the first failing statement.
        """
        await self.initialize()
        items = [_as_batch_statement(s) for s in statements]
        if not items:
            return []
        if self.atomic_batch:
            return await self._adapter.execute_batch(items)

        results: list[RunResult] = []
        for item in items:
            results.append(await self._adapter.execute(item.sql, item.params))
        return results

    def generate_id(self) -> str:
        """Return a new random UUID string."""
        return str(uuid.uuid4())

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        return self._clock()

    def timestamp(self) -> str:
        """Return ``now()`` formatted for storage."""
        return format_timestamp(self.now())

    def reset(self, handle: object | None = None) -> None:
        """Swap the backend handle and re-run shape probing and schema setup.

        For test harnesses only. The previous handle is not closed.
        """
        self._attach(handle if handle is not None else self._handle)

    async def aclose(self) -> None:
        """Release the backend handle's resources."""
        close = getattr(self._handle, "aclose", None)
        if callable(close):
            await close()


def create_gateway(
    app_settings: Settings | None = None,
    *,
    clock: Callable[[], datetime] | None = None,
) -> DatabaseGateway:
    """Build the gateway for the configured deployment mode.

    Args:
        app_settings: Settings to read ``database_mode`` from. Defaults to the
            process settings.
        clock: Optional clock override.

    Returns:
        A DatabaseGateway bound to a fresh backend handle.
    """
    return DatabaseGateway(create_backend(app_settings or settings), clock=clock)


@asynccontextmanager
async def gateway_lifespan(
    app_settings: Settings | None = None,
) -> AsyncGenerator[DatabaseGateway, None]:
    """Create, initialize, and finally close the process gateway."""
    gateway = create_gateway(app_settings)
    try:
        await gateway.initialize()
        yield gateway
    finally:
        await gateway.aclose()
