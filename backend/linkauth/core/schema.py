"""Versioned database schema.

Each migration is an ordered list of idempotent statements (``IF NOT
EXISTS``). The gateway applies pending versions in order and records them
in ``schema_migrations``. Columns use SQLite/D1 types: TEXT ids and
ISO 8601 timestamps, INTEGER 0/1 booleans.
"""

from dataclasses import dataclass

MIGRATIONS_TABLE_SQL = """CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL
)"""


@dataclass(frozen=True)
class Migration:
    """One schema version.

    Attributes:
        version: Monotonic version number, starting at 1.
        name: Short identifier for logs.
        statements: Idempotent SQL statements, applied in order.
    """

    version: int
    name: str
    statements: tuple[str, ...]


_INITIAL_SCHEMA = Migration(
    version=1,
    name="initial_schema",
    statements=(
        """CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            name TEXT,
            phone TEXT,
            company TEXT,
            position TEXT,
            is_email_verified INTEGER NOT NULL DEFAULT 0,
            last_login TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS magic_links (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            token TEXT NOT NULL UNIQUE,
            is_used INTEGER NOT NULL DEFAULT 0,
            expires_at TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
        )""",
        """CREATE TABLE IF NOT EXISTS tokens (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            token TEXT NOT NULL UNIQUE,
            type TEXT NOT NULL,
            is_revoked INTEGER NOT NULL DEFAULT 0,
            is_used INTEGER NOT NULL DEFAULT 0,
            expires_at TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
        )""",
        "CREATE INDEX IF NOT EXISTS idx_users_email ON users(email)",
        "CREATE INDEX IF NOT EXISTS idx_magic_links_user_id ON magic_links(user_id)",
        "CREATE INDEX IF NOT EXISTS idx_magic_links_expires_at ON magic_links(expires_at)",
        "CREATE INDEX IF NOT EXISTS idx_tokens_user_id ON tokens(user_id)",
        "CREATE INDEX IF NOT EXISTS idx_tokens_type ON tokens(type)",
        "CREATE INDEX IF NOT EXISTS idx_tokens_expires_at ON tokens(expires_at)",
    ),
)

_PROFILE_INDEXES = Migration(
    version=2,
    name="profile_indexes",
    statements=("CREATE INDEX IF NOT EXISTS idx_users_phone ON users(phone)",),
)

MIGRATIONS: tuple[Migration, ...] = (_INITIAL_SCHEMA, _PROFILE_INDEXES)

SCHEMA_VERSION = MIGRATIONS[-1].version


def migrations_up_to(target_version: int) -> list[Migration]:
    """Return migrations with version <= target_version, in order.

    Raises:
        ValueError: If target_version is outside 1..SCHEMA_VERSION.
    """
    if not 1 <= target_version <= SCHEMA_VERSION:
        raise ValueError(f"No migration found for version {target_version}")
    return [m for m in MIGRATIONS if m.version <= target_version]
