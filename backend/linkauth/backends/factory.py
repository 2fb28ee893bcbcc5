"""Backend factory.

Selects the backend handle for the configured deployment mode.
"""

from typing import TYPE_CHECKING

from linkauth.backends.d1_adapter import D1HttpDatabase
from linkauth.backends.sqlite_adapter import InMemoryDatabase, SQLiteDatabase

if TYPE_CHECKING:
    from linkauth.core.config import Settings


def create_backend(settings: "Settings") -> D1HttpDatabase | SQLiteDatabase | InMemoryDatabase:
    """Build the raw backend handle for ``settings.database_mode``.

    Args:
        settings: Application settings.

    Returns:
        D1HttpDatabase for "managed", SQLiteDatabase for "dev",
        InMemoryDatabase for "test".

    Raises:
        ValueError: If the mode is unknown.
    """
    mode = settings.database_mode
    if mode == "managed":
        return D1HttpDatabase(
            account_id=settings.d1_account_id,
            database_id=settings.d1_database_id,
            api_token=settings.d1_api_token.get_secret_value(),
            base_url=settings.d1_api_base_url,
            timeout=settings.d1_timeout_seconds,
        )
    if mode == "dev":
        return SQLiteDatabase(settings.sqlite_path, echo=settings.sqlite_echo)
    if mode == "test":
        return InMemoryDatabase()
    raise ValueError(f"Unknown database mode: {mode}")
