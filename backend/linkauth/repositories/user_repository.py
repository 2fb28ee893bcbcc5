"""Repository for User CRUD operations.

Owns case-insensitive email uniqueness: every email is trimmed and
lower-cased before it is written or looked up, and the ``users.email``
UNIQUE constraint is the single source of truth for duplicates.
"""

from typing import Any

import structlog

from linkauth.backends.errors import QueryFailed
from linkauth.core.database import DatabaseGateway
from linkauth.core.errors import (
    DuplicateEmailError,
    NoValidFieldsError,
    NotFoundError,
    ValidationError,
)
from linkauth.models.user import User

logger = structlog.get_logger()

# Fields that may be updated via UserRepository.update().
# Never add 'id', 'email', 'last_login', 'created_at', or 'updated_at'.
# - id: primary key, immutable
# - email: unique identity, changing it needs its own verified flow
# - last_login: written only by record_login() after a magic-link login
# - created_at/updated_at: server-managed timestamps
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "phone",
        "company",
        "position",
        "is_email_verified",
    }
)

_EMAIL_COLUMN_VIOLATION = "users.email"


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address."""
    return email.strip().lower()


def _encode(field: str, value: Any) -> Any:
    if field == "is_email_verified":
        return 1 if value else 0
    return value


class UserRepository:
    """Stateless repository for users table operations.

    All methods are static. Pass the DatabaseGateway on every call.
    """

    @staticmethod
    async def get_by_id(db: DatabaseGateway, user_id: str) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Database gateway.
            user_id: User id.

        Returns:
            User if found, None otherwise.
        """
        row = await db.first("SELECT * FROM users WHERE id = ?", [user_id])
        return User.from_row(row) if row else None

    @staticmethod
    async def get_by_email(db: DatabaseGateway, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Database gateway.
            email: Email address to look up, in any case.

        Returns:
            User if found, None otherwise.
        """
        row = await db.first(
            "SELECT * FROM users WHERE email = ?", [normalize_email(email)]
        )
        return User.from_row(row) if row else None

    @staticmethod
    async def create(
        db: DatabaseGateway,
        *,
        email: str,
        name: str | None = None,
    ) -> User:
        """Create a new user.

        Email is trimmed and lower-cased before storage. ``created_at`` and
        ``updated_at`` receive the same timestamp.

        Args:
            db: Database gateway.
            email: User email address.
            name: Display name.

        Returns:
            The created User.

        Raises:
            ValidationError: If the email is empty or has no "@".
            DuplicateEmailError: If the normalized email already exists.
            QueryFailed: On any other backend failure.
        """
        normalized = normalize_email(email)
        if not normalized or "@" not in normalized:
            raise ValidationError(
                "A valid email address is required",
                details=[{"field": "email"}],
            )

        row = {
            "id": db.generate_id(),
            "email": normalized,
            "name": name,
            "phone": None,
            "company": None,
            "position": None,
            "is_email_verified": 0,
            "last_login": None,
            "created_at": db.timestamp(),
        }
        row["updated_at"] = row["created_at"]

        try:
            await db.run(
                "INSERT INTO users (id, email, name, is_email_verified, "
                "created_at, updated_at) VALUES (?, ?, ?, 0, ?, ?)",
                [row["id"], normalized, name, row["created_at"], row["updated_at"]],
            )
        except QueryFailed as exc:
            if exc.is_unique_violation and _EMAIL_COLUMN_VIOLATION in str(exc):
                raise DuplicateEmailError(normalized) from exc
            raise

        logger.info("user.created", user_id=row["id"])
        return User.from_row(row)

    @staticmethod
    async def find_or_create(
        db: DatabaseGateway,
        *,
        email: str,
        name: str | None = None,
    ) -> User:
        """Return the user for ``email``, creating it if absent.

        Idempotent across case variations of the same address. When a
        concurrent caller inserts the same email between our read and our
        insert, the insert fails on the UNIQUE constraint and the winner's
        row is returned instead.

        Args:
            db: Database gateway.
            email: Email address.
            name: Display name used only when creating.

        Returns:
            The existing or newly created User.

        Raises:
            ValidationError: If the email is empty or has no "@".
        """
        existing = await UserRepository.get_by_email(db, email)
        if existing is not None:
            return existing

        try:
            return await UserRepository.create(db, email=email, name=name)
        except DuplicateEmailError:
            winner = await UserRepository.get_by_email(db, email)
            if winner is None:
                raise
            return winner

    @staticmethod
    async def update(
        db: DatabaseGateway,
        user_id: str,
        **kwargs: str | bool | None,
    ) -> User:
        """Update allow-listed profile fields.

        Keys outside _UPDATABLE_FIELDS are dropped. ``updated_at`` is always
        stamped.

        Args:
            db: Database gateway.
            user_id: Id of the user to update.
            **kwargs: Field names and values to update.

        Returns:
            The updated User.

        Raises:
            NoValidFieldsError: If nothing remains after filtering.
            NotFoundError: If the user does not exist.
        """
        fields = {k: v for k, v in kwargs.items() if k in _UPDATABLE_FIELDS}
        dropped = sorted(set(kwargs) - _UPDATABLE_FIELDS)
        if dropped:
            logger.debug("user.update_fields_dropped", fields=dropped)
        if not fields:
            raise NoValidFieldsError()

        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [_encode(name, value) for name, value in fields.items()]
        result = await db.run(
            f"UPDATE users SET {assignments}, updated_at = ? WHERE id = ?",  # nosec B608 - column names from allow-list
            [*params, db.timestamp(), user_id],
        )
        if result.changes == 0:
            raise NotFoundError("User", user_id)

        user = await UserRepository.get_by_id(db, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    @staticmethod
    async def record_login(db: DatabaseGateway, user_id: str) -> bool:
        """Mark the email verified and stamp ``last_login``.

        Separated from update() so ``last_login`` is only written by a
        completed magic-link login.

        Args:
            db: Database gateway.
            user_id: Id of the user who logged in.

        Returns:
            True if the user row was updated, False if it does not exist.
        """
        now = db.timestamp()
        result = await db.run(
            "UPDATE users SET is_email_verified = 1, last_login = ?, "
            "updated_at = ? WHERE id = ?",
            [now, now, user_id],
        )
        return result.changes > 0

    @staticmethod
    async def delete(db: DatabaseGateway, user_id: str) -> bool:
        """Delete a user and, by cascade, their magic links and tokens.

        Args:
            db: Database gateway.
            user_id: Id of the user to delete.

        Returns:
            True if a row existed and was deleted, False otherwise.
        """
        result = await db.run("DELETE FROM users WHERE id = ?", [user_id])
        return result.changes > 0
