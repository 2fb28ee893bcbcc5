"""Repository for MagicLink operations.

Single-use login links. Consumption is one conditional UPDATE guarded by
the current state, so two concurrent callers can never both win.
"""

import secrets
from datetime import timedelta

import structlog

from linkauth.core.config import MAX_MAGIC_LINK_TTL_MINUTES, settings
from linkauth.core.database import DatabaseGateway, format_timestamp
from linkauth.core.errors import ValidationError
from linkauth.models.magic_link import MagicLink

logger = structlog.get_logger()

# 32 bytes of entropy, URL-safe base64 (43 characters)
_TOKEN_BYTES = 32


def generate_token() -> str:
    """Return a new unguessable URL-safe token."""
    return secrets.token_urlsafe(_TOKEN_BYTES)


class MagicLinkRepository:
    """Stateless repository for magic_links table operations.

    All methods are static. Pass the DatabaseGateway on every call.
    """

    @staticmethod
    async def create(
        db: DatabaseGateway,
        *,
        user_id: str,
        ttl_minutes: int | None = None,
    ) -> MagicLink:
        """Issue a new link for a user.

        Earlier links for the same user are left untouched and stay valid
        until they are used or expire.

        Args:
            db: Database gateway.
            user_id: Owning user id.
            ttl_minutes: Lifetime in minutes. Defaults to
                ``settings.magic_link_ttl_minutes``.

        Returns:
            The created MagicLink.

        Raises:
            ValidationError: If ttl_minutes is not positive or exceeds
                MAX_MAGIC_LINK_TTL_MINUTES.
            QueryFailed: If the insert fails (e.g. unknown user id).
        """
        ttl = settings.magic_link_ttl_minutes if ttl_minutes is None else ttl_minutes
        if ttl <= 0:
            raise ValidationError("Magic link lifetime must be positive")
        if ttl > MAX_MAGIC_LINK_TTL_MINUTES:
            raise ValidationError(
                f"Magic link lifetime must be at most {MAX_MAGIC_LINK_TTL_MINUTES} minutes"
            )

        now = db.now()
        row = {
            "id": db.generate_id(),
            "user_id": user_id,
            "token": generate_token(),
            "is_used": 0,
            "expires_at": format_timestamp(now + timedelta(minutes=ttl)),
            "created_at": format_timestamp(now),
        }
        row["updated_at"] = row["created_at"]

        await db.run(
            "INSERT INTO magic_links (id, user_id, token, is_used, expires_at, "
            "created_at, updated_at) VALUES (?, ?, ?, 0, ?, ?, ?)",
            [
                row["id"],
                user_id,
                row["token"],
                row["expires_at"],
                row["created_at"],
                row["updated_at"],
            ],
        )
        return MagicLink.from_row(row)

    @staticmethod
    async def find_by_token(
        db: DatabaseGateway,
        token: str,
        *,
        include_expired: bool = False,
    ) -> MagicLink | None:
        """Look up a link that can still be consumed.

        Args:
            db: Database gateway.
            token: Token value.
            include_expired: Return the row whatever its state. For
                diagnostics only, never for authorization.

        Returns:
            MagicLink if found (and unused and unexpired unless
            include_expired), None otherwise.
        """
        if include_expired:
            row = await db.first("SELECT * FROM magic_links WHERE token = ?", [token])
        else:
            row = await db.first(
                "SELECT * FROM magic_links WHERE token = ? AND is_used = 0 "
                "AND expires_at > ?",
                [token, db.timestamp()],
            )
        return MagicLink.from_row(row) if row else None

    @staticmethod
    async def find_by_user_id(
        db: DatabaseGateway,
        user_id: str,
        *,
        include_used: bool = False,
        include_expired: bool = False,
    ) -> list[MagicLink]:
        """List a user's links, newest first.

        Args:
            db: Database gateway.
            user_id: Owning user id.
            include_used: Also return consumed links.
            include_expired: Also return expired links.

        Returns:
            Matching links ordered by created_at descending.
        """
        sql = "SELECT * FROM magic_links WHERE user_id = ?"
        params: list[str] = [user_id]
        if not include_used:
            sql += " AND is_used = 0"
        if not include_expired:
            sql += " AND expires_at > ?"
            params.append(db.timestamp())
        sql += " ORDER BY created_at DESC"
        return [MagicLink.from_row(row) for row in await db.all(sql, params)]

    @staticmethod
    async def find_latest_for_user(
        db: DatabaseGateway, user_id: str
    ) -> MagicLink | None:
        """Return the most recently issued link that can still be consumed."""
        row = await db.first(
            "SELECT * FROM magic_links WHERE user_id = ? AND is_used = 0 "
            "AND expires_at > ? ORDER BY created_at DESC LIMIT 1",
            [user_id, db.timestamp()],
        )
        return MagicLink.from_row(row) if row else None

    @staticmethod
    async def mark_used(db: DatabaseGateway, token: str) -> bool:
        """Consume a link.

        Single conditional statement: only an unused, unexpired row flips to
        used. Expired links are never marked.

        Args:
            db: Database gateway.
            token: Token value.

        Returns:
            True if this call consumed the link, False if it was already
            used, expired, or unknown.
        """
        now = db.timestamp()
        result = await db.run(
            "UPDATE magic_links SET is_used = 1, updated_at = ? "
            "WHERE token = ? AND is_used = 0 AND expires_at > ?",
            [now, token, now],
        )
        return result.changes > 0

    @staticmethod
    async def is_valid(db: DatabaseGateway, token: str) -> bool:
        """Whether the link is unused and unexpired. Never raises."""
        try:
            return await MagicLinkRepository.find_by_token(db, token) is not None
        except Exception as exc:
            logger.warning("magic_link.validity_check_failed", error=str(exc))
            return False

    @staticmethod
    async def delete(db: DatabaseGateway, token: str) -> bool:
        """Delete a link. Returns whether a row existed."""
        result = await db.run("DELETE FROM magic_links WHERE token = ?", [token])
        return result.changes > 0

    @staticmethod
    async def delete_expired(db: DatabaseGateway) -> int:
        """Delete all expired links (periodic cleanup).

        Args:
            db: Database gateway.

        Returns:
            Number of deleted rows.
        """
        result = await db.run(
            "DELETE FROM magic_links WHERE expires_at <= ?", [db.timestamp()]
        )
        return result.changes
