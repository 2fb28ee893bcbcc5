"""Repository for typed Token operations.

Generic revocable tokens (refresh, verification, ...). Revocation and
single-use consumption are conditional UPDATEs guarded by the current
state; a second caller sees zero changed rows, never an error.
"""

import json
from datetime import datetime, timedelta
from typing import Any

import structlog

from linkauth.core.config import MAX_TOKEN_TTL_DAYS, settings
from linkauth.core.database import DatabaseGateway, format_timestamp
from linkauth.core.errors import ValidationError
from linkauth.models.token import Token
from linkauth.repositories.magic_link_repository import generate_token

logger = structlog.get_logger()

_MAX_TTL = timedelta(days=MAX_TOKEN_TTL_DAYS)


class TokenRepository:
    """Stateless repository for tokens table operations.

    All methods are static. Pass the DatabaseGateway on every call.
    """

    @staticmethod
    async def create(
        db: DatabaseGateway,
        *,
        user_id: str,
        token_type: str,
        token: str | None = None,
        ttl: timedelta | None = None,
        expires_at: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Token:
        """Issue a typed token.

        Args:
            db: Database gateway.
            user_id: Owning user id.
            token_type: Discriminator, e.g. "refresh".
            token: Token value. Generated when omitted.
            ttl: Lifetime from now. Mutually exclusive with expires_at.
            expires_at: Absolute expiry. Mutually exclusive with ttl.
            metadata: JSON-serializable payload stored with the token.

        Returns:
            The created Token. Defaults to ``settings.token_ttl_days``
            lifetime when neither ttl nor expires_at is given.

        Raises:
            ValidationError: If user_id or token_type is empty, both ttl and
                expires_at are given, ttl is not positive or exceeds
                MAX_TOKEN_TTL_DAYS, or metadata is not JSON-serializable.
            QueryFailed: If the insert fails (unknown user, reused token).
        """
        if not user_id or not token_type:
            raise ValidationError("User ID and token type are required")
        if ttl is not None and expires_at is not None:
            raise ValidationError("Pass either ttl or expires_at, not both")
        if ttl is not None and not timedelta(0) < ttl <= _MAX_TTL:
            raise ValidationError(
                f"Token lifetime must be positive and at most {MAX_TOKEN_TTL_DAYS} days"
            )
        try:
            encoded_metadata = json.dumps(metadata or {})
        except (TypeError, ValueError) as exc:
            raise ValidationError("Token metadata must be JSON-serializable") from exc

        now = db.now()
        if expires_at is None:
            expires_at = now + (ttl if ttl is not None else timedelta(days=settings.token_ttl_days))

        row = {
            "id": db.generate_id(),
            "user_id": user_id,
            "token": token or generate_token(),
            "type": token_type,
            "is_revoked": 0,
            "is_used": 0,
            "expires_at": format_timestamp(expires_at),
            "metadata": encoded_metadata,
            "created_at": format_timestamp(now),
        }
        row["updated_at"] = row["created_at"]

        await db.run(
            "INSERT INTO tokens (id, user_id, token, type, is_revoked, is_used, "
            "expires_at, metadata, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, 0, 0, ?, ?, ?, ?)",
            [
                row["id"],
                user_id,
                row["token"],
                token_type,
                row["expires_at"],
                row["metadata"],
                row["created_at"],
                row["updated_at"],
            ],
        )
        logger.info("token.created", user_id=user_id, token_type=token_type)
        return Token.from_row(row)

    @staticmethod
    async def find_by_token(db: DatabaseGateway, token: str) -> Token | None:
        """Fetch a token row whatever its state.

        Args:
            db: Database gateway.
            token: Token value.

        Returns:
            Token if found, None otherwise.
        """
        row = await db.first("SELECT * FROM tokens WHERE token = ?", [token])
        return Token.from_row(row) if row else None

    @staticmethod
    async def find_by_user_id(
        db: DatabaseGateway,
        user_id: str,
        *,
        token_type: str | None = None,
        include_inactive: bool = False,
    ) -> list[Token]:
        """List a user's tokens, newest first.

        Args:
            db: Database gateway.
            user_id: Owning user id.
            token_type: Only return tokens of this type.
            include_inactive: Also return revoked, used, and expired tokens.

        Returns:
            Matching tokens ordered by created_at descending.
        """
        sql = "SELECT * FROM tokens WHERE user_id = ?"
        params: list[str] = [user_id]
        if token_type is not None:
            sql += " AND type = ?"
            params.append(token_type)
        if not include_inactive:
            sql += " AND is_revoked = 0 AND is_used = 0 AND expires_at > ?"
            params.append(db.timestamp())
        sql += " ORDER BY created_at DESC"
        return [Token.from_row(row) for row in await db.all(sql, params)]

    @staticmethod
    async def is_valid(
        db: DatabaseGateway, token: str, token_type: str | None = None
    ) -> bool:
        """Whether the token is unrevoked, unused, unexpired, and of the type.

        Never raises: any lookup failure counts as invalid.
        """
        try:
            found = await TokenRepository.find_by_token(db, token)
            return found is not None and found.is_active(db.now(), token_type)
        except Exception as exc:
            logger.warning("token.validity_check_failed", error=str(exc))
            return False

    @staticmethod
    async def revoke(db: DatabaseGateway, token: str) -> bool:
        """Revoke a token.

        Idempotent: only an unrevoked row flips.

        Returns:
            True if this call revoked the token, False if it was already
            revoked or does not exist.
        """
        result = await db.run(
            "UPDATE tokens SET is_revoked = 1, updated_at = ? "
            "WHERE token = ? AND is_revoked = 0",
            [db.timestamp(), token],
        )
        return result.changes > 0

    @staticmethod
    async def revoke_all_for_user(
        db: DatabaseGateway,
        user_id: str,
        token_type: str | None = None,
    ) -> int:
        """Revoke every unrevoked token a user holds.

        Args:
            db: Database gateway.
            user_id: Owning user id.
            token_type: Only revoke tokens of this type.

        Returns:
            Number of tokens revoked by this call.
        """
        sql = (
            "UPDATE tokens SET is_revoked = 1, updated_at = ? "
            "WHERE user_id = ? AND is_revoked = 0"
        )
        params = [db.timestamp(), user_id]
        if token_type is not None:
            sql += " AND type = ?"
            params.append(token_type)
        result = await db.run(sql, params)
        return result.changes

    @staticmethod
    async def mark_used(db: DatabaseGateway, token: str) -> bool:
        """Consume a single-use token.

        Only an unrevoked, unused, unexpired row flips to used.

        Returns:
            True if this call consumed the token, False otherwise.
        """
        now = db.timestamp()
        result = await db.run(
            "UPDATE tokens SET is_used = 1, updated_at = ? "
            "WHERE token = ? AND is_used = 0 AND is_revoked = 0 AND expires_at > ?",
            [now, token, now],
        )
        return result.changes > 0

    @staticmethod
    async def delete(db: DatabaseGateway, token: str) -> bool:
        """Delete a token. Returns whether a row existed."""
        result = await db.run("DELETE FROM tokens WHERE token = ?", [token])
        return result.changes > 0

    @staticmethod
    async def delete_expired(db: DatabaseGateway) -> int:
        """Delete all expired tokens (periodic cleanup).

        Args:
            db: Database gateway.

        Returns:
            Number of deleted rows.
        """
        result = await db.run(
            "DELETE FROM tokens WHERE expires_at <= ?", [db.timestamp()]
        )
        return result.changes
