"""Magic-link authority.

Issues single-use login links and consumes them. Per token:

    Created --verify--> Used
    Created --clock passes expires_at--> Expired (implicit, never stored)

Used and Expired are terminal. Every failed verification (unknown, used,
expired, or lost to a concurrent verifier) raises the same
InvalidOrExpiredLinkError so callers cannot tell which tokens exist.
"""

from dataclasses import dataclass
from datetime import datetime

import structlog

from linkauth.core.auth import SessionGrant, SessionIssuer
from linkauth.core.database import DatabaseGateway
from linkauth.core.errors import (
    InvalidOrExpiredLinkError,
    NotFoundError,
    ValidationError,
)
from linkauth.models.user import User
from linkauth.repositories.magic_link_repository import MagicLinkRepository
from linkauth.repositories.user_repository import UserRepository

logger = structlog.get_logger()


@dataclass(frozen=True)
class IssuedMagicLink:
    """A newly issued link, ready to be formatted into an email.

    Attributes:
        token: Token value for the link URL.
        expires_at: When the link stops working.
        user: The user the link logs in.
    """

    token: str
    expires_at: datetime
    user: User


class MagicLinkService:
    """Issues and verifies magic links.

    Args:
        db: Database gateway.
        issuer: Session issuer used by verify_and_issue_session().
    """

    def __init__(
        self,
        db: DatabaseGateway,
        issuer: SessionIssuer | None = None,
    ) -> None:
        self._db = db
        self._issuer = issuer

    async def create(
        self,
        user_id: str,
        ttl_minutes: int | None = None,
    ) -> IssuedMagicLink:
        """Issue a link for an existing user.

        Outstanding links for the same user are not invalidated.

        Args:
            user_id: Id of the user to log in.
            ttl_minutes: Link lifetime. Defaults to the configured value.

        Returns:
            IssuedMagicLink.

        Raises:
            ValidationError: If user_id is empty.
            NotFoundError: If the user does not exist.
        """
        if not user_id:
            raise ValidationError("User ID is required")

        user = await UserRepository.get_by_id(self._db, user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        link = await MagicLinkRepository.create(
            self._db, user_id=user.id, ttl_minutes=ttl_minutes
        )
        logger.info(
            "magic_link.issued",
            user_id=user.id,
            expires_at=link.expires_at.isoformat(),
        )
        return IssuedMagicLink(token=link.token, expires_at=link.expires_at, user=user)

    async def create_for_email(
        self,
        email: str,
        name: str | None = None,
        ttl_minutes: int | None = None,
    ) -> IssuedMagicLink:
        """Find or create the user for ``email``, then issue a link.

        Raises:
            ValidationError: If the email is empty or malformed.
        """
        user = await UserRepository.find_or_create(self._db, email=email, name=name)
        return await self.create(user.id, ttl_minutes=ttl_minutes)

    async def verify(self, token: str) -> User:
        """Consume a link and log its user in.

        The link is marked used before anything else happens, so a failure
        afterwards cannot make the token replayable. Expired links are never
        marked used.

        Args:
            token: Token value from the link.

        Returns:
            The user, with ``is_email_verified`` set and ``last_login``
            stamped.

        Raises:
            ValidationError: If token is empty.
            InvalidOrExpiredLinkError: If the link is unknown, used, expired,
                or was consumed by a concurrent call.
        """
        if not token:
            raise ValidationError("Token is required")

        link = await MagicLinkRepository.find_by_token(self._db, token)
        if link is None:
            logger.info("magic_link.rejected")
            raise InvalidOrExpiredLinkError()

        if not await MagicLinkRepository.mark_used(self._db, token):
            logger.info("magic_link.rejected", user_id=link.user_id, race=True)
            raise InvalidOrExpiredLinkError()

        await UserRepository.record_login(self._db, link.user_id)
        user = await UserRepository.get_by_id(self._db, link.user_id)
        if user is None:
            # Owner deleted between consume and read; the link is spent.
            raise InvalidOrExpiredLinkError()

        logger.info("magic_link.verified", user_id=user.id)
        return user

    async def verify_and_issue_session(self, token: str) -> SessionGrant:
        """Consume a link and mint a session credential for its user.

        Raises:
            ValidationError: If token is empty or no issuer is configured.
            InvalidOrExpiredLinkError: If the link cannot be consumed.
        """
        if self._issuer is None:
            raise ValidationError("Session issuer is not configured")
        user = await self.verify(token)
        return self._issuer.issue(user)
