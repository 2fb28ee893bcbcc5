"""Auth operations exposed to the request-handling layer.

Each operation is a plain async function taking validated input and the
DatabaseGateway. It returns a plain result or raises an APIError subclass:

- request_magic_link / verify_magic_link: passwordless login
- register_user / get_current_user / update_profile: user lifecycle
- issue_token / validate_token / consume_token / revoke_token /
  revoke_user_tokens: typed tokens
- cleanup_expired: periodic hygiene

Input arrives either as the pydantic request model or as a plain mapping;
mappings are validated here and failures become ValidationError.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from linkauth.core.auth import SessionGrant, SessionIssuer
from linkauth.core.database import DatabaseGateway
from linkauth.core.errors import (
    InvalidOrExpiredTokenError,
    UnauthorizedError,
    ValidationError,
)
from linkauth.models.token import Token
from linkauth.models.user import User
from linkauth.repositories.magic_link_repository import MagicLinkRepository
from linkauth.repositories.token_repository import TokenRepository
from linkauth.repositories.user_repository import UserRepository
from linkauth.schemas.auth import (
    IssueTokenRequest,
    MagicLinkRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    VerifyMagicLinkRequest,
)
from linkauth.services.magic_link_service import IssuedMagicLink, MagicLinkService

logger = logging.getLogger(__name__)

_RequestT = TypeVar("_RequestT", bound=BaseModel)


@dataclass(frozen=True)
class CleanupResult:
    """Result of expired-row cleanup.

    Attributes:
        magic_links: Expired magic links deleted.
        tokens: Expired tokens deleted.
    """

    magic_links: int
    tokens: int


def _parse(model: type[_RequestT], payload: _RequestT | Mapping[str, Any]) -> _RequestT:
    """Validate a request payload, raising the API ValidationError on failure."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        details = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        raise ValidationError("Invalid request", details=details) from exc


# =============================================================================
# Magic links
# =============================================================================


async def request_magic_link(
    db: DatabaseGateway,
    payload: MagicLinkRequest | Mapping[str, Any],
) -> IssuedMagicLink:
    """Issue a magic link for an email, creating the user if needed.

    Formatting the link URL and sending the email are the caller's job.
    """
    request = _parse(MagicLinkRequest, payload)
    return await MagicLinkService(db).create_for_email(
        request.email, name=request.name, ttl_minutes=request.ttl_minutes
    )


async def verify_magic_link(
    db: DatabaseGateway,
    payload: VerifyMagicLinkRequest | Mapping[str, Any],
    issuer: SessionIssuer,
) -> SessionGrant:
    """Consume a magic link and issue a session credential.

    Raises:
        ValidationError: If the token is missing or oversized.
        InvalidOrExpiredLinkError: If the link cannot be consumed.
    """
    request = _parse(VerifyMagicLinkRequest, payload)
    return await MagicLinkService(db, issuer).verify_and_issue_session(request.token)


# =============================================================================
# Users
# =============================================================================


async def register_user(
    db: DatabaseGateway,
    payload: RegisterRequest | Mapping[str, Any],
) -> User:
    """Create a user explicitly.

    Raises:
        ValidationError: If the email is malformed.
        DuplicateEmailError: If the email is already registered.
    """
    request = _parse(RegisterRequest, payload)
    return await UserRepository.create(db, email=request.email, name=request.name)


async def get_current_user(
    db: DatabaseGateway,
    session_token: str,
    issuer: SessionIssuer,
) -> User:
    """Resolve a session credential to its user.

    Raises:
        SessionTokenError: If the credential is malformed, forged, or expired.
        UnauthorizedError: If the credential's user no longer exists.
    """
    if not session_token:
        raise UnauthorizedError()
    claims = issuer.verify(session_token)
    user = await UserRepository.get_by_id(db, claims.user_id)
    if user is None:
        logger.info("Session rejected: user %s no longer exists", claims.user_id)
        raise UnauthorizedError()
    return user


async def update_profile(
    db: DatabaseGateway,
    user_id: str,
    payload: ProfileUpdateRequest | Mapping[str, Any],
) -> User:
    """Update the caller's own profile.

    Only fields present in the payload are written. Unknown keys are
    dropped.

    Raises:
        ValidationError: If a field is malformed.
        NoValidFieldsError: If no profile field was given.
        NotFoundError: If the user does not exist.
    """
    request = _parse(ProfileUpdateRequest, payload)
    fields = request.model_dump(exclude_unset=True)
    return await UserRepository.update(db, user_id, **fields)


# =============================================================================
# Tokens
# =============================================================================


async def issue_token(
    db: DatabaseGateway,
    payload: IssueTokenRequest | Mapping[str, Any],
) -> Token:
    """Issue a typed token for a user.

    Raises:
        ValidationError: If the request is malformed.
        QueryFailed: If the user does not exist.
    """
    request = _parse(IssueTokenRequest, payload)
    return await TokenRepository.create(
        db,
        user_id=request.user_id,
        token_type=request.type,
        ttl=request.ttl,
        expires_at=request.expires_at,
        metadata=request.metadata,
    )


async def validate_token(
    db: DatabaseGateway,
    token: str,
    token_type: str | None = None,
) -> bool:
    """Whether a token is currently usable. Never raises."""
    if not token:
        return False
    return await TokenRepository.is_valid(db, token, token_type)


async def consume_token(
    db: DatabaseGateway,
    token: str,
    token_type: str,
) -> Token:
    """Use a single-use token of the given type.

    Returns:
        The consumed token.

    Raises:
        ValidationError: If token or token_type is empty.
        InvalidOrExpiredTokenError: If the token is unknown, of another type,
            revoked, used, expired, or consumed by a concurrent call.
    """
    if not token or not token_type:
        raise ValidationError("Token and token type are required")

    found = await TokenRepository.find_by_token(db, token)
    if found is None or not found.is_active(db.now(), token_type):
        raise InvalidOrExpiredTokenError()
    if not await TokenRepository.mark_used(db, token):
        raise InvalidOrExpiredTokenError()

    consumed = await TokenRepository.find_by_token(db, token)
    if consumed is None:
        raise InvalidOrExpiredTokenError()
    return consumed


async def revoke_token(db: DatabaseGateway, token: str) -> bool:
    """Revoke a token. Returns False when it was already revoked or unknown."""
    if not token:
        raise ValidationError("Token is required")
    return await TokenRepository.revoke(db, token)


async def revoke_user_tokens(
    db: DatabaseGateway,
    user_id: str,
    token_type: str | None = None,
) -> int:
    """Revoke all of a user's tokens, optionally of one type only."""
    if not user_id:
        raise ValidationError("User ID is required")
    return await TokenRepository.revoke_all_for_user(db, user_id, token_type)


# =============================================================================
# Maintenance
# =============================================================================


async def cleanup_expired(db: DatabaseGateway) -> CleanupResult:
    """Delete expired magic links and tokens.

    Safe to run repeatedly; unexpired rows are never touched.
    """
    result = CleanupResult(
        magic_links=await MagicLinkRepository.delete_expired(db),
        tokens=await TokenRepository.delete_expired(db),
    )
    logger.info(
        "Expired cleanup: %d magic links, %d tokens",
        result.magic_links,
        result.tokens,
    )
    return result
