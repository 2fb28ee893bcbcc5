"""Session credential issuance and verification.

Pipeline:
- SessionIssuer.issue: HS256 JWT for a user who completed a magic-link login
- SessionIssuer.verify: decode + check signature, claims, and expiry
- session_issuer_from_settings: build the process issuer from Settings

Verification failures carry a concrete reason for logging. The reason never
reaches clients: SessionTokenError is an UnauthorizedError with the generic
"Authentication required" message.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Callable

import jwt

from linkauth.core.errors import UnauthorizedError, ValidationError

if TYPE_CHECKING:
    from linkauth.core.config import Settings
    from linkauth.models.user import User

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"

# Default session lifetime: 7 days
_DEFAULT_SESSION_TTL = timedelta(days=7)

_REQUIRED_CLAIMS = ["sub", "email", "iat", "exp", "aud", "iss"]


class SessionFailure(Enum):
    """Why an inbound session credential was rejected."""

    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"


class SessionTokenError(UnauthorizedError):
    """Session credential rejected.

    Attributes:
        reason: The concrete SessionFailure, for logs only.
    """

    def __init__(self, reason: SessionFailure) -> None:
        super().__init__()
        self.reason = reason


@dataclass(frozen=True)
class SessionGrant:
    """A freshly issued session credential.

    Attributes:
        user: The authenticated user.
        session_token: Encoded JWT.
        expires_at: When the credential stops verifying.
    """

    user: "User"
    session_token: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionClaims:
    """Identity carried by a verified session credential."""

    user_id: str
    email: str
    issued_at: datetime
    expires_at: datetime


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionIssuer:
    """Signs and verifies session credentials with a server-held secret.

    Args:
        secret: HMAC signing secret.
        issuer: ``iss`` claim value.
        audience: ``aud`` claim value.
        ttl: Credential lifetime. Defaults to 7 days.
        clock: Returns the current time. Defaults to ``datetime.now(UTC)``.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str,
        audience: str,
        ttl: timedelta = _DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not secret:
            raise ValidationError("Session signing secret is required")
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self._ttl = ttl
        self._clock = clock or _utcnow

    def issue(self, user: "User") -> SessionGrant:
        """Create a signed credential for a user.

        Args:
            user: Authenticated user. ``id`` becomes ``sub``.

        Returns:
            SessionGrant with the encoded token and its expiry.
        """
        # JWT timestamps are whole seconds
        issued_at = self._clock().astimezone(UTC).replace(microsecond=0)
        expires_at = issued_at + self._ttl
        payload = {
            "sub": user.id,
            "email": user.email,
            "aud": self._audience,
            "iss": self._issuer,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self._secret, algorithm=_ALGORITHM)
        return SessionGrant(user=user, session_token=token, expires_at=expires_at)

    def verify(self, token: str) -> SessionClaims:
        """Decode and validate an inbound credential.

        Signature, audience, issuer, and presence of every claim are checked
        by PyJWT. Expiry is checked against the injected clock.

        Args:
            token: Encoded JWT.

        Returns:
            SessionClaims for the authenticated user.

        Raises:
            SessionTokenError: With reason MALFORMED (undecodable, missing or
                mismatched claims), BAD_SIGNATURE, or EXPIRED.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                options={
                    "require": _REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except jwt.InvalidSignatureError as exc:
            logger.info("Session token rejected: bad signature")
            raise SessionTokenError(SessionFailure.BAD_SIGNATURE) from exc
        except jwt.InvalidTokenError as exc:
            logger.info("Session token rejected: %s", type(exc).__name__)
            raise SessionTokenError(SessionFailure.MALFORMED) from exc

        try:
            user_id = str(payload["sub"])
            email = str(payload["email"])
            issued_at = datetime.fromtimestamp(int(payload["iat"]), UTC)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), UTC)
        except (KeyError, TypeError, ValueError) as exc:
            raise SessionTokenError(SessionFailure.MALFORMED) from exc

        if self._clock() >= expires_at:
            logger.info("Session token rejected: expired")
            raise SessionTokenError(SessionFailure.EXPIRED)

        return SessionClaims(
            user_id=user_id,
            email=email,
            issued_at=issued_at,
            expires_at=expires_at,
        )


def session_issuer_from_settings(
    app_settings: "Settings",
    *,
    clock: Callable[[], datetime] | None = None,
) -> SessionIssuer:
    """Build a SessionIssuer from application settings.

    Raises:
        ValidationError: If AUTH_SECRET is empty.
    """
    return SessionIssuer(
        app_settings.auth_secret.get_secret_value(),
        issuer=app_settings.auth_issuer,
        audience=app_settings.auth_audience,
        ttl=timedelta(days=app_settings.session_ttl_days),
        clock=clock,
    )
