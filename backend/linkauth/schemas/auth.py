"""Auth request schemas.

Input models for the functions in ``linkauth.services.auth_service``. The
service converts pydantic validation failures into the API
ValidationError before any database I/O.
"""

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, EmailStr, Field, JsonValue, model_validator

from linkauth.core.config import MAX_MAGIC_LINK_TTL_MINUTES, MAX_TOKEN_TTL_DAYS

# Upper bound on token values accepted from callers
_MAX_TOKEN_LENGTH = 256

_MAX_TOKEN_TTL_SECONDS = MAX_TOKEN_TTL_DAYS * 24 * 60 * 60

# =============================================================================
# Magic links
# =============================================================================


class MagicLinkRequest(BaseModel):
    """Request a magic link for an email address.

    Attributes:
        email: Address to log in. The user is created if absent.
        name: Display name used only when the user is created.
        ttl_minutes: Optional link lifetime override, at most 7 days.
    """

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    name: str | None = Field(default=None, max_length=255)
    ttl_minutes: int | None = Field(default=None, gt=0, le=MAX_MAGIC_LINK_TTL_MINUTES)


class VerifyMagicLinkRequest(BaseModel):
    """Verify a magic link token."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=_MAX_TOKEN_LENGTH)


# =============================================================================
# Users
# =============================================================================


class RegisterRequest(BaseModel):
    """Explicit user registration."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    name: str | None = Field(default=None, max_length=255)


class ProfileUpdateRequest(BaseModel):
    """Partial profile update.

    Unknown keys are ignored rather than rejected; an update that carries
    none of these fields fails with NoValidFieldsError downstream.
    """

    model_config = ConfigDict(extra="ignore")

    name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    company: str | None = Field(default=None, max_length=255)
    position: str | None = Field(default=None, max_length=255)


# =============================================================================
# Tokens
# =============================================================================


class IssueTokenRequest(BaseModel):
    """Issue a typed token.

    Attributes:
        user_id: Owning user id.
        type: Token type, e.g. "refresh" or "verification".
        ttl_seconds: Lifetime from now, at most 1 year. Mutually exclusive
            with expires_at.
        expires_at: Absolute expiry. Mutually exclusive with ttl_seconds.
        metadata: JSON payload. Values must be JSON types.
    """

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1)
    type: str = Field(min_length=1, max_length=64)
    ttl_seconds: int | None = Field(default=None, gt=0, le=_MAX_TOKEN_TTL_SECONDS)
    expires_at: datetime | None = None
    metadata: dict[str, JsonValue] | None = None

    @model_validator(mode="after")
    def check_expiry(self) -> "IssueTokenRequest":
        """Reject requests that set both ttl_seconds and expires_at."""
        if self.ttl_seconds is not None and self.expires_at is not None:
            msg = "Pass either ttl_seconds or expires_at, not both"
            raise ValueError(msg)
        return self

    @property
    def ttl(self) -> timedelta | None:
        """ttl_seconds as a timedelta."""
        if self.ttl_seconds is None:
            return None
        return timedelta(seconds=self.ttl_seconds)
