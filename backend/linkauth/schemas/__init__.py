"""Pydantic request schemas for the exposed auth operations."""

from linkauth.schemas.auth import (
    IssueTokenRequest,
    MagicLinkRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    VerifyMagicLinkRequest,
)

__all__ = [
    # Magic links
    "MagicLinkRequest",
    "VerifyMagicLinkRequest",
    # Users
    "ProfileUpdateRequest",
    "RegisterRequest",
    # Tokens
    "IssueTokenRequest",
]
