"""Token model - typed, revocable bearer token."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from linkauth.core.database import parse_timestamp


def _decode_metadata(raw: str | dict[str, Any] | None) -> dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    decoded = json.loads(raw)
    return decoded if isinstance(decoded, dict) else {"value": decoded}


@dataclass(frozen=True)
class Token:
    """Token row.

    Attributes:
        id: Opaque primary key.
        user_id: Owning user. Deleted with the user.
        token: Opaque secret value.
        type: Discriminator, e.g. "refresh" or "verification".
        is_revoked: Set by revoke(). Never cleared.
        is_used: Set when a single-use token is consumed. Never cleared.
        expires_at: Token expiry.
        metadata: Caller-supplied payload, stored as JSON.
        created_at: Issue timestamp.
        updated_at: Last modification timestamp.
    """

    id: str
    user_id: str
    token: str
    type: str
    is_revoked: bool
    is_used: bool
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Token":
        """Build a Token from a ``tokens`` row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            token=row["token"],
            type=row["type"],
            is_revoked=bool(row["is_revoked"]),
            is_used=bool(row["is_used"]),
            expires_at=parse_timestamp(row["expires_at"]),  # type: ignore[arg-type]
            created_at=parse_timestamp(row["created_at"]),  # type: ignore[arg-type]
            updated_at=parse_timestamp(row["updated_at"]),  # type: ignore[arg-type]
            metadata=_decode_metadata(row.get("metadata")),
        )

    def is_active(self, now: datetime, token_type: str | None = None) -> bool:
        """Whether the token is usable at ``now`` (and matches ``token_type``)."""
        if token_type is not None and self.type != token_type:
            return False
        return not self.is_revoked and not self.is_used and now < self.expires_at
