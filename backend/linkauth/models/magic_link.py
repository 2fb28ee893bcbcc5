"""MagicLink model - single-use passwordless login link.

A link is valid while ``is_used`` is false and the current time is before
``expires_at``. Expiry is implicit (never stored as a state); ``is_used``
only ever moves from false to true.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from linkauth.core.database import parse_timestamp


@dataclass(frozen=True)
class MagicLink:
    """Magic-link row.

    Attributes:
        id: Opaque primary key.
        user_id: Owning user. Deleted with the user.
        token: Unguessable URL-safe token value.
        is_used: Whether the link has been consumed.
        expires_at: Link expiry.
        created_at: Issue timestamp.
        updated_at: Last modification timestamp.
    """

    id: str
    user_id: str
    token: str
    is_used: bool
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MagicLink":
        """Build a MagicLink from a ``magic_links`` row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            token=row["token"],
            is_used=bool(row["is_used"]),
            expires_at=parse_timestamp(row["expires_at"]),  # type: ignore[arg-type]
            created_at=parse_timestamp(row["created_at"]),  # type: ignore[arg-type]
            updated_at=parse_timestamp(row["updated_at"]),  # type: ignore[arg-type]
        )

    def is_expired(self, now: datetime) -> bool:
        """Whether the link has expired at ``now``."""
        return now >= self.expires_at

    def is_active(self, now: datetime) -> bool:
        """Whether the link can still be consumed at ``now``."""
        return not self.is_used and not self.is_expired(now)
