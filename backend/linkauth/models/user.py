"""User model - authentication identity."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from linkauth.core.database import parse_timestamp


@dataclass(frozen=True)
class User:
    """User account.

    Attributes:
        id: Opaque primary key (UUID string).
        email: Unique email address, stored lower-case and trimmed.
        name: Display name.
        phone: Contact phone number.
        company: Company name.
        position: Job title.
        is_email_verified: Set once the user completes a magic-link login.
        last_login: Timestamp of the most recent magic-link login.
        created_at: Account creation timestamp.
        updated_at: Last modification timestamp.
    """

    id: str
    email: str
    name: str | None
    phone: str | None
    company: str | None
    position: str | None
    is_email_verified: bool
    last_login: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "User":
        """Build a User from a ``users`` row."""
        return cls(
            id=row["id"],
            email=row["email"],
            name=row.get("name"),
            phone=row.get("phone"),
            company=row.get("company"),
            position=row.get("position"),
            is_email_verified=bool(row.get("is_email_verified")),
            last_login=parse_timestamp(row.get("last_login")),
            created_at=parse_timestamp(row["created_at"]),  # type: ignore[arg-type]
            updated_at=parse_timestamp(row["updated_at"]),  # type: ignore[arg-type]
        )
