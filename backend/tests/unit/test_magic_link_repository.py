"""Tests for MagicLinkRepository.

Covers issuance, state-filtered lookup, conditional consumption (including
concurrent callers), and expired-row cleanup.
"""

import asyncio
from datetime import timedelta

import pytest

from linkauth.backends.errors import QueryFailed
from linkauth.core.config import MAX_MAGIC_LINK_TTL_MINUTES
from linkauth.core.database import DatabaseGateway
from linkauth.core.errors import ValidationError
from linkauth.models.user import User
from linkauth.repositories.magic_link_repository import MagicLinkRepository
from tests.conftest import FIXED_NOW, FrozenClock


class TestCreate:
    """Test MagicLinkRepository.create()."""

    async def test_creates_unused_link_with_ttl(self, db: DatabaseGateway, test_user: User):
        """expires_at is now + ttl and is_used starts false."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id, ttl_minutes=15)
        assert link.user_id == test_user.id
        assert link.is_used is False
        assert link.expires_at == FIXED_NOW + timedelta(minutes=15)
        assert link.created_at == link.updated_at == FIXED_NOW

    async def test_default_ttl_is_thirty_minutes(self, db: DatabaseGateway, test_user: User):
        """Without ttl_minutes the configured default applies."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id)
        assert link.expires_at == FIXED_NOW + timedelta(minutes=30)

    async def test_tokens_are_unique_and_url_safe(self, db: DatabaseGateway, test_user: User):
        """Each link gets a distinct 43-character URL-safe token."""
        tokens = {
            (await MagicLinkRepository.create(db, user_id=test_user.id)).token
            for _ in range(10)
        }
        assert len(tokens) == 10
        for token in tokens:
            assert len(token) == 43
            assert set(token) <= set(
                "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
            )

    async def test_round_trip(self, db: DatabaseGateway, test_user: User):
        """find_by_token returns a link equal to the one created."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id)
        assert await MagicLinkRepository.find_by_token(db, link.token) == link

    async def test_rejects_non_positive_ttl(self, db: DatabaseGateway, test_user: User):
        """ttl_minutes must be positive."""
        with pytest.raises(ValidationError):
            await MagicLinkRepository.create(db, user_id=test_user.id, ttl_minutes=0)

    async def test_rejects_ttl_past_maximum(self, db: DatabaseGateway, test_user: User):
        """Lifetimes beyond 7 days are rejected before the insert."""
        with pytest.raises(ValidationError):
            await MagicLinkRepository.create(db, user_id=test_user.id, ttl_minutes=10**10)
        assert await MagicLinkRepository.find_by_user_id(
            db, test_user.id, include_used=True, include_expired=True
        ) == []

    async def test_accepts_maximum_ttl(self, db: DatabaseGateway, test_user: User):
        """Exactly 7 days is allowed."""
        link = await MagicLinkRepository.create(
            db, user_id=test_user.id, ttl_minutes=MAX_MAGIC_LINK_TTL_MINUTES
        )
        assert link.expires_at == FIXED_NOW + timedelta(days=7)

    async def test_unknown_user_fails_foreign_key(self, db: DatabaseGateway):
        """A link for a missing user violates the foreign key."""
        with pytest.raises(QueryFailed, match="FOREIGN KEY constraint failed"):
            await MagicLinkRepository.create(db, user_id="missing")


class TestFindByToken:
    """Test MagicLinkRepository.find_by_token()."""

    async def test_unknown_token_returns_none(self, db: DatabaseGateway):
        """An unknown token is absent, not an error."""
        assert await MagicLinkRepository.find_by_token(db, "nope") is None

    async def test_used_link_is_absent(self, db: DatabaseGateway, test_user: User):
        """Consumed links are not returned."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id)
        await MagicLinkRepository.mark_used(db, link.token)
        assert await MagicLinkRepository.find_by_token(db, link.token) is None

    async def test_expired_link_is_absent(
        self, db: DatabaseGateway, test_user: User, clock: FrozenClock
    ):
        """A link at or past expires_at is not returned."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id, ttl_minutes=15)
        clock.advance(timedelta(minutes=15))
        assert await MagicLinkRepository.find_by_token(db, link.token) is None

    async def test_include_expired_returns_any_state(
        self, db: DatabaseGateway, test_user: User, clock: FrozenClock
    ):
        """include_expired=True returns used and expired rows for diagnostics."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id, ttl_minutes=15)
        await MagicLinkRepository.mark_used(db, link.token)
        clock.advance(timedelta(hours=1))

        found = await MagicLinkRepository.find_by_token(db, link.token, include_expired=True)
        assert found is not None
        assert found.is_used is True

    async def test_deleted_link_is_absent(self, db: DatabaseGateway, test_user: User):
        """A token whose row was deleted is simply absent."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id)
        assert await MagicLinkRepository.delete(db, link.token) is True
        assert await MagicLinkRepository.find_by_token(db, link.token) is None
        assert await MagicLinkRepository.delete(db, link.token) is False


class TestFindByUserId:
    """Test find_by_user_id() and find_latest_for_user()."""

    async def test_filters_and_orders_newest_first(
        self, db: DatabaseGateway, test_user: User, clock: FrozenClock
    ):
        """Only active links by default, newest first."""
        first = await MagicLinkRepository.create(db, user_id=test_user.id)
        clock.advance(timedelta(minutes=1))
        used = await MagicLinkRepository.create(db, user_id=test_user.id)
        clock.advance(timedelta(minutes=1))
        latest = await MagicLinkRepository.create(db, user_id=test_user.id)
        await MagicLinkRepository.mark_used(db, used.token)

        active = await MagicLinkRepository.find_by_user_id(db, test_user.id)
        everything = await MagicLinkRepository.find_by_user_id(
            db, test_user.id, include_used=True, include_expired=True
        )

        assert [link.token for link in active] == [latest.token, first.token]
        assert len(everything) == 3

    async def test_latest_for_user(
        self, db: DatabaseGateway, test_user: User, clock: FrozenClock
    ):
        """The newest consumable link is returned."""
        await MagicLinkRepository.create(db, user_id=test_user.id)
        clock.advance(timedelta(minutes=1))
        newest = await MagicLinkRepository.create(db, user_id=test_user.id)

        latest = await MagicLinkRepository.find_latest_for_user(db, test_user.id)
        assert latest is not None
        assert latest.token == newest.token

    async def test_older_links_stay_valid_after_new_issue(
        self, db: DatabaseGateway, test_user: User
    ):
        """Issuing a new link does not invalidate outstanding ones."""
        older = await MagicLinkRepository.create(db, user_id=test_user.id)
        await MagicLinkRepository.create(db, user_id=test_user.id)
        assert await MagicLinkRepository.is_valid(db, older.token) is True


class TestMarkUsed:
    """Test MagicLinkRepository.mark_used()."""

    async def test_first_call_consumes(self, db: DatabaseGateway, test_user: User):
        """An unused link flips to used."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id)
        assert await MagicLinkRepository.mark_used(db, link.token) is True

    async def test_second_call_is_no_op(self, db: DatabaseGateway, test_user: User):
        """Re-consuming reports False rather than raising."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id)
        await MagicLinkRepository.mark_used(db, link.token)
        assert await MagicLinkRepository.mark_used(db, link.token) is False

    async def test_expired_link_is_never_marked(
        self, db: DatabaseGateway, test_user: User, clock: FrozenClock
    ):
        """mark_used on an expired link changes nothing."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id, ttl_minutes=15)
        clock.advance(timedelta(minutes=16))
        assert await MagicLinkRepository.mark_used(db, link.token) is False
        stored = await MagicLinkRepository.find_by_token(db, link.token, include_expired=True)
        assert stored is not None
        assert stored.is_used is False

    async def test_concurrent_calls_have_one_winner(
        self, db: DatabaseGateway, test_user: User
    ):
        """Exactly one of many concurrent consumers succeeds."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id)
        outcomes = await asyncio.gather(
            *(MagicLinkRepository.mark_used(db, link.token) for _ in range(10))
        )
        assert outcomes.count(True) == 1
        assert outcomes.count(False) == 9


class TestIsValid:
    """Test MagicLinkRepository.is_valid()."""

    async def test_true_for_fresh_link(self, db: DatabaseGateway, test_user: User):
        """A fresh link is valid."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id)
        assert await MagicLinkRepository.is_valid(db, link.token) is True

    async def test_false_for_unknown(self, db: DatabaseGateway):
        """An unknown token is invalid."""
        assert await MagicLinkRepository.is_valid(db, "nope") is False

    async def test_backend_failure_degrades_to_false(
        self, db: DatabaseGateway, test_user: User
    ):
        """Errors during the check become False."""
        link = await MagicLinkRepository.create(db, user_id=test_user.id)
        await db.run("DROP TABLE magic_links")
        assert await MagicLinkRepository.is_valid(db, link.token) is False


class TestDeleteExpired:
    """Test MagicLinkRepository.delete_expired()."""

    async def test_removes_only_expired_rows(
        self, db: DatabaseGateway, test_user: User, clock: FrozenClock
    ):
        """Links at or past expiry go; unexpired links stay."""
        short = await MagicLinkRepository.create(db, user_id=test_user.id, ttl_minutes=10)
        long = await MagicLinkRepository.create(db, user_id=test_user.id, ttl_minutes=60)
        clock.advance(timedelta(minutes=10))

        assert await MagicLinkRepository.delete_expired(db) == 1
        assert await MagicLinkRepository.find_by_token(db, short.token, include_expired=True) is None
        assert await MagicLinkRepository.find_by_token(db, long.token) is not None

    async def test_second_run_deletes_nothing(
        self, db: DatabaseGateway, test_user: User, clock: FrozenClock
    ):
        """Running cleanup twice in a row deletes zero the second time."""
        await MagicLinkRepository.create(db, user_id=test_user.id, ttl_minutes=10)
        clock.advance(timedelta(hours=1))
        assert await MagicLinkRepository.delete_expired(db) == 1
        assert await MagicLinkRepository.delete_expired(db) == 0
