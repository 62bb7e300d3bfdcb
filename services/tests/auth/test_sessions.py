"""Tests for database-backed sessions: creation, rotation, revocation."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.auth.sessions import (
    DeviceContext,
    create_session,
    find_active_session_by_refresh_hash,
    revoke_all_user_sessions,
    revoke_sessions,
    rotate_session,
)
from ledgerflow.auth.tokens import hash_opaque_token
from ledgerflow.db.models import Session, utc_now
from ledgerflow.errors import UnauthenticatedError, ValidationError


@pytest.fixture
def mock_db():
    return AsyncMock(spec=AsyncSession)


def _update_result(rowcount: int) -> MagicMock:
    result = MagicMock()
    result.rowcount = rowcount
    return result


def _session(**overrides) -> Session:
    values = {
        "id": "sess-1",
        "user_id": "user-1",
        "session_token": "st-1",
        "refresh_token_hash": hash_opaque_token("old-refresh"),
        "user_agent": "curl/8.0",
        "ip_address": "10.0.0.1",
        "expires_at": utc_now() + timedelta(days=1),
        "revoked_at": None,
    }
    values.update(overrides)
    return Session(**values)


class TestCreateSession:
    async def test_stores_hash_of_returned_refresh_token(self, mock_db):
        session, refresh_token = await create_session(mock_db, "user-1")

        assert session.user_id == "user-1"
        assert session.refresh_token_hash == hash_opaque_token(refresh_token)
        assert session.refresh_token_hash != refresh_token
        mock_db.add.assert_called_once_with(session)
        mock_db.flush.assert_awaited_once()

    async def test_expires_thirty_days_out(self, mock_db):
        before = utc_now()
        session, _ = await create_session(mock_db, "user-1")

        assert session.expires_at - before >= timedelta(days=30) - timedelta(seconds=5)
        assert session.expires_at - before <= timedelta(days=30, seconds=5)
        assert session.is_active()

    async def test_records_device_context(self, mock_db):
        context = DeviceContext(user_agent="Mozilla/5.0", ip_address="192.0.2.7")
        session, _ = await create_session(mock_db, "user-1", context)

        assert session.user_agent == "Mozilla/5.0"
        assert session.ip_address == "192.0.2.7"
        assert session.revoked_at is None

    async def test_session_tokens_are_unique(self, mock_db):
        s1, r1 = await create_session(mock_db, "user-1")
        s2, r2 = await create_session(mock_db, "user-1")

        assert s1.session_token != s2.session_token
        assert r1 != r2


class TestSessionValidity:
    def test_revoked_session_is_inactive(self):
        assert not _session(revoked_at=utc_now()).is_active()

    def test_expired_session_is_inactive(self):
        assert not _session(expires_at=utc_now() - timedelta(seconds=1)).is_active()

    def test_live_session_is_active(self):
        assert _session().is_active()


class TestFindActiveSession:
    async def test_returns_matching_session(self, mock_db):
        session = _session()
        result = MagicMock()
        result.scalar_one_or_none.return_value = session
        mock_db.execute.return_value = result

        found = await find_active_session_by_refresh_hash(
            mock_db, session.refresh_token_hash, session_token="st-1"
        )

        assert found is session
        mock_db.execute.assert_awaited_once()

    async def test_returns_none_when_no_match(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = result

        assert await find_active_session_by_refresh_hash(mock_db, "nope") is None


class TestRotateSession:
    async def test_rotation_replaces_hash(self, mock_db):
        session = _session()
        old_hash = session.refresh_token_hash
        mock_db.execute.return_value = _update_result(1)

        new_token = await rotate_session(mock_db, session)

        assert session.refresh_token_hash == hash_opaque_token(new_token)
        assert session.refresh_token_hash != old_hash

    async def test_rotation_keeps_device_metadata_unless_supplied(self, mock_db):
        session = _session()
        mock_db.execute.return_value = _update_result(1)

        await rotate_session(mock_db, session, DeviceContext(ip_address="203.0.113.9"))

        assert session.user_agent == "curl/8.0"
        assert session.ip_address == "203.0.113.9"

    async def test_rotation_extends_expiry(self, mock_db):
        session = _session()
        mock_db.execute.return_value = _update_result(1)

        await rotate_session(mock_db, session)

        assert session.expires_at > utc_now() + timedelta(days=29)

    async def test_lost_race_fails_unauthenticated(self, mock_db):
        """A concurrent rotation already replaced the hash; no row matches."""
        session = _session()
        old_hash = session.refresh_token_hash
        mock_db.execute.return_value = _update_result(0)

        with pytest.raises(UnauthenticatedError, match="Invalid or expired refresh token"):
            await rotate_session(mock_db, session)

        assert session.refresh_token_hash == old_hash


class TestRevokeSessions:
    async def test_requires_a_selector(self, mock_db):
        with pytest.raises(ValidationError, match="sessionToken or refreshToken required"):
            await revoke_sessions(mock_db)
        mock_db.execute.assert_not_called()

    async def test_revoke_by_session_token(self, mock_db):
        mock_db.execute.return_value = _update_result(1)

        assert await revoke_sessions(mock_db, session_token="st-1") == 1

    async def test_revoke_by_refresh_hash(self, mock_db):
        mock_db.execute.return_value = _update_result(1)

        assert await revoke_sessions(mock_db, refresh_token_hash="abc") == 1

    async def test_revoking_twice_is_a_noop(self, mock_db):
        mock_db.execute.return_value = _update_result(0)

        assert await revoke_sessions(mock_db, session_token="st-1") == 0

    async def test_revoke_all_user_sessions(self, mock_db):
        mock_db.execute.return_value = _update_result(3)

        assert await revoke_all_user_sessions(mock_db, "user-1") == 3
