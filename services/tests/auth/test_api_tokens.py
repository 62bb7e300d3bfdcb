"""Tests for API tokens - create, validate, list, revoke, hash storage."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.auth.api_tokens import (
    MAX_SCOPE_LENGTH,
    TOKEN_PREFIX,
    _generate_raw_token,
    create_api_token,
    list_api_tokens,
    revoke_api_token,
    validate_api_token,
)
from ledgerflow.auth.tokens import hash_opaque_token
from ledgerflow.errors import ForbiddenError, NotFoundError, ValidationError


@pytest.fixture
def mock_db():
    return AsyncMock(spec=AsyncSession)


def _lookup_result(token) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = token
    return result


class TestTokenGeneration:
    def test_raw_token_format(self):
        raw = _generate_raw_token()
        assert raw.startswith(TOKEN_PREFIX)
        assert len(raw) == len(TOKEN_PREFIX) + 48

    def test_raw_token_is_unique(self):
        assert _generate_raw_token() != _generate_raw_token()


class TestCreateApiToken:
    async def test_create_returns_model_and_raw_token(self, mock_db):
        api_token, raw_token = await create_api_token(
            mock_db, "user-1", "ci deploy", scopes=["ci:write"]
        )

        assert api_token.user_id == "user-1"
        assert api_token.name == "ci deploy"
        assert api_token.scopes == ["ci:write"]
        assert api_token.expires_at is None
        assert raw_token.startswith(TOKEN_PREFIX)
        # Only the hash is stored
        assert api_token.token_hash == hash_opaque_token(raw_token)
        mock_db.add.assert_called_once()
        mock_db.flush.assert_awaited_once()

    async def test_scopes_default_to_empty(self, mock_db):
        api_token, _ = await create_api_token(mock_db, "user-1", "bot")
        assert api_token.scopes == []

    async def test_name_required(self, mock_db):
        with pytest.raises(ValidationError, match="name is required"):
            await create_api_token(mock_db, "user-1", "")
        mock_db.add.assert_not_called()

    async def test_scopes_must_be_a_list(self, mock_db):
        with pytest.raises(ValidationError, match="scopes must be an array"):
            await create_api_token(mock_db, "user-1", "bot", scopes="ci:write")

    async def test_overlong_scope_rejected(self, mock_db):
        with pytest.raises(ValidationError, match="invalid scope entry"):
            await create_api_token(mock_db, "user-1", "bot", scopes=["x" * (MAX_SCOPE_LENGTH + 1)])

    async def test_non_string_scope_rejected(self, mock_db):
        with pytest.raises(ValidationError, match="invalid scope entry"):
            await create_api_token(mock_db, "user-1", "bot", scopes=[42])

    async def test_iso_expiry_parsed(self, mock_db):
        api_token, _ = await create_api_token(
            mock_db, "user-1", "bot", expires_at="2030-01-01T00:00:00Z"
        )
        assert api_token.expires_at == datetime(2030, 1, 1, tzinfo=UTC)

    async def test_invalid_expiry_rejected(self, mock_db):
        with pytest.raises(ValidationError, match="invalid expiresAt"):
            await create_api_token(mock_db, "user-1", "bot", expires_at="next tuesday")


class TestValidateApiToken:
    async def test_validate_valid_token(self, mock_db):
        mock_token = MagicMock()
        mock_token.last_used_at = None
        mock_token.expires_at = None
        mock_token.id = "tok-1"
        mock_token.created_at = datetime.now(UTC)
        mock_db.execute.return_value = _lookup_result(mock_token)

        result = await validate_api_token(mock_db, "lfp_abc")

        assert result is mock_token
        # Should update last_used_at since it was None
        assert mock_db.execute.call_count == 2  # select + update

    async def test_recently_used_token_skips_update(self, mock_db):
        mock_token = MagicMock()
        mock_token.last_used_at = datetime.now(UTC) - timedelta(seconds=10)
        mock_token.expires_at = None
        mock_token.created_at = datetime.now(UTC) - timedelta(days=1)
        mock_db.execute.return_value = _lookup_result(mock_token)

        result = await validate_api_token(mock_db, "lfp_abc")

        assert result is mock_token
        assert mock_db.execute.call_count == 1

    async def test_validate_nonexistent_token(self, mock_db):
        mock_db.execute.return_value = _lookup_result(None)

        assert await validate_api_token(mock_db, "lfp_missing") is None

    async def test_expired_token_rejected(self, mock_db):
        mock_token = MagicMock()
        mock_token.expires_at = datetime.now(UTC) - timedelta(minutes=1)
        mock_db.execute.return_value = _lookup_result(mock_token)

        assert await validate_api_token(mock_db, "lfp_old") is None

    async def test_max_ttl_enforced(self, mock_db):
        mock_token = MagicMock()
        mock_token.expires_at = None
        mock_token.created_at = datetime.now(UTC) - timedelta(hours=25)
        mock_db.execute.return_value = _lookup_result(mock_token)

        assert await validate_api_token(mock_db, "lfp_old", max_ttl_hours=24) is None


class TestListApiTokens:
    async def test_returns_rows(self, mock_db):
        t1, t2 = MagicMock(), MagicMock()
        result = MagicMock()
        result.scalars.return_value.all.return_value = [t1, t2]
        mock_db.execute.return_value = result

        assert await list_api_tokens(mock_db, "user-1") == [t1, t2]


class TestRevokeApiToken:
    async def test_revoke_own_token(self, mock_db):
        token = MagicMock()
        token.user_id = "user-1"
        mock_db.get.return_value = token

        assert await revoke_api_token(mock_db, "user-1", "tok-1") is True
        mock_db.delete.assert_awaited_once_with(token)

    async def test_revoke_missing_token(self, mock_db):
        mock_db.get.return_value = None

        with pytest.raises(NotFoundError):
            await revoke_api_token(mock_db, "user-1", "tok-1")

    async def test_revoke_someone_elses_token(self, mock_db):
        token = MagicMock()
        token.user_id = "user-2"
        mock_db.get.return_value = token

        with pytest.raises(ForbiddenError):
            await revoke_api_token(mock_db, "user-1", "tok-1")
        mock_db.delete.assert_not_called()

    async def test_token_id_required(self, mock_db):
        with pytest.raises(ValidationError, match="tokenId is required"):
            await revoke_api_token(mock_db, "user-1", "")
