"""API token management for CI systems and automation.

API tokens are long-lived Bearer tokens stored as SHA-256 hashes. The raw
token value is only available at creation time. Lookup is by hash (indexed
column) on every request.

Token format: lfp_{48 hex chars}
"""

import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.auth.tokens import hash_opaque_token
from ledgerflow.db.models import ApiToken, generate_id, utc_now
from ledgerflow.errors import ForbiddenError, NotFoundError, ValidationError
from ledgerflow.logging_config import get_logger

logger = get_logger(__name__)

TOKEN_PREFIX = "lfp_"
MAX_SCOPE_LENGTH = 128

# Minimum interval between last_used_at updates (seconds).
# Avoids a DB write on every single API request.
LAST_USED_UPDATE_INTERVAL = 60


def _generate_raw_token() -> str:
    """Generate a raw token in the format 'lfp_{random_hex}'."""
    return f"{TOKEN_PREFIX}{secrets.token_hex(24)}"


def _validate_scopes(scopes: object) -> list[str]:
    if not isinstance(scopes, list):
        raise ValidationError("scopes must be an array")
    for scope in scopes:
        if not isinstance(scope, str) or len(scope) > MAX_SCOPE_LENGTH:
            raise ValidationError("invalid scope entry")
    return list(scopes)


def _parse_expiry(expires_at: datetime | str | None) -> datetime | None:
    if expires_at is None or expires_at == "":
        return None
    if not isinstance(expires_at, datetime):
        try:
            expires_at = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
        except (AttributeError, ValueError):
            raise ValidationError("invalid expiresAt") from None
    # Naive timestamps are taken as UTC
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    return expires_at


async def create_api_token(
    db: AsyncSession,
    user_id: str,
    name: str | None,
    scopes: object = None,
    expires_at: datetime | str | None = None,
) -> tuple[ApiToken, str]:
    """Create an API token. Returns (model, raw_token_value).

    The raw token value is only available at creation time.
    """
    if not name or not isinstance(name, str):
        raise ValidationError("name is required")
    scope_list = _validate_scopes([] if scopes is None else scopes)
    expiry = _parse_expiry(expires_at)

    raw_token = _generate_raw_token()
    api_token = ApiToken(
        id=generate_id(),
        user_id=user_id,
        name=name,
        token_hash=hash_opaque_token(raw_token),
        scopes=scope_list,
        expires_at=expiry,
        created_at=utc_now(),
    )

    db.add(api_token)
    await db.flush()

    logger.info(
        "API token created",
        token_id=api_token.id,
        user_id=user_id,
        scopes=scope_list,
    )

    return api_token, raw_token


async def validate_api_token(
    db: AsyncSession, raw_token: str, max_ttl_hours: int = 0
) -> ApiToken | None:
    """Validate a Bearer token against the database.

    SHA-256 hash the token, look up by hash. Check expiry.
    Update last_used_at (rate-limited to once per minute).
    """
    result = await db.execute(
        select(ApiToken).where(ApiToken.token_hash == hash_opaque_token(raw_token))
    )
    api_token = result.scalar_one_or_none()

    if api_token is None:
        return None

    now = utc_now()
    if api_token.expires_at is not None and now >= api_token.expires_at:
        logger.debug("API token expired", token_id=api_token.id)
        return None

    if max_ttl_hours > 0:
        if now > api_token.created_at + timedelta(hours=max_ttl_hours):
            logger.debug("API token expired (max TTL)", token_id=api_token.id)
            return None

    should_update = (
        api_token.last_used_at is None
        or (now - api_token.last_used_at).total_seconds() > LAST_USED_UPDATE_INTERVAL
    )
    if should_update:
        await db.execute(
            update(ApiToken).where(ApiToken.id == api_token.id).values(last_used_at=now)
        )

    return api_token


async def list_api_tokens(db: AsyncSession, user_id: str) -> list[ApiToken]:
    """List all API tokens for a user, newest first."""
    result = await db.execute(
        select(ApiToken)
        .where(ApiToken.user_id == user_id)
        .order_by(ApiToken.created_at.desc())
    )
    return list(result.scalars().all())


async def revoke_api_token(db: AsyncSession, user_id: str, token_id: str) -> bool:
    """Revoke (delete) an API token. Only the owner may revoke."""
    if not token_id:
        raise ValidationError("tokenId is required")

    api_token = await db.get(ApiToken, token_id)
    if api_token is None:
        raise NotFoundError("Not found")
    if api_token.user_id != user_id:
        raise ForbiddenError("Forbidden")

    await db.delete(api_token)
    await db.flush()

    logger.info("API token revoked", token_id=token_id, user_id=user_id)
    return True
