"""Database-backed session management.

A session represents one authenticated device/browser login. It holds the
SHA-256 of the current refresh token and is the only thing that can mint new
access tokens once the short-lived access token expires.

Refresh tokens are single-use: every successful refresh rotates the stored
hash with a conditional UPDATE keyed by the previous hash, so of two racing
refreshes only the first one matches a row. Sessions are never deleted;
revocation sets revoked_at.
"""

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.auth.tokens import generate_session_token, issue_refresh_pair
from ledgerflow.db.models import Session, generate_id, utc_now
from ledgerflow.errors import UnauthenticatedError, ValidationError
from ledgerflow.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SESSION_TTL_DAYS = 30


@dataclass(frozen=True)
class DeviceContext:
    """Client metadata recorded on a session."""

    user_agent: str | None = None
    ip_address: str | None = None


async def create_session(
    db: AsyncSession,
    user_id: str,
    context: DeviceContext | None = None,
    ttl_days: int = DEFAULT_SESSION_TTL_DAYS,
) -> tuple[Session, str]:
    """Persist a new session. Returns (session, plaintext_refresh_token).

    The plaintext refresh token is only available at creation time.
    """
    context = context or DeviceContext()
    refresh_token, refresh_hash = issue_refresh_pair()

    session = Session(
        id=generate_id(),
        user_id=user_id,
        session_token=generate_session_token(),
        refresh_token_hash=refresh_hash,
        user_agent=context.user_agent or None,
        ip_address=context.ip_address or None,
        expires_at=utc_now() + timedelta(days=ttl_days),
        revoked_at=None,
    )
    db.add(session)
    await db.flush()

    logger.info("Session created", session_id=session.id, user_id=user_id)
    return session, refresh_token


async def find_active_session_by_refresh_hash(
    db: AsyncSession,
    refresh_token_hash: str,
    session_token: str | None = None,
) -> Session | None:
    """Look up a non-revoked, non-expired session by refresh hash.

    When a session token is supplied it narrows the match to that session.
    """
    query = select(Session).where(
        Session.refresh_token_hash == refresh_token_hash,
        Session.revoked_at.is_(None),
        Session.expires_at > utc_now(),
    )
    if session_token:
        query = query.where(Session.session_token == session_token)

    result = await db.execute(query)
    return result.scalar_one_or_none()


async def rotate_session(
    db: AsyncSession,
    session: Session,
    context: DeviceContext | None = None,
    ttl_days: int = DEFAULT_SESSION_TTL_DAYS,
) -> str:
    """Replace the session's refresh hash and extend its expiry.

    Returns the new plaintext refresh token. The previous token stops
    matching the instant this update lands. Device metadata is kept unless
    new values are supplied.
    """
    context = context or DeviceContext()
    refresh_token, refresh_hash = issue_refresh_pair()
    expires_at = utc_now() + timedelta(days=ttl_days)
    user_agent = context.user_agent or session.user_agent
    ip_address = context.ip_address or session.ip_address

    result = await db.execute(
        update(Session)
        .where(
            Session.id == session.id,
            Session.refresh_token_hash == session.refresh_token_hash,
            Session.revoked_at.is_(None),
        )
        .values(
            refresh_token_hash=refresh_hash,
            expires_at=expires_at,
            user_agent=user_agent,
            ip_address=ip_address,
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Another refresh rotated this session first
        logger.warning("Session rotation lost race", session_id=session.id)
        raise UnauthenticatedError("Invalid or expired refresh token")

    session.refresh_token_hash = refresh_hash
    session.expires_at = expires_at
    session.user_agent = user_agent
    session.ip_address = ip_address

    logger.info("Session rotated", session_id=session.id)
    return refresh_token


async def revoke_sessions(
    db: AsyncSession,
    session_token: str | None = None,
    refresh_token_hash: str | None = None,
) -> int:
    """Soft-revoke all matching non-revoked sessions. Returns count revoked.

    Selects by session token when given, otherwise by refresh hash.
    Revoking an already-revoked session is a no-op.
    """
    if session_token:
        condition = Session.session_token == session_token
    elif refresh_token_hash:
        condition = Session.refresh_token_hash == refresh_token_hash
    else:
        raise ValidationError("sessionToken or refreshToken required")

    result = await db.execute(
        update(Session)
        .where(condition, Session.revoked_at.is_(None))
        .values(revoked_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount or 0
    if count:
        logger.info("Session revoked", count=count)
    return count


async def list_user_sessions(db: AsyncSession, user_id: str) -> list[Session]:
    """List all active sessions for a user, newest first."""
    result = await db.execute(
        select(Session)
        .where(
            Session.user_id == user_id,
            Session.revoked_at.is_(None),
            Session.expires_at > utc_now(),
        )
        .order_by(Session.created_at.desc())
    )
    return list(result.scalars().all())


async def revoke_all_user_sessions(db: AsyncSession, user_id: str) -> int:
    """Revoke all sessions for a user. Returns count of sessions revoked."""
    result = await db.execute(
        update(Session)
        .where(Session.user_id == user_id, Session.revoked_at.is_(None))
        .values(revoked_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount or 0
    logger.info("Revoked all sessions for user", user_id=user_id, count=count)
    return count
