"""Local account authentication.

Signup and login mint an access token plus a new session; refresh rotates a
session's refresh token; logout soft-revokes sessions. Token material is
never logged.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.auth.passwords import hash_password, validate_password_length, verify_password
from ledgerflow.auth.sessions import (
    DeviceContext,
    create_session,
    find_active_session_by_refresh_hash,
    revoke_sessions,
    rotate_session,
)
from ledgerflow.auth.tokens import hash_opaque_token, issue_access_token
from ledgerflow.config import AuthConfig
from ledgerflow.db.models import User, generate_id, utc_now
from ledgerflow.db.session import flush_or_conflict
from ledgerflow.errors import ConflictError, NotFoundError, UnauthenticatedError, ValidationError
from ledgerflow.logging_config import get_logger

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_REFRESH = "Invalid or expired refresh token"


@dataclass
class AuthResult:
    """Tokens handed back to a client after signup, login or refresh."""

    user: User
    access_token: str
    refresh_token: str
    session_id: str


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def _start_session(
    db: AsyncSession, user: User, config: AuthConfig, context: DeviceContext | None
) -> AuthResult:
    access_token = issue_access_token(user, config)
    session, refresh_token = await create_session(
        db, user.id, context, ttl_days=config.refresh_token_ttl_days
    )
    return AuthResult(
        user=user,
        access_token=access_token,
        refresh_token=refresh_token,
        session_id=session.id,
    )


async def signup(
    db: AsyncSession,
    config: AuthConfig,
    email: str | None,
    password: str | None,
    name: str | None = None,
    context: DeviceContext | None = None,
) -> AuthResult:
    """Register a local account and open its first session."""
    if not email or not password:
        raise ValidationError("Email and password are required")
    validate_password_length(password)

    if await get_user_by_email(db, email) is not None:
        raise ConflictError("Email already in use")

    now = utc_now()
    user = User(
        id=generate_id(),
        email=email,
        password_hash=hash_password(password, rounds=config.bcrypt_rounds),
        name=name or None,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    await flush_or_conflict(db, "Email already in use")

    result = await _start_session(db, user, config, context)
    logger.info("User signed up", user_id=user.id, session_id=result.session_id)
    return result


async def login(
    db: AsyncSession,
    config: AuthConfig,
    email: str | None,
    password: str | None,
    context: DeviceContext | None = None,
) -> AuthResult:
    """Verify credentials and open a new session.

    Unknown email and wrong password are indistinguishable to the caller.
    """
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = await get_user_by_email(db, email)
    if user is None or not user.password_hash:
        logger.info("Login failed", reason="unknown_user")
        raise UnauthenticatedError(INVALID_CREDENTIALS)
    if not verify_password(password, user.password_hash):
        logger.info("Login failed", reason="bad_password", user_id=user.id)
        raise UnauthenticatedError(INVALID_CREDENTIALS)

    result = await _start_session(db, user, config, context)
    logger.info("User logged in", user_id=user.id, session_id=result.session_id)
    return result


async def me(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def refresh(
    db: AsyncSession,
    config: AuthConfig,
    refresh_token: str | None,
    session_token: str | None = None,
    context: DeviceContext | None = None,
) -> AuthResult:
    """Exchange a refresh token for a new access token and refresh token.

    The presented refresh token is consumed; replaying it fails.
    """
    if not refresh_token:
        raise ValidationError("refreshToken is required")

    session = await find_active_session_by_refresh_hash(
        db, hash_opaque_token(refresh_token), session_token
    )
    if session is None:
        raise UnauthenticatedError(INVALID_REFRESH)

    user = await db.get(User, session.user_id)
    if user is None:
        raise UnauthenticatedError(INVALID_REFRESH)

    new_refresh_token = await rotate_session(
        db, session, context, ttl_days=config.refresh_token_ttl_days
    )
    access_token = issue_access_token(user, config)

    logger.info("Session refreshed", user_id=user.id, session_id=session.id)
    return AuthResult(
        user=user,
        access_token=access_token,
        refresh_token=new_refresh_token,
        session_id=session.id,
    )


async def logout(
    db: AsyncSession,
    session_token: str | None = None,
    refresh_token: str | None = None,
) -> dict[str, bool]:
    """Revoke the session identified by session token, else by refresh token."""
    if not session_token and not refresh_token:
        raise ValidationError("sessionToken or refreshToken required")

    if session_token:
        await revoke_sessions(db, session_token=session_token)
    else:
        await revoke_sessions(db, refresh_token_hash=hash_opaque_token(refresh_token))

    return {"success": True}
