"""Access tokens and opaque token material.

Access tokens are short-lived HS256 JWTs carrying the user id and email with
fixed issuer and audience claims. Refresh tokens and API tokens are opaque
random strings; only their SHA-256 hash is ever persisted.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

import jwt

from ledgerflow.config import AuthConfig
from ledgerflow.db.models import User, utc_now
from ledgerflow.errors import ConfigurationError, UnauthenticatedError
from ledgerflow.logging_config import get_logger

logger = get_logger(__name__)

REFRESH_TOKEN_BYTES = 48


@dataclass(frozen=True)
class AccessTokenClaims:
    """Verified claims of an access token."""

    user_id: str
    email: str
    expires_at: int


def require_signing_secret(config: AuthConfig) -> str:
    """Return the signing secret, failing fatally when it is absent."""
    if not config.jwt_secret:
        raise ConfigurationError("auth.jwt_secret is not configured")
    return config.jwt_secret


def issue_access_token(user: User, config: AuthConfig) -> str:
    """Sign an access token for a user, valid for access_token_ttl_minutes."""
    secret = require_signing_secret(config)
    now = utc_now()
    payload = {
        "sub": user.id,
        "email": user.email,
        "iat": now,
        "exp": now + timedelta(minutes=config.access_token_ttl_minutes),
        "iss": config.jwt_issuer,
        "aud": config.jwt_audience,
    }
    return jwt.encode(payload, secret, algorithm=config.jwt_algorithm)


def verify_access_token(token: str, config: AuthConfig) -> AccessTokenClaims:
    """Verify signature, issuer, audience and expiry.

    Any failure raises UnauthenticatedError.
    """
    secret = require_signing_secret(config)
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[config.jwt_algorithm],
            issuer=config.jwt_issuer,
            audience=config.jwt_audience,
            options={"require": ["sub", "exp", "iss", "aud"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Access token expired") from None
    except jwt.PyJWTError as e:
        logger.debug("Access token rejected", reason=type(e).__name__)
        raise UnauthenticatedError("Invalid access token") from None

    return AccessTokenClaims(
        user_id=str(payload["sub"]),
        email=payload.get("email", ""),
        expires_at=int(payload["exp"]),
    )


def hash_opaque_token(token: str) -> str:
    """SHA-256 hash an opaque token for storage and lookup."""
    return hashlib.sha256(token.encode()).hexdigest()


def issue_refresh_pair() -> tuple[str, str]:
    """Generate a refresh token. Returns (plaintext, sha256_hash).

    The plaintext is handed to the client exactly once and never stored.
    """
    refresh_token = secrets.token_hex(REFRESH_TOKEN_BYTES)
    return refresh_token, hash_opaque_token(refresh_token)


def generate_session_token() -> str:
    """Generate the opaque per-session discriminator."""
    return secrets.token_hex(24)
