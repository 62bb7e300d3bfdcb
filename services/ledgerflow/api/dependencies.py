"""FastAPI dependencies for authentication.

Two credential types, one Bearer header:
- Access tokens (JWT) - short-lived, minted by signup/login/refresh
- API tokens (PostgreSQL) - long-lived, prefixed lfp_, for CI and automation

API tokens are recognised by their prefix; everything else is verified as a
JWT. Both return the same AuthenticatedUser shape.

Project-scoped routes add require_project_capability on top, which checks
the caller's project capability flags (workspace ADMIN+ always passes).
"""

from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.auth.api_tokens import TOKEN_PREFIX, validate_api_token
from ledgerflow.auth.sessions import DeviceContext
from ledgerflow.auth.tokens import verify_access_token
from ledgerflow.config import settings
from ledgerflow.db.models import User
from ledgerflow.db.session import get_db
from ledgerflow.errors import UnauthenticatedError
from ledgerflow.logging_config import get_logger
from ledgerflow.services import permission_service
from ledgerflow.services.permission_service import Capability, parse_capability

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)


@dataclass
class AuthenticatedUser:
    """Unified user identity from either access tokens or API tokens."""

    user_id: str
    email: str
    auth_method: str  # "access_token" or "api_token"
    scopes: list[str] | None = None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    """Resolve the Bearer credential to a user, or fail with 401."""
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("Missing or invalid Authorization header")
    token = credentials.credentials

    if token.startswith(TOKEN_PREFIX):
        api_token = await validate_api_token(
            db, token, max_ttl_hours=settings.auth.api_token_max_ttl_hours
        )
        if api_token is None:
            raise UnauthenticatedError("Invalid or expired token")
        user = await db.get(User, api_token.user_id)
        if user is None:
            raise UnauthenticatedError("Invalid or expired token")
        return AuthenticatedUser(
            user_id=user.id,
            email=user.email,
            auth_method="api_token",
            scopes=list(api_token.scopes or []),
        )

    claims = verify_access_token(token, settings.auth)
    return AuthenticatedUser(
        user_id=claims.user_id,
        email=claims.email,
        auth_method="access_token",
    )


def get_device_context(request: Request) -> DeviceContext:
    """Client metadata recorded on sessions."""
    return DeviceContext(
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )


def require_project_capability(capability: Capability | str):
    """Dependency factory gating a project-scoped route on a capability.

    workspace_id and project_id come from the route path. Workspace ADMIN+
    passes regardless of project flags.
    """
    required = parse_capability(capability)

    async def dependency(
        workspace_id: str,
        project_id: str,
        user: AuthenticatedUser = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> AuthenticatedUser:
        await permission_service.enforce(db, user.user_id, workspace_id, project_id, required)
        return user

    return dependency
