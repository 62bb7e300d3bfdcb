"""Authentication router.

Endpoints:
    POST /api/auth/signup      - create a local account, returns tokens
    POST /api/auth/login       - email/password login, returns tokens
    POST /api/auth/refresh     - rotate refresh token, returns new tokens
    POST /api/auth/logout      - revoke a session
    POST /api/auth/logout/all  - revoke every session of the current user
    GET  /api/auth/me          - current user profile
    GET  /api/auth/sessions    - active sessions of the current user
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.api.dependencies import AuthenticatedUser, get_current_user, get_device_context
from ledgerflow.api.serializers import CamelModel, session_to_dict, user_to_dict
from ledgerflow.auth.sessions import DeviceContext, list_user_sessions, revoke_all_user_sessions
from ledgerflow.config import settings
from ledgerflow.db.session import get_db
from ledgerflow.logging_config import get_logger
from ledgerflow.services import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_logger(__name__)


# --- Pydantic models ---


class SignupRequest(CamelModel):
    email: str | None = None
    password: str | None = None
    name: str | None = None


class LoginRequest(CamelModel):
    email: str | None = None
    password: str | None = None


class RefreshRequest(CamelModel):
    session_token: str | None = None
    refresh_token: str | None = None


class LogoutRequest(CamelModel):
    session_token: str | None = None
    refresh_token: str | None = None


def _auth_payload(result: auth_service.AuthResult) -> dict:
    return {
        "user": user_to_dict(result.user),
        "accessToken": result.access_token,
        "refreshToken": result.refresh_token,
        "sessionId": result.session_id,
    }


# --- Endpoints ---


@router.post("/signup")
async def signup(
    body: SignupRequest,
    context: DeviceContext = Depends(get_device_context),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    result = await auth_service.signup(
        db, settings.auth, body.email, body.password, body.name, context
    )
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=_auth_payload(result))


@router.post("/login")
async def login(
    body: LoginRequest,
    context: DeviceContext = Depends(get_device_context),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    result = await auth_service.login(db, settings.auth, body.email, body.password, context)
    return JSONResponse(content=_auth_payload(result))


@router.post("/refresh")
async def refresh(
    body: RefreshRequest,
    context: DeviceContext = Depends(get_device_context),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    result = await auth_service.refresh(
        db, settings.auth, body.refresh_token, body.session_token, context
    )
    return JSONResponse(content=_auth_payload(result))


@router.post("/logout")
async def logout(
    body: LogoutRequest,
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    result = await auth_service.logout(db, body.session_token, body.refresh_token)
    return JSONResponse(content=result)


@router.post("/logout/all")
async def logout_all(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Revoke all sessions for the current user."""
    count = await revoke_all_user_sessions(db, user.user_id)
    return JSONResponse(content={"revoked": count})


@router.get("/me")
async def me(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    profile = await auth_service.me(db, user.user_id)
    return JSONResponse(content={"user": user_to_dict(profile)})


@router.get("/sessions")
async def list_sessions(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """List active sessions for the current user."""
    sessions = await list_user_sessions(db, user.user_id)
    return JSONResponse(content={"sessions": [session_to_dict(s) for s in sessions]})
