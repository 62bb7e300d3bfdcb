"""Account settings endpoints.

Endpoints:
    GET    /api/settings/api-tokens                        - list own tokens
    POST   /api/settings/api-tokens                        - create token (value shown once)
    DELETE /api/settings/api-tokens/{token_id}             - revoke own token
    GET    /api/settings/workspaces/{workspace_id}/access  - members and roles (ADMIN+)
"""

from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.api.dependencies import AuthenticatedUser, get_current_user
from ledgerflow.api.serializers import CamelModel, api_token_to_dict, membership_to_dict
from ledgerflow.auth.api_tokens import create_api_token, list_api_tokens, revoke_api_token
from ledgerflow.db.session import get_db
from ledgerflow.services import workspace_service

router = APIRouter(prefix="/settings", tags=["settings"])


class CreateApiTokenRequest(CamelModel):
    name: Any = None
    scopes: Any = None
    expires_at: str | None = None


@router.get("/api-tokens")
async def list_tokens(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    tokens = await list_api_tokens(db, user.user_id)
    return JSONResponse(content={"tokens": [api_token_to_dict(t) for t in tokens]})


@router.post("/api-tokens")
async def create_token(
    body: CreateApiTokenRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    api_token, raw_token = await create_api_token(
        db, user.user_id, body.name, scopes=body.scopes, expires_at=body.expires_at
    )
    # The raw token value is only included at creation time
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"token": raw_token, "apiToken": api_token_to_dict(api_token)},
    )


@router.delete("/api-tokens/{token_id}")
async def revoke_token(
    token_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    await revoke_api_token(db, user.user_id, token_id)
    return JSONResponse(content={"revoked": True})


@router.get("/workspaces/{workspace_id}/access")
async def list_workspace_access(
    workspace_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    members = await workspace_service.list_members(db, user.user_id, workspace_id)
    return JSONResponse(
        content={"members": [membership_to_dict(m, include_user=True) for m in members]}
    )
