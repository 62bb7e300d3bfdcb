"""Workspace, membership and workspace-role endpoints.

Endpoints:
    GET    /api/workspaces                       - workspaces the user belongs to
    POST   /api/workspaces                       - create (caller becomes OWNER)
    GET    /api/workspaces/{workspace_id}        - VIEWER+
    PUT    /api/workspaces/{workspace_id}        - ADMIN+
    DELETE /api/workspaces/{workspace_id}        - OWNER
    GET    /api/workspaces/{workspace_id}/members - ADMIN+
    POST   /api/workspaces/{workspace_id}/invite  - ADMIN+
    GET    /api/workspaces/{workspace_id}/roles   - ADMIN+
    PUT    /api/workspaces/{workspace_id}/roles   - ADMIN+, OWNER for OWNER changes
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.api.dependencies import AuthenticatedUser, get_current_user
from ledgerflow.api.serializers import CamelModel, membership_to_dict, workspace_to_dict
from ledgerflow.db.session import get_db
from ledgerflow.logging_config import get_logger
from ledgerflow.services import permission_service, workspace_service

router = APIRouter(prefix="/workspaces", tags=["workspaces"])
logger = get_logger(__name__)


class CreateWorkspaceRequest(CamelModel):
    name: str | None = None
    slug: str | None = None
    description: str | None = None


class UpdateWorkspaceRequest(CamelModel):
    name: str | None = None
    slug: str | None = None
    description: str | None = None


class InviteRequest(CamelModel):
    email: str | None = None
    role: str | None = None


class SetRoleRequest(CamelModel):
    user_id: str | None = None
    role: str | None = None


@router.get("")
async def list_workspaces(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    workspaces = await workspace_service.list_workspaces(db, user.user_id)
    return JSONResponse(content={"workspaces": [workspace_to_dict(w) for w in workspaces]})


@router.post("")
async def create_workspace(
    body: CreateWorkspaceRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    workspace = await workspace_service.create_workspace(
        db, user.user_id, body.name, body.slug, body.description
    )
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"workspace": workspace_to_dict(workspace)},
    )


@router.get("/{workspace_id}")
async def get_workspace(
    workspace_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    workspace = await workspace_service.get_workspace(db, user.user_id, workspace_id)
    return JSONResponse(content={"workspace": workspace_to_dict(workspace)})


@router.put("/{workspace_id}")
async def update_workspace(
    workspace_id: str,
    body: UpdateWorkspaceRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    workspace = await workspace_service.update_workspace(
        db, user.user_id, workspace_id, **body.model_dump(exclude_unset=True)
    )
    return JSONResponse(content={"workspace": workspace_to_dict(workspace)})


@router.delete("/{workspace_id}")
async def delete_workspace(
    workspace_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    await workspace_service.delete_workspace(db, user.user_id, workspace_id)
    return JSONResponse(content={"success": True})


@router.get("/{workspace_id}/members")
async def list_members(
    workspace_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    members = await workspace_service.list_members(db, user.user_id, workspace_id)
    return JSONResponse(
        content={"members": [membership_to_dict(m, include_user=True) for m in members]}
    )


@router.post("/{workspace_id}/invite")
async def invite_member(
    workspace_id: str,
    body: InviteRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    result = await workspace_service.invite_member(
        db, user.user_id, workspace_id, body.email, body.role
    )
    if result.membership is None:
        return JSONResponse(content={"status": result.status, "message": result.message})
    return JSONResponse(
        content={"status": result.status, "membership": membership_to_dict(result.membership)}
    )


@router.get("/{workspace_id}/roles")
async def get_workspace_roles(
    workspace_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    members = await permission_service.get_workspace_roles(db, user.user_id, workspace_id)
    return JSONResponse(
        content={"members": [membership_to_dict(m, include_user=True) for m in members]}
    )


@router.put("/{workspace_id}/roles")
async def set_workspace_role(
    workspace_id: str,
    body: SetRoleRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    membership = await permission_service.set_workspace_role(
        db, user.user_id, workspace_id, body.user_id, body.role
    )
    return JSONResponse(content={"membership": membership_to_dict(membership)})
