"""Project permission endpoints.

Reading or changing a project's permission rows needs workspace ADMIN+ or
the caller's own can_admin flag on that project.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.api.dependencies import AuthenticatedUser, get_current_user
from ledgerflow.api.serializers import CamelModel, permission_to_dict
from ledgerflow.db.session import get_db
from ledgerflow.services import permission_service

router = APIRouter(
    prefix="/workspaces/{workspace_id}/projects/{project_id}/permissions",
    tags=["permissions"],
)


class SetPermissionRequest(CamelModel):
    user_id: str | None = None
    can_read: bool | None = None
    can_write: bool | None = None
    can_execute: bool | None = None
    can_admin: bool | None = None


@router.get("")
async def get_project_permissions(
    workspace_id: str,
    project_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    permissions = await permission_service.get_project_permissions(
        db, user.user_id, workspace_id, project_id
    )
    return JSONResponse(
        content={"permissions": [permission_to_dict(p, include_user=True) for p in permissions]}
    )


@router.put("")
async def set_project_permission(
    workspace_id: str,
    project_id: str,
    body: SetPermissionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    permission = await permission_service.set_project_permission(
        db,
        user.user_id,
        workspace_id,
        project_id,
        body.user_id,
        can_read=body.can_read,
        can_write=body.can_write,
        can_execute=body.can_execute,
        can_admin=body.can_admin,
    )
    return JSONResponse(content={"permission": permission_to_dict(permission)})
