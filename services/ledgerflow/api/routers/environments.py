"""Environment endpoints under a project.

Reads need the read capability, create and update need write; delete is
workspace ADMIN+ only.
"""

from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.api.dependencies import (
    AuthenticatedUser,
    get_current_user,
    require_project_capability,
)
from ledgerflow.api.serializers import CamelModel, environment_to_dict
from ledgerflow.db.session import get_db
from ledgerflow.services import environment_service
from ledgerflow.services.permission_service import Capability

router = APIRouter(
    prefix="/workspaces/{workspace_id}/projects/{project_id}/environments",
    tags=["environments"],
)


class CreateEnvironmentRequest(CamelModel):
    name: str | None = None
    type: str | None = None
    url: str | None = None
    status: str | None = None
    config_json: Any = None


class UpdateEnvironmentRequest(CamelModel):
    name: str | None = None
    type: str | None = None
    url: str | None = None
    status: str | None = None
    config_json: Any = None


@router.get("")
async def list_environments(
    workspace_id: str,
    project_id: str,
    user: AuthenticatedUser = Depends(require_project_capability(Capability.READ)),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    environments = await environment_service.list_environments(
        db, user.user_id, workspace_id, project_id
    )
    return JSONResponse(content={"environments": [environment_to_dict(e) for e in environments]})


@router.post("")
async def create_environment(
    workspace_id: str,
    project_id: str,
    body: CreateEnvironmentRequest,
    user: AuthenticatedUser = Depends(require_project_capability(Capability.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    environment = await environment_service.create_environment(
        db,
        user.user_id,
        workspace_id,
        project_id,
        body.name,
        body.type,
        url=body.url,
        status=body.status,
        config_json=body.config_json,
    )
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"environment": environment_to_dict(environment)},
    )


@router.get("/{environment_id}")
async def get_environment(
    workspace_id: str,
    project_id: str,
    environment_id: str,
    user: AuthenticatedUser = Depends(require_project_capability(Capability.READ)),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    environment = await environment_service.get_environment(
        db, user.user_id, workspace_id, project_id, environment_id
    )
    return JSONResponse(content={"environment": environment_to_dict(environment)})


@router.put("/{environment_id}")
async def update_environment(
    workspace_id: str,
    project_id: str,
    environment_id: str,
    body: UpdateEnvironmentRequest,
    user: AuthenticatedUser = Depends(require_project_capability(Capability.WRITE)),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    environment = await environment_service.update_environment(
        db,
        user.user_id,
        workspace_id,
        project_id,
        environment_id,
        **body.model_dump(exclude_unset=True),
    )
    return JSONResponse(content={"environment": environment_to_dict(environment)})


@router.delete("/{environment_id}")
async def delete_environment(
    workspace_id: str,
    project_id: str,
    environment_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    await environment_service.delete_environment(
        db, user.user_id, workspace_id, project_id, environment_id
    )
    return JSONResponse(content={"success": True})
