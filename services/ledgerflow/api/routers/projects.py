"""Project endpoints under /api/workspaces/{workspace_id}/projects."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.api.dependencies import AuthenticatedUser, get_current_user
from ledgerflow.api.serializers import CamelModel, project_to_dict
from ledgerflow.db.session import get_db
from ledgerflow.services import project_service

router = APIRouter(prefix="/workspaces/{workspace_id}/projects", tags=["projects"])


class CreateProjectRequest(CamelModel):
    name: str | None = None
    slug: str | None = None
    description: str | None = None
    default_branch: str | None = None


class UpdateProjectRequest(CamelModel):
    name: str | None = None
    slug: str | None = None
    description: str | None = None
    default_branch: str | None = None


@router.get("")
async def list_projects(
    workspace_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    projects = await project_service.list_projects(db, user.user_id, workspace_id)
    return JSONResponse(content={"projects": [project_to_dict(p) for p in projects]})


@router.post("")
async def create_project(
    workspace_id: str,
    body: CreateProjectRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    project = await project_service.create_project(
        db,
        user.user_id,
        workspace_id,
        body.name,
        body.slug,
        description=body.description,
        default_branch=body.default_branch,
    )
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"project": project_to_dict(project)},
    )


@router.get("/{project_id}")
async def get_project(
    workspace_id: str,
    project_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    project = await project_service.get_project(db, user.user_id, workspace_id, project_id)
    return JSONResponse(content={"project": project_to_dict(project)})


@router.put("/{project_id}")
async def update_project(
    workspace_id: str,
    project_id: str,
    body: UpdateProjectRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    project = await project_service.update_project(
        db, user.user_id, workspace_id, project_id, **body.model_dump(exclude_unset=True)
    )
    return JSONResponse(content={"project": project_to_dict(project)})


@router.delete("/{project_id}")
async def delete_project(
    workspace_id: str,
    project_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    await project_service.delete_project(db, user.user_id, workspace_id, project_id)
    return JSONResponse(content={"success": True})
