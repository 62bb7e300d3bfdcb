"""CI run endpoints under a project.

Endpoints:
    GET  .../ci-runs          - filtered, paginated list with total (read)
    POST .../ci-runs          - record a run (MAINTAINER+, execute)
    GET  .../ci-runs/latest   - most recent run by branch/environment (read)
    GET  .../ci-runs/{id}     - single run (read)
    PUT  .../ci-runs/{id}     - update status/metadata (MAINTAINER+, execute)
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.api.dependencies import AuthenticatedUser, require_project_capability
from ledgerflow.api.serializers import CamelModel, ci_run_to_dict
from ledgerflow.db.session import get_db
from ledgerflow.services import ci_run_service
from ledgerflow.services.permission_service import Capability

router = APIRouter(
    prefix="/workspaces/{workspace_id}/projects/{project_id}/ci-runs",
    tags=["ci-runs"],
)


class CreateCiRunRequest(CamelModel):
    status: str | None = None
    environment_id: str | None = None
    commit_sha: str | None = None
    branch: str | None = None
    logs_url: str | None = None
    triggered_by_id: str | None = None
    started_at: str | None = None
    finished_at: str | None = None


class UpdateCiRunRequest(CamelModel):
    status: str | None = None
    logs_url: str | None = None
    finished_at: str | None = None
    commit_sha: str | None = None
    branch: str | None = None
    environment_id: str | None = None


@router.get("")
async def list_ci_runs(
    workspace_id: str,
    project_id: str,
    environment_id: str | None = Query(None, alias="environmentId"),
    run_status: str | None = Query(None, alias="status"),
    branch: str | None = Query(None),
    limit: int = Query(ci_run_service.DEFAULT_PAGE_SIZE),
    offset: int = Query(0),
    user: AuthenticatedUser = Depends(require_project_capability(Capability.READ)),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    page = await ci_run_service.list_ci_runs(
        db,
        user.user_id,
        workspace_id,
        project_id,
        environment_id=environment_id,
        status=run_status,
        branch=branch,
        limit=limit,
        offset=offset,
    )
    return JSONResponse(
        content={
            "total": page.total,
            "runs": [ci_run_to_dict(r, include_relations=True) for r in page.runs],
        }
    )


@router.post("")
async def create_ci_run(
    workspace_id: str,
    project_id: str,
    body: CreateCiRunRequest,
    user: AuthenticatedUser = Depends(require_project_capability(Capability.EXECUTE)),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    run = await ci_run_service.create_ci_run(
        db,
        user.user_id,
        workspace_id,
        project_id,
        body.status,
        environment_id=body.environment_id,
        commit_sha=body.commit_sha,
        branch=body.branch,
        logs_url=body.logs_url,
        triggered_by_id=body.triggered_by_id,
        started_at=body.started_at,
        finished_at=body.finished_at,
    )
    return JSONResponse(status_code=status.HTTP_201_CREATED, content={"run": ci_run_to_dict(run)})


@router.get("/latest")
async def get_latest_ci_status(
    workspace_id: str,
    project_id: str,
    branch: str | None = Query(None),
    environment_id: str | None = Query(None, alias="environmentId"),
    user: AuthenticatedUser = Depends(require_project_capability(Capability.READ)),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    latest = await ci_run_service.get_latest_ci_status(
        db, user.user_id, workspace_id, project_id, branch=branch, environment_id=environment_id
    )
    return JSONResponse(content={"latest": ci_run_to_dict(latest) if latest else None})


@router.get("/{run_id}")
async def get_ci_run(
    workspace_id: str,
    project_id: str,
    run_id: str,
    user: AuthenticatedUser = Depends(require_project_capability(Capability.READ)),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    run = await ci_run_service.get_ci_run(db, user.user_id, workspace_id, project_id, run_id)
    return JSONResponse(content={"run": ci_run_to_dict(run, include_relations=True)})


@router.put("/{run_id}")
async def update_ci_run(
    workspace_id: str,
    project_id: str,
    run_id: str,
    body: UpdateCiRunRequest,
    user: AuthenticatedUser = Depends(require_project_capability(Capability.EXECUTE)),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    fields = body.model_dump(exclude_unset=True)
    run = await ci_run_service.update_ci_run(
        db, user.user_id, workspace_id, project_id, run_id, **fields
    )
    return JSONResponse(content={"run": ci_run_to_dict(run)})
