"""GitHub repository link and webhook endpoints.

The webhook receiver is unauthenticated; deliveries are authenticated by
their HMAC signature over the raw request body.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.api.dependencies import AuthenticatedUser, get_current_user
from ledgerflow.api.serializers import CamelModel, repo_link_to_dict
from ledgerflow.config import settings
from ledgerflow.db.session import get_db
from ledgerflow.services import github_service

router = APIRouter(
    prefix="/workspaces/{workspace_id}/projects/{project_id}/github",
    tags=["github"],
)


class LinkRepoRequest(CamelModel):
    repo_owner: str | None = None
    repo_name: str | None = None
    installation_id: int | str | None = None
    repo_id: int | str | None = None
    default_branch: str | None = None


@router.put("/link")
async def link_repo(
    workspace_id: str,
    project_id: str,
    body: LinkRepoRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    link = await github_service.link_repo(
        db,
        user.user_id,
        workspace_id,
        project_id,
        body.repo_owner,
        body.repo_name,
        installation_id=body.installation_id,
        repo_id=body.repo_id,
        default_branch=body.default_branch,
    )
    return JSONResponse(content={"link": repo_link_to_dict(link)})


@router.get("/link")
async def get_repo_link(
    workspace_id: str,
    project_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    link = await github_service.get_repo_link(db, user.user_id, workspace_id, project_id)
    return JSONResponse(content={"link": repo_link_to_dict(link)})


@router.delete("/link")
async def unlink_repo(
    workspace_id: str,
    project_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    await github_service.unlink_repo(db, user.user_id, workspace_id, project_id)
    return JSONResponse(content={"success": True})


@router.post("/webhook")
async def github_webhook(
    workspace_id: str,
    project_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Receive a GitHub webhook delivery for a linked project."""
    raw_body = await request.body()
    receipt = await github_service.handle_webhook(
        db,
        workspace_id,
        project_id,
        raw_body,
        request.headers,
        fallback_secret=settings.github.webhook_secret,
    )
    return JSONResponse(
        content={
            "received": receipt.received,
            "eventType": receipt.event_type,
            "deliveryId": receipt.delivery_id,
        }
    )
