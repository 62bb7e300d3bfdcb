"""Project CRUD within a workspace.

Permissions:
- List/get: workspace VIEWER+
- Create/update: workspace MAINTAINER+
- Delete: workspace ADMIN+
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.db.models import Project, Role
from ledgerflow.db.session import flush_or_conflict
from ledgerflow.errors import ConflictError, NotFoundError, ValidationError
from ledgerflow.logging_config import get_logger
from ledgerflow.services.role_service import require_role

logger = get_logger(__name__)

DUPLICATE_SLUG = "Project slug already exists in this workspace"

_UNSET = object()


async def require_project(db: AsyncSession, workspace_id: str, project_id: str) -> Project:
    """Load a project scoped to its workspace.

    A project belonging to another workspace is reported as NOT_FOUND.
    """
    project = await db.get(Project, project_id)
    if project is None or project.workspace_id != workspace_id:
        raise NotFoundError("Project not found")
    return project


async def _find_by_slug(db: AsyncSession, workspace_id: str, slug: str) -> Project | None:
    result = await db.execute(
        select(Project).where(Project.workspace_id == workspace_id, Project.slug == slug)
    )
    return result.scalar_one_or_none()


async def list_projects(db: AsyncSession, user_id: str, workspace_id: str) -> list[Project]:
    """List projects in a workspace, most recent first."""
    await require_role(db, user_id, workspace_id, Role.VIEWER)
    result = await db.execute(
        select(Project)
        .where(Project.workspace_id == workspace_id)
        .order_by(Project.created_at.desc())
    )
    return list(result.scalars().all())


async def create_project(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    name: str | None,
    slug: str | None,
    description: str | None = None,
    default_branch: str | None = None,
) -> Project:
    await require_role(db, user_id, workspace_id, Role.MAINTAINER)
    if not name or not slug:
        raise ValidationError("name and slug are required")

    if await _find_by_slug(db, workspace_id, slug) is not None:
        raise ConflictError(DUPLICATE_SLUG)

    project = Project(
        workspace_id=workspace_id,
        name=name,
        slug=slug,
        description=description or None,
        default_branch=default_branch or None,
    )
    db.add(project)
    await flush_or_conflict(db, DUPLICATE_SLUG)

    logger.info("Project created", project_id=project.id, workspace_id=workspace_id, slug=slug)
    return project


async def get_project(
    db: AsyncSession, user_id: str, workspace_id: str, project_id: str
) -> Project:
    await require_role(db, user_id, workspace_id, Role.VIEWER)
    return await require_project(db, workspace_id, project_id)


async def update_project(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    project_id: str,
    name: str | None = None,
    slug: str | None = None,
    description: object = _UNSET,
    default_branch: object = _UNSET,
) -> Project:
    """Partial update; description/default_branch may be explicitly cleared with None."""
    await require_role(db, user_id, workspace_id, Role.MAINTAINER)
    project = await require_project(db, workspace_id, project_id)

    if slug and slug != project.slug:
        existing = await _find_by_slug(db, workspace_id, slug)
        if existing is not None and existing.id != project_id:
            raise ConflictError(DUPLICATE_SLUG)
        project.slug = slug
    if name is not None:
        project.name = name
    if description is not _UNSET:
        project.description = description
    if default_branch is not _UNSET:
        project.default_branch = default_branch

    await flush_or_conflict(db, DUPLICATE_SLUG)
    logger.info("Project updated", project_id=project_id)
    return project


async def delete_project(
    db: AsyncSession, user_id: str, workspace_id: str, project_id: str
) -> None:
    await require_role(db, user_id, workspace_id, Role.ADMIN)
    project = await require_project(db, workspace_id, project_id)
    await db.delete(project)
    await db.flush()
    logger.info("Project deleted", project_id=project_id, workspace_id=workspace_id)
