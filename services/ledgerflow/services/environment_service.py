"""Deployment environments of a project.

Environment names are unique per project, not per workspace.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.db.models import Environment, EnvironmentType, Project, Role
from ledgerflow.db.session import flush_or_conflict
from ledgerflow.errors import ConflictError, NotFoundError, ValidationError
from ledgerflow.logging_config import get_logger
from ledgerflow.services.project_service import require_project
from ledgerflow.services.role_service import require_role

logger = get_logger(__name__)

DUPLICATE_NAME = "Environment name already exists for this project"

_UNSET = object()


def _parse_type(value: str | EnvironmentType) -> EnvironmentType:
    try:
        return EnvironmentType(value)
    except ValueError:
        raise ValidationError("invalid environment type") from None


async def require_environment(
    db: AsyncSession, workspace_id: str, project_id: str, environment_id: str
) -> Environment:
    """Load an environment scoped to its project and workspace."""
    result = await db.execute(
        select(Environment)
        .join(Project, Project.id == Environment.project_id)
        .where(
            Environment.id == environment_id,
            Environment.project_id == project_id,
            Project.workspace_id == workspace_id,
        )
    )
    environment = result.scalar_one_or_none()
    if environment is None:
        raise NotFoundError("Environment not found")
    return environment


async def _find_by_name(db: AsyncSession, project_id: str, name: str) -> Environment | None:
    result = await db.execute(
        select(Environment).where(
            Environment.project_id == project_id,
            Environment.name == name,
        )
    )
    return result.scalar_one_or_none()


async def list_environments(
    db: AsyncSession, user_id: str, workspace_id: str, project_id: str
) -> list[Environment]:
    await require_role(db, user_id, workspace_id, Role.VIEWER)
    await require_project(db, workspace_id, project_id)
    result = await db.execute(
        select(Environment)
        .where(Environment.project_id == project_id)
        .order_by(Environment.created_at.asc())
    )
    return list(result.scalars().all())


async def get_environment(
    db: AsyncSession, user_id: str, workspace_id: str, project_id: str, environment_id: str
) -> Environment:
    await require_role(db, user_id, workspace_id, Role.VIEWER)
    return await require_environment(db, workspace_id, project_id, environment_id)


async def create_environment(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    project_id: str,
    name: str | None,
    type: str | EnvironmentType | None,
    url: str | None = None,
    status: str | None = None,
    config_json: Any = None,
) -> Environment:
    await require_role(db, user_id, workspace_id, Role.MAINTAINER)
    if not name or not type:
        raise ValidationError("name and type are required")
    env_type = _parse_type(type)
    await require_project(db, workspace_id, project_id)

    if await _find_by_name(db, project_id, name) is not None:
        raise ConflictError(DUPLICATE_NAME)

    environment = Environment(
        project_id=project_id,
        name=name,
        type=env_type,
        url=url or None,
        status=status or None,
        config_json=config_json,
    )
    db.add(environment)
    await flush_or_conflict(db, DUPLICATE_NAME)

    logger.info(
        "Environment created",
        environment_id=environment.id,
        project_id=project_id,
        type=env_type.value,
    )
    return environment


async def update_environment(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    project_id: str,
    environment_id: str,
    name: str | None = None,
    type: str | EnvironmentType | None = None,
    url: object = _UNSET,
    status: object = _UNSET,
    config_json: object = _UNSET,
) -> Environment:
    """Partial update; url/status/config_json may be explicitly cleared with None."""
    await require_role(db, user_id, workspace_id, Role.MAINTAINER)
    environment = await require_environment(db, workspace_id, project_id, environment_id)

    if name and name != environment.name:
        existing = await _find_by_name(db, project_id, name)
        if existing is not None and existing.id != environment_id:
            raise ConflictError(DUPLICATE_NAME)
        environment.name = name
    if type is not None:
        environment.type = _parse_type(type)
    if url is not _UNSET:
        environment.url = url
    if status is not _UNSET:
        environment.status = status
    if config_json is not _UNSET:
        environment.config_json = config_json

    await flush_or_conflict(db, DUPLICATE_NAME)
    logger.info("Environment updated", environment_id=environment_id)
    return environment


async def delete_environment(
    db: AsyncSession, user_id: str, workspace_id: str, project_id: str, environment_id: str
) -> None:
    await require_role(db, user_id, workspace_id, Role.ADMIN)
    environment = await require_environment(db, workspace_id, project_id, environment_id)
    await db.delete(environment)
    await db.flush()
    logger.info("Environment deleted", environment_id=environment_id, project_id=project_id)
