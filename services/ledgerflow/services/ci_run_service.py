"""CI run records for a project.

Runs are reported by CI systems or users; this service stores and queries
them. List/get need workspace VIEWER+, create/update MAINTAINER+.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ledgerflow.db.models import (
    CiRun,
    CiStatus,
    Environment,
    Project,
    Role,
    User,
    generate_id,
    utc_now,
)
from ledgerflow.errors import NotFoundError, ValidationError
from ledgerflow.logging_config import get_logger
from ledgerflow.services.project_service import require_project
from ledgerflow.services.role_service import require_role

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

_UNSET = object()


@dataclass
class CiRunPage:
    total: int
    runs: list[CiRun]


def _parse_status(value: str | CiStatus) -> CiStatus:
    try:
        return CiStatus(value)
    except ValueError:
        raise ValidationError("invalid status") from None


def _parse_time(value: datetime | str | None, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except (AttributeError, ValueError):
            raise ValidationError(f"invalid {field}") from None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def _page_bounds(limit: int | str | None, offset: int | str | None) -> tuple[int, int]:
    try:
        limit = int(limit) if limit else DEFAULT_PAGE_SIZE
    except (TypeError, ValueError):
        limit = DEFAULT_PAGE_SIZE
    try:
        offset = int(offset) if offset else 0
    except (TypeError, ValueError):
        offset = 0
    return max(1, min(limit, MAX_PAGE_SIZE)), max(0, offset)


async def _check_environment(db: AsyncSession, project_id: str, environment_id: str) -> None:
    result = await db.execute(
        select(Environment.id).where(
            Environment.id == environment_id,
            Environment.project_id == project_id,
        )
    )
    if result.scalar_one_or_none() is None:
        raise ValidationError("Invalid environmentId for this project")


async def _require_run(
    db: AsyncSession, workspace_id: str, project_id: str, run_id: str
) -> CiRun:
    result = await db.execute(
        select(CiRun)
        .join(Project, Project.id == CiRun.project_id)
        .where(
            CiRun.id == run_id,
            CiRun.project_id == project_id,
            Project.workspace_id == workspace_id,
        )
        .options(selectinload(CiRun.environment), selectinload(CiRun.triggered_by))
    )
    run = result.scalar_one_or_none()
    if run is None:
        raise NotFoundError("CI run not found")
    return run


async def list_ci_runs(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    project_id: str,
    environment_id: str | None = None,
    status: str | None = None,
    branch: str | None = None,
    limit: int | str | None = DEFAULT_PAGE_SIZE,
    offset: int | str | None = 0,
) -> CiRunPage:
    """Filtered page of runs, most recently started first, with the total count."""
    await require_role(db, user_id, workspace_id, Role.VIEWER)
    await require_project(db, workspace_id, project_id)

    conditions = [CiRun.project_id == project_id]
    if environment_id:
        conditions.append(CiRun.environment_id == environment_id)
    if status:
        conditions.append(CiRun.status == _parse_status(status))
    if branch:
        conditions.append(CiRun.branch == branch)

    limit, offset = _page_bounds(limit, offset)

    total_result = await db.execute(select(func.count()).select_from(CiRun).where(*conditions))
    total = total_result.scalar_one()

    result = await db.execute(
        select(CiRun)
        .where(*conditions)
        .options(selectinload(CiRun.environment), selectinload(CiRun.triggered_by))
        .order_by(CiRun.started_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return CiRunPage(total=total, runs=list(result.scalars().all()))


async def get_ci_run(
    db: AsyncSession, user_id: str, workspace_id: str, project_id: str, run_id: str
) -> CiRun:
    await require_role(db, user_id, workspace_id, Role.VIEWER)
    return await _require_run(db, workspace_id, project_id, run_id)


async def create_ci_run(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    project_id: str,
    status: str | CiStatus | None,
    environment_id: str | None = None,
    commit_sha: str | None = None,
    branch: str | None = None,
    logs_url: str | None = None,
    triggered_by_id: str | None = None,
    started_at: datetime | str | None = None,
    finished_at: datetime | str | None = None,
) -> CiRun:
    await require_role(db, user_id, workspace_id, Role.MAINTAINER)
    await require_project(db, workspace_id, project_id)

    if not status:
        raise ValidationError("status is required")
    run_status = _parse_status(status)

    if environment_id:
        await _check_environment(db, project_id, environment_id)
    if triggered_by_id and await db.get(User, triggered_by_id) is None:
        raise ValidationError("invalid triggeredById")

    run = CiRun(
        id=generate_id(),
        project_id=project_id,
        environment_id=environment_id or None,
        status=run_status,
        commit_sha=commit_sha or None,
        branch=branch or None,
        logs_url=logs_url or None,
        triggered_by_id=triggered_by_id or user_id,
        started_at=_parse_time(started_at, "startedAt") or utc_now(),
        finished_at=_parse_time(finished_at, "finishedAt"),
    )
    db.add(run)
    await db.flush()

    logger.info(
        "CI run recorded",
        run_id=run.id,
        project_id=project_id,
        status=run_status.value,
        branch=run.branch,
    )
    return run


async def update_ci_run(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    project_id: str,
    run_id: str,
    status: str | CiStatus | None = None,
    logs_url: object = _UNSET,
    finished_at: object = _UNSET,
    commit_sha: object = _UNSET,
    branch: object = _UNSET,
    environment_id: object = _UNSET,
) -> CiRun:
    await require_role(db, user_id, workspace_id, Role.MAINTAINER)
    run = await _require_run(db, workspace_id, project_id, run_id)

    if environment_id is not _UNSET and environment_id:
        await _check_environment(db, project_id, environment_id)

    if status is not None:
        run.status = _parse_status(status)
    if logs_url is not _UNSET:
        run.logs_url = logs_url
    if finished_at is not _UNSET:
        run.finished_at = _parse_time(finished_at, "finishedAt")
    if commit_sha is not _UNSET:
        run.commit_sha = commit_sha
    if branch is not _UNSET:
        run.branch = branch
    if environment_id is not _UNSET:
        run.environment_id = environment_id or None

    await db.flush()
    logger.info("CI run updated", run_id=run_id, status=run.status.value)
    return run


async def get_latest_ci_status(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    project_id: str,
    branch: str | None = None,
    environment_id: str | None = None,
) -> CiRun | None:
    """Most recently started run, optionally narrowed by branch or environment."""
    await require_role(db, user_id, workspace_id, Role.VIEWER)
    await require_project(db, workspace_id, project_id)

    query = select(CiRun).where(CiRun.project_id == project_id)
    if branch:
        query = query.where(CiRun.branch == branch)
    if environment_id:
        query = query.where(CiRun.environment_id == environment_id)

    result = await db.execute(query.order_by(CiRun.started_at.desc()).limit(1))
    return result.scalar_one_or_none()
