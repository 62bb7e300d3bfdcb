"""Project capability resolution and permission administration.

A project permission row grants a user capability flags on one project:

    read / write / execute  -> flag or can_admin
    admin                   -> can_admin only

Workspace ADMIN and OWNER bypass project rows entirely. Everyone else needs
an explicit row; a missing row grants nothing.
"""

from enum import StrEnum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ledgerflow.db.models import Membership, Permission, Role, User
from ledgerflow.db.session import flush_or_conflict
from ledgerflow.errors import ForbiddenError, NotFoundError, ValidationError
from ledgerflow.logging_config import get_logger
from ledgerflow.services.project_service import require_project
from ledgerflow.services.role_service import (
    ensure_can_change_role,
    get_membership,
    has_role,
    parse_role,
    require_role,
)

logger = get_logger(__name__)


class Capability(StrEnum):
    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"
    ADMIN = "admin"


def parse_capability(value: str | Capability) -> Capability:
    try:
        return Capability(value)
    except ValueError:
        raise ValidationError("invalid capability") from None


def has_capability(permission: Permission | None, capability: Capability) -> bool:
    """Check a project permission row for a capability."""
    if permission is None:
        return False
    if capability == Capability.ADMIN:
        return bool(permission.can_admin)
    flag = {
        Capability.READ: permission.can_read,
        Capability.WRITE: permission.can_write,
        Capability.EXECUTE: permission.can_execute,
    }[capability]
    return bool(flag or permission.can_admin)


async def get_permission(db: AsyncSession, user_id: str, project_id: str) -> Permission | None:
    result = await db.execute(
        select(Permission).where(
            Permission.user_id == user_id,
            Permission.project_id == project_id,
        )
    )
    return result.scalar_one_or_none()


async def is_project_admin(
    db: AsyncSession, user_id: str, membership: Membership, project_id: str
) -> bool:
    """Workspace ADMIN+ or the user's own can_admin flag on the project."""
    if has_role(membership.role, Role.ADMIN):
        return True
    permission = await get_permission(db, user_id, project_id)
    return has_capability(permission, Capability.ADMIN)


async def enforce(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    project_id: str,
    capability: str | Capability,
) -> bool:
    """Authorize a project-scoped capability, raising when it is not granted."""
    capability = parse_capability(capability)
    membership = await require_role(db, user_id, workspace_id, Role.VIEWER)
    await require_project(db, workspace_id, project_id)

    if has_role(membership.role, Role.ADMIN):
        return True

    permission = await get_permission(db, user_id, project_id)
    if not has_capability(permission, capability):
        logger.debug(
            "Capability denied",
            user_id=user_id,
            project_id=project_id,
            capability=capability.value,
        )
        raise ForbiddenError("Forbidden")
    return True


async def _require_project_admin(
    db: AsyncSession, user_id: str, workspace_id: str, project_id: str
) -> None:
    membership = await require_role(db, user_id, workspace_id, Role.VIEWER)
    await require_project(db, workspace_id, project_id)
    if not await is_project_admin(db, user_id, membership, project_id):
        raise ForbiddenError("Forbidden")


async def get_project_permissions(
    db: AsyncSession, user_id: str, workspace_id: str, project_id: str
) -> list[Permission]:
    """List permission rows for a project, oldest first, with user loaded."""
    await _require_project_admin(db, user_id, workspace_id, project_id)
    result = await db.execute(
        select(Permission)
        .where(Permission.project_id == project_id)
        .options(selectinload(Permission.user))
        .order_by(Permission.created_at.asc())
    )
    return list(result.scalars().all())


async def set_project_permission(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    project_id: str,
    target_user_id: str | None,
    can_read: bool | None = None,
    can_write: bool | None = None,
    can_execute: bool | None = None,
    can_admin: bool | None = None,
) -> Permission:
    """Create or update a user's permission row on a project.

    On update only the flags that are not None change. New rows default to
    read-only.
    """
    if not target_user_id:
        raise ValidationError("userId is required")
    await _require_project_admin(db, user_id, workspace_id, project_id)

    if await db.get(User, target_user_id) is None:
        raise NotFoundError("User not found")

    flags = {
        "can_read": can_read,
        "can_write": can_write,
        "can_execute": can_execute,
        "can_admin": can_admin,
    }
    supplied = {k: bool(v) for k, v in flags.items() if v is not None}

    permission = await get_permission(db, target_user_id, project_id)
    if permission is None:
        permission = Permission(
            user_id=target_user_id,
            project_id=project_id,
            can_read=supplied.get("can_read", True),
            can_write=supplied.get("can_write", False),
            can_execute=supplied.get("can_execute", False),
            can_admin=supplied.get("can_admin", False),
        )
        db.add(permission)
    else:
        for key, value in supplied.items():
            setattr(permission, key, value)

    await flush_or_conflict(db, "Permission already exists for this user")

    logger.info(
        "Project permission set",
        project_id=project_id,
        target_user_id=target_user_id,
        set_by=user_id,
        **supplied,
    )
    return permission


async def get_workspace_roles(
    db: AsyncSession, user_id: str, workspace_id: str
) -> list[Membership]:
    """List workspace memberships, oldest first. Requires ADMIN+."""
    await require_role(db, user_id, workspace_id, Role.ADMIN)
    result = await db.execute(
        select(Membership)
        .where(Membership.workspace_id == workspace_id)
        .options(selectinload(Membership.user))
        .order_by(Membership.created_at.asc())
    )
    return list(result.scalars().all())


async def set_workspace_role(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    target_user_id: str | None,
    role: str | Role | None,
) -> Membership:
    """Change an existing member's workspace role."""
    if not target_user_id or not role:
        raise ValidationError("userId and role are required")
    new_role = parse_role(role)

    acting = await require_role(db, user_id, workspace_id, Role.ADMIN)
    target = await get_membership(db, target_user_id, workspace_id)
    if target is None:
        raise NotFoundError("Target membership not found")

    ensure_can_change_role(acting.role, target.role, new_role)

    previous = target.role
    target.role = new_role
    await db.flush()

    logger.info(
        "Workspace role changed",
        workspace_id=workspace_id,
        target_user_id=target_user_id,
        old_role=previous.value,
        new_role=new_role.value,
        changed_by=user_id,
    )
    return target
