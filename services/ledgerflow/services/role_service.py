"""Workspace role resolution.

Resolves a user's membership in a workspace and checks it against the fixed
role hierarchy:

    OWNER (5) > ADMIN (4) > MAINTAINER (3) > DEVELOPER (2) > VIEWER (1)

A missing workspace is NOT_FOUND. A non-member and a member whose role is
too low are both FORBIDDEN, with distinct messages.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.db.models import Membership, Role, Workspace
from ledgerflow.errors import ForbiddenError, NotFoundError, ValidationError
from ledgerflow.logging_config import get_logger

logger = get_logger(__name__)

ROLE_RANK: dict[Role, int] = {
    Role.OWNER: 5,
    Role.ADMIN: 4,
    Role.MAINTAINER: 3,
    Role.DEVELOPER: 2,
    Role.VIEWER: 1,
}


def parse_role(value: str | Role | None) -> Role:
    """Coerce a role name, raising ValidationError for unknown names."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        raise ValidationError("invalid role") from None


def has_role(role: Role, minimum: Role) -> bool:
    """Check if role ranks at or above the required minimum."""
    return ROLE_RANK[role] >= ROLE_RANK[minimum]


async def get_membership(
    db: AsyncSession, user_id: str, workspace_id: str
) -> Membership | None:
    result = await db.execute(
        select(Membership).where(
            Membership.user_id == user_id,
            Membership.workspace_id == workspace_id,
        )
    )
    return result.scalar_one_or_none()


async def require_role(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    minimum_role: Role = Role.VIEWER,
) -> Membership:
    """Ensure the user holds at least minimum_role in the workspace.

    Returns the membership so callers can make further decisions (e.g.
    distinguishing OWNER from ADMIN).
    """
    workspace = await db.get(Workspace, workspace_id)
    if workspace is None:
        raise NotFoundError("Workspace not found")

    membership = await get_membership(db, user_id, workspace_id)
    if membership is None:
        logger.debug("Access denied: not a member", user_id=user_id, workspace_id=workspace_id)
        raise ForbiddenError("Forbidden: not a workspace member")

    if not has_role(membership.role, minimum_role):
        logger.debug(
            "Access denied: insufficient role",
            user_id=user_id,
            workspace_id=workspace_id,
            role=membership.role.value,
            required=minimum_role.value,
        )
        raise ForbiddenError("Forbidden: insufficient role")

    return membership


def ensure_can_change_role(acting_role: Role, current_role: Role, new_role: Role) -> None:
    """Only an OWNER may assign OWNER or change an existing OWNER's role."""
    if Role.OWNER in (current_role, new_role) and acting_role != Role.OWNER:
        raise ForbiddenError("Forbidden: only OWNER can change OWNER roles")
