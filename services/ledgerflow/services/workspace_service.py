"""Workspace and membership management.

The creator of a workspace becomes its OWNER; the workspace row and the
OWNER membership are written in one nested transaction.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ledgerflow.db.models import Membership, Role, User, Workspace, generate_id, utc_now
from ledgerflow.db.session import flush_or_conflict
from ledgerflow.errors import ConflictError, ValidationError
from ledgerflow.logging_config import get_logger
from ledgerflow.services.role_service import ensure_can_change_role, parse_role, require_role

logger = get_logger(__name__)

DUPLICATE_SLUG = "Workspace slug already exists"

_UNSET = object()


@dataclass
class InviteResult:
    """Outcome of an invite: 'added' with a membership, or 'invited' by email."""

    status: str
    membership: Membership | None = None
    message: str | None = None


async def _find_by_slug(db: AsyncSession, slug: str) -> Workspace | None:
    result = await db.execute(select(Workspace).where(Workspace.slug == slug))
    return result.scalar_one_or_none()


async def list_workspaces(db: AsyncSession, user_id: str) -> list[Workspace]:
    """Workspaces the user is a member of, most recent first."""
    result = await db.execute(
        select(Workspace)
        .join(Membership, Membership.workspace_id == Workspace.id)
        .where(Membership.user_id == user_id)
        .order_by(Workspace.created_at.desc())
    )
    return list(result.scalars().all())


async def create_workspace(
    db: AsyncSession,
    user_id: str,
    name: str | None,
    slug: str | None,
    description: str | None = None,
) -> Workspace:
    if not name or not slug:
        raise ValidationError("name and slug are required")

    if await _find_by_slug(db, slug) is not None:
        raise ConflictError(DUPLICATE_SLUG)

    now = utc_now()
    workspace = Workspace(
        id=generate_id(),
        name=name,
        slug=slug,
        description=description or None,
        owner_id=user_id,
        created_at=now,
        updated_at=now,
    )
    membership = Membership(
        id=generate_id(),
        user_id=user_id,
        workspace_id=workspace.id,
        role=Role.OWNER,
    )

    async with db.begin_nested():
        db.add(workspace)
        db.add(membership)
        await flush_or_conflict(db, DUPLICATE_SLUG)

    logger.info("Workspace created", workspace_id=workspace.id, slug=slug, owner_id=user_id)
    return workspace


async def get_workspace(db: AsyncSession, user_id: str, workspace_id: str) -> Workspace:
    await require_role(db, user_id, workspace_id, Role.VIEWER)
    return await db.get(Workspace, workspace_id)


async def update_workspace(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    name: str | None = None,
    slug: str | None = None,
    description: object = _UNSET,
) -> Workspace:
    await require_role(db, user_id, workspace_id, Role.ADMIN)
    workspace = await db.get(Workspace, workspace_id)

    if slug and slug != workspace.slug:
        existing = await _find_by_slug(db, slug)
        if existing is not None and existing.id != workspace_id:
            raise ConflictError(DUPLICATE_SLUG)
        workspace.slug = slug
    if name is not None:
        workspace.name = name
    if description is not _UNSET:
        workspace.description = description

    await flush_or_conflict(db, DUPLICATE_SLUG)
    logger.info("Workspace updated", workspace_id=workspace_id)
    return workspace


async def delete_workspace(db: AsyncSession, user_id: str, workspace_id: str) -> None:
    await require_role(db, user_id, workspace_id, Role.OWNER)
    workspace = await db.get(Workspace, workspace_id)
    await db.delete(workspace)
    await db.flush()
    logger.info("Workspace deleted", workspace_id=workspace_id, deleted_by=user_id)


async def list_members(db: AsyncSession, user_id: str, workspace_id: str) -> list[Membership]:
    """Memberships with user summaries, oldest first. Requires ADMIN+."""
    await require_role(db, user_id, workspace_id, Role.ADMIN)
    result = await db.execute(
        select(Membership)
        .where(Membership.workspace_id == workspace_id)
        .options(selectinload(Membership.user))
        .order_by(Membership.created_at.asc())
    )
    return list(result.scalars().all())


async def invite_member(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    email: str | None,
    role: str | Role | None = None,
) -> InviteResult:
    """Add an existing user to the workspace, or pretend to email an invite.

    An existing membership has its role overwritten. Granting OWNER, or
    changing an existing OWNER, requires the caller to be an OWNER.
    """
    acting = await require_role(db, user_id, workspace_id, Role.ADMIN)
    if not email:
        raise ValidationError("email is required")
    new_role = parse_role(role or Role.VIEWER)

    result = await db.execute(select(User).where(User.email == email))
    invitee = result.scalar_one_or_none()
    if invitee is None:
        # No mail delivery; the invite is only acknowledged
        logger.info("Invite for unknown email acknowledged", workspace_id=workspace_id)
        return InviteResult(
            status="invited",
            message=f"Invitation email sent to {email} (mock).",
        )

    result = await db.execute(
        select(Membership).where(
            Membership.user_id == invitee.id,
            Membership.workspace_id == workspace_id,
        )
    )
    membership = result.scalar_one_or_none()
    ensure_can_change_role(
        acting.role, membership.role if membership else new_role, new_role
    )
    if membership is None:
        membership = Membership(
            id=generate_id(),
            user_id=invitee.id,
            workspace_id=workspace_id,
            role=new_role,
        )
        db.add(membership)
    else:
        membership.role = new_role

    await flush_or_conflict(db, "Membership already exists")

    logger.info(
        "Member added",
        workspace_id=workspace_id,
        member_id=invitee.id,
        role=new_role.value,
        invited_by=user_id,
    )
    return InviteResult(status="added", membership=membership)
