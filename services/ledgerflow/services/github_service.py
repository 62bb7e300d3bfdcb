"""GitHub repository links and inbound webhook verification.

A project may be linked to one GitHub repository, and a repository to at
most one project. Webhook deliveries for a linked project are authenticated
with the X-Hub-Signature-256 HMAC, using the link's own secret or the
process-wide fallback from configuration.
"""

import hashlib
import hmac
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.db.models import GitHubRepoLink, Project, Role
from ledgerflow.db.session import flush_or_conflict
from ledgerflow.errors import (
    ConflictError,
    NotFoundError,
    SignatureInvalidError,
    ValidationError,
)
from ledgerflow.logging_config import get_logger
from ledgerflow.services.project_service import require_project
from ledgerflow.services.role_service import require_role

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-hub-signature-256"
EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"

ALREADY_LINKED = "This GitHub repository is already linked to another project"


@dataclass(frozen=True)
class SignatureCheck:
    ok: bool
    reason: str


@dataclass(frozen=True)
class WebhookReceipt:
    received: bool
    event_type: str | None
    delivery_id: str | None


def verify_webhook_signature(
    secret: str | None, raw_body: bytes, signature_header: str | None
) -> SignatureCheck:
    """Check a GitHub HMAC-SHA256 signature over the raw request body.

    With no secret at all, verification is skipped and the delivery is
    accepted. That mode is only meant for local development.
    """
    if not secret:
        logger.warning("Webhook signature not verified: no secret configured")
        return SignatureCheck(ok=True, reason="No secret configured")

    if not signature_header:
        return SignatureCheck(ok=False, reason="Missing signature")

    expected = "sha256=" + hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    if len(signature_header) != len(expected):
        return SignatureCheck(ok=False, reason="Signature mismatch")

    if not hmac.compare_digest(expected.encode(), signature_header.encode()):
        return SignatureCheck(ok=False, reason="Signature mismatch")
    return SignatureCheck(ok=True, reason="Verified")


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def _optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"invalid {field}") from None


async def _find_link(
    db: AsyncSession, workspace_id: str, project_id: str
) -> GitHubRepoLink | None:
    result = await db.execute(
        select(GitHubRepoLink)
        .join(Project, Project.id == GitHubRepoLink.project_id)
        .where(
            GitHubRepoLink.project_id == project_id,
            Project.workspace_id == workspace_id,
        )
    )
    return result.scalar_one_or_none()


async def link_repo(
    db: AsyncSession,
    user_id: str,
    workspace_id: str,
    project_id: str,
    repo_owner: str | None,
    repo_name: str | None,
    installation_id: int | str | None = None,
    repo_id: int | str | None = None,
    default_branch: str | None = None,
) -> GitHubRepoLink:
    """Link a repository to a project, replacing the project's current link."""
    await require_role(db, user_id, workspace_id, Role.MAINTAINER)
    await require_project(db, workspace_id, project_id)

    if not repo_owner or not repo_name:
        raise ValidationError("repoOwner and repoName are required")
    installation_id = _optional_int(installation_id, "installationId")
    repo_id = _optional_int(repo_id, "repoId")

    result = await db.execute(
        select(GitHubRepoLink).where(
            GitHubRepoLink.repo_owner == repo_owner,
            GitHubRepoLink.repo_name == repo_name,
        )
    )
    by_repo = result.scalar_one_or_none()
    if by_repo is not None and by_repo.project_id != project_id:
        raise ConflictError(ALREADY_LINKED)

    result = await db.execute(
        select(GitHubRepoLink).where(GitHubRepoLink.project_id == project_id)
    )
    link = result.scalar_one_or_none()
    if link is None:
        link = GitHubRepoLink(
            project_id=project_id,
            installation_id=installation_id,
            repo_owner=repo_owner,
            repo_name=repo_name,
            repo_id=repo_id,
            default_branch=default_branch or None,
            webhook_secret=None,
        )
        db.add(link)
    else:
        link.repo_owner = repo_owner
        link.repo_name = repo_name
        if installation_id is not None:
            link.installation_id = installation_id
        if repo_id is not None:
            link.repo_id = repo_id
        if default_branch is not None:
            link.default_branch = default_branch

    await flush_or_conflict(db, ALREADY_LINKED)

    logger.info(
        "GitHub repository linked",
        project_id=project_id,
        repo=f"{repo_owner}/{repo_name}",
        linked_by=user_id,
    )
    return link


async def unlink_repo(
    db: AsyncSession, user_id: str, workspace_id: str, project_id: str
) -> None:
    """Remove a project's repository link. Unlinking twice is a no-op."""
    await require_role(db, user_id, workspace_id, Role.MAINTAINER)
    await require_project(db, workspace_id, project_id)

    link = await _find_link(db, workspace_id, project_id)
    if link is None:
        return
    await db.delete(link)
    await db.flush()
    logger.info("GitHub repository unlinked", project_id=project_id, unlinked_by=user_id)


async def get_repo_link(
    db: AsyncSession, user_id: str, workspace_id: str, project_id: str
) -> GitHubRepoLink | None:
    await require_role(db, user_id, workspace_id, Role.VIEWER)
    return await _find_link(db, workspace_id, project_id)


async def handle_webhook(
    db: AsyncSession,
    workspace_id: str,
    project_id: str,
    raw_body: bytes,
    headers: Mapping[str, str],
    fallback_secret: str | None = None,
) -> WebhookReceipt:
    """Authenticate and acknowledge a webhook delivery for a linked project."""
    link = await _find_link(db, workspace_id, project_id)
    if link is None:
        raise NotFoundError("No GitHub link for this project")

    event_type = _header(headers, EVENT_HEADER)
    delivery_id = _header(headers, DELIVERY_HEADER)

    secret = link.webhook_secret or fallback_secret or ""
    check = verify_webhook_signature(secret, raw_body, _header(headers, SIGNATURE_HEADER))
    if not check.ok:
        logger.warning(
            "GitHub webhook rejected",
            project_id=project_id,
            delivery_id=delivery_id,
            reason=check.reason,
        )
        raise SignatureInvalidError(f"Invalid signature: {check.reason}")

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        payload = {}

    logger.info(
        "GitHub webhook received",
        project_id=project_id,
        event_type=event_type,
        delivery_id=delivery_id,
        action=payload.get("action") if isinstance(payload, dict) else None,
    )
    return WebhookReceipt(received=True, event_type=event_type, delivery_id=delivery_id)
