"""Response shaping and the shared request base model.

Responses use camelCase keys. Secrets (password hashes, token hashes,
webhook secrets) never leave this module.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ledgerflow.db.models import (
    ApiToken,
    CiRun,
    Environment,
    GitHubRepoLink,
    Membership,
    Permission,
    Project,
    Session,
    User,
    Workspace,
)


class CamelModel(BaseModel):
    """Request body accepting camelCase (or snake_case) field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "imageUrl": user.image_url,
        "createdAt": _iso(user.created_at),
        "updatedAt": _iso(user.updated_at),
    }


def user_summary(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "imageUrl": user.image_url,
    }


def session_to_dict(session: Session) -> dict[str, Any]:
    # session_token and refresh hash are credentials; only metadata is exposed
    return {
        "id": session.id,
        "userAgent": session.user_agent,
        "ipAddress": session.ip_address,
        "createdAt": _iso(session.created_at),
        "expiresAt": _iso(session.expires_at),
    }


def api_token_to_dict(token: ApiToken) -> dict[str, Any]:
    return {
        "id": token.id,
        "userId": token.user_id,
        "name": token.name,
        "scopes": list(token.scopes or []),
        "expiresAt": _iso(token.expires_at),
        "lastUsedAt": _iso(token.last_used_at),
        "createdAt": _iso(token.created_at),
    }


def workspace_to_dict(workspace: Workspace) -> dict[str, Any]:
    return {
        "id": workspace.id,
        "slug": workspace.slug,
        "name": workspace.name,
        "description": workspace.description,
        "ownerId": workspace.owner_id,
        "createdAt": _iso(workspace.created_at),
        "updatedAt": _iso(workspace.updated_at),
    }


def membership_to_dict(membership: Membership, include_user: bool = False) -> dict[str, Any]:
    data = {
        "id": membership.id,
        "userId": membership.user_id,
        "workspaceId": membership.workspace_id,
        "role": membership.role.value,
        "createdAt": _iso(membership.created_at),
        "updatedAt": _iso(membership.updated_at),
    }
    if include_user:
        data["user"] = user_summary(membership.user)
    return data


def project_to_dict(project: Project) -> dict[str, Any]:
    return {
        "id": project.id,
        "workspaceId": project.workspace_id,
        "name": project.name,
        "slug": project.slug,
        "description": project.description,
        "defaultBranch": project.default_branch,
        "createdAt": _iso(project.created_at),
        "updatedAt": _iso(project.updated_at),
    }


def permission_to_dict(permission: Permission, include_user: bool = False) -> dict[str, Any]:
    data = {
        "id": permission.id,
        "userId": permission.user_id,
        "projectId": permission.project_id,
        "canRead": permission.can_read,
        "canWrite": permission.can_write,
        "canExecute": permission.can_execute,
        "canAdmin": permission.can_admin,
        "createdAt": _iso(permission.created_at),
        "updatedAt": _iso(permission.updated_at),
    }
    if include_user:
        data["user"] = user_summary(permission.user)
    return data


def environment_to_dict(environment: Environment) -> dict[str, Any]:
    return {
        "id": environment.id,
        "projectId": environment.project_id,
        "name": environment.name,
        "type": environment.type.value,
        "url": environment.url,
        "status": environment.status,
        "configJson": environment.config_json,
        "createdAt": _iso(environment.created_at),
        "updatedAt": _iso(environment.updated_at),
    }


def ci_run_to_dict(run: CiRun, include_relations: bool = False) -> dict[str, Any]:
    data = {
        "id": run.id,
        "projectId": run.project_id,
        "environmentId": run.environment_id,
        "triggeredById": run.triggered_by_id,
        "status": run.status.value,
        "commitSha": run.commit_sha,
        "branch": run.branch,
        "logsUrl": run.logs_url,
        "startedAt": _iso(run.started_at),
        "finishedAt": _iso(run.finished_at),
        "createdAt": _iso(run.created_at),
        "updatedAt": _iso(run.updated_at),
    }
    if include_relations:
        data["environment"] = environment_to_dict(run.environment) if run.environment else None
        data["triggeredBy"] = user_summary(run.triggered_by)
    return data


def repo_link_to_dict(link: GitHubRepoLink | None) -> dict[str, Any] | None:
    if link is None:
        return None
    # BigInteger ids are rendered as strings
    return {
        "id": link.id,
        "projectId": link.project_id,
        "installationId": str(link.installation_id) if link.installation_id is not None else None,
        "repoOwner": link.repo_owner,
        "repoName": link.repo_name,
        "repoId": str(link.repo_id) if link.repo_id is not None else None,
        "defaultBranch": link.default_branch,
        "createdAt": _iso(link.created_at),
        "updatedAt": _iso(link.updated_at),
    }
