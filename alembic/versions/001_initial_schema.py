"""Initial schema: users, sessions, api_tokens, workspaces, memberships, projects,
permissions, environments, ci_runs, github_repo_links.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROLE = sa.Enum("OWNER", "ADMIN", "MAINTAINER", "DEVELOPER", "VIEWER", name="role")
ENVIRONMENT_TYPE = sa.Enum("DEVELOPMENT", "STAGING", "PRODUCTION", name="environment_type")
CI_STATUS = sa.Enum("QUEUED", "RUNNING", "PASSED", "FAILED", "CANCELED", name="ci_status")


def _id() -> sa.Column:
    return sa.Column("id", sa.String(36), primary_key=True)


def _fk(name: str, target: str, ondelete: str = "CASCADE", nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.String(36),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("image_url", sa.String(1024), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "sessions",
        _id(),
        _fk("user_id", "users.id"),
        sa.Column("session_token", sa.String(64), nullable=False, unique=True),
        sa.Column("refresh_token_hash", sa.String(64), nullable=False),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_sessions_refresh_token_hash", "sessions", ["refresh_token_hash"])
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])

    op.create_table(
        "api_tokens",
        _id(),
        _fk("user_id", "users.id"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column(
            "scopes",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_api_tokens_token_hash", "api_tokens", ["token_hash"])
    op.create_index("ix_api_tokens_user_id", "api_tokens", ["user_id"])

    op.create_table(
        "workspaces",
        _id(),
        sa.Column("slug", sa.String(63), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _fk("owner_id", "users.id", ondelete="RESTRICT"),
        *_timestamps(),
    )

    op.create_table(
        "memberships",
        _id(),
        _fk("user_id", "users.id"),
        _fk("workspace_id", "workspaces.id"),
        sa.Column("role", ROLE, nullable=False, server_default="VIEWER"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "workspace_id", name="uq_memberships"),
    )
    op.create_index("ix_memberships_workspace_id", "memberships", ["workspace_id"])

    op.create_table(
        "projects",
        _id(),
        _fk("workspace_id", "workspaces.id"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(63), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("default_branch", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("workspace_id", "slug", name="uq_projects"),
    )

    op.create_table(
        "permissions",
        _id(),
        _fk("user_id", "users.id"),
        _fk("project_id", "projects.id"),
        sa.Column("can_read", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("can_write", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("can_execute", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("can_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "project_id", name="uq_permissions"),
    )
    op.create_index("ix_permissions_project_id", "permissions", ["project_id"])

    op.create_table(
        "environments",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", ENVIRONMENT_TYPE, nullable=False),
        sa.Column("url", sa.String(1024), nullable=True),
        sa.Column("status", sa.String(63), nullable=True),
        sa.Column("config_json", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "name", name="uq_environments"),
    )

    op.create_table(
        "ci_runs",
        _id(),
        _fk("project_id", "projects.id"),
        _fk("environment_id", "environments.id", ondelete="SET NULL", nullable=True),
        _fk("triggered_by_id", "users.id", ondelete="SET NULL", nullable=True),
        sa.Column("status", CI_STATUS, nullable=False, server_default="QUEUED"),
        sa.Column("commit_sha", sa.String(64), nullable=True),
        sa.Column("branch", sa.String(255), nullable=True),
        sa.Column("logs_url", sa.String(1024), nullable=True),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_ci_runs_project_id_started_at", "ci_runs", ["project_id", "started_at"]
    )

    op.create_table(
        "github_repo_links",
        _id(),
        sa.Column(
            "project_id",
            sa.String(36),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("installation_id", sa.BigInteger(), nullable=True),
        sa.Column("repo_owner", sa.String(255), nullable=False),
        sa.Column("repo_name", sa.String(255), nullable=False),
        sa.Column("repo_id", sa.BigInteger(), nullable=True),
        sa.Column("default_branch", sa.String(255), nullable=True),
        sa.Column("webhook_secret", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("repo_owner", "repo_name", name="uq_github_repo_links_repo"),
    )


def downgrade() -> None:
    op.drop_table("github_repo_links")
    op.drop_table("ci_runs")
    op.drop_table("environments")
    op.drop_table("permissions")
    op.drop_table("projects")
    op.drop_table("memberships")
    op.drop_table("workspaces")
    op.drop_table("api_tokens")
    op.drop_table("sessions")
    op.drop_table("users")

    CI_STATUS.drop(op.get_bind(), checkfirst=True)
    ENVIRONMENT_TYPE.drop(op.get_bind(), checkfirst=True)
    ROLE.drop(op.get_bind(), checkfirst=True)
