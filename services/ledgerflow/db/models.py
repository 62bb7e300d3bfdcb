"""
SQLAlchemy database models for Ledgerflow.

All models use:
- UUIDv7 primary keys rendered as opaque strings (time-sortable)
- snake_case column names
- Plural table names
- TIMESTAMPTZ with UTC for all timestamps
- Hard deletes, except sessions which are soft-revoked via revoked_at
"""

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def generate_uuid7() -> uuid.UUID:
    """Generate a UUIDv7 (time-sortable UUID)."""
    import time

    timestamp_ms = int(time.time() * 1000)
    rand_bytes = uuid.uuid4().bytes[6:]

    uuid_bytes = (
        timestamp_ms.to_bytes(6, "big")
        + bytes([0x70 | (rand_bytes[0] & 0x0F)])  # Version 7
        + bytes([0x80 | (rand_bytes[1] & 0x3F)])  # Variant
        + rand_bytes[2:]
    )
    return uuid.UUID(bytes=uuid_bytes)


def generate_id() -> str:
    """Opaque, globally unique entity identifier."""
    return str(generate_uuid7())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


class Role(StrEnum):
    """Workspace role, ranked OWNER > ADMIN > MAINTAINER > DEVELOPER > VIEWER."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MAINTAINER = "MAINTAINER"
    DEVELOPER = "DEVELOPER"
    VIEWER = "VIEWER"


class EnvironmentType(StrEnum):
    DEVELOPMENT = "DEVELOPMENT"
    STAGING = "STAGING"
    PRODUCTION = "PRODUCTION"


class CiStatus(StrEnum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        dict[str, Any]: JSONB,
    }


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class User(TimestampMixin, Base):
    """User account model.

    Identified by an opaque id; email is the unique login handle.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    sessions: Mapped[list["Session"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    api_tokens: Mapped[list["ApiToken"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class Session(TimestampMixin, Base):
    """One authenticated device/browser login.

    Only the SHA-256 of the current refresh token is stored. Rotation replaces
    the hash and extends expires_at; revocation sets revoked_at. Rows are never
    hard-deleted.
    """

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    session_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    refresh_token_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship(back_populates="sessions")

    __table_args__ = (
        Index("ix_sessions_refresh_token_hash", "refresh_token_hash"),
        Index("ix_sessions_user_id", "user_id"),
    )

    def is_active(self, now: datetime | None = None) -> bool:
        """A session is valid iff it is not revoked and not yet expired."""
        now = now or utc_now()
        return self.revoked_at is None and self.expires_at > now


class ApiToken(Base):
    """Long-lived, scoped credential for non-interactive clients.

    Tokens are hashed at rest (SHA-256). The raw token value is only
    returned once at creation time.
    """

    __tablename__ = "api_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    scopes: Mapped[list[str]] = mapped_column(JSONB, default=list, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    user: Mapped["User"] = relationship(back_populates="api_tokens")

    __table_args__ = (
        Index("ix_api_tokens_user_id", "user_id"),
    )


# --- Tenancy ---


class Workspace(TimestampMixin, Base):
    """Tenant boundary owning memberships and projects."""

    __tablename__ = "workspaces"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    slug: Mapped[str] = mapped_column(String(63), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )

    memberships: Mapped[list["Membership"]] = relationship(
        back_populates="workspace", cascade="all, delete-orphan"
    )
    projects: Mapped[list["Project"]] = relationship(
        back_populates="workspace", cascade="all, delete-orphan"
    )


class Membership(TimestampMixin, Base):
    """Binds a user to a workspace with exactly one role."""

    __tablename__ = "memberships"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    workspace_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[Role] = mapped_column(
        sa.Enum(Role, name="role"), nullable=False, default=Role.VIEWER
    )

    workspace: Mapped["Workspace"] = relationship(back_populates="memberships")
    user: Mapped["User"] = relationship()

    __table_args__ = (
        sa.UniqueConstraint("user_id", "workspace_id", name="uq_memberships"),
        Index("ix_memberships_workspace_id", "workspace_id"),
    )


class Project(TimestampMixin, Base):
    """Project within a workspace; slug is unique per workspace."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    workspace_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(63), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_branch: Mapped[str | None] = mapped_column(String(255), nullable=True)

    workspace: Mapped["Workspace"] = relationship(back_populates="projects")
    environments: Mapped[list["Environment"]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )
    ci_runs: Mapped[list["CiRun"]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )
    permissions: Mapped[list["Permission"]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )
    repo_link: Mapped["GitHubRepoLink | None"] = relationship(
        back_populates="project", cascade="all, delete-orphan", uselist=False
    )

    __table_args__ = (
        sa.UniqueConstraint("workspace_id", "slug", name="uq_projects"),
    )


class Permission(TimestampMixin, Base):
    """Project-scoped capability flags for a single user.

    Absence of a row means no capabilities; callers fall back to the
    workspace role.
    """

    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    can_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_write: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_execute: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    project: Mapped["Project"] = relationship(back_populates="permissions")
    user: Mapped["User"] = relationship()

    __table_args__ = (
        sa.UniqueConstraint("user_id", "project_id", name="uq_permissions"),
        Index("ix_permissions_project_id", "project_id"),
    )


# --- Delivery ---


class Environment(TimestampMixin, Base):
    """Deployment target of a project; name is unique per project."""

    __tablename__ = "environments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[EnvironmentType] = mapped_column(
        sa.Enum(EnvironmentType, name="environment_type"), nullable=False
    )
    url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    status: Mapped[str | None] = mapped_column(String(63), nullable=True)
    config_json: Mapped[Any | None] = mapped_column(JSONB, nullable=True)

    project: Mapped["Project"] = relationship(back_populates="environments")

    __table_args__ = (
        sa.UniqueConstraint("project_id", "name", name="uq_environments"),
    )


class CiRun(TimestampMixin, Base):
    """Record of a single CI pipeline run."""

    __tablename__ = "ci_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    environment_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("environments.id", ondelete="SET NULL"), nullable=True
    )
    triggered_by_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[CiStatus] = mapped_column(
        sa.Enum(CiStatus, name="ci_status"), nullable=False, default=CiStatus.QUEUED
    )
    commit_sha: Mapped[str | None] = mapped_column(String(64), nullable=True)
    branch: Mapped[str | None] = mapped_column(String(255), nullable=True)
    logs_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    project: Mapped["Project"] = relationship(back_populates="ci_runs")
    environment: Mapped["Environment | None"] = relationship()
    triggered_by: Mapped["User | None"] = relationship()

    __table_args__ = (
        Index("ix_ci_runs_project_id_started_at", "project_id", "started_at"),
    )


class GitHubRepoLink(TimestampMixin, Base):
    """Link between a project and a GitHub repository (at most one per project)."""

    __tablename__ = "github_repo_links"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    installation_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    repo_owner: Mapped[str] = mapped_column(String(255), nullable=False)
    repo_name: Mapped[str] = mapped_column(String(255), nullable=False)
    repo_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    default_branch: Mapped[str | None] = mapped_column(String(255), nullable=True)
    webhook_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)

    project: Mapped["Project"] = relationship(back_populates="repo_link")

    __table_args__ = (
        sa.UniqueConstraint("repo_owner", "repo_name", name="uq_github_repo_links_repo"),
    )
