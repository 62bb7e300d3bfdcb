"""Router tests: response shapes and argument passing to services."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from ledgerflow.api.app import create_application
from ledgerflow.api.dependencies import AuthenticatedUser, get_current_user
from ledgerflow.db.models import (
    ApiToken,
    CiRun,
    CiStatus,
    Environment,
    EnvironmentType,
    Membership,
    Permission,
    Role,
    User,
    utc_now,
)
from ledgerflow.db.session import get_db
from ledgerflow.services.auth_service import AuthResult
from ledgerflow.services.ci_run_service import CiRunPage
from ledgerflow.services.workspace_service import InviteResult

mock_db = AsyncMock()


@pytest.fixture
async def client():
    app = create_application()

    async def override_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(
        user_id="user-1", email="a@x.io", auth_method="access_token"
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class TestAuthRoutes:
    @patch("ledgerflow.services.auth_service.signup")
    async def test_signup_returns_tokens(self, mock_signup, client):
        user = User(id="user-1", email="a@x.io", name="A", created_at=utc_now())
        mock_signup.return_value = AuthResult(
            user=user, access_token="jwt", refresh_token="r0", session_id="sess-1"
        )

        response = await client.post(
            "/api/auth/signup", json={"email": "a@x.io", "password": "p"}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["accessToken"] == "jwt"
        assert body["refreshToken"] == "r0"
        assert body["sessionId"] == "sess-1"
        assert body["user"]["email"] == "a@x.io"
        assert "passwordHash" not in body["user"]

    @patch("ledgerflow.services.auth_service.refresh")
    async def test_refresh_accepts_camel_case(self, mock_refresh, client):
        mock_refresh.return_value = AuthResult(
            user=User(id="user-1", email="a@x.io"),
            access_token="jwt2",
            refresh_token="r1",
            session_id="sess-1",
        )

        response = await client.post(
            "/api/auth/refresh", json={"refreshToken": "r0", "sessionToken": "st-1"}
        )

        assert response.status_code == 200
        args = mock_refresh.await_args.args
        assert args[2:4] == ("r0", "st-1")

    @patch("ledgerflow.services.auth_service.logout")
    async def test_logout(self, mock_logout, client):
        mock_logout.return_value = {"success": True}

        response = await client.post("/api/auth/logout", json={"refreshToken": "r0"})

        assert response.json() == {"success": True}


class TestWorkspaceRoutes:
    @patch("ledgerflow.services.workspace_service.invite_member")
    async def test_invite_unknown_email(self, mock_invite, client):
        mock_invite.return_value = InviteResult(
            status="invited", message="Invitation email sent to b@x.io (mock)."
        )

        response = await client.post(
            "/api/workspaces/ws-1/invite", json={"email": "b@x.io", "role": "DEVELOPER"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "invited"


class TestCiRunRoutes:
    @pytest.fixture(autouse=True)
    def allow_capabilities(self):
        with patch(
            "ledgerflow.services.permission_service.enforce", return_value=True
        ) as mock_enforce:
            yield mock_enforce

    async def test_reads_gated_on_read_capability(self, allow_capabilities, client):
        with patch("ledgerflow.services.ci_run_service.get_ci_run") as mock_get:
            mock_get.return_value = CiRun(
                id="run-1", project_id="proj-1", status=CiStatus.RUNNING, started_at=utc_now()
            )
            await client.get("/api/workspaces/ws-1/projects/proj-1/ci-runs/run-1")

        allow_capabilities.assert_awaited_once()
        assert allow_capabilities.await_args.args[1:] == ("user-1", "ws-1", "proj-1", "read")

    async def test_recording_gated_on_execute_capability(self, allow_capabilities, client):
        with patch("ledgerflow.services.ci_run_service.create_ci_run") as mock_create:
            mock_create.return_value = CiRun(
                id="run-1", project_id="proj-1", status=CiStatus.QUEUED, started_at=utc_now()
            )
            response = await client.post(
                "/api/workspaces/ws-1/projects/proj-1/ci-runs", json={"status": "QUEUED"}
            )

        assert response.status_code == 201
        assert allow_capabilities.await_args.args[4] == "execute"

    @patch("ledgerflow.services.ci_run_service.get_latest_ci_status")
    async def test_latest_is_not_treated_as_run_id(self, mock_latest, client):
        mock_latest.return_value = None

        response = await client.get(
            "/api/workspaces/ws-1/projects/proj-1/ci-runs/latest", params={"branch": "main"}
        )

        assert response.status_code == 200
        mock_latest.assert_awaited_once()

    @patch("ledgerflow.services.ci_run_service.list_ci_runs")
    async def test_list_includes_total(self, mock_list, client):
        run = CiRun(
            id="run-1",
            project_id="proj-1",
            status=CiStatus.PASSED,
            started_at=utc_now(),
            created_at=utc_now(),
        )
        mock_list.return_value = CiRunPage(total=1, runs=[run])

        response = await client.get(
            "/api/workspaces/ws-1/projects/proj-1/ci-runs",
            params={"status": "PASSED", "limit": "10"},
        )

        assert response.status_code == 200
        assert response.json()["total"] == 1


class TestSettingsRoutes:
    @patch("ledgerflow.api.routers.settings.create_api_token")
    async def test_create_token_returns_raw_value_once(self, mock_create, client):
        api_token = ApiToken(
            id="tok-1", user_id="user-1", name="ci", scopes=["ci:write"], created_at=utc_now()
        )
        mock_create.return_value = (api_token, "lfp_raw")

        response = await client.post(
            "/api/settings/api-tokens", json={"name": "ci", "scopes": ["ci:write"]}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["token"] == "lfp_raw"
        assert "tokenHash" not in body["apiToken"]

    @patch("ledgerflow.api.routers.settings.list_api_tokens")
    async def test_list_tokens_hides_values(self, mock_list, client):
        mock_list.return_value = [
            ApiToken(id="tok-1", user_id="user-1", name="ci", scopes=[], created_at=utc_now())
        ]

        response = await client.get("/api/settings/api-tokens")

        assert response.status_code == 200
        assert "token" not in response.json()["tokens"][0]


@patch("ledgerflow.services.permission_service.get_permission")
@patch("ledgerflow.services.permission_service.require_project")
@patch("ledgerflow.services.permission_service.require_role")
class TestProjectCapabilityGate:
    """The real capability check, with the role and permission lookups stubbed."""

    async def test_write_only_developer_denied_read_route(
        self, mock_require_role, mock_require_project, mock_get_permission, client
    ):
        mock_require_role.return_value = Membership(
            user_id="user-1", workspace_id="ws-1", role=Role.DEVELOPER
        )
        mock_get_permission.return_value = Permission(
            user_id="user-1", project_id="proj-1",
            can_read=False, can_write=True, can_execute=False, can_admin=False,
        )

        with patch("ledgerflow.services.environment_service.list_environments") as mock_list:
            response = await client.get("/api/workspaces/ws-1/projects/proj-1/environments")

        assert response.status_code == 403
        assert response.json()["kind"] == "forbidden"
        mock_list.assert_not_called()

    async def test_write_only_developer_passes_write_gate(
        self, mock_require_role, mock_require_project, mock_get_permission, client
    ):
        mock_require_role.return_value = Membership(
            user_id="user-1", workspace_id="ws-1", role=Role.DEVELOPER
        )
        mock_get_permission.return_value = Permission(
            user_id="user-1", project_id="proj-1",
            can_read=False, can_write=True, can_execute=False, can_admin=False,
        )

        with patch("ledgerflow.services.environment_service.create_environment") as mock_create:
            mock_create.return_value = Environment(
                id="env-1", project_id="proj-1", name="dev", type=EnvironmentType.DEVELOPMENT
            )
            response = await client.post(
                "/api/workspaces/ws-1/projects/proj-1/environments",
                json={"name": "dev", "type": "DEVELOPMENT"},
            )

        assert response.status_code == 201
        mock_create.assert_awaited_once()

    async def test_missing_permission_row_denied(
        self, mock_require_role, mock_require_project, mock_get_permission, client
    ):
        mock_require_role.return_value = Membership(
            user_id="user-1", workspace_id="ws-1", role=Role.MAINTAINER
        )
        mock_get_permission.return_value = None

        response = await client.get("/api/workspaces/ws-1/projects/proj-1/ci-runs/latest")

        assert response.status_code == 403

    async def test_workspace_admin_bypasses_flags(
        self, mock_require_role, mock_require_project, mock_get_permission, client
    ):
        mock_require_role.return_value = Membership(
            user_id="user-1", workspace_id="ws-1", role=Role.ADMIN
        )

        with patch("ledgerflow.services.environment_service.list_environments") as mock_list:
            mock_list.return_value = []
            response = await client.get("/api/workspaces/ws-1/projects/proj-1/environments")

        assert response.status_code == 200
        assert response.json() == {"environments": []}
        mock_get_permission.assert_not_called()
