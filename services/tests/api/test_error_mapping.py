"""Tests for HTTP status mapping of service errors and request validation."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from ledgerflow.api.app import create_application
from ledgerflow.api.dependencies import AuthenticatedUser, get_current_user
from ledgerflow.db.session import get_db
from ledgerflow.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    SignatureInvalidError,
    UnauthenticatedError,
    ValidationError,
)


@pytest.fixture
def app():
    application = create_application()

    async def override_db():
        yield AsyncMock()

    application.dependency_overrides[get_db] = override_db
    return application


@pytest.fixture
def authed_app(app):
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(
        user_id="user-1", email="a@x.io", auth_method="access_token"
    )
    return app


@pytest.fixture
async def client(authed_app):
    async with AsyncClient(
        transport=ASGITransport(app=authed_app), base_url="http://test"
    ) as ac:
        yield ac


class TestServiceErrorStatus:
    @pytest.mark.parametrize(
        "error, status_code, kind",
        [
            (ValidationError("name and slug are required"), 400, "validation"),
            (UnauthenticatedError("Invalid access token"), 401, "unauthenticated"),
            (ForbiddenError("Forbidden: insufficient role"), 403, "forbidden"),
            (NotFoundError("Project not found"), 404, "not_found"),
            (ConflictError("Project slug already exists"), 409, "conflict"),
        ],
    )
    @patch("ledgerflow.services.project_service.get_project")
    async def test_kind_to_status(self, mock_get_project, client, error, status_code, kind):
        mock_get_project.side_effect = error

        response = await client.get("/api/workspaces/ws-1/projects/proj-1")

        assert response.status_code == status_code
        assert response.json() == {"detail": error.message, "kind": kind}

    @patch("ledgerflow.services.github_service.handle_webhook")
    async def test_bad_webhook_signature_is_401(self, mock_handle, client):
        mock_handle.side_effect = SignatureInvalidError("Invalid signature: Signature mismatch")

        response = await client.post(
            "/api/workspaces/ws-1/projects/proj-1/github/webhook",
            content=b'{"zen": "hi"}',
            headers={"X-Hub-Signature-256": "sha256=00"},
        )

        assert response.status_code == 401
        assert response.json()["kind"] == "signature_invalid"

    @patch("ledgerflow.services.project_service.get_project")
    async def test_request_id_echoed(self, mock_get_project, client):
        mock_get_project.side_effect = NotFoundError("Project not found")

        response = await client.get(
            "/api/workspaces/ws-1/projects/proj-1", headers={"X-Request-ID": "req-42"}
        )

        assert response.headers["X-Request-ID"] == "req-42"


class TestRequestValidation:
    async def test_malformed_json_is_400(self, client):
        response = await client.post(
            "/api/workspaces",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "validation"

    async def test_wrong_field_type_is_400(self, client):
        response = await client.post("/api/workspaces", json={"name": {"nested": 1}})

        assert response.status_code == 400
        assert response.json()["detail"].startswith("name")


class TestAuthentication:
    async def test_missing_bearer_is_401(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/api/workspaces")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["detail"] == "Missing or invalid Authorization header"


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @patch("ledgerflow.api.health.get_db_health")
    async def test_ready_reports_database(self, mock_health, client):
        mock_health.return_value = False

        response = await client.get("/ready")

        assert response.status_code == 503
        assert response.json()["checks"] == {"database": "unhealthy"}
