"""Tests for GitHub webhook signature verification and repository links."""

import hashlib
import hmac
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerflow.db.models import GitHubRepoLink
from ledgerflow.errors import (
    ConflictError,
    NotFoundError,
    SignatureInvalidError,
    ValidationError,
)
from ledgerflow.services.github_service import (
    handle_webhook,
    link_repo,
    unlink_repo,
    verify_webhook_signature,
)

SECRET = "webhook-secret"
BODY = json.dumps({"action": "completed", "ref": "refs/heads/main"}).encode()


def _sign(secret: str, body: bytes) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _flip(value: str, index: int) -> str:
    replacement = "0" if value[index] != "0" else "1"
    return value[:index] + replacement + value[index + 1 :]


class TestVerifyWebhookSignature:
    def test_valid_signature(self):
        check = verify_webhook_signature(SECRET, BODY, _sign(SECRET, BODY))
        assert check.ok is True
        assert check.reason == "Verified"

    def test_every_single_byte_body_mutation_fails(self):
        header = _sign(SECRET, BODY)
        for i in range(len(BODY)):
            mutated = BODY[:i] + bytes([BODY[i] ^ 0x01]) + BODY[i + 1 :]
            assert verify_webhook_signature(SECRET, mutated, header).ok is False

    def test_every_single_character_header_mutation_fails(self):
        header = _sign(SECRET, BODY)
        for i in range(len(header)):
            assert verify_webhook_signature(SECRET, BODY, _flip(header, i)).ok is False

    def test_wrong_secret_fails(self):
        assert verify_webhook_signature(SECRET, BODY, _sign("other", BODY)).ok is False

    def test_missing_header_fails(self):
        check = verify_webhook_signature(SECRET, BODY, None)
        assert check.ok is False
        assert check.reason == "Missing signature"

    def test_length_mismatch_fails(self):
        header = _sign(SECRET, BODY)
        assert verify_webhook_signature(SECRET, BODY, header[:-1]).ok is False
        assert verify_webhook_signature(SECRET, BODY, header + "0").ok is False

    def test_no_secret_accepts_unverified(self):
        check = verify_webhook_signature("", BODY, None)
        assert check.ok is True
        assert check.reason == "No secret configured"


@patch("ledgerflow.services.github_service._find_link")
class TestHandleWebhook:
    @pytest.fixture
    def mock_db(self):
        return AsyncMock(spec=AsyncSession)

    async def test_signed_delivery_acknowledged(self, mock_find_link, mock_db):
        mock_find_link.return_value = GitHubRepoLink(
            project_id="proj-1", repo_owner="acme", repo_name="api", webhook_secret=SECRET
        )
        headers = {
            "X-Hub-Signature-256": _sign(SECRET, BODY),
            "X-GitHub-Event": "check_suite",
            "X-GitHub-Delivery": "d-123",
        }

        receipt = await handle_webhook(mock_db, "ws-1", "proj-1", BODY, headers)

        assert receipt.received is True
        assert receipt.event_type == "check_suite"
        assert receipt.delivery_id == "d-123"

    async def test_bad_signature_rejected(self, mock_find_link, mock_db):
        mock_find_link.return_value = GitHubRepoLink(
            project_id="proj-1", repo_owner="acme", repo_name="api", webhook_secret=SECRET
        )
        headers = {"x-hub-signature-256": _sign("wrong", BODY)}

        with pytest.raises(SignatureInvalidError, match="Signature mismatch"):
            await handle_webhook(mock_db, "ws-1", "proj-1", BODY, headers)

    async def test_fallback_secret_used_when_link_has_none(self, mock_find_link, mock_db):
        mock_find_link.return_value = GitHubRepoLink(
            project_id="proj-1", repo_owner="acme", repo_name="api", webhook_secret=None
        )
        headers = {"x-hub-signature-256": _sign("process-wide", BODY)}

        receipt = await handle_webhook(
            mock_db, "ws-1", "proj-1", BODY, headers, fallback_secret="process-wide"
        )
        assert receipt.received is True

        with pytest.raises(SignatureInvalidError):
            await handle_webhook(mock_db, "ws-1", "proj-1", BODY, headers, fallback_secret="x")

    async def test_missing_link_not_found(self, mock_find_link, mock_db):
        mock_find_link.return_value = None

        with pytest.raises(NotFoundError, match="No GitHub link"):
            await handle_webhook(mock_db, "ws-1", "proj-1", BODY, {})

    async def test_invalid_json_body_ignored(self, mock_find_link, mock_db):
        mock_find_link.return_value = GitHubRepoLink(
            project_id="proj-1", repo_owner="acme", repo_name="api", webhook_secret=SECRET
        )
        body = b"not json"
        headers = {"x-hub-signature-256": _sign(SECRET, body), "x-github-event": "ping"}

        receipt = await handle_webhook(mock_db, "ws-1", "proj-1", body, headers)
        assert receipt.event_type == "ping"
        assert receipt.delivery_id is None


@patch("ledgerflow.services.github_service.require_project")
@patch("ledgerflow.services.github_service.require_role")
class TestLinkRepo:
    @pytest.fixture
    def mock_db(self):
        return AsyncMock(spec=AsyncSession)

    @staticmethod
    def _results(by_repo, by_project):
        results = []
        for value in (by_repo, by_project):
            result = MagicMock()
            result.scalar_one_or_none.return_value = value
            results.append(result)
        return results

    async def test_creates_link(self, mock_require_role, mock_require_project, mock_db):
        mock_db.execute.side_effect = self._results(None, None)

        link = await link_repo(
            mock_db, "user-1", "ws-1", "proj-1", "acme", "api", installation_id="42"
        )

        assert link.project_id == "proj-1"
        assert (link.repo_owner, link.repo_name) == ("acme", "api")
        assert link.installation_id == 42
        assert link.webhook_secret is None
        mock_db.add.assert_called_once_with(link)

    async def test_repo_linked_elsewhere_conflicts(
        self, mock_require_role, mock_require_project, mock_db
    ):
        other = GitHubRepoLink(project_id="proj-2", repo_owner="acme", repo_name="api")
        mock_db.execute.side_effect = self._results(other, None)

        with pytest.raises(ConflictError, match="already linked to another project"):
            await link_repo(mock_db, "user-1", "ws-1", "proj-1", "acme", "api")

    async def test_relinking_updates_existing(
        self, mock_require_role, mock_require_project, mock_db
    ):
        existing = GitHubRepoLink(
            project_id="proj-1", repo_owner="acme", repo_name="old", default_branch="main"
        )
        mock_db.execute.side_effect = self._results(None, existing)

        link = await link_repo(mock_db, "user-1", "ws-1", "proj-1", "acme", "api")

        assert link is existing
        assert link.repo_name == "api"
        assert link.default_branch == "main"
        mock_db.add.assert_not_called()

    async def test_owner_and_name_required(
        self, mock_require_role, mock_require_project, mock_db
    ):
        with pytest.raises(ValidationError, match="repoOwner and repoName are required"):
            await link_repo(mock_db, "user-1", "ws-1", "proj-1", "acme", None)


@patch("ledgerflow.services.github_service._find_link")
@patch("ledgerflow.services.github_service.require_project")
@patch("ledgerflow.services.github_service.require_role")
class TestUnlinkRepo:
    async def test_unlink_is_idempotent(
        self, mock_require_role, mock_require_project, mock_find_link
    ):
        db = AsyncMock(spec=AsyncSession)
        mock_find_link.return_value = None

        await unlink_repo(db, "user-1", "ws-1", "proj-1")
        db.delete.assert_not_called()

    async def test_unlink_deletes_link(self, mock_require_role, mock_require_project, mock_find_link):
        db = AsyncMock(spec=AsyncSession)
        link = MagicMock()
        mock_find_link.return_value = link

        await unlink_repo(db, "user-1", "ws-1", "proj-1")
        db.delete.assert_awaited_once_with(link)
