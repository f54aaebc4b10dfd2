"""Tests for the API layer: webhook intake, repositories and analytics endpoints.

Uses httpx.AsyncClient over ASGITransport with the services mocked, so no
database is needed.
"""

from __future__ import annotations

import dataclasses
import hashlib
import hmac
import json
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from codeatlas.api import create_app, deps
from codeatlas.core.config import AnalysisConfig, Settings
from codeatlas.engines.risk.analyzer import PrRisk, RiskAnalysisResult
from codeatlas.models.file_ownership import FileOwnership
from codeatlas.models.repository import Repository
from codeatlas.models.repository_file import RepositoryFile
from codeatlas.services import NotFoundError

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
REPO_ID = uuid.uuid4()
SECRET = "hook-secret"


def _repository(**overrides) -> Repository:
    defaults = {
        "id": REPO_ID,
        "owner": "acme",
        "name": "app",
        "clone_url": "https://github.com/acme/app.git",
        "default_branch": "main",
        "status": "completed",
        "status_reason": None,
        "failed_units": None,
        "last_analyzed_commit": "c" * 40,
        "last_refreshed_at": NOW,
        "created_at": NOW,
        "updated_at": NOW,
    }
    defaults.update(overrides)
    return Repository(**defaults)


def _sign(body: bytes) -> str:
    return "sha256=" + hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()


def _provide(value):
    def _dependency():
        return value

    return _dependency


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mocks():
    repo_svc = MagicMock()
    repo_svc.get = AsyncMock(return_value=_repository())
    repo_svc.register = AsyncMock(return_value=(_repository(status="pending"), True))
    repo_svc.list_repositories = AsyncMock(
        return_value={"data": [_repository()], "next_cursor": None, "has_more": False}
    )

    orchestrator = MagicMock()
    orchestrator.is_running = MagicMock(return_value=False)
    orchestrator.cancel = MagicMock(return_value=True)

    queue = MagicMock()
    queue.enqueue = AsyncMock(return_value=uuid.uuid4())

    risk_runner = MagicMock()
    risk_runner.config = AnalysisConfig()

    return {
        deps.get_repository_service: repo_svc,
        deps.get_orchestrator: orchestrator,
        deps.get_queue_service: queue,
        deps.get_risk_runner: risk_runner,
        deps.get_history_service: MagicMock(),
        deps.get_ownership_service: MagicMock(),
        deps.get_embedding_service: MagicMock(),
        deps.get_negative_score_service: MagicMock(),
        deps.get_negative_score_runner: MagicMock(),
    }


@pytest.fixture
def app(mocks, monkeypatch):
    monkeypatch.setattr("codeatlas.api.setup_logging", lambda: None)
    application = create_app(lifespan=False)

    mock_session = AsyncMock()

    async def _mock_session():
        yield mock_session

    settings = dataclasses.replace(Settings.from_env(), webhook_secret=SECRET)
    application.dependency_overrides[deps.get_session] = _mock_session
    application.dependency_overrides[deps.get_settings] = lambda: settings
    for dependency, mock in mocks.items():
        application.dependency_overrides[dependency] = _provide(mock)
    return application


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Ops
# ---------------------------------------------------------------------------


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_request_id_echoed(client):
    rid = str(uuid.uuid4())
    resp = await client.get("/health", headers={"X-Request-ID": rid})
    assert resp.headers["X-Request-ID"] == rid


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class TestWebhooks:
    async def _post(self, client, event: str, payload, *, signature: str | None = "auto"):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        headers = {"X-GitHub-Event": event, "X-GitHub-Delivery": "d-1"}
        if signature == "auto":
            headers["X-Hub-Signature-256"] = _sign(body)
        elif signature is not None:
            headers["X-Hub-Signature-256"] = signature
        return await client.post("/webhooks/github", content=body, headers=headers)

    async def test_push_is_queued(self, client, mocks):
        payload = {"ref": "refs/heads/main", "after": "a" * 40}
        resp = await self._post(client, "push", payload)

        assert resp.status_code == 202
        body = resp.json()
        assert body["queued"] is True
        assert body["event_type"] == "push"
        queue = mocks[deps.get_queue_service]
        args = queue.enqueue.call_args[0]
        assert args[1:] == ("push", payload, "d-1")

    async def test_bad_signature_rejected(self, client, mocks):
        resp = await self._post(client, "push", {"after": "x"}, signature="sha256=deadbeef")
        assert resp.status_code == 401
        mocks[deps.get_queue_service].enqueue.assert_not_awaited()

    async def test_missing_signature_rejected(self, client):
        resp = await self._post(client, "push", {"after": "x"}, signature=None)
        assert resp.status_code == 401

    async def test_other_events_acknowledged_not_queued(self, client, mocks):
        resp = await self._post(client, "ping", {"zen": "hi"})
        assert resp.status_code == 202
        assert resp.json()["queued"] is False
        mocks[deps.get_queue_service].enqueue.assert_not_awaited()

    async def test_invalid_json(self, client):
        resp = await self._post(client, "push", b"{not json")
        assert resp.status_code == 400

    async def test_non_object_payload(self, client):
        resp = await self._post(client, "push", [1, 2])
        assert resp.status_code == 400

    async def test_redelivery_not_queued_twice(self, client, mocks):
        mocks[deps.get_queue_service].enqueue.return_value = None
        resp = await self._post(client, "push", {"after": "x"})
        assert resp.status_code == 202
        assert resp.json()["queued"] is False

    async def test_missing_event_header(self, client):
        resp = await client.post("/webhooks/github", content=b"{}")
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class TestRepositories:
    async def test_register_starts_analysis(self, client, mocks):
        resp = await client.post(
            "/api/v1/repositories/", json={"repo_url": "https://github.com/acme/app"}
        )
        assert resp.status_code == 202
        assert resp.json()["status"] == "pending"

        kwargs = mocks[deps.get_repository_service].register.call_args[1]
        assert (kwargs["owner"], kwargs["name"]) == ("acme", "app")
        mocks[deps.get_orchestrator].schedule_analysis.assert_called_once_with(
            "acme", "app", REPO_ID
        )

    async def test_register_while_running_does_not_restart(self, client, mocks):
        mocks[deps.get_repository_service].register.return_value = (
            _repository(status="embedding"),
            False,
        )
        resp = await client.post("/api/v1/repositories/", json={"owner": "acme", "name": "app"})
        assert resp.status_code == 202
        mocks[deps.get_orchestrator].schedule_analysis.assert_not_called()

    async def test_register_requires_target(self, client):
        resp = await client.post("/api/v1/repositories/", json={"owner": "acme"})
        assert resp.status_code == 422

    async def test_list(self, client):
        resp = await client.get("/api/v1/repositories/?status=completed")
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["data"]) == 1
        assert body["meta"] == {"next_cursor": None, "has_more": False}

    async def test_get_detail(self, client, mocks):
        mocks[deps.get_repository_service].get.return_value = _repository(
            failed_units=[{"stage": "extracting", "error": "boom"}]
        )
        resp = await client.get(f"/api/v1/repositories/{REPO_ID}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["failed_units"] == [{"stage": "extracting", "error": "boom"}]
        assert body["running"] is False

    async def test_get_not_found(self, client, mocks):
        mocks[deps.get_repository_service].get.side_effect = NotFoundError("repository not found")
        resp = await client.get(f"/api/v1/repositories/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "repository not found"

    async def test_invalid_uuid(self, client):
        resp = await client.get("/api/v1/repositories/not-a-uuid")
        assert resp.status_code == 422

    async def test_cancel(self, client, mocks):
        resp = await client.post(f"/api/v1/repositories/{REPO_ID}/cancel")
        assert resp.status_code == 202
        assert resp.json() == {"cancelled": True}
        mocks[deps.get_orchestrator].cancel.assert_called_once_with(REPO_ID)


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class TestAnalytics:
    async def test_file_ownership(self, client, mocks):
        file_id = uuid.uuid4()
        history = mocks[deps.get_history_service]
        history.get_file = AsyncMock(
            return_value=RepositoryFile(id=file_id, repository_id=REPO_ID, file_path="src/a.py")
        )
        mocks[deps.get_ownership_service].list_by_file = AsyncMock(
            return_value=[
                FileOwnership(file_id=file_id, author_name="alice", semantic_score=0.75),
                FileOwnership(file_id=file_id, author_name="bob", semantic_score=0.25),
            ]
        )

        resp = await client.get(f"/api/v1/repositories/{REPO_ID}/files/{file_id}/ownership")
        assert resp.status_code == 200
        body = resp.json()
        assert body["file_path"] == "src/a.py"
        assert [o["author_name"] for o in body["owners"]] == ["alice", "bob"]

    async def test_file_of_other_repository(self, client, mocks):
        mocks[deps.get_history_service].get_file = AsyncMock(
            side_effect=NotFoundError("file not found")
        )
        resp = await client.get(f"/api/v1/repositories/{REPO_ID}/files/{uuid.uuid4()}/ownership")
        assert resp.status_code == 404

    async def test_similar_files(self, client, mocks):
        file_id, other_id = uuid.uuid4(), uuid.uuid4()
        mocks[deps.get_history_service].get_file = AsyncMock(
            return_value=RepositoryFile(id=file_id, repository_id=REPO_ID, file_path="a.py")
        )
        mocks[deps.get_embedding_service].similar_files = AsyncMock(
            return_value=[(other_id, "b.py", 0.91)]
        )
        resp = await client.get(f"/api/v1/repositories/{REPO_ID}/files/{file_id}/similar")
        assert resp.status_code == 200
        assert resp.json() == [{"file_id": str(other_id), "file_path": "b.py", "similarity": 0.91}]

    async def test_risk_with_inline_embeddings(self, client, mocks):
        pr = PrRisk(
            pr_number=7,
            title="Rework parser",
            structural_overlap=0.5,
            semantic_overlap=0.9,
            risk=0.74,
            conflicting_files=["a.py"],
        )
        runner = mocks[deps.get_risk_runner]
        runner.preview_risk = AsyncMock(
            return_value=RiskAnalysisResult(
                risk_score=0.74, structural_overlap=0.5, semantic_overlap=0.9, conflicting_prs=[pr]
            )
        )
        embeddings = mocks[deps.get_embedding_service]
        embeddings.vectors_at_revision = AsyncMock()

        resp = await client.post(
            f"/api/v1/repositories/{REPO_ID}/risk",
            json={"changed_files": ["a.py", "b.py"], "embeddings": {"a.py": [[1.0, 0.0]]}},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["risk_score"] == pytest.approx(0.74)
        assert body["blocked"] is False
        assert body["conflicting_prs"][0]["pr_number"] == 7
        embeddings.vectors_at_revision.assert_not_awaited()
        args = runner.preview_risk.call_args[0]
        assert args[2:] == (["a.py", "b.py"], {"a.py": [[1.0, 0.0]]})

    async def test_risk_loads_stored_vectors(self, client, mocks):
        mocks[deps.get_risk_runner].preview_risk = AsyncMock(
            return_value=RiskAnalysisResult(risk_score=0.9)
        )
        embeddings = mocks[deps.get_embedding_service]
        embeddings.vectors_at_revision = AsyncMock(return_value={})

        resp = await client.post(
            f"/api/v1/repositories/{REPO_ID}/risk",
            json={"changed_files": ["a.py"], "commit_sha": "abc"},
        )
        assert resp.json()["blocked"] is True
        args = embeddings.vectors_at_revision.call_args[0]
        assert args[1:] == (REPO_ID, "abc", ["a.py"])
        preview = mocks[deps.get_risk_runner].preview_risk.call_args
        assert preview[1]["exclude_shas"] == ["abc"]

    async def test_risk_requires_files(self, client):
        resp = await client.post(f"/api/v1/repositories/{REPO_ID}/risk", json={"changed_files": []})
        assert resp.status_code == 422

    async def test_recompute_negative_scores(self, client, mocks):
        runner = mocks[deps.get_negative_score_runner]
        runner.calculate_negative_scores_for_repository = AsyncMock(return_value=[1, 2, 3])
        resp = await client.post(f"/api/v1/repositories/{REPO_ID}/negative-scores/recompute")
        assert resp.status_code == 200
        assert resp.json() == {"repository_id": str(REPO_ID), "contributors": 3}

    async def test_replacement_events_page(self, client, mocks):
        scores = mocks[deps.get_negative_score_service]
        scores.list_events = AsyncMock(
            return_value={"data": [], "next_cursor": None, "has_more": False}
        )
        resp = await client.get(
            f"/api/v1/repositories/{REPO_ID}/replacement-events?contributor=alice"
        )
        assert resp.status_code == 200
        assert scores.list_events.call_args[1]["contributor"] == "alice"
