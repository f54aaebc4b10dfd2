"""Tests for OwnershipRunner and RiskRunner with mocked services."""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from codeatlas.engines.ownership.runner import OwnershipRunner
from codeatlas.engines.risk.runner import RiskRunner
from codeatlas.services.embedding_service import EmbeddingService

REPO_ID = uuid.uuid4()
FILE_ID = uuid.uuid4()
T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _row(author: str, unit: str, day: int, vector: list[float]) -> SimpleNamespace:
    return SimpleNamespace(
        file_id=FILE_ID,
        unit_name=unit,
        commit_id=uuid.uuid4(),
        sha=f"{day:040d}",
        author_name=author,
        committed_at=T0 + timedelta(days=day),
        embedding=vector,
        message=None,
        generation=day,
    )


# ── OwnershipRunner ──────────────────────────────────────────────────────


def _ownership_runner(rows, counts=None):
    embeddings = MagicMock()
    embeddings.revisions_for_file = AsyncMock(return_value=rows)
    history = MagicMock()
    history.change_counts = AsyncMock(return_value=counts or {})
    ownership = MagicMock()
    ownership.replace = AsyncMock()
    runner = OwnershipRunner(embeddings, history, ownership)
    return runner, history, ownership


class TestOwnershipRunner:
    async def test_stores_distribution(self):
        rows = [_row("alice", "main", 0, [1.0, 0.0]), _row("bob", "helper", 1, [0.0, 1.0])]
        runner, history, ownership = _ownership_runner(rows)

        session = AsyncMock()
        shares = await runner.calculate_semantic_ownership(session, FILE_ID, REPO_ID)

        assert sum(shares.values()) == pytest.approx(1.0)
        assert shares == pytest.approx({"alice": 0.5, "bob": 0.5})
        ownership.replace.assert_awaited_once_with(session, FILE_ID, shares)
        history.change_counts.assert_not_awaited()

    async def test_falls_back_to_change_counts(self):
        runner, history, ownership = _ownership_runner([], counts={"alice": 3, "bob": 1})
        shares = await runner.calculate_semantic_ownership(AsyncMock(), FILE_ID, REPO_ID)
        assert shares == pytest.approx({"alice": 0.75, "bob": 0.25})

    async def test_nothing_to_attribute(self):
        runner, _, ownership = _ownership_runner([])
        assert await runner.calculate_semantic_ownership(AsyncMock(), FILE_ID, REPO_ID) == {}
        ownership.replace.assert_awaited_once()

    async def test_run_for_files_one_transaction_each(self, session_factory):
        runner, _, ownership = _ownership_runner([])
        files = [uuid.uuid4(), uuid.uuid4()]
        assert await runner.run_for_files(session_factory, REPO_ID, files) == 2
        assert session_factory.session.begin.call_count == 2
        assert [c[0][1] for c in ownership.replace.call_args_list] == files


# ── RiskRunner ───────────────────────────────────────────────────────────


def _risk_runner():
    pr = SimpleNamespace(pr_number=7, title="Rework parser", head_sha="b" * 40)
    prs = MagicMock()
    prs.list_open_with_files = AsyncMock(return_value=[(pr, ["a.py", "c.py"])])
    prs.store_risk_scores = AsyncMock()
    embeddings = MagicMock()
    # stored PR version of a.py sits at cosine 0.9 from the pushed one
    embeddings.vectors_for_pull_request = AsyncMock(
        return_value={"a.py": [[0.9, math.sqrt(1 - 0.81)]]}
    )
    return RiskRunner(prs, embeddings), prs, embeddings


class TestRiskRunner:
    async def test_calculate_risk_stores_pr_scores(self):
        runner, prs, embeddings = _risk_runner()
        session = AsyncMock()

        result = await runner.calculate_risk(
            session,
            REPO_ID,
            ["a.py", "b.py"],
            {"a.py": [[1.0, 0.0]]},
            exclude_shas={"d" * 40},
        )

        assert result.risk_score == pytest.approx(0.74)
        embeddings.vectors_for_pull_request.assert_awaited_once_with(
            session, REPO_ID, "b" * 40, ["a.py", "c.py"], exclude_shas={"d" * 40}
        )
        stored = prs.store_risk_scores.call_args[0][2]
        assert stored == {7: pytest.approx(0.74)}

    async def test_preview_does_not_store(self):
        runner, prs, _ = _risk_runner()
        result = await runner.preview_risk(AsyncMock(), REPO_ID, ["a.py"], {"a.py": [[1.0, 0.0]]})
        assert result.conflicting_prs[0].title == "Rework parser"
        prs.store_risk_scores.assert_not_awaited()

    async def test_no_open_prs(self):
        runner, prs, _ = _risk_runner()
        prs.list_open_with_files.return_value = []
        result = await runner.calculate_risk(AsyncMock(), REPO_ID, ["a.py"], {})
        assert result.risk_score == 0.0
        assert prs.store_risk_scores.call_args[0][1:] == (REPO_ID, {})

    async def test_fork_pull_request_is_not_compared_with_the_push(self):
        # the PR head was never fetched; the push rewrote a.py orthogonally
        pr = SimpleNamespace(pr_number=7, title=None, head_sha="f" * 40)
        prs = MagicMock()
        prs.list_open_with_files = AsyncMock(return_value=[(pr, ["a.py"])])
        prs.store_risk_scores = AsyncMock()
        embedding_dao = MagicMock()
        embedding_dao.at_commit_by_path = AsyncMock(return_value={})
        embedding_dao.latest_by_path = AsyncMock(return_value={"a.py": [[0.0, 1.0]]})
        commit_dao = MagicMock()
        commit_dao.get_by_sha = AsyncMock(return_value=None)
        service = EmbeddingService(embedding_dao, MagicMock(), commit_dao)

        result = await RiskRunner(prs, service).calculate_risk(
            AsyncMock(), REPO_ID, ["a.py"], {"a.py": [[0.0, 1.0]]}, exclude_shas={"e" * 40}
        )

        [risk] = result.conflicting_prs
        assert risk.structural_overlap == 1.0
        assert risk.semantic_overlap == 0.0
        assert risk.risk == pytest.approx(0.4)
        embedding_dao.latest_by_path.assert_not_awaited()

    async def test_push_commits_never_stand_in_for_the_pr_version(self):
        head = SimpleNamespace(sha="b" * 40, committed_at=T0, generation=3)
        pr = SimpleNamespace(pr_number=7, title=None, head_sha=head.sha)
        prs = MagicMock()
        prs.list_open_with_files = AsyncMock(return_value=[(pr, ["a.py"])])
        prs.store_risk_scores = AsyncMock()
        embedding_dao = MagicMock()
        embedding_dao.at_commit_by_path = AsyncMock(return_value={})
        # a.py as of the PR head, before the push rewrote it
        embedding_dao.latest_by_path = AsyncMock(return_value={"a.py": [[1.0, 0.0]]})
        commit_dao = MagicMock()
        commit_dao.get_by_sha = AsyncMock(return_value=head)
        service = EmbeddingService(embedding_dao, MagicMock(), commit_dao)
        session = AsyncMock()

        result = await RiskRunner(prs, service).calculate_risk(
            session, REPO_ID, ["a.py"], {"a.py": [[0.0, 1.0]]}, exclude_shas={"e" * 40}
        )

        assert result.semantic_overlap == pytest.approx(0.0)
        embedding_dao.latest_by_path.assert_awaited_once_with(
            session, REPO_ID, ["a.py"], not_after=(T0, 3), exclude_shas={"e" * 40}
        )
