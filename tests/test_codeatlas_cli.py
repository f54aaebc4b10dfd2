"""Tests for CLI commands (runtime, database and remote services mocked)."""

from __future__ import annotations

import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from click.testing import CliRunner

from codeatlas.api import deps
from codeatlas.cli import main
from codeatlas.engines.ingestion.errors import CloneError
from codeatlas.engines.ingestion.models import AnalysisResult

REPO_ID = uuid.uuid4()


@pytest.fixture
def runtime(monkeypatch, session_factory):
    """Replace the runtime builders in ``codeatlas.api.deps``."""
    monkeypatch.setattr("codeatlas.cli.setup_logging", lambda: None)
    factory = session_factory
    init_runtime = MagicMock(return_value=factory)
    orchestrator = MagicMock()
    scores = MagicMock()
    monkeypatch.setattr(deps, "init_runtime", init_runtime)
    monkeypatch.setattr(deps, "dispose_runtime", AsyncMock())
    monkeypatch.setattr(deps, "get_orchestrator", lambda: orchestrator)
    monkeypatch.setattr(deps, "get_negative_score_runner", lambda: scores)
    return MagicMock(
        factory=factory, init_runtime=init_runtime, orchestrator=orchestrator, scores=scores
    )


class TestHelp:
    def test_lists_commands(self, runtime):
        result = CliRunner().invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("init-db", "serve", "worker", "analyze", "recompute-scores"):
            assert command in result.output


class TestAnalyze:
    def test_prints_result(self, runtime):
        runtime.orchestrator.analyze_repository = AsyncMock(
            return_value=AnalysisResult(
                repository_id=REPO_ID, status="completed", commits_walked=3
            )
        )
        result = CliRunner().invoke(main, ["analyze", "acme", "app"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["repository_id"] == str(REPO_ID)
        assert data["status"] == "completed"
        assert data["commits_walked"] == 3
        runtime.orchestrator.analyze_repository.assert_awaited_once_with("acme", "app")
        deps.dispose_runtime.assert_awaited_once()

    def test_pipeline_error_exits_nonzero(self, runtime):
        runtime.orchestrator.analyze_repository = AsyncMock(
            side_effect=CloneError("clone failed: not found")
        )
        result = CliRunner().invoke(main, ["analyze", "acme", "missing"])
        assert result.exit_code == 1
        assert "analysis failed: clone failed: not found" in result.output
        deps.dispose_runtime.assert_awaited_once()


class TestRecomputeScores:
    def test_all_repositories(self, runtime):
        runtime.scores.run_batch = AsyncMock(return_value=4)
        result = CliRunner().invoke(main, ["recompute-scores"])

        assert result.exit_code == 0, result.output
        assert "recomputed: 4" in result.output
        runtime.init_runtime.assert_called_once_with(with_ingestion=False)
        runtime.scores.run_batch.assert_awaited_once_with(runtime.factory)

    def test_single_repository(self, runtime):
        runtime.scores.calculate_negative_scores_for_repository = AsyncMock(
            return_value=[object(), object()]
        )
        result = CliRunner().invoke(main, ["recompute-scores", "--repository-id", str(REPO_ID)])

        assert result.exit_code == 0, result.output
        assert "recomputed: 2" in result.output
        args = runtime.scores.calculate_negative_scores_for_repository.call_args[0]
        assert args == (runtime.factory.session, REPO_ID)

    def test_rejects_bad_id(self, runtime):
        result = CliRunner().invoke(main, ["recompute-scores", "--repository-id", "nope"])
        assert result.exit_code == 2
