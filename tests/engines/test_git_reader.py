"""Tests for GitHistoryReader against a throwaway local repository."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest

from codeatlas.engines.git_reader import GitError, GitHistoryReader
from codeatlas.engines.git_reader.reader import _parse_numstat

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(cwd: Path, *args: str, author: str = "Alice") -> str:
    env = {
        **os.environ,
        "GIT_AUTHOR_NAME": author,
        "GIT_AUTHOR_EMAIL": f"{author.lower()}@example.com",
        "GIT_COMMITTER_NAME": author,
        "GIT_COMMITTER_EMAIL": f"{author.lower()}@example.com",
        "GIT_CONFIG_NOSYSTEM": "1",
        "HOME": str(cwd),
    }
    out = subprocess.run(
        ["git", *args], cwd=cwd, env=env, check=True, capture_output=True, text=True
    )
    return out.stdout.strip()


@pytest.fixture
def upstream(tmp_path) -> Path:
    """Working repo with three commits on main and one on a feature branch."""
    work = tmp_path / "upstream"
    work.mkdir()
    _git(work, "init", "-b", "main")
    (work / "app.py").write_text("def main():\n    return 1\n")
    (work / "util.py").write_text("def helper():\n    pass\n")
    _git(work, "add", ".")
    _git(work, "commit", "-m", "initial import")

    (work / "app.py").write_text("def main():\n    return 2\n\n\ndef extra():\n    pass\n")
    _git(work, "commit", "-am", "fix bug in main\n\nlonger body line", author="Bob")

    _git(work, "rm", "util.py")
    _git(work, "commit", "-m", "drop util")

    _git(work, "checkout", "-b", "feature")
    (work / "feature.py").write_text("X = 1\n")
    _git(work, "add", "feature.py")
    _git(work, "commit", "-m", "feature work", author="Carol")
    _git(work, "checkout", "main")
    return work


@pytest.fixture
async def reader(upstream, tmp_path) -> GitHistoryReader:
    r = GitHistoryReader(tmp_path / "clones" / "acme" / "app.git")
    await r.materialize(str(upstream))
    return r


class TestGitHistoryReader:
    async def test_materialize_creates_bare_clone(self, reader):
        assert (reader.path / "HEAD").exists()
        assert not (reader.path / "app.py").exists()

    async def test_branches(self, reader, upstream):
        branches = {b.name: b.head_sha for b in await reader.list_branches()}
        assert set(branches) == {"main", "feature"}
        assert branches["main"] == _git(upstream, "rev-parse", "main")
        assert await reader.default_branch() == "main"
        assert await reader.head_sha("feature") == branches["feature"]

    async def test_list_commits_newest_first(self, reader):
        commits = await reader.list_commits("main")
        assert [c.message.splitlines()[0] for c in commits] == [
            "drop util",
            "fix bug in main",
            "initial import",
        ]
        assert commits[1].author_name == "Bob"
        assert commits[1].message == "fix bug in main\n\nlonger body line"
        assert commits[2].is_root
        assert commits[0].parents == (commits[1].sha,)
        assert commits[0].committed_at.tzinfo is not None

    async def test_max_count(self, reader):
        assert len(await reader.list_commits("main", max_count=1)) == 1

    async def test_changed_files_root_lists_every_blob(self, reader):
        root = (await reader.list_commits("main"))[-1]
        changed = {c.path: c for c in await reader.changed_files(root)}
        assert set(changed) == {"app.py", "util.py"}
        assert changed["app.py"].additions == 2

    async def test_changed_files_and_line_stats(self, reader):
        fix = (await reader.list_commits("main"))[1]
        [changed] = await reader.changed_files(fix)
        assert changed.path == "app.py"
        assert await reader.line_stats(fix, "app.py") == (changed.additions, changed.deletions)
        assert changed.additions >= 4
        assert await reader.line_stats(fix, "util.py") == (0, 0)

    async def test_file_content(self, reader):
        drop, fix, root = await reader.list_commits("main")
        assert "return 2" in await reader.file_content(fix.sha, "app.py")
        assert "return 1" in await reader.file_content(root.sha, "app.py")
        assert await reader.file_content(drop.sha, "util.py") is None

    async def test_commits_between(self, reader):
        drop, fix, root = await reader.list_commits("main")
        between = await reader.commits_between(root.sha, drop.sha)
        assert [c.sha for c in between] == [drop.sha, fix.sha]
        assert await reader.commits_between(drop.sha, drop.sha) == []

    async def test_commits_between_without_base(self, reader):
        drop = (await reader.list_commits("main"))[0]
        assert [c.sha for c in await reader.commits_between(None, drop.sha)] == [drop.sha]
        unknown = await reader.commits_between("f" * 40, drop.sha)
        assert [c.sha for c in unknown] == [drop.sha]

    async def test_fetch_picks_up_new_commits(self, reader, upstream):
        (upstream / "app.py").write_text("def main():\n    return 3\n")
        _git(upstream, "commit", "-am", "bump", author="Dave")
        await reader.materialize(str(upstream))
        head = (await reader.list_commits("main", max_count=1))[0]
        assert head.author_name == "Dave"

    async def test_unknown_commit(self, reader):
        with pytest.raises(GitError):
            await reader.get_commit("0" * 40)

    async def test_clone_failure(self, tmp_path):
        r = GitHistoryReader(tmp_path / "missing.git")
        with pytest.raises(GitError, match="git command failed"):
            await r.materialize(str(tmp_path / "does-not-exist"))


def test_parse_numstat_binary():
    out = "3\t1\tsrc/a.py\0-\t-\tlogo.png\0"
    files = _parse_numstat(out)
    assert [(f.path, f.additions, f.deletions) for f in files] == [
        ("src/a.py", 3, 1),
        ("logo.png", 0, 0),
    ]
