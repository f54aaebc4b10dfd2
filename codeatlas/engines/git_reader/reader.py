"""Read commit history from a local bare clone by shelling out to ``git``."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import structlog

from codeatlas.engines.git_reader.models import BranchInfo, ChangedFile, CommitInfo

log = structlog.get_logger("codeatlas.engine")

# unit / record separators keep commit messages with newlines parseable
_FIELD = "\x1f"
_RECORD = "\x1e"
_LOG_FORMAT = "%H%x1f%P%x1f%an%x1f%ae%x1f%cI%x1f%B%x1e"


class GitError(RuntimeError):
    """A git command exited non-zero."""


class GitHistoryReader:
    """Async access to one repository's history.

    The clone lives at *path* and is bare: nothing is ever checked out, file
    contents are read straight from the object database.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    # ── clone lifecycle ───────────────────────────────────────────────────

    async def materialize(self, clone_url: str) -> None:
        """Create the bare clone, or refresh it when it already exists."""
        if (self._path / "HEAD").exists():
            await self.fetch()
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        log.info("git.clone", url=clone_url, path=str(self._path))
        await _run(["git", "clone", "--bare", "--", clone_url, str(self._path)])

    async def fetch(self) -> None:
        """Mirror every remote branch onto the local heads, pruning deleted ones."""
        await self._git("fetch", "--prune", "origin", "+refs/heads/*:refs/heads/*")

    # ── refs ──────────────────────────────────────────────────────────────

    async def list_branches(self) -> list[BranchInfo]:
        out = await self._git(
            "for-each-ref", "--format=%(refname:short)%1f%(objectname)", "refs/heads"
        )
        branches = []
        for line in out.splitlines():
            if not line:
                continue
            name, sha = line.split(_FIELD, 1)
            branches.append(BranchInfo(name=name, head_sha=sha))
        return branches

    async def default_branch(self) -> str:
        return (await self._git("symbolic-ref", "--short", "HEAD")).strip()

    async def head_sha(self, branch: str) -> str:
        return (await self._git("rev-parse", f"refs/heads/{branch}")).strip()

    # ── commits ───────────────────────────────────────────────────────────

    async def list_commits(self, branch: str, max_count: int | None = None) -> list[CommitInfo]:
        """Commits reachable from *branch*, newest first."""
        args = ["log", f"--format={_LOG_FORMAT}"]
        if max_count is not None:
            args.append(f"--max-count={max_count}")
        args.append(f"refs/heads/{branch}")
        return _parse_log(await self._git(*args))

    async def commits_between(self, base: str | None, head: str) -> list[CommitInfo]:
        """Commits reachable from *head* but not from *base*, newest first.

        With no *base* (or a base the clone no longer knows) only *head*
        itself is returned.
        """
        if base:
            try:
                out = await self._git("log", f"--format={_LOG_FORMAT}", f"{base}..{head}")
                return _parse_log(out)
            except GitError:
                log.warning("git.unknown_base", base=base, head=head)
        return [await self.get_commit(head)]

    async def get_commit(self, sha: str) -> CommitInfo:
        commits = _parse_log(await self._git("log", "-1", f"--format={_LOG_FORMAT}", sha))
        if not commits:
            raise GitError(f"commit not found: {sha}")
        return commits[0]

    async def changed_files(self, commit: CommitInfo) -> list[ChangedFile]:
        """Paths touched by *commit* with line stats; a root commit lists every blob."""
        args = ["diff-tree", "-r", "--numstat", "--no-renames", "--no-commit-id", "-z"]
        if commit.is_root:
            args += ["--root", commit.sha]
        else:
            args += [commit.parents[0], commit.sha]
        return _parse_numstat(await self._git(*args))

    async def line_stats(self, commit: CommitInfo, path: str) -> tuple[int, int]:
        """``(additions, deletions)`` of *path* in *commit*; ``(0, 0)`` if untouched."""
        for changed in await self.changed_files(commit):
            if changed.path == path:
                return changed.additions, changed.deletions
        return 0, 0

    async def file_content(self, sha: str, path: str) -> str | None:
        """Text of *path* at revision *sha*.

        Returns None when the path does not exist at that revision (deleted)
        or the blob is binary.
        """
        rc, out, _ = await _exec(
            ["git", "-C", str(self._path), "cat-file", "blob", f"{sha}:{path}"]
        )
        if rc != 0 or b"\0" in out:
            return None
        return out.decode("utf-8", errors="replace")

    async def _git(self, *args: str) -> str:
        return await _run(["git", "-C", str(self._path), *args])


def _parse_log(out: str) -> list[CommitInfo]:
    commits = []
    for record in out.split(_RECORD):
        record = record.strip("\n")
        if not record:
            continue
        sha, parents, name, email, date, message = record.split(_FIELD, 5)
        commits.append(
            CommitInfo(
                sha=sha,
                parents=tuple(parents.split()),
                author_name=name,
                author_email=email,
                committed_at=datetime.fromisoformat(date),
                message=message.strip(),
            )
        )
    return commits


def _parse_numstat(out: str) -> list[ChangedFile]:
    """Parse ``--numstat -z`` output: ``adds\\tdels\\tpath\\0`` per entry."""
    files = []
    for entry in out.split("\0"):
        if not entry:
            continue
        adds, dels, path = entry.split("\t", 2)
        # binary files report "-" for both counts
        files.append(
            ChangedFile(
                path=path,
                additions=int(adds) if adds != "-" else 0,
                deletions=int(dels) if dels != "-" else 0,
            )
        )
    return files


async def _exec(cmd: list[str]) -> tuple[int, bytes, bytes]:
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    return proc.returncode, stdout, stderr


async def _run(cmd: list[str]) -> str:
    """Run a git command and return its stdout, raising GitError on failure."""
    rc, stdout, stderr = await _exec(cmd)
    if rc != 0:
        raise GitError(f"git command failed (exit {rc}): {stderr.decode().strip()}")
    return stdout.decode("utf-8", errors="replace")
