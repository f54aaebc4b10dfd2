"""Git history reader: commits, diffs and blobs from a local bare clone."""

from codeatlas.engines.git_reader.graph import assign_generations
from codeatlas.engines.git_reader.models import BranchInfo, ChangedFile, CommitInfo
from codeatlas.engines.git_reader.reader import GitError, GitHistoryReader

__all__ = [
    "BranchInfo",
    "ChangedFile",
    "CommitInfo",
    "GitError",
    "GitHistoryReader",
    "assign_generations",
]
