"""SQLAlchemy ORM models: one file per table."""

from codeatlas.models.branch import Branch, CommitBranch
from codeatlas.models.code_embedding import FILE_UNIT, CodeEmbedding
from codeatlas.models.commit import Commit
from codeatlas.models.dependency import Dependency
from codeatlas.models.file_change import FileChange
from codeatlas.models.file_ownership import FileOwnership
from codeatlas.models.negative_score import CodeReplacementEvent, ContributorNegativeScore
from codeatlas.models.pull_request import PrFileChanged, PullRequest
from codeatlas.models.repository import Repository
from codeatlas.models.repository_file import RepositoryFile
from codeatlas.models.webhook_queue_item import QueueItemStatus, WebhookQueueItem

__all__ = [
    "FILE_UNIT",
    "Repository",
    "Branch",
    "CommitBranch",
    "Commit",
    "RepositoryFile",
    "FileChange",
    "CodeEmbedding",
    "Dependency",
    "FileOwnership",
    "PullRequest",
    "PrFileChanged",
    "ContributorNegativeScore",
    "CodeReplacementEvent",
    "QueueItemStatus",
    "WebhookQueueItem",
]
