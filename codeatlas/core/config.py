"""Runtime configuration read from ``CODEATLAS_*`` environment variables.

Every analytic threshold lives in :class:`AnalysisConfig` with a documented
default; none of the engines hard-code them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Literal

OverlapMode = Literal["changed", "union"]


def _env_str(key: str, default: str) -> str:
    return os.environ.get(key, default)


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(key, default))


@dataclass(frozen=True)
class AnalysisConfig:
    """Tunable thresholds of the three analytics engines.

    Defaults:
        low_similarity_threshold = 0.7   cosine below this is a semantic rewrite
        replacement_window        = 60 d  max gap between original and rewrite
        fix_signal_boost          = 1.5   "fix"/"bug"/"hotfix"/... in the message
        revert_signal_boost       = 2.0   "revert"/"rollback"/"undo" in the message
        exclude_refactor_commits  = True  cleanup/refactor rewrites are not events
        structural_overlap_mode   = "changed"  |A∩B| / |changed|  ("union" = Jaccard)
        structural_weight         = 0.4   semantic weight is 1 - structural_weight
        block_threshold           = 0.8   commit status turns red at or above this
    """

    low_similarity_threshold: float = 0.7
    replacement_window: timedelta = timedelta(days=60)
    fix_signal_boost: float = 1.5
    revert_signal_boost: float = 2.0
    exclude_refactor_commits: bool = True
    structural_overlap_mode: OverlapMode = "changed"
    structural_weight: float = 0.4
    block_threshold: float = 0.8

    def __post_init__(self) -> None:
        if not 0.0 <= self.low_similarity_threshold <= 1.0:
            raise ValueError("low_similarity_threshold must be within [0, 1]")
        if self.replacement_window <= timedelta(0):
            raise ValueError("replacement_window must be positive")
        if self.fix_signal_boost < 1.0 or self.revert_signal_boost < 1.0:
            raise ValueError("message signal boosts must be >= 1.0")
        if self.structural_overlap_mode not in ("changed", "union"):
            raise ValueError(
                f"unknown structural overlap mode: {self.structural_overlap_mode!r}"
            )
        if not 0.0 <= self.structural_weight <= 1.0:
            raise ValueError("structural_weight must be within [0, 1]")
        if not 0.0 <= self.block_threshold <= 1.0:
            raise ValueError("block_threshold must be within [0, 1]")

    @property
    def semantic_weight(self) -> float:
        return 1.0 - self.structural_weight

    @classmethod
    def from_env(cls) -> AnalysisConfig:
        return cls(
            low_similarity_threshold=_env_float("CODEATLAS_LOW_SIMILARITY_THRESHOLD", 0.7),
            replacement_window=timedelta(days=_env_float("CODEATLAS_REPLACEMENT_WINDOW_DAYS", 60)),
            fix_signal_boost=_env_float("CODEATLAS_FIX_SIGNAL_BOOST", 1.5),
            revert_signal_boost=_env_float("CODEATLAS_REVERT_SIGNAL_BOOST", 2.0),
            exclude_refactor_commits=_env_str("CODEATLAS_EXCLUDE_REFACTOR_COMMITS", "1") != "0",
            structural_overlap_mode=_env_str(  # type: ignore[arg-type]
                "CODEATLAS_STRUCTURAL_OVERLAP_MODE", "changed"
            ),
            structural_weight=_env_float("CODEATLAS_RISK_STRUCTURAL_WEIGHT", 0.4),
            block_threshold=_env_float("CODEATLAS_RISK_BLOCK_THRESHOLD", 0.8),
        )


@dataclass(frozen=True)
class RemoteCallConfig:
    """Bounds applied to every parser / embedder round-trip."""

    concurrency: int = 8
    timeout: float = 30.0
    attempts: int = 3
    base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    @classmethod
    def from_env(cls) -> RemoteCallConfig:
        return cls(
            concurrency=_env_int("CODEATLAS_REMOTE_CONCURRENCY", 8),
            timeout=_env_float("CODEATLAS_REMOTE_TIMEOUT", 30.0),
            attempts=_env_int("CODEATLAS_REMOTE_RETRIES", 3),
            base_delay=_env_float("CODEATLAS_REMOTE_RETRY_DELAY", 1.0),
        )


@dataclass(frozen=True)
class QueueConfig:
    """Webhook queue retry bookkeeping."""

    max_retries: int = 5
    retry_delay: float = 30.0
    batch_size: int = 10
    stale_after: timedelta = field(default=timedelta(minutes=30))

    @classmethod
    def from_env(cls) -> QueueConfig:
        return cls(
            max_retries=_env_int("CODEATLAS_QUEUE_MAX_RETRIES", 5),
            retry_delay=_env_float("CODEATLAS_QUEUE_RETRY_DELAY", 30.0),
            batch_size=_env_int("CODEATLAS_QUEUE_BATCH_SIZE", 10),
            stale_after=timedelta(minutes=_env_float("CODEATLAS_QUEUE_STALE_MINUTES", 30)),
        )


@dataclass(frozen=True)
class SchedulerConfig:
    """Wake-up intervals (seconds) of the background loops."""

    incremental_interval: float = 5.0
    negative_score_interval: float = 3600.0

    def __post_init__(self) -> None:
        if self.incremental_interval <= 0 or self.negative_score_interval <= 0:
            raise ValueError("scheduler intervals must be positive")

    @classmethod
    def from_env(cls) -> SchedulerConfig:
        return cls(
            incremental_interval=_env_float("CODEATLAS_INCREMENTAL_INTERVAL", 5.0),
            negative_score_interval=_env_float("CODEATLAS_NEGATIVE_SCORE_INTERVAL", 3600.0),
        )


@dataclass(frozen=True)
class Settings:
    """Process-wide settings (service endpoints, paths, secrets)."""

    database_url: str
    clone_base_path: Path
    parser_url: str
    embedding_api_key: str | None
    embedding_dim: int
    webhook_url: str | None
    webhook_secret: str
    github_token: str | None
    analysis: AnalysisConfig
    remote: RemoteCallConfig
    queue: QueueConfig
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            database_url=_env_str(
                "CODEATLAS_DATABASE_URL", "postgresql+asyncpg://localhost/codeatlas"
            ),
            clone_base_path=Path(_env_str("CODEATLAS_CLONE_BASE_PATH", "./repos")),
            parser_url=_env_str("CODEATLAS_PARSER_URL", "http://localhost:3002"),
            embedding_api_key=os.environ.get("CODEATLAS_EMBEDDING_API_KEY")
            or os.environ.get("GEMINI_API_KEY"),
            embedding_dim=_env_int("CODEATLAS_EMBEDDING_DIM", 768),
            webhook_url=os.environ.get("CODEATLAS_WEBHOOK_URL"),
            webhook_secret=_env_str("CODEATLAS_WEBHOOK_SECRET", ""),
            github_token=os.environ.get("GITHUB_TOKEN"),
            analysis=AnalysisConfig.from_env(),
            remote=RemoteCallConfig.from_env(),
            queue=QueueConfig.from_env(),
            scheduler=SchedulerConfig.from_env(),
        )
