"""Scheduler: background loops draining the webhook queue and refreshing scores."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codeatlas.core.config import SchedulerConfig
from codeatlas.engines.incremental.runner import IncrementalRunner
from codeatlas.engines.negative_score.runner import NegativeScoreRunner

logger = structlog.get_logger(__name__)


class EngineLoop:
    """Single engine scheduling loop with trigger/timeout wake mechanism."""

    def __init__(
        self,
        name: str,
        run_fn: Callable[[], Awaitable[int]],
        interval: float,
        downstream: asyncio.Event | None = None,
    ) -> None:
        self.name = name
        self.run_fn = run_fn
        self.interval = interval
        self.trigger = asyncio.Event()
        self.downstream = downstream

    async def loop(self) -> None:
        """Run the engine in an infinite loop, waking on trigger or timeout."""
        while True:
            try:
                await asyncio.wait_for(self.trigger.wait(), timeout=self.interval)
                self.trigger.clear()
            except asyncio.TimeoutError:
                pass

            await self.run_once()

    async def run_once(self) -> int:
        """One cycle; errors are logged and the loop keeps going."""
        try:
            processed = await self.run_fn()
        except Exception:
            logger.exception("engine.error", engine=self.name)
            return 0
        if processed:
            logger.info("engine.cycle", engine=self.name, processed=processed)
        if processed > 0 and self.downstream is not None:
            self.downstream.set()
        return processed


class Scheduler:
    """Manages lifecycle of all EngineLoop tasks."""

    def __init__(self, loops: list[EngineLoop]) -> None:
        self._loops = loops
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def loops(self) -> list[EngineLoop]:
        return list(self._loops)

    async def start(self) -> None:
        """Start all engine loops as asyncio tasks."""
        self._tasks = [
            asyncio.create_task(loop.loop(), name=f"engine-{loop.name}") for loop in self._loops
        ]
        # Kick off the first engine immediately
        if self._loops:
            self._loops[0].trigger.set()
        logger.info("scheduler.started", engines=[loop.name for loop in self._loops])

    async def stop(self) -> None:
        """Cancel all engine loops and wait for them to exit."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("scheduler.stopped")


def create_scheduler(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    incremental_runner: IncrementalRunner,
    negative_score_runner: NegativeScoreRunner,
    config: SchedulerConfig | None = None,
) -> Scheduler:
    """Queue drain first; every drained batch wakes the negative-score recompute."""
    config = config or SchedulerConfig()

    trigger_scores = asyncio.Event()

    async def _drain_queue() -> int:
        return await incremental_runner.run_batch(session_factory)

    async def _recompute_scores() -> int:
        return await negative_score_runner.run_batch(session_factory)

    score_loop = EngineLoop("negative_score", _recompute_scores, config.negative_score_interval)
    score_loop.trigger = trigger_scores

    incremental_loop = EngineLoop(
        "incremental", _drain_queue, config.incremental_interval, downstream=trigger_scores
    )

    return Scheduler([incremental_loop, score_loop])
