"""CLI entry point: codeatlas.

Subcommands:
    codeatlas init-db                  # Create ENUM types and tables
    codeatlas serve                    # API + background loops
    codeatlas worker                   # Background loops only
    codeatlas analyze OWNER REPO       # One full analysis in the foreground
    codeatlas recompute-scores [--repository-id ID]
"""

from __future__ import annotations

import asyncio
import json
import os
import uuid
from dataclasses import asdict

import click
import structlog

from codeatlas.core.logging import setup_logging

log = structlog.get_logger("codeatlas.cli")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """CodeAtlas: semantic ownership, conflict risk and replacement analysis for git history."""
    if verbose:
        os.environ["CODEATLAS_LOG_LEVEL"] = "DEBUG"
    setup_logging()


@main.command("init-db")
@click.option("--database-url", default=None, help="Overrides CODEATLAS_DATABASE_URL")
def init_db(database_url: str | None) -> None:
    """Create the database schema."""
    from sqlalchemy.ext.asyncio import create_async_engine

    from codeatlas.core.config import Settings
    from codeatlas.core.database import create_schema

    url = database_url or Settings.from_env().database_url

    async def _run() -> None:
        engine = create_async_engine(url)
        try:
            await create_schema(engine)
        finally:
            await engine.dispose()

    asyncio.run(_run())
    click.echo("schema ready")


@main.command("serve")
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the REST API (the background loops start with it)."""
    import uvicorn

    uvicorn.run("codeatlas.api:create_app", factory=True, host=host, port=port, log_config=None)


@main.command("worker")
def worker() -> None:
    """Drain the webhook queue and refresh scores until interrupted."""
    from codeatlas.api import deps
    from codeatlas.scheduler import create_scheduler

    async def _run() -> None:
        factory = deps.init_runtime()
        runner = deps.get_incremental_runner()
        await runner.recover(factory)
        scheduler = create_scheduler(
            factory,
            incremental_runner=runner,
            negative_score_runner=deps.get_negative_score_runner(),
            config=deps.get_settings().scheduler,
        )
        await scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()
            await deps.dispose_runtime()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        click.echo("worker stopped")


@main.command("analyze")
@click.argument("owner")
@click.argument("repo")
def analyze(owner: str, repo: str) -> None:
    """Register OWNER/REPO (if new) and run a full analysis in the foreground."""
    from codeatlas.api import deps
    from codeatlas.engines.ingestion.errors import PipelineError
    from codeatlas.services import ServiceError

    async def _run() -> dict:
        deps.init_runtime()
        try:
            result = await deps.get_orchestrator().analyze_repository(owner, repo)
        finally:
            await deps.dispose_runtime()
        data = asdict(result)
        data["repository_id"] = str(result.repository_id)
        return data

    try:
        data = asyncio.run(_run())
    except (PipelineError, ServiceError) as exc:
        click.echo(f"analysis failed: {exc}", err=True)
        raise SystemExit(1) from exc
    click.echo(json.dumps(data, indent=2, default=str))


@main.command("recompute-scores")
@click.option("--repository-id", type=click.UUID, default=None, help="Only this repository")
def recompute_scores(repository_id: uuid.UUID | None) -> None:
    """Recompute contributor negative scores."""
    from codeatlas.api import deps

    async def _run() -> int:
        factory = deps.init_runtime(with_ingestion=False)
        runner = deps.get_negative_score_runner()
        try:
            if repository_id is None:
                return await runner.run_batch(factory)
            async with factory() as session:
                async with session.begin():
                    scores = await runner.calculate_negative_scores_for_repository(
                        session, repository_id
                    )
            return len(scores)
        finally:
            await deps.dispose_runtime()

    count = asyncio.run(_run())
    click.echo(f"recomputed: {count}")


if __name__ == "__main__":
    main()
