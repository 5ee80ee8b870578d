"""Operator commands for the AI cache.

Runs directly against the configured database:

    helm-cache-admin stats
    helm-cache-admin prune-expired
    helm-cache-admin invalidate-version classification 1.0.0
    helm-cache-admin invalidate-team <team-id>
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

import typer

from helm_campaign.core.database import create_engine_from_settings, create_session_maker
from helm_campaign.core.exceptions import AppError
from helm_campaign.models import CacheType
from helm_campaign.repositories.sql_storage import SQLAlchemyStorage
from helm_campaign.repositories.storage import Storage
from helm_campaign.services.ai.ai_cache import AICache
from helm_campaign.services.ai.factory import create_ai_cache
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

app = typer.Typer(help="AI cache administration", no_args_is_help=True)


@asynccontextmanager
async def open_storage() -> AsyncIterator[Storage]:
    engine = create_engine_from_settings()
    try:
        yield SQLAlchemyStorage(create_session_maker(engine))
    finally:
        await engine.dispose()


def _run(action: Callable[[AICache], Awaitable[T]]) -> T:
    async def _with_cache() -> T:
        async with open_storage() as storage:
            return await action(create_ai_cache(storage))

    try:
        return asyncio.run(_with_cache())
    except AppError as e:
        LOGGER.error(f"AI cache command failed: {e}", exc_info=True)
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def stats():
    """Show cache statistics."""
    cache_stats = _run(lambda cache: cache.get_stats())

    typer.echo("=== AI Cache Statistics ===")
    typer.echo(f"Total entries:       {cache_stats.total_entries}")
    for cache_type in CacheType:
        typer.echo(f"  {cache_type.value + ':':<18} {cache_stats.entries_by_type.get(cache_type.value, 0)}")
    typer.echo(f"Total cache hits:    {cache_stats.total_hits}")
    typer.echo(f"Expiring soon:       {cache_stats.entries_expiring_soon}")
    if cache_stats.oldest_entry:
        typer.echo(f"Oldest entry:        {cache_stats.oldest_entry.isoformat()}")
    if cache_stats.newest_entry:
        typer.echo(f"Newest entry:        {cache_stats.newest_entry.isoformat()}")


@app.command("prune-expired")
def prune_expired():
    """Delete all expired cache entries."""
    count = _run(lambda cache: cache.prune_expired())
    typer.echo(f"Deleted {count} expired entries.")


@app.command("invalidate-version")
def invalidate_version(
    cache_type: CacheType = typer.Argument(..., help="classification or relationship"),
    version: str = typer.Argument(..., help="Algorithm version to drop, e.g. 1.0.0"),
):
    """Delete entries computed by one algorithm version."""
    count = _run(lambda cache: cache.invalidate_by_version(cache_type, version))
    typer.echo(f"Deleted {count} {cache_type.value} entries with version {version}.")


@app.command("invalidate-team")
def invalidate_team(team_id: str = typer.Argument(..., help="Team whose entries are dropped")):
    """Delete every cache entry of a team."""
    count = _run(lambda cache: cache.invalidate_by_team(team_id))
    typer.echo(f"Deleted {count} entries for team {team_id}.")


if __name__ == "__main__":
    app()
