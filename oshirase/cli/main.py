"""Oshirase CLI using Typer."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from redis.exceptions import RedisError
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from oshirase import __version__
from oshirase.core.errors import AggregatorError, ConfigError
from oshirase.core.schema import AggregateData
from oshirase.ingestion.config import AggregatorConfig, get_default_config, load_config

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

console = Console()
logger = logging.getLogger(__name__)

app = typer.Typer(
    name="oshirase",
    help="Oshirase - aggregates your AniList lists with airing schedules and latest releases",
    add_completion=False,
)

ConfigOption = typer.Option(
    None, "--config", "-c", help="Path to config.yaml (default: OSHIRASE_CONFIG_PATH or config/config.yaml)"
)


def _setup_logging(verbose: bool = False) -> None:
    """Send log records through rich, keeping HTTP client chatter down."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _load(config_path: Optional[Path]) -> AggregatorConfig:
    """Load configuration or exit with an error."""
    try:
        if config_path is not None:
            return load_config(config_path)
        return get_default_config()
    except ConfigError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _display_result(data: AggregateData) -> None:
    """Display a summary of an aggregator run."""
    owner = data.user.name if data.user else "unknown user"
    table = Table(title=f"Current lists for {owner}")
    table.add_column("List", style="cyan")
    table.add_column("Entries", justify="right")
    table.add_column("Alt titles", justify="right")
    table.add_column("Scheduled", justify="right")
    table.add_column("With latest", justify="right")

    for name, entries in (("anime", data.lists.anime), ("manga", data.lists.manga)):
        table.add_row(
            name,
            str(len(entries)),
            str(sum(1 for m in entries if m.alt_titles)),
            str(sum(1 for m in entries if m.schedule)),
            str(sum(1 for m in entries if m.latest)),
        )

    console.print(table)


async def _run_pipeline(
    config: AggregatorConfig, skip_cache: bool, user_id: Optional[int]
) -> AggregateData:
    from oshirase.db.redis_client import connect
    from oshirase.ingestion.pipeline import create_aggregator

    redis = None
    try:
        redis = await connect(config.redis)
    except (RedisError, OSError) as e:
        logger.warning(f"Redis unavailable, running without cache: {e}")

    try:
        aggregator = create_aggregator(config, redis)
        return await aggregator.run(skip_cache=skip_cache, user_id=user_id)
    finally:
        if redis is not None:
            await redis.aclose()


async def _run_worker(config: AggregatorConfig) -> None:
    from oshirase.ingestion.worker import Worker

    await Worker(config).run()


async def _enqueue(config: AggregatorConfig, token: str) -> int:
    from oshirase.db.redis_client import connect
    from oshirase.ingestion.worker import enqueue_job

    redis = await connect(config.redis)
    try:
        return await enqueue_job(redis, token, key=config.worker.jobs_key)
    finally:
        await redis.aclose()


@app.command()
def run(
    config_path: Optional[Path] = ConfigOption,
    skip_cache: bool = typer.Option(
        False, "--skip-cache", "-s", help="Ignore cached results and refetch every source"
    ),
    print_result: bool = typer.Option(False, "--print", "-p", help="Print the result as JSON"),
    worker_mode: bool = typer.Option(
        False, "--worker-mode", "-w", help="Run as a worker, processing queued jobs"
    ),
    user_id: Optional[int] = typer.Option(
        None, "--user-id", "-u", help="AniList user id (default: owner of the access token)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """
    Run the aggregator once, or start the job worker.

    Examples:
        oshirase run --skip-cache --print
        oshirase run -w -c config/config.yaml
    """
    _setup_logging(verbose)
    config = _load(config_path)

    if worker_mode:
        rprint("[bold]Starting worker...[/bold]")
        rprint("Press Ctrl+C to stop\n")
        try:
            asyncio.run(_run_worker(config))
        except KeyboardInterrupt:
            rprint("\n[dim]Worker stopped[/dim]")
        return

    try:
        with console.status("[bold blue]Aggregating...[/bold blue]"):
            data = asyncio.run(_run_pipeline(config, skip_cache, user_id))
    except AggregatorError as e:
        rprint(f"[red]Error:[/red] Aggregator run failed: {e}")
        raise typer.Exit(1)

    if print_result:
        console.print_json(data.model_dump_json())
    else:
        _display_result(data)


@app.command()
def enqueue(
    config_path: Optional[Path] = ConfigOption,
    token: str = typer.Option("run:all", "--job", "-j", help="Job token to push"),
) -> None:
    """Push a job for a running worker."""
    _setup_logging()
    config = _load(config_path)

    try:
        pending = asyncio.run(_enqueue(config, token))
    except (RedisError, OSError) as e:
        rprint(f"[red]Error:[/red] Failed to enqueue job: {e}")
        rprint("\nMake sure Redis is running.")
        raise typer.Exit(1)

    rprint(f"[green]Job '{token}' enqueued[/green] ({pending} pending)")


@app.command()
def init_db(config_path: Optional[Path] = ConfigOption) -> None:
    """Initialize the database (create collections and unique indexes)."""
    from oshirase.db.engine import create_db_engine
    from oshirase.db.store import DocumentStore

    config = _load(config_path)
    typer.echo("Initializing database...")
    DocumentStore(create_db_engine(config.database.path)).ensure_indexes()
    typer.echo("Database initialized successfully!")


@app.command()
def check_config(config_path: Optional[Path] = ConfigOption) -> None:
    """Check the current configuration status."""
    from oshirase.db.engine import get_database_url
    from oshirase.ingestion.sources import list_sources

    config = _load(config_path)

    typer.echo("Oshirase Configuration")
    typer.echo("=" * 40)

    env_found = next((p for p in _env_paths if p.exists()), None)
    typer.echo(f"  .env file: {env_found or 'Not found'}")
    typer.echo(f"  Config file: {config.config_path or 'Not found (using defaults)'}")
    typer.echo(f"  Database: {get_database_url(config.database.path)}")
    typer.echo(f"  Redis: {config.redis.host}:{config.redis.port}/{config.redis.database}")

    token = "configured" if config.anilist_api.access_token else "not set (ANILIST_ACCESS_TOKEN)"
    typer.echo(f"  AniList token: {token}")
    typer.echo(f"  MangaDex: {'enabled' if config.mangadex_api.enabled else 'disabled'}")
    typer.echo(f"  Similarity threshold: {config.transform.similarity_threshold}")
    typer.echo(f"  Sources: {', '.join(list_sources())}")


@app.command()
def version() -> None:
    """Show the Oshirase version."""
    typer.echo(f"Oshirase v{__version__}")


if __name__ == "__main__":
    app()
