"""Jyoti CLI entry point.

Provides command-line interface for running the Guru gateway, ingesting
knowledge documents and inspecting configuration.
"""

from __future__ import annotations

import asyncio
import importlib.metadata
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from typing_extensions import Annotated

from jyoti import __version__
from jyoti.config import JyotiConfig, get_config
from jyoti.exceptions import InvalidModeError
from jyoti.models import KnowledgeMode

if TYPE_CHECKING:
    from jyoti.ingestion import IngestionReport

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create CLI app
app = typer.Typer(
    name="jyoti",
    help="Jyoti - Retrieval-augmented spiritual guidance gateway",
    add_completion=False,
)


def _load_config(config: str) -> JyotiConfig:
    if config and not Path(config).exists():
        typer.echo(f"❌ Configuration file not found: {config}", err=True)
        raise typer.Exit(code=1)
    return get_config(config or None)


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", "-h", help="Host to bind to")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Port to bind to")] = None,
    profile: Annotated[
        str | None, typer.Option("--profile", "-P", help="Deployment profile (lite|standard)")
    ] = None,
    config: Annotated[
        str, typer.Option("--config", "-c", help="Path to configuration file")
    ] = "",
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable verbose output")
    ] = False,
) -> None:
    """Start the Guru HTTP gateway.

    PROFILES:
        lite: In-memory admission state, zero external services
        standard: Redis admission state shared across workers

    Examples:
        # Start in lite profile (default)
        jyoti serve

        # Start in standard profile on all interfaces
        jyoti serve --profile standard --host 0.0.0.0

        # Start with custom config file
        jyoti serve --config /path/to/jyoti.yaml
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    from jyoti.profiles import list_profiles

    settings = _load_config(config)
    updates: dict[str, object] = {}
    if profile:
        if profile.lower() not in list_profiles():
            typer.echo(f"❌ Invalid profile: {profile}", err=True)
            typer.echo(f"   Valid profiles: {', '.join(list_profiles())}", err=True)
            raise typer.Exit(code=1)
        updates["profile"] = profile.lower()
    if host:
        updates["api_host"] = host
    if port:
        updates["api_port"] = port
    if updates:
        settings = settings.model_copy(update=updates)

    import uvicorn

    from jyoti.api import create_app
    from jyoti.main import GuruApplication

    logger.info(
        f"Starting Jyoti gateway in {settings.profile} profile on {settings.api_host}:{settings.api_port}"
    )
    uvicorn.run(
        create_app(GuruApplication(settings)),
        host=settings.api_host,
        port=settings.api_port,
        log_level="debug" if verbose or settings.debug else "info",
    )


@app.command()
def ingest(
    source_dir: Annotated[Path, typer.Argument(help="Directory with .md, .txt and .json files")],
    mode: Annotated[
        str | None, typer.Option("--mode", "-m", help="Force one knowledge mode for every file")
    ] = None,
    database: Annotated[
        str | None, typer.Option("--database", "-d", help="DuckDB database path")
    ] = None,
    config: Annotated[
        str, typer.Option("--config", "-c", help="Path to configuration file")
    ] = "",
) -> None:
    """Embed knowledge documents and store them for retrieval.

    Examples:
        # Ingest with per-file mode detection
        jyoti ingest rag_sources/guru --database data/knowledge.duckdb

        # Force every file into the remedy mode
        jyoti ingest rag_sources/remedies --mode remedy
    """
    if not source_dir.is_dir():
        typer.echo(f"❌ Source directory not found: {source_dir}", err=True)
        raise typer.Exit(code=1)

    forced_mode = None
    if mode:
        try:
            forced_mode = KnowledgeMode.parse(mode)
        except InvalidModeError as e:
            typer.echo(f"❌ {e.message}", err=True)
            raise typer.Exit(code=1)

    settings = _load_config(config)
    database_path = database or settings.store.database_path
    if database_path == ":memory:":
        typer.echo("⚠️  Ingesting into an in-memory database; chunks are lost on exit", err=True)

    report = asyncio.run(_run_ingestion(settings, source_dir, forced_mode, database_path))

    typer.echo(f"Files: {report.files_processed}/{report.files_found} processed")
    if report.files_failed:
        typer.echo(f"Failed files: {', '.join(report.files_failed)}")
    typer.echo(f"Chunks: {report.chunks_stored} stored of {report.chunks_generated} generated")
    for mode_name, count in sorted(report.chunks_by_mode.items()):
        typer.echo(f"  - {mode_name}: {count}")
    if report.batches_failed:
        typer.echo(f"⚠️  {report.batches_failed} batch(es) failed", err=True)
        raise typer.Exit(code=1)


async def _run_ingestion(
    settings: JyotiConfig,
    source_dir: Path,
    mode: KnowledgeMode | None,
    database_path: str,
) -> IngestionReport:
    from jyoti.ingestion import KnowledgeIngester
    from jyoti.retrieval import KnowledgeStore, get_embedding_provider

    store = KnowledgeStore(database_path, dimension=settings.embedding.dimension)
    embedder = get_embedding_provider(settings.embedding)
    await store.initialize()
    try:
        return await KnowledgeIngester(embedder, store).ingest(source_dir, mode)
    finally:
        await embedder.close()
        await store.close()


@app.command()
def modes() -> None:
    """List knowledge modes chunks and queries can belong to."""
    typer.echo("Knowledge modes:")
    for knowledge_mode in KnowledgeMode:
        typer.echo(f"  - {knowledge_mode.value}")


@app.command()
def profiles() -> None:
    """List available deployment profiles."""
    from jyoti.config import StoreConfig
    from jyoti.profiles import get_profile, list_profiles

    typer.echo("Available deployment profiles:")
    typer.echo("")
    for profile_name in list_profiles():
        profile = get_profile(profile_name, StoreConfig())
        typer.echo(f"  {profile_name}")
        typer.echo(f"    {profile.profile_config.description}")
        typer.echo(f"    External services: {profile.requires_external_services}")
        typer.echo("")


@app.command()
def version() -> None:
    """Show Jyoti version information."""
    try:
        ver = importlib.metadata.version("jyoti-guru")
    except importlib.metadata.PackageNotFoundError:
        ver = __version__
    typer.echo(f"Jyoti version: {ver}")


@app.command()
def info() -> None:
    """Show gateway information and the effective configuration."""
    settings = get_config()
    typer.echo("Jyoti - Retrieval-augmented spiritual guidance gateway")
    typer.echo("")
    typer.echo(f"Profile: {settings.profile}")
    typer.echo(f"Environment: {settings.environment}")
    typer.echo(f"Embeddings: {settings.embedding.provider} ({settings.embedding.model_name})")
    typer.echo(f"Generation: {settings.generation.provider} ({settings.generation.model_name})")
    typer.echo(f"Retrieval: {'enabled' if settings.retrieval.enabled else 'disabled'}")
    chat = settings.scope_limit("chat")
    typer.echo(f"Chat rate limit: {chat.limit} requests / {chat.window_seconds:g}s")
    typer.echo(f"Stream deadline: {settings.streaming.deadline_seconds:g}s")


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
