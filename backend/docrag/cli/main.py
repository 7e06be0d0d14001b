"""CLI entrypoint for docrag."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Optional

import typer

from docrag.app import build_embedder, build_orchestrator, build_vector_index
from docrag.core.config import ConfigurationError, Settings, get_settings
from docrag.core.logging import configure_logging, get_logger
from docrag.core.metrics import write_metrics
from docrag.db.sqlite import SQLiteDatabase
from docrag.ingest.pipeline import IngestError
from docrag.ingest.state_store import StateStore
from docrag.ingest.types import IngestResult

app = typer.Typer(name="docrag", help="Documentation ingestion for retrieval-augmented answers")

logger = get_logger(__name__)

ConfigOption = typer.Option(None, "--config", "-c", help="YAML config file")
DocsOption = typer.Option(None, "--docs", help="Override the docs directory")


def _load_settings(config: Optional[Path], docs: Optional[Path] = None) -> Settings:
    try:
        settings = Settings.from_yaml(config) if config is not None else get_settings()
        if docs is not None:
            settings = settings.model_copy(update={"docs_path": docs.expanduser()})
    except (ConfigurationError, ValueError) as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=2)
    configure_logging(settings.log_level, use_json=settings.log_json)
    logger.debug("Settings loaded", extra={"ctx_docs_path": str(settings.docs_path), "ctx_collection": settings.qdrant_collection})
    return settings


def _print_summary(result: IngestResult, duration: float) -> None:
    typer.echo("")
    typer.echo("Ingestion summary")
    typer.echo(f"  Files scanned:   {result.files_scanned:>6}")
    typer.echo(f"  Files updated:   {result.files_updated:>6}")
    typer.echo(f"  Files deleted:   {result.files_deleted:>6}")
    typer.echo(f"  Chunks upserted: {result.chunks_upserted:>6}")
    typer.echo(f"  Chunks deleted:  {result.chunks_deleted:>6}")
    typer.echo(f"  Duration:        {duration:>6.2f}s")
    if result.errors:
        typer.echo(f"  Errors: {len(result.errors)}")
        for error in result.errors:
            typer.echo(f"    - {error}")
    else:
        typer.echo("  No errors")


def _run_ingest(settings: Settings, full: bool, as_json: bool) -> None:
    typer.echo(f"Mode: {'FULL REBUILD' if full else 'INCREMENTAL'}")
    started = time.perf_counter()
    try:
        orchestrator = build_orchestrator(settings)
    except ConfigurationError as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=2)

    aborted = False
    try:
        result = orchestrator.ingest_full() if full else orchestrator.ingest_incremental()
    except IngestError as exc:
        result = exc.result
        aborted = True
    duration = time.perf_counter() - started

    if as_json:
        payload = result.to_dict()
        payload["duration_seconds"] = round(duration, 3)
        payload["aborted"] = aborted
        typer.echo(json.dumps(payload, indent=2))
    else:
        _print_summary(result, duration)

    if settings.metrics_textfile is not None:
        write_metrics(settings.metrics_textfile)

    if aborted or result.errors:
        raise typer.Exit(code=1)


@app.command()
def ingest(
    full: bool = typer.Option(False, "--full", "-f", help="Drop and rebuild the whole index"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    config: Optional[Path] = ConfigOption,
    docs: Optional[Path] = DocsOption,
) -> None:
    """Index changed docs (or everything with --full)."""
    _run_ingest(_load_settings(config, docs), full=full, as_json=as_json)


@app.command()
def rebuild(
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    config: Optional[Path] = ConfigOption,
    docs: Optional[Path] = DocsOption,
) -> None:
    """Drop the vector collection and ledger, then index every doc."""
    _run_ingest(_load_settings(config, docs), full=True, as_json=as_json)


@app.command()
def inspect(
    limit: int = typer.Option(5, "--limit", help="Number of points to show"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Show collection size, vector configuration and a few stored points."""
    settings = _load_settings(config)
    index = build_vector_index(settings)
    info = index.info()
    if info is None:
        typer.echo(f"Collection {settings.qdrant_collection} does not exist")
        return

    typer.echo(f"Collection: {settings.qdrant_collection}")
    typer.echo(f"Points: {info.points_count}")
    typer.echo(f"Vector size: {info.vector_size or 'unknown'}")
    typer.echo(f"Distance: {info.distance or 'unknown'}")
    for point in index.scroll(limit=limit):
        content = str(point.payload.get("content", ""))
        typer.echo(f"- ID: {point.id}")
        typer.echo(f"  Vector length: {len(point.vector)}")
        typer.echo(f"  Payload keys: {', '.join(sorted(point.payload))}")
        typer.echo(f"  Content preview: {content[:100]!r}")


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    k: int = typer.Option(6, "--k", help="Number of results to return"),
    category: Optional[str] = typer.Option(None, "--category", help="Restrict to one doc category"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Embed a query and list the closest chunks."""
    settings = _load_settings(config)
    try:
        embedder = build_embedder(settings)
    except ConfigurationError as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=2)
    index = build_vector_index(settings)
    if not index.exists():
        typer.echo(f"Collection {settings.qdrant_collection} does not exist")
        raise typer.Exit(code=1)
    vector = embedder.embed([query])[0]
    results = index.search(vector, top_k=k, payload_filter={"doc_category": category} if category else None)
    if not results:
        typer.echo("No results")
        return
    for hit in results:
        payload = hit.payload
        typer.echo(
            f"{hit.score:.4f}  {payload.get('doc_title')} / {payload.get('section_title')}  {payload.get('url_path')}"
        )


@app.command()
def status(config: Optional[Path] = ConfigOption) -> None:
    """Report vector index health and ledger counts as JSON."""
    settings = _load_settings(config)
    index = build_vector_index(settings)
    healthy = index.health()
    info = index.info() if healthy else None

    ledger: dict[str, object] = {"path": str(settings.state_db_path), "exists": settings.state_db_path.exists()}
    if settings.state_db_path.exists():
        store = StateStore(SQLiteDatabase(settings.state_db_path, read_only=True))
        try:
            files, chunks = store.counts()
        finally:
            store.close()
        ledger.update({"files": files, "chunk_ids": chunks})

    payload = {
        "vector_index": {
            "healthy": healthy,
            "collection": settings.qdrant_collection,
            "exists": info is not None,
            "points": info.points_count if info else 0,
            "vector_size": info.vector_size if info else None,
        },
        "ledger": ledger,
    }
    typer.echo(json.dumps(payload, indent=2))
    if not healthy:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
