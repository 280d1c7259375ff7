"""CLI interface for notegraph: thin wrapper over NotegraphService."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import click

from notegraph.api.service import NotegraphService
from notegraph.core.config import load_settings
from notegraph.core.exceptions import NotegraphError
from notegraph.core.models import SearchResult
from notegraph.utils.logging import setup_logging


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """notegraph: search your note archive through its tag graph."""
    setup_logging(verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@contextmanager
def _service() -> Iterator[NotegraphService]:
    try:
        service = NotegraphService(settings=load_settings())
    except NotegraphError as exc:
        raise click.ClickException(str(exc)) from exc
    try:
        yield service
    except NotegraphError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        service.close()


def _print_results(results: list[SearchResult]) -> None:
    if not results:
        click.echo("No results found.")
        return

    for i, r in enumerate(results, 1):
        click.echo(f"\n{'─' * 60}")
        created = r.created_at.date().isoformat() if r.created_at else "?"
        click.echo(f"  [{i}] note {r.note_id}  ({created})")
        if r.tags:
            click.echo(f"      Tags: {', '.join(r.tags)}")
        channels = [
            name
            for name, score in (("keyword", r.keyword_score), ("graph", r.graph_score))
            if score
        ]
        click.echo(f"      Score: {r.score:.4f}  Channels: {', '.join(channels) or '-'}")
        click.echo(f"      {r.snippet}")


@main.command()
@click.argument("query")
@click.option("--top", "-n", default=None, type=int, help="Number of results to return.")
def search(query: str, top: int | None) -> None:
    """Search notes with keyword and graph channels combined."""
    with _service() as service:
        results, metadata = service.search(query, limit=top)

    if metadata.graph_skipped:
        click.echo(f"Keyword results only: {metadata.skip_reason}")
    _print_results(results)


@main.command("graph-search")
@click.argument("query")
@click.option("--top", "-n", default=None, type=int, help="Number of results to return.")
def graph_search(query: str, top: int | None) -> None:
    """Search notes through the tag graph only."""
    with _service() as service:
        results = service.graph_search(query, limit=top)
    _print_results(results)


@main.command()
@click.argument("note_id", type=int)
@click.option("--top", "-n", default=None, type=int, help="Number of results to return.")
def related(note_id: int, top: int | None) -> None:
    """Show notes related to NOTE_ID through shared and nearby tags."""
    with _service() as service:
        results = service.related_to_note(note_id, limit=top)
    _print_results(results)


@main.command()
@click.option("--check", is_flag=True, help="Verify degree-centrality counters.")
def status(check: bool) -> None:
    """Show archive and tag-graph statistics."""
    with _service() as service:
        stats = service.status()
        drift = service.centrality_drift() if check else []

    click.echo(f"Notes:      {stats.total_notes}")
    click.echo(f"Tags:       {stats.total_tags}")
    click.echo(f"Edges:      {stats.total_edges}")
    click.echo(f"Density:    {stats.density:.3f}")
    click.echo(f"Max degree: {stats.max_degree}")

    if not check:
        return
    if not drift:
        click.echo("Centrality: consistent")
        return
    click.echo(f"Centrality: {len(drift)} tags drifted")
    for tag_id, stored, expected in drift:
        click.echo(f"  tag {tag_id}: stored {stored}, expected {expected}")
    raise SystemExit(1)


@main.command()
def backfill() -> None:
    """Recompute degree centrality from the current edges."""
    with _service() as service:
        corrected = service.backfill_centrality()
    click.echo(f"Degree centrality backfilled. {corrected} tags corrected.")
