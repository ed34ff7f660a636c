"""mneme CLI: review, queue, card management and config commands."""

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import typer

from mneme.application.config import AppConfig, resolve_config
from mneme.application.factory import get_card_store
from mneme.application.logging_config import setup_logging
from mneme.application.queue_builder import build_review_queue, select_cards
from mneme.application.review_service import ReviewService
from mneme.application.stats import MetricsCalculator, StatsService
from mneme.application.utils.text import make_tag_lookup
from mneme.domain.errors import InvalidRating, MissingCardState, PersistenceError
from mneme.domain.models import CardRecord
from mneme.infrastructure.adapters.json_store import CardPayload

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="mneme: Spaced-repetition scheduler for your notes.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


class QueueMode(str, Enum):
    due = "due"
    scheduled = "scheduled"
    note = "note"


config_app = typer.Typer(help="Manage mneme configuration.")
app.add_typer(config_app, name="config")


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    data_file: Annotated[
        Path | None, typer.Option("--data-file", help="Card store JSON file.")
    ] = None,
):
    """Global settings for mneme."""
    ctx.ensure_object(dict)
    ctx.obj["data_file"] = data_file
    ctx.obj["verbose_bonus"] = verbose


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(ctx: typer.Context, **overrides: Any) -> AppConfig:
    obj = ctx.obj or {}
    config = resolve_config({"data_file": obj.get("data_file"), **overrides})
    # -v raises the configured verbosity
    setup_logging(config.verbose + obj.get("verbose_bonus", 0), config.log_dir)
    return config


def _service(config: AppConfig) -> ReviewService:
    logger.debug(f"Using {config.store} store at {config.data_file}")
    return ReviewService(get_card_store(config))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def record_to_dict(record: CardRecord) -> dict[str, Any]:
    return {"notePath": record.note_path, **CardPayload.from_record(record).to_json()}


def _describe(record: CardRecord, now: datetime) -> str:
    summary = MetricsCalculator().summarize(record, now)
    first_line = record.content.strip().splitlines()[0][:60] if record.content.strip() else ""
    label = record.title or first_line
    parts = [record.card_id, label or "(empty)", f"ef={record.state.ef:.2f}"]
    if summary.schedule_label:
        parts.append(summary.schedule_label)
    if not record.state.active:
        parts.append("[stopped]")
    elif record.state.is_learning:
        parts.append(f"[learning step {record.state.learning_step}]")
    return "  ".join(parts)


def _run(coro):
    """Run a coroutine, turning domain errors into CLI exits."""
    try:
        return asyncio.run(coro)
    except InvalidRating as e:
        typer.secho(f"{e} Please re-select a rating.", fg="red", err=True)
        raise typer.Exit(2)
    except MissingCardState as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1)
    except PersistenceError as e:
        typer.secho(f"Storage error: {e}", fg="red", err=True)
        raise typer.Exit(1)


def _print_cards(cards: list[CardRecord], now: datetime, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps([record_to_dict(c) for c in cards], indent=2))
        return
    for card in cards:
        typer.echo(_describe(card, now))


# ---------------------------------------------------------------------------
# Review commands
# ---------------------------------------------------------------------------


@app.command()
def review(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card identifier.")],
    quality: Annotated[int, typer.Argument(help="Recall quality, 0 (blackout) to 5 (easy).")],
):
    """[bold green]Grade[/bold green] a card and schedule its next review."""
    service = _service(_config(ctx))
    record = _run(service.submit_review(card_id, quality))
    typer.echo(_describe(record, _now()))


@app.command()
def stop(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card identifier.")],
):
    """Stop scheduling a card."""
    service = _service(_config(ctx))
    _run(service.stop_scheduling(card_id))
    typer.secho(f"Scheduling stopped for {card_id}.", fg="yellow")


@app.command()
def add(
    ctx: typer.Context,
    note: Annotated[str, typer.Argument(help="Path of the owning note, relative to the vault.")],
    content: Annotated[str, typer.Argument(help="Card content.")],
    card_id: Annotated[str | None, typer.Option("--id", help="Explicit card id.")] = None,
    title: Annotated[str | None, typer.Option(help="Card title.")] = None,
    line: Annotated[int | None, typer.Option(help="Line of the card in its note.")] = None,
):
    """Register a card (or refresh an existing card's content)."""
    service = _service(_config(ctx))
    record = _run(
        service.register_card(note, content, card_id=card_id, title=title, line=line)
    )
    typer.secho(f"Card {record.card_id} registered.", fg="green")


@app.command()
def show(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card identifier.")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show a card's scheduling state."""
    service = _service(_config(ctx))
    record = _run(service.get_card(card_id))
    now = _now()

    if json_output:
        typer.echo(json.dumps(record_to_dict(record), indent=2))
        return

    s = record.state
    summary = MetricsCalculator().summarize(record, now)
    typer.echo(_describe(record, now))
    typer.echo(
        f"  repetition: {s.repetition}  interval: {s.interval}d"
        f"  ef: {s.ef:.2f} ({summary.ef_class})"
    )
    typer.echo(f"  reviews: {summary.reviews}  lapses: {summary.lapses}")
    for entry in s.rating_history:
        typer.echo(f"  {entry.timestamp.isoformat()}  rating={entry.rating}  ef={entry.ef:.2f}")


@app.command()
def queue(
    ctx: typer.Context,
    mode: Annotated[
        QueueMode,
        typer.Option(help="Which cards to list: due, scheduled, or every card of --note."),
    ] = QueueMode.due,
    note: Annotated[str | None, typer.Option(help="Note path for --mode note.")] = None,
    tag: Annotated[str | None, typer.Option(help="Only cards whose note has this tag.")] = None,
    search: Annotated[str | None, typer.Option(help="Fuzzy search over title and content.")] = None,
    vault: Annotated[
        Path | None, typer.Option(help="Vault root used to read note tags.")
    ] = None,
    randomize: Annotated[
        bool | None, typer.Option("--randomize/--no-randomize", help="Shuffle the queue.")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List the cards of a review session."""
    config = _config(ctx, vault_root=vault, randomize=randomize)
    service = _service(config)
    now = _now()

    if tag and config.vault_root is None:
        typer.secho("--tag needs a vault root (--vault or MNEME_VAULT_ROOT).", fg="yellow")
        raise typer.Exit(2)

    records = _run(service.store.list_records())
    cards = select_cards(
        records,
        mode.value,
        now,
        note_path=note,
        tag=tag,
        search=search,
        tags_for_note=make_tag_lookup(config.vault_root),
        randomize=config.randomize,
    )

    if not cards and not json_output:
        typer.secho("No flashcards found.", fg="yellow")
        return
    _print_cards(cards, now, json_output)


@app.command()
def due(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List due cards, or the scheduled ones when nothing is due."""
    config = _config(ctx)
    service = _service(config)
    now = _now()

    records = _run(service.store.list_records())
    result = build_review_queue(records, now, randomize=config.randomize)

    if result.empty:
        if not json_output:
            typer.secho("No flashcards due or scheduled for review.", fg="yellow")
        else:
            typer.echo("[]")
        return
    if result.fell_back and not json_output:
        typer.secho("No due flashcards; showing scheduled flashcards.", fg="yellow")
    _print_cards(result.cards, now, json_output)


# ---------------------------------------------------------------------------
# Card management
# ---------------------------------------------------------------------------


@app.command()
def reset(
    ctx: typer.Context,
    card_ids: Annotated[list[str], typer.Argument(help="Cards to reset.")],
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation.")] = False,
):
    """Reset scheduling progress of cards. This cannot be undone."""
    if not force:
        typer.confirm(f"Reset {len(card_ids)} card(s)? This cannot be undone.", abort=True)

    service = _service(_config(ctx))
    done = _run(service.reset_cards(card_ids))
    typer.secho(f"Reset {len(done)} card(s).", fg="green")
    missing = len(card_ids) - len(done)
    if missing:
        typer.secho(f"{missing} unknown card(s) skipped.", fg="yellow")


@app.command()
def remove(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card identifier.")],
):
    """Delete a card and its scheduling state."""
    service = _service(_config(ctx))
    if not _run(service.remove_card(card_id)):
        typer.secho(f"No card '{card_id}'.", fg="red", err=True)
        raise typer.Exit(1)
    typer.secho(f"Removed {card_id}.", fg="green")


@app.command()
def stats(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show collection totals."""
    config = _config(ctx)
    service = StatsService(get_card_store(config))
    totals = _run(service.collection_stats(_now()))

    if json_output:
        typer.echo(json.dumps(asdict(totals), indent=2))
        return

    typer.echo(
        f"Cards: {totals.total}  Due: {totals.due}  Scheduled: {totals.scheduled}"
        f"  Stopped: {totals.stopped}  Learning: {totals.learning}"
    )
    if totals.mean_ef is not None:
        typer.echo(f"Mean ef: {totals.mean_ef:.2f}")
    for cls, count in sorted(totals.by_ef_class.items()):
        typer.echo(f"  {cls}: {count}")


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str | None, typer.Option(help="Host to bind the server to.")] = None,
    port: Annotated[int | None, typer.Option(help="Port to bind the server to.")] = None,
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Run the HTTP review server."""
    import uvicorn

    config = _config(ctx, host=host, port=port)
    uvicorn.run("mneme.server:app", host=config.host, port=config.port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
