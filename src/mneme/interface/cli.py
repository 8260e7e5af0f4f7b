"""Mneme CLI — root commands and subgroup registration."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from mneme.application.config import resolve_config

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="mneme: multi-mode spaced-repetition vocabulary study.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Register subgroups
# ---------------------------------------------------------------------------

config_app = typer.Typer(help="Manage mneme configuration.")
app.add_typer(config_app, name="config")

vocab_app = typer.Typer(help="Vocabulary management.", no_args_is_help=True)
app.add_typer(vocab_app, name="vocab")


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
):
    """Global settings for mneme."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose > 1:
        logging.getLogger().setLevel(logging.DEBUG)


def _resolve(**overrides):
    return resolve_config({k: v for k, v in overrides.items() if v is not None})


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command("queue")
def queue(
    user: Annotated[str | None, typer.Option(help="Learner id. Defaults to config.")] = None,
    deck: Annotated[str | None, typer.Option(help="Filter by deck tag.")] = None,
    daily_limit: Annotated[int | None, typer.Option(help="Daily new-card quota.")] = None,
    backend: Annotated[str | None, typer.Option(help="Storage backend: sqlite, memory.")] = None,
):
    """Show what the next study session would contain."""
    from mneme.application.factory import get_study_service

    config = _resolve(backend=backend, daily_new_limit=daily_limit)
    service = get_study_service(config)
    user_id = user or config.user_id

    result = asyncio.run(service.build_queue(user_id, deck=deck))

    typer.echo(f"Relearning: {result.counts.relearning}")
    typer.echo(f"Learning:   {result.counts.learning}")
    typer.echo(f"Review:     {result.counts.due}")
    typer.echo(f"New:        {result.counts.new} (of {result.counts.total_new} available)")
    typer.echo(
        f"Quota: {result.quota.used}/{result.quota.daily} used, {result.quota.remaining} remaining"
    )
    if result.need_more_seeds:
        typer.secho(
            "Running low on new cards. Run 'mneme seed --deck <deck>' to add more.",
            fg="yellow",
        )


@app.command("study")
def study(
    user: Annotated[str | None, typer.Option(help="Learner id. Defaults to config.")] = None,
    deck: Annotated[str | None, typer.Option(help="Filter by deck tag.")] = None,
    daily_limit: Annotated[int | None, typer.Option(help="Daily new-card quota.")] = None,
    backend: Annotated[str | None, typer.Option(help="Storage backend: sqlite, memory.")] = None,
):
    """[bold green]Study[/bold green] in the terminal.

    For each exercise answer [bold]y[/bold] (passed), [bold]n[/bold] (failed),
    [bold]h[/bold] (passed with a hint) or [bold]q[/bold] (quit; unfinished
    cards are not saved).
    """
    from mneme.application import orchestrator
    from mneme.application.factory import get_study_service

    config = _resolve(backend=backend, daily_new_limit=daily_limit)
    service = get_study_service(config)
    user_id = user or config.user_id

    async def run():
        session = await service.start_session(user_id, deck=deck)
        if session.is_complete:
            typer.secho("Nothing to study right now.", fg="yellow")
            return

        typer.echo(f"Session with {session.total_cards} cards.")
        while not session.is_complete:
            card = orchestrator.current_card(session)
            mode = orchestrator.current_mode(session)
            word = card.vocabulary.word if card.vocabulary else card.card_id
            retry = " (retry)" if orchestrator.is_retrying(session) else ""
            progress = f"[{session.completed_count}/{session.total_cards}]"
            typer.echo(f"\n{progress} {word} :: {mode.value}{retry}")

            choice = typer.prompt("Result [y/n/h/q]", default="y").strip().lower()
            if choice == "q":
                service.abandon(session.session_id)
                typer.secho("Session abandoned.", fg="yellow")
                raise typer.Exit()
            if choice not in ("y", "n", "h"):
                typer.secho("Please answer y, n, h or q.", fg="red")
                continue

            outcome = await service.answer(
                session.session_id, passed=choice != "n", used_hint=choice == "h"
            )
            session = outcome.session
            if outcome.completed_card is not None:
                typer.secho(f"  Card done: {outcome.rating.name.title()}", fg="green")

        typer.secho(f"\nSession complete: {session.completed_count} cards.", fg="green")

    asyncio.run(run())


@app.command("seed")
def seed(
    deck: Annotated[str, typer.Option(help="Deck tag to draw new cards from.")],
    user: Annotated[str | None, typer.Option(help="Learner id. Defaults to config.")] = None,
    limit: Annotated[int | None, typer.Option(help="Target size of the new-card pool.")] = None,
):
    """Add new cards from a deck."""
    from mneme.application.factory import get_study_service

    config = _resolve()
    service = get_study_service(config)
    added = asyncio.run(service.seed(user or config.user_id, deck, limit))
    if added:
        typer.secho(f"Added {added} cards from '{deck}'.", fg="green")
    else:
        typer.secho("No new vocabulary to add.", fg="yellow")


@app.command("stats")
def stats(
    user: Annotated[str | None, typer.Option(help="Learner id. Defaults to config.")] = None,
    deck: Annotated[str | None, typer.Option(help="Filter by deck tag.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show study statistics."""
    from mneme.application.factory import get_stats_service

    config = _resolve()
    service = get_stats_service(config)
    user_id = user or config.user_id

    async def run():
        return (
            await service.get_overview(user_id, deck=deck),
            await service.get_progress(user_id, days=30),
        )

    overview, progress = asyncio.run(run())

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "total_cards": overview.total_cards,
                    "cards_by_state": {
                        s.name.lower(): n for s, n in overview.cards_by_state.items()
                    },
                    "reviews_today": overview.reviews_today,
                    "due_now": overview.due_now,
                    "streak": progress.streak,
                    "accuracy_7d": progress.overall_accuracy,
                },
                indent=2,
            )
        )
        return

    typer.echo(f"Total cards: {overview.total_cards}")
    for state, count in overview.cards_by_state.items():
        typer.echo(f"  {state.name.title()}: {count}")
    typer.echo(f"Reviewed today: {overview.reviews_today}")
    typer.echo(f"Due now: {overview.due_now}")
    if overview.next_due_time:
        typer.echo(f"Next due: {overview.next_due_time.isoformat()}")
    typer.echo(f"Streak: {progress.streak} days, 7-day accuracy {progress.overall_accuracy}%")


@app.command("serve")
def serve(
    host: Annotated[str | None, typer.Option(help="Bind address.")] = None,
    port: Annotated[int | None, typer.Option(help="Port.")] = None,
    reload: Annotated[bool, typer.Option("--reload", help="Auto-reload on code changes.")] = False,
):
    """Run the HTTP server."""
    import uvicorn

    config = _resolve()
    config.log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(config.log_dir / "server.log")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s:%(name)s:%(message)s"))
    logging.getLogger().addHandler(handler)
    logger.info(f"Server logs: {config.log_dir / 'server.log'}")

    uvicorn.run(
        "mneme.server:app",
        host=host or config.host,
        port=port or config.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# Vocab subgroup
# ---------------------------------------------------------------------------


@vocab_app.command("import")
def vocab_import(
    path: Annotated[Path, typer.Argument(help="YAML file with vocabulary entries.")],
):
    """Import vocabulary from a YAML file."""
    import yaml

    from mneme.application.factory import get_repository
    from mneme.infrastructure.vocab_loader import load_vocabulary

    try:
        items = load_vocabulary(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        typer.secho(f"Could not load {path}: {e}", fg="red")
        raise typer.Exit(1) from e

    repo = get_repository(_resolve())
    stored = asyncio.run(repo.add_vocabulary(items))
    typer.secho(f"Imported {stored} entries.", fg="green")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = config.model_dump(mode="json")
    typer.echo(json.dumps(d, indent=2))


if __name__ == "__main__":
    app()
