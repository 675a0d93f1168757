"""
StudyOrbit CLI - terminal front end for the scheduling engine.

Usage:
    studyorbit status items.json              # Review status per lesson
    studyorbit due items.json                 # Review status per item
    studyorbit practice items.json            # Run a practice session
    studyorbit practice items.json --no-wait  # Stop instead of waiting for retries

The engine itself does no I/O; this module loads items through a
JsonItemStore, drives one SessionEngine and saves the updated items.
"""

from __future__ import annotations

import math
import sys
import time
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt
from rich.table import Table

from studyorbit.cli.item_store import ItemStoreError, JsonItemStore
from studyorbit.config import get_settings
from studyorbit.core.models import (
    NextQuestionStatus,
    ReviewableItem,
    ReviewStatus,
    SelfEvalLevel,
    TimingClass,
)
from studyorbit.study.retention_engine import RetentionModel
from studyorbit.study.review_status import ReviewStatusClassifier
from studyorbit.study.progress import SessionResult
from studyorbit.study.session_engine import SessionEngine

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="studyorbit",
    help="🪐 StudyOrbit - spaced-repetition scheduling from the terminal",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

STATUS_STYLES = {
    ReviewStatus.OVERDUE: "bold red",
    ReviewStatus.NOW: "bold yellow",
    ReviewStatus.TODAY: "cyan",
    ReviewStatus.FUTURE: "dim",
}

UNGROUPED = "(ungrouped)"


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug logging")
    ] = False,
) -> None:
    """Configure logging for every command."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level.upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )


def _load(path: Path) -> tuple[JsonItemStore, list[ReviewableItem]]:
    store = JsonItemStore(path)
    try:
        return store, store.load()
    except ItemStoreError as e:
        console.print(f"[red]✗ {e}[/]")
        raise typer.Exit(1) from e


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _group_of(item: ReviewableItem, group_key: str) -> str:
    payload = item.payload
    camel = "".join(
        part if i == 0 else part.capitalize() for i, part in enumerate(group_key.split("_"))
    )
    value = payload.get(group_key, payload.get(camel))
    return str(value) if value not in (None, "") else UNGROUPED


# =============================================================================
# Commands
# =============================================================================


@app.command()
def status(
    items_file: Annotated[Path, typer.Argument(help="JSON file with items")],
    group_key: Annotated[
        str, typer.Option("--group-key", "-g", help="Payload key that groups items")
    ] = "lesson_id",
) -> None:
    """
    Show the aggregated review status of every lesson.

    Lessons are sorted by priority: overdue and weak lessons first.
    """
    store, items = _load(items_file)
    settings = get_settings()
    classifier = ReviewStatusClassifier(settings)
    contexts = store.group_contexts()
    now = _local_now()

    groups: dict[str, list[ReviewableItem]] = defaultdict(list)
    for item in items:
        groups[_group_of(item, group_key)].append(item)
    for group_id in contexts:
        groups.setdefault(group_id, [])

    stats = {
        group_id: classifier.aggregate(members, contexts.get(group_id), now)
        for group_id, members in groups.items()
    }

    table = Table(title=f"Review status ({len(items)} items)", show_lines=False)
    table.add_column("Lesson", style="bold")
    table.add_column("Status")
    table.add_column("Due")
    table.add_column("Tier")
    table.add_column("Mastery", justify="right")
    table.add_column("Priority", justify="right")
    table.add_column("O/N/T/F", justify="right", style="dim")

    for group_id, agg in classifier.rank_groups(stats):
        b = agg.breakdown
        table.add_row(
            group_id,
            f"[{STATUS_STYLES[agg.status]}]{agg.status.value}[/]",
            agg.label,
            f"[{agg.tier.color}]{agg.tier.value}[/]",
            f"{agg.avg_mastery:.0f}%",
            str(agg.priority_score),
            f"{b[ReviewStatus.OVERDUE]}/{b[ReviewStatus.NOW]}/"
            f"{b[ReviewStatus.TODAY]}/{b[ReviewStatus.FUTURE]}",
        )

    console.print(table)


@app.command()
def due(
    items_file: Annotated[Path, typer.Argument(help="JSON file with items")],
) -> None:
    """List every item with its own status, domain and urgency."""
    _, items = _load(items_file)
    settings = get_settings()
    classifier = ReviewStatusClassifier(settings)
    model = RetentionModel(settings)
    now = _local_now()

    table = Table(title="Items")
    table.add_column("Id", style="bold")
    table.add_column("Item")
    table.add_column("Status")
    table.add_column("Due")
    table.add_column("Domain", justify="right")
    table.add_column("Urgency")
    table.add_column("", justify="center")

    rows = [(item, classifier.status(item.next_review_date, now)) for item in items]
    rows.sort(
        key=lambda row: classifier.priority_score(row[1], classifier.tier(row[0].mastery_score)),
        reverse=True,
    )

    for item, item_status in rows:
        if item.is_new:
            table.add_row(item.id, item.display_title(40), "[green]NEW[/]", "—", "—", "—", "")
            continue
        gold = "★" if model.is_gold_window(item.next_review_date, now) else ""
        table.add_row(
            item.id,
            item.display_title(40),
            f"[{STATUS_STYLES[item_status]}]{item_status.value}[/]",
            classifier.label(item_status, item.next_review_date, now),
            f"{model.current_domain(item, now):.0f}",
            model.urgency(item, now).value,
            f"[yellow]{gold}[/]",
        )

    console.print(table)


@app.command()
def practice(
    items_file: Annotated[Path, typer.Argument(help="JSON file with items")],
    limit: Annotated[
        int, typer.Option("--limit", "-n", help="Maximum number of questions")
    ] = 20,
    no_wait: Annotated[
        bool, typer.Option("--no-wait", help="End the session instead of waiting for retries")
    ] = False,
) -> None:
    """
    Run one practice session and save the results.

    New items come first, in file order. Wrong answers return after a
    penalty (10 minutes unless configured otherwise). Ctrl+C ends the
    session early and keeps what was answered. Records with a repeated id
    are studied once; later copies are saved untouched.
    """
    store, items = _load(items_file)
    settings = get_settings()
    engine = SessionEngine(items, settings)
    model = RetentionModel(settings)
    updated: dict[str, ReviewableItem] = {}
    for item in items:
        updated.setdefault(item.id, item)

    console.print(
        Panel(
            f"[bold cyan]PRACTICE SESSION[/]\n"
            f"Items: {len(items)}  New: {engine.get_remaining_new_count()}\n"
            f"Phase: {engine.get_phase().value}",
            title="🪐",
            border_style="cyan",
        )
    )

    shown = 0
    try:
        while shown < limit:
            nxt = engine.get_next_question()

            if nxt.status == NextQuestionStatus.EMPTY:
                console.print("[green]✓ Nothing left to practice.[/]")
                break

            if nxt.status == NextQuestionStatus.WAITING:
                if no_wait:
                    console.print(
                        f"[yellow]{engine.get_pending_retry_count()} retries pending; "
                        f"ending session.[/]"
                    )
                    break
                _countdown(nxt.next_unlock_in_ms or 0, engine.get_pending_retry_count())
                continue

            question = updated[nxt.question.id]
            shown += 1
            is_correct, level, elapsed = _ask(question, shown, engine.get_phase().value)

            engine.submit_result(question.id, is_correct)
            updated[question.id] = model.record_answer(question, is_correct, level, elapsed)
            _feedback(updated[question.id], is_correct, settings.penalty_minutes)
    except KeyboardInterrupt:
        console.print("\n[yellow]Session ended early.[/]")

    stats = engine.get_stats()
    try:
        answered = SessionResult(updated=[updated[item_id] for item_id in engine.answered_ids])
        store.save(answered.merge_into(items))
    except ItemStoreError as e:
        console.print(f"[red]✗ {e}[/]")
        raise typer.Exit(1) from e

    console.print(
        f"[bold]Answered {stats.answered}[/] "
        f"([green]{stats.correct} correct[/], [red]{stats.wrong} wrong[/], "
        f"{stats.accuracy:.0%} accuracy). Saved to {items_file}."
    )


# =============================================================================
# Interaction helpers
# =============================================================================


def _ask(item: ReviewableItem, number: int, phase: str) -> tuple[bool, SelfEvalLevel, float]:
    """Show an item and collect the learner's self-assessment."""
    body = item.presentation_text() or item.id
    options = item.payload.get("options")
    if isinstance(options, dict):
        body = item.payload.get("question_text") or item.payload.get("questionText") or body
        body += "\n\n" + "\n".join(f"  {k}) {v}" for k, v in options.items() if v)

    console.print(Panel(body, title=f"#{number} · {phase}", border_style="blue"))

    started = time.monotonic()
    is_correct = Confirm.ask("Did you answer correctly?", console=console)
    elapsed = time.monotonic() - started

    answer = item.payload.get("answer") or item.payload.get("correctAnswer") or item.payload.get("back")
    if answer:
        console.print(f"[dim]Answer:[/] {answer}")

    if not is_correct:
        return False, SelfEvalLevel.AGAIN, elapsed

    rating = IntPrompt.ask(
        "How did it feel? [1] hard [2] good [3] easy",
        choices=["1", "2", "3"],
        default=2,
        console=console,
    )
    return True, SelfEvalLevel.coerce(rating), elapsed


def _feedback(item: ReviewableItem, is_correct: bool, penalty_minutes: float) -> None:
    attempt = item.attempt_history[-1]
    mark = "[green]✓[/]" if is_correct else f"[red]✗ back in {penalty_minutes:g} minutes[/]"
    timing = ""
    if attempt.timing_class == TimingClass.TOO_FAST:
        timing = " [yellow](too fast - read carefully)[/]"
    elif attempt.timing_class == TimingClass.SLOW:
        timing = " [dim](slow)[/]"
    console.print(
        f"{mark} mastery {item.mastery_score:.0f}% · "
        f"stability {item.stability:.1f}d{timing}"
    )


def _countdown(wait_ms: int, pending: int) -> None:
    """Poll once per second until the next retry unlocks."""
    remaining = max(0, math.ceil(wait_ms / 1000))
    with console.status("") as spinner:
        while remaining > 0:
            minutes, seconds = divmod(remaining, 60)
            spinner.update(
                f"[cyan]{pending} retry(s) unlocking in {minutes:02d}:{seconds:02d}[/]"
            )
            time.sleep(1)
            remaining -= 1


def run() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
