"""
photoledger CLI Main Module

Command-line interface for the client work queue using Typer.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional

import typer

from client.queue import ClientQueueManager, ProcessOptions, QueueFile, QueueNotice
from client.store import DEFAULT_QUEUE_DIR, DEFAULT_QUEUE_KEY, JsonFileQueueStore
from client.submit import SubmissionClient
from core.errors import QueueLimitError

# Configure logging
logging.basicConfig(level=logging.WARNING, format='%(levelname)s: %(message)s')

DEFAULT_SERVER_URL = os.environ.get("PHOTOLEDGER_URL", "http://localhost:8000")

NOTICE_TEXT = {
    QueueNotice.SESSION_RESTORED: "Restored items interrupted by a previous session; they will be retried.",
    QueueNotice.PAYWALL: "Image quota exhausted. Buy more images, then run process again to continue.",
    QueueNotice.STORAGE_PRESSURE: "Queue storage is getting large; consider processing or removing items.",
}

app = typer.Typer(
    name="photoledger-queue",
    help="photoledger - durable image queue for the enhancement service",
    add_completion=False
)


def print_notice(notice: QueueNotice) -> None:
    typer.echo(f"! {NOTICE_TEXT[notice]}", err=True)


def build_manager(queue_dir: Path, key: str, submitter=None) -> ClientQueueManager:
    manager = ClientQueueManager(
        JsonFileQueueStore(queue_dir, key),
        submitter=submitter,
        on_notice=print_notice,
    )
    manager.load()
    return manager


def build_submitter(url: str, token: Optional[str]) -> SubmissionClient:
    return SubmissionClient(url, token=token)


QueueDirOption = typer.Option(DEFAULT_QUEUE_DIR, "--queue-dir", help="Directory holding the queue file")
KeyOption = typer.Option(DEFAULT_QUEUE_KEY, "--key", help="Queue name")


@app.command()
def add(
    files: List[Path] = typer.Argument(..., help="Image files to queue"),
    queue_dir: Path = QueueDirOption,
    key: str = KeyOption
) -> None:
    """Queue image files for processing."""
    missing = [str(f) for f in files if not f.is_file()]
    if missing:
        typer.echo("Files not found:", err=True)
        for path in missing:
            typer.echo(f"  - {path}", err=True)
        raise typer.Exit(1)

    manager = build_manager(queue_dir, key)
    try:
        added = manager.add([QueueFile.from_path(f) for f in files])
    except QueueLimitError as e:
        typer.echo(f"Queue full: {e}", err=True)
        raise typer.Exit(1)

    for item in added:
        typer.echo(f"Queued {item.filename} ({item.id})")
    typer.echo(f"{len(manager.items)}/{manager.max_items} items in queue")


@app.command("list")
def list_items(
    queue_dir: Path = QueueDirOption,
    key: str = KeyOption
) -> None:
    """Show queued items."""
    manager = build_manager(queue_dir, key)
    if not manager.items:
        typer.echo("Queue is empty")
        return

    for item in manager.items:
        line = f"{item.id}  {item.status.value:<10}  {item.filename}"
        if item.error:
            line += f"  ({item.error})"
        typer.echo(line)


@app.command()
def process(
    mode: str = typer.Option("full", "--mode", help="Enhancement mode"),
    remove_object: Optional[str] = typer.Option(None, "--remove", help="Remove this object instead of enhancing"),
    url: str = typer.Option(DEFAULT_SERVER_URL, "--url", help="photoledger server URL"),
    token: Optional[str] = typer.Option(None, "--token", envvar="PHOTOLEDGER_TOKEN", help="Access token"),
    queue_dir: Path = QueueDirOption,
    key: str = KeyOption
) -> None:
    """
    Submit every pending item, one at a time.

    Stops early when the account's quota is exhausted; the remaining items
    stay pending.
    """
    manager = build_manager(queue_dir, key, submitter=build_submitter(url, token))
    if remove_object:
        options = ProcessOptions(action="remove", object_to_remove=remove_object)
    else:
        options = ProcessOptions(action="enhance", mode=mode)

    try:
        summary = asyncio.run(manager.process(options))
    except KeyboardInterrupt:
        if manager.has_unsaved_work:
            typer.echo(
                "Interrupted with unprocessed items; they are saved and will resume on the next run.",
                err=True
            )
        raise typer.Exit(130)

    typer.echo(f"Completed: {summary.completed}  Failed: {summary.failed}")
    if summary.halted_on_paywall:
        raise typer.Exit(2)


@app.command()
def remove(
    item_id: str = typer.Argument(..., help="Queue item id"),
    queue_dir: Path = QueueDirOption,
    key: str = KeyOption
) -> None:
    """Remove one item from the queue."""
    manager = build_manager(queue_dir, key)
    if not manager.remove(item_id):
        typer.echo(f"No queue item {item_id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Removed {item_id}")


@app.command()
def clear(
    queue_dir: Path = QueueDirOption,
    key: str = KeyOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")
) -> None:
    """Empty the queue."""
    manager = build_manager(queue_dir, key)
    if manager.has_unsaved_work and not yes:
        typer.confirm("Queue has unprocessed items. Clear anyway?", abort=True)
    manager.clear()
    typer.echo("Queue cleared")


if __name__ == "__main__":
    app()
