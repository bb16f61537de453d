#!/usr/bin/env python3
# cli.py
# Translation queue CLI
#
# Typer + Rich front-end over the translation service and worker

from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.core.config import get_settings
from src.core.exceptions import InvalidRequestError, TranslationQueueError
from src.core.factory import build_broker, build_service, build_store, build_worker
from src.core.logging_config import setup_logging
from src.producer.service import TranslationService
from src.producer.validation import DEFAULT_LIST_LIMIT, supported_languages

app = typer.Typer(
    help="Translation queue: submit, track and process translation jobs",
    add_completion=False,
)

console = Console()

STATUS_STYLES = {
    "queued": "yellow",
    "processing": "cyan",
    "completed": "green",
    "failed": "red",
}


# -----------------------------
# UI helpers
# -----------------------------

def success(msg: str):
    console.print(f"[green]✔ {msg}[/green]")


def info(msg: str):
    console.print(f"[dim]• {msg}[/dim]")


def error(msg: str):
    console.print(f"[bold red]✖ {msg}[/bold red]")


def styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


@contextmanager
def open_service() -> Iterator[TranslationService]:
    """Build the service and release both Redis connections afterwards."""
    settings = get_settings()
    store = build_store(settings)
    broker = build_broker(settings)
    try:
        yield build_service(settings, store, broker)
    finally:
        broker.close()
        store.close()


@contextmanager
def handle_errors() -> Iterator[None]:
    try:
        yield
    except InvalidRequestError as e:
        error(str(e))
        for detail in e.details:
            info(f"{detail['field']}: {detail['message']}")
        raise typer.Exit(code=1)
    except TranslationQueueError as e:
        error(str(e))
        raise typer.Exit(code=1)


# -----------------------------
# Commands
# -----------------------------

@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override LOG_LEVEL (DEBUG, INFO, ...)"
    ),
):
    setup_logging(log_level or get_settings().LOG_LEVEL)


@app.command()
def submit(
    text: str = typer.Argument(..., help="Text to translate"),
    source: str = typer.Option("en", "--from", "-s", help="Source language code"),
    target: str = typer.Option(..., "--to", "-t", help="Target language code"),
    request_id: Optional[str] = typer.Option(
        None, "--request-id", help="Client-supplied request id (UUID)"
    ),
):
    """
    Queue a translation and print its request id.
    """
    with handle_errors(), open_service() as service:
        result = service.submit(text, source, target, request_id=request_id)

    console.print(
        Panel.fit(
            f"[bold]{result['requestId']}[/bold]\nstatus: {styled_status(result['status'])}",
            title="Translation queued",
            border_style="cyan",
        )
    )


@app.command()
def status(request_id: str = typer.Argument(..., help="Request id to look up")):
    """
    Show the current state of a translation.
    """
    with handle_errors(), open_service() as service:
        job = service.get(request_id)

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Request", job["requestId"])
    table.add_row("Status", styled_status(job["status"]))
    table.add_row("Languages", f"{job['sourceLanguage']} → {job['targetLanguage']}")
    table.add_row("Attempts", str(job["attempts"]))
    if "translatedText" in job:
        table.add_row("Translation", job["translatedText"])
    if "errorMessage" in job:
        table.add_row("Error", f"[red]{job['errorMessage']}[/red]")
    table.add_row("Created", job["createdAt"])
    table.add_row("Updated", job["updatedAt"])

    console.print(table)


@app.command("list")
def list_jobs(
    status_filter: Optional[str] = typer.Option(None, "--status", help="Filter by status"),
    limit: int = typer.Option(DEFAULT_LIST_LIMIT, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    sort_by: str = typer.Option("created_at", "--sort-by", help="created_at | updated_at | status"),
    order: str = typer.Option("DESC", "--order", help="ASC | DESC"),
):
    """
    List translations, newest first by default.
    """
    with handle_errors(), open_service() as service:
        page = service.list_translations(
            status=status_filter, limit=limit, offset=offset, sort_by=sort_by, sort_order=order
        )

    table = Table(title=f"Translations ({page['total']} total)")
    table.add_column("Request ID", style="bold")
    table.add_column("Status")
    table.add_column("Pair")
    table.add_column("Updated", style="dim")

    for job in page["translations"]:
        table.add_row(
            job["requestId"],
            styled_status(job["status"]),
            f"{job['sourceLanguage']} → {job['targetLanguage']}",
            job["updatedAt"],
        )

    console.print(table)
    if page["hasMore"]:
        info(f"More results available: --offset {page['offset'] + page['limit']}")


@app.command()
def cancel(request_id: str = typer.Argument(..., help="Queued request to cancel")):
    """
    Cancel a translation that has not started processing.
    """
    with handle_errors(), open_service() as service:
        service.cancel(request_id)

    success(f"Cancelled {request_id}")


@app.command()
def stats():
    """
    Show job counts per status and queue depth.
    """
    with handle_errors(), open_service() as service:
        data = service.stats()

    table = Table(title="Translation queue")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")

    for name, count in data["jobs"].items():
        table.add_row(f"jobs.{name}", str(count))
    for name, count in data["queue"].items():
        table.add_row(f"queue.{name}", str(count))

    console.print(table)


@app.command()
def health():
    """
    Check connectivity to the record store and the broker. Exits 1 on failure.
    """
    with handle_errors(), open_service() as service:
        report = service.health()

    for name, check in report["checks"].items():
        if check["status"] == "ok":
            success(f"{name}: {check['message']}")
        else:
            error(f"{name}: {check['message']}")

    if report["status"] != "ok":
        raise typer.Exit(code=1)


@app.command()
def languages():
    """
    List the supported language codes.
    """
    entries = supported_languages()

    table = Table(title=f"Supported languages ({len(entries)})")
    table.add_column("Code", style="bold")
    table.add_column("Name")

    for entry in entries:
        table.add_row(entry["code"], entry["name"])

    console.print(table)


@app.command()
def reconcile(
    older_than: Optional[int] = typer.Option(
        None, "--older-than", help="Seconds a QUEUED job must be idle (default ORPHAN_THRESHOLD)"
    ),
):
    """
    Republish QUEUED jobs whose message was never published.
    """
    threshold = older_than if older_than is not None else get_settings().ORPHAN_THRESHOLD

    with handle_errors(), open_service() as service:
        count = service.reconcile(threshold)

    success(f"Republished {count} orphaned job(s)")


@app.command("requeue-stale")
def requeue_stale(
    visibility_timeout: Optional[int] = typer.Option(
        None, "--visibility-timeout", help="Seconds before an unacked delivery is stale"
    ),
):
    """
    Return deliveries held by crashed workers to the queue.
    """
    settings = get_settings()
    timeout = visibility_timeout if visibility_timeout is not None else settings.VISIBILITY_TIMEOUT

    with handle_errors(), open_service() as service:
        count = service.broker.requeue_stale(timeout)

    success(f"Requeued {count} stale deliveries")


@app.command()
def purge(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """
    Drop every message waiting in the queue. Job records are kept.
    """
    if not yes and not typer.confirm("Drop all pending and delayed messages?"):
        info("Aborted")
        raise typer.Exit()

    with handle_errors(), open_service() as service:
        removed = service.broker.purge()

    success(f"Purged {removed} message(s)")


@app.command()
def worker(
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Stop after this many seconds (default: run forever)"
    ),
):
    """
    Run a translation worker in the foreground.
    """
    settings = get_settings()
    store = build_store(settings)
    broker = build_broker(settings)

    console.print(
        Panel.fit(
            f"[bold cyan]TRANSLATION WORKER[/bold cyan]\n"
            f"[white]queue: {settings.QUEUE_NAME} • translator: {settings.TRANSLATOR_BACKEND}[/white]",
            border_style="cyan",
        )
    )

    try:
        build_worker(settings, store, broker).start(timeout=timeout)
    finally:
        broker.close()
        store.close()


if __name__ == "__main__":
    app()
