# src/shelfsync/cli.py
"""
shelfsync Command Line Interface (CLI).

Terminal front-end for the offline sync engine, built with `typer` and `rich`.
Every command builds an `Engine` from settings (``SHELFSYNC_*`` env vars or
``.env``), runs one coroutine on a fresh event loop and shuts the engine down.

Usage
-----
    # Pin a document and wait until its offline copy settles
    $ shelfsync enable 6f1c...

    # Show what is pinned and cached
    $ shelfsync status

    # Read page 3 (served from the cache when available)
    $ shelfsync pages 6f1c... --page 3

    # Push queued positions and uploads
    $ shelfsync flush
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, TypeVar

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from shelfsync.core.contracts.status import OfflinePhase, OfflineStatus
from shelfsync.core.errors import OfflineCopyUnavailableError, ShelfSyncError
from shelfsync.core.result import Result
from shelfsync.engine import Engine
from shelfsync.sync.reconciler import FlushReport, UploadOutcome

load_dotenv()

app = typer.Typer(
    help="shelfsync: offline copies and queued reading state for a document reader.",
    rich_markup_mode="markdown",
)
console = Console()

T = TypeVar("T")

_PHASE_STYLE = {
    OfflinePhase.IDLE: "dim",
    OfflinePhase.DOWNLOADING: "cyan",
    OfflinePhase.READY: "green",
    OfflinePhase.FAILED: "red",
    OfflinePhase.RETRY: "yellow",
    OfflinePhase.STORAGE_FULL: "red",
}


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #


def _build_engine() -> Engine:
    """Construct the engine from settings. Tests replace this."""
    return Engine.from_settings()


def _run(work: Callable[[Engine], Awaitable[T]]) -> T:
    async def _main() -> T:
        engine = _build_engine()
        try:
            return await work(engine)
        finally:
            await engine.close()

    return asyncio.run(_main())


def _phase_text(status: OfflineStatus) -> str:
    style = _PHASE_STYLE.get(status.phase, "white")
    label = status.phase.value
    if status.message:
        label = f"{label} ({status.message})"
    return f"[{style}]{label}[/{style}]"


def _print_report(report: FlushReport) -> None:
    if report.skipped:
        console.print(f"[dim]{report.queue}: skipped, {report.remaining} still queued[/dim]")
        return
    line = (
        f"{report.queue}: {report.completed}/{report.attempted} sent, "
        f"{report.remaining} remaining"
    )
    if report.dropped:
        line += f", {report.dropped} dropped"
    if report.error:
        console.print(f"[yellow]{line}; stopped: {report.error}[/yellow]")
    else:
        console.print(f"[green]{line}[/green]")


# --------------------------------------------------------------------------- #
# Offline copies
# --------------------------------------------------------------------------- #


@app.command()  # type: ignore[misc]
def status(
    document_ids: Annotated[
        list[str] | None,
        typer.Argument(help="Documents to show. Defaults to every pinned or cached document."),
    ] = None,
) -> None:
    """Show pin and offline-copy state per document."""

    async def _work(engine: Engine) -> list[OfflineStatus]:
        ids = document_ids or sorted(engine.pins.pinned_ids() | set(engine.pages.cached_ids()))
        return [engine.coordinator.bootstrap(doc_id) for doc_id in ids]

    rows = _run(_work)
    if not rows:
        console.print("[dim]Nothing pinned or cached.[/dim]")
        return

    table = Table(title="Offline documents")
    table.add_column("Document")
    table.add_column("Pinned")
    table.add_column("Available")
    table.add_column("Phase")
    for row in rows:
        table.add_row(
            row.document_id,
            "yes" if row.pinned else "no",
            "yes" if row.available else "no",
            _phase_text(row),
        )
    console.print(table)


@app.command()  # type: ignore[misc]
def enable(
    document_id: Annotated[str, typer.Argument(help="Remote document id to keep offline.")],
) -> None:
    """
    Pin a document for offline reading and wait for the download to settle.

    Exits non-zero when the copy could not be completed ("Try again",
    "Download failed" or not enough storage).
    """

    async def _work(engine: Engine) -> OfflineStatus:
        result = engine.coordinator.enable(document_id)
        if result.is_err():
            console.print(f"[bold red]{result.unwrap_err()}[/bold red]")
            raise typer.Exit(code=1)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task(f"[cyan]{document_id}: waiting for network...", total=None)

            def _on_status(update: OfflineStatus) -> None:
                if update.document_id == document_id and update.progress_label:
                    label = f"[cyan]{document_id}: {update.progress_label}"
                    progress.update(task, description=label)

            unsubscribe = engine.coordinator.subscribe(_on_status)
            try:
                return await engine.coordinator.wait(document_id)
            finally:
                unsubscribe()

    final = _run(_work)
    console.print(Panel.fit(f"{document_id}: {_phase_text(final)}", title="Offline"))
    if final.phase is not OfflinePhase.READY:
        raise typer.Exit(code=1)


@app.command()  # type: ignore[misc]
def disable(
    document_id: Annotated[str, typer.Argument(help="Remote document id to unpin.")],
) -> None:
    """Unpin a document and delete its offline copy."""

    async def _work(engine: Engine) -> None:
        result = engine.coordinator.disable(document_id)
        if result.is_err():
            console.print(f"[bold red]{result.unwrap_err()}[/bold red]")
            raise typer.Exit(code=1)

    _run(_work)
    console.print(f"[green]{document_id} is no longer kept offline.[/green]")


@app.command()  # type: ignore[misc]
def prune() -> None:
    """Delete cached copies of documents that are no longer pinned."""

    async def _work(engine: Engine) -> list[str]:
        return engine.coordinator.prune()

    removed = _run(_work)
    if removed:
        console.print(f"Removed {len(removed)} cached document(s): {', '.join(removed)}")
    else:
        console.print("[dim]Nothing to prune.[/dim]")


@app.command()  # type: ignore[misc]
def pages(
    document_id: Annotated[str, typer.Argument(help="Remote document id.")],
    page: Annotated[
        int | None,
        typer.Option("--page", "-p", min=1, help="Print this page (1-based)."),
    ] = None,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Pretend the network is down (cache only)."),
    ] = False,
) -> None:
    """Load a document's pages, preferring the offline copy."""

    async def _work(engine: Engine) -> list[str]:
        if offline:
            engine.network.update(online=False, unmetered=False)
        loaded = await engine.reader.load(document_id)
        console.print(
            f"[dim]{document_id}: {len(loaded.pages)} page(s) from {loaded.source.value}, "
            f"status {loaded.processing_status.value}[/dim]"
        )
        return loaded.pages

    try:
        loaded_pages = _run(_work)
    except OfflineCopyUnavailableError as exc:
        console.print(f"[bold red]offline copy unavailable:[/bold red] {exc.document_id}")
        raise typer.Exit(code=2) from exc
    except ShelfSyncError as exc:
        console.print(f"[bold red]Could not load {document_id}:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    if page is None:
        return
    if page > len(loaded_pages):
        console.print(f"[yellow]Only {len(loaded_pages)} page(s) available.[/yellow]")
        raise typer.Exit(code=1)
    console.print(Panel(loaded_pages[page - 1], title=f"Page {page}"))


# --------------------------------------------------------------------------- #
# Queues
# --------------------------------------------------------------------------- #


@app.command()  # type: ignore[misc]
def queue() -> None:
    """List reading positions and uploads waiting to be sent."""

    async def _work(engine: Engine) -> tuple[Table, Table]:
        positions = Table(title="Pending reading positions")
        positions.add_column("Document")
        positions.add_column("Page", justify="right")
        positions.add_column("Progress", justify="right")
        positions.add_column("Saved at")
        for entry in engine.positions.list():
            positions.add_row(
                entry.document_id,
                str(entry.page_number),
                f"{entry.progress:.0%}",
                entry.updated_at.isoformat(timespec="seconds"),
            )

        uploads = Table(title="Pending uploads (oldest first)")
        uploads.add_column("Id")
        uploads.add_column("File")
        uploads.add_column("Queued at")
        for upload_entry in engine.uploads.pending():
            uploads.add_row(
                upload_entry.id,
                upload_entry.file_name,
                upload_entry.created_at.isoformat(timespec="seconds"),
            )
        return positions, uploads

    positions_table, uploads_table = _run(_work)
    console.print(positions_table)
    console.print(uploads_table)


@app.command("record-position")  # type: ignore[misc]
def record_position(
    document_id: Annotated[str, typer.Argument(help="Remote document id.")],
    page: Annotated[int, typer.Argument(min=1, help="Current page (1-based).")],
    progress: Annotated[float, typer.Argument(min=0.0, max=1.0, help="Progress in [0, 1].")],
) -> None:
    """Save a reading position locally and try to sync it right away."""

    async def _work(engine: Engine) -> bool:
        return await engine.reconciler.record_position(document_id, page, progress)

    if _run(_work):
        console.print(f"[green]Position for {document_id} synced.[/green]")
    else:
        console.print(f"[yellow]Position for {document_id} queued for the next flush.[/yellow]")


@app.command()  # type: ignore[misc]
def upload(
    file: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            help="Document to upload (queued when the service is unreachable).",
        ),
    ],
) -> None:
    """Upload a file now, or queue it for the next flush."""

    async def _work(engine: Engine) -> Result[UploadOutcome, str]:
        return await engine.reconciler.upload_file(file)

    result = _run(_work)
    if result.is_err():
        console.print(f"[bold red]{result.unwrap_err()}[/bold red]")
        raise typer.Exit(code=1)
    if result.unwrap() is UploadOutcome.QUEUED:
        console.print(
            f"[yellow]{file.name} queued; it will upload when the service is reachable.[/yellow]"
        )
    else:
        console.print(f"[green]{file.name} uploaded.[/green]")


@app.command()  # type: ignore[misc]
def flush() -> None:
    """Send queued reading positions and uploads."""

    async def _work(engine: Engine) -> tuple[FlushReport, FlushReport]:
        return await engine.reconciler.flush_all()

    for report in _run(_work):
        _print_report(report)


if __name__ == "__main__":
    app()
