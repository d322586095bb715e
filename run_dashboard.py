"""Mini README: Entry point CLI for the Project Ledger API and dashboard.

This script exposes a Typer CLI to start the FastAPI application with
configurable host, port and production flags, to migrate records from the
first ledger version, and to print per-project totals. Settings come from
``PROJECTLEDGER_*`` environment variables when available.
"""

from __future__ import annotations

import typer
import uvicorn

from projectledger.configuration import get_settings
from projectledger.logging_utils import configure_root_logger
from projectledger.services import LedgerService, ProjectService, migrate_legacy_records
from projectledger.store import create_store

cli = typer.Typer(help="Launch and manage the Project Ledger API and dashboard.")


@cli.command()
def run(
    host: str = typer.Option(None, help="Host interface to bind."),
    port: int = typer.Option(None, help="Port to listen on."),
    production: bool = typer.Option(
        False, help="Use production server settings (disable auto-reload)."
    ),
) -> None:
    """Start the FastAPI application using uvicorn."""

    settings = get_settings()
    effective_host = host or settings.interface_host
    effective_port = port or settings.interface_port
    configure_root_logger(settings.log_level)

    # Browsers cannot open the 0.0.0.0 / :: wildcard addresses.
    browser_host = "127.0.0.1" if effective_host in {"0.0.0.0", "::"} else effective_host
    typer.echo(
        "Starting Project Ledger on "
        f"{effective_host}:{effective_port} ({settings.store_backend.value} store).\n"
        "Open your browser at "
        f"http://{browser_host}:{effective_port}"
    )
    uvicorn.run(
        "projectledger.interface.web_app:create_application",
        host=effective_host,
        port=effective_port,
        factory=True,
        reload=not (production or settings.is_production),
    )


@cli.command("migrate-legacy")
def migrate_legacy(
    verbose: bool = typer.Option(False, help="Print a line for every record."),
) -> None:
    """Move flat PnL records from the first ledger version into entry groups."""

    settings = get_settings()
    configure_root_logger(settings.log_level)
    store = create_store(settings)
    try:
        report = migrate_legacy_records(store, LedgerService(store, settings))
    finally:
        store.close()
    if verbose:
        for message in report.messages:
            typer.echo(message)
    typer.echo("Migration completed:")
    typer.echo(f"  Migrated: {report.migrated}")
    typer.echo(
        f"  Skipped: {report.skipped} "
        f"(unknown project {report.skipped_unknown_project}, "
        f"duplicate {report.skipped_duplicate}, invalid {report.skipped_invalid})"
    )


@cli.command()
def summary() -> None:
    """Print inbound, outbound and profit for every project."""

    settings = get_settings()
    configure_root_logger(settings.log_level)
    store = create_store(settings)
    try:
        summaries = ProjectService(store).list_projects()
    finally:
        store.close()
    if not summaries:
        typer.echo("No projects found.")
        return
    width = max(len(item.project.name) for item in summaries)
    for item in summaries:
        typer.echo(
            f"{item.project.name:<{width}}  "
            f"in {item.totals.income:>12,.2f}  "
            f"out {item.totals.expense:>12,.2f}  "
            f"net {item.totals.net:>12,.2f}"
        )


if __name__ == "__main__":
    cli()
