"""
Command-line interface for the geo-event alert pipeline.

Commands:
- db-init: Initialize database
- db-stats: Show database statistics
- providers: List providers and their next run
- add-provider: Register or update a provider
- run: Run the pipeline once
- runs: Show recent runs
- send-notifications: Deliver pending notifications
- sweep-stale: Mark old unprocessed events processed

Example:
    $ geoevent-alerts --help
    $ geoevent-alerts run --limit 4 --config config/local.toml
    $ geoevent-alerts db-stats
"""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from geoevent_alerts import __version__
from geoevent_alerts.config import get_settings, load_settings
from geoevent_alerts.exceptions import ConfigurationError, ProviderNotFoundError, RunInProgressError
from geoevent_alerts.matching import StaleEventSweeper
from geoevent_alerts.models import GeoEventProvider
from geoevent_alerts.notifications import NotificationDispatcher, build_notifier_registry
from geoevent_alerts.pipeline import GeoEventOrchestrator, PipelineOptions
from geoevent_alerts.providers import build_default_registry
from geoevent_alerts.storage import SQLiteStorage
from geoevent_alerts.utils.logging import get_logger, setup_logging_from_settings
from geoevent_alerts.utils.time import to_iso8601, utc_now

console = Console()


def _open_storage(ctx: click.Context) -> SQLiteStorage:
    storage = SQLiteStorage.from_settings(ctx.obj["settings"])
    storage.initialize()
    return storage


@click.group()
@click.version_option(version=__version__, prog_name="geoevent-alerts")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None, verbose: bool) -> None:
    """Geo-event alert pipeline CLI.

    Fetch fire detections, match them against monitored sites and
    create notifications for site owners.
    """
    ctx.ensure_object(dict)

    settings = load_settings(config) if config else get_settings()

    ctx.obj["settings"] = settings
    ctx.obj["verbose"] = verbose

    setup_logging_from_settings(settings.logging, verbose=verbose)


@main.command("db-init")
@click.pass_context
def db_init(ctx: click.Context) -> None:
    """Initialize the database schema.

    Safe to run multiple times.
    """
    settings = ctx.obj["settings"]
    logger = get_logger(__name__)

    db_path = settings.database_path
    console.print(f"Initializing database: [cyan]{db_path}[/cyan]")

    with _open_storage(ctx):
        logger.info("database_initialized", path=str(db_path))
    console.print("[green]✓[/green] Database initialized successfully")


@main.command("db-stats")
@click.pass_context
def db_stats(ctx: click.Context) -> None:
    """Show database statistics."""
    settings = ctx.obj["settings"]
    db_path = settings.database_path

    if not db_path.exists():
        console.print(f"[red]Database not found:[/red] {db_path}")
        console.print("Run 'geoevent-alerts db-init' to create it.")
        return

    with SQLiteStorage.from_settings(settings) as storage:
        stats = storage.get_stats()

    table = Table(title="Database Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Database Path", str(db_path))
    table.add_row("File Size", f"{stats.get('file_size_mb', 0):.2f} MB")
    table.add_row("", "")
    table.add_row("Providers", f"{stats.get('geo_event_providers_count', 0):,}")
    table.add_row("  never run", f"{stats.get('providers_never_run', 0):,}")
    table.add_row("Geo events", f"{stats.get('geo_events_count', 0):,}")
    table.add_row("  unprocessed", f"{stats.get('unprocessed_events', 0):,}")
    table.add_row("Sites", f"{stats.get('sites_count', 0):,}")
    table.add_row("Site alerts", f"{stats.get('site_alerts_count', 0):,}")
    table.add_row("Alert methods", f"{stats.get('alert_methods_count', 0):,}")
    table.add_row("Notifications", f"{stats.get('notifications_count', 0):,}")
    table.add_row("  pending", f"{stats.get('pending_notifications', 0):,}")
    table.add_row("Pipeline runs", f"{stats.get('pipeline_runs_count', 0):,}")
    if "latest_run_day" in stats:
        day = stats["latest_run_day"]
        table.add_row(f"  on {day['date']}", f"{day['runs']:,} runs, {day['alerts_created'] or 0:,} alerts")

    if "event_date_range" in stats:
        date_range = stats["event_date_range"]
        table.add_row("", "")
        table.add_row("Event dates", f"{date_range['min']} - {date_range['max']}")

    console.print(table)


@main.command("providers")
@click.pass_context
def providers(ctx: click.Context) -> None:
    """List providers and when each is next due."""
    with _open_storage(ctx) as storage:
        rows = storage.list_providers()

    now = utc_now()
    table = Table(title="Geo-event Providers")
    table.add_column("ID", style="cyan")
    table.add_column("Adapter")
    table.add_column("Client")
    table.add_column("Slice", justify="right")
    table.add_column("Every (min)", justify="right")
    table.add_column("Last run")
    table.add_column("Next run")

    for provider in rows:
        next_run = provider.next_run_at
        if not provider.is_active:
            next_label = "[dim]inactive[/dim]"
        elif next_run is None:
            next_label = "[dim]unscheduled[/dim]"
        elif provider.is_due(now):
            next_label = "[green]due[/green]"
        else:
            next_label = to_iso8601(next_run)
        table.add_row(
            provider.id,
            provider.adapter_key or "-",
            provider.client_id,
            provider.slice,
            str(provider.fetch_frequency_minutes or "-"),
            to_iso8601(provider.last_run) if provider.last_run else "never",
            next_label,
        )

    console.print(table)


@main.command("add-provider")
@click.argument("provider_id")
@click.option("--client-id", required=True, help="Source type (e.g. MODIS_NRT, GEOSTATIONARY)")
@click.option("--api-key", help="Client API key")
@click.option("--config", "config_json", required=True, help="Provider config as JSON")
@click.option("--frequency", type=int, default=15, show_default=True, help="Minutes between fetches")
@click.option("--name", help="Display name")
@click.option("--inactive", is_flag=True, help="Store the provider as inactive")
@click.pass_context
def add_provider(
    ctx: click.Context,
    provider_id: str,
    client_id: str,
    api_key: str | None,
    config_json: str,
    frequency: int,
    name: str | None,
    inactive: bool,
) -> None:
    """Register or update a provider after validating its config."""
    try:
        config = json.loads(config_json)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--config") from e

    provider = GeoEventProvider(
        id=provider_id,
        name=name,
        client_id=client_id,
        client_api_key=api_key,
        config=config,
        is_active=not inactive,
        fetch_frequency_minutes=frequency,
    )

    registry = build_default_registry()
    try:
        registry.validate(provider)
    except (ConfigurationError, ProviderNotFoundError) as e:
        console.print(f"[red]Invalid provider:[/red] {e}")
        raise SystemExit(1) from e

    with _open_storage(ctx) as storage:
        storage.upsert_provider(provider)
    console.print(f"[green]✓[/green] Provider [cyan]{provider_id}[/cyan] saved")


@main.command("run")
@click.option("--limit", type=int, help="Providers to process (clamped to the configured maximum)")
@click.option("--concurrency", type=click.IntRange(min=1), help="Providers processed in parallel")
@click.pass_context
def run(ctx: click.Context, limit: int | None, concurrency: int | None) -> None:
    """Run the pipeline once for the providers that are due."""
    settings = ctx.obj["settings"]

    console.print("[bold]Geo-event Alerts - Pipeline Run[/bold]")

    storage = _open_storage(ctx)
    registry = build_default_registry(timeout=settings.pipeline.fetch_timeout_seconds)
    orchestrator = GeoEventOrchestrator.from_settings(
        storage,
        registry,
        settings,
        options=PipelineOptions.from_settings(settings, trigger="cli", concurrency=concurrency),
    )

    try:
        with console.status("[bold green]Processing providers..."):
            summary = orchestrator.run(settings.pipeline.clamp_limit(limit))
    except RunInProgressError as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise SystemExit(1) from e
    finally:
        storage.close()

    console.print()
    console.print("[bold]Run Complete[/bold]")
    console.print(f"  Providers: [green]{summary.processed_providers}[/green]")
    console.print(f"  Events created: [green]{summary.events_created:,}[/green]")
    console.print(f"  Alerts created: [green]{summary.alerts_created:,}[/green]")
    console.print(f"  Notifications: [green]{summary.notifications_created:,}[/green]")
    color = "green" if summary.run_status == "completed" else "yellow"
    console.print(f"  Status: [{color}]{summary.run_status}[/]")

    if summary.errors:
        table = Table(title="Provider Errors")
        table.add_column("Provider", style="cyan")
        table.add_column("Stage")
        table.add_column("Error", style="red")
        for error in summary.errors:
            table.add_row(error["providerId"], error["stage"], error["error"])
        console.print(table)


@main.command("runs")
@click.option("--limit", type=int, default=10, show_default=True, help="Runs to show")
@click.pass_context
def runs(ctx: click.Context, limit: int) -> None:
    """Show recent pipeline runs."""
    with _open_storage(ctx) as storage:
        recent = storage.get_pipeline_runs(limit)

    table = Table(title="Pipeline Runs")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Trigger")
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("Providers", justify="right")
    table.add_column("Events", justify="right")
    table.add_column("Alerts", justify="right")
    table.add_column("Errors", justify="right")

    for item in recent:
        table.add_row(
            str(item.id),
            item.trigger,
            to_iso8601(item.started_at),
            item.status.value,
            f"{item.providers_processed}/{item.providers_processed + item.providers_failed}",
            f"{item.events_created:,}",
            f"{item.alerts_created:,}",
            str(len(item.errors)),
        )

    console.print(table)


@main.command("send-notifications")
@click.option("--limit", type=int, help="Notifications to deliver (default: configured batch size)")
@click.option(
    "--log-method",
    "log_methods",
    multiple=True,
    help="Deliver this method to the log instead (repeatable)",
)
@click.pass_context
def send_notifications(ctx: click.Context, limit: int | None, log_methods: tuple[str, ...]) -> None:
    """Deliver pending notifications."""
    settings = ctx.obj["settings"]

    with _open_storage(ctx) as storage:
        notifiers = build_notifier_registry(settings, log_methods=log_methods)
        dispatcher = NotificationDispatcher.from_settings(storage, notifiers, settings)
        result = dispatcher.deliver_pending(limit)

    console.print(f"Delivered: [green]{result.delivered}[/green]  Failed: [red]{result.failed}[/red]")
    for method in result.disabled_methods:
        console.print(f"[yellow]Disabled after repeated failures:[/yellow] {method}")


@main.command("sweep-stale")
@click.option("--hours", type=float, default=24.0, show_default=True, help="Age threshold in hours")
@click.option("--provider", "provider_id", help="Only sweep this provider")
@click.pass_context
def sweep_stale(ctx: click.Context, hours: float, provider_id: str | None) -> None:
    """Mark unprocessed events older than HOURS as processed without matching."""
    with _open_storage(ctx) as storage:
        try:
            swept = StaleEventSweeper(storage).sweep(hours, provider_id=provider_id)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--hours") from e

    console.print(f"Swept [green]{swept:,}[/green] stale events")


if __name__ == "__main__":
    main()
