#!/usr/bin/env python3
"""
Login Control CLI - Command Line Interface for the Login Management Engine.

Provides commands for draining the login management queue, checking the
partner token and system health, direct partner calls, viewing audit
records, and running the API server or the scheduler.
"""

import logging
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..auth.token_cache import token_preview
from ..config import Settings
from ..engine import build_components
from ..exceptions import AuthError, PersistenceError

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()


class LoginController:
    """Main controller for Login Engine operations."""

    def __init__(self, config_path: Optional[str] = None, mock_mode: Optional[bool] = None):
        """Initialize the login controller."""
        overrides: Dict[str, Any] = {}
        if mock_mode is not None:
            overrides["mock_mode"] = mock_mode

        self.settings = Settings.from_file(config_path, **overrides)
        logging.basicConfig(level=self.settings.log_level.upper(), format=LOG_FORMAT)

        self.settings.validate_runtime()
        self.components = build_components(self.settings)

        console.print(f"[green]Login Engine initialized (mock_mode={self.settings.mock_mode})[/green]")

    def require_token_cache(self):
        if self.components.token_cache is None:
            raise click.ClickException("Token commands are unavailable in mock mode")
        return self.components.token_cache


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Path to JSON configuration file')
@click.option('--mock/--real', default=None, help='Use the in-memory partner mock or the real partner API')
@click.pass_context
def cli(ctx, config, mock):
    """Login Engine Control CLI - Partner Login Queue Processing"""
    ctx.ensure_object(dict)
    try:
        ctx.obj['controller'] = LoginController(config, mock)
    except ValueError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.pass_context
def process(ctx):
    """Drain the pending queue once."""
    controller = ctx.obj['controller']

    result = controller.components.orchestrator.run()
    if result.skipped:
        console.print("[yellow]Processing already in progress[/yellow]")
        return

    if result.total_items == 0:
        console.print("[yellow]No pending items[/yellow]")
        return

    table = Table(title="Processing Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("Total Items", str(result.total_items))
    table.add_row("Processed", str(result.processed))
    table.add_row("Successful", str(result.success_count))
    table.add_row("Failed", str(result.error_count))
    table.add_row("Interrupted", "yes" if result.interrupted else "no")

    console.print(table)

    if result.failed_item_ids:
        console.print(f"[red]Failed items: {', '.join(str(i) for i in result.failed_item_ids)}[/red]")


@cli.command()
@click.pass_context
def status(ctx):
    """Show the number of pending items."""
    controller = ctx.obj['controller']

    pending = controller.components.orchestrator.get_pending_count()
    console.print(f"Pending items: [bold]{pending}[/bold]")


@cli.command()
@click.pass_context
def health(ctx):
    """Check the item store and the partner token exchange."""
    controller = ctx.obj['controller']
    components = controller.components
    healthy = True

    table = Table(title="System Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="magenta")

    try:
        components.store.ping()
        table.add_row("Database", "[green]healthy[/green]")
    except PersistenceError as e:
        table.add_row("Database", f"[red]unhealthy: {e}[/red]")
        healthy = False

    if components.token_cache is None:
        table.add_row("Partner API", "[yellow]mock[/yellow]")
    else:
        try:
            components.token_cache.get_valid_token()
            table.add_row("Partner API", "[green]healthy[/green]")
        except AuthError as e:
            table.add_row("Partner API", f"[red]unhealthy: {e}[/red]")
            healthy = False

    console.print(table)

    if not healthy:
        ctx.exit(1)


@cli.command()
@click.option('--refresh', is_flag=True, help='Discard the cached token and fetch a new one')
@click.pass_context
def token(ctx, refresh):
    """Obtain a partner token and show a preview."""
    controller = ctx.obj['controller']
    token_cache = controller.require_token_cache()

    if refresh:
        token_cache.invalidate()

    try:
        value = token_cache.get_valid_token()
    except AuthError as e:
        raise click.ClickException(f"Token exchange failed: {e}") from e

    console.print(Panel.fit(
        f"[bold blue]{token_preview(value)}[/bold blue]\n"
        f"Expires in: {token_cache.expires_in_seconds()}s"
    ))


@cli.command()
@click.argument('external_key')
@click.pass_context
def block(ctx, external_key):
    """Block a partner user directly."""
    controller = ctx.obj['controller']

    result = controller.components.connector.block_user(external_key)
    if result.success:
        console.print(f"[green]✓ User {external_key} blocked[/green]")
    else:
        raise click.ClickException(f"Block failed: {result.message}")


@cli.command()
@click.argument('external_key')
@click.pass_context
def unblock(ctx, external_key):
    """Unblock a partner user directly."""
    controller = ctx.obj['controller']

    result = controller.components.connector.unblock_user(external_key)
    if not result.success:
        raise click.ClickException(f"Unblock failed: {result.message}")

    console.print(f"[green]✓ User {external_key} unblocked[/green]")
    if result.data:
        console.print("[blue]A new password was generated[/blue]")


@cli.command()
@click.argument('item_id', type=int)
@click.option('--limit', default=50, help='Maximum number of records to show')
@click.pass_context
def audit(ctx, item_id, limit):
    """Show the audit trail of a queue item."""
    controller = ctx.obj['controller']

    records = controller.components.audit_logger.get_events(item_id=item_id, limit=limit)
    if not records:
        console.print(f"[yellow]No audit records found for item {item_id}[/yellow]")
        return

    table = Table(title=f"Audit Trail for item {item_id}")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Status", style="yellow")
    table.add_column("Change Log", style="magenta")
    table.add_column("External Key", style="blue")
    table.add_column("Success", style="red")

    for record in records:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.management_type.value,
            record.status.value,
            record.change_log,
            record.external_key or "",
            "✓" if record.success else "✗"
        )

    console.print(table)


@cli.command()
@click.option('--port', default=8000, help='Port to run the API server on')
@click.option('--host', default='127.0.0.1', help='Host to bind the API server to')
@click.pass_context
def serve(ctx, port, host):
    """Start the Login Engine API server."""
    from ..api.server import start_server

    controller = ctx.obj['controller']

    console.print(f"[green]Starting Login Engine API server on {host}:{port}[/green]")
    console.print("[blue]Press Ctrl+C to stop[/blue]")

    try:
        start_server(host=host, port=port, reload=False, log_level=controller.settings.log_level.lower())
    except KeyboardInterrupt:
        console.print("[yellow]Server stopped[/yellow]")


@cli.command()
@click.pass_context
def schedule(ctx):
    """Run the periodic scheduler in the foreground."""
    controller = ctx.obj['controller']
    scheduler = controller.components.scheduler

    console.print(f"[green]Processing the queue every {scheduler.interval_seconds}s[/green]")
    console.print("[blue]Press Ctrl+C to stop[/blue]")

    scheduler.start()
    try:
        while scheduler.thread is not None and scheduler.thread.is_alive():
            scheduler.thread.join(timeout=1.0)
    except KeyboardInterrupt:
        console.print("[yellow]Stopping scheduler[/yellow]")
    finally:
        controller.components.close()


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
