"""
TransferFlow CLI Main Entry Point.

Walks a user through choosing a data type and services, authorizing both
services, and starting the transfer.
"""

from __future__ import annotations

import json
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, urlsplit

import click
import humanize
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from transferflow import __version__
from transferflow.core.config import TransferFlowConfig, load_config
from transferflow.core.models import FlowResult, Screen
from transferflow.core.navigation import LoggingRouter, Router
from transferflow.core.session import TransferSession

console = Console()


class ConsoleRouter:
    """Router that tells the user where to go next."""

    def __init__(self, quiet: bool = False) -> None:
        self.quiet = quiet

    def navigate(self, screen: Screen) -> None:
        if not self.quiet:
            console.print(f"[dim]→ {screen.value}[/dim]")

    def redirect_external(self, url: str) -> None:
        console.print(f"[cyan]Open this URL to authorize:[/cyan] {url}")


def get_session(ctx: click.Context) -> TransferSession:
    """Get or create session from context."""
    if "session" not in ctx.obj:
        config = ctx.obj.get("config") or load_config()
        # JSON output reports redirects in the result body instead
        router: Router = (
            LoggingRouter()
            if ctx.obj.get("json_output", False)
            else ConsoleRouter(quiet=ctx.obj.get("quiet", False))
        )
        session = TransferSession(config=config, router=router)
        ctx.obj["session"] = session
        ctx.call_on_close(session.close)
    return ctx.obj["session"]


def report(ctx: click.Context, result: FlowResult[Any], success_message: str | None = None) -> None:
    """Print a flow result and exit non-zero on a user-visible failure."""
    json_output = ctx.obj.get("json_output", False)

    if json_output:
        click.echo(
            json.dumps(
                {
                    "success": result.success,
                    "error": result.message,
                    "errorType": type(result.error).__name__ if result.error else None,
                    "redirect": result.redirect.value if result.redirect else None,
                    "externalUrl": result.external_url,
                },
                indent=2,
            )
        )
    elif result.success:
        if success_message and not ctx.obj.get("quiet", False):
            console.print(f"[green]✓ {success_message}[/green]")
    elif result.error is not None and result.error.user_visible:
        console.print(f"[red]✗ {result.error}[/red]")
    else:
        console.print("[yellow]The transfer was restarted from the beginning.[/yellow]")

    if not result.success and (result.error is None or result.error.user_visible):
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="TransferFlow")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    json_output: bool,
    quiet: bool,
) -> None:
    """
    TransferFlow - Move your data between services.

    Authorizes an export and an import service, then hands the credentials
    to a transfer worker.
    """
    ctx.ensure_object(dict)

    if config:
        loaded = TransferFlowConfig.load(config)
        loaded.ensure_directories()
        ctx.obj["config"] = loaded
    else:
        ctx.obj["config"] = load_config()

    ctx.obj["json_output"] = json_output
    ctx.obj["quiet"] = quiet


@cli.command("data-types")
@click.pass_context
def data_types(ctx: click.Context) -> None:
    """List the data types that can be transferred."""
    session = get_session(ctx)

    with console.status("Fetching data types..."):
        result = session.list_data_types()

    if not result.success:
        report(ctx, result)
        return

    if ctx.obj.get("json_output", False):
        click.echo(json.dumps(result.data, indent=2))
        return

    table = Table(title="Data Types")
    table.add_column("Name", style="cyan")
    for name in result.data or []:
        table.add_row(name)
    console.print(table)


@cli.command("services")
@click.argument("data_type", required=False)
@click.pass_context
def services(ctx: click.Context, data_type: str | None) -> None:
    """List export and import services for a data type."""
    session = get_session(ctx)

    with console.status("Fetching services..."):
        result = session.list_services(data_type)

    if not result.success or result.data is None:
        report(ctx, result)
        return

    if ctx.obj.get("json_output", False):
        click.echo(json.dumps(result.data.to_dict(), indent=2))
        return

    table = Table(title=f"Services for {data_type or session.progress.data_type}")
    table.add_column("Export", style="green")
    table.add_column("Import", style="magenta")
    exports = result.data.export_services
    imports = result.data.import_services
    for i in range(max(len(exports), len(imports))):
        table.add_row(
            exports[i] if i < len(exports) else "",
            imports[i] if i < len(imports) else "",
        )
    console.print(table)


@cli.command("status")
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show where the current transfer stands."""
    session = get_session(ctx)
    state = session.status()

    if ctx.obj.get("json_output", False):
        data = state.to_dict()
        # Credential material stays out of console output
        for key in ("export_auth_data", "import_auth_data"):
            data[key] = "<present>" if data[key] else None
        click.echo(json.dumps(data, indent=2))
        return

    def show(value: str | None) -> str:
        return value if value else "[dim](none)[/dim]"

    panel = Panel(
        f"""[cyan]Step:[/cyan] {state.step.name}
[cyan]Transfer:[/cyan] {show(state.transfer_id)}
[cyan]Data type:[/cyan] {show(state.data_type)}
[cyan]Export service:[/cyan] {show(state.export_service)}
[cyan]Import service:[/cyan] {show(state.import_service)}
[cyan]Export authorized:[/cyan] {"Yes" if state.export_auth_data else "No"}
[cyan]Import authorized:[/cyan] {"Yes" if state.import_auth_data else "No"}
[cyan]Worker key:[/cyan] {"Received" if state.worker_public_key else "Pending"}""",
        title="Transfer Status",
    )
    console.print(panel)


@cli.command("begin")
@click.pass_context
def begin(ctx: click.Context) -> None:
    """Start a new transfer."""
    session = get_session(ctx)
    report(ctx, session.begin(), "Choose a data type with `transferflow select-data`")


@cli.command("select-data")
@click.argument("data_type")
@click.option("--no-validate", is_flag=True, help="Skip checking the data type against the backend")
@click.pass_context
def select_data(ctx: click.Context, data_type: str, no_validate: bool) -> None:
    """Choose the type of data to transfer."""
    session = get_session(ctx)
    report(ctx, session.select_data(data_type, validate=not no_validate), f"Data type: {data_type}")


@cli.command("select-services")
@click.argument("export_service")
@click.argument("import_service")
@click.option("--no-validate", is_flag=True, help="Skip checking the services against the backend")
@click.pass_context
def select_services(
    ctx: click.Context, export_service: str, import_service: str, no_validate: bool
) -> None:
    """Choose the service to export from and the one to import into."""
    session = get_session(ctx)
    result = session.select_services(export_service, import_service, validate=not no_validate)
    report(ctx, result, f"{export_service} → {import_service}")


@cli.command("create")
@click.pass_context
def create(ctx: click.Context) -> None:
    """Create the transfer job and begin export authorization."""
    session = get_session(ctx)

    with console.status("Creating transfer job..."):
        result = session.create_transfer()

    report(ctx, result, "Transfer job created")


@cli.command("callback")
@click.argument("service")
@click.option("--url", "callback_url", help="Full callback URL the service redirected to")
@click.option("--code", help="OAuth 2 authorization code")
@click.option("--oauth-verifier", help="OAuth 1 verifier")
@click.option("--frob", help="Legacy frob token")
@click.option("--error", "error", help="Error reported by the service")
@click.pass_context
def callback(
    ctx: click.Context,
    service: str,
    callback_url: str | None,
    code: str | None,
    oauth_verifier: str | None,
    frob: str | None,
    error: str | None,
) -> None:
    """Complete an authorization redirect from SERVICE."""
    session = get_session(ctx)

    params: dict[str, str] = {}
    if callback_url:
        params.update(parse_qsl(urlsplit(callback_url).query))
    for key, value in (
        ("code", code),
        ("oauth_verifier", oauth_verifier),
        ("frob", frob),
        ("error", error),
    ):
        if value:
            params[key] = value

    with console.status(f"Completing {service} authorization..."):
        result = session.handle_callback(service, params)

    report(ctx, result, f"{service} authorized")


@cli.command("reserve")
@click.pass_context
def reserve(ctx: click.Context) -> None:
    """Retry reserving a transfer worker."""
    session = get_session(ctx)
    report(ctx, session.reserve_worker(), "Worker reservation requested")


@cli.command("initiate")
@click.pass_context
def initiate(ctx: click.Context) -> None:
    """Wait for a worker and start the transfer."""
    session = get_session(ctx)
    polling = session.config.polling
    budget = timedelta(milliseconds=polling.interval_ms * polling.max_attempts)

    if not ctx.obj.get("quiet", False) and not ctx.obj.get("json_output", False):
        console.print(
            f"Waiting up to {humanize.naturaldelta(budget)} for a transfer worker..."
        )

    result = session.initiate(wait=False)
    poller = session.poller
    if result.success and poller is not None and not ctx.obj.get("json_output", False):
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
        ) as progress:
            task = progress.add_task("Waiting for worker...", total=poller.max_attempts)
            while not poller.is_finished:
                poller.wait(0.2)
                progress.update(task, completed=poller.attempts)
            progress.update(task, completed=poller.attempts)
    elif poller is not None:
        poller.wait()

    if result.success:
        result = session.initiation_result()
    report(ctx, result, "Transfer started")


@cli.command("reset")
@click.pass_context
def reset(ctx: click.Context) -> None:
    """Abandon the current transfer."""
    session = get_session(ctx)
    report(ctx, session.reset(), "Transfer state cleared")


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
