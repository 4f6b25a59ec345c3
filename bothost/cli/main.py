"""bothost CLI — run the host and manage it from a terminal."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bothost.exceptions import BothostError

console = Console()

app = typer.Typer(
    name="bothost",
    help="bothost -- host chat bots as supervised processes.",
    no_args_is_help=True,
)


def _service():
    from bothost.cli.context import build_service, prepare, run_async

    service = build_service()
    run_async(prepare(service, reconcile=False))
    return service


@app.command("serve")
def serve(
    port: int = typer.Option(None, "--port", "-p", help="Port to run on"),
    host: str = typer.Option(None, "--host", help="Host to bind to"),
):
    """Run the dashboard API and the bot supervisor."""
    from bothost.cli.context import run_async
    from bothost.serve import main

    console.print("[bold cyan]bothost[/bold cyan] starting. Press Ctrl+C to stop.")
    run_async(main(host=host, port=port))


@app.command("verify")
def verify(
    user_id: str = typer.Argument(help="Chat user id to issue a code for"),
    username: str = typer.Option("", "--username", "-u", help="Display name"),
):
    """Issue a login code, as the chat /verify command does."""
    from bothost.chat.commands import verify as verify_command
    from bothost.cli.context import run_async
    from bothost.config import settings

    service = _service()
    reply = run_async(verify_command(service, user_id, username, login_url=settings.login_url))
    body = "\n".join(f"[bold]{f.name}:[/bold] {f.value}" for f in reply.fields)
    console.print(Panel(
        f"{reply.content}\n\n{body}\n\n{reply.link_url}",
        title=reply.title,
        border_style="cyan",
    ))


@app.command("bots")
def bots(user_id: str = typer.Argument(help="Chat user id of the tenant")):
    """List a tenant's bots."""
    from bothost.cli.context import run_async

    service = _service()
    tenant = run_async(service.registry.find_tenant(user_id))
    if tenant is None:
        console.print(f"[red]No account for {user_id}[/red]")
        raise typer.Exit(1)

    rows = run_async(service.list_bots(tenant.id))
    if not rows:
        console.print("[dim]No bots yet.[/dim]")
        return

    table = Table(title=f"Bots: {tenant.username or tenant.external_id}")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Runtime", style="blue")
    table.add_column("Status")
    table.add_column("Created", style="dim")
    for b in rows:
        style = "bold green" if b.status.value == "running" else "dim"
        table.add_row(
            b.id,
            b.name,
            b.runtime,
            f"[{style}]{b.status.value}[/{style}]",
            b.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@app.command("create")
def create(
    user_id: str = typer.Argument(help="Chat user id of the owning tenant"),
    name: str = typer.Argument(help="Bot name"),
    file: Path = typer.Option(None, "--file", "-f", help="Source file or .zip to import"),
    runtime: str = typer.Option(None, "--runtime", "-r", help="node or python"),
):
    """Create a bot from a local file or zip archive."""
    from bothost.cli.context import run_async
    from bothost.service import Upload

    service = _service()
    tenant = run_async(service.registry.find_tenant(user_id))
    if tenant is None:
        console.print(f"[red]No account for {user_id}[/red]")
        raise typer.Exit(1)
    if file is None:
        console.print("[red]--file is required[/red]")
        raise typer.Exit(1)
    if not file.is_file():
        console.print(f"[red]No such file: {file}[/red]")
        raise typer.Exit(1)

    # create_bot consumes its upload.
    with tempfile.TemporaryDirectory(prefix="bothost-") as staging:
        staged = Path(staging) / file.name
        shutil.copy2(file, staged)
        try:
            bot = run_async(service.create_bot(
                tenant.id, name, upload=Upload(path=staged, filename=file.name), runtime=runtime,
            ))
        except BothostError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)
    console.print(f"[green]Created bot {bot.name} ({bot.id})[/green]")


@app.command("stats")
def stats():
    """Show platform statistics."""
    from bothost.cli.context import run_async

    service = _service()
    s = run_async(service.platform_stats())
    console.print(Panel(
        f"Users:    {s['users']}\n"
        f"Bots:     {s['bots']}\n"
        f"Running:  {s['running_bots']}\n"
        f"Stopped:  {s['stopped_bots']}",
        title="Platform",
        border_style="cyan",
    ))


@app.command("version")
def version_cmd():
    """Show bothost version."""
    from bothost import __version__
    console.print(f"bothost v{__version__}")


if __name__ == "__main__":
    app()
