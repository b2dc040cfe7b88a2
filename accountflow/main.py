"""
Account Flow CLI Application.

Command-line interface for running the web app and maintaining links.
"""

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from accountflow.accounts.models import get_session, init_db
from accountflow.logging_utils import install_log_safety

# Initialize CLI app
app = typer.Typer(
    name="accountflow",
    help="Account Flow - registration, login and email-link account recovery",
    add_completion=False,
)

# Sub-command groups
links_app = typer.Typer(help="Single-use link maintenance commands")

app.add_typer(links_app, name="links")

console = Console()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
try:
    install_log_safety()
except Exception:
    # Logging should never prevent app startup.
    pass


def init():
    """Initialize database."""
    init_db()


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the web server."""
    import uvicorn

    init()
    console.print(f"[cyan]Serving on http://{host}:{port}[/cyan]")
    uvicorn.run("accountflow.web.server:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_database():
    """Create database tables."""
    init()
    console.print("[green]Database initialized[/green]")


# ==================== LINK COMMANDS ====================


@links_app.command("purge")
def links_purge():
    """Delete consumed and expired links."""
    from accountflow.auth.links import purge_dead_links

    init()
    session = get_session()
    try:
        removed = purge_dead_links(session)
    finally:
        session.close()

    console.print(f"[green]Purged {removed} dead link(s)[/green]")


@links_app.command("list")
def links_list(
    user_id: Optional[int] = typer.Option(None, "--user-id", "-u", help="Only links for this user"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of links to show"),
):
    """List recent links (codes are not shown)."""
    from accountflow.auth.links import list_links

    init()
    session = get_session()
    try:
        links = list_links(session, user_id=user_id)[:limit]

        if not links:
            console.print("[yellow]No links found[/yellow]")
            return

        table = Table(title="Links")
        table.add_column("ID", justify="right")
        table.add_column("User", justify="right")
        table.add_column("Purpose")
        table.add_column("Status")
        table.add_column("Expires (UTC)")

        for link in links:
            status = "[green]usable[/green]" if link.is_usable else "[dim]dead[/dim]"
            table.add_row(
                str(link.id),
                str(link.reference_id),
                link.purpose.value,
                status,
                link.expire_at.strftime("%Y-%m-%d %H:%M"),
            )

        console.print(table)
    finally:
        session.close()


if __name__ == "__main__":
    app()
