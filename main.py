import os
import sqlite3
import subprocess
import sys
import webbrowser
from typing import Dict, List, Optional, Tuple

import typer
from rich.console import Console

import database
from config import settings
from library import Library
from utils.ui_helpers import print_rows, print_stats_result, set_output_mode

APP_NAME = "Library CLI"

app = typer.Typer(help=f"{APP_NAME}: manage and serve the library database.", no_args_is_help=True)
console = Console()

# entity -> (Library method, columns shown)
ENTITIES: Dict[str, Tuple[str, List[str]]] = {
    "publishers": ("list_publishers", ["NAME", "PHONE", "ADDRESS"]),
    "books": ("list_books", ["BOOK_ID", "TITLE", "PUB_YEAR", "PUBLISHER_NAME", "Authors"]),
    "authors": ("list_authors", ["AUTHOR_NAME", "BOOK_ID"]),
    "branches": ("list_branches", ["BRANCH_ID", "BRANCH_NAME", "ADDRESS"]),
    "copies": ("list_copies", ["NO_OF_COPIES", "BookTitle", "BranchName"]),
    "cards": ("list_cards", ["CARD_NO"]),
    "lendings": ("list_lendings", ["BookTitle", "BranchName", "CARD_NO", "DATE_OUT", "DUE_DATE"]),
}


def _is_test_env() -> bool:
    return ("PYTEST_CURRENT_TEST" in os.environ) or (os.environ.get("LIB_CLI_TEST_MODE") == "1")


def _open_library() -> Library:
    try:
        return Library()
    except sqlite3.Error as e:
        console.print(f"[bold red]Could not open database {settings.database_file}: {e}[/]")
        raise typer.Exit(code=1)


@app.callback()
def main(
    output: str = typer.Option("plain", "--output", "-o", help="Output mode: plain, json or rich"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (defaults to LIBRARY_DB_FILE)"),
):
    set_output_mode(output)
    if db:
        database.use_database_file(db)


@app.command("init-db")
def cli_init_db():
    """Create the library tables if they do not exist."""
    lib = _open_library()
    lib.close()
    print(f"Database ready: {settings.database_file}")


@app.command("stats")
def cli_stats():
    """Show total books, branches and cards."""
    lib = _open_library()
    try:
        print_stats_result(lib.get_statistics())
    except sqlite3.Error as e:
        console.print(f"[bold red]Database error:[/] {e}")
        raise typer.Exit(code=1)
    finally:
        lib.close()


@app.command("list")
def cli_list(
    entity: str = typer.Argument(..., help=f"One of: {', '.join(ENTITIES)}"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Lendings only: number of rows, newest first"),
):
    """List the rows of one table."""
    if entity not in ENTITIES:
        console.print(f"[bold red]Unknown entity '{entity}'.[/] Choose from: {', '.join(ENTITIES)}")
        raise typer.Exit(code=2)
    method, columns = ENTITIES[entity]
    lib = _open_library()
    try:
        fetch = getattr(lib, method)
        rows = fetch(limit) if entity == "lendings" else fetch()
        print_rows(f"📚 {entity.capitalize()}", columns, rows)
    except sqlite3.Error as e:
        console.print(f"[bold red]Database error:[/] {e}")
        raise typer.Exit(code=1)
    finally:
        lib.close()


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (defaults to API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", help="Port (defaults to PORT / API_PORT)"),
    timeout: int = typer.Option(0, "--timeout", help="Seconds to run before exiting (0 = no timeout)"),
    no_browser: bool = typer.Option(False, "--no-browser", help="Do not open the web UI in a browser"),
):
    """Start the web UI and REST API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/"
    if _is_test_env():
        print(f"Starting web UI on {url}")
    else:
        console.print(f"[green]Starting web UI on [link={url}]{url}[/link][/]")
    if not no_browser:
        try:
            webbrowser.open(url)
        except webbrowser.Error:
            console.print("[yellow]Could not open a web browser automatically.[/]")

    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    env = dict(os.environ, LIBRARY_DB_FILE=settings.database_file)
    try:
        if timeout and timeout > 0:
            # No reloader in timeout mode so the child can be stopped cleanly
            proc = subprocess.Popen(args, env=env, start_new_session=(os.name != "nt"))
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    proc.kill()
                    proc.wait(timeout=3)
        else:
            args.append("--reload")
            subprocess.run(args, env=env)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not start uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
