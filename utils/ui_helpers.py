import os
import json
from typing import List, Any, Dict, Sequence
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def print_rows(title: str, columns: Sequence[str], rows: List[Dict[str, Any]]) -> None:
    """Print query rows in the current output mode.
    - plain: one line per row, columns joined with ' | ', or 'No records found.'
    - json: JSON array of the rows as returned by the database
    - rich: Rich table
    """
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
        return

    if not rows:
        print("No records found.")
        return

    if mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for col in columns:
            table.add_column(col)
        for row in rows:
            table.add_row(*(_cell(row.get(col)) for col in columns))
        _console.print(table)
    else:
        for row in rows:
            print(" | ".join(_cell(row.get(col)) for col in columns))


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print dashboard totals in the current output mode."""
    mode = get_output_mode()

    books = stats.get("totalBooks", 0)
    branches = stats.get("totalBranches", 0)
    cards = stats.get("totalCards", 0)

    if mode == "json":
        print(json.dumps({"totalBooks": books, "totalBranches": branches, "totalCards": cards}))
    elif mode == "rich":
        content = (
            f"[bold]Total Books:[/] {books}\n"
            f"[bold]Total Branches:[/] {branches}\n"
            f"[bold]Total Cards:[/] {cards}"
        )
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        print(f"Total Books: {books}")
        print(f"Total Branches: {branches}")
        print(f"Total Cards: {cards}")
