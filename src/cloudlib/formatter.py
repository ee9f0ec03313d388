"""Rich display formatting for entries and plain-text listing export."""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from cloudlib.entry import Entry


def display_entries(
    entries: list[Entry],
    console: Console | None = None,
    title: str | None = None,
) -> None:
    """Render entries as a table of name, type and citation.

    Args:
        entries: Entries to show, in result order.
        console: Optional Console for testing (defaults to a new one).
        title: Optional table title (e.g. the query string).
    """
    con = console or Console()
    if not entries:
        con.print("[yellow]No matching entries.[/yellow]")
        return

    table = Table(title=title, show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Type", style="green")
    table.add_column("Citation", overflow="fold")
    for i, entry in enumerate(entries, start=1):
        table.add_row(str(i), entry.name, entry.entry_type.value, Text(entry.to_display_string()))
    con.print(table)


def display_entry(entry: Entry, console: Console | None = None) -> None:
    """Show every populated field of one entry in a panel."""
    con = console or Console()
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(overflow="fold")
    table.add_row("entry_type", entry.entry_type.value)
    for field_name in entry.fields():
        value = entry.show_attribute(field_name)
        if value:
            table.add_row(field_name, Text(value))
    for field_name in ("size", "date-added"):
        value = entry.show_attribute(field_name)
        if value:
            table.add_row(field_name, f"[dim]{value}[/dim]")
    con.print(Panel(table, title=entry.name, border_style="cyan"))
    con.print(Text(entry.to_display_string()))


def listing_lines(entries: Iterable[Entry]) -> Iterable[str]:
    """Plain-text index of the library: ``<citation>  [<name>]`` per entry."""
    for entry in entries:
        yield f"{entry.to_display_string()}  [{entry.name}]"
