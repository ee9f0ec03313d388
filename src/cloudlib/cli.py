"""CLI entry point for cloudlib.

Provides commands:
  - new-library / delete-library: create or destroy the bucket and domain
  - add: upload a file and enter its bibliographic metadata
  - list: plain-text index of every entry
  - dump / restore: JSON-lines export and import of all metadata
  - find: search with the field-prefixed query grammar
  - show, get, del, mod, bib, url: operate on one or more entries by name
  - config: manage AWS credentials in the system keyring
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import keyring
import typer
from keyring.errors import KeyringError, PasswordDeleteError
from rich.console import Console

from cloudlib.client import AwsLibraryClient
from cloudlib.config import (
    ACCESS_KEY_NAME,
    SECRET_KEY_NAME,
    SERVICE_NAME,
    load_library_config,
)
from cloudlib.entry import Entry
from cloudlib.exceptions import CloudlibError, DuplicateLibraryError
from cloudlib.formatter import display_entries, display_entry, listing_lines
from cloudlib.models import EntryType, fields_for
from cloudlib.services import LibraryService

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="cloudlib - a document library in S3 with searchable SimpleDB metadata",
    rich_markup_mode="rich",
)
console = Console()

# Commands that never touch the remote library
_LOCAL_COMMANDS = {"config"}

config_app = typer.Typer(help="Manage AWS credentials in the system keyring")
app.add_typer(config_app, name="config")


def _configure_logging(debug: bool) -> None:
    """Send DEBUG records from cloudlib and botocore to ~/.cloudlib/debug.log."""
    if not debug:
        logging.getLogger("botocore").setLevel(logging.WARNING)
        return
    log_dir = Path.home() / ".cloudlib"
    log_dir.mkdir(exist_ok=True)
    handler = logging.FileHandler(log_dir / "debug.log", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    for name in ("cloudlib", "botocore"):
        named = logging.getLogger(name)
        named.setLevel(logging.DEBUG)
        named.addHandler(handler)


@app.callback(invoke_without_command=True)
def app_callback(
    ctx: typer.Context,
    library: Annotated[
        str | None,
        typer.Option(
            "--library",
            "-L",
            help="Library name (S3 bucket and SimpleDB domain)",
            envvar="CLOUDLIB_LIBRARY_NAME",
        ),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to settings JSON"),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Log remote calls to ~/.cloudlib/debug.log"),
    ] = False,
) -> None:
    """Connect to the library for commands that need it."""
    _configure_logging(debug)

    if ctx.invoked_subcommand is None or ctx.invoked_subcommand in _LOCAL_COMMANDS:
        return
    # Skip initialization when --help is requested (Typer runs callback before subcommand)
    if "--help" in sys.argv or "-h" in sys.argv:
        return
    # Already provided (tests inject a service through the Click context)
    if ctx.obj is not None:
        return

    try:
        config = load_library_config(library, config_path)
    except RuntimeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    ctx.obj = LibraryService(config, AwsLibraryClient(config))


def get_service(ctx: typer.Context) -> LibraryService:
    """Type-safe accessor for the LibraryService stored on the Typer context."""
    if ctx.obj is None:
        console.print("[red]Library not initialized. Are credentials configured?[/red]")
        raise typer.Exit(code=1)
    return ctx.obj


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Print library errors in red and exit with status 1."""
    try:
        yield
    except CloudlibError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)


def parse_assignments(assignments: list[str] | None) -> dict[str, str]:
    """Parse ``field=value`` options into a dict."""
    result: dict[str, str] = {}
    for item in assignments or []:
        field_name, sep, value = item.partition("=")
        if not sep or not field_name.strip():
            raise typer.BadParameter(
                f"Invalid assignment '{item}'. Expected field=value (e.g. title='On Denoting')"
            )
        result[field_name.strip()] = value
    return result


def prompt_fields(entry: Entry, fields: list[str]) -> None:
    """Prompt for each field, offering the current value as default."""
    for field_name in fields:
        current = entry.show_attribute(field_name)
        answer = typer.prompt(field_name, default=current, show_default=bool(current))
        if answer != current:
            entry.set_attribute(field_name, answer)


SetOption = Annotated[
    list[str] | None,
    typer.Option("--set", "-s", help="Field assignment field=value (repeatable)"),
]


# ----------------------------------------------------------------------
# Library management
# ----------------------------------------------------------------------


@app.command("new-library")
def new_library(ctx: typer.Context) -> None:
    """Create the S3 bucket and SimpleDB domain for the library."""
    svc = get_service(ctx)
    try:
        svc.create_library()
    except DuplicateLibraryError as e:
        console.print(
            f"[red]Error:[/red] {e}\n"
            "Bucket names are global across S3; choose another library name."
        )
        raise typer.Exit(code=1)
    except CloudlibError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Created library [bold]{svc.config.library_name}[/bold]")


@app.command("delete-library")
def delete_library(
    ctx: typer.Context,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete the library with all of its files and metadata."""
    svc = get_service(ctx)
    if not yes:
        typer.confirm(
            f"Delete library '{svc.config.library_name}' and ALL its contents?",
            abort=True,
        )
    with reporting_errors():
        svc.delete_library()
    console.print(f"[green]✓[/green] Deleted library [bold]{svc.config.library_name}[/bold]")


# ----------------------------------------------------------------------
# Entries
# ----------------------------------------------------------------------


@app.command()
def add(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(help="File to add", exists=True, dir_okay=False, resolve_path=True),
    ],
    entry_type: Annotated[
        EntryType,
        typer.Option("--type", "-t", help="Entry type", case_sensitive=False),
    ] = EntryType.ARTICLE,
    assignments: SetOption = None,
    prompt: Annotated[
        bool,
        typer.Option("--prompt/--no-prompt", help="Prompt for fields not given with --set"),
    ] = True,
) -> None:
    """Upload a file and enter its metadata.

    Examples:

    \\b
      cloudlib add turing.pdf -t article -s "title=On Computable Numbers" -s year=1936
      cloudlib add russell.djvu -t book
    """
    svc = get_service(ctx)
    values = parse_assignments(assignments)

    attributes: dict[str, str] = {"entry_type": entry_type.value}
    for field_name in fields_for(entry_type):
        if field_name in values:
            attributes[field_name] = values.pop(field_name)
        elif prompt:
            attributes[field_name] = typer.prompt(field_name, default="", show_default=False)
    # Extra fields outside the type's table are still accepted
    attributes.update(values)

    with reporting_errors():
        entry = svc.add_file(path, attributes=attributes)
    console.print(f"[green]✓[/green] Added [cyan]{entry.name}[/cyan]")
    console.print(entry.to_display_string(), markup=False)


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the listing to a file instead of stdout"),
    ] = None,
) -> None:
    """Print a plain-text index of every entry in the library."""
    svc = get_service(ctx)
    with reporting_errors():
        lines = list(listing_lines(svc.iter_entries(None)))
    if output:
        output.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        console.print(f"[dim]Wrote {len(lines)} entries to {output}[/dim]")
        return
    for line in lines:
        typer.echo(line)


@app.command()
def dump(
    ctx: typer.Context,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Dump file (default: stdout)"),
    ] = None,
) -> None:
    """Export all metadata as JSON lines."""
    svc = get_service(ctx)
    with reporting_errors():
        if output:
            with output.open("w", encoding="utf-8") as f:
                count = svc.dump(f)
            console.print(f"[dim]Dumped {count} entries to {output}[/dim]")
        else:
            svc.dump(sys.stdout)


@app.command()
def restore(
    ctx: typer.Context,
    dump_file: Annotated[
        Path,
        typer.Argument(help="File written by 'cloudlib dump'", exists=True, dir_okay=False),
    ],
) -> None:
    """Re-save metadata from a dump, rebuilding search fields."""
    svc = get_service(ctx)
    with reporting_errors(), dump_file.open(encoding="utf-8") as f:
        count = svc.restore(f)
    console.print(f"[green]✓[/green] Restored {count} entries")


@app.command()
def find(
    ctx: typer.Context,
    query: Annotated[
        str,
        typer.Argument(help="Search string, e.g. \"ti=logic au='Russell Whitehead' ye>1950\""),
    ] = "",
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", help="Results per page"),
    ] = None,
    show_all: Annotated[
        bool,
        typer.Option("--all", "-a", help="Fetch every page without asking"),
    ] = False,
) -> None:
    """Search the library.

    Words match titles, authors, editors, book titles and keywords.
    Prefix a word to restrict it to a field: ti= au= jo= bo= pu= ad= ed=,
    and ye= ye< ye> for years. Quote several words to require all of them.
    """
    svc = get_service(ctx)
    token: str | None = None
    offset = 0
    while True:
        with reporting_errors():
            page = svc.query(query, page_size=limit, token=token)
        if offset == 0 or page.entries:
            display_entries(page.entries, console=console, title=query or None)
        offset += len(page.entries)
        if not page.has_more:
            break
        if not show_all and not typer.confirm("More results. Show next page?", default=True):
            break
        token = page.next_token
    console.print(f"[dim]{offset} entr{'y' if offset == 1 else 'ies'} shown.[/dim]")


@app.command()
def show(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Entry name (sha1 + extension)")],
) -> None:
    """Show every field of an entry."""
    svc = get_service(ctx)
    with reporting_errors():
        entry = svc.find_by_name(name)
    display_entry(entry, console=console)


@app.command()
def get(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Entry name (sha1 + extension)")],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Destination (default: Author_Title.ext)"),
    ] = None,
) -> None:
    """Download an entry's file."""
    svc = get_service(ctx)
    with reporting_errors():
        entry = svc.find_by_name(name)
        path = svc.download(entry, output)
    console.print(f"[green]✓[/green] Saved {path}")


@app.command("del")
def delete_cmd(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Entry name (sha1 + extension)")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete an entry's file and metadata."""
    svc = get_service(ctx)
    with reporting_errors():
        entry = svc.find_by_name(name)
        if not yes:
            console.print(entry.to_display_string(), markup=False)
            typer.confirm("Delete this entry?", abort=True)
        svc.delete(entry)
    console.print(f"[green]✓[/green] Deleted {name}")


@app.command()
def mod(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Entry name (sha1 + extension)")],
    assignments: SetOption = None,
) -> None:
    """Modify an entry's metadata.

    With --set, only the given fields change. Otherwise every field of the
    entry's type is prompted for, with the current value as default.
    """
    svc = get_service(ctx)
    values = parse_assignments(assignments)
    with reporting_errors():
        entry = svc.find_by_name(name)
        if values:
            for field_name, raw in values.items():
                entry.set_attribute(field_name, raw)
        else:
            prompt_fields(entry, ["entry_type"])
            prompt_fields(entry, entry.fields())
        svc.save(entry)
    console.print(f"[green]✓[/green] Saved {name}")
    console.print(entry.to_display_string(), markup=False)


@app.command()
def bib(
    ctx: typer.Context,
    names: Annotated[
        list[str] | None,
        typer.Argument(help="Entry names to export"),
    ] = None,
    query: Annotated[
        str | None,
        typer.Option("--query", "-q", help="Export every entry matching a search"),
    ] = None,
) -> None:
    """Print BibTeX records for entries."""
    svc = get_service(ctx)
    if not names and query is None:
        raise typer.BadParameter("Give entry names or --query")
    with reporting_errors():
        entries = [svc.find_by_name(n) for n in names or []]
        if query is not None:
            entries.extend(svc.iter_entries(query))
    typer.echo("\n\n".join(e.to_bibtex() for e in entries))


@app.command()
def url(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Entry name (sha1 + extension)")],
) -> None:
    """Print a temporary download URL for an entry."""
    svc = get_service(ctx)
    with reporting_errors():
        entry = svc.find_by_name(name)
        link = svc.url(entry)
    typer.echo(link)


# ----------------------------------------------------------------------
# Credentials
# ----------------------------------------------------------------------


@config_app.command("set-credentials")
def set_credentials(
    access_key_id: Annotated[str, typer.Argument(help="AWS access key ID")],
    secret_access_key: Annotated[
        str,
        typer.Option(
            "--secret",
            prompt="AWS secret access key",
            hide_input=True,
            help="AWS secret access key (prompted if omitted)",
        ),
    ],
) -> None:
    """Store AWS credentials in the system keyring (service: cloudlib-aws)."""
    if not access_key_id.strip() or not secret_access_key.strip():
        console.print("[red]Error:[/red] Credentials cannot be empty")
        raise typer.Exit(code=1)

    try:
        keyring.set_password(SERVICE_NAME, ACCESS_KEY_NAME, access_key_id.strip())
        keyring.set_password(SERVICE_NAME, SECRET_KEY_NAME, secret_access_key.strip())
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Failed to store credentials: {e}")
        raise typer.Exit(code=1)
    console.print(
        f"[green]✓[/green] Credentials stored in system keyring (service: {SERVICE_NAME})"
    )


@config_app.command("show-credentials")
def show_credentials() -> None:
    """Display the stored access key ID and a masked secret."""
    key_id = keyring.get_password(SERVICE_NAME, ACCESS_KEY_NAME)
    secret = keyring.get_password(SERVICE_NAME, SECRET_KEY_NAME)
    if not key_id or not secret:
        console.print(
            "[yellow]No credentials found in keyring.[/yellow]\n"
            "Set them with: [bold]cloudlib config set-credentials KEY_ID[/bold]"
        )
        raise typer.Exit(code=1)

    masked = secret[:4] + "*" * max(1, len(secret) - 4)
    console.print(f"[green]Access key ID:[/green] {key_id}")
    console.print(f"[green]Secret:[/green] {masked}")
    console.print(f"[dim](stored in service: {SERVICE_NAME})[/dim]")


@config_app.command("remove-credentials")
def remove_credentials() -> None:
    """Delete the stored AWS credentials from the system keyring."""
    if not keyring.get_password(SERVICE_NAME, ACCESS_KEY_NAME):
        console.print(
            "[yellow]Warning:[/yellow] No credentials found in keyring.\n"
            "Nothing to remove."
        )
        return

    for key_name in (ACCESS_KEY_NAME, SECRET_KEY_NAME):
        try:
            keyring.delete_password(SERVICE_NAME, key_name)
        except PasswordDeleteError:
            logger.debug("No %s stored", key_name)
    console.print(
        f"[green]✓[/green] Credentials removed from system keyring (service: {SERVICE_NAME})"
    )


def main() -> None:
    app()
