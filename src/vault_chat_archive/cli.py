"""CLI interface: show, find, migrate and prune subcommands."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .archive import write_document
from .decoder import decode_document, detect_grammar
from .encoder import encode_conversation
from .errors import ArchiveError
from .header import split_front_matter
from .housekeeping import prune_autosaves
from .identity import IdentityConflict, find_by_identity
from .models import Role, SaveMode
from .placeholders import strip_images
from .resolver import TempImageResolver
from .settings import ArchiveSettings, load_settings
from .store import LocalStore

console = Console()

ROOT_OPTION = click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Vault root directory.",
)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _relative(root: Path, file: Path) -> str:
    try:
        return file.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        raise click.ClickException(f"{file} is not inside the vault root {root}")


@click.group()
@click.version_option(package_name="vault-chat-archive")
@click.option(
    "--config",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML settings file.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Show debug logging.")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, verbose: bool):
    """Inspect and maintain AI conversations saved as Markdown vault documents."""
    try:
        settings = load_settings(config)
    except ArchiveError as e:
        raise click.ClickException(str(e))
    _setup_logging(verbose or settings.debug_logging)
    ctx.obj = settings


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def show(file: Path):
    """Decode a conversation document and print its messages."""
    text = file.read_text(encoding="utf-8")
    conv = decode_document(text, fallback_title=file.stem)
    _, body = split_front_matter(text.replace("\r\n", "\n"))

    console.print(f"[bold]{conv.title}[/bold]")
    console.print(f"  ID: {conv.id}")
    console.print(f"  Created: {conv.created_at:%Y-%m-%d %H:%M}")
    console.print(f"  Updated: {conv.last_updated:%Y-%m-%d %H:%M}")
    console.print(f"  Layout: {detect_grammar(body)}")
    console.print(f"  Messages: {len(conv.messages)}")
    console.print()

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Role")
    table.add_column("Time")
    table.add_column("Content")
    for i, msg in enumerate(conv.messages, 1):
        preview = strip_images(msg.content).replace("\n", " ")
        if len(preview) > 80:
            preview = preview[:80] + "..."
        pending = f" [yellow]({len(msg.temp_images)} unsaved images)[/yellow]" if msg.temp_images else ""
        role = "[cyan]user[/cyan]" if msg.role is Role.USER else "[green]ai[/green]"
        table.add_row(str(i), role, f"{msg.timestamp:%Y-%m-%d %H:%M}", preview + pending)
    console.print(table)


@cli.command()
@click.argument("conversation_id")
@ROOT_OPTION
@click.option(
    "--scope",
    default=None,
    help="Folder to search, relative to the root. Defaults to the conversation folder.",
)
@click.pass_obj
def find(settings: ArchiveSettings, conversation_id: str, root: Path, scope: str | None):
    """Find the document that carries CONVERSATION_ID."""
    store = LocalStore(root)
    conflicts: list[IdentityConflict] = []
    path = find_by_identity(
        store, conversation_id, scope or settings.conversation_folder, on_conflict=conflicts.append
    )
    if path is None:
        raise click.ClickException(f"No document with conversationID {conversation_id}")

    for conflict in conflicts:
        console.print(
            f"[yellow]Warning:[/yellow] {len(conflict.candidates)} documents share this ID; "
            "using the most recently modified."
        )
        for candidate in conflict.candidates[1:]:
            console.print(f"  [dim]also: {candidate}[/dim]")
    console.print(path)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@ROOT_OPTION
@click.option(
    "--manual/--auto",
    default=False,
    show_default=True,
    help="Write unsaved images as vault files (manual) or inline them (auto).",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to write the result. Defaults to overwriting FILE.",
)
@click.pass_obj
def migrate(settings: ArchiveSettings, file: Path, root: Path, manual: bool, output: Path | None):
    """Rewrite a document, legacy layouts included, in the current layout."""
    store = LocalStore(root)
    source = _relative(root, file)
    target = _relative(root, output) if output else source

    try:
        conv = decode_document(store.read_text(source), fallback_title=file.stem)
        if not conv.messages:
            raise click.ClickException(f"No messages found in {file}")
        text = encode_conversation(
            conv,
            mode=SaveMode.MANUAL if manual else SaveMode.AUTO,
            update_timestamp=True,
            resolver=TempImageResolver(store, settings),
            model=settings.model,
        )
        write_document(store, target, text)
    except ArchiveError as e:
        raise click.ClickException(str(e))

    console.print(f"[bold green]Migrated:[/bold green] {target}")
    console.print(f"  Messages: {len(conv.messages)}")


@cli.command()
@ROOT_OPTION
@click.option(
    "--keep",
    type=int,
    default=None,
    help="Number of auto-saves to keep. Defaults to the configured limit.",
)
@click.pass_obj
def prune(settings: ArchiveSettings, root: Path, keep: int | None):
    """Delete the oldest auto-saved conversations beyond the retention limit."""
    store = LocalStore(root)
    try:
        deleted = prune_autosaves(store, settings.autosave_folder, keep if keep is not None else settings.max_autosaved)
    except (ArchiveError, ValueError) as e:
        raise click.ClickException(str(e))

    for path in deleted:
        console.print(f"  [red]✗[/red] {path}")
    console.print(f"[bold green]Done![/bold green] Removed {len(deleted)} auto-save(s).")
