"""Library commands: add-url, add-file, remove, rename, list, groups.

Every command opens both stores, runs startup reconciliation, performs one
LibraryManager operation and exits. Validation errors exit 1 with an
actionable message; storage failures exit 1 after reporting that the
operation had no effect.

Usage:
  envoy add-url https://example.com/act.pdf
  envoy add-file reg.pdf
  envoy rename file-1718000000000-k3j9x0a1b "Regulation (final)"
  envoy remove file-1718000000000-k3j9x0a1b --yes
  envoy list
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from envoy.cli.errors import (
    err_file_not_found,
    err_source_not_found,
    err_store_unavailable,
    err_validation,
    warn_orphan_blob,
)
from envoy.cli.runtime import configure_logging, open_library, resolve_config
from envoy.config import ConfigError
from envoy.db.models import FileAttachment, Group, SourceDescriptor, SourceType
from envoy.errors import StoreUnavailable, ValidationError
from envoy.library.manager import LibraryManager

console = Console()

DataDirOpt = Annotated[
    str | None,
    typer.Option("--data-dir", help="Library data directory (overrides envoy.yaml)."),
]
GroupOpt = Annotated[
    str | None,
    typer.Option("--group", "-g", help="Target group id (defaults to the active group)."),
]
MaxItemsOpt = Annotated[
    int | None,
    typer.Option("--max-items", help="Per-group source limit (overrides envoy.yaml)."),
]
VerboseOpt = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


# ---------------------------------------------------------------------------
# add-url
# ---------------------------------------------------------------------------


def add_url_cmd(
    url: Annotated[str, typer.Argument(help="Absolute URL of the source.")],
    group: GroupOpt = None,
    data_dir: DataDirOpt = None,
    max_items: MaxItemsOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Add a URL source to the library."""
    configure_logging(verbose)

    async def _run() -> SourceDescriptor:
        async with open_library(resolve_config(data_dir, max_items)) as manager:
            target = _target_group(manager, group)
            manager.add_url_source(target.id, url)
            return target.sources[-1]

    added = _run_or_exit(_run)
    console.print(f"[green]✓[/] Added URL: {added.url}")
    console.print(f"  id: [dim]{added.id}[/]")


# ---------------------------------------------------------------------------
# add-file
# ---------------------------------------------------------------------------


def add_file_cmd(
    path: Annotated[Path, typer.Argument(help="Path to a PDF document.")],
    mime_type: Annotated[
        str | None,
        typer.Option("--mime-type", help="Declared MIME type (guessed from the extension if omitted)."),
    ] = None,
    group: GroupOpt = None,
    data_dir: DataDirOpt = None,
    max_items: MaxItemsOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Upload a PDF document into the library."""
    configure_logging(verbose)
    if not path.is_file():
        console.print(err_file_not_found(str(path)))
        raise typer.Exit(1)
    attachment = FileAttachment.from_path(path, mime_type)

    async def _run() -> SourceDescriptor | None:
        async with open_library(resolve_config(data_dir, max_items)) as manager:
            target = _target_group(manager, group)
            before = len(target.sources)
            await manager.add_file_source(target.id, attachment)
            if len(target.sources) == before:
                raise manager.last_failure or StoreUnavailable("file was not stored")
            return target.sources[-1]

    added = _run_or_exit(_run)
    console.print(f"[green]✓[/] Added file: {added.title}")
    console.print(f"  id: [dim]{added.id}[/]")


# ---------------------------------------------------------------------------
# remove
# ---------------------------------------------------------------------------


def remove_cmd(
    source: Annotated[str, typer.Argument(help="Source id or exact title.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    data_dir: DataDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Remove a source (and its stored file) from the library."""
    configure_logging(verbose)

    async def _run() -> tuple[SourceDescriptor | None, bool]:
        async with open_library(resolve_config(data_dir)) as manager:
            existing = _lookup(manager, source)
            if existing is None:
                return None, False
            console.print(f"\nRemove source: [bold]{existing.title}[/] ({existing.type.value})")
            if not yes and not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)
            await manager.remove_source(existing.id)
            return existing, manager.last_delete_failure is not None

    removed, blob_left = _run_or_exit(_run)
    if removed is None:
        console.print(err_source_not_found(source))
        raise typer.Exit(0)
    console.print(f"\n[green]✓[/] Removed: {removed.title}")
    if blob_left:
        console.print(warn_orphan_blob(removed.id))


# ---------------------------------------------------------------------------
# rename
# ---------------------------------------------------------------------------


def rename_cmd(
    source: Annotated[str, typer.Argument(help="Source id or exact title.")],
    title: Annotated[str, typer.Argument(help="New display title.")],
    data_dir: DataDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Rename a source. Stored file content is not changed."""
    configure_logging(verbose)

    async def _run() -> SourceDescriptor | None:
        async with open_library(resolve_config(data_dir)) as manager:
            existing = _lookup(manager, source)
            if existing is None:
                return None
            manager.rename_source(existing.id, title)
            return existing

    renamed = _run_or_exit(_run)
    if renamed is None:
        console.print(err_source_not_found(source))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Renamed to: {renamed.title}")


# ---------------------------------------------------------------------------
# list / groups
# ---------------------------------------------------------------------------


def list_cmd(
    group: GroupOpt = None,
    data_dir: DataDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """List the sources in a group."""
    configure_logging(verbose)

    async def _run() -> tuple[Group, int]:
        async with open_library(resolve_config(data_dir)) as manager:
            return _target_group(manager, group), manager.max_items

    target, limit = _run_or_exit(_run)
    if not target.sources:
        console.print(f"[dim]{target.name} is empty.[/]  Run:  envoy add-url URL  or  envoy add-file PDF")
        return

    table = Table(title=f"{target.name} ({len(target.sources)}/{limit})", border_style="blue")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Location", overflow="fold")
    for s in target.sources:
        location = s.url if s.type is SourceType.URL else (s.mime_type or "")
        table.add_row(s.id, s.type.value, s.title, location or "")
    console.print(table)


def groups_cmd(
    data_dir: DataDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """List library groups."""
    configure_logging(verbose)

    async def _run() -> tuple[list[Group], str]:
        async with open_library(resolve_config(data_dir)) as manager:
            return manager.groups, manager.active_group.id

    groups, active_id = _run_or_exit(_run)
    table = Table(border_style="blue")
    table.add_column("ID", no_wrap=True)
    table.add_column("Name")
    table.add_column("Sources", justify="right")
    for g in groups:
        marker = " [green](active)[/]" if g.id == active_id else ""
        table.add_row(g.id, f"{g.name}{marker}", str(len(g.sources)))
    console.print(table)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_or_exit(factory):
    """Run the coroutine built by *factory*; map library errors to exit code 1."""
    try:
        return asyncio.run(factory())
    except ValidationError as exc:
        console.print(err_validation(exc))
        raise typer.Exit(1)
    except StoreUnavailable as exc:
        console.print(err_store_unavailable(exc))
        raise typer.Exit(1)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/] {exc}")
        raise typer.Exit(1)


def _target_group(manager: LibraryManager, group_id: str | None) -> Group:
    if group_id is not None:
        manager.set_active_group(group_id)
    return manager.active_group


def _lookup(manager: LibraryManager, key: str) -> SourceDescriptor | None:
    """Find a source by id, falling back to an exact title match."""
    found = manager.find_source(key)
    if found is not None:
        return found
    return next((s for g in manager.groups for s in g.sources if s.title == key), None)
