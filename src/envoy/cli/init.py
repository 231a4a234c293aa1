"""envoy init: create the library data directory and envoy.yaml.

Creates:
  envoy.yaml                    project config (library: + generation:)
  <data_dir>/envoy-library.db   blob database with schema
  <data_dir>/envoy_sources_v2.json   metadata document with the default group

Re-running init on an existing library preserves its data.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from envoy.cli.errors import err_store_unavailable
from envoy.cli.runtime import configure_logging, open_library
from envoy.config import ConfigError, load_config, write_project_config
from envoy.errors import StoreUnavailable

console = Console()

_DEFAULT_PROJECT_DIR = Path(".")


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
    max_items: Annotated[
        int,
        typer.Option("--max-items", help="Per-group source limit written to envoy.yaml."),
    ] = 50,
    model: Annotated[
        str | None,
        typer.Option("--model", help="Generation model (LiteLLM provider/model)."),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Initialize an Envoy knowledge library."""
    configure_logging(verbose)
    if max_items < 1:
        console.print("[red]Error:[/] --max-items must be >= 1.")
        raise typer.Exit(1)

    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    try:
        cfg = load_config(project_dir)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/] {exc}")
        raise typer.Exit(1)
    cfg.library.max_items = max_items
    if model:
        cfg.generation.model = model
    if not Path(cfg.library.data_dir).is_absolute():
        cfg.library.data_dir = str(project_dir / cfg.library.data_dir)

    already = cfg.db_path.exists()
    if already:
        console.print(f"[yellow]⚠[/]  {cfg.db_path} already exists; existing data is preserved.")

    async def _create() -> int:
        async with open_library(cfg) as manager:
            return sum(len(g.sources) for g in manager.groups)

    try:
        count = asyncio.run(_create())
    except StoreUnavailable as exc:
        console.print(err_store_unavailable(exc))
        raise typer.Exit(1)

    config_path = project_dir / "envoy.yaml"
    if not config_path.exists():
        cfg.library.data_dir = _relative_to(Path(cfg.library.data_dir), project_dir)
        write_project_config(project_dir, cfg)
        console.print(f"  [green]✓[/] {config_path.name}")

    console.print(f"  [green]✓[/] {cfg.storage.db_name}")
    console.print(f"\n[bold green]Library ready[/] ({count} sources).")
    console.print("  Next:  envoy add-file document.pdf  |  envoy add-url https://...")


def _relative_to(path: Path, base: Path) -> str:
    try:
        return str(path.relative_to(base))
    except ValueError:
        return str(path)
