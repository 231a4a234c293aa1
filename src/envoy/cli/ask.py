"""envoy ask: one chat turn against the active library group.

Usage:
  envoy ask "What are the transparency obligations?"
  envoy ask "Compare with this draft" --attach draft.pdf
  envoy ask --suggest
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from envoy.cli.errors import err_file_not_found, err_no_api_key, err_store_unavailable, err_validation
from envoy.cli.runtime import configure_logging, open_library, resolve_config
from envoy.config import ConfigError
from envoy.db.models import FileAttachment
from envoy.errors import StoreUnavailable, ValidationError
from envoy.rag.llm_client import GenerationClient, get_initial_suggestions, validate_api_key
from envoy.rag.session import ChatMessage, ChatSession

console = Console()


def ask_cmd(
    query: Annotated[str | None, typer.Argument(help="Question to ask.")] = None,
    attach: Annotated[
        list[Path] | None,
        typer.Option("--attach", "-a", help="Attach a file for this turn only (repeatable)."),
    ] = None,
    group: Annotated[str | None, typer.Option("--group", "-g", help="Group to use as context.")] = None,
    suggest: Annotated[bool, typer.Option("--suggest", help="Show starter questions and exit.")] = False,
    data_dir: Annotated[str | None, typer.Option("--data-dir", help="Library data directory.")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Ask a question grounded on the library's active group."""
    configure_logging(verbose)
    if not suggest and not query:
        console.print("[red]Error:[/] No question given.  Example:  envoy ask \"What is high-risk AI?\"")
        raise typer.Exit(1)

    attachments: list[FileAttachment] = []
    for path in attach or []:
        if not path.is_file():
            console.print(err_file_not_found(str(path)))
            raise typer.Exit(1)
        attachments.append(FileAttachment.from_path(path))

    try:
        cfg = resolve_config(data_dir)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/] {exc}")
        raise typer.Exit(1)

    model = cfg.generation.model
    if not suggest:
        try:
            validate_api_key(model)
        except EnvironmentError:
            console.print(err_no_api_key(model.split("/")[0]))
            raise typer.Exit(1)

    client = GenerationClient(
        model=model,
        max_tokens=cfg.generation.max_tokens,
        num_retries=cfg.generation.num_retries,
    )

    async def _run() -> ChatMessage | list[str]:
        async with open_library(cfg) as manager:
            if group is not None:
                manager.set_active_group(group)
            session = ChatSession(
                manager,
                manager.blob_store,
                generate=client,
                suggest=lambda urls: get_initial_suggestions(model, urls),
            )
            if suggest:
                return await session.suggestions()
            return await session.send_message(query or "", attachments)

    try:
        result = asyncio.run(_run())
    except ValidationError as exc:
        console.print(err_validation(exc))
        raise typer.Exit(1)
    except StoreUnavailable as exc:
        console.print(err_store_unavailable(exc))
        raise typer.Exit(1)

    if isinstance(result, list):
        if not result:
            console.print("[dim]Add sources to the library to get suggestions.[/]")
        for s in result:
            console.print(f"  • {s}")
        return

    _print_reply(result)
    if result.failed:
        raise typer.Exit(1)


def _print_reply(reply: ChatMessage) -> None:
    if reply.failed:
        console.print(f"[red]{reply.text}[/]")
        return
    console.print(Markdown(reply.text))
    if reply.url_context:
        table = Table(title="Retrieved sources", border_style="dim")
        table.add_column("URL", overflow="fold")
        table.add_column("Status")
        for item in reply.url_context:
            table.add_row(item.retrieved_url, item.retrieval_status)
        console.print(table)
