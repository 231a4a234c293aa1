"""Envoy rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from envoy.cli.errors import err_validation
    console.print(err_validation(exc))
    raise typer.Exit(1)
"""

from __future__ import annotations

from envoy.errors import (
    EmptyTitle,
    InvalidUrl,
    LibraryFull,
    StoreUnavailable,
    UnknownGroup,
    UnsupportedFileType,
    ValidationError,
)


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*."""
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_validation(exc: ValidationError) -> str:
    """Render a rejected library operation with the fix for its cause."""
    hint = ""
    if isinstance(exc, InvalidUrl):
        hint = "  Example:  envoy add-url https://example.com/act.pdf"
    elif isinstance(exc, LibraryFull):
        hint = (
            "  Remove a source first:  envoy remove <id>\n"
            "  or raise library.max_items in envoy.yaml"
        )
    elif isinstance(exc, UnsupportedFileType):
        hint = "  Convert the document to PDF and add it again."
    elif isinstance(exc, EmptyTitle):
        hint = '  Example:  envoy rename <id> "EU AI Act (final text)"'
    elif isinstance(exc, UnknownGroup):
        hint = "  Run:  envoy groups  to see available groups."
    message = f"[red]Error:[/] {exc}"
    return f"{message}\n{hint}" if hint else message


def err_store_unavailable(exc: StoreUnavailable) -> str:
    """A store failed; the operation had no effect."""
    return (
        f"[red]Error:[/] Library storage unavailable: {exc}\n"
        "  The operation had no effect. Check that the data directory is writable\n"
        "  and has free space, then retry."
    )


def err_file_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] File not found: '{path}'\n"
        "  Check the path and try again."
    )


def err_source_not_found(source: str) -> str:
    """Source not found in the library."""
    return (
        f"[yellow]Source not found:[/] '{source}' is not in the library.\n"
        "  Run:  envoy list  to see all sources."
    )


def warn_orphan_blob(source_id: str) -> str:
    """Shown when a file descriptor was removed but its payload was not."""
    return (
        f"[yellow]⚠[/] The stored payload for '{source_id}' could not be deleted.\n"
        "  It will reappear in the library on the next start; remove it again then."
    )
