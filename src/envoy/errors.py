"""Envoy exception hierarchy.

ValidationError subclasses are raised before any storage mutation and carry a
user-facing message. StoreUnavailable is raised by the storage layer and is
caught at the LibraryManager boundary. GenerationFailure is raised by the
generation client and caught by the chat session.
"""

from __future__ import annotations


class EnvoyError(Exception):
    """Base class for all Envoy errors."""


# ---------------------------------------------------------------------------
# Validation (user input rejected, no state change)
# ---------------------------------------------------------------------------


class ValidationError(EnvoyError):
    """Input rejected before any storage mutation."""


class InvalidUrl(ValidationError):
    def __init__(self, url: str) -> None:
        self.url = url
        if not url.strip():
            super().__init__("URL cannot be empty.")
        else:
            super().__init__(
                f"Invalid URL format: '{url}'. Please include http:// or https://"
            )


class LibraryFull(ValidationError):
    def __init__(self, group_id: str, max_items: int) -> None:
        self.group_id = group_id
        self.max_items = max_items
        super().__init__(f"Maximum limit reached ({max_items} sources in '{group_id}').")


class UnsupportedFileType(ValidationError):
    def __init__(self, name: str, mime_type: str | None) -> None:
        self.name = name
        self.mime_type = mime_type
        super().__init__(
            f"Only PDF files are currently supported for the library "
            f"('{name}' is {mime_type or 'unknown type'})."
        )


class EmptyTitle(ValidationError):
    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__("Title cannot be empty.")


class UnknownGroup(ValidationError):
    def __init__(self, group_id: str) -> None:
        self.group_id = group_id
        super().__init__(f"No group with id '{group_id}'.")


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StoreUnavailable(EnvoyError):
    """A store failed to open or a transaction was aborted."""


class MetadataQuotaExceeded(StoreUnavailable):
    """The serialized metadata document exceeds the configured quota."""

    def __init__(self, size: int, quota: int) -> None:
        self.size = size
        self.quota = quota
        super().__init__(
            f"Metadata document is {size} bytes; quota is {quota} bytes."
        )


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class GenerationFailure(EnvoyError):
    """The generation backend failed (configuration, quota or transport)."""
