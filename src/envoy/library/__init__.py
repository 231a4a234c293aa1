"""Envoy source library: state, reconciliation, mutations, context assembly."""

from envoy.library.assembler import assemble_context
from envoy.library.manager import DEFAULT_MAX_ITEMS, LibraryManager, is_valid_url
from envoy.library.reconciler import reconcile, reconcile_library
from envoy.library.state import LibraryState

__all__ = [
    "assemble_context",
    "DEFAULT_MAX_ITEMS",
    "LibraryManager",
    "is_valid_url",
    "reconcile",
    "reconcile_library",
    "LibraryState",
]
