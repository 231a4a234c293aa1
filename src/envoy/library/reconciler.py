"""Startup reconciliation between the metadata store and the blob store.

The two stores fail independently (eviction, interrupted writes, one store
cleared by hand). At startup every stored blob that no group references is
given a synthesized ``file`` descriptor in the default group. Dangling
descriptors (descriptor present, blob missing) are left alone; the context
assembler skips them at read time.

Reconciliation is idempotent: a second pass over the same stores adds nothing.
"""

from __future__ import annotations

import copy
import logging

from envoy.db.blob_store import BlobStore
from envoy.db.metadata_store import MetadataStore
from envoy.db.models import (
    DEFAULT_GROUP_ID,
    DEFAULT_GROUP_NAME,
    Group,
    SourceDescriptor,
    SourceType,
    StoredBlob,
    default_groups,
)
from envoy.errors import StoreUnavailable
from envoy.library.state import LibraryState

logger = logging.getLogger(__name__)


def reconcile(
    groups: list[Group] | None,
    blobs: list[StoredBlob],
    *,
    default_group_name: str = DEFAULT_GROUP_NAME,
) -> tuple[list[Group], list[SourceDescriptor]]:
    """Return *groups* with a descriptor synthesized for every orphan blob.

    The input is not modified. Orphans are appended to the group with id
    ``default-library``, or to the first group when that id is missing.

    Args:
        groups: Group list loaded from the metadata store (None or empty seeds
            the default group).
        blobs: Every record currently in the blob store.
        default_group_name: Name used when seeding the default group.

    Returns:
        ``(reconciled_groups, synthesized_descriptors)``.
    """
    result = copy.deepcopy(groups) if groups else default_groups(default_group_name)

    known = {s.id for g in result for s in g.sources}
    target = next((g for g in result if g.id == DEFAULT_GROUP_ID), result[0])

    added: list[SourceDescriptor] = []
    for blob in blobs:
        if blob.id in known:
            continue
        descriptor = SourceDescriptor(
            id=blob.id,
            type=SourceType.FILE,
            title=blob.name,
            mime_type=blob.mime_type,
        )
        target.sources.append(descriptor)
        known.add(blob.id)
        added.append(descriptor)

    return result, added


async def reconcile_library(
    metadata_store: MetadataStore,
    blob_store: BlobStore,
    *,
    default_group_name: str = DEFAULT_GROUP_NAME,
) -> LibraryState:
    """Load both stores and build the reconciled in-memory library state.

    The reconciled list is written back when the metadata was missing or an
    orphan was recovered. A blob store that cannot be read leaves the
    metadata as loaded (no repair this run); the failure is logged.

    A metadata document that exists but cannot be decoded is moved to
    ``<key>.json.corrupt`` before defaults are seeded. One that decoded with
    skipped entries is copied there before anything is written back.

    Raises:
        StoreUnavailable: If an unreadable document cannot be moved or copied
            aside; the library is not opened over it.
    """
    groups = metadata_store.load()
    if groups is None and metadata_store.path.exists():
        moved = metadata_store.quarantine()
        logger.warning("Moved unreadable library metadata to %s", moved)
    elif metadata_store.skipped:
        copied = metadata_store.backup()
        logger.warning(
            "Skipped %d malformed entries in library metadata; original kept at %s",
            metadata_store.skipped,
            copied,
        )
    if groups is None:
        logger.info("No library metadata found; seeding default group")

    try:
        blobs = await blob_store.get_all()
    except StoreUnavailable:
        logger.error("Blob store unavailable during reconciliation", exc_info=True)
        blobs = []

    reconciled, added = reconcile(groups, blobs, default_group_name=default_group_name)
    for descriptor in added:
        logger.info("Recovered orphan file %s (%s)", descriptor.id, descriptor.title)

    if groups is None or added:
        try:
            metadata_store.save(reconciled)
        except StoreUnavailable:
            logger.error("Failed to save reconciled library metadata", exc_info=True)

    state = LibraryState(groups=reconciled)
    if state.get_group(DEFAULT_GROUP_ID) is None:
        state.active_group_id = reconciled[0].id
    return state
