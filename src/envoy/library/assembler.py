"""Context assembler: active-group descriptors -> generation request payload.

Pipeline:
  1. Start from this turn's transient attachments.
  2. ``url`` descriptors contribute their URL.
  3. ``file`` descriptors are resolved against the blob store; the attachment
     takes the descriptor title as its name so renames apply without
     rewriting the blob.
  4. Dangling descriptors (blob missing) and failed lookups are skipped.

Lookups run concurrently and the result keeps descriptor order. The whole
payload is built before it is returned.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence

from envoy.db.blob_store import BlobStore
from envoy.db.models import (
    ChatContextRequest,
    FileAttachment,
    SourceDescriptor,
    SourceType,
)
from envoy.errors import StoreUnavailable

logger = logging.getLogger(__name__)


async def assemble_context(
    sources: Sequence[SourceDescriptor],
    blob_store: BlobStore,
    transient: Iterable[FileAttachment] = (),
) -> ChatContextRequest:
    """Build the URL list and attachment list for one chat turn.

    Args:
        sources: Descriptors of the active group, in display order.
        blob_store: Open blob store used to resolve file descriptors.
        transient: Attachments supplied for this turn only (always included,
            ahead of library files).

    Returns:
        ChatContextRequest handed unchanged to the generation client.
    """
    request = ChatContextRequest(attachments=list(transient))

    file_sources: list[SourceDescriptor] = []
    for source in sources:
        if source.type is SourceType.URL and source.url:
            request.urls.append(source.url)
        elif source.type is SourceType.FILE:
            file_sources.append(source)

    resolved = await asyncio.gather(*(_resolve(s, blob_store) for s in file_sources))
    request.attachments.extend(a for a in resolved if a is not None)
    return request


async def _resolve(source: SourceDescriptor, blob_store: BlobStore) -> FileAttachment | None:
    try:
        blob = await blob_store.get(source.id)
    except StoreUnavailable:
        logger.warning("Failed to load file %s", source.id, exc_info=True)
        return None
    if blob is None:
        logger.debug("Skipping dangling file source %s", source.id)
        return None
    return FileAttachment(name=source.title, mime_type=blob.mime_type, data=blob.data)
