"""Library mutation surface.

All changes to the group list go through LibraryManager. Each operation
validates first (ValidationError, nothing changed), mutates the in-memory
state, then rewrites the metadata document.

Ordering against the blob store:
  - add file:    blob write  -> descriptor append -> metadata save
  - remove file: blob delete -> descriptor removal -> metadata save

so an interrupted operation leaves at worst an orphan blob, which the
reconciler recovers at next startup.

Storage failures never propagate out of this class. They are logged and kept
on ``last_failure`` for callers that want to report them. A failed blob delete
during removal is also kept on ``last_delete_failure``, since it leaves an
orphan behind while the descriptor is gone.

Operations are expected to be issued serially by a single session; there is
no locking across operations.
"""

from __future__ import annotations

import logging
import urllib.parse
from datetime import datetime, timezone

from envoy.db.blob_store import BlobStore
from envoy.db.metadata_store import MetadataStore
from envoy.db.models import (
    SUPPORTED_MIME_TYPE,
    FileAttachment,
    Group,
    SourceDescriptor,
    SourceType,
    StoredBlob,
    new_source_id,
)
from envoy.errors import (
    EmptyTitle,
    InvalidUrl,
    LibraryFull,
    StoreUnavailable,
    UnknownGroup,
    UnsupportedFileType,
)
from envoy.library.state import LibraryState

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 50


def is_valid_url(url: str) -> bool:
    """True if *url* is an absolute URL with a scheme and a host."""
    try:
        parsed = urllib.parse.urlparse(url)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc) and not any(c.isspace() for c in url)


class LibraryManager:
    """Owns a LibraryState and keeps both stores in step with it."""

    def __init__(
        self,
        state: LibraryState,
        metadata_store: MetadataStore,
        blob_store: BlobStore,
        *,
        max_items: int = DEFAULT_MAX_ITEMS,
    ) -> None:
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        self.state = state
        self.metadata_store = metadata_store
        self.blob_store = blob_store
        self.max_items = max_items
        self.last_failure: StoreUnavailable | None = None
        self.last_delete_failure: StoreUnavailable | None = None

    @property
    def groups(self) -> list[Group]:
        return self.state.groups

    @property
    def active_group(self) -> Group:
        return self.state.active_group

    def find_source(self, source_id: str) -> SourceDescriptor | None:
        return self.state.find_source(source_id)

    # ------------------------------------------------------------------
    # Additions
    # ------------------------------------------------------------------

    def add_url_source(self, group_id: str, url: str) -> list[Group]:
        """Append a ``url`` descriptor titled with the URL itself.

        Raises:
            InvalidUrl: *url* is empty or not an absolute URL.
            LibraryFull: The group already holds ``max_items`` sources.
            UnknownGroup: No group with *group_id*.
        """
        url = url.strip()
        if not url or not is_valid_url(url):
            raise InvalidUrl(url)
        group = self._require_group(group_id)
        self._check_capacity(group)

        group.sources.append(
            SourceDescriptor(
                id=new_source_id("src"),
                type=SourceType.URL,
                title=url,
                url=url,
            )
        )
        self.last_failure = None
        self._commit()
        return self.groups

    async def add_file_source(self, group_id: str, attachment: FileAttachment) -> list[Group]:
        """Store *attachment* in the blob store, then append its descriptor.

        If the blob write fails nothing is appended and ``last_failure`` is set.
        If the group is removed or filled while the write is pending, the blob
        is deleted again and the validation error is raised.

        Raises:
            UnsupportedFileType: The declared MIME type is not PDF.
            LibraryFull: The group already holds ``max_items`` sources.
            UnknownGroup: No group with *group_id*.
        """
        if attachment.mime_type != SUPPORTED_MIME_TYPE:
            raise UnsupportedFileType(attachment.name, attachment.mime_type)
        group = self._require_group(group_id)
        self._check_capacity(group)

        source_id = new_source_id("file")
        blob = StoredBlob(
            id=source_id,
            name=attachment.name,
            mime_type=attachment.mime_type,
            data=attachment.data,
            date=datetime.now(timezone.utc).isoformat(),
        )
        self.last_failure = None
        try:
            await self.blob_store.put(blob)
        except StoreUnavailable as exc:
            logger.error("Failed to save file %s to library", attachment.name, exc_info=True)
            self.last_failure = exc
            return self.groups

        # The group list may have changed while the write was pending.
        try:
            group = self._require_group(group_id)
            self._check_capacity(group)
        except (UnknownGroup, LibraryFull):
            await self._discard_blob(source_id)
            raise
        group.sources.append(
            SourceDescriptor(
                id=source_id,
                type=SourceType.FILE,
                title=attachment.name,
                mime_type=attachment.mime_type,
            )
        )
        self._commit()
        return self.groups

    # ------------------------------------------------------------------
    # Removal / rename / selection
    # ------------------------------------------------------------------

    async def remove_source(self, source_id: str, group_id: str | None = None) -> list[Group]:
        """Remove *source_id* from every group, deleting its blob first.

        *group_id* is accepted for symmetry with the add operations; ids are
        unique across the library so removal is always global. Removing an
        unknown id is a no-op.
        """
        source = self.find_source(source_id)
        if source is None:
            return self.groups

        self.last_failure = None
        self.last_delete_failure = None
        if source.type is SourceType.FILE:
            try:
                await self.blob_store.delete(source_id)
            except StoreUnavailable as exc:
                # Descriptor goes regardless; the blob becomes an orphan.
                logger.error("Error deleting file %s from blob store", source_id, exc_info=True)
                self.last_failure = exc
                self.last_delete_failure = exc

        for group in self.groups:
            group.sources = [s for s in group.sources if s.id != source_id]
        self._commit()
        return self.groups

    def rename_source(self, source_id: str, new_title: str) -> list[Group]:
        """Change the descriptor title. The stored blob is not touched.

        Raises:
            EmptyTitle: *new_title* is empty or whitespace only.
        """
        title = new_title.strip()
        if not title:
            raise EmptyTitle(source_id)

        source = self.find_source(source_id)
        if source is None or source.title == title:
            return self.groups
        source.title = title
        self.last_failure = None
        self._commit()
        return self.groups

    def set_active_group(self, group_id: str) -> list[Group]:
        """Select the group whose sources feed the next chat turn.

        Raises:
            UnknownGroup: No group with *group_id*.
        """
        self._require_group(group_id)
        self.state.active_group_id = group_id
        self.last_failure = None
        self._commit()
        return self.groups

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_group(self, group_id: str) -> Group:
        group = self.state.get_group(group_id)
        if group is None:
            raise UnknownGroup(group_id)
        return group

    def _check_capacity(self, group: Group) -> None:
        if len(group.sources) >= self.max_items:
            raise LibraryFull(group.id, self.max_items)

    async def _discard_blob(self, blob_id: str) -> None:
        try:
            await self.blob_store.delete(blob_id)
        except StoreUnavailable:
            logger.error("Failed to discard file %s; it will be recovered at startup", blob_id, exc_info=True)

    def _commit(self) -> None:
        """Bump the state version and rewrite the metadata document."""
        self.state.bump()
        try:
            self.metadata_store.save(self.groups)
        except StoreUnavailable as exc:
            logger.error("Failed to save sources metadata", exc_info=True)
            self.last_failure = exc
