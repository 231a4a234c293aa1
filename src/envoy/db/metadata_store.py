"""Synchronous key-value store for the library's group structure.

Holds one JSON document ``{"groups": [...]}`` under a fixed key. Every save
rewrites the whole document; there are no partial updates. Not safe for
overlapping writers: callers must always save their latest in-memory snapshot.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any

from envoy.db.models import Group, SourceDescriptor
from envoy.errors import MetadataQuotaExceeded, StoreUnavailable

logger = logging.getLogger(__name__)

STORAGE_KEY = "envoy_sources_v2"
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024  # 5 MiB

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class MetadataStore:
    """One JSON file per key inside *root*, with a per-document byte quota."""

    def __init__(
        self,
        root: Path | str,
        *,
        key: str = STORAGE_KEY,
        quota_bytes: int = DEFAULT_QUOTA_BYTES,
    ) -> None:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid metadata key: {key!r}")
        self.root = Path(root)
        self.key = key
        self.quota_bytes = quota_bytes
        self.skipped = 0

    @property
    def path(self) -> Path:
        return self.root / f"{self.key}.json"

    @property
    def corrupt_path(self) -> Path:
        return self.root / f"{self.key}.json.corrupt"

    def load(self) -> list[Group] | None:
        """Return the stored group list, or None when the key is absent.

        Groups and descriptors that fail to parse are skipped and counted in
        ``skipped``; the rest of the document is kept. A document that cannot
        be read or decoded at all is logged and treated as absent, while the
        file stays in place (see ``quarantine``).
        """
        self.skipped = 0
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable metadata document %s", self.path, exc_info=True)
            return None
        if not isinstance(raw, dict) or not isinstance(raw.get("groups"), list):
            logger.warning("Ignoring metadata document %s without a group list", self.path)
            return None
        return [g for g in (self._parse_group(g) for g in raw["groups"]) if g is not None]

    def _parse_group(self, data: Any) -> Group | None:
        if not isinstance(data, dict) or "id" not in data:
            logger.warning("Skipping malformed group in %s: %r", self.path, data)
            self.skipped += 1
            return None
        sources: list[SourceDescriptor] = []
        for entry in data.get("sources") or []:
            try:
                sources.append(SourceDescriptor.from_dict(entry))
            except (KeyError, ValueError, TypeError, AttributeError):
                logger.warning("Skipping malformed source in group %s: %r", data["id"], entry)
                self.skipped += 1
        return Group(id=str(data["id"]), name=str(data.get("name", "")), sources=sources)

    def save(self, groups: list[Group]) -> None:
        """Serialise and write the full group list.

        Raises:
            MetadataQuotaExceeded: If the encoded document exceeds the quota.
            StoreUnavailable: If the document cannot be written.
        """
        payload = json.dumps(
            {"groups": [g.to_dict() for g in groups]}, ensure_ascii=False
        ).encode("utf-8")
        if len(payload) > self.quota_bytes:
            raise MetadataQuotaExceeded(len(payload), self.quota_bytes)

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.root, prefix=f".{self.key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(payload)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StoreUnavailable(f"Failed to save library metadata: {exc}") from exc

    def quarantine(self) -> Path:
        """Move the stored document to ``<key>.json.corrupt`` and return that path.

        Raises:
            StoreUnavailable: If the document cannot be moved.
        """
        try:
            os.replace(self.path, self.corrupt_path)
        except OSError as exc:
            raise StoreUnavailable(f"Failed to move aside library metadata: {exc}") from exc
        return self.corrupt_path

    def backup(self) -> Path:
        """Copy the stored document to ``<key>.json.corrupt`` and return that path.

        Raises:
            StoreUnavailable: If the copy cannot be written.
        """
        try:
            shutil.copy2(self.path, self.corrupt_path)
        except OSError as exc:
            raise StoreUnavailable(f"Failed to back up library metadata: {exc}") from exc
        return self.corrupt_path

    def clear(self) -> None:
        """Remove the stored document (no-op when absent)."""
        self.path.unlink(missing_ok=True)
