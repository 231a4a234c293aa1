"""Domain models for the Envoy source library."""

from __future__ import annotations

import base64
import mimetypes
import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

DEFAULT_GROUP_ID = "default-library"
DEFAULT_GROUP_NAME = "My Knowledge Library"
SUPPORTED_MIME_TYPE = "application/pdf"

_ID_ALPHABET = string.digits + string.ascii_lowercase


class SourceType(str, Enum):
    URL = "url"
    FILE = "file"


def new_source_id(prefix: str) -> str:
    """Return ``<prefix>-<epoch ms>-<9 base36 chars>``, e.g. ``file-1718000000000-k3j9x0a1b``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


@dataclass
class SourceDescriptor:
    """Lightweight reference to one knowledge source. Never holds the payload."""

    id: str
    type: SourceType
    title: str
    url: str | None = None  # type == url only
    mime_type: str | None = None  # type == file only

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "type": self.type.value, "title": self.title}
        if self.url is not None:
            data["url"] = self.url
        if self.mime_type is not None:
            data["mimeType"] = self.mime_type
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceDescriptor:
        return cls(
            id=str(data["id"]),
            type=SourceType(data["type"]),
            title=str(data.get("title", "")),
            url=data.get("url"),
            mime_type=data.get("mimeType"),
        )


@dataclass
class StoredBlob:
    id: str
    name: str
    mime_type: str
    data: str  # base64
    date: str  # ISO-8601


@dataclass
class FileAttachment:
    name: str
    mime_type: str
    data: str  # base64

    @classmethod
    def from_path(cls, path: Path | str, mime_type: str | None = None) -> FileAttachment:
        """Read *path* and base64-encode it.

        The MIME type is guessed from the file extension when not given;
        unknown extensions yield ``application/octet-stream``.
        """
        p = Path(path)
        if mime_type is None:
            mime_type = mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        encoded = base64.b64encode(p.read_bytes()).decode("ascii")
        return cls(name=p.name, mime_type=mime_type, data=encoded)


@dataclass
class Group:
    id: str
    name: str
    sources: list[SourceDescriptor] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sources": [s.to_dict() for s in self.sources],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Group:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            sources=[SourceDescriptor.from_dict(s) for s in data.get("sources", [])],
        )


@dataclass
class ChatContextRequest:
    """Exact argument set for one generation request."""

    urls: list[str] = field(default_factory=list)
    attachments: list[FileAttachment] = field(default_factory=list)


def default_groups(name: str = DEFAULT_GROUP_NAME) -> list[Group]:
    """Return a fresh list holding the single empty default group."""
    return [Group(id=DEFAULT_GROUP_ID, name=name)]
