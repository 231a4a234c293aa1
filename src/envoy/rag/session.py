"""Chat session: one turn = assemble context, call the model, record the reply.

Generation failures never escape a turn. The pending reply is replaced by a
single apology message, nothing is retried, and the library is not touched.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from envoy.db.blob_store import BlobStore
from envoy.db.models import FileAttachment, SourceType
from envoy.library.assembler import assemble_context
from envoy.library.manager import LibraryManager
from envoy.rag.llm_client import GenerationResult, RetrievalItem

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str, Sequence[str], Sequence[FileAttachment]], GenerationResult]
SuggestFn = Callable[[Sequence[str]], list[str]]

WELCOME_TEXT = (
    "Greetings. I am your Regulatory Envoy. Please upload your regulatory documents "
    "(PDFs) to the library. They will be securely stored for our briefing sessions."
)
APOLOGY_TEXT = (
    "Apologies, I encountered a diplomatic communication error. "
    "Please ensure your files are valid and try again."
)
FILE_ONLY_SUGGESTIONS: list[str] = [
    "Summarize the key compliance obligations in these documents.",
    "Are there any definitions of 'High-Risk AI'?",
    "Compare the requirements here with the EU AI Act.",
]


class Sender(str, Enum):
    USER = "user"
    MODEL = "model"
    SYSTEM = "system"


@dataclass
class ChatMessage:
    text: str
    sender: Sender
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attachments: list[FileAttachment] = field(default_factory=list)
    url_context: list[RetrievalItem] | None = None
    failed: bool = False


class ChatSession:
    """Transcript plus the turn loop for one library.

    Args:
        manager: Library manager whose active group feeds each turn.
        blob_store: Open blob store used to resolve file sources.
        generate: ``(prompt, urls, attachments) -> GenerationResult``; runs on a
            worker thread.
        suggest: ``(urls) -> list[str]``; optional starter-question source.
    """

    def __init__(
        self,
        manager: LibraryManager,
        blob_store: BlobStore,
        generate: GenerateFn,
        suggest: SuggestFn | None = None,
    ) -> None:
        self.manager = manager
        self.blob_store = blob_store
        self.generate = generate
        self.suggest = suggest
        self.messages: list[ChatMessage] = [
            ChatMessage(text=WELCOME_TEXT, sender=Sender.SYSTEM, id="system-welcome")
        ]

    async def send_message(
        self,
        query: str,
        transient: Iterable[FileAttachment] = (),
    ) -> ChatMessage:
        """Run one chat turn and return the model (or apology) message."""
        transient = list(transient)
        context = await assemble_context(
            self.manager.active_group.sources, self.blob_store, transient
        )

        # Only this turn's attachments are shown on the user message.
        self.messages.append(ChatMessage(text=query, sender=Sender.USER, attachments=transient))

        started = time.monotonic()
        try:
            result = await asyncio.to_thread(
                self.generate, query, context.urls, context.attachments
            )
        except Exception:
            logger.error("Chat turn failed", exc_info=True)
            reply = ChatMessage(text=APOLOGY_TEXT, sender=Sender.MODEL, failed=True)
        else:
            logger.debug(
                "Chat turn: %d urls, %d attachments, %.1fs",
                len(context.urls),
                len(context.attachments),
                time.monotonic() - started,
            )
            reply = ChatMessage(
                text=result.text,
                sender=Sender.MODEL,
                url_context=result.retrieval_metadata,
            )

        self.messages.append(reply)
        return reply

    async def suggestions(self) -> list[str]:
        """Starter questions for the active group.

        URL sources are sent to the suggestion function; a file-only group
        gets a fixed list; an empty group gets nothing.
        """
        sources = self.manager.active_group.sources
        urls = [s.url for s in sources if s.type is SourceType.URL and s.url]
        if urls and self.suggest is not None:
            try:
                return await asyncio.to_thread(self.suggest, urls)
            except Exception:
                logger.warning("Failed to fetch suggestions", exc_info=True)
                return []
        if any(s.type is SourceType.FILE for s in sources):
            return list(FILE_ONLY_SUGGESTIONS)
        return []
