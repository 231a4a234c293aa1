"""LiteLLM generation client with URL and file context.

All generation calls route through this module. LiteLLM's built-in retry is
used (num_retries, exponential backoff). Every failure (missing key, quota,
transport, malformed response) reaches the caller as GenerationFailure.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import litellm

from envoy.db.models import FileAttachment
from envoy.errors import GenerationFailure

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

URL_RETRIEVAL_SUCCESS = "URL_RETRIEVAL_STATUS_SUCCESS"

SYSTEM_INSTRUCTION = """\
You are a Senior European Diplomat stationed in Silicon Valley. Your mandate is to analyze \
and explain complex AI regulation (EU AI Act, California acts, and relevant US federal \
frameworks) for busy decision-makers.

Tone: professional, diplomatic, concise, factual, neutral.

Context rule:
- Answer EXCLUSIVELY based on the provided context.
- If the context does not include the necessary information, say so. Never invent facts.

Answer structure (MANDATORY, Markdown):

## [Descriptive Answer Title]

### Short Review
(Max 2 sentences.) High-level executive summary.

### Key Details
(Max 4 bullet points, hyphens only.) Specific details, each followed inline by
<citation id="SOURCE_ID" page="PAGE_NUMBER">[Document Title]: [Exact Article/Section]</citation>

Citation rule: include the Document Title from the provided list; take id and page strictly
from the context. Never fabricate.

End every answer with: Would you like me to elaborate on any of these points?"""

FALLBACK_SUGGESTIONS: list[str] = [
    "Summarize the key points.",
    "What are the compliance risks?",
    "Comparison of EU vs US approach.",
]

NO_SOURCE_SUGGESTIONS: list[str] = [
    "Upload a PDF to analyze.",
    "What are the transparency obligations?",
    "Explain the risk classification system.",
]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}

# Providers that accept the googleSearch grounding tool.
_GROUNDED_PROVIDERS = {"gemini", "vertex_ai"}


@dataclass
class RetrievalItem:
    retrieved_url: str
    retrieval_status: str = URL_RETRIEVAL_SUCCESS


@dataclass
class GenerationResult:
    text: str
    retrieval_metadata: list[RetrievalItem] | None = None


@dataclass
class GenerationClient:
    """Bound model settings; callable as the chat session's generate function."""

    model: str
    max_tokens: int = 4096
    num_retries: int = 3
    extra: dict[str, Any] = field(default_factory=dict)

    def __call__(
        self,
        prompt: str,
        urls: Sequence[str],
        attachments: Sequence[FileAttachment],
    ) -> GenerationResult:
        return generate_with_context(
            self.model,
            prompt,
            urls,
            attachments,
            max_tokens=self.max_tokens,
            num_retries=self.num_retries,
            **self.extra,
        )


def _provider(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = _provider(model)
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


# ------------------------------------------------------------------
# Prompt construction
# ------------------------------------------------------------------


def build_prompt(
    prompt: str,
    urls: Sequence[str],
    attachments: Sequence[FileAttachment],
) -> str:
    """Append the URL and file listings the model is told to consult."""
    context = ""
    if urls:
        context += "\n[Provided Context Sources (URLs)]:\n" + "\n".join(f"- {u}" for u in urls)
    if attachments:
        context += "\n[Attached Documentation Files]:\n" + "\n".join(
            f"- {a.name}" for a in attachments
        )
    if not context:
        return prompt
    return (
        f"{prompt}\n\n{context}\n\n"
        "Please consult these sources to answer the inquiry. "
        "When citing, refer to the document titles listed above."
    )


def build_messages(
    prompt: str,
    urls: Sequence[str],
    attachments: Sequence[FileAttachment],
) -> list[dict]:
    """Return an OpenAI-style message list with attachments as inline file parts."""
    parts: list[dict] = [
        {
            "type": "file",
            "file": {
                "filename": a.name,
                "file_data": f"data:{a.mime_type};base64,{a.data}",
            },
        }
        for a in attachments
    ]
    parts.append({"type": "text", "text": build_prompt(prompt, urls, attachments)})
    return [
        {"role": "system", "content": SYSTEM_INSTRUCTION},
        {"role": "user", "content": parts},
    ]


# ------------------------------------------------------------------
# Generation
# ------------------------------------------------------------------


def generate_with_context(
    model: str,
    prompt: str,
    urls: Sequence[str],
    attachments: Sequence[FileAttachment] = (),
    *,
    max_tokens: int = 4096,
    num_retries: int = 3,
    **kwargs: Any,
) -> GenerationResult:
    """Generate an answer grounded on *urls* and *attachments*.

    Raises:
        GenerationFailure: On any configuration, quota or transport error.
    """
    params: dict[str, Any] = dict(kwargs)
    if urls and _provider(model) in _GROUNDED_PROVIDERS:
        params["tools"] = [{"googleSearch": {}}]

    try:
        validate_api_key(model)
        response = litellm.completion(
            model=model,
            messages=build_messages(prompt, urls, attachments),
            max_tokens=max_tokens,
            num_retries=num_retries,
            **params,
        )
        text = response.choices[0].message.content or ""
    except Exception as exc:
        logger.error("Generation call to %s failed: %s", model, exc)
        raise GenerationFailure(str(exc)) from exc

    return GenerationResult(text=text, retrieval_metadata=_extract_retrieval_metadata(response))


def _extract_retrieval_metadata(response: Any) -> list[RetrievalItem] | None:
    """Map grounding chunks (or URL-context metadata) to RetrievalItems.

    Returns None when the response carries neither.
    """
    grounding = getattr(response, "vertex_ai_grounding_metadata", None)
    if isinstance(grounding, list):
        items = [
            RetrievalItem(retrieved_url=chunk["web"]["uri"])
            for meta in grounding
            if isinstance(meta, dict)
            for chunk in meta.get("groundingChunks", [])
            if isinstance(chunk, dict) and isinstance(chunk.get("web"), dict) and chunk["web"].get("uri")
        ]
        if items:
            return items

    url_context = getattr(response, "vertex_ai_url_context_metadata", None)
    if isinstance(url_context, list):
        items = [
            RetrievalItem(
                retrieved_url=str(m.get("retrievedUrl", "")),
                retrieval_status=str(m.get("urlRetrievalStatus", "")),
            )
            for meta in url_context
            if isinstance(meta, dict)
            for m in meta.get("urlMetadata", [])
            if isinstance(m, dict)
        ]
        if items:
            return items
    return None


# ------------------------------------------------------------------
# Suggestions
# ------------------------------------------------------------------

_SUGGESTION_PROMPT = (
    "Based on the content of the following documentation URLs, provide 3-4 concise "
    "and actionable questions a stakeholder might ask a diplomat about AI regulation. "
    'Return ONLY a JSON object with a key "suggestions" containing an array of strings.'
    "\n\nRelevant URLs:\n"
)


def get_initial_suggestions(model: str, urls: Sequence[str], num_retries: int = 3) -> list[str]:
    """Return starter questions for *urls*; fallback list on any failure."""
    if not urls:
        return list(NO_SOURCE_SUGGESTIONS)
    try:
        response = litellm.completion(
            model=model,
            messages=[{"role": "user", "content": _SUGGESTION_PROMPT + "\n".join(urls)}],
            response_format={"type": "json_object"},
            num_retries=num_retries,
        )
        return _parse_suggestions(response.choices[0].message.content or "")
    except Exception:
        logger.warning("Failed to fetch suggestions from %s", model, exc_info=True)
        return list(FALLBACK_SUGGESTIONS)


def _parse_suggestions(raw: str) -> list[str]:
    """Parse ``{"suggestions": [...]}``. Returns the fallback list on parse error."""
    try:
        start = raw.index("{")
        end = raw.rindex("}") + 1
        data = json.loads(raw[start:end])
        suggestions = data.get("suggestions")
        if isinstance(suggestions, list) and suggestions:
            return [str(s) for s in suggestions]
    except (ValueError, json.JSONDecodeError, AttributeError):
        pass
    return list(FALLBACK_SUGGESTIONS)
