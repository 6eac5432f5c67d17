"""Supplementary field extraction through a local LLM (Ollama or LM Studio)."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama2"
MAX_CONTENT_CHARS = 12000

EXTRACT_PROMPT = """\
You are a web scraping assistant. Extract structured data from the following \
web page content.
Return ONLY a valid JSON object with these keys (use null for missing): title, \
author, publishDate, content (plain text summary or main body), metadata \
(object for any other fields).
No markdown, no explanation, only the JSON object.
"""

_V1_SUFFIX_RE = re.compile(r"/v1.*$")


class LlmExtractionError(Exception):
    """The LLM endpoint failed or returned something that is not a JSON object."""


def _is_openai_compatible(endpoint: str) -> bool:
    # LM Studio listens on :1234 and serves the OpenAI-style /v1 API.
    return "1234" in endpoint or "/v1" in endpoint


def build_llm_call(
    content: str,
    endpoint: str,
    model: str | None = None,
    use_markdown: bool = True,
) -> tuple[str, dict[str, Any]]:
    """Return the (url, JSON payload) pair for *endpoint*."""
    endpoint = endpoint.rstrip("/")
    label = "Markdown" if use_markdown else "HTML"
    prompt = f"{EXTRACT_PROMPT}\n## {label} content:\n{content[:MAX_CONTENT_CHARS]}"

    if _is_openai_compatible(endpoint):
        url = f"{_V1_SUFFIX_RE.sub('', endpoint)}/v1/chat/completions"
        payload: dict[str, Any] = {
            "model": model or "local",
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": 2048,
        }
    else:
        url = f"{endpoint}/api/generate"
        payload = {"model": model or DEFAULT_OLLAMA_MODEL, "prompt": prompt, "stream": False}
    return url, payload


def parse_json_object(raw: str) -> dict[str, Any]:
    """Pull the outermost ``{...}`` out of free-form model output."""
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start == -1 or end <= start:
        raise LlmExtractionError("No JSON object in response")
    try:
        parsed = json.loads(raw[start:end])
    except json.JSONDecodeError as exc:
        raise LlmExtractionError(f"Invalid JSON in response: {exc}") from exc
    if not isinstance(parsed, dict):
        raise LlmExtractionError("No JSON object in response")
    return parsed


def normalize_llm_fields(parsed: dict[str, Any]) -> dict[str, Any]:
    """Keep only well-typed fields, renamed to :class:`ScrapedData` attributes."""
    fields: dict[str, Any] = {}
    for key, attr in (
        ("title", "title"),
        ("author", "author"),
        ("publishDate", "publish_date"),
        ("content", "content"),
    ):
        if isinstance(parsed.get(key), str):
            fields[attr] = parsed[key]
    if isinstance(parsed.get("metadata"), dict):
        fields["metadata"] = parsed["metadata"]
    return fields


def _response_text(body: Any, openai_style: bool) -> Any:
    if not isinstance(body, dict):
        return None
    if not openai_style:
        return body.get("response")
    choices = body.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    return (choices[0].get("message") or {}).get("content")


async def extract_with_llm(
    content: str,
    endpoint: str = DEFAULT_ENDPOINT,
    *,
    model: str | None = None,
    timeout: float = 60.0,
    use_markdown: bool = True,
) -> dict[str, Any]:
    """Ask the LLM at *endpoint* for title/author/publish_date/content/metadata.

    Single request, no retry. Raises :class:`LlmExtractionError` on any
    failure.
    """
    url, payload = build_llm_call(content, endpoint, model, use_markdown)
    openai_style = "chat/completions" in url
    logger.debug("llm extraction request", extra={"url": url, "content_chars": len(content)})

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(url, json=payload)
            if resp.is_error:
                raise LlmExtractionError(f"LLM endpoint {resp.status_code}: {resp.text}")
            body = resp.json()
    except httpx.HTTPError as exc:
        raise LlmExtractionError(f"LLM extraction failed: {exc}") from exc
    except ValueError as exc:
        raise LlmExtractionError(f"LLM extraction failed: invalid response body: {exc}") from exc

    raw = _response_text(body, openai_style)
    if not raw or not isinstance(raw, str):
        raise LlmExtractionError("No text in LLM response")

    return normalize_llm_fields(parse_json_object(raw))
