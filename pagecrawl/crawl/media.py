"""Image URL resolution, media download and base64 embedding."""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from pathlib import Path, PurePosixPath
from typing import Iterable
from urllib.parse import urljoin, urlsplit

import httpx

from .models import DEFAULT_BASE64_MAX_BYTES, MediaDownload, MediaEmbedded

logger = logging.getLogger(__name__)

_UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9._-]")
_REPEATED_UNDERSCORE_RE = re.compile(r"_+")

_MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
    "application/pdf": ".pdf",
}


def resolve_url(base_url: str, href: str) -> str:
    """Resolve *href* against *base_url*; ``data:`` URIs and failures pass through."""
    if not href or href.startswith("data:"):
        return href
    try:
        return urljoin(base_url, href)
    except ValueError:
        return href


def resolve_image_urls(base_url: str, urls: Iterable[str]) -> list[str]:
    """Resolve, drop ``data:`` URIs and deduplicate, preserving first-seen order."""
    seen: set[str] = set()
    resolved_urls: list[str] = []
    for url in urls:
        resolved = resolve_url(base_url, url)
        if resolved and not resolved.startswith("data:") and resolved not in seen:
            seen.add(resolved)
            resolved_urls.append(resolved)
    return resolved_urls


def _sanitize(value: str) -> str:
    cleaned = _REPEATED_UNDERSCORE_RE.sub("_", _UNSAFE_CHARS_RE.sub("_", value)).strip("_")
    return cleaned or "index"


def _folder_for_page(page_url: str) -> Path:
    """``<host with underscores>/<path slug>`` for the page being crawled."""
    parts = urlsplit(page_url)
    if not parts.hostname:
        return Path("media")
    host = parts.hostname.replace(".", "_")
    slug = _sanitize(parts.path.lstrip("/").replace("/", "_")[:80])
    return Path(host) / slug


def _filename_for(url: str, index: int, content_type: str) -> str:
    name = PurePosixPath(urlsplit(url).path).name
    suffix = PurePosixPath(name).suffix or _MIME_EXTENSIONS.get(content_type, "")
    stem = _sanitize(PurePosixPath(name).stem)[:64] if name else f"asset_{index}"
    return f"{stem}_{index}{suffix}"


def _content_type(response: httpx.Response) -> str:
    return response.headers.get("content-type", "").split(";")[0].strip()


def _headers(user_agent: str | None) -> dict[str, str]:
    return {"User-Agent": user_agent} if user_agent else {}


async def download_media(
    urls: list[str],
    page_url: str,
    output_dir: str,
    *,
    user_agent: str | None = None,
    timeout: float = 15.0,
) -> list[MediaDownload]:
    """Download *urls* into ``output_dir/<host>/<path slug>/``.

    Failed downloads are skipped. ``local_path`` is relative to *output_dir*.
    """
    root = Path(output_dir)
    folder = root / _folder_for_page(page_url)
    await asyncio.to_thread(folder.mkdir, parents=True, exist_ok=True)

    downloads: list[MediaDownload] = []
    async with httpx.AsyncClient(
        headers=_headers(user_agent),
        timeout=timeout,
        follow_redirects=True,
    ) as client:
        for index, url in enumerate(urls):
            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPError:
                logger.debug("media download failed", extra={"url": url}, exc_info=True)
                continue

            content_type = _content_type(response)
            target = folder / _filename_for(url, index, content_type)
            try:
                await asyncio.to_thread(target.write_bytes, response.content)
            except OSError:
                logger.debug("media write failed", extra={"url": url, "path": str(target)}, exc_info=True)
                continue
            downloads.append(
                MediaDownload(
                    url=url,
                    local_path=target.relative_to(root).as_posix(),
                    mime_type=content_type or None,
                )
            )

    logger.debug(
        "media downloaded",
        extra={"page_url": page_url, "requested": len(urls), "downloaded": len(downloads)},
    )
    return downloads


async def embed_small_images(
    urls: list[str],
    max_bytes: int = DEFAULT_BASE64_MAX_BYTES,
    *,
    user_agent: str | None = None,
    timeout: float = 15.0,
) -> list[MediaEmbedded]:
    """Fetch *urls* and return ``data:`` URLs for those no larger than *max_bytes*."""
    embedded: list[MediaEmbedded] = []
    async with httpx.AsyncClient(
        headers=_headers(user_agent),
        timeout=timeout,
        follow_redirects=True,
    ) as client:
        for url in urls:
            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPError:
                logger.debug("media embed fetch failed", extra={"url": url}, exc_info=True)
                continue

            body = response.content
            if len(body) > max_bytes:
                continue
            mime_type = _content_type(response) or "image/png"
            encoded = base64.b64encode(body).decode("ascii")
            embedded.append(
                MediaEmbedded(
                    url=url,
                    data_url=f"data:{mime_type};base64,{encoded}",
                    mime_type=mime_type,
                )
            )
    return embedded
