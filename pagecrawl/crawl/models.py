"""Data models for the crawl pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from playwright.async_api import Page

# Caller-supplied next-page resolver: full override of the built-in heuristics.
PaginationCallback = Callable[["Page"], Awaitable["str | None"]]

DEFAULT_TIMEOUT = 30.0
DEFAULT_BASE64_MAX_BYTES = 51200


@dataclass(frozen=True)
class CustomRule:
    """Extract one named metadata value from the page."""

    name: str
    selector: str
    attribute: str | None = None
    transform: Callable[[str], Any] | None = None


@dataclass(frozen=True)
class ExtractionSchema:
    """CSS selector overrides for the built-in extraction heuristics."""

    title: str | None = None
    author: str | None = None
    publish_date: str | None = None
    content: str | None = None
    images: str | None = None
    custom: tuple[CustomRule, ...] = ()


@dataclass(frozen=True)
class CrawlRequest:
    """Everything needed to crawl a single URL."""

    url: str
    render: bool = True
    timeout: float = DEFAULT_TIMEOUT
    wait_time: float = 0.0
    max_depth: int = 0
    next_selector: str | None = None
    pagination_callback: PaginationCallback | None = None
    extraction_schema: ExtractionSchema | None = None
    proxy: str | Sequence[str] | None = None
    user_agent: str | None = None
    extract_images: bool = True
    auto_detect_schema: bool = False
    download_media: bool = False
    media_output_dir: str = "./media"
    base64_embed_images: bool = False
    base64_embed_max_bytes: int = DEFAULT_BASE64_MAX_BYTES
    llm_extract: bool = False
    llm_endpoint: str | None = None
    llm_model: str | None = None

    def __post_init__(self) -> None:
        if not self.url or not isinstance(self.url, str):
            raise ValueError("URL is required")
        if self.max_depth < 0:
            raise ValueError("max_depth must be >= 0")

    @property
    def wait_until(self) -> str:
        """Playwright load state to wait for on navigation."""
        return "networkidle" if self.render else "domcontentloaded"

    @property
    def timeout_ms(self) -> float:
        return self.timeout * 1000


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MediaDownload(_WireModel):
    url: str
    local_path: str
    mime_type: str | None = None


class MediaEmbedded(_WireModel):
    url: str
    data_url: str
    mime_type: str | None = None


class ScrapedData(_WireModel):
    """Structured content extracted from one crawl."""

    url: str
    title: str | None = None
    author: str | None = None
    publish_date: str | None = None
    content: str = ""
    cleaned_html: str | None = None
    markdown: str | None = None
    text: str | None = None
    images: list[str] | None = None
    media_downloads: list[MediaDownload] | None = None
    media_embedded: list[MediaEmbedded] | None = None
    metadata: dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
