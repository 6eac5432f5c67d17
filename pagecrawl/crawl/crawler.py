"""Crawl orchestrator: rate limit -> proxy retry -> navigate -> paginate -> extract."""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import TYPE_CHECKING, Any, Sequence

from .browser import BrowserSessionFactory, SessionFactory
from .extractor import ContentExtractor
from .llm import LlmExtractionError, extract_with_llm
from .media import download_media, embed_small_images
from .models import CrawlRequest, ExtractionSchema, ScrapedData
from .pagination import PaginationTraversal, merge_documents
from .proxy import ProxyConfig, ProxyPool
from .rate_limiter import RateLimiter
from .schema_detector import detect_schema

if TYPE_CHECKING:
    from playwright.async_api import Page

    from pagecrawl.config import Settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({403, 429})
_TIMEOUT_RE = re.compile(r"timeout|timed out|deadline", re.IGNORECASE)


class CrawlError(Exception):
    """A crawl failed; the message names the target URL."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url


class RetryableNavigationError(CrawlError):
    """Navigation failed in a way another proxy may fix (403, 429, timeout)."""

    def __init__(self, url: str, message: str, status: int | None = None) -> None:
        super().__init__(url, message)
        self.status = status


class ProxiesExhaustedError(CrawlError):
    """Every try of a crawl hit a retryable navigation error."""

    def __init__(self, url: str, attempts: int, last_error: Exception | None) -> None:
        super().__init__(url, f"Failed to crawl {url} after {attempts} attempt(s): {last_error}")
        self.attempts = attempts


def is_retryable_message(message: str) -> bool:
    return bool(_TIMEOUT_RE.search(message))


class Crawler:
    """Crawls single URLs or batches through a shared browser and rate limiter."""

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        *,
        proxy_pool: ProxyPool | None = None,
        session_factory: SessionFactory | None = None,
        pagination: PaginationTraversal | None = None,
        backoff_base: float = 1.0,
        max_backoff: float = 60.0,
    ) -> None:
        self._rate_limiter = rate_limiter or RateLimiter()
        self._proxy_pool = proxy_pool
        self._sessions = session_factory or BrowserSessionFactory()
        self._pagination = pagination or PaginationTraversal()
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff

    @classmethod
    def from_settings(cls, settings: Settings) -> Crawler:
        proxies = settings.proxy_list
        return cls(
            RateLimiter(
                max_requests_per_second=settings.max_requests_per_second,
                max_concurrency=settings.max_concurrency,
            ),
            proxy_pool=ProxyPool(proxies) if proxies else None,
            session_factory=BrowserSessionFactory(headless=settings.headless),
            backoff_base=settings.backoff_base_seconds,
            max_backoff=settings.max_backoff_seconds,
        )

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    async def close(self) -> None:
        await self._sessions.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def crawl(self, request: CrawlRequest) -> ScrapedData:
        """Crawl one URL and return its extracted content.

        Raises:
            ProxyParseError: If the request's proxy override is malformed.
            ProxiesExhaustedError: If every proxy hit a retryable failure.
            CrawlError: On any other navigation or extraction failure.
        """
        proxies = self._resolve_proxies(request)
        logger.info(
            "crawl queued",
            extra={"url": request.url, "proxies": len(proxies), "max_depth": request.max_depth},
        )
        return await self._rate_limiter.execute(lambda: self._crawl_with_retries(request, proxies))

    async def crawl_batch(
        self,
        urls: Sequence[str],
        template: CrawlRequest | None = None,
    ) -> list[ScrapedData]:
        """Crawl *urls* one after another; failures become placeholder results."""
        results: list[ScrapedData] = []
        for url in urls:
            try:
                request = (
                    dataclasses.replace(template, url=url) if template is not None else CrawlRequest(url=url)
                )
                results.append(await self.crawl(request))
            except Exception as exc:
                logger.warning("batch crawl failed", extra={"url": url}, exc_info=True)
                results.append(ScrapedData(url=url, content="", metadata={"error": str(exc)}))
        logger.info(
            "batch crawl complete",
            extra={"urls": len(urls), "failed": sum(1 for r in results if "error" in r.metadata)},
        )
        return results

    # ------------------------------------------------------------------
    # Attempt loop
    # ------------------------------------------------------------------

    def _resolve_proxies(self, request: CrawlRequest) -> list[ProxyConfig]:
        if request.proxy:
            return ProxyPool(request.proxy).drain()
        if self._proxy_pool is not None:
            return self._proxy_pool.drain()
        return []

    async def _crawl_with_retries(self, request: CrawlRequest, proxies: list[ProxyConfig]) -> ScrapedData:
        attempts = max(1, len(proxies))
        last_error: RetryableNavigationError | None = None

        for attempt in range(attempts):
            proxy = proxies[attempt % len(proxies)] if proxies else None
            try:
                html = await self._fetch(request, proxy)
            except RetryableNavigationError as exc:
                last_error = exc
                logger.warning(
                    "retryable navigation failure",
                    extra={
                        "url": request.url,
                        "attempt": attempt + 1,
                        "attempts": attempts,
                        "proxy": str(proxy) if proxy else None,
                        "status": exc.status,
                        "error": str(exc),
                    },
                )
                if exc.status == 429 and attempt + 1 < attempts:
                    await self._rate_limiter.handle_backoff(attempt, self._max_backoff, self._backoff_base)
                continue

            try:
                return await self._build_result(request, html)
            except Exception as exc:
                raise CrawlError(request.url, f"Failed to crawl {request.url}: {exc}") from exc

        raise ProxiesExhaustedError(request.url, attempts, last_error)

    async def _fetch(self, request: CrawlRequest, proxy: ProxyConfig | None) -> str:
        """Open a session through *proxy*, load the page (and its successors) and return the markup."""
        async with self._sessions.session(proxy=proxy, user_agent=request.user_agent) as page:
            await self._navigate(page, request)
            try:
                if request.wait_time:
                    await page.wait_for_timeout(request.wait_time * 1000)
                html = await page.content()

                if request.max_depth > 0:
                    pages = await self._pagination.traverse(page, request, first_document=html)
                    if len(pages.urls) > 1 or pages.in_place_loads:
                        html = merge_documents(pages.documents)
                    logger.info(
                        "pagination complete",
                        extra={"url": request.url, "pages": len(pages.urls), "in_place_loads": pages.in_place_loads},
                    )
            except CrawlError:
                raise
            except Exception as exc:
                raise CrawlError(request.url, f"Failed to crawl {request.url}: {exc}") from exc
            return html

    async def _navigate(self, page: Page, request: CrawlRequest) -> None:
        url = request.url
        try:
            response = await page.goto(url, wait_until=request.wait_until, timeout=request.timeout_ms)
        except Exception as exc:
            message = str(exc)
            if is_retryable_message(message):
                raise RetryableNavigationError(url, f"Navigation to {url} timed out: {message}") from exc
            raise CrawlError(url, f"Failed to crawl {url}: {message}") from exc

        status = response.status if response is not None else None
        if status in RETRYABLE_STATUSES:
            raise RetryableNavigationError(url, f"Navigation to {url} returned HTTP {status}", status=status)
        if status is not None and status >= 400:
            raise CrawlError(url, f"Failed to crawl {url}: HTTP {status}")

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    async def _build_result(self, request: CrawlRequest, html: str) -> ScrapedData:
        schema = request.extraction_schema
        detection = None
        if request.auto_detect_schema:
            detection = detect_schema(html)
            schema = _merge_schemas(detection.schema, request.extraction_schema)

        data = ContentExtractor(schema).extract(html, request.url, extract_images=request.extract_images)
        if detection is not None:
            data.metadata["schemaDetection"] = {
                "confidence": detection.confidence,
                "suggestions": detection.suggestions,
            }

        image_urls = data.images or []
        if image_urls and request.download_media:
            try:
                data.media_downloads = await download_media(
                    image_urls,
                    request.url,
                    request.media_output_dir,
                    user_agent=request.user_agent,
                    timeout=request.timeout,
                )
            except OSError as exc:
                logger.warning("media download skipped", extra={"url": request.url, "error": str(exc)})
        if image_urls and request.base64_embed_images:
            data.media_embedded = await embed_small_images(
                image_urls,
                request.base64_embed_max_bytes,
                user_agent=request.user_agent,
                timeout=request.timeout,
            )

        if request.llm_extract and request.llm_endpoint:
            await self._apply_llm_fields(request, data)

        logger.info(
            "crawl extracted",
            extra={
                "url": request.url,
                "title": (data.title or "")[:80],
                "content_length": len(data.content),
                "images": len(image_urls),
            },
        )
        return data

    async def _apply_llm_fields(self, request: CrawlRequest, data: ScrapedData) -> None:
        try:
            fields: dict[str, Any] = await extract_with_llm(
                data.markdown or data.content,
                request.llm_endpoint,
                model=request.llm_model,
                timeout=request.timeout,
            )
        except LlmExtractionError as exc:
            logger.warning("llm extraction failed", extra={"url": request.url, "error": str(exc)})
            data.metadata["llmError"] = str(exc)
            return

        extra_metadata = fields.pop("metadata", None)
        for attr, value in fields.items():
            setattr(data, attr, value)
        if extra_metadata:
            data.metadata.update(extra_metadata)


def _merge_schemas(detected: ExtractionSchema, explicit: ExtractionSchema | None) -> ExtractionSchema:
    """Explicit selectors win; detected ones fill the gaps."""
    if explicit is None:
        return detected
    return ExtractionSchema(
        title=explicit.title or detected.title,
        author=explicit.author or detected.author,
        publish_date=explicit.publish_date or detected.publish_date,
        content=explicit.content or detected.content,
        images=explicit.images or detected.images,
        custom=explicit.custom,
    )
