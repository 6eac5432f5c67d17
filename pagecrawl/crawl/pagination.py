"""Pagination detection and bounded traversal over a live browser page."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .media import resolve_url

if TYPE_CHECKING:
    from playwright.async_api import Page

    from .models import CrawlRequest

logger = logging.getLogger(__name__)

NEXT_LINK_SELECTORS = (
    'a[rel="next"]',
    'a:has-text("next")',
    ".next",
    ".pagination-next",
    '[aria-label*="next" i]',
)

LOAD_MORE_SELECTORS = (
    'button:has-text("load more")',
    ".load-more",
    '[data-action="load-more"]',
)

# Seconds to let appended content settle after clicking "load more".
LOAD_MORE_SETTLE_SECONDS = 2.0


def merge_documents(documents: list[str]) -> str:
    """Concatenate the markup of every visited page, in visit order."""
    return "\n".join(documents)


@dataclass
class PaginationResult:
    """Outcome of a traversal.

    ``urls`` lists each visited page once, origin first. ``documents`` holds
    the markup snapshot of each of those pages.
    """

    urls: list[str] = field(default_factory=list)
    documents: list[str] = field(default_factory=list)
    in_place_loads: int = 0


class PaginationTraversal:
    """Follow "next" links (or "load more" buttons) up to ``max_depth`` pages.

    The next URL is resolved, first match wins, by the request's
    ``pagination_callback``, then its ``next_selector``, then the built-in
    link patterns, then the load-more affordance (the URL after the click,
    if it changed). A resolver answer equal to
    the current URL means content was appended in place: that costs one
    depth step, refreshes the current snapshot and stops once a click no
    longer changes the markup.
    """

    def __init__(self, settle_seconds: float = LOAD_MORE_SETTLE_SECONDS) -> None:
        self._settle_seconds = settle_seconds

    async def traverse(
        self,
        page: Page,
        request: CrawlRequest,
        first_document: str | None = None,
    ) -> PaginationResult:
        current = request.url
        if first_document is None:
            first_document = await page.content()
        result = PaginationResult(urls=[current], documents=[first_document])
        visited = {current}
        depth = 1

        while depth < request.max_depth:
            next_url = await self.find_next_url(page, request, current)
            if not next_url:
                logger.debug("pagination: no next page", extra={"url": current, "depth": depth})
                break

            if next_url == current:
                expanded = await page.content()
                depth += 1
                if expanded == result.documents[-1]:
                    logger.debug("pagination: load more added nothing", extra={"url": current})
                    break
                result.documents[-1] = expanded
                result.in_place_loads += 1
                continue

            if next_url in visited:
                logger.debug("pagination: cycle detected", extra={"url": current, "next_url": next_url})
                break

            await page.goto(next_url, wait_until=request.wait_until, timeout=request.timeout_ms)
            if request.wait_time:
                await page.wait_for_timeout(request.wait_time * 1000)
            visited.add(next_url)
            result.urls.append(next_url)
            result.documents.append(await page.content())
            current = next_url
            depth += 1

        logger.debug(
            "pagination finished",
            extra={
                "url": request.url,
                "pages": len(result.urls),
                "in_place_loads": result.in_place_loads,
            },
        )
        return result

    async def find_next_url(self, page: Page, request: CrawlRequest, current_url: str) -> str | None:
        if request.pagination_callback is not None:
            return await request.pagination_callback(page)

        if request.next_selector:
            try:
                element = await page.query_selector(request.next_selector)
                href = await element.get_attribute("href") if element else None
            except Exception:
                logger.debug(
                    "pagination: next selector failed",
                    extra={"selector": request.next_selector},
                    exc_info=True,
                )
                href = None
            if href:
                return resolve_url(current_url, href)

        next_url = await self._detect_next_link(page, current_url)
        if next_url:
            return next_url
        return await self._load_more(page, current_url)

    async def _detect_next_link(self, page: Page, current_url: str) -> str | None:
        for selector in NEXT_LINK_SELECTORS:
            try:
                element = await page.query_selector(selector)
                href = await element.get_attribute("href") if element else None
            except Exception:
                logger.debug("pagination: pattern failed", extra={"selector": selector}, exc_info=True)
                continue
            if href:
                resolved = resolve_url(current_url, href)
                if resolved != current_url:
                    return resolved
        return None

    async def _load_more(self, page: Page, current_url: str) -> str | None:
        for selector in LOAD_MORE_SELECTORS:
            try:
                button = await page.query_selector(selector)
                if button is None or not await button.is_visible():
                    continue
                await button.click()
                await page.wait_for_timeout(self._settle_seconds * 1000)
            except Exception:
                logger.debug("pagination: load more failed", extra={"selector": selector}, exc_info=True)
                continue
            # A changed URL is the next page; an unchanged one was expanded in place.
            if page.url != current_url:
                return page.url
            return current_url
        return None
