"""Headless browser sessions backed by Playwright."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncContextManager, AsyncIterator, Protocol

from playwright.async_api import async_playwright

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page, Playwright

    from .proxy import ProxyConfig

logger = logging.getLogger(__name__)


class SessionFactory(Protocol):
    """Protocol for browser session factories."""

    def session(
        self,
        proxy: ProxyConfig | None = None,
        user_agent: str | None = None,
    ) -> AsyncContextManager[Page]: ...

    async def close(self) -> None: ...


class BrowserSessionFactory:
    """One shared Chromium per process, one isolated context per session.

    The browser is launched on first use. Each session gets its own browser
    context so cookies and proxy settings never leak between concurrent
    crawls, and the context is closed when the session exits.
    """

    def __init__(self, *, headless: bool = True) -> None:
        self._headless = headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def _ensure_browser(self) -> Browser:
        async with self._lock:
            if self._browser is None:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(headless=self._headless)
                logger.info("browser launched", extra={"headless": self._headless})
            return self._browser

    @asynccontextmanager
    async def session(
        self,
        proxy: ProxyConfig | None = None,
        user_agent: str | None = None,
    ) -> AsyncIterator[Page]:
        browser = await self._ensure_browser()
        context_kwargs: dict = {}
        if proxy is not None:
            context_kwargs["proxy"] = proxy.to_playwright()
        if user_agent:
            context_kwargs["user_agent"] = user_agent

        context = await browser.new_context(**context_kwargs)
        try:
            page = await context.new_page()
            yield page
        finally:
            await context.close()

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
                logger.info("browser closed")
