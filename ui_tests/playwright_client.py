"""
Direct Playwright client used by the auth bootstrap and the UI fixtures.

The bootstrap launches one browser per run and gives every identity its own
isolated context; UI tests open contexts from a persisted storage state.

Usage:
    async with PlaywrightClient(headless=True) as client:
        async with client.isolated_context() as context:
            await context.add_cookies(cookies)
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

logger = logging.getLogger(__name__)


class PlaywrightClient:
    """In-process Playwright browser with context helpers."""

    def __init__(
        self,
        browser_type: str = "chromium",
        headless: Optional[bool] = None,
        timeout: int = 30000,
        base_url: Optional[str] = None,
    ):
        """
        Args:
            browser_type: Browser to use (chromium, firefox, webkit)
            headless: Run in headless mode (None = read PLAYWRIGHT_HEADLESS)
            timeout: Default timeout for new contexts in milliseconds
            base_url: base_url for contexts opened by this client
        """
        self.browser_type = browser_type
        if headless is not None:
            self.headless = headless
        else:
            self.headless = os.getenv("PLAYWRIGHT_HEADLESS", "true").lower() in {"true", "1"}
        self.timeout = timeout
        self.base_url = base_url

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def __aenter__(self) -> "PlaywrightClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Launch the browser."""
        self._playwright = await async_playwright().start()
        try:
            launcher = getattr(self._playwright, self.browser_type, None) or self._playwright.chromium
            self._browser = await launcher.launch(headless=self.headless)
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise
        logger.debug(f"Launched {self.browser_type} (headless={self.headless})")

    async def new_context(self, storage_state: Optional[str] = None, **kwargs: Any) -> BrowserContext:
        """
        Create a new browser context.

        Args:
            storage_state: Optional path to a persisted auth state file
            **kwargs: Further context options (viewport, locale, ...)
        """
        if self.base_url and "base_url" not in kwargs:
            kwargs["base_url"] = self.base_url
        if storage_state:
            kwargs["storage_state"] = storage_state
        context = await self.browser.new_context(**kwargs)
        context.set_default_timeout(self.timeout)
        return context

    @asynccontextmanager
    async def isolated_context(self, **kwargs: Any) -> AsyncIterator[BrowserContext]:
        """Context that is closed when the block exits."""
        context = await self.new_context(**kwargs)
        try:
            yield context
        finally:
            await context.close()

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    @property
    def browser(self) -> Browser:
        if not self._browser:
            raise RuntimeError("Client not connected. Use 'async with' or call connect()")
        return self._browser
