"""
Page Driver
===========
The capability surface the Extraction Loop drives, and its Playwright
implementation.

``PageDriver`` is a structural protocol so tests (and other engines) can
supply their own driver.  ``PlaywrightPageDriver`` wraps one async
Playwright browser/context/page and converts every Playwright exception
into ``DriverTimeout`` / ``DriverError`` so nothing engine-specific leaks
above this module.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from playwright.async_api import async_playwright, Browser, BrowserContext, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .errors import DriverError, DriverTimeout
from .run_config import ExtractionConfig

logger = logging.getLogger(__name__)

# Resource types to block for speed; item text never depends on them
_BLOCKED_RESOURCE_TYPES = frozenset([
    "image", "media", "font",
])


class PageDriver(Protocol):
    """What the Extraction Loop needs from a browser page."""

    def set_default_timeout(self, timeout_ms: int) -> None: ...

    async def goto(self, url: str, timeout_ms: int, wait_until: str = "networkidle") -> None: ...

    async def wait_for_selector(self, selector: str, timeout_ms: int,
                                state: str = "attached") -> None: ...

    async def query(self, selector: str) -> Optional[Any]: ...

    async def click(self, selector: str, timeout_ms: int) -> None: ...

    async def query_all_extract(self, selector: str, extractor_script: str) -> List[Dict]: ...

    async def scroll_by(self, amount: int) -> None: ...

    async def wait(self, seconds: float) -> None: ...

    async def content(self) -> str: ...

    async def close(self) -> None: ...


def _translate_errors(func):
    """Re-raise Playwright exceptions as driver exceptions."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PlaywrightTimeout as exc:
            raise DriverTimeout(str(exc)) from exc
        except PlaywrightError as exc:
            raise DriverError(str(exc)) from exc
    return wrapper


class PlaywrightPageDriver:
    """``PageDriver`` backed by one async Playwright Chromium page."""

    def __init__(self, config: ExtractionConfig):
        self.config = config
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    # ------------------------------------------------------------------
    # Browser management
    # ------------------------------------------------------------------

    @_translate_errors
    async def launch(self) -> "PlaywrightPageDriver":
        """Start Playwright, launch Chromium and open a fresh page."""
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless,
            args=[
                '--disable-gpu',
                '--no-sandbox',
                '--disable-dev-shm-usage',
                '--disable-background-networking',
                '--disable-default-apps',
                '--disable-extensions',
                '--no-first-run',
            ]
        )
        self._context = await self._browser.new_context(
            user_agent=self.config.user_agent,
            viewport={
                'width': self.config.viewport_width,
                'height': self.config.viewport_height,
            },
            locale='en-US',
        )
        await self._context.route("**/*", self._route_handler)
        self._page = await self._context.new_page()
        logger.info(
            f"Playwright browser initialized "
            f"(headless={self.config.headless}, timeout_ms={self.config.timeout_ms})"
        )
        return self

    async def _route_handler(self, route) -> None:
        """Block images, fonts and media."""
        if route.request.resource_type in _BLOCKED_RESOURCE_TYPES:
            await route.abort()
            return
        await route.continue_()

    async def close(self) -> None:
        """Close page, context, browser and Playwright; never raises."""
        if self._context:
            try:
                await self._context.close()
            except Exception as e:
                logger.debug(f"Context close failed: {e}")
            self._context = None
            self._page = None

        if self._browser:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug(f"Browser close failed: {e}")
            self._browser = None

        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug(f"Playwright stop failed: {e}")
            self._playwright = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise DriverError("Browser page is not open (call launch() first)")
        return self._page

    # ------------------------------------------------------------------
    # PageDriver capability
    # ------------------------------------------------------------------

    def set_default_timeout(self, timeout_ms: int) -> None:
        self.page.set_default_timeout(timeout_ms)
        self.page.set_default_navigation_timeout(timeout_ms)

    @_translate_errors
    async def goto(self, url: str, timeout_ms: int, wait_until: str = "networkidle") -> None:
        await self.page.goto(url, timeout=timeout_ms, wait_until=wait_until)

    @_translate_errors
    async def wait_for_selector(self, selector: str, timeout_ms: int,
                                state: str = "attached") -> None:
        await self.page.wait_for_selector(selector, timeout=timeout_ms, state=state)

    @_translate_errors
    async def query(self, selector: str):
        return await self.page.query_selector(selector)

    @_translate_errors
    async def click(self, selector: str, timeout_ms: int) -> None:
        await self.page.click(selector, timeout=timeout_ms)

    @_translate_errors
    async def query_all_extract(self, selector: str, extractor_script: str) -> List[Dict]:
        rows = await self.page.eval_on_selector_all(selector, extractor_script)
        return list(rows or [])

    @_translate_errors
    async def scroll_by(self, amount: int) -> None:
        await self.page.evaluate("(dy) => window.scrollBy(0, dy)", amount)

    async def wait(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    @_translate_errors
    async def content(self) -> str:
        return await self.page.content()


@asynccontextmanager
async def open_driver(config: ExtractionConfig) -> AsyncIterator[PlaywrightPageDriver]:
    """Launch a ``PlaywrightPageDriver`` and guarantee it is closed."""
    driver = PlaywrightPageDriver(config)
    try:
        try:
            await driver.launch()
        except DriverError as exc:
            raise DriverError(
                f"Could not launch Chromium ({exc}). "
                f"Run `tweetingest --install` to download the browser."
            ) from exc
        yield driver
    finally:
        await driver.close()
