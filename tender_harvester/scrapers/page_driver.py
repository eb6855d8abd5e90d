"""
Page driver management for the harvesting pipeline.

Wraps a single Playwright page behind a small capability set (navigate,
go back, read content, click, scroll, wait) so the pager and resolver can be
driven by any implementation, including in-memory fakes in tests.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from playwright.async_api import (
    Browser,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from ..config import ScrapingConfig
from ..utils.logging import get_logger
from .exceptions import ContainerNotFoundError, DriverLaunchError, NavigationError

logger = get_logger(__name__)


class PageDriver(ABC):
    """The browser capabilities the pipeline consumes. Timeouts are in seconds."""

    @property
    @abstractmethod
    def url(self) -> str:
        """URL of the currently loaded page."""

    @abstractmethod
    async def goto(self, url: str, timeout: float) -> None:
        """Navigate to ``url``; raises NavigationError on failure."""

    @abstractmethod
    async def go_back(self, timeout: float) -> None:
        """Return to the previous history entry; raises NavigationError on failure."""

    @abstractmethod
    async def content(self) -> str:
        """Rendered HTML of the current page."""

    @abstractmethod
    async def frame_content(self, selector: str) -> str:
        """Rendered HTML of the frame embedded by the element matching ``selector``."""

    @abstractmethod
    async def has_selector(self, selector: str) -> bool:
        """True when ``selector`` matches at least one element."""

    @abstractmethod
    async def click(self, selector: str, timeout: float, wait_for_navigation: bool = True) -> None:
        """Activate the first element matching ``selector``; raises NavigationError on failure."""

    @abstractmethod
    async def scroll_to_bottom(self, step: int, max_rounds: int) -> None:
        """Scroll down until the page stops growing, to trigger lazy loading."""

    async def pause(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def wait_for_any_selector(
        self,
        selectors: Iterable[str],
        timeout: float,
        poll_interval: float = 0.5
    ) -> str:
        """
        Poll until one of ``selectors`` appears.

        Args:
            selectors: CSS selectors, tried in order on every poll
            timeout: Maximum time to wait in seconds
            poll_interval: Delay between polls in seconds

        Returns:
            The first selector that matched

        Raises:
            ContainerNotFoundError: If nothing matched before the timeout
        """
        selectors = [selector for selector in selectors if selector]
        deadline = time.monotonic() + timeout

        while True:
            for selector in selectors:
                try:
                    if await self.has_selector(selector):
                        return selector
                except NavigationError:
                    # Page mid-navigation; poll again.
                    pass
            if time.monotonic() >= deadline:
                break
            await self.pause(poll_interval)

        raise ContainerNotFoundError(
            f"None of the selectors appeared within {timeout:.0f}s: {', '.join(selectors)}",
            selectors,
            self.url,
        )


class PlaywrightPageDriver(PageDriver):
    """PageDriver over a Playwright page."""

    def __init__(self, page: Page):
        self.page = page

    @property
    def url(self) -> str:
        return self.page.url

    async def goto(self, url: str, timeout: float) -> None:
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)
        except (PlaywrightTimeoutError, PlaywrightError) as e:
            raise NavigationError(f"Failed to load {url}: {e}", url, timeout)

    async def go_back(self, timeout: float) -> None:
        try:
            response = await self.page.go_back(wait_until="domcontentloaded", timeout=timeout * 1000)
        except (PlaywrightTimeoutError, PlaywrightError) as e:
            raise NavigationError(f"Failed to go back from {self.url}: {e}", self.url, timeout)
        if response is None:
            raise NavigationError("No history entry to go back to", self.url, timeout)

    async def content(self) -> str:
        try:
            return await self.page.content()
        except PlaywrightError as e:
            raise NavigationError(f"Failed to read page content: {e}", self.url)

    async def frame_content(self, selector: str) -> str:
        try:
            handle = await self.page.query_selector(selector)
            frame = await handle.content_frame() if handle else None
            if frame is not None:
                return await frame.content()
        except PlaywrightError as e:
            raise NavigationError(f"Failed to read frame {selector!r}: {e}", self.url)
        raise NavigationError(f"No frame matches {selector!r}", self.url)

    async def has_selector(self, selector: str) -> bool:
        try:
            return await self.page.query_selector(selector) is not None
        except PlaywrightError as e:
            raise NavigationError(f"Selector query failed for {selector!r}: {e}", self.url)

    async def click(self, selector: str, timeout: float, wait_for_navigation: bool = True) -> None:
        try:
            if wait_for_navigation:
                async with self.page.expect_navigation(wait_until="domcontentloaded", timeout=timeout * 1000):
                    await self.page.click(selector, timeout=timeout * 1000)
            else:
                await self.page.click(selector, timeout=timeout * 1000)
        except (PlaywrightTimeoutError, PlaywrightError) as e:
            raise NavigationError(f"Failed to activate {selector!r}: {e}", self.url, timeout)

    async def scroll_to_bottom(self, step: int, max_rounds: int) -> None:
        try:
            last_height = 0
            for _ in range(max_rounds):
                height = await self.page.evaluate(
                    "(step) => { window.scrollBy(0, step); window.dispatchEvent(new Event('scroll'));"
                    " return document.body ? document.body.scrollHeight : 0; }",
                    step,
                )
                position = await self.page.evaluate("() => window.scrollY + window.innerHeight")
                if position >= height and height == last_height:
                    break
                last_height = height
                await self.pause(0.3)
        except PlaywrightError as e:
            logger.debug("Scroll failed", url=self.url, error=str(e))


class BrowserManager:
    """Owns the browser and the single page shared by a run."""

    def __init__(self, config: ScrapingConfig, headless: bool = True):
        self.config = config
        self.headless = headless
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.driver: Optional[PlaywrightPageDriver] = None

    async def initialize(self) -> PlaywrightPageDriver:
        """Launch Chromium and open the shared page."""
        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=self.headless,
                args=[
                    '--no-sandbox',
                    '--disable-dev-shm-usage',
                    '--disable-gpu',
                ]
            )
            page = await self.browser.new_page(
                user_agent=self.config.user_agent,
                viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
            )
        except Exception as e:
            await self.cleanup()
            raise DriverLaunchError(f"Failed to launch browser: {e}")

        self.driver = PlaywrightPageDriver(page)
        logger.info("Browser launched", headless=self.headless)
        return self.driver

    async def cleanup(self):
        """Close the browser and stop Playwright."""
        try:
            if self.browser:
                await self.browser.close()
            if self.playwright:
                await self.playwright.stop()
        except PlaywrightError as e:
            logger.warning("Error during browser cleanup", error=str(e))
        finally:
            self.browser = None
            self.playwright = None

    async def __aenter__(self) -> PlaywrightPageDriver:
        return await self.initialize()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()
