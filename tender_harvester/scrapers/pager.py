"""
List pager: walks one portal target's result pages and accumulates list rows.
"""

import time
from enum import Enum
from typing import List, Optional

from ..config import AdapterConfig, EntryStep, PaginationStrategy, PortalTarget, ScrapingConfig
from ..utils.logging import get_logger, log_navigation
from .exceptions import ContainerNotFoundError, NavigationError
from .extractors import ListRowExtractor
from .models import ListRow
from .page_driver import PageDriver
from .rate_limiter import RateLimiter

logger = get_logger(__name__)


class PagerState(str, Enum):
    NAVIGATING = "navigating"
    EXTRACTING = "extracting"
    PAGINATING = "paginating"
    DONE = "done"


class ListPager:
    """
    Drives pagination for one target.

    States run ``NAVIGATING -> EXTRACTING -> (PAGINATING -> NAVIGATING | DONE)``.
    Each extraction is preceded by a scroll to the bottom so lazily loaded
    rows are rendered. Collection stops when a page yields no rows, when the
    budget is reached, or when there is no enabled "next" control. A failed
    page turn ends pagination but keeps the rows already collected.
    """

    def __init__(
        self,
        driver: PageDriver,
        adapter: AdapterConfig,
        target: PortalTarget,
        scraping: ScrapingConfig,
        rate_limiter: RateLimiter,
        extractor: Optional[ListRowExtractor] = None
    ):
        self.driver = driver
        self.adapter = adapter
        self.target = target
        self.scraping = scraping
        self.rate_limiter = rate_limiter
        self.extractor = extractor or ListRowExtractor(adapter)
        self.state = PagerState.DONE
        self.pages_visited = 0
        self._last_html = ""

    async def open_list(self) -> None:
        """
        Load the target's list page and wait for its row container.

        Raises:
            NavigationError: If the list page cannot be loaded
            ContainerNotFoundError: If no list container renders in time
        """
        self.state = PagerState.NAVIGATING
        await self.rate_limiter.respect_rate_limit(self.target.list_url)
        start_time = time.time()
        try:
            await self.driver.goto(self.target.list_url, self.scraping.navigation_timeout)
        except NavigationError as e:
            log_navigation(self.target.key, self.target.list_url, time.time() - start_time, False, str(e))
            raise
        log_navigation(self.target.key, self.target.list_url, time.time() - start_time, True)
        for step in self.adapter.entry_steps:
            await self._take_entry_step(step)
        await self.driver.wait_for_any_selector(
            self.adapter.list_ready_selectors,
            self.scraping.list_timeout,
            self.scraping.poll_interval,
        )
        await self.rate_limiter.settle()

    async def _take_entry_step(self, step: EntryStep) -> None:
        """
        Click through one control on the way from the entry page to the list.

        Optional steps that never appear, or that fail to activate, are
        skipped; required ones raise.
        """
        timeout = self.scraping.optional_step_timeout if step.optional else self.scraping.list_timeout
        try:
            await self.driver.wait_for_any_selector([step.selector], timeout, self.scraping.poll_interval)
            await self.driver.click(step.selector, self.scraping.navigation_timeout, step.wait_for_navigation)
        except (NavigationError, ContainerNotFoundError) as e:
            if not step.optional:
                raise
            logger.debug("Skipping optional entry step", target=self.target.key, selector=step.selector, error=str(e))
            return
        logger.debug("Entry step taken", target=self.target.key, selector=step.selector, url=self.driver.url)

    async def collect(self, limit: int = 0) -> List[ListRow]:
        """
        Collect list rows across pages.

        Args:
            limit: Row budget for this target (0 = unlimited)

        Returns:
            Rows in page order, at most ``limit`` of them

        Raises:
            NavigationError: If the first list page cannot be loaded
            ContainerNotFoundError: If the first list page never renders rows
        """
        await self.open_list()

        if self.adapter.pagination.strategy == PaginationStrategy.SCROLL:
            rows = await self._collect_by_scrolling(limit)
        else:
            rows = await self._collect_by_pages(limit)

        self.state = PagerState.DONE
        logger.info(
            "List collection finished",
            target=self.target.key,
            pages=self.pages_visited,
            rows=len(rows),
        )
        return rows[:limit] if limit else rows

    async def _extract_current_page(self) -> List[ListRow]:
        self.state = PagerState.EXTRACTING
        await self.driver.scroll_to_bottom(self.scraping.scroll_step, self.scraping.scroll_max_rounds)
        html = await self.driver.content()
        self._last_html = html
        return self.extractor.extract(html, self.driver.url)

    async def _collect_by_pages(self, limit: int) -> List[ListRow]:
        pagination = self.adapter.pagination
        rows: List[ListRow] = []

        while True:
            page_rows = await self._extract_current_page()
            self.pages_visited += 1
            logger.debug("Extracted list page", target=self.target.key, page=self.pages_visited, rows=len(page_rows))

            if not page_rows:
                break

            rows.extend(page_rows)

            if limit and len(rows) >= limit:
                logger.debug("Row budget reached", target=self.target.key, limit=limit)
                break

            if pagination.strategy != PaginationStrategy.NEXT_BUTTON:
                break

            if pagination.max_pages and self.pages_visited >= pagination.max_pages:
                break

            control = self.extractor.next_control_state(self._last_html)
            if control != "enabled":
                logger.debug("Last page reached", target=self.target.key, next_control=control)
                break

            if not await self._turn_page():
                break

        return rows

    async def _turn_page(self) -> bool:
        self.state = PagerState.PAGINATING
        pagination = self.adapter.pagination
        try:
            await self.rate_limiter.respect_rate_limit(self.driver.url)
            await self.driver.click(
                pagination.next_selector,
                self.scraping.navigation_timeout,
                wait_for_navigation=pagination.wait_for_navigation,
            )
            self.state = PagerState.NAVIGATING
            await self.driver.wait_for_any_selector(
                self.adapter.list_ready_selectors,
                self.scraping.list_timeout,
                self.scraping.poll_interval,
            )
            await self.rate_limiter.settle()
        except (NavigationError, ContainerNotFoundError) as e:
            logger.warning(
                "Pagination stopped after failed page turn",
                target=self.target.key,
                page=self.pages_visited,
                error=str(e),
            )
            return False
        return True

    async def _collect_by_scrolling(self, limit: int) -> List[ListRow]:
        rows: List[ListRow] = []
        max_pages = self.adapter.pagination.max_pages

        while True:
            page_rows = await self._extract_current_page()
            self.pages_visited += 1

            if len(page_rows) <= len(rows):
                break
            rows = page_rows

            if limit and len(rows) >= limit:
                break
            if max_pages and self.pages_visited >= max_pages:
                break

        return rows
