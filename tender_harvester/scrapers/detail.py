"""
Detail resolver: visits each row's detail page and merges what it finds.
"""

import time
from dataclasses import asdict
from string import Formatter
from typing import Dict, Iterable, List, Optional

from ..config import AdapterConfig, PortalTarget, ScrapingConfig
from ..utils.logging import get_logger, log_navigation
from .exceptions import ContainerNotFoundError, ScrapingError
from .extractors import DetailExtractor
from .models import (
    LOGIN_REQUIRED_SENTINEL,
    PARTIAL_METADATA_SENTINEL,
    ListRow,
    Opportunity,
)
from .page_driver import PageDriver
from .rate_limiter import RateLimiter

logger = get_logger(__name__)


class DetailResolver:
    """
    Turns list rows into opportunities, one per row.

    A row without a dedicated detail page is emitted from its list fields.
    Otherwise the detail page is opened (by URL, or by clicking the row's
    control on the list page when the row links through a script handler),
    checked for a login wall and extracted. Any failure degrades the record
    to its list fields plus a sentinel description; rows are never dropped
    and never retried. The driver is returned to the list view after every
    visit that ran to completion.
    """

    def __init__(
        self,
        driver: PageDriver,
        adapter: AdapterConfig,
        target: PortalTarget,
        scraping: ScrapingConfig,
        rate_limiter: RateLimiter,
        extractor: Optional[DetailExtractor] = None
    ):
        self.driver = driver
        self.adapter = adapter
        self.target = target
        self.scraping = scraping
        self.rate_limiter = rate_limiter
        self.extractor = extractor or DetailExtractor(adapter)
        self.stats = {
            "visited": 0,
            "enriched": 0,
            "login_walled": 0,
            "failed": 0,
            "skipped": 0,
        }

    def has_detail_page(self, row: ListRow) -> bool:
        if not self.adapter.follow_details:
            return False
        if row.portal_url and row.portal_url != self.target.list_url:
            return True
        return bool(self.row_selector(row))

    def row_selector(self, row: ListRow) -> str:
        """
        Selector for the control that opens ``row`` in place on the list page.

        Built from the adapter's ``row_click_selector`` template and the row's
        own fields. Returns "" when there is no template or a field it needs
        is empty.
        """
        template = self.adapter.row_click_selector
        if not template:
            return ""
        values = {name: str(value) for name, value in asdict(row).items()}
        names = {name for _, name, _, _ in Formatter().parse(template) if name}
        if any(not values.get(name) for name in names):
            return ""
        return template.format(**{name: value.replace('"', '\\"') for name, value in values.items()})

    async def resolve(self, row: ListRow) -> Opportunity:
        """
        Resolve one row into an opportunity.

        Args:
            row: Row extracted from the list page

        Returns:
            The merged opportunity; never raises for page failures
        """
        if not self.has_detail_page(row):
            self.stats["skipped"] += 1
            return Opportunity.from_list_row(row, self.target)

        self.stats["visited"] += 1
        list_url = self.driver.url or self.target.list_url
        try:
            detail = await self._visit(row)
        except Exception as e:
            self.stats["failed"] += 1
            logger.warning(
                "Detail extraction failed, keeping list fields",
                target=self.target.key,
                url=row.portal_url or list_url,
                error=str(e),
            )
            detail = {"detailed_description": PARTIAL_METADATA_SENTINEL}

        # Not reached on cancellation: a deadline stops the target at once.
        await self.restore_list_view(list_url)
        return Opportunity.from_list_row(row, self.target, detail)

    async def resolve_all(
        self,
        rows: Iterable[ListRow],
        results: Optional[List[Opportunity]] = None
    ) -> List[Opportunity]:
        """
        Resolve rows sequentially, appending to ``results`` as each finishes.

        Passing the caller's list keeps finished records available even if
        the surrounding task is cancelled part way through.
        """
        results = [] if results is None else results
        for row in rows:
            results.append(await self.resolve(row))
        return results

    async def _visit(self, row: ListRow) -> Dict[str, str]:
        await self._open(row)

        try:
            await self.driver.wait_for_any_selector(
                self.adapter.detail_ready_selectors,
                self.scraping.detail_timeout,
                self.scraping.poll_interval,
            )
        except ContainerNotFoundError:
            if self.extractor.is_login_wall(await self.driver.content()):
                return self._login_wall()
            raise

        await self.rate_limiter.settle()
        html = await self._detail_html()

        if self.extractor.is_login_wall(html):
            return self._login_wall()

        self.stats["enriched"] += 1
        return self.extractor.extract(html)

    async def _open(self, row: ListRow) -> None:
        """Navigate to the row's detail page, or click it open when it has no URL."""
        if row.portal_url and row.portal_url != self.target.list_url:
            url, selector = row.portal_url, ""
        else:
            url, selector = self.driver.url, self.row_selector(row)

        await self.rate_limiter.respect_rate_limit(url)
        start_time = time.time()
        try:
            if selector:
                await self.driver.click(
                    selector,
                    self.scraping.navigation_timeout,
                    wait_for_navigation=self.adapter.row_click_navigates,
                )
            else:
                await self.driver.goto(url, self.scraping.navigation_timeout)
        except ScrapingError as e:
            log_navigation(self.target.key, url, time.time() - start_time, False, str(e))
            raise
        log_navigation(self.target.key, self.driver.url, time.time() - start_time, True)

    async def _detail_html(self) -> str:
        if self.adapter.detail_frame_selector:
            return await self.driver.frame_content(self.adapter.detail_frame_selector)
        return await self.driver.content()

    def _login_wall(self) -> Dict[str, str]:
        self.stats["login_walled"] += 1
        logger.info("Detail page requires login", target=self.target.key, url=self.driver.url)
        return {"detailed_description": LOGIN_REQUIRED_SENTINEL}

    async def restore_list_view(self, list_url: str) -> bool:
        """
        Return the driver to the list page after a detail visit.

        Goes back in history first, then re-navigates to the list URL. A
        failure of both is logged and the caller carries on.

        Returns:
            True if the list view was restored
        """
        try:
            await self.driver.go_back(self.scraping.back_timeout)
            await self.driver.wait_for_any_selector(
                self.adapter.list_ready_selectors,
                self.scraping.back_timeout,
                self.scraping.poll_interval,
            )
            return True
        except ScrapingError as e:
            logger.debug("Going back to list failed, re-navigating", target=self.target.key, error=str(e))

        try:
            await self.driver.goto(list_url, self.scraping.navigation_timeout)
            await self.driver.wait_for_any_selector(
                self.adapter.list_ready_selectors,
                self.scraping.list_timeout,
                self.scraping.poll_interval,
            )
            return True
        except ScrapingError as e:
            logger.warning("Could not restore list view", target=self.target.key, url=list_url, error=str(e))
            return False
