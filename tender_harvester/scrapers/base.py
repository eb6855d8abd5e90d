"""
Per-target scraping pipeline.

One ``PortalScraper`` crawls one portal target on the shared page driver:
the list pager collects rows up to the target's budget, then the detail
resolver turns each row into an opportunity.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ..config import AdapterConfig, Config, PortalTarget
from ..utils.logging import get_logger
from .detail import DetailResolver
from .models import ListRow, Opportunity
from .page_driver import PageDriver
from .pager import ListPager
from .rate_limiter import RateLimiter


class PortalScraper:
    """Crawls a single portal target."""

    def __init__(
        self,
        driver: PageDriver,
        adapter: AdapterConfig,
        target: PortalTarget,
        config: Config,
        rate_limiter: Optional[RateLimiter] = None
    ):
        self.driver = driver
        self.adapter = adapter
        self.target = target
        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter(config.scraping)
        self.logger = get_logger(f"{__name__}.{target.key}")

        if adapter.request_delay is not None:
            domain = urlparse(target.list_url).netloc
            self.rate_limiter.set_domain_delay(domain, adapter.request_delay)
            self.logger.debug("Using portal request delay", domain=domain, delay=self.rate_limiter.get_domain_delay(domain))

        self.pager = ListPager(driver, adapter, target, config.scraping, self.rate_limiter)
        self.resolver = DetailResolver(driver, adapter, target, config.scraping, self.rate_limiter)

        self.rows: List[ListRow] = []
        self.opportunities: List[Opportunity] = []
        self.stats = {
            'rows_found': 0,
            'opportunities_found': 0,
            'start_time': None,
            'end_time': None
        }

    async def scrape_opportunities(self, row_limit: int = 0, item_limit: int = 0) -> List[Opportunity]:
        """
        Run the list phase then the detail phase.

        Opportunities are appended to ``self.opportunities`` as they are
        resolved, so a caller that cancels this coroutine still sees the
        records finished so far.

        Args:
            row_limit: Row budget for the list phase (0 = unlimited)
            item_limit: Maximum rows sent through the detail phase (0 = all)

        Returns:
            Opportunities for this target, in list order

        Raises:
            NavigationError: If the list page cannot be loaded
            ContainerNotFoundError: If the list never renders
        """
        self.stats['start_time'] = datetime.now()
        try:
            self.rows = await self.pager.collect(row_limit)
            self.stats['rows_found'] = len(self.rows)

            rows = self.rows[:item_limit] if item_limit else self.rows
            if len(rows) < len(self.rows):
                self.logger.debug("Resolving subset of rows within run budget", rows=len(rows), collected=len(self.rows))

            await self.resolver.resolve_all(rows, self.opportunities)
            return self.opportunities
        finally:
            self.stats['opportunities_found'] = len(self.opportunities)
            self.stats['end_time'] = datetime.now()

    def get_stats(self) -> Dict[str, Any]:
        """Get scraping statistics."""
        stats = self.stats.copy()
        stats.update(self.resolver.stats)
        stats['pages_visited'] = self.pager.pages_visited

        if stats['start_time']:
            end_time = stats['end_time'] or datetime.now()
            stats['duration_seconds'] = (end_time - stats['start_time']).total_seconds()

        return stats

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(target='{self.target.key}')>"
