"""
Scraper Service - runs portal targets and aggregates their opportunities.

Targets are crawled one after another on a single shared page driver. The
service applies the run's global item budget, a per-target row budget with a
minimum floor, and per-target and per-run deadlines. A failing target is
logged and skipped.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set

from ..config import Config, PortalTarget
from ..utils.logging import get_logger, log_target_result
from .base import PortalScraper
from .exceptions import ConfigurationError
from .models import Opportunity, ScrapingResult
from .page_driver import PageDriver
from .rate_limiter import RateLimiter
from .targets import RunBudget

logger = get_logger(__name__)


@dataclass
class ScrapingProgress:
    """Progress information for an ongoing run."""
    target: str
    status: str  # 'starting', 'completed', 'failed', 'timeout'
    targets_done: int = 0
    total_targets: int = 0
    opportunities_found: int = 0
    message: str = ""


@dataclass
class HarvestResult:
    """Aggregated output of a run."""
    opportunities: List[Opportunity] = field(default_factory=list)
    results: List[ScrapingResult] = field(default_factory=list)
    timed_out: bool = False

    @property
    def successful_targets(self) -> int:
        return sum(1 for result in self.results if result.success)


class ScraperService:
    """
    Coordinates the per-target pipelines for a run.

    Records are deduplicated by fingerprint across targets (first one wins)
    and the aggregate never exceeds the global ``max_items``.
    """

    def __init__(self, config: Config, driver: PageDriver, debug: bool = False):
        self.config = config
        self.driver = driver
        self.rate_limiter = RateLimiter(config.scraping, debug=debug)
        self.progress_callbacks: List[Callable[[ScrapingProgress], None]] = []
        self.active_scraper: Optional[PortalScraper] = None

        self._opportunities: List[Opportunity] = []
        self._seen: Set[str] = set()

    def add_progress_callback(self, callback: Callable[[ScrapingProgress], None]):
        """Add a callback function to receive progress updates."""
        self.progress_callbacks.append(callback)

    def remove_progress_callback(self, callback: Callable[[ScrapingProgress], None]):
        """Remove a progress callback."""
        if callback in self.progress_callbacks:
            self.progress_callbacks.remove(callback)

    def _notify_progress(self, progress: ScrapingProgress):
        for callback in self.progress_callbacks:
            try:
                callback(progress)
            except Exception as e:
                logger.error("Error in progress callback", error=str(e))

    def _accept(self, opportunities: Iterable[Opportunity]) -> int:
        """Add unseen opportunities to the aggregate; returns how many were new."""
        added = 0
        for opportunity in opportunities:
            if opportunity.id in self._seen:
                logger.debug("Dropping duplicate opportunity", id=opportunity.id, title=opportunity.title)
                continue
            self._seen.add(opportunity.id)
            self._opportunities.append(opportunity)
            added += 1
        return added

    async def scrape_target(
        self,
        target: PortalTarget,
        row_limit: int = 0,
        item_limit: int = 0
    ) -> ScrapingResult:
        """
        Crawl one target, never raising for page or timeout failures.

        Args:
            target: Portal target to crawl
            row_limit: Row budget for the list phase (0 = unlimited)
            item_limit: Maximum records to resolve (0 = all collected rows)

        Returns:
            ScrapingResult carrying whatever records were finished
        """
        adapter = self.config.adapters.get(target.adapter)
        if adapter is None:
            raise ConfigurationError(f"Target '{target.key}' refers to unknown adapter '{target.adapter}'", target.adapter)

        scraper = PortalScraper(self.driver, adapter, target, self.config, self.rate_limiter)
        self.active_scraper = scraper
        timeout = self.config.budget.target_timeout or None
        start_time = time.time()
        success = False
        error_message = None

        try:
            await asyncio.wait_for(scraper.scrape_opportunities(row_limit, item_limit), timeout=timeout)
            success = True
        except asyncio.TimeoutError:
            error_message = f"Target timed out after {timeout:.0f}s"
        except Exception as e:
            error_message = f"Error scraping {target.key}: {e}"

        # Left set on cancellation so the run deadline can salvage its records.
        self.active_scraper = None
        execution_time = time.time() - start_time
        stats = scraper.get_stats()
        log_target_result(
            target.key,
            stats['rows_found'],
            len(scraper.opportunities),
            execution_time,
            success,
            error_message,
        )

        return ScrapingResult(
            target=target.key,
            success=success,
            rows_found=stats['rows_found'],
            opportunities_found=len(scraper.opportunities),
            error_message=error_message,
            execution_time=execution_time,
            opportunities=list(scraper.opportunities),
        )

    async def scrape_all(self, targets: List[PortalTarget], max_items: int = 0) -> HarvestResult:
        """
        Crawl targets in order until they run out or the budget is spent.

        Args:
            targets: Targets in configured order
            max_items: Global item cap (0 = unlimited)

        Returns:
            HarvestResult with deduplicated opportunities and per-target results
        """
        budget = RunBudget(max_items=max_items, min_per_target=self.config.budget.min_per_target)
        row_limit = budget.per_target_limit(len(targets))
        harvest = HarvestResult()
        self._opportunities = []
        self._seen = set()

        logger.info(
            "Starting run",
            targets=len(targets),
            max_items=max_items,
            per_target_limit=row_limit,
        )

        async def run_targets():
            for index, target in enumerate(targets):
                if budget.is_exhausted(len(self._opportunities)):
                    logger.info("Item budget reached, skipping remaining targets", remaining=len(targets) - index)
                    break

                self._notify_progress(ScrapingProgress(
                    target=target.key,
                    status='starting',
                    targets_done=index,
                    total_targets=len(targets),
                    opportunities_found=len(self._opportunities),
                    message=f"Scraping {target.label}...",
                ))

                result = await self.scrape_target(target, row_limit, budget.remaining(len(self._opportunities)))
                harvest.results.append(result)
                self._accept(result.opportunities)

                self._notify_progress(ScrapingProgress(
                    target=target.key,
                    status='completed' if result.success else 'failed',
                    targets_done=index + 1,
                    total_targets=len(targets),
                    opportunities_found=len(self._opportunities),
                    message=result.error_message or f"Found {result.opportunities_found} opportunities",
                ))

        timeout = self.config.budget.run_timeout or None
        try:
            await asyncio.wait_for(run_targets(), timeout=timeout)
        except asyncio.TimeoutError:
            harvest.timed_out = True
            scraper = self.active_scraper
            if scraper is not None:
                self._accept(scraper.opportunities)
                harvest.results.append(ScrapingResult(
                    target=scraper.target.key,
                    success=False,
                    rows_found=scraper.stats['rows_found'],
                    opportunities_found=len(scraper.opportunities),
                    error_message=f"Run timed out after {timeout:.0f}s",
                    opportunities=list(scraper.opportunities),
                ))
                self.active_scraper = None
            logger.warning("Run deadline reached, keeping partial results", collected=len(self._opportunities))

        opportunities = self._opportunities
        if max_items > 0:
            opportunities = opportunities[:max_items]
        harvest.opportunities = list(opportunities)

        logger.info(
            "Run completed",
            successful_targets=harvest.successful_targets,
            total_targets=len(harvest.results),
            opportunities=len(harvest.opportunities),
        )
        return harvest

    def get_scraping_status(self) -> Dict[str, object]:
        """Current run status."""
        return {
            'active_target': self.active_scraper.target.key if self.active_scraper else None,
            'opportunities_collected': len(self._opportunities),
            'pacing': self.rate_limiter.get_stats(),
        }
