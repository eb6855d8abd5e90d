"""
Scraping pipeline for the Tender Harvester.

This package provides:
- A page driver abstraction over a single shared Playwright page
- Configuration-driven list and detail extraction
- The list pager and detail resolver for one portal target
- The orchestrator that runs targets under a global item budget
- Webhook batch delivery
"""

from .base import PortalScraper
from .detail import DetailResolver
from .dispatcher import BatchDispatcher, DispatchSummary
from .exceptions import (
    ConfigurationError,
    ContainerNotFoundError,
    DeliveryError,
    DriverLaunchError,
    NavigationError,
    ScrapingError,
)
from .extractors import DetailExtractor, ListRowExtractor, sniff_contact_info
from .fingerprint import generate_fingerprint
from .models import JobInput, ListRow, Opportunity, ScrapingResult
from .page_driver import BrowserManager, PageDriver, PlaywrightPageDriver
from .pager import ListPager
from .rate_limiter import RateLimiter
from .scraper_service import HarvestResult, ScraperService
from .targets import RunBudget, build_targets, resolve_adapter

__all__ = [
    "PortalScraper",
    "DetailResolver",
    "BatchDispatcher",
    "DispatchSummary",
    "ConfigurationError",
    "ContainerNotFoundError",
    "DeliveryError",
    "DriverLaunchError",
    "NavigationError",
    "ScrapingError",
    "DetailExtractor",
    "ListRowExtractor",
    "sniff_contact_info",
    "generate_fingerprint",
    "JobInput",
    "ListRow",
    "Opportunity",
    "ScrapingResult",
    "BrowserManager",
    "PageDriver",
    "PlaywrightPageDriver",
    "ListPager",
    "RateLimiter",
    "HarvestResult",
    "ScraperService",
    "RunBudget",
    "build_targets",
    "resolve_adapter",
]
