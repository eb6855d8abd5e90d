"""
Job entry point: input in, opportunities and a run summary out.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

from .config import Config
from .scrapers.dispatcher import BatchDispatcher
from .scrapers.models import JobInput
from .scrapers.page_driver import BrowserManager, PageDriver
from .scrapers.scraper_service import HarvestResult, ScraperService
from .scrapers.targets import build_targets, resolve_adapter
from .storage import LocalDataset, LocalKeyValueStore
from .utils.logging import get_logger

logger = get_logger(__name__)


async def harvest(job_input: JobInput, config: Config, driver: Optional[PageDriver] = None) -> HarvestResult:
    """
    Crawl every target of the job's source.

    A browser is launched only when no ``driver`` is supplied, and only after
    the source has been validated.

    Raises:
        ConfigurationError: If the source is unknown or has no targets
        DriverLaunchError: If the browser cannot be started
    """
    adapter_name, adapter = resolve_adapter(config, job_input.source)
    targets = build_targets(adapter_name, adapter, job_input.sources)

    logger.info(
        "Harvest starting",
        source=adapter_name,
        targets=len(targets),
        max_items=job_input.max_items or "all",
        headless=job_input.headless,
        debug=job_input.debug,
    )

    if driver is not None:
        service = ScraperService(config, driver, debug=job_input.debug)
        return await service.scrape_all(targets, job_input.max_items)

    async with BrowserManager(config.scraping, headless=job_input.headless) as browser_driver:
        service = ScraperService(config, browser_driver, debug=job_input.debug)
        return await service.scrape_all(targets, job_input.max_items)


async def run_job(
    job_input: JobInput,
    config: Config,
    driver: Optional[PageDriver] = None,
    dataset: Optional[LocalDataset] = None,
    kv_store: Optional[LocalKeyValueStore] = None,
    session: Optional[aiohttp.ClientSession] = None
) -> Dict[str, Any]:
    """
    Run a full job: harvest, store, deliver and summarise.

    Args:
        job_input: Validated job options
        config: Application configuration
        driver: Page driver to use instead of launching a browser
        dataset: Dataset sink for the harvested records
        kv_store: Key-value sink for the run summary
        session: HTTP session for webhook delivery

    Returns:
        The run summary written under the output key
    """
    _, adapter = resolve_adapter(config, job_input.source)
    result = await harvest(job_input, config, driver)
    items = [opportunity.to_dict() for opportunity in result.opportunities]

    if dataset is not None:
        if items:
            dataset.push_data(items)
            logger.info("Results saved to dataset", count=len(items))
        else:
            logger.info("No results to save")

    webhook_url = (job_input.webhook_url or "").strip()
    secret = job_input.webhook_secret or config.webhook.secret
    dispatcher = BatchDispatcher(config.webhook, session)
    delivery = await dispatcher.dispatch(items, webhook_url, secret, adapter.label)

    summary = {
        "source": adapter.label,
        "batchesSent": delivery.batches_sent,
        "totalBatches": delivery.total_batches,
        "successfulBatches": delivery.successful_batches,
        "failedBatches": delivery.failed_batches,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "webhookUrl": webhook_url or "Not configured",
    }

    if kv_store is not None:
        kv_store.set_value(config.storage.output_key, summary)

    logger.info("Run complete", **summary)
    return summary
