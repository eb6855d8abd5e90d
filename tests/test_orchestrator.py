import asyncio

import pytest

from tender_harvester.config import PortalTarget
from tender_harvester.scrapers.base import PortalScraper
from tender_harvester.scrapers.exceptions import ConfigurationError
from tender_harvester.scrapers.models import PARTIAL_METADATA_SENTINEL
from tender_harvester.scrapers.scraper_service import ScraperService
from tender_harvester.scrapers.targets import RunBudget

NEXT_DISABLED = '<a class="next" aria-disabled="true">Next</a>'


def portal_targets(base_url, count):
    return [
        PortalTarget(
            key=f"portal-{n}",
            label=f"Portal {n}",
            list_url=f"{base_url}/portal-{n}/opportunities",
            adapter="testportal",
        )
        for n in range(1, count + 1)
    ]


@pytest.fixture
def list_only_config(config):
    adapter = config.adapters["testportal"]
    config.adapters["testportal"] = adapter.model_copy(update={"follow_details": False})
    return config


class TestRunBudget:

    def test_even_share_with_floor(self):
        assert RunBudget(max_items=100, min_per_target=5).per_target_limit(4) == 25
        assert RunBudget(max_items=3, min_per_target=5).per_target_limit(5) == 5
        assert RunBudget(max_items=12, min_per_target=5).per_target_limit(0) == 12

    def test_unlimited(self):
        budget = RunBudget(max_items=0)
        assert budget.per_target_limit(3) == 0
        assert budget.remaining(50) == 0
        assert not budget.is_exhausted(50)

    def test_remaining_and_exhausted(self):
        budget = RunBudget(max_items=10)
        assert budget.remaining(4) == 6
        assert budget.remaining(12) == 0
        assert budget.is_exhausted(10)
        assert not budget.is_exhausted(9)


def test_small_budget_uses_per_target_floor(fake_driver, html, list_only_config):
    targets = portal_targets(html.base_url, 5)
    pages = {t.list_url: html.list_page(html.rows(6), NEXT_DISABLED) for t in targets}
    service = ScraperService(list_only_config, fake_driver(pages))

    harvest = asyncio.run(service.scrape_all(targets, max_items=3))

    assert len(harvest.opportunities) == 3
    assert len(harvest.results) == 1
    assert harvest.results[0].rows_found == 5
    assert not harvest.timed_out


def test_global_budget_is_never_exceeded(fake_driver, html, list_only_config):
    targets = portal_targets(html.base_url, 2)
    pages = {t.list_url: html.list_page(html.rows(6), NEXT_DISABLED) for t in targets}
    service = ScraperService(list_only_config, fake_driver(pages))

    harvest = asyncio.run(service.scrape_all(targets, max_items=7))

    assert len(harvest.opportunities) == 7
    assert [r.opportunities_found for r in harvest.results] == [5, 2]


def test_failing_target_is_skipped(fake_driver, html, list_only_config):
    broken, healthy = portal_targets(html.base_url, 2)
    driver = fake_driver({healthy.list_url: html.list_page(html.rows(3), NEXT_DISABLED)})
    service = ScraperService(list_only_config, driver)

    harvest = asyncio.run(service.scrape_all([broken, healthy], max_items=0))

    assert len(harvest.opportunities) == 3
    assert harvest.results[0].success is False
    assert "portal-1" in harvest.results[0].error_message
    assert harvest.results[1].success is True
    assert harvest.successful_targets == 1


def test_duplicate_records_are_dropped(fake_driver, html, list_only_config):
    (target,) = portal_targets(html.base_url, 1)
    rows = html.rows(3)
    rows[2].update(title=rows[0]["title"], ref=rows[0]["ref"])
    service = ScraperService(list_only_config, fake_driver({target.list_url: html.list_page(rows, NEXT_DISABLED)}))

    harvest = asyncio.run(service.scrape_all([target]))

    assert [o.title for o in harvest.opportunities] == ["Project 1", "Project 2"]
    assert len({o.id for o in harvest.opportunities}) == 2


def test_progress_callbacks(fake_driver, html, list_only_config):
    (target,) = portal_targets(html.base_url, 1)
    service = ScraperService(list_only_config, fake_driver({target.list_url: html.list_page(html.rows(2))}))
    updates = []
    service.add_progress_callback(updates.append)

    asyncio.run(service.scrape_all([target]))

    assert [u.status for u in updates] == ["starting", "completed"]
    assert updates[-1].opportunities_found == 2


def test_run_deadline_keeps_finished_records(fake_driver, html, config):
    (target,) = portal_targets(html.base_url, 1)
    slow_url = f"{html.base_url}/detail/project-2"

    class SlowDriver(fake_driver):
        async def goto(self, url, timeout):
            if url == slow_url:
                await asyncio.sleep(5)
            await super().goto(url, timeout)

    driver = SlowDriver({
        target.list_url: html.list_page(html.rows(3), NEXT_DISABLED),
        f"{html.base_url}/detail/project-1": html.detail_page({"Description": "First scope"}),
    })
    config.budget.run_timeout = 0.5
    service = ScraperService(config, driver)

    harvest = asyncio.run(service.scrape_all([target], max_items=0))

    assert harvest.timed_out
    assert [o.title for o in harvest.opportunities] == ["Project 1"]
    assert harvest.opportunities[0].detailed_description == "First scope"
    assert harvest.results[-1].success is False


def test_unknown_adapter_is_a_configuration_error(fake_driver, html, config):
    target = PortalTarget(key="ghost", label="Ghost", list_url=html.list_url, adapter="missing")
    service = ScraperService(config, fake_driver({}))

    with pytest.raises(ConfigurationError):
        asyncio.run(service.scrape_all([target]))


def test_status_and_callback_removal(fake_driver, html, list_only_config):
    (target,) = portal_targets(html.base_url, 1)
    service = ScraperService(list_only_config, fake_driver({target.list_url: html.list_page(html.rows(2))}))
    updates = []
    service.add_progress_callback(updates.append)
    service.remove_progress_callback(updates.append)

    asyncio.run(service.scrape_all([target]))
    status = service.get_scraping_status()

    assert updates == []
    assert status["active_target"] is None
    assert status["opportunities_collected"] == 2
    assert "tenders.example.gov" in status["pacing"]["seconds_since_last_request"]


def test_script_linked_rows_are_clicked_open(fake_driver, html, config):
    (target,) = portal_targets(html.base_url, 1)
    rows = html.rows(2)
    for row in rows:
        row["href"] = f"javascript:openOpportunity('{row['ref']}')"
    config.adapters["testportal"] = config.adapters["testportal"].model_copy(update={
        "row_click_selector": 'tr:has(td:-soup-contains("{project_reference}")) a',
    })
    detail_url = f"{html.base_url}/portal-1/opportunity/detail"
    driver = fake_driver(
        pages={
            target.list_url: html.list_page(rows, NEXT_DISABLED),
            detail_url: html.detail_page({"Description": "Opened in place", "City": "Ottawa"}),
        },
        click_targets={'tr:has(td:-soup-contains("RFP-001")) a': detail_url},
    )

    result = asyncio.run(ScraperService(config, driver).scrape_target(target))

    first, second = result.opportunities
    assert first.detailed_description == "Opened in place"
    assert first.city == "Ottawa"
    assert first.portal_url == target.list_url
    assert second.detailed_description == PARTIAL_METADATA_SENTINEL
    assert driver.clicks == [
        'tr:has(td:-soup-contains("RFP-001")) a',
        'tr:has(td:-soup-contains("RFP-002")) a',
    ]
    assert driver.url == target.list_url


def test_portal_request_delay_applies_to_its_domain(fake_driver, html, config):
    (target,) = portal_targets(html.base_url, 1)
    adapter = config.adapters["testportal"].model_copy(update={"request_delay": 2.5})

    scraper = PortalScraper(fake_driver(), adapter, target, config)

    assert scraper.rate_limiter.get_domain_delay("tenders.example.gov") == 2.5
    assert scraper.rate_limiter.get_domain_delay("other.example.org") == config.scraping.request_delay
