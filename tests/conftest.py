"""
Shared fixtures: an in-memory page driver serving canned HTML, and a
configuration tuned so waits and pauses finish immediately.
"""

import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

import pytest
from bs4 import BeautifulSoup

from tender_harvester.config import (
    AdapterConfig,
    BudgetConfig,
    Config,
    PaginationConfig,
    PortalTarget,
    ScrapingConfig,
    StorageConfig,
    WebhookConfig,
)
from tender_harvester.scrapers.exceptions import NavigationError
from tender_harvester.scrapers.page_driver import PageDriver

BASE_URL = "https://tenders.example.gov"
LIST_URL = f"{BASE_URL}/opportunities"


class FakePageDriver(PageDriver):
    """
    PageDriver over a URL -> HTML map with a browser-like history.

    A click follows ``click_targets[selector]`` when set, else
    ``next_pages[current url]``. ``frames`` maps a page URL to the HTML of
    the frame it embeds.
    """

    def __init__(
        self,
        pages: Optional[Dict[str, str]] = None,
        next_pages: Optional[Dict[str, str]] = None,
        fail_urls: Iterable[str] = (),
        click_targets: Optional[Dict[str, str]] = None,
        frames: Optional[Dict[str, str]] = None
    ):
        self.pages = dict(pages or {})
        self.next_pages = dict(next_pages or {})
        self.fail_urls = set(fail_urls)
        self.click_targets = dict(click_targets or {})
        self.frames = dict(frames or {})
        self.history: List[str] = []
        self.visits: List[str] = []
        self.clicks: List[str] = []
        self.scrolls = 0
        self.back_fails = False

    @property
    def url(self) -> str:
        return self.history[-1] if self.history else ""

    async def goto(self, url: str, timeout: float) -> None:
        self.visits.append(url)
        if url in self.fail_urls or url not in self.pages:
            raise NavigationError(f"Failed to load {url}", url, timeout)
        self.history.append(url)

    async def go_back(self, timeout: float) -> None:
        if self.back_fails or len(self.history) < 2:
            raise NavigationError("No history entry to go back to", self.url, timeout)
        self.history.pop()

    async def content(self) -> str:
        return self.pages.get(self.url, "")

    async def frame_content(self, selector: str) -> str:
        if self.url not in self.frames:
            raise NavigationError(f"No frame matches {selector!r}", self.url)
        return self.frames[self.url]

    async def has_selector(self, selector: str) -> bool:
        soup = BeautifulSoup(await self.content(), "lxml")
        return soup.select_one(selector) is not None

    async def click(self, selector: str, timeout: float, wait_for_navigation: bool = True) -> None:
        self.clicks.append(selector)
        next_url = self.click_targets.get(selector) or self.next_pages.get(self.url)
        if next_url is None or next_url in self.fail_urls:
            raise NavigationError(f"Failed to activate {selector!r}", self.url, timeout)
        self.history.append(next_url)

    async def scroll_to_bottom(self, step: int, max_rounds: int) -> None:
        self.scrolls += 1

    async def pause(self, seconds: float) -> None:
        await asyncio.sleep(0)


def list_page_html(rows: Sequence[Dict[str, str]], next_control: str = "") -> str:
    """
    Render a results table.

    Each row dict may carry ``title``, ``ref``, ``expiry``, ``agency``,
    ``city`` and ``href``.
    """
    body = []
    for row in rows:
        link = f'<a href="{row["href"]}">{row.get("title", "")}</a>' if row.get("href") else row.get("title", "")
        body.append(
            "<tr>"
            f"<td>{link}</td>"
            f"<td>{row.get('ref', '')}</td>"
            f"<td>{row.get('expiry', '')}</td>"
            f"<td>{row.get('agency', '')}</td>"
            f"<td>{row.get('city', '')}</td>"
            "</tr>"
        )
    return (
        "<html><body>"
        '<table class="results"><thead><tr><th>Title</th><th>Ref</th><th>Closes</th>'
        "<th>Agency</th><th>City</th></tr></thead>"
        f"<tbody>{''.join(body)}</tbody></table>"
        f"{next_control}"
        "</body></html>"
    )


def detail_page_html(fields: Dict[str, str], extra: str = "") -> str:
    """Render a detail page with a label/value table."""
    cells = "".join(f"<tr><th>{label}</th><td>{value}</td></tr>" for label, value in fields.items())
    return f'<html><body><div class="detail"><table>{cells}</table>{extra}</div></body></html>'


def make_rows(count: int, prefix: str = "Project", start: int = 1) -> List[Dict[str, str]]:
    return [
        {
            "title": f"{prefix} {n}",
            "ref": f"RFP-{n:03d}",
            "expiry": "2025-06-30",
            "agency": "City Works",
            "href": f"/detail/{prefix.lower()}-{n}",
        }
        for n in range(start, start + count)
    ]


@pytest.fixture
def fake_driver():
    return FakePageDriver


@pytest.fixture
def html():
    """Page builders for canned list and detail pages."""
    class Pages:
        list_page = staticmethod(list_page_html)
        detail_page = staticmethod(detail_page_html)
        rows = staticmethod(make_rows)
        base_url = BASE_URL
        list_url = LIST_URL
    return Pages


@pytest.fixture
def scraping_config():
    return ScrapingConfig(
        navigation_timeout=1.0,
        list_timeout=0.05,
        detail_timeout=0.05,
        back_timeout=0.05,
        optional_step_timeout=0.05,
        poll_interval=0.01,
        settle_delay=0.0,
        request_delay=0.0,
        scroll_max_rounds=1,
    )


@pytest.fixture
def target():
    return PortalTarget(
        key="testportal",
        label="Test Portal",
        list_url=LIST_URL,
        region_hint="ON",
        adapter="testportal",
    )


@pytest.fixture
def adapter(target):
    return AdapterConfig(
        label="Test Portal",
        targets=[target],
        list_ready_selectors=["table.results tbody tr"],
        row_selector="table.results tbody tr",
        columns={"title": 0, "project_reference": 1, "listing_expiry_date": 2, "agency": 3, "city": 4},
        link_selector="a[href]",
        pagination=PaginationConfig(strategy="next_button", next_selector="a.next"),
        detail_ready_selectors=[".detail"],
        detail_labels={
            "detailed_description": ["Description"],
            "contact_email": ["Email"],
            "city": ["City"],
            "project_type": ["Bid Type"],
        },
        contact_selectors=[".contact"],
    )


@pytest.fixture
def config(scraping_config, adapter, tmp_path):
    return Config(
        scraping=scraping_config,
        budget=BudgetConfig(min_per_target=5, target_timeout=5.0, run_timeout=10.0),
        webhook=WebhookConfig(batch_delay=0.0, secret=""),
        storage=StorageConfig(base_dir=str(tmp_path / "storage")),
        adapters={"testportal": adapter},
    )
