"""
Content extraction utilities for the harvesting pipeline.

Turns rendered list and detail pages into list rows and detail records.
All lookups are optional: a missing element yields an empty string, never
an exception.
"""

import re
from dataclasses import fields
from string import Formatter
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from ..config import AdapterConfig, DETAIL_FIELDS
from ..utils.logging import get_logger
from .models import ListRow

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"\+?\(?\d[\d \t().-]{5,}\d")
ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
CONTACT_LINE_PATTERN = re.compile(r"contact", re.IGNORECASE)
CONTACT_PREFIX_PATTERN = re.compile(r"contact[:\s]*", re.IGNORECASE)
PROPER_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z '\-]{4,}$")
CONTACT_HEADINGS = {"information", "info", "details", "us", "person", "name"}

MAX_LABEL_LENGTH = 80
MAX_DESCRIPTION_LENGTH = 4000


def sniff_contact_info(text_blocks: Iterable[str]) -> Dict[str, str]:
    """
    Best-effort contact details from free text.

    Each block is scanned line by line. The first email address, the first
    phone-like digit run (at least 7 characters with separators) and the
    first contact name found win. The name comes from the first line that
    mentions "contact" alongside other words (with the "contact" label
    stripped), else the first line that looks like a proper name.

    Args:
        text_blocks: Text of the page regions likely to hold contact details

    Returns:
        Dict with ``contact_person``, ``contact_email`` and ``contact_phone``;
        empty strings when nothing matched
    """
    email = phone = labelled_name = plain_name = ""

    for block in text_blocks:
        lines = [line.strip() for line in (block or "").splitlines()]
        for line in filter(None, lines):
            if not email:
                match = EMAIL_PATTERN.search(line)
                if match:
                    email = match.group(0)

            if not phone:
                for match in PHONE_PATTERN.finditer(line):
                    phone = _phone_candidate(match.group(0))
                    if phone:
                        break

            if not labelled_name and CONTACT_LINE_PATTERN.search(line) and re.search(r"\s", line):
                stripped = CONTACT_PREFIX_PATTERN.sub("", line, count=1).strip()
                if stripped and "@" not in stripped and stripped.lower() not in CONTACT_HEADINGS:
                    labelled_name = stripped

            if not plain_name and PROPER_NAME_PATTERN.match(line):
                plain_name = line

        if email and phone and labelled_name:
            break

    return {
        "contact_person": labelled_name or plain_name,
        "contact_email": email,
        "contact_phone": phone,
    }


def _phone_candidate(text: str) -> str:
    """The phone number in a digit run, or "" when the run is a date."""
    candidate = text.strip()
    if not ISO_DATE_PREFIX.match(candidate):
        return candidate
    # A date followed by a number on the same line: keep the number only.
    rest = ISO_DATE_PREFIX.sub("", candidate, count=1).strip(" \t-")
    return rest if PHONE_PATTERN.fullmatch(rest) else ""


class ContentExtractor:
    """Shared parsing helpers."""

    def __init__(self, parser: str = "lxml"):
        self.parser = parser

    def parse(self, html_content: str) -> BeautifulSoup:
        return BeautifulSoup(html_content or "", self.parser)

    def clean_text(self, text: Optional[str]) -> str:
        """
        Clean and normalize text content.

        Args:
            text: Raw text content

        Returns:
            Cleaned text
        """
        if not text:
            return ""

        text = re.sub(r"\s+", " ", text)
        text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", text)
        return text.strip()

    def text_of(self, element: Optional[Tag]) -> str:
        if element is None:
            return ""
        return self.clean_text(element.get_text(" "))

    def page_origin(self, page_url: str) -> str:
        parsed = urlparse(page_url or "")
        if not parsed.scheme or not parsed.netloc:
            return ""
        return f"{parsed.scheme}://{parsed.netloc}"

    def resolve_url(self, href: Optional[str], origin: str) -> str:
        """Absolute URL for ``href``, resolved against the page origin."""
        href = (href or "").strip()
        if not href or href.startswith(("javascript:", "#", "mailto:")):
            return ""
        if self._is_valid_url(href):
            return href
        if not origin:
            return ""
        return urljoin(origin + "/", href)

    def _is_valid_url(self, url: str) -> bool:
        """Check if URL is absolute http(s)."""
        try:
            result = urlparse(url)
            return result.scheme in ("http", "https") and bool(result.netloc)
        except ValueError:
            return False


class ListRowExtractor(ContentExtractor):
    """Extracts list rows from a portal's result page."""

    def __init__(self, adapter: AdapterConfig, parser: str = "lxml"):
        super().__init__(parser)
        self.adapter = adapter
        self.reference_pattern = re.compile(adapter.reference_pattern) if adapter.reference_pattern else None

    def extract(self, html_content: str, page_url: str) -> List[ListRow]:
        """
        Extract every usable row from the rendered list page.

        Rows with too few cells or no title are skipped, and a row whose
        detail URL was already seen in this pass is dropped.

        Returns:
            List rows in page order; empty when the row container is absent
        """
        soup = self.parse(html_content)
        elements = soup.select(self.adapter.row_selector)
        if not elements:
            logger.debug("No rows matched", selector=self.adapter.row_selector, url=page_url)
            return []

        origin = self.page_origin(page_url)
        seen_urls = set()
        rows = []

        for element in elements:
            row = self._extract_row(element, origin)
            if row is None:
                continue
            if row.portal_url:
                if row.portal_url in seen_urls:
                    continue
                seen_urls.add(row.portal_url)
            rows.append(row)

        return rows

    def _extract_row(self, element: Tag, origin: str) -> Optional[ListRow]:
        cells = element.find_all("td", recursive=False)
        if self.adapter.min_cells and len(cells) < self.adapter.min_cells:
            return None

        values = {}
        for name, index in self.adapter.columns.items():
            values[name] = self.text_of(cells[index]) if 0 <= index < len(cells) else ""
        for name, selector in self.adapter.field_selectors.items():
            values[name] = self.text_of(element.select_one(selector))

        link = self._find_link(element)

        title = ""
        if self.adapter.title_selector:
            title = self.text_of(element.select_one(self.adapter.title_selector))
        title = title or values.pop("title", "") or self.text_of(link)
        values.pop("title", None)
        if not title:
            return None

        if not values.get("project_reference") and self.reference_pattern:
            match = self.reference_pattern.match(title)
            if match:
                values["project_reference"] = (match.group(1) if match.groups() else match.group(0)).strip()

        row = ListRow(title=title, portal_url=self.resolve_url(link.get("href") if link else "", origin), **values)
        if not row.portal_url and self.adapter.detail_url_template:
            row.portal_url = self.detail_url_for(row)
        return row

    def detail_url_for(self, row: ListRow) -> str:
        """
        Detail URL built from the row's own fields.

        Used for portals whose rows link through script handlers but whose
        detail pages are addressable by identifier. Returns "" when a field
        the template needs is empty.
        """
        template = self.adapter.detail_url_template
        names = {name for _, name, _, _ in Formatter().parse(template) if name}
        values = {f.name: getattr(row, f.name) for f in fields(row)}
        if any(not values.get(name) for name in names):
            return ""
        return template.format(**{name: quote(str(value), safe="") for name, value in values.items()})

    def _find_link(self, element: Tag) -> Optional[Tag]:
        if element.name == "a" and element.has_attr("href"):
            return element
        link = element.select_one(self.adapter.link_selector)
        if link is None and self.adapter.link_in_next_row:
            sibling = element.find_next_sibling(element.name)
            if sibling is not None:
                link = sibling.select_one(self.adapter.link_selector)
        return link

    def next_control_state(self, html_content: str) -> str:
        """
        Inspect the pagination "next" control.

        Returns:
            ``"missing"``, ``"disabled"`` or ``"enabled"``
        """
        selector = self.adapter.pagination.next_selector
        if not selector:
            return "missing"

        control = self.parse(html_content).select_one(selector)
        if control is None:
            return "missing"

        if control.get("aria-disabled", "").lower() == "true" or control.has_attr("disabled"):
            return "disabled"
        classes = [cls.lower() for cls in control.get("class", [])]
        if "disabled" in classes:
            return "disabled"
        parent = control.parent
        if parent is not None and "disabled" in [cls.lower() for cls in parent.get("class", [])]:
            return "disabled"
        return "enabled"


class DetailExtractor(ContentExtractor):
    """Extracts enrichment fields from an opportunity's detail page."""

    def __init__(self, adapter: AdapterConfig, parser: str = "lxml"):
        super().__init__(parser)
        self.adapter = adapter
        self.login_patterns = [re.compile(re.escape(marker), re.IGNORECASE) for marker in adapter.login_markers]

    def is_login_wall(self, html_content: str) -> bool:
        """True when the page text shows an authentication wall."""
        soup = self.parse(html_content)
        text = self.text_of(soup.body or soup)
        return any(pattern.search(text) for pattern in self.login_patterns)

    def extract(self, html_content: str) -> Dict[str, str]:
        """
        Extract the detail record.

        Structured label lookups come first and per-field selectors override
        them where they match. The free-text contact heuristic only fills
        contact fields still empty after that.

        Returns:
            Mapping of every detail field to its value (empty when not found)
        """
        soup = self.parse(html_content)
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()

        record = {name: "" for name in DETAIL_FIELDS}
        for name, candidates in self.adapter.detail_labels.items():
            record[name] = self.find_by_label(soup, candidates)
        for name, selector in self.adapter.detail_selectors.items():
            record[name] = self.field_value(soup.select_one(selector)) or record[name]

        if not record["detailed_description"]:
            record["detailed_description"] = self._first_text(soup, self.adapter.description_selectors)
        record["detailed_description"] = record["detailed_description"][:MAX_DESCRIPTION_LENGTH]

        contact = sniff_contact_info(self.contact_text_blocks(soup))
        for name, value in contact.items():
            if not record[name]:
                record[name] = value

        return record

    def find_by_label(self, soup: BeautifulSoup, candidates: List[str]) -> str:
        """
        Value for the first element labelled with any of ``candidates``.

        Layouts are tried in priority order: table rows, label/value pairs,
        then adjacent siblings.
        """
        wanted = [candidate.lower() for candidate in candidates if candidate]
        if not wanted:
            return ""

        for strategy in (self._match_table_rows, self._match_label_value_pairs, self._match_adjacent_siblings):
            value = strategy(soup, wanted)
            if value:
                return value
        return ""

    def field_value(self, element: Optional[Tag]) -> str:
        """Text of an element, or the value of a form input."""
        if element is not None and element.name == "input":
            return self.clean_text(element.get("value"))
        return self.text_of(element)

    def contact_text_blocks(self, soup: BeautifulSoup) -> List[str]:
        blocks = []
        for selector in self.adapter.contact_selectors:
            for element in soup.select(selector):
                text = element.get_text("\n")
                if text.strip():
                    blocks.append(text)
        if not blocks:
            root = soup.body or soup
            blocks.append(root.get_text("\n"))
        return blocks

    def _label_matches(self, text: str, wanted: List[str]) -> bool:
        label = self.clean_text(text).lower().rstrip(":").strip()
        if not label or len(label) > MAX_LABEL_LENGTH:
            return False
        return any(candidate in label for candidate in wanted)

    def _match_table_rows(self, soup: BeautifulSoup, wanted: List[str]) -> str:
        for row in soup.find_all("tr"):
            label_cell = row.find("th") or row.find("td", class_=re.compile("label", re.IGNORECASE))
            if label_cell is None:
                cells = row.find_all("td", recursive=False)
                if len(cells) < 2:
                    continue
                label_cell = cells[0]

            if not self._match_text(label_cell, wanted):
                continue

            value = self.text_of(label_cell.find_next_sibling("td"))
            if value:
                return value
        return ""

    def _match_label_value_pairs(self, soup: BeautifulSoup, wanted: List[str]) -> str:
        for term in soup.find_all("dt"):
            if self._match_text(term, wanted):
                value = self.text_of(term.find_next_sibling("dd"))
                if value:
                    return value

        for pair in self.adapter.label_value_pairs:
            for container in soup.select(pair.container):
                label = container.select_one(pair.label)
                if label is None or not self._match_text(label, wanted):
                    continue
                value = self.text_of(container.select_one(pair.value))
                if value:
                    return value
        return ""

    def _match_adjacent_siblings(self, soup: BeautifulSoup, wanted: List[str]) -> str:
        for element in soup.find_all(["label", "span", "strong", "b", "div", "p", "h4", "h5", "h6"]):
            if not self._match_text(element, wanted):
                continue
            sibling = element.find_next_sibling()
            value = self.text_of(sibling)
            if value:
                return value
        return ""

    def _match_text(self, element: Tag, wanted: List[str]) -> bool:
        return self._label_matches(element.get_text(" "), wanted)

    def _first_text(self, soup: BeautifulSoup, selectors: List[str]) -> str:
        for selector in selectors:
            value = self.text_of(soup.select_one(selector))
            if value:
                return value
        return ""
