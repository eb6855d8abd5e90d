"""
Record types flowing through the harvesting pipeline.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..config import PortalTarget
from .fingerprint import fingerprint_opportunity

LOGIN_REQUIRED_SENTINEL = "Login required to view full details on this portal."
PARTIAL_METADATA_SENTINEL = (
    "Partial metadata captured from listing. Detailed fields may require login or manual review."
)

# Fields only the detail page can supply.
ENRICHMENT_FIELDS = (
    "detailed_description", "contact_person", "contact_email", "contact_phone",
    "project_type", "agreement_type",
)


@dataclass
class ListRow:
    """Partial opportunity extracted from a portal's listing page."""
    title: str
    portal_url: str = ""
    agency: str = ""
    region: str = ""
    project_reference: str = ""
    created_at: str = ""
    listing_expiry_date: str = ""
    status: str = ""
    category: str = ""
    city: str = ""


@dataclass
class Opportunity:
    """Canonical output record."""
    id: str
    title: str
    agency: str = ""
    buyer_organization: str = ""
    region: str = ""
    project_reference: str = ""
    status: str = ""
    category: str = ""
    created_at: str = ""
    listing_expiry_date: str = ""
    portal_url: str = ""
    portal_source: str = ""
    detailed_description: str = ""
    contact_person: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    project_type: str = ""
    agreement_type: str = ""
    city: str = ""
    hash_fingerprint: str = ""

    @classmethod
    def from_list_row(
        cls,
        row: ListRow,
        target: PortalTarget,
        detail: Optional[Dict[str, str]] = None
    ) -> "Opportunity":
        """
        Build an opportunity from a list row and an optional detail record.

        Detail values win when non-empty; otherwise the list value is kept.
        Region, city and agency fall back to the target's hints. The fingerprint is
        computed from the merged record, salted with the target key.
        """
        detail = detail or {}

        def enriched(name: str) -> str:
            return (detail.get(name) or "").strip()

        def pick(name: str, fallback: str = "") -> str:
            return enriched(name) or getattr(row, name) or fallback

        title = pick("title")
        project_reference = pick("project_reference")
        listing_expiry_date = pick("listing_expiry_date")
        agency = enriched("agency") or enriched("buyer_organization") or row.agency or target.agency_hint
        fingerprint = fingerprint_opportunity(title, project_reference, listing_expiry_date, target.key)

        return cls(
            id=fingerprint,
            title=title,
            agency=agency,
            buyer_organization=enriched("buyer_organization") or agency,
            region=pick("region", target.region_hint),
            project_reference=project_reference,
            status=pick("status"),
            category=pick("category"),
            created_at=pick("created_at"),
            listing_expiry_date=listing_expiry_date,
            portal_url=row.portal_url or target.list_url,
            portal_source=target.label,
            city=pick("city", target.city_hint),
            hash_fingerprint=fingerprint,
            **{name: enriched(name) for name in ENRICHMENT_FIELDS},
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScrapingResult:
    """Outcome of crawling one portal target."""
    target: str
    success: bool
    rows_found: int = 0
    opportunities_found: int = 0
    error_message: Optional[str] = None
    execution_time: float = 0.0
    opportunities: List[Opportunity] = field(default_factory=list)


class SourceDescriptor(BaseModel):
    """An externally supplied ``{name, url}`` portal source."""
    name: str = ""
    url: str


class JobInput(BaseModel):
    """Options accepted from the job runtime boundary."""
    model_config = ConfigDict(populate_by_name=True)

    source: str = "ontario"
    max_items: int = Field(default=5, alias="maxItems", ge=0)
    webhook_url: str = Field(default="", alias="webhookUrl")
    webhook_secret: str = Field(default="", alias="webhookSecret")
    headless: bool = True
    debug: bool = False
    sources: List[SourceDescriptor] = Field(default_factory=list)
