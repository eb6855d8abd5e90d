"""
Portal target construction and run budgeting.

Targets come either from an adapter's static list or, for multi-tenant
portal families, from externally supplied ``{name, url}`` source descriptors
whose hostname belongs to the family.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple
from urllib.parse import urlparse

from ..config import AdapterConfig, Config, PortalTarget
from ..utils.logging import get_logger
from .exceptions import ConfigurationError
from .models import SourceDescriptor

logger = get_logger(__name__)


@dataclass
class RunBudget:
    """Global item cap and its split across targets."""
    max_items: int = 0
    min_per_target: int = 5

    def per_target_limit(self, target_count: int) -> int:
        """
        Row budget for each target (0 = unlimited).

        The even share is raised to ``min_per_target`` so a small global cap
        spread over many targets never starves a target down to zero.
        """
        if self.max_items <= 0:
            return 0
        share = self.max_items // max(target_count, 1)
        return max(self.min_per_target, share)

    def remaining(self, collected: int) -> int:
        """Items still allowed after ``collected`` (0 = unlimited)."""
        if self.max_items <= 0:
            return 0
        return max(self.max_items - collected, 0)

    def is_exhausted(self, collected: int) -> bool:
        return self.max_items > 0 and collected >= self.max_items


def resolve_adapter(config: Config, source: str) -> Tuple[str, AdapterConfig]:
    """
    Look up the adapter for a job's ``source`` key.

    Raises:
        ConfigurationError: If no adapter is configured under that key
    """
    key = (source or "").strip().lower()
    adapter = config.adapters.get(key)
    if adapter is None:
        available = ", ".join(sorted(config.adapters)) or "none"
        raise ConfigurationError(f"Unknown source '{source}'. Available sources: {available}", source)
    return key, adapter


def host_in_family(host: str, family_domains: Iterable[str]) -> bool:
    host = host.lower().rstrip(".")
    for domain in family_domains:
        domain = domain.lower().lstrip(".")
        if host == domain or host.endswith("." + domain):
            return True
    return False


def derive_targets(
    adapter_name: str,
    adapter: AdapterConfig,
    sources: Iterable[SourceDescriptor]
) -> List[PortalTarget]:
    """
    Build one target per tenant host found among ``sources``.

    Descriptors whose hostname is not in the adapter's family, or whose
    scheme and host were already seen, are skipped.
    """
    targets: List[PortalTarget] = []
    seen: Dict[str, str] = {}

    for descriptor in sources:
        parsed = urlparse(descriptor.url.strip())
        host = (parsed.hostname or "").lower()
        if not host or not host_in_family(host, adapter.family_domains):
            continue

        scheme = parsed.scheme or "https"
        origin = f"{scheme}://{host}"
        if origin in seen:
            logger.debug("Skipping duplicate tenant", adapter=adapter_name, host=host, first=seen[origin])
            continue
        seen[origin] = descriptor.name

        targets.append(PortalTarget(
            key=f"{adapter_name}-{host.replace('.', '-')}",
            label=f"{descriptor.name.strip() or host} - {adapter.label}",
            list_url=f"{origin}{adapter.listing_path}",
            adapter=adapter_name,
        ))

    return targets


def build_targets(
    adapter_name: str,
    adapter: AdapterConfig,
    sources: Iterable[SourceDescriptor] = ()
) -> List[PortalTarget]:
    """
    Targets to crawl for one adapter, in configured order.

    Family adapters derive targets from ``sources`` and fall back to their
    static targets when nothing matches.

    Raises:
        ConfigurationError: If the adapter ends up with no targets at all
    """
    targets: List[PortalTarget] = []

    if adapter.family_domains:
        targets = derive_targets(adapter_name, adapter, sources)
        if targets:
            logger.info("Derived tenant targets", adapter=adapter_name, count=len(targets))
        else:
            logger.info("No tenant sources matched, using static targets", adapter=adapter_name)

    if not targets:
        targets = [
            target.model_copy(update={"adapter": adapter_name})
            for target in adapter.targets
        ]

    if not targets:
        raise ConfigurationError(f"Adapter '{adapter_name}' has no portal targets", adapter_name)

    return targets
