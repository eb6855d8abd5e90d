"""
Navigation pacing.

Keeps a minimum per-domain gap between navigations and provides the fixed
settle pauses used to let client-rendered content finish drawing. Debug runs
stretch every delay so navigation can be observed.
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Dict
from urllib.parse import urlparse

from ..config import ScrapingConfig


class RateLimiter:
    """Manages pacing between page navigations."""

    def __init__(self, config: ScrapingConfig, debug: bool = False):
        self.config = config
        self.debug = debug
        self.delays: Dict[str, float] = {}
        self.last_request_time: Dict[str, float] = {}

    @property
    def slowdown(self) -> float:
        return self.config.debug_slowdown if self.debug else 1.0

    async def respect_rate_limit(self, url: str) -> float:
        """
        Wait until the domain of ``url`` may be hit again.

        Args:
            url: URL about to be navigated to

        Returns:
            Delay applied in seconds
        """
        domain = urlparse(url).netloc
        delay_needed = 0.0

        if domain in self.last_request_time:
            time_since_last = time.monotonic() - self.last_request_time[domain]
            required_delay = self._get_required_delay(domain)

            if time_since_last < required_delay:
                delay_needed = required_delay - time_since_last
                await asyncio.sleep(delay_needed)

        self.last_request_time[domain] = time.monotonic()
        return delay_needed

    async def settle(self, seconds: float = None) -> None:
        """Fixed pause after a navigation, stretched in debug mode."""
        seconds = self.config.settle_delay if seconds is None else seconds
        if seconds > 0:
            await asyncio.sleep(seconds * self.slowdown)

    def _get_required_delay(self, domain: str) -> float:
        """Get the required delay for a domain."""
        return self.delays.get(domain, self.config.request_delay) * self.slowdown

    def set_domain_delay(self, domain: str, delay: float):
        """Set a custom delay for a specific domain."""
        self.delays[domain] = delay

    def get_domain_delay(self, domain: str) -> float:
        """Get the current delay for a domain."""
        return self.delays.get(domain, self.config.request_delay)

    def get_stats(self) -> Dict[str, Any]:
        """Get pacing statistics."""
        now = time.monotonic()
        return {
            "domain_delays": dict(self.delays),
            "seconds_since_last_request": {
                domain: round(now - timestamp, 3)
                for domain, timestamp in self.last_request_time.items()
            },
            "debug": self.debug,
            "generated_at": datetime.now().isoformat(),
        }
