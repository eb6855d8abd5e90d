"""
Webhook batch delivery.

Results are posted to the configured sink in fixed-size batches, one after
another with a pause in between. A rejected or failed batch is counted and
logged; delivery is never retried and never aborts the remaining batches.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from ..config import WebhookConfig
from ..utils.logging import get_logger, log_batch_delivery
from .exceptions import DeliveryError

logger = get_logger(__name__)


@dataclass
class DispatchSummary:
    """Batch counts for one delivery run."""
    total_batches: int = 0
    batches_sent: int = 0  # batches that got an HTTP response
    successful_batches: int = 0
    failed_batches: int = 0


def partition(items: Sequence[Any], size: int) -> List[List[Any]]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    return [list(items[start:start + size]) for start in range(0, len(items), size)]


class BatchDispatcher:
    """Posts result batches to a webhook sink."""

    def __init__(self, config: WebhookConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.session = session

    async def dispatch(
        self,
        items: Sequence[Dict[str, Any]],
        webhook_url: str,
        secret: str = "",
        source: str = ""
    ) -> DispatchSummary:
        """
        Deliver ``items`` to ``webhook_url``.

        Args:
            items: JSON-serialisable records
            webhook_url: Sink URL; delivery is skipped when empty
            secret: Shared secret sent in the signature header
            source: Source name echoed in every batch body

        Returns:
            DispatchSummary with per-batch outcome counts
        """
        webhook_url = (webhook_url or "").strip()
        if not webhook_url:
            logger.info("No webhook configured, skipping delivery", items=len(items))
            return DispatchSummary()
        if not items:
            logger.info("No results to deliver")
            return DispatchSummary()

        batches = partition(items, self.config.batch_size)
        summary = DispatchSummary(total_batches=len(batches))
        headers = {
            "Content-Type": "application/json",
            self.config.signature_header: (secret or "").strip(),
        }

        owns_session = self.session is None
        session = self.session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.config.request_timeout)
        )

        logger.info("Delivering results", url=webhook_url, items=len(items), batches=len(batches))
        try:
            for index, batch in enumerate(batches):
                payload = {
                    "items": batch,
                    "source": source,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "batchIndex": index,
                    "totalBatches": len(batches),
                }

                try:
                    status = await self._post_batch(session, webhook_url, payload, headers)
                except DeliveryError as e:
                    summary.failed_batches += 1
                    if e.status_code:
                        summary.batches_sent += 1
                    log_batch_delivery(
                        index,
                        len(batches),
                        False,
                        status_code=e.status_code,
                        response_snippet=e.body,
                        error_message=None if e.status_code else e.message,
                    )
                else:
                    summary.batches_sent += 1
                    summary.successful_batches += 1
                    log_batch_delivery(index, len(batches), True, status_code=status)

                if index < len(batches) - 1 and self.config.batch_delay > 0:
                    await asyncio.sleep(self.config.batch_delay)
        finally:
            if owns_session:
                await session.close()

        logger.info(
            "Delivery finished",
            successful_batches=summary.successful_batches,
            failed_batches=summary.failed_batches,
            total_batches=summary.total_batches,
        )
        return summary

    async def _post_batch(
        self,
        session: aiohttp.ClientSession,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str]
    ) -> int:
        """
        POST one batch.

        Raises:
            DeliveryError: On a non-2xx response or a network error
        """
        try:
            async with session.post(url, json=payload, headers=headers) as response:
                if 200 <= response.status < 300:
                    return response.status
                body = await response.text()
                raise DeliveryError(
                    f"Webhook rejected batch with HTTP {response.status}",
                    url,
                    response.status,
                    body[:self.config.response_snippet_length],
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(f"Webhook request failed: {e}", url)
