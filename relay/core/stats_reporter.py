"""Stats reporter for pushing ledger snapshots to a collector."""

import asyncio
import logging
from typing import Optional

import httpx

from relay.core.ledger import TrafficLedger
from shared.models import TrafficReport

logger = logging.getLogger(__name__)


class StatsReporter:
    """Periodically POSTs the full ledger to a collector URL.

    Counters are cumulative, so a failed push needs no retry queue: the next
    snapshot carries everything the failed one would have.
    """

    def __init__(
        self,
        ledger: TrafficLedger,
        report_url: str,
        interval: float,
        hostname: str,
        version: str,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.ledger = ledger
        self.report_url = report_url
        self.interval = interval
        self.hostname = hostname
        self.version = version
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._client = client

    async def start(self):
        """Start stats reporting loop."""
        self._running = True
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0)
        self._task = asyncio.create_task(self._report_loop())
        logger.info(f"Stats reporter started (interval: {self.interval}s, url: {self.report_url})")

    async def stop(self):
        """Stop stats reporting and push a final snapshot."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        if self._client:
            await self.send_snapshot()
            await self._client.aclose()

        self._task = None
        self._client = None
        logger.info("Stats reporter stopped")

    async def _report_loop(self):
        """Main reporting loop."""
        while self._running:
            await asyncio.sleep(self.interval)
            await self.send_snapshot()

    async def send_snapshot(self) -> bool:
        """Send the current ledger to the collector. Returns True on success."""
        report = TrafficReport(
            hostname=self.hostname,
            version=self.version,
            traffic=self.ledger.snapshot()
        )

        try:
            response = await self._client.post(self.report_url, json=report.model_dump(mode="json"))
            response.raise_for_status()
            logger.debug(
                f"Reported traffic for {len(report.traffic.outbound)} outbound / "
                f"{len(report.traffic.inbound)} inbound IPs"
            )
            return True
        except httpx.RequestError as e:
            logger.warning(f"Failed to report stats (will retry): {e}")
        except httpx.HTTPStatusError as e:
            logger.error(f"Collector rejected stats report: {e.response.status_code}")
        return False
