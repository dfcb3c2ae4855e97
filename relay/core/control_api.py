"""Read-only HTTP API exposing the traffic ledger."""

import logging
from typing import Callable, Optional

import psutil
from aiohttp import web

from relay.core.access_control import normalize_ip
from relay.core.ledger import TrafficLedger
from shared.models import HealthReport, HealthStatus

logger = logging.getLogger(__name__)


class ControlAPI:
    """Simple HTTP API for monitoring the relay."""

    def __init__(
        self,
        ledger: TrafficLedger,
        get_active_sessions: Callable[[], int],
        is_serving: Callable[[], bool],
        host: str = "127.0.0.1",
        port: int = 8081
    ):
        """
        Initialize control API.

        Args:
            ledger: Ledger whose counters are served
            get_active_sessions: Callback returning the number of live sessions
            is_serving: Callback reporting whether the relay still accepts connections
            host: Address to bind; keep this off public interfaces
            port: Port to bind (0 picks a free one)
        """
        self.ledger = ledger
        self.get_active_sessions = get_active_sessions
        self.is_serving = is_serving
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/traffic", self._handle_traffic)
        app.router.add_get("/traffic/{ip}", self._handle_ip_traffic)
        return app

    async def start(self):
        """Start the control API server."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()

        logger.info(f"Control API listening on {self.host}:{self.port}")

    async def stop(self):
        """Stop the control API server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Control API stopped")

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        serving = self.is_serving()
        report = HealthReport(
            status=HealthStatus.HEALTHY if serving else HealthStatus.UNHEALTHY,
            active_sessions=self.get_active_sessions(),
            cpu_percent=psutil.cpu_percent(interval=None),
            memory_percent=psutil.virtual_memory().percent
        )
        return web.json_response(
            report.model_dump(mode="json"),
            status=200 if serving else 503
        )

    async def _handle_traffic(self, request: web.Request) -> web.Response:
        return web.json_response(self.ledger.snapshot().model_dump(mode="json"))

    async def _handle_ip_traffic(self, request: web.Request) -> web.Response:
        ip = normalize_ip(request.match_info["ip"])
        if ip is None:
            return web.json_response(
                {"status": "error", "message": "Invalid IP address"},
                status=400
            )
        return web.json_response(self.ledger.get(ip).model_dump())
