"""Main entry point for the door relay."""

import asyncio
import logging
import signal
from typing import Optional

from relay.config import RelaySettings, settings
from relay.core.access_control import AccessControl
from relay.core.acceptor import Acceptor
from relay.core.connection_relay import ConnectionRelay
from relay.core.control_api import ControlAPI
from relay.core.ledger import TrafficLedger
from relay.core.stats_reporter import StatsReporter

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


class DoorRelay:
    """Wires the relay components together from settings."""

    def __init__(self, config: RelaySettings = settings):
        self.config = config
        self._stopping = False
        self._stopped = asyncio.Event()

        self.ledger = TrafficLedger()
        self.access_control = AccessControl(config.allowed_ips)
        self.connection_relay = ConnectionRelay(
            backend_host=config.backend_host,
            backend_port=config.backend_port,
            ledger=self.ledger,
            buffer_size=config.buffer_size,
            connect_timeout=config.connect_timeout,
            idle_timeout=config.idle_timeout
        )
        self.acceptor = Acceptor(
            listen_ip=config.listen_ip,
            listen_port=config.listen_port,
            access_control=self.access_control,
            connection_relay=self.connection_relay
        )

        self._control_api: Optional[ControlAPI] = None
        self._stats_reporter: Optional[StatsReporter] = None

    async def start(self):
        """Start all components and run until stopped."""
        logger.info("=" * 70)
        logger.info("Door Relay Starting")
        logger.info(f"  Listen:  {self.config.listen_ip}:{self.config.listen_port}")
        logger.info(f"  Backend: {self.connection_relay.backend_address}")
        logger.info(f"  Allowed: {', '.join(sorted(self.access_control.allowed_ips)) or '(none)'}")
        logger.info("=" * 70)

        await self.acceptor.start()

        if self.config.api_enabled:
            self._control_api = ControlAPI(
                ledger=self.ledger,
                get_active_sessions=lambda: self.acceptor.active_session_count,
                is_serving=lambda: self.acceptor.is_serving,
                host=self.config.api_ip,
                port=self.config.api_port
            )
            await self._control_api.start()

        if self.config.report_url:
            self._stats_reporter = StatsReporter(
                ledger=self.ledger,
                report_url=self.config.report_url,
                interval=self.config.report_interval,
                hostname=self.config.hostname,
                version=self.config.version
            )
            await self._stats_reporter.start()

        # A signal may have arrived while the components were starting
        if not self._stopping:
            await self.acceptor.serve_forever()

        # The acceptor stops first; return only once stop() has finished
        await self._stopped.wait()

    async def stop(self):
        """Stop the relay. Repeated calls (e.g. a second signal) do nothing."""
        if self._stopping:
            return
        self._stopping = True
        logger.info("Stopping door relay...")

        await self.acceptor.stop()

        if self._control_api:
            await self._control_api.stop()

        if self._stats_reporter:
            await self._stats_reporter.stop()

        snapshot = self.ledger.snapshot()
        for ip in sorted(set(snapshot.inbound) | set(snapshot.outbound)):
            logger.info(
                f"  {ip}: in={snapshot.inbound.get(ip, 0)} out={snapshot.outbound.get(ip, 0)}"
            )

        self._stopped.set()
        logger.info("Door relay stopped")


async def main():
    """Main entry point."""
    configure_logging(settings.log_level)
    door_relay = DoorRelay()

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(door_relay.stop())

    # Handle SIGTERM and SIGINT
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        await door_relay.start()
    except OSError as e:
        logger.error(f"Failed to start relay: {e}")
        await door_relay.stop()
        raise


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
