"""Accept loop: admits allowed clients and hands them to the relay."""

import asyncio
import logging
from typing import Optional, Set, Tuple

from relay.core.access_control import AccessControl, normalize_ip
from relay.core.connection_relay import ConnectionRelay, close_writer

logger = logging.getLogger(__name__)


def remote_endpoint(writer: asyncio.StreamWriter) -> Tuple[Optional[str], int]:
    """Return (ip, port) of the peer, or (None, 0) if it can't be determined."""
    peer = writer.get_extra_info("peername")
    if not isinstance(peer, (tuple, list)) or len(peer) < 2:
        return None, 0
    port = peer[1] if isinstance(peer[1], int) else 0
    return normalize_ip(peer[0]), port


def remote_ip(writer: asyncio.StreamWriter) -> Optional[str]:
    """Return the peer's IP, or None if it can't be determined."""
    return remote_endpoint(writer)[0]


class Acceptor:
    """Listens on a fixed address and gates every connection on the allow-list."""

    def __init__(
        self,
        listen_ip: str,
        listen_port: int,
        access_control: AccessControl,
        connection_relay: ConnectionRelay
    ):
        self.listen_ip = listen_ip
        self.listen_port = listen_port
        self.access_control = access_control
        self.connection_relay = connection_relay

        self._server: Optional[asyncio.Server] = None
        self._stopped: Optional[asyncio.Event] = None
        self._sessions: Set[asyncio.Task] = set()

    @property
    def active_session_count(self) -> int:
        return len(self._sessions)

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Bound (host, port), or None before start()."""
        if not self._server or not self._server.sockets:
            return None
        sockname = self._server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self):
        """Bind the listener and start accepting connections."""
        self._server = await asyncio.start_server(
            self._handle_client,
            self.listen_ip,
            self.listen_port,
            reuse_address=True
        )
        self._stopped = asyncio.Event()

        host, port = self.address
        logger.info(
            f"Relay listening on {host}:{port} "
            f"-> {self.connection_relay.backend_address} "
            f"({len(self.access_control)} allowed IPs)"
        )

    async def serve_forever(self):
        """Accept connections until stop() is called or this task is cancelled.

        Starts the listener if start() hasn't been called yet, and returns at
        once if stop() already ran. On cancellation the live sessions are shut
        down before the CancelledError propagates.
        """
        if self._stopped is None:
            await self.start()

        try:
            await self._stopped.wait()
        except asyncio.CancelledError:
            await self.stop()
            raise

    async def stop(self):
        """Stop accepting, cancel live sessions and wait for them to close."""
        if not self._server:
            return

        self._server.close()

        sessions = list(self._sessions)
        for task in sessions:
            task.cancel()
        if sessions:
            await asyncio.gather(*sessions, return_exceptions=True)

        await self._server.wait_closed()
        self._server = None
        self._stopped.set()
        logger.info("Relay stopped")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ):
        """Handle a new client connection.

        asyncio runs this callback as its own task, so a slow session never
        holds up the accept loop.
        """
        client_ip, client_port = remote_endpoint(writer)
        conn_id = f"{client_ip or 'unknown'}:{client_port}"

        if not self.access_control.is_allowed(client_ip):
            logger.warning(f"DENIED connection from {conn_id}")
            await close_writer(writer)
            return

        logger.info(f"Connection from {conn_id} allowed")

        task = asyncio.current_task()
        self._sessions.add(task)
        try:
            stats = await self.connection_relay.relay(reader, writer, client_ip, client_port)
            logger.debug(f"Session {conn_id} ended: {stats.status}")
        except Exception as e:
            logger.error(f"Unexpected error in session {conn_id}: {e}")
        finally:
            self._sessions.discard(task)
