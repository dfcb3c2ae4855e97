"""Duplex byte relay between an admitted client and the backend."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

from relay.core.ledger import TrafficLedger
from shared.models import Direction

logger = logging.getLogger(__name__)


@dataclass
class SessionStats:
    """Statistics for a single relayed session."""
    client_ip: str
    client_port: int
    start_time: float = field(default_factory=time.time)
    bytes_sent: int = 0      # client -> backend
    bytes_received: int = 0  # backend -> client
    status: str = "connecting"

    @property
    def duration(self) -> float:
        return time.time() - self.start_time

    @property
    def conn_id(self) -> str:
        return f"{self.client_ip}:{self.client_port}"


async def close_writer(writer: asyncio.StreamWriter):
    """Close a stream and wait for the transport to go away."""
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionResetError, BrokenPipeError, OSError) as e:
        logger.debug(f"Error while closing stream: {e}")


class ConnectionRelay:
    """Dials the backend for each admitted client and copies bytes both ways.

    Bytes flowing client -> backend are credited to the outbound ledger and
    bytes flowing backend -> client to the inbound ledger, both under the
    client's IP. Sockets are released only after both directions finish.
    """

    def __init__(
        self,
        backend_host: str,
        backend_port: int,
        ledger: TrafficLedger,
        buffer_size: int = 8192,
        connect_timeout: Optional[float] = None,
        idle_timeout: Optional[float] = None
    ):
        self.backend_host = backend_host
        self.backend_port = backend_port
        self.ledger = ledger
        self.buffer_size = buffer_size
        self.connect_timeout = connect_timeout
        self.idle_timeout = idle_timeout

    @property
    def backend_address(self) -> str:
        return f"{self.backend_host}:{self.backend_port}"

    async def _dial(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """Open a connection to the backend."""
        return await asyncio.open_connection(self.backend_host, self.backend_port)

    async def relay(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        client_ip: str,
        client_port: int = 0
    ) -> SessionStats:
        """Run one session to completion. Failures are logged, not raised."""
        stats = SessionStats(client_ip=client_ip, client_port=client_port)
        backend_writer: Optional[asyncio.StreamWriter] = None

        try:
            try:
                backend_reader, backend_writer = await asyncio.wait_for(
                    self._dial(),
                    timeout=self.connect_timeout
                )
            except asyncio.TimeoutError:
                logger.error(f"Timeout connecting to backend {self.backend_address} for {stats.conn_id}")
                stats.status = "timeout"
                return stats
            except ConnectionRefusedError:
                logger.error(f"Backend {self.backend_address} refused connection for {stats.conn_id}")
                stats.status = "refused"
                return stats
            except OSError as e:
                logger.error(f"Cannot reach backend {self.backend_address} for {stats.conn_id}: {e}")
                stats.status = "unreachable"
                return stats

            stats.status = "relaying"
            logger.info(f"Forwarding {stats.conn_id} -> {self.backend_address}")

            tasks = [
                asyncio.create_task(
                    self._forward_data(reader, backend_writer, stats, Direction.OUTBOUND)
                ),
                asyncio.create_task(
                    self._forward_data(backend_reader, writer, stats, Direction.INBOUND)
                ),
            ]

            try:
                await asyncio.wait(tasks)
            except asyncio.CancelledError:
                for task in tasks:
                    task.cancel()
                await asyncio.wait(tasks)
                stats.status = "cancelled"
                raise

            stats.status = "completed"
            return stats

        finally:
            await close_writer(writer)
            if backend_writer:
                await close_writer(backend_writer)

            if stats.status in ("completed", "cancelled"):
                logger.info(
                    f"Closed {stats.conn_id} "
                    f"(duration: {stats.duration:.2f}s, "
                    f"sent: {stats.bytes_sent}, recv: {stats.bytes_received})"
                )

    async def _read(self, reader: asyncio.StreamReader) -> bytes:
        if self.idle_timeout is None:
            return await reader.read(self.buffer_size)
        return await asyncio.wait_for(reader.read(self.buffer_size), timeout=self.idle_timeout)

    async def _forward_data(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        stats: SessionStats,
        direction: Direction
    ):
        """Copy reader to writer until EOF or error, then credit the ledger."""
        moved = 0
        try:
            while True:
                data = await self._read(reader)
                if not data:
                    break
                writer.write(data)
                await writer.drain()

                moved += len(data)
                if direction == Direction.OUTBOUND:
                    stats.bytes_sent += len(data)
                else:
                    stats.bytes_received += len(data)

            # Pass the EOF on so the peer can finish its side too
            if writer.can_write_eof():
                writer.write_eof()
            else:
                writer.close()

        except asyncio.TimeoutError:
            logger.info(f"Idle timeout ({direction.value}) on {stats.conn_id}")
            writer.close()
        except (ConnectionResetError, BrokenPipeError) as e:
            logger.debug(f"Forward error ({direction.value}) on {stats.conn_id}: {e}")
            writer.close()
        except Exception as e:
            logger.warning(f"Forward error ({direction.value}) on {stats.conn_id}: {e}")
            writer.close()
        finally:
            self.ledger.add(direction, stats.client_ip, moved)
