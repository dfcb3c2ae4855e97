import asyncio
import socket

import pytest

from relay.core.access_control import AccessControl
from relay.core.acceptor import Acceptor
from relay.core.connection_relay import ConnectionRelay
from relay.core.ledger import TrafficLedger


async def eventually(predicate, timeout: float = 5.0):
    """Poll predicate until it holds or the timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def free_port() -> int:
    """Return a loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def ledger():
    return TrafficLedger()


@pytest.fixture
async def start_backend():
    """Start a loopback TCP server running the given handler; returns its port."""
    servers = []

    async def _start(handler) -> int:
        server = await asyncio.start_server(handler, "127.0.0.1", 0)
        servers.append(server)
        return server.sockets[0].getsockname()[1]

    yield _start

    for server in servers:
        server.close()
        await asyncio.wait_for(server.wait_closed(), timeout=5)


@pytest.fixture
async def start_relay(ledger):
    """Start an Acceptor on an ephemeral loopback port."""
    acceptors = []

    async def _start(allowed_ips, backend_port: int, **relay_kwargs) -> Acceptor:
        connection_relay = ConnectionRelay(
            backend_host="127.0.0.1",
            backend_port=backend_port,
            ledger=ledger,
            **relay_kwargs
        )
        acceptor = Acceptor(
            listen_ip="127.0.0.1",
            listen_port=0,
            access_control=AccessControl(allowed_ips),
            connection_relay=connection_relay
        )
        await acceptor.start()
        acceptors.append(acceptor)
        return acceptor

    yield _start

    for acceptor in acceptors:
        await acceptor.stop()
