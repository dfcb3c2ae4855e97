import asyncio

import pytest

from conftest import eventually
from relay.core.access_control import AccessControl
from relay.core.acceptor import Acceptor, remote_endpoint, remote_ip
from relay.core.connection_relay import SessionStats


class FakeWriter:
    def __init__(self, peername):
        self.peername = peername
        self.closed = False

    def get_extra_info(self, name, default=None):
        if name == "peername":
            return self.peername
        return default

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


class RecordingRelay:
    backend_address = "127.0.0.1:9"

    def __init__(self):
        self.calls = []

    async def relay(self, reader, writer, client_ip, client_port=0):
        self.calls.append((client_ip, client_port))
        return SessionStats(client_ip=client_ip, client_port=client_port, status="completed")


def make_acceptor(allowed_ips):
    connection_relay = RecordingRelay()
    acceptor = Acceptor(
        listen_ip="127.0.0.1",
        listen_port=0,
        access_control=AccessControl(allowed_ips),
        connection_relay=connection_relay
    )
    return acceptor, connection_relay


@pytest.mark.parametrize("peername, expected", [
    (("10.0.0.1", 5555), ("10.0.0.1", 5555)),
    (("::ffff:10.0.0.1", 5555, 0, 0), ("10.0.0.1", 5555)),
    (("::1", 5555, 0, 0), ("::1", 5555)),
    (None, (None, 0)),
    ("/tmp/relay.sock", (None, 0)),
    (("10.0.0.1",), (None, 0)),
    (("garbage", 1), (None, 1)),
])
def test_remote_endpoint_tolerates_malformed_peers(peername, expected):
    assert remote_endpoint(FakeWriter(peername)) == expected


def test_remote_ip():
    assert remote_ip(FakeWriter(("127.0.0.1", 1))) == "127.0.0.1"
    assert remote_ip(FakeWriter(None)) is None


async def test_allowed_client_is_handed_to_relay():
    acceptor, connection_relay = make_acceptor(["10.0.0.1"])
    writer = FakeWriter(("10.0.0.1", 40000))

    await acceptor._handle_client(None, writer)

    assert connection_relay.calls == [("10.0.0.1", 40000)]
    assert acceptor.active_session_count == 0


async def test_denied_client_is_closed_without_dialing():
    acceptor, connection_relay = make_acceptor(["10.0.0.1"])
    writer = FakeWriter(("10.0.0.2", 40000))

    await acceptor._handle_client(None, writer)

    assert writer.closed
    assert connection_relay.calls == []


async def test_unknown_peer_is_denied():
    acceptor, connection_relay = make_acceptor(["10.0.0.1"])
    writer = FakeWriter(None)

    await acceptor._handle_client(None, writer)

    assert writer.closed
    assert connection_relay.calls == []


async def test_relay_error_does_not_escape_session():
    acceptor, connection_relay = make_acceptor(["10.0.0.1"])

    async def broken_relay(*args, **kwargs):
        raise RuntimeError("boom")

    connection_relay.relay = broken_relay
    await acceptor._handle_client(None, FakeWriter(("10.0.0.1", 1)))

    assert acceptor.active_session_count == 0


async def test_address_is_none_until_started():
    acceptor, _ = make_acceptor([])
    assert acceptor.address is None
    assert not acceptor.is_serving
    await acceptor.stop()


async def test_serve_forever_starts_listener_and_stops_on_cancel():
    acceptor, _ = make_acceptor(["127.0.0.1"])
    task = asyncio.create_task(acceptor.serve_forever())

    await eventually(lambda: acceptor.is_serving)
    assert acceptor.address is not None

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not acceptor.is_serving
    assert acceptor.address is None


async def test_serve_forever_returns_after_stop():
    acceptor, _ = make_acceptor(["127.0.0.1"])
    await acceptor.start()
    task = asyncio.create_task(acceptor.serve_forever())

    await acceptor.stop()
    await asyncio.wait_for(task, timeout=5)

    assert not acceptor.is_serving
