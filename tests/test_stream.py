"""
enodedash/tests/test_stream.py

Tests for the websocket session wrapper.
"""

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, InvalidHandshake
from websockets.frames import Close

from enodedash import stream
from enodedash.errors import SessionClosed, StreamConnectError, TransportError
from enodedash.stream import SUBSCRIBE_MESSAGE, PeerStreamClient


class FakeConnection:
    """Stands in for websockets.sync.client.ClientConnection."""

    def __init__(self, frames=()):
        self.frames = list(frames)
        self.sent = []
        self.close_calls = 0

    def send(self, text):
        self.sent.append(text)

    def recv(self):
        item = self.frames.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self, code=1000, reason=""):
        self.close_calls += 1


@pytest.fixture
def fake_connect(monkeypatch):
    """Patch the websockets dialer; returns the connection it hands out."""
    conn = FakeConnection()
    calls = []

    def connect(uri, **kwargs):
        calls.append((uri, kwargs))
        return conn

    monkeypatch.setattr(stream, "connect", connect)
    conn.calls = calls
    return conn


class TestConnect:
    """Test the opening handshake."""

    def test_connect_dials_endpoint(self, fake_connect):
        client = PeerStreamClient("ws://localhost:8080/").connect()
        assert fake_connect.calls[0][0] == "ws://localhost:8080/"
        assert client.closed is False

    @pytest.mark.parametrize("error", [
        ConnectionRefusedError(111, "Connection refused"),
        TimeoutError("timed out during opening handshake"),
        InvalidHandshake("server rejected WebSocket connection: HTTP 404"),
    ])
    def test_connect_failure(self, monkeypatch, error):
        def connect(uri, **kwargs):
            raise error

        monkeypatch.setattr(stream, "connect", connect)
        with pytest.raises(StreamConnectError, match="localhost:1"):
            PeerStreamClient("ws://localhost:1/").connect()


class TestSession:
    """Test send/receive/close."""

    def test_subscribe_sends_literal_once(self, fake_connect):
        client = PeerStreamClient("ws://localhost:8080/").connect()
        client.subscribe()
        assert fake_connect.sent == ["subscribe to peer stuff please"]
        assert SUBSCRIBE_MESSAGE == "subscribe to peer stuff please"

    def test_send_failure(self, fake_connect):
        def broken_send(text):
            raise ConnectionClosedError(None, None)

        fake_connect.send = broken_send
        client = PeerStreamClient("ws://localhost:8080/").connect()
        with pytest.raises(TransportError):
            client.subscribe()

    def test_receive_frames(self, fake_connect):
        fake_connect.frames = ['{"a": 1}', b'{"b": 2}']
        client = PeerStreamClient("ws://localhost:8080/").connect()
        assert client.receive() == '{"a": 1}'
        assert client.receive() == b'{"b": 2}'

    def test_clean_close(self, fake_connect):
        fake_connect.frames = [ConnectionClosedOK(Close(1000, ""), Close(1000, ""))]
        client = PeerStreamClient("ws://localhost:8080/").connect()
        with pytest.raises(SessionClosed):
            client.receive()

    def test_abnormal_close_is_transport_error(self, fake_connect):
        fake_connect.frames = [ConnectionClosedError(None, None)]
        client = PeerStreamClient("ws://localhost:8080/").connect()
        with pytest.raises(TransportError):
            client.receive()

    def test_abnormal_close_after_local_close(self, fake_connect):
        fake_connect.frames = [ConnectionClosedError(None, None)]
        client = PeerStreamClient("ws://localhost:8080/").connect()
        client.close()
        with pytest.raises(SessionClosed):
            client.receive()

    def test_socket_error_is_transport_error(self, fake_connect):
        fake_connect.frames = [ConnectionResetError(104, "Connection reset by peer")]
        client = PeerStreamClient("ws://localhost:8080/").connect()
        with pytest.raises(TransportError):
            client.receive()

    def test_close_is_idempotent(self, fake_connect):
        client = PeerStreamClient("ws://localhost:8080/").connect()
        client.close()
        client.close()
        assert client.closed
        assert fake_connect.close_calls == 1

    def test_unconnected_session(self):
        client = PeerStreamClient("ws://localhost:8080/")
        with pytest.raises(TransportError):
            client.receive()
        client.close()
