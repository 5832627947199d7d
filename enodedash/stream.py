"""
ENODE-DASH - Peer Stream Client
Websocket session with the node's peer feed
"""

import logging
import threading
from typing import Optional, Union

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, WebSocketException
from websockets.sync.client import connect

from .errors import SessionClosed, StreamConnectError, TransportError

logger = logging.getLogger(__name__)

SUBSCRIBE_MESSAGE = "subscribe to peer stuff please"

CONNECT_TIMEOUT = 10           # Seconds for the opening handshake
MAX_FRAME_SIZE = 16 * 1024 * 1024


class PeerStreamClient:
    """One websocket session: connect, subscribe once, receive frames.

    receive() is called from the ingestion thread only. close() may be called
    from any thread and makes a blocked receive() return with SessionClosed.
    """

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        self._conn = None
        self._closed = threading.Event()

    def connect(self) -> "PeerStreamClient":
        try:
            self._conn = connect(
                self.endpoint,
                open_timeout=CONNECT_TIMEOUT,
                max_size=MAX_FRAME_SIZE,
            )
        except (OSError, WebSocketException) as e:
            raise StreamConnectError(f"dial {self.endpoint}: {e}") from e
        logger.info("Connected to %s", self.endpoint)
        return self

    def subscribe(self):
        """Send the one-shot subscription request. No ack is expected."""
        self.send(SUBSCRIBE_MESSAGE)

    def send(self, text: str):
        if self._conn is None:
            raise TransportError("send on a session that was never connected")
        try:
            self._conn.send(text)
        except (OSError, WebSocketException) as e:
            raise TransportError(f"error writing message: {e}") from e

    def receive(self) -> Union[str, bytes]:
        """Block until the next frame"""
        if self._conn is None:
            raise TransportError("receive on a session that was never connected")
        try:
            return self._conn.recv()
        except ConnectionClosedOK as e:
            raise SessionClosed(f"session closed: {e}") from e
        except ConnectionClosedError as e:
            if self._closed.is_set():
                raise SessionClosed("session closed locally") from e
            raise TransportError(f"error reading message: {e}") from e
        except (OSError, WebSocketException) as e:
            raise TransportError(f"error reading message: {e}") from e

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self, reason: Optional[str] = None):
        if self._closed.is_set():
            return
        self._closed.set()
        if self._conn is None:
            return
        try:
            self._conn.close(reason=reason or "")
        except (OSError, WebSocketException) as e:
            logger.debug("Error while closing session: %s", e)
