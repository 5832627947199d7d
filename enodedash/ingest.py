"""
ENODE-DASH - Ingestion Loop
Reads peer events off the feed, geolocates them, appends registry rows

Per frame: decode -> extract fields -> parse ip -> resolve -> append -> redraw.
A bad frame is logged and dropped; only transport failures end the session.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from .errors import MessageDecodeError, SessionClosed, TransportError
from .geo import INVALID, GeoResolver, parse_ip
from .registry import PeerInput, PeerRegistry

logger = logging.getLogger(__name__)

FIELD_IP = "plain-ip"
FIELD_REMOTE = "remote"
FIELD_ENODE = "enode"


class SessionState(Enum):
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    STREAMING = "streaming"
    CLOSING = "closing"
    FAULTED = "faulted"


@dataclass(frozen=True)
class PeerEvent:
    plain_ip: str
    remote: str
    enode: str


def decode_message(frame: Union[str, bytes]) -> PeerEvent:
    """Decode one feed frame into a PeerEvent or raise MessageDecodeError"""
    try:
        data = json.loads(frame)
    except (ValueError, TypeError, RecursionError) as e:
        # UnicodeDecodeError is a ValueError too; deep nesting raises RecursionError
        raise MessageDecodeError(f"not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MessageDecodeError(f"expected a JSON object, got {type(data).__name__}")

    values = []
    for key in (FIELD_IP, FIELD_REMOTE, FIELD_ENODE):
        if key not in data:
            raise MessageDecodeError(f"missing field '{key}'")
        value = data[key]
        if not isinstance(value, str):
            raise MessageDecodeError(f"field '{key}' is {type(value).__name__}, expected string")
        values.append(value)

    return PeerEvent(*values)


class IngestionLoop:
    """Drives one feed session on its own thread.

    The controller calls stop() to cancel; the loop then closes the session,
    which unblocks the pending receive. Once stop() has been requested no more
    rows are appended.
    """

    def __init__(self, client, resolver: GeoResolver, registry: PeerRegistry,
                 on_apply: Optional[Callable[[int], None]] = None,
                 on_exit: Optional[Callable[["IngestionLoop"], None]] = None):
        self.client = client
        self.resolver = resolver
        self.registry = registry
        self.on_apply = on_apply
        self.on_exit = on_exit

        self.state = SessionState.CONNECTING
        self.error: Optional[str] = None

        self.received = 0
        self.applied = 0
        self.dropped = 0

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ───────────────────────────────────────────────────────────────────────────
    # Session setup
    # ───────────────────────────────────────────────────────────────────────────

    def open(self):
        """Connect and subscribe. StartupFatal errors propagate to the caller."""
        self.state = SessionState.CONNECTING
        self.client.connect()
        try:
            self.client.subscribe()
        except TransportError:
            self.client.close()
            raise
        self.state = SessionState.SUBSCRIBED
        logger.info("Subscribed to peer feed")

    # ───────────────────────────────────────────────────────────────────────────
    # Streaming
    # ───────────────────────────────────────────────────────────────────────────

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name="ingest", daemon=True)
        self._thread.start()
        return self._thread

    def run(self):
        """Receive until stopped, closed or faulted"""
        self.state = SessionState.STREAMING
        try:
            while not self._stop.is_set():
                try:
                    frame = self.client.receive()
                except SessionClosed as e:
                    if not self._stop.is_set():
                        logger.warning("Feed closed the session: %s", e)
                        self.error = f"feed closed the session: {e}"
                    self.state = SessionState.CLOSING
                    break
                except TransportError as e:
                    if self._stop.is_set():
                        self.state = SessionState.CLOSING
                    else:
                        logger.error("%s", e)
                        self.error = str(e)
                        self.state = SessionState.FAULTED
                    break

                self.received += 1
                self.handle_frame(frame)
            else:
                self.state = SessionState.CLOSING
        except Exception as e:
            logger.exception("Ingestion failed")
            self.error = f"ingestion failed: {type(e).__name__}: {e}"
            self.state = SessionState.FAULTED
        finally:
            self.client.close()
            if self.on_exit:
                self.on_exit(self)

    def handle_frame(self, frame: Union[str, bytes]) -> Optional[int]:
        """Process one frame. Returns the new row id, or None if dropped."""
        try:
            event = decode_message(frame)
        except MessageDecodeError as e:
            self.dropped += 1
            logger.warning("Dropping message: %s", e)
            return None

        ip = parse_ip(event.plain_ip)
        if ip is None:
            logger.debug("Unparsable plain-ip %r from %s", event.plain_ip, event.remote)
            result = INVALID
        else:
            result = self.resolver.resolve(ip)

        if self._stop.is_set():
            return None

        row_id = self.registry.append(PeerInput(
            remote_address=event.remote,
            identifier=event.enode,
            ip=event.plain_ip,
            location=result.label,
            geo_status=result.status,
            first_seen=time.time(),
        ))
        self.applied += 1

        if self.on_apply:
            self.on_apply(row_id)
        return row_id

    # ───────────────────────────────────────────────────────────────────────────
    # Cancellation
    # ───────────────────────────────────────────────────────────────────────────

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self, timeout: Optional[float] = 2.0):
        """Request Closing: no more rows, session closed, thread joined"""
        self._stop.set()
        self.client.close()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
