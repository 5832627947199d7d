"""Exception types shared across the dashboard"""


class EnodeDashError(Exception):
    """Base class for dashboard errors"""


class GeoDatabaseError(EnodeDashError):
    """GeoIP database could not be opened"""


class StreamConnectError(EnodeDashError):
    """Websocket handshake with the peer feed failed"""


class TransportError(EnodeDashError):
    """Session failed after connecting (send or receive)"""


class SessionClosed(EnodeDashError):
    """Feed closed the session cleanly"""


class MessageDecodeError(EnodeDashError):
    """Frame is not a usable peer event. Recoverable: the frame is dropped."""
