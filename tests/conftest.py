"""
enodedash/tests/conftest.py

Fakes for the websocket session and the mmdb reader.
"""

import json
import queue

import pytest

from enodedash.errors import SessionClosed, TransportError


MOUNTAIN_VIEW = {
    "city": {"names": {"en": "Mountain View", "de": "Mountain View"}},
    "country": {"iso_code": "US", "names": {"en": "United States"}},
}

BERLIN = {
    "city": {"names": {"en": "Berlin"}},
    "country": {"iso_code": "DE"},
}


class FakeReader:
    """Stands in for maxminddb.Reader: exact-address lookups only."""

    def __init__(self, records=None):
        self.records = dict(records or {})
        self.lookups = []
        self.closed = False

    def get(self, ip):
        self.lookups.append(str(ip))
        return self.records.get(str(ip))

    def close(self):
        self.closed = True


class FakeClient:
    """Session fed from a queue. close() makes receive() raise SessionClosed."""

    _CLOSE = object()

    def __init__(self, endpoint="ws://localhost:8080/"):
        self.endpoint = endpoint
        self.frames = queue.Queue()
        self.sent = []
        self.connected = False
        self.closed = False

    def connect(self):
        self.connected = True
        return self

    def subscribe(self):
        self.sent.append("subscribe to peer stuff please")

    def receive(self):
        try:
            item = self.frames.get(timeout=5)
        except queue.Empty:
            raise TransportError("fake session: nothing to receive")
        if item is self._CLOSE:
            raise SessionClosed("session closed")
        if isinstance(item, Exception):
            raise item
        return item

    def push(self, frame):
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self.frames.put(frame)

    def push_close(self):
        self.frames.put(self._CLOSE)

    def close(self, reason=None):
        if not self.closed:
            self.closed = True
            self.frames.put(self._CLOSE)


def peer_event(remote="10.0.0.5:30303", ip="8.8.8.8",
               enode="enode://deadbeef0123456789abcdef"):
    return {"plain-ip": ip, "remote": remote, "enode": enode}


@pytest.fixture
def reader():
    return FakeReader({"8.8.8.8": MOUNTAIN_VIEW, "85.214.132.117": BERLIN})


@pytest.fixture
def resolver(reader):
    from enodedash.geo import GeoResolver
    return GeoResolver(reader)


@pytest.fixture
def registry():
    from enodedash.registry import PeerRegistry
    return PeerRegistry()


@pytest.fixture
def client():
    return FakeClient()


# ═══════════════════════════════════════════════════════════════════════════════
# Minimal MaxMind DB files
# ═══════════════════════════════════════════════════════════════════════════════

class U16(int):
    pass


class U32(int):
    pass


class U64(int):
    pass


_MMDB_TYPES = {str: 2, dict: 7, U16: 5, U32: 6, U64: 9, list: 11}


def _mmdb_control(type_id, size):
    assert size < 29
    if type_id <= 7:
        return bytes([(type_id << 5) | size])
    # extended type: size in the control byte, type - 7 in the next one
    return bytes([size, type_id - 7])


def _mmdb_encode(value) -> bytes:
    type_id = _MMDB_TYPES[type(value)]
    if isinstance(value, str):
        raw = value.encode("utf-8")
        return _mmdb_control(type_id, len(raw)) + raw
    if isinstance(value, dict):
        out = _mmdb_control(type_id, len(value))
        for key, item in value.items():
            out += _mmdb_encode(key) + _mmdb_encode(item)
        return out
    if isinstance(value, list):
        return _mmdb_control(type_id, len(value)) + b"".join(_mmdb_encode(v) for v in value)
    raw = int(value).to_bytes((int(value).bit_length() + 7) // 8, "big")
    return _mmdb_control(type_id, len(raw)) + raw


def _plain(value):
    """Record dicts from tests use plain str/dict values only"""
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return str(value)


def write_mmdb(path, ip: str, record: dict):
    """Write an IPv4 database holding a single /32 entry.

    The search tree is a chain of 32 nodes following the address bits; every
    other branch is empty. 24-bit records.
    """
    node_count = 32
    bits = int.from_bytes(bytes(int(octet) for octet in ip.split(".")), "big")
    data_pointer = node_count + 16  # data section offset 0

    tree = b""
    for depth in range(node_count):
        bit = (bits >> (31 - depth)) & 1
        follow = depth + 1 if depth + 1 < node_count else data_pointer
        left, right = (follow, node_count) if bit == 0 else (node_count, follow)
        tree += left.to_bytes(3, "big") + right.to_bytes(3, "big")

    metadata = {
        "binary_format_major_version": U16(2),
        "binary_format_minor_version": U16(0),
        "build_epoch": U64(1632787200),
        "database_type": "GeoLite2-City-Test",
        "description": {"en": "enodedash test database"},
        "ip_version": U16(4),
        "languages": ["en"],
        "node_count": U32(node_count),
        "record_size": U16(24),
    }

    with open(path, "wb") as f:
        f.write(tree)
        f.write(b"\x00" * 16)
        f.write(_mmdb_encode(_plain(record)))
        f.write(b"\xab\xcd\xefMaxMind.com")
        f.write(_mmdb_encode(metadata))
    return path
