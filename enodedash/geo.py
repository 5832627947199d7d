"""
ENODE-DASH - GeoIP Lookup
Offline location lookups against a MaxMind .mmdb file
"""

import ipaddress
from dataclasses import dataclass
from typing import Optional, Union

import maxminddb

from .errors import GeoDatabaseError

# Geo status codes
GEO_OK = 0
GEO_PRIVATE = 1
GEO_UNAVAILABLE = 2
GEO_INVALID = 3

UNKNOWN_LOCATION = "??:unknown"

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class LocationResult:
    status: int
    country_code: str = ""
    city: str = ""

    @property
    def found(self) -> bool:
        return self.status == GEO_OK

    @property
    def label(self) -> str:
        """'<ISO code>:<city>' or the unknown sentinel"""
        if not self.found:
            return UNKNOWN_LOCATION
        return f"{self.country_code}:{self.city}"


NOT_FOUND = LocationResult(GEO_UNAVAILABLE)
PRIVATE = LocationResult(GEO_PRIVATE)
INVALID = LocationResult(GEO_INVALID)


def parse_ip(raw: str) -> Optional[IPAddress]:
    """Parse an IPv4/IPv6 string, None if it isn't one"""
    try:
        return ipaddress.ip_address(raw.strip())
    except ValueError:
        return None


def is_private_ip(ip: IPAddress) -> bool:
    """Non-routable addresses never have a database record"""
    return (ip.is_private or ip.is_loopback or ip.is_link_local
            or ip.is_reserved or ip.is_multicast or ip.is_unspecified)


class GeoResolver:
    """Read-only wrapper around an opened mmdb reader.

    The reader is opened once at startup and shared by the ingestion thread.
    maxminddb readers are safe for concurrent lookups.
    """

    def __init__(self, reader):
        self._reader = reader

    @classmethod
    def open(cls, path: str) -> "GeoResolver":
        try:
            reader = maxminddb.open_database(str(path))
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
            raise GeoDatabaseError(f"error opening database {path}: {e}") from e
        return cls(reader)

    def resolve(self, ip: IPAddress) -> LocationResult:
        """Look up an address. A miss is a result, never an exception."""
        if is_private_ip(ip):
            return PRIVATE

        try:
            record = self._reader.get(ip)
        except (ValueError, maxminddb.InvalidDatabaseError):
            # corrupt record or an IPv6 address against an IPv4-only database
            return NOT_FOUND

        if not isinstance(record, dict):
            return NOT_FOUND

        country_code = (record.get('country') or {}).get('iso_code', '')
        city = ((record.get('city') or {}).get('names') or {}).get('en', '')
        if not country_code and not city:
            return NOT_FOUND

        return LocationResult(GEO_OK, country_code, city)

    def close(self):
        self._reader.close()
