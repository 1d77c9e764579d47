"""Geolocator backed by an in-memory map, for testing."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from kvgeo.geo import (
    CountryIsoCode,
    ErrorKind,
    GeoError,
    GeoLocator,
    IpAddress,
    as_ip_address,
)


@dataclass
class _IpData:
    country: CountryIsoCode | None
    query_count: int = 0


class MockGeoLocator(GeoLocator):
    """Geolocator that uses an in-memory map of IPs to country codes."""

    RETURN_ERROR = ".."

    def __init__(self, raw_data: Iterable[tuple[str, str]]) -> None:
        """Builds the map from `(ip, code)` pairs; `RETURN_ERROR` codes make queries fail."""
        self._data: dict[IpAddress, _IpData] = {
            as_ip_address(ip): _IpData(CountryIsoCode(code)) for ip, code in raw_data
        }

    def query_count(self, ip: str | IpAddress) -> int:
        """Returns the number of times `ip` was queried."""
        entry = self._data.get(as_ip_address(ip))
        return entry.query_count if entry is not None else 0

    async def locate(self, ip: str | IpAddress) -> CountryIsoCode | None:
        addr = as_ip_address(ip)
        entry = self._data.setdefault(addr, _IpData(None))
        entry.query_count += 1
        country = entry.country
        if country is not None and str(country) == self.RETURN_ERROR:
            raise GeoError(ErrorKind.OTHER, "This query is supposed to return an error")
        return country