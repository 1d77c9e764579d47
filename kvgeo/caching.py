"""Geolocator wrapper that caches successful query results."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta

from cachetools import TTLCache

from kvgeo.geo import ConfigError, CountryIsoCode, GeoLocator, IpAddress, as_ip_address

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=1)
DEFAULT_CAPACITY = 10 * 1024

_DURATION_RE = re.compile(r"^\s*(\d+)\s*(ms|s|m|h|d)?\s*$")
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}

_MISSING = object()


def _parse_duration(raw: str) -> timedelta:
    match = _DURATION_RE.match(raw)
    if match is None:
        raise ValueError(f"invalid duration '{raw}'")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[unit or "s"]


def _parse_capacity(raw: str) -> int:
    value = int(raw)
    if value < 0:
        raise ValueError(f"capacity {raw} cannot be negative")
    return value


def _optional_var(prefix: str, suffix: str, parse):
    name = f"{prefix}_{suffix}"
    raw = os.environ.get(name)
    if raw is None:
        return None
    try:
        return parse(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid value in environment variable {name}: {e}") from e


@dataclass
class CachingGeoLocatorOptions:
    """Options to configure a `CachingGeoLocator`."""

    ttl: timedelta = field(default=DEFAULT_TTL)
    capacity: int = DEFAULT_CAPACITY

    @classmethod
    def from_env(cls, prefix: str) -> CachingGeoLocatorOptions:
        """Reads `<prefix>_TTL` and `<prefix>_CAPACITY`, falling back to defaults."""
        ttl = _optional_var(prefix, "TTL", _parse_duration)
        capacity = _optional_var(prefix, "CAPACITY", _parse_capacity)
        return cls(
            ttl=DEFAULT_TTL if ttl is None else ttl,
            capacity=DEFAULT_CAPACITY if capacity is None else capacity,
        )


class CachingGeoLocator(GeoLocator):
    """Geolocator that caches the answers of another geolocator, errors excluded."""

    def __init__(self, opts: CachingGeoLocatorOptions, delegee: GeoLocator) -> None:
        self._delegee = delegee
        self._cache: TTLCache = TTLCache(
            maxsize=opts.capacity, ttl=opts.ttl.total_seconds()
        )

    async def locate(self, ip: str | IpAddress) -> CountryIsoCode | None:
        addr = as_ip_address(ip)
        cached = self._cache.get(addr, _MISSING)
        if cached is not _MISSING:
            return cached

        code = await self._delegee.locate(addr)

        old_code = self._cache.get(addr, _MISSING)
        if old_code is not _MISSING and old_code != code:
            logger.warning(
                "Cache insertion race detected with inconsistent values: %r != %r",
                old_code,
                code,
            )
        if self._cache.maxsize > 0:
            self._cache[addr] = code
        return code