"""Geolocator backed by the free tier of IP-API, with fallback on overload."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from kvgeo.counter import Clock, RequestCounter
from kvgeo.geo import (
    CountryIsoCode,
    ErrorKind,
    GeoError,
    GeoLocator,
    IpAddress,
    as_ip_address,
)

logger = logging.getLogger(__name__)

BACKOFF_SECS = 30
MAX_REQUESTS_PER_MINUTE = 45

_STATUS_KINDS = {
    400: ErrorKind.INVALID_INPUT,
    401: ErrorKind.PERMISSION_DENIED,
    403: ErrorKind.PERMISSION_DENIED,
    404: ErrorKind.NOT_FOUND,
    429: ErrorKind.CONNECTION_REFUSED,
    500: ErrorKind.OTHER,
}

_UNLOCATABLE_MESSAGES = frozenset({"private range", "reserved range"})


def _response_error(response: httpx.Response) -> GeoError:
    """Builds the error for a response with a non-OK status."""
    if response.status_code == 200:
        raise AssertionError("Should not have been called on a successful request")
    kind = _STATUS_KINDS.get(response.status_code, ErrorKind.OTHER)
    status = f"{response.status_code} {response.reason_phrase}".strip()
    return GeoError(
        kind, f"HTTP request returned status {status} with text '{response.text}'"
    )


def _optional_str(body: dict[str, Any], name: str) -> str | None:
    value = body.get(name)
    if value is not None and not isinstance(value, str):
        raise GeoError(ErrorKind.INVALID_DATA, f"Invalid field {name}")
    return value


class FreeIpApiGeoLocator(GeoLocator):
    """Geolocator that uses IP-API's free tier.

    When the per-minute quota is exhausted or the service answers 429, queries are
    forwarded to `delegee`.
    """

    def __init__(
        self,
        clock: Clock,
        delegee: GeoLocator,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client if client is not None else httpx.AsyncClient()
        self._clock = clock
        self._backoff_until = datetime.fromtimestamp(0, timezone.utc)
        self._counter = RequestCounter(clock)
        self._delegee = delegee
        self._lock = asyncio.Lock()

    async def _locate_raw(self, ip: IpAddress) -> CountryIsoCode | None:
        """Queries the service directly, without regard for quota limits."""
        request = f"http://ip-api.com/json/{ip}?fields=status,message,countryCode"
        try:
            response = await self._client.get(request)
        except httpx.HTTPError as e:
            raise GeoError(ErrorKind.OTHER, str(e)) from e

        if response.status_code != 200:
            raise _response_error(response)

        try:
            body: Any = response.json()
        except ValueError as e:
            raise GeoError(ErrorKind.INVALID_DATA, f"Invalid JSON in response: {e}") from e
        if not isinstance(body, dict):
            raise GeoError(ErrorKind.INVALID_DATA, "Response is not a JSON object")
        status = body.get("status")
        if not isinstance(status, str):
            raise GeoError(ErrorKind.INVALID_DATA, "Missing or invalid field status")
        message = _optional_str(body, "message")
        country_code = _optional_str(body, "countryCode")

        if status == "success":
            return CountryIsoCode(country_code) if country_code is not None else None
        if status == "fail":
            if message in _UNLOCATABLE_MESSAGES:
                return None
            raise GeoError(
                ErrorKind.INVALID_DATA,
                f"Query {request} returned failure: {message or 'No message'}",
            )
        raise GeoError(
            ErrorKind.INVALID_DATA,
            f"Query {request} returned invalid status {status}: {message or 'No message'}",
        )

    async def locate(self, ip: str | IpAddress) -> CountryIsoCode | None:
        addr = as_ip_address(ip)
        async with self._lock:
            now = self._clock.now_utc()
            if self._backoff_until < now:
                if self._counter.last_minute() < MAX_REQUESTS_PER_MINUTE:
                    self._counter.account()
                    try:
                        return await self._locate_raw(addr)
                    except GeoError as e:
                        if e.kind is not ErrorKind.CONNECTION_REFUSED:
                            raise
                        logger.warning("IP-API returned 429; falling back to delegee")
                        self._backoff_until = now + timedelta(seconds=BACKOFF_SECS)
                else:
                    logger.warning("Out of quota; falling back to delegee")

        return await self._delegee.locate(addr)