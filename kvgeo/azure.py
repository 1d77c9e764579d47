"""Geolocator backed by the Azure Maps IP geolocation service."""

from __future__ import annotations

import ipaddress
import os
from dataclasses import dataclass, field
from typing import Any

import httpx

from kvgeo.geo import (
    ConfigError,
    CountryIsoCode,
    ErrorKind,
    GeoError,
    GeoLocator,
    IpAddress,
    as_ip_address,
)

_LOCATE_URL = "https://atlas.microsoft.com/geolocation/ip/json"

_STATUS_KINDS = {
    400: ErrorKind.INVALID_INPUT,
    401: ErrorKind.PERMISSION_DENIED,
    403: ErrorKind.PERMISSION_DENIED,
    404: ErrorKind.NOT_FOUND,
    500: ErrorKind.OTHER,
}


def _status_line(response: httpx.Response) -> str:
    return f"{response.status_code} {response.reason_phrase}".strip()


def _response_error(response: httpx.Response) -> GeoError:
    """Builds the error for a response with a non-OK status."""
    if response.status_code == 200:
        raise AssertionError("Should not have been called on a successful request")
    kind = _STATUS_KINDS.get(response.status_code, ErrorKind.OTHER)
    return GeoError(
        kind,
        f"HTTP request returned status {_status_line(response)} with text '{response.text}'",
    )


def _parse_body(response: httpx.Response) -> tuple[str, str | None]:
    """Extracts the echoed IP and the optional ISO code from a successful response."""
    try:
        body: Any = response.json()
    except ValueError as e:
        raise GeoError(ErrorKind.INVALID_DATA, f"Invalid JSON in response: {e}") from e
    if not isinstance(body, dict):
        raise GeoError(ErrorKind.INVALID_DATA, "Response is not a JSON object")

    response_ip = body.get("ipAddress")
    if not isinstance(response_ip, str):
        raise GeoError(ErrorKind.INVALID_DATA, "Missing or invalid field ipAddress")

    region = body.get("countryRegion")
    if region is None:
        return response_ip, None
    if not isinstance(region, dict):
        raise GeoError(ErrorKind.INVALID_DATA, "Invalid field countryRegion")
    iso_code = region.get("isoCode")
    if iso_code is not None and not isinstance(iso_code, str):
        raise GeoError(ErrorKind.INVALID_DATA, "Invalid field isoCode")
    return response_ip, iso_code


@dataclass
class AzureGeoLocatorOptions:
    """Options to configure an `AzureGeoLocator`."""

    key: str = field(repr=False)

    @classmethod
    def from_env(cls, prefix: str) -> AzureGeoLocatorOptions:
        """Reads the options from `<prefix>_KEY`."""
        name = f"{prefix}_KEY"
        key = os.environ.get(name)
        if key is None:
            raise ConfigError(f"Required environment variable {name} not present")
        return cls(key=key)


class AzureGeoLocator(GeoLocator):
    """Geolocator that uses an Azure Maps account."""

    def __init__(
        self, opts: AzureGeoLocatorOptions, client: httpx.AsyncClient | None = None
    ) -> None:
        self._key = opts.key
        self._client = client if client is not None else httpx.AsyncClient()

    async def locate(self, ip: str | IpAddress) -> CountryIsoCode | None:
        addr = as_ip_address(ip)
        params = {
            "format": "json",
            "api-version": "1.0",
            "ip": str(addr),
            "subscription-key": self._key,
        }
        try:
            response = await self._client.get(_LOCATE_URL, params=params)
        except httpx.HTTPError as e:
            raise GeoError(ErrorKind.OTHER, str(e)) from e

        if response.status_code != 200:
            raise _response_error(response)

        raw_ip, iso_code = _parse_body(response)
        try:
            response_ip = ipaddress.ip_address(raw_ip)
        except ValueError as e:
            raise GeoError(
                ErrorKind.INVALID_DATA, f"Invalid {raw_ip} IP in the response: {e}"
            ) from e
        if response_ip != addr:
            raise GeoError(
                ErrorKind.INVALID_DATA,
                f"Mismatched IP in response: got {response_ip} but want {addr}",
            )

        return CountryIsoCode(iso_code) if iso_code is not None else None