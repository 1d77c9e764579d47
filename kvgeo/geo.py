"""Core geolocation types: country codes, errors and the locator interface."""

from __future__ import annotations

import abc
import enum
import ipaddress

IpAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


class ErrorKind(enum.Enum):
    """Category of a geolocation failure."""

    INVALID_INPUT = "invalid input"
    INVALID_DATA = "invalid data"
    PERMISSION_DENIED = "permission denied"
    NOT_FOUND = "not found"
    CONNECTION_REFUSED = "connection refused"
    OTHER = "other"


class GeoError(Exception):
    """Raised when a geolocation query or a value it handles is invalid."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return self.message


class ConfigError(Exception):
    """Raised when configuration read from the environment is missing or invalid."""


class CountryIsoCode:
    """A validated two-letter country ISO code, stored in uppercase."""

    __slots__ = ("_code",)

    def __init__(self, code: str) -> None:
        code = str(code)
        if len(code.encode("utf-8")) != 2:
            raise GeoError(
                ErrorKind.INVALID_DATA, f"Country code {code} does not have length 2"
            )
        self._code = code.upper()

    def __str__(self) -> str:
        return self._code

    def __repr__(self) -> str:
        return f"CountryIsoCode({self._code!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CountryIsoCode):
            return self._code == other._code
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._code)


def as_ip_address(ip: str | IpAddress) -> IpAddress:
    """Normalises `ip` into an IP address object."""
    if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip
    return ipaddress.ip_address(ip)


class GeoLocator(abc.ABC):
    """Interface to obtain geolocation information."""

    @abc.abstractmethod
    async def locate(self, ip: str | IpAddress) -> CountryIsoCode | None:
        """Figures out which country `ip` is in, if possible."""