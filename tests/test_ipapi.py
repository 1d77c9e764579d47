import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from kvgeo.counter import SettableClock
from kvgeo.geo import ErrorKind, GeoError
from kvgeo.ipapi import MAX_REQUESTS_PER_MINUTE, FreeIpApiGeoLocator
from kvgeo.mock import MockGeoLocator

IP_IN_ES = "212.170.36.79"
IP_IN_IE = "185.2.66.42"
IP_IN_US = "2001:4898:80e8:3c::"
FAKE_DATA = [(IP_IN_ES, "XX"), (IP_IN_IE, "XX"), (IP_IN_US, "XX")]
REAL_DATA = {IP_IN_ES: "ES", IP_IN_IE: "IE", IP_IN_US: "US"}


def _json_response(body):
    return httpx.Response(200, content=json.dumps(body).encode("utf-8"))


class FakeService:
    """Answers IP-API queries from a fixed table and records them."""

    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, content=b"slow down")
        if self.body is not None:
            return _json_response(self.body)
        ip = request.url.path.removeprefix("/json/")
        if ip in REAL_DATA:
            return _json_response({"status": "success", "countryCode": REAL_DATA[ip]})
        return _json_response({"status": "fail", "message": "reserved range"})


def _refuse_connection(request):
    raise httpx.ConnectError("connection failed", request=request)


def _setup(service):
    clock = SettableClock(datetime(2023, 9, 23, 22, 0, 0, tzinfo=timezone.utc))
    delegee = MockGeoLocator(FAKE_DATA)
    client = httpx.AsyncClient(transport=httpx.MockTransport(service))
    return clock, delegee, FreeIpApiGeoLocator(clock, delegee, client)


async def _code(locator, ip):
    code = await locator.locate(ip)
    return None if code is None else str(code)


async def _locate_error(locator, ip=IP_IN_ES):
    with pytest.raises(GeoError) as excinfo:
        await locator.locate(ip)
    return excinfo.value


@pytest.mark.asyncio
async def test_ok():
    service = FakeService()
    _, delegee, locator = _setup(service)
    for ip, expected in REAL_DATA.items():
        assert await _code(locator, ip) == expected
    assert delegee.query_count(IP_IN_ES) == 0
    assert len(service.requests) == 3


@pytest.mark.asyncio
async def test_query_format():
    service = FakeService()
    _, _, locator = _setup(service)
    await locator.locate(IP_IN_ES)
    url = service.requests[0].url
    assert (url.host, url.path) == ("ip-api.com", f"/json/{IP_IN_ES}")
    assert url.params["fields"] == "status,message,countryCode"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, ip",
    [
        (None, "198.18.0.1"),
        ({"status": "fail", "message": "private range"}, "10.0.0.1"),
        ({"status": "success"}, IP_IN_ES),
    ],
)
async def test_no_country(body, ip):
    _, _, locator = _setup(FakeService(body=body))
    assert await locator.locate(ip) is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, suffix",
    [
        ({"status": "fail", "message": "invalid query"}, "returned failure: invalid query"),
        ({"status": "fail"}, "returned failure: No message"),
        ({"status": "weird", "message": "hm"}, "returned invalid status weird: hm"),
    ],
)
async def test_invalid_data(body, suffix):
    _, _, locator = _setup(FakeService(body=body))
    error = await _locate_error(locator)
    assert error.kind is ErrorKind.INVALID_DATA
    assert str(error).endswith(suffix)


@pytest.mark.asyncio
@pytest.mark.parametrize("service", [FakeService(status=500), _refuse_connection])
async def test_errors_are_not_delegated(service):
    _, delegee, locator = _setup(service)
    error = await _locate_error(locator)
    assert error.kind is ErrorKind.OTHER
    assert delegee.query_count(IP_IN_ES) == 0


@pytest.mark.asyncio
async def test_backoff_by_counter():
    service = FakeService()
    clock, delegee, locator = _setup(service)
    for _ in range(MAX_REQUESTS_PER_MINUTE):
        assert await _code(locator, IP_IN_IE) == "IE"

    results = [await _code(locator, IP_IN_ES)]
    for seconds in (50, 10):
        clock.advance(timedelta(seconds=seconds))
        results.append(await _code(locator, IP_IN_ES))

    assert results == ["XX", "XX", "ES"]
    assert delegee.query_count(IP_IN_ES) == 2
    assert len(service.requests) == MAX_REQUESTS_PER_MINUTE + 1


@pytest.mark.asyncio
async def test_backoff_on_too_many_requests():
    service = FakeService(status=429)
    clock, delegee, locator = _setup(service)

    observed = [(await _code(locator, IP_IN_ES), len(service.requests))]
    service.status = 200
    for seconds in (30, 1):
        clock.advance(timedelta(seconds=seconds))
        observed.append((await _code(locator, IP_IN_ES), len(service.requests)))

    assert observed == [("XX", 1), ("XX", 1), ("ES", 2)]
    assert delegee.query_count(IP_IN_ES) == 2