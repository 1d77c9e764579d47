import pytest

from kvgeo import db
from kvgeo.db import Database
from kvgeo.driver import Driver
from kvgeo.model import Entry, Key, Version
from kvgeo.rest import create_app

HISTORY = [("first", "value", 0), ("first", "value2", 1), ("second", "value", 0)]


@pytest.fixture
def database():
    database = Database(":memory:")
    with database.connection() as conn:
        db.init_schema(conn)
    yield database
    database.close()


@pytest.fixture
def client(database):
    return create_app(Driver(database)).test_client()


def _seed(database, rows):
    with database.connection() as conn:
        for key, value, version in rows:
            db.set_key(conn, Key(key), Entry(value, Version.from_u32(version)))


def _version(database, key):
    with database.connection() as conn:
        return db.get_key_version(conn, Key(key))


def _entry(database, key):
    with database.connection() as conn:
        return db.get_key(conn, Key(key))


def test_key_delete_ok(database, client):
    _seed(database, HISTORY)

    response = client.delete("/api/v1/keys/first")
    assert (response.status_code, response.get_data()) == (200, b"")
    assert _version(database, "first") is None
    assert _version(database, "second") == Version.from_u32(0)


def test_key_get_ok(database, client):
    _seed(database, HISTORY)

    response = client.get("/api/v1/keys/first")
    assert response.status_code == 200
    assert Entry.from_json(response.get_json()) == Entry("value2", Version.from_u32(1))


@pytest.mark.parametrize("method", ["DELETE", "GET"])
def test_key_missing(database, client, method):
    _seed(database, [("first", "value", 0)])

    response = client.open("/api/v1/keys/second", method=method)
    assert response.status_code == 404
    assert "not found" in response.get_json()["message"]


@pytest.mark.parametrize(
    "rows, status, expected",
    [
        ([], 201, Entry("new value", Version.initial())),
        ([("first", "old value", 123)], 200, Entry("new value", Version.from_u32(124))),
    ],
)
def test_key_put(database, client, rows, status, expected):
    _seed(database, rows)

    response = client.put("/api/v1/keys/first", data="new value")
    assert response.status_code == status
    assert Entry.from_json(response.get_json()) == expected
    assert _entry(database, "first") == expected


def test_key_put_invalid_utf8(database, client):
    response = client.put("/api/v1/keys/first", data=b"\xff\xfe")
    assert response.status_code == 400
    assert _version(database, "first") is None


@pytest.mark.parametrize(
    "rows, expected",
    [
        ([("second", "value", 0), ("first", "value", 0), ("first", "value2", 1)], ["first", "second"]),
        ([], []),
    ],
)
def test_keys_get(database, client, rows, expected):
    _seed(database, rows)

    response = client.get("/api/v1/keys")
    assert response.status_code == 200
    assert response.get_json() == expected


@pytest.mark.parametrize(
    "method, path",
    [
        ("DELETE", "/api/v1/keys/irrelevant"),
        ("GET", "/api/v1/keys/irrelevant"),
        ("GET", "/api/v1/keys"),
    ],
)
def test_payload_must_be_empty(database, client, method, path):
    _seed(database, [("irrelevant", "value", 0)])

    response = client.open(path, method=method, data="not empty")
    assert response.status_code == 400
    assert response.get_json()["message"]
    assert _version(database, "irrelevant") == Version.from_u32(0)