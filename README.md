# kvgeo

kvgeo has two parts:

* a small REST service that stores versioned string values under string keys in a
  SQLite database, and
* a set of geolocators that map an IP address to a two-letter country code.

## The key/value service

Start the server with:

    kvgeo-server [--database PATH]

`--database` names the SQLite file to use and defaults to `kvgeo.sqlite3`. The table is
created if it does not exist. The server listens on `127.0.0.1`. The port comes from the
`FUNCTIONS_CUSTOMHANDLER_PORT` environment variable and defaults to 3000. If that
variable does not hold a valid port number, the command exits with an error.

The API:

| Method | Path                 | Effect                                                      |
|--------|----------------------|-------------------------------------------------------------|
| GET    | `/api/v1/keys`       | Sorted JSON list of every key                               |
| GET    | `/api/v1/keys/<key>` | The entry, as `{"value": ..., "version": ...}`              |
| PUT    | `/api/v1/keys/<key>` | Stores the request body as the value and bumps the version  |
| DELETE | `/api/v1/keys/<key>` | Removes the key and answers with an empty body              |

A new key starts at version 1, and each later `PUT` adds one. A `PUT` answers
`201 Created` with the new entry when it creates the key and `200 OK` when it updates
one. Its body is taken as UTF-8 text. `GET` and `DELETE` take no request body and answer
`400 Bad Request` if one is sent. An unknown key gives `404 Not Found`. Errors come back
as `{"message": ...}`.

The service can also be assembled in code:

```python
from kvgeo.db import Database, init_schema
from kvgeo.driver import Driver
from kvgeo.rest import create_app

db = Database(":memory:")
with db.connection() as conn:
    init_schema(conn)

app = create_app(Driver(db))   # a Flask application
```

`Driver` offers the same operations as plain calls: `get_keys()`, `get_key(key)`,
`set_key(key, value)` and `delete_key(key)`. They take `kvgeo.model.Key` values, return
`Entry` objects, and raise `DriverNotFoundError` or `DriverError`. The lower-level
functions in `kvgeo.db` work on a `sqlite3` connection from `Database.connection()` or
`Database.transaction()`.

`kvgeo.server.serve(host, port, db)` runs the same application on a given address.

### Limits

Storage is SQLite only, through one shared connection. `serve` and `kvgeo-server` run
Flask's built-in development server. For anything beyond that, pass the application from
`create_app` to a WSGI server of your choice. The service has no authentication.

## Geolocation

Every geolocator has an asynchronous `locate(ip)` method. It takes a string or an
`ipaddress` address and returns a `CountryIsoCode`, or `None` when the country is
unknown. When the lookup fails it raises `GeoError`, whose `kind` is an `ErrorKind`.
`CountryIsoCode("es")` validates the length and stores the code in upper case.
`str(code)` gives `"ES"`.

* `kvgeo.azure.AzureGeoLocator` asks Azure Maps.
  `AzureGeoLocatorOptions.from_env("AZURE_MAPS")` reads `AZURE_MAPS_KEY` and raises
  `ConfigError` if it is missing. An `httpx.AsyncClient` may be passed in.
* `kvgeo.ipapi.FreeIpApiGeoLocator(clock, delegee)` asks the free IP-API tier. It allows
  at most 45 requests per minute and backs off for 30 seconds after a `429` reply. While
  it is limited, it hands lookups to `delegee`. Private and reserved ranges give `None`.
* `kvgeo.caching.CachingGeoLocator(opts, delegee)` wraps another geolocator with a
  size-bounded cache whose entries expire. `CachingGeoLocatorOptions.from_env(prefix)`
  reads `<prefix>_TTL` and `<prefix>_CAPACITY`. The TTL is a number with an optional
  unit: `ms`, `s` (the default), `m`, `h` or `d`, for example `3d`. The defaults are one
  hour and 10240 entries. Unknown countries are cached. Errors are not.
* `kvgeo.mock.MockGeoLocator` answers from an in-memory table and counts the queries it
  gets with `query_count(ip)`. A code of `MockGeoLocator.RETURN_ERROR` makes the query
  for that IP fail. Use it in tests.

```python
from kvgeo.caching import CachingGeoLocator, CachingGeoLocatorOptions
from kvgeo.mock import MockGeoLocator

delegee = MockGeoLocator([("1.1.1.1", "ES"), ("2.2.2.2", "KR")])
geolocator = CachingGeoLocator(CachingGeoLocatorOptions(), delegee)

code = await geolocator.locate("1.1.1.1")
print(code)   # ES
```

`kvgeo.counter.RequestCounter` counts requests over the last minute, one slot per second.
It takes a `Clock`: `SystemClock` in production, or `SettableClock` in tests. Move a
`SettableClock` forward with `advance(timedelta)`.