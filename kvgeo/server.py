"""Command that serves the key/value service over HTTP."""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Sequence

from kvgeo import db as dbops
from kvgeo.db import Database
from kvgeo.driver import Driver
from kvgeo.rest import create_app

DEFAULT_PORT = 3000
DEFAULT_HOST = "127.0.0.1"
PORT_VAR = "FUNCTIONS_CUSTOMHANDLER_PORT"


def serve(host: str, port: int, db: Database) -> None:
    """Serves the application backed by `db` on `host`:`port` until stopped."""
    app = create_app(Driver(db))
    app.run(host=host, port=port)


def _port_from_env(parser: argparse.ArgumentParser) -> int:
    raw = os.environ.get(PORT_VAR)
    if raw is None:
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError:
        parser.error("Custom handler port has to be a number")
    if not 0 <= port <= 65535:
        parser.error("Custom handler port has to be a number")
    return port


def main(argv: Sequence[str] | None = None) -> None:
    """Starts the service on localhost, listening on the port given in the environment."""
    parser = argparse.ArgumentParser(description="Key/value store service.")
    parser.add_argument(
        "--database",
        default="kvgeo.sqlite3",
        help="path to the SQLite database file",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    port = _port_from_env(parser)

    with Database(args.database) as db:
        with db.connection() as conn:
            dbops.init_schema(conn)
        serve(DEFAULT_HOST, port, db)


if __name__ == "__main__":
    main()