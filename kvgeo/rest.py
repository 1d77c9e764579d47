"""HTTP interface of the key/value service."""

from __future__ import annotations

from flask import Flask, Response, jsonify, request

from kvgeo.driver import Driver, DriverError, DriverNotFoundError
from kvgeo.model import Key, ModelError, Version


class _RestError(Exception):
    """Raised by handlers to produce an error response."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


def _error_response(status: int, message: str) -> tuple[Response, int]:
    return jsonify({"message": message}), status


def _require_empty_body() -> None:
    if request.get_data():
        raise _RestError(400, "Request should not have a payload")


def _text_body() -> str:
    try:
        return request.get_data().decode("utf-8")
    except UnicodeDecodeError as e:
        raise _RestError(400, f"Request body is not valid UTF-8: {e}") from e


def create_app(driver: Driver) -> Flask:
    """Creates the web application that serves the key/value API backed by `driver`."""
    app = Flask(__name__)

    @app.errorhandler(_RestError)
    def _handle_rest_error(e: _RestError):
        return _error_response(e.status, e.message)

    @app.errorhandler(DriverNotFoundError)
    def _handle_not_found(e: DriverNotFoundError):
        return _error_response(404, str(e))

    @app.errorhandler(ModelError)
    def _handle_model_error(e: ModelError):
        return _error_response(400, str(e))

    @app.errorhandler(DriverError)
    def _handle_driver_error(e: DriverError):
        return _error_response(500, str(e))

    @app.get("/api/v1/keys/<key>")
    def key_get(key: str):
        _require_empty_body()
        entry = driver.get_key(Key(key))
        return jsonify(entry.to_json())

    @app.put("/api/v1/keys/<key>")
    def key_put(key: str):
        entry = driver.set_key(Key(key), _text_body())
        status = 201 if entry.version == Version.initial() else 200
        return jsonify(entry.to_json()), status

    @app.delete("/api/v1/keys/<key>")
    def key_delete(key: str):
        _require_empty_body()
        driver.delete_key(Key(key))
        return "", 200

    @app.get("/api/v1/keys")
    def keys_get():
        _require_empty_body()
        return jsonify([k.value for k in driver.get_keys()])

    return app