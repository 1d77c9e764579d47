"""Versioned key/value REST service on SQLite, and IP-to-country geolocators."""

__version__ = "0.1.0"