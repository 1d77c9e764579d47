"""High-level data types of the key/value store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

_I32_MAX = 2**31 - 1


class ModelError(Exception):
    """Raised when a value does not satisfy the model's invariants."""


@dataclass(frozen=True, order=True)
class Key:
    """A key of the key/value store."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Version:
    """A key's version number.

    Always non-negative and representable as a signed 32-bit integer, which is what
    the database backends store.
    """

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ModelError(f"Version must be an integer, got {self.value!r}")
        if not 0 <= self.value <= _I32_MAX:
            raise ModelError(
                "Version cannot be represented: "
                "out of range integral type conversion attempted"
            )

    @classmethod
    def initial(cls) -> Version:
        """Returns the version assigned to new keys."""
        return cls(1)

    def next(self) -> Version:
        """Returns the version that follows this one."""
        return Version(self.value + 1)

    @classmethod
    def from_i32(cls, version: int) -> Version:
        """Creates a version from a signed 32-bit value, rejecting negatives."""
        return cls(version)

    @classmethod
    def from_u32(cls, version: int) -> Version:
        """Creates a version from an unsigned 32-bit value that must fit in an i32."""
        return cls(version)

    @property
    def as_i32(self) -> int:
        """The version as a signed 32-bit integer."""
        return self.value


@dataclass(frozen=True)
class Entry:
    """The content stored under a key: its value and its version."""

    value: str
    version: Version

    def to_json(self) -> dict[str, Any]:
        """Returns the JSON-ready representation of the entry."""
        return {"value": self.value, "version": self.version.value}

    @classmethod
    def from_json(cls, data: Any) -> Entry:
        """Builds an entry from its JSON representation."""
        if not isinstance(data, dict):
            raise ModelError("Entry must be a JSON object")
        value = data.get("value")
        if not isinstance(value, str):
            raise ModelError("Entry field 'value' must be a string")
        if "version" not in data:
            raise ModelError("Entry field 'version' is missing")
        return cls(value, Version(data["version"]))