"""Protocols for dependency injection in the bookmark store."""

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class BlobStoreProtocol(Protocol):
    """Protocol for the key-value blob store the bookmark state lives in."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default if there is none."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Replace the value stored under key."""
        ...


@runtime_checkable
class BatchBlobStoreProtocol(BlobStoreProtocol, Protocol):
    """Blob store that can replace several keys in one all-or-nothing write."""

    def set_many(self, values: Mapping[str, Any]) -> None:
        """Replace every key of values, or none of them if the write fails."""
        ...
