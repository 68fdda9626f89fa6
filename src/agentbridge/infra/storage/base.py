"""Key/value storage primitives: abstract backend and exceptions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class StorageError(Exception):
    """Raised when a backend cannot read or write a value."""


class KeyValueStorage(ABC):
    """Interface for JSON-serializable key/value persistence backends."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value stored under *key*, or ``None`` when absent.

        Raises:
            StorageError: when the backend cannot be read or the stored
                value is not valid JSON.
        """

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store the JSON-serializable *value* under *key*.

        Raises:
            StorageError: when the backend cannot be written.
        """

    @abstractmethod
    async def aclose(self) -> None:
        """Release any resources held by the backend."""
