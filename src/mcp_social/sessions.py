"""Session store abstraction and identity variants.

Identity sessions (token -> username) and MCP connections (session id ->
connection) are both process-local caches. They sit behind ``SessionStore``
so a persistent or shared backend can replace ``MemorySessionStore``
without touching callers.
"""
from dataclasses import dataclass
from typing import Generic, Optional, Protocol, TypeVar, Union


T = TypeVar("T")


class SessionStore(Protocol[T]):
    """get / set / delete keyed by an opaque string."""

    def get(self, key: str) -> Optional[T]:
        ...

    def set(self, key: str, value: T) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemorySessionStore(Generic[T]):
    """Dict-backed store. No expiry, lost on restart."""

    def __init__(self):
        self._items: dict[str, T] = {}

    def get(self, key: str) -> Optional[T]:
        return self._items.get(key)

    def set(self, key: str, value: T) -> None:
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items


@dataclass(frozen=True)
class Credentialed:
    """Caller proved a password (directly or via a token minted at login)."""
    username: str


@dataclass(frozen=True)
class Anonymous:
    """Caller holds a self-chosen token bound to a passwordless profile."""
    username: str


Identity = Union[Credentialed, Anonymous]
