"""
In-process locks keyed by identifier.

Entries exist only while a thread holds or waits for the key, so the registry
does not grow with the number of documents ever seen.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, Hashable, Iterator


@dataclass
class _Entry:
    lock: Lock = field(default_factory=Lock)
    users: int = 0


class KeyedLocks:
    """
    A lock per key, created on first use and dropped after the last release.

    Thread Safety:
        The registry is guarded by its own lock. Callers taking more than one
        key must always take them in the same order.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._entries: Dict[Hashable, _Entry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
