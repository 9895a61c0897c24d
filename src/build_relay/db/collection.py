"""Lazily loaded, write-through cache of one persisted collection."""

import copy
import threading
from typing import Any, Callable


class CollectionStore:
    """Base class for stores that keep a whole collection in memory.

    The collection is read from the backend once, on first use. Every
    mutation writes the whole collection back; the in-memory copy is only
    replaced once the write succeeded.
    """

    collection: str = ""

    def __init__(self, backend):
        self.backend = backend
        self._lock = threading.RLock()
        self._items: list | None = None

    def _decode(self, raw: Any) -> list:
        raise NotImplementedError

    def _encode(self, items: list) -> Any:
        raise NotImplementedError

    def _load(self) -> list:
        with self._lock:
            if self._items is None:
                raw = self.backend.load(self.collection)
                self._items = self._decode(raw) if raw else []
            return self._items

    def _commit(self, items: list) -> None:
        """Persist ``items`` and make them the cached collection."""
        with self._lock:
            self.backend.save(self.collection, self._encode(items))
            self._items = items

    def _mutate(self, fn: Callable[[list], Any]) -> Any:
        """Apply ``fn`` to a copy of the collection, then commit the copy."""
        with self._lock:
            items = copy.deepcopy(self._load())
            result = fn(items)
            self._commit(items)
            return result
