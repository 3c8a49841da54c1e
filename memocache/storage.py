"""Storage backends for memoized results.

The engine only ever talks to storage through 5 methods:

- `has(key)`: whether an entry exists
- `get(key)`: the `CacheEntry` for `key`, or None
- `set(key, entry)`: store (overwriting) the entry for `key`
- `delete(key)`: remove `key`, silently ignoring missing keys
- `clear()`: optional, remove everything

Anything with these methods can be passed as the `cache` option, so you don't have to subclass
`CacheStorage`, but it's the easiest way to get it right. If you just want to use some existing
mapping (e.g. an LRU cache from `cachetools`), wrap it in a `MappingStorage`.
"""

from __future__ import annotations

import logging
import time
import weakref

from abc import ABC, abstractmethod
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Any, Generic, Iterator

from memocache.constants import KeyT, NEVER


logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class CacheEntry:
    """A single cached result, along with when it expires.

    `expires_at` is an epoch timestamp (as from `time.time()`), or `NEVER`.
    """
    data: Any
    expires_at: float = NEVER

    def is_expired(self, now: float|None = None) -> bool:
        """Whether our expiry time has passed.

        Note that the engine never checks this on reads; eviction is entirely driven by timers.
        """
        if now is None:
            now = time.time()
        return now >= self.expires_at


class CacheStorage(ABC, Generic[KeyT]):
    """Base class for storage backends."""
    @abstractmethod
    def has(self, key: KeyT) -> bool:
        """Returns whether there's an entry for `key`."""
        pass

    @abstractmethod
    def get(self, key: KeyT) -> CacheEntry|None:
        """Returns the entry for `key`, or None if there isn't one."""
        pass

    @abstractmethod
    def set(self, key: KeyT, entry: CacheEntry) -> None:
        """Stores `entry` under `key`, replacing any existing one."""
        pass

    @abstractmethod
    def delete(self, key: KeyT) -> None:
        """Deletes the entry for `key`. Deleting a missing key is not an error."""
        pass


class IdentityKey:
    """Wraps an unhashable key so it can be stored in a mapping, matching only the same object.

    The wrapped object is held strongly while its entry exists, so its `id()` can't be reused.
    """
    __slots__ = ('obj',)

    def __init__(self, obj: Any):
        self.obj = obj

    def __hash__(self) -> int:
        return id(self.obj)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, IdentityKey) and other.obj is self.obj

    def __repr__(self) -> str:
        return f'IdentityKey({self.obj!r})'


class MappingStorage(CacheStorage[KeyT]):
    """Storage on top of any mutable mapping.

    This is what lets you plug in things like `weakref.WeakKeyDictionary` or `cachetools.LRUCache`
    without writing a new backend.

    Hashable keys are matched by equality. Unhashable ones (lists, dicts, ...) are matched by
    identity instead, so calling with the same list object hits the cache, but an equal copy doesn't.
    """
    def __init__(self, mapping: MutableMapping|None = None):
        self._mapping: MutableMapping = {} if mapping is None else mapping

    def __len__(self) -> int:
        return len(self._mapping)

    def __repr__(self) -> str:
        return f'<{type(self).__name__} with {len(self)} entries>'

    def _map_key(self, key: KeyT) -> Any:
        """Returns the key to use in our mapping for `key`."""
        try:
            hash(key)
        except TypeError:
            return IdentityKey(key)
        return key

    def iter_keys(self) -> Iterator[KeyT]:
        """Iterate over all keys currently stored."""
        for key in list(self._mapping.keys()):
            yield key.obj if isinstance(key, IdentityKey) else key

    def has(self, key: KeyT) -> bool:
        return self._map_key(key) in self._mapping

    def get(self, key: KeyT) -> CacheEntry|None:
        return self._mapping.get(self._map_key(key))

    def set(self, key: KeyT, entry: CacheEntry) -> None:
        self._mapping[self._map_key(key)] = entry

    def delete(self, key: KeyT) -> None:
        # pop() rather than check-then-del, since timers can delete from another thread
        self._mapping.pop(self._map_key(key), None)

    def clear(self) -> None:
        """Removes all entries."""
        logger.debug(f'Clearing {len(self)} entries from {type(self).__name__}')
        self._mapping.clear()


class MemoryStorage(MappingStorage[KeyT]):
    """The default storage: a plain dict, matching keys by equality (or identity if unhashable)."""
    def __init__(self):
        super().__init__({})


class WeakKeyStorage(MappingStorage[KeyT]):
    """Storage whose entries disappear once their key object is garbage-collected.

    Useful when memoizing on objects (e.g. `memoize(fn)` where `fn` takes a model instance), so that
    the cache doesn't keep those objects alive. Keys must be weak-referenceable.
    """
    def __init__(self):
        super().__init__(weakref.WeakKeyDictionary())

    def _map_key(self, key: KeyT) -> Any:
        # an IdentityKey wrapper would be collected (and its entry dropped) right away
        return key


def is_clearable(storage: Any) -> bool:
    """Returns whether `storage` supports `clear()`."""
    return callable(getattr(storage, 'clear', None))
