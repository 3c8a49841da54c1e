"""Process-wide bookkeeping for memoized functions.

For every memoized function we remember which storage backs it and which expiry timers are still
pending, so that `memoize_clear()` can find them later. All of this is kept in identity-keyed side
tables that only hold weak references to their keys, so registering a function never keeps it alive.
"""

from __future__ import annotations

import logging
import threading
import weakref

from typing import Any, Callable, Iterator

from memocache.timers import TimerHandle


logger = logging.getLogger(__name__)

class _StrongRef:
    """Stand-in for `weakref.ref` for objects that don't support weak references."""
    __slots__ = ('obj',)

    def __init__(self, obj: Any):
        self.obj = obj

    def __call__(self) -> Any:
        return self.obj


class IdentityWeakMap:
    """A mapping keyed by object identity that doesn't keep its keys alive.

    Unlike `weakref.WeakKeyDictionary`, keys are compared with `is` rather than `==`, so they don't
    need to be hashable, and two equal-but-distinct objects get separate entries. Entries are
    dropped as soon as their key is garbage-collected.

    Objects that can't be weakly referenced (e.g. instances of classes with `__slots__` and no
    `__weakref__`) are held strongly instead.
    """
    def __init__(self):
        self._data: dict[int, tuple[Callable[[], Any], Any]] = {}

    def _make_ref(self, obj: Any) -> Callable[[], Any]:
        oid = id(obj)
        selfref = weakref.ref(self)

        def _remove(_ref, oid=oid):
            me = selfref()
            if me is not None:
                entry = me._data.get(oid)
                if entry is not None and entry[0] is _ref:
                    del me._data[oid]

        try:
            return weakref.ref(obj, _remove)
        except TypeError:
            logger.debug(f'{type(obj).__name__} does not support weak references, holding it strongly')
            return _StrongRef(obj)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, obj: Any) -> bool:
        entry = self._data.get(id(obj))
        return entry is not None and entry[0]() is obj

    def __iter__(self) -> Iterator[Any]:
        for ref, _ in list(self._data.values()):
            obj = ref()
            if obj is not None:
                yield obj

    def get(self, obj: Any, default: Any = None) -> Any:
        entry = self._data.get(id(obj))
        if entry is None or entry[0]() is not obj:
            return default
        return entry[1]

    def set(self, obj: Any, value: Any) -> None:
        entry = self._data.get(id(obj))
        if entry is not None and entry[0]() is obj:
            self._data[id(obj)] = (entry[0], value)
        else:
            self._data[id(obj)] = (self._make_ref(obj), value)

    def setdefault(self, obj: Any, default: Any) -> Any:
        if obj in self:
            return self.get(obj)
        self.set(obj, default)
        return default

    def pop(self, obj: Any, default: Any = None) -> Any:
        if obj not in self:
            return default
        return self._data.pop(id(obj))[1]


class WrapperRegistry:
    """Associates memoized functions with their storage and their pending expiry timers.

    Storage is registered under both the wrapper and the original function, so either can be passed
    to `memoize_clear()`. Timers are recorded under the original function, together with the storage
    they evict from.
    """
    def __init__(self):
        self._storages = IdentityWeakMap()
        self._originals = IdentityWeakMap()
        self._timers = IdentityWeakMap()
        # timer threads add and discard concurrently with the caller's thread
        self._timer_lock = threading.Lock()

    def register(self, wrapper: Callable, original: Callable, storage: Any) -> None:
        """Records that `wrapper` memoizes `original` using `storage`."""
        self._storages.set(wrapper, storage)
        self._storages.set(original, storage)
        self._originals.set(wrapper, original)

    def storage_for(self, fn: Callable) -> Any:
        """Returns the storage registered for `fn` (wrapper or original), or None."""
        return self._storages.get(fn)

    def original_for(self, fn: Callable) -> Callable:
        """Returns the original function for wrapper `fn`, or `fn` itself if it isn't a wrapper."""
        return self._originals.get(fn, fn)

    def add_timer(self, original: Callable, handle: TimerHandle, storage: Any) -> None:
        with self._timer_lock:
            timers = self._timers.setdefault(original, {})
            timers[handle] = storage

    def discard_timer(self, original: Callable, handle: TimerHandle) -> None:
        with self._timer_lock:
            timers = self._timers.get(original)
            if timers is not None:
                timers.pop(handle, None)

    def pending_timers(self, original: Callable) -> list[TimerHandle]:
        """Returns the timers recorded for `original` that haven't fired or been cancelled yet."""
        with self._timer_lock:
            timers = self._timers.get(original) or {}
            return [handle for handle in timers if handle.pending]

    def cancel_timers(self, original: Callable, storage: Any = None) -> int:
        """Cancels and forgets pending timers for `original`, returning how many were cancelled.

        If `storage` is given, only timers evicting from that storage are touched.
        """
        with self._timer_lock:
            timers = self._timers.get(original)
            if not timers:
                return 0
            to_cancel = [h for h, s in timers.items() if storage is None or s is storage]
            for handle in to_cancel:
                del timers[handle]
        n = 0
        for handle in to_cancel:
            if handle.pending:
                handle.cancel()
                n += 1
        return n


REGISTRY = WrapperRegistry()
