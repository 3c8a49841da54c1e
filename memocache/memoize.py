"""The memoization engine.

A memoized function looks up its key in its storage, and only calls the original function on a miss.
Results are stored along with their expiry time, and if they do expire, a one-shot timer is
scheduled to delete them. Reads never check expiry themselves: an entry stays valid until its timer
actually removes it, even if that happens a little after `expires_at`.

Quick example:

    from memocache import memoize, memoize_clear

    @functools.partial(memoize, max_age=60_000)
    def lookup(user_id):
        ...

    lookup(5)  # computes
    lookup(5)  # cached for the next minute
    memoize_clear(lookup)
"""

from __future__ import annotations

import functools
import logging
import time

from typing import Any, Callable, TypeVar

from memocache.constants import NEVER, NotClearableError, NotMemoizedError
from memocache.keyers import Keyer, resolve_key
from memocache.options import MemoizeOptions
from memocache.registry import REGISTRY
from memocache.storage import CacheEntry, is_clearable
from memocache.timers import TimerHandle

F = TypeVar('F', bound=Callable[..., Any])

logger = logging.getLogger(__name__)

def memoize(fn: F,
            *,
            max_age: float|None = None,
            cache_key: Callable|Keyer|None = None,
            cache: Any = None,
            cache_factory: Callable[[], Any]|None = None) -> F:
    """Memoizes `fn`, returning a wrapper that caches results by key.

    Args:
    - fn: The function to memoize.
    - max_age: Milliseconds until each entry expires (default never). Must be between 0 and
      `MAX_AGE_LIMIT`; 0 returns `fn` itself, unmemoized.
    - cache_key: Maps the tuple of positional args to the cache key, or a `Keyer` which also sees
      kwargs. By default only the first positional argument is used (and kwargs are ignored).
    - cache: Storage to use, with `has/get/set/delete` and optionally `clear`. Defaults to a new
      `MemoryStorage`.
    - cache_factory: Alternative to `cache`, a zero-arg function returning the storage to use.

    Raises `ConfigurationError` for invalid options, before anything is wrapped.
    """
    options = MemoizeOptions(max_age=max_age, cache_key=cache_key, cache=cache, cache_factory=cache_factory)
    return memoize_with_options(fn, options)


def memoize_with_options(fn: F, options: MemoizeOptions) -> F:
    """Memoizes `fn` using already-validated `options`. See `memoize()`."""
    if options.passthrough:
        return fn
    storage = options.make_storage()
    cache_key = options.cache_key

    @functools.wraps(fn)
    def memoized(*args, **kwargs):
        key = resolve_key(cache_key, fn, args, kwargs)
        entry = storage.get(key)
        if entry is not None:
            return entry.data
        logger.debug(f'Cache miss for {_name(fn)} with key {key!r}')
        result = fn(*args, **kwargs)
        if options.expires:
            entry = CacheEntry(data=result, expires_at=time.time() + options.max_age_seconds)
        else:
            entry = CacheEntry(data=result, expires_at=NEVER)
        storage.set(key, entry)
        if options.expires:
            _schedule_eviction(fn, storage, key, entry, options.max_age)
        return result

    REGISTRY.register(memoized, fn, storage)
    return memoized


def _schedule_eviction(original: Callable, storage: Any, key: Any, entry: CacheEntry, delay_ms: float) -> TimerHandle:
    """Schedules deletion of `key` from `storage` after `delay_ms`.

    The timer is recorded under the `original` function so that `memoize_clear()` can cancel it. When
    it fires, it only deletes the key if it still holds the entry it was scheduled for, so a timer
    from an earlier (since replaced) entry can't evict a fresh one early.
    """
    def evict():
        REGISTRY.discard_timer(original, handle)
        current = storage.get(key)
        if current is entry:
            logger.debug(f'Evicting expired key {key!r} for {_name(original)}')
            storage.delete(key)

    handle = TimerHandle(delay_ms, evict)
    REGISTRY.add_timer(original, handle, storage)
    return handle.start()


def memoize_clear(fn: Callable) -> None:
    """Clears all cached data of a memoized function and cancels its pending expiry timers.

    `fn` can be either the memoized wrapper or the original function. The function stays memoized:
    the next call just recomputes and refills the cache.

    Raises:
    - NotMemoizedError: if `fn` was never memoized
    - NotClearableError: if its storage has no `clear()` method
    """
    storage = REGISTRY.storage_for(fn)
    if storage is None:
        raise NotMemoizedError(fn)
    if not is_clearable(storage):
        raise NotClearableError(storage)
    storage.clear()
    n = REGISTRY.cancel_timers(REGISTRY.original_for(fn), storage)
    logger.debug(f'Cleared cache for {_name(fn)}, cancelled {n} timers')


def is_memoized(fn: Callable) -> bool:
    """Returns whether `fn` is a memoized wrapper or a function that has been memoized."""
    return REGISTRY.storage_for(fn) is not None


def _name(fn: Callable) -> str:
    return getattr(fn, '__qualname__', None) or repr(fn)
