"""Configuration for memoization, validated once up front."""

from __future__ import annotations

import math

from dataclasses import dataclass
from numbers import Real
from typing import Any, Callable

from memocache.constants import ConfigurationError, MAX_AGE_LIMIT
from memocache.keyers import Keyer
from memocache.storage import MemoryStorage


@dataclass(frozen=True)
class MemoizeOptions:
    """Options shared by `memoize()` and `memoize_decorator()`.

    - max_age: Milliseconds until a cached entry expires. None (or `math.inf`) means never. 0 means
      don't memoize at all (the original function is returned as-is).
    - cache_key: Either a function mapping the tuple of positional args to a key, or a `Keyer`.
      Defaults to using just the first positional argument.
    - cache: The storage to use. Defaults to a new `MemoryStorage` per memoized function.
    - cache_factory: Zero-arg callable returning a new storage, called once per memoized function.
      Mostly useful with the decorator, where a single `cache` would be shared by all instances.
    """
    max_age: float|None = None
    cache_key: Callable[[tuple], Any]|Keyer|None = None
    cache: Any = None
    cache_factory: Callable[[], Any]|None = None

    def __post_init__(self):
        max_age = self.max_age
        if max_age is not None:
            if isinstance(max_age, bool) or not isinstance(max_age, Real):
                raise ConfigurationError(f'The `max_age` option must be a number, not {max_age!r}.')
            if math.isnan(max_age):
                raise ConfigurationError('The `max_age` option cannot be NaN.')
            if max_age < 0:
                raise ConfigurationError('The `max_age` option should not be a negative number.')
            if max_age > MAX_AGE_LIMIT and max_age != math.inf:
                raise ConfigurationError(f'The `max_age` option cannot exceed {MAX_AGE_LIMIT}.')
        if self.cache_key is not None and not (isinstance(self.cache_key, Keyer) or callable(self.cache_key)):
            raise ConfigurationError('The `cache_key` option must be callable or a Keyer.')
        if self.cache is not None and self.cache_factory is not None:
            raise ConfigurationError('Only one of `cache` and `cache_factory` can be given.')
        if self.cache_factory is not None and not callable(self.cache_factory):
            raise ConfigurationError('The `cache_factory` option must be callable.')

    @property
    def passthrough(self) -> bool:
        """Whether these options disable memoization entirely."""
        return self.max_age == 0

    @property
    def expires(self) -> bool:
        """Whether entries expire (and hence need eviction timers)."""
        return self.max_age is not None and 0 < self.max_age < math.inf

    @property
    def max_age_seconds(self) -> float:
        return math.inf if not self.expires else self.max_age / 1000.0

    def make_storage(self) -> Any:
        """Returns the storage to use for a newly memoized function."""
        if self.cache is not None:
            return self.cache
        if self.cache_factory is not None:
            return self.cache_factory()
        return MemoryStorage()
