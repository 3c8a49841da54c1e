from __future__ import annotations

import math

from typing import TypeVar

# type for cache keys
KeyT = TypeVar('KeyT')

# type for hash function outputs
HashT = TypeVar('HashT', str, bytes, int)

# largest delay (in ms) a timer accepts, i.e. a signed 32-bit int
MAX_AGE_LIMIT = 2_147_483_647

# expiry timestamp for entries that never expire
NEVER = math.inf


class MemoizeError(Exception):
    """Base class for all errors raised by memocache itself."""
    pass


class ConfigurationError(MemoizeError, ValueError):
    """Raised when memoization options are invalid or the decorated member can't be memoized."""
    pass


class NotMemoizedError(MemoizeError, TypeError):
    """Raised when clearing a function that was never memoized."""
    def __init__(self, fn):
        super().__init__("Can't clear a function that was not memoized!")
        self.fn = fn


class NotClearableError(MemoizeError, TypeError):
    """Raised when the storage backing a memoized function has no `clear()`."""
    def __init__(self, storage):
        super().__init__(f"The cache storage {type(storage).__name__} can't be cleared!")
        self.storage = storage
