from .constants import (
    MAX_AGE_LIMIT,
    NEVER,
    MemoizeError,
    ConfigurationError,
    NotMemoizedError,
    NotClearableError,
)
from .decorators import MemoizedMethod, MemoizedProperty, memoize_decorator
from .keyers import Keyer, TupleKeyer, StringKeyer, HashStringKeyer, first_argument
from .memoize import memoize, memoize_clear, memoize_with_options, is_memoized
from .options import MemoizeOptions
from .storage import CacheEntry, CacheStorage, MappingStorage, MemoryStorage, WeakKeyStorage

__all__ = [
    'MAX_AGE_LIMIT',
    'NEVER',
    'MemoizeError',
    'ConfigurationError',
    'NotMemoizedError',
    'NotClearableError',
    'MemoizedMethod',
    'MemoizedProperty',
    'memoize_decorator',
    'Keyer',
    'TupleKeyer',
    'StringKeyer',
    'HashStringKeyer',
    'first_argument',
    'memoize',
    'memoize_clear',
    'memoize_with_options',
    'is_memoized',
    'MemoizeOptions',
    'CacheEntry',
    'CacheStorage',
    'MappingStorage',
    'MemoryStorage',
    'WeakKeyStorage',
]
