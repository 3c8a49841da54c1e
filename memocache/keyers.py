"""Ways of turning a call's arguments into a cache key.

By default, only the first positional argument is used as the key, which is what most call sites
actually vary over. If you need more, pass a `cache_key` function (which gets the tuple of positional
args), or one of the `Keyer` subclasses here, which see the function, args and kwargs.
"""

from __future__ import annotations

import hashlib
import json

from abc import ABC, abstractmethod
from collections import defaultdict, Counter
from dataclasses import is_dataclass, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Generic

import numpy as np

from memocache.constants import KeyT, HashT


def first_argument(args: tuple) -> Any:
    """The default key: the first positional argument, or None if there are none."""
    return args[0] if args else None


class KeyEncoder(json.JSONEncoder):
    """A JSON encoder that can handle the common non-json-able types found in arguments.

    Currently:
    - datetime/date: isoformat
    - numpy.ndarray: converts to list (and numpy scalars to python scalars)
    - dataclasses: converts to dict using `asdict()`
    - defaultdict/Counter: converts to a regular dict
    - set/frozenset: converts to a sorted list
    - Enum: converts to its value
    """
    def default(self, obj):
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        elif isinstance(obj, np.ndarray):
            return obj.tolist()
        elif isinstance(obj, np.generic):
            return obj.item()
        elif is_dataclass(obj) and not isinstance(obj, type):
            return asdict(obj)
        elif isinstance(obj, (defaultdict, Counter)):
            return dict(obj)
        elif isinstance(obj, (set, frozenset)):
            return sorted(obj)
        elif isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class Keyer(ABC, Generic[KeyT]):
    """Base class for converting function arguments into cache keys."""
    @abstractmethod
    def make_key(self, fn: Callable|None, args: tuple, kwargs: dict) -> KeyT:
        """Convert function arguments into a cache key.

        Args:
            fn: Function being cached, or None
            args: Tuple of positional arguments
            kwargs: Dict of keyword arguments

        Returns:
            A hashable key suitable for the cache storage
        """
        pass


class TupleKeyer(Keyer[tuple]):
    """Converts function arguments into an immutable tuple-based key.

    Each argument is JSON-encoded (with sorted keys) if possible, otherwise converted structurally:
    - lists/tuples → tuples
    - sets → frozensets
    - dicts → frozenset of items
    - other hashable objects → themselves (so only equal objects share a key)

    The final key is a tuple of:
    (function_name, converted_args..., converted_kwargs)

    The function name is included so that a single storage can be shared between several memoized
    functions without collisions.
    """
    def make_key(self, fn: Callable|None, args: tuple, kwargs: dict) -> tuple:
        fn_key = getattr(fn, '__qualname__', repr(fn)) if fn is not None else ''
        kw_items = self._make_hashable(kwargs)
        return (fn_key,) + tuple(self._make_hashable(arg) for arg in args) + (kw_items,)

    def _make_hashable(self, obj: Any) -> Any:
        """Convert an object into a hashable form, preferring its json encoding."""
        try:
            return json.dumps(obj, sort_keys=True, cls=KeyEncoder, ensure_ascii=False)
        except (TypeError, ValueError):
            return self._make_hashable_structural(obj)

    def _make_hashable_structural(self, obj: Any) -> Any:
        """Recursively convert an object into a hashable form."""
        # Already hashable types
        if isinstance(obj, (str, int, float, bool, type(None))):
            return obj
        if isinstance(obj, (list, tuple)):
            return tuple(self._make_hashable(x) for x in obj)
        if isinstance(obj, dict):
            return frozenset(
                (str(k), self._make_hashable(v))
                for k, v in sorted(obj.items(), key=lambda x: str(self._make_hashable(x[0])))
            )
        if isinstance(obj, (set, frozenset)):
            return frozenset(self._make_hashable(x) for x in obj)
        hash(obj)  # unhashable objects raise TypeError here
        return obj


class StringKeyer(Keyer[str]):
    """Converts function arguments into a string key, via `TupleKeyer`."""
    def __init__(self):
        self._tuple_maker = TupleKeyer()

    def make_key(self, fn: Callable|None, args: tuple, kwargs: dict) -> str:
        return str(self._tuple_maker.make_key(fn, args, kwargs))


class HashStringKeyer(Keyer[str]):
    """Hashes the `StringKeyer` key down to a fixed-length hex digest.

    The input `hash_func` should be either:
    - A string naming a `hashlib` algorithm (e.g. 'sha256', 'md5')
    - A callable that takes a string and returns the hash (converted to str)
    """
    def __init__(self, hash_func: str | Callable[[str], HashT] = 'sha256'):
        self._string_maker = StringKeyer()
        if isinstance(hash_func, str):
            if not hasattr(hashlib, hash_func):
                raise ValueError(f"Hash algorithm '{hash_func}' not found in hashlib")
            self._hash_func = lambda s: getattr(hashlib, hash_func)(s.encode('utf-8')).hexdigest()
        else:
            self._hash_func = lambda s: str(hash_func(s))

    def make_key(self, fn: Callable|None, args: tuple, kwargs: dict) -> str:
        return self._hash_func(self._string_maker.make_key(fn, args, kwargs))


def resolve_key(cache_key: Callable|Keyer|None, fn: Callable, args: tuple, kwargs: dict) -> Any:
    """Computes the key for a call to `fn`, using whichever form of `cache_key` was configured."""
    if cache_key is None:
        return first_argument(args)
    if isinstance(cache_key, Keyer):
        return cache_key.make_key(fn, args, kwargs)
    return cache_key(args)
