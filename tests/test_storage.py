"""Tests out memocache.storage and memocache.keyers"""

from __future__ import annotations

import gc
import time

from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import numpy as np
import pytest

from memocache.constants import NEVER
from memocache.keyers import (
    HashStringKeyer, StringKeyer, TupleKeyer, first_argument, resolve_key
)
from memocache.storage import (
    CacheEntry, CacheStorage, MappingStorage, MemoryStorage, WeakKeyStorage, is_clearable
)


class BaseStorageTests(ABC):
    """Base test class for all storages."""

    @pytest.fixture
    @abstractmethod
    def storage(self):
        """Default storage fixture that should be overridden by subclasses."""
        raise NotImplementedError("Subclasses must provide a storage fixture")

    @pytest.fixture
    def key(self):
        return 'key1'

    def test_basic_get_set(self, storage: CacheStorage, key):
        entry = CacheEntry('value1')
        storage.set(key, entry)
        assert storage.has(key)
        assert storage.get(key) is entry

        # Test overwrite
        storage.set(key, CacheEntry('value2'))
        assert storage.get(key).data == 'value2'

    def test_missing(self, storage: CacheStorage, key):
        assert not storage.has(key)
        assert storage.get(key) is None

    def test_delete(self, storage: CacheStorage, key):
        storage.set(key, CacheEntry('value1'))
        storage.delete(key)
        assert not storage.has(key)
        assert storage.get(key) is None

        # Delete nonexistent key should not raise
        storage.delete(key)

    def test_clear(self, storage: CacheStorage, key):
        storage.set(key, CacheEntry('value1'))
        assert is_clearable(storage)
        storage.clear()
        assert not storage.has(key)
        assert len(storage) == 0


class TestMemoryStorage(BaseStorageTests):
    @pytest.fixture
    def storage(self):
        return MemoryStorage()

    def test_equal_keys_match(self, storage):
        """Keys are matched by equality, not identity."""
        storage.set((1, 'a'), CacheEntry('v'))
        assert storage.get((1, 'a')).data == 'v'

    def test_iter_keys(self, storage):
        storage.set('a', CacheEntry(1))
        storage.set('b', CacheEntry(2))
        assert sorted(storage.iter_keys()) == ['a', 'b']

    def test_new_instance_empty(self, storage):
        storage.set('a', CacheEntry(1))
        assert not MemoryStorage().has('a')

    def test_unhashable_keys_by_identity(self, storage):
        """Unhashable keys only match the very same object."""
        key = [1, 2]
        storage.set(key, CacheEntry('v'))
        assert storage.has(key)
        assert storage.get(key).data == 'v'
        assert not storage.has([1, 2])
        assert list(storage.iter_keys()) == [key]
        storage.delete(key)
        assert len(storage) == 0


class Token:
    """A weak-referenceable key."""
    pass


class TestWeakKeyStorage(BaseStorageTests):
    @pytest.fixture
    def storage(self):
        return WeakKeyStorage()

    @pytest.fixture
    def key(self):
        return Token()

    def test_entries_dropped_with_key(self, storage):
        k = Token()
        storage.set(k, CacheEntry('v'))
        assert len(storage) == 1
        del k
        gc.collect()
        assert len(storage) == 0


class TestMappingStorage(BaseStorageTests):
    @pytest.fixture
    def storage(self):
        return MappingStorage(OrderedDict())

    def test_uses_given_mapping(self):
        mapping = {}
        storage = MappingStorage(mapping)
        storage.set('a', CacheEntry(1))
        assert mapping == {'a': CacheEntry(1)}


def test_cache_entry_expiry():
    now = time.time()
    assert not CacheEntry(1).is_expired()
    assert CacheEntry(1).expires_at == NEVER
    assert CacheEntry(1, expires_at=now - 1).is_expired()
    assert not CacheEntry(1, expires_at=now + 60).is_expired()
    assert CacheEntry(1, expires_at=now).is_expired(now=now + 1)

def test_is_clearable():
    class NoClear:
        pass

    class NotCallable:
        clear = None

    assert is_clearable(MemoryStorage())
    assert not is_clearable(NoClear())
    assert not is_clearable(NotCallable())


# Keyer Tests
def test_first_argument():
    assert first_argument((1, 2)) == 1
    assert first_argument(()) is None

def test_resolve_key():
    def fn(*args, **kwargs):
        pass

    assert resolve_key(None, fn, ('a', 'b'), {'c': 1}) == 'a'
    assert resolve_key(lambda args: args[1], fn, ('a', 'b'), {}) == 'b'
    assert resolve_key(TupleKeyer(), fn, ('a',), {}) == TupleKeyer().make_key(fn, ('a',), {})

def test_tuple_keyer_basic():
    keyer = TupleKeyer()
    key = keyer.make_key(None, (1, "test"), {"x": 2})
    assert isinstance(key, tuple)
    assert key == ('', '1', '"test"', '{"x": 2}')

def test_tuple_keyer_includes_function():
    def some_function():
        pass

    keyer = TupleKeyer()
    key = keyer.make_key(some_function, (1,), {})
    assert 'some_function' in key[0]
    assert key != keyer.make_key(None, (1,), {})

def test_tuple_keyer_kwargs_order():
    """Kwargs order doesn't affect the key."""
    keyer = TupleKeyer()
    assert keyer.make_key(None, (), {'a': 1, 'b': 2}) == keyer.make_key(None, (), {'b': 2, 'a': 1})

def test_tuple_keyer_nested_structural():
    """Things json can't encode are converted structurally."""
    keyer = TupleKeyer()
    obj = object()
    key = keyer.make_key(None, ([1, obj], {'a': obj}, {obj}), {})
    assert isinstance(key[1], tuple)
    assert isinstance(key[2], frozenset)
    assert isinstance(key[3], frozenset)
    hash(key)

def test_tuple_keyer_special_types():
    """numpy arrays, dataclasses, datetimes and enums are all keyable."""
    @dataclass
    class Point:
        x: int
        y: int

    class Color(Enum):
        RED = 'red'

    keyer = TupleKeyer()
    args = (np.array([1, 2, 3]), Point(1, 2), datetime(2024, 1, 2), Color.RED, {3, 1, 2}, np.float32(1.5))
    key = keyer.make_key(None, args, {})
    assert key[1:-1] == ('[1, 2, 3]', '{"x": 1, "y": 2}', '"2024-01-02T00:00:00"', '"red"', '[1, 2, 3]', '1.5')
    assert key == keyer.make_key(None, (np.array([1, 2, 3]),) + args[1:], {})

def test_tuple_keyer_hash_collisions():
    """Distinct objects with the same hash don't share a key."""
    class SameHash:
        def __hash__(self):
            return 42

    keyer = TupleKeyer()
    a, b = SameHash(), SameHash()
    assert keyer.make_key(None, (a,), {}) != keyer.make_key(None, (b,), {})
    assert keyer.make_key(None, (a,), {}) == keyer.make_key(None, (a,), {})

def test_tuple_keyer_unhashable():
    class UnhashableObject:
        def __hash__(self):
            raise TypeError("unhashable")

    keyer = TupleKeyer()
    with pytest.raises(TypeError):
        keyer.make_key(None, (UnhashableObject(),), {})

def test_string_keyer():
    keyer = StringKeyer()
    key1 = keyer.make_key(None, (1, "test"), {"y": 'a', "x": 2})
    key2 = keyer.make_key(None, (1, "test"), {"x": 2, "y": 'a'})
    assert isinstance(key1, str)
    assert key1 == key2

def test_hash_string_keyer_builtin():
    keyer = HashStringKeyer('sha256')
    key = keyer.make_key(None, (1, "test"), {"x": 2})
    assert isinstance(key, str)
    assert len(key) == 64  # sha256 hex digest length

def test_hash_string_keyer_custom():
    keyer = HashStringKeyer(lambda s: 'hash_' + s)
    key = keyer.make_key(None, (1,), {})
    assert key.startswith('hash_')

def test_hash_keyer_invalid_algorithm():
    with pytest.raises(ValueError):
        HashStringKeyer('invalid_algorithm')
