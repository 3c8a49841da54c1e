"""Decorators to memoize methods and properties on a per-instance basis.

    class Example:
        def __init__(self):
            self.index = 0

        @memoize_decorator()
        def counter(self, x):
            self.index += 1
            return self.index

        @memoize_decorator()
        @property
        def expensive(self):
            ...

Every instance gets its own memoized wrapper (or, for properties, its own frozen value), kept in a
side table on the descriptor that only holds weak references to instances. Nothing is written onto
the instances themselves.
"""

from __future__ import annotations

import functools
import logging
import weakref

from typing import Any, Callable

from memocache.constants import ConfigurationError
from memocache.keyers import Keyer
from memocache.memoize import memoize_with_options
from memocache.options import MemoizeOptions
from memocache.registry import IdentityWeakMap


logger = logging.getLogger(__name__)

_MISSING = object()

def _weakref_to(receiver: Any) -> weakref.ref:
    """Returns a weak reference to `receiver`, or raises a TypeError explaining why we need one."""
    try:
        return weakref.ref(receiver)
    except TypeError:
        raise TypeError(f'Memoized members need weak-referenceable instances, but '
                        f'{type(receiver).__name__} is not (add "__weakref__" to its __slots__)') from None


class MemoizedMethod:
    """Descriptor that lazily creates one memoized wrapper per receiver.

    The receiver is the instance for regular methods, and the class for classmethods (so each
    subclass gets its own cache). Accessing the attribute on an instance returns that instance's
    wrapper, so `memoize_clear(obj.method)` clears just that instance's cache.
    """
    def __init__(self, func: Callable, options: MemoizeOptions, *, on_class: bool = False):
        self.func = func
        self.options = options
        self.on_class = on_class
        self.name = getattr(func, '__name__', type(func).__name__)
        self._wrappers = IdentityWeakMap()
        functools.update_wrapper(self, func)

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f'<{type(self).__name__} {getattr(self, "__qualname__", self.name)}>'

    def __get__(self, instance: Any, owner: type|None = None) -> Any:
        if self.on_class:
            receiver = owner if owner is not None else type(instance)
        elif instance is None:
            return self
        else:
            receiver = instance
        wrapper = self._wrappers.get(receiver)
        if wrapper is None:
            wrapper = memoize_with_options(self._bind(receiver), self.options)
            self._wrappers.set(receiver, wrapper)
        return wrapper

    def _bind(self, receiver: Any) -> Callable:
        """Binds our function to `receiver` without keeping a strong reference to it.

        The per-receiver wrapper is stored in a table keyed weakly by the receiver; if the wrapper
        held the receiver strongly, those entries could never go away.
        """
        ref = _weakref_to(receiver)
        func = self.func
        # callables that aren't descriptors (e.g. a `functools.partial`) are called without the receiver,
        # just as plain attribute access would
        binds = hasattr(type(func), '__get__')

        @functools.wraps(func)
        def bound(*args, **kwargs):
            obj = ref()
            if obj is None:
                raise ReferenceError(f'The instance {self.name}() was bound to no longer exists')
            if binds:
                return func.__get__(obj, type(obj))(*args, **kwargs)
            return func(*args, **kwargs)

        return bound


class MemoizedProperty:
    """A read-only property computed at most once per instance.

    Getters have no arguments to key on, so memoization options like `max_age` don't apply: the
    first read computes the value and it's returned for the rest of the instance's lifetime. Use
    `del obj.attr` to forget it and recompute on the next read.
    """
    def __init__(self, fget: Callable[[Any], Any], doc: str|None = None):
        self.fget = fget
        self.name = fget.__name__
        self._values = IdentityWeakMap()
        self.__doc__ = doc if doc is not None else fget.__doc__

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type|None = None) -> Any:
        if instance is None:
            return self
        value = self._values.get(instance, _MISSING)
        if value is not _MISSING:
            return value
        _weakref_to(instance)
        value = self.fget(instance)
        self._values.set(instance, value)
        return value

    def __set__(self, instance: Any, value: Any) -> None:
        raise AttributeError(f"can't set memoized attribute '{self.name}'")

    def __delete__(self, instance: Any) -> None:
        self._values.pop(instance)


def memoize_decorator(*,
                      max_age: float|None = None,
                      cache_key: Callable|Keyer|None = None,
                      cache: Any = None,
                      cache_factory: Callable[[], Any]|None = None) -> Callable:
    """Returns a decorator that memoizes methods, classmethods, staticmethods or properties.

    The options are the same as for `memoize()` and are validated right away. Note that a `cache`
    passed here is shared by all instances (and hence so are its entries); pass a `cache_factory`
    instead to get a separate storage per instance.

    Any callable is accepted as a method: functions (and other descriptors) are bound to the
    instance, while other callables like a `functools.partial` are called without it. Either way
    each instance gets its own cache.

    Raises `ConfigurationError` if the decorated member is not callable or a property getter.
    """
    options = MemoizeOptions(max_age=max_age, cache_key=cache_key, cache=cache, cache_factory=cache_factory)

    def decorator(target: Any) -> Any:
        if isinstance(target, property):
            if target.fget is None:
                raise ConfigurationError('The decorated property has no getter')
            if target.fset is not None:
                logger.warning(f'Ignoring setter of memoized property {target.fget.__qualname__}')
            return MemoizedProperty(target.fget, doc=target.__doc__)
        if options.passthrough and isinstance(target, (staticmethod, classmethod)):
            return target
        if isinstance(target, staticmethod):
            return staticmethod(memoize_with_options(target.__func__, options))
        if isinstance(target, classmethod):
            return MemoizedMethod(target.__func__, options, on_class=True)
        if callable(target):
            if options.passthrough:
                return target
            return MemoizedMethod(target, options)
        raise ConfigurationError('The decorated value must be a function or a getter')

    return decorator
