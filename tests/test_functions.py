"""Helper functions and classes used by the memoization tests."""

import random
import time


class CallCounter:
    """Wraps a function and counts how many times it actually runs."""
    def __init__(self, fn):
        self.fn = fn
        self.calls = 0
        self.__name__ = getattr(fn, '__name__', 'counter')

    def __call__(self, *args, **kwargs):
        self.calls += 1
        return self.fn(*args, **kwargs)


def make_counter():
    """Returns a function that returns an increasing integer on every call, ignoring its args."""
    index = 0
    def counter(*args, **kwargs):
        nonlocal index
        index += 1
        return index
    return counter


class ExpensiveClass:
    """A class with some expensive members to test method memoization."""
    def __init__(self, multiplier: int = 1):
        self.multiplier = multiplier
        self.calls = 0

    def expensive_method(self, x: int, y: int = 1) -> int:
        self.calls += 1
        time.sleep(0.01)  # Simulate expensive work
        return (x * y) * self.multiplier


def fibonacci(n: int) -> int:
    """Compute nth fibonacci number recursively (intentionally inefficient)."""
    if n <= 1:
        return n
    return fibonacci(n - 1) + fibonacci(n - 2)


def random_choice(items: list) -> str:
    """Return random item from list (to test cache consistency)."""
    return random.choice(items)


class Flaky:
    """Raises on the first `n_failures` calls, then returns the number of calls made."""
    def __init__(self, n_failures: int = 1):
        self.n_failures = n_failures
        self.calls = 0

    def __call__(self, x):
        self.calls += 1
        if self.calls <= self.n_failures:
            raise RuntimeError(f'failure {self.calls} for {x}')
        return self.calls
