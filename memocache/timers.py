"""One-shot, cancellable timers used to evict expired entries.

All timers in the process share a single daemon worker thread, which sleeps on a condition variable
until the earliest deadline in a heap. So the number of threads doesn't grow with the number of
cached keys, and timers keep working regardless of which thread (or event loop) scheduled them.
Being a daemon, the worker never keeps the interpreter alive at exit.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time

from typing import Any, Callable


logger = logging.getLogger(__name__)

class TimerHandle:
    """A handle to a scheduled callback, which can be cancelled until it fires."""
    def __init__(self, delay_ms: float, callback: Callable[[], Any]):
        self.delay_ms = delay_ms
        self.callback = callback
        self.fired = False
        self.cancelled = False
        self.deadline: float|None = None

    def __repr__(self) -> str:
        state = 'fired' if self.fired else 'cancelled' if self.cancelled else 'pending'
        return f'<TimerHandle {self.delay_ms}ms {state}>'

    @property
    def pending(self) -> bool:
        return not (self.fired or self.cancelled)

    def _run_callback(self) -> None:
        try:
            self.callback()
        except Exception:
            # there's no caller to propagate to from the scheduler thread
            logger.exception(f'Error in timer callback {self.callback}')

    def start(self) -> TimerHandle:
        """Schedules us on the shared scheduler."""
        SCHEDULER.add(self)
        return self

    def cancel(self) -> None:
        """Cancels this timer. Cancelling a fired or already-cancelled timer does nothing."""
        SCHEDULER.cancel(self)


class TimerScheduler:
    """Runs `TimerHandle` callbacks at their deadlines, from a single daemon thread.

    The thread is started lazily on the first `add()`, and restarted if it's gone (e.g. in a forked
    child). Handle state only changes under our lock: a handle is marked fired when it's popped, so
    a `cancel()` racing with the deadline either wins or is a no-op. Cancelled handles are dropped
    lazily, and the heap is compacted once they make up more than half of it.
    """
    def __init__(self, name: str = 'memocache-timers'):
        self.name = name
        self._heap: list[tuple[float, int, TimerHandle]] = []
        self._counter = itertools.count()
        self._n_cancelled = 0
        self._cond = threading.Condition()
        self._thread: threading.Thread|None = None

    def __len__(self) -> int:
        """Number of timers still waiting to fire."""
        with self._cond:
            return len(self._heap) - self._n_cancelled

    @property
    def thread(self) -> threading.Thread|None:
        return self._thread

    def add(self, handle: TimerHandle) -> None:
        with self._cond:
            handle.deadline = time.monotonic() + handle.delay_ms / 1000.0
            heapq.heappush(self._heap, (handle.deadline, next(self._counter), handle))
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
                self._thread.start()
            self._cond.notify()

    def cancel(self, handle: TimerHandle) -> None:
        with self._cond:
            if not handle.pending:
                return
            handle.cancelled = True
            if handle.deadline is None:  # never started
                return
            self._n_cancelled += 1
            if self._n_cancelled * 2 > len(self._heap):
                self._heap = [item for item in self._heap if item[2].pending]
                heapq.heapify(self._heap)
                self._n_cancelled = 0

    def _next_due(self) -> TimerHandle:
        """Blocks until a pending timer is due, then pops it, marks it fired and returns it."""
        with self._cond:
            while True:
                while self._heap and self._heap[0][2].cancelled:
                    heapq.heappop(self._heap)
                    self._n_cancelled -= 1
                if not self._heap:
                    self._cond.wait()
                    continue
                deadline, _, handle = self._heap[0]
                delay = deadline - time.monotonic()
                if delay > 0:
                    self._cond.wait(delay)
                    continue
                heapq.heappop(self._heap)
                handle.fired = True
                return handle

    def _run(self) -> None:
        while True:
            # callbacks run outside the lock, so they can schedule or cancel other timers
            self._next_due()._run_callback()


SCHEDULER = TimerScheduler()


def schedule(delay_ms: float, callback: Callable[[], Any]) -> TimerHandle:
    """Schedules `callback` to run once after `delay_ms` milliseconds, returning its handle."""
    return TimerHandle(delay_ms, callback).start()
