"""Keyed work queue with per-key exclusivity and delayed re-adds."""

from __future__ import annotations

import heapq
import itertools
import time
from threading import Condition
from typing import Callable, Hashable, List, Optional, Set, Tuple


class WorkQueue:
    """Hand out keys to workers, never the same key to two workers at once.

    A key added while queued is de-duplicated; a key added while a worker is
    processing it is parked and queued again once :meth:`done` is called.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._cond = Condition()
        self._queue: List[Hashable] = []
        self._queued: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._dirty: Set[Hashable] = set()
        self._delayed: List[Tuple[float, int, Hashable]] = []
        self._seq = itertools.count()
        self._shutdown = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def add(self, key: Hashable) -> None:
        with self._cond:
            self._add_locked(key)

    def _add_locked(self, key: Hashable) -> None:
        if self._shutdown:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.append(key)
        self._cond.notify()

    def add_after(self, key: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            heapq.heappush(self._delayed, (self._clock() + delay, next(self._seq), key))
            self._cond.notify()

    def _promote_due_locked(self) -> Optional[float]:
        """Move due delayed keys into the queue; return seconds to the next one."""

        now = self._clock()
        while self._delayed and self._delayed[0][0] <= now:
            _, _, key = heapq.heappop(self._delayed)
            self._add_locked(key)
        if self._delayed:
            return self._delayed[0][0] - now
        return None

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """Return the next key, or ``None`` on timeout or shutdown."""

        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                if self._shutdown:
                    return None
                next_due = self._promote_due_locked()
                if self._queue:
                    key = self._queue.pop(0)
                    self._queued.discard(key)
                    self._processing.add(key)
                    return key
                wait = next_due
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: Hashable) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._dirty.discard(key)
                self._add_locked(key)

    def shutdown(self) -> None:
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()
