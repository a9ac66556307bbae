"""Bounded-concurrency executor shared by every bulk command.

Producers push items into a bounded queue (blocking when it is full) and a fixed
number of worker threads pull from it until the pool is closed and drained.
The first handler error is kept; in fail mode it also stops the pool early:
``submit`` starts returning False and queued items that have not started are
dropped, while handlers already running finish normally.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Generic, Iterable, TypeVar


logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 32
DEFAULT_QUEUE_SIZE = 1000
T = TypeVar("T")

_CLOSE = object()


class WorkerPool(Generic[T]):
    def __init__(
        self,
        handler: Callable[[T], None],
        *,
        size: int = DEFAULT_POOL_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        ignore_errors: bool = False,
        on_error: Callable[[T, Exception], None] | None = None,
        name: str = "s3knife-worker",
    ) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self._handler = handler
        self._size = size
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, queue_size))
        self._ignore_errors = ignore_errors
        self._on_error = on_error
        self._name = name
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._closed = False
        self._first_error: Exception | None = None
        self._error_count = 0
        self._completed = 0
        self._dropped = 0

    @property
    def first_error(self) -> Exception | None:
        with self._lock:
            return self._first_error

    @property
    def error_count(self) -> int:
        with self._lock:
            return self._error_count

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def dropped(self) -> int:
        with self._lock:
            return self._dropped

    @property
    def ok(self) -> bool:
        """True unless a handler failed while errors were not being ignored."""
        with self._lock:
            return self._ignore_errors or self._error_count == 0

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def start(self) -> WorkerPool[T]:
        for index in range(self._size):
            thread = threading.Thread(
                target=self._work,
                name=f"{self._name}-{index}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.debug("started %d %s thread(s)", self._size, self._name)
        return self

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            if item is _CLOSE:
                return
            if self._stop.is_set():
                with self._lock:
                    self._dropped += 1
                continue
            try:
                self._handler(item)
            except Exception as exc:
                self._fail(item, exc)
            else:
                with self._lock:
                    self._completed += 1

    def _fail(self, item: T, exc: Exception) -> None:
        with self._lock:
            self._error_count += 1
            if self._first_error is None:
                self._first_error = exc
        logger.debug("%s: handler failed for %r: %r", self._name, item, exc)
        if self._on_error is not None:
            self._on_error(item, exc)
        if not self._ignore_errors:
            self._stop.set()

    def stop(self) -> None:
        self._stop.set()

    def submit(self, item: T) -> bool:
        """Queue ``item``, blocking while the queue is full.

        Returns False once the pool is stopping; the caller should stop producing.
        """
        if self._closed:
            raise RuntimeError("pool is closed")
        while not self._stop.is_set():
            try:
                self._queue.put(item, timeout=0.1)
                return True
            except queue.Full:
                continue
        return False

    def submit_all(self, items: Iterable[T]) -> bool:
        """Submit until ``items`` is exhausted or the pool stops; True if all went in."""
        for item in items:
            if not self.submit(item):
                return False
        return True

    def join(self) -> None:
        """Close the queue, let workers drain it and wait for them."""
        if self._closed:
            return
        self._closed = True
        for _ in self._threads:
            self._queue.put(_CLOSE)
        for thread in self._threads:
            thread.join()
        logger.debug(
            "%s finished: %d done, %d failed, %d dropped",
            self._name,
            self._completed,
            self._error_count,
            self._dropped,
        )

    def __enter__(self) -> WorkerPool[T]:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._stop.set()
        self.join()
