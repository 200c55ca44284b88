"""Single-consumer update channel.

Producers push catalog mutations; one consumer thread applies them in order
and recomputes the merged views. Mutations and view refreshes therefore never
interleave, whatever thread produced them.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

_STOP = object()


class UpdateChannel:
    """Serializes catalog mutations onto one consumer.

    Before ``start()`` (and after ``stop()``) updates run inline on the
    caller's thread, still one at a time. Updates submitted from the consumer
    thread itself also run inline so they cannot deadlock on their own queue.
    Updates queued while the consumer is shutting down are applied before it
    exits.
    """

    def __init__(self, name: str = "comfysync-catalog"):
        self.name = name
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._stopping = False
        # Guards _thread, _stopping and enqueueing
        self._lock = threading.Lock()
        self._inline_lock = threading.RLock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._stopping = False
            self._thread = threading.Thread(target=self._worker, name=self.name, daemon=True)
            self._thread.start()
        logger.debug("Update channel %s started", self.name)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Drain pending updates, then stop the consumer."""
        with self._lock:
            thread = self._thread
            if thread is None or self._stopping:
                return
            self._stopping = True
            self._queue.put(_STOP)
        if thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug("Update channel %s stopped", self.name)

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "Future[Any]":
        """Queue ``fn(*args, **kwargs)``; return a future for its result."""
        future: "Future[Any]" = Future()

        with self._lock:
            thread = self._thread
            inline = thread is None or thread is threading.current_thread()
            if not inline:
                self._queue.put((future, fn, args, kwargs))

        if inline:
            with self._inline_lock:
                self._run(future, fn, args, kwargs)
        return future

    def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``fn`` on the consumer and wait for its result."""
        return self.submit(fn, *args, **kwargs).result()

    @staticmethod
    def _run(
        future: "Future[Any]",
        fn: Callable[..., Any],
        args: Tuple[Any, ...],
        kwargs: dict,
    ) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                self._queue.task_done()
                break
            future, fn, args, kwargs = item
            try:
                with self._inline_lock:
                    self._run(future, fn, args, kwargs)
            finally:
                self._queue.task_done()

        # Held until leftovers are applied so later inline updates wait their turn
        with self._inline_lock:
            with self._lock:
                self._thread = None
                self._stopping = False
                leftovers: List[Any] = []
                while True:
                    try:
                        leftovers.append(self._queue.get_nowait())
                    except queue.Empty:
                        break
                    self._queue.task_done()
            for item in leftovers:
                if item is _STOP:
                    continue
                future, fn, args, kwargs = item
                self._run(future, fn, args, kwargs)
