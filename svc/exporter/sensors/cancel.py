# exporter/sensors/cancel.py
from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional


class Cancelled(Exception):
    """Raised out of a bus transaction that was interrupted by cancellation."""


class CancelToken:
    """
    Thread-safe cancellation signal.

    Tokens form a tree: cancelling a token cancels every child created from it
    with `child()`, while cancelling a child leaves its parent untouched.
    Drivers hand a child token to each connect cycle so a failed cycle can be
    torn down without stopping the whole sensor.
    """

    def __init__(self, parent: Optional["CancelToken"] = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: List[CancelToken] = []
        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: "CancelToken") -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.append(child)
                return
        child.cancel()

    def _release(self, child: "CancelToken") -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            children, self._children = self._children, []
        for child in children:
            child.cancel()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep for up to `timeout` seconds. Returns True if cancelled."""
        return self._event.wait(timeout)

    def sleep(self, seconds: float) -> None:
        """Like `wait`, but raises Cancelled instead of returning True."""
        if self._event.wait(seconds):
            raise Cancelled()

    @contextmanager
    def child(self) -> Iterator["CancelToken"]:
        """Yield a linked token that is cancelled when the block exits."""
        scope = CancelToken(self)
        try:
            yield scope
        finally:
            scope.cancel()
            self._release(scope)
