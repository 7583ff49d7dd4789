# exporter/sensors/channel.py
from __future__ import annotations
import queue
import threading
from typing import Generic, Iterator, Optional, TypeVar

from .cancel import CancelToken

T = TypeVar("T")

# How often blocked senders/receivers re-check cancellation
_POLL_S = 0.01


class ChannelClosed(Exception):
    """Raised by `Channel.receive` once the channel is closed and drained."""


class Channel(Generic[T]):
    """
    Single-slot handoff between one producer thread and its consumer.

    A sender blocks until the slot is free, so a slow consumer backpressures
    the producer instead of readings piling up. Cancellation is the only way
    to give up on a pending send.
    """

    def __init__(self, name: str = "channel", capacity: int = 1) -> None:
        self.name = name
        self._queue: "queue.Queue[T]" = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()

    def send(self, item: T, cancel: CancelToken) -> bool:
        """Hand `item` over. Returns False if cancelled before it was accepted."""
        while not cancel.is_cancelled():
            try:
                self._queue.put(item, timeout=_POLL_S)
                return True
            except queue.Full:
                continue
        return False

    def receive(
        self, cancel: CancelToken | None = None, timeout: float | None = None
    ) -> Optional[T]:
        """
        Take the next item.

        Returns None on cancellation or when `timeout` elapses. Raises
        ChannelClosed when the channel is closed and nothing is left in it.
        """
        waited = 0.0
        while True:
            try:
                return self._queue.get(timeout=_POLL_S)
            except queue.Empty:
                pass
            if self._closed.is_set() and self._queue.empty():
                raise ChannelClosed(self.name)
            if cancel is not None and cancel.is_cancelled():
                return None
            waited += _POLL_S
            if timeout is not None and waited >= timeout:
                return None

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                item = self.receive()
            except ChannelClosed:
                return
            if item is not None:
                yield item
