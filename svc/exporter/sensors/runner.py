# exporter/sensors/runner.py
from __future__ import annotations
import logging
import threading
from typing import Any, List

from .cancel import CancelToken, Cancelled
from .channel import Channel
from .errors import SensorError

logger = logging.getLogger(__name__)


class ReconnectingSensor:
    """
    Shared driver shape: open the bus, run the protocol loop, and on any
    failure close the handle and try again after a fixed delay.

    Subclasses implement `open()` (returns a bus handle with `close()`) and
    `run_cycle(handle, cancel)` (the protocol loop for one connection).
    `run_cycle` returns normally for a clean end-of-stream and raises for
    anything that should trigger a reconnect.
    """

    kind = "sensor"

    def __init__(self, reconnect_timeout_s: float) -> None:
        self.reconnect_timeout_s = reconnect_timeout_s
        self.connected = False
        self.connect_attempts = 0

    # --- subclass hooks -----------------------------------------------------

    def open(self) -> Any:
        raise NotImplementedError

    def run_cycle(self, handle: Any, cancel: CancelToken) -> None:
        raise NotImplementedError

    def channels(self) -> List[Channel]:
        """Output channels closed when `start` returns."""
        return []

    def describe(self) -> str:
        return self.kind

    def before_connect(self, cancel: CancelToken) -> bool:
        """Runs before every open attempt. Return False to stop."""
        return True

    # --- loop ---------------------------------------------------------------

    def start(self, cancel: CancelToken) -> None:
        """
        Poll the sensor until `cancel` is set. Blocks the calling thread.
        Output channels are closed on return and never reopened.
        """
        try:
            while not cancel.is_cancelled():
                if not self.before_connect(cancel):
                    return

                err = self._connect_once(cancel)
                if cancel.is_cancelled():
                    return

                logger.info(
                    f"{self.describe()}: disconnected from sensor; waiting to reconnect "
                    f"(err={err}, reconnect_timeout={self.reconnect_timeout_s}s)"
                )
                if cancel.wait(self.reconnect_timeout_s):
                    return
                logger.info(f"{self.describe()}: reconnecting")
        finally:
            for ch in self.channels():
                ch.close()

    def _connect_once(self, cancel: CancelToken) -> Exception | None:
        self.connect_attempts += 1
        try:
            handle = self.open()
        except SensorError as e:
            return e

        with cancel.child() as scope:
            watcher = threading.Thread(
                target=self._close_when_done,
                args=(handle, scope),
                name=f"{self.kind}-watcher",
                daemon=True,
            )
            watcher.start()
            self.connected = True
            try:
                self.run_cycle(handle, scope)
                return None
            except Cancelled:
                return None
            except SensorError as e:
                return e
            except Exception as e:
                if not cancel.is_cancelled():
                    logger.exception(f"{self.describe()}: unexpected error in sensor loop")
                return e
            finally:
                self.connected = False
                scope.cancel()
                watcher.join()

    def _close_when_done(self, handle: Any, scope: CancelToken) -> None:
        scope.wait()
        try:
            handle.close()
        except Exception as e:
            logger.warning(f"{self.describe()}: error closing bus handle: {e}")
