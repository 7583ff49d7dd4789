# exporter/sensors/sgp30_actor.py
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Tuple, Union

from ..units import absolute_humidity
from .bus import I2CDevice
from .cancel import CancelToken
from .channel import Channel
from .interface import AirQualityReading, BaselineReading, RawReading
from .sgp30_commands import (
    get_baseline,
    measure_air_quality,
    measure_raw_signals,
    set_humidity,
)

if TYPE_CHECKING:
    from .sgp30 import GasSensor

logger = logging.getLogger(__name__)

BASELINE_VALIDITY = timedelta(days=7)
MAILBOX_CAPACITY = 16


# --- commands ----------------------------------------------------------------

@dataclass(frozen=True)
class RequestAirQuality:
    pass


@dataclass(frozen=True)
class RequestRaw:
    pass


@dataclass(frozen=True)
class RequestBaseline:
    serial: Tuple[int, int, int]
    not_valid_before: datetime


@dataclass(frozen=True)
class BecomeInitialized:
    pass


@dataclass(frozen=True)
class UpdateHumidity:
    temperature: float          # degrees Celsius
    relative_humidity: float    # fraction, 0..1


Command = Union[RequestAirQuality, RequestRaw, RequestBaseline, BecomeInitialized, UpdateHumidity]


@dataclass(frozen=True)
class Schedule:
    """How often the actor's tickers enqueue work, in seconds."""
    air_quality_interval_s: float = 1.0
    raw_interval_s: float = 0.025
    baseline_interval_s: float = 3600.0
    warm_up_s: float = 15.0


# --- actor -------------------------------------------------------------------

class GasSensorActor:
    """
    Owns the bus handle of one SGP30 connect cycle.

    Tickers and external callers only ever enqueue Commands; the actor thread
    drains the mailbox in arrival order and is the only code that touches the
    bus, so a periodic measurement can never interleave with a humidity or
    baseline write.

    Any exception while handling a command ends `run`, which stops the
    tickers and discards whatever is still queued.
    """

    def __init__(
        self,
        sensor: "GasSensor",
        dev: I2CDevice,
        serial: Tuple[int, int, int],
        not_valid_before: datetime,
        scope: CancelToken,
        schedule: Schedule,
        clock: Callable[[], datetime],
    ) -> None:
        self.sensor = sensor
        self.dev = dev
        self.serial = serial
        self.not_valid_before = not_valid_before
        self.scope = scope
        self.schedule = schedule
        self.clock = clock
        self.is_initialized = False
        self.mailbox: Channel[Command] = Channel("sgp30.mailbox", capacity=MAILBOX_CAPACITY)

    def submit(self, command: Command) -> bool:
        """Enqueue a command. Returns False if the actor is shutting down."""
        if self.scope.is_cancelled():
            return False
        return self.mailbox.send(command, self.scope)

    def run(self) -> None:
        tickers = [
            self._ticker("air-quality", self._every, self.schedule.air_quality_interval_s, RequestAirQuality),
            self._ticker("raw", self._every, self.schedule.raw_interval_s, RequestRaw),
            self._ticker("baseline", self._every, self.schedule.baseline_interval_s, self._baseline_request),
            self._ticker("warm-up", self._after, self.schedule.warm_up_s, BecomeInitialized),
        ]
        for t in tickers:
            t.start()

        try:
            while True:
                command = self.mailbox.receive(self.scope)
                if command is None:
                    return
                self.handle(command)
        finally:
            self.scope.cancel()
            for t in tickers:
                t.join()

    # --- dispatch ------------------------------------------------------------

    def handle(self, command: Command) -> None:
        if isinstance(command, RequestAirQuality):
            self._measure_air_quality()
        elif isinstance(command, RequestRaw):
            self._measure_raw()
        elif isinstance(command, RequestBaseline):
            self._snapshot_baseline(command)
        elif isinstance(command, BecomeInitialized):
            logger.info("sgp30: sensor initialized")
            self.is_initialized = True
        elif isinstance(command, UpdateHumidity):
            self._update_humidity(command)
        else:
            raise TypeError(f"unknown command {command!r}")

    def _measure_air_quality(self) -> None:
        eco2, tvoc = measure_air_quality(self.dev, self.scope)
        now = self.clock()
        reading = AirQualityReading(
            is_valid=self.is_initialized and now >= self.not_valid_before,
            duration_until_valid=max(self.not_valid_before - now, timedelta(0)),
            total_voc=tvoc,
            equivalent_co2=eco2,
        )
        self.sensor.air_quality_readings.send(reading, self.scope)

    def _measure_raw(self) -> None:
        h2, ethanol = measure_raw_signals(self.dev, self.scope)
        self.sensor.raw_readings.send(RawReading(h2=h2, ethanol=ethanol), self.scope)

    def _snapshot_baseline(self, command: RequestBaseline) -> None:
        eco2, tvoc = get_baseline(self.dev, self.scope)
        baseline = BaselineReading(
            serial=command.serial,
            sensor_readings_not_valid_before=command.not_valid_before,
            baseline_invalid_after=self.clock() + BASELINE_VALIDITY,
            total_voc=tvoc,
            equivalent_co2=eco2,
        )
        logger.debug("sgp30: read baseline %s", baseline)
        self.sensor.current_baseline = baseline
        self.sensor.baseline_readings.send(baseline, self.scope)

    def _update_humidity(self, command: UpdateHumidity) -> None:
        humidity = absolute_humidity(command.temperature, command.relative_humidity)
        logger.debug("sgp30: setting absolute humidity to %.2f g/m3", humidity)
        set_humidity(self.dev, self.scope, humidity)

    # --- schedules -----------------------------------------------------------

    def _baseline_request(self) -> RequestBaseline:
        return RequestBaseline(serial=self.serial, not_valid_before=self.not_valid_before)

    def _ticker(self, name: str, target: Callable, *args) -> threading.Thread:
        return threading.Thread(target=target, args=args, name=f"sgp30-{name}", daemon=True)

    def _every(self, interval_s: float, make: Callable[[], Command]) -> None:
        while not self.scope.wait(interval_s):
            if not self.submit(make()):
                return

    def _after(self, delay_s: float, make: Callable[[], Command]) -> None:
        if not self.scope.wait(delay_s):
            self.submit(make())
