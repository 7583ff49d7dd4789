# exporter/sensors/sgp30.py
from __future__ import annotations
import logging
import math
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from ..units import absolute_humidity
from .bus import I2CDevice, SMBusDevice
from .cancel import CancelToken
from .channel import Channel
from .errors import UnsupportedFeatureSetError
from .interface import AirQualityReading, BaselineReading, RawReading
from .runner import ReconnectingSensor
from .sgp30_actor import GasSensorActor, Schedule, UpdateHumidity
from .sgp30_commands import (
    SUPPORTED_FEATURE_SETS,
    get_feature_set_version,
    get_serial_id,
    init_air_quality,
    set_baseline,
)

logger = logging.getLogger(__name__)

ACCLIMATION_PERIOD = timedelta(hours=12)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GasSensor(ReconnectingSensor):
    """
    Sensirion SGP30 air-quality sensor.

    Each connect cycle reads the serial and feature set, starts air-quality
    measurement, restores the stored baseline if it belongs to this sensor
    and has not expired, and then hands the bus to a GasSensorActor for the
    rest of the cycle.

    eCO2/tVOC readings are flagged invalid until the sensor has warmed up and
    the acclimation window has passed. A restored baseline keeps its original
    window; otherwise a fresh 12 hour window starts at connect time.
    """

    kind = "sgp30"

    def __init__(
        self,
        i2c_addr: int = 0x58,
        i2c_bus: int = 1,
        reconnect_timeout_s: float = 1.0,
        initial_baseline: Optional[BaselineReading] = None,
        open_device: Callable[[int, int], I2CDevice] | None = None,
        schedule: Schedule | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(reconnect_timeout_s)
        self.i2c_addr = i2c_addr
        self.i2c_bus = i2c_bus
        self._open_device = open_device or SMBusDevice
        self.schedule = schedule or Schedule()
        self.clock = clock

        # Latest baseline known to this process; survives reconnects.
        self.current_baseline: Optional[BaselineReading] = initial_baseline

        self.air_quality_readings: Channel[AirQualityReading] = Channel("sgp30.air_quality")
        self.raw_readings: Channel[RawReading] = Channel("sgp30.raw")
        self.baseline_readings: Channel[BaselineReading] = Channel("sgp30.baseline")

        self._actor: Optional[GasSensorActor] = None
        self._actor_lock = threading.Lock()

    def describe(self) -> str:
        return f"SGP30[bus={self.i2c_bus} addr=0x{self.i2c_addr:02X}]"

    def channels(self) -> List[Channel]:
        return [self.air_quality_readings, self.raw_readings, self.baseline_readings]

    def open(self) -> I2CDevice:
        dev = self._open_device(self.i2c_bus, self.i2c_addr)
        logger.info(f"{self.describe()}: opened device")
        return dev

    # --- external commands ---------------------------------------------------

    def update_humidity(self, temperature: float, relative_humidity: float) -> bool:
        """
        Queue a humidity compensation update for the connected sensor.
        Returns False if the sensor is not connected or is shutting down.

        Raises ValueError if the values do not convert to a finite absolute
        humidity.
        """
        try:
            humidity = absolute_humidity(temperature, relative_humidity)
        except ArithmeticError as e:
            raise ValueError(
                f"cannot compute absolute humidity for {temperature} degC at {relative_humidity}: {e}"
            ) from e
        if not math.isfinite(humidity):
            raise ValueError(f"cannot compute absolute humidity for {temperature} degC at {relative_humidity}")

        with self._actor_lock:
            actor = self._actor
        if actor is None:
            return False
        return actor.submit(UpdateHumidity(temperature=temperature, relative_humidity=relative_humidity))

    # --- connect cycle -------------------------------------------------------

    def run_cycle(self, dev: I2CDevice, cancel: CancelToken) -> None:
        serial = get_serial_id(dev, cancel)

        feature_set = get_feature_set_version(dev, cancel)
        if feature_set not in SUPPORTED_FEATURE_SETS:
            raise UnsupportedFeatureSetError(feature_set)

        logger.info(
            f"{self.describe()}: serial={'-'.join(f'{w:04X}' for w in serial)} "
            f"feature_set=0x{feature_set:04X}"
        )

        init_air_quality(dev, cancel)
        not_valid_before = self._restore_or_acclimate(dev, cancel, serial)

        with cancel.child() as scope:
            actor = GasSensorActor(
                sensor=self,
                dev=dev,
                serial=serial,
                not_valid_before=not_valid_before,
                scope=scope,
                schedule=self.schedule,
                clock=self.clock,
            )
            with self._actor_lock:
                self._actor = actor
            try:
                actor.run()
            finally:
                with self._actor_lock:
                    self._actor = None

    def _restore_or_acclimate(self, dev: I2CDevice, cancel: CancelToken, serial) -> datetime:
        now = self.clock()
        baseline = self.current_baseline
        if baseline is not None and baseline.is_restorable(serial, now):
            set_baseline(dev, cancel, baseline.equivalent_co2, baseline.total_voc)
            logger.info(
                f"{self.describe()}: restored baseline eco2={baseline.equivalent_co2} "
                f"tvoc={baseline.total_voc}; readings valid after "
                f"{baseline.sensor_readings_not_valid_before.isoformat()}"
            )
            return baseline.sensor_readings_not_valid_before

        if baseline is not None:
            logger.info(f"{self.describe()}: stored baseline does not match this sensor or has expired")
        not_valid_before = now + ACCLIMATION_PERIOD
        logger.info(
            f"{self.describe()}: sensor requires acclimation; readings valid after "
            f"{not_valid_before.isoformat()}"
        )
        return not_valid_before
