# exporter/sensors/manager.py
from __future__ import annotations
import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from .. import config
from ..metrics import air_quality_samples, aht_samples, pms_samples, raw_samples
from ..state import load_baseline, save_baseline
from .aht20 import AHT20Sensor
from .cancel import CancelToken
from .channel import Channel
from .interface import MetricsSink, SensorReading
from .pms5003 import PMS5003Sensor
from .runner import ReconnectingSensor
from .sgp30 import GasSensor

logger = logging.getLogger(__name__)


def make_sensors_from_config(enabled: Iterable[str] | None = None) -> Dict[str, ReconnectingSensor]:
    """Build the enabled sensor drivers using the bus settings from config."""
    enabled = list(config.ENABLED_SENSORS if enabled is None else enabled)
    sensors: Dict[str, ReconnectingSensor] = {}

    for name in enabled:
        if name == "aht20":
            sensors[name] = AHT20Sensor(
                i2c_addr=config.AHT20_I2C_ADDR,
                i2c_bus=config.AHT20_I2C_BUS,
                reconnect_timeout_s=config.RECONNECT_TIMEOUT_S,
            )
        elif name == "pms5003":
            sensors[name] = PMS5003Sensor(
                port_name=config.PMS5003_PORT,
                reconnect_timeout_s=config.RECONNECT_TIMEOUT_S,
            )
        elif name == "sgp30":
            sensors[name] = GasSensor(
                i2c_addr=config.SGP30_I2C_ADDR,
                i2c_bus=config.SGP30_I2C_BUS,
                reconnect_timeout_s=config.RECONNECT_TIMEOUT_S,
                initial_baseline=load_baseline(config.BASELINE_FILE),
            )
        else:
            logger.warning(f"Unknown sensor {name!r} in EXPORTER_SENSORS; ignoring")

    return sensors


class SensorManager:
    """
    Runs one driver thread per sensor plus one consumer thread per output
    channel. Consumers flatten readings into samples for the metrics sink,
    forward ambient humidity to the gas sensor and persist baselines.
    """

    def __init__(
        self,
        sensors: Dict[str, ReconnectingSensor],
        sink: MetricsSink,
        baseline_file: str | None = None,
        humidity_update_interval_s: float | None = None,
    ) -> None:
        self.sensors = sensors
        self.sink = sink
        self.baseline_file = baseline_file or config.BASELINE_FILE
        self.humidity_update_interval_s = (
            config.HUMIDITY_UPDATE_INTERVAL_S
            if humidity_update_interval_s is None
            else humidity_update_interval_s
        )
        self._cancel: Optional[CancelToken] = None
        self._threads: List[threading.Thread] = []

    @property
    def gas_sensor(self) -> Optional[GasSensor]:
        sensor = self.sensors.get("sgp30")
        return sensor if isinstance(sensor, GasSensor) else None

    @property
    def running(self) -> bool:
        return self._cancel is not None and not self._cancel.is_cancelled()

    def start(self) -> None:
        if self.running:
            return
        self._cancel = CancelToken()
        self._threads = []

        for name, sensor in self.sensors.items():
            logger.info(f"Starting sensor {sensor.describe()}")
            self._spawn(f"{name}-driver", sensor.start, self._cancel)

            if isinstance(sensor, AHT20Sensor):
                self._spawn(f"{name}-consumer", self._consume_temperature_humidity, sensor)
            elif isinstance(sensor, PMS5003Sensor):
                self._spawn(f"{name}-consumer", self._consume, sensor.readings, pms_samples)
            elif isinstance(sensor, GasSensor):
                self._spawn(f"{name}-air-quality", self._consume, sensor.air_quality_readings, air_quality_samples)
                self._spawn(f"{name}-raw", self._consume, sensor.raw_readings, raw_samples)
                self._spawn(f"{name}-baseline", self._consume_baselines, sensor)

        logger.info(f"Started {len(self._threads)} sensor threads")

    def stop(self, timeout_s: float = 5.0) -> None:
        """Cancel every driver and wait for driver and consumer threads to finish."""
        if self._cancel is None:
            return
        self._cancel.cancel()
        deadline = time.monotonic() + timeout_s
        for t in self._threads:
            t.join(max(0.0, deadline - time.monotonic()))
            if t.is_alive():
                logger.warning(f"Thread {t.name} did not stop within {timeout_s}s")
        logger.info("Stopped sensor threads")

    def _spawn(self, name: str, target: Callable, *args) -> None:
        t = threading.Thread(target=target, args=args, name=name, daemon=True)
        t.start()
        self._threads.append(t)

    # --- consumers -----------------------------------------------------------

    def _consume(self, channel: Channel, to_samples: Callable[..., List[SensorReading]]) -> None:
        for reading in channel:
            logger.debug("received reading %s", reading)
            self.sink.record(to_samples(reading, time.time()))
        logger.debug(f"{channel.name} closed")

    def _consume_temperature_humidity(self, sensor: AHT20Sensor) -> None:
        set_humidity_after = 0.0
        for reading in sensor.readings:
            logger.debug("received reading %s", reading)
            self.sink.record(aht_samples(reading, time.time()))

            gas = self.gas_sensor
            now = time.monotonic()
            if gas is None or now < set_humidity_after:
                continue
            try:
                queued = gas.update_humidity(reading.temperature, reading.relative_humidity)
            except ValueError as e:
                logger.warning(f"Not forwarding humidity from {reading}: {e}")
                continue
            if queued:
                set_humidity_after = now + self.humidity_update_interval_s
                logger.debug(f"Set humidity on gas sensor from {reading}")
        logger.debug(f"{sensor.readings.name} closed")

    def _consume_baselines(self, sensor: GasSensor) -> None:
        for baseline in sensor.baseline_readings:
            save_baseline(self.baseline_file, baseline)
        logger.debug(f"{sensor.baseline_readings.name} closed")
