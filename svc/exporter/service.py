from __future__ import annotations
from typing import List, Optional, Tuple

from .models import SensorInfo
from .sensors.interface import BaselineReading, SensorReading
from .sensors.manager import SensorManager, make_sensors_from_config
from .state import LatestReadingsStore


class ExporterService:
    """Facade the HTTP routes talk to; owns the sensor manager and the metrics store."""

    def __init__(self, manager: SensorManager | None = None, store: LatestReadingsStore | None = None) -> None:
        self.store = store or LatestReadingsStore()
        self.manager = manager or SensorManager(make_sensors_from_config(), sink=self.store)

    def start(self) -> None:
        self.manager.start()

    def stop(self) -> None:
        self.manager.stop()

    # read
    def sensor_names(self) -> List[str]:
        return list(self.manager.sensors)

    def list_sensors(self) -> List[SensorInfo]:
        return [
            SensorInfo(
                id=name,
                kind=sensor.kind,
                bus=sensor.describe(),
                connected=sensor.connected,
                connect_attempts=sensor.connect_attempts,
            )
            for name, sensor in self.manager.sensors.items()
        ]

    def latest_readings(self, sensor_id: str | None = None) -> List[SensorReading]:
        return self.store.latest(sensor_id)

    def current_baseline(self) -> Optional[BaselineReading]:
        gas = self.manager.gas_sensor
        return gas.current_baseline if gas is not None else None

    # write
    def update_humidity(self, temperature: float, relative_humidity: float) -> Tuple[bool, str]:
        gas = self.manager.gas_sensor
        if gas is None:
            raise KeyError("sgp30")
        if not gas.update_humidity(temperature, relative_humidity):
            return False, "gas sensor not connected"
        return True, "humidity update queued"
