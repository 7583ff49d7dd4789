# exporter/sensors/interface.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, Protocol, Tuple


@dataclass
class SensorReading:
    sensor_id: str      # e.g. "aht20"
    metric: str         # e.g. "temperature"
    value: float
    ts: float           # unix timestamp
    labels: Dict[str, str] = field(default_factory=dict)


class MetricsSink(Protocol):
    """Where consumers deliver flattened samples; the core never touches it."""

    def record(self, samples: Iterable[SensorReading]) -> None:
        ...


@dataclass(frozen=True)
class TemperatureHumidityReading:
    relative_humidity: float    # fraction, 0..1
    temperature: float          # degrees Celsius


@dataclass(frozen=True)
class ParticulateReading:
    """The data portion of one PMS5003 active-mode frame."""
    length: int
    # ug/m3, CF=1 standard particle
    pm10_std: int
    pm25_std: int
    pm100_std: int
    # ug/m3, atmospheric environment
    pm10_env: int
    pm25_env: int
    pm100_env: int
    # particles beyond the given diameter per 0.1L of air
    particles_03um: int
    particles_05um: int
    particles_10um: int
    particles_25um: int
    particles_50um: int
    particles_100um: int
    reserved: int
    checksum: int


@dataclass(frozen=True)
class AirQualityReading:
    is_valid: bool
    duration_until_valid: timedelta
    total_voc: int          # ppb
    equivalent_co2: int     # ppm


@dataclass(frozen=True)
class RawReading:
    h2: int
    ethanol: int


@dataclass(frozen=True)
class BaselineReading:
    serial: Tuple[int, int, int]
    sensor_readings_not_valid_before: datetime
    baseline_invalid_after: datetime
    total_voc: int
    equivalent_co2: int

    def is_restorable(self, serial: Tuple[int, ...], now: datetime) -> bool:
        """True if this baseline belongs to `serial` and has not expired."""
        return tuple(self.serial) == tuple(serial) and now < self.baseline_invalid_after
