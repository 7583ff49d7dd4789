from __future__ import annotations
from typing import List

from .sensors.interface import (
    AirQualityReading,
    ParticulateReading,
    RawReading,
    SensorReading,
    TemperatureHumidityReading,
)
from .units import absolute_humidity

RECEIVED_PACKETS = "received_packets_total"


def aht_samples(reading: TemperatureHumidityReading, ts: float) -> List[SensorReading]:
    sid = "aht20"
    return [
        SensorReading(sid, RECEIVED_PACKETS, 1, ts),
        SensorReading(sid, "temperature", reading.temperature, ts),
        SensorReading(sid, "relative_humidity", reading.relative_humidity, ts),
        SensorReading(
            sid, "absolute_humidity",
            absolute_humidity(reading.temperature, reading.relative_humidity), ts,
        ),
    ]


def pms_samples(reading: ParticulateReading, ts: float) -> List[SensorReading]:
    sid = "pms5003"
    samples = [SensorReading(sid, RECEIVED_PACKETS, 1, ts)]

    for microns, std, env in (
        ("01.0", reading.pm10_std, reading.pm10_env),
        ("02.5", reading.pm25_std, reading.pm25_env),
        ("10.0", reading.pm100_std, reading.pm100_env),
    ):
        samples.append(SensorReading(sid, "particulate_matter_standard", std, ts, {"microns": microns}))
        samples.append(SensorReading(sid, "particulate_matter_environmental", env, ts, {"microns": microns}))

    for lower_bound, count in (
        ("00.3", reading.particles_03um),
        ("00.5", reading.particles_05um),
        ("01.0", reading.particles_10um),
        ("02.5", reading.particles_25um),
        ("05.0", reading.particles_50um),
        ("10.0", reading.particles_100um),
    ):
        samples.append(SensorReading(sid, "particle_counts", count, ts, {"microns_lower_bound": lower_bound}))

    return samples


def air_quality_samples(reading: AirQualityReading, ts: float) -> List[SensorReading]:
    sid = "sgp30"
    valid = {"valid": "valid" if reading.is_valid else "invalid"}
    return [
        SensorReading(sid, RECEIVED_PACKETS, 1, ts),
        SensorReading(sid, "eco2_ppm", reading.equivalent_co2, ts, dict(valid)),
        SensorReading(sid, "tvoc_ppb", reading.total_voc, ts, dict(valid)),
        SensorReading(sid, "seconds_until_acclimated", reading.duration_until_valid.total_seconds(), ts),
    ]


def raw_samples(reading: RawReading, ts: float) -> List[SensorReading]:
    sid = "sgp30"
    return [
        SensorReading(sid, RECEIVED_PACKETS, 1, ts),
        SensorReading(sid, "h2", reading.h2, ts),
        SensorReading(sid, "ethanol", reading.ethanol, ts),
    ]
