# exporter/units.py
from __future__ import annotations
import math


def absolute_humidity(temperature_c: float, relative_humidity: float) -> float:
    """
    Water vapour concentration in g/m3 from temperature (degC) and relative
    humidity (fraction 0..1), using the Magnus approximation for saturation
    vapour pressure.
    """
    rh = relative_humidity * 100
    t = temperature_c
    return (6.112 * math.exp((17.67 * t) / (t + 243.5)) * rh * 2.1674) / (273.15 + t)
