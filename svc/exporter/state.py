from __future__ import annotations
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from .models import StoredBaseline
from .sensors.interface import BaselineReading, SensorReading

logger = logging.getLogger(__name__)


# --- baseline file -----------------------------------------------------------

def _ensure_dirs(path: str) -> None:
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)


def _as_utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def load_baseline(path: str) -> Optional[BaselineReading]:
    """
    Read the stored gas sensor baseline. Any problem is logged and treated as
    "no baseline", in which case the sensor goes through acclimation again.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            stored = StoredBaseline.model_validate_json(f.read())
    except FileNotFoundError:
        logger.warning(f"No baseline file at {path}; sensor will require acclimation")
        return None
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"Failed to read baseline file {path}; sensor will require acclimation: {e}")
        return None

    baseline = BaselineReading(
        serial=(stored.serial[0], stored.serial[1], stored.serial[2]),
        sensor_readings_not_valid_before=_as_utc(stored.sensor_readings_not_valid_before),
        baseline_invalid_after=_as_utc(stored.baseline_invalid_after),
        total_voc=stored.total_voc,
        equivalent_co2=stored.equivalent_co2,
    )
    logger.info(f"Initializing gas sensor with stored baseline from {path}: {baseline}")
    return baseline


def to_stored_baseline(baseline: BaselineReading) -> StoredBaseline:
    return StoredBaseline(
        serial=list(baseline.serial),
        sensor_readings_not_valid_before=baseline.sensor_readings_not_valid_before,
        baseline_invalid_after=baseline.baseline_invalid_after,
        total_voc=baseline.total_voc,
        equivalent_co2=baseline.equivalent_co2,
    )


def save_baseline(path: str, baseline: BaselineReading) -> bool:
    """Write `baseline` as indented JSON. Failures are logged, not raised."""
    stored = to_stored_baseline(baseline)
    try:
        _ensure_dirs(path)
        with open(path, "w", encoding="utf-8") as f:
            f.write(stored.model_dump_json(indent=2))
    except OSError as e:
        logger.error(f"Failed to write baseline file {path}: {e}")
        return False

    logger.info(f"Stored new baseline to {path}: {baseline}")
    return True


# --- latest metric values ----------------------------------------------------

_Key = Tuple[str, str, Tuple[Tuple[str, str], ...]]


class LatestReadingsStore:
    """
    In-memory metrics sink keeping the most recent value of each
    (sensor, metric, labels) series. Samples whose metric ends in
    `_total` are treated as counters and accumulated.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: Dict[_Key, SensorReading] = {}

    @staticmethod
    def _key(r: SensorReading) -> _Key:
        return r.sensor_id, r.metric, tuple(sorted(r.labels.items()))

    def record(self, samples: Iterable[SensorReading]) -> None:
        with self._lock:
            for r in samples:
                key = self._key(r)
                if r.metric.endswith("_total") and key in self._latest:
                    r = SensorReading(
                        sensor_id=r.sensor_id,
                        metric=r.metric,
                        value=self._latest[key].value + r.value,
                        ts=r.ts,
                        labels=dict(r.labels),
                    )
                self._latest[key] = r

    def latest(self, sensor_id: str | None = None) -> List[SensorReading]:
        with self._lock:
            rows = list(self._latest.values())
        if sensor_id is not None:
            rows = [r for r in rows if r.sensor_id == sensor_id]
        return sorted(rows, key=lambda r: (r.sensor_id, r.metric, sorted(r.labels.items())))
