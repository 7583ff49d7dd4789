import json
from datetime import timedelta, timezone

import pytest

from exporter.metrics import RECEIVED_PACKETS, air_quality_samples, aht_samples, pms_samples, raw_samples
from exporter.sensors.interface import (
    AirQualityReading,
    BaselineReading,
    ParticulateReading,
    RawReading,
    TemperatureHumidityReading,
)
from exporter.state import LatestReadingsStore, load_baseline, save_baseline
from exporter.units import absolute_humidity

from conftest import NOW

BASELINE = BaselineReading(
    serial=(0x0001, 0x00A2, 0xBEEF),
    sensor_readings_not_valid_before=NOW + timedelta(hours=12),
    baseline_invalid_after=NOW + timedelta(days=7),
    total_voc=0x8F41,
    equivalent_co2=0x8E68,
)


def test_baseline_file_round_trip(tmp_path):
    path = tmp_path / "nested" / "baseline.json"
    assert save_baseline(str(path), BASELINE)

    on_disk = json.loads(path.read_text())
    assert on_disk["serial"] == [0x0001, 0x00A2, 0xBEEF]
    assert on_disk["total_voc"] == 0x8F41

    assert load_baseline(str(path)) == BASELINE


def test_missing_baseline_file(tmp_path):
    assert load_baseline(str(tmp_path / "missing.json")) is None


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        json.dumps({"serial": [1, 2], "sensor_readings_not_valid_before": "2024-01-01T00:00:00Z",
                    "baseline_invalid_after": "2024-01-08T00:00:00Z", "total_voc": 1, "equivalent_co2": 2}),
        json.dumps({"serial": [1, 2, 3]}),
    ],
    ids=["garbage", "short-serial", "missing-fields"],
)
def test_invalid_baseline_file(tmp_path, content):
    path = tmp_path / "baseline.json"
    path.write_text(content)
    assert load_baseline(str(path)) is None


def test_naive_timestamps_are_utc(tmp_path):
    path = tmp_path / "baseline.json"
    path.write_text(json.dumps({
        "serial": [1, 2, 3],
        "sensor_readings_not_valid_before": "2024-01-01T12:00:00",
        "baseline_invalid_after": "2024-01-08T12:00:00",
        "total_voc": 1,
        "equivalent_co2": 2,
    }))
    baseline = load_baseline(str(path))
    assert baseline.sensor_readings_not_valid_before == NOW
    assert baseline.sensor_readings_not_valid_before.tzinfo == timezone.utc


def test_save_failure_is_reported(tmp_path):
    # a directory where the file should go
    path = tmp_path / "baseline.json"
    path.mkdir()
    assert save_baseline(str(path), BASELINE) is False


def test_store_accumulates_counters():
    store = LatestReadingsStore()
    store.record(aht_samples(TemperatureHumidityReading(relative_humidity=0.4, temperature=20.0), 1.0))
    store.record(aht_samples(TemperatureHumidityReading(relative_humidity=0.5, temperature=21.0), 2.0))

    rows = {r.metric: r for r in store.latest("aht20")}
    assert rows[RECEIVED_PACKETS].value == 2
    assert rows["temperature"].value == 21.0
    assert rows["relative_humidity"].value == 0.5
    assert rows["absolute_humidity"].value == pytest.approx(absolute_humidity(21.0, 0.5))


def test_store_filters_by_sensor():
    store = LatestReadingsStore()
    store.record(aht_samples(TemperatureHumidityReading(relative_humidity=0.4, temperature=20.0), 1.0))
    store.record(raw_samples(RawReading(h2=13500, ethanol=18200), 1.0))

    assert {r.sensor_id for r in store.latest()} == {"aht20", "sgp30"}
    assert {r.metric for r in store.latest("sgp30")} == {RECEIVED_PACKETS, "h2", "ethanol"}


def test_pms_samples():
    reading = ParticulateReading(28, 5, 8, 9, 4, 7, 9, 1200, 350, 60, 8, 2, 1, 0, 0)
    samples = pms_samples(reading, 1.0)
    assert len(samples) == 13

    by_key = {(s.metric, tuple(s.labels.items())): s.value for s in samples}
    assert by_key[("particulate_matter_standard", (("microns", "02.5"),))] == 8
    assert by_key[("particulate_matter_environmental", (("microns", "10.0"),))] == 9
    assert by_key[("particle_counts", (("microns_lower_bound", "00.3"),))] == 1200
    assert by_key[("particle_counts", (("microns_lower_bound", "10.0"),))] == 1


def test_air_quality_samples():
    reading = AirQualityReading(
        is_valid=False,
        duration_until_valid=timedelta(hours=1),
        total_voc=12,
        equivalent_co2=450,
    )
    samples = {s.metric: s for s in air_quality_samples(reading, 1.0)}
    assert samples["eco2_ppm"].value == 450
    assert samples["eco2_ppm"].labels == {"valid": "invalid"}
    assert samples["tvoc_ppb"].value == 12
    assert samples["seconds_until_acclimated"].value == 3600


def test_absolute_humidity():
    assert absolute_humidity(25.0, 0.5) == pytest.approx(11.51, abs=0.01)
    assert absolute_humidity(20.0, 0.0) == 0.0
