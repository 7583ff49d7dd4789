from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from exporter.metrics import aht_samples
from exporter.routes import get_service
from exporter.service import ExporterService
from exporter.sensors.aht20 import AHT20Sensor
from exporter.sensors.interface import BaselineReading, TemperatureHumidityReading
from exporter.sensors.manager import SensorManager
from exporter.sensors.sgp30 import GasSensor
from exporter.state import LatestReadingsStore
from main import app

client = TestClient(app)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


class AcceptingGasSensor(GasSensor):
    """Gas sensor that pretends to be connected and records humidity updates."""

    def __init__(self):
        super().__init__(open_device=lambda bus, addr: None)
        self.updates = []

    def update_humidity(self, temperature, relative_humidity):
        self.updates.append((temperature, relative_humidity))
        return True


class RejectingGasSensor(GasSensor):
    def __init__(self):
        super().__init__(open_device=lambda bus, addr: None)

    def update_humidity(self, temperature, relative_humidity):
        raise ValueError("cannot compute absolute humidity")


def make_service(gas=None):
    sensors = {"aht20": AHT20Sensor(open_device=lambda bus, addr: None)}
    if gas is not None:
        sensors["sgp30"] = gas
    store = LatestReadingsStore()
    return ExporterService(manager=SensorManager(sensors, sink=store), store=store)


@pytest.fixture
def use_service():
    def install(service):
        app.dependency_overrides[get_service] = lambda: service
        return service
    yield install
    app.dependency_overrides.clear()


def test_health(use_service):
    use_service(make_service(gas=GasSensor(open_device=lambda bus, addr: None)))
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["sensors"] == ["aht20", "sgp30"]


def test_list_sensors(use_service):
    use_service(make_service())
    r = client.get("/sensors")
    assert r.status_code == 200
    sensors = r.json()
    assert len(sensors) == 1
    assert sensors[0]["id"] == "aht20"
    assert sensors[0]["kind"] == "aht20"
    assert sensors[0]["bus"] == "AHT20[bus=1 addr=0x38]"
    # never started
    assert sensors[0]["connected"] is False
    assert sensors[0]["connect_attempts"] == 0


def test_latest_metrics(use_service):
    service = use_service(make_service())
    reading = TemperatureHumidityReading(relative_humidity=0.5, temperature=21.0)
    service.store.record(aht_samples(reading, 1700000000.0))
    service.store.record(aht_samples(reading, 1700000001.0))

    r = client.get("/metrics/latest", params={"sensor_id": "aht20"})
    assert r.status_code == 200
    rows = {row["metric"]: row for row in r.json()}
    assert set(rows) == {"absolute_humidity", "received_packets_total", "relative_humidity", "temperature"}
    assert rows["received_packets_total"]["value"] == 2
    assert rows["temperature"]["value"] == 21.0
    assert rows["temperature"]["ts"] == 1700000001.0

    r2 = client.get("/metrics/latest", params={"sensor_id": "pms5003"})
    assert r2.status_code == 200
    assert r2.json() == []


def test_baseline_missing_then_present(use_service):
    gas = GasSensor(open_device=lambda bus, addr: None)
    use_service(make_service(gas=gas))

    r = client.get("/baseline")
    assert r.status_code == 404
    assert r.json()["detail"] == "no baseline"

    gas.current_baseline = BaselineReading(
        serial=(1, 2, 3),
        sensor_readings_not_valid_before=NOW,
        baseline_invalid_after=NOW + timedelta(days=7),
        total_voc=0x8F41,
        equivalent_co2=0x8E68,
    )
    r2 = client.get("/baseline")
    assert r2.status_code == 200
    body = r2.json()
    assert body["serial"] == [1, 2, 3]
    assert body["total_voc"] == 0x8F41
    assert body["equivalent_co2"] == 0x8E68


def test_baseline_without_gas_sensor(use_service):
    use_service(make_service())
    assert client.get("/baseline").status_code == 404


def test_humidity_queued(use_service):
    gas = AcceptingGasSensor()
    use_service(make_service(gas=gas))
    r = client.post("/commands/humidity", json={"temperature": 22.5, "relative_humidity": 0.4})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "message": "humidity update queued"}
    assert gas.updates == [(22.5, 0.4)]


def test_humidity_sensor_not_connected(use_service):
    use_service(make_service(gas=GasSensor(open_device=lambda bus, addr: None)))
    r = client.post("/commands/humidity", json={"temperature": 22.5, "relative_humidity": 0.4})
    assert r.status_code == 503
    assert r.json()["detail"] == "gas sensor not connected"


def test_humidity_sensor_not_enabled(use_service):
    use_service(make_service())
    r = client.post("/commands/humidity", json={"temperature": 22.5, "relative_humidity": 0.4})
    assert r.status_code == 404


def test_humidity_out_of_range(use_service):
    gas = AcceptingGasSensor()
    use_service(make_service(gas=gas))
    # relative humidity is a fraction, not a percentage
    r = client.post("/commands/humidity", json={"temperature": 22.5, "relative_humidity": 40})
    assert r.status_code == 422
    assert gas.updates == []


def test_humidity_temperature_out_of_range(use_service):
    gas = AcceptingGasSensor()
    use_service(make_service(gas=gas))
    # below the Magnus formula's pole at -243.5 degC
    r = client.post("/commands/humidity", json={"temperature": -244.0, "relative_humidity": 0.5})
    assert r.status_code == 422
    r2 = client.post("/commands/humidity", json={"temperature": 151.0, "relative_humidity": 0.5})
    assert r2.status_code == 422
    assert gas.updates == []


def test_humidity_rejects_nan(use_service):
    gas = AcceptingGasSensor()
    use_service(make_service(gas=gas))
    for body in (
        b'{"temperature": NaN, "relative_humidity": 0.5}',
        b'{"temperature": 20.0, "relative_humidity": NaN}',
        b'{"temperature": Infinity, "relative_humidity": 0.5}',
    ):
        r = client.post("/commands/humidity", content=body, headers={"Content-Type": "application/json"})
        assert r.status_code == 422
    assert gas.updates == []


def test_humidity_unconvertible_values(use_service):
    use_service(make_service(gas=RejectingGasSensor()))
    r = client.post("/commands/humidity", json={"temperature": 20.0, "relative_humidity": 0.5})
    assert r.status_code == 400
    assert r.json()["detail"] == "cannot compute absolute humidity"
