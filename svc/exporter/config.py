from __future__ import annotations
import os

# Which sensors to start, comma separated: any of aht20, pms5003, sgp30
ENABLED_SENSORS = [
    s.strip().lower()
    for s in os.getenv("EXPORTER_SENSORS", "aht20,pms5003,sgp30").split(",")
    if s.strip()
]

# HTTP server
HOST = os.getenv("EXPORTER_HOST", "0.0.0.0")
METRICS_PORT = int(os.getenv("EXPORTER_METRICS_PORT", "9100"))

LOG_LEVEL = os.getenv("EXPORTER_LOG_LEVEL", "INFO").upper()

# Seconds to wait before reconnecting to a sensor after a failure
RECONNECT_TIMEOUT_S = float(os.getenv("EXPORTER_RECONNECT_TIMEOUT", "1.0"))

# Plantower PMS5003 (UART)
PMS5003_PORT = os.getenv("EXPORTER_PMS5003_PORT", "/dev/ttyAMA0")

# Asair AHT20 (I2C); addresses accept 0x-prefixed hex
AHT20_I2C_ADDR = int(os.getenv("EXPORTER_AHT20_I2C_ADDR", "0x38"), 0)
AHT20_I2C_BUS = int(os.getenv("EXPORTER_AHT20_I2C_BUS", "1"))

# Sensirion SGP30 (I2C)
SGP30_I2C_ADDR = int(os.getenv("EXPORTER_SGP30_I2C_ADDR", "0x58"), 0)
SGP30_I2C_BUS = int(os.getenv("EXPORTER_SGP30_I2C_BUS", "1"))

# JSON file the gas sensor baseline is stored to and restored from
BASELINE_FILE = os.getenv("EXPORTER_BASELINE_FILE", "/var/lib/sensor-exporter/baseline.json")

# Minimum seconds between humidity compensation updates sent to the gas sensor
HUMIDITY_UPDATE_INTERVAL_S = float(os.getenv("EXPORTER_HUMIDITY_UPDATE_INTERVAL", "10"))
