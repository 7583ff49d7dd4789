from __future__ import annotations
from fastapi import APIRouter, HTTPException, Depends, status, Query
from .models import (
    HealthResponse, SensorInfo, SensorReadingResponse, HumidityCommand,
    CommandResult, StoredBaseline, ErrorResponse,
)
from typing import List, Optional
from .service import ExporterService
from .state import to_stored_baseline


router = APIRouter()
svc: ExporterService | None = None


def get_service() -> ExporterService:
    global svc
    if svc is None:
        svc = ExporterService()
    return svc


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns service health status and the sensors enabled in this process",
    tags=["Health"]
)
def health(service: ExporterService = Depends(get_service)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", sensors=service.sensor_names())


@router.get(
    "/sensors",
    response_model=List[SensorInfo],
    summary="List configured sensors",
    description="Returns each sensor's bus, whether it is currently connected and how often the bus was opened",
    tags=["Sensors"],
)
def list_sensors(service: ExporterService = Depends(get_service)) -> List[SensorInfo]:
    return service.list_sensors()


@router.get(
    "/metrics/latest",
    response_model=List[SensorReadingResponse],
    summary="Latest metric values per sensor/metric",
    tags=["Sensors"],
)
def get_latest_metrics(
    sensor_id: Optional[str] = Query(default=None, description="Only return metrics of this sensor, e.g. aht20"),
    service: ExporterService = Depends(get_service),
) -> List[SensorReadingResponse]:
    return [
        SensorReadingResponse(
            sensor_id=r.sensor_id, metric=r.metric, value=r.value, ts=r.ts, labels=r.labels
        )
        for r in service.latest_readings(sensor_id)
    ]


@router.get(
    "/baseline",
    response_model=StoredBaseline,
    summary="Current gas sensor baseline",
    responses={404: {"model": ErrorResponse, "description": "No baseline known yet"}},
    tags=["Sensors"],
)
def get_baseline(service: ExporterService = Depends(get_service)) -> StoredBaseline:
    baseline = service.current_baseline()
    if baseline is None:
        raise HTTPException(status_code=404, detail="no baseline")
    return to_stored_baseline(baseline)


@router.post(
    "/commands/humidity",
    response_model=CommandResult,
    status_code=status.HTTP_200_OK,
    summary="Update humidity compensation",
    description="Queue ambient temperature and relative humidity for the gas sensor's humidity compensation.",
    responses={
        200: {"description": "Command queued"},
        400: {"model": ErrorResponse, "description": "Values do not convert to absolute humidity"},
        404: {"model": ErrorResponse, "description": "Gas sensor not enabled"},
        503: {"model": ErrorResponse, "description": "Gas sensor not connected"},
    },
    tags=["Commands"]
)
def update_humidity(
    body: HumidityCommand, service: ExporterService = Depends(get_service)
) -> CommandResult:
    """Forward a humidity compensation value to the gas sensor."""
    try:
        ok, msg = service.update_humidity(body.temperature, body.relative_humidity)
    except KeyError:
        raise HTTPException(status_code=404, detail="gas sensor not enabled")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not ok:
        raise HTTPException(status_code=503, detail=msg)
    return CommandResult(ok=True, message=msg)
