from fastapi import APIRouter, HTTPException

from app.api.deps import Ingestion
from app.models.telemetry import TelemetryEvent
from app.services.ingestion_service import TelemetryQueueFull

router = APIRouter()


@router.post("", status_code=201)
async def ingest_data(event: TelemetryEvent, service: Ingestion):
    try:
        await service.ingest_energy_usage(event)
    except TelemetryQueueFull as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"status": "accepted"}
