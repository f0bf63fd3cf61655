from typing import Annotated

from fastapi import Depends, Request

from app.core.scheduler import HourlyScheduler
from app.services.ingestion_service import IngestionService
from app.services.usage_service import UsageAggregator
from app.storage.event_store import EventStore


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service


def get_event_store(request: Request) -> EventStore:
    return request.app.state.event_store


def get_usage_scheduler(request: Request) -> HourlyScheduler:
    return request.app.state.usage_scheduler


def get_usage_aggregator(request: Request) -> UsageAggregator:
    return request.app.state.usage_aggregator


Ingestion = Annotated[IngestionService, Depends(get_ingestion_service)]
Events = Annotated[EventStore, Depends(get_event_store)]
UsageScheduler = Annotated[HourlyScheduler, Depends(get_usage_scheduler)]
Aggregator = Annotated[UsageAggregator, Depends(get_usage_aggregator)]
