from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

INGESTION_PATH = "/api/v1/ingestions"


class BackpressureMiddleware(BaseHTTPMiddleware):
    """Sheds telemetry ingestion while the inbound partitions are backed up."""

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(INGESTION_PATH):
            return await call_next(request)

        settings = request.app.state.settings
        pending = request.app.state.event_bus.get_queue_size()

        if pending >= settings.backpressure_reject_threshold:
            return JSONResponse(
                status_code=503,
                content={
                    "error": "Telemetry ingestion paused, inbound queue saturated",
                    "pending_events": pending,
                },
                headers={"Retry-After": "5"},
            )

        if pending >= settings.backpressure_queue_threshold:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Telemetry ingestion throttled, slow down",
                    "pending_events": pending,
                },
                headers={"Retry-After": "1"},
            )

        return await call_next(request)
