from fastapi import APIRouter, Query, Request

from app.api.deps import Events

router = APIRouter()


@router.get("")
async def list_alerts(
    request: Request,
    events: Events,
    limit: int = Query(default=100, ge=1, le=1000),
):
    topic = request.app.state.settings.alert_topic
    return [event["message"] for event in await events.get_events(topic, limit=limit)]
