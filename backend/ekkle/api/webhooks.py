import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ekkle.core.db import get_db
from ekkle.core.metrics import record_webhook_event
from ekkle.crud.live_streams import end_live_stream_for_room, mark_stream_live
from ekkle.integrations.livekit import LiveKitNotConfigured, WebhookVerificationError, verify_webhook
from ekkle.schemas.livekit import (
    LIVEKIT_EVENT_TYPES,
    EgressEnded,
    EgressStarted,
    EgressUpdated,
    ParticipantJoined,
    ParticipantLeft,
    RoomFinished,
    RoomStarted,
    WebhookAck,
    livekit_event_adapter,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

PROVIDER = "livekit"


def _end_stream(db: Session, room_name: str, reason: str) -> None:
    stream = end_live_stream_for_room(db, room_name)
    if stream is not None:
        logger.info(
            "livekit.stream_ended",
            extra={"stream_id": stream.id, "room_name": room_name, "reason": reason},
        )


def handle_livekit_event(db: Session, event) -> None:
    if isinstance(event, RoomFinished):
        _end_stream(db, event.room.name, "room_finished")
    elif isinstance(event, EgressStarted):
        if event.egress_info.room_name:
            updated = mark_stream_live(db, event.egress_info.room_name, event.egress_info.egress_id)
            logger.info(
                "livekit.stream_live",
                extra={
                    "room_name": event.egress_info.room_name,
                    "egress_id": event.egress_info.egress_id,
                    "streams_updated": updated,
                },
            )
    elif isinstance(event, EgressEnded):
        if event.egress_info.room_name:
            _end_stream(db, event.egress_info.room_name, "egress_ended")
    elif isinstance(event, EgressUpdated):
        logger.info(
            "livekit.egress_updated",
            extra={"egress_id": event.egress_info.egress_id, "egress_status": event.egress_info.status},
        )
    elif isinstance(event, (ParticipantJoined, ParticipantLeft)):
        logger.info(
            f"livekit.{event.event}",
            extra={"participant": event.participant.identity},
        )
    elif isinstance(event, RoomStarted):
        logger.info("livekit.room_started", extra={"room_name": event.room.name})


@router.post("/livekit", response_model=WebhookAck)
async def livekit_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    body = await request.body()
    auth_header = request.headers.get("authorization")
    if not auth_header:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No authorization header")
    try:
        verify_webhook(body, auth_header)
    except LiveKitNotConfigured as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="LiveKit webhook is not configured",
        ) from exc
    except WebhookVerificationError as exc:
        record_webhook_event(PROVIDER, None, "rejected")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature") from exc

    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload") from exc
    event_type = payload.get("event") if isinstance(payload, dict) else None
    if not isinstance(event_type, str):
        event_type = None

    if event_type is None or event_type not in LIVEKIT_EVENT_TYPES:
        logger.info("livekit.unhandled_event", extra={"event_type": event_type})
        record_webhook_event(PROVIDER, event_type, "ignored")
        return WebhookAck(ignored=True)

    try:
        event = livekit_event_adapter.validate_python(payload)
    except ValidationError as exc:
        record_webhook_event(PROVIDER, event_type, "invalid")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload") from exc

    handle_livekit_event(db, event)
    record_webhook_event(PROVIDER, event_type, "processed")
    return WebhookAck()
