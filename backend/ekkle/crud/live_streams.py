from datetime import datetime

from sqlalchemy.orm import Session

from ekkle.core.time import utcnow
from ekkle.models.enums import LiveStreamStatusEnum
from ekkle.models.live_streams import LiveStream


def create_live_stream(
    db: Session,
    *,
    church_id: str,
    title: str,
    livekit_room_name: str | None = None,
    scheduled_start: datetime | None = None,
    status: LiveStreamStatusEnum = LiveStreamStatusEnum.SCHEDULED,
) -> LiveStream:
    stream = LiveStream(
        church_id=church_id,
        title=title,
        livekit_room_name=livekit_room_name,
        scheduled_start=scheduled_start,
        status=status.value,
    )
    db.add(stream)
    db.commit()
    db.refresh(stream)
    return stream


def get_live_stream_by_room_name(db: Session, room_name: str) -> LiveStream | None:
    return (
        db.query(LiveStream)
        .filter(LiveStream.livekit_room_name == room_name)
        .first()
    )


def mark_stream_live(db: Session, room_name: str, egress_id: str) -> int:
    """
    Flag every stream bound to the room as live and remember the egress.

    Returns the number of rows touched.
    """
    now = utcnow()
    streams = db.query(LiveStream).filter(LiveStream.livekit_room_name == room_name).all()
    for stream in streams:
        stream.status = LiveStreamStatusEnum.LIVE.value
        stream.livekit_egress_id = egress_id
        stream.actual_start = now
    db.commit()
    return len(streams)


def end_live_stream_for_room(db: Session, room_name: str) -> LiveStream | None:
    """
    End the room's stream if it is currently live. Streams in any other
    state are left untouched.
    """
    stream = get_live_stream_by_room_name(db, room_name)
    if stream is None or stream.status != LiveStreamStatusEnum.LIVE.value:
        return None
    stream.status = LiveStreamStatusEnum.ENDED.value
    stream.actual_end = utcnow()
    stream.livekit_egress_id = None
    db.commit()
    db.refresh(stream)
    return stream
