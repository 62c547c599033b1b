from sqlalchemy import Column, DateTime, Index, Integer, String

from ekkle.core.db import Base
from ekkle.models.enums import LiveStreamStatusEnum
from ekkle.models.mixins import TimestampMixin


class LiveStream(TimestampMixin, Base):
    __tablename__ = "live_streams"
    __table_args__ = (
        Index("ix_live_streams_church_status", "church_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    church_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    status = Column(
        String,
        nullable=False,
        default=LiveStreamStatusEnum.SCHEDULED.value,
        index=True,
    )
    livekit_room_name = Column(String, nullable=True, unique=True, index=True)
    livekit_egress_id = Column(String, nullable=True)
    scheduled_start = Column(DateTime, nullable=True)
    actual_start = Column(DateTime, nullable=True)
    actual_end = Column(DateTime, nullable=True)
