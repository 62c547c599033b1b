from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declared_attr

from ekkle.core.time import utcnow


class TimestampMixin:
    """created_at/updated_at columns, both naive UTC."""

    @declared_attr
    def created_at(cls):
        return Column(DateTime, default=utcnow, nullable=False)

    @declared_attr
    def updated_at(cls):
        # onupdate fires on ORM flushes only; bulk query updates skip it.
        return Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
