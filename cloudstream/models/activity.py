from __future__ import annotations

from sqlalchemy import Column, Index, Integer, Text

from . import ActivityBase


class ActivityEvent(ActivityBase):
    __tablename__ = "activity_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset_id = Column(Text, nullable=False)
    action = Column(Text, nullable=False)
    detail = Column(Text)  # JSON object
    created_at = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_activity_events_asset_id", "asset_id"),
        Index("idx_activity_events_created_at", "created_at"),
    )
