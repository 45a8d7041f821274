"""Sync log — one row per batch run (SKU repair, inventory push, duplication fix)."""

import uuid

from sqlalchemy import Column, ForeignKey, Index, Integer, JSON, String, Text

from .base import Base, UTCDateTime, utcnow


class SyncLog(Base):
    """Progress and outcome of a batch.

    current_cursor is the opaque catalog page token a paused SKU repair
    resumes from. Status moves running -> paused|completed|failed|cancelled
    and paused -> running|cancelled (see services/sync_log_service.py).
    """

    __tablename__ = "sync_logs"
    id = Column(Integer, primary_key=True)
    process_id = Column(String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    sync_type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="running")
    delivery_id = Column(Integer, ForeignKey("deliveries.id", ondelete="SET NULL"))

    total_items = Column(Integer, nullable=False, default=0)
    processed_items = Column(Integer, nullable=False, default=0)
    updated_items = Column(Integer, nullable=False, default=0)
    skipped_items = Column(Integer, nullable=False, default=0)
    error_items = Column(Integer, nullable=False, default=0)
    products_scanned = Column(Integer, nullable=False, default=0)

    current_cursor = Column(Text)
    api_calls = Column(Integer, nullable=False, default=0)
    rate_limit_hits = Column(Integer, nullable=False, default=0)
    details = Column(JSON)
    error_message = Column(Text)

    started_at = Column(UTCDateTime, nullable=False, default=utcnow)
    completed_at = Column(UTCDateTime)
    last_activity_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (Index("ix_sync_logs_type_started", "sync_type", "started_at"),)
