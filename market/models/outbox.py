import uuid
from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime, Integer

from market.models.base import Base


class OutboxEvent(Base):
    __tablename__ = "outbox"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: f"obx_{uuid.uuid4().hex}")

    aggregate_type: Mapped[str] = mapped_column(String(100), nullable=False)  # e.g. "listing"
    aggregate_id: Mapped[str] = mapped_column(String(200), nullable=False)
    event_type: Mapped[str] = mapped_column(String(200), nullable=False)      # e.g. "sale.completed"

    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")  # pending/processing/done/failed
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    lease_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lease_expires_at: Mapped[str | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_started_at: Mapped[str | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_attempt_at: Mapped[str | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    processed_at: Mapped[str | None] = mapped_column(DateTime(timezone=True), nullable=True)
