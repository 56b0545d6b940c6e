import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from vslgen.models.base import Base, TimestampMixin, UUIDMixin

VIDEO_STATUSES = ("pending", "processing", "completed", "failed")


class GeneratedVideo(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "generated_videos"

    # One record per lead; re-runs overwrite it
    lead_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unique_slug: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    # Status: pending, processing, completed, failed
    status: Mapped[str] = mapped_column(String(50), default="pending", index=True)

    # Artifacts (storage keys)
    video_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    preview_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    thumbnail_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    background_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    views: Mapped[int] = mapped_column(Integer, default=0)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
