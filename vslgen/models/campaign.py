from typing import Any

from sqlalchemy import Float, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vslgen.models.base import Base, TimestampMixin, UUIDMixin


class Campaign(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "campaigns"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Uploaded talking-head videos (storage keys)
    intro_video_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    secondary_video_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Style: small_bubble | big_bubble | full_screen
    video_style: Mapped[str] = mapped_column(String(50), default="small_bubble")
    video_position: Mapped[str] = mapped_column(String(50), default="bottom_left")
    video_shape: Mapped[str] = mapped_column(String(50), default="circle")
    display_delay: Mapped[float | None] = mapped_column(Float, nullable=True)
    fullscreen_transition_time: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Background scroll: stepped | smooth ("stay_down" from older rows reads as stepped)
    scroll_behavior: Mapped[str] = mapped_column(String(50), default="stepped")
    scroll_duration: Mapped[float | None] = mapped_column(Float, nullable=True)

    leads: Mapped[list["Lead"]] = relationship(  # noqa: F821
        "Lead", back_populates="campaign", cascade="all, delete-orphan"
    )

    def style_config(self) -> dict[str, Any]:
        """Style keys as consumed by ``resolve_style``."""
        return {
            "video_style": self.video_style,
            "video_position": self.video_position,
            "video_shape": self.video_shape,
            "display_delay": self.display_delay,
            "fullscreen_transition_time": self.fullscreen_transition_time,
            "scroll_behavior": self.scroll_behavior,
            "scroll_duration": self.scroll_duration,
        }
