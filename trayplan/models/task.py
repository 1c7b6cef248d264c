from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trayplan.db.base import Base


class CropTask(Base):
    __tablename__ = "crop_tasks"

    id: Mapped[int] = mapped_column(primary_key=True)
    crop_id: Mapped[int] = mapped_column(ForeignKey("crops.id", ondelete="CASCADE"), index=True)

    task_type: Mapped[str] = mapped_column(
        Enum(
            "end_germination", "end_blackout", "suspend_watering", "expected_harvest",
            name="crop_task_type_enum",
        )
    )
    # Only set on end_germination / end_blackout
    target_stage: Mapped[Optional[str]] = mapped_column(
        Enum("blackout", "light", name="crop_task_target_stage_enum"), nullable=True
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    status: Mapped[str] = mapped_column(
        Enum("pending", "running", "completed", "skipped", "failed", name="crop_task_status_enum"),
        default="pending",
        index=True,
    )
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    outcome: Mapped[Optional[str]] = mapped_column(Text)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    crop: Mapped["Crop"] = relationship(back_populates="tasks")
