from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from trayplan.db.base import Base


class PipelineRun(Base):
    __tablename__ = "pipeline_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    pipeline_name: Mapped[str] = mapped_column(String(100), index=True)
    status: Mapped[str] = mapped_column(
        Enum("running", "success", "failed", "skipped", name="pipeline_status_enum")
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer)
    records_processed: Mapped[Optional[int]] = mapped_column(Integer)
    error_message: Mapped[Optional[str]] = mapped_column(Text)


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    crop_id: Mapped[Optional[int]] = mapped_column(ForeignKey("crops.id", ondelete="SET NULL"), index=True)
    notification_type: Mapped[str] = mapped_column(
        Enum(
            "end_germination", "end_blackout", "suspend_watering", "expected_harvest", "custom",
            name="notification_type_enum",
        )
    )
    channel: Mapped[str] = mapped_column(
        Enum("email", name="notification_channel_enum"), default="email"
    )
    status: Mapped[str] = mapped_column(
        Enum("sent", "skipped", "failed", name="notification_status_enum")
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
    message_preview: Mapped[Optional[str]] = mapped_column(String(500))
