from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trayplan.db.base import Base


class Recipe(Base):
    __tablename__ = "recipes"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))

    # Stage durations in days, fractional allowed
    germination_days: Mapped[float] = mapped_column(Float, default=0)
    blackout_days: Mapped[float] = mapped_column(Float, default=0)
    light_days: Mapped[float] = mapped_column(Float, default=0)
    suspend_water_hours: Mapped[float] = mapped_column(Float, default=0)

    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    crops: Mapped[list["Crop"]] = relationship(back_populates="recipe")

    def total_days(self) -> float:
        return (self.germination_days or 0) + (self.blackout_days or 0) + (self.light_days or 0)


class Crop(Base):
    __tablename__ = "crops"

    id: Mapped[int] = mapped_column(primary_key=True)
    recipe_id: Mapped[Optional[int]] = mapped_column(ForeignKey("recipes.id", ondelete="SET NULL"), index=True)
    tray_number: Mapped[Optional[str]] = mapped_column(String(20))

    current_stage: Mapped[str] = mapped_column(
        Enum("germination", "blackout", "light", "harvested", name="crop_stage_enum"),
        default="germination",
    )

    # germination_at is the planting time schedules are computed from
    germination_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    blackout_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    light_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    harvested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    watering_suspended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    watering_resumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    harvest_ready_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    recipe: Mapped[Optional["Recipe"]] = relationship(back_populates="crops")
    tasks: Mapped[list["CropTask"]] = relationship(back_populates="crop", cascade="all, delete-orphan")
