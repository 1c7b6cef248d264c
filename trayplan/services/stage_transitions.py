"""
Crop stage transitions triggered by due crop tasks.

TASK_HANDLERS maps each task type to the coroutine that applies its side
effect to the crop. Handlers mutate the crop in the caller's session and
return a short outcome message; committing is left to the caller.
"""
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trayplan.models.crop import Crop
from trayplan.models.task import CropTask
from trayplan.services.stage_schedule import STAGE_ORDER, Stage, TaskType

logger = logging.getLogger(__name__)

TaskHandler = Callable[[AsyncSession, Crop, CropTask, datetime], Awaitable[str]]

_STAGE_TIMESTAMP = {
    Stage.GERMINATION: "germination_at",
    Stage.BLACKOUT: "blackout_at",
    Stage.LIGHT: "light_at",
    Stage.HARVESTED: "harvested_at",
}


def stage_index(stage: str) -> int:
    return STAGE_ORDER.index(Stage(stage))


async def advance_to_target_stage(db: AsyncSession, crop: Crop, task: CropTask, now: datetime) -> str:
    if not task.target_stage:
        raise ValueError(f"Task {task.id} ({task.task_type}) has no target stage")

    target = Stage(task.target_stage)
    current = Stage(crop.current_stage)
    if stage_index(current) >= stage_index(target):
        return f"Crop {crop.id} already at {current.value}, no transition to {target.value}"

    # Skipped intermediate stages keep a null timestamp
    crop.current_stage = target.value
    setattr(crop, _STAGE_TIMESTAMP[target], now)
    logger.info("stage transition: crop %d %s -> %s", crop.id, current.value, target.value)
    return f"Crop {crop.id} advanced from {current.value} to {target.value}"


async def suspend_watering(db: AsyncSession, crop: Crop, task: CropTask, now: datetime) -> str:
    if crop.watering_suspended_at is not None:
        return f"Watering already suspended for crop {crop.id}"
    if crop.watering_resumed_at is not None:
        return f"Watering was resumed by hand for crop {crop.id}, not suspending again"
    crop.watering_suspended_at = now
    logger.info("suspend_watering: crop %d", crop.id)
    return f"Watering suspended for crop {crop.id}"


async def mark_harvest_ready(db: AsyncSession, crop: Crop, task: CropTask, now: datetime) -> str:
    if crop.current_stage == Stage.HARVESTED.value:
        return f"Crop {crop.id} already harvested"
    if crop.harvest_ready_at is None:
        crop.harvest_ready_at = now
    return f"Crop {crop.id} is ready to harvest"


async def resume_watering(db: AsyncSession, crop: Crop, now: Optional[datetime] = None) -> bool:
    """
    Clear a watering suspension. Returns False if watering was not suspended.

    The resume time is kept so later recalculations do not suspend again.
    """
    if crop.watering_suspended_at is None:
        return False
    crop.watering_suspended_at = None
    crop.watering_resumed_at = now or datetime.now(timezone.utc)
    await db.commit()
    logger.info("resume_watering: crop %d", crop.id)
    return True


TASK_HANDLERS: dict[TaskType, TaskHandler] = {
    TaskType.END_GERMINATION: advance_to_target_stage,
    TaskType.END_BLACKOUT: advance_to_target_stage,
    TaskType.SUSPEND_WATERING: suspend_watering,
    TaskType.EXPECTED_HARVEST: mark_harvest_ready,
}
