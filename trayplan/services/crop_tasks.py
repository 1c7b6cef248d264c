"""
Crop task store.

Persists the output of the stage-schedule calculator as CropTask rows.
Rescheduling is an atomic replace per crop: the crop row is locked, the
pending tasks it supersedes are deleted and the fresh schedule inserted in
one commit.

A recalculation (now given) only replaces future work. Pending tasks that
are already due stay for the runner, nothing at or before now is inserted,
and tasks whose effect the crop already shows are left out: transitions to a
stage it has reached, a watering suspension that was applied or undone, a
harvest already flagged.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trayplan.core.config import settings
from trayplan.models.crop import Crop
from trayplan.models.task import CropTask
from trayplan.services.stage_schedule import (
    STAGE_ORDER,
    GrowCycleParameters,
    ScheduledTask,
    Stage,
    TaskType,
    compute_schedule,
    sort_by_time,
)

logger = logging.getLogger(__name__)


class CropNotFound(LookupError):
    pass


def _utc(value: datetime) -> datetime:
    # Naive timestamps from the store are UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def grow_cycle_parameters(crop: Crop) -> Optional[GrowCycleParameters]:
    """Build calculator input from a crop and its recipe. None if either is incomplete."""
    recipe = crop.recipe
    if recipe is None or crop.germination_at is None:
        return None
    return GrowCycleParameters(
        planted_at=crop.germination_at,
        germination_duration_days=recipe.germination_days or 0,
        blackout_duration_days=recipe.blackout_days or 0,
        light_duration_days=recipe.light_days or 0,
        suspend_watering_before_harvest_hours=recipe.suspend_water_hours or 0,
    )


def still_needed(task: ScheduledTask, crop: Crop) -> bool:
    """False when the crop already shows the effect the task would apply."""
    current = STAGE_ORDER.index(Stage(crop.current_stage))
    if current >= STAGE_ORDER.index(Stage.HARVESTED):
        return False
    if task.target_stage is not None:
        return STAGE_ORDER.index(task.target_stage) > current
    if task.task_type is TaskType.SUSPEND_WATERING:
        return crop.watering_suspended_at is None and crop.watering_resumed_at is None
    if task.task_type is TaskType.EXPECTED_HARVEST:
        return crop.harvest_ready_at is None
    return True


async def delete_pending_tasks(
    db: AsyncSession, crop_id: int, after: Optional[datetime] = None
) -> int:
    """Delete the crop's pending tasks, or only those scheduled after `after`."""
    q = delete(CropTask).where(CropTask.crop_id == crop_id, CropTask.status == "pending")
    if after is not None:
        q = q.where(CropTask.scheduled_at > after)
    result = await db.execute(q)
    return result.rowcount or 0


async def schedule_crop_tasks(
    db: AsyncSession, crop_id: int, now: Optional[datetime] = None
) -> list[CropTask]:
    """
    Replace the crop's pending tasks with a freshly computed schedule.

    Without now the whole schedule is written (a new crop). With now only
    future work is replaced, see the module docstring.

    Raises CropNotFound for an unknown crop. InvalidParameter from the
    calculator rolls the replace back and propagates.
    """
    crop = await db.scalar(
        select(Crop)
        .where(Crop.id == crop_id)
        .options(selectinload(Crop.recipe))
        .with_for_update(of=Crop)
        .execution_options(populate_existing=True)
    )
    if crop is None:
        raise CropNotFound(f"Crop {crop_id} not found")

    try:
        deleted = await delete_pending_tasks(db, crop_id, after=now)

        params = grow_cycle_parameters(crop)
        if params is None:
            logger.warning(
                "schedule_crop_tasks: crop %d has no recipe or planting time, no tasks scheduled", crop_id
            )
            await db.commit()
            return []

        scheduled = [t for t in sort_by_time(compute_schedule(params)) if still_needed(t, crop)]
        if now is not None:
            kept_types = set((await db.scalars(
                select(CropTask.task_type).where(
                    CropTask.crop_id == crop_id, CropTask.status.in_(("pending", "running"))
                )
            )).all())
            scheduled = [
                t for t in scheduled
                if _utc(t.scheduled_at) > _utc(now) and t.task_type.value not in kept_types
            ]

        tasks = [
            CropTask(
                crop_id=crop_id,
                task_type=t.task_type.value,
                target_stage=t.target_stage.value if t.target_stage else None,
                scheduled_at=t.scheduled_at,
                status="pending",
                attempts=0,
            )
            for t in scheduled
        ]
        db.add_all(tasks)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    for t in tasks:
        await db.refresh(t)
    logger.info(
        "schedule_crop_tasks: crop %d — replaced %d pending tasks with %d", crop_id, deleted, len(tasks)
    )
    return tasks


async def list_crop_tasks(
    db: AsyncSession, crop_id: int, include_done: bool = False
) -> list[CropTask]:
    q = select(CropTask).where(CropTask.crop_id == crop_id)
    if not include_done:
        q = q.where(CropTask.status.in_(("pending", "running")))
    result = await db.execute(q.order_by(CropTask.scheduled_at, CropTask.id))
    return list(result.scalars().all())


def stale_claim_cutoff(now: datetime) -> datetime:
    return now - timedelta(minutes=settings.CROP_TASK_CLAIM_TIMEOUT_MINUTES)


async def get_due_tasks(db: AsyncSession, now: datetime, limit: Optional[int] = None) -> list[CropTask]:
    """Pending tasks that are due, plus running ones whose claim has gone stale."""
    q = (
        select(CropTask)
        .where(
            CropTask.scheduled_at <= now,
            or_(
                CropTask.status == "pending",
                (CropTask.status == "running") & (CropTask.claimed_at <= stale_claim_cutoff(now)),
            ),
        )
        .order_by(CropTask.scheduled_at, CropTask.id)
    )
    if limit is not None:
        q = q.limit(limit)
    result = await db.execute(q)
    return list(result.scalars().all())
