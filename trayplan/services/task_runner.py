"""
Executes due crop tasks.

Each task is claimed with a conditional update to running before its
handler runs, so overlapping runs (the cron job and a manual "run now") never
execute the same task twice. A claim older than CROP_TASK_CLAIM_TIMEOUT_MINUTES
belongs to a run that died and may be taken over. Any error after the claim
puts the task back to pending until CROP_TASK_MAX_ATTEMPTS is reached, then
marks it failed.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trayplan.core.config import settings
from trayplan.models.crop import Crop
from trayplan.models.task import CropTask
from trayplan.schemas.crop_task import TaskRunSummary
from trayplan.services.crop_tasks import get_due_tasks, stale_claim_cutoff
from trayplan.services.notifications import notify_task_done
from trayplan.services.stage_schedule import TaskType
from trayplan.services.stage_transitions import TASK_HANDLERS

logger = logging.getLogger(__name__)


async def _claim(db: AsyncSession, task_id: int, now: datetime) -> bool:
    result = await db.execute(
        update(CropTask)
        .where(
            CropTask.id == task_id,
            or_(
                CropTask.status == "pending",
                (CropTask.status == "running") & (CropTask.claimed_at <= stale_claim_cutoff(now)),
            ),
        )
        .values(status="running", claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def _record_failure(
    db: AsyncSession, task_id: int, exc: Exception, max_attempts: int
) -> Optional[str]:
    await db.rollback()
    task = await db.get(CropTask, task_id, populate_existing=True)
    if task is None:
        return None
    task.attempts += 1
    task.last_error = str(exc)[:1000]
    task.status = "failed" if task.attempts >= max_attempts else "pending"
    task.claimed_at = None
    await db.commit()
    return task.status


async def execute_task(
    db: AsyncSession,
    task_id: int,
    now: datetime,
    max_attempts: Optional[int] = None,
) -> Optional[str]:
    """
    Run one crop task. Returns the task's resulting status, or None when the
    task could not be claimed (finished, superseded or held by a live run).
    """
    max_attempts = max_attempts or settings.CROP_TASK_MAX_ATTEMPTS

    if not await _claim(db, task_id, now):
        logger.info("execute_task: task %d is not claimable, skipping", task_id)
        return None

    try:
        task = await db.get(CropTask, task_id, populate_existing=True)
        crop = await db.scalar(
            select(Crop)
            .where(Crop.id == task.crop_id)
            .options(selectinload(Crop.recipe))
            .execution_options(populate_existing=True)
        )
        if crop is None:
            logger.warning("execute_task: crop %d for task %d not found", task.crop_id, task_id)
            task.status = "skipped"
            task.outcome = "Crop not found"
            task.completed_at = now
            await db.commit()
            return task.status

        handler = TASK_HANDLERS[TaskType(task.task_type)]
        outcome = await handler(db, crop, task, now)
        task.status = "completed"
        task.outcome = outcome
        task.completed_at = now
        task.attempts += 1
        await db.commit()
    except Exception as exc:
        logger.exception("execute_task: task %d failed", task_id)
        return await _record_failure(db, task_id, exc, max_attempts)

    logger.info("execute_task: task %d — %s", task_id, outcome)
    await notify_task_done(db, crop, task, outcome)
    return task.status


async def process_due_tasks(
    db: AsyncSession, now: datetime, limit: Optional[int] = None
) -> TaskRunSummary:
    summary = TaskRunSummary()
    due_ids = [t.id for t in await get_due_tasks(db, now, limit)]
    if not due_ids:
        logger.info("process_due_tasks: no due tasks")
        return summary

    logger.info("process_due_tasks: %d due tasks", len(due_ids))
    for task_id in due_ids:
        status = await execute_task(db, task_id, now)
        if status is None:
            continue
        summary.processed += 1
        if status == "completed":
            summary.completed += 1
        elif status == "skipped":
            summary.skipped += 1
        else:
            summary.failed += 1
    return summary
