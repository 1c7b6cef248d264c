"""
ARQ crop task jobs.

process_crop_tasks — runs every 15 minutes
    Executes every pending crop task whose scheduled time has passed and
    notifies staff of each stage change.

recalculate_crop_tasks — runs daily at 03:00 UTC
    Rebuilds the pending schedule of every crop not yet harvested from its
    current recipe.
"""
import logging
from datetime import datetime, timezone

from trayplan.core.config import settings
from trayplan.db.session import AsyncSessionLocal
from trayplan.models.logs import PipelineRun
from trayplan.services.crops import recalculate_all
from trayplan.services.task_runner import process_due_tasks

logger = logging.getLogger(__name__)


def _finish(pipeline: PipelineRun, started_at: datetime, status: str) -> None:
    finished_at = datetime.now(timezone.utc)
    pipeline.status = status
    pipeline.finished_at = finished_at
    pipeline.duration_ms = int((finished_at - started_at).total_seconds() * 1000)


async def process_crop_tasks(ctx: dict) -> dict:
    """Execute due crop tasks. Runs every 15 minutes."""
    logger.info("process_crop_tasks: starting")
    started_at = datetime.now(timezone.utc)

    async with AsyncSessionLocal() as db:
        pipeline = PipelineRun(
            pipeline_name="crop_tasks",
            status="running",
            started_at=started_at,
        )
        db.add(pipeline)
        await db.commit()
        await db.refresh(pipeline)

        try:
            summary = await process_due_tasks(db, started_at, limit=settings.CROP_TASK_BATCH_SIZE)

            _finish(pipeline, started_at, "success")
            pipeline.records_processed = summary.processed
            await db.commit()

        except Exception as exc:
            logger.exception("process_crop_tasks: unexpected error")
            await db.rollback()
            _finish(pipeline, started_at, "failed")
            pipeline.error_message = str(exc)
            await db.commit()
            raise

    logger.info(
        "process_crop_tasks: complete — %d processed, %d completed, %d skipped, %d failed",
        summary.processed, summary.completed, summary.skipped, summary.failed,
    )
    return summary.model_dump()


async def recalculate_crop_tasks(ctx: dict) -> dict:
    """Rebuild pending schedules for all growing crops. Runs daily at 03:00 UTC."""
    logger.info("recalculate_crop_tasks: starting")
    started_at = datetime.now(timezone.utc)

    async with AsyncSessionLocal() as db:
        pipeline = PipelineRun(
            pipeline_name="crop_task_recalculation",
            status="running",
            started_at=started_at,
        )
        db.add(pipeline)
        await db.commit()
        await db.refresh(pipeline)

        try:
            rescheduled, failed = await recalculate_all(db, started_at)

            _finish(pipeline, started_at, "success")
            pipeline.records_processed = rescheduled
            if failed:
                pipeline.error_message = f"{failed} crops could not be rescheduled"
            await db.commit()

        except Exception as exc:
            logger.exception("recalculate_crop_tasks: unexpected error")
            await db.rollback()
            _finish(pipeline, started_at, "failed")
            pipeline.error_message = str(exc)
            await db.commit()
            raise

    logger.info("recalculate_crop_tasks: complete — %d rescheduled, %d failed", rescheduled, failed)
    return {"rescheduled": rescheduled, "failed": failed}
