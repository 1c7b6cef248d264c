"""
Notification dispatch service.

Sends an email and writes a NotificationLog record. Never raises on failure —
logs the error and records "failed" status instead.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trayplan.models.crop import Crop
from trayplan.models.logs import NotificationLog
from trayplan.models.task import CropTask
from trayplan.services.email import send_email

logger = logging.getLogger(__name__)

_SUBJECTS = {
    "end_germination": "Germination complete",
    "end_blackout": "Blackout complete",
    "suspend_watering": "Stop watering",
    "expected_harvest": "Ready to harvest",
}


async def dispatch_notification(
    db: AsyncSession,
    crop_id: Optional[int],
    notification_type: str,
    subject: str,
    body: str,
) -> str:
    """Send an email notification and log the result to NotificationLog. Returns the logged status."""
    try:
        status = "sent" if await send_email(subject, body) else "skipped"
    except Exception as exc:
        logger.error(
            "dispatch_notification: email failed for crop %s: %s", crop_id, exc
        )
        status = "failed"

    log = NotificationLog(
        crop_id=crop_id,
        notification_type=notification_type,
        channel="email",
        status=status,
        message_preview=body[:500],
        timestamp=datetime.now(timezone.utc),
    )
    db.add(log)
    await db.commit()
    return status


async def notify_task_done(db: AsyncSession, crop: Crop, task: CropTask, outcome: str) -> str:
    tray = f"Tray #{crop.tray_number}" if crop.tray_number else f"Crop {crop.id}"
    recipe_name = crop.recipe.name if crop.recipe else "unknown recipe"
    subject = f"TrayPlan — {_SUBJECTS.get(task.task_type, task.task_type)}: {tray}"
    body = (
        f"{tray} ({recipe_name})\n\n"
        f"{outcome}.\n\n"
        f"Scheduled for: {task.scheduled_at:%Y-%m-%d %H:%M}"
    )
    return await dispatch_notification(db, crop.id, task.task_type, subject, body)
