from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from trayplan.services.stage_schedule import Stage, TaskType


class ScheduledTaskRead(BaseModel):
    task_type: TaskType
    scheduled_at: datetime
    target_stage: Optional[Stage] = None

    model_config = {"from_attributes": True, "use_enum_values": True}


class CropTaskRead(ScheduledTaskRead):
    id: int
    crop_id: int
    status: Literal["pending", "running", "completed", "skipped", "failed"]
    claimed_at: Optional[datetime] = None
    attempts: int
    last_error: Optional[str]
    outcome: Optional[str]
    completed_at: Optional[datetime]
    created_at: datetime


class TaskRunSummary(BaseModel):
    processed: int = 0
    completed: int = 0
    skipped: int = 0
    failed: int = 0
