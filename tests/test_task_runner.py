from datetime import datetime

from sqlalchemy import select

from trayplan.models.crop import Crop
from trayplan.models.logs import NotificationLog
from trayplan.models.task import CropTask
from trayplan.schemas.crop import CropCreate, RecipeCreate
from trayplan.services import notifications, stage_transitions
from trayplan.services.crop_tasks import get_due_tasks, list_crop_tasks
from trayplan.services.crops import create_crop, create_recipe, recalculate_all
from trayplan.services.stage_schedule import TaskType
from trayplan.services.task_runner import execute_task, process_due_tasks

PLANTED_AT = datetime(2024, 5, 1, 10, 0, 0)


async def _make_crop(db, blackout=2, suspend_hours=12):
    recipe = await create_recipe(db, RecipeCreate(
        name="Pea shoots",
        germination_days=3,
        blackout_days=blackout,
        light_days=5,
        suspend_water_hours=suspend_hours,
    ))
    return await create_crop(db, CropCreate(recipe_id=recipe.id, tray_number="7", planted_at=PLANTED_AT))


async def _task(db, crop_id, task_type):
    return await db.scalar(
        select(CropTask).where(CropTask.crop_id == crop_id, CropTask.task_type == task_type)
    )


async def test_due_tasks_advance_crop_through_blackout(db):
    crop = await _make_crop(db)
    now = datetime(2024, 5, 6, 12, 0)

    summary = await process_due_tasks(db, now)

    assert (summary.processed, summary.completed, summary.skipped, summary.failed) == (2, 2, 0, 0)
    await db.refresh(crop)
    assert crop.current_stage == "light"
    assert crop.blackout_at == now
    assert crop.light_at == now
    assert crop.watering_suspended_at is None

    pending = await list_crop_tasks(db, crop.id)
    assert [t.task_type for t in pending] == ["suspend_watering", "expected_harvest"]


async def test_zero_blackout_goes_straight_to_light(db):
    crop = await _make_crop(db, blackout=0)

    await process_due_tasks(db, datetime(2024, 5, 4, 10, 0))

    await db.refresh(crop)
    assert crop.current_stage == "light"
    assert crop.blackout_at is None
    assert crop.light_at == datetime(2024, 5, 4, 10, 0)


async def test_full_cycle_suspends_watering_and_marks_harvest_ready(db):
    crop = await _make_crop(db)
    now = datetime(2024, 6, 1)

    summary = await process_due_tasks(db, now)

    assert summary.completed == 4
    await db.refresh(crop)
    assert crop.current_stage == "light"
    assert crop.watering_suspended_at == now
    assert crop.harvest_ready_at == now
    tasks = await list_crop_tasks(db, crop.id, include_done=True)
    assert all(t.status == "completed" and t.completed_at == now for t in tasks)

    logs = (await db.scalars(select(NotificationLog).order_by(NotificationLog.id))).all()
    assert [log.notification_type for log in logs] == [
        "end_germination", "end_blackout", "suspend_watering", "expected_harvest",
    ]
    # No EMAIL_HOST configured in tests
    assert all(log.status == "skipped" for log in logs)


async def test_task_runs_only_once(db):
    crop = await _make_crop(db)
    task = await _task(db, crop.id, "end_germination")
    now = datetime(2024, 5, 4, 11, 0)

    assert await execute_task(db, task.id, now) == "completed"
    assert await execute_task(db, task.id, now) is None


async def test_transition_already_reached_is_a_no_op(db):
    crop = await _make_crop(db)
    crop.current_stage = "light"
    await db.commit()
    task = await _task(db, crop.id, "end_germination")

    assert await execute_task(db, task.id, datetime(2024, 5, 4, 11, 0)) == "completed"

    await db.refresh(task)
    await db.refresh(crop)
    assert "already at light" in task.outcome
    assert crop.current_stage == "light"
    assert crop.blackout_at is None


async def test_failing_handler_retries_then_fails(db, monkeypatch):
    async def broken(db, crop, task, now):
        raise RuntimeError("valve controller offline")

    monkeypatch.setitem(stage_transitions.TASK_HANDLERS, TaskType.SUSPEND_WATERING, broken)
    crop = await _make_crop(db)
    task = await _task(db, crop.id, "suspend_watering")
    now = datetime(2024, 5, 10, 23, 0)

    assert await execute_task(db, task.id, now, max_attempts=2) == "pending"
    await db.refresh(task)
    assert task.attempts == 1
    assert task.last_error == "valve controller offline"

    assert await execute_task(db, task.id, now, max_attempts=2) == "failed"
    await db.refresh(task)
    assert task.attempts == 2

    await db.refresh(crop)
    assert crop.watering_suspended_at is None


async def test_task_for_missing_crop_is_skipped(db):
    orphan = CropTask(crop_id=4242, task_type="expected_harvest", scheduled_at=PLANTED_AT, status="pending")
    db.add(orphan)
    await db.commit()

    summary = await process_due_tasks(db, datetime(2024, 5, 2))

    assert summary.skipped == 1
    await db.refresh(orphan)
    assert orphan.status == "skipped"


async def test_email_failure_is_logged_not_raised(db, monkeypatch):
    async def failing_send(subject, body):
        raise ConnectionError("smtp down")

    monkeypatch.setattr(notifications, "send_email", failing_send)
    crop = await _make_crop(db)
    task = await _task(db, crop.id, "end_germination")

    assert await execute_task(db, task.id, datetime(2024, 5, 4, 11, 0)) == "completed"

    log = await db.scalar(select(NotificationLog))
    assert log.status == "failed"
    assert log.crop_id == crop.id
    assert "Tray #7" in log.message_preview


async def test_resume_watering(db):
    crop = await _make_crop(db)
    await process_due_tasks(db, datetime(2024, 5, 10, 23, 0))
    await db.refresh(crop)
    assert crop.watering_suspended_at is not None

    assert await stage_transitions.resume_watering(db, crop) is True
    assert crop.watering_suspended_at is None
    assert await stage_transitions.resume_watering(db, crop) is False


async def test_harvested_crop_is_not_marked_ready(db):
    crop = await _make_crop(db)
    crop.current_stage = "harvested"
    await db.commit()
    task = await _task(db, crop.id, "expected_harvest")

    await execute_task(db, task.id, datetime(2024, 6, 1))

    await db.refresh(crop)
    assert crop.harvest_ready_at is None
    assert (await db.get(Crop, crop.id)).current_stage == "harvested"


async def test_recalculation_after_completed_run_leaves_nothing_due(db):
    crop = await _make_crop(db)
    await process_due_tasks(db, datetime(2024, 6, 1))

    assert await recalculate_all(db, datetime(2024, 6, 1, 0, 5)) == (1, 0)

    assert await get_due_tasks(db, datetime(2024, 6, 2)) == []
    summary = await process_due_tasks(db, datetime(2024, 6, 2))
    assert summary.processed == 0
    assert len(await list_crop_tasks(db, crop.id, include_done=True)) == 4
    assert len((await db.scalars(select(NotificationLog))).all()) == 4


async def test_resumed_watering_survives_recalculation(db):
    crop = await _make_crop(db)
    await process_due_tasks(db, datetime(2024, 5, 10, 23, 0))
    await db.refresh(crop)
    assert await stage_transitions.resume_watering(db, crop, now=datetime(2024, 5, 10, 23, 2))

    await recalculate_all(db, datetime(2024, 5, 10, 23, 5))
    summary = await process_due_tasks(db, datetime(2024, 5, 11, 12, 0))

    assert (summary.processed, summary.completed) == (1, 1)
    await db.refresh(crop)
    assert crop.watering_suspended_at is None
    assert crop.watering_resumed_at == datetime(2024, 5, 10, 23, 2)
    assert crop.harvest_ready_at == datetime(2024, 5, 11, 12, 0)
    logs = (await db.scalars(select(NotificationLog).order_by(NotificationLog.id))).all()
    assert [log.notification_type for log in logs] == [
        "end_germination", "end_blackout", "suspend_watering", "expected_harvest",
    ]


async def test_suspend_task_after_manual_resume_is_a_no_op(db):
    crop = await _make_crop(db)
    crop.watering_resumed_at = datetime(2024, 5, 10, 20, 0)
    await db.commit()
    task = await _task(db, crop.id, "suspend_watering")

    assert await execute_task(db, task.id, datetime(2024, 5, 10, 23, 0)) == "completed"

    await db.refresh(crop)
    assert crop.watering_suspended_at is None


async def test_stale_running_claim_is_taken_over(db):
    crop = await _make_crop(db)
    task = await _task(db, crop.id, "end_germination")
    task.status = "running"
    task.claimed_at = datetime(2024, 5, 4, 9, 0)
    await db.commit()

    now = datetime(2024, 5, 4, 11, 0)
    summary = await process_due_tasks(db, now)

    assert summary.completed == 1
    await db.refresh(task)
    assert task.status == "completed"
    assert task.claimed_at == now


async def test_live_running_claim_is_left_alone(db):
    crop = await _make_crop(db)
    task = await _task(db, crop.id, "end_germination")
    task.status = "running"
    task.claimed_at = datetime(2024, 5, 4, 10, 50)
    await db.commit()

    assert await execute_task(db, task.id, datetime(2024, 5, 4, 11, 0)) is None

    await db.refresh(task)
    assert task.status == "running"
    assert task.attempts == 0


async def test_error_before_handler_releases_the_claim(db, monkeypatch):
    monkeypatch.delitem(stage_transitions.TASK_HANDLERS, TaskType.EXPECTED_HARVEST)
    crop = await _make_crop(db)
    task = await _task(db, crop.id, "expected_harvest")

    assert await execute_task(db, task.id, datetime(2024, 6, 1)) == "pending"

    await db.refresh(task)
    assert task.status == "pending"
    assert task.attempts == 1
    assert task.claimed_at is None
    assert "expected_harvest" in task.last_error
