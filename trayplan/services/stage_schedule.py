"""
Stage-offset schedule calculator.

Turns a recipe's per-stage day counts into the absolute-time tasks a crop
passes through between planting and harvest. Pure: no I/O, no clock, no
timezone conversion: planted_at is used exactly as the caller supplied it.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

Number = Union[int, float]


class InvalidParameter(ValueError):
    """Raised when a grow-cycle duration is negative, not finite, or out of range."""


class TaskType(str, Enum):
    END_GERMINATION = "end_germination"
    END_BLACKOUT = "end_blackout"
    SUSPEND_WATERING = "suspend_watering"
    EXPECTED_HARVEST = "expected_harvest"


class Stage(str, Enum):
    GERMINATION = "germination"
    BLACKOUT = "blackout"
    LIGHT = "light"
    HARVESTED = "harvested"


# Lifecycle order; a transition only moves a crop forward in it
STAGE_ORDER: tuple[Stage, ...] = (Stage.GERMINATION, Stage.BLACKOUT, Stage.LIGHT, Stage.HARVESTED)


@dataclass(frozen=True)
class GrowCycleParameters:
    planted_at: datetime
    germination_duration_days: Number
    blackout_duration_days: Number
    light_duration_days: Number
    suspend_watering_before_harvest_hours: Number = 0


@dataclass(frozen=True)
class ScheduledTask:
    task_type: TaskType
    scheduled_at: datetime
    target_stage: Optional[Stage] = None


# ── Calculator ────────────────────────────────────────────────────────────────


def _validate(params: GrowCycleParameters) -> None:
    durations = {
        "germination_duration_days": params.germination_duration_days,
        "blackout_duration_days": params.blackout_duration_days,
        "light_duration_days": params.light_duration_days,
        "suspend_watering_before_harvest_hours": params.suspend_watering_before_harvest_hours,
    }
    for name, value in durations.items():
        if value is None or not math.isfinite(value) or value < 0:
            raise InvalidParameter(f"{name} must be a finite number >= 0, got {value!r}")


def total_days(params: GrowCycleParameters) -> float:
    _validate(params)
    return (
        float(params.germination_duration_days)
        + float(params.blackout_duration_days)
        + float(params.light_duration_days)
    )


def expected_harvest_at(params: GrowCycleParameters) -> datetime:
    return next(
        t.scheduled_at for t in compute_schedule(params)
        if t.task_type is TaskType.EXPECTED_HARVEST
    )


def compute_schedule(params: GrowCycleParameters) -> list[ScheduledTask]:
    """
    Returns the crop tasks for one grow cycle, in stage order:
    germination end, blackout end (if any), expected harvest, suspend watering.

    Raises InvalidParameter before emitting anything if a duration is negative
    or not finite, or if the cycle overflows the datetime range.
    A suspend-watering time at or before planting is dropped, not clamped.
    """
    _validate(params)

    blackout_days = float(params.blackout_duration_days)
    has_blackout = blackout_days > 0

    # Chained offsets keep each boundary >= the previous one after microsecond rounding
    try:
        germination_end = params.planted_at + timedelta(days=float(params.germination_duration_days))
        blackout_end = germination_end + timedelta(days=blackout_days)
        harvest_time = blackout_end + timedelta(days=float(params.light_duration_days))
        suspend_offset = timedelta(hours=float(params.suspend_watering_before_harvest_hours))
    except OverflowError as exc:
        raise InvalidParameter(f"grow cycle runs past the supported date range: {exc}") from exc

    tasks = [
        ScheduledTask(
            TaskType.END_GERMINATION,
            germination_end,
            Stage.BLACKOUT if has_blackout else Stage.LIGHT,
        )
    ]
    if has_blackout:
        tasks.append(ScheduledTask(TaskType.END_BLACKOUT, blackout_end, Stage.LIGHT))
    tasks.append(ScheduledTask(TaskType.EXPECTED_HARVEST, harvest_time))

    if float(params.suspend_watering_before_harvest_hours) > 0:
        # Compared as offsets so a suspend time below datetime.min is dropped as well
        if harvest_time - params.planted_at > suspend_offset:
            tasks.append(ScheduledTask(TaskType.SUSPEND_WATERING, harvest_time - suspend_offset))

    return tasks


def sort_by_time(tasks: list[ScheduledTask]) -> list[ScheduledTask]:
    # Stable: equal timestamps keep stage order
    return sorted(tasks, key=lambda t: t.scheduled_at)


def watering_suspended_due(params: GrowCycleParameters, now: datetime) -> bool:
    """True once now has reached the suspend-watering time for this cycle."""
    for task in compute_schedule(params):
        if task.task_type is TaskType.SUSPEND_WATERING:
            return now >= task.scheduled_at
    return False
