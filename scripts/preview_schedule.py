#!/usr/bin/env python3
"""
Print the crop tasks a recipe would produce, as JSON. No database needed.

Usage:
    python scripts/preview_schedule.py 2024-05-01T10:00 --germination 3 --blackout 2 --light 5 --suspend-hours 12
"""
import argparse
import sys
from datetime import datetime

from pydantic import TypeAdapter

from trayplan.schemas.crop_task import ScheduledTaskRead
from trayplan.services.stage_schedule import (
    GrowCycleParameters,
    InvalidParameter,
    compute_schedule,
    sort_by_time,
)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Preview a crop task schedule")
    parser.add_argument("planted_at", type=datetime.fromisoformat, help="ISO planting timestamp")
    parser.add_argument("--germination", type=float, required=True, help="Germination days")
    parser.add_argument("--blackout", type=float, default=0.0, help="Blackout days (0 skips the stage)")
    parser.add_argument("--light", type=float, required=True, help="Light days")
    parser.add_argument("--suspend-hours", type=float, default=0.0, help="Hours before harvest to stop watering")
    args = parser.parse_args(argv)

    params = GrowCycleParameters(
        planted_at=args.planted_at,
        germination_duration_days=args.germination,
        blackout_duration_days=args.blackout,
        light_duration_days=args.light,
        suspend_watering_before_harvest_hours=args.suspend_hours,
    )
    try:
        tasks = sort_by_time(compute_schedule(params))
    except InvalidParameter as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    adapter = TypeAdapter(list[ScheduledTaskRead])
    print(adapter.dump_json(adapter.validate_python(tasks, from_attributes=True), indent=2).decode())
    return 0


if __name__ == "__main__":
    sys.exit(main())
