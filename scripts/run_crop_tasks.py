#!/usr/bin/env python3
"""
Manually execute due crop tasks now, outside the 15-minute cron.

Usage:
    python scripts/run_crop_tasks.py            # every due task
    python scripts/run_crop_tasks.py --task 42  # one task, even if not yet due
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

from trayplan.core.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s  %(levelname)-8s  %(name)s: %(message)s",
    stream=sys.stdout,
)

from trayplan.db.session import AsyncSessionLocal
from trayplan.services.task_runner import execute_task
from trayplan.tasks.crop_tasks import process_crop_tasks


async def main(task_id: int | None) -> None:
    if task_id is None:
        print("Processing due crop tasks...\n")
        summary = await process_crop_tasks(ctx={})
        print(f"\nDone: {summary}")
        return

    async with AsyncSessionLocal() as db:
        status = await execute_task(db, task_id, datetime.now(timezone.utc))
    if status is None:
        print(f"Task {task_id} is not pending — nothing to do.")
    else:
        print(f"Task {task_id}: {status}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--task", type=int, default=None, help="Execute a single task by id")
    args = parser.parse_args()
    asyncio.run(main(args.task))
