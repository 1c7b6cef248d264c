"""
ARQ worker — background task definitions.
Run with: python -m trayplan.worker
"""
from arq import cron
from arq.connections import RedisSettings

from trayplan.core.config import settings
from trayplan.tasks.crop_tasks import process_crop_tasks, recalculate_crop_tasks


class WorkerSettings:
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    functions = [process_crop_tasks, recalculate_crop_tasks]
    cron_jobs = [
        cron(process_crop_tasks, minute={0, 15, 30, 45}),  # Every 15 minutes
        cron(recalculate_crop_tasks, hour=3, minute=0),      # Daily 3am UTC
    ]
    on_startup = None
    on_shutdown = None


if __name__ == "__main__":
    from arq import run_worker

    run_worker(WorkerSettings)
