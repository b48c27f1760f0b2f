import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from kiosk_nav.core.config import Settings
from kiosk_nav.services.api_sync import SyncService

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "sync_all"


def create_scheduler(sync_service: SyncService, settings: Settings) -> AsyncIOScheduler:
    """
    Создаёт APScheduler с задачей синхронизации:
    - первый запуск сразу при старте;
    - далее каждые SYNC_INTERVAL_SECONDS;
    - пропущенные/пересекающиеся запуски схлопываются (coalesce, max_instances=1).
    """
    scheduler = AsyncIOScheduler()

    async def _run_sync_job() -> None:
        logger.info(f"Job '{SYNC_JOB_ID}' started")
        report = await sync_service.run_scheduled_sync()
        logger.info(f"Job '{SYNC_JOB_ID}' finished (partial={report.partial if report else None})")

    scheduler.add_job(
        _run_sync_job,
        trigger=IntervalTrigger(seconds=settings.SYNC_INTERVAL_SECONDS),
        id=SYNC_JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        next_run_time=datetime.now(),
    )
    return scheduler


def start_scheduler(sync_service: SyncService, settings: Settings) -> AsyncIOScheduler:
    scheduler = create_scheduler(sync_service, settings)
    scheduler.start()
    logger.info(f"Scheduler started: job '{SYNC_JOB_ID}' every {settings.SYNC_INTERVAL_SECONDS}s")
    return scheduler
