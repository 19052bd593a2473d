# services/scheduler.py

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

TICK_JOB_ID = "cycle_tick"


class TickDriver:
    """Единственный источник тиков: раз в секунду вызывает engine.tick()"""

    def __init__(self, engine, interval_seconds: float = 1.0,
                 scheduler: Optional[AsyncIOScheduler] = None):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler or AsyncIOScheduler()
        self.tick_count = 0

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        self.scheduler.add_job(
            self._tick,
            IntervalTrigger(seconds=self.interval_seconds),
            id=TICK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=False
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(f"⏱️ Tick driver started ({self.interval_seconds}s)")

    def shutdown(self) -> None:
        if self.scheduler.get_job(TICK_JOB_ID):
            self.scheduler.remove_job(TICK_JOB_ID)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("⏱️ Tick driver stopped")

    async def _tick(self) -> None:
        self.tick_count += 1
        try:
            self.engine.tick()
        except Exception as e:
            logger.error(f"❌ Tick failed: {e}")
