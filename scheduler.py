import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from notifications import build_engine


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        self.settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=self.settings.timezone)

    def _now(self) -> datetime:
        return datetime.now(ZoneInfo(self.settings.timezone))

    def run_limit_check(self, source: str = "manual", now: Optional[datetime] = None) -> int:
        now = now or self._now()
        logger.info(f"limit_check_run: source={source}")
        with session_scope() as session:
            requests = build_engine(session).check_limit_warnings(now)
        logger.info(f"limit_check_run: source={source} notifications={len(requests)}")
        return len(requests)

    def run_daily_reminder(
        self, source: str = "manual", now: Optional[datetime] = None
    ) -> int:
        now = now or self._now()
        logger.info(f"daily_reminder_run: source={source}")
        with session_scope() as session:
            requests = build_engine(session).check_daily_reminder(now)
        logger.info(f"daily_reminder_run: source={source} notifications={len(requests)}")
        return len(requests)

    def run_income_reminder(
        self, source: str = "manual", now: Optional[datetime] = None
    ) -> int:
        now = now or self._now()
        logger.info(f"income_reminder_run: source={source}")
        with session_scope() as session:
            requests = build_engine(session).check_income_reminder(now)
        logger.info(
            f"income_reminder_run: source={source} notifications={len(requests)}"
        )
        return len(requests)

    def start(self) -> None:
        trigger = CronTrigger(
            hour=self.settings.reminder_hour, minute=self.settings.reminder_minute
        )
        self.scheduler.add_job(
            self.run_daily_reminder,
            trigger,
            args=["daily_reminder_cron"],
            id="daily_reminder",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(minutes=self.settings.limit_check_minutes)
        self.scheduler.add_job(
            self.run_limit_check,
            trigger,
            args=["limit_check_interval"],
            id="limit_check",
            replace_existing=True,
            misfire_grace_time=300,
        )

        trigger = CronTrigger(day=1, hour=9, minute=0)
        self.scheduler.add_job(
            self.run_income_reminder,
            trigger,
            args=["income_reminder_monthly"],
            id="income_reminder",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started with daily reminder at "
            f"{self.settings.reminder_hour:02d}:{self.settings.reminder_minute:02d} "
            f"and limit checks every {self.settings.limit_check_minutes} minutes"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
