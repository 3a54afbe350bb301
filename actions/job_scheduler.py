"""
Job Scheduler
Runs the periodic jobs on their own timers inside the application's event loop
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from config import settings
from tools.schedule_normalizer import get_zone, utcnow


logger = logging.getLogger(__name__)


class ScheduleKind(str, Enum):
    EVERY_MINUTE = "every_minute"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    INTERVAL = "interval"


@dataclass
class JobSchedule:
    """
    When a job fires, in local wall-clock time.

    `at` is "HH:MM" for daily and weekly jobs, `weekday` is Monday=0,
    `minutes` is the period of interval jobs.
    """
    kind: ScheduleKind
    at: Optional[str] = None
    weekday: Optional[int] = None
    minutes: int = 1

    def _hour_minute(self):
        hour, minute = (self.at or "00:00").split(":")
        return int(hour), int(minute)

    def next_run(self, after: datetime) -> datetime:
        """First firing strictly after `after` (an aware local datetime)"""
        if self.kind == ScheduleKind.EVERY_MINUTE:
            return (after + timedelta(minutes=1)).replace(second=0, microsecond=0)

        if self.kind == ScheduleKind.HOURLY:
            return (after + timedelta(hours=1)).replace(minute=0, second=0, microsecond=0)

        if self.kind == ScheduleKind.INTERVAL:
            return after + timedelta(minutes=max(1, self.minutes))

        hour, minute = self._hour_minute()
        candidate = after.replace(hour=hour, minute=minute, second=0, microsecond=0)

        if self.kind == ScheduleKind.DAILY:
            if candidate <= after:
                candidate += timedelta(days=1)
            return candidate

        days_ahead = ((self.weekday or 0) - after.weekday()) % 7
        candidate += timedelta(days=days_ahead)
        if candidate <= after:
            candidate += timedelta(days=7)
        return candidate

    def describe(self) -> str:
        if self.kind == ScheduleKind.DAILY:
            return f"daily at {self.at}"
        if self.kind == ScheduleKind.WEEKLY:
            return f"weekly on day {self.weekday} at {self.at}"
        if self.kind == ScheduleKind.INTERVAL:
            return f"every {self.minutes} minutes"
        return self.kind.value


class PeriodicJob:
    """
    One named job with its own timer.

    Every firing runs as a separate task. A firing that arrives while the
    previous one is still running is skipped. The job function receives the
    firing time it was scheduled for, or None when triggered by hand.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[Optional[datetime]], Awaitable[Any]],
        schedule: JobSchedule,
        tz: Optional[ZoneInfo] = None
    ):
        self.name = name
        self.func = func
        self.schedule = schedule
        self.tz = tz
        self.running = False
        self.runs = 0
        self.skipped = 0
        self.last_run: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.last_result: Any = None
        self.next_run: Optional[datetime] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Task] = None

    def trigger(self, scheduled_for: Optional[datetime] = None) -> Optional[asyncio.Task]:
        """Start one run unless one is already in flight"""
        if self.running:
            self.skipped += 1
            logger.warning(f"Job '{self.name}' still running, skipping this tick")
            return None

        self.running = True
        self._current = asyncio.create_task(self._execute(scheduled_for), name=f"job:{self.name}")
        return self._current

    async def _execute(self, scheduled_for: Optional[datetime]):
        started = utcnow()
        try:
            self.last_result = await self.func(scheduled_for)
            self.last_error = None
        except Exception as e:
            self.last_error = str(e)
            logger.exception(f"Job '{self.name}' failed")
        finally:
            self.runs += 1
            self.last_run = started
            self.running = False

    def _seconds_until_next(self) -> float:
        now = utcnow()
        local_now = now.astimezone(self.tz or get_zone())
        self.next_run = self.schedule.next_run(local_now)
        return max(0.0, (self.next_run.astimezone(timezone.utc) - now).total_seconds())

    async def _run_forever(self):
        while True:
            delay = self._seconds_until_next()
            scheduled_for = self.next_run
            await asyncio.sleep(delay)
            self.trigger(scheduled_for)

    def start(self):
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._run_forever(), name=f"timer:{self.name}")
            logger.info(f"Job '{self.name}' scheduled {self.schedule.describe()}")

    async def stop(self):
        tasks = [t for t in (self._loop_task, self._current) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self.running = False

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "schedule": self.schedule.describe(),
            "running": self.running,
            "runs": self.runs,
            "skipped": self.skipped,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_error": self.last_error,
        }


class JobScheduler:
    """Registry of periodic jobs"""

    def __init__(self, tz: Optional[ZoneInfo] = None):
        self.tz = tz
        self.jobs: Dict[str, PeriodicJob] = {}
        self.started = False

    def add_job(
        self,
        name: str,
        func: Callable[[Optional[datetime]], Awaitable[Any]],
        schedule: JobSchedule
    ) -> PeriodicJob:
        job = PeriodicJob(name, func, schedule, tz=self.tz)
        self.jobs[name] = job
        return job

    def start(self):
        for job in self.jobs.values():
            job.start()
        self.started = True
        logger.info(f"Job scheduler started with {len(self.jobs)} jobs")

    async def stop(self):
        for job in self.jobs.values():
            await job.stop()
        self.started = False
        logger.info("Job scheduler stopped")

    async def run_now(self, name: str) -> Dict[str, Any]:
        """
        Fire a job immediately and wait for it, through the same overlap guard.

        Raises:
            KeyError: unknown job name
        """
        job = self.jobs[name]
        task = job.trigger()
        if task is None:
            return {**job.status(), "triggered": False}

        await task
        return {**job.status(), "triggered": True}

    def status(self) -> List[Dict[str, Any]]:
        return [job.status() for job in self.jobs.values()]


def _result_summary(result: Any) -> Any:
    return result.to_dict() if hasattr(result, "to_dict") else result


def build_scheduler(
    reminders=None,
    appointments=None,
    reconciliation=None,
    reports=None,
    confirmations=None,
    tz: Optional[ZoneInfo] = None
) -> JobScheduler:
    """Scheduler wired with the five application jobs"""
    from actions.appointment_engine import appointment_engine
    from actions.confirmation_engine import confirmation_engine
    from actions.reconciliation_engine import reconciliation_engine
    from actions.reminder_engine import reminder_engine
    from actions.report_engine import report_engine

    reminders = reminders or reminder_engine
    appointments = appointments or appointment_engine
    reconciliation = reconciliation or reconciliation_engine
    reports = reports or report_engine
    confirmations = confirmations or confirmation_engine

    async def reminder_scan(scheduled_for=None):
        # Scan the minute the tick was due for, even if the loop woke late
        return _result_summary(await reminders.run_tick(now=scheduled_for))

    async def appointment_reminders(scheduled_for=None):
        result = await appointments.run()
        return {"reminded": result.reminded, "failed": result.failed}

    async def daily_reconciliation(scheduled_for=None):
        return _result_summary(await reconciliation.run(now=scheduled_for))

    async def pending_sweep(scheduled_for=None):
        return confirmations.sweep()

    async def weekly_report(scheduled_for=None):
        result = await reports.run()
        return {
            "reports": len(result.reports),
            "patient_deliveries": result.patient_deliveries,
            "caregiver_deliveries": result.caregiver_deliveries,
            "failures": len(result.failures),
        }

    scheduler = JobScheduler(tz=tz)
    scheduler.add_job("reminder_scan", reminder_scan, JobSchedule(ScheduleKind.EVERY_MINUTE))
    scheduler.add_job("appointment_reminders", appointment_reminders, JobSchedule(ScheduleKind.HOURLY))
    scheduler.add_job(
        "reconciliation",
        daily_reconciliation,
        JobSchedule(ScheduleKind.DAILY, at=settings.RECONCILIATION_TIME),
    )
    scheduler.add_job(
        "pending_sweep",
        pending_sweep,
        JobSchedule(ScheduleKind.INTERVAL, minutes=settings.PENDING_SWEEP_INTERVAL_MINUTES),
    )
    scheduler.add_job(
        "weekly_report",
        weekly_report,
        JobSchedule(
            ScheduleKind.WEEKLY,
            at=settings.WEEKLY_REPORT_TIME,
            weekday=settings.WEEKLY_REPORT_WEEKDAY,
        ),
    )
    return scheduler


# Singleton instance
job_scheduler = build_scheduler()
