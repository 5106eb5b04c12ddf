"""Scheduler service for the expiry sweep and the recurring-rule tick."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from hosting_notifier.config.models import SchedulerConfig
from hosting_notifier.logging import get_logger

logger = get_logger(__name__, component="scheduler")

RECURRING_JOB_ID = "recurring-tick"
EXPIRY_JOB_ID = "expiry-sweep"
STARTUP_JOB_ID = "expiry-startup-sweep"


class SchedulerService:
    """
    Wraps APScheduler to fire the dispatcher passes on wall-clock times.

    Two cron jobs are registered: the recurring pass at the start of every
    minute and the expiry sweep once a day at ``expiry_sweep_time``. An
    optional one-shot sweep runs shortly after startup. Missed fire times
    are coalesced and dropped after ``misfire_grace_time``; they are not
    made up later.

    Uses BackgroundScheduler to run jobs in a separate thread while
    allowing the main thread to handle signals and coordinate shutdown.
    """

    def __init__(
        self,
        expiry_callable: Callable[[], object],
        recurring_callable: Callable[[], object],
        config: SchedulerConfig,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            expiry_callable: Called for each expiry sweep (e.g. dispatcher.run_expiry_pass)
            recurring_callable: Called every minute (e.g. dispatcher.run_recurring_pass)
            config: Sweep time, timezone and startup sweep settings
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.expiry_callable = expiry_callable
        self.recurring_callable = recurring_callable
        self.config = config
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": config.misfire_grace_time,
            },
            timezone=config.zone,
        )

    def start(self) -> None:
        """Register the jobs and start the scheduler thread."""
        zone = self.config.zone
        hour, minute = self.config.sweep_hour_minute

        self.scheduler.add_job(
            func=self.recurring_callable,
            trigger=CronTrigger(minute="*", timezone=zone),
            id=RECURRING_JOB_ID,
            name="Recurring notification rules",
            replace_existing=True,
        )

        self.scheduler.add_job(
            func=self.expiry_callable,
            trigger=CronTrigger(hour=hour, minute=minute, timezone=zone),
            id=EXPIRY_JOB_ID,
            name="Expiry notification sweep",
            replace_existing=True,
        )

        startup_run = None
        if self.config.run_startup_sweep:
            startup_run = datetime.now(timezone.utc) + timedelta(
                seconds=self.config.startup_sweep_delay_seconds
            )
            self.scheduler.add_job(
                func=self.expiry_callable,
                trigger=DateTrigger(run_date=startup_run, timezone=timezone.utc),
                id=STARTUP_JOB_ID,
                name="Startup expiry sweep",
                replace_existing=True,
            )

        self.scheduler.start()

        next_sweep = self.get_next_run_time()
        logger.info(
            f"Scheduler started, daily expiry sweep at {self.config.expiry_sweep_time} "
            f"({self.config.timezone})",
            extra={
                "event": "scheduler.started",
                "expiry_sweep_time": self.config.expiry_sweep_time,
                "timezone": self.config.timezone,
                "next_sweep_time": next_sweep.isoformat() if next_sweep else None,
                "startup_sweep_time": startup_run.isoformat() if startup_run else None,
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={
                "event": "scheduler.stopping",
                "wait_for_jobs": wait,
            },
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> None:
        """
        Run an expiry sweep and a recurring tick synchronously in this thread.
        """
        logger.info("Triggering immediate dispatch run", extra={"event": "scheduler.trigger_now"})
        self.expiry_callable()
        self.recurring_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self, job_id: str = EXPIRY_JOB_ID) -> Optional[datetime]:
        """
        Next fire time of a job (the daily sweep by default).

        Returns:
            Next run time as a datetime, or None if not scheduled
        """
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None
