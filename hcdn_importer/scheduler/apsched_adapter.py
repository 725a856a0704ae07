"""Recurring import runs on top of APScheduler's background scheduler."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.job import Job
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import ScheduleConfig, ScheduleType
from ..logging_conf import configure_logging

IMPORT_JOB_ID = "import::bills"


def build_trigger(schedule: ScheduleConfig) -> BaseTrigger:
    """Translate a :class:`ScheduleConfig` into an APScheduler trigger."""

    value = schedule.value
    if schedule.type is ScheduleType.CRON:
        return CronTrigger.from_crontab(str(value))
    if schedule.type is ScheduleType.INTERVAL:
        if isinstance(value, dict):
            return IntervalTrigger(**value)
        if isinstance(value, (int, float)):
            return IntervalTrigger(seconds=float(value))
        raise ValueError("Interval schedule requires seconds or kwargs dict")
    if schedule.type is ScheduleType.ONCE:
        return DateTrigger(run_date=datetime.fromisoformat(str(value)) if value else datetime.now())
    raise ValueError(f"Unknown schedule type: {schedule.type}")


class APSchedulerAdapter:
    """Own the background scheduler firing the bill import.

    The import job is registered with ``max_instances=1`` and ``coalesce=True``:
    a fire that lands while a run is in progress is dropped by APScheduler,
    and fires missed while the process was busy collapse into one run.
    """

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False
        self.scheduler.add_listener(self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)

    build_trigger = staticmethod(build_trigger)

    def schedule(
        self,
        schedule: ScheduleConfig,
        callback: Callable[[], object],
        job_id: str = IMPORT_JOB_ID,
    ) -> Job:
        job = self.scheduler.add_job(
            callback,
            trigger=build_trigger(schedule),
            id=job_id,
            name="bill import",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info(
            "job_scheduled", job_id=job_id, schedule=schedule.model_dump(mode="json")
        )
        return job

    def start(self) -> None:
        if self.started:
            return
        self.scheduler.start()
        self.started = True
        self.logger.info("apscheduler_started", next_run=self.next_run_time())

    def shutdown(self) -> None:
        if not self.started:
            return
        self.scheduler.shutdown(wait=False)
        self.started = False
        self.logger.info("apscheduler_stopped")

    def remove(self, job_id: str = IMPORT_JOB_ID) -> None:
        try:
            self.scheduler.remove_job(job_id)
        except Exception:  # noqa: BLE001
            self.logger.warning("job_remove_failed", job_id=job_id)

    def next_run_time(self, job_id: str = IMPORT_JOB_ID) -> datetime | None:
        job = self.scheduler.get_job(job_id)
        return getattr(job, "next_run_time", None) if job is not None else None

    def _on_job_event(self, event: JobExecutionEvent) -> None:
        if event.code == EVENT_JOB_MISSED:
            self.logger.warning(
                "job_missed", job_id=event.job_id, scheduled_for=str(event.scheduled_run_time)
            )
            return
        self.logger.error("job_failed", job_id=event.job_id, error=repr(event.exception))


__all__ = ["APSchedulerAdapter", "IMPORT_JOB_ID", "build_trigger"]
