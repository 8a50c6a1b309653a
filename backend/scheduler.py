"""Background jobs: nightly instance generation and the weekly snapshot.

Both jobs use cron triggers in the reference timezone, so every firing
computes the next wall-clock instant (00:00 stays 00:00 across DST changes).
A job_locks row per (job, target date) keeps two schedulers from running the
same day at once; a failed run is retried with exponential backoff. Both jobs
are idempotent, so a retry simply re-runs the whole day.
"""
from datetime import date, datetime, timedelta
import logging
import os
import socket

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import config
from clock import default_clock, to_naive_utc
from db import SessionLocal
from generator import generate_for_date
from models import JobLock
from weekly_reset import snapshot_week, week_to_snapshot

logger = logging.getLogger(__name__)

DAILY_JOB = "daily_generation"
WEEKLY_JOB = "weekly_reset"


def daily_trigger(tz: str = config.REFERENCE_TZ, start_date=None) -> CronTrigger:
    return CronTrigger(hour=config.DAILY_HOUR, minute=config.DAILY_MINUTE,
                       timezone=tz, start_date=start_date)


def weekly_trigger(tz: str = config.REFERENCE_TZ, start_date=None) -> CronTrigger:
    return CronTrigger(day_of_week=config.WEEKLY_DAY, hour=config.WEEKLY_HOUR,
                       minute=config.WEEKLY_MINUTE, timezone=tz, start_date=start_date)


def retry_delay(attempt: int) -> int:
    """Seconds to wait before retry number `attempt` (1-based)."""
    return min(config.JOB_RETRY_BASE_SECONDS * 2 ** (attempt - 1), config.JOB_RETRY_MAX_SECONDS)


def acquire_lock(db, job_name: str, run_key: str, holder: str, now: datetime,
                 lease_seconds: int = config.JOB_LEASE_SECONDS) -> bool:
    """Claim (job_name, run_key). Failed runs and expired leases can be taken over."""
    now = to_naive_utc(now)
    db.add(JobLock(job_name=job_name, run_key=run_key, holder=holder,
                   status="running", acquired_at=now))
    try:
        db.commit()
        return True
    except IntegrityError:
        db.rollback()

    stale = now - timedelta(seconds=lease_seconds)
    result = db.execute(
        update(JobLock)
        .where(
            JobLock.job_name == job_name,
            JobLock.run_key == run_key,
            or_(JobLock.status == "failed",
                and_(JobLock.status == "running", JobLock.acquired_at < stale)),
        )
        .values(holder=holder, status="running", acquired_at=now, finished_at=None, error=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def release_lock(db, job_name: str, run_key: str, holder: str, now: datetime, error: str | None = None):
    db.execute(
        update(JobLock)
        .where(JobLock.job_name == job_name, JobLock.run_key == run_key, JobLock.holder == holder)
        .values(status="failed" if error else "done", finished_at=to_naive_utc(now), error=error)
        .execution_options(synchronize_session=False)
    )
    db.commit()


class JobScheduler:
    def __init__(self, scheduler=None, *, clock=None, session_factory=None):
        self.clock = clock or default_clock
        self.scheduler = scheduler or BackgroundScheduler(timezone=self.clock.tz.key)
        self.session_factory = session_factory or SessionLocal
        self.holder = f"{socket.gethostname()}:{os.getpid()}"

    def install(self):
        tz = self.clock.tz.key
        common = dict(replace_existing=True, coalesce=True, max_instances=1,
                      misfire_grace_time=config.JOB_MISFIRE_GRACE_SECONDS)
        self.scheduler.add_job(self.daily_generation, daily_trigger(tz), id=DAILY_JOB,
                               name="daily task generation", **common)
        self.scheduler.add_job(self.weekly_reset, weekly_trigger(tz), id=WEEKLY_JOB,
                               name="weekly leaderboard snapshot", **common)

    def start(self):
        self.install()
        self.scheduler.start()
        for job in self.scheduler.get_jobs():
            logger.info("scheduled %s, next run %s", job.id, job.next_run_time)

    def shutdown(self):
        self.scheduler.shutdown(wait=False)

    def daily_generation(self, day: date | None = None, attempt: int = 1):
        day = day or self.clock.today()
        return self._run(DAILY_JOB, day, lambda db: generate_for_date(db, day), attempt)

    def weekly_reset(self, week_start: date | None = None, attempt: int = 1):
        week_start = week_start or week_to_snapshot(self.clock.today())
        return self._run(WEEKLY_JOB, week_start, lambda db: snapshot_week(db, week_start), attempt)

    def _run(self, job_name: str, day: date, work, attempt: int):
        run_key = day.isoformat()
        with self.session_factory() as db:
            try:
                acquired = acquire_lock(db, job_name, run_key, self.holder, self.clock.now())
            except SQLAlchemyError:
                db.rollback()
                logger.exception("%s for %s could not take its job lock (attempt %d)", job_name, run_key, attempt)
                self._schedule_retry(job_name, day, attempt)
                return None
            if not acquired:
                logger.info("%s for %s already done or running elsewhere, skipping", job_name, run_key)
                return None
            try:
                result = work(db)
            except Exception as exc:
                db.rollback()
                logger.exception("%s for %s failed (attempt %d)", job_name, run_key, attempt)
                self._schedule_retry(job_name, day, attempt)
                release_lock(db, job_name, run_key, self.holder, self.clock.now(), error=repr(exc))
                return None
            release_lock(db, job_name, run_key, self.holder, self.clock.now())
            return result

    def _schedule_retry(self, job_name: str, day: date, attempt: int):
        if attempt >= config.JOB_RETRY_ATTEMPTS:
            logger.error("%s for %s gave up after %d attempts; next scheduled run will catch up",
                         job_name, day, attempt)
            return
        func = self.daily_generation if job_name == DAILY_JOB else self.weekly_reset
        run_at = self.clock.now() + timedelta(seconds=retry_delay(attempt))
        self.scheduler.add_job(
            func,
            DateTrigger(run_date=run_at, timezone=self.clock.tz.key),
            args=[day, attempt + 1],
            id=f"{job_name}_retry_{day.isoformat()}",
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.warning("%s for %s will retry at %s", job_name, day, run_at.isoformat())
