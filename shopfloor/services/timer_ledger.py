"""
Timer ledger: opens and closes TimeLog sessions and is the only writer of
Job.actual_hours.

At most one open session exists per (job, employee). The check below gives a
readable error; the partial unique index on time_logs is what actually holds
the line when two processes race.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import Caller
from ..errors import ConflictError, ForbiddenError, NotFoundError
from ..logging_config import log_job_event
from ..models.job import Job
from ..models.time_log import TimeLog
from ..schemas.job import serialize_job
from ..utils.timeutil import isoformat, utcnow
from .events import EventBus, JOB_UPDATED, TIMER_STARTED, TIMER_STOPPED
from .lifecycle import can_act_on, ensure_in_progress
from .prometheus_metrics import prometheus_metrics
from .transactions import lock_job, unit_of_work

logger = logging.getLogger(__name__)


def duration_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between start and end, floored, never negative."""
    seconds = (end - start).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 60)


def recompute_actual_hours(db: Session, job_id: int) -> float:
    """Rebuild Job.actual_hours from every closed session of the job."""
    total = db.query(func.coalesce(func.sum(TimeLog.duration_minutes), 0)).filter(
        TimeLog.job_id == job_id, TimeLog.end_time.isnot(None)
    ).scalar()
    hours = int(total) / 60
    job = db.get(Job, job_id)
    if job is not None:
        job.actual_hours = hours
    return hours


def _active_log(db: Session, job_id: int, user_id: int) -> Optional[TimeLog]:
    return db.query(TimeLog).filter(
        TimeLog.job_id == job_id, TimeLog.user_id == user_id, TimeLog.end_time.is_(None)
    ).one_or_none()


def _self_only(caller: Caller, user_id: Optional[int]) -> int:
    if user_id is None:
        return caller.user_id
    if user_id != caller.user_id:
        raise ForbiddenError("timers can only be started or stopped by their own employee")
    return user_id


def start_timer(db: Session, job_id: int, caller: Caller, *, user_id: Optional[int] = None,
                now: Optional[datetime] = None, bus: Optional[EventBus] = None) -> TimeLog:
    user_id = _self_only(caller, user_id)

    with unit_of_work(db, job_id, bus=bus) as uow:
        now = now or utcnow()
        job = lock_job(db, job_id)
        if not can_act_on(db, job, caller):
            raise ForbiddenError("not assigned to this job")

        if _active_log(db, job_id, user_id) is not None:
            prometheus_metrics.increment_timer_conflicts()
            raise ConflictError("timer already active")

        log = TimeLog(job_id=job_id, user_id=user_id, start_time=now)
        db.add(log)
        try:
            db.flush()
        except IntegrityError as e:
            # Lost the race to another process holding the same pair
            prometheus_metrics.increment_timer_conflicts()
            raise ConflictError("timer already active") from e

        promoted = ensure_in_progress(job, now)
        db.flush()
        # Read under the lock; the job may be gone by the time the caller renders the log
        log.job_title = job.title

        uow.emit(TIMER_STARTED, {
            "job_id": job_id,
            "user_id": user_id,
            "time_log_id": log.id,
            "start_time": isoformat(log.start_time),
            "job_status": job.status,
        })
        if promoted:
            uow.emit(JOB_UPDATED, serialize_job(job))

    prometheus_metrics.increment_timers_started()
    log_job_event("timer_started", "Timer started", job_id=job_id, user_id=user_id,
                  time_log_id=log.id, promoted=promoted)
    return log


def stop_timer(db: Session, job_id: int, caller: Caller, *, user_id: Optional[int] = None,
               now: Optional[datetime] = None, bus: Optional[EventBus] = None) -> Tuple[TimeLog, float]:
    """Close the caller's open session on the job.

    Works even if the employee was unassigned while the timer ran. Returns the
    closed log and the job's recomputed actual hours.
    """
    user_id = _self_only(caller, user_id)

    with unit_of_work(db, job_id, bus=bus) as uow:
        now = now or utcnow()
        lock_job(db, job_id)
        log = _active_log(db, job_id, user_id)
        if log is None:
            raise NotFoundError("no active timer")

        # A clock that went backwards yields a zero-length session, never a negative one
        log.end_time = max(now, log.start_time)
        log.duration_minutes = duration_minutes(log.start_time, log.end_time)
        db.flush()
        actual_hours = recompute_actual_hours(db, job_id)

        uow.emit(TIMER_STOPPED, {
            "job_id": job_id,
            "user_id": user_id,
            "time_log_id": log.id,
            "end_time": isoformat(log.end_time),
            "duration_minutes": log.duration_minutes,
            "actual_hours": actual_hours,
        })

    prometheus_metrics.increment_timers_stopped(log.duration_minutes)
    log_job_event("timer_stopped", "Timer stopped", job_id=job_id, user_id=user_id,
                  time_log_id=log.id, duration_minutes=log.duration_minutes, actual_hours=actual_hours)
    return log, actual_hours


def list_active_timers(db: Session, user_id: int) -> List[Tuple[TimeLog, str]]:
    """Open sessions of one employee across all jobs, oldest first, with the job title."""
    return db.query(TimeLog, Job.title).join(Job, Job.id == TimeLog.job_id).filter(
        TimeLog.user_id == user_id, TimeLog.end_time.is_(None)
    ).order_by(TimeLog.start_time.asc(), TimeLog.id.asc()).all()
