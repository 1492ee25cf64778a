"""
Job lifecycle: creation, field edits, assignment membership, status changes
and the destructive purge. Owns Job.status and JobAssignment rows.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..auth import Caller
from ..errors import ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
from ..logging_config import log_job_event
from ..models.archived_job import ArchivedJob
from ..models.job import JOB_STATUSES, Job, JobAssignment
from ..models.time_log import TimeLog
from ..models.user import User
from ..schemas.job import serialize_job
from ..utils.timeutil import utcnow
from .events import EventBus, JOB_CREATED, JOB_DELETED, JOB_UPDATED
from .prometheus_metrics import prometheus_metrics
from .transactions import is_assignee, lock_job, unit_of_work

logger = logging.getLogger(__name__)

# Fields a job edit may overwrite; everything else is owned elsewhere
EDITABLE_FIELDS = ("title", "description", "customer_name", "vehicle_info", "estimated_hours", "photo_url")
REQUIRED_TEXT_FIELDS = ("title", "customer_name")


def _dedupe(ids: Iterable[int]) -> List[int]:
    seen = set()
    out = []
    for i in ids or ():
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


def _check_users(db: Session, user_ids: List[int]):
    if not user_ids:
        return
    found = {
        row.id for row in db.query(User.id).filter(User.id.in_(user_ids), User.active.is_(True)).all()
    }
    missing = [i for i in user_ids if i not in found]
    if missing:
        raise ValidationError(f"unknown or inactive user id(s): {missing}")


def _require_text(name: str, value: Optional[str]) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{name} is required")
    return value


def _check_hours(value: Optional[float]):
    if value is not None and value < 0:
        raise ValidationError("estimated_hours must be >= 0")


def can_act_on(db: Session, job: Job, caller: Caller) -> bool:
    """Admins act on every job, employees only on jobs they are assigned to."""
    return caller.is_admin or is_assignee(db, job.id, caller.user_id)


def ensure_in_progress(job: Job, now: Optional[datetime] = None) -> bool:
    """Promote a `todo` job to `in_progress`. Other statuses are left alone.

    Returns True when the status changed.
    """
    if job.status != "todo":
        return False
    job.status = "in_progress"
    job.updated_at = now or utcnow()
    return True


def create_job(db: Session, caller: Caller, *, title: str, customer_name: str,
               description: Optional[str] = None, vehicle_info: Optional[str] = None,
               estimated_hours: Optional[float] = None, assignee_ids: Iterable[int] = (),
               now: Optional[datetime] = None, bus: Optional[EventBus] = None) -> Job:
    if not caller.is_admin:
        raise ForbiddenError("only admins can create jobs")

    title = _require_text("title", title)
    customer_name = _require_text("customer_name", customer_name)
    _check_hours(estimated_hours)
    assignee_ids = _dedupe(assignee_ids)
    now = now or utcnow()

    with unit_of_work(db, bus=bus) as uow:
        _check_users(db, assignee_ids)
        job = Job(
            title=title,
            description=description,
            customer_name=customer_name,
            vehicle_info=vehicle_info,
            status="todo",
            estimated_hours=estimated_hours,
            actual_hours=0.0,
            created_by=caller.user_id,
            created_at=now,
            updated_at=now,
        )
        db.add(job)
        db.flush()
        # Later operations on this id wait for job.created to go out first. A request that
        # already holds this id's lock is queued behind our write transaction: don't wait on it.
        if not uow.lock(job.id, blocking=False):
            logger.info("job lock busy at create", extra={"job_id": job.id})

        for user_id in assignee_ids:
            job.assignments.append(JobAssignment(user_id=user_id, assigned_by=caller.user_id, assigned_at=now))
        db.flush()
        db.refresh(job)
        uow.emit(JOB_CREATED, serialize_job(job))

    prometheus_metrics.increment_jobs_created()
    log_job_event("job_created", "Job created", job_id=job.id, user_id=caller.user_id,
                  assignees=assignee_ids)
    return job


def update_job(db: Session, job_id: int, caller: Caller, changes: Dict[str, Any], *,
               now: Optional[datetime] = None, bus: Optional[EventBus] = None) -> Job:
    """Overwrite the given mutable fields; `assignee_ids` (when present) replaces the assignee set."""
    changes = dict(changes)
    unknown = set(changes) - set(EDITABLE_FIELDS) - {"assignee_ids"}
    if unknown:
        raise ValidationError(f"fields not editable: {sorted(unknown)}")
    for name in REQUIRED_TEXT_FIELDS:
        if name in changes:
            changes[name] = _require_text(name, changes[name])
    _check_hours(changes.get("estimated_hours"))

    with unit_of_work(db, job_id, bus=bus) as uow:
        now = now or utcnow()
        job = lock_job(db, job_id)
        if not (caller.is_admin or job.created_by == caller.user_id):
            raise ForbiddenError("only admins or the job creator can edit a job")

        for name in EDITABLE_FIELDS:
            if name in changes:
                setattr(job, name, changes[name])

        added, removed = [], []
        if changes.get("assignee_ids") is not None:
            added, removed = _sync_assignees(db, job, _dedupe(changes["assignee_ids"]), caller, now)

        job.updated_at = now
        db.flush()
        db.refresh(job)
        uow.emit(JOB_UPDATED, serialize_job(job))

    log_job_event("job_updated", "Job updated", job_id=job_id, user_id=caller.user_id,
                  fields=sorted(changes), assignees_added=added, assignees_removed=removed)
    return job


def _sync_assignees(db: Session, job: Job, desired: List[int], caller: Caller, now: datetime):
    current = {a.user_id: a for a in job.assignments}
    added = [i for i in desired if i not in current]
    removed = [i for i in current if i not in desired]
    _check_users(db, added)

    for user_id in removed:
        # Closed time logs of a removed employee stay attached to the job
        job.assignments.remove(current[user_id])
    for user_id in added:
        job.assignments.append(JobAssignment(user_id=user_id, assigned_by=caller.user_id, assigned_at=now))
    return added, removed


def set_status(db: Session, job_id: int, new_status: str, caller: Caller, *,
               now: Optional[datetime] = None, bus: Optional[EventBus] = None) -> Job:
    if new_status == "archived":
        raise InvalidTransitionError("jobs are archived through the archive operation")
    if new_status not in JOB_STATUSES:
        raise ValidationError(f"status must be one of {list(JOB_STATUSES)}")

    with unit_of_work(db, job_id, bus=bus) as uow:
        now = now or utcnow()
        job = db.query(Job).filter(Job.id == job_id).with_for_update(of=Job).one_or_none()
        if job is None:
            if db.query(ArchivedJob.id).filter(ArchivedJob.original_job_id == job_id).first():
                raise InvalidTransitionError("job is archived")
            raise NotFoundError("job not found")
        if not can_act_on(db, job, caller):
            raise ForbiddenError("only admins or assigned employees can change status")

        previous = job.status
        job.status = new_status
        if new_status == "completed":
            if previous != "completed" or job.completed_at is None:
                job.completed_at = now
        else:
            job.completed_at = None
        job.updated_at = now
        db.flush()
        uow.emit(JOB_UPDATED, serialize_job(job))

    prometheus_metrics.increment_status_change(new_status)
    log_job_event("job_status_changed", "Job status changed", job_id=job_id, user_id=caller.user_id,
                  from_status=previous, to_status=new_status)
    return job


def attach_photo(db: Session, job_id: int, photo_url: str, caller: Caller, *,
                 now: Optional[datetime] = None, bus: Optional[EventBus] = None) -> Job:
    """Record where the job's photo lives. Storing the file is someone else's job."""
    photo_url = (photo_url or "").strip()
    if not photo_url:
        raise ValidationError("photo_url is required")

    with unit_of_work(db, job_id, bus=bus) as uow:
        now = now or utcnow()
        job = lock_job(db, job_id)
        if not can_act_on(db, job, caller):
            raise ForbiddenError("only admins or assigned employees can attach photos")
        job.photo_url = photo_url
        job.updated_at = now
        db.flush()
        uow.emit(JOB_UPDATED, serialize_job(job))

    log_job_event("job_photo_attached", "Job photo attached", job_id=job_id, user_id=caller.user_id)
    return job


def delete_job(db: Session, job_id: int, caller: Caller, *, bus: Optional[EventBus] = None):
    """Purge a live job with all of its assignments and time logs, active or not."""
    if not caller.is_admin:
        raise ForbiddenError("only admins can delete jobs")

    with unit_of_work(db, job_id, bus=bus) as uow:
        job = lock_job(db, job_id)
        purged_logs = db.query(TimeLog).filter(TimeLog.job_id == job_id).delete(synchronize_session=False)
        db.delete(job)
        db.flush()
        uow.emit(JOB_DELETED, {"job_id": job_id})

    prometheus_metrics.increment_jobs_deleted()
    log_job_event("job_deleted", "Job deleted", job_id=job_id, user_id=caller.user_id,
                  time_logs_purged=purged_logs)


def get_job(db: Session, job_id: int) -> Job:
    job = db.get(Job, job_id)
    if job is None:
        raise NotFoundError("job not found")
    return job


def list_jobs(db: Session, status: Optional[str] = None, assignee_id: Optional[int] = None) -> List[Job]:
    """Live jobs, newest first."""
    if status is not None and status not in JOB_STATUSES:
        raise ValidationError(f"status must be one of {list(JOB_STATUSES)}")
    q = db.query(Job)
    if status is not None:
        q = q.filter(Job.status == status)
    if assignee_id is not None:
        q = q.filter(Job.assignments.any(JobAssignment.user_id == assignee_id))
    return q.order_by(Job.created_at.desc(), Job.id.desc()).all()
