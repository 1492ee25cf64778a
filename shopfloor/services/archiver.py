"""
Archiver: moves a finished job out of live storage into a permanent snapshot.

Snapshot write and live-row purge happen in one transaction, after the
preconditions are checked again under the job lock.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..auth import Caller
from ..errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from ..logging_config import log_job_event
from ..models.archived_job import ArchivedJob
from ..models.job import Job
from ..models.time_log import TimeLog
from ..models.user import User
from ..utils.timeutil import utcnow
from .events import EventBus, JOB_ARCHIVED
from .prometheus_metrics import prometheus_metrics
from .transactions import unit_of_work

logger = logging.getLogger(__name__)


def archive_job(db: Session, job_id: int, caller: Caller, *, notes: Optional[str] = None,
                now: Optional[datetime] = None, bus: Optional[EventBus] = None) -> ArchivedJob:
    if not caller.is_admin:
        raise ForbiddenError("only admins can archive jobs")

    with unit_of_work(db, job_id, bus=bus) as uow:
        now = now or utcnow()
        job = db.query(Job).filter(Job.id == job_id).with_for_update(of=Job).one_or_none()
        if job is None:
            if db.query(ArchivedJob.id).filter(ArchivedJob.original_job_id == job_id).first():
                raise NotFoundError("job already archived")
            raise NotFoundError("job not found")
        if job.status != "completed":
            raise InvalidStateError("job not completed")

        logs = db.query(TimeLog).filter(TimeLog.job_id == job_id).all()
        if any(log.end_time is None for log in logs):
            raise ConflictError("active timer exists")

        minutes_by_user = defaultdict(int)
        for log in logs:
            minutes_by_user[str(log.user_id)] += log.duration_minutes or 0
        total_minutes = sum(minutes_by_user.values())

        archived = ArchivedJob(
            original_job_id=job.id,
            title=job.title,
            description=job.description,
            customer_name=job.customer_name,
            vehicle_info=job.vehicle_info,
            status=job.status,
            assigned_user_ids=[a.user_id for a in job.assignments],
            assigned_names=[a.user.name if a.user else "" for a in job.assignments],
            created_by=job.created_by,
            created_by_name=job.creator.name if job.creator else None,
            estimated_hours=job.estimated_hours,
            actual_hours=job.actual_hours or 0.0,
            photo_url=job.photo_url,
            created_at=job.created_at,
            updated_at=job.updated_at,
            completed_at=job.completed_at or now,
            archived_at=now,
            total_time_minutes=total_minutes,
            minutes_by_user=dict(minutes_by_user),
            notes=notes,
        )
        db.add(archived)
        db.flush()

        db.query(TimeLog).filter(TimeLog.job_id == job_id).delete(synchronize_session=False)
        db.delete(job)
        db.flush()
        uow.emit(JOB_ARCHIVED, {"job_id": job_id, "archived_job_id": archived.id})

    prometheus_metrics.increment_jobs_archived()
    log_job_event("job_archived", "Job archived", job_id=job_id, user_id=caller.user_id,
                  archived_job_id=archived.id, total_time_minutes=total_minutes)
    return archived


def list_archived_jobs(db: Session, limit: Optional[int] = None) -> List[ArchivedJob]:
    """Newest archive first."""
    q = db.query(ArchivedJob).order_by(ArchivedJob.archived_at.desc(), ArchivedJob.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def get_archived_job(db: Session, archived_id: int) -> ArchivedJob:
    archived = db.get(ArchivedJob, archived_id)
    if archived is None:
        raise NotFoundError("archived job not found")
    return archived


def archive_stats(db: Session) -> Dict[str, Any]:
    rows = db.query(ArchivedJob).all()

    total_minutes = sum(r.total_time_minutes or 0 for r in rows)
    total_archived = len(rows)
    total_hours = total_minutes / 60
    overall = {
        "total_archived": total_archived,
        "total_hours": round(total_hours, 2),
        "total_minutes": total_minutes,
        "avg_hours_per_job": round(total_hours / total_archived, 2) if total_archived else 0.0,
    }

    per_user = {}
    snapshot_names = {}
    for r in rows:
        worked = {int(uid): minutes for uid, minutes in (r.minutes_by_user or {}).items()}
        for uid, name in zip(r.assigned_user_ids or [], r.assigned_names or []):
            snapshot_names.setdefault(uid, name)
        for uid in set(r.assigned_user_ids or []) | set(worked):
            entry = per_user.setdefault(uid, {"jobs_completed": 0, "total_minutes": 0})
            entry["jobs_completed"] += 1
            entry["total_minutes"] += worked.get(uid, 0)

    names = {}
    if per_user:
        names = {u.id: u.name for u in db.query(User).filter(User.id.in_(list(per_user))).all()}

    by_employee = [
        {
            "user_id": uid,
            "name": names.get(uid) or snapshot_names.get(uid) or f"user {uid}",
            "jobs_completed": entry["jobs_completed"],
            "total_minutes": entry["total_minutes"],
            "total_hours": round(entry["total_minutes"] / 60, 2),
        }
        for uid, entry in per_user.items()
    ]
    by_employee.sort(key=lambda e: (-e["total_minutes"], e["user_id"]))
    return {"overall": overall, "by_employee": by_employee}
