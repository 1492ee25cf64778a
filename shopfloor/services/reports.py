"""
Read-only aggregates for the dashboard and the per-employee hours report.
"""

from collections import OrderedDict
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.archived_job import ArchivedJob
from ..models.job import JOB_STATUSES, Job
from ..models.time_log import TimeLog


def dashboard_stats(db: Session) -> Dict[str, int]:
    counts = dict(db.query(Job.status, func.count(Job.id)).group_by(Job.status).all())
    stats = {f"{status}_jobs": int(counts.get(status, 0)) for status in JOB_STATUSES}
    stats["total_jobs"] = sum(stats.values())
    stats["active_timers"] = db.query(func.count(TimeLog.id)).filter(TimeLog.end_time.is_(None)).scalar() or 0
    stats["archived_jobs"] = db.query(func.count(ArchivedJob.id)).scalar() or 0
    return stats


def employee_hours(db: Session, user_id: int, start_date: Optional[date] = None,
                   end_date: Optional[date] = None) -> List[Dict[str, Any]]:
    """Closed sessions of one employee on live jobs, grouped by the day they started (newest day first).

    Both bounds are inclusive calendar days in UTC.
    """
    q = db.query(TimeLog).filter(TimeLog.user_id == user_id, TimeLog.end_time.isnot(None))
    if start_date is not None:
        q = q.filter(TimeLog.start_time >= datetime.combine(start_date, time.min))
    if end_date is not None:
        q = q.filter(TimeLog.start_time < datetime.combine(end_date + timedelta(days=1), time.min))

    days = OrderedDict()
    for log in q.order_by(TimeLog.start_time.desc()).all():
        day = log.start_time.date()
        entry = days.get(day)
        if entry is None:
            entry = days[day] = {"total_minutes": 0, "sessions_count": 0, "jobs": set()}
        entry["total_minutes"] += log.duration_minutes or 0
        entry["sessions_count"] += 1
        entry["jobs"].add(log.job_id)

    return [
        {
            "work_date": day.isoformat(),
            "total_minutes": entry["total_minutes"],
            "total_hours": round(entry["total_minutes"] / 60, 2),
            "sessions_count": entry["sessions_count"],
            "jobs_worked": len(entry["jobs"]),
        }
        for day, entry in days.items()
    ]
