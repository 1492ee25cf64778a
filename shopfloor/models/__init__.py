from .user import User
from .job import Job, JobAssignment, JOB_STATUSES
from .time_log import TimeLog
from .archived_job import ArchivedJob

__all__ = ["User", "Job", "JobAssignment", "JOB_STATUSES", "TimeLog", "ArchivedJob"]
