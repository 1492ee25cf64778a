from sqlalchemy import Column, Integer, DateTime, ForeignKey, Index, text

from shopfloor.db import Base


class TimeLog(Base):
    __tablename__ = "time_logs"
    __table_args__ = (
        # At most one open session per (job, employee); enforced by the store itself
        Index(
            "uq_time_logs_active_pair",
            "job_id",
            "user_id",
            unique=True,
            sqlite_where=text("end_time IS NULL"),
            postgresql_where=text("end_time IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)  # NULL = active
    duration_minutes = Column(Integer, nullable=True)  # set on close only

    # Filled in by start_timer for the response; not a column
    job_title = None

    @property
    def is_active(self) -> bool:
        return self.end_time is None
