from sqlalchemy import Column, Integer, String, Text, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from shopfloor.db import Base
from shopfloor.utils.timeutil import utcnow

JOB_STATUSES = ("todo", "in_progress", "completed")


class Job(Base):
    __tablename__ = "jobs"
    # AUTOINCREMENT keeps SQLite from handing an archived/deleted id to a new job
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    customer_name = Column(String(255), nullable=False)
    vehicle_info = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default="todo", index=True)  # todo|in_progress|completed
    estimated_hours = Column(Float, nullable=True)
    actual_hours = Column(Float, nullable=False, default=0.0)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    photo_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)  # last move into "completed"

    creator = relationship("User", lazy="joined")
    assignments = relationship(
        "JobAssignment",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="[JobAssignment.assigned_at, JobAssignment.id]",
    )

    @property
    def assignee_ids(self) -> list:
        return [a.user_id for a in self.assignments]


class JobAssignment(Base):
    __tablename__ = "job_assignments"
    __table_args__ = (
        UniqueConstraint("job_id", "user_id", name="uq_job_assignments_job_user"),
    )

    id = Column(Integer, primary_key=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    assigned_at = Column(DateTime, nullable=False, default=utcnow)

    job = relationship("Job", back_populates="assignments")
    user = relationship("User", foreign_keys=[user_id], lazy="joined")
