from sqlalchemy import Column, Integer, String, Text, Float, DateTime, JSON

from shopfloor.db import Base
from shopfloor.utils.timeutil import utcnow


class ArchivedJob(Base):
    __tablename__ = "archived_jobs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    original_job_id = Column(Integer, nullable=False, unique=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    customer_name = Column(String(255), nullable=False)
    vehicle_info = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default="completed")
    assigned_user_ids = Column(JSON, nullable=False, default=list)
    assigned_names = Column(JSON, nullable=False, default=list)
    created_by = Column(Integer, nullable=False)
    created_by_name = Column(String(128), nullable=True)
    estimated_hours = Column(Float, nullable=True)
    actual_hours = Column(Float, nullable=False, default=0.0)
    photo_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    archived_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    total_time_minutes = Column(Integer, nullable=False, default=0)
    minutes_by_user = Column(JSON, nullable=False, default=dict)  # {"<user_id>": minutes} from the closed logs
    notes = Column(Text, nullable=True)
