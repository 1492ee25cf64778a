from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class ArchivedJobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    original_job_id: int
    title: str
    description: Optional[str]
    customer_name: str
    vehicle_info: Optional[str]
    status: str
    assigned_user_ids: List[int]
    assigned_names: List[str]
    created_by: int
    created_by_name: Optional[str]
    estimated_hours: Optional[float]
    actual_hours: float
    photo_url: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    completed_at: Optional[datetime]
    archived_at: datetime
    total_time_minutes: int
    minutes_by_user: Dict[str, int] = {}
    notes: Optional[str]


class ArchiveRequest(BaseModel):
    notes: Optional[str] = None


class ArchiveResult(BaseModel):
    archived_job_id: int
    original_job_id: int
    total_time_minutes: int


class OverallStats(BaseModel):
    total_archived: int
    total_hours: float
    total_minutes: int
    avg_hours_per_job: float


class EmployeeStats(BaseModel):
    user_id: int
    name: str
    jobs_completed: int
    total_minutes: int
    total_hours: float


class ArchiveStatsOut(BaseModel):
    overall: OverallStats
    by_employee: List[EmployeeStats]
