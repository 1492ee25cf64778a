from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class JobCreate(BaseModel):
    title: str = ""
    description: Optional[str] = None
    customer_name: str = ""
    vehicle_info: Optional[str] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    assignee_ids: List[int] = []


class JobUpdate(BaseModel):
    """Partial update; fields left out keep their current value."""
    title: Optional[str] = None
    description: Optional[str] = None
    customer_name: Optional[str] = None
    vehicle_info: Optional[str] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    photo_url: Optional[str] = None
    assignee_ids: Optional[List[int]] = None


class StatusUpdate(BaseModel):
    status: str


class PhotoUpdate(BaseModel):
    photo_url: str = Field(..., min_length=1, max_length=1024)


class AssigneeOut(BaseModel):
    id: int
    name: str
    assigned_at: Optional[datetime] = None


class JobOut(BaseModel):
    id: int
    title: str
    description: Optional[str]
    customer_name: str
    vehicle_info: Optional[str]
    status: str
    estimated_hours: Optional[float]
    actual_hours: float
    created_by: int
    created_by_name: Optional[str]
    photo_url: Optional[str]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]
    assignees: List[AssigneeOut]


def job_to_out(job) -> JobOut:
    return JobOut(
        id=job.id,
        title=job.title,
        description=job.description,
        customer_name=job.customer_name,
        vehicle_info=job.vehicle_info,
        status=job.status,
        estimated_hours=job.estimated_hours,
        actual_hours=job.actual_hours or 0.0,
        created_by=job.created_by,
        created_by_name=job.creator.name if job.creator else None,
        photo_url=job.photo_url,
        created_at=job.created_at,
        updated_at=job.updated_at,
        completed_at=job.completed_at,
        assignees=[
            AssigneeOut(id=a.user_id, name=a.user.name if a.user else "", assigned_at=a.assigned_at)
            for a in job.assignments
        ],
    )


def serialize_job(job) -> dict:
    """JSON-safe job payload for events."""
    return job_to_out(job).model_dump(mode="json")
