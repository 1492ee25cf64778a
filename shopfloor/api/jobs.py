"""
Live job endpoints: listing, CRUD, status changes and photo references.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from ..auth import Caller
from ..auth.deps import get_caller
from ..db import get_db
from ..schemas.job import JobCreate, JobOut, JobUpdate, PhotoUpdate, StatusUpdate, job_to_out
from ..services import lifecycle

router = APIRouter(tags=["Jobs"])


@router.get("/jobs", response_model=List[JobOut])
def list_jobs(
    status_filter: Optional[str] = Query(None, alias="status"),
    assignee_id: Optional[int] = Query(None),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Every live job, newest first. Employees see the whole board, not just their own jobs."""
    jobs = lifecycle.list_jobs(db, status=status_filter, assignee_id=assignee_id)
    return [job_to_out(j) for j in jobs]


@router.post("/jobs", response_model=JobOut, status_code=status.HTTP_201_CREATED)
def create_job(body: JobCreate, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    job = lifecycle.create_job(
        db,
        caller,
        title=body.title,
        description=body.description,
        customer_name=body.customer_name,
        vehicle_info=body.vehicle_info,
        estimated_hours=body.estimated_hours,
        assignee_ids=body.assignee_ids,
    )
    return job_to_out(job)


@router.get("/jobs/{job_id}", response_model=JobOut)
def get_job(job_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return job_to_out(lifecycle.get_job(db, job_id))


@router.put("/jobs/{job_id}", response_model=JobOut)
def update_job(job_id: int, body: JobUpdate, caller: Caller = Depends(get_caller),
               db: Session = Depends(get_db)):
    # Only fields the client actually sent are applied
    changes = body.model_dump(exclude_unset=True)
    job = lifecycle.update_job(db, job_id, caller, changes)
    return job_to_out(job)


@router.put("/jobs/{job_id}/status", response_model=JobOut)
def set_status(job_id: int, body: StatusUpdate, caller: Caller = Depends(get_caller),
               db: Session = Depends(get_db)):
    job = lifecycle.set_status(db, job_id, body.status, caller)
    return job_to_out(job)


@router.put("/jobs/{job_id}/photo", response_model=JobOut)
def attach_photo(job_id: int, body: PhotoUpdate, caller: Caller = Depends(get_caller),
                 db: Session = Depends(get_db)):
    job = lifecycle.attach_photo(db, job_id, body.photo_url, caller)
    return job_to_out(job)


@router.delete("/jobs/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_job(job_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    lifecycle.delete_job(db, job_id, caller)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
