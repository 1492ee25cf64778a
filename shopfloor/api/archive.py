from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Caller
from ..auth.deps import get_caller, require_admin
from ..db import get_db
from ..schemas.archive import ArchivedJobOut, ArchiveRequest, ArchiveResult, ArchiveStatsOut
from ..services import archiver

router = APIRouter(tags=["Archive"])


@router.post("/jobs/{job_id}/archive", response_model=ArchiveResult)
def archive_job(job_id: int, body: Optional[ArchiveRequest] = Body(None),
                caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    archived = archiver.archive_job(db, job_id, caller, notes=body.notes if body else None)
    return ArchiveResult(
        archived_job_id=archived.id,
        original_job_id=archived.original_job_id,
        total_time_minutes=archived.total_time_minutes,
    )


@router.get("/archived-jobs", response_model=List[ArchivedJobOut])
def list_archived_jobs(limit: Optional[int] = Query(None, ge=1, le=1000),
                       caller: Caller = Depends(require_admin), db: Session = Depends(get_db)):
    return archiver.list_archived_jobs(db, limit=limit)


# Registered before /archived-jobs/{archived_id} so "stats" is not parsed as an id
@router.get("/archived-jobs/stats", response_model=ArchiveStatsOut)
def archive_stats(caller: Caller = Depends(require_admin), db: Session = Depends(get_db)):
    return archiver.archive_stats(db)


@router.get("/archived-jobs/{archived_id}", response_model=ArchivedJobOut)
def get_archived_job(archived_id: int, caller: Caller = Depends(require_admin), db: Session = Depends(get_db)):
    return archiver.get_archived_job(db, archived_id)
