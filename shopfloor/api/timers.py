from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth import Caller
from ..auth.deps import get_caller
from ..db import get_db
from ..errors import ForbiddenError
from ..schemas.timer import TimeLogOut, TimerStopOut
from ..services import timer_ledger

router = APIRouter(tags=["Timers"])


def _out(log, job_title: Optional[str] = None) -> TimeLogOut:
    out = TimeLogOut.model_validate(log)
    out.job_title = job_title
    return out


@router.post("/jobs/{job_id}/timer/start", response_model=TimeLogOut, status_code=status.HTTP_201_CREATED)
def start_timer(job_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    log = timer_ledger.start_timer(db, job_id, caller)
    return _out(log, log.job_title)


@router.post("/jobs/{job_id}/timer/stop", response_model=TimerStopOut)
def stop_timer(job_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    log, actual_hours = timer_ledger.stop_timer(db, job_id, caller)
    return TimerStopOut(time_log=_out(log), job_id=job_id, actual_hours=actual_hours)


@router.get("/timers/active", response_model=List[TimeLogOut])
def active_timers(
    user_id: Optional[int] = Query(None, description="Admins may look at another employee"),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    target = caller.user_id if user_id is None else user_id
    if target != caller.user_id and not caller.is_admin:
        raise ForbiddenError("can only list your own timers")
    return [_out(log, title) for log, title in timer_ledger.list_active_timers(db, target)]
