from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Caller
from ..auth.deps import get_caller
from ..db import get_db
from ..errors import ForbiddenError, ValidationError
from ..services import reports

router = APIRouter(tags=["Stats"])


@router.get("/dashboard/stats")
def dashboard_stats(caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return reports.dashboard_stats(db)


@router.get("/employees/{user_id}/hours")
def employee_hours(
    user_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Worked minutes per day for one employee (admins, or the employee themselves)."""
    if not caller.is_admin and caller.user_id != user_id:
        raise ForbiddenError("can only read your own hours")
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")
    return {
        "user_id": user_id,
        "days": reports.employee_hours(db, user_id, start_date=start_date, end_date=end_date),
    }
