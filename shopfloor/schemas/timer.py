from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class TimeLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    user_id: int
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    job_title: Optional[str] = None


class TimerStopOut(BaseModel):
    time_log: TimeLogOut
    job_id: int
    actual_hours: float
