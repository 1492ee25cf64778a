from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: str
    active: bool = True
    created_at: Optional[datetime] = None


class UserCreate(BaseModel):
    name: str = ""
    email: str = ""
    role: str = "employee"


class UserUpdate(BaseModel):
    """Partial update; fields left out keep their current value."""
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    active: Optional[bool] = None


class UserWithKey(UserOut):
    """Returned once, on create and rotate. The key is not stored in clear and cannot be fetched again."""
    api_key: str
