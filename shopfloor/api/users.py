from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import Caller
from ..auth.deps import get_caller, require_admin
from ..db import get_db
from ..schemas.user import UserCreate, UserOut, UserUpdate, UserWithKey
from ..services import users

router = APIRouter(tags=["Users"])


def _with_key(user, api_key: str) -> UserWithKey:
    return UserWithKey(**UserOut.model_validate(user).model_dump(), api_key=api_key)


@router.get("/me", response_model=UserOut)
def me(caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return users.get_user(db, caller.user_id)


@router.get("/users", response_model=List[UserOut])
def list_users(caller: Caller = Depends(require_admin), db: Session = Depends(get_db)):
    return users.list_users(db)


@router.post("/users", response_model=UserWithKey, status_code=status.HTTP_201_CREATED)
def create_user(body: UserCreate, caller: Caller = Depends(require_admin), db: Session = Depends(get_db)):
    """Add an employee (or admin). The response carries the API key; store it, it is shown once."""
    user, api_key = users.create_user(db, caller, name=body.name, email=body.email, role=body.role)
    return _with_key(user, api_key)


@router.get("/users/{user_id}", response_model=UserOut)
def get_user(user_id: int, caller: Caller = Depends(require_admin), db: Session = Depends(get_db)):
    return users.get_user(db, user_id)


@router.put("/users/{user_id}", response_model=UserOut)
def update_user(user_id: int, body: UserUpdate, caller: Caller = Depends(require_admin),
                db: Session = Depends(get_db)):
    return users.update_user(db, user_id, caller, body.model_dump(exclude_unset=True))


@router.delete("/users/{user_id}", response_model=UserOut)
def deactivate_user(user_id: int, caller: Caller = Depends(require_admin), db: Session = Depends(get_db)):
    """Soft delete: the user stays for history but can no longer sign in or be assigned."""
    return users.deactivate_user(db, user_id, caller)


@router.post("/users/{user_id}/rotate-key", response_model=UserWithKey)
def rotate_key(user_id: int, caller: Caller = Depends(require_admin), db: Session = Depends(get_db)):
    user, api_key = users.rotate_api_key(db, user_id, caller)
    return _with_key(user, api_key)
