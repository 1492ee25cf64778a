"""
Employee provisioning: admins add people, edit them, switch them off and
hand out new API keys.

Users are never deleted. Deactivating one keeps every job, assignment and
time log they touched, and stops their key from authenticating.
"""

import logging
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Session

from ..auth import Caller
from ..errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..models.user import User
from ..utils.crypto import generate_api_key, hash_token
from .transactions import unit_of_work

logger = logging.getLogger("shopfloor.core")

ROLES = ("admin", "employee")
EDITABLE_FIELDS = ("name", "email", "role", "active")


def _admin_only(caller: Caller):
    if not caller.is_admin:
        raise ForbiddenError("only admins can manage users")


def _clean_name(value) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError("name is required")
    return value


def _clean_email(value) -> str:
    value = (value or "").strip().lower()
    if "@" not in value:
        raise ValidationError("a valid email is required")
    return value


def _check_role(value: str) -> str:
    if value not in ROLES:
        raise ValidationError(f"role must be one of {list(ROLES)}")
    return value


def _email_taken(db: Session, email: str, exclude_id: int = None) -> bool:
    q = db.query(User.id).filter(User.email == email)
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


def _load(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("user not found")
    return user


def list_users(db: Session) -> List[User]:
    """Active and disabled users, for the assignee picker."""
    return db.query(User).order_by(User.name.asc(), User.id.asc()).all()


def get_user(db: Session, user_id: int) -> User:
    return _load(db, user_id)


def create_user(db: Session, caller: Caller, *, name: str, email: str,
                role: str = "employee") -> Tuple[User, str]:
    """Returns the new user and its API key in clear (the only time it is available)."""
    _admin_only(caller)
    name = _clean_name(name)
    email = _clean_email(email)
    role = _check_role(role)
    api_key = generate_api_key()

    with unit_of_work(db):
        if _email_taken(db, email):
            raise ConflictError("email already in use")
        user = User(name=name, email=email, role=role, api_key_hash=hash_token(api_key), active=True)
        db.add(user)
        db.flush()

    logger.info("User created", extra={"user_id": user.id, "role": role, "by": caller.user_id})
    return user, api_key


def update_user(db: Session, user_id: int, caller: Caller, changes: Dict[str, Any]) -> User:
    _admin_only(caller)
    changes = dict(changes)
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"fields not editable: {sorted(unknown)}")
    if "name" in changes:
        changes["name"] = _clean_name(changes["name"])
    if "email" in changes:
        changes["email"] = _clean_email(changes["email"])
    if "role" in changes:
        changes["role"] = _check_role(changes["role"])
    if changes.get("active") is None:
        changes.pop("active", None)

    # An admin cannot lock themself out
    if user_id == caller.user_id and (changes.get("role", "admin") != "admin" or changes.get("active") is False):
        raise InvalidStateError("cannot demote or deactivate yourself")

    with unit_of_work(db):
        user = _load(db, user_id)
        if "email" in changes and _email_taken(db, changes["email"], exclude_id=user_id):
            raise ConflictError("email already in use")
        for field, value in changes.items():
            setattr(user, field, value)
        db.flush()

    logger.info("User updated", extra={"user_id": user_id, "fields": sorted(changes), "by": caller.user_id})
    return user


def deactivate_user(db: Session, user_id: int, caller: Caller) -> User:
    return update_user(db, user_id, caller, {"active": False})


def rotate_api_key(db: Session, user_id: int, caller: Caller) -> Tuple[User, str]:
    """Replace the user's key; the old one stops working immediately."""
    _admin_only(caller)
    api_key = generate_api_key()

    with unit_of_work(db):
        user = _load(db, user_id)
        user.api_key_hash = hash_token(api_key)
        db.flush()

    logger.info("API key rotated", extra={"user_id": user_id, "by": caller.user_id})
    return user, api_key
