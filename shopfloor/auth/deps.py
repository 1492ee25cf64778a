import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.user import User
from ..utils.crypto import hash_token
from . import Caller

log = logging.getLogger("shopfloor.auth")


def _extract_token(req: Request) -> str:
    # Authorization: Bearer <token>   OR   Authorization: <token>
    auth = req.headers.get("authorization")
    if auth:
        parts = auth.strip().split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
        if len(parts) == 1:
            return parts[0]
    # X-API-Key: <token>
    x = req.headers.get("x-api-key")
    if x:
        return x.strip()
    return ""


def _resolve(db: Session, token: str) -> Caller:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")
    user: Optional[User] = db.query(User).filter(User.api_key_hash == hash_token(token)).one_or_none()
    if not user:
        log.warning("AUTH: token not found")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    if not user.active:
        log.warning("AUTH: user disabled, user_id=%s", user.id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User disabled")
    caller = Caller(user_id=user.id, role=user.role, name=user.name)
    # Release the lookup transaction; on SQLite it holds the write lock
    db.rollback()
    return caller


def get_caller(req: Request, db: Session = Depends(get_db)) -> Caller:
    caller = _resolve(db, _extract_token(req))
    req.state.user_id = caller.user_id
    return caller


def get_stream_caller(req: Request, db: Session = Depends(get_db)) -> Caller:
    """Like get_caller, but EventSource clients (no custom headers) may pass ?key=."""
    token = _extract_token(req) or (req.query_params.get("key") or "").strip()
    caller = _resolve(db, token)
    req.state.user_id = caller.user_id
    return caller


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return caller
