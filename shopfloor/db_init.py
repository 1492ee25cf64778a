import logging
from threading import Lock
from typing import Iterable, Tuple

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from . import config
from .db import init_db, session_scope
from .utils.crypto import hash_token

logger = logging.getLogger("shopfloor.db")

_initialized = False
_init_lock = Lock()


def _default_users() -> Iterable[Tuple[str, str, str, str]]:
    # (name, email, role, token)
    return [
        ("Admin", "admin@shopfloor.local", "admin", config.DEV_ADMIN_KEY),
        ("Employee", "employee@shopfloor.local", "employee", config.DEV_EMPLOYEE_KEY),
    ]


def seed_default_users(factory: sessionmaker = None) -> int:
    """Insert the default admin/employee when the users table is empty. Returns rows added."""
    from .models.user import User

    with session_scope(factory) as db:
        if db.query(User.id).first() is not None:
            return 0
        rows = [
            User(name=name, email=email, role=role, api_key_hash=hash_token(token), active=True)
            for name, email, role, token in _default_users()
        ]
        db.add_all(rows)

    logger.info("Seeded default users", extra={"count": len(rows)})
    return len(rows)


def init_schema_and_seed(bind: Engine = None, factory: sessionmaker = None, force: bool = False) -> None:
    """
    Ensure the schema exists and seed default users.
    Safe to call multiple times; pass `force=True` for a fresh engine (tests).
    """
    global _initialized
    if _initialized and not force:
        return
    with _init_lock:
        if _initialized and not force:
            return

        init_db(bind)
        if config.SEED_DEFAULT_USERS:
            seed_default_users(factory)

        _initialized = True
