"""
Unit of work shared by the job lifecycle, timer ledger and archiver.

A unit of work serializes on the job id inside this process, runs exactly one
database transaction, and publishes the events it collected only after that
transaction commits, still holding the job lock so that events for one job go
out in commit order.
"""

import logging
from contextlib import ExitStack, contextmanager
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..errors import ConflictError, NotFoundError
from ..models.job import Job, JobAssignment
from .events import EventBus, event_bus
from .locks import KeyedLocks, job_locks

logger = logging.getLogger("shopfloor.core")

# lock_not_available, deadlock_detected
LOCK_TIMEOUT_PGCODES = {"55P03", "40P01"}


class UnitOfWork:
    def __init__(self, db: Session, bus: EventBus, locks: KeyedLocks):
        self.db = db
        self.bus = bus
        self._locks = locks
        self._stack = ExitStack()
        self._held = set()
        self._events: List[Tuple[str, Dict[str, Any]]] = []

    def lock(self, job_id: int, blocking: bool = True) -> bool:
        if job_id in self._held:
            return True
        if not self._stack.enter_context(self._locks.hold(job_id, blocking)):
            return False
        self._held.add(job_id)
        return True

    def emit(self, event_name: str, payload: Dict[str, Any]):
        self._events.append((event_name, payload))

    def _publish(self):
        for event_name, payload in self._events:
            self.bus.publish(event_name, payload)


def is_lock_timeout(exc: OperationalError) -> bool:
    """SQLite busy timeout, or a PostgreSQL lock timeout / deadlock victim."""
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if sqlstate in LOCK_TIMEOUT_PGCODES:
        return True
    message = str(exc.orig).lower()
    return "database is locked" in message or "database table is locked" in message


@contextmanager
def unit_of_work(db: Session, job_id: Optional[int] = None, bus: Optional[EventBus] = None,
                 locks: Optional[KeyedLocks] = None):
    # Never wait for a job lock while holding a database transaction
    if db.in_transaction():
        db.rollback()

    uow = UnitOfWork(db, bus or event_bus, locks or job_locks)
    with uow._stack:
        if job_id is not None:
            uow.lock(job_id)
        try:
            yield uow
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning("constraint violation", extra={"job_id": job_id, "error": str(e.orig)})
            raise ConflictError("conflicting concurrent change") from e
        except OperationalError as e:
            db.rollback()
            if not is_lock_timeout(e):
                raise
            logger.warning("gave up waiting for a database lock", extra={"job_id": job_id, "error": str(e.orig)})
            raise ConflictError("database busy, retry") from e
        except BaseException:
            db.rollback()
            raise
        uow._publish()


def lock_job(db: Session, job_id: int) -> Job:
    """Load a live job for update (row lock on PostgreSQL; SQLite already holds the write lock)."""
    job = db.query(Job).filter(Job.id == job_id).with_for_update(of=Job).one_or_none()
    if job is None:
        raise NotFoundError("job not found")
    return job


def is_assignee(db: Session, job_id: int, user_id: int) -> bool:
    return db.query(JobAssignment.id).filter(
        JobAssignment.job_id == job_id, JobAssignment.user_id == user_id
    ).first() is not None
