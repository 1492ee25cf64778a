"""
Database configuration and session management
"""
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL, SQLITE_BUSY_TIMEOUT_SEC

logger = logging.getLogger(__name__)


def _install_sqlite_pragmas(engine: Engine) -> None:
    """Enforce FKs and take the write lock at BEGIN so check-then-write is serialized."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself instead of pysqlite's deferred BEGIN
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(url: str = DATABASE_URL, busy_timeout: float = SQLITE_BUSY_TIMEOUT_SEC) -> Engine:
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
        )
        _install_sqlite_pragmas(engine)
        return engine

    return create_engine(
        url,
        future=True,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


engine = make_engine()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Create base class for models
Base = declarative_base()


def init_db(bind: Engine = None):
    """Initialize database tables"""
    # Make sure all models are imported so Base.metadata is populated
    import shopfloor.models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created successfully")


# Dependency to get database session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory=None):
    s = (factory or SessionLocal)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
