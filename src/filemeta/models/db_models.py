"""SQLAlchemy database models for the filemeta backup store."""
import datetime
from typing import Optional

from sqlalchemy import (JSON, Column, DateTime, Integer, LargeBinary, String,
                        create_engine, event)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from filemeta.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DBBackupRecord(Base):
    """Shadow copy of one file's managed attributes, keyed by file identity."""
    __tablename__ = "metadata_backups"
    identity = Column(String(64), primary_key=True)
    path = Column(String(4096), nullable=False, index=True)
    tags_blob = Column(LargeBinary, nullable=True)
    rating_blob = Column(LargeBinary, nullable=True)
    # key -> base64 encoded blob for the other managed keys
    attributes = Column(JSON, nullable=False, default=dict)
    backed_up_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<BackupRecord(identity='{self.identity}', path='{self.path}')>"


class DBRecentTag(Base):
    """A recently used tag; lower position means more recent."""
    __tablename__ = "recent_tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(1024), nullable=False)
    position = Column(Integer, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<RecentTag(position={self.position}, name='{self.name}')>"


def init_db(db_url: Optional[str] = None) -> Engine:
    """Create the backup database engine and its tables.

    SQLite settings for crash resilience and concurrent workers:
    - WAL mode so readers never block the writer
    - NORMAL synchronous mode
    - busy timeout so worker threads wait for the write lock
    - QueuePool with pre-ping
    """
    engine = create_engine(
        db_url or config.get_db_url(),
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=10000")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
