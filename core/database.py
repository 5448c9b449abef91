# ABOUTME: SQLModel tables (goals, tasks, resources, focus_sessions, learning_patterns) and SQLite engines.
# ABOUTME: ConnectionProvider hands out per-request sessions and degrades to in-memory when the file cannot be opened.

import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import CheckConstraint, Connection, Engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from core import config
from core.errors import StorageUnavailableError
from core.storage import StorageTarget


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_NOW = {"server_default": text("CURRENT_TIMESTAMP")}


class Goal(SQLModel, table=True):
    """Top-level objective. Root of the goal -> task -> resource/session cascade."""

    __tablename__ = "goals"
    __table_args__ = (
        CheckConstraint("progress BETWEEN 0 AND 100", name="ck_goals_progress_range"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    target_date: Optional[date] = None
    priority: str = Field(
        default=config.DEFAULT_PRIORITY,
        sa_column_kwargs={"server_default": config.DEFAULT_PRIORITY},
    )
    progress: int = Field(default=0, sa_column_kwargs={"server_default": text("0")})
    created_at: datetime = Field(default_factory=_utcnow, sa_column_kwargs=_NOW)
    updated_at: datetime = Field(default_factory=_utcnow, sa_column_kwargs=_NOW)


class Task(SQLModel, table=True):
    """Actionable unit of work, optionally owned by a goal."""

    __tablename__ = "tasks"

    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: Optional[int] = Field(
        default=None, foreign_key="goals.id", ondelete="CASCADE", index=True
    )
    title: str
    description: Optional[str] = None
    status: str = Field(
        default=config.DEFAULT_TASK_STATUS,
        sa_column_kwargs={"server_default": config.DEFAULT_TASK_STATUS},
    )
    priority: str = Field(
        default=config.DEFAULT_PRIORITY,
        sa_column_kwargs={"server_default": config.DEFAULT_PRIORITY},
    )
    estimated_time: Optional[int] = None  # minutes
    actual_time: Optional[int] = None  # minutes
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow, sa_column_kwargs=_NOW)


class Resource(SQLModel, table=True):
    __tablename__ = "resources"

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: Optional[int] = Field(
        default=None, foreign_key="tasks.id", ondelete="CASCADE", index=True
    )
    title: str
    url: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow, sa_column_kwargs=_NOW)


class FocusSession(SQLModel, table=True):
    __tablename__ = "focus_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: Optional[int] = Field(
        default=None, foreign_key="tasks.id", ondelete="CASCADE", index=True
    )
    duration: Optional[int] = None  # minutes
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    distractions: int = Field(default=0, sa_column_kwargs={"server_default": text("0")})
    created_at: datetime = Field(default_factory=_utcnow, sa_column_kwargs=_NOW)


class LearningPattern(SQLModel, table=True):
    __tablename__ = "learning_patterns"

    id: Optional[int] = Field(default=None, primary_key=True)
    pattern_type: Optional[str] = None
    pattern_value: Optional[str] = None
    success_rate: Optional[float] = None
    sample_size: Optional[int] = None
    last_updated: datetime = Field(default_factory=_utcnow, sa_column_kwargs=_NOW)


def init_schema(bind: Engine | Connection) -> None:
    """Create all tables if they do not exist. Safe to call any number of times."""
    SQLModel.metadata.create_all(bind)
    if isinstance(bind, Connection):
        bind.commit()


def _install_pragmas(engine: Engine, *, busy_timeout_ms: int, read_only: bool) -> None:
    # Pragmas are per connection, so they are applied to every new DBAPI connection.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
        if read_only:
            cursor.execute("PRAGMA query_only = ON")
        else:
            cursor.execute("PRAGMA journal_mode = WAL")
            cursor.execute("PRAGMA synchronous = NORMAL")
        cursor.close()


def create_file_engine(
    path: Path,
    *,
    busy_timeout_ms: int = config.DB_BUSY_TIMEOUT_MS,
    read_only: bool = False,
) -> Engine:
    """Engine for a SQLite file. read_only opens it with mode=ro and never creates it."""
    if read_only:
        url = f"sqlite:///file:{Path(path).as_posix()}?mode=ro&uri=true"
    else:
        url = f"sqlite:///{Path(path).as_posix()}"
    engine = create_engine(
        url,
        connect_args={
            "check_same_thread": False,
            "timeout": busy_timeout_ms / 1000,
        },
    )
    _install_pragmas(engine, busy_timeout_ms=busy_timeout_ms, read_only=read_only)
    return engine


def create_memory_engine(busy_timeout_ms: int = config.DB_BUSY_TIMEOUT_MS) -> Engine:
    """Engine for a process-lifetime in-memory database shared by all its sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _install_pragmas(engine, busy_timeout_ms=busy_timeout_ms, read_only=False)
    return engine


def ping(session: Session) -> int:
    """Run SELECT 1 on the session's connection."""
    return session.connection().exec_driver_sql("SELECT 1 AS test").scalar_one()


class ConnectionProvider:
    """Per-request sessions against one resolved storage target.

    The engine is opened lazily on first use and kept for the life of the
    provider. If the file cannot be opened in read-write mode the provider
    logs the failure and switches to an in-memory database for the rest of
    its life. Failures after a connection is open are left to the caller.
    """

    def __init__(
        self,
        target: StorageTarget,
        *,
        read_only: bool = False,
        busy_timeout_ms: int = config.DB_BUSY_TIMEOUT_MS,
    ):
        self.target = target
        self.read_only = read_only
        self.busy_timeout_ms = busy_timeout_ms
        self._engine: Engine | None = None
        self._degraded = False
        self._lock = threading.Lock()

    @property
    def is_transient(self) -> bool:
        """True when data lives only in memory (selected at startup or after degradation)."""
        return self.target.is_transient or self._degraded

    @property
    def storage_kind(self) -> str:
        return "memory" if self.is_transient else "file"

    def describe(self) -> str:
        return ":memory:" if self.is_transient else self.target.describe()

    @property
    def engine(self) -> Engine:
        with self._lock:
            if self._engine is None:
                self._engine = self._open()
            return self._engine

    def _open(self) -> Engine:
        if self.target.is_transient:
            if self.read_only:
                raise StorageUnavailableError(
                    "No database file found for the read-only gateway"
                )
            logging.warning("Creating in-memory database; data will be lost on restart")
            return self._open_memory()

        engine = create_file_engine(
            self.target.path,
            busy_timeout_ms=self.busy_timeout_ms,
            read_only=self.read_only,
        )
        if self.read_only:
            return engine
        try:
            init_schema(engine)
        except SQLAlchemyError as e:
            logging.error("Failed to open database file %s: %s", self.target.path, e)
            engine.dispose()
            return self._degrade()
        logging.info("Using file-based database: %s", self.target.path)
        return engine

    def _open_memory(self) -> Engine:
        engine = create_memory_engine(self.busy_timeout_ms)
        init_schema(engine)
        return engine

    def _degrade(self) -> Engine:
        logging.warning(
            "Falling back to in-memory database; data will not survive a restart"
        )
        self._degraded = True
        return self._open_memory()

    def connect(self) -> Connection:
        """Open a connection, degrading to in-memory if a read-write file open fails."""
        engine = self.engine
        try:
            return engine.connect()
        except SQLAlchemyError as e:
            if self.read_only or self.is_transient:
                raise StorageUnavailableError(str(e)) from e
            logging.error("Failed to open database file %s: %s", self.target.path, e)
            with self._lock:
                if self._engine is engine:
                    engine.dispose()
                    self._engine = self._degrade()
                engine = self._engine
        return engine.connect()

    @contextmanager
    def session(self):
        """Yield a session bound to a freshly checked-out connection."""
        connection = self.connect()
        try:
            with Session(bind=connection) as session:
                yield session
        finally:
            connection.close()

    def close(self) -> None:
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None
