# ABOUTME: Tests for the schema initializer and ConnectionProvider.
# ABOUTME: Covers idempotent schema creation, defaults, FK cascade, pragmas and in-memory degradation.

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import select

from core import config
from core.database import (
    ConnectionProvider,
    Goal,
    Task,
    create_memory_engine,
    init_schema,
    ping,
)
from core.errors import StorageUnavailableError
from core.storage import TRANSIENT, StorageTarget

TABLES = {"goals", "tasks", "resources", "focus_sessions", "learning_patterns"}


def test_init_schema_twice_on_same_connection_keeps_tables_and_data():
    """Running the initializer again neither fails nor alters tables or rows."""
    engine = create_memory_engine()
    with engine.connect() as conn:
        init_schema(conn)
        conn.exec_driver_sql("INSERT INTO goals (title) VALUES ('Ship it')")
        conn.commit()
        columns_before = {
            t: [c["name"] for c in inspect(conn).get_columns(t)] for t in TABLES
        }

        init_schema(conn)

        assert set(inspect(conn).get_table_names()) == TABLES
        columns_after = {
            t: [c["name"] for c in inspect(conn).get_columns(t)] for t in TABLES
        }
        assert columns_after == columns_before
        count = conn.exec_driver_sql("SELECT COUNT(*) FROM goals").scalar_one()
        assert count == 1
    engine.dispose()


def test_schema_defaults_apply_to_raw_inserts(memory_provider):
    """Omitted priority, progress, status and timestamps get their column defaults."""
    with memory_provider.engine.connect() as conn:
        conn.exec_driver_sql("INSERT INTO goals (title) VALUES ('Learn Go')")
        conn.exec_driver_sql("INSERT INTO tasks (title) VALUES ('Read the tour')")
        conn.commit()
        goal = conn.exec_driver_sql(
            "SELECT priority, progress, created_at FROM goals"
        ).one()
        task = conn.exec_driver_sql("SELECT status, priority FROM tasks").one()
    assert goal[0] == "medium"
    assert goal[1] == 0
    assert goal[2] is not None
    assert tuple(task) == ("pending", "medium")


def test_task_with_unknown_goal_is_rejected(session):
    """The foreign key constraint rejects tasks pointing at a missing goal."""
    session.add(Task(title="Orphan", goal_id=999))
    with pytest.raises(IntegrityError):
        session.commit()


@pytest.mark.parametrize("progress", [-1, 101])
def test_goal_progress_outside_range_is_rejected(memory_provider, progress):
    """Storage only accepts goal progress between 0 and 100 inclusive."""
    with memory_provider.engine.connect() as conn:
        with pytest.raises(IntegrityError, match="CHECK constraint failed"):
            conn.exec_driver_sql(
                f"INSERT INTO goals (title, progress) VALUES ('Out of range', {progress})"
            )
        conn.rollback()
        conn.exec_driver_sql("INSERT INTO goals (title, progress) VALUES ('Full', 100)")
        conn.commit()
        assert conn.exec_driver_sql("SELECT COUNT(*) FROM goals").scalar_one() == 1


def test_deleting_goal_cascades_to_tasks_and_their_children(memory_provider):
    """Goal -> task -> resource/focus session deletes cascade at the storage layer."""
    with memory_provider.engine.connect() as conn:
        conn.exec_driver_sql("INSERT INTO goals (id, title) VALUES (1, 'Goal')")
        conn.exec_driver_sql("INSERT INTO tasks (id, goal_id, title) VALUES (10, 1, 'Task')")
        conn.exec_driver_sql("INSERT INTO resources (task_id, title) VALUES (10, 'Doc')")
        conn.exec_driver_sql("INSERT INTO focus_sessions (task_id, duration) VALUES (10, 25)")
        conn.commit()

        conn.exec_driver_sql("DELETE FROM goals WHERE id = 1")
        conn.commit()

        for table in ("tasks", "resources", "focus_sessions"):
            assert conn.exec_driver_sql(f"SELECT COUNT(*) FROM {table}").scalar_one() == 0


def test_file_provider_applies_connection_pragmas(file_provider, db_file):
    """File connections run with WAL, foreign keys on and a bounded busy timeout."""
    with file_provider.session() as session:
        conn = session.connection()
        assert conn.exec_driver_sql("PRAGMA journal_mode").scalar_one() == "wal"
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar_one() == 1
        assert conn.exec_driver_sql("PRAGMA busy_timeout").scalar_one() == config.DB_BUSY_TIMEOUT_MS
    assert db_file.exists()
    assert file_provider.storage_kind == "file"
    assert not file_provider.is_transient


def test_file_provider_persists_across_providers(file_provider, db_file):
    """Data written through one provider is visible to a new provider on the same file."""
    with file_provider.session() as session:
        session.add(Goal(title="Persist me"))
        session.commit()
    file_provider.close()

    reopened = ConnectionProvider(StorageTarget(path=db_file, label="test"))
    with reopened.session() as session:
        titles = [g.title for g in session.exec(select(Goal))]
    reopened.close()
    assert titles == ["Persist me"]


def test_transient_provider_data_does_not_survive_restart():
    """Each in-memory provider starts empty; data lives only as long as the provider."""
    first = ConnectionProvider(TRANSIENT)
    with first.session() as session:
        session.add(Goal(title="Ephemeral"))
        session.commit()
    with first.session() as session:
        assert len(list(session.exec(select(Goal)))) == 1
    first.close()

    second = ConnectionProvider(TRANSIENT)
    with second.session() as session:
        assert list(session.exec(select(Goal))) == []
    second.close()


def test_unopenable_file_degrades_to_memory(tmp_path, caplog):
    """A file that cannot be opened switches the provider to an in-memory database."""
    missing_dir = tmp_path / "does-not-exist" / "nexus.db"
    provider = ConnectionProvider(StorageTarget(path=missing_dir, label="test"))
    with provider.session() as session:
        assert ping(session) == 1
        session.add(Goal(title="Still works"))
        session.commit()
    with provider.session() as session:
        assert [g.title for g in session.exec(select(Goal))] == ["Still works"]
    assert provider.is_transient
    assert provider.storage_kind == "memory"
    assert provider.describe() == ":memory:"
    assert "Falling back to in-memory database" in caplog.text
    provider.close()


def test_connect_failure_after_open_degrades(file_provider, monkeypatch):
    """An open error at request time also degrades instead of failing the request."""
    engine = file_provider.engine

    def _fail():
        raise OperationalError("connect", {}, Exception("unable to open database file"))

    monkeypatch.setattr(engine, "connect", _fail)
    with file_provider.session() as session:
        assert ping(session) == 1
    assert file_provider.is_transient


def test_read_only_provider_missing_file_is_unavailable(tmp_path):
    """The read-only provider never creates the file and reports it unavailable."""
    provider = ConnectionProvider(
        StorageTarget(path=tmp_path / "absent.db", label="test"), read_only=True
    )
    with pytest.raises(StorageUnavailableError):
        with provider.session():
            pass
    assert not (tmp_path / "absent.db").exists()


def test_read_only_provider_on_transient_target_is_unavailable():
    provider = ConnectionProvider(TRANSIENT, read_only=True)
    with pytest.raises(StorageUnavailableError):
        provider.connect()


def test_read_only_provider_rejects_writes(file_provider, db_file):
    """Connections from the read-only provider can read but not write."""
    with file_provider.session() as session:
        session.add(Goal(title="Shared"))
        session.commit()

    reader = ConnectionProvider(StorageTarget(path=db_file, label="test"), read_only=True)
    with reader.session() as session:
        assert [g.title for g in session.exec(select(Goal))] == ["Shared"]
    with pytest.raises(OperationalError):
        with reader.session() as session:
            session.add(Goal(title="Sneaky"))
            session.commit()
    reader.close()
