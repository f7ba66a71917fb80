"""SQLAlchemy adapter for the durable activity buffer."""

import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Collection, Sequence, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..errors import StorageFault
from ..models import Activity

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS activities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        client_id TEXT NOT NULL,
        project TEXT,
        git_remote TEXT,
        started_at TEXT NOT NULL,
        ended_at TEXT NOT NULL,
        filename TEXT,
        filetype TEXT,
        lines_added INTEGER DEFAULT 0,
        lines_removed INTEGER DEFAULT 0,
        git_branch TEXT,
        actions_per_minute REAL,
        words_per_minute REAL,
        editor TEXT DEFAULT 'neovim',
        machine TEXT,
        synced BOOLEAN DEFAULT FALSE,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_activities_synced ON activities(synced)",
    "CREATE INDEX IF NOT EXISTS idx_activities_started_at ON activities(started_at)",
)


class SQLAlchemyActivityBuffer:
    """Stores activities in a relational table and hands them back in forwarding order."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine)
        self._lock = threading.Lock()
        self.create_schema()

    def create_schema(self) -> None:
        try:
            with self.engine.begin() as conn:
                for statement in _SCHEMA:
                    conn.execute(text(statement))
        except SQLAlchemyError as exc:
            raise StorageFault(f"create schema: {exc}") from exc

    def append(self, activity: Activity) -> int:
        client_id = activity.client_id or str(uuid.uuid4())
        params = {
            "client_id": client_id,
            "project": activity.project,
            "git_remote": activity.git_remote,
            "started_at": _to_db(activity.started_at),
            "ended_at": _to_db(activity.ended_at),
            "filename": activity.filename,
            "filetype": activity.filetype,
            "lines_added": activity.lines_added,
            "lines_removed": activity.lines_removed,
            "git_branch": activity.git_branch,
            "actions_per_minute": activity.actions_per_minute,
            "words_per_minute": activity.words_per_minute,
            "editor": activity.editor,
            "machine": activity.machine,
            "created_at": _to_db(datetime.now(timezone.utc)),
        }
        with self._lock:
            try:
                with self._session_factory() as session, session.begin():
                    result = session.execute(
                        text(
                            """
                            INSERT INTO activities (
                                client_id, project, git_remote, started_at, ended_at,
                                filename, filetype, lines_added, lines_removed, git_branch,
                                actions_per_minute, words_per_minute, editor, machine,
                                synced, created_at
                            ) VALUES (
                                :client_id, :project, :git_remote, :started_at, :ended_at,
                                :filename, :filetype, :lines_added, :lines_removed, :git_branch,
                                :actions_per_minute, :words_per_minute, :editor, :machine,
                                FALSE, :created_at
                            )
                            """
                        ),
                        params,
                    )
                    return int(result.lastrowid)
            except (SQLAlchemyError, OverflowError) as exc:
                raise StorageFault(f"insert activity: {exc}") from exc

    def unconsumed(self, limit: int) -> Sequence[Activity]:
        if limit <= 0:
            return []
        with self._lock:
            try:
                with self._session_factory() as session:
                    rows = session.execute(
                        text(
                            """
                            SELECT id, client_id, project, git_remote, started_at, ended_at,
                                   filename, filetype, lines_added, lines_removed, git_branch,
                                   actions_per_minute, words_per_minute, editor, machine,
                                   synced, created_at
                            FROM activities
                            WHERE synced = FALSE
                            ORDER BY started_at ASC, id ASC
                            LIMIT :limit
                            """
                        ),
                        {"limit": limit},
                    ).fetchall()
                return [_row_to_activity(row) for row in rows]
            except SQLAlchemyError as exc:
                raise StorageFault(f"get unconsumed activities: {exc}") from exc
            except (TypeError, ValueError) as exc:
                raise StorageFault(f"decode stored activity: {exc}") from exc

    def mark_consumed(self, ids: Collection[int]) -> None:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return

        with self._lock:
            try:
                with self._session_factory() as session, session.begin():
                    for activity_id in unique_ids:
                        result = session.execute(
                            text("UPDATE activities SET synced = TRUE WHERE id = :id"),
                            {"id": activity_id},
                        )
                        if result.rowcount != 1:
                            # Leaving the block with an exception rolls the whole set back.
                            raise StorageFault(f"mark consumed: no activity with id {activity_id}")
            except SQLAlchemyError as exc:
                raise StorageFault(f"mark consumed: {exc}") from exc

    def count_unconsumed(self) -> int:
        with self._lock:
            try:
                with self._session_factory() as session:
                    return int(
                        session.execute(
                            text("SELECT COUNT(*) FROM activities WHERE synced = FALSE")
                        ).scalar_one()
                    )
            except SQLAlchemyError as exc:
                raise StorageFault(f"count unconsumed activities: {exc}") from exc

    def close(self) -> None:
        self.engine.dispose()


def open_buffer(path: Union[str, Path]) -> SQLAlchemyActivityBuffer:
    """Open (and create if needed) the SQLite-backed buffer at ``path``."""
    db_path = Path(path).expanduser()
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageFault(f"create data directory {db_path.parent}: {exc}") from exc

    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return SQLAlchemyActivityBuffer(engine)


def _to_db(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # Fixed width keeps lexical ORDER BY equal to chronological order.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db(raw) -> datetime:
    if isinstance(raw, datetime):
        value = raw
    else:
        value = datetime.fromisoformat(str(raw))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _row_to_activity(row) -> Activity:
    return Activity(
        started_at=_from_db(row.started_at),
        ended_at=_from_db(row.ended_at),
        project=row.project or "",
        git_remote=row.git_remote or "",
        filename=row.filename or "",
        filetype=row.filetype or "",
        lines_added=int(row.lines_added or 0),
        lines_removed=int(row.lines_removed or 0),
        git_branch=row.git_branch or "",
        actions_per_minute=float(row.actions_per_minute or 0.0),
        words_per_minute=float(row.words_per_minute or 0.0),
        editor=row.editor or "",
        machine=row.machine or "",
        client_id=row.client_id,
        id=int(row.id),
        synced=bool(row.synced),
        created_at=_from_db(row.created_at),
    )
