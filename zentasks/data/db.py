"""
Zen Tasks — SQLite storage for users, tasks and nudges.

Each table has its own store class. Stores may share one database file;
every operation opens its own connection, so no state is held between calls.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from zentasks.core.time_context import parse_timestamp, to_iso, utc_now
from zentasks.data.models import (
    ACTIVE_STATUSES,
    Nudge,
    NudgeStatus,
    Task,
    TaskStatus,
    User,
)

logger = logging.getLogger(__name__)


class _SQLiteStore:
    """Connection handling shared by the stores below."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from zentasks.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserDB(_SQLiteStore):
    """SQLite-backed storage for users."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id                  TEXT PRIMARY KEY,
                    display_name        TEXT NOT NULL,
                    email               TEXT,
                    telegram_chat_id    TEXT UNIQUE,
                    timezone            TEXT NOT NULL DEFAULT 'UTC',
                    nudge_paused_until  TEXT,
                    created_at          TEXT NOT NULL,
                    updated_at          TEXT NOT NULL
                )
            """)
        logger.debug("Users table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            display_name=row["display_name"],
            email=row["email"],
            telegram_chat_id=row["telegram_chat_id"],
            timezone=row["timezone"],
            nudge_paused_until=row["nudge_paused_until"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def add_user(
        self,
        display_name: str,
        telegram_chat_id: str | None = None,
        timezone: str = "UTC",
        email: str | None = None,
        user_id: str | None = None,
    ) -> User:
        """Register a new user."""
        user_id = user_id or _new_id()
        now = to_iso(utc_now())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users
                    (id, display_name, email, telegram_chat_id, timezone,
                     nudge_paused_until, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, NULL, ?, ?)
                """,
                (user_id, display_name, email, telegram_chat_id, timezone, now, now),
            )
        logger.info("User registered: %s '%s'", user_id, display_name)
        return User(
            id=user_id,
            display_name=display_name,
            email=email,
            telegram_chat_id=telegram_chat_id,
            timezone=timezone,
            created_at=now,
            updated_at=now,
        )

    def get_user(self, user_id: str) -> User | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def find_by_chat_id(self, chat_id: str) -> User | None:
        """Look up the user behind a Telegram chat."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE telegram_chat_id = ? LIMIT 1",
                (str(chat_id),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_nudgeable_users(self) -> list[User]:
        """Return every user with a Telegram chat configured."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM users WHERE telegram_chat_id IS NOT NULL ORDER BY created_at, rowid"
            ).fetchall()
        return [self._row_to_user(r) for r in rows]

    def set_nudge_paused_until(self, user_id: str, paused_until: str | None) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET nudge_paused_until = ?, updated_at = ? WHERE id = ?",
                (paused_until, to_iso(utc_now()), user_id),
            )
        logger.info("User %s nudges paused until %s", user_id, paused_until)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaskQuery:
    """Filter for listing a user's tasks.

    ``matches`` is the single definition of the filter; SQL narrows by user
    and status, the snooze check runs in Python because ``snoozed_until``
    is stored verbatim and may use any ISO offset.
    """

    user_id: str
    statuses: tuple[str, ...] = tuple(s.value for s in ACTIVE_STATUSES)
    exclude_snoozed: bool = True

    @classmethod
    def active(cls, user_id: str) -> TaskQuery:
        """Pending or in progress, and not currently snoozed."""
        return cls(user_id=user_id)

    def matches(self, task: Task, now: datetime) -> bool:
        if task.user_id != self.user_id or task.status not in self.statuses:
            return False
        if self.exclude_snoozed and task.snoozed_until:
            snoozed_until = parse_timestamp(task.snoozed_until)
            if snoozed_until is not None and snoozed_until >= now:
                return False
        return True


_TASK_JSON_COLUMNS = ("tags", "ai_conversation")

UPDATABLE_TASK_FIELDS = frozenset({
    "title", "description", "urgency", "importance", "due_date",
    "estimated_minutes", "energy_level", "can_be_split", "recurrence",
    "location", "depends_on", "tags", "status", "snoozed_until",
    "follow_up_at", "ai_conversation",
})


class TaskDB(_SQLiteStore):
    """SQLite-backed storage for tasks."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id                TEXT PRIMARY KEY,
                    user_id           TEXT NOT NULL,
                    raw_input         TEXT NOT NULL DEFAULT '',
                    title             TEXT NOT NULL,
                    description       TEXT,
                    urgency           INTEGER NOT NULL DEFAULT 3,
                    importance        INTEGER NOT NULL DEFAULT 3,
                    due_date          TEXT,
                    estimated_minutes INTEGER,
                    energy_level      TEXT NOT NULL DEFAULT 'medium',
                    can_be_split      INTEGER NOT NULL DEFAULT 0,
                    recurrence        TEXT,
                    location          TEXT,
                    depends_on        TEXT,
                    tags              TEXT NOT NULL DEFAULT '[]',
                    status            TEXT NOT NULL DEFAULT 'pending',
                    snoozed_until     TEXT,
                    follow_up_at      TEXT,
                    ai_conversation   TEXT NOT NULL DEFAULT '[]',
                    created_at        TEXT NOT NULL,
                    updated_at        TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_user_status ON tasks (user_id, status)"
            )
        logger.debug("Tasks table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            user_id=row["user_id"],
            raw_input=row["raw_input"],
            title=row["title"],
            description=row["description"],
            urgency=row["urgency"],
            importance=row["importance"],
            due_date=row["due_date"],
            estimated_minutes=row["estimated_minutes"],
            energy_level=row["energy_level"],
            can_be_split=bool(row["can_be_split"]),
            recurrence=row["recurrence"],
            location=row["location"],
            depends_on=row["depends_on"],
            tags=json.loads(row["tags"] or "[]"),
            status=row["status"],
            snoozed_until=row["snoozed_until"],
            follow_up_at=row["follow_up_at"],
            ai_conversation=json.loads(row["ai_conversation"] or "[]"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _to_column(name: str, value: object) -> object:
        if name in _TASK_JSON_COLUMNS:
            return json.dumps(value if value is not None else [])
        if name == "can_be_split":
            return int(bool(value))
        if isinstance(value, TaskStatus):
            return value.value
        return value

    def add_task(self, user_id: str, title: str, **fields: object) -> Task:
        """Insert a new task. Unspecified fields take the model defaults."""
        unknown = set(fields) - UPDATABLE_TASK_FIELDS - {"raw_input"}
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")

        now = to_iso(utc_now())
        task = Task(id=_new_id(), user_id=user_id, title=title, created_at=now, updated_at=now)
        for name, value in fields.items():
            setattr(task, name, value.value if isinstance(value, TaskStatus) else value)

        columns = list(Task.__dataclass_fields__)
        values = [self._to_column(c, getattr(task, c)) for c in columns]
        placeholders = ", ".join("?" for _ in columns)
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO tasks ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
        logger.info("Task added: %s '%s' for user %s", task.id, title, user_id)
        return task

    def get_task(self, task_id: str) -> Task | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def update_task(self, task_id: str, fields: dict) -> Task | None:
        """Update the given columns; returns the updated task or None if missing.

        Raises ValueError when a field is not updatable.
        """
        unknown = set(fields) - UPDATABLE_TASK_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        assignments = [f"{name} = ?" for name in fields]
        params = [self._to_column(name, value) for name, value in fields.items()]
        assignments.append("updated_at = ?")
        params.append(to_iso(utc_now()))
        params.append(task_id)

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ?", params,
            )
        if cursor.rowcount == 0:
            logger.warning("Task %s not found for update", task_id)
            return None
        logger.info("Task %s updated: %s", task_id, ", ".join(fields))
        return self.get_task(task_id)

    def query(self, criteria: TaskQuery, now: datetime | None = None) -> list[Task]:
        """Return tasks matching ``criteria``, most urgent and important first."""
        now = now or utc_now()
        placeholders = ", ".join("?" for _ in criteria.statuses)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM tasks
                WHERE user_id = ? AND status IN ({placeholders})
                ORDER BY urgency DESC, importance DESC, created_at ASC
                """,
                (criteria.user_id, *criteria.statuses),
            ).fetchall()
        tasks = [self._row_to_task(r) for r in rows]
        return [t for t in tasks if criteria.matches(t, now)]

    def get_active_tasks(self, user_id: str, now: datetime | None = None) -> list[Task]:
        return self.query(TaskQuery.active(user_id), now)


# ---------------------------------------------------------------------------
# Nudges
# ---------------------------------------------------------------------------


class NudgeDB(_SQLiteStore):
    """SQLite-backed storage for nudges."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS nudges (
                    id               TEXT PRIMARY KEY,
                    user_id          TEXT NOT NULL,
                    task_id          TEXT NOT NULL,
                    channel          TEXT NOT NULL DEFAULT 'telegram',
                    message_text     TEXT NOT NULL,
                    calendar_slot    TEXT,
                    status           TEXT NOT NULL DEFAULT 'sent',
                    responded_at     TEXT,
                    response_text    TEXT,
                    ai_sentiment     TEXT,
                    telegram_msg_id  TEXT,
                    created_at       TEXT NOT NULL,
                    updated_at       TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_nudges_user_created ON nudges (user_id, created_at)"
            )
        logger.debug("Nudges table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_nudge(row: sqlite3.Row) -> Nudge:
        slot = row["calendar_slot"]
        return Nudge(
            id=row["id"],
            user_id=row["user_id"],
            task_id=row["task_id"],
            channel=row["channel"],
            message_text=row["message_text"],
            calendar_slot=json.loads(slot) if slot else None,
            status=row["status"],
            responded_at=row["responded_at"],
            response_text=row["response_text"],
            ai_sentiment=row["ai_sentiment"],
            telegram_msg_id=row["telegram_msg_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def add_nudge(
        self,
        user_id: str,
        task_id: str,
        message_text: str,
        calendar_slot: dict | None = None,
        channel: str = "telegram",
        status: str = NudgeStatus.SENT.value,
        created_at: datetime | None = None,
    ) -> Nudge:
        """Insert a nudge record. ``created_at`` defaults to now."""
        nudge_id = _new_id()
        created = to_iso(created_at or utc_now())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO nudges
                    (id, user_id, task_id, channel, message_text, calendar_slot,
                     status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    nudge_id, user_id, task_id, channel, message_text,
                    json.dumps(calendar_slot) if calendar_slot else None,
                    status, created, created,
                ),
            )
        logger.info("Nudge %s recorded for user %s (task %s)", nudge_id, user_id, task_id)
        return Nudge(
            id=nudge_id,
            user_id=user_id,
            task_id=task_id,
            channel=channel,
            message_text=message_text,
            calendar_slot=calendar_slot,
            status=status,
            created_at=created,
            updated_at=created,
        )

    def get_nudge(self, nudge_id: str) -> Nudge | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM nudges WHERE id = ?", (nudge_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_nudge(row)

    def set_message_id(self, nudge_id: str, telegram_msg_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE nudges SET telegram_msg_id = ?, updated_at = ? WHERE id = ?",
                (telegram_msg_id, to_iso(utc_now()), nudge_id),
            )

    def set_status(self, nudge_id: str, status: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE nudges SET status = ?, updated_at = ? WHERE id = ?",
                (status, to_iso(utc_now()), nudge_id),
            )

    def record_response(
        self,
        nudge_id: str,
        responded_at: datetime,
        sentiment: str,
        status: str | None = None,
        response_text: str | None = None,
    ) -> bool:
        """Store a user's reply on the nudge. Returns False if it does not exist."""
        assignments = ["responded_at = ?", "ai_sentiment = ?", "updated_at = ?"]
        params: list = [to_iso(responded_at), sentiment, to_iso(utc_now())]
        if status is not None:
            assignments.append("status = ?")
            params.append(status)
        if response_text is not None:
            assignments.append("response_text = ?")
            params.append(response_text)
        params.append(nudge_id)

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE nudges SET {', '.join(assignments)} WHERE id = ?", params,
            )
        updated = cursor.rowcount > 0
        if updated:
            logger.info("Nudge %s response recorded: %s", nudge_id, sentiment)
        else:
            logger.warning("Nudge %s not found when recording response", nudge_id)
        return updated

    def nudges_since(self, user_id: str, since: datetime) -> list[Nudge]:
        """All nudges for a user created at or after ``since``, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM nudges
                WHERE user_id = ? AND created_at >= ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (user_id, to_iso(since)),
            ).fetchall()
        return [self._row_to_nudge(r) for r in rows]

    def latest_for_user(self, user_id: str) -> Nudge | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM nudges WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC LIMIT 1
                """,
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_nudge(row)

    def latest_unresponded(self, user_id: str) -> Nudge | None:
        """The newest nudge still awaiting a reply (status sent, no response).

        Free-text replies are attributed to this nudge. Ties on created_at
        go to the most recently inserted row.
        """
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM nudges
                WHERE user_id = ? AND status = ? AND responded_at IS NULL
                ORDER BY created_at DESC, rowid DESC LIMIT 1
                """,
                (user_id, NudgeStatus.SENT.value),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_nudge(row)
