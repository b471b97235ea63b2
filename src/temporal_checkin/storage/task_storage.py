"""Task storage for multi-day tasks and their check-in history.

Stores:
- Tasks with their scheduling parameters and lifecycle timestamps
- Check-ins as an append-only child table keyed by (task_id, check_in_number)
- Companion conversations created in the same transaction as their task
- Schedule outbox rows recording the outcome of every check-in prompt request

Storage: SQLite. Writers take the database write lock up front
(BEGIN IMMEDIATE) so the check-in sequence advances one writer at a time.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from temporal_checkin.config import settings
from temporal_checkin.errors import (
    CheckInHistoryChangedError,
    InvalidArgumentError,
    InvalidTaskStateError,
    TaskNotFoundError,
    TransientStoreError,
)
from temporal_checkin.models import CheckInRecord, MultiDayTask, ScheduleSlot, TaskStatus


def _utc_now() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


# Update field -> column. Anything else is ignored by update_task.
_UPDATABLE_COLUMNS = {
    "title": "title",
    "description": "description",
    "status": "status",
    "target_completion_date": "target_completion_date",
    "final_synthesis": "final_synthesis",
}


class TaskStorage:
    """Storage for multi-day tasks with an append-only check-in log."""

    def __init__(self, db_path: Path | str | None = None, timeout: float | None = None) -> None:
        self._db_path = Path(db_path) if db_path else None
        self._timeout = timeout

    @property
    def db_path(self) -> Path:
        return self._db_path or settings.TASKS_DB_PATH

    def get_connection(self) -> sqlite3.Connection:
        """Get a SQLite connection with the schema in place."""
        db_path = self.db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        timeout = self._timeout if self._timeout is not None else settings.DB_TIMEOUT_SECONDS
        # Autocommit mode: transactions are opened explicitly below.
        conn = sqlite3.connect(str(db_path), timeout=timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        self._ensure_schema(conn)
        return conn

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        """Create tables and indexes."""

        conn.execute("""
            CREATE TABLE IF NOT EXISTS multi_day_tasks (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                topic_category TEXT,
                target_completion_date TEXT,
                status TEXT NOT NULL DEFAULT 'active'
                    CHECK (status IN ('active', 'paused', 'completed', 'abandoned')),
                check_in_times JSON NOT NULL,
                duration_days INTEGER NOT NULL CHECK (duration_days BETWEEN 1 AND 30),
                initial_context TEXT,
                check_in_count INTEGER NOT NULL DEFAULT 0,
                primary_conversation_id TEXT,
                final_synthesis TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                completed_at TEXT,
                synthesis_created_at TEXT
            )
        """)

        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_tasks_user_status ON multi_day_tasks(user_id, status)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_created ON multi_day_tasks(created_at)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_topic ON multi_day_tasks(topic_category)")

        # Append-only check-in log
        conn.execute("""
            CREATE TABLE IF NOT EXISTS task_check_ins (
                task_id TEXT NOT NULL,
                check_in_number INTEGER NOT NULL CHECK (check_in_number >= 1),
                time_of_day TEXT NOT NULL,
                question_asked TEXT NOT NULL,
                question_type TEXT NOT NULL,
                response TEXT NOT NULL,
                notification_id TEXT,
                self_reported_energy INTEGER,
                self_reported_mood INTEGER,
                self_reported_focus INTEGER,
                insights JSON NOT NULL,
                detected_state TEXT,
                completed_at TEXT NOT NULL,
                PRIMARY KEY (task_id, check_in_number),
                FOREIGN KEY (task_id) REFERENCES multi_day_tasks(id) ON DELETE CASCADE
            )
        """)

        # Companion conversations
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                conversation_context TEXT,
                related_task_id TEXT,
                metadata JSON,
                created_at TEXT NOT NULL,
                FOREIGN KEY (related_task_id) REFERENCES multi_day_tasks(id) ON DELETE SET NULL
            )
        """)

        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_conversations_task ON conversations(related_task_id)"
        )

        # Schedule outbox
        conn.execute("""
            CREATE TABLE IF NOT EXISTS task_schedule_slots (
                id TEXT PRIMARY KEY,
                task_id TEXT NOT NULL,
                day_number INTEGER NOT NULL,
                time_of_day TEXT NOT NULL,
                scheduled_for TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                question TEXT NOT NULL,
                context TEXT NOT NULL,
                status TEXT NOT NULL CHECK (status IN ('enqueued', 'failed')),
                notification_id TEXT,
                error TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (task_id) REFERENCES multi_day_tasks(id) ON DELETE CASCADE
            )
        """)

        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_slots_task ON task_schedule_slots(task_id, scheduled_for)"
        )

    @contextmanager
    def _connect(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Open a connection, wrapping storage errors with the operation name."""
        try:
            conn = self.get_connection()
        except sqlite3.Error as e:
            raise TransientStoreError(operation, e) from e
        try:
            yield conn
        except sqlite3.Error as e:
            raise TransientStoreError(operation, e) from e
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
        """Run a write transaction holding the database write lock."""
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    # ========================================================================
    # CREATE: Task + companion conversation
    # ========================================================================

    def create_task_with_conversation(
        self,
        user_id: str,
        title: str,
        check_in_times: list[str],
        duration_days: int,
        description: str | None = None,
        topic_category: str | None = None,
        target_completion_date: str | None = None,
        initial_context: str | None = None,
        now: str | None = None,
    ) -> MultiDayTask:
        """
        Create a task and its companion conversation atomically.

        The task row, the conversation row and the task's back-reference to the
        conversation are written in one transaction; any failure rolls all
        three back.

        Returns:
            The created task with `conversation_id` set
        """
        now = now or _utc_now()
        task_id = str(uuid.uuid4())

        with self._connect("create multi-day task") as conn:
            with self._transaction(conn):
                conn.execute("""
                    INSERT INTO multi_day_tasks (
                        id, user_id, title, description, topic_category,
                        target_completion_date, status, check_in_times, duration_days,
                        initial_context, check_in_count, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                """, (
                    task_id,
                    user_id,
                    title,
                    description,
                    topic_category,
                    target_completion_date,
                    TaskStatus.ACTIVE.value,
                    json.dumps(check_in_times),
                    duration_days,
                    initial_context,
                    now,
                    now,
                ))

                conversation_id = self._insert_conversation(conn, task_id, user_id, title, now)

                conn.execute(
                    "UPDATE multi_day_tasks SET primary_conversation_id = ? WHERE id = ?",
                    (conversation_id, task_id),
                )

            return self._load_task(conn, task_id)

    def _insert_conversation(
        self,
        conn: sqlite3.Connection,
        task_id: str,
        user_id: str,
        task_title: str,
        now: str,
    ) -> str:
        conversation_id = str(uuid.uuid4())
        metadata = {
            "task_id": task_id,
            "task_title": task_title,
            "conversation_purpose": "task_check_ins",
        }
        conn.execute("""
            INSERT INTO conversations (
                id, user_id, title, conversation_context, related_task_id, metadata, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            conversation_id,
            user_id,
            f"Task: {task_title}",
            "task_check_in",
            task_id,
            json.dumps(metadata),
            now,
        ))
        return conversation_id

    def get_conversation(self, conversation_id: str) -> dict | None:
        """Get a companion conversation by ID."""
        with self._connect("fetch conversation") as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()

        if not row:
            return None

        return {
            "id": row["id"],
            "user_id": row["user_id"],
            "title": row["title"],
            "conversation_context": row["conversation_context"],
            "related_task_id": row["related_task_id"],
            "metadata": json.loads(row["metadata"]) if row["metadata"] else {},
            "created_at": row["created_at"],
        }

    # ========================================================================
    # QUERY: Retrieve tasks
    # ========================================================================

    def get_task(self, task_id: str) -> MultiDayTask | None:
        """Get a task with its full check-in history."""
        with self._connect("fetch task") as conn:
            return self._load_task(conn, task_id)

    def list_tasks(
        self,
        user_id: str,
        status: str | None = None,
        topic_category: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[MultiDayTask]:
        """List a user's tasks, newest first."""
        query = "SELECT * FROM multi_day_tasks WHERE user_id = ?"
        params: list[Any] = [user_id]

        if status:
            query += " AND status = ?"
            params.append(status)

        if topic_category:
            query += " AND topic_category = ?"
            params.append(topic_category)

        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._connect("list tasks") as conn:
            rows = conn.execute(query, params).fetchall()
            return [
                self._row_to_task(row, self._load_check_ins(conn, row["id"]))
                for row in rows
            ]

    def _load_task(self, conn: sqlite3.Connection, task_id: str) -> MultiDayTask | None:
        row = conn.execute(
            "SELECT * FROM multi_day_tasks WHERE id = ?", (task_id,)
        ).fetchone()
        if not row:
            return None
        return self._row_to_task(row, self._load_check_ins(conn, task_id))

    def _load_check_ins(self, conn: sqlite3.Connection, task_id: str) -> list[CheckInRecord]:
        rows = conn.execute(
            "SELECT * FROM task_check_ins WHERE task_id = ? ORDER BY check_in_number ASC",
            (task_id,),
        ).fetchall()
        return [self._row_to_check_in(row) for row in rows]

    # ========================================================================
    # APPEND: Check-ins
    # ========================================================================

    def append_check_in(
        self,
        task_id: str,
        time_of_day: str,
        question_asked: str,
        question_type: str,
        response: str,
        notification_id: str | None = None,
        self_reported_energy: int | None = None,
        self_reported_mood: int | None = None,
        self_reported_focus: int | None = None,
        insights: list[str] | None = None,
        detected_state: str | None = None,
        completed_at: str | None = None,
    ) -> tuple[CheckInRecord, MultiDayTask]:
        """
        Append a check-in to an active task.

        The status check, sequence-number read and insert happen under one
        write lock, so concurrent appends get consecutive numbers.

        Returns:
            The new record and the task as read back inside the same transaction

        Raises:
            TaskNotFoundError: task does not exist
            InvalidTaskStateError: task is not active
        """
        completed_at = completed_at or _utc_now()
        insights = list(insights or [])

        with self._connect("add check-in") as conn:
            with self._transaction(conn):
                row = conn.execute(
                    "SELECT status, check_in_count FROM multi_day_tasks WHERE id = ?",
                    (task_id,),
                ).fetchone()

                if not row:
                    raise TaskNotFoundError(task_id)

                if row["status"] != TaskStatus.ACTIVE.value:
                    raise InvalidTaskStateError(
                        f"Cannot add check-in to {row['status']} task",
                        task_id=task_id,
                        status=row["status"],
                    )

                record = CheckInRecord(
                    check_in_number=row["check_in_count"] + 1,
                    time_of_day=time_of_day,
                    question_asked=question_asked,
                    question_type=question_type,
                    response=response,
                    completed_at=completed_at,
                    notification_id=notification_id,
                    self_reported_energy=self_reported_energy,
                    self_reported_mood=self_reported_mood,
                    self_reported_focus=self_reported_focus,
                    insights=insights,
                    detected_state=detected_state,
                )

                conn.execute("""
                    INSERT INTO task_check_ins (
                        task_id, check_in_number, time_of_day, question_asked, question_type,
                        response, notification_id, self_reported_energy, self_reported_mood,
                        self_reported_focus, insights, detected_state, completed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    task_id,
                    record.check_in_number,
                    record.time_of_day,
                    record.question_asked,
                    record.question_type,
                    record.response,
                    record.notification_id,
                    record.self_reported_energy,
                    record.self_reported_mood,
                    record.self_reported_focus,
                    json.dumps(record.insights),
                    record.detected_state,
                    record.completed_at,
                ))

                conn.execute("""
                    UPDATE multi_day_tasks
                    SET check_in_count = ?, updated_at = ?
                    WHERE id = ?
                """, (record.check_in_number, completed_at, task_id))

                task = self._load_task(conn, task_id)

        return record, task

    # ========================================================================
    # UPDATE / DELETE
    # ========================================================================

    def update_task(
        self,
        task_id: str,
        changes: dict[str, Any],
        now: str | None = None,
        expected_check_in_count: int | None = None,
    ) -> MultiDayTask | None:
        """
        Apply a partial update.

        Completing stamps `completed_at`; supplying a final synthesis stamps
        `synthesis_created_at`. A completed task accepts no further updates and
        a final synthesis is only accepted together with the transition to
        completed.

        Args:
            expected_check_in_count: If given, the update applies only while the
                task still holds exactly this many check-ins

        Returns:
            Updated task, or None if the task does not exist

        Raises:
            CheckInHistoryChangedError: check-ins were added since the caller read the task
        """
        now = now or _utc_now()
        fields = {k: v for k, v in changes.items() if k in _UPDATABLE_COLUMNS}
        if not fields:
            raise InvalidArgumentError("No fields to update")

        with self._connect("update task") as conn:
            with self._transaction(conn):
                row = conn.execute(
                    "SELECT status, check_in_count FROM multi_day_tasks WHERE id = ?", (task_id,)
                ).fetchone()

                if not row:
                    return None

                if row["status"] == TaskStatus.COMPLETED.value:
                    raise InvalidTaskStateError(
                        "Task already completed", task_id=task_id, status=row["status"]
                    )

                if (
                    expected_check_in_count is not None
                    and row["check_in_count"] != expected_check_in_count
                ):
                    raise CheckInHistoryChangedError(task_id, status=row["status"])

                completing = fields.get("status") == TaskStatus.COMPLETED.value
                if "final_synthesis" in fields and not completing:
                    raise InvalidTaskStateError(
                        "Final synthesis can only be set when completing a task",
                        task_id=task_id,
                        status=row["status"],
                    )

                assignments = [f"{_UPDATABLE_COLUMNS[name]} = ?" for name in fields]
                params: list[Any] = list(fields.values())

                if completing:
                    assignments.append("completed_at = ?")
                    params.append(now)

                if "final_synthesis" in fields:
                    assignments.append("synthesis_created_at = ?")
                    params.append(now)

                assignments.append("updated_at = ?")
                params.append(now)
                params.append(task_id)

                conn.execute(
                    f"UPDATE multi_day_tasks SET {', '.join(assignments)} WHERE id = ?",
                    params,
                )

            return self._load_task(conn, task_id)

    def delete_task(self, task_id: str) -> bool:
        """Delete a task and its check-ins. Returns whether a row existed."""
        with self._connect("delete task") as conn:
            with self._transaction(conn):
                cursor = conn.execute("DELETE FROM multi_day_tasks WHERE id = ?", (task_id,))
            return cursor.rowcount > 0

    # ========================================================================
    # SCHEDULE OUTBOX
    # ========================================================================

    def record_schedule_slot(
        self,
        task_id: str,
        day_number: int,
        time_of_day: str,
        scheduled_for: str,
        expires_at: str,
        question: str,
        context: str,
        status: str,
        notification_id: str | None = None,
        error: str | None = None,
        now: str | None = None,
    ) -> ScheduleSlot:
        """Record the outcome of one check-in prompt request."""
        slot = ScheduleSlot(
            id=str(uuid.uuid4()),
            task_id=task_id,
            day_number=day_number,
            time_of_day=time_of_day,
            scheduled_for=scheduled_for,
            expires_at=expires_at,
            question=question,
            context=context,
            status=status,
            notification_id=notification_id,
            error=error,
            created_at=now or _utc_now(),
        )

        with self._connect("record schedule slot") as conn:
            with self._transaction(conn):
                conn.execute("""
                    INSERT INTO task_schedule_slots (
                        id, task_id, day_number, time_of_day, scheduled_for, expires_at,
                        question, context, status, notification_id, error, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    slot.id,
                    slot.task_id,
                    slot.day_number,
                    slot.time_of_day,
                    slot.scheduled_for,
                    slot.expires_at,
                    slot.question,
                    slot.context,
                    slot.status,
                    slot.notification_id,
                    slot.error,
                    slot.created_at,
                ))

        return slot

    def list_schedule_slots(self, task_id: str) -> list[ScheduleSlot]:
        """List recorded prompt slots for a task in schedule order."""
        with self._connect("list schedule slots") as conn:
            rows = conn.execute(
                "SELECT * FROM task_schedule_slots WHERE task_id = ? "
                "ORDER BY scheduled_for ASC, rowid ASC",
                (task_id,),
            ).fetchall()

        return [
            ScheduleSlot(
                id=row["id"],
                task_id=row["task_id"],
                day_number=row["day_number"],
                time_of_day=row["time_of_day"],
                scheduled_for=row["scheduled_for"],
                expires_at=row["expires_at"],
                question=row["question"],
                context=row["context"],
                status=row["status"],
                notification_id=row["notification_id"],
                error=row["error"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    # ========================================================================
    # Row conversion
    # ========================================================================

    @staticmethod
    def _row_to_check_in(row: sqlite3.Row) -> CheckInRecord:
        return CheckInRecord(
            check_in_number=row["check_in_number"],
            time_of_day=row["time_of_day"],
            question_asked=row["question_asked"],
            question_type=row["question_type"],
            response=row["response"],
            completed_at=row["completed_at"],
            notification_id=row["notification_id"],
            self_reported_energy=row["self_reported_energy"],
            self_reported_mood=row["self_reported_mood"],
            self_reported_focus=row["self_reported_focus"],
            insights=json.loads(row["insights"]) if row["insights"] else [],
            detected_state=row["detected_state"],
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row, check_ins: list[CheckInRecord]) -> MultiDayTask:
        return MultiDayTask(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            topic_category=row["topic_category"],
            target_completion_date=row["target_completion_date"],
            status=row["status"],
            check_in_times=json.loads(row["check_in_times"]) if row["check_in_times"] else [],
            duration_days=row["duration_days"],
            initial_context=row["initial_context"],
            conversation_id=row["primary_conversation_id"],
            check_ins=check_ins,
            final_synthesis=row["final_synthesis"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            completed_at=row["completed_at"],
            synthesis_created_at=row["synthesis_created_at"],
        )


def get_task_storage() -> TaskStorage:
    """Get task storage bound to the configured database."""
    return TaskStorage()
