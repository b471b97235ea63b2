"""Prompt notification queue.

Check-in prompts are stored as pending notification records; delivery to a
device is handled elsewhere on its own cadence.
"""

from __future__ import annotations

import sqlite3
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from temporal_checkin.config import settings
from temporal_checkin.errors import NotificationEnqueueError, TransientStoreError


def _utc_now() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PromptNotification:
    """A queued prompt notification record."""

    id: str
    user_id: str
    research_task_id: str | None
    question: str
    context: str | None
    preferred_time_of_day: str
    preferred_cognitive_state: str
    priority: float
    expires_at: str | None
    status: str  # pending, sent, responded, expired, skipped
    created_at: str

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"


class NotificationGateway(ABC):
    """Accepts prompt requests and returns their identifiers."""

    @abstractmethod
    def create(
        self,
        user_id: str,
        question: str,
        context: str | None,
        preferred_time_of_day: str,
        preferred_cognitive_state: str,
        priority: float,
        expires_at: str | None,
        research_task_id: str | None = None,
    ) -> str:
        """Queue a prompt and return its id.

        Raises:
            NotificationEnqueueError: the prompt was not accepted
        """


class NotificationStorage(NotificationGateway):
    """Notification gateway backed by a SQLite `thought_notifications` table."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path) if db_path else None

    @property
    def db_path(self) -> Path:
        return self._db_path or settings.notifications_db_path

    def get_connection(self) -> sqlite3.Connection:
        """Get a SQLite connection for the notification queue."""
        db_path = self.db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path), timeout=settings.DB_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        self._ensure_schema(conn)
        return conn

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS thought_notifications (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                research_task_id TEXT,
                question TEXT NOT NULL,
                context TEXT,
                preferred_time_of_day TEXT CHECK (preferred_time_of_day IN
                    ('morning', 'afternoon', 'evening', 'late_night', 'any')),
                preferred_cognitive_state TEXT CHECK (preferred_cognitive_state IN
                    ('analytical', 'creative', 'reflective', 'philosophical', 'emotional', 'any')),
                priority REAL DEFAULT 0.5 CHECK (priority >= 0.0 AND priority <= 1.0),
                expires_at TEXT,
                status TEXT DEFAULT 'pending',
                created_at TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_notifications_user_status "
            "ON thought_notifications(user_id, status)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_notifications_task "
            "ON thought_notifications(research_task_id)"
        )
        conn.commit()

    def create(
        self,
        user_id: str,
        question: str,
        context: str | None,
        preferred_time_of_day: str,
        preferred_cognitive_state: str,
        priority: float,
        expires_at: str | None,
        research_task_id: str | None = None,
    ) -> str:
        """Insert a pending prompt notification."""
        notification_id = str(uuid.uuid4())

        try:
            conn = self.get_connection()
            try:
                conn.execute("""
                    INSERT INTO thought_notifications (
                        id, user_id, research_task_id, question, context,
                        preferred_time_of_day, preferred_cognitive_state,
                        priority, expires_at, status, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?)
                """, (
                    notification_id,
                    user_id,
                    research_task_id,
                    question,
                    context,
                    preferred_time_of_day,
                    preferred_cognitive_state,
                    priority,
                    expires_at,
                    _utc_now(),
                ))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise NotificationEnqueueError(f"Failed to create thought notification: {e}") from e

        return notification_id

    def get_by_id(self, notification_id: str) -> PromptNotification | None:
        """Get a notification by ID."""
        try:
            conn = self.get_connection()
            try:
                row = conn.execute(
                    "SELECT * FROM thought_notifications WHERE id = ?", (notification_id,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise TransientStoreError("fetch notification", e) from e

        return self._row_to_notification(row) if row else None

    def list_pending(self, user_id: str, task_id: str | None = None) -> list[PromptNotification]:
        """List pending notifications for a user, highest priority first."""
        query = "SELECT * FROM thought_notifications WHERE user_id = ? AND status = 'pending'"
        params: list = [user_id]
        if task_id:
            query += " AND research_task_id = ?"
            params.append(task_id)
        query += " ORDER BY priority DESC, expires_at ASC"

        try:
            conn = self.get_connection()
            try:
                rows = conn.execute(query, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise TransientStoreError("list notifications", e) from e

        return [self._row_to_notification(row) for row in rows]

    @staticmethod
    def _row_to_notification(row: sqlite3.Row) -> PromptNotification:
        return PromptNotification(
            id=row["id"],
            user_id=row["user_id"],
            research_task_id=row["research_task_id"],
            question=row["question"],
            context=row["context"],
            preferred_time_of_day=row["preferred_time_of_day"],
            preferred_cognitive_state=row["preferred_cognitive_state"],
            priority=row["priority"],
            expires_at=row["expires_at"],
            status=row["status"],
            created_at=row["created_at"],
        )


def get_notification_storage() -> NotificationStorage:
    """Get notification storage bound to the configured database."""
    return NotificationStorage()
