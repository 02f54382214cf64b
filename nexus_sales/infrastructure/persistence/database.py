"""
SQLite Database Repository - Notifications and Bookmarks
=========================================================

Two notification sources:
- notifications:        private, optionally addressed to one user email
- publicnotifications:  broadcast to every installation; "seen" state is
                        tracked per machine serial in publicnotificationseen

Users pin (bookmark) either kind. A bookmark references exactly one of the
two sources. user_bookmarked_notifications keeps a copy of the pinned
title/message so a pin survives the notification being collapsed.
"""

import sqlite3
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

logger = logging.getLogger(__name__)

DATABASE_FILE = "nexus_sales.db"
PUBLIC_TYPE = "Public"
PRIVATE_TYPE = "Private"


def utc_now() -> datetime:
    """Naive UTC time, the form timestamps are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _now() -> str:
    return utc_now().isoformat(sep=" ")


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


@dataclass
class NotificationItem:
    """Notification or bookmark row as shown in the feed."""
    id: int
    title: str
    message: str
    timestamp: Optional[datetime] = None
    is_read: bool = False
    type: Optional[str] = None
    notification_id: Optional[int] = None
    public_notification_id: Optional[int] = None

    @property
    def is_public(self) -> bool:
        if self.public_notification_id is not None:
            return True
        return (self.type or "").lower() == "public"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "is_read": self.is_read,
            "type": self.type,
            "notification_id": self.notification_id,
            "public_notification_id": self.public_notification_id,
            "is_public": self.is_public,
        }


class Database:
    """
    SQLite repository for NexusSales notifications.

    Usage:
        db = Database()
        db.init()

        nid = db.add_notification("Welcome", "Hello!", user_email="a@b.com")
        db.add_bookmark("a@b.com", notification_id=nid)
        pinned = db.get_bookmarks("a@b.com")
    """

    def __init__(self, db_path: str = DATABASE_FILE):
        self.db_path = db_path

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init(self):
        """Initialize database tables."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    timestamp TIMESTAMP NOT NULL,
                    is_read INTEGER DEFAULT 0,
                    type TEXT,
                    user_email TEXT
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS publicnotifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    timestamp TIMESTAMP NOT NULL,
                    type TEXT DEFAULT 'Public'
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS publicnotificationseen (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    publicnotificationid INTEGER NOT NULL,
                    laptopserial TEXT NOT NULL,
                    seenat TIMESTAMP NOT NULL,
                    UNIQUE(publicnotificationid, laptopserial)
                )
            """)

            for table in ("notification_bookmarks", "user_bookmarked_notifications"):
                extra = (
                    "title TEXT, message TEXT,"
                    if table == "user_bookmarked_notifications" else ""
                )
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_email TEXT NOT NULL,
                        {extra}
                        notification_id INTEGER,
                        public_notification_id INTEGER,
                        notification_type TEXT,
                        created_at TIMESTAMP NOT NULL
                    )
                """)
                # NULLs never collide in a plain UNIQUE constraint
                conn.execute(f"""
                    CREATE UNIQUE INDEX IF NOT EXISTS ux_{table}_private
                    ON {table}(user_email, notification_id)
                    WHERE notification_id IS NOT NULL
                """)
                conn.execute(f"""
                    CREATE UNIQUE INDEX IF NOT EXISTS ux_{table}_public
                    ON {table}(user_email, public_notification_id)
                    WHERE public_notification_id IS NOT NULL
                """)

            logger.info(f"Database initialized: {self.db_path}")

    # ── Private notifications ──────────────────────────────────────

    def add_notification(
        self,
        title: str,
        message: str,
        type: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> int:
        """Insert a private notification and return its id."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO notifications (title, message, timestamp, type, user_email) VALUES (?, ?, ?, ?, ?)",
                (title, message, _now(), type, user_email)
            )
            return cursor.lastrowid

    def add_notification_and_return_id(self, title: str, message: str, type: Optional[str] = None) -> int:
        return self.add_notification(title, message, type)

    def add_notification_and_bookmark(self, title: str, message: str, user_email: str) -> int:
        """Create a notification for user_email and pin it in one go."""
        notification_id = self.add_notification(title, message, user_email=user_email)
        self.add_bookmark(user_email, notification_id=notification_id)
        return notification_id

    def get_notification(self, notification_id: int) -> Optional[NotificationItem]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT id, title, message, timestamp, is_read, type FROM notifications WHERE id = ?",
                (notification_id,)
            ).fetchone()
            return self._row_to_notification(row) if row else None

    def get_notifications(self) -> List[NotificationItem]:
        """All private notifications, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT id, title, message, timestamp, is_read, type FROM notifications ORDER BY timestamp DESC, id DESC"
            ).fetchall()
            return [self._row_to_notification(row) for row in rows]

    def get_notifications_for_user(self, user_email: str) -> List[NotificationItem]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT id, title, message, timestamp, is_read, type FROM notifications
                   WHERE user_email = ? ORDER BY timestamp DESC, id DESC""",
                (user_email,)
            ).fetchall()
            return [self._row_to_notification(row) for row in rows]

    def get_updates(self, since: datetime) -> List[NotificationItem]:
        """Unread private notifications created after since."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT id, title, message, timestamp, is_read, type FROM notifications
                   WHERE timestamp > ? AND is_read = 0""",
                (since.isoformat(sep=" "),)
            ).fetchall()
            return [self._row_to_notification(row) for row in rows]

    def mark_notification_as_read(self, notification_id: int):
        with self._get_connection() as conn:
            conn.execute("UPDATE notifications SET is_read = 1 WHERE id = ?", (notification_id,))

    def remove_notification(self, notification_id: int, keep_bookmarks: bool = False):
        """Delete a notification, and unless keep_bookmarks, every pin on it."""
        with self._get_connection() as conn:
            conn.execute("DELETE FROM notifications WHERE id = ?", (notification_id,))
            if not keep_bookmarks:
                conn.execute("DELETE FROM notification_bookmarks WHERE notification_id = ?", (notification_id,))
                conn.execute("DELETE FROM user_bookmarked_notifications WHERE notification_id = ?", (notification_id,))

    # ── Public notifications ───────────────────────────────────────

    def add_public_notification(self, title: str, message: str, type: str = PUBLIC_TYPE) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO publicnotifications (title, message, timestamp, type) VALUES (?, ?, ?, ?)",
                (title, message, _now(), type)
            )
            return cursor.lastrowid

    def get_public_notification(self, public_notification_id: int) -> Optional[NotificationItem]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT id, title, message, timestamp, 0 AS is_read, type FROM publicnotifications WHERE id = ?",
                (public_notification_id,)
            ).fetchone()
            return self._row_to_notification(row, public=True) if row else None

    def get_unseen_public_notifications(self, laptop_serial: str) -> List[NotificationItem]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT pn.id, pn.title, pn.message, pn.timestamp, 0 AS is_read, pn.type
                   FROM publicnotifications pn
                   LEFT JOIN publicnotificationseen pns
                     ON pn.id = pns.publicnotificationid AND pns.laptopserial = ?
                   WHERE pns.id IS NULL
                   ORDER BY pn.timestamp DESC, pn.id DESC""",
                (laptop_serial,)
            ).fetchall()
            return [self._row_to_notification(row, public=True) for row in rows]

    def get_unseen_public_notifications_count(self, laptop_serial: str) -> int:
        with self._get_connection() as conn:
            return conn.execute(
                """SELECT COUNT(*)
                   FROM publicnotifications pn
                   LEFT JOIN publicnotificationseen pns
                     ON pn.id = pns.publicnotificationid AND pns.laptopserial = ?
                   WHERE pns.id IS NULL""",
                (laptop_serial,)
            ).fetchone()[0]

    def mark_public_notification_seen(self, public_notification_id: int, laptop_serial: str):
        with self._get_connection() as conn:
            conn.execute(
                """INSERT OR IGNORE INTO publicnotificationseen (publicnotificationid, laptopserial, seenat)
                   VALUES (?, ?, ?)""",
                (public_notification_id, laptop_serial, _now())
            )

    # ── Bookmarks ──────────────────────────────────────────────────

    @staticmethod
    def _check_single_target(notification_id: Optional[int], public_notification_id: Optional[int]):
        if (notification_id is None) == (public_notification_id is None):
            raise ValueError("Exactly one of notification_id or public_notification_id must be set.")

    def bookmark_exists(
        self,
        user_email: str,
        notification_id: Optional[int] = None,
        public_notification_id: Optional[int] = None,
    ) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                """SELECT 1 FROM notification_bookmarks
                   WHERE user_email = ?
                     AND ((? IS NOT NULL AND notification_id = ?)
                          OR (? IS NOT NULL AND public_notification_id = ?))
                   LIMIT 1""",
                (user_email, notification_id, notification_id, public_notification_id, public_notification_id)
            ).fetchone()
            return row is not None

    def add_bookmark(
        self,
        user_email: str,
        notification_id: Optional[int] = None,
        public_notification_id: Optional[int] = None,
    ):
        """Pin a notification. Pinning twice is a no-op."""
        self._check_single_target(notification_id, public_notification_id)
        notification_type = PUBLIC_TYPE if notification_id is None else PRIVATE_TYPE

        with self._get_connection() as conn:
            conn.execute(
                """INSERT OR IGNORE INTO notification_bookmarks
                       (user_email, notification_id, public_notification_id, notification_type, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (user_email, notification_id, public_notification_id, notification_type, _now())
            )

    def remove_bookmark(
        self,
        user_email: str,
        notification_id: Optional[int] = None,
        public_notification_id: Optional[int] = None,
    ):
        """Unpin from both bookmark tables. Private id wins when both are given."""
        if notification_id is not None:
            column, value = "notification_id", notification_id
        elif public_notification_id is not None:
            column, value = "public_notification_id", public_notification_id
        else:
            return

        with self._get_connection() as conn:
            for table in ("notification_bookmarks", "user_bookmarked_notifications"):
                conn.execute(
                    f"DELETE FROM {table} WHERE user_email = ? AND {column} = ?",
                    (user_email, value)
                )

    def get_bookmarks(self, user_email: str) -> List[NotificationItem]:
        """Pinned notifications that still exist, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT n.id, n.title, n.message, n.timestamp, n.type, 0 AS is_public
                     FROM notifications n
                     INNER JOIN notification_bookmarks b ON n.id = b.notification_id
                     WHERE b.user_email = ?
                   UNION
                   SELECT pn.id, pn.title, pn.message, pn.timestamp, pn.type, 1 AS is_public
                     FROM publicnotifications pn
                     INNER JOIN notification_bookmarks b ON pn.id = b.public_notification_id
                     WHERE b.user_email = ?
                   ORDER BY timestamp DESC""",
                (user_email, user_email)
            ).fetchall()

        bookmarks = []
        for row in rows:
            public = bool(row["is_public"])
            bookmarks.append(NotificationItem(
                id=row["id"],
                title=row["title"],
                message=row["message"],
                timestamp=_parse_timestamp(row["timestamp"]),
                is_read=False,
                type=row["type"] or (PUBLIC_TYPE if public else None),
                notification_id=None if public else row["id"],
                public_notification_id=row["id"] if public else None,
            ))
        return bookmarks

    def add_user_bookmarked_notification(
        self,
        user_email: str,
        title: str,
        message: str,
        type: Optional[str] = None,
        notification_id: Optional[int] = None,
        public_notification_id: Optional[int] = None,
    ):
        with self._get_connection() as conn:
            conn.execute(
                """INSERT OR IGNORE INTO user_bookmarked_notifications
                       (user_email, title, message, created_at, notification_type,
                        notification_id, public_notification_id)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (user_email, title, message, _now(), type, notification_id, public_notification_id)
            )

    def get_user_bookmarked_notifications(self, user_email: str) -> List[NotificationItem]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT notification_id, public_notification_id, title, message, created_at, notification_type
                   FROM user_bookmarked_notifications
                   WHERE user_email = ?
                   ORDER BY created_at DESC, id DESC""",
                (user_email,)
            ).fetchall()

        bookmarks = []
        for row in rows:
            public = row["public_notification_id"] is not None
            bookmarks.append(NotificationItem(
                id=row["public_notification_id"] if public else (row["notification_id"] or 0),
                title=row["title"] or "",
                message=row["message"] or "",
                timestamp=_parse_timestamp(row["created_at"]),
                is_read=False,
                type=row["notification_type"],
                notification_id=None if public else row["notification_id"],
                public_notification_id=row["public_notification_id"] if public else None,
            ))
        return bookmarks

    def remove_user_bookmarked_notification(self, user_email: str, title: str, message: str):
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM user_bookmarked_notifications WHERE user_email = ? AND title = ? AND message = ?",
                (user_email, title, message)
            )

    def add_bookmark_for_item(self, item: NotificationItem, user_email: str):
        if item.is_public:
            self.add_bookmark(user_email, public_notification_id=item.public_notification_id or item.id)
        else:
            self.add_bookmark(user_email, notification_id=item.notification_id or item.id)

    def remove_bookmark_for_item(self, item: NotificationItem, user_email: str):
        if item.is_public:
            self.remove_bookmark(user_email, public_notification_id=item.public_notification_id or item.id)
        else:
            self.remove_bookmark(user_email, notification_id=item.notification_id or item.id)

    # ── Helpers ────────────────────────────────────────────────────

    def _row_to_notification(self, row: sqlite3.Row, public: bool = False) -> NotificationItem:
        """Convert database row to NotificationItem."""
        return NotificationItem(
            id=row["id"],
            title=row["title"],
            message=row["message"],
            timestamp=_parse_timestamp(row["timestamp"]),
            is_read=bool(row["is_read"]),
            type=row["type"] or (PUBLIC_TYPE if public else None),
            notification_id=None if public else row["id"],
            public_notification_id=row["id"] if public else None,
        )


def init_database(db_path: Optional[str] = None) -> Database:
    """Create the repository and its tables."""
    db = Database(db_path or DATABASE_FILE)
    db.init()
    return db
