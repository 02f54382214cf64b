"""
Notification Center - Per-User Notification Feed
================================================

Holds the state behind the notifications panel for one signed-in user:
the merged feed (own private notifications plus public ones this device
has not dismissed), the unread badge count, pinned items, and the "new"
indicator raised when a monitoring refresh brings in items not seen in
the previous refresh.

Collapsing a public notification only hides it on this device; collapsing
a private one deletes it. Pinned copies survive either way.
"""

import logging
import threading
from datetime import datetime
from typing import List, Optional, Set, Tuple

from ..infrastructure.device import get_laptop_serial
from ..infrastructure.persistence import Database, NotificationItem
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


def _feed_key(item: NotificationItem) -> Tuple[bool, int]:
    # Private and public ids come from separate tables and may collide
    return (item.is_public, item.id)


class NotificationCenter:
    """
    Usage:
        center = NotificationCenter(service, db, "a@b.com")
        center.load()
        center.pin(center.notifications[0])
        center.start()
    """

    def __init__(
        self,
        service: NotificationService,
        db: Database,
        user_email: str,
        laptop_serial: Optional[str] = None,
    ):
        if not user_email:
            raise ValueError("user_email is required")
        self.service = service
        self.db = db
        self.user_email = user_email
        self.laptop_serial = laptop_serial or get_laptop_serial()

        self.notifications: List[NotificationItem] = []
        self.bookmarks: List[NotificationItem] = []
        self.user_bookmarks: List[NotificationItem] = []
        self.unread_count = 0
        self.has_new_notifications = False

        self._last_seen_keys: Set[Tuple[bool, int]] = set()
        self._primed = False
        self._lock = threading.RLock()

    @property
    def has_notifications(self) -> bool:
        return bool(self.notifications)

    # ── Feed ───────────────────────────────────────────────────────

    def load(self) -> List[NotificationItem]:
        """Reload the feed, newest first, and recount unread items."""
        private = self.db.get_notifications_for_user(self.user_email)
        public = self.db.get_unseen_public_notifications(self.laptop_serial)
        feed = sorted(private + public, key=lambda n: n.timestamp or datetime.min, reverse=True)

        with self._lock:
            self.notifications = feed
            self.unread_count = sum(1 for n in feed if not n.is_read)
        return feed

    def mark_as_read(self, notification_id: int):
        self.service.mark_as_read(notification_id)
        self.load()

    def mark_all_as_read(self):
        self.service.mark_all_as_read()
        self.load()

    def collapse(self, item: Optional[NotificationItem]):
        if item is None:
            return

        if item.is_public:
            self.service.mark_public_notification_seen(item.public_notification_id or item.id, self.laptop_serial)
        else:
            self.service.remove_notification(item.id)
        self.load()

    def refresh_unread_count(self) -> int:
        self.unread_count = self.service.get_total_unread_count(self.laptop_serial)
        return self.unread_count

    def clear_new_indicator(self):
        self.has_new_notifications = False

    # ── Pins ───────────────────────────────────────────────────────

    def pin(self, item: Optional[NotificationItem]):
        if item is None:
            return

        if item.is_public:
            public_id = item.public_notification_id or item.id
            self.db.add_bookmark(self.user_email, public_notification_id=public_id)
            self.db.add_user_bookmarked_notification(
                self.user_email, item.title, item.message, item.type,
                public_notification_id=public_id,
            )
        else:
            notification_id = item.notification_id or item.id
            self.db.add_bookmark(self.user_email, notification_id=notification_id)
            self.db.add_user_bookmarked_notification(
                self.user_email, item.title, item.message, item.type,
                notification_id=notification_id,
            )
        logger.debug(f"Pinned {'public' if item.is_public else 'private'} notification {item.id} for {self.user_email}")
        self.load_user_bookmarks()

    def unpin(self, item: Optional[NotificationItem]):
        if item is None:
            return

        if item.is_public:
            self.db.remove_bookmark(self.user_email, public_notification_id=item.public_notification_id or item.id)
        else:
            self.db.remove_bookmark(self.user_email, notification_id=item.notification_id or item.id)

        with self._lock:
            key = _feed_key(item)
            self.bookmarks = [b for b in self.bookmarks if _feed_key(b) != key]
            self.user_bookmarks = [b for b in self.user_bookmarks if _feed_key(b) != key]

    def load_bookmarks(self) -> List[NotificationItem]:
        """Pins whose notification still exists."""
        bookmarks = self.db.get_bookmarks(self.user_email)
        with self._lock:
            self.bookmarks = list(bookmarks)
            self.user_bookmarks = list(bookmarks)
        return bookmarks

    def load_user_bookmarks(self) -> List[NotificationItem]:
        """Pinned copies, including ones whose notification was collapsed."""
        bookmarks = self.db.get_user_bookmarked_notifications(self.user_email)
        with self._lock:
            self.user_bookmarks = list(bookmarks)
        return bookmarks

    # ── Monitoring ─────────────────────────────────────────────────

    def on_updates(self, _updates: Optional[List[NotificationItem]] = None):
        """Reload the feed and raise the "new" flag for unseen items."""
        previous = self._last_seen_keys
        feed = self.load()
        keys = {_feed_key(n) for n in feed}

        if self._primed and keys - previous:
            self.has_new_notifications = True
            logger.info(f"{len(keys - previous)} new notification(s) for {self.user_email}")
        self._last_seen_keys = keys
        self._primed = True

    def start(self, interval_seconds: Optional[float] = None):
        self.load()
        self._last_seen_keys = {_feed_key(n) for n in self.notifications}
        self._primed = True
        self.service.start_monitoring(self.on_updates, interval_seconds)

    def stop(self):
        self.service.stop_monitoring()
