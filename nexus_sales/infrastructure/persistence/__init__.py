from .database import Database, NotificationItem, init_database, utc_now

__all__ = ["Database", "NotificationItem", "init_database", "utc_now"]
