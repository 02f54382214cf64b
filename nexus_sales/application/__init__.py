# Application Layer
# =================
# Orchestration over the infrastructure layer:
# - notification_service: repository reads/updates and the polling monitor
# - notification_center:  per-user feed, pins and the "new" indicator
# - reply_runner:         bulk replies to imported comments

from .notification_service import NotificationService
from .notification_center import NotificationCenter
from .reply_runner import (
    ReplyProgress,
    ReplyRunner,
    ReplySummary,
    format_count,
    generate_reply_for_comment,
    summarize_comment,
)

__all__ = [
    "NotificationService",
    "NotificationCenter",
    "ReplyProgress",
    "ReplyRunner",
    "ReplySummary",
    "format_count",
    "generate_reply_for_comment",
    "summarize_comment",
]
