"""
Reply Runner - Bulk Comment Replies
===================================

Walks a list of imported comments, fills in a canned reply where none was
written, and posts each reply through the Graph API. Progress (processed,
success, fail, ETA) is reported after every comment, and the run stops
early when the cancel event is set.

USAGE:
    runner = ReplyRunner()
    summary = runner.run(rows, access_token, progress=print)
    print(summary.summary_text)
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..infrastructure.facebook import FacebookHandler
from ..infrastructure.importer import CommentRow

logger = logging.getLogger(__name__)

STATUS_REPLIED = "Replied"


def generate_reply_for_comment(comment: Optional[str]) -> str:
    """Canned reply for a comment."""
    if not comment or not comment.strip():
        return "Thank you!"
    if "interested" in comment.lower():
        return "Thank you for your interest!"
    return "Thank you for your comment!"


def summarize_comment(comment: Optional[str]) -> str:
    """Short label for a comment in listings."""
    if not comment or not comment.strip():
        return ""
    if "interested" in comment.lower():
        return "Interested!"
    if len(comment) > 40:
        return comment[:40] + "..."
    return comment


def format_count(count: int) -> str:
    """1234 -> "1.2k", 2300000 -> "2.3M"."""
    if count < 1000:
        return str(count)
    if count < 1_000_000:
        value, suffix = count / 1000.0, "k"
    else:
        value, suffix = count / 1_000_000.0, "M"
    text = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{text}{suffix}"


def format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


@dataclass
class ReplyProgress:
    processed: int
    total: int
    success: int
    fail: int
    elapsed: str
    eta: str
    row: Optional[CommentRow] = None


@dataclass
class ReplySummary:
    total: int
    processed: int
    success: int
    fail: int
    cancelled: bool = False

    @property
    def summary_text(self) -> str:
        return f"Replies complete. Total: {self.total}, Success: {self.success}, Fail: {self.fail}"

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "processed": self.processed,
            "success": self.success,
            "fail": self.fail,
            "cancelled": self.cancelled,
            "summary": self.summary_text,
        }


class ReplyRunner:

    def __init__(self, handler: Optional[FacebookHandler] = None, clock: Callable[[], float] = time.monotonic):
        self.handler = handler or FacebookHandler()
        self._clock = clock

    def run(
        self,
        rows: List[CommentRow],
        access_token: str,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[Callable[[ReplyProgress], None]] = None,
    ) -> ReplySummary:
        """Reply to every row that has a comment ID. Row status is updated in place."""
        if not access_token or not access_token.strip():
            raise ValueError("access_token must be set.")

        logger.info(f"Reply run started. Comments count: {len(rows)}")
        for row in rows:
            row.status = ""
            if not (row.reply or "").strip():
                row.reply = generate_reply_for_comment(row.comment)

        targets = [row for row in rows if (row.comment_id or "").strip()]
        started = self._clock()
        processed = success = fail = 0
        cancelled = False

        for row in targets:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Reply run cancelled by user.")
                cancelled = True
                break

            try:
                result = self.handler.reply_to_comment(row.comment_id, row.reply, access_token)
                if result.get("success"):
                    row.status = STATUS_REPLIED
                    success += 1
                else:
                    logger.error(f"Reply failed for commentId={row.comment_id}: {result.get('error')}")
                    row.status = f"Fail: {result.get('error') or ''}"
                    fail += 1
            except Exception as e:
                logger.exception(f"Exception for commentId={row.comment_id}: {e}")
                row.status = f"Exception: {e}"
                fail += 1

            processed += 1
            if progress is not None:
                elapsed = self._clock() - started
                remaining = elapsed / processed * (len(targets) - processed)
                progress(ReplyProgress(
                    processed=processed,
                    total=len(targets),
                    success=success,
                    fail=fail,
                    elapsed=format_duration(elapsed),
                    eta=f"~{format_duration(remaining)}",
                    row=row,
                ))

        summary = ReplySummary(total=len(rows), processed=processed, success=success, fail=fail, cancelled=cancelled)
        logger.info(summary.summary_text)
        return summary
