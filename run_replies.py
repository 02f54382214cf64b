"""
Reply Runner - Bulk Facebook Comment Replies
============================================

Imports an exported comment sheet and replies to every comment through
the Graph API, printing progress as it goes. Ctrl+C stops after the
current comment.

    python run_replies.py comments.xlsx
    python run_replies.py comments.csv --token <page access token>
"""

import sys
import argparse
import logging
import threading
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from nexus_sales.application import ReplyRunner, format_count
from nexus_sales.infrastructure.config import get_settings
from nexus_sales.infrastructure.importer import import_comments

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def print_progress(progress):
    status = progress.row.status if progress.row else ""
    print(f"   [{progress.processed}/{progress.total}] {progress.row.comment_id if progress.row else ''}: "
          f"{status}  (elapsed {progress.elapsed}, ETA {progress.eta})")


def run_replies(file_path: str, access_token: str = "") -> int:
    """Reply to every comment in file_path. Returns a process exit code."""

    print("\n" + "=" * 60)
    print("   NexusSales - Comment Replies")
    print("=" * 60 + "\n")

    access_token = access_token or get_settings().facebook.access_token
    if not access_token:
        print("access_token must be set (--token or FACEBOOK_ACCESS_TOKEN).")
        return 2

    try:
        rows = import_comments(file_path)
    except (FileNotFoundError, ValueError) as e:
        print(f"Import failed: {e}")
        return 2

    if not rows:
        print("No comments to reply to.")
        return 0

    print(f"Found {format_count(len(rows))} comments\n")

    cancel_event = threading.Event()
    runner = ReplyRunner()
    worker_result = {}

    def work():
        worker_result["summary"] = runner.run(rows, access_token, cancel_event, print_progress)

    worker = threading.Thread(target=work, name="reply-runner")
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=0.5)
    except KeyboardInterrupt:
        print("\n\nInterrupted! Finishing the current comment...")
        cancel_event.set()
        worker.join()

    summary = worker_result.get("summary")
    print("\n" + "=" * 60)
    if summary is None:
        print("Reply run failed. See the log above.")
        print("=" * 60 + "\n")
        return 1
    print(summary.summary_text)
    print("=" * 60 + "\n")
    return 0 if summary.fail == 0 else 1


def main():
    parser = argparse.ArgumentParser(description="Reply to Facebook comments listed in a spreadsheet.")
    parser.add_argument("file", help="Comment sheet (.csv, .xlsx or .xls)")
    parser.add_argument("--token", default="", help="Page access token (defaults to FACEBOOK_ACCESS_TOKEN)")
    args = parser.parse_args()
    sys.exit(run_replies(args.file, args.token))


if __name__ == "__main__":
    main()
