"""
FastAPI Web Application - NexusSales Dashboard
===============================================

Local dashboard and JSON API over the NexusSales services:
- command console:  "[App][Section][Action, ...]" routed to handlers
- notifications:    per-user feed with read / collapse / pin
- bulk replies:     import a comment sheet, reply to every comment

The feed owner is the ?user_email= query parameter, or NEXUS_USER_EMAIL.
"""

import io
import json
import html
import logging
import threading
from collections import OrderedDict
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, BackgroundTasks, UploadFile, File
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from ..application import NotificationCenter, NotificationService, ReplyRunner, format_count, summarize_comment
from ..infrastructure.commands import CommandDispatcher
from ..infrastructure.config import get_settings
from ..infrastructure.device import get_laptop_serial
from ..infrastructure.importer import CommentImporter, CommentRow
from ..infrastructure.importer.comment_importer import SUPPORTED_EXTENSIONS
from ..infrastructure.persistence import Database, NotificationItem, init_database

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ── Globals ────────────────────────────────────────────────────────
db: Optional[Database] = None
notification_service: Optional[NotificationService] = None
dispatcher: Optional[CommandDispatcher] = None
laptop_serial: str = ""
# Most recently used last; the oldest feed is dropped past MAX_CENTERS
MAX_CENTERS = 32
centers: "OrderedDict[str, NotificationCenter]" = OrderedDict()
centers_lock = threading.Lock()

imported_comments: List[CommentRow] = []
reply_state: Dict = {"running": False, "processed": 0, "total": 0, "success": 0, "fail": 0, "eta": "", "summary": ""}
cancel_event = threading.Event()


def _refresh_centers(updates: List[NotificationItem]):
    with centers_lock:
        live = list(centers.values())
    for center in live:
        center.on_updates(updates)


# ── Lifespan ───────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    global db, notification_service, dispatcher, laptop_serial
    settings = get_settings()
    for issue in settings.validate():
        logger.warning(issue)

    db = init_database(settings.database.path)
    notification_service = NotificationService(db)
    dispatcher = CommandDispatcher()
    laptop_serial = get_laptop_serial()
    centers.clear()
    imported_comments.clear()

    notification_service.start_monitoring(_refresh_centers)
    logger.info("Database ready")
    yield
    notification_service.stop_monitoring()
    cancel_event.set()


app = FastAPI(title="NexusSales", description="Facebook Sales Automation", lifespan=lifespan)


# ── Request models ─────────────────────────────────────────────────

class CommandPayload(BaseModel):
    command: str
    tokens: Optional[Dict[str, str]] = None


class NotificationPayload(BaseModel):
    title: str
    message: str
    type: Optional[str] = None
    user_email: Optional[str] = None
    public: bool = False


class ReplyPayload(BaseModel):
    access_token: Optional[str] = None


# ── Helpers ────────────────────────────────────────────────────────

def _get_center(user_email: Optional[str]) -> NotificationCenter:
    email = (user_email or get_settings().notifications.user_email).strip()
    if not email:
        raise HTTPException(status_code=400, detail="user_email is required")

    with centers_lock:
        center = centers.get(email)
        if center is not None:
            centers.move_to_end(email)
            return center

    center = NotificationCenter(notification_service, db, email, laptop_serial)
    center.on_updates()
    with centers_lock:
        centers[email] = center
        while len(centers) > MAX_CENTERS:
            evicted, _ = centers.popitem(last=False)
            logger.debug(f"Dropped idle notification feed for {evicted}")
    return center


def _get_item(notification_id: int, public: bool) -> NotificationItem:
    item = db.get_public_notification(notification_id) if public else db.get_notification(notification_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return item


def _feed_payload(center: NotificationCenter) -> dict:
    return {
        "user_email": center.user_email,
        "notifications": [n.to_dict() for n in center.notifications],
        "unread_count": center.unread_count,
        "has_new": center.has_new_notifications,
    }


# ══════════════════════════════════════════════════════════════════
#  HTML
# ══════════════════════════════════════════════════════════════════

SHARED_CSS = """
    :root {
        --bg-dark: #0a0a14;
        --bg-card: rgba(255,255,255,0.035);
        --border: rgba(255,255,255,0.07);
        --text: #e2e8f0;
        --text-muted: #64748b;
        --gradient: linear-gradient(135deg, #1877f2 0%, #06b6d4 100%);
    }
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body {
        font-family: 'Inter', -apple-system, BlinkMacSystemFont, sans-serif;
        background: var(--bg-dark);
        color: var(--text);
        min-height: 100vh;
        padding: 32px;
    }
    h1 { font-size: 24px; margin-bottom: 24px; }
    h2 { font-size: 16px; margin-bottom: 14px; color: var(--text-muted); text-transform: uppercase; letter-spacing: 0.05em; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 20px; }
    .card { background: var(--bg-card); border: 1px solid var(--border); border-radius: 16px; padding: 24px; }
    .btn { background: var(--gradient); color: #fff; border: none; padding: 10px 22px; border-radius: 10px; font-weight: 600; cursor: pointer; }
    .btn-sm { padding: 6px 12px; font-size: 12px; }
    input, textarea { width: 100%; background: rgba(255,255,255,0.05); border: 1px solid var(--border); color: var(--text); border-radius: 8px; padding: 10px; margin-bottom: 10px; }
    .item { border-bottom: 1px solid var(--border); padding: 12px 0; display: flex; justify-content: space-between; gap: 12px; }
    .item.unread .title { font-weight: 700; }
    .meta { color: var(--text-muted); font-size: 12px; }
    .badge { background: #1877f2; border-radius: 999px; padding: 2px 10px; font-size: 12px; }
    pre { white-space: pre-wrap; word-break: break-all; font-size: 12px; color: var(--text-muted); }
    .empty-state { color: var(--text-muted); padding: 12px 0; }
"""

DASHBOARD_JS = """
    async function post(url, body) {
        const res = await fetch(url, {method: 'POST', headers: {'Content-Type': 'application/json'}, body: body ? JSON.stringify(body) : null});
        return res.json();
    }
    async function runCommand() {
        const command = document.getElementById('command').value;
        const c_user = document.getElementById('c_user').value;
        const xs = document.getElementById('xs').value;
        const tokens = (c_user || xs) ? {c_user_token: c_user, xs_token: xs} : null;
        const result = await post('/api/command', {command, tokens});
        document.getElementById('command-output').textContent = JSON.stringify(result, null, 2);
    }
    async function notificationAction(id, action, isPublic) {
        await post(`/api/notifications/${id}/${action}?public=${isPublic}&user_email=${encodeURIComponent(USER_EMAIL)}`);
        location.reload();
    }
    async function startReplies() {
        await post('/api/comments/reply', {access_token: document.getElementById('access_token').value || null});
        pollReplies();
    }
    async function pollReplies() {
        const state = await (await fetch('/api/comments/status')).json();
        document.getElementById('reply-status').textContent =
            state.summary || `${state.processed}/${state.total} · ETA ${state.eta}`;
        if (state.running) setTimeout(pollReplies, 1000);
    }
"""


def render_dashboard(center: Optional[NotificationCenter], comments: List[CommentRow]) -> str:
    """Render the main dashboard."""
    user_email = center.user_email if center else ""

    feed_rows = ""
    if center:
        for n in center.notifications:
            is_public = "true" if n.is_public else "false"
            feed_rows += f"""
            <div class="item {'' if n.is_read else 'unread'}">
                <div>
                    <div class="title">{html.escape(n.title)}</div>
                    <div>{html.escape(n.message)}</div>
                    <div class="meta">{n.type or ''} · {n.timestamp or ''}</div>
                </div>
                <div>
                    <button class="btn btn-sm" onclick="notificationAction({n.id}, 'read', {is_public})">Read</button>
                    <button class="btn btn-sm" onclick="notificationAction({n.id}, 'pin', {is_public})">Pin</button>
                    <button class="btn btn-sm" onclick="notificationAction({n.id}, 'collapse', {is_public})">Dismiss</button>
                </div>
            </div>"""
    if not feed_rows:
        feed_rows = '<div class="empty-state">No notifications.</div>'

    comment_rows = ""
    for row in comments[:50]:
        comment_rows += f"""
        <div class="item">
            <div>
                <div class="title">{html.escape(row.author or 'Unknown')}</div>
                <div>{html.escape(summarize_comment(row.comment))}</div>
                <div class="meta">{html.escape(row.comment_id)}</div>
            </div>
            <div class="meta">{html.escape(row.status)}</div>
        </div>"""
    if not comment_rows:
        comment_rows = '<div class="empty-state">Import a comment sheet to get started.</div>'

    unread = center.unread_count if center else 0
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>NexusSales</title>
    <style>{SHARED_CSS}</style>
</head>
<body>
    <h1>NexusSales <span class="badge">{format_count(unread)} unread</span></h1>
    <div class="grid">
        <div class="card">
            <h2>Command Console</h2>
            <input id="command" placeholder="[Facebook][Post][ExtractId, https://www.facebook.com/...]">
            <input id="c_user" placeholder="c_user cookie (optional)">
            <input id="xs" placeholder="xs cookie (optional)">
            <button class="btn" onclick="runCommand()">Run</button>
            <pre id="command-output"></pre>
        </div>
        <div class="card">
            <h2>Notifications · {html.escape(user_email or 'no user')}</h2>
            {feed_rows}
        </div>
        <div class="card">
            <h2>Bulk Replies · {format_count(len(comments))} comments</h2>
            <form method="post" action="/api/comments/import" enctype="multipart/form-data">
                <input type="file" name="file" accept=".csv,.xlsx,.xls">
                <button class="btn" type="submit">Import</button>
            </form>
            <br>
            <input id="access_token" placeholder="Page access token (defaults to FACEBOOK_ACCESS_TOKEN)">
            <button class="btn" onclick="startReplies()">Reply to all</button>
            <div class="meta" id="reply-status"></div>
            {comment_rows}
        </div>
    </div>
    <script>const USER_EMAIL = {json.dumps(user_email)};{DASHBOARD_JS}</script>
</body>
</html>"""


# ── Dashboard ──────────────────────────────────────────────────────

@app.get("/", response_class=HTMLResponse)
async def dashboard(user_email: Optional[str] = None):
    email = user_email or get_settings().notifications.user_email
    center = _get_center(email) if email else None
    if center:
        center.load()
    return render_dashboard(center, imported_comments)


# ── Commands ───────────────────────────────────────────────────────

@app.post("/api/command")
def run_command(payload: CommandPayload):
    result = dispatcher.execute(payload.command, payload.tokens)
    return {"success": result.success, "output": result.output, "data": result.data}


# ── Notifications ──────────────────────────────────────────────────

@app.get("/api/notifications")
async def list_notifications(user_email: Optional[str] = None):
    center = _get_center(user_email)
    center.load()
    return _feed_payload(center)


@app.post("/api/notifications")
async def create_notification(payload: NotificationPayload):
    if payload.public:
        notification_id = db.add_public_notification(payload.title, payload.message, payload.type or "Public")
    else:
        notification_id = db.add_notification(payload.title, payload.message, payload.type, payload.user_email)
    return {"id": notification_id, "public": payload.public}


@app.post("/api/notifications/read-all")
async def mark_all_read(user_email: Optional[str] = None):
    center = _get_center(user_email)
    center.mark_all_as_read()
    return _feed_payload(center)


@app.post("/api/notifications/clear-new")
async def clear_new_indicator(user_email: Optional[str] = None):
    center = _get_center(user_email)
    center.clear_new_indicator()
    return _feed_payload(center)


@app.post("/api/notifications/{notification_id}/read")
async def mark_read(notification_id: int, user_email: Optional[str] = None, public: bool = False):
    center = _get_center(user_email)
    if public:
        # Public notifications have no read state of their own
        center.collapse(_get_item(notification_id, public=True))
    else:
        center.mark_as_read(notification_id)
    return _feed_payload(center)


@app.post("/api/notifications/{notification_id}/collapse")
async def collapse_notification(notification_id: int, user_email: Optional[str] = None, public: bool = False):
    center = _get_center(user_email)
    center.collapse(_get_item(notification_id, public))
    return _feed_payload(center)


@app.post("/api/notifications/{notification_id}/pin")
async def pin_notification(notification_id: int, user_email: Optional[str] = None, public: bool = False):
    center = _get_center(user_email)
    center.pin(_get_item(notification_id, public))
    return {"bookmarks": [b.to_dict() for b in center.user_bookmarks]}


@app.post("/api/notifications/{notification_id}/unpin")
async def unpin_notification(notification_id: int, user_email: Optional[str] = None, public: bool = False):
    center = _get_center(user_email)
    item = NotificationItem(
        id=notification_id,
        title="",
        message="",
        type="Public" if public else None,
        notification_id=None if public else notification_id,
        public_notification_id=notification_id if public else None,
    )
    center.unpin(item)
    return {"bookmarks": [b.to_dict() for b in center.load_user_bookmarks()]}


@app.get("/api/bookmarks")
async def list_bookmarks(user_email: Optional[str] = None):
    center = _get_center(user_email)
    return {
        "bookmarks": [b.to_dict() for b in center.load_bookmarks()],
        "user_bookmarks": [b.to_dict() for b in center.load_user_bookmarks()],
    }


# ── Bulk replies ───────────────────────────────────────────────────

@app.post("/api/comments/import")
async def import_comments(file: UploadFile = File(...)):
    """Import a comment sheet, in memory, replacing the previous import."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file selected")

    ext = Path(file.filename).suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Invalid file type. Use .xlsx, .xls, or .csv")

    if reply_state["running"]:
        raise HTTPException(status_code=409, detail="A reply run is in progress")

    try:
        rows = CommentImporter().parse_buffer(io.BytesIO(await file.read()), ext)
    except Exception as e:
        logger.exception(f"Comment import error: {e}")
        raise HTTPException(status_code=400, detail=f"Import failed: {str(e)[:80]}")

    imported_comments[:] = rows
    return {"imported": len(rows), "comments": [r.to_dict() for r in rows]}


def _run_replies(access_token: str):
    def on_progress(progress):
        reply_state.update(
            processed=progress.processed,
            total=progress.total,
            success=progress.success,
            fail=progress.fail,
            eta=progress.eta,
        )

    try:
        summary = ReplyRunner().run(imported_comments, access_token, cancel_event, on_progress)
        reply_state["summary"] = summary.summary_text
    except Exception as e:
        logger.exception(f"Reply run failed: {e}")
        reply_state["summary"] = f"Reply run failed: {e}"
    finally:
        reply_state["running"] = False


@app.post("/api/comments/reply")
async def reply_to_comments(payload: ReplyPayload, background_tasks: BackgroundTasks):
    if reply_state["running"]:
        raise HTTPException(status_code=409, detail="A reply run is in progress")
    if not imported_comments:
        raise HTTPException(status_code=400, detail="No comments to reply to.")

    access_token = payload.access_token or get_settings().facebook.access_token
    if not access_token:
        raise HTTPException(status_code=400, detail="access_token must be set.")

    cancel_event.clear()
    reply_state.update(
        running=True, processed=0, total=len(imported_comments), success=0, fail=0, eta="--", summary=""
    )
    background_tasks.add_task(_run_replies, access_token)
    return {"started": True, "total": len(imported_comments)}


@app.post("/api/comments/cancel")
async def cancel_replies():
    cancel_event.set()
    return {"cancelled": reply_state["running"]}


@app.get("/api/comments/status")
async def reply_status():
    return {**reply_state, "comments": [r.to_dict() for r in imported_comments]}


# ── Health ─────────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    return {"status": "ok", "database": db is not None, "monitoring": bool(notification_service and notification_service.is_monitoring)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
