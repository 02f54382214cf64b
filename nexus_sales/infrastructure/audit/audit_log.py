"""
Audit Log - Encrypted, Append-Only Security Trail
==================================================

Every security-relevant Facebook operation (ID extraction, comment reads,
replies) records an event here. Events are JSON objects, encrypted line by
line with Fernet, and the log plus its key are readable by the current user
only.

Writing the audit trail must never break the operation being audited:
failures are logged and swallowed.
"""

import os
import re
import json
import logging
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from cryptography.fernet import Fernet, InvalidToken

from ..config import get_settings

logger = logging.getLogger(__name__)

AUDIT_WRITE_FAILED = "AUDIT-LOG-005"
REDACTED = "[REDACTED]"

# Query-string secrets that requests puts into exception messages
SECRET_PARAM_RE = re.compile(r"(\b(?:access_token|c_user|xs)=)[^&;\s'\"]+", re.IGNORECASE)


def redact_secrets(text: Optional[str]) -> str:
    """Mask token and cookie values embedded in URLs or messages."""
    if not text:
        return ""
    return SECRET_PARAM_RE.sub(rf"\1{REDACTED}", str(text))


class AuditLog:
    """
    Append-only audit trail.

    Usage:
        audit = AuditLog()
        audit.record("FacebookExtractId", "Starting extraction.", "Info")
        events = audit.read_events()
    """

    def __init__(self, log_path: Optional[Path] = None, enabled: bool = True):
        settings = get_settings().audit
        self.log_path = Path(log_path) if log_path else settings.log_path
        self.key_path = self.log_path.with_suffix(".key")
        self.enabled = enabled and settings.enabled
        self._cipher = None

    def _get_cipher(self) -> Fernet:
        if self._cipher is None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            if self.key_path.exists():
                key = self.key_path.read_bytes()
            else:
                key = Fernet.generate_key()
                self.key_path.write_bytes(key)
                _restrict_to_owner(self.key_path)
            self._cipher = Fernet(key)
        return self._cipher

    def record(
        self,
        event_type: str,
        description: str,
        outcome: str,
        user: Optional[str] = None,
        error_code: Optional[str] = None,
        exc: Optional[BaseException] = None,
        context: Any = None,
    ) -> None:
        """Append one event. Never raises."""
        if not self.enabled:
            return

        try:
            entry = {
                "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
                "event_type": event_type,
                "user": user or "(unknown)",
                "description": redact_secrets(description),
                "outcome": outcome,
                "error_code": error_code,
                "exception": redact_secrets("".join(traceback.format_exception(type(exc), exc, exc.__traceback__))) if exc else None,
                "context": context,
            }
            line = json.dumps(entry, default=str).encode("utf-8")
            token = self._get_cipher().encrypt(line)

            with open(self.log_path, "ab") as f:
                f.write(token + b"\n")
            _restrict_to_owner(self.log_path)

        except Exception as e:
            logger.error(
                f"Failed to write audit event [ErrorCode: {AUDIT_WRITE_FAILED}]: {e}"
            )

    def read_events(self) -> List[dict]:
        """Decrypt and return all events. Unreadable lines are skipped."""
        if not self.log_path.exists():
            return []

        cipher = self._get_cipher()
        events = []
        with open(self.log_path, "rb") as f:
            for raw in f:
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    events.append(json.loads(cipher.decrypt(raw)))
                except (InvalidToken, ValueError):
                    logger.warning("Skipping unreadable audit log line")
        return events


def _restrict_to_owner(path: Path) -> None:
    try:
        os.chmod(path, 0o600)
    except OSError as e:
        logger.debug(f"Could not restrict permissions on {path}: {e}")


_default_audit: Optional[AuditLog] = None


def get_audit_log() -> AuditLog:
    """Process-wide audit log built from settings."""
    global _default_audit
    if _default_audit is None:
        _default_audit = AuditLog()
    return _default_audit
