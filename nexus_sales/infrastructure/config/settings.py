"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (no hardcoded secrets)
- Settings are immutable dataclasses grouped per concern
- Single source of truth for all configurable values, including the
  command routing table used by the dispatcher
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional
from pathlib import Path
from functools import lru_cache

# Load .env file if present (development convenience)
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # python-dotenv is optional


DEFAULT_COMMAND_MAP = {
    "Facebook.Post.ExtractId": "extract_id_with_tokens",
    "Facebook.Post.ExtractPostId": "extract_post_id",
    "Facebook.Post.ReadComments": "read_comments",
    "Facebook.Post.ReadCommentsWithCookies": "read_comments_with_cookies",
    "Facebook.Post.ReactToComments": "react_to_comments",
    "Facebook.Comment.Reply": "reply_to_comment",
}

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 14_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/14.0 Mobile/15E148 Safari/604.1"
)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_command_map(raw: str) -> Dict[str, str]:
    """Parse 'App.Section.Action=function;...' into a mapping."""
    mapping = {}
    for entry in raw.split(";"):
        if "=" not in entry:
            continue
        key, function_name = entry.split("=", 1)
        if key.strip() and function_name.strip():
            mapping[key.strip()] = function_name.strip()
    return mapping


def _load_command_map() -> Dict[str, str]:
    mapping = dict(DEFAULT_COMMAND_MAP)
    mapping.update(_parse_command_map(os.getenv("NEXUS_COMMAND_MAP", "")))
    return mapping


@dataclass(frozen=True)
class FacebookSettings:
    """Graph API and cookie-session settings."""

    access_token: str = field(default_factory=lambda: os.getenv("FACEBOOK_ACCESS_TOKEN", ""))
    c_user_cookie: str = field(default_factory=lambda: os.getenv("FACEBOOK_C_USER", ""))
    xs_cookie: str = field(default_factory=lambda: os.getenv("FACEBOOK_XS", ""))

    graph_url: str = "https://graph.facebook.com"
    # Comments are read with v18.0, replies are posted with v19.0
    read_api_version: str = "v18.0"
    reply_api_version: str = "v19.0"
    mbasic_url: str = "https://mbasic.facebook.com"
    reaction_url: str = "https://www.facebook.com/ufi/reaction/"

    max_pages: int = 1000
    request_timeout: int = 30
    reaction_timeout: int = 20
    extraction_deadline: int = 60

    desktop_user_agent: str = DESKTOP_USER_AGENT
    mobile_user_agent: str = MOBILE_USER_AGENT


@dataclass(frozen=True)
class BrowserSettings:
    """Selenium fallback used when plain HTTP extraction finds nothing."""

    enabled: bool = field(default_factory=lambda: _env_bool("FACEBOOK_BROWSER_FALLBACK"))
    headless: bool = True
    page_load_timeout: int = 30


@dataclass(frozen=True)
class DatabaseSettings:
    path: str = field(default_factory=lambda: os.getenv("NEXUS_DB_PATH", "nexus_sales.db"))


@dataclass(frozen=True)
class AuditSettings:
    """Encrypted, append-only audit trail (per user)."""

    log_path: Path = field(
        default_factory=lambda: Path(
            os.getenv("NEXUS_AUDIT_LOG", str(Path.home() / ".nexus_sales" / "audit.log"))
        )
    )
    enabled: bool = field(default_factory=lambda: _env_bool("NEXUS_AUDIT_ENABLED", True))


@dataclass(frozen=True)
class NotificationSettings:
    poll_interval_seconds: float = field(
        default_factory=lambda: float(os.getenv("NEXUS_NOTIFICATION_POLL", "30"))
    )
    default_count: int = 10
    # Feed owner when the request does not name one
    user_email: str = field(default_factory=lambda: os.getenv("NEXUS_USER_EMAIL", ""))


@dataclass(frozen=True)
class CommandSettings:
    """Routing table: 'App.Section.Action' -> handler function name."""

    function_map: Dict[str, str] = field(default_factory=_load_command_map)

    def lookup(self, key: str) -> Optional[str]:
        return self.function_map.get(key)


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from nexus_sales.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.facebook.read_api_version)
    """

    facebook: FacebookSettings = field(default_factory=FacebookSettings)
    browser: BrowserSettings = field(default_factory=BrowserSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    audit: AuditSettings = field(default_factory=AuditSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    commands: CommandSettings = field(default_factory=CommandSettings)

    def validate(self) -> list[str]:
        """
        Validate settings and return list of warnings/errors.
        Returns empty list if all settings are valid.
        """
        issues = []

        if not self.facebook.access_token:
            issues.append(
                "WARNING: FACEBOOK_ACCESS_TOKEN not set. "
                "Graph API comment reading and replies will fail."
            )

        if not self.facebook.c_user_cookie or not self.facebook.xs_cookie:
            issues.append(
                "WARNING: FACEBOOK_C_USER / FACEBOOK_XS not set. "
                "Cookie-based extraction and reactions need them per request."
            )

        return issues


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
