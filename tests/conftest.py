# tests/conftest.py
"""
Global pytest fixtures for NexusSales tests.
"""

import json

import pytest
import requests

from nexus_sales.infrastructure.audit import AuditLog
import nexus_sales.infrastructure.audit.audit_log as audit_module
from nexus_sales.infrastructure.config import get_settings
from nexus_sales.infrastructure.persistence import init_database

ENV_VARS = (
    "FACEBOOK_ACCESS_TOKEN",
    "FACEBOOK_C_USER",
    "FACEBOOK_XS",
    "FACEBOOK_BROWSER_FALLBACK",
    "NEXUS_COMMAND_MAP",
    "NEXUS_USER_EMAIL",
    "NEXUS_AUDIT_ENABLED",
)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every path at tmp_path and drop ambient credentials."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NEXUS_DB_PATH", str(tmp_path / "nexus_sales.db"))
    monkeypatch.setenv("NEXUS_AUDIT_LOG", str(tmp_path / "audit" / "audit.log"))
    monkeypatch.setenv("NEXUS_NOTIFICATION_POLL", "3600")
    monkeypatch.setattr(audit_module, "_default_audit", None)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def set_env(monkeypatch):
    """Set environment variables and rebuild settings."""
    def _set(**values):
        for name, value in values.items():
            monkeypatch.setenv(name, value)
        get_settings.cache_clear()
    return _set


@pytest.fixture
def audit(tmp_path):
    return AuditLog(tmp_path / "handler-audit" / "audit.log")


@pytest.fixture
def db(tmp_path):
    return init_database(str(tmp_path / "test.db"))


class FakeResponse:
    """Just enough of requests.Response for the handler."""

    def __init__(self, status_code=200, text="", url="", json_data=None):
        self.status_code = status_code
        self.url = url
        if json_data is not None:
            text = json.dumps(json_data)
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    @property
    def content(self):
        return self.text.encode("utf-8")

    def json(self):
        return json.loads(self.text)

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSession:
    """
    Records requests and replays queued responses.

    Queue items may be FakeResponse instances or exceptions to raise.
    """

    def __init__(self, get=None, post=None):
        self.headers = {}
        self.cookies = requests.cookies.RequestsCookieJar()
        self.get_queue = list(get or [])
        self.post_queue = list(post or [])
        self.calls = []

    def _next(self, queue, method, url, kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not queue:
            return FakeResponse(404, "", url)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        if not item.url:
            item.url = url
        return item

    def get(self, url, **kwargs):
        return self._next(self.get_queue, "GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._next(self.post_queue, "POST", url, kwargs)


@pytest.fixture
def fake_session():
    return FakeSession()
