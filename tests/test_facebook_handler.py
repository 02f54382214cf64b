import dataclasses
import logging
import threading
import time

import pytest
import requests

from conftest import FakeResponse, FakeSession
from nexus_sales.infrastructure.facebook import FacebookHandler, ReactionType

C_USER = "61550000000001"
XS = "12%3AabcDEF%3A2%3A1700000000"

COMMENTS_HTML = """
<div class="c" id="comment_1111111111"><h3><a href="/profile.php?id=1">Jane &amp; Co</a></h3>
<span class="t">Great post</span></div>
<div class="c" id="comment_2222222222"><h3><a href="/bob">Bob</a></h3>
<span class="t">Interested!</span></div>
"""


@pytest.fixture
def make_handler(audit):
    def _make(session=None, **kwargs):
        session = session or FakeSession()
        return FacebookHandler(session_factory=lambda: session, audit=audit, **kwargs), session
    return _make


@pytest.fixture
def with_token(set_env):
    set_env(FACEBOOK_ACCESS_TOKEN="page-token")


# ── ID extraction ──────────────────────────────────────────────────

class TestExtractId:
    def test_basic_pattern_needs_no_network(self, make_handler):
        handler, session = make_handler()
        url = "https://www.facebook.com/groups/42/permalink/123456789012/"
        assert handler.extract_id_with_tokens(url) == "123456789012"
        assert session.calls == []

    def test_blank_input(self, make_handler):
        handler, _ = make_handler()
        assert handler.extract_id_with_tokens("  ") == ""

    def test_no_cookies_no_match(self, make_handler):
        handler, session = make_handler()
        assert handler.extract_id_with_tokens("https://www.facebook.com/story.php?id=5") == ""
        assert handler.extract_id_async("https://www.facebook.com/story.php?id=5") is None
        assert session.calls == []

    def test_mbasic_with_cookies(self, make_handler):
        session = FakeSession(get=[
            FakeResponse(200, "<html>ok</html>", url="https://mbasic.facebook.com/story.php?story_fbid=987654321&id=1"),
        ])
        handler, _ = make_handler(session)

        result = handler.extract_id_with_tokens("https://www.facebook.com/story.php?id=5", C_USER, XS)

        assert result == "987654321"
        assert session.calls[0]["url"] == "https://mbasic.facebook.com/story.php?id=5"
        assert session.cookies.get("c_user", domain=".facebook.com") == C_USER
        assert session.cookies.get("xs", domain=".facebook.com") == XS

    def test_falls_back_to_direct_http(self, make_handler):
        session = FakeSession(get=[
            FakeResponse(200, ""),
            FakeResponse(200, '<a href="/story.php?story_fbid=55555555555">x</a>'),
        ])
        handler, _ = make_handler(session)

        result = handler.extract_id_with_tokens("https://www.facebook.com/story.php?id=5", C_USER, XS)

        assert result == "55555555555"
        assert session.calls[1]["url"] == "https://www.facebook.com/story.php?id=5"

    def test_browser_fallback_last(self, make_handler):
        class Resolver:
            def __init__(self):
                self.urls = []

            def resolve(self, url, c_user, xs):
                self.urls.append(url)
                return "777777777777"

        resolver = Resolver()
        handler, _ = make_handler(browser_resolver=resolver)

        assert handler.extract_id_with_tokens("https://www.facebook.com/story.php?id=5", C_USER, XS) == "777777777777"
        assert resolver.urls == ["https://www.facebook.com/story.php?id=5"]

    def test_audit_records_success(self, make_handler, audit):
        handler, _ = make_handler()
        handler.extract_id_with_tokens("https://www.facebook.com/x/videos/123456789/")

        outcomes = [e["outcome"] for e in audit.read_events() if e["event_type"] == "FacebookExtractId"]
        assert outcomes == ["Info", "Success"]

    def test_secrets_not_audited(self, make_handler, audit):
        handler, _ = make_handler()
        handler.extract_id_with_tokens("https://www.facebook.com/x/videos/123456789/", C_USER, XS)

        dumped = str(audit.read_events())
        assert XS not in dumped

    def test_deadline_returns_empty(self, make_handler, audit):
        handler, _ = make_handler()
        handler._settings = dataclasses.replace(handler._settings, extraction_deadline=1)
        release = threading.Event()
        handler.extract_id_with_cookies = lambda url, c_user, xs: release.wait(5) and ""

        started = time.monotonic()
        try:
            result = handler.extract_id_with_tokens("https://www.facebook.com/story.php?id=5", C_USER, XS)
        finally:
            release.set()

        assert result == ""
        assert time.monotonic() - started < 2
        events = [e for e in audit.read_events() if e["event_type"] == "FacebookExtractId"]
        assert [e["outcome"] for e in events] == ["Info", "Timeout"]
        assert events[-1]["error_code"] == "FB-EXT-TIMEOUT-003"

    def test_strategy_error_returns_empty(self, make_handler, audit):
        handler, _ = make_handler()

        def broken(url, c_user, xs):
            raise RuntimeError("parser crashed")

        handler.extract_id_with_cookies = broken

        assert handler.extract_id_with_tokens("https://www.facebook.com/story.php?id=5", C_USER, XS) == ""
        events = [e for e in audit.read_events() if e["event_type"] == "FacebookExtractId"]
        assert events[-1]["outcome"] == "Error"
        assert events[-1]["error_code"] == "FB-EXT-GEN-002"


# ── Graph API comments ─────────────────────────────────────────────

def _page(comments, next_url=None):
    data = {"data": comments}
    if next_url:
        data["paging"] = {"next": next_url}
    return FakeResponse(200, json_data=data)


def _comment(comment_id, name, message):
    return {"id": comment_id, "from": {"name": name}, "message": message, "created_time": "2024-01-01T00:00:00+0000"}


@pytest.mark.usefixtures("with_token")
class TestReadComments:
    def test_paginates(self, make_handler):
        session = FakeSession(get=[
            _page([_comment("1_1", "Jane", "Hi"), _comment("1_2", "Bob", "Price?")], "https://graph.facebook.com/next?after=x"),
            _page([_comment("1_3", "Ali", "Interested")]),
        ])
        handler, _ = make_handler(session)

        comments = handler.read_comments("123456789012")

        assert [c["commentId"] for c in comments] == ["1_1", "1_2", "1_3"]
        assert comments[0] == {
            "author": "Jane",
            "comment": "Hi",
            "postId": "123456789012",
            "commentId": "1_1",
            "createdTime": "2024-01-01T00:00:00+0000",
        }
        assert session.calls[0]["url"] == "https://graph.facebook.com/v18.0/123456789012/comments"
        assert session.calls[0]["params"] == {"access_token": "page-token"}
        assert session.calls[1]["url"] == "https://graph.facebook.com/next?after=x"
        assert session.calls[1]["params"] is None

    def test_max_pages(self, make_handler):
        session = FakeSession(get=[
            _page([_comment("1_1", "Jane", "Hi")], "https://graph.facebook.com/next"),
            _page([_comment("1_2", "Bob", "Yo")]),
        ])
        handler, _ = make_handler(session)

        comments = handler.read_comments("123456789012", "maxPages=1")

        assert len(comments) == 1
        assert len(session.calls) == 1

    def test_missing_author_defaults(self, make_handler):
        session = FakeSession(get=[_page([{"id": "1_1", "message": "anon"}])])
        handler, _ = make_handler(session)

        assert handler.read_comments("123456789012")[0]["author"] == "Unknown"

    def test_no_comments(self, make_handler):
        handler, _ = make_handler(FakeSession(get=[_page([])]))

        rows = handler.read_comments("123456789012")

        assert len(rows) == 1
        assert rows[0]["author"] == "System"
        assert rows[0]["error"] == "NO_COMMENTS_FOUND"

    def test_http_error_with_facebook_error(self, make_handler):
        body = {"error": {"message": "Unsupported get request", "type": "GraphMethodException", "code": 100, "error_subcode": 33}}
        handler, _ = make_handler(FakeSession(get=[FakeResponse(400, json_data=body)]))

        row = handler.read_comments("123456789012")[0]

        assert row["error"] == "FACEBOOK_API_ERROR"
        assert row["errorCode"] == "100"
        assert row["errorType"] == "GraphMethodException"
        assert row["errorSubcode"] == "33"
        assert row["httpStatus"] == "400"
        assert "Unsupported get request" in row["comment"]

    def test_http_error_without_json(self, make_handler):
        handler, _ = make_handler(FakeSession(get=[FakeResponse(502, "Bad gateway")]))

        row = handler.read_comments("123456789012")[0]

        assert row["error"] == "HTTP_ERROR"
        assert row["httpStatus"] == "502"
        assert "Bad gateway" not in str(row)

    def test_error_in_ok_body(self, make_handler):
        body = {"error": {"message": "Invalid OAuth access token.", "type": "OAuthException", "code": 190}}
        handler, _ = make_handler(FakeSession(get=[FakeResponse(200, json_data=body)]))

        row = handler.read_comments("123456789012")[0]

        assert row["error"] == "FACEBOOK_API_ERROR"
        assert row["errorCode"] == "190"

    def test_invalid_json(self, make_handler):
        handler, _ = make_handler(FakeSession(get=[FakeResponse(200, "<html>not json</html>")]))

        row = handler.read_comments("123456789012")[0]

        assert row["error"] == "JSON_PARSE_ERROR"
        assert row["responseContent"] == "[REDACTED]"

    def test_timeout(self, make_handler):
        handler, _ = make_handler(FakeSession(get=[requests.Timeout("read timed out")]))

        assert handler.read_comments("123456789012")[0]["error"] == "TIMEOUT_ERROR"

    def test_connection_error(self, make_handler):
        handler, _ = make_handler(FakeSession(get=[requests.ConnectionError("refused")]))

        assert handler.read_comments("123456789012")[0]["error"] == "HTTP_ERROR"

    def test_token_in_error_is_redacted(self, make_handler, audit, caplog):
        url = "https://graph.facebook.com/v18.0/123456789012/comments?access_token=SECRETTOKEN123"
        handler, _ = make_handler(FakeSession(get=[requests.ConnectionError(f"Max retries exceeded with url: {url}")]))

        with caplog.at_level(logging.DEBUG):
            row = handler.read_comments("123456789012")[0]

        assert row["error"] == "HTTP_ERROR"
        assert "access_token=[REDACTED]" in row["comment"]
        assert "SECRETTOKEN123" not in row["comment"]
        assert "SECRETTOKEN123" not in caplog.text
        assert "SECRETTOKEN123" not in str(audit.read_events())

    def test_token_in_timeout_is_redacted(self, make_handler, audit):
        handler, _ = make_handler(FakeSession(get=[requests.Timeout("timed out: /comments?access_token=SECRETTOKEN123&limit=25")]))

        row = handler.read_comments("123456789012")[0]

        assert "SECRETTOKEN123" not in row["comment"]
        assert "&limit=25" in row["comment"]
        assert "SECRETTOKEN123" not in str(audit.read_events())

    def test_second_page_failure_keeps_first_page(self, make_handler):
        session = FakeSession(get=[
            _page([_comment("1_1", "Jane", "Hi")], "https://graph.facebook.com/next"),
            FakeResponse(200, json_data=["not", "an", "object"]),
        ])
        handler, _ = make_handler(session)

        comments = handler.read_comments("123456789012")

        assert [c["commentId"] for c in comments] == ["1_1"]


def test_read_comments_without_token(make_handler):
    handler, session = make_handler()
    assert handler.read_comments("123456789012") == []
    assert session.calls == []


# ── Cookie comments and reactions ──────────────────────────────────

class TestCookieComments:
    def test_invalid_input(self, make_handler):
        handler, _ = make_handler()
        assert handler.read_comments_with_cookies("abc", C_USER, XS)[0]["error"] == "INVALID_INPUT"
        assert handler.read_comments_with_cookies("123456789012", "", XS)[0]["error"] == "INVALID_INPUT"

    def test_parses_comment_blocks(self, make_handler):
        session = FakeSession(get=[FakeResponse(200, COMMENTS_HTML)])
        handler, _ = make_handler(session)

        comments = handler.read_comments_with_cookies("123456789012", C_USER, XS)

        assert comments == [
            {"commentId": "1111111111", "author": "Jane & Co", "comment": "Great post"},
            {"commentId": "2222222222", "author": "Bob", "comment": "Interested!"},
        ]
        assert session.calls[0]["url"] == "https://mbasic.facebook.com/123456789012"

    def test_empty_html(self, make_handler):
        handler, _ = make_handler(FakeSession(get=[FakeResponse(200, "")]))
        assert handler.read_comments_with_cookies("123456789012", C_USER, XS)[0]["error"] == "NO_HTML"

    def test_http_failure(self, make_handler):
        handler, _ = make_handler(FakeSession(get=[FakeResponse(500, "oops")]))
        assert handler.read_comments_with_cookies("123456789012", C_USER, XS)[0]["error"] == "EXCEPTION"


class TestReactions:
    def test_counts_success_and_failure(self, make_handler):
        session = FakeSession(
            get=[FakeResponse(200, COMMENTS_HTML)],
            post=[FakeResponse(200, "ok"), FakeResponse(500, "nope")],
        )
        handler, _ = make_handler(session)

        summary = handler.react_to_comments("123456789012", C_USER, XS, ReactionType.LOVE)

        assert summary["total"] == 2
        assert summary["success"] == 1
        assert summary["fail"] == 1
        assert summary["reactionCounts"][2] == 1
        assert summary["reactionCounts"][1] == 0
        assert [r["status"] for r in summary["results"]] == ["OK", "FAIL"]

        first_post = [c for c in session.calls if c["method"] == "POST"][0]
        assert first_post["url"] == "https://www.facebook.com/ufi/reaction/"
        assert first_post["params"] == {"ft_ent_identifier": "1111111111", "reaction_type": 2}

    def test_request_exception(self, make_handler):
        session = FakeSession(
            get=[FakeResponse(200, COMMENTS_HTML)],
            post=[requests.ConnectionError("down"), FakeResponse(200, "ok")],
        )
        handler, _ = make_handler(session)

        summary = handler.react_to_comments("123456789012", C_USER, XS)

        assert [r["status"] for r in summary["results"]] == ["EXCEPTION", "OK"]
        assert summary["reactionCounts"][1] == 1

    def test_unexpected_exception_is_counted(self, make_handler):
        session = FakeSession(
            get=[FakeResponse(200, COMMENTS_HTML)],
            post=[ValueError("bad header"), FakeResponse(200, "ok")],
        )
        handler, _ = make_handler(session)

        summary = handler.react_to_comments("123456789012", C_USER, XS)

        assert [r["status"] for r in summary["results"]] == ["EXCEPTION", "OK"]
        assert summary["fail"] == 1

    def test_no_comments(self, make_handler):
        handler, _ = make_handler(FakeSession(get=[FakeResponse(200, "<html></html>")]))

        assert handler.react_to_comments("123456789012", C_USER, XS)["error"] == "NO_COMMENTS"

    def test_invalid_input_means_no_comments(self, make_handler):
        handler, _ = make_handler()
        assert handler.react_to_comments("bad", C_USER, XS)["error"] == "NO_COMMENTS"


# ── Replies ────────────────────────────────────────────────────────

class TestReply:
    def test_success(self, make_handler):
        session = FakeSession(post=[FakeResponse(200, '{"id": "1_9"}')])
        handler, _ = make_handler(session)

        result = handler.reply_to_comment("123_456", "Thanks!", "tok")

        assert result == {"success": True, "response": '{"id": "1_9"}'}
        call = session.calls[0]
        assert call["url"] == "https://graph.facebook.com/v19.0/123_456/comments"
        assert call["data"] == {"message": "Thanks!", "access_token": "tok"}

    def test_missing_parameters(self, make_handler):
        handler, session = make_handler()

        assert handler.reply_to_comment("", "Thanks!", "tok") == {"success": False, "error": "MISSING_PARAMETERS"}
        assert handler.reply_to_comment("123_456", " ", "tok")["error"] == "MISSING_PARAMETERS"
        assert handler.reply_to_comment("123_456", "Thanks!")["error"] == "MISSING_PARAMETERS"
        assert session.calls == []

    def test_settings_token_used(self, make_handler, set_env):
        set_env(FACEBOOK_ACCESS_TOKEN="from-env")
        session = FakeSession(post=[FakeResponse(200, "{}")])
        handler, _ = make_handler(session)

        assert handler.reply_to_comment("123_456", "Thanks!")["success"] is True
        assert session.calls[0]["data"]["access_token"] == "from-env"

    def test_api_error(self, make_handler):
        handler, _ = make_handler(FakeSession(post=[FakeResponse(400, '{"error": {}}')]))

        result = handler.reply_to_comment("123_456", "Thanks!", "tok")

        assert result == {"success": False, "error": "API_ERROR", "status": "400", "response": '{"error": {}}'}

    def test_exception(self, make_handler):
        handler, _ = make_handler(FakeSession(post=[requests.ConnectionError("network down")]))

        result = handler.reply_to_comment("123_456", "Thanks!", "tok")

        assert result["success"] is False
        assert "network down" in result["error"]
