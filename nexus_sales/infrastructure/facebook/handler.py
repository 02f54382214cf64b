"""
Facebook Handler - Post IDs, Comments, Replies and Reactions
=============================================================

Two access paths:
- Graph API (access token): reading comments with pagination, replying
- Cookie session (c_user + xs): mbasic scraping for IDs and comments,
  and posting reactions the way a logged-in browser does

CONTRACT:
- Public operations never raise. Failures come back as result rows or
  dicts carrying an "error" code, and are logged and audited.
- Tokens and cookies are never written to logs.

USAGE:
    handler = FacebookHandler()
    post_id = handler.extract_id_with_tokens(url, c_user, xs)
    comments = handler.read_comments(post_id)
    handler.reply_to_comment(comments[0]["commentId"], "Thanks!", token)
"""

import re
import json
import html as html_lib
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from enum import IntEnum
from typing import Callable, Dict, List, Optional

import requests

from ..audit import AuditLog, get_audit_log, redact_secrets
from ..config import get_settings
from . import patterns
from .validation import (
    is_valid_cookie,
    is_valid_post_id,
    log_input_validation,
    log_post_id_validation,
)

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"


class ReactionType(IntEnum):
    """Facebook reaction codes accepted by /ufi/reaction/."""
    LIKE = 1
    LOVE = 2
    WOW = 3
    HAHA = 4
    SAD = 7
    ANGRY = 8
    CARE = 16


COMMENT_BLOCK_RE = re.compile(
    r'<div[^>]+id="comment_(\d+)"[\s\S]*?<a[^>]+href="[^"]+"[^>]*>(.*?)</a>[\s\S]*?<span[^>]*>(.*?)</span>',
    re.IGNORECASE,
)
MAX_PAGES_RE = re.compile(r"maxPages=(\d+)")


def _describe(exc: BaseException) -> str:
    # Request URLs, and so exception messages, can carry the access token
    return redact_secrets(str(exc))


def _system_row(post_id: str, comment: str, error: str, **extra) -> List[dict]:
    row = {"author": "System", "comment": comment, "postId": post_id, "error": error}
    row.update(extra)
    return [row]


class FacebookHandler:
    """
    Handler for all [Facebook][...][...] commands.

    The session factory is injectable so tests (and callers that need
    proxies) can control the HTTP layer.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], requests.Session]] = None,
        audit: Optional[AuditLog] = None,
        browser_resolver=None,
    ):
        settings = get_settings()
        self._settings = settings.facebook
        self._browser_enabled = settings.browser.enabled
        self._session_factory = session_factory or requests.Session
        self._audit = audit or get_audit_log()
        self._browser_resolver = browser_resolver

    # ── HTTP helpers ───────────────────────────────────────────────

    def _new_session(
        self,
        c_user_cookie: Optional[str] = None,
        xs_cookie: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> requests.Session:
        session = self._session_factory()
        if user_agent:
            session.headers["User-Agent"] = user_agent
        if c_user_cookie and xs_cookie:
            session.cookies.set("c_user", c_user_cookie, domain=".facebook.com", path="/")
            session.cookies.set("xs", xs_cookie, domain=".facebook.com", path="/")
        return session

    @staticmethod
    def _response_text(response) -> str:
        try:
            return response.text or ""
        except (LookupError, UnicodeDecodeError):
            # Unknown charset in the Content-Type header
            logger.warning("Character set error, decoding body as UTF-8")
            return response.content.decode("utf-8", errors="replace")

    # ── ID extraction ──────────────────────────────────────────────

    def extract_id_with_tokens(
        self,
        value: str,
        c_user_cookie: Optional[str] = None,
        xs_cookie: Optional[str] = None,
    ) -> str:
        """
        Resolve a post ID from a URL or HTML payload.

        Returns "" when nothing was found, the input was blank, the
        extraction failed or it exceeded the extraction deadline.
        """
        log_input_validation(value, c_user_cookie, xs_cookie)
        logger.info(
            f"Starting extraction (cookies: c_user={bool(c_user_cookie)}, xs={bool(xs_cookie)})"
        )
        self._audit.record("FacebookExtractId", "Starting Facebook ID extraction.", "Info")

        if not value or not value.strip():
            logger.warning("Input is null or empty.")
            self._audit.record("FacebookExtractId", "Input is null or empty.", "Failure")
            return ""

        deadline = self._settings.extraction_deadline
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(self.extract_id_async, value, c_user_cookie, xs_cookie)
            result = future.result(timeout=deadline) or ""
        except FutureTimeout:
            logger.error(f"Extraction timed out after {deadline} seconds [ErrorCode: FB-EXT-TIMEOUT-003]")
            self._audit.record(
                "FacebookExtractId", f"Operation timed out after {deadline} seconds.",
                "Timeout", error_code="FB-EXT-TIMEOUT-003",
            )
            return ""
        except Exception as e:
            logger.exception(f"Unexpected exception during extraction [ErrorCode: FB-EXT-GEN-002]: {_describe(e)}")
            self._audit.record(
                "FacebookExtractId", "Unexpected exception during extraction.",
                "Error", error_code="FB-EXT-GEN-002", exc=e,
            )
            return ""
        finally:
            executor.shutdown(wait=False)

        if result:
            logger.info(f"Successfully extracted Post ID: {result}")
            self._audit.record(
                "FacebookExtractId", "Successfully extracted Facebook Post ID.",
                "Success", context={"result": result},
            )
        else:
            logger.warning("No Post ID was extracted from the input.")
            self._audit.record("FacebookExtractId", "No Post ID was extracted from the input.", "Failure")
        return result

    def extract_id_async(
        self,
        url: str,
        c_user_cookie: Optional[str] = None,
        xs_cookie: Optional[str] = None,
    ) -> Optional[str]:
        """
        Extraction chain: basic patterns first; with both cookies, the
        network strategies follow in order until one yields an ID.
        """
        if not url:
            return None

        basic_id = patterns.extract_id(url)
        if basic_id:
            return basic_id

        if not (c_user_cookie and xs_cookie):
            return None

        strategies = [
            self.extract_id_with_cookies,
            self.extract_with_direct_http,
            self.try_alternative_url_formats,
        ]
        if self._browser_enabled or self._browser_resolver is not None:
            strategies.append(self._extract_with_browser)

        for strategy in strategies:
            found = strategy(url, c_user_cookie, xs_cookie)
            if found:
                return found
        return ""

    def extract_post_id(self, url: str, c_user_token: Optional[str] = None, xs_token: Optional[str] = None) -> Optional[str]:
        return self.extract_id_async(url, c_user_token, xs_token)

    def extract_id_with_cookies(self, url: str, c_user_cookie: str, xs_cookie: str) -> str:
        """Load the mbasic version of url with cookies and mine the response."""
        try:
            mobile_url = patterns.to_mbasic_url(url)
            logger.debug("Trying mbasic URL.")

            session = self._new_session(c_user_cookie, xs_cookie, self._settings.mobile_user_agent)
            session.headers["Accept"] = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
            session.headers["Accept-Language"] = "en-US,en;q=0.5"

            response = session.get(mobile_url, timeout=self._settings.request_timeout, allow_redirects=True)
            logger.debug(f"mbasic response status: {response.status_code}")

            html = self._response_text(response)
            if not html:
                logger.warning("No content received from mbasic.")
                return ""

            return patterns.extract_id_from_response(response.url or mobile_url, html, c_user_cookie)

        except Exception as e:
            logger.error(f"Error in mbasic extraction [ErrorCode: FB-EXT-MBASIC-008]: {_describe(e)}")
            return ""

    def extract_with_direct_http(self, url: str, c_user_cookie: Optional[str] = None, xs_cookie: Optional[str] = None) -> str:
        """Fetch url as a desktop browser and apply the high-success patterns."""
        try:
            session = self._new_session(c_user_cookie, xs_cookie, self._settings.desktop_user_agent)
            response = session.get(url, timeout=self._settings.request_timeout, allow_redirects=True)

            found = patterns.match_high_success(response.url or url, c_user_cookie, limit=5)
            if found:
                return found

            return patterns.match_high_success(self._response_text(response), c_user_cookie)

        except Exception as e:
            logger.error(f"Error in direct HTTP extraction: {_describe(e)}")
            return ""

    def try_alternative_url_formats(self, url: str, c_user_cookie: Optional[str] = None, xs_cookie: Optional[str] = None) -> str:
        for alt_url in patterns.alternative_urls(url):
            found = patterns.match_high_success(alt_url, c_user_cookie, limit=3)
            if found:
                return found
        return ""

    def _extract_with_browser(self, url: str, c_user_cookie: str, xs_cookie: str) -> str:
        if self._browser_resolver is None:
            from .browser import BrowserIdResolver
            self._browser_resolver = BrowserIdResolver()
        try:
            return self._browser_resolver.resolve(url, c_user_cookie, xs_cookie)
        except Exception as e:
            logger.error(f"Browser extraction failed: {_describe(e)}")
            return ""

    # ── Comments (Graph API) ───────────────────────────────────────

    def read_comments(self, post_id: str, parameters: Optional[str] = None) -> List[dict]:
        """
        Read every comment of a post through the Graph API.

        parameters may carry "maxPages=N" to cap pagination.
        """
        log_post_id_validation(post_id)
        context = {"postId": post_id}

        try:
            logger.info(f"Starting comment extraction for post {post_id}")
            self._audit.record("FacebookReadComments", "Starting Facebook comment extraction.", "Info", context=context)

            access_token = self._settings.access_token
            if not access_token or not access_token.strip():
                logger.error("Access token is missing.")
                self._audit.record("FacebookReadComments", "Access token is missing.", "Failure")
                return []

            max_pages = self._settings.max_pages
            if parameters:
                match = MAX_PAGES_RE.search(parameters)
                if match:
                    max_pages = int(match.group(1))

            all_comments: List[dict] = []
            url = f"{self._settings.graph_url}/{self._settings.read_api_version}/{post_id}/comments"
            params = {"access_token": access_token}
            session = self._new_session()
            page_count = 0

            while url and page_count < max_pages:
                try:
                    logger.debug(f"Fetching page {page_count + 1}...")

                    try:
                        response = session.get(url, params=params, timeout=self._settings.request_timeout)
                    except requests.Timeout as e:
                        logger.error(f"Request timed out for post {post_id}: {_describe(e)}")
                        self._audit.record(
                            "FacebookReadComments", "Request timed out during Facebook comment extraction.",
                            "Timeout", exc=e, context=context,
                        )
                        return _system_row(
                            post_id,
                            f"Request timed out: {_describe(e)}. The Facebook API might be slow or unreachable.",
                            "TIMEOUT_ERROR",
                        )
                    except requests.RequestException as e:
                        logger.error(f"HTTP Error for post {post_id}: {_describe(e)}")
                        self._audit.record(
                            "FacebookReadComments", "HTTP Error during Facebook comment extraction.",
                            "Error", exc=e, context=context,
                        )
                        return _system_row(
                            post_id,
                            f"HTTP Error: {_describe(e)}. This might indicate the post is private, deleted, "
                            "or your access token doesn't have permission to read comments.",
                            "HTTP_ERROR",
                        )

                    body = response.text
                    if not response.ok:
                        return self._http_error_rows(post_id, response.status_code, body)

                    if not body:
                        logger.warning("Empty response from Facebook API.")
                        self._audit.record("FacebookReadComments", "Empty response from Facebook API.", "Warning", context=context)
                        break

                    try:
                        data = response.json()
                    except ValueError as e:
                        logger.error(f"JSON Parse Error for post {post_id}: {_describe(e)}")
                        self._audit.record(
                            "FacebookReadComments", "JSON Parse Error during Facebook comment extraction.",
                            "Error", exc=e, context=context,
                        )
                        return _system_row(
                            post_id,
                            f"Invalid JSON response from Facebook API: {_describe(e)}",
                            "JSON_PARSE_ERROR",
                            responseContent=REDACTED,
                        )

                    if data.get("error"):
                        error = data["error"]
                        message = error.get("message") or "Unknown error"
                        code = str(error.get("code") or "Unknown")
                        error_type = error.get("type") or "Unknown"
                        logger.error(f"Facebook API Error in JSON: {message} (code {code}, type {error_type})")
                        self._audit.record(
                            "FacebookReadComments", f"Facebook API Error in JSON: {message}",
                            "Failure", error_code=code, context={"postId": post_id, "errorType": error_type},
                        )
                        return _system_row(
                            post_id,
                            f"Facebook API Error: {message} (Code: {code}, Type: {error_type})",
                            "FACEBOOK_API_ERROR",
                            errorCode=code,
                            errorType=error_type,
                        )

                    comments_data = data.get("data")
                    if comments_data is not None:
                        page_comments = [
                            {
                                "author": (c.get("from") or {}).get("name") or "Unknown",
                                "comment": c.get("message") or "",
                                "postId": post_id,
                                "commentId": c.get("id") or "",
                                "createdTime": c.get("created_time") or "",
                            }
                            for c in comments_data
                        ]
                        all_comments.extend(page_comments)
                        logger.debug(
                            f"Page {page_count + 1}: Found {len(page_comments)} comments. Total: {len(all_comments)}"
                        )
                    else:
                        logger.warning(f"No 'data' field in response for page {page_count + 1}")
                        self._audit.record(
                            "FacebookReadComments", f"No 'data' field in response for page {page_count + 1}",
                            "Warning", context=context,
                        )

                    # The next-page URL already carries the token
                    url = (data.get("paging") or {}).get("next")
                    params = None
                    page_count += 1

                except Exception as e:
                    logger.error(f"Error on page {page_count + 1}: {_describe(e)}")
                    self._audit.record(
                        "FacebookReadComments", f"Error on page {page_count + 1}.",
                        "Error", exc=e, context=context,
                    )
                    if page_count == 0:
                        return _system_row(post_id, f"Error on first page: {_describe(e)}", "FIRST_PAGE_ERROR")
                    break

            if page_count >= max_pages:
                logger.warning(f"Reached maximum page limit ({max_pages}).")
                self._audit.record(
                    "FacebookReadComments", f"Reached maximum page limit ({max_pages}).", "Warning", context=context,
                )

            logger.info(f"Successfully extracted {len(all_comments)} comments.")
            self._audit.record(
                "FacebookReadComments", f"Successfully extracted {len(all_comments)} comments.", "Success", context=context,
            )

            if not all_comments:
                return _system_row(
                    post_id,
                    "No comments found on this post. The post might have no comments, or comments might be disabled.",
                    "NO_COMMENTS_FOUND",
                )

            return all_comments

        except Exception as e:
            logger.error(f"Unexpected Exception [ErrorCode: FB-READ-GEN-001]: {_describe(e)}")
            self._audit.record(
                "FacebookReadComments", "Unexpected Exception during comment extraction.",
                "Error", error_code="FB-READ-GEN-001", exc=e, context=context,
            )
            return _system_row(
                post_id,
                f"Unexpected error reading comments: {type(e).__name__}: {_describe(e)}",
                "UNEXPECTED_ERROR",
                exceptionType=type(e).__name__,
            )

    def _http_error_rows(self, post_id: str, status_code: int, body: str) -> List[dict]:
        logger.error(f"Non-success HTTP status {status_code} for post {post_id}")
        self._audit.record(
            "FacebookReadComments", "Non-success HTTP status from Facebook API.",
            "Failure", context={"postId": post_id, "status": status_code},
        )

        try:
            error = (json.loads(body) or {}).get("error") if body else None
        except ValueError:
            logger.error("Could not parse error response as JSON.")
            error = None

        if isinstance(error, dict):
            message = error.get("message") or "Unknown Facebook error"
            code = str(error.get("code") or "Unknown")
            error_type = error.get("type") or "Unknown"
            subcode = str(error.get("error_subcode") or "")
            self._audit.record(
                "FacebookReadComments", f"Facebook API Error: {message}", "Failure",
                error_code=code, context={"postId": post_id, "errorType": error_type, "errorSubcode": subcode},
            )
            return _system_row(
                post_id,
                f"Facebook API Error: {message} (Code: {code}, Type: {error_type})",
                "FACEBOOK_API_ERROR",
                errorCode=code,
                errorType=error_type,
                errorSubcode=subcode,
                httpStatus=str(status_code),
                fullErrorResponse=REDACTED,
            )

        return _system_row(
            post_id,
            f"HTTP {status_code}: {REDACTED}",
            "HTTP_ERROR",
            httpStatus=str(status_code),
            rawResponse=REDACTED,
        )

    # ── Comments (cookie session) ──────────────────────────────────

    def read_comments_with_cookies(self, post_id: str, c_user_cookie: str, xs_cookie: str) -> List[dict]:
        """Scrape the comments of a post from mbasic using session cookies."""
        log_post_id_validation(post_id)
        if not is_valid_post_id(post_id) or not is_valid_cookie(c_user_cookie) or not is_valid_cookie(xs_cookie):
            logger.error("Invalid input [ErrorCode: FB-COOKIES-VAL-001]")
            return [{"error": "INVALID_INPUT", "message": "Invalid postId or cookies."}]

        comments = []
        try:
            session = self._new_session(c_user_cookie, xs_cookie, self._settings.desktop_user_agent)
            response = session.get(
                f"{self._settings.mbasic_url}/{post_id}",
                timeout=self._settings.request_timeout,
                allow_redirects=True,
            )
            response.raise_for_status()

            html = self._response_text(response)
            if not html:
                return [{"error": "NO_HTML", "message": "No HTML content returned."}]

            for match in COMMENT_BLOCK_RE.finditer(html):
                comments.append({
                    "commentId": match.group(1),
                    "author": html_lib.unescape(match.group(2)),
                    "comment": html_lib.unescape(match.group(3)),
                })

        except Exception as e:
            logger.error(f"Exception reading comments [ErrorCode: FB-COOKIES-READ-002]: {_describe(e)}")
            return [{"error": "EXCEPTION", "message": _describe(e)}]

        return comments

    # ── Reactions ──────────────────────────────────────────────────

    def react_to_comments(
        self,
        post_id: str,
        c_user_cookie: str,
        xs_cookie: str,
        reaction_type: int = ReactionType.LIKE,
    ) -> Dict:
        """React to every comment of a post and summarize the outcome."""
        reaction_type = int(reaction_type)
        logger.info(f"Starting reaction process for postId={post_id}, reactionType={reaction_type}")

        comments = self.read_comments_with_cookies(post_id, c_user_cookie, xs_cookie)
        if not comments or (len(comments) == 1 and comments[0].get("error")):
            logger.warning("No comments to react to.")
            return {"error": "NO_COMMENTS", "message": "No comments to react to."}

        success = 0
        fail = 0
        results = []
        reaction_counts = {int(t): 0 for t in ReactionType}

        session = self._new_session(c_user_cookie, xs_cookie, self._settings.desktop_user_agent)
        for comment in comments:
            comment_id = comment.get("commentId")
            author = comment.get("author")
            try:
                response = session.post(
                    self._settings.reaction_url,
                    params={"ft_ent_identifier": comment_id, "reaction_type": reaction_type},
                    data="",
                    timeout=self._settings.reaction_timeout,
                )
                if response.ok:
                    success += 1
                    status = "OK"
                    if reaction_type in reaction_counts:
                        reaction_counts[reaction_type] += 1
                    logger.info(f"Reacted OK to commentId={comment_id}, author={author}")
                else:
                    fail += 1
                    status = "FAIL"
                    logger.warning(
                        f"Failed to react to commentId={comment_id}, author={author}, status={response.status_code}"
                    )
            except Exception as e:
                fail += 1
                status = "EXCEPTION"
                logger.error(f"Exception for commentId={comment_id}, author={author}: {_describe(e)}")

            results.append({
                "commentId": comment_id,
                "author": author,
                "status": status,
                "reactionType": reaction_type,
            })

        logger.info(f"Finished reactions. Total={len(comments)}, Success={success}, Fail={fail}")
        return {
            "total": len(comments),
            "success": success,
            "fail": fail,
            "reactionCounts": reaction_counts,
            "results": results,
        }

    # ── Replies ────────────────────────────────────────────────────

    def reply_to_comment(self, comment_id: str, reply_message: str, access_token: Optional[str] = None) -> Dict:
        """Post a reply under a comment through the Graph API."""
        access_token = access_token or self._settings.access_token
        logger.info(f"Replying to commentId={comment_id}")
        self._audit.record(
            "FacebookReplyToComment", f"Replying to comment {comment_id}", "Info", context={"commentId": comment_id},
        )

        if not (comment_id or "").strip() or not (reply_message or "").strip() or not (access_token or "").strip():
            logger.error("Missing required parameters.")
            return {"success": False, "error": "MISSING_PARAMETERS"}

        url = f"{self._settings.graph_url}/{self._settings.reply_api_version}/{comment_id}/comments"
        try:
            session = self._new_session()
            response = session.post(
                url,
                data={"message": reply_message, "access_token": access_token},
                timeout=self._settings.request_timeout,
            )
            body = response.text

            if response.ok:
                logger.info(f"Reply sent to commentId={comment_id}")
                self._audit.record(
                    "FacebookReplyToComment", f"Reply sent to comment {comment_id}",
                    "Success", context={"commentId": comment_id},
                )
                return {"success": True, "response": body}

            logger.error(f"Failed to reply to commentId={comment_id}. Status: {response.status_code}")
            self._audit.record(
                "FacebookReplyToComment", f"Failed to reply to comment {comment_id}",
                "Failure", context={"commentId": comment_id, "status": response.status_code},
            )
            return {
                "success": False,
                "error": "API_ERROR",
                "status": str(response.status_code),
                "response": body,
            }

        except Exception as e:
            logger.error(f"Exception replying to comment {comment_id}: {_describe(e)}")
            self._audit.record(
                "FacebookReplyToComment", f"Exception replying to comment {comment_id}",
                "Error", exc=e, context={"commentId": comment_id},
            )
            return {"success": False, "error": _describe(e)}
