"""
Input validation for Facebook URLs, post IDs and session cookies.

The log_* helpers only warn: extraction still runs on suspicious input
because many valid share links do not match the strict URL shape.
"""

import re
import logging
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

FACEBOOK_URL_RE = re.compile(r"^https?://(www\.|m\.|mbasic\.|mobile\.)?facebook\.com/", re.IGNORECASE)
POST_ID_RE = re.compile(r"^\d{8,}$")
COOKIE_RE = re.compile(r"^[A-Za-z0-9=._-]+$")
C_USER_RE = re.compile(r"^\d+$")


def is_valid_facebook_url(url: Optional[str]) -> bool:
    if not url or not url.strip():
        return False
    return bool(FACEBOOK_URL_RE.match(url))


def is_valid_post_id(post_id: Optional[str]) -> bool:
    return bool(post_id) and bool(POST_ID_RE.match(post_id))


def is_valid_cookie(cookie: Optional[str]) -> bool:
    """Accept plain cookies and URL-encoded xs values (they contain '%')."""
    if not cookie or not cookie.strip():
        return False
    if "%" in cookie:
        return True
    return bool(COOKIE_RE.match(cookie))


def log_input_validation(value: Optional[str], c_user_cookie: Optional[str], xs_cookie: Optional[str]) -> None:
    if not is_valid_facebook_url(value):
        logger.warning("Input is null, empty, or not a valid Facebook URL.")
    if c_user_cookie and not is_valid_cookie(c_user_cookie):
        logger.warning("c_user cookie is invalid.")
    if xs_cookie and not is_valid_cookie(xs_cookie):
        logger.warning("xs cookie is invalid.")


def log_post_id_validation(post_id: Optional[str]) -> None:
    if not is_valid_post_id(post_id):
        logger.warning("PostId format is suspicious or invalid.")


class FacebookTokenValidator:
    """Checks the session tokens sent along with a Facebook command."""

    REQUIRED = ("c_user_token", "xs_token")

    def validate_tokens(self, tokens: Optional[Dict[str, str]]) -> Tuple[bool, str]:
        if not tokens:
            return False, "No tokens provided."

        for name in self.REQUIRED:
            if not (tokens.get(name) or "").strip():
                return False, f"Missing token: {name}."

        if not C_USER_RE.match(tokens["c_user_token"].strip()):
            return False, "c_user_token must be numeric."

        if not is_valid_cookie(tokens["xs_token"].strip()):
            return False, "xs_token has an invalid format."

        return True, ""
