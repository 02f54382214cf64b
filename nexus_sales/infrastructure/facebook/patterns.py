"""
Facebook Identifier Patterns
============================

Pure string/regex helpers that resolve post, video and story IDs from
Facebook URLs or page HTML. No network access happens here; the handler
feeds in whatever URL or markup it fetched.

Resolution order for fetched mbasic pages:
    1. id query parameter in the final (post-redirect) URL
    2. /permalink/, /posts/ or /videos/ segment in the final URL
    3. priority HTML patterns (meta tags, embedded JSON)
    4. 15-16 digit numbers in the HTML, skipping user-like IDs
    5. any 13+ digit number, longest first
"""

import re
from typing import Iterable, List, Optional, Sequence

# Tried in order against raw input (URL or HTML)
PATTERNS = [
    r"/permalink/(\d+)",
    r"/videos/(\d+)",
    r"fbid=(\d+)",
    r"/(?:(?:posts)|(?:photos))/(\d+)",
    r'"post_id":"(\d+)"',
    r'"video_id":"(\d+)"',
    r'"id":"(\d{8,})"',
    r"/share/p/([A-Za-z0-9]+)",
    r"/share/v/([A-Za-z0-9]+)",
]

HIGH_SUCCESS_PATTERNS = [
    r"story_fbid=(\d+)",
    r"fbid=(\d+)",
    r"video_id=(\d+)",
    r'<meta[^>]+content="fb://\w+/\?id=(\d+)"',
    r'<meta[^>]+property="(?:og:url|al:android:url)"[^>]+content="(?:https://www\.facebook\.com/(?:.+?)/(?:posts|videos)/)(\d+)"',
    r'"post_id":"(\d+)"',
    r'"story":{[^}]*"id":"(\d+)"',
    r'"target_id":"(\d+)"',
    r'"feedback_id":"(\d+)"',
    r"post_id=(\d+)",
    r"story_fbid=(\d+)",
    r"/posts/(\d{10,})",
    r"/permalink/(\d{10,})",
    r"/videos/(\d{10,})",
]

PRIORITY_HTML_PATTERNS = [
    r"story_fbid=(\d+)",
    r"fbid=(\d+)",
    r"video_id=(\d+)",
    r'<meta[^>]+content="fb://\w+/\?id=(\d+)"',
    r'<meta[^>]+property="(?:og:url|al:android:url)"[^>]+content="(?:https://www\.facebook\.com/(?:.+?)/(?:posts|videos)/)(\d+)"',
    r'"post_id":"(\d+)"',
    r'"story":{[^}]*"id":"(\d+)"',
    r'"target_id":"(\d+)"',
]

# Page/app IDs and placeholder user IDs that show up on every page
BLACKLISTED_IDS = frozenset([
    "409962623085609", "100041584152497", "100000000000000", "100001000000000",
    "100002000000000", "100003000000000", "100004000000000", "100005000000000",
])

# Profile IDs start with these; a post ID never does
USER_ID_PREFIXES = ("10000", "10001", "10002", "10003", "10004", "10005")

FINAL_URL_QUERY_RE = re.compile(r"(?:fbid|story_fbid|video_id)=([0-9]+)")
FINAL_URL_PATH_RE = re.compile(r"/(?:permalink|posts|videos)/([0-9]+)")
LONG_NUMBER_RE = re.compile(r"\b(\d{15,16})\b")
ANY_NUMBER_RE = re.compile(r"\b(\d{10,})\b")


def is_blacklisted(candidate: str, c_user: Optional[str] = None) -> bool:
    return candidate in BLACKLISTED_IDS or (bool(c_user) and candidate == c_user)


def extract_id(value: Optional[str]) -> Optional[str]:
    """
    Return the first ID found by the basic patterns.

    Returns "" for blank input and None when no pattern matches.
    """
    if not value or not value.strip():
        return ""

    for pattern in PATTERNS:
        match = re.search(pattern, value, re.IGNORECASE)
        if match:
            return match.group(1)

    return None


def to_mbasic_url(url: str) -> str:
    """Rewrite any facebook.com host to mbasic.facebook.com."""
    if "www.facebook.com" in url:
        mobile_url = url.replace("www.facebook.com", "mbasic.facebook.com")
    elif "facebook.com" in url and "mbasic.facebook.com" not in url:
        mobile_url = url.replace("facebook.com", "mbasic.facebook.com")
    else:
        mobile_url = url

    if "mbasic.mbasic" in mobile_url:
        mobile_url = mobile_url.replace("mbasic.mbasic.facebook.com", "mbasic.facebook.com")
    return mobile_url


def alternative_urls(url: str) -> List[str]:
    """Host variants of url, excluding url itself, without duplicates."""
    candidates = [
        url.replace("m.facebook.com", "www.facebook.com"),
        url.replace("mobile.facebook.com", "www.facebook.com"),
        url.replace("www.facebook.com", "m.facebook.com"),
        url.replace("facebook.com", "m.facebook.com"),
    ]
    seen = []
    for candidate in candidates:
        if candidate != url and candidate not in seen:
            seen.append(candidate)
    return seen


def match_patterns(
    text: str,
    patterns: Sequence[str],
    c_user: Optional[str] = None,
    limit: Optional[int] = None,
) -> str:
    """First non-blacklisted group-1 match of the given patterns, or ""."""
    if not text:
        return ""

    for pattern in patterns[:limit] if limit else patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match and not is_blacklisted(match.group(1), c_user):
            return match.group(1)
    return ""


def match_high_success(text: str, c_user: Optional[str] = None, limit: Optional[int] = None) -> str:
    return match_patterns(text, HIGH_SUCCESS_PATTERNS, c_user, limit)


def _looks_like_user_id(candidate: str) -> bool:
    return candidate.startswith(USER_ID_PREFIXES)


def _filter_candidates(numbers: Iterable[str], c_user: Optional[str]) -> List[str]:
    return [
        n for n in numbers
        if not is_blacklisted(n, c_user) and not _looks_like_user_id(n)
    ]


def extract_id_from_response(final_url: str, html: str, c_user: Optional[str] = None) -> str:
    """Resolve a post ID from a fetched mbasic page. Returns "" if none."""
    match = FINAL_URL_QUERY_RE.search(final_url or "")
    if match and not is_blacklisted(match.group(1), c_user):
        return match.group(1)

    match = FINAL_URL_PATH_RE.search(final_url or "")
    if match and not is_blacklisted(match.group(1), c_user):
        return match.group(1)

    if not html:
        return ""

    found = match_patterns(html, PRIORITY_HTML_PATTERNS, c_user)
    if found:
        return found

    candidates = _filter_candidates(LONG_NUMBER_RE.findall(html), c_user)
    for candidate in candidates:
        if (
            f'"post_id":"{candidate}"' in html
            or f"story_fbid={candidate}" in html
            or f'"story":{{"id":"{candidate}"' in html
        ):
            return candidate
    if candidates:
        return candidates[0]

    fallback = [n for n in _filter_candidates(ANY_NUMBER_RE.findall(html), c_user) if len(n) >= 13]
    if fallback:
        # max() keeps the first of equally long candidates
        return max(fallback, key=len)

    return ""
