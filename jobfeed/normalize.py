"""Normalization helpers shared by all scrapers.

Turns the loose text that job boards render (relative ages, "Apply By"
deadlines, location blurbs) into the typed fields of a JobPosting.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urljoin, urlparse, urlunparse

logger = logging.getLogger(__name__)

REMOTE_TERMS = ("remote", "work from home", "wfh")

# Checked in order; first hit wins
JOB_TYPE_TERMS = (
    ("full-time", "Full-time"),
    ("part-time", "Part-time"),
    ("contract", "Contract"),
    ("internship", "Internship"),
)

# Internshala only shows the application deadline
APPLY_BY_OFFSET = timedelta(days=30)

_RELATIVE = re.compile(r"(\d+)\+?\s*(hour|hr|day|week|month)s?\s+ago\b", re.IGNORECASE)
_APPLY_BY = re.compile(r"apply\s+by\s*:?\s*(\d{1,2}\s+[a-z]+\.?,?\s+\d{2,4})", re.IGNORECASE)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d %b %y",
    "%m/%d/%Y",
)


def clean_text(text: Optional[str]) -> str:
    """Collapse runs of whitespace and strip."""
    if not text:
        return ""
    return " ".join(text.split()).strip()


# ── Dates ──────────────────────────────────────────────────────────────────


def parse_posted_date(date_str: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse posting-date text into an absolute UTC datetime.

    Handles:
    - Relative: "Posted 3 days ago", "30+ days ago", "5 hours ago",
      "2 weeks ago", "1 month ago", "today", "yesterday"
    - Absolute: "2026-02-01", "2026-02-01T10:00:00Z", "Feb 1, 2026",
      "15 Mar 2026", "03/15/2026"

    Relative text is anchored on `now` (current UTC time by default).
    Returns None when the text cannot be parsed.
    """
    if not date_str:
        return None

    now = now or datetime.now(timezone.utc)
    text = clean_text(date_str).lower()
    if not text:
        return None

    if "just now" in text or "today" in text:
        return now
    if "yesterday" in text:
        return now - timedelta(days=1)

    m = _RELATIVE.search(text)
    if m:
        amount = int(m.group(1))
        unit = m.group(2).lower()
        if unit in ("hour", "hr"):
            return now - timedelta(hours=amount)
        if unit == "day":
            return now - timedelta(days=amount)
        if unit == "week":
            return now - timedelta(weeks=amount)
        # months approximated as 30 days
        return now - timedelta(days=amount * 30)

    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    try:
        parsed = datetime.fromisoformat(text.upper().replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Could not parse date: %r", date_str)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_apply_by(text: Optional[str]) -> Optional[datetime]:
    """Estimate a posting date from an "Apply By: 15 Mar 2026" deadline."""
    if not text:
        return None
    m = _APPLY_BY.search(clean_text(text))
    if not m:
        return None
    deadline = parse_posted_date(m.group(1).replace(",", ""))
    if deadline is None:
        return None
    return deadline - APPLY_BY_OFFSET


# ── Heuristics ─────────────────────────────────────────────────────────────


def detect_remote(*texts: Optional[str]) -> Optional[bool]:
    """Best-effort remote flag from location / title / description text.

    Returns None when there is no text to judge from.
    """
    present = [t for t in texts if t]
    if not present:
        return None
    haystack = " ".join(present).lower()
    return any(term in haystack for term in REMOTE_TERMS)


def infer_job_type(description: Optional[str]) -> Optional[str]:
    """Guess the employment type from free text."""
    if not description:
        return None
    lowered = description.lower()
    for term, label in JOB_TYPE_TERMS:
        if term in lowered:
            return label
    return None


# ── URLs ───────────────────────────────────────────────────────────────────


def absolute_url(href: Optional[str], base_url: str) -> str:
    """Resolve a possibly-relative link against the source's own domain."""
    if not href:
        return ""
    href = href.strip()
    if href.startswith(("http://", "https://")):
        return href
    parsed = urlparse(base_url)
    domain = f"{parsed.scheme}://{parsed.netloc}/"
    return urljoin(domain, href)


def strip_query(url: str) -> str:
    """Drop query string and fragment (tracking params on job links)."""
    if not url:
        return url
    parsed = urlparse(url)
    return urlunparse(parsed._replace(query="", fragment=""))


def is_valid_url(url: Optional[str]) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not url:
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
