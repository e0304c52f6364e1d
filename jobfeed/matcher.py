"""Matcher module for the job aggregation pipeline.

Implements keyword matching and the read-side queries over stored postings:
1. Keyword match: a posting matches a keyword set when any keyword is a
   case-insensitive substring of its title or description (OR semantics)
2. Personalized feed: a user's keywords applied to all active postings
3. Filtered search: active postings narrowed by search term, date,
   employer, job type, remote flag and location

None of this writes to the store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from jobfeed.models import JobPosting
from jobfeed.storage import Repository

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 100

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


# ── Keyword Matching ────────────────────────────────────────────────────────


def text_matches_any(text: Optional[str], keywords: Iterable[str]) -> bool:
    """Check if text contains any of the keywords (case-insensitive)."""
    if not text:
        return False

    text_lower = text.lower()
    return any(kw.strip().lower() in text_lower for kw in keywords if kw.strip())


def matches_keywords(posting: JobPosting, keywords: Iterable[str]) -> bool:
    """True when any keyword appears in the posting's title or description.

    An empty keyword set matches nothing.
    """
    keywords = [kw for kw in keywords if kw and kw.strip()]
    if not keywords:
        return False
    return text_matches_any(posting.title, keywords) or text_matches_any(
        posting.description, keywords
    )


# ── Queries ─────────────────────────────────────────────────────────────────


def newest_first(postings: Iterable[JobPosting]) -> list[JobPosting]:
    """Sort by posted date descending; undated postings fall back to scrape time."""
    return sorted(
        postings,
        key=lambda p: (p.posted_date or _OLDEST, p.first_scraped_at),
        reverse=True,
    )


def _active(store: Repository) -> list[JobPosting]:
    return [p for p in store.all_postings() if p.is_active]


def personalized_feed(
    store: Repository,
    user_id: str,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[JobPosting]:
    """Active postings matching any of the user's keywords, newest first.

    Args:
        store: Repository to read from
        user_id: User whose keywords drive the feed
        max_results: Maximum number of postings to return

    Returns:
        Matching postings; empty if the user has no keywords
    """
    keywords = store.list_keywords(user_id)
    if not keywords:
        logger.info("User %s has no keywords, feed is empty", user_id)
        return []

    matched = [p for p in _active(store) if matches_keywords(p, keywords)]
    logger.debug("Feed for %s: %d matches for %d keywords", user_id, len(matched), len(keywords))
    return newest_first(matched)[:max_results]


def filter_postings(
    store: Repository,
    search_term: Optional[str] = None,
    from_date: Optional[datetime] = None,
    company: Optional[str] = None,
    job_type: Optional[str] = None,
    is_remote: Optional[bool] = None,
    location: Optional[str] = None,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[JobPosting]:
    """Active postings narrowed by every criterion that is given.

    Text criteria are case-insensitive substring matches, except job_type
    which must match exactly (ignoring case). The search term is looked up
    in title, description and company. With `from_date`, postings that
    carry no posted date are excluded.

    Returns:
        Matching postings, newest first
    """
    results = []
    for posting in _active(store):
        if search_term and not (
            text_matches_any(posting.title, [search_term])
            or text_matches_any(posting.description, [search_term])
            or text_matches_any(posting.company, [search_term])
        ):
            continue
        if from_date and (posting.posted_date is None or posting.posted_date < from_date):
            continue
        if company and not text_matches_any(posting.company, [company]):
            continue
        if job_type and (posting.job_type or "").lower() != job_type.lower():
            continue
        if is_remote is not None and posting.is_remote != is_remote:
            continue
        if location and not text_matches_any(posting.location, [location]):
            continue
        results.append(posting)

    logger.debug("Filter matched %d postings", len(results))
    return newest_first(results)[:max_results]
