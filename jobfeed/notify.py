"""Notification module for the job aggregation pipeline.

After a cycle inserts new postings, every user with keyword interests is
checked against the postings first scraped since the cycle began:

- no match: nothing is sent
- one match: a SingleMatch alert naming the role and employer, linked to
  the posting
- several matches: one SummaryMatch alert with the count and up to the
  user's first three keywords, so a busy cycle never floods a user

All alerts of a run are inserted as one batch and committed together.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from jobfeed.matcher import matches_keywords
from jobfeed.models import AlertKind, AlertRecord, JobPosting
from jobfeed.storage import Repository

logger = logging.getLogger(__name__)

SUMMARY_KEYWORD_LIMIT = 3


def _build_title(matches: list[JobPosting]) -> str:
    """Build alert title line."""
    count = len(matches)
    if count == 1:
        return f"New Job: {matches[0].title}"
    return f"New Jobs Found: {count} new matches"


def _build_message(matches: list[JobPosting], keywords: list[str]) -> str:
    """Build alert body."""
    count = len(matches)
    if count == 1:
        job = matches[0]
        return f"New job at {job.company}: {job.title}"
    shown = ", ".join(keywords[:SUMMARY_KEYWORD_LIMIT])
    return f"We found {count} new jobs matching your keywords: {shown}"


def build_alert(
    user_id: str, matches: list[JobPosting], keywords: list[str]
) -> Optional[AlertRecord]:
    """One alert for a user's matches, or None when there are none."""
    if not matches:
        return None

    if len(matches) == 1:
        return AlertRecord(
            user_id=user_id,
            kind=AlertKind.SINGLE_MATCH,
            title=_build_title(matches),
            message=_build_message(matches, keywords),
            job_id=matches[0].id,
        )

    return AlertRecord(
        user_id=user_id,
        kind=AlertKind.SUMMARY_MATCH,
        title=_build_title(matches),
        message=_build_message(matches, keywords),
    )


def generate_alerts(store: Repository, since: datetime) -> list[AlertRecord]:
    """Match every keyword-holding user against postings new since `since`.

    The candidate postings are loaded once and shared by all users.
    Nothing is written.
    """
    postings = store.list_active_postings_since(since)
    if not postings:
        logger.info("No new postings since %s, nothing to notify", since.isoformat())
        return []

    alerts: list[AlertRecord] = []
    for user_id in sorted(store.list_active_keyword_users()):
        keywords = store.list_keywords(user_id)
        matches = [p for p in postings if matches_keywords(p, keywords)]
        alert = build_alert(user_id, matches, keywords)
        if alert is not None:
            logger.debug("User %s: %d matches -> %s", user_id, len(matches), alert.kind.value)
            alerts.append(alert)

    return alerts


def notify(store: Repository, since: datetime) -> list[AlertRecord]:
    """Generate alerts for postings new since `since` and persist them.

    Returns:
        The alerts that were stored (possibly empty)
    """
    alerts = generate_alerts(store, since)
    if not alerts:
        return []

    with store.transaction():
        store.insert_alerts(alerts)

    logger.info("Stored %d alerts for %d users", len(alerts), len({a.user_id for a in alerts}))
    return alerts
