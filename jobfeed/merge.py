"""Merge freshly scraped postings into the store.

Each record is matched against the store by fingerprint first and URL
second. A miss inserts a new posting; a hit refreshes the mutable fields
of the stored posting and bumps `last_seen_at`, leaving its id,
`first_scraped_at` and fingerprint alone. Running the same batch twice
therefore inserts nothing the second time.

Everything is committed in one unit of work. A record the store rejects
(bad URL, URL owned by another posting) is logged and skipped without
affecting the rest of the batch.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, NamedTuple, Optional

from jobfeed.models import JobPosting
from jobfeed.storage import Repository, StorageError

logger = logging.getLogger(__name__)

# Fields a re-scrape is allowed to overwrite on a stored posting.
REFRESHED_FIELDS = ("title", "description", "location", "salary", "job_type", "is_remote")


class MergeResult(NamedTuple):
    inserted: int
    updated: int
    skipped: int
    new_ids: frozenset[str]


def find_existing(record: JobPosting, store: Repository) -> Optional[JobPosting]:
    existing = None
    if record.fingerprint:
        existing = store.find_posting_by_fingerprint(record.fingerprint)
    if existing is None and record.url:
        existing = store.find_posting_by_url(record.url)
    return existing


def refresh(existing: JobPosting, record: JobPosting, now: datetime) -> JobPosting:
    """Copy the re-scraped values onto the stored posting."""
    for attr in REFRESHED_FIELDS:
        setattr(existing, attr, getattr(record, attr))
    existing.last_seen_at = now
    existing.is_active = True
    return existing


def merge_and_persist(records: Iterable[JobPosting], store: Repository) -> MergeResult:
    """Upsert `records` into `store` and commit.

    Returns counts of inserted, updated and skipped records, plus the ids
    of inserted postings. Raises StorageError if the commit fails.
    """
    inserted = updated = skipped = 0
    new_ids: set[str] = set()
    now = datetime.now(timezone.utc)

    with store.transaction():
        for record in records:
            try:
                existing = find_existing(record, store)
                if existing is None:
                    record.first_scraped_at = now
                    record.last_seen_at = now
                    record.is_active = True
                    store.upsert_posting(record)
                    inserted += 1
                    new_ids.add(record.id)
                else:
                    store.upsert_posting(refresh(existing, record, now))
                    updated += 1
            except StorageError as exc:
                logger.warning("Skipping %r: %s", record, exc)
                skipped += 1
            except Exception:
                logger.exception("Unexpected error merging %r, skipping", record)
                skipped += 1

    logger.info(
        "Merge complete: %d inserted, %d updated, %d skipped",
        inserted, updated, skipped,
    )
    return MergeResult(inserted, updated, skipped, frozenset(new_ids))
