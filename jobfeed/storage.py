"""Storage module for the job aggregation pipeline.

The pipeline talks to storage only through the `Repository` interface.
`JsonStore` implements it on top of four files in the data directory:

1. **Postings** (`postings.json`)
   - Every posting ever inserted, keyed by id, indexed by fingerprint and
     normalized URL. Postings are never deleted here.

2. **Keywords** (`keywords.json`)
   - Users' keyword interests. Owned by the user-facing side; the
     pipeline only reads them.

3. **Alerts** (`alerts.json`)
   - Alerts produced by the notification generator.

4. **Run log** (`run_log.jsonl`)
   - Append-only JSON Lines, one entry per source per aggregation run.

Changes to the first three are buffered in memory and written on
`commit()`. Each write uses the atomic pattern:
  1. Write to .tmp file
  2. fsync
  3. Rename to target (atomic on POSIX)

Before each write, a .bak backup is created. If the primary file is
corrupted, it's restored from .bak automatically.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import shutil
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional
from urllib.parse import urlparse, parse_qs, urlencode

from jobfeed.models import AlertRecord, JobPosting, KeywordInterest, SourceRunLog
from jobfeed.normalize import is_valid_url

logger = logging.getLogger(__name__)

# Tracking params to strip during URL normalization
_TRACKING_PARAMS = {"utm_source", "utm_medium", "utm_campaign", "utm_term",
                    "utm_content", "ref", "refid", "src", "trk", "trackingid"}

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"

POSTINGS_FILE = "postings.json"
KEYWORDS_FILE = "keywords.json"
ALERTS_FILE = "alerts.json"
RUN_LOG_FILE = "run_log.jsonl"


class StorageError(Exception):
    """The store could not read or write its data."""


class DuplicatePostingError(StorageError):
    """Another stored posting already owns this URL."""


class InvalidPostingError(StorageError):
    """The posting cannot be stored as-is (e.g. malformed URL)."""


# ── Repository interface ───────────────────────────────────────────────────


class Repository(ABC):
    """What the pipeline needs from persistent storage."""

    @abstractmethod
    def find_posting_by_fingerprint(self, fingerprint: str) -> Optional[JobPosting]:
        ...

    @abstractmethod
    def find_posting_by_url(self, url: str) -> Optional[JobPosting]:
        ...

    @abstractmethod
    def upsert_posting(self, posting: JobPosting) -> None:
        ...

    @abstractmethod
    def list_active_keyword_users(self) -> set[str]:
        ...

    @abstractmethod
    def list_keywords(self, user_id: str) -> list[str]:
        """The user's keyword texts, oldest first."""
        ...

    @abstractmethod
    def list_all_keyword_texts(self) -> list[str]:
        ...

    @abstractmethod
    def list_active_postings_since(self, since: datetime) -> list[JobPosting]:
        ...

    @abstractmethod
    def insert_alerts(self, alerts: Iterable[AlertRecord]) -> None:
        ...

    @abstractmethod
    def append_run_logs(self, logs: Iterable[SourceRunLog]) -> None:
        ...

    @abstractmethod
    def all_postings(self) -> list[JobPosting]:
        ...

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...

    @contextmanager
    def transaction(self) -> Iterator[Repository]:
        """Unit of work: commit on success, roll back on any error."""
        try:
            yield self
            self.commit()
        except Exception:
            self.rollback()
            raise


# ── JSON file store ────────────────────────────────────────────────────────


def init_store(data_dir: str | Path = DEFAULT_DATA_DIR) -> None:
    """Ensure data directory and files exist.

    Creates postings.json, keywords.json and alerts.json as empty arrays
    and an empty run_log.jsonl if missing. Safe to call multiple times.
    """
    d = Path(data_dir)
    d.mkdir(parents=True, exist_ok=True)

    for name in (POSTINGS_FILE, KEYWORDS_FILE, ALERTS_FILE):
        path = d / name
        if not path.exists():
            _atomic_write_json(path, [])
            logger.info("Created %s", path)

    log_path = d / RUN_LOG_FILE
    if not log_path.exists():
        log_path.touch()
        logger.info("Created %s", log_path)


def normalize_url(url: str) -> str:
    """Normalize a URL for uniqueness comparison.

    - Strip trailing slashes
    - Lowercase the hostname
    - Strip common tracking parameters (utm_*, ref, trk, etc.)
    """
    url = url.strip()
    parsed = urlparse(url)

    hostname = parsed.hostname or ""

    query_params = parse_qs(parsed.query, keep_blank_values=True)
    filtered_params = {
        k: v for k, v in query_params.items()
        if k.lower() not in _TRACKING_PARAMS
    }
    clean_query = urlencode(filtered_params, doseq=True) if filtered_params else ""

    path = parsed.path.rstrip("/") or ""

    scheme = parsed.scheme or "https"
    normalized = f"{scheme}://{hostname}{path}"
    if clean_query:
        normalized += f"?{clean_query}"

    return normalized


class JsonStore(Repository):
    """Repository backed by JSON files in `data_dir`."""

    def __init__(self, data_dir: str | Path = DEFAULT_DATA_DIR):
        self.data_dir = Path(data_dir)
        init_store(self.data_dir)
        self._load()

    # ── Postings ───────────────────────────────────────────────────────────

    def find_posting_by_fingerprint(self, fingerprint: str) -> Optional[JobPosting]:
        if not fingerprint:
            return None
        posting_id = self._by_fingerprint.get(fingerprint)
        return copy.copy(self._postings[posting_id]) if posting_id else None

    def find_posting_by_url(self, url: str) -> Optional[JobPosting]:
        if not url:
            return None
        posting_id = self._by_url.get(normalize_url(url))
        return copy.copy(self._postings[posting_id]) if posting_id else None

    def upsert_posting(self, posting: JobPosting) -> None:
        """Insert or replace a posting by id.

        Raises InvalidPostingError for a malformed URL and
        DuplicatePostingError if a different posting owns the URL.
        """
        if not is_valid_url(posting.url):
            raise InvalidPostingError(f"Invalid posting URL: {posting.url!r}")

        url_key = normalize_url(posting.url)
        owner = self._by_url.get(url_key)
        if owner is not None and owner != posting.id:
            raise DuplicatePostingError(f"URL already stored: {posting.url}")

        previous = self._postings.get(posting.id)
        if previous is not None:
            self._unindex(previous)

        stored = copy.copy(posting)
        self._postings[stored.id] = stored
        self._index(stored)
        self._dirty.add(POSTINGS_FILE)

    def all_postings(self) -> list[JobPosting]:
        return [copy.copy(p) for p in self._postings.values()]

    def list_active_postings_since(self, since: datetime) -> list[JobPosting]:
        matches = [
            copy.copy(p) for p in self._postings.values()
            if p.is_active and p.first_scraped_at >= since
        ]
        return sorted(matches, key=lambda p: p.first_scraped_at)

    # ── Keywords ───────────────────────────────────────────────────────────

    def add_keyword(self, user_id: str, text: str) -> KeywordInterest:
        """Subscribe a user to a keyword; returns the existing row if already present."""
        text = text.strip()
        for kw in self._keywords:
            if kw.user_id == user_id and kw.text.lower() == text.lower():
                return kw
        interest = KeywordInterest(user_id=user_id, text=text)
        self._keywords.append(interest)
        self._dirty.add(KEYWORDS_FILE)
        return interest

    def list_active_keyword_users(self) -> set[str]:
        return {kw.user_id for kw in self._keywords if kw.text.strip()}

    def list_keywords(self, user_id: str) -> list[str]:
        rows = sorted(
            (kw for kw in self._keywords if kw.user_id == user_id and kw.text.strip()),
            key=lambda kw: kw.created_at,
        )
        return _distinct(kw.text for kw in rows)

    def list_all_keyword_texts(self) -> list[str]:
        rows = sorted(self._keywords, key=lambda kw: kw.created_at)
        return _distinct(kw.text for kw in rows if kw.text.strip())

    # ── Alerts ─────────────────────────────────────────────────────────────

    def insert_alerts(self, alerts: Iterable[AlertRecord]) -> None:
        batch = list(alerts)
        if not batch:
            return
        self._alerts.extend(batch)
        self._dirty.add(ALERTS_FILE)

    def list_alerts(self, user_id: Optional[str] = None) -> list[AlertRecord]:
        return [a for a in self._alerts if user_id is None or a.user_id == user_id]

    def mark_alert_read(self, alert_id: str) -> bool:
        for alert in self._alerts:
            if alert.id == alert_id:
                alert.is_read = True
                self._dirty.add(ALERTS_FILE)
                return True
        return False

    # ── Run log ────────────────────────────────────────────────────────────

    def append_run_logs(self, logs: Iterable[SourceRunLog]) -> None:
        """Append run entries to run_log.jsonl immediately (not transactional)."""
        log_path = self.data_dir / RUN_LOG_FILE
        entries = list(logs)
        with open(log_path, "a", encoding="utf-8") as f:
            for entry in entries:
                f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
        logger.debug("Appended %d entries to run log", len(entries))

    # ── Unit of work ───────────────────────────────────────────────────────

    def commit(self) -> None:
        """Write every changed file. Raises StorageError on I/O failure."""
        payloads = {
            POSTINGS_FILE: lambda: [p.to_dict() for p in self._postings.values()],
            KEYWORDS_FILE: lambda: [k.to_dict() for k in self._keywords],
            ALERTS_FILE: lambda: [a.to_dict() for a in self._alerts],
        }
        for name in sorted(self._dirty):
            try:
                _backup_and_write(self.data_dir / name, payloads[name]())
            except (OSError, ValueError) as exc:
                raise StorageError(f"Failed to write {name}: {exc}") from exc
        if self._dirty:
            logger.debug("Committed %s", ", ".join(sorted(self._dirty)))
        self._dirty.clear()

    def rollback(self) -> None:
        """Discard uncommitted changes by reloading from disk."""
        if self._dirty:
            logger.warning("Rolling back uncommitted changes to %s", ", ".join(sorted(self._dirty)))
        self._load()

    # ── Internal ───────────────────────────────────────────────────────────

    def _load(self) -> None:
        raw_postings = _safe_read_json(self.data_dir / POSTINGS_FILE, default=[])
        raw_keywords = _safe_read_json(self.data_dir / KEYWORDS_FILE, default=[])
        raw_alerts = _safe_read_json(self.data_dir / ALERTS_FILE, default=[])

        self._postings: dict[str, JobPosting] = {}
        self._by_fingerprint: dict[str, str] = {}
        self._by_url: dict[str, str] = {}
        for raw in raw_postings:
            posting = JobPosting.from_dict(raw)
            self._postings[posting.id] = posting
            self._index(posting)

        self._keywords = [KeywordInterest.from_dict(k) for k in raw_keywords]
        self._alerts = [AlertRecord.from_dict(a) for a in raw_alerts]
        self._dirty: set[str] = set()

    def _index(self, posting: JobPosting) -> None:
        if posting.fingerprint:
            self._by_fingerprint.setdefault(posting.fingerprint, posting.id)
        if posting.url:
            self._by_url[normalize_url(posting.url)] = posting.id

    def _unindex(self, posting: JobPosting) -> None:
        if posting.fingerprint and self._by_fingerprint.get(posting.fingerprint) == posting.id:
            del self._by_fingerprint[posting.fingerprint]
        if posting.url:
            self._by_url.pop(normalize_url(posting.url), None)


def _distinct(texts: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for text in texts:
        key = text.strip().lower()
        if key not in seen:
            seen.add(key)
            result.append(text.strip())
    return result


# ── Internal Helpers ───────────────────────────────────────────────────────


def _safe_read_json(path: Path, default: Any = None) -> Any:
    """Read a JSON file, restoring from .bak if corrupted.

    If the primary file can't be parsed, tries .bak. If both fail,
    returns the default value and logs an error.
    """
    if not path.exists():
        return default if default is not None else {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (ValueError, OSError) as exc:
        logger.warning("Failed to read %s: %s, trying backup", path, exc)

    bak_path = path.with_suffix(path.suffix + ".bak")
    if bak_path.exists():
        try:
            with open(bak_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            logger.info("Restored %s from backup", path)
            _atomic_write_json(path, data)
            return data
        except (ValueError, OSError) as exc:
            logger.error("Backup %s also corrupted: %s", bak_path, exc)

    logger.error("Could not read %s or its backup, using default", path)
    return default if default is not None else {}


def _backup_and_write(path: Path, data: Any) -> None:
    """Create a .bak backup of the current file, then atomically write new data."""
    if path.exists():
        bak_path = path.with_suffix(path.suffix + ".bak")
        try:
            shutil.copy2(path, bak_path)
        except OSError as exc:
            logger.warning("Failed to create backup of %s: %s", path, exc)

    _atomic_write_json(path, data)


def _atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON data atomically using temp file + rename.

    1. Write to .tmp file in the same directory
    2. fsync the temp file
    3. Rename temp to target (atomic on POSIX)
    """
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        tmp_path.replace(path)
    except (OSError, ValueError) as exc:
        logger.error("Failed to write %s: %s", path, exc)
        if tmp_path.exists():
            tmp_path.unlink()
        raise
