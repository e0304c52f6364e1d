"""Data models for the job aggregation pipeline."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def make_fingerprint(url: str, title: str, company: str) -> str:
    """Stable identity for a scraped posting, used as the dedup key.

    The same (url, title, company) triple always hashes to the same value,
    so re-scraping an unchanged listing finds the stored copy.
    """
    raw = f"{url}|{title}|{company}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AlertKind(Enum):
    SINGLE_MATCH = "SingleMatch"
    SUMMARY_MATCH = "SummaryMatch"


class RunStatus(Enum):
    RUNNING = "Running"
    SUCCESS = "Success"
    FAILED = "Failed"


@dataclass
class JobPosting:
    """A single normalized job listing.

    `source` names the extractor that produced it, optionally with a
    sub-source, e.g. "LinkedIn" or "Company Website - Microsoft".
    """

    title: str
    company: str
    url: str
    source: str
    location: Optional[str] = None
    description: str = ""
    salary: Optional[str] = None  # compensation / stipend text
    duration: Optional[str] = None
    job_type: Optional[str] = None
    is_remote: Optional[bool] = None
    posted_date: Optional[datetime] = None
    fingerprint: Optional[str] = None
    is_active: bool = True
    first_scraped_at: datetime = field(default_factory=_utcnow)
    last_seen_at: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=_new_id)

    def assign_fingerprint(self) -> Optional[str]:
        """Set the fingerprint when url, title and company are all known."""
        if self.url and self.title and self.company:
            self.fingerprint = make_fingerprint(self.url, self.title, self.company)
        return self.fingerprint

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain, JSON-safe dictionary."""
        d = asdict(self)
        for key in ("posted_date", "first_scraped_at", "last_seen_at"):
            d[key] = _dt_to_str(d[key])
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobPosting:
        data = dict(data)
        for key in ("posted_date", "first_scraped_at", "last_seen_at"):
            if key in data:
                data[key] = _dt_from_str(data[key])
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})

    def __repr__(self) -> str:
        return (
            f"JobPosting(title={self.title!r}, company={self.company!r}, "
            f"source={self.source!r}, location={self.location!r})"
        )


@dataclass
class KeywordInterest:
    """A user's subscription to a search term."""

    user_id: str
    text: str
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "text": self.text,
            "created_at": _dt_to_str(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeywordInterest:
        return cls(
            user_id=data["user_id"],
            text=data["text"],
            created_at=_dt_from_str(data.get("created_at")) or _utcnow(),
        )


@dataclass
class AlertRecord:
    """An outbound notification produced by the notification generator."""

    user_id: str
    kind: AlertKind
    title: str
    message: str
    job_id: Optional[str] = None  # None for summary alerts
    is_read: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "job_id": self.job_id,
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "created_at": _dt_to_str(self.created_at),
            "is_read": self.is_read,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlertRecord:
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            job_id=data.get("job_id"),
            kind=AlertKind(data["kind"]),
            title=data.get("title", ""),
            message=data.get("message", ""),
            created_at=_dt_from_str(data.get("created_at")) or _utcnow(),
            is_read=data.get("is_read", False),
        )


@dataclass
class SourceRunLog:
    """One extraction attempt by one source, for observability."""

    source: str
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    postings_found: int = 0
    postings_new: int = 0
    message: Optional[str] = None

    def finish(self, status: RunStatus, found: int = 0, message: Optional[str] = None) -> None:
        self.status = status
        self.postings_found = found
        self.message = message
        self.ended_at = _utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "started_at": _dt_to_str(self.started_at),
            "ended_at": _dt_to_str(self.ended_at),
            "status": self.status.value,
            "postings_found": self.postings_found,
            "postings_new": self.postings_new,
            "message": self.message,
        }
