"""Tests for the JSON file store."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from jobfeed.models import AlertKind, AlertRecord, JobPosting, RunStatus, SourceRunLog
from jobfeed.storage import (
    DuplicatePostingError,
    InvalidPostingError,
    JsonStore,
    StorageError,
    normalize_url,
)


def _posting(url: str = "https://example.com/jobs/1", title: str = "Engineer") -> JobPosting:
    job = JobPosting(title=title, company="Acme", url=url, source="LinkedIn")
    job.assign_fingerprint()
    return job


# ── Initialization ──────────────────────────────────────────────────────────


def test_init_creates_files(tmp_path):
    JsonStore(tmp_path / "data")

    for name in ("postings.json", "keywords.json", "alerts.json"):
        path = tmp_path / "data" / name
        assert path.exists()
        assert json.loads(path.read_text()) == []
    assert (tmp_path / "data" / "run_log.jsonl").exists()


# ── Postings ────────────────────────────────────────────────────────────────


def test_upsert_and_find(tmp_path):
    store = JsonStore(tmp_path)
    job = _posting()

    with store.transaction():
        store.upsert_posting(job)

    assert store.find_posting_by_fingerprint(job.fingerprint).id == job.id
    assert store.find_posting_by_url("https://EXAMPLE.com/jobs/1/").id == job.id
    assert store.find_posting_by_fingerprint("missing") is None
    assert store.find_posting_by_url("https://example.com/jobs/2") is None


def test_committed_postings_survive_reload(tmp_path):
    store = JsonStore(tmp_path)
    job = _posting()
    with store.transaction():
        store.upsert_posting(job)

    reloaded = JsonStore(tmp_path)
    found = reloaded.find_posting_by_fingerprint(job.fingerprint)
    assert found is not None
    assert found.first_scraped_at == job.first_scraped_at
    assert found.title == "Engineer"


def test_find_returns_a_copy(tmp_path):
    store = JsonStore(tmp_path)
    job = _posting()
    store.upsert_posting(job)

    found = store.find_posting_by_url(job.url)
    found.title = "Changed"

    assert store.find_posting_by_url(job.url).title == "Engineer"


def test_duplicate_url_rejected(tmp_path):
    store = JsonStore(tmp_path)
    store.upsert_posting(_posting(title="Engineer"))

    with pytest.raises(DuplicatePostingError):
        store.upsert_posting(_posting(title="Other Engineer"))


def test_invalid_url_rejected(tmp_path):
    store = JsonStore(tmp_path)
    with pytest.raises(InvalidPostingError):
        store.upsert_posting(_posting(url="/jobs/relative"))


def test_errors_share_base_class():
    assert issubclass(DuplicatePostingError, StorageError)
    assert issubclass(InvalidPostingError, StorageError)


def test_active_postings_since(tmp_path):
    store = JsonStore(tmp_path)
    now = datetime.now(timezone.utc)
    old = _posting("https://example.com/jobs/old")
    old.first_scraped_at = now - timedelta(days=2)
    new = _posting("https://example.com/jobs/new")
    new.first_scraped_at = now
    inactive = _posting("https://example.com/jobs/gone")
    inactive.is_active = False
    for job in (old, new, inactive):
        store.upsert_posting(job)

    since = store.list_active_postings_since(now - timedelta(hours=1))

    assert [p.id for p in since] == [new.id]


# ── Unit of work ────────────────────────────────────────────────────────────


def test_transaction_rolls_back_on_error(tmp_path):
    store = JsonStore(tmp_path)
    job = _posting()

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.upsert_posting(job)
            raise RuntimeError("boom")

    assert store.find_posting_by_url(job.url) is None
    assert json.loads((tmp_path / "postings.json").read_text()) == []


def test_commit_writes_backup(tmp_path):
    store = JsonStore(tmp_path)
    with store.transaction():
        store.upsert_posting(_posting("https://example.com/jobs/1"))
    with store.transaction():
        store.upsert_posting(_posting("https://example.com/jobs/2"))

    backup = json.loads((tmp_path / "postings.json.bak").read_text())
    assert len(backup) == 1
    assert len(json.loads((tmp_path / "postings.json").read_text())) == 2


def test_corrupt_file_restored_from_backup(tmp_path):
    store = JsonStore(tmp_path)
    with store.transaction():
        store.upsert_posting(_posting("https://example.com/jobs/1"))
    with store.transaction():
        store.upsert_posting(_posting("https://example.com/jobs/2"))

    (tmp_path / "postings.json").write_text("{not json")

    reloaded = JsonStore(tmp_path)
    assert len(reloaded.all_postings()) == 1
    assert json.loads((tmp_path / "postings.json").read_text())


def test_commit_failure_raises_storage_error(tmp_path, monkeypatch):
    store = JsonStore(tmp_path)
    store.upsert_posting(_posting())

    def fail(path, data):
        raise OSError("disk full")

    monkeypatch.setattr("jobfeed.storage._backup_and_write", fail)

    with pytest.raises(StorageError):
        store.commit()


def test_non_ascii_fields_survive_commit(tmp_path):
    store = JsonStore(tmp_path)
    job = _posting(title="Entwickler für Zeitreihen")
    job.salary = "₹ 10,000 /month"
    store.upsert_posting(job)
    store.commit()

    [reloaded] = JsonStore(tmp_path).all_postings()
    assert reloaded.salary == "₹ 10,000 /month"
    assert reloaded.title == "Entwickler für Zeitreihen"


def test_encode_error_during_write_raises_storage_error(tmp_path, monkeypatch):
    store = JsonStore(tmp_path)
    store.upsert_posting(_posting())

    def fail_dump(data, f, **kwargs):
        raise UnicodeEncodeError("ascii", "₹", 0, 1, "ordinal not in range(128)")

    monkeypatch.setattr("jobfeed.storage.json.dump", fail_dump)

    with pytest.raises(StorageError):
        store.commit()
    assert not (tmp_path / "postings.json.tmp").exists()


# ── Keywords ────────────────────────────────────────────────────────────────


def test_keywords_ordered_and_distinct(tmp_path):
    store = JsonStore(tmp_path)
    with store.transaction():
        store.add_keyword("alice", "python")
        store.add_keyword("alice", "Django")
        store.add_keyword("alice", "PYTHON")
        store.add_keyword("bob", "java")
        store.add_keyword("bob", "python")

    assert store.list_keywords("alice") == ["python", "Django"]
    assert store.list_keywords("carol") == []
    assert store.list_active_keyword_users() == {"alice", "bob"}
    assert store.list_all_keyword_texts() == ["python", "Django", "java"]


# ── Alerts ──────────────────────────────────────────────────────────────────


def test_alerts_roundtrip_and_mark_read(tmp_path):
    store = JsonStore(tmp_path)
    alert = AlertRecord(
        user_id="alice", kind=AlertKind.SINGLE_MATCH,
        title="New Job: Engineer", message="New job at Acme: Engineer", job_id="abc",
    )
    with store.transaction():
        store.insert_alerts([alert])

    reloaded = JsonStore(tmp_path)
    [stored] = reloaded.list_alerts("alice")
    assert stored.kind is AlertKind.SINGLE_MATCH
    assert stored.job_id == "abc"
    assert stored.is_read is False

    assert reloaded.mark_alert_read(alert.id)
    reloaded.commit()
    assert JsonStore(tmp_path).list_alerts("alice")[0].is_read is True
    assert not reloaded.mark_alert_read("missing")


# ── Run log ─────────────────────────────────────────────────────────────────


def test_run_log_appends_jsonl(tmp_path):
    store = JsonStore(tmp_path)
    entry = SourceRunLog(source="linkedin")
    entry.finish(RunStatus.SUCCESS, found=4)

    store.append_run_logs([entry])
    store.append_run_logs([SourceRunLog(source="naukri")])

    lines = (tmp_path / "run_log.jsonl").read_text().splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["source"] == "linkedin"
    assert first["status"] == "Success"
    assert first["postings_found"] == 4


# ── URL Normalization ───────────────────────────────────────────────────────


class TestNormalizeUrl:
    def test_strips_trailing_slash(self):
        assert normalize_url("https://example.com/jobs/1/") == "https://example.com/jobs/1"

    def test_lowercases_host(self):
        assert normalize_url("https://EXAMPLE.COM/Jobs") == "https://example.com/Jobs"

    def test_strips_tracking_params(self):
        url = "https://example.com/jobs?id=7&utm_source=mail&trk=abc"
        assert normalize_url(url) == "https://example.com/jobs?id=7"
