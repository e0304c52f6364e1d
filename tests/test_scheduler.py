"""Tests for the cycle scheduler."""

import json
import threading

import pytest

from jobfeed.config import PipelineConfig, SourceConfig
from jobfeed.discovery import Aggregator
from jobfeed.models import AlertKind, JobPosting
from jobfeed.scheduler import Scheduler, SchedulerState
from jobfeed.scrapers.base import BaseScraper
from jobfeed.storage import JsonStore


class CannedScraper(BaseScraper):
    """Returns the same postings on every search; optionally runs a hook first."""

    def __init__(self, jobs, before_return=None):
        super().__init__(SourceConfig(name="canned", source_type="canned"), PipelineConfig())
        self.jobs = jobs
        self.before_return = before_return
        self.searches = 0

    def search_by_keywords(self, keywords, max_results):
        self.searches += 1
        if self.before_return:
            self.before_return()
        return [self._copy(j) for j in self.jobs[:max_results]]

    @staticmethod
    def _copy(job):
        fresh = JobPosting(title=job.title, company=job.company, url=job.url, source=job.source)
        fresh.assign_fingerprint()
        return fresh

    def build_search_url(self, keyword):
        return ""

    def parse_search_results(self, html):
        return []

    def parse_detail_page(self, html, url):
        return None


def _job(n: int, title: str) -> JobPosting:
    return JobPosting(
        title=title, company="Acme", url=f"https://example.com/jobs/{n}", source="canned"
    )


@pytest.fixture
def store(tmp_path) -> JsonStore:
    s = JsonStore(tmp_path)
    with s.transaction():
        s.add_keyword("alice", "python")
    return s


def _scheduler(store, scraper, **kwargs) -> Scheduler:
    config = PipelineConfig()
    aggregator = Aggregator(config, scrapers=[scraper])
    return Scheduler(config, store, aggregator=aggregator, **kwargs)


def test_run_once_inserts_and_notifies(store, tmp_path):
    scraper = CannedScraper([_job(1, "Python Developer"), _job(2, "Java Developer")])
    scheduler = _scheduler(store, scraper)

    result = scheduler.run_once()

    assert result.inserted == 2
    assert result.alerts == 1
    [alert] = store.list_alerts("alice")
    assert alert.kind is AlertKind.SINGLE_MATCH
    assert scheduler.state is SchedulerState.IDLE

    [line] = (tmp_path / "run_log.jsonl").read_text().splitlines()
    entry = json.loads(line)
    assert entry["source"] == "canned"
    assert entry["postings_found"] == 2
    assert entry["postings_new"] == 2


def test_second_cycle_is_idempotent(store):
    scraper = CannedScraper([_job(1, "Python Developer")])
    scheduler = _scheduler(store, scraper)

    scheduler.run_once()
    result = scheduler.run_once()

    assert result.inserted == 0
    assert result.updated == 1
    assert result.alerts == 0
    assert len(store.list_alerts("alice")) == 1


def test_no_keywords_skips_aggregation(tmp_path):
    store = JsonStore(tmp_path)
    scraper = CannedScraper([_job(1, "Python Developer")])

    result = _scheduler(store, scraper).run_once()

    assert result.keywords == 0
    assert scraper.searches == 0


def test_cancelled_cycle_is_not_merged(store):
    stop = threading.Event()
    scraper = CannedScraper([_job(1, "Python Developer")], before_return=stop.set)
    scheduler = _scheduler(store, scraper, stop_event=stop)

    result = scheduler.run_once()

    assert result.cancelled
    assert store.all_postings() == []
    assert store.list_alerts() == []


def test_overlapping_cycle_refused(store):
    holder = {}

    def trigger_again():
        holder["nested"] = holder["scheduler"].run_once()
        holder["state"] = holder["scheduler"].state

    scraper = CannedScraper([_job(1, "Python Developer")], before_return=trigger_again)
    scheduler = _scheduler(store, scraper)
    holder["scheduler"] = scheduler

    result = scheduler.run_once()

    assert result.inserted == 1
    assert holder["nested"] is None
    assert holder["state"] is SchedulerState.RUNNING
    assert scraper.searches == 1


def test_run_forever_survives_failing_cycle(store, monkeypatch):
    stop = threading.Event()
    scraper = CannedScraper([_job(1, "Python Developer")])
    scheduler = _scheduler(store, scraper, interval_seconds=0)
    attempts = []

    def flaky_cycle():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("database unavailable")
        stop.set()

    monkeypatch.setattr(scheduler, "run_once", flaky_cycle)

    scheduler.run_forever(stop)

    assert len(attempts) == 2
    assert scheduler.stop_event is stop
    assert scraper.stop_event is stop


def test_run_forever_stops_while_sleeping(store):
    stop = threading.Event()
    scraper = CannedScraper([_job(1, "Python Developer")])
    scheduler = _scheduler(store, scraper, interval_seconds=3600)

    worker = threading.Thread(target=scheduler.run_forever, args=(stop,))
    worker.start()
    stop.set()
    worker.join(timeout=5)

    assert not worker.is_alive()


def test_run_log_failure_keeps_alerts(store, monkeypatch):
    scraper = CannedScraper([_job(1, "Python Developer")])
    scheduler = _scheduler(store, scraper)

    def failing_append(logs):
        raise UnicodeEncodeError("ascii", "Zeitüberschreitung", 4, 5, "ordinal not in range(128)")

    monkeypatch.setattr(store, "append_run_logs", failing_append)

    result = scheduler.run_once()

    assert result.inserted == 1
    assert result.alerts == 1
    assert len(store.list_alerts("alice")) == 1
    assert scheduler.state is SchedulerState.IDLE

    again = scheduler.run_once()
    assert again.inserted == 0
    assert len(store.list_alerts("alice")) == 1


def test_run_log_appended_when_notify_fails(store, monkeypatch, tmp_path):
    scraper = CannedScraper([_job(1, "Python Developer")])
    scheduler = _scheduler(store, scraper)

    def failing_notify(store, since):
        raise RuntimeError("alerts unavailable")

    monkeypatch.setattr("jobfeed.scheduler.notify", failing_notify)

    with pytest.raises(RuntimeError):
        scheduler.run_once()

    assert (tmp_path / "run_log.jsonl").read_text().strip()
    assert scheduler.state is SchedulerState.IDLE
