"""Tests for the matcher module (keyword matching and feed queries).

Tests cover:
- Keyword predicate (OR semantics, case-insensitivity, empty sets)
- Personalized feed
- Filtered search
"""

from datetime import datetime, timedelta, timezone

import pytest

from jobfeed.matcher import (
    filter_postings,
    matches_keywords,
    newest_first,
    personalized_feed,
    text_matches_any,
)
from jobfeed.models import JobPosting
from jobfeed.storage import JsonStore


# ── Fixtures ────────────────────────────────────────────────────────────────


def _posting(n: int, title: str, company: str, **kwargs) -> JobPosting:
    job = JobPosting(
        title=title,
        company=company,
        url=f"https://example.com/job/{n}",
        source=kwargs.pop("source", "LinkedIn"),
        **kwargs,
    )
    job.assign_fingerprint()
    return job


@pytest.fixture
def sample_jobs() -> list[JobPosting]:
    """Create sample job postings for testing."""
    return [
        _posting(
            1, "Senior Python Engineer", "Acme",
            location="Bengaluru", description="Django and Postgres",
            job_type="Full-time", is_remote=False,
            posted_date=datetime(2026, 2, 1, tzinfo=timezone.utc),
        ),
        _posting(
            2, "Java Developer", "Initech",
            location="Pune", description="Spring Boot microservices",
            job_type="Full-time", is_remote=True,
            posted_date=datetime(2026, 2, 5, tzinfo=timezone.utc),
        ),
        _posting(
            3, "Data Analyst Intern", "Globex",
            location="Remote", description="SQL and some python scripting",
            job_type="Internship", is_remote=True,
            posted_date=datetime(2026, 1, 15, tzinfo=timezone.utc),
        ),
        _posting(
            4, "Store Manager", "Umbrella",
            location="Mumbai", description="Retail operations",
            is_active=False,
        ),
    ]


@pytest.fixture
def store(tmp_path, sample_jobs) -> JsonStore:
    s = JsonStore(tmp_path)
    with s.transaction():
        for job in sample_jobs:
            s.upsert_posting(job)
    return s


# ── Keyword Matching ────────────────────────────────────────────────────────


class TestKeywordMatching:
    """Test the keyword predicate."""

    def test_any_keyword_matches(self, sample_jobs):
        assert matches_keywords(sample_jobs[0], {"python", "java"})

    def test_no_keyword_matches(self, sample_jobs):
        assert not matches_keywords(sample_jobs[0], {"rust"})

    def test_case_insensitive(self, sample_jobs):
        assert matches_keywords(sample_jobs[1], ["JAVA"])

    def test_matches_description(self, sample_jobs):
        assert matches_keywords(sample_jobs[1], ["spring boot"])

    def test_empty_keywords_match_nothing(self, sample_jobs):
        assert not matches_keywords(sample_jobs[0], [])
        assert not matches_keywords(sample_jobs[0], ["", "   "])

    def test_text_matches_any_none_text(self):
        assert not text_matches_any(None, ["python"])


# ── Personalized Feed ───────────────────────────────────────────────────────


class TestPersonalizedFeed:
    def test_feed_matches_user_keywords_newest_first(self, store):
        with store.transaction():
            store.add_keyword("alice", "python")

        feed = personalized_feed(store, "alice")

        assert [j.title for j in feed] == ["Senior Python Engineer", "Data Analyst Intern"]

    def test_feed_excludes_inactive(self, store):
        with store.transaction():
            store.add_keyword("bob", "retail")

        assert personalized_feed(store, "bob") == []

    def test_feed_without_keywords_is_empty(self, store):
        assert personalized_feed(store, "nobody") == []

    def test_feed_max_results(self, store):
        with store.transaction():
            store.add_keyword("alice", "python")
            store.add_keyword("alice", "java")

        feed = personalized_feed(store, "alice", max_results=1)

        assert [j.title for j in feed] == ["Java Developer"]


# ── Filtered Search ─────────────────────────────────────────────────────────


class TestFilterPostings:
    def test_no_criteria_returns_all_active(self, store):
        results = filter_postings(store)
        assert len(results) == 3
        assert results[0].title == "Java Developer"

    def test_search_term_covers_company(self, store):
        results = filter_postings(store, search_term="globex")
        assert [j.title for j in results] == ["Data Analyst Intern"]

    def test_remote_and_job_type(self, store):
        results = filter_postings(store, is_remote=True, job_type="full-time")
        assert [j.title for j in results] == ["Java Developer"]

    def test_from_date(self, store):
        results = filter_postings(store, from_date=datetime(2026, 2, 1, tzinfo=timezone.utc))
        assert {j.title for j in results} == {"Senior Python Engineer", "Java Developer"}

    def test_location_and_company(self, store):
        assert [j.title for j in filter_postings(store, location="pune")] == ["Java Developer"]
        assert filter_postings(store, company="acme", location="pune") == []


def test_newest_first_puts_undated_last():
    dated = _posting(1, "A", "X", posted_date=datetime(2026, 1, 1, tzinfo=timezone.utc))
    undated = _posting(2, "B", "Y")
    undated.first_scraped_at = datetime.now(timezone.utc) + timedelta(days=1)

    assert newest_first([undated, dated]) == [dated, undated]
