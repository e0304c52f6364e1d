"""Abstract base class for all job scrapers."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Iterable, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from jobfeed.config import SourceConfig, PipelineConfig
from jobfeed.models import JobPosting
from jobfeed.normalize import clean_text

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_COMPANY = "Unknown Company"


def split_budget(total: int, parts: int) -> int:
    """Share of `total` results for each of `parts` work units.

    Floors at one so a long keyword list never silently starves a source;
    the caller's overall cap still applies.
    """
    if total <= 0:
        return 0
    return max(1, total // max(1, parts))


def unique_terms(keywords: Iterable[str]) -> list[str]:
    """Strip blanks and case-insensitive duplicates, keeping first-seen order."""
    seen: set[str] = set()
    terms: list[str] = []
    for kw in keywords:
        term = (kw or "").strip()
        if term and term.lower() not in seen:
            seen.add(term.lower())
            terms.append(term)
    return terms


def select_text(root: Optional[Tag], selector: str, default: Optional[str] = None) -> Optional[str]:
    """Text of the first node matching `selector`, or `default` if missing/empty."""
    if root is None or not selector:
        return default
    node = root.select_one(selector)
    if node is None:
        return default
    return clean_text(node.get_text(" ", strip=True)) or default


def select_attr(root: Optional[Tag], selector: str, attr: str = "href") -> str:
    if root is None or not selector:
        return ""
    node = root.select_one(selector)
    if node is None:
        return ""
    value = node.get(attr, "")
    if isinstance(value, list):
        value = " ".join(value)
    return value.strip()


def select_html(root: Optional[Tag], selector: str) -> str:
    """Inner HTML of the first match; descriptions are stored as raw HTML."""
    if root is None or not selector:
        return ""
    node = root.select_one(selector)
    if node is None:
        return ""
    return node.decode_contents().strip()


class BaseScraper(ABC):
    """Base class that all source-specific scrapers extend.

    Provides the shared keyword loop, HTTP session handling, detail-page
    pacing and cancellation so subclasses only describe where a source's
    search page lives and how its HTML is laid out.
    """

    SOURCE_NAME = ""  # value stored in JobPosting.source
    BASE_URL = ""
    TITLE_SENTINEL = UNKNOWN_TITLE

    def __init__(
        self,
        source_config: SourceConfig,
        pipeline_config: PipelineConfig,
        stop_event: Optional[threading.Event] = None,
    ):
        self.source_config = source_config
        self.pipeline_config = pipeline_config
        self.base_url = (source_config.url or self.BASE_URL).rstrip("/")
        self.stop_event = stop_event or threading.Event()
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": pipeline_config.user_agent,
            "Accept": pipeline_config.accept,
            "Accept-Language": pipeline_config.accept_language,
        })

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.source_config.name

    def is_enabled(self) -> bool:
        return self.source_config.enabled

    @property
    def cancelled(self) -> bool:
        return self.stop_event.is_set()

    def search_by_keywords(self, keywords: Iterable[str], max_results: int) -> list[JobPosting]:
        """Search the source once per keyword and return up to `max_results` postings.

        The budget is split evenly across keywords. A failure on one
        keyword is logged and the next keyword still runs.
        """
        terms = unique_terms(keywords)
        if not terms or max_results <= 0:
            return []

        per_keyword = split_budget(max_results, len(terms))
        jobs: list[JobPosting] = []

        for keyword in terms:
            if self.cancelled:
                logger.info("[%s] Cancelled, skipping remaining keywords", self.name)
                break

            logger.info("[%s] Searching for keyword %r", self.name, keyword)
            limit = min(per_keyword, max_results - len(jobs))
            try:
                jobs.extend(self._search_keyword(keyword, limit))
            except requests.RequestException as exc:
                logger.warning("[%s] Network error for keyword %r: %s", self.name, keyword, exc)
            except Exception as exc:
                logger.error("[%s] Failed to scrape keyword %r: %s", self.name, keyword, exc)

            if len(jobs) >= max_results:
                break

        logger.info("[%s] Total: %d jobs scraped", self.name, len(jobs))
        return jobs[:max_results]

    def handles_url(self, url: str) -> bool:
        """True when `url` lives on this source's host."""
        host = (urlparse(url).hostname or "").lower()
        base_host = (urlparse(self.base_url).hostname or "").lower().removeprefix("www.")
        if not host or not base_host:
            return False
        return host == base_host or host.endswith("." + base_host)

    def fetch_by_url(self, url: str) -> Optional[JobPosting]:
        """Fetch and parse a single detail page; None if anything goes wrong."""
        return self._fetch_detail(url, self.parse_detail_page)

    def _fetch_detail(self, url: str, parse) -> Optional[JobPosting]:
        logger.debug("[%s] Fetching job details from %s", self.name, url)
        try:
            resp = self._get(url)
        except requests.RequestException as exc:
            logger.warning("[%s] Failed to fetch %s: %s", self.name, url, exc)
            return None

        if not resp.ok:
            logger.warning("[%s] Detail page %s returned HTTP %d", self.name, url, resp.status_code)
            return None

        try:
            job = parse(resp.text, url)
        except Exception as exc:
            logger.error("[%s] Failed to parse detail page %s: %s", self.name, url, exc)
            return None

        return self.normalize_job(job) if job else None

    def test_connection(self) -> bool:
        """Liveness probe against the source's base URL."""
        try:
            resp = self._get(self.base_url)
        except requests.RequestException as exc:
            logger.error("[%s] Connection test failed: %s", self.name, exc)
            return False
        return resp.ok

    # ------------------------------------------------------------------
    # Per-source hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def build_search_url(self, keyword: str) -> str:
        ...

    @abstractmethod
    def parse_search_results(self, html: str) -> list[JobPosting]:
        """Parse the summary cards on a search results page."""
        ...

    @abstractmethod
    def parse_detail_page(self, html: str, url: str) -> Optional[JobPosting]:
        ...

    # ------------------------------------------------------------------
    # Shared pipeline
    # ------------------------------------------------------------------

    def _search_keyword(self, keyword: str, limit: int) -> list[JobPosting]:
        url = self.build_search_url(keyword)
        resp = self._get(url)
        if not resp.ok:
            logger.warning(
                "[%s] Search for %r returned HTTP %d", self.name, keyword, resp.status_code
            )
            return []

        summaries = self.parse_search_results(resp.text)
        logger.debug("[%s] %d cards for keyword %r", self.name, len(summaries), keyword)
        return self._with_details(summaries[:limit], self.fetch_by_url)

    def _with_details(self, summaries: list[JobPosting], fetch) -> list[JobPosting]:
        """Upgrade each summary card with its detail page, pausing between fetches."""
        jobs: list[JobPosting] = []
        for summary in summaries:
            if self.cancelled:
                break
            if not summary.url:
                jobs.append(summary)
                continue

            detailed = fetch(summary.url)
            jobs.append(self.merge_detail(summary, detailed) if detailed else summary)
            self._pause()
        return jobs

    def merge_detail(self, summary: JobPosting, detail: JobPosting) -> JobPosting:
        """Prefer detail-page values, keeping summary values the detail page lacks."""
        if detail.title in (self.TITLE_SENTINEL, "") and summary.title:
            detail.title = summary.title
        if detail.company in (UNKNOWN_COMPANY, "") and summary.company:
            detail.company = summary.company
        for attr in ("location", "salary", "duration", "job_type", "posted_date"):
            if getattr(detail, attr) is None and getattr(summary, attr) is not None:
                setattr(detail, attr, getattr(summary, attr))
        if not detail.description and summary.description:
            detail.description = summary.description
        if detail.is_remote is None or (summary.is_remote and not detail.is_remote):
            detail.is_remote = summary.is_remote
        return self.normalize_job(detail)

    def normalize_job(self, job: JobPosting) -> JobPosting:
        if not job.source:
            job.source = self.SOURCE_NAME
        job.is_active = True
        job.assign_fingerprint()
        return job

    def _parse_cards(self, html: str, card_selector: str, parse_card) -> list[JobPosting]:
        """Run `parse_card` over every card; one broken card never drops the page."""
        soup = BeautifulSoup(html, "html.parser")
        cards = soup.select(card_selector)
        if not cards:
            logger.warning("[%s] No job cards found in search results", self.name)
            return []

        jobs: list[JobPosting] = []
        for card in cards:
            try:
                job = parse_card(card)
            except Exception as exc:
                logger.error("[%s] Error parsing job card: %s", self.name, exc)
                continue
            if job is not None:
                jobs.append(self.normalize_job(job))
        return jobs

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _get(self, url: str, **kwargs) -> requests.Response:
        """GET with the configured timeout. Non-2xx responses are returned, not raised."""
        kwargs.setdefault("timeout", self.pipeline_config.request_timeout_seconds)
        return self.session.get(url, **kwargs)

    def _pause(self) -> None:
        """Fixed delay after a detail fetch; returns early on cancellation."""
        delay = self.pipeline_config.request_delay_seconds
        if delay > 0:
            self.stop_event.wait(delay)
