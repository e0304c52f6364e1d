"""Aggregation orchestrator: runs every enabled scraper for a keyword set.

This is the extraction half of a cycle:
  1. Instantiate scrapers based on config
  2. Run each scraper (with error isolation)
  3. Record one SourceRunLog per source
  4. Concatenate the results (no cross-source dedup; the merge engine
     handles duplicates against the store)
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

from jobfeed.config import PipelineConfig
from jobfeed.models import JobPosting, RunStatus, SourceRunLog
from jobfeed.scrapers.base import BaseScraper
from jobfeed.scrapers.company_website import CompanyWebsiteScraper
from jobfeed.scrapers.internshala import InternshalaScraper
from jobfeed.scrapers.linkedin import LinkedInScraper
from jobfeed.scrapers.naukri import NaukriScraper

logger = logging.getLogger(__name__)

# Map source_type strings to classes
SCRAPER_REGISTRY: dict[str, type[BaseScraper]] = {
    "linkedin": LinkedInScraper,
    "naukri": NaukriScraper,
    "internshala": InternshalaScraper,
    "company_website": CompanyWebsiteScraper,
}


class Aggregator:
    """Fans a keyword search out to all configured sources."""

    def __init__(
        self,
        config: PipelineConfig,
        stop_event: Optional[threading.Event] = None,
        scrapers: Optional[list[BaseScraper]] = None,
    ):
        self.config = config
        self.stop_event = stop_event or threading.Event()
        self.run_logs: list[SourceRunLog] = []
        self.results_by_source: dict[str, list[JobPosting]] = {}
        if scrapers is not None:
            self.scrapers = list(scrapers)
        else:
            self.scrapers = []
            self._build_scrapers()

    def _build_scrapers(self) -> None:
        """Instantiate scrapers for each enabled source in config."""
        for source in self.config.enabled_sources:
            scraper_cls = SCRAPER_REGISTRY.get(source.source_type)
            if not scraper_cls:
                logger.warning(
                    "Unknown source type '%s' for source '%s', skipping",
                    source.source_type,
                    source.name,
                )
                continue

            try:
                scraper = scraper_cls(source, self.config, self.stop_event)
                self.scrapers.append(scraper)
                logger.info("Initialized scraper: %s (%s)", source.name, source.source_type)
            except Exception as exc:
                logger.error("Failed to initialize scraper '%s': %s", source.name, exc)

    def aggregate(
        self, keywords: Iterable[str], max_results_per_source: Optional[int] = None
    ) -> list[JobPosting]:
        """Search every scraper for `keywords` and return all postings found.

        Each scraper runs in isolation: if one raises, it is logged with
        its source name and contributes nothing, and the others continue.
        """
        keywords = list(keywords)
        limit = (
            max_results_per_source
            if max_results_per_source is not None
            else self.config.max_results_per_source
        )
        self.run_logs = []
        self.results_by_source = {}

        logger.info(
            "Starting aggregation with %d scrapers for %d keywords",
            len(self.scrapers), len(keywords),
        )

        workers = max(1, min(self.config.source_workers, len(self.scrapers)))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(self._run_scraper, scraper, keywords, limit)
                    for scraper in self.scrapers
                ]
                # Keep configuration order regardless of completion order
                outcomes = [future.result() for future in futures]
        else:
            outcomes = [self._run_scraper(s, keywords, limit) for s in self.scrapers]

        all_jobs: list[JobPosting] = []
        for jobs, run_log in outcomes:
            all_jobs.extend(jobs)
            self.run_logs.append(run_log)
            self.results_by_source[run_log.source] = jobs

        logger.info("Aggregation complete: %d postings from all sources", len(all_jobs))
        self._log_stats()
        return all_jobs

    def _run_scraper(
        self, scraper: BaseScraper, keywords: list[str], limit: int
    ) -> tuple[list[JobPosting], SourceRunLog]:
        run_log = SourceRunLog(source=scraper.name)
        if self.stop_event.is_set():
            run_log.finish(RunStatus.FAILED, message="cancelled")
            return [], run_log

        logger.info("Running scraper: %s", scraper.name)
        try:
            jobs = scraper.search_by_keywords(keywords, limit)
        except Exception as exc:
            logger.exception("  -> %s: FAILED", scraper.name)
            run_log.finish(RunStatus.FAILED, message=str(exc))
            return [], run_log

        logger.info("  -> %s: %d jobs found", scraper.name, len(jobs))
        run_log.finish(RunStatus.SUCCESS, found=len(jobs))
        return jobs, run_log

    def record_new(self, new_ids: Iterable[str]) -> None:
        """Fill in `postings_new` on the run logs once the merge has run."""
        new_ids = set(new_ids)
        for run_log in self.run_logs:
            jobs = self.results_by_source.get(run_log.source, [])
            run_log.postings_new = sum(1 for job in jobs if job.id in new_ids)

    def bind_stop_event(self, stop_event: threading.Event) -> None:
        """Share a new cancellation signal with every scraper."""
        self.stop_event = stop_event
        for scraper in self.scrapers:
            scraper.stop_event = stop_event

    def fetch_url(self, url: str) -> Optional[JobPosting]:
        """Fetch one posting through whichever scraper handles `url`."""
        for scraper in self.scrapers:
            if scraper.handles_url(url):
                return scraper.fetch_by_url(url)
        logger.warning("No configured source handles %s", url)
        return None

    def check_connections(self) -> dict[str, bool]:
        """Liveness of every configured source, keyed by source name."""
        return {scraper.name: scraper.test_connection() for scraper in self.scrapers}

    def _log_stats(self) -> None:
        """Print a summary of results per scraper."""
        logger.info("=== Aggregation Summary ===")
        for run_log in self.run_logs:
            logger.info(
                "  %s: %s, %d jobs", run_log.source, run_log.status.value, run_log.postings_found
            )
