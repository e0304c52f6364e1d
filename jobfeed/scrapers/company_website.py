"""Company career page scraper.

Unlike the job boards, this source covers several employers at once. Each
employer gets an entry in a small table holding its search URL and the
CSS selectors for its result cards, so adding a company is a config change
rather than a new class.

The built-in table covers Microsoft, Google and Amazon; a source's
`params.companies` list in config.yaml replaces it.

Search URLs are built as {career_url}?q={keyword}. Every employer is
searched for every keyword, and the sweep stops as soon as the overall
result cap is reached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Iterable, Optional
from urllib.parse import urlencode, urlparse

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from jobfeed.models import JobPosting
from jobfeed.normalize import (
    absolute_url,
    detect_remote,
    infer_job_type,
    parse_posted_date,
)
from jobfeed.scrapers.base import (
    BaseScraper,
    UNKNOWN_TITLE,
    select_attr,
    select_html,
    select_text,
    split_budget,
    unique_terms,
)

logger = logging.getLogger(__name__)


@dataclass
class CompanySite:
    """Where one employer's job search lives and how its cards are laid out."""

    name: str
    career_url: str
    card_selector: str
    title_selector: str
    location_selector: str
    url_selector: str
    url_attribute: str = "href"
    description_selector: str = ""
    date_selector: Optional[str] = None
    search_param: str = "q"

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CompanySite:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in raw.items() if k in known})

    @property
    def host(self) -> str:
        return (urlparse(self.career_url).hostname or "").lower()


DEFAULT_COMPANIES = [
    CompanySite(
        name="Microsoft",
        career_url="https://careers.microsoft.com/us/en/search-results",
        card_selector="div[class*='job-card']",
        title_selector="h3[class*='job-title']",
        location_selector="span[class*='job-location']",
        url_selector="a[class*='job-link']",
        description_selector="div[class*='job-description']",
        date_selector="span[class*='job-date']",
    ),
    CompanySite(
        name="Google",
        career_url="https://careers.google.com/jobs/results/",
        card_selector="li[class*='job-search-results__list-item']",
        title_selector="h2[class*='gc-card__title']",
        location_selector="span[class*='gc-job-tags__location']",
        url_selector="a[class*='gc-card__link']",
        description_selector="div[class*='gc-job-detail__description']",
        date_selector=None,  # Google does not show posting dates
    ),
    CompanySite(
        name="Amazon",
        career_url="https://www.amazon.jobs/en/search",
        card_selector="div[class*='job-tile']",
        title_selector="h3[class*='job-title']",
        location_selector="p[class*='location']",
        url_selector="a[class*='job-link']",
        description_selector="div[class*='job-description']",
        date_selector="span[class*='posting-date']",
    ),
]


class CompanyWebsiteScraper(BaseScraper):
    """Scrapes a configurable set of employer career pages."""

    SOURCE_NAME = "Company Website"

    def __init__(self, source_config, pipeline_config, stop_event=None):
        super().__init__(source_config, pipeline_config, stop_event)
        raw_companies = source_config.params.get("companies")
        if raw_companies:
            self.companies = [CompanySite.from_dict(c) for c in raw_companies]
        else:
            self.companies = list(DEFAULT_COMPANIES)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def search_by_keywords(self, keywords: Iterable[str], max_results: int) -> list[JobPosting]:
        """Search every employer for every keyword, up to `max_results` in total.

        The budget is split across (employer, keyword) pairs.
        """
        terms = unique_terms(keywords)
        if not terms or max_results <= 0 or not self.companies:
            return []

        per_search = split_budget(max_results, len(self.companies) * len(terms))
        jobs: list[JobPosting] = []

        for site in self.companies:
            if len(jobs) >= max_results or self.cancelled:
                break
            logger.info("[%s] Scraping jobs from %s career page", self.name, site.name)

            for keyword in terms:
                if self.cancelled:
                    logger.info("[%s] Cancelled, stopping company sweep", self.name)
                    break

                limit = min(per_search, max_results - len(jobs))
                try:
                    jobs.extend(self._search_site(site, keyword, limit))
                except requests.RequestException as exc:
                    logger.warning(
                        "[%s] Network error for %s / %r: %s", self.name, site.name, keyword, exc
                    )
                except Exception as exc:
                    logger.error(
                        "[%s] Failed to scrape %s for %r: %s", self.name, site.name, keyword, exc
                    )

                if len(jobs) >= max_results:
                    break

        logger.info("[%s] Total: %d jobs scraped", self.name, len(jobs))
        return jobs[:max_results]

    def fetch_by_url(self, url: str) -> Optional[JobPosting]:
        site = self.site_for_url(url)
        if site is None:
            logger.warning("[%s] No company configuration found for URL: %s", self.name, url)
            return None
        return self._fetch_detail(url, lambda html, u: self.parse_detail_page(html, u, site))

    def test_connection(self) -> bool:
        """True when at least one configured career page answers."""
        for site in self.companies:
            try:
                if self._get(site.career_url).ok:
                    return True
            except requests.RequestException as exc:
                logger.warning("[%s] %s unreachable: %s", self.name, site.name, exc)
        return False

    def handles_url(self, url: str) -> bool:
        return self.site_for_url(url) is not None

    def site_for_url(self, url: str) -> Optional[CompanySite]:
        """Match a job URL to its employer by host, then by name in the URL."""
        host = (urlparse(url).hostname or "").lower()
        for site in self.companies:
            if host and host == site.host:
                return site
        lowered = url.lower()
        for site in self.companies:
            if site.name.lower() in lowered:
                return site
        return None

    # ------------------------------------------------------------------
    # Per-employer parsing
    # ------------------------------------------------------------------

    def build_search_url(self, keyword: str, site: Optional[CompanySite] = None) -> str:
        site = site or self.companies[0]
        sep = "&" if "?" in site.career_url else "?"
        return f"{site.career_url}{sep}{urlencode({site.search_param: keyword})}"

    def parse_search_results(self, html: str, site: Optional[CompanySite] = None) -> list[JobPosting]:
        site = site or self.companies[0]
        return self._parse_cards(html, site.card_selector, lambda card: self._parse_card(card, site))

    def parse_detail_page(
        self, html: str, url: str, site: Optional[CompanySite] = None
    ) -> Optional[JobPosting]:
        site = site or self.site_for_url(url)
        if site is None:
            return None
        soup = BeautifulSoup(html, "html.parser")

        title = (
            select_text(soup, "h1")
            or select_text(soup, "h2[class*='job-title']")
            or select_text(soup, "h2")
            or UNKNOWN_TITLE
        )
        location = select_text(soup, "span[class*='location']") or select_text(
            soup, "div[class*='location']"
        )
        description = select_html(soup, site.description_selector)

        return JobPosting(
            title=title,
            company=site.name,
            url=url,
            source=self._source_tag(site),
            location=location,
            description=description,
            job_type=infer_job_type(description),
            is_remote=detect_remote(location, title, description),
        )

    def _search_site(self, site: CompanySite, keyword: str, limit: int) -> list[JobPosting]:
        resp = self._get(self.build_search_url(keyword, site))
        if not resp.ok:
            logger.warning(
                "[%s] %s search for %r returned HTTP %d",
                self.name, site.name, keyword, resp.status_code,
            )
            return []

        summaries = self.parse_search_results(resp.text, site)
        return self._with_details(
            summaries[:limit],
            lambda url: self._fetch_detail(url, lambda html, u: self.parse_detail_page(html, u, site)),
        )

    def _parse_card(self, card: Tag, site: CompanySite) -> JobPosting:
        location = select_text(card, site.location_selector)
        href = select_attr(card, site.url_selector, site.url_attribute)

        posted_date = None
        if site.date_selector:
            posted_date = parse_posted_date(select_text(card, site.date_selector))

        return JobPosting(
            title=select_text(card, site.title_selector, UNKNOWN_TITLE),
            company=site.name,
            url=absolute_url(href, site.career_url),
            source=self._source_tag(site),
            location=location,
            is_remote=detect_remote(location),
            posted_date=posted_date,
        )

    def _source_tag(self, site: CompanySite) -> str:
        return f"{self.SOURCE_NAME} - {site.name}"
