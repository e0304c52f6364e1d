"""LinkedIn public job search scraper.

The guest search page (linkedin.com/jobs/search?keywords=...) is served
as static HTML to anonymous clients:

  - Each result is an <li class="... job-search-card ..."> containing:
    - <h3 class="base-search-card__title"> title
    - <h4 class="base-search-card__subtitle"> company
    - <span class="job-search-card__location"> location
    - <a class="base-card__full-link" href="...?refId=..."> job link
    - <time datetime="2026-02-01"> posting date
  - Detail pages carry the full description in div.description__text
    and an "Employment type" label followed by its value.

Job links carry tracking query strings, which are stripped so the same
posting always maps to the same URL.
"""

from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import urlencode

from bs4 import BeautifulSoup
from bs4.element import Tag

from jobfeed.models import JobPosting
from jobfeed.normalize import (
    absolute_url,
    clean_text,
    detect_remote,
    parse_posted_date,
    strip_query,
)
from jobfeed.scrapers.base import (
    BaseScraper,
    UNKNOWN_COMPANY,
    UNKNOWN_TITLE,
    select_attr,
    select_html,
    select_text,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://www.linkedin.com/jobs"


class LinkedInScraper(BaseScraper):
    """Scrapes LinkedIn's anonymous job search and job detail pages."""

    SOURCE_NAME = "LinkedIn"
    BASE_URL = BASE_URL

    def build_search_url(self, keyword: str) -> str:
        params = {"keywords": keyword, "position": "1", "pageNum": "0"}
        return f"{self.base_url}/search?{urlencode(params)}"

    def parse_search_results(self, html: str) -> list[JobPosting]:
        return self._parse_cards(html, "li[class*='job-search-card']", self._parse_card)

    def _parse_card(self, card: Tag) -> JobPosting:
        title = select_text(card, "h3[class*='base-search-card__title']", UNKNOWN_TITLE)
        company = select_text(card, "h4[class*='base-search-card__subtitle']", UNKNOWN_COMPANY)
        location = select_text(card, "span[class*='job-search-card__location']")

        href = select_attr(card, "a[class*='base-card__full-link']", "href")
        url = strip_query(absolute_url(href, self.base_url))

        posted_date = None
        time_node = card.find("time")
        if time_node is not None:
            posted_date = parse_posted_date(time_node.get("datetime") or time_node.get_text())

        return JobPosting(
            title=title,
            company=company,
            url=url,
            source=self.SOURCE_NAME,
            location=location,
            is_remote=detect_remote(location, title),
            posted_date=posted_date,
        )

    def parse_detail_page(self, html: str, url: str) -> Optional[JobPosting]:
        soup = BeautifulSoup(html, "html.parser")

        title = select_text(soup, "h1[class*='job-title']", UNKNOWN_TITLE)
        company = select_text(soup, "a[class*='company-name']", UNKNOWN_COMPANY)
        location = select_text(soup, "span[class*='job-location']")
        description = select_html(soup, "div[class*='description__text']")

        return JobPosting(
            title=title,
            company=company,
            url=strip_query(url),
            source=self.SOURCE_NAME,
            location=location,
            description=description,
            job_type=self._employment_type(soup),
            is_remote=detect_remote(location, title, description),
            posted_date=parse_posted_date(select_text(soup, "span[class*='posted-date']")),
        )

    @staticmethod
    def _employment_type(soup: BeautifulSoup) -> Optional[str]:
        """Value of the span that follows the "Employment type" label."""
        label = soup.find("span", string=re.compile(r"Employment type", re.IGNORECASE))
        if label is None:
            return None
        value = label.find_next_sibling("span")
        if value is None:
            return None
        return clean_text(value.get_text()) or None
