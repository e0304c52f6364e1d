"""Naukri.com job scraper.

Search results live at naukri.com/jobs-{keyword} and are server-rendered:

  - Each result is an <article class="jobTuple ..."> with:
    - <a class="title" href="/job-listings-..."> title + link
    - <a class="companyName"> company
    - <span class="location">, <span class="jobType">
    - <span class="postedDate"> relative age ("3 Days Ago", "30+ Days Ago")
    - an optional "Remote" tag span
    - <div class="job-description"> snippet
  - Detail pages use h1.jd-header-title and div.job-description.
"""

from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import quote

from bs4 import BeautifulSoup
from bs4.element import Tag

from jobfeed.models import JobPosting
from jobfeed.normalize import absolute_url, detect_remote, parse_posted_date
from jobfeed.scrapers.base import (
    BaseScraper,
    UNKNOWN_COMPANY,
    UNKNOWN_TITLE,
    select_attr,
    select_html,
    select_text,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://www.naukri.com"

_REMOTE_TAG = re.compile(r"remote", re.IGNORECASE)


class NaukriScraper(BaseScraper):
    """Scrapes Naukri keyword search pages and job detail pages."""

    SOURCE_NAME = "Naukri"
    BASE_URL = BASE_URL

    def build_search_url(self, keyword: str) -> str:
        return f"{self.base_url}/jobs-{quote(keyword, safe='')}"

    def parse_search_results(self, html: str) -> list[JobPosting]:
        return self._parse_cards(html, "article[class*='jobTuple']", self._parse_card)

    def _parse_card(self, card: Tag) -> JobPosting:
        title = select_text(card, "a[class*='title']", UNKNOWN_TITLE)
        url = absolute_url(select_attr(card, "a[class*='title']", "href"), self.base_url)
        company = select_text(card, "a[class*='companyName']", UNKNOWN_COMPANY)
        location = select_text(card, "span[class*='location']")

        return JobPosting(
            title=title,
            company=company,
            url=url,
            source=self.SOURCE_NAME,
            location=location,
            description=select_text(card, "div[class*='job-description']", ""),
            job_type=select_text(card, "span[class*='jobType']"),
            is_remote=True if self._has_remote_tag(card) else detect_remote(location, title),
            posted_date=parse_posted_date(select_text(card, "span[class*='postedDate']")),
        )

    def parse_detail_page(self, html: str, url: str) -> Optional[JobPosting]:
        soup = BeautifulSoup(html, "html.parser")

        title = select_text(soup, "h1[class*='jd-header-title']", UNKNOWN_TITLE)
        location = select_text(soup, "span[class*='location']")
        description = select_html(soup, "div[class*='job-description']")

        return JobPosting(
            title=title,
            company=select_text(soup, "a[class*='company-name']", UNKNOWN_COMPANY),
            url=url,
            source=self.SOURCE_NAME,
            location=location,
            description=description,
            job_type=select_text(soup, "span[class*='jobType']"),
            is_remote=self._has_remote_tag(soup) or bool(detect_remote(location, title, description)),
            posted_date=parse_posted_date(select_text(soup, "span[class*='posted-date']")),
        )

    @staticmethod
    def _has_remote_tag(root: Tag) -> bool:
        return root.find("span", string=_REMOTE_TAG) is not None
