"""Internshala internship scraper.

Internshala lists internships at internshala.com/internships/{keyword}-internship.
Every listing is an internship, so job_type is fixed and the stipend is
stored as the compensation text.

HTML structure:
  - Each result is a <div class="... internship_meta ...">:
    - <a class="view_detail_button" href="/internship/detail/..."> title + link
    - <a class="link_display_like_text"> company
    - <div class="location_meta"> location ("Work From Home" for remote)
    - <span class="stipend"> stipend
    - <div class="apply_by"> "Apply By: 15 Mar 2026"
    - <div class="internship_other_details_container"> whose first
      div.item_body is the duration
  - Detail pages: div.profile_on_detail_page (title), div.company_name,
    div.location_name, div.internship_details, div.stipend_container.

Only the application deadline is published; the posting date is
estimated as 30 days before it.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from bs4 import BeautifulSoup
from bs4.element import Tag

from jobfeed.models import JobPosting
from jobfeed.normalize import absolute_url, detect_remote, parse_apply_by
from jobfeed.scrapers.base import (
    BaseScraper,
    UNKNOWN_COMPANY,
    select_attr,
    select_html,
    select_text,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://internshala.com"

UNKNOWN_INTERNSHIP = "Unknown Internship"
JOB_TYPE = "Internship"


class InternshalaScraper(BaseScraper):
    """Scrapes Internshala internship search and detail pages."""

    SOURCE_NAME = "Internshala"
    BASE_URL = BASE_URL
    TITLE_SENTINEL = UNKNOWN_INTERNSHIP

    def build_search_url(self, keyword: str) -> str:
        return f"{self.base_url}/internships/{quote(keyword, safe='')}-internship"

    def parse_search_results(self, html: str) -> list[JobPosting]:
        return self._parse_cards(html, "div[class*='internship_meta']", self._parse_card)

    def _parse_card(self, card: Tag) -> JobPosting:
        title = select_text(card, "a[class*='view_detail_button']", UNKNOWN_INTERNSHIP)
        url = absolute_url(select_attr(card, "a[class*='view_detail_button']", "href"), self.base_url)
        location = select_text(card, "div[class*='location_meta']")

        return JobPosting(
            title=title,
            company=select_text(card, "a[class*='link_display_like_text']", UNKNOWN_COMPANY),
            url=url,
            source=self.SOURCE_NAME,
            location=location,
            salary=select_text(card, "span[class*='stipend']"),
            duration=select_text(
                card,
                "div[class*='internship_other_details_container'] > div[class*='item_body']",
            ),
            job_type=JOB_TYPE,
            is_remote=detect_remote(location),
            posted_date=parse_apply_by(select_text(card, "div[class*='apply_by']")),
        )

    def parse_detail_page(self, html: str, url: str) -> Optional[JobPosting]:
        soup = BeautifulSoup(html, "html.parser")
        location = select_text(soup, "div[class*='location_name']")

        return JobPosting(
            title=select_text(soup, "div[class*='profile_on_detail_page']", UNKNOWN_INTERNSHIP),
            company=select_text(soup, "div[class*='company_name']", UNKNOWN_COMPANY),
            url=url,
            source=self.SOURCE_NAME,
            location=location,
            description=select_html(soup, "div[class*='internship_details']"),
            salary=select_text(soup, "div[class*='stipend_container']"),
            duration=select_text(soup, "div[class*='internship_details'] > div[class*='item_body']"),
            job_type=JOB_TYPE,
            is_remote=detect_remote(location),
            posted_date=parse_apply_by(select_text(soup, "div[class*='apply_by']")),
        )
