from .base import BaseScraper
from .linkedin import LinkedInScraper
from .naukri import NaukriScraper
from .internshala import InternshalaScraper
from .company_website import CompanyWebsiteScraper, CompanySite

__all__ = [
    "BaseScraper",
    "LinkedInScraper",
    "NaukriScraper",
    "InternshalaScraper",
    "CompanyWebsiteScraper",
    "CompanySite",
]
