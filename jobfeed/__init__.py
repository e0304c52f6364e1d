"""Job aggregation pipeline: scrape postings, merge them into a store, alert users."""

__version__ = "0.1.0"
