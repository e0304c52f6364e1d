"""Configuration loader for the job aggregation pipeline.

Reads config.yaml and returns typed configuration objects that the
scheduler, aggregator and individual scrapers consume.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


@dataclass
class SourceConfig:
    """Configuration for a single extraction source."""

    name: str
    source_type: str  # "linkedin", "naukri", "internshala", "company_website"
    enabled: bool = True
    url: str = ""  # overrides the scraper's default base URL
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineConfig:
    """Top-level pipeline configuration."""

    sources: list[SourceConfig] = field(default_factory=list)
    data_dir: str = "data"
    log_level: str = "INFO"
    request_delay_seconds: float = 1.0  # pause after every detail-page fetch
    request_timeout_seconds: float = 30.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    accept: str = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"
    accept_language: str = "en-US,en;q=0.5"

    max_results_per_source: int = 50
    scrape_interval_hours: float = 6.0
    source_workers: int = 1  # >1 runs sources in a thread pool

    @property
    def enabled_sources(self) -> list[SourceConfig]:
        return [s for s in self.sources if s.enabled]

    @property
    def scrape_interval_seconds(self) -> float:
        return self.scrape_interval_hours * 3600


def load_config(path: Path | str | None = None) -> PipelineConfig:
    """Load and validate the pipeline configuration from a YAML file."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning("Config file not found at %s, using defaults", config_path)
        return PipelineConfig()

    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not raw:
        return PipelineConfig()

    sources = []
    for src in raw.get("sources", []):
        sources.append(
            SourceConfig(
                name=src["name"],
                source_type=src["source_type"],
                enabled=src.get("enabled", True),
                url=src.get("url", ""),
                params=src.get("params", {}) or {},
            )
        )

    defaults = PipelineConfig()
    return PipelineConfig(
        sources=sources,
        data_dir=raw.get("data_dir", defaults.data_dir),
        log_level=raw.get("log_level", defaults.log_level),
        request_delay_seconds=raw.get("request_delay_seconds", defaults.request_delay_seconds),
        request_timeout_seconds=raw.get("request_timeout_seconds", defaults.request_timeout_seconds),
        user_agent=raw.get("user_agent", defaults.user_agent),
        accept=raw.get("accept", defaults.accept),
        accept_language=raw.get("accept_language", defaults.accept_language),
        max_results_per_source=raw.get("max_results_per_source", defaults.max_results_per_source),
        scrape_interval_hours=raw.get("scrape_interval_hours", defaults.scrape_interval_hours),
        source_workers=raw.get("source_workers", defaults.source_workers),
    )
