"""Entry point for the job aggregation pipeline.

Usage:
    jobfeed                                   # run cycles every 6h until stopped
    jobfeed --once                            # run a single cycle and exit
    jobfeed --config my.yaml                  # use custom config
    jobfeed --source linkedin --once          # run a single source
    jobfeed --dry-run                         # validate config without scraping
    jobfeed --check                           # probe every source
    jobfeed --fetch-url URL                   # scrape one posting and print it
    jobfeed --add-keyword alice python        # subscribe a user to a keyword
    jobfeed --feed alice                      # print a user's personalized feed
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path

from jobfeed.config import PipelineConfig, load_config
from jobfeed.discovery import Aggregator
from jobfeed.matcher import personalized_feed
from jobfeed.scheduler import Scheduler
from jobfeed.storage import JsonStore


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job Aggregation Pipeline: scrape postings from LinkedIn, "
        "Naukri, Internshala and company career pages, and alert users whose "
        "keywords match."
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Override data directory for postings, keywords and alerts (default: from config)",
    )
    parser.add_argument(
        "--source",
        type=str,
        default=None,
        help="Run only a specific source by name (e.g., 'linkedin', 'naukri')",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit instead of looping",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Load config and list sources without actually scraping",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Test connectivity to every enabled source and exit",
    )
    parser.add_argument(
        "--fetch-url",
        type=str,
        default=None,
        metavar="URL",
        help="Scrape a single job posting URL and print it as JSON",
    )
    parser.add_argument(
        "--add-keyword",
        nargs=2,
        default=None,
        metavar=("USER", "KEYWORD"),
        help="Subscribe USER to KEYWORD and exit",
    )
    parser.add_argument(
        "--feed",
        type=str,
        default=None,
        metavar="USER",
        help="Print USER's personalized feed and exit",
    )
    parser.add_argument(
        "--interval-hours",
        type=float,
        default=None,
        help="Override the time between cycles (default: from config)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug-level logging",
    )
    return parser.parse_args(argv)


def install_signal_handlers(stop_event: threading.Event) -> None:
    """SIGINT/SIGTERM request a graceful stop instead of killing the process."""
    logger = logging.getLogger(__name__)

    def _handle(signum, frame):
        logger.info("Received signal %d, stopping after current step", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def _dry_run(config: PipelineConfig) -> None:
    logger = logging.getLogger(__name__)
    logger.info("=== Dry Run ===")
    for src in config.sources:
        logger.info(
            "  [%s] %s (type=%s)",
            "ON" if src.enabled else "OFF",
            src.name,
            src.source_type,
        )
    logger.info(
        "Max %d results per source, cycle every %.1f hours",
        config.max_results_per_source,
        config.scrape_interval_hours,
    )
    logger.info("Dry run complete, no scraping performed.")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Load config
    config = load_config(args.config)
    log_level = "DEBUG" if args.verbose else config.log_level
    setup_logging(log_level)

    logger = logging.getLogger(__name__)
    logger.info("Loaded config with %d sources", len(config.sources))

    if args.interval_hours is not None:
        config.scrape_interval_hours = args.interval_hours

    # Filter to a single source if requested
    if args.source:
        config.sources = [
            s for s in config.sources
            if s.name.lower() == args.source.lower()
        ]
        if not config.sources:
            logger.error("No source found matching '%s'", args.source)
            return 1
        logger.info("Filtered to source: %s", args.source)

    # Dry run: just list what would run
    if args.dry_run:
        _dry_run(config)
        return 0

    data_dir = Path(args.data_dir or config.data_dir)
    store = JsonStore(data_dir)

    if args.add_keyword:
        user_id, text = args.add_keyword
        with store.transaction():
            store.add_keyword(user_id, text)
        logger.info("User %s subscribed to %r", user_id, text)
        return 0

    if args.feed:
        for posting in personalized_feed(store, args.feed):
            print(json.dumps(posting.to_dict(), ensure_ascii=False))
        return 0

    stop_event = threading.Event()
    aggregator = Aggregator(config, stop_event)

    if args.check:
        results = aggregator.check_connections()
        for name, ok in results.items():
            logger.info("  %s: %s", name, "OK" if ok else "UNREACHABLE")
        return 0 if results and all(results.values()) else 1

    if args.fetch_url:
        posting = aggregator.fetch_url(args.fetch_url)
        if posting is None:
            logger.error("Could not fetch a posting from %s", args.fetch_url)
            return 1
        print(json.dumps(posting.to_dict(), indent=2, ensure_ascii=False))
        return 0

    scheduler = Scheduler(config, store, aggregator=aggregator, stop_event=stop_event)
    install_signal_handlers(stop_event)

    if args.once:
        result = scheduler.run_once()
        logger.info("Done! %s", result)
        return 0

    scheduler.run_forever(stop_event)
    return 0


if __name__ == "__main__":
    sys.exit(main())
