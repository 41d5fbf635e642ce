"""Command-line interface for the profile harvester."""

import argparse
import asyncio
import sys
from typing import List, Optional

from harvest.config import HarvestConfig, SearchInput
from harvest.constants import DEFAULT_MAX_CONCURRENCY, DEFAULT_MAX_PAGES, DEFAULT_RESULTS_WANTED
from harvest.exceptions import HarvestError, StoreUnavailableError
from harvest.logging_config import get_logger, setup_logging
from harvest.runner import HarvestRunner
from harvest.session_store import JsonFileStore

logger = get_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Harvest physician directory profiles into JSON Lines records"
    )

    search_group = parser.add_argument_group("search")
    search_group.add_argument(
        "--specialty",
        default="Cardiovascular Disease",
        help="Specialty to search for (default: Cardiovascular Disease)",
    )
    search_group.add_argument(
        "--location",
        default="New York, NY",
        help='Location as "City, ST", "City ST" or a state (default: New York, NY)',
    )
    search_group.add_argument(
        "--start-url",
        help="Start from this listing URL instead of building one from specialty/location",
    )
    search_group.add_argument(
        "--results",
        type=int,
        default=DEFAULT_RESULTS_WANTED,
        help=f"Maximum records to save (default: {DEFAULT_RESULTS_WANTED})",
    )
    search_group.add_argument(
        "--max-pages",
        type=int,
        default=DEFAULT_MAX_PAGES,
        help=f"Maximum listing pages to visit (default: {DEFAULT_MAX_PAGES})",
    )
    search_group.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_MAX_CONCURRENCY,
        help=f"Concurrent profile fetches, 1-10 (default: {DEFAULT_MAX_CONCURRENCY})",
    )
    search_group.add_argument(
        "--no-details",
        action="store_true",
        help="Save listing data only, without visiting profile pages",
    )

    network_group = parser.add_argument_group("network")
    network_group.add_argument(
        "--proxy",
        action="append",
        default=[],
        metavar="URL",
        help="Proxy URL; repeatable. A {session} placeholder in the username pins an exit IP per session",
    )
    network_group.add_argument(
        "--proxy-file",
        help="File with one proxy URL per line",
    )
    network_group.add_argument(
        "--bootstrap-budget",
        type=int,
        help="Maximum headless browser launches per run",
    )
    network_group.add_argument(
        "--rotation-policy",
        choices=["midpoint", "always"],
        help="Rotate the session once at the retry midpoint, or after every failed attempt",
    )
    network_group.add_argument(
        "--max-runtime",
        type=float,
        help="Wall-clock budget for the run in seconds",
    )

    run_group = parser.add_argument_group("run")
    run_group.add_argument(
        "--config",
        help="JSON configuration file",
    )
    run_group.add_argument(
        "--output-dir",
        help="Directory for run output",
    )
    run_group.add_argument(
        "--state-dir",
        help="Directory for persisted session state",
    )
    run_group.add_argument(
        "--reset-session",
        action="store_true",
        help="Discard the persisted session before starting",
    )
    run_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging verbosity (default: LOG_LEVEL from the environment, else INFO)",
    )
    run_group.add_argument(
        "--log-file",
        help="Write logs to file in addition to console",
    )

    return parser


def load_config(args: argparse.Namespace) -> HarvestConfig:
    """Resolve configuration: file or environment, then command-line overrides."""
    config = HarvestConfig.from_file(args.config) if args.config else HarvestConfig.from_env()

    if args.output_dir:
        config.output_dir = args.output_dir
    if args.state_dir:
        config.state_dir = args.state_dir
    if args.max_runtime is not None:
        config.max_runtime_seconds = args.max_runtime
    if args.bootstrap_budget is not None:
        config.bootstrap_budget = args.bootstrap_budget
    if args.rotation_policy:
        config.rotation_policy = args.rotation_policy
    if args.log_level:
        config.log_level = args.log_level
    return config


def search_from_args(args: argparse.Namespace) -> SearchInput:
    """Build the search input from parsed arguments."""
    return SearchInput(
        specialty=args.specialty,
        location=args.location,
        start_url=args.start_url,
        results_wanted=args.results,
        max_pages=args.max_pages,
        max_concurrency=args.concurrency,
        collect_details=not args.no_details,
        proxy_urls=list(args.proxy),
        proxy_file=args.proxy_file,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except (OSError, ValueError) as e:
        setup_logging(level=args.log_level or "INFO", log_file=args.log_file)
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FATAL

    setup_logging(level=config.log_level.upper(), log_file=args.log_file)

    try:
        search = search_from_args(args)
        store = JsonFileStore(config.state_dir)
        if args.reset_session:
            store.delete(config.state_key)
        runner = HarvestRunner(config, search, store=store)
    except StoreUnavailableError as e:
        logger.error(f"Cannot start: {e}")
        return EXIT_FATAL
    except (HarvestError, OSError, ValueError) as e:
        logger.error(f"Invalid setup: {e}")
        return EXIT_FATAL

    try:
        summary = asyncio.run(runner.run())
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_FAILURE
    except Exception as e:
        logger.exception(f"CRITICAL: {e}")
        return EXIT_FATAL

    return EXIT_SUCCESS if summary.success else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
