#!/usr/bin/env python3
"""
TweetIngest CLI
===============
Scrape a profile's recent posts from an infinite-scroll timeline into one
markdown transcript.

All run settings flow through ``ExtractionConfig``; defaults come from
``run_config._DEFAULTS`` with ``TWEETINGEST_*`` environment overrides
(``.env`` is loaded first).

Run with: python -m tweetingest [options] <username>
"""

import argparse
import asyncio
import logging
import math
import subprocess
import sys
from datetime import datetime

from dotenv import load_dotenv

from . import __version__
from .document import build_markdown
from .extractor import scrape
from .output import (
    RESULTS_SAVED_MARKER,
    copy_to_clipboard,
    open_in_editor,
    write_document,
)
from .run_config import ExtractionConfig, resolve_defaults
from .site_profile import normalize_subject

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt helpers
# ---------------------------------------------------------------------------

def prompt_username() -> str:
    """Ask until a non-empty answer is given.

    Raises KeyboardInterrupt / EOFError when the user cancels.
    """
    while True:
        response = input("Enter a Twitter username (without @): ").strip()
        if response:
            return response
        print("Please provide a username")


def run_install() -> int:
    """Download the Playwright Chromium build after confirmation."""
    try:
        confirm = input("Install the Playwright Chromium browser now? [Y/n]: ").strip().lower()
    except (KeyboardInterrupt, EOFError):
        confirm = "n"
    if confirm and confirm != 'y':
        print("Install aborted.", file=sys.stderr)
        return 1

    result = subprocess.run(
        [sys.executable, "-m", "playwright", "install", "chromium"],
        check=False,
    )
    if result.returncode != 0:
        print(f"Install failed (exit code {result.returncode}).", file=sys.stderr)
        return 1
    print("Chromium installed.", file=sys.stderr)
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {number}")
    return number


def _timeout_seconds(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {value!r}")
    if not math.isfinite(number):
        raise argparse.ArgumentTypeError(f"must be a finite number of seconds, got {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def build_parser(defaults: dict) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='tweetingest',
        usage='%(prog)s [options] <username>',
        description='Scrape recent tweets from a profile into a markdown file',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tweetingest --max-tweets 50 https://twitter.com/user
  tweetingest --debug --pipe @username
  tweetingest --clipboard username
        """
    )
    parser.add_argument('username', nargs='?',
                        help='Username, @handle or profile URL (prompted if omitted)')
    parser.add_argument('-m', '--max-tweets', type=_positive_int,
                        default=defaults["max_records"],
                        help=f'Maximum number of tweets to scrape (default: {defaults["max_records"]})')
    parser.add_argument('-t', '--timeout', type=_timeout_seconds,
                        default=defaults["timeout_seconds"],
                        help=f'Page load timeout in seconds; 0 disables it '
                             f'(default: {defaults["timeout_seconds"]})')
    parser.add_argument('--debug', action='store_true',
                        help='Debug logging, visible browser, no timeouts')
    parser.add_argument('--verbose', action='store_true',
                        help='Log progress details to stderr')
    parser.add_argument('-p', '--pipe', action='store_true',
                        help='Print final results to stdout')
    parser.add_argument('-n', '--no-editor', action='store_true',
                        help="Don't open results in an editor")
    parser.add_argument('-y', '--clipboard', action='store_true',
                        help='Copy final output to clipboard')
    parser.add_argument('--install', action='store_true',
                        help='Install the Playwright Chromium browser and exit')
    parser.add_argument('-v', '--version', action='version',
                        version=f'%(prog)s {__version__}')
    return parser


def _configure_logging(args) -> None:
    if args.debug:
        level = logging.DEBUG
    elif args.verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )


def _progress_printer(max_records: int):
    def progress_cb(count: int) -> None:
        shown = min(count, max_records)
        print(f"\r  Scraped {shown}/{max_records} tweets", end="", file=sys.stderr, flush=True)
    return progress_cb


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv=None) -> int:
    """Run the CLI; returns the process exit code."""
    load_dotenv()
    defaults = resolve_defaults()
    args = build_parser(defaults).parse_args(argv)
    _configure_logging(args)

    if args.install:
        return run_install()

    raw_subject = args.username
    if not raw_subject:
        try:
            raw_subject = prompt_username()
        except (KeyboardInterrupt, EOFError):
            print("\nOperation cancelled.", file=sys.stderr)
            return 0

    try:
        subject = normalize_subject(raw_subject)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    cfg = ExtractionConfig.from_cli_args(args, subject, defaults)
    cfg.log_summary()
    logger.debug(f"Flags: {vars(args)}")

    print("Scraping tweets...", file=sys.stderr)
    try:
        outcome = asyncio.run(scrape(cfg, on_progress=_progress_printer(cfg.max_records)))
    except Exception as exc:
        logger.debug("Unexpected extraction error", exc_info=True)
        print(f"\nFailed to scrape tweets: {exc}", file=sys.stderr)
        return 1

    if not outcome.ok:
        print(f"\nFailed to scrape tweets: {outcome.message}", file=sys.stderr)
        if outcome.kind.retryable:
            print("This may be temporary; running again can help.", file=sys.stderr)
        return 1

    print("\nTweets scraped successfully.", file=sys.stderr)
    if outcome.is_empty:
        logger.warning(f"No tweets found for @{subject}")
    elif outcome.salvaged:
        logger.warning(f"Page timed out — kept {len(outcome.records)} tweets found before the timeout")

    markdown = build_markdown(subject, outcome.records, datetime.now())
    path = write_document(markdown, subject)

    if args.clipboard:
        if copy_to_clipboard(markdown):
            print("Output copied to clipboard!", file=sys.stderr)
        else:
            print("Failed to copy to clipboard.", file=sys.stderr)

    if args.pipe:
        print(markdown)
    else:
        print(f"{RESULTS_SAVED_MARKER} {path}")
        if not args.no_editor and sys.stdout.isatty():
            open_in_editor(path)

    print("Done!", file=sys.stderr)
    return 0


if __name__ == '__main__':
    sys.exit(main())
