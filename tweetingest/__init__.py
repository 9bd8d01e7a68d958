"""
TweetIngest
Incremental extraction of posts from an infinite-scroll profile timeline
into a single markdown transcript.

CLI Usage:
    python -m tweetingest <username> [options]

    Options:
        -m, --max-tweets   Maximum number of tweets (default: 50)
        -t, --timeout      Page load timeout in seconds (default: 30)
        --debug            Visible browser, no timeouts, debug logging
        -p, --pipe         Print the document to stdout
        -n, --no-editor    Don't open the saved file in $EDITOR
        -y, --clipboard    Copy the document to the clipboard
        --install          Install the Playwright Chromium browser
"""

__version__ = '1.0.0'

from .errors import FailureKind, DriverError, DriverTimeout, ExtractionError
from .records import Record, RecordSet, Success, Failure, ExtractionOutcome, raise_for_outcome
from .run_config import ExtractionConfig
from .site_profile import SiteProfile, TWITTER, normalize_subject, classify_markup
from .driver import PageDriver, PlaywrightPageDriver, open_driver
from .extractor import RecordExtractor, scrape
from .document import build_markdown

__all__ = [
    'FailureKind',
    'DriverError',
    'DriverTimeout',
    'ExtractionError',
    'Record',
    'RecordSet',
    'Success',
    'Failure',
    'ExtractionOutcome',
    'raise_for_outcome',
    'ExtractionConfig',
    'SiteProfile',
    'TWITTER',
    'normalize_subject',
    'classify_markup',
    'PageDriver',
    'PlaywrightPageDriver',
    'open_driver',
    'RecordExtractor',
    'scrape',
    'build_markdown',
]
