"""
Site Profile
============
Everything markup-specific about the target site lives here: the item
marker, the in-page extractor script, login-wall and bot-wall markers, and
the URL template.  The Extraction Loop only ever sees a ``SiteProfile``.

Markup classification (bot wall vs. login wall) runs on the raw HTML from
``PageDriver.content()`` with BeautifulSoup, so it works even when the page
has stopped responding to live queries.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from .errors import FailureKind

logger = logging.getLogger(__name__)

# Best-available HTML parser for BeautifulSoup
try:
    import lxml  # noqa: F401
    _BS_PARSER = "lxml"
except ImportError:
    _BS_PARSER = "html.parser"


# ---------------------------------------------------------------------------
# X / Twitter markers
# ---------------------------------------------------------------------------

# Runs inside the page for every matched item; must return {content, observedAt}
_TWEET_EXTRACTOR_JS = """
(elements) => elements.map((el) => {
    const text = el.querySelector('div[data-testid="tweetText"]');
    const time = el.querySelector('time');
    return {
        content: text ? (text.textContent || '') : '',
        observedAt: time ? (time.getAttribute('datetime') || '') : '',
    };
})
"""

_PROFILE_HOSTS = ("twitter.com", "x.com", "mobile.twitter.com", "mobile.x.com")

# Handles are 1-15 word characters
_HANDLE_RE = re.compile(r"^[A-Za-z0-9_]{1,15}$")


@dataclass(frozen=True)
class SiteProfile:
    """Marker vocabulary for one site."""
    name: str
    url_template: str
    item_selector: str
    extractor_script: str
    login_selector: str
    login_close_selector: str
    bot_wall_phrases: Tuple[str, ...] = field(default_factory=tuple)
    document_title: str = "Records from {subject}"
    item_label: str = "Record"

    def profile_url(self, subject: str) -> str:
        return self.url_template.format(subject=subject)

    def title_for(self, subject: str) -> str:
        return self.document_title.format(subject=subject)


TWITTER = SiteProfile(
    name="twitter",
    url_template="https://x.com/{subject}",
    item_selector='article[data-testid="tweet"]',
    extractor_script=_TWEET_EXTRACTOR_JS,
    login_selector='[data-testid="sheetDialog"]',
    login_close_selector='[data-testid="app-bar-close"]',
    bot_wall_phrases=(
        "this browser is no longer supported",
        "please switch to a supported browser",
    ),
    document_title="Tweets from @{subject}",
    item_label="Tweet",
)


def normalize_subject(raw: Optional[str]) -> str:
    """Reduce ``user``, ``@user`` or a profile URL to a bare handle.

    Raises:
        ValueError: if nothing handle-shaped remains.
    """
    value = (raw or "").strip()
    if "/" in value or value.lower().startswith(("http:", "https:")):
        parsed = urlparse(value if "://" in value else "https://" + value)
        host = parsed.netloc.lower()
        if host.startswith("www."):
            host = host[4:]
        if host not in _PROFILE_HOSTS:
            raise ValueError(f"Not a Twitter/X profile URL: {raw!r}")
        value = parsed.path.strip("/").split("/", 1)[0]
    value = value.lstrip("@")
    if not _HANDLE_RE.match(value):
        raise ValueError(f"Invalid username: {raw!r}")
    return value


def classify_markup(html: str, profile: SiteProfile) -> FailureKind:
    """Decide why a page produced no records, from its raw markup.

    Checked in order: bot wall, login wall, otherwise timeout.
    """
    if not html:
        return FailureKind.TIMEOUT
    soup = BeautifulSoup(html, _BS_PARSER)
    text = soup.get_text(" ", strip=True).lower()
    for phrase in profile.bot_wall_phrases:
        if phrase in text:
            logger.debug(f"[CLASSIFY] Bot-wall phrase found: {phrase!r}")
            return FailureKind.BOT_WALL
    if soup.select_one(profile.login_selector) is not None:
        logger.debug(f"[CLASSIFY] Login marker present: {profile.login_selector}")
        return FailureKind.LOGIN_WALL
    return FailureKind.TIMEOUT
