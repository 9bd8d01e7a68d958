"""
Unified Run Configuration
=========================
Single source of truth for extraction defaults and runtime limits.

The CLI populates ``ExtractionConfig``; the Extraction Loop and the page
driver read from it.  Canonical defaults live in ``_DEFAULTS`` and may be
overridden by ``TWEETINGEST_*`` environment variables (a ``.env`` file is
loaded by ``__main__`` before defaults are resolved).
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: the only place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_records": 50,
    "timeout_seconds": 30,           # navigation + content-wait deadline
    "idle_ceiling_seconds": 10.0,    # no new record for this long ends the loop
    "slow_mode": False,              # disables every deadline (debugging)
    "headless": True,
    "user_agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "viewport_width": 1280,
    "viewport_height": 2000,
}

ENV_PREFIX = "TWEETINGEST_"


def _positive(value) -> bool:
    return math.isfinite(value) and value > 0


def _non_negative(value) -> bool:
    return math.isfinite(value) and value >= 0


# env var suffix -> (_DEFAULTS key, parser, accepted-range check)
_ENV_OVERRIDES = {
    "MAX_TWEETS": ("max_records", int, _positive),
    "TIMEOUT": ("timeout_seconds", float, _non_negative),
    "IDLE_CEILING": ("idle_ceiling_seconds", float, _positive),
    "HEADLESS": (
        "headless",
        lambda v: v.strip().lower() not in ("0", "false", "no", "off"),
        None,
    ),
}


def resolve_defaults(environ: Optional[Mapping[str, str]] = None) -> Dict:
    """Return ``_DEFAULTS`` with any ``TWEETINGEST_*`` overrides applied.

    A value that does not parse, or parses outside the range
    ``ExtractionConfig`` accepts, is logged and the default is kept.
    """
    environ = os.environ if environ is None else environ
    resolved = dict(_DEFAULTS)
    for suffix, (key, parse, check) in _ENV_OVERRIDES.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw is None or raw == "":
            continue
        try:
            value = parse(raw)
        except ValueError:
            value = None
        if value is None or (check is not None and not check(value)):
            logger.warning(
                f"Ignoring {ENV_PREFIX}{suffix}={raw!r} — "
                f"keeping default {resolved[key]!r}"
            )
            continue
        resolved[key] = value
    return resolved


@dataclass(frozen=True)
class ExtractionConfig:
    """
    Immutable description of one extraction run.

    Populate via:
      - ``ExtractionConfig("user")``                 → all defaults
      - ``ExtractionConfig("user", max_records=10)`` → override one value
      - ``ExtractionConfig.from_cli_args(ns, "user")`` → from argparse Namespace
    """

    subject: str
    max_records: int = _DEFAULTS["max_records"]
    timeout_seconds: float = _DEFAULTS["timeout_seconds"]
    idle_ceiling_seconds: float = _DEFAULTS["idle_ceiling_seconds"]
    slow_mode: bool = _DEFAULTS["slow_mode"]

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    user_agent: str = _DEFAULTS["user_agent"]
    viewport_width: int = _DEFAULTS["viewport_width"]
    viewport_height: int = _DEFAULTS["viewport_height"]

    def __post_init__(self):
        if not self.subject:
            raise ValueError("subject must be a non-empty string")
        if not _positive(self.max_records):
            raise ValueError(f"max_records must be positive, got {self.max_records}")
        if not _non_negative(self.timeout_seconds):
            raise ValueError(f"timeout_seconds must be >= 0, got {self.timeout_seconds}")
        if not _positive(self.idle_ceiling_seconds):
            raise ValueError(
                f"idle_ceiling_seconds must be positive, got {self.idle_ceiling_seconds}"
            )

    @property
    def timeout_ms(self) -> int:
        """Driver deadline in milliseconds; 0 means no deadline."""
        if self.slow_mode:
            return 0
        return int(self.timeout_seconds * 1000)

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args, subject: str,
                      defaults: Optional[Dict] = None) -> "ExtractionConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        defaults = defaults or resolve_defaults()
        debug = bool(getattr(args, "debug", False))
        timeout = getattr(args, "timeout", None)
        max_records = getattr(args, "max_tweets", None)
        return cls(
            subject=subject,
            max_records=defaults["max_records"] if max_records is None else max_records,
            timeout_seconds=defaults["timeout_seconds"] if timeout is None else timeout,
            idle_ceiling_seconds=defaults["idle_ceiling_seconds"],
            slow_mode=debug,
            # a human watches the page in debug sessions
            headless=defaults["headless"] and not debug,
            user_agent=defaults["user_agent"],
            viewport_width=defaults["viewport_width"],
            viewport_height=defaults["viewport_height"],
        )

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("EXTRACTION RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  Subject:          @{self.subject}")
        logger.info(f"  Max Records:      {self.max_records}")
        if self.slow_mode:
            logger.info("  Timeout:          disabled (slow mode)")
        elif self.timeout_seconds == 0:
            logger.info("  Timeout:          disabled (--timeout 0)")
        else:
            logger.info(f"  Timeout:          {self.timeout_seconds}s")
        logger.info(f"  Idle Ceiling:     {self.idle_ceiling_seconds}s")
        logger.info(f"  Headless:         {self.headless}")
        logger.info("=" * 60)
