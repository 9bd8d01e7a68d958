"""
Extraction Loop
===============
Drives a ``PageDriver`` through repeated read/scroll cycles on an
infinite-scroll page and returns one ``ExtractionOutcome``.

Flow per run:
  1. Apply the configured deadline to the driver (0 in slow mode)
  2. Navigate; a deadline here is a Timeout failure with nothing to salvage
  3. Best-effort login-prompt dismissal (never retried, never fatal)
  4. Wait for the first item marker to attach
  5. Converge: read → dedup → stagnation bookkeeping → scroll → settle
  6. Normal exit returns Success truncated to ``max_records``
  7. Any driver failure in 4-5 triggers one salvage read; salvaged records
     always win, otherwise the page markup is classified
     (bot wall → login wall → timeout)

Stopping rules for step 5 (whichever comes first):
  - ``max_records`` unique records discovered
  - ``MAX_RETRIES`` consecutive cycles without a new record
  - ``idle_ceiling_seconds`` elapsed since the last new record
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Iterable, Optional

from .driver import PageDriver, open_driver
from .errors import DriverError, DriverTimeout, FailureKind
from .records import ExtractionOutcome, Failure, Record, RecordSet, Success
from .run_config import ExtractionConfig
from .site_profile import SiteProfile, TWITTER, classify_markup

logger = logging.getLogger(__name__)

# Loop policy: fixed, not user-configurable
MAX_RETRIES = 3
SCROLL_AMOUNT_PX = 1000
SETTLE_DELAY_S = 1.0

# Login-prompt dismissal
LOGIN_CLICK_TIMEOUT_MS = 2000
LOGIN_SETTLE_DELAY_S = 1.0

ProgressCallback = Callable[[int], None]


class RecordExtractor:
    """
    Incremental extractor for one site profile.

    The extractor holds no per-run state; every ``extract`` call owns a
    fresh ``RecordSet``.
    """

    def __init__(
        self,
        profile: SiteProfile = TWITTER,
        *,
        max_retries: int = MAX_RETRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.profile = profile
        self.max_retries = max_retries
        self._clock = clock

    async def extract(
        self,
        driver: PageDriver,
        config: ExtractionConfig,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExtractionOutcome:
        """Run one extraction against an open, unused page."""
        records = RecordSet()
        url = self.profile.profile_url(config.subject)

        try:
            driver.set_default_timeout(config.timeout_ms)
            logger.info(f"[NAV] Loading {url}")
            await driver.goto(url, config.timeout_ms, wait_until="networkidle")
        except DriverTimeout as exc:
            logger.warning(f"[NAV] Timed out loading {url}")
            return Failure(FailureKind.TIMEOUT, detail=str(exc))
        except DriverError as exc:
            logger.warning(f"[NAV] Failed to load {url}: {exc}")
            return Failure(FailureKind.DRIVER_ERROR, detail=str(exc))

        await self._dismiss_login_wall(driver, config)

        try:
            await driver.wait_for_selector(
                self.profile.item_selector, config.timeout_ms, state="attached"
            )
            stop_reason = await self._converge(driver, config, records, on_progress)
        except DriverError as exc:
            return await self._salvage(driver, config, records, on_progress, exc)

        logger.info(
            f"[SCROLL] Finished ({stop_reason}) — "
            f"{len(records)} unique records, keeping {min(len(records), config.max_records)}"
        )
        return Success(
            records=records.first(config.max_records),
            truncated_at=config.max_records,
            discovered=len(records),
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _dismiss_login_wall(self, driver: PageDriver, config: ExtractionConfig) -> bool:
        """Click the login prompt's close control if both are present.

        Success is not verified; the page may or may not be usable after.
        """
        try:
            if await driver.query(self.profile.login_selector) is None:
                return False
            logger.info("[LOGIN-WALL] Login prompt detected — trying to dismiss")
            if await driver.query(self.profile.login_close_selector) is None:
                logger.info("[LOGIN-WALL] No close control found")
                return False
            click_timeout = 0 if config.slow_mode else LOGIN_CLICK_TIMEOUT_MS
            await driver.click(self.profile.login_close_selector, click_timeout)
            await driver.wait(LOGIN_SETTLE_DELAY_S)
            logger.debug("[LOGIN-WALL] Close control clicked")
            return True
        except DriverError as exc:
            logger.debug(f"[LOGIN-WALL] Dismissal failed: {exc}")
            return False

    async def _converge(
        self,
        driver: PageDriver,
        config: ExtractionConfig,
        records: RecordSet,
        on_progress: Optional[ProgressCallback],
    ) -> str:
        """Read/scroll until a stopping rule fires; return which one."""
        retries = 0
        last_new_at = self._clock()
        cycle = 0

        while len(records) < config.max_records and retries < self.max_retries:
            cycle += 1
            rows = await driver.query_all_extract(
                self.profile.item_selector, self.profile.extractor_script
            )
            added = self._absorb(rows, records, on_progress)

            if added:
                retries = 0
                last_new_at = self._clock()
                logger.debug(f"[SCROLL] Cycle {cycle}: +{added} new (total {len(records)})")
            else:
                retries += 1
                idle = self._clock() - last_new_at
                logger.debug(
                    f"[SCROLL] Cycle {cycle}: nothing new "
                    f"(retry {retries}/{self.max_retries}, idle {idle:.1f}s)"
                )
                if idle > config.idle_ceiling_seconds:
                    return "idle"

            if len(records) >= config.max_records or retries >= self.max_retries:
                break

            await driver.scroll_by(SCROLL_AMOUNT_PX)
            await driver.wait(SETTLE_DELAY_S)

        if len(records) >= config.max_records:
            return "limit"
        return "retries"

    async def _salvage(
        self,
        driver: PageDriver,
        config: ExtractionConfig,
        records: RecordSet,
        on_progress: Optional[ProgressCallback],
        exc: DriverError,
    ) -> ExtractionOutcome:
        """Keep whatever is rendered; classify only if nothing was found."""
        timed_out = isinstance(exc, DriverTimeout)
        logger.warning(
            f"[SALVAGE] {'Timeout' if timed_out else 'Driver error'} "
            f"with {len(records)} records so far: {exc}"
        )
        try:
            rows = await driver.query_all_extract(
                self.profile.item_selector, self.profile.extractor_script
            )
            self._absorb(rows, records, on_progress)
        except DriverError as read_exc:
            logger.debug(f"[SALVAGE] Final read failed: {read_exc}")

        if len(records):
            logger.info(f"[SALVAGE] Returning {len(records)} salvaged records")
            return Success(
                records=records.first(config.max_records),
                truncated_at=config.max_records,
                discovered=len(records),
                salvaged=True,
            )

        kind = await self._classify(driver)
        if kind is FailureKind.TIMEOUT and not timed_out:
            kind = FailureKind.DRIVER_ERROR
        logger.warning(f"[CLASSIFY] No records — {kind.value}")
        return Failure(kind, detail=str(exc))

    async def _classify(self, driver: PageDriver) -> FailureKind:
        try:
            html = await driver.content()
        except DriverError as exc:
            logger.debug(f"[CLASSIFY] Could not read page content: {exc}")
            return FailureKind.TIMEOUT
        return classify_markup(html, self.profile)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _absorb(
        self,
        rows: Iterable[Dict],
        records: RecordSet,
        on_progress: Optional[ProgressCallback],
    ) -> int:
        """Insert rows in order; report progress once per new record."""
        added = 0
        for raw in rows:
            if records.add(Record.from_raw(raw)):
                added += 1
                self._report(on_progress, len(records))
        return added

    @staticmethod
    def _report(on_progress: Optional[ProgressCallback], count: int) -> None:
        if on_progress is None:
            return
        try:
            on_progress(count)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")


async def scrape(
    config: ExtractionConfig,
    on_progress: Optional[ProgressCallback] = None,
    *,
    profile: SiteProfile = TWITTER,
    driver_factory=open_driver,
) -> ExtractionOutcome:
    """Open a browser, extract, and close the browser on every exit path.

    ``driver_factory(config)`` must return an async context manager yielding
    a ``PageDriver``.
    """
    extractor = RecordExtractor(profile)
    try:
        async with driver_factory(config) as driver:
            return await extractor.extract(driver, config, on_progress)
    except DriverError as exc:
        logger.error(f"Browser session failed: {exc}")
        return Failure(FailureKind.DRIVER_ERROR, detail=str(exc))
