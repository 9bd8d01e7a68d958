"""
Tests for the extraction loop.

Covers:
  1. Convergence: dedup, discovery order, truncation, stopping rules
  2. Partial salvage after a timeout mid-run
  3. Failure classification (bot wall → login wall → timeout)
  4. Login-prompt dismissal and driver lifecycle in scrape()

The loop runs against an in-memory driver whose ``wait()`` advances a fake
clock, so idle-ceiling behaviour is deterministic.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest

from tweetingest.errors import DriverError, DriverTimeout, FailureKind
from tweetingest.extractor import (
    LOGIN_SETTLE_DELAY_S,
    MAX_RETRIES,
    RecordExtractor,
    scrape,
)
from tweetingest.records import Failure, Success
from tweetingest.run_config import ExtractionConfig
from tweetingest.site_profile import TWITTER


# ====================================================================
# Fakes
# ====================================================================

class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def rows(*texts):
    return [{"content": t, "observedAt": f"2024-01-0{i % 9 + 1}T00:00:00Z"}
            for i, t in enumerate(texts)]


class FakeDriver:
    """Serves one scripted batch of rows per read; the last batch repeats."""

    def __init__(self, cycles=(), *, html="", present=(), goto_error=None,
                 wait_error=None, read_errors=None, content_error=None):
        self.cycles = [list(c) for c in cycles]
        self.html = html
        self.present = set(present)
        self.goto_error = goto_error
        self.wait_error = wait_error
        self.read_errors = dict(read_errors or {})
        self.content_error = content_error
        self.clock = FakeClock()
        self.url = None
        self.timeouts = []
        self.clicks = []
        self.reads = 0
        self.scrolls = 0
        self.closed = False

    def set_default_timeout(self, timeout_ms):
        self.timeouts.append(timeout_ms)

    async def goto(self, url, timeout_ms, wait_until="networkidle"):
        self.url = url
        if self.goto_error:
            raise self.goto_error

    async def wait_for_selector(self, selector, timeout_ms, state="attached"):
        if self.wait_error:
            raise self.wait_error

    async def query(self, selector):
        return object() if selector in self.present else None

    async def click(self, selector, timeout_ms):
        self.clicks.append(selector)

    async def query_all_extract(self, selector, extractor_script):
        self.reads += 1
        if self.reads in self.read_errors:
            raise self.read_errors[self.reads]
        if not self.cycles:
            return []
        return self.cycles[min(self.reads - 1, len(self.cycles) - 1)]

    async def scroll_by(self, amount):
        self.scrolls += 1

    async def wait(self, seconds):
        self.clock.now += seconds

    async def content(self):
        if self.content_error:
            raise self.content_error
        return self.html

    async def close(self):
        self.closed = True


def run_extract(driver, config, progress=None, **kwargs):
    extractor = RecordExtractor(clock=driver.clock, **kwargs)
    return asyncio.run(extractor.extract(driver, config, progress))


def contents(outcome):
    return [r.content for r in outcome.records]


LOGIN_HTML = '<html><body><div data-testid="sheetDialog">Sign in to X</div></body></html>'
BOT_HTML = "<html><body><p>This browser is no longer supported.</p></body></html>"


# ====================================================================
# 1. Convergence
# ====================================================================

class TestConvergence:

    def test_stagnation_after_first_cycle_returns_all_found(self):
        """3 items, then the same 3 repeated with idle time past the ceiling."""
        driver = FakeDriver([rows("a", "b", "c")])
        cfg = ExtractionConfig("user", max_records=50, idle_ceiling_seconds=2.5)
        outcome = run_extract(driver, cfg)
        assert isinstance(outcome, Success)
        assert contents(outcome) == ["a", "b", "c"]
        assert outcome.salvaged is False
        assert driver.reads == 4

    def test_retries_exhaust_without_idle_ceiling(self):
        driver = FakeDriver([rows("a")])
        cfg = ExtractionConfig("user", idle_ceiling_seconds=1000)
        outcome = run_extract(driver, cfg)
        assert contents(outcome) == ["a"]
        assert driver.reads == 1 + MAX_RETRIES

    def test_idle_ceiling_stops_before_retries(self):
        driver = FakeDriver([rows("a")])
        cfg = ExtractionConfig("user", idle_ceiling_seconds=2.5)
        outcome = run_extract(driver, cfg, max_retries=10)
        assert contents(outcome) == ["a"]
        # idle is 3s on the 4th read (1s settle per cycle)
        assert driver.reads == 4

    def test_new_record_resets_retries(self):
        driver = FakeDriver([
            rows("a"), rows("a"), rows("a"), rows("a", "b"), rows("a", "b"),
        ])
        cfg = ExtractionConfig("user", idle_ceiling_seconds=1000)
        outcome = run_extract(driver, cfg)
        assert contents(outcome) == ["a", "b"]
        # 4 reads to find b, then MAX_RETRIES idle reads
        assert driver.reads == 4 + MAX_RETRIES

    def test_dedup_and_discovery_order(self):
        """Source re-renders in a different order; first discovery wins."""
        driver = FakeDriver([rows("b", "a"), rows("a", "c", "b"), rows("d", "c")])
        progress = []
        outcome = run_extract(driver, ExtractionConfig("user"), progress.append)
        assert contents(outcome) == ["b", "a", "c", "d"]
        assert progress == [1, 2, 3, 4]

    def test_single_burst_truncated_to_first_discovered(self):
        driver = FakeDriver([rows("a", "b", "c", "d", "e")])
        progress = []
        outcome = run_extract(driver, ExtractionConfig("user", max_records=1), progress.append)
        assert contents(outcome) == ["a"]
        assert outcome.discovered == 5
        assert outcome.truncated is True
        assert outcome.truncated_at == 1
        # over-the-limit discoveries are still reported before truncation
        assert progress == [1, 2, 3, 4, 5]
        assert driver.reads == 1
        assert driver.scrolls == 0

    def test_limit_reached_across_cycles(self):
        driver = FakeDriver([rows("a", "b"), rows("c", "d")])
        outcome = run_extract(driver, ExtractionConfig("user", max_records=3))
        assert contents(outcome) == ["a", "b", "c"]
        assert outcome.discovered == 4
        assert driver.reads == 2
        assert driver.scrolls == 1

    def test_blank_content_never_inserted(self):
        driver = FakeDriver([rows("", "   ", "\n\t", "  hello ")])
        progress = []
        outcome = run_extract(driver, ExtractionConfig("user"), progress.append)
        # content is kept verbatim, only blank items are dropped
        assert contents(outcome) == ["  hello "]
        assert progress == [1]

    def test_observed_at_carried_but_not_part_of_identity(self):
        driver = FakeDriver([
            [{"content": "a", "observedAt": "t1"}],
            [{"content": "a", "observedAt": "t2"}],
        ])
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert len(outcome.records) == 1
        assert outcome.records[0].observed_at == "t1"

    def test_nothing_found_is_empty_success(self):
        driver = FakeDriver([[]])
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert isinstance(outcome, Success)
        assert outcome.is_empty

    def test_scrolls_between_cycles_only(self):
        driver = FakeDriver([rows("a")])
        run_extract(driver, ExtractionConfig("user", idle_ceiling_seconds=1000))
        # no scroll after the final (retry-exhausting) read
        assert driver.scrolls == driver.reads - 1

    def test_navigates_to_profile_url(self):
        driver = FakeDriver([rows("a")])
        run_extract(driver, ExtractionConfig("someone"))
        assert driver.url == "https://x.com/someone"

    def test_timeouts_applied_from_config(self):
        driver = FakeDriver([rows("a")])
        run_extract(driver, ExtractionConfig("user", timeout_seconds=12))
        assert driver.timeouts == [12000]

    def test_slow_mode_disables_timeouts(self):
        driver = FakeDriver([rows("a")])
        run_extract(driver, ExtractionConfig("user", slow_mode=True))
        assert driver.timeouts == [0]

    def test_progress_callback_errors_do_not_abort(self):
        def explode(count):
            raise RuntimeError("ui gone")

        driver = FakeDriver([rows("a", "b")])
        outcome = run_extract(driver, ExtractionConfig("user"), explode)
        assert contents(outcome) == ["a", "b"]


# ====================================================================
# 2. Partial salvage
# ====================================================================

class TestSalvage:

    def test_timeout_mid_loop_keeps_records_and_final_read(self):
        driver = FakeDriver(
            [rows("a"), rows("a", "b"), rows("a", "b"), rows("a", "b", "c", "d")],
            read_errors={3: DriverTimeout("evaluate timed out")},
        )
        progress = []
        outcome = run_extract(driver, ExtractionConfig("user"), progress.append)
        assert isinstance(outcome, Success)
        assert outcome.salvaged is True
        assert contents(outcome) == ["a", "b", "c", "d"]
        assert progress == [1, 2, 3, 4]

    def test_salvage_read_failure_still_returns_records(self):
        driver = FakeDriver(
            [rows("a", "b")],
            read_errors={2: DriverTimeout("slow"), 3: DriverError("target closed")},
            html=LOGIN_HTML,
        )
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert isinstance(outcome, Success)
        assert contents(outcome) == ["a", "b"]

    def test_content_wait_timeout_salvages_rendered_items(self):
        driver = FakeDriver([rows("a", "b")], wait_error=DriverTimeout("no marker"))
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert isinstance(outcome, Success)
        assert outcome.salvaged is True
        assert contents(outcome) == ["a", "b"]
        assert driver.reads == 1

    def test_salvaged_records_still_truncated(self):
        driver = FakeDriver([rows("a", "b", "c")], wait_error=DriverTimeout("late"))
        outcome = run_extract(driver, ExtractionConfig("user", max_records=2))
        assert contents(outcome) == ["a", "b"]
        assert outcome.discovered == 3


# ====================================================================
# 3. Failure classification
# ====================================================================

class TestClassification:

    def test_navigation_timeout_is_timeout_without_reads(self):
        driver = FakeDriver([rows("a")], goto_error=DriverTimeout("goto"))
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert isinstance(outcome, Failure)
        assert outcome.kind is FailureKind.TIMEOUT
        assert outcome.partial_records == ()
        assert driver.reads == 0

    def test_navigation_error_is_driver_error(self):
        driver = FakeDriver(goto_error=DriverError("net::ERR_NAME_NOT_RESOLVED"))
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert outcome.kind is FailureKind.DRIVER_ERROR
        assert "ERR_NAME_NOT_RESOLVED" in outcome.message

    def test_login_wall_after_content_timeout(self):
        driver = FakeDriver(
            [[]],
            html=LOGIN_HTML,
            present={TWITTER.login_selector},
            wait_error=DriverTimeout("no tweets"),
        )
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert isinstance(outcome, Failure)
        assert outcome.kind is FailureKind.LOGIN_WALL
        assert outcome.partial_records == ()

    def test_bot_wall_checked_before_login_wall(self):
        html = BOT_HTML.replace("</body>", '<div data-testid="sheetDialog"></div></body>')
        driver = FakeDriver([[]], html=html, wait_error=DriverTimeout("no tweets"))
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert outcome.kind is FailureKind.BOT_WALL

    def test_no_markers_is_timeout(self):
        driver = FakeDriver(
            [[]], html="<html><body>Loading…</body></html>",
            wait_error=DriverTimeout("no tweets"),
        )
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert outcome.kind is FailureKind.TIMEOUT

    def test_unreadable_page_is_timeout(self):
        driver = FakeDriver(
            [[]], wait_error=DriverTimeout("no tweets"),
            content_error=DriverError("page crashed"),
        )
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert outcome.kind is FailureKind.TIMEOUT

    def test_non_timeout_driver_error_without_markers(self):
        driver = FakeDriver([[]], wait_error=DriverError("Target page has been closed"))
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert outcome.kind is FailureKind.DRIVER_ERROR
        assert outcome.detail == "Target page has been closed"

    def test_failure_raises_extraction_error_on_request(self):
        from tweetingest.errors import ExtractionError
        from tweetingest.records import raise_for_outcome

        driver = FakeDriver(goto_error=DriverTimeout("goto"))
        outcome = run_extract(driver, ExtractionConfig("user"))
        with pytest.raises(ExtractionError) as exc_info:
            raise_for_outcome(outcome)
        assert exc_info.value.kind is FailureKind.TIMEOUT
        assert "--timeout" in str(exc_info.value)


# ====================================================================
# 4. Login prompt and driver lifecycle
# ====================================================================

class TestLoginPromptAndLifecycle:

    def test_login_prompt_dismissed_once(self):
        driver = FakeDriver(
            [rows("a")],
            present={TWITTER.login_selector, TWITTER.login_close_selector},
        )
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert driver.clicks == [TWITTER.login_close_selector]
        assert contents(outcome) == ["a"]

    def test_login_prompt_without_close_control_is_not_fatal(self):
        driver = FakeDriver([rows("a")], present={TWITTER.login_selector})
        outcome = run_extract(driver, ExtractionConfig("user"))
        assert driver.clicks == []
        assert contents(outcome) == ["a"]

    def test_dismissal_waits_settle_delay(self):
        driver = FakeDriver(
            [],
            present={TWITTER.login_selector, TWITTER.login_close_selector},
            goto_error=None,
            wait_error=DriverTimeout("x"),
        )
        run_extract(driver, ExtractionConfig("user"))
        assert driver.clock.now == LOGIN_SETTLE_DELAY_S

    def test_scrape_closes_driver_on_success_and_failure(self):
        made = []

        def factory_for(driver):
            @asynccontextmanager
            async def factory(config):
                made.append(driver)
                try:
                    yield driver
                finally:
                    await driver.close()
            return factory

        ok_driver = FakeDriver([rows("a")])
        outcome = asyncio.run(scrape(
            ExtractionConfig("user", idle_ceiling_seconds=1000),
            driver_factory=factory_for(ok_driver),
        ))
        assert contents(outcome) == ["a"]
        assert ok_driver.closed

        bad_driver = FakeDriver(goto_error=DriverTimeout("goto"))
        outcome = asyncio.run(scrape(
            ExtractionConfig("user"), driver_factory=factory_for(bad_driver),
        ))
        assert outcome.kind is FailureKind.TIMEOUT
        assert bad_driver.closed
        assert made == [ok_driver, bad_driver]

    def test_scrape_launch_failure_is_driver_error(self):
        @asynccontextmanager
        async def broken(config):
            raise DriverError("Executable doesn't exist")
            yield  # pragma: no cover

        outcome = asyncio.run(scrape(ExtractionConfig("user"), driver_factory=broken))
        assert isinstance(outcome, Failure)
        assert outcome.kind is FailureKind.DRIVER_ERROR
        assert "Executable" in outcome.detail
