"""
Traversal Engine
================
Walks a serialized document from its table of contents to the last unit,
writing every page to one output file as it goes.

States:
    Start → LocateFirst → (NavigateUnit ⇄ ExtractAndClassify ⇄ LocateNext)
          → Terminal{SUCCESS | EXHAUSTED | UNRECOVERABLE | CANCELLED}

Each phase returns an ``Outcome``; ``run()`` is the loop driver that
interprets it:
    - CONTINUE      → run the next phase
    - SKIP_TO_NEXT  → the page never loaded; go straight to next-link
                      resolution via the table-of-contents fallback
    - TERMINATE     → stop with a terminal state and a reason

FAILURE POLICY:
    - Navigation: ``max_retries`` attempts, backoff after each (10s/20s/40s),
      then an inline placeholder and the TOC fallback
    - Extraction: inline placeholder, traversal continues from the page
    - Per-unit deadline (``unit_timeout_seconds``): bounds navigation, script
      evaluation and link lookup; expiry writes a placeholder or skips the
      link lookup, then the TOC fallback is used
    - Harvest: total unit count becomes unknown (-1)
    - No first unit / sink not creatable: UNRECOVERABLE
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Set

from . import scripts
from .browser import PageDriver
from .errors import (
    BrowserError,
    ExtractionError,
    HarvestError,
    LocatorExhausted,
    SinkCreationError,
)
from .extractor import ContentExtractor
from .locator import LocatedLink, NextLinkLocator, TocEntry, is_page_continuation
from .monitor import ProgressTracker
from .pacing import Pacer
from .run_config import CrawlerRunConfig
from .sink import OutputSink
from .titles import normalize_title, unit_number

logger = logging.getLogger(__name__)

NAVIGATION_FAILED = "无法访问章节"
EXTRACTION_FAILED = "获取章节内容失败"
UNIT_TIMED_OUT = "章节处理超时"


class TerminalState(Enum):
    SUCCESS = "success"              # cycle detected or every TOC unit retrieved
    EXHAUSTED = "exhausted"          # no next link and no TOC fallback left
    UNRECOVERABLE = "unrecoverable"  # no first unit, TOC unreachable, or no sink
    CANCELLED = "cancelled"          # stop() or KeyboardInterrupt


class Transition(Enum):
    NEW_UNIT = "new_unit"
    SAME_UNIT_PAGE = "same_unit_page"


class OutcomeKind(Enum):
    CONTINUE = "continue"
    SKIP_TO_NEXT = "skip_to_next"
    TERMINATE = "terminate"


@dataclass(frozen=True)
class Outcome:
    """Result of one engine phase."""
    kind: OutcomeKind
    terminal: Optional[TerminalState] = None
    reason: str = ""

    @classmethod
    def proceed(cls) -> "Outcome":
        return cls(OutcomeKind.CONTINUE)

    @classmethod
    def skip(cls) -> "Outcome":
        return cls(OutcomeKind.SKIP_TO_NEXT)

    @classmethod
    def terminate(cls, terminal: TerminalState, reason: str) -> "Outcome":
        return cls(OutcomeKind.TERMINATE, terminal, reason)


CONTINUE = Outcome.proceed()
SKIP_TO_NEXT = Outcome.skip()


@dataclass
class TraversalState:
    """Mutable state of one run, owned by the engine."""
    current_url: str
    unit_index: int = 0
    page_index: int = 0
    base_title: Optional[str] = None
    visited: Set[str] = field(default_factory=set)
    total_units: int = -1
    toc: List[TocEntry] = field(default_factory=list)
    # Link that led to current_url signalled another page of the same unit
    next_is_page: bool = False


@dataclass
class TraversalResult:
    """Outcome of ``TraversalEngine.run``."""
    terminal: TerminalState
    reason: str
    output_path: Optional[Path] = None
    stats: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.terminal in (TerminalState.SUCCESS, TerminalState.EXHAUSTED)


def classify(state: TraversalState, normalized_title: str) -> Transition:
    """
    Same unit when the normalized title equals the running base title, or
    when the incoming link was a "next page" link and the two titles do not
    carry different unit numbers.  The first page of a run is always a new
    unit.
    """
    if state.base_title is None:
        return Transition.NEW_UNIT
    if normalized_title == state.base_title:
        return Transition.SAME_UNIT_PAGE
    if state.next_is_page:
        current, base = unit_number(normalized_title), unit_number(state.base_title)
        if current is None or base is None or current == base:
            return Transition.SAME_UNIT_PAGE
    return Transition.NEW_UNIT


def progression(state: TraversalState, heading: Transition) -> Transition:
    """
    How the unit/page counters move for a loaded page.

    The link that led here decides: a hop without a "next page" signal is
    always a new unit, whatever the titles say.  A "next page" hop stays in
    the unit unless ``heading`` (the title classification) shows a different
    unit number.  ``heading`` alone decides whether the title is written.
    """
    if state.base_title is None or not state.next_is_page:
        return Transition.NEW_UNIT
    return heading


def advance(state: TraversalState, transition: Transition, normalized_title: Optional[str]) -> None:
    """Apply a classification to the unit/page counters."""
    if transition is Transition.SAME_UNIT_PAGE:
        state.page_index += 1
    else:
        state.unit_index += 1
        state.page_index = 1
        state.base_title = normalized_title


class _StopRequested(Exception):
    pass


class TraversalEngine:
    """
    Sequential, single-threaded traversal over one ``PageDriver``.

    The driver is borrowed, not owned: the caller opens and closes it.
    ``stop()`` may be called from another thread.
    """

    def __init__(
        self,
        driver: PageDriver,
        config: Optional[CrawlerRunConfig] = None,
        pacer: Optional[Pacer] = None,
        extractor: Optional[ContentExtractor] = None,
        locator: Optional[NextLinkLocator] = None,
        sleeper: Optional[Callable[[float], object]] = None,
    ):
        self.driver = driver
        self.config = config or CrawlerRunConfig()
        self.pacer = pacer or Pacer(self.config)
        self.extractor = extractor or ContentExtractor(
            min_length=self.config.min_content_length,
            trailing_scan_lines=self.config.trailing_scan_lines,
        )
        self.locator = locator or NextLinkLocator()
        self.tracker = ProgressTracker()

        self._stop_event = threading.Event()
        self._sleep = sleeper or self._stop_event.wait
        self._sink: Optional[OutputSink] = None
        self.state: Optional[TraversalState] = None

    def stop(self) -> None:
        """
        Request a graceful stop; pending waits return immediately.

        A navigation or script already running in the browser is not cut
        short from another thread: the run stops once that call returns,
        which the per-unit deadline bounds.  ``KeyboardInterrupt`` on the run
        thread interrupts the active call directly.
        """
        logger.info("Stop requested")
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    # ------------------------------------------------------------------ #
    #  Loop driver                                                         #
    # ------------------------------------------------------------------ #

    def run(self, toc_url: str) -> TraversalResult:
        """
        Traverse the document whose table of contents is at ``toc_url``.

        Everything written before termination stays on disk, whatever the
        terminal state.
        """
        self.state = TraversalState(current_url=toc_url)
        self.tracker.start()

        logger.info("=" * 60)
        logger.info("TRAVERSAL STARTED")
        logger.info(f"Table of contents: {toc_url}")
        logger.info("=" * 60)

        try:
            outcome = self._start(self.state)
            while outcome.kind is not OutcomeKind.TERMINATE:
                outcome = self._run_iteration(self.state)
        except (_StopRequested, KeyboardInterrupt):
            outcome = Outcome.terminate(TerminalState.CANCELLED, "stop requested")
        finally:
            self.driver.set_deadline(None)
            if self._sink is not None:
                self._sink.close()
            self.tracker.finish()

        return self._finish(outcome)

    def _run_iteration(self, state: TraversalState) -> Outcome:
        self._check_stop()
        if state.current_url in state.visited:
            return Outcome.terminate(
                TerminalState.SUCCESS, f"cycle detected at {state.current_url}"
            )

        deadline = time.monotonic() + self.config.unit_timeout_seconds
        self.driver.set_deadline(deadline)
        outcome = self._navigate_unit(state, deadline)
        if outcome.kind is OutcomeKind.CONTINUE:
            self._check_stop()
            outcome = self._extract_and_classify(state, deadline)
        if outcome.kind is OutcomeKind.TERMINATE:
            return outcome
        self._check_stop()
        return self._locate_next(state, outcome.kind is OutcomeKind.CONTINUE, deadline)

    def _finish(self, outcome: Outcome) -> TraversalResult:
        state = self.state
        stats = self.tracker.get_stats()
        stats.update({
            'unit_index': state.unit_index,
            'page_index': state.page_index,
            'total_units': state.total_units,
            'urls_visited': len(state.visited),
        })
        log_fn = logger.error if outcome.terminal is TerminalState.UNRECOVERABLE else logger.info
        logger.info("=" * 60)
        log_fn(f"TRAVERSAL {outcome.terminal.name}: {outcome.reason}")
        logger.info(f"Units written: {stats['units_written']}")
        logger.info(f"Pages written: {stats['pages_written']}")
        logger.info(f"Error placeholders: {stats['pages_failed']}")
        logger.info(f"Elapsed time: {stats['elapsed_time']}s")
        logger.info("=" * 60)
        return TraversalResult(
            terminal=outcome.terminal,
            reason=outcome.reason,
            output_path=self._sink.path if self._sink else None,
            stats=stats,
        )

    # ------------------------------------------------------------------ #
    #  Waiting / cancellation                                              #
    # ------------------------------------------------------------------ #

    def _check_stop(self) -> None:
        if self._stop_event.is_set():
            raise _StopRequested()

    def _wait(self, seconds: float) -> None:
        if seconds > 0:
            self._sleep(seconds)
        self._check_stop()

    # ------------------------------------------------------------------ #
    #  Start / LocateFirst                                                 #
    # ------------------------------------------------------------------ #

    def _start(self, state: TraversalState) -> Outcome:
        toc_url = state.current_url
        deadline = time.monotonic() + self.config.unit_timeout_seconds
        self.driver.set_deadline(deadline)
        if not self._navigate_with_retries(toc_url, deadline, label="TOC"):
            return Outcome.terminate(
                TerminalState.UNRECOVERABLE, f"table of contents unreachable: {toc_url}"
            )
        toc_url = self.driver.current_url() or toc_url

        try:
            document_title = self.driver.title()
        except BrowserError as e:
            logger.warning(f"[TOC] Could not read document title: {e}")
            document_title = ""

        try:
            state.toc = self.locator.harvest_all(self.driver, toc_url)
            state.total_units = len(state.toc) or -1
            logger.info(f"[TOC] Harvested {len(state.toc)} unit links")
        except HarvestError as e:
            logger.warning(f"[TOC] Harvest failed, total unit count unknown: {e}")
            state.total_units = -1

        first = self._locate_first(state, toc_url)
        if first is None:
            return Outcome.terminate(
                TerminalState.UNRECOVERABLE, f"no first unit located on {toc_url}"
            )

        try:
            self._sink = OutputSink.for_document(document_title, self.config.output_dir).open()
        except SinkCreationError as e:
            return Outcome.terminate(TerminalState.UNRECOVERABLE, str(e))

        state.current_url = first.url
        state.next_is_page = False
        return CONTINUE

    def _locate_first(self, state: TraversalState, toc_url: str) -> Optional[LocatedLink]:
        try:
            first = self.locator.find_first(self.driver, toc_url)
        except LocatorExhausted as e:
            logger.warning(f"[TOC] {e}")
            first = None
        if first is None and state.toc:
            entry = state.toc[0]
            logger.info(f"[TOC] Locator found nothing, using first harvested entry {entry.url}")
            first = LocatedLink(url=entry.url, text=entry.text, strategy="toc")
        return first

    # ------------------------------------------------------------------ #
    #  NavigateUnit                                                        #
    # ------------------------------------------------------------------ #

    def _navigate_with_retries(self, url: str, deadline: float, label: str) -> bool:
        """Up to ``max_retries`` attempts, each failure followed by its backoff."""
        attempts = self.config.max_retries
        for attempt in range(attempts):
            try:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise BrowserError(
                        f"unit timeout of {self.config.unit_timeout_seconds}s exceeded"
                    )
                self.driver.navigate(url, timeout=remaining)
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise BrowserError(
                        f"unit timeout of {self.config.unit_timeout_seconds}s exceeded"
                    )
                self.driver.wait_ready(
                    self.config.ready_selector,
                    timeout=min(self.config.ready_timeout_seconds, remaining),
                )
                return True
            except BrowserError as e:
                self.tracker.record_retry()
                wait = self.pacer.backoff(attempt)
                logger.warning(
                    f"[NAV] {label} attempt {attempt + 1}/{attempts} failed for {url}: {e}"
                    f", waiting {wait:.0f}s"
                )
                self._wait(wait)
        return False

    def _navigate_unit(self, state: TraversalState, deadline: float) -> Outcome:
        url = state.current_url
        state.visited.add(url)
        label = f"unit {self._expected_unit(state)}"
        logger.info(f"[NAV] {label} page {self._expected_page(state)} → {url}")

        if not self._navigate_with_retries(url, deadline, label):
            logger.error(f"[NAV] Giving up on {label} after {self.config.max_retries} attempts: {url}")
            transition = self._transition_for_skipped(state)
            advance(state, transition, None)
            self._sink.write_error(NAVIGATION_FAILED, url)
            self.tracker.record_failure()
            return SKIP_TO_NEXT

        landed = self.driver.current_url() or url
        if landed != url:
            if landed in state.visited:
                return Outcome.terminate(
                    TerminalState.SUCCESS, f"{url} redirected to already visited {landed}"
                )
            logger.debug(f"[NAV] Redirected to {landed}")
            state.visited.add(landed)
            state.current_url = landed
        return CONTINUE

    @staticmethod
    def _transition_for_skipped(state: TraversalState) -> Transition:
        if state.next_is_page and state.base_title is not None:
            return Transition.SAME_UNIT_PAGE
        return Transition.NEW_UNIT

    @staticmethod
    def _expected_unit(state: TraversalState) -> int:
        return state.unit_index if state.next_is_page and state.unit_index else state.unit_index + 1

    @staticmethod
    def _expected_page(state: TraversalState) -> int:
        return state.page_index + 1 if state.next_is_page and state.unit_index else 1

    # ------------------------------------------------------------------ #
    #  ExtractAndClassify                                                  #
    # ------------------------------------------------------------------ #

    def _unit_title(self, state: TraversalState) -> str:
        """Document title, refined by a unit heading when the page has one."""
        fallback = f"第{self._expected_unit(state)}章"
        try:
            title = self.driver.title()
        except BrowserError as e:
            logger.warning(f"[EXTRACT] Could not read title of {state.current_url}: {e}")
            return fallback
        try:
            heading = self.driver.evaluate(scripts.HEADING_TITLE, None)
        except BrowserError as e:
            logger.debug(f"[EXTRACT] Heading lookup failed: {e}")
            heading = None
        if heading and heading.strip():
            title = heading.strip()
        return title.strip() or fallback

    def _extract_and_classify(self, state: TraversalState, deadline: float) -> Outcome:
        url = state.current_url
        raw_title = self._unit_title(state)
        normalized = normalize_title(raw_title)
        heading = classify(state, normalized)
        step = progression(state, heading)
        advance(state, step, normalized)
        new_unit = step is Transition.NEW_UNIT

        if time.monotonic() >= deadline:
            logger.error(
                f"[EXTRACT] unit {state.unit_index} page {state.page_index} exceeded "
                f"{self.config.unit_timeout_seconds}s before extraction ({url})"
            )
            self._sink.write_error(UNIT_TIMED_OUT, url)
            self.tracker.record_failure()
            return SKIP_TO_NEXT

        try:
            content = self.extractor.extract(self.driver)
        except ExtractionError as e:
            logger.error(
                f"[EXTRACT] unit {state.unit_index} page {state.page_index} failed ({url}): {e}"
            )
            self._sink.write_error(EXTRACTION_FAILED, url)
            self.tracker.record_failure()
            return CONTINUE

        if heading is Transition.NEW_UNIT:
            self._sink.write_unit(raw_title, content)
        else:
            self._sink.write_continuation(content)
        pages = self.tracker.record_page(new_unit)
        logger.info(
            f"[EXTRACT] unit {state.unit_index} page {state.page_index} "
            f"{'(new unit) ' if new_unit else ''}{raw_title!r}: {len(content)} chars "
            f"[{pages} pages total]"
        )
        return CONTINUE

    # ------------------------------------------------------------------ #
    #  LocateNext                                                          #
    # ------------------------------------------------------------------ #

    def _scroll(self) -> None:
        duration = self.pacer.scroll_duration_ms()
        try:
            self.driver.evaluate(scripts.SCROLL_TO_BOTTOM, {'durationMs': duration})
        except BrowserError as e:
            logger.warning(f"[NEXT] Scroll failed on {self.state.current_url}: {e}")

    def _toc_fallback(self, state: TraversalState) -> Optional[LocatedLink]:
        if 0 <= state.unit_index < len(state.toc):
            entry = state.toc[state.unit_index]
            logger.info(f"[NEXT] Falling back to TOC entry {state.unit_index + 1}: {entry.url}")
            return LocatedLink(url=entry.url, text=entry.text, strategy="toc")
        return None

    def _locate_next(self, state: TraversalState, page_loaded: bool, deadline: float) -> Outcome:
        link = None
        if page_loaded and time.monotonic() >= deadline:
            logger.warning(
                f"[NEXT] unit {state.unit_index} exceeded {self.config.unit_timeout_seconds}s, "
                f"skipping link lookup on {state.current_url}"
            )
            page_loaded = False
        if page_loaded:
            self._scroll()
            try:
                link = self.locator.find_next(self.driver, state.current_url)
            except LocatorExhausted as e:
                logger.warning(f"[NEXT] unit {state.unit_index} ({state.current_url}): {e}")

        next_is_page = link is not None and is_page_continuation(link.text)
        if 0 < state.total_units <= state.unit_index and not next_is_page:
            return Outcome.terminate(
                TerminalState.SUCCESS, f"all {state.total_units} units retrieved"
            )

        if link is None:
            link = self._toc_fallback(state)
        if link is None:
            return Outcome.terminate(
                TerminalState.EXHAUSTED,
                f"no next link after unit {state.unit_index} ({state.current_url})",
            )

        state.current_url = link.url
        state.next_is_page = next_is_page
        delay = self.pacer.page_delay()
        logger.info(
            f"[NEXT] {'page' if next_is_page else 'unit'} link {link.text!r} → {link.url}"
            f" (waiting {delay:.1f}s)"
        )
        self._wait(delay)
        return CONTINUE
