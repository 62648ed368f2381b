"""
Entry-point operations: search, single-page visit, document traversal.

Each operation opens its own driver (one browser context, never shared),
logs its failures instead of raising them, and releases the driver on exit.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote

from . import scripts
from .browser import PageDriver, open_driver
from .engine import TraversalEngine, TraversalResult
from .errors import BrowserError, CrawlerError
from .pacing import Pacer
from .run_config import CrawlerRunConfig

logger = logging.getLogger(__name__)

JS_DISABLED_BANNER = "You need to enable JavaScript to run this app."


@dataclass
class SearchResult:
    title: str
    link: str


class _OperationClock:
    """Whole-operation time bound shared by every browser call."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.deadline = time.monotonic() + seconds

    def remaining(self) -> float:
        left = self.deadline - time.monotonic()
        if left <= 0:
            raise BrowserError(f"operation timeout of {self.seconds}s exceeded")
        return left


def collect_search_results(driver: PageDriver, keyword: str, config: CrawlerRunConfig) -> List[SearchResult]:
    """Query the configured search engine and return result titles and links."""
    clock = _OperationClock(config.operation_timeout_seconds)
    url = config.search_url_template.format(keyword=quote(keyword))
    logger.info(f"[SEARCH] {keyword!r} → {url}")

    driver.navigate(url, timeout=clock.remaining())
    driver.wait_ready(
        config.search_ready_selector,
        timeout=min(config.ready_timeout_seconds, clock.remaining()),
    )
    records = driver.evaluate(scripts.SEARCH_RESULTS, None) or []
    results = [
        SearchResult(title=(r.get('text') or '').strip(), link=r.get('href') or '')
        for r in records
    ]
    logger.info(f"[SEARCH] {len(results)} results")
    return results


def read_page_text(driver: PageDriver, url: str, config: CrawlerRunConfig) -> str:
    """Load ``url``, let it settle, and return its visible text."""
    clock = _OperationClock(config.operation_timeout_seconds)
    logger.info(f"[VISIT] {url}")

    driver.navigate(url, timeout=clock.remaining())
    driver.wait_ready('body', timeout=min(config.ready_timeout_seconds, clock.remaining()))
    driver.sleep(min(config.visit_settle_seconds, clock.remaining()))

    text = (driver.evaluate(scripts.PAGE_TEXT, None) or '').strip()
    if text.startswith(JS_DISABLED_BANNER):
        text = text[len(JS_DISABLED_BANNER):].strip()

    alert = driver.evaluate(scripts.ALERT_TEXT, None) or ''
    if 'enable JavaScript' in alert:
        logger.warning(f"[VISIT] Page reports JavaScript disabled: {alert.strip()}")
    return text


def search(keyword: str, config: Optional[CrawlerRunConfig] = None) -> None:
    """Print ``Title:`` / ``Link:`` pairs for a search keyword."""
    config = config or CrawlerRunConfig()
    try:
        with open_driver(config) as driver:
            results = collect_search_results(driver, keyword, config)
    except CrawlerError as e:
        logger.error(f"[SEARCH] Search for {keyword!r} failed: {e}")
        return
    for result in results:
        print(f"Title: {result.title}\nLink: {result.link}\n")


def visit_single_page(url: str, config: Optional[CrawlerRunConfig] = None) -> None:
    """Print the visible text of one page."""
    config = config or CrawlerRunConfig()
    try:
        with open_driver(config) as driver:
            text = read_page_text(driver, url, config)
    except CrawlerError as e:
        logger.error(f"[VISIT] Visiting {url} failed: {e}")
        return
    print(text)


def traverse_document(
    url: str,
    config: Optional[CrawlerRunConfig] = None,
    pacer: Optional[Pacer] = None,
) -> Optional[TraversalResult]:
    """
    Download a whole document starting from its table of contents.

    No whole-run timeout: only the per-unit bound applies.  Returns the
    ``TraversalResult`` (None if the browser could not be started).
    """
    config = config or CrawlerRunConfig()
    config.log_summary(url, operation="download")
    try:
        with open_driver(config) as driver:
            engine = TraversalEngine(driver, config=config, pacer=pacer)
            return engine.run(url)
    except CrawlerError as e:
        logger.error(f"[TRAVERSE] Traversal of {url} failed: {e}")
        return None
