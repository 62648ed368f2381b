"""
Browser Collaborator (Abstract)
===============================
Defines the capability contract the traversal engine needs from a browser,
plus the Playwright implementation.

Contract:
    - ``navigate(url, timeout)``        : load a URL
    - ``wait_ready(selector, timeout)`` : block until ``selector`` is visible
    - ``evaluate(script, arg)``         : run a ``scripts`` snapshot, get JSON back
    - ``title()`` / ``current_url()``   : page identity after redirects
    - ``sleep(seconds)``                : blocking pause
    - ``close()``                       : release the session

All timeouts are seconds.  Navigation failures raise ``NavigationError``;
every other collaborator failure raises ``BrowserError``.

Design principles:
    - One driver owns exactly one browser context; drivers are never shared
      between runs
    - The engine never imports Playwright directly, so it can be exercised
      against ``StaticPageDriver`` or an in-memory fake
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout
from playwright.sync_api import sync_playwright

from . import scripts
from .errors import BrowserError, NavigationError
from .run_config import CrawlerRunConfig

logger = logging.getLogger(__name__)


class PageDriver(ABC):
    """Abstract base for page drivers."""

    # time.monotonic() instant bounding script evaluation; None is unbounded
    deadline: Optional[float] = None

    @abstractmethod
    def navigate(self, url: str, timeout: float) -> None:
        ...

    @abstractmethod
    def wait_ready(self, selector: str, timeout: float) -> None:
        ...

    @abstractmethod
    def evaluate(self, script: str, arg: Any = None) -> Any:
        ...

    @abstractmethod
    def title(self) -> str:
        ...

    @abstractmethod
    def current_url(self) -> str:
        ...

    def set_deadline(self, deadline: Optional[float]) -> None:
        """Bound later ``evaluate`` calls by a ``time.monotonic()`` instant."""
        self.deadline = deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before ``deadline``, or None when unbounded."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def close(self) -> None:
        """Release the browser session (no-op by default)."""

    def __enter__(self) -> "PageDriver":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class PlaywrightDriver(PageDriver):
    """
    Chromium via ``playwright.sync_api``.

    The browser is launched lazily on first navigation and torn down by
    ``close()`` (or leaving the ``with`` block).
    """

    def __init__(self, config: Optional[CrawlerRunConfig] = None):
        self.config = config or CrawlerRunConfig()
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def _init_browser(self) -> None:
        """Initialize Playwright browser."""
        if self._playwright is not None:
            return
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(
                headless=self.config.headless,
                args=[
                    '--disable-gpu',
                    '--no-sandbox',
                    '--disable-dev-shm-usage',
                    '--no-first-run',
                    '--no-default-browser-check',
                ]
            )
            self._context = self._browser.new_context(
                user_agent=self.config.user_agent,
                viewport={
                    'width': self.config.viewport_width,
                    'height': self.config.viewport_height
                },
                locale=self.config.locale,
                timezone_id=self.config.timezone_id,
            )
            self._page = self._context.new_page()
        except PlaywrightError as e:
            self.close()
            raise BrowserError(f"could not start Chromium: {e}") from e
        logger.info("Playwright browser initialized")

    @property
    def page(self):
        self._init_browser()
        return self._page

    def navigate(self, url: str, timeout: float) -> None:
        try:
            response = self.page.goto(url, timeout=timeout * 1000, wait_until='domcontentloaded')
        except PlaywrightTimeout as e:
            raise NavigationError(f"timed out after {timeout:.0f}s loading {url}", url) from e
        except PlaywrightError as e:
            raise NavigationError(f"failed to load {url}: {e}", url) from e
        if response is not None and response.status >= 400:
            raise NavigationError(f"HTTP {response.status} for {url}", url)

    def wait_ready(self, selector: str, timeout: float) -> None:
        try:
            self.page.wait_for_selector(selector, state='visible', timeout=timeout * 1000)
        except PlaywrightTimeout as e:
            raise NavigationError(
                f"'{selector}' not visible after {timeout:.0f}s", self._page.url
            ) from e
        except PlaywrightError as e:
            raise NavigationError(f"waiting for '{selector}' failed: {e}", self._page.url) from e

    def evaluate(self, script: str, arg: Any = None) -> Any:
        remaining = self.remaining()
        if remaining is not None:
            if remaining <= 0:
                raise BrowserError("deadline passed before script evaluation")
            script = scripts.with_timeout(script, remaining)
        try:
            return self.page.evaluate(script, arg)
        except PlaywrightError as e:
            raise BrowserError(f"script evaluation failed: {e}") from e

    def title(self) -> str:
        try:
            return self.page.title()
        except PlaywrightError as e:
            raise BrowserError(f"could not read title: {e}") from e

    def current_url(self) -> str:
        return self._page.url if self._page is not None else ""

    def sleep(self, seconds: float) -> None:
        if seconds > 0 and self._page is not None:
            self._page.wait_for_timeout(seconds * 1000)
        else:
            super().sleep(seconds)

    def close(self) -> None:
        """Close Playwright browser."""
        for name in ('_context', '_browser'):
            resource = getattr(self, name)
            if resource is not None:
                try:
                    resource.close()
                except PlaywrightError as e:
                    logger.debug(f"Ignoring error while closing {name[1:]}: {e}")
                setattr(self, name, None)
        self._page = None
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except PlaywrightError as e:
                logger.debug(f"Ignoring error while stopping Playwright: {e}")
            self._playwright = None


def open_driver(config: CrawlerRunConfig) -> PageDriver:
    """A fresh, unshared driver for one operation, chosen by ``config.static``."""
    if config.static:
        from .static_driver import StaticPageDriver
        return StaticPageDriver(user_agent=config.user_agent)
    return PlaywrightDriver(config)
