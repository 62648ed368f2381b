"""
Unified Run Configuration
=========================
Single source of truth for ALL crawler defaults and runtime limits.

Every module (CLI, operations, traversal engine, pacing) reads from this
object.  CLI flags populate it via ``from_cli_args``; tests build it
directly with the handful of values they care about.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "headless": True,
    "static": False,                 # requests + BeautifulSoup instead of Chromium
    "user_agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "viewport_width": 1920,
    "viewport_height": 1080,
    "locale": "zh-CN",
    "timezone_id": "Asia/Shanghai",
    # Layered timeouts (seconds)
    "ready_selector": "body",
    "ready_timeout_seconds": 30,     # transient browser interactions
    "unit_timeout_seconds": 300,     # one unit's navigate + extract cycle
    "operation_timeout_seconds": 60,  # whole search / visit operation
    # Retry / pacing
    "max_retries": 3,
    "backoff_base_seconds": 10.0,    # 10s, 20s, 40s
    "min_page_delay": 5.0,
    "max_page_delay": 60.0,
    "scroll_min_ms": 2000,
    "scroll_max_ms": 5000,
    # Content heuristics
    "min_content_length": 300,
    "trailing_scan_lines": 10,
    # Single-page visit
    "visit_settle_seconds": 15.0,
    # Search
    "search_url_template": "https://www.baidu.com/s?ie=UTF-8&wd={keyword}",
    "search_ready_selector": "#content_left",
    # Output
    "output_dir": ".",
}


@dataclass
class CrawlerRunConfig:
    """
    Unified configuration consumed by every crawler subsystem.

    Populate via:
      - ``CrawlerRunConfig()``                    → all defaults
      - ``CrawlerRunConfig(max_page_delay=10)``   → override one value
      - ``CrawlerRunConfig.from_cli_args(ns)``    → from argparse Namespace
    """

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    static: bool = _DEFAULTS["static"]
    user_agent: str = _DEFAULTS["user_agent"]
    viewport_width: int = _DEFAULTS["viewport_width"]
    viewport_height: int = _DEFAULTS["viewport_height"]
    locale: str = _DEFAULTS["locale"]
    timezone_id: str = _DEFAULTS["timezone_id"]

    # ---- Timeouts ----
    ready_selector: str = _DEFAULTS["ready_selector"]
    ready_timeout_seconds: float = _DEFAULTS["ready_timeout_seconds"]
    unit_timeout_seconds: float = _DEFAULTS["unit_timeout_seconds"]
    operation_timeout_seconds: float = _DEFAULTS["operation_timeout_seconds"]

    # ---- Retry / pacing ----
    max_retries: int = _DEFAULTS["max_retries"]
    backoff_base_seconds: float = _DEFAULTS["backoff_base_seconds"]
    min_page_delay: float = _DEFAULTS["min_page_delay"]
    max_page_delay: float = _DEFAULTS["max_page_delay"]
    scroll_min_ms: int = _DEFAULTS["scroll_min_ms"]
    scroll_max_ms: int = _DEFAULTS["scroll_max_ms"]

    # ---- Content heuristics ----
    min_content_length: int = _DEFAULTS["min_content_length"]
    trailing_scan_lines: int = _DEFAULTS["trailing_scan_lines"]

    # ---- Visit / search ----
    visit_settle_seconds: float = _DEFAULTS["visit_settle_seconds"]
    search_url_template: str = _DEFAULTS["search_url_template"]
    search_ready_selector: str = _DEFAULTS["search_ready_selector"]

    # ---- Output ----
    output_dir: str = _DEFAULTS["output_dir"]

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args) -> "CrawlerRunConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        output_dir = (
            getattr(args, "output_dir", None)
            or os.environ.get("CHAPTER_CRAWLER_OUTPUT_DIR")
            or _DEFAULTS["output_dir"]
        )
        return cls(
            headless=not getattr(args, "headed", False),
            static=getattr(args, "static", False),
            unit_timeout_seconds=getattr(args, "unit_timeout", _DEFAULTS["unit_timeout_seconds"]),
            operation_timeout_seconds=getattr(args, "timeout", _DEFAULTS["operation_timeout_seconds"]),
            max_retries=getattr(args, "max_retries", _DEFAULTS["max_retries"]),
            min_page_delay=getattr(args, "min_delay", _DEFAULTS["min_page_delay"]),
            max_page_delay=getattr(args, "max_delay", _DEFAULTS["max_page_delay"]),
            visit_settle_seconds=getattr(args, "settle", _DEFAULTS["visit_settle_seconds"]),
            output_dir=output_dir,
        )

    def backoff_schedule(self) -> list:
        """Waits after each failed navigation attempt: base, 2*base, 4*base..."""
        return [self.backoff_base_seconds * (2 ** attempt) for attempt in range(self.max_retries)]

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str, operation: Optional[str] = None) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info(f"RUN CONFIG{f' ({operation})' if operation else ''}")
        logger.info("=" * 60)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Driver:           {'static (requests)' if self.static else 'Playwright Chromium'}")
        logger.info(f"  Headless:         {self.headless}")
        logger.info(f"  Unit Timeout:     {self.unit_timeout_seconds}s")
        logger.info(f"  Ready Timeout:    {self.ready_timeout_seconds}s")
        logger.info(f"  Retries:          {self.max_retries} (backoff {self.backoff_schedule()})")
        logger.info(f"  Page Delay:       {self.min_page_delay}-{self.max_page_delay}s")
        logger.info(f"  Output Dir:       {self.output_dir}")
        logger.info("=" * 60)
