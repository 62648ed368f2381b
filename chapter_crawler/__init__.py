"""
Chapter Crawler Package
Sequential downloader for serialized web novels rendered in a browser.

CLI Usage:
    python -m chapter_crawler <command> [options]

    Commands:
        search <keyword>     Print search-engine result titles and links
        visit <url>          Print the visible text of one page
        download <toc-url>   Download every unit into one text file

    Options:
        --static            Use requests + BeautifulSoup instead of Chromium
        --headed            Show the browser window
        --output-dir        Where the text file is written (download)
        --unit-timeout      Per-unit timeout in seconds (download, default: 300)
        --no-delay          Skip randomized page delays (download)
"""

from .browser import PageDriver, PlaywrightDriver, open_driver
from .engine import TerminalState, TraversalEngine, TraversalResult, TraversalState
from .errors import (
    BrowserError,
    CrawlerError,
    ExtractionError,
    HarvestError,
    LocatorExhausted,
    NavigationError,
    SinkCreationError,
)
from .extractor import ContentExtractor
from .locator import NextLinkLocator, TocEntry
from .operations import search, traverse_document, visit_single_page
from .pacing import NoDelayPacer, Pacer
from .run_config import CrawlerRunConfig
from .sink import OutputSink
from .static_driver import StaticPageDriver
from .titles import clean_file_name, normalize_title

__all__ = [
    # Operations
    'search',
    'visit_single_page',
    'traverse_document',
    # Engine
    'TraversalEngine',
    'TraversalResult',
    'TraversalState',
    'TerminalState',
    # Components
    'ContentExtractor',
    'NextLinkLocator',
    'TocEntry',
    'OutputSink',
    'Pacer',
    'NoDelayPacer',
    'normalize_title',
    'clean_file_name',
    # Drivers
    'PageDriver',
    'PlaywrightDriver',
    'StaticPageDriver',
    'open_driver',
    # Config / errors
    'CrawlerRunConfig',
    'CrawlerError',
    'BrowserError',
    'NavigationError',
    'ExtractionError',
    'LocatorExhausted',
    'HarvestError',
    'SinkCreationError',
]

__version__ = '1.0.0'
