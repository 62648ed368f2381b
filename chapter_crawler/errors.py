"""
Error Taxonomy
==============
Exceptions raised across the traversal stack.

Only ``SinkCreationError`` (and failing to locate a first unit) ends a run.
Everything else is absorbed by the engine and turned into a retry, a
fallback, or an inline placeholder in the output file.
"""


class CrawlerError(Exception):
    """Base class for every error raised by chapter_crawler."""


class BrowserError(CrawlerError):
    """The browser collaborator failed (transport, timeout, script error)."""


class NavigationError(BrowserError):
    """Navigating to a URL or waiting for it to become ready failed."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class ExtractionError(CrawlerError):
    """The content snapshot could not be taken from the current page."""


class LocatorExhausted(CrawlerError):
    """The page could not be scanned for a next/first link."""


class HarvestError(CrawlerError):
    """Table-of-contents entries could not be harvested."""


class SinkCreationError(CrawlerError):
    """The output file could not be created."""
