"""
Next-Unit Locator
Finds the first unit on a table-of-contents page, the next unit/page on a
chapter page, and harvests every unit link of the table of contents.

Each search is an ordered list of independent strategies evaluated with
early-accept.  A strategy's pick that matches ``EXCLUDED_LINK_PATTERNS``
is discarded and the next strategy is tried.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urljoin, urldefrag

from . import scripts
from .errors import BrowserError, HarvestError, LocatorExhausted
from .titles import looks_like_unit, unit_number

logger = logging.getLogger(__name__)


@dataclass
class LinkCandidate:
    """An anchor snapshot taken from the page."""
    href: str
    text: str = ""
    id: str = ""
    cls: str = ""
    rel: str = ""

    @classmethod
    def from_record(cls, record: dict) -> "LinkCandidate":
        return cls(
            href=(record.get('href') or '').strip(),
            text=(record.get('text') or '').strip(),
            id=record.get('id') or '',
            cls=record.get('cls') or '',
            rel=record.get('rel') or '',
        )

    @property
    def is_navigable(self) -> bool:
        href = self.href.lower()
        return bool(href) and not href.startswith(('javascript:', 'mailto:', 'tel:', '#'))


@dataclass(frozen=True)
class TocEntry:
    """A (absolute URL, display text) pair harvested from the table of contents."""
    url: str
    text: str


@dataclass(frozen=True)
class LocatedLink:
    """Result of a locator search, resolved to an absolute URL."""
    url: str
    text: str
    strategy: str = ""


# ---------------------------------------------------------------------------
# Fixed keyword sets
# ---------------------------------------------------------------------------

# Page keywords come first: a page offering both "next page" and
# "next chapter" is mid-unit.
NEXT_KEYWORDS = [
    '下一页', '下一頁', '下页',
    '下一章', '下一章節', '下节', '下一话', '下一回',
    'next page', 'next chapter', 'next »', 'next',
]

PAGE_SIGNALS = ('下一页', '下一頁', '下页', 'next page')

EXCLUDED_LINK_PATTERNS = [
    re.compile(r'recommend', re.IGNORECASE),
    re.compile(r'related', re.IGNORECASE),
    re.compile(r'tuijian', re.IGNORECASE),
    re.compile(r'/(?:book|xiaoshuo)/?(?:index\.\w+)?$', re.IGNORECASE),
    re.compile(r'index', re.IGNORECASE),
    re.compile(r'目录'),
    re.compile(r'首页'),
    re.compile(r'\bhome\b', re.IGNORECASE),
    re.compile(r'list', re.IGNORECASE),
]

FIRST_UNIT_PATTERNS = [
    re.compile(r'^第\s*1\s*[章节回集]'),
    re.compile(r'^1\s*[章节回集]'),
    re.compile(r'^第一章'),
    re.compile(r'^第一卷'),
    re.compile(r'^首章'),
    re.compile(r'^开始阅读'),
    re.compile(r'^chapter\s*(?:1|one)\b', re.IGNORECASE),
]

# Unit number used when the page title carries none; large enough that it
# rarely matches anything by accident.
SENTINEL_NEXT_UNIT = 1000

MIN_CONTAINER_LINKS = 5


def is_excluded(link: LinkCandidate) -> bool:
    return any(p.search(link.href) or p.search(link.text) for p in EXCLUDED_LINK_PATTERNS)


def is_page_continuation(link_text: str) -> bool:
    """True when a next-link's text signals another page of the same unit."""
    lowered = (link_text or '').lower()
    return any(signal in lowered for signal in PAGE_SIGNALS)


def resolve(href: str, base_url: str) -> str:
    """Absolute form of ``href`` relative to ``base_url``, fragment removed."""
    return urldefrag(urljoin(base_url, href))[0]


# ---------------------------------------------------------------------------
# Next-link strategies
# ---------------------------------------------------------------------------

def _by_next_keyword(anchors: Sequence[LinkCandidate], page_title: str) -> Optional[LinkCandidate]:
    for keyword in NEXT_KEYWORDS:
        for a in anchors:
            if a.is_navigable and keyword in a.text.lower():
                return a
    return None


def _by_next_attribute(anchors: Sequence[LinkCandidate], page_title: str) -> Optional[LinkCandidate]:
    for a in anchors:
        if a.is_navigable and ('next' in a.id.lower() or 'next' in a.cls.lower()):
            return a
    return None


def _by_unit_ordinal(anchors: Sequence[LinkCandidate], page_title: str) -> Optional[LinkCandidate]:
    current = unit_number(page_title)
    wanted = current + 1 if current is not None else SENTINEL_NEXT_UNIT
    pattern = re.compile(
        r'第\s*%d\s*[章节回]|\bchapter\s*%d\b' % (wanted, wanted), re.IGNORECASE
    )
    for a in anchors:
        if a.is_navigable and pattern.search(a.text):
            return a
    return None


def _by_rel_next(anchors: Sequence[LinkCandidate], page_title: str) -> Optional[LinkCandidate]:
    for a in anchors:
        if a.is_navigable and 'next' in a.rel.lower().split():
            return a
    return None


NEXT_STRATEGIES: List[Tuple[str, Callable]] = [
    ('keyword', _by_next_keyword),
    ('attribute', _by_next_attribute),
    ('ordinal', _by_unit_ordinal),
    ('rel', _by_rel_next),
]


# ---------------------------------------------------------------------------
# First-unit strategies
# ---------------------------------------------------------------------------

def _mentions_index(a: LinkCandidate) -> bool:
    return '目录' in a.text or 'index' in a.text.lower()


def _by_first_unit_phrase(anchors, containers) -> Optional[LinkCandidate]:
    for pattern in FIRST_UNIT_PATTERNS:
        for a in anchors:
            if a.is_navigable and pattern.search(a.text) and not _mentions_index(a):
                return a
    return None


def _by_unit_marker(anchors, containers) -> Optional[LinkCandidate]:
    for a in anchors:
        if a.is_navigable and looks_like_unit(a.text) and not _mentions_index(a):
            return a
    return None


def _by_largest_cluster(anchors, containers) -> Optional[LinkCandidate]:
    best = None
    for count, first in containers:
        if count > MIN_CONTAINER_LINKS and first is not None and first.is_navigable:
            if best is None or count > best[0]:
                best = (count, first)
    return best[1] if best else None


FIRST_STRATEGIES: List[Tuple[str, Callable]] = [
    ('first-phrase', _by_first_unit_phrase),
    ('unit-marker', _by_unit_marker),
    ('largest-cluster', _by_largest_cluster),
]


class NextLinkLocator:
    """
    Link discovery against the page loaded in a ``PageDriver``.
    """

    def _anchors(self, driver) -> List[LinkCandidate]:
        records = driver.evaluate(scripts.ANCHORS, None) or []
        return [LinkCandidate.from_record(r) for r in records]

    def choose_next(
        self,
        anchors: Sequence[LinkCandidate],
        page_title: str,
        current_url: str,
    ) -> Optional[LocatedLink]:
        """Run the next-link strategies over an anchor snapshot."""
        for name, strategy in NEXT_STRATEGIES:
            link = strategy(anchors, page_title)
            if link is None:
                continue
            if is_excluded(link):
                logger.debug(f"[NEXT] {name}: rejected excluded link {link.href} ({link.text!r})")
                continue
            return LocatedLink(url=resolve(link.href, current_url), text=link.text, strategy=name)
        return None

    def find_next(self, driver, current_url: str) -> Optional[LocatedLink]:
        """
        Locate the next page/unit of the page currently loaded.

        ``current_url`` should be the page's own URL after redirects.

        Raises:
            LocatorExhausted: if the page could not be scanned.
        """
        try:
            anchors = self._anchors(driver)
            page_title = driver.title()
        except BrowserError as e:
            raise LocatorExhausted(f"could not scan {current_url}: {e}") from e

        found = self.choose_next(anchors, page_title, current_url)
        if found:
            logger.info(f"[NEXT] {found.strategy}: {found.text!r} → {found.url}")
        else:
            logger.info(f"[NEXT] No next link on {current_url[:80]} (anchors={len(anchors)})")
        return found

    def choose_first(
        self,
        anchors: Sequence[LinkCandidate],
        containers: Sequence[Tuple[int, Optional[LinkCandidate]]],
        toc_url: str,
    ) -> Optional[LocatedLink]:
        """Run the first-unit strategies over a table-of-contents snapshot."""
        for name, strategy in FIRST_STRATEGIES:
            link = strategy(anchors, containers)
            if link is not None:
                return LocatedLink(url=resolve(link.href, toc_url), text=link.text, strategy=name)
        return None

    def find_first(self, driver, toc_url: str) -> Optional[LocatedLink]:
        """
        Locate the first unit on a table-of-contents page.

        Raises:
            LocatorExhausted: if the page could not be scanned.
        """
        try:
            anchors = self._anchors(driver)
            container_records = driver.evaluate(scripts.LINK_CONTAINERS, None) or []
        except BrowserError as e:
            raise LocatorExhausted(f"could not scan table of contents {toc_url}: {e}") from e

        containers = [
            (int(r.get('count') or 0), LinkCandidate.from_record(r['first']) if r.get('first') else None)
            for r in container_records
        ]
        found = self.choose_first(anchors, containers, toc_url)
        if found:
            logger.info(f"[TOC] First unit via {found.strategy}: {found.text!r} → {found.url}")
        return found

    def harvest_all(self, driver, toc_url: str) -> List[TocEntry]:
        """
        Every anchor of the table of contents whose text carries a unit
        marker, resolved to absolute form, in page order, first occurrence
        of each URL kept.

        Raises:
            HarvestError: if the page could not be scanned.
        """
        try:
            anchors = self._anchors(driver)
        except BrowserError as e:
            raise HarvestError(f"could not read anchors of {toc_url}: {e}") from e

        entries: List[TocEntry] = []
        seen = set()
        for a in anchors:
            if not a.is_navigable or not looks_like_unit(a.text):
                continue
            url = resolve(a.href, toc_url)
            if url in seen:
                continue
            seen.add(url)
            entries.append(TocEntry(url=url, text=a.text))
        return entries
