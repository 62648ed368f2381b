"""
Content Extractor
Picks the main prose block of a rendered chapter page.

The page is snapshotted once (``scripts.CONTENT_BLOCKS``); candidates are
then run through an ordered list of rejection rules and scored by
``length / (line_breaks + 1)``, which favours long contiguous paragraphs
over link lists and navigation clusters.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from . import scripts
from .errors import BrowserError, ExtractionError

logger = logging.getLogger(__name__)


@dataclass
class BlockCandidate:
    """One DOM element considered as the page's main content."""
    text: str
    tag: str = ""
    id: str = ""
    cls: str = ""
    hidden: bool = False
    excluded: bool = False

    @classmethod
    def from_record(cls, record: dict) -> "BlockCandidate":
        return cls(
            text=record.get('text') or '',
            tag=record.get('tag') or '',
            id=record.get('id') or '',
            cls=record.get('cls') or '',
            hidden=bool(record.get('hidden')),
            excluded=bool(record.get('excluded')),
        )

    @property
    def line_breaks(self) -> int:
        return self.text.count('\n')

    @property
    def density(self) -> float:
        return len(self.text) / (self.line_breaks + 1)


# ---------------------------------------------------------------------------
# Noise signatures
# ---------------------------------------------------------------------------

# Book metadata panel: every marker present.
METADATA_MARKERS = [
    ('作者：', '分类：', '更新：', '字数：'),
    ('author:', 'category:', 'updated:', 'words:'),
]

# Navigation cluster: one term from each group present.
NAVIGATION_GROUPS = [
    (('上一章', '上一页'), ('目录',), ('下一章', '下一页')),
    (('previous chapter', 'previous page', 'prev chapter'),
     ('table of contents', 'index'),
     ('next chapter', 'next page')),
]

PROMOTION_MARKERS = ('投推荐票', '加入书签', 'vote for this', 'add to bookmark')

# Trailing lines containing any of these are navigation residue.
TRAILING_NOISE = (
    '上一章', '上一页', '目录', '目 录', '下一章', '下一页',
    '点击下一页继续阅读', '小说网更新速度全网最快。',
    'previous chapter', 'next chapter', 'previous page', 'next page',
    'table of contents',
)

_INLINE_WHITESPACE_RE = re.compile(r'[^\S\n]+')


def _is_hidden(block: BlockCandidate) -> bool:
    return block.hidden


def _is_structural_noise(block: BlockCandidate) -> bool:
    return block.excluded


def _is_metadata_block(block: BlockCandidate) -> bool:
    text = block.text.lower()
    return any(all(marker in text for marker in markers) for markers in METADATA_MARKERS)


def _is_navigation_cluster(block: BlockCandidate) -> bool:
    text = block.text.lower()
    return any(
        all(any(term in text for term in group) for group in groups)
        for groups in NAVIGATION_GROUPS
    )


def _is_promotion_block(block: BlockCandidate) -> bool:
    text = block.text.lower()
    return any(marker in text for marker in PROMOTION_MARKERS)


# Evaluated in order; the first rule that fires rejects the candidate.
REJECTION_RULES: List[Tuple[str, Callable[[BlockCandidate], bool]]] = [
    ('hidden', _is_hidden),
    ('structural', _is_structural_noise),
    ('metadata', _is_metadata_block),
    ('navigation', _is_navigation_cluster),
    ('promotion', _is_promotion_block),
]


def rejection_reason(block: BlockCandidate) -> Optional[str]:
    """Name of the first rule rejecting ``block``, or None if it survives."""
    for name, rule in REJECTION_RULES:
        if rule(block):
            return name
    return None


def collapse_whitespace(text: str) -> str:
    """Collapse runs of spaces/tabs, keep newlines as paragraph breaks."""
    lines = [_INLINE_WHITESPACE_RE.sub(' ', line).strip() for line in text.split('\n')]
    return '\n'.join(lines).strip()


def trim_trailing_noise(text: str, max_lines: int = 10) -> str:
    """
    Drop navigation residue from the end of ``text``.

    Only the last ``max_lines`` lines are examined, from the bottom up;
    scanning stops at the first line that is not noise, so everything
    above it is kept verbatim.
    """
    lines = text.split('\n')
    floor = max(0, len(lines) - max_lines)
    end = len(lines)
    while end > floor:
        line = lines[end - 1].strip()
        lowered = line.lower()
        if line and not any(phrase in lowered for phrase in TRAILING_NOISE):
            break
        end -= 1
    return '\n'.join(lines[:end]).strip()


class ContentExtractor:
    """
    Selects and cleans the main text of the page currently loaded in a driver.
    """

    def __init__(self, min_length: int = 300, trailing_scan_lines: int = 10):
        self.min_length = min_length
        self.trailing_scan_lines = trailing_scan_lines

    def select(self, candidates: Sequence[BlockCandidate]) -> Optional[BlockCandidate]:
        """Best surviving candidate above the length threshold, or None."""
        best = None
        rejected = 0
        for block in candidates:
            if rejection_reason(block):
                rejected += 1
                continue
            if len(block.text) <= self.min_length:
                continue
            if best is None or block.density > best.density:
                best = block
        logger.debug(
            f"[EXTRACT] candidates={len(candidates)} rejected={rejected} "
            f"best={'<%s id=%r>' % (best.tag, best.id) if best else None}"
        )
        return best

    def clean(self, text: str) -> str:
        """Whitespace collapse followed by trailing-navigation trimming."""
        return trim_trailing_noise(collapse_whitespace(text), self.trailing_scan_lines)

    def extract(self, driver) -> str:
        """
        Extract the main content of the driver's current page.

        Raises:
            ExtractionError: if the page could not be evaluated.
        """
        try:
            records = driver.evaluate(scripts.CONTENT_BLOCKS, {'minLength': self.min_length})
            candidates = [BlockCandidate.from_record(r) for r in records or []]
            best = self.select(candidates)
            if best is not None:
                return self.clean(best.text)

            logger.info("[EXTRACT] No content block cleared the threshold, using full body text")
            body = driver.evaluate(scripts.BODY_TEXT, None) or ''
            return self.clean(body)
        except BrowserError as e:
            raise ExtractionError(f"content snapshot failed: {e}") from e
