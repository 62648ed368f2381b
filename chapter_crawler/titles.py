"""
Title helpers: pagination-marker stripping, unit-number parsing and
output filename sanitization.
"""

import re
from typing import Optional

# Pagination sub-patterns removed from a unit's display title.
# Order matters: bracketed counters go before the bare "n/m" form.
PAGINATION_PATTERNS = [
    re.compile(r'\(\s*\d+\s*/\s*\d+\s*\)'),
    re.compile(r'（\s*\d+\s*/\s*\d+\s*）'),
    re.compile(r'\[\s*\d+\s*/\s*\d+\s*\]'),
    re.compile(r'【\s*\d+\s*/\s*\d+\s*】'),
    re.compile(r'第\s*\d+\s*页'),
    re.compile(r'分页\s*\d+'),
    re.compile(r'\bpage\s*\d+(\s*of\s*\d+)?', re.IGNORECASE),
    re.compile(r'\d+\s*/\s*\d+'),
]

_WHITESPACE_RE = re.compile(r'\s+')
_DANGLING_SEPARATORS_RE = re.compile(r'[\s\-_|:：·,，]+$')

# "第12章", "第3节", "第7回", "Chapter 12"
UNIT_NUMBER_RE = re.compile(r'第\s*(\d+)\s*[章节回]|\bchapter\s*(\d+)', re.IGNORECASE)

# Anything that looks like a unit heading, including Chinese numerals and volumes.
UNIT_MARKER_RE = re.compile(
    r'[第卷]([\d一二三四五六七八九十百千]+)[章节回集]|\b(?:chapter|volume|vol\.)\s*\d+',
    re.IGNORECASE,
)

_INVALID_FILENAME_CHARS_RE = re.compile(r'[<>:"/\\|?*]')
_REPEATED_UNDERSCORE_RE = re.compile(r'_+')


def _strip_once(title: str) -> str:
    for pattern in PAGINATION_PATTERNS:
        title = pattern.sub('', title)
    title = _WHITESPACE_RE.sub(' ', title).strip()
    return _DANGLING_SEPARATORS_RE.sub('', title)


def normalize_title(raw_title: str) -> str:
    """
    Derive a unit's canonical title by stripping pagination markers.

    "第5章 风起 (2/3)" and "第5章 风起 第2页" both become "第5章 风起".
    Stripping repeats until nothing changes, so the result is a fixed point
    and ``normalize_title(normalize_title(t)) == normalize_title(t)``.
    """
    if not raw_title:
        return ""
    current = raw_title
    while True:
        stripped = _strip_once(current)
        if stripped == current:
            return stripped
        current = stripped


def unit_number(title: str) -> Optional[int]:
    """Return N from the first "第N章" / "Chapter N" in ``title``, if any."""
    if not title:
        return None
    match = UNIT_NUMBER_RE.search(title)
    if not match:
        return None
    return int(match.group(1) or match.group(2))


def looks_like_unit(text: str) -> bool:
    """True when ``text`` carries a unit marker such as 第十二章 or Chapter 3."""
    return bool(text) and UNIT_MARKER_RE.search(text) is not None


def clean_file_name(name: str) -> str:
    """Replace characters illegal in filenames and collapse the separators."""
    cleaned = _INVALID_FILENAME_CHARS_RE.sub('_', name or '')
    cleaned = _REPEATED_UNDERSCORE_RE.sub('_', cleaned)
    cleaned = cleaned.strip().strip('_')
    return cleaned or 'untitled'
