"""
Static Page Driver
Answers the ``scripts`` snapshots from server-rendered HTML using
requests + BeautifulSoup, without a JavaScript engine.

Useful for plain-HTML novel sites (no Chromium needed) and as the page
model the engine tests run against.  Visibility is approximated from inline
``style`` declarations and the ``hidden`` attribute.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional

import requests
from bs4 import BeautifulSoup, NavigableString, Tag

from . import scripts
from .browser import PageDriver
from .errors import BrowserError, NavigationError
from .locator import resolve

logger = logging.getLogger(__name__)

# Choose the best available HTML parser: prefer lxml for speed,
# fall back to the stdlib html.parser so the crawler never crashes.
try:
    import lxml  # noqa: F401
    _BS_PARSER = "lxml"
except ImportError:
    _BS_PARSER = "html.parser"
    logger.info("lxml not installed, using html.parser (slower but functional)")

_NOISE_TAGS = {'script', 'style', 'noscript'}
_NOISE_CLASSES = {'confirm-dialog'}
_STRUCTURAL_TAGS = {'nav', 'footer', 'header', 'aside'}

_DISPLAY_NONE_RE = re.compile(r'display\s*:\s*none', re.IGNORECASE)
_VISIBILITY_HIDDEN_RE = re.compile(r'visibility\s*:\s*hidden', re.IGNORECASE)
_OPACITY_ZERO_RE = re.compile(r'opacity\s*:\s*0(?:\.0+)?\s*(?:;|$)', re.IGNORECASE)

_HEADING_UNIT_RE = re.compile(r'第\s*\d+\s*[章节回]|chapter\s*\d+', re.IGNORECASE)
_BODY_UNIT_RE = re.compile(r'(第\s*\d+\s*[章节回]|chapter\s*\d+)[^\n]*', re.IGNORECASE)

DEFAULT_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'zh-CN,zh;q=0.9,en;q=0.8',
}


def _classes(tag: Tag) -> List[str]:
    return tag.get('class') or []


def _is_hidden(tag: Tag) -> bool:
    if tag.has_attr('hidden'):
        return True
    style = tag.get('style') or ''
    return bool(
        _DISPLAY_NONE_RE.search(style)
        or _VISIBILITY_HIDDEN_RE.search(style)
        or _OPACITY_ZERO_RE.search(style)
    )


def _in_hidden_tree(tag: Tag) -> bool:
    """True when ``tag`` or any of its ancestors is hidden."""
    node = tag
    while isinstance(node, Tag):
        if _is_hidden(node):
            return True
        node = node.parent
    return False


def _is_noise(tag: Tag, structural: bool) -> bool:
    if tag.name in _NOISE_TAGS or _NOISE_CLASSES.intersection(_classes(tag)):
        return True
    return structural and tag.name in _STRUCTURAL_TAGS


def _closest_noise(tag: Tag, structural: bool) -> bool:
    node = tag
    while isinstance(node, Tag):
        if _is_noise(node, structural):
            return True
        node = node.parent
    return False


def visible_text(root: Tag, structural: bool) -> str:
    """Visible text nodes under ``root``, trimmed, one per line."""
    lines = []
    for node in root.descendants:
        if type(node) is not NavigableString:
            continue
        parent = node.parent
        if _closest_noise(parent, structural) or _in_hidden_tree(parent):
            continue
        text = str(node).strip()
        if text:
            lines.append(text)
    return '\n'.join(lines)


def _requests_fetch(session: requests.Session, headers: Dict[str, str]):
    def fetch(url: str, timeout: float):
        return session.get(url, headers=headers, timeout=timeout)
    return fetch


class StaticPageDriver(PageDriver):
    """
    ``PageDriver`` over fetched HTML.

    Args:
        fetch: ``fetch(url, timeout)`` returning an object with ``url``,
            ``status_code`` and ``text`` (a ``requests.Response`` by default)
        user_agent: User-Agent header for the default fetcher
    """

    def __init__(self, fetch: Optional[Callable] = None, user_agent: Optional[str] = None):
        self._session = None
        if fetch is None:
            self._session = requests.Session()
            headers = dict(DEFAULT_HEADERS)
            if user_agent:
                headers['User-Agent'] = user_agent
            fetch = _requests_fetch(self._session, headers)
        self._fetch = fetch
        self._url = ""
        self._soup: Optional[BeautifulSoup] = None
        self._handlers: Dict[str, Callable[[Any], Any]] = {
            scripts.CONTENT_BLOCKS: self._content_blocks,
            scripts.BODY_TEXT: self._body_text,
            scripts.PAGE_TEXT: self._page_text,
            scripts.ANCHORS: self._anchors,
            scripts.LINK_CONTAINERS: self._link_containers,
            scripts.HEADING_TITLE: self._heading_title,
            scripts.SCROLL_TO_BOTTOM: lambda arg: True,
            scripts.SEARCH_RESULTS: self._search_results,
            scripts.ALERT_TEXT: self._alert_text,
        }

    # ------------------------------------------------------------------ #
    #  PageDriver                                                          #
    # ------------------------------------------------------------------ #

    def navigate(self, url: str, timeout: float) -> None:
        try:
            response = self._fetch(url, timeout)
        except requests.RequestException as e:
            raise NavigationError(f"failed to fetch {url}: {e}", url) from e
        if response.status_code >= 400:
            raise NavigationError(f"HTTP {response.status_code} for {url}", url)
        self._url = response.url or url
        self._soup = BeautifulSoup(response.text, _BS_PARSER)
        logger.debug(f"[STATIC] Loaded {self._url} ({len(response.text)} bytes)")

    def wait_ready(self, selector: str, timeout: float) -> None:
        if self._soup is None:
            raise NavigationError(f"no page loaded while waiting for '{selector}'")
        element = self._soup.select_one(selector)
        if element is None or _in_hidden_tree(element):
            raise NavigationError(f"'{selector}' not present on {self._url}", self._url)

    def evaluate(self, script: str, arg: Any = None) -> Any:
        if self._soup is None:
            raise BrowserError("no page loaded")
        handler = self._handlers.get(script)
        if handler is None:
            raise BrowserError("script not supported by the static driver")
        return handler(arg)

    def title(self) -> str:
        if self._soup is None or self._soup.title is None:
            return ""
        return ' '.join(self._soup.title.get_text().split())

    def current_url(self) -> str:
        return self._url

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    # ------------------------------------------------------------------ #
    #  Script equivalents                                                  #
    # ------------------------------------------------------------------ #

    @property
    def _body(self) -> Tag:
        return self._soup.body or self._soup

    @staticmethod
    def _anchor_record(a: Tag, base_url: str) -> dict:
        href = a.get('href')
        return {
            'href': resolve(href.strip(), base_url) if href is not None else '',
            'text': a.get_text().strip(),
            'id': a.get('id') or '',
            'cls': ' '.join(_classes(a)),
            'rel': ' '.join(a.get('rel') or []),
        }

    def _content_blocks(self, arg) -> List[dict]:
        min_length = (arg or {}).get('minLength', 0)
        records = []
        for el in self._soup.select(scripts.CANDIDATE_SELECTOR):
            if len(el.get_text().strip()) < min_length:
                continue
            records.append({
                'tag': el.name,
                'id': el.get('id') or '',
                'cls': ' '.join(_classes(el)),
                'hidden': _in_hidden_tree(el),
                'excluded': _closest_noise(el, structural=True),
                'text': visible_text(el, structural=False),
            })
        return records

    def _body_text(self, arg) -> str:
        return visible_text(self._body, structural=True)

    def _page_text(self, arg) -> str:
        return visible_text(self._body, structural=False).replace('\n', ' ')

    def _anchors(self, arg) -> List[dict]:
        return [self._anchor_record(a, self._url) for a in self._soup.find_all('a')]

    def _link_containers(self, arg) -> List[dict]:
        containers = []
        for c in self._soup.select(scripts.LINK_CONTAINER_SELECTOR):
            links = c.find_all('a')
            containers.append({
                'count': len(links),
                'first': self._anchor_record(links[0], self._url) if links else None,
            })
        return containers

    def _heading_title(self, arg) -> str:
        for h in self._soup.find_all(['h1', 'h2', 'h3']):
            text = h.get_text().strip()
            if _HEADING_UNIT_RE.search(text):
                return text
        match = _BODY_UNIT_RE.search(self._body.get_text())
        return match.group(0).strip() if match else ''

    def _search_results(self, arg) -> List[dict]:
        return [
            {'href': self._anchor_record(a, self._url)['href'], 'text': a.get_text().strip()}
            for a in self._soup.select('h3.t a')
        ]

    def _alert_text(self, arg) -> str:
        alert = self._soup.select_one('[role="alert"]')
        return alert.get_text() if alert else ''
