"""
Shared fixtures: an in-memory novel site served through ``StaticPageDriver``,
a fault-injecting driver wrapper, and a recording sleeper.
"""

import time
from typing import Dict, List, Optional

import pytest

from chapter_crawler import scripts
from chapter_crawler.browser import PageDriver
from chapter_crawler.errors import BrowserError, NavigationError
from chapter_crawler.pacing import NoDelayPacer
from chapter_crawler.run_config import CrawlerRunConfig
from chapter_crawler.static_driver import StaticPageDriver

BASE_URL = "https://novel.test/b/42/"
BOOK_TITLE = "测试小说"

UNIT_NAMES = ['开端', '风起', '试炼', '远行', '归来', '夜雨', '初雪', '惊变', '对决', '尾声']

_SENTENCE = "林风站在山巅，望着远处翻涌的云海，心中思绪万千。"


def prose(tag: str, paragraphs: int = 5) -> List[str]:
    """Distinct paragraphs of filler prose, well above the content threshold."""
    return [f"【{tag}】第{i}段。" + _SENTENCE * 4 for i in range(1, paragraphs + 1)]


def chapter_html(
    heading: str,
    paragraphs: List[str],
    next_href: Optional[str] = None,
    next_text: str = "下一章",
    prev_href: Optional[str] = None,
) -> str:
    body = "\n".join(f"<p>{p}</p>" for p in paragraphs)
    nav = [f'<a href="{prev_href}">上一章</a>' if prev_href else "<span>上一章</span>",
           '<a href="./">目录</a>']
    if next_href:
        nav.append(f'<a href="{next_href}">{next_text}</a>')
    return f"""<html><head><title>{heading} - {BOOK_TITLE} - 测试小说网</title></head>
<body>
<h1>{heading}</h1>
<div id="content">
{body}
</div>
<div class="bottem">{' '.join(nav)}</div>
<script>var ad = "下一章 目录";</script>
</body></html>"""


def toc_html(title: str, entries: List[tuple]) -> str:
    links = "\n".join(f'<dd><a href="{href}">{text}</a></dd>' for href, text in entries)
    return f"""<html><head><title>{title}</title></head>
<body>
<h1>{title}</h1>
<div class="info">作者：佚名 分类：玄幻 更新：2024-01-01 字数：10万</div>
<dl id="chapters">
{links}
</dl>
<a href="/">首页</a>
</body></html>"""


class FakeResponse:
    def __init__(self, url: str, status_code: int, text: str):
        self.url = url
        self.status_code = status_code
        self.text = text


class InMemorySite:
    """URL → HTML map with optional redirects; records every fetch."""

    def __init__(self):
        self.pages: Dict[str, str] = {}
        self.redirects: Dict[str, str] = {}
        self.requests: List[str] = []

    def add(self, url: str, html: str) -> str:
        self.pages[url] = html
        return url

    def redirect(self, source: str, target: str) -> None:
        self.redirects[source] = target

    def fetch(self, url: str, timeout: float) -> FakeResponse:
        self.requests.append(url)
        final = self.redirects.get(url, url)
        if final not in self.pages:
            return FakeResponse(final, 404, "<html><body>Not Found</body></html>")
        return FakeResponse(final, 200, self.pages[final])

    def driver(self) -> StaticPageDriver:
        return StaticPageDriver(fetch=self.fetch)

    def add_novel(self, units: int, last_links_to: Optional[str] = None) -> "Novel":
        """
        A table of contents at ``BASE_URL`` plus ``units`` chapter pages
        ``c1.html``..``cN.html`` chained by "下一章" links.
        """
        novel = Novel()
        for n in range(1, units + 1):
            heading = f"第{n}章 {UNIT_NAMES[(n - 1) % len(UNIT_NAMES)]}"
            paragraphs = prose(f"u{n}")
            next_href = f"c{n + 1}.html" if n < units else last_links_to
            prev_href = f"c{n - 1}.html" if n > 1 else None
            url = self.add(BASE_URL + f"c{n}.html", chapter_html(heading, paragraphs, next_href, prev_href=prev_href))
            novel.urls.append(url)
            novel.headings.append(heading)
            novel.contents.append("\n".join(paragraphs))
        self.add(BASE_URL, toc_html(BOOK_TITLE, [(f"c{n}.html", novel.headings[n - 1])
                                                  for n in range(1, units + 1)]))
        return novel


class Novel:
    def __init__(self):
        self.urls: List[str] = []
        self.headings: List[str] = []
        self.contents: List[str] = []

    def unit_block(self, index: int) -> str:
        """Expected output for unit ``index`` (0-based)."""
        return f"{self.headings[index]}\n\n{self.contents[index]}\n\n"


class FlakyDriver(PageDriver):
    """
    Wraps a driver and injects failures.

    Args:
        navigation_failures: url → number of navigations to fail
        extraction_failures: urls whose content snapshot raises
        on_navigate: callback invoked with every requested url
        slow_titles: url → seconds spent reading that page's title

    Every evaluated script is recorded as ``(current_url, script, arg)``.
    """

    def __init__(self, inner: PageDriver, navigation_failures=None, extraction_failures=(),
                 on_navigate=None, slow_titles=None):
        self.inner = inner
        self.navigation_failures = dict(navigation_failures or {})
        self.extraction_failures = set(extraction_failures)
        self.on_navigate = on_navigate
        self.slow_titles = dict(slow_titles or {})
        self.navigations: List[str] = []
        self.evaluations: List[tuple] = []

    def navigate(self, url, timeout):
        self.navigations.append(url)
        if self.on_navigate:
            self.on_navigate(url)
        remaining = self.navigation_failures.get(url, 0)
        if remaining:
            self.navigation_failures[url] = remaining - 1
            raise NavigationError(f"simulated failure for {url}", url)
        self.inner.navigate(url, timeout)

    def wait_ready(self, selector, timeout):
        self.inner.wait_ready(selector, timeout)

    def evaluate(self, script, arg=None):
        self.evaluations.append((self.inner.current_url(), script, arg))
        if script == scripts.CONTENT_BLOCKS and self.inner.current_url() in self.extraction_failures:
            raise BrowserError("simulated script failure")
        return self.inner.evaluate(script, arg)

    def title(self):
        delay = self.slow_titles.get(self.inner.current_url())
        if delay:
            time.sleep(delay)
        return self.inner.title()

    def scripts_on(self, url):
        return [script for page, script, _ in self.evaluations if page == url]

    def current_url(self):
        return self.inner.current_url()


class RecordingSleeper:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def site():
    return InMemorySite()


@pytest.fixture
def config(tmp_path):
    return CrawlerRunConfig(static=True, output_dir=str(tmp_path))


@pytest.fixture
def pacer(config):
    return NoDelayPacer(config)


@pytest.fixture
def sleeper():
    return RecordingSleeper()
