"""
Tests for locator.py: next-link strategies, first-unit discovery, TOC harvest.
"""

import pytest

from chapter_crawler.errors import BrowserError, HarvestError, LocatorExhausted
from chapter_crawler.locator import (
    LinkCandidate,
    NextLinkLocator,
    is_excluded,
    is_page_continuation,
    resolve,
)

from conftest import BASE_URL, toc_html

CURRENT = "https://novel.test/b/42/c5.html"


def link(href, text="", **kwargs):
    return LinkCandidate(href=href, text=text, **kwargs)


@pytest.fixture
def locator():
    return NextLinkLocator()


class TestChooseNext:
    """Ordered next-link strategies with exclusion."""

    def test_keyword_match(self, locator):
        found = locator.choose_next([link("c4.html", "上一章"), link("c6.html", "下一章")], "第5章", CURRENT)
        assert found.url == "https://novel.test/b/42/c6.html"
        assert found.strategy == "keyword"

    def test_page_keyword_preferred_over_unit_keyword(self, locator):
        anchors = [link("c6.html", "下一章"), link("c5_2.html", "下一页")]
        assert locator.choose_next(anchors, "第5章", CURRENT).text == "下一页"

    def test_english_keyword_case_insensitive(self, locator):
        found = locator.choose_next([link("/read/6", "Next Chapter »")], "Chapter 5", CURRENT)
        assert found.url == "https://novel.test/read/6"

    def test_attribute_match(self, locator):
        found = locator.choose_next([link("c6.html", "→", cls="btn btn-Next")], "第5章", CURRENT)
        assert found.strategy == "attribute"

    def test_ordinal_match(self, locator):
        anchors = [link("c4.html", "第4章 远行"), link("c6.html", "第6章 夜雨")]
        found = locator.choose_next(anchors, "第5章 归来", CURRENT)
        assert found.strategy == "ordinal"
        assert found.text == "第6章 夜雨"

    def test_ordinal_sentinel_without_title_number(self, locator):
        anchors = [link("c1000.html", "第1000章 终"), link("c6.html", "第6章")]
        assert locator.choose_next(anchors, "无编号", CURRENT).text == "第1000章 终"

    def test_rel_next(self, locator):
        found = locator.choose_next([link("c6.html", "→", rel="next")], "", CURRENT)
        assert found.strategy == "rel"

    def test_excluded_pick_falls_through(self, locator):
        """An excluded keyword hit does not stop the search."""
        anchors = [
            link("/recommend/99.html", "下一章 推荐"),
            link("c6.html", "→", id="pb_next"),
        ]
        found = locator.choose_next(anchors, "第5章", CURRENT)
        assert found.strategy == "attribute"
        assert found.url.endswith("c6.html")

    def test_resolved_against_current_url(self, locator):
        found = locator.choose_next([link("../43/c1.html", "下一章")], "", "https://mirror.test/b/42/c5.html")
        assert found.url == "https://mirror.test/b/43/c1.html"

    def test_non_navigable_links_ignored(self, locator):
        anchors = [link("javascript:void(0)", "下一章"), link("#", "下一页")]
        assert locator.choose_next(anchors, "第5章", CURRENT) is None


class TestHelpers:
    """Exclusion and pagination signal."""

    @pytest.mark.parametrize("href,text", [
        ("https://novel.test/b/42/", "目录"),
        ("https://novel.test/", "首页"),
        ("https://novel.test/related/1.html", "下一章"),
        ("https://novel.test/tuijian/", "热门"),
        ("https://novel.test/book/", "返回"),
        ("https://novel.test/xiaoshuo/index.html", "返回"),
        ("https://novel.test/list/2.html", "下一章"),
        ("https://novel.test/", "Home"),
    ])
    def test_excluded(self, href, text):
        assert is_excluded(link(href, text))

    def test_chapter_link_not_excluded(self):
        assert not is_excluded(link("https://novel.test/book/42/c6.html", "下一章"))

    @pytest.mark.parametrize("text,expected", [
        ("下一页", True),
        ("下一頁", True),
        ("Next Page >", True),
        ("下一章", False),
        ("next chapter", False),
        ("", False),
    ])
    def test_page_continuation(self, text, expected):
        assert is_page_continuation(text) is expected

    def test_resolve_drops_fragment(self):
        assert resolve("c6.html#top", CURRENT) == "https://novel.test/b/42/c6.html"


class TestChooseFirst:
    """First-unit discovery on a table of contents."""

    def test_explicit_first_unit_phrase(self, locator):
        anchors = [link("latest.html", "第99章 最新"), link("c1.html", "第1章 开端")]
        found = locator.choose_first(anchors, [], BASE_URL)
        assert found.strategy == "first-phrase"
        assert found.url == BASE_URL + "c1.html"

    def test_first_phrase_skips_index_links(self, locator):
        anchors = [link("mulu.html", "第一章 目录"), link("c1.html", "第一章 开端")]
        assert locator.choose_first(anchors, [], BASE_URL).url == BASE_URL + "c1.html"

    def test_generic_unit_marker(self, locator):
        anchors = [link("about.html", "简介"), link("c3.html", "第三章 试炼")]
        found = locator.choose_first(anchors, [], BASE_URL)
        assert found.strategy == "unit-marker"

    def test_largest_cluster(self, locator):
        containers = [
            (3, link("nav1.html", "关于")),
            (40, link("read/a.html", "序")),
            (12, link("side/b.html", "其他")),
        ]
        found = locator.choose_first([link("x.html", "登录")], containers, BASE_URL)
        assert found.strategy == "largest-cluster"
        assert found.url == BASE_URL + "read/a.html"

    def test_small_clusters_ignored(self, locator):
        assert locator.choose_first([], [(5, link("a.html", "序"))], BASE_URL) is None


class TestDriverScans:
    """find_next / find_first / harvest_all against a loaded page."""

    def test_harvest_all_dedupes_and_resolves(self, site, locator):
        entries = [("c1.html", "第1章 开端"), ("c2.html", "第2章 风起"),
                   ("c1.html#x", "第1章 开端"), ("/about", "关于本站"), ("c3.html", "第三章 试炼")]
        site.add(BASE_URL, toc_html("书", entries))
        with site.driver() as driver:
            driver.navigate(BASE_URL, timeout=5)
            harvested = locator.harvest_all(driver, BASE_URL)

        assert [e.url for e in harvested] == [BASE_URL + "c1.html", BASE_URL + "c2.html", BASE_URL + "c3.html"]
        assert harvested[2].text == "第三章 试炼"

    def test_find_first_via_cluster(self, site, locator):
        items = "".join(f'<li><a href="r{i}.html">卷首语{i}</a></li>' for i in range(8))
        site.add(BASE_URL, f"<html><body><ul>{items}</ul></body></html>")
        with site.driver() as driver:
            driver.navigate(BASE_URL, timeout=5)
            found = locator.find_first(driver, BASE_URL)
        assert found.url == BASE_URL + "r0.html"

    def test_find_next_uses_page_title(self, site, locator):
        site.add(CURRENT, """<html><head><title>第5章 归来</title></head><body>
<a href="c4.html">第4章</a><a href="c6.html">第6章</a></body></html>""")
        with site.driver() as driver:
            driver.navigate(CURRENT, timeout=5)
            found = locator.find_next(driver, driver.current_url())
        assert found.url == "https://novel.test/b/42/c6.html"

    def test_scan_failures_are_typed(self, locator):
        class BrokenDriver:
            def evaluate(self, script, arg=None):
                raise BrowserError("gone")

            def title(self):
                return ""

        with pytest.raises(LocatorExhausted):
            locator.find_next(BrokenDriver(), CURRENT)
        with pytest.raises(LocatorExhausted):
            locator.find_first(BrokenDriver(), BASE_URL)
        with pytest.raises(HarvestError):
            locator.harvest_all(BrokenDriver(), BASE_URL)
