"""
Tests for extractor.py: noise rejection, density scoring, trailing trim.
"""

import pytest

from chapter_crawler import scripts
from chapter_crawler.errors import BrowserError, ExtractionError
from chapter_crawler.extractor import (
    BlockCandidate,
    ContentExtractor,
    collapse_whitespace,
    rejection_reason,
    trim_trailing_noise,
)

from conftest import BASE_URL, prose

PROSE = "\n".join(prose("x"))


def block(text, **kwargs):
    return BlockCandidate(text=text, **kwargs)


class TestRejectionRules:
    """Each noise signature rejects its block."""

    def test_metadata_block(self):
        text = "作者：X 分类：Y 更新：Z 字数：W " + "简介" * 200
        assert rejection_reason(block(text)) == "metadata"

    def test_partial_metadata_survives(self):
        assert rejection_reason(block("作者：X " + PROSE)) is None

    def test_navigation_cluster(self):
        assert rejection_reason(block("上一章 目录 下一章 " + PROSE)) == "navigation"
        assert rejection_reason(block("Previous Chapter | Table of Contents | Next Chapter")) == "navigation"

    def test_promotion_block(self):
        assert rejection_reason(block("投推荐票 " + PROSE)) == "promotion"

    def test_hidden_and_structural(self):
        assert rejection_reason(block(PROSE, hidden=True)) == "hidden"
        assert rejection_reason(block(PROSE, excluded=True)) == "structural"

    def test_first_rule_wins(self):
        assert rejection_reason(block("上一章 目录 下一章", hidden=True)) == "hidden"


class TestSelect:
    """Candidate scoring."""

    def test_prose_beats_metadata(self):
        metadata = block("作者：X 分类：Y 更新：Z 字数：W\n" + "书名" * 300, id="info")
        content = block(PROSE, id="content")
        assert ContentExtractor().select([metadata, content]).id == "content"

    def test_density_prefers_contiguous_prose(self):
        link_list = block("\n".join(["链接"] * 400), id="links")
        content = block(PROSE, id="content")
        assert ContentExtractor().select([link_list, content]).id == "content"

    def test_threshold_is_exclusive(self):
        extractor = ContentExtractor(min_length=300)
        assert extractor.select([block("字" * 300)]) is None
        assert extractor.select([block("字" * 301)]) is not None

    def test_nothing_survives(self):
        assert ContentExtractor().select([block("短")]) is None


class TestCleaning:
    """Whitespace collapse and trailing navigation trimming."""

    def test_trailing_noise_removed_prose_preserved(self):
        lines = ["第一段正文。", "第二段正文。", "正文结束", "下一章", "目录"]
        assert trim_trailing_noise("\n".join(lines)) == "第一段正文。\n第二段正文。\n正文结束"

    def test_scan_stops_at_first_clean_line(self):
        text = "开头提到目录\n中间正文\n下一页"
        assert trim_trailing_noise(text) == "开头提到目录\n中间正文"

    def test_scan_window_limited(self):
        lines = ["正文"] + ["下一章"] * 12
        assert trim_trailing_noise("\n".join(lines), max_lines=10) == "\n".join(["正文"] + ["下一章"] * 2)

    def test_blank_trailing_lines_dropped(self):
        assert trim_trailing_noise("正文\n\n小说网更新速度全网最快。\n") == "正文"

    def test_collapse_keeps_newlines(self):
        assert collapse_whitespace("  a \t b  \n\n c   d ") == "a b\n\nc d"


class FakeDriver:
    def __init__(self, records=None, body="", fail=False):
        self.records = records or []
        self.body = body
        self.fail = fail
        self.scripts = []

    def evaluate(self, script, arg=None):
        if self.fail:
            raise BrowserError("page crashed")
        self.scripts.append(script)
        if script == scripts.CONTENT_BLOCKS:
            return self.records
        return self.body


class TestExtract:
    """Extraction against a driver."""

    def test_selected_block_is_cleaned(self):
        driver = FakeDriver(records=[{'tag': 'div', 'id': 'content', 'text': PROSE + "\n下一章\n目录"}])
        assert ContentExtractor().extract(driver) == PROSE

    def test_falls_back_to_body_text(self):
        driver = FakeDriver(records=[], body="短正文\n  第二行  \n上一页")
        assert ContentExtractor().extract(driver) == "短正文\n第二行"

    def test_script_failure_raises_extraction_error(self):
        with pytest.raises(ExtractionError):
            ContentExtractor().extract(FakeDriver(fail=True))

    def test_static_page_selects_prose(self, site):
        paragraphs = prose("static")
        site.add(BASE_URL + "p.html", f"""<html><body>
<div class="info">作者：某人 分类：玄幻 更新：今天 字数：十万 {'简介' * 200}</div>
<div id="content">{''.join(f'<p>{p}</p>' for p in paragraphs)}</div>
<div style="display:none">{'隐藏的广告文字' * 100}</div>
<nav>{'导航' * 200}</nav>
</body></html>""")
        with site.driver() as driver:
            driver.navigate(BASE_URL + "p.html", timeout=5)
            assert ContentExtractor().extract(driver) == "\n".join(paragraphs)

    @pytest.mark.parametrize("style", ["display:none", "opacity:0", "visibility: hidden"])
    def test_block_inside_hidden_ancestor_ignored(self, site, style):
        paragraphs = prose("nested", paragraphs=6)
        site.add(BASE_URL + "p.html", f"""<html><body>
<div id="content">{''.join(f'<p>{p}</p>' for p in paragraphs)}</div>
<section style="{style}"><div><div id="ad">{'广告文字' * 120}</div></div></section>
</body></html>""")
        with site.driver() as driver:
            driver.navigate(BASE_URL + "p.html", timeout=5)
            assert ContentExtractor().extract(driver) == "\n".join(paragraphs)
