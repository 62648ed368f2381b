#!/usr/bin/env python3
"""
Command-line interface
======================
Three independent operations, each with its own browser session:

    python -m chapter_crawler search <keyword>
    python -m chapter_crawler visit <url>
    python -m chapter_crawler download <toc-url> [--output-dir DIR]

All configuration flows through ``CrawlerRunConfig``.
"""

import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

from .operations import search, traverse_document, visit_single_page
from .pacing import NoDelayPacer, Pacer
from .run_config import CrawlerRunConfig

logger = logging.getLogger(__name__)


def _load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / '.env'
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()  # tries CWD


def _normalize_url(url: str) -> str:
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url
    return url


def print_summary(result) -> None:
    """Print traversal summary."""
    stats = result.stats
    print("\n" + "=" * 65)
    print(f"DOWNLOAD {result.terminal.name}")
    print("=" * 65)
    print(f"  Output file:         {result.output_path or '-'}")
    print(f"  Units written:       {stats.get('units_written', 0)}")
    print(f"  Pages written:       {stats.get('pages_written', 0)}")
    if stats.get('pages_failed', 0) > 0:
        print(f"  Error placeholders:  {stats.get('pages_failed', 0)}")
    if stats.get('retries', 0) > 0:
        print(f"  Navigation retries:  {stats.get('retries', 0)}")
    if stats.get('total_units', -1) > 0:
        print(f"  Units in TOC:        {stats['total_units']}")
    print(f"  Total time:          {stats.get('elapsed_time', 0):.1f}s")
    print(f"  Stop reason:         {result.reason}")
    print("=" * 65)


def build_parser() -> argparse.ArgumentParser:
    defaults = CrawlerRunConfig()
    parser = argparse.ArgumentParser(
        prog='chapter_crawler',
        description='Serialized web novel crawler: search, visit a page, or download a whole book',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m chapter_crawler search 诡秘之主
  python -m chapter_crawler visit https://example.com/article/42
  python -m chapter_crawler download https://example.com/book/123/ --output-dir books
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    browser_group = parser.add_argument_group('Browser')
    browser_group.add_argument('--headed', action='store_true', help='Show the browser window')
    browser_group.add_argument(
        '--static', action='store_true',
        help='Fetch with requests + BeautifulSoup instead of Chromium (server-rendered sites only)',
    )
    browser_group.add_argument(
        '--timeout', type=float, default=defaults.operation_timeout_seconds,
        help=f'Whole-operation timeout for search/visit in seconds (default: {defaults.operation_timeout_seconds})',
    )

    sub = parser.add_subparsers(dest='command', required=True)

    p_search = sub.add_parser('search', help='Search for a title and print result links')
    p_search.add_argument('keyword')

    p_visit = sub.add_parser('visit', help='Print the visible text of one page')
    p_visit.add_argument('url')
    p_visit.add_argument(
        '--settle', type=float, default=defaults.visit_settle_seconds,
        help=f'Seconds to let the page settle (default: {defaults.visit_settle_seconds:.0f})',
    )

    p_download = sub.add_parser('download', help='Download every unit starting from a table of contents')
    p_download.add_argument('url')
    p_download.add_argument('--output-dir', type=str, default=None, help='Directory for the text file')
    p_download.add_argument(
        '--unit-timeout', type=float, default=defaults.unit_timeout_seconds,
        help=f'Per-unit timeout in seconds (default: {defaults.unit_timeout_seconds})',
    )
    p_download.add_argument(
        '--max-retries', type=int, default=defaults.max_retries,
        help=f'Navigation attempts per unit (default: {defaults.max_retries})',
    )
    p_download.add_argument(
        '--min-delay', type=float, default=defaults.min_page_delay,
        help=f'Minimum delay between pages (default: {defaults.min_page_delay:.0f}s)',
    )
    p_download.add_argument(
        '--max-delay', type=float, default=defaults.max_page_delay,
        help=f'Maximum delay between pages (default: {defaults.max_page_delay:.0f}s)',
    )
    p_download.add_argument(
        '--no-delay', action='store_true',
        help='Disable page delays and scroll pauses (retry backoff still applies)',
    )
    return parser


def run_cli_with_args(argv=None) -> None:
    """Parse argv, build CrawlerRunConfig, run one operation."""
    _load_env()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )

    cfg = CrawlerRunConfig.from_cli_args(args)

    if args.command == 'search':
        cfg.log_summary(args.keyword, operation="search")
        search(args.keyword, cfg)
    elif args.command == 'visit':
        url = _normalize_url(args.url)
        cfg.log_summary(url, operation="visit")
        visit_single_page(url, cfg)
    else:
        url = _normalize_url(args.url)
        pacer = NoDelayPacer(cfg) if args.no_delay else Pacer(cfg)
        try:
            result = traverse_document(url, cfg, pacer=pacer)
        except KeyboardInterrupt:
            logger.warning("Interrupted, partial output kept on disk")
            return
        if result is not None:
            print_summary(result)


if __name__ == '__main__':
    run_cli_with_args()
