"""CLI entry point for SiteArchiver.

Usage:
    python -m sitearchiver [--domain-base HOST] [--output-dir PATH] [options]

Every option falls back to the matching environment variable (a .env file in
the working directory is loaded first), then to the built-in default.
"""

import argparse
import dataclasses
import logging
import os
import sys
from typing import Mapping, Optional

from dotenv import load_dotenv

from .config import CrawlParams
from .crawler import Crawler
from .errors import ArchiverError
from .logger import setup_logger

logger = logging.getLogger("sitearchiver")


def parse_args(argv: list[str] | None = None,
               environ: Optional[Mapping[str, str]] = None) -> tuple[CrawlParams, bool]:
    """Parse command-line arguments on top of the environment configuration.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).
        environ: Environment mapping (defaults to os.environ).

    Returns:
        The resulting CrawlParams and the verbose flag.
    """
    parser = argparse.ArgumentParser(
        prog="sitearchiver",
        description="SiteArchiver - Breadth-first website archiver mirroring a site's URL hierarchy on disk.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Archive a local development server (https://localhost:8080/)
  python -m sitearchiver

  # Archive a public site over plain HTTP requests, without a browser
  python -m sitearchiver --domain-base example.com --port 443 --no-browser

  # Re-run and replace previously archived files, recording a HAR capture
  python -m sitearchiver --domain-base example.com --port 443 --overwrite --record-har
        """,
    )

    parser.add_argument("--protocol", choices=["http", "https"], help="Protocol of the seed URL (default: https)")
    parser.add_argument("--domain-base", help="Domain that discovered links must belong to (default: localhost)")
    parser.add_argument("--domain-start", help="Host of the seed URL (default: the base domain)")
    parser.add_argument("--start-path", help="Path of the seed URL (default: /)")
    parser.add_argument("--port", type=int, help="Port of the seed URL (default: 8080)")
    parser.add_argument("--output-dir", help="Root folder of the archive (default: ./site_archive)")
    parser.add_argument(
        "--overwrite",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Replace files that already exist in the archive (default: false)",
    )
    parser.add_argument("--interval", type=float, help="Milliseconds to wait between requests (default: 5000)")
    parser.add_argument("--interval-factor", type=float, help="Random extra milliseconds added to the interval (default: 0.5)")
    parser.add_argument("--timeout", type=int, help="Per-request timeout in milliseconds (default: 60000)")
    parser.add_argument("--max-retries", type=int, help="Retries for a single request (default: 20)")
    parser.add_argument("--proxy", help="Proxy server, e.g. http://proxy:3128")
    parser.add_argument(
        "--strict-domain",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Only follow the base domain and its subdomains, not every host containing it",
    )
    parser.add_argument(
        "--browser",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Use Chromium (Playwright) to fetch pages (default: true). Use --no-browser for plain HTTP.",
    )
    parser.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run the browser without a window (default: false)",
    )
    parser.add_argument(
        "--record-har",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Record all network traffic to <output-dir>/<domain-base>.har (browser only)",
    )
    parser.add_argument(
        "--accept-cookies",
        action="store_true",
        default=None,
        help="Try to dismiss cookie-consent dialogs after each navigation (browser only)",
    )
    parser.add_argument(
        "--parser",
        choices=["regex", "soup"],
        help="Link extraction: regex attribute scan (default) or BeautifulSoup document walk",
    )
    parser.add_argument("--max-pages", type=int, help="Maximum number of URLs to archive (0 = unlimited)")
    parser.add_argument("--verbose", action="store_true", default=False, help="Show debug output on the console")

    args = parser.parse_args(argv)
    env = os.environ if environ is None else environ
    params = CrawlParams.from_env(env)

    overrides = {
        "protocol": args.protocol,
        "domain_base": args.domain_base,
        "domain_start": args.domain_start,
        "start_path": args.start_path,
        "port": args.port,
        "output_dir": args.output_dir,
        "overwrite": args.overwrite,
        "interval_ms": args.interval,
        "interval_factor": args.interval_factor,
        "timeout_ms": args.timeout,
        "max_retries": args.max_retries,
        "proxy": args.proxy,
        "strict_domain": args.strict_domain,
        "browser": args.browser,
        "headless": args.headless,
        "record_har": args.record_har,
        "accept_cookies": args.accept_cookies,
        "parser": args.parser,
        "max_pages": args.max_pages,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    # An explicit base domain also moves the seed host unless one was given
    # on the command line or in DOMAIN_START.
    if "domain_base" in overrides and "domain_start" not in overrides and not env.get("DOMAIN_START"):
        overrides["domain_start"] = overrides["domain_base"]

    return dataclasses.replace(params, **overrides), args.verbose


def execute_crawl(params: CrawlParams, **crawler_options) -> Crawler:
    """Run one crawl, logging its start and outcome.

    Raises:
        Exception: Any error that ends the run is logged, then re-raised.
    """
    logger.info(f"---------- Starting crawl for {params.domain_base} ----------")
    crawler = Crawler(params, **crawler_options)
    try:
        crawler.crawl()
    except Exception as e:
        logger.error(f"***** Crawl failed for {params.domain_base}: {e} *****")
        raise
    logger.info(f"---------- Crawl completed successfully for {params.domain_base} ----------")
    return crawler


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    load_dotenv()
    try:
        params, verbose = parse_args(argv)
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(2)

    setup_logger(level=logging.DEBUG if verbose else logging.INFO)

    try:
        execute_crawl(params)
    except ArchiverError:
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("[INTERRUPTED] Crawl stopped by user.")
        sys.exit(1)


if __name__ == "__main__":
    main()
