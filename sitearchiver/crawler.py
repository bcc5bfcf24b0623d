"""Core crawl engine - BFS queue, deduplication, persistence and pacing."""

import logging
from collections import deque

from .browser import create_session
from .config import SUCCESS_STATUS_CODES, CrawlParams
from .errors import PersistenceFailure
from .fetcher import FetchFailed, FetchStrategy
from .file_saver import LocalFileSystem, persist, storage_url
from .link_extractor import get_link_extractor
from .pacing import pace
from .url_resolver import filter_same_domain_links

logger = logging.getLogger(__name__)


class Crawler:
    """Breadth-first website archiver.

    Starts from the seed URL built from the params, fetches each queued URL
    once through a single browser/network session, saves every successful
    response under the output folder and queues the same-domain links found
    in textual responses.

    A URL is queued only if it has never been queued or visited before, and
    is marked visited when dequeued, before it is fetched. Failures of a
    single URL are logged and recorded in ``failed``; only persistence and
    session-start failures abort the run.

    Collaborators can be replaced for testing or alternative backends:
    ``session_factory(params)`` returns an unopened session, ``fs`` is the
    file system capability, ``extractor`` the link extractor and
    ``pacer(base_ms, factor)`` the delay between requests.
    """

    def __init__(
        self,
        params: CrawlParams,
        session_factory=None,
        fs=None,
        extractor=None,
        pacer=pace,
    ):
        self.params = params
        self.session_factory = session_factory or create_session
        self.fs = fs or LocalFileSystem()
        self.extractor = extractor or get_link_extractor(params.parser)
        self.pacer = pacer

        self.queue: deque[str] = deque()
        self.visited: set[str] = set()
        self.queued: set[str] = set()  # All URLs ever added to the queue (dedup)
        self.failed: dict[str, str] = {}
        self.skipped: dict[str, int] = {}  # URL -> non-success status code
        self.saved_count: int = 0  # files written in this run
        self.archived_count: int = 0  # successful responses, written or already on disk

    def crawl(self) -> None:
        """Run the crawl until the queue drains or max_pages is reached.

        Raises:
            SessionInitFailure: If the session cannot be started.
            PersistenceFailure: If the output tree cannot be written.
        """
        params = self.params
        seed = params.seed_url
        self.queue.append(seed)
        self.queued.add(seed)

        logger.info("=" * 70)
        logger.info("  SiteArchiver - Starting crawl")
        logger.info(f"  URL:    {seed}")
        logger.info(f"  Domain: {params.domain_base}{' (strict)' if params.strict_domain else ''}")
        logger.info(f"  Output: {params.output_dir}")
        logger.info(f"  Mode:   {'Browser (Playwright/Chromium)' if params.browser else 'HTTP (requests)'}")
        logger.info(
            f"  Delay: {params.interval_ms:.0f}ms (+{params.interval_factor}) | "
            f"Timeout: {params.timeout_ms}ms | Retries: {params.max_retries}"
        )
        if params.max_pages > 0:
            logger.info(f"  Max pages: {params.max_pages}")
        if params.overwrite:
            logger.info("  Overwrite: ON (replacing existing files)")
        logger.info("=" * 70)

        try:
            self.fs.ensure_directory(params.output_dir)
        except OSError as e:
            raise PersistenceFailure(params.output_dir, str(e)) from e

        session = self.session_factory(params)
        session.open()
        try:
            strategy = FetchStrategy(session, params)
            while self.queue:
                if params.max_pages > 0 and self.archived_count >= params.max_pages:
                    logger.info(f"[LIMIT] Reached max pages limit ({params.max_pages}). Stopping.")
                    break

                url = self.queue.popleft()
                if url in self.visited:
                    continue
                self.visited.add(url)

                self._process_url(strategy, url)
                self.pacer(params.interval_ms, params.interval_factor)
        finally:
            session.close()

        self._log_summary()

    def _process_url(self, strategy: FetchStrategy, url: str) -> None:
        """Fetch, save and extract links from a single URL.

        Args:
            strategy: Fetch strategy bound to the open session.
            url: Canonical URL to process.
        """
        logger.info(f"[{len(self.visited)}] Processing (queue: {len(self.queue)}, saved: {self.saved_count})")
        logger.info(f"  {url}")

        try:
            result = strategy.fetch(url)
            if isinstance(result, FetchFailed):
                logger.error(f"  [FAIL] Failed to process {url}: {result.error}")
                self.failed[url] = result.error
                return

            if result.status not in SUCCESS_STATUS_CODES:
                logger.debug(f"  [HTTP {result.status}] Skipped: {url}")
                self.skipped[url] = result.status
                return

            # Redirect targets count as visited too.
            if result.url != url:
                self.visited.add(result.url)
                self.queued.add(result.url)

            if persist(self.params.output_dir, storage_url(result.url), result.body,
                       self.params.overwrite, fs=self.fs):
                self.saved_count += 1
            self.archived_count += 1

            if result.binary:
                return

            links = self.extractor.extract(result.text)
            logger.debug(f"  Extracted {len(links)} link(s)")
            self._enqueue(filter_same_domain_links(result.url, links, self.params), len(links))

        except PersistenceFailure:
            raise
        except Exception as e:
            logger.error(f"  [FAIL] Failed to process {url}: {e}")
            self.failed[url] = str(e)

    def _enqueue(self, links: list[str], found: int) -> None:
        new_count = 0
        for link in links:
            if link in self.visited or link in self.queued:
                continue
            self.queue.append(link)
            self.queued.add(link)
            new_count += 1
            logger.debug(f"    + {link}")

        if new_count > 0:
            logger.info(f"  [LINKS] Queued {new_count} new same-domain URLs (from {found} links)")
        else:
            logger.debug(f"  [LINKS] Found {found} links, none new")

    def _log_summary(self) -> None:
        logger.info("=" * 70)
        logger.info("  Crawl Complete")
        logger.info(f"  Files saved:   {self.saved_count}")
        logger.info(f"  URLs archived: {self.archived_count}")
        logger.info(f"  URLs visited:  {len(self.visited)}")
        logger.info(f"  Unique URLs:   {len(self.queued)}")
        logger.info(f"  URLs skipped:  {len(self.skipped)}")
        logger.info(f"  URLs failed:   {len(self.failed)}")
        logger.info(f"  Output folder: {self.params.output_dir}")
        logger.info("=" * 70)

        if self.failed:
            logger.info("  Failed URLs:")
            for url, reason in self.failed.items():
                logger.info(f"    [{reason[:100]}] {url}")
