"""Browser/network sessions used by the fetch strategy.

Two interchangeable sessions are provided:
- PlaywrightSession: Chromium via Playwright, renders pages and can record
  the full network traffic of the run into a HAR archive.
- RequestsSession: plain HTTP via requests, no rendering.

Both expose ``navigate`` / ``raw_fetch`` returning a BrowserResponse and are
context managers that release every resource on exit.
"""

import logging
import os
from dataclasses import dataclass, field

import requests
import urllib3
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import CrawlParams
from .errors import FetchFailure, SessionInitFailure

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36 SiteArchiver/1.0"
)

COOKIE_CONSENT_SELECTORS = [
    'button:has-text("Accept")',
    'button:has-text("Accept all")',
    "button#accept-choices",
    "button.cookie-accept",
    'a:has-text("Accept Cookies")',
    "#onetrust-accept-btn-handler",
]


@dataclass
class BrowserResponse:
    """Transport-level view of one response."""

    url: str  # final URL, after redirects
    status: int
    headers: dict = field(default_factory=dict)  # lower-case header names
    body: bytes | None = None


class PlaywrightSession:
    """Chromium session: one browser, one context, one page for the whole run."""

    renders = True

    def __init__(self, params: CrawlParams):
        self.params = params
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def __enter__(self) -> "PlaywrightSession":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        """Start Playwright, launch Chromium and open the crawl page.

        Raises:
            SessionInitFailure: If any step fails. Partially started
                resources are released first.
        """
        params = self.params
        width, height = params.viewport
        mode_label = "headless" if params.headless else "headed"
        logger.info(f"[BROWSER] Starting Chromium ({mode_label})...")

        launch_options = {"headless": params.headless}
        if params.proxy:
            launch_options["proxy"] = {"server": params.proxy}

        context_options = {
            "viewport": {"width": width, "height": height},
            "ignore_https_errors": True,
            "accept_downloads": True,
            "user_agent": USER_AGENT,
        }
        if params.record_har:
            os.makedirs(params.output_dir, exist_ok=True)
            context_options.update(
                record_har_path=params.har_path,
                record_har_content="embed",
                record_har_mode="full",
            )
            logger.info(f"[BROWSER] Recording network traffic to {params.har_path}")

        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(**launch_options)
            self._context = self._browser.new_context(**context_options)
            self._page = self._context.new_page()
        except (PlaywrightError, OSError) as e:
            self.close()
            raise SessionInitFailure(f"Failed to start browser: {e}") from e
        logger.info("[BROWSER] Ready.")

    def navigate(self, url: str, timeout_ms: int) -> BrowserResponse | None:
        """Load ``url`` in the page, returning once the response is committed.

        Returns:
            The navigation response, or None when the browser produced none
            (e.g. same-document navigation).

        Raises:
            FetchFailure: On navigation errors and timeouts.
        """
        logger.debug(f"  [GOTO] {url}")
        try:
            response = self._page.goto(url, timeout=timeout_ms, wait_until="commit")
            if response is None:
                return None
            body = response.body()
        except PlaywrightError as e:
            raise FetchFailure(url, str(e)) from e

        if self.params.accept_cookies:
            self.dismiss_cookie_consent()

        return BrowserResponse(
            url=self._page.url,
            status=response.status,
            headers=dict(response.headers),
            body=body,
        )

    def raw_fetch(self, url: str, timeout_ms: int, max_retries: int) -> BrowserResponse:
        """Fetch ``url`` through the context's request API, without rendering.

        Raises:
            FetchFailure: On network errors once Playwright's retries are spent.
        """
        logger.debug(f"  [FETCH] {url}")
        try:
            response = self._page.request.fetch(url, timeout=timeout_ms, max_retries=max_retries)
            try:
                return BrowserResponse(
                    url=response.url,
                    status=response.status,
                    headers=dict(response.headers),
                    body=response.body(),
                )
            finally:
                response.dispose()
        except PlaywrightError as e:
            raise FetchFailure(url, str(e)) from e

    def dismiss_cookie_consent(self) -> bool:
        """Click the first visible cookie-consent button, if any.

        Returns:
            True if a consent button was clicked.
        """
        for selector in COOKIE_CONSENT_SELECTORS:
            try:
                self._page.wait_for_selector(selector, state="visible", timeout=2000)
                self._page.click(selector)
            except PlaywrightError:
                continue
            logger.info(f"  [COOKIES] Accepted cookies using selector: {selector}")
            self._page.wait_for_timeout(1000)
            return True
        return False

    def close(self) -> None:
        """Close page, context, browser and driver. Safe to call repeatedly."""
        # The context must close before the browser for the HAR file to be written.
        for name in ("_page", "_context", "_browser"):
            resource = getattr(self, name)
            if resource is None:
                continue
            try:
                resource.close()
            except PlaywrightError as e:
                logger.debug(f"[BROWSER] Ignoring error while closing {name.strip('_')}: {e}")
            setattr(self, name, None)

        if self._playwright is not None:
            try:
                self._playwright.stop()
            except PlaywrightError as e:
                logger.debug(f"[BROWSER] Ignoring error while stopping Playwright: {e}")
            self._playwright = None
            logger.info("[BROWSER] Closed.")


class RequestsSession:
    """Plain HTTP session. Both operations are GET requests."""

    renders = False

    def __init__(self, params: CrawlParams):
        self.params = params
        self.session: requests.Session | None = None

    def __enter__(self) -> "RequestsSession":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        params = self.params
        session = requests.Session()
        session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Accept-Encoding": "gzip, deflate",
        })

        retry = Retry(
            total=params.max_retries,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("GET", "HEAD"),
            raise_on_status=False,
            respect_retry_after_header=True,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        if params.proxy:
            session.proxies.update({"http": params.proxy, "https": params.proxy})
        # TLS errors are tolerated the same way the browser session does.
        session.verify = False
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        self.session = session
        logger.info("[HTTP] Session ready.")

    def _get(self, url: str, timeout_ms: int) -> BrowserResponse:
        try:
            response = self.session.get(url, timeout=timeout_ms / 1000, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            raise FetchFailure(url, str(e)) from e

        return BrowserResponse(
            url=response.url,
            status=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=response.content,
        )

    def navigate(self, url: str, timeout_ms: int) -> BrowserResponse:
        logger.debug(f"  [GET] {url}")
        return self._get(url, timeout_ms)

    def raw_fetch(self, url: str, timeout_ms: int, max_retries: int) -> BrowserResponse:
        # Retries come from the adapter mounted in open().
        logger.debug(f"  [GET] {url}")
        return self._get(url, timeout_ms)

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None


def create_session(params: CrawlParams):
    """Default session factory: Playwright when ``params.browser``, else requests."""
    if params.browser:
        return PlaywrightSession(params)
    return RequestsSession(params)
