import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import requests
from playwright.sync_api import Error as PlaywrightError

from sitearchiver.browser import (
    PlaywrightSession,
    RequestsSession,
    create_session,
)
from sitearchiver.config import CrawlParams
from sitearchiver.errors import FetchFailure, SessionInitFailure


class TestCreateSession(unittest.TestCase):
    def test_browser_flag(self):
        self.assertIsInstance(create_session(CrawlParams()), PlaywrightSession)
        self.assertIsInstance(create_session(CrawlParams(browser=False)), RequestsSession)


class TestPlaywrightSession(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.out = tmp.name

        patcher = patch("sitearchiver.browser.sync_playwright")
        self.sync_playwright = patcher.start()
        self.addCleanup(patcher.stop)

        self.playwright = self.sync_playwright.return_value.start.return_value
        self.browser = self.playwright.chromium.launch.return_value
        self.context = self.browser.new_context.return_value
        self.page = self.context.new_page.return_value

    def test_open_launches_with_options(self):
        params = CrawlParams(output_dir=self.out, domain_base="example.com", proxy="http://proxy:3128",
                             headless=True, record_har=True)
        session = PlaywrightSession(params)
        session.open()

        self.playwright.chromium.launch.assert_called_once_with(
            headless=True, proxy={"server": "http://proxy:3128"}
        )
        options = self.browser.new_context.call_args.kwargs
        self.assertEqual(options["viewport"], {"width": 1280, "height": 800})
        self.assertTrue(options["ignore_https_errors"])
        self.assertEqual(options["record_har_path"], os.path.join(self.out, "example.com.har"))
        self.assertEqual(options["record_har_mode"], "full")

    def test_no_proxy_no_har(self):
        PlaywrightSession(CrawlParams(output_dir=self.out)).open()
        self.playwright.chromium.launch.assert_called_once_with(headless=False)
        self.assertNotIn("record_har_path", self.browser.new_context.call_args.kwargs)

    def test_launch_failure(self):
        self.playwright.chromium.launch.side_effect = PlaywrightError("Executable doesn't exist")
        session = PlaywrightSession(CrawlParams(output_dir=self.out))

        with self.assertRaises(SessionInitFailure):
            session.open()
        self.playwright.stop.assert_called_once()

    def test_navigate(self):
        response = self.page.goto.return_value
        response.status = 200
        response.headers = {"content-type": "text/html"}
        response.body.return_value = b"<html></html>"
        self.page.url = "https://localhost:8080/home/"

        with PlaywrightSession(CrawlParams(output_dir=self.out)) as session:
            result = session.navigate("https://localhost:8080/", 1000)

        self.page.goto.assert_called_once_with("https://localhost:8080/", timeout=1000, wait_until="commit")
        self.assertEqual(result.url, "https://localhost:8080/home/")
        self.assertEqual(result.status, 200)
        self.assertEqual(result.body, b"<html></html>")

    def test_navigate_without_response(self):
        self.page.goto.return_value = None
        with PlaywrightSession(CrawlParams(output_dir=self.out)) as session:
            self.assertIsNone(session.navigate("https://localhost:8080/#a", 1000))

    def test_navigate_error(self):
        self.page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        with PlaywrightSession(CrawlParams(output_dir=self.out)) as session:
            with self.assertRaises(FetchFailure) as cm:
                session.navigate("https://nowhere.invalid/", 1000)
        self.assertEqual(cm.exception.url, "https://nowhere.invalid/")

    def test_raw_fetch(self):
        response = self.page.request.fetch.return_value
        response.url = "https://localhost:8080/logo.png"
        response.status = 200
        response.headers = {"content-type": "image/png"}
        response.body.return_value = b"\x89PNG"

        with PlaywrightSession(CrawlParams(output_dir=self.out)) as session:
            result = session.raw_fetch("https://localhost:8080/logo.png", 1000, 5)

        self.page.request.fetch.assert_called_once_with(
            "https://localhost:8080/logo.png", timeout=1000, max_retries=5
        )
        self.assertEqual(result.body, b"\x89PNG")
        response.dispose.assert_called_once()

    def test_cookie_consent(self):
        self.page.wait_for_selector.side_effect = [PlaywrightError("timeout"), None]
        session = PlaywrightSession(CrawlParams(output_dir=self.out))
        session.open()

        self.assertTrue(session.dismiss_cookie_consent())
        self.page.click.assert_called_once_with('button:has-text("Accept all")')

    def test_close_releases_everything_once(self):
        session = PlaywrightSession(CrawlParams(output_dir=self.out))
        session.open()
        self.context.close.side_effect = PlaywrightError("already closed")

        session.close()
        session.close()

        self.page.close.assert_called_once()
        self.context.close.assert_called_once()
        self.browser.close.assert_called_once()
        self.playwright.stop.assert_called_once()


class TestRequestsSession(unittest.TestCase):
    def test_open_configures_retries_and_proxy(self):
        session = RequestsSession(CrawlParams(browser=False, max_retries=4, proxy="http://proxy:3128"))
        session.open()
        self.addCleanup(session.close)

        adapter = session.session.get_adapter("https://example.com/")
        self.assertEqual(adapter.max_retries.total, 4)
        self.assertEqual(session.session.proxies["https"], "http://proxy:3128")
        self.assertFalse(session.session.verify)

    def test_get_normalizes_response(self):
        session = RequestsSession(CrawlParams(browser=False))
        session.session = MagicMock()
        reply = session.session.get.return_value
        reply.url = "https://example.com/final"
        reply.status_code = 200
        reply.headers = {"Content-Type": "text/html"}
        reply.content = b"<html></html>"

        result = session.navigate("https://example.com/", 2500)

        session.session.get.assert_called_once_with("https://example.com/", timeout=2.5, allow_redirects=True)
        self.assertEqual(result.url, "https://example.com/final")
        self.assertEqual(result.headers, {"content-type": "text/html"})
        self.assertEqual(result.body, b"<html></html>")

    def test_network_error(self):
        session = RequestsSession(CrawlParams(browser=False))
        session.session = MagicMock()
        session.session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with self.assertRaises(FetchFailure):
            session.raw_fetch("https://example.com/a.zip", 1000, 3)

    def test_renders_flag(self):
        self.assertFalse(RequestsSession.renders)
        self.assertTrue(PlaywrightSession.renders)


if __name__ == "__main__":
    unittest.main()
