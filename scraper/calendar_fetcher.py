"""Headless-browser fetcher for the spreadsheet-backed school calendar."""
import logging
from typing import Any, Callable, Dict, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from processor.models import CalendarPayload
from scraper.wire_decoder import DecodeError, decode_first

logger = logging.getLogger(__name__)


class CalendarFetchError(RuntimeError):
    """Raised when the calendar page could not be loaded or decoded."""


class CalendarFetcher:
    """Loads the calendar page and captures the backend callback frames."""

    BLOCKED_RESOURCE_TYPES = ('image', 'stylesheet', 'font', 'media')
    BROWSER_ARGS = [
        '--no-sandbox',
        '--disable-setuid-sandbox',
        '--disable-dev-shm-usage',
        '--disable-gpu',
        '--no-first-run',
        '--no-zygote',
    ]

    def __init__(
        self,
        calendar_url: str,
        timeout: int = 30,
        settle_seconds: float = 2,
        callback_pattern: str = 'callback?',
        playwright_factory: Optional[Callable[[], Any]] = None
    ):
        """
        Initialize the calendar fetcher.

        Args:
            calendar_url: URL of the rendered calendar page
            timeout: Page load timeout in seconds (default: 30)
            settle_seconds: Extra wait after load for late callbacks (default: 2)
            callback_pattern: URL substring identifying backend callbacks
            playwright_factory: Context manager factory for Playwright
                (default: playwright.sync_api.sync_playwright)
        """
        self.calendar_url = calendar_url
        self.timeout = timeout
        self.settle_seconds = settle_seconds
        self.callback_pattern = callback_pattern
        self._playwright_factory = playwright_factory or sync_playwright

    def fetch_payload(self) -> CalendarPayload:
        """
        Load the calendar once and decode its payload.

        Returns:
            CalendarPayload decoded from the first matching frame

        Raises:
            CalendarFetchError: If the page fails to load or no frame decodes
        """
        frames = self.collect_frames()
        logger.info(f"Collected {len(frames)} callback frames")

        try:
            return decode_first(frames)
        except DecodeError as e:
            raise CalendarFetchError(
                f"Failed to intercept calendar data: {e}"
            ) from e

    def fetch_events(self, section: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Fetch raw event records, optionally pre-filtered to one section.

        Args:
            section: Section identifier to keep (default: keep all)

        Returns:
            List of raw backend event records
        """
        events = self.fetch_payload().events
        if section is not None:
            events = [
                event for event in events
                if (event.get('extendedProps') or {}).get('sectionID') == section
            ]
        logger.info(f"Fetched {len(events)} raw events")
        return events

    def collect_frames(self) -> List[str]:
        """
        Drive one page load and return the bodies of all callback responses.

        A navigation timeout is not fatal here: the frames captured up to
        that point are returned and the decoder decides. The browser is
        always closed.

        Returns:
            Response bodies in the order they were observed

        Raises:
            CalendarFetchError: If the browser fails for any reason other
                than the navigation timeout
        """
        if not self.calendar_url:
            raise CalendarFetchError('Calendar URL is not configured')

        responses = []

        def _on_response(response):
            if self.callback_pattern in response.url:
                responses.append(response)

        try:
            with self._playwright_factory() as playwright:
                browser = playwright.chromium.launch(
                    headless=True,
                    args=self.BROWSER_ARGS
                )
                try:
                    page = browser.new_page()
                    page.route('**/*', self._route_request)
                    page.on('response', _on_response)

                    logger.info(f"Loading calendar page (timeout {self.timeout}s)")
                    try:
                        page.goto(
                            self.calendar_url,
                            wait_until='networkidle',
                            timeout=self.timeout * 1000
                        )
                        page.wait_for_timeout(self.settle_seconds * 1000)
                    except PlaywrightTimeoutError as e:
                        # Long-polling pages never go idle; decode what arrived
                        logger.warning(
                            f"Calendar page did not settle within {self.timeout}s, "
                            f"decoding {len(responses)} captured frames: {e}"
                        )

                    return self._read_bodies(responses)
                finally:
                    browser.close()

        except PlaywrightError as e:
            logger.error(f"Calendar page load failed: {e}")
            raise CalendarFetchError(f"Calendar page load failed: {e}") from e

    def _route_request(self, route) -> None:
        if route.request.resource_type in self.BLOCKED_RESOURCE_TYPES:
            route.abort()
        else:
            route.continue_()

    def _read_bodies(self, responses) -> List[str]:
        bodies = []
        for response in responses:
            try:
                bodies.append(response.text())
            except PlaywrightError as e:
                # Redirects and aborted requests have no body
                logger.debug(f"Could not read body of {response.url}: {e}")
        return bodies
