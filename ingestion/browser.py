"""
Headless browser session used by the scraping sources.

One session is opened per job and always closed when the job ends, even if
initialization itself failed half-way.
"""

import asyncio
import re
from typing import Optional
from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)
from core.config import settings
from core.exceptions import BrowserError
from ingestion.http_client import RateLimitedClient
import logging

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]

VIEWPORT = {"width": 1920, "height": 1080}


class BrowserSession:
    """
    Owns the Playwright driver, browser, context and page for one job.

    Navigation goes through a RateLimitedClient so that page loads share
    the same retry contract as HTTP calls.
    """

    def __init__(
        self,
        client: Optional[RateLimitedClient] = None,
        headless: bool = settings.BROWSER_HEADLESS,
        timeout_ms: int = settings.BROWSER_TIMEOUT_MS,
    ):
        self._owns_client = client is None
        self.client = client or RateLimitedClient("browser")
        self.headless = headless
        self.timeout_ms = timeout_ms
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self) -> "BrowserSession":
        try:
            await self.initialize()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise BrowserError("Browser session not initialized")
        return self._page

    async def initialize(self):
        """Launch chromium and open a single page."""
        logger.info("Launching headless browser")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=LAUNCH_ARGS,
            )
            self._context = await self._browser.new_context(
                viewport=VIEWPORT,
                user_agent=settings.USER_AGENT,
                locale="fr-FR",
            )
            self._page = await self._context.new_page()
            self._page.set_default_timeout(self.timeout_ms)
        except Exception as e:
            raise BrowserError(
                "Failed to initialize browser",
                context={"headless": self.headless},
                original_exception=e
            )

    async def navigate(self, url: str):
        """Load ``url`` and require a 200 response, retrying through the client."""

        async def goto():
            response = await self.page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.timeout_ms,
            )
            status = response.status if response is not None else None
            if status != 200:
                raise BrowserError(
                    f"Navigation returned status {status}",
                    context={"url": url, "status_code": status}
                )
            return response

        await self.client.call(goto, description=f"navigate {url}")

    async def wait_for_content(self, timeout_ms: int = 10000):
        """Give client-side rendering a chance to settle."""
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug("Network did not go idle, proceeding anyway")

    async def handle_cookie_consent(self):
        """Accept the Funding Choices banner if it shows up."""
        try:
            await self.page.wait_for_selector(".fc-consent-root", timeout=5000)
            await self.page.click(".fc-cta-consent", timeout=5000)
            logger.debug("Cookie consent accepted")
        except PlaywrightTimeoutError:
            logger.debug("No cookie consent banner found")

    async def handle_tarteaucitron_consent(self):
        """Refuse all cookies on tarteaucitron banners."""
        try:
            await self.page.get_by_text(
                re.compile(r".*Tout.*refuser.*", re.IGNORECASE)
            ).first.click(timeout=5000)
            logger.debug("Tarteaucitron cookies refused")
        except PlaywrightTimeoutError:
            logger.debug("No tarteaucitron banner found")

    async def delay(self, seconds: float):
        await asyncio.sleep(seconds)

    async def close(self):
        """Release everything that was acquired; never raises."""
        for name, resource in (
            ("page", self._page),
            ("context", self._context),
            ("browser", self._browser),
        ):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Error closing browser {name}: {e}")

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping playwright: {e}")

        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

        if self._owns_client:
            await self.client.close()
        logger.info("Browser closed")
