"""
Harvest detail-page links from listing pages that load more content on
scroll or spread results over numbered pages.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse
from playwright.async_api import Page
from core.config import settings
import logging

logger = logging.getLogger(__name__)


class PageAdvancer(ABC):
    """Moves a listing page forward; returns False when there is nothing left."""

    @abstractmethod
    async def advance(self, page: Page) -> bool:
        pass


class ScrollAdvancer(PageAdvancer):
    """Lazy-loaded listings: scroll to the bottom to trigger the next chunk."""

    async def advance(self, page: Page) -> bool:
        await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
        return True


class PageNumberAdvancer(PageAdvancer):
    """
    Numbered listings: load ``?page=N+1`` as long as the pagination widget
    offers a next page.
    """

    def __init__(
        self,
        base_url: str,
        navigate: Callable,
        start_page: int = 1,
        max_pages: Optional[int] = None,
        next_selector: str = ".pagination-next",
    ):
        self.base_url = base_url
        self.navigate = navigate
        self.current_page = start_page
        self.max_pages = max_pages
        self.next_selector = next_selector

    def page_url(self, number: int) -> str:
        parts = urlparse(self.base_url)
        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        query["page"] = str(number)
        return urlunparse(parts._replace(query=urlencode(query, safe=",")))

    async def has_next_page(self, page: Page) -> bool:
        next_button = await page.query_selector(self.next_selector)
        if next_button is None:
            return False
        classes = await next_button.get_attribute("class") or ""
        return "disabled" not in classes

    async def advance(self, page: Page) -> bool:
        if self.max_pages is not None and self.current_page >= self.max_pages:
            logger.info(f"Reached page limit ({self.max_pages})")
            return False
        if not await self.has_next_page(page):
            logger.info(f"No page after {self.current_page}")
            return False
        self.current_page += 1
        await self.navigate(self.page_url(self.current_page))
        return True


class PaginatedExtractor:
    """
    Repeatedly extract visible links and advance the page until the set of
    harvested links stops growing.

    Attributes:
        link_selector: CSS selector for candidate anchors
        link_filter: Predicate applied to every absolute href
        stagnation_limit: Consecutive iterations without growth before stopping
        max_iterations: Hard cap on extraction rounds
    """

    def __init__(
        self,
        link_selector: str,
        advancer: PageAdvancer,
        link_filter: Optional[Callable[[str], bool]] = None,
        stagnation_limit: int = 2,
        max_iterations: int = settings.SCRAPE_MAX_ITERATIONS,
        base_wait: float = settings.SCRAPE_PAGE_DELAY_SECONDS,
        jitter: float = settings.SCRAPE_PAGE_JITTER_SECONDS,
    ):
        self.link_selector = link_selector
        self.advancer = advancer
        self.link_filter = link_filter
        self.stagnation_limit = stagnation_limit
        self.max_iterations = max_iterations
        self.base_wait = base_wait
        self.jitter = jitter

    async def extract_visible_links(self, page: Page) -> List[str]:
        """Matching links currently in the DOM, deduplicated in page order."""
        hrefs = await page.eval_on_selector_all(
            self.link_selector,
            "elements => elements.map(el => el.href).filter(Boolean)",
        )
        links: Dict[str, None] = {}
        for href in hrefs:
            if self.link_filter is None or self.link_filter(href):
                links.setdefault(href, None)
        return list(links)

    async def extract_all_with_pagination(self, page: Page) -> List[str]:
        """
        Harvest every link reachable from ``page``.

        Order is stable: links from the last extraction round come first,
        followed by links that were only seen in earlier rounds.
        Extraction and wait errors propagate.
        """
        harvested: Dict[str, None] = {}
        last_observed: List[str] = []
        previous_count = 0
        stagnant_iterations = 0

        for iteration in range(1, self.max_iterations + 1):
            last_observed = await self.extract_visible_links(page)
            for link in last_observed:
                harvested.setdefault(link, None)

            current_count = len(harvested)
            logger.info(f"Iteration {iteration}: {len(last_observed)} visible, {current_count} harvested")

            if current_count == previous_count:
                stagnant_iterations += 1
                logger.debug(f"No new links ({stagnant_iterations}/{self.stagnation_limit})")
                if stagnant_iterations >= self.stagnation_limit:
                    logger.info("No new content after repeated attempts, stopping")
                    break
            else:
                stagnant_iterations = 0
            previous_count = current_count

            if not await self.advancer.advance(page):
                break

            await asyncio.sleep(self.base_wait + random.uniform(0, self.jitter))
        else:
            logger.warning(f"Stopped after max_iterations={self.max_iterations}")

        latest = set(last_observed)
        ordered = list(last_observed) + [link for link in harvested if link not in latest]
        logger.info(f"Harvested {len(ordered)} links")
        return ordered
