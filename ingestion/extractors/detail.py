"""
Base class for scraping one record per detail page.
"""

import asyncio
import random
import re
from abc import ABC, abstractmethod
from typing import List, Optional
from playwright.async_api import Page
from core.config import settings
from ingestion.browser import BrowserSession
from schemas.raw import RawRecord
import logging

logger = logging.getLogger(__name__)


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace and non-breaking spaces."""
    if not text:
        return ""
    text = text.replace("&nbsp;", " ").replace("\u00a0", " ")
    return re.sub(r"\s+", " ", text).strip()


class DetailFetcher(ABC):
    """
    Visit detail pages one after the other and turn each into a raw record.

    A failure on one page is logged and counted; it never stops the batch.
    Pages are spaced by a jittered delay to stay polite with the origin.
    """

    def __init__(
        self,
        session: BrowserSession,
        item_delay: float = settings.SCRAPE_ITEM_DELAY_SECONDS,
        item_jitter: float = settings.SCRAPE_ITEM_JITTER_SECONDS,
        progress_every: int = 10,
    ):
        self.session = session
        self.item_delay = item_delay
        self.item_jitter = item_jitter
        self.progress_every = progress_every
        self.failed = 0
        self.discarded = 0

    @property
    def page(self) -> Page:
        return self.session.page

    async def fetch_all(self, urls: List[str]) -> List[RawRecord]:
        """Fetch every URL; the result may be shorter than ``urls``."""
        records: List[RawRecord] = []
        self.failed = 0
        self.discarded = 0
        total = len(urls)

        logger.info(f"Starting detail scraping for {total} pages")

        for index, url in enumerate(urls):
            if index > 0:
                await asyncio.sleep(self.item_delay + random.uniform(0, self.item_jitter))

            try:
                record = await self.fetch_one(url)
                if record is not None:
                    records.append(record)
                else:
                    self.discarded += 1
            except Exception as e:
                self.failed += 1
                logger.warning(
                    f"Failed to scrape {url} ({index + 1}/{total}): {type(e).__name__}: {e}"
                )

            if (index + 1) % self.progress_every == 0:
                logger.info(
                    f"Detail scraping progress: {index + 1}/{total} "
                    f"({len(records)} ok, {self.discarded} discarded, {self.failed} failed)"
                )

        logger.info(
            f"Detail scraping complete: {len(records)}/{total} records, "
            f"{self.discarded} discarded, {self.failed} failed"
        )
        return records

    async def fetch_one(self, url: str) -> Optional[RawRecord]:
        await self.session.navigate(url)
        await self.wait_until_ready()
        return await self.extract(url)

    @abstractmethod
    async def wait_until_ready(self):
        """Wait for the page to expose its data (handling consent banners)."""
        pass

    @abstractmethod
    async def extract(self, url: str) -> Optional[RawRecord]:
        """Build the record, or None when a mandatory field is missing."""
        pass
