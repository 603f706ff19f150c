"""
Source definitions: one class per job kind, each turning a SourceJob into raw records.

Scraping sources open a BrowserSession for the duration of the fetch; API
sources own their HTTP clients and release them in ``close``.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type
from core.config import settings
from ingestion.browser import BrowserSession
from ingestion.extractors.ademe import AdemeDpeFetcher
from ingestion.extractors.auctions import AuctionDetailFetcher, LISTING_LINK_SELECTOR as AUCTION_LINKS, is_auction_link
from ingestion.extractors.bodacc import BodaccFetcher
from ingestion.extractors.listings import LISTING_LINK_SELECTOR as NOTARY_LINKS, NotaryListingFetcher, is_listing_link
from ingestion.extractors.paginated import PageNumberAdvancer, PaginatedExtractor, ScrollAdvancer
from models.base import JobKind
from schemas.jobs import SourceJob
from schemas.raw import RawRecord
import logging

logger = logging.getLogger(__name__)

DEFAULT_LISTING_PAGES = 50
DEFAULT_ENERGY_CLASSES = ["F", "G"]


class OpportunitySource(ABC):
    """
    Base class for every source.

    Attributes:
        job_kind: Queue this source serves
        use_refiner: Run AI address refinement on its records
        geocode_missing: Geocode records that come without coordinates
    """

    job_kind: JobKind
    use_refiner: bool = False
    geocode_missing: bool = False

    @abstractmethod
    async def fetch(self, job: SourceJob) -> List[RawRecord]:
        """
        Retrieve every raw record for the job's partition and date window.

        Raises:
            ExtractionError: when the source cannot be read at all
        """
        pass

    async def close(self):
        pass


class AuctionsSource(OpportunitySource):
    """encheres-publiques.com: infinite-scroll listing, then one detail page per lot"""

    job_kind = JobKind.AUCTIONS
    use_refiner = True
    geocode_missing = True

    def __init__(self, listing_url: str = settings.AUCTIONS_LISTING_URL):
        self.listing_url = listing_url

    def create_session(self) -> BrowserSession:
        return BrowserSession()

    async def fetch(self, job: SourceJob) -> List[RawRecord]:
        async with self.create_session() as session:
            await session.navigate(self.listing_url)
            await session.handle_cookie_consent()
            await session.wait_for_content()

            extractor = PaginatedExtractor(
                link_selector=AUCTION_LINKS,
                advancer=ScrollAdvancer(),
                link_filter=is_auction_link,
            )
            urls = await extractor.extract_all_with_pagination(session.page)
            if not urls:
                logger.warning("No auction URLs found")
                return []

            return await AuctionDetailFetcher(session).fetch_all(urls)


class ListingsSource(OpportunitySource):
    """immobilier.notaires.fr: numbered result pages, then one detail page per listing"""

    job_kind = JobKind.LISTINGS
    geocode_missing = True

    def __init__(self, search_url: str = settings.LISTINGS_SEARCH_URL):
        self.search_url = search_url

    def create_session(self) -> BrowserSession:
        return BrowserSession()

    async def fetch(self, job: SourceJob) -> List[RawRecord]:
        start_page = int(job.extra_filters.get("start_page", 1))
        end_page = int(job.extra_filters.get("end_page", DEFAULT_LISTING_PAGES))

        async with self.create_session() as session:
            advancer = PageNumberAdvancer(
                base_url=self.search_url,
                navigate=session.navigate,
                start_page=start_page,
                max_pages=end_page,
            )
            await session.navigate(advancer.page_url(start_page))
            await session.handle_tarteaucitron_consent()
            await session.wait_for_content()

            extractor = PaginatedExtractor(
                link_selector=NOTARY_LINKS,
                advancer=advancer,
                link_filter=is_listing_link,
            )
            urls = await extractor.extract_all_with_pagination(session.page)
            if not urls:
                logger.warning("No listing URLs found")
                return []

            return await NotaryListingFetcher(session).fetch_all(urls)


class EnergyDiagnosticsSource(OpportunitySource):
    """ADEME DPE records for one department, restricted to poor energy classes"""

    job_kind = JobKind.ENERGY_DIAGNOSTICS

    def __init__(self, fetcher: Optional[AdemeDpeFetcher] = None):
        self.fetcher = fetcher or AdemeDpeFetcher()

    async def fetch(self, job: SourceJob) -> List[RawRecord]:
        energy_classes = job.extra_filters.get("energy_classes") or DEFAULT_ENERGY_CLASSES
        return await self.fetcher.fetch_all(
            department=job.partition_key,
            since_date=job.since_date,
            energy_classes=energy_classes,
            before_date=job.before_date,
        )

    async def close(self):
        await self.fetcher.close()


class FailingCompaniesSource(OpportunitySource):
    """BODACC collective proceedings for one department, expanded to establishments"""

    job_kind = JobKind.FAILING_COMPANIES
    geocode_missing = True

    def __init__(self, fetcher: Optional[BodaccFetcher] = None):
        self.fetcher = fetcher or BodaccFetcher()

    async def fetch(self, job: SourceJob) -> List[RawRecord]:
        return await self.fetcher.fetch_all(
            department=job.partition_key,
            since_date=job.since_date,
            before_date=job.before_date,
        )

    async def close(self):
        await self.fetcher.close()


SOURCES: Dict[JobKind, Type[OpportunitySource]] = {
    JobKind.AUCTIONS: AuctionsSource,
    JobKind.LISTINGS: ListingsSource,
    JobKind.ENERGY_DIAGNOSTICS: EnergyDiagnosticsSource,
    JobKind.FAILING_COMPANIES: FailingCompaniesSource,
}


def create_source(kind: JobKind) -> OpportunitySource:
    return SOURCES[kind]()
