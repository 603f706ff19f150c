"""
Forward geocoding against the French national address API.
"""

from typing import Optional
from core.config import settings
from core.exceptions import EnrichmentError
from ingestion.http_client import RateLimitedClient
from schemas.enrichment import GeocodeResult
import logging

logger = logging.getLogger(__name__)


class Geocoder:
    """
    Resolve a free-text address to coordinates.

    Results scoring below ``min_score`` are treated as no match: the caller
    gets None and keeps the record as it was.
    """

    def __init__(
        self,
        client: Optional[RateLimitedClient] = None,
        base_url: str = settings.GEOCODER_URL,
        min_score: float = settings.GEOCODER_MIN_SCORE,
    ):
        self.client = client or RateLimitedClient(
            "geocoder",
            min_interval=settings.GEOCODER_MIN_INTERVAL_MS / 1000,
        )
        self.base_url = base_url
        self.min_score = min_score

    async def close(self):
        await self.client.close()

    async def geocode(self, address: str, postcode: Optional[str] = None) -> Optional[GeocodeResult]:
        """
        Returns:
            GeocodeResult for the best match, or None when nothing matches
            with enough confidence

        Raises:
            EnrichmentError: the service could not be reached or answered garbage
        """
        if not address or not address.strip():
            logger.warning("Empty address provided for geocoding")
            return None

        params = {"q": address.strip(), "limit": 1}
        if postcode:
            params["postcode"] = postcode

        try:
            response = await self.client.get(self.base_url, params=params)
            features = response.json().get("features") or []
        except Exception as e:
            raise EnrichmentError(
                "Geocoding request failed",
                context={"address": address},
                original_exception=e
            )

        if not features:
            logger.debug(f"No geocoding results for {address!r}")
            return None

        feature = features[0]
        properties = feature.get("properties") or {}
        score = float(properties.get("score") or 0.0)

        if score < self.min_score:
            logger.debug(f"Low geocoding confidence ({score}) for {address!r}")
            return None

        try:
            longitude, latitude = feature["geometry"]["coordinates"][:2]
        except (KeyError, TypeError, ValueError) as e:
            raise EnrichmentError(
                "Geocoding response without coordinates",
                context={"address": address},
                original_exception=e
            )

        return GeocodeResult(
            latitude=latitude,
            longitude=longitude,
            label=properties.get("label"),
            postcode=properties.get("postcode"),
            score=score,
        )
