"""
LLM-assisted street address refinement (Gemini generateContent REST API).
"""

import json
from typing import Dict, Optional
from core.config import settings
from core.exceptions import EnrichmentError
from ingestion.http_client import RateLimitedClient
from schemas.enrichment import AddressRefinement
import logging

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """You are an assistant specializing in French real estate street address extraction and standardization.

Task: extract and refine the STREET ADDRESS ONLY (street number + street name) from the property information. Do not include postal codes, city names or other location information.

Current Address: {current_address}
{context}
Instructions:
1. Focus only on the street address (number + street name), e.g. "123", "45 bis", "rue de la Paix".
2. Exclude postal codes, city names, district names and landmarks.
3. If the description contains a more complete street address, extract it.
4. Standardize the format (e.g. "123 rue de la Paix").
5. Give a confidence score between 0.0 and 1.0 for the completeness and precision of the street address.
6. Say whether the information came from the description.

Respond with only a JSON object with the keys:
refinedAddress (string), confidence (number), extractedFromDescription (boolean), reasoning (string, optional).
"""


class AddressRefiner:
    """
    Ask the model for a cleaner street address.

    Disabled when no API key is configured. Answers below ``min_confidence``
    are discarded and the caller keeps the original address.
    """

    def __init__(
        self,
        client: Optional[RateLimitedClient] = None,
        api_key: Optional[str] = settings.AI_API_KEY,
        api_url: str = settings.AI_API_URL,
        model: str = settings.AI_MODEL,
        min_confidence: float = settings.AI_MIN_CONFIDENCE,
    ):
        self.client = client or RateLimitedClient(
            "address-refiner",
            min_interval=settings.AI_MIN_INTERVAL_MS / 1000,
        )
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.min_confidence = min_confidence

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def close(self):
        await self.client.close()

    def build_prompt(self, current_address: str, context: Dict[str, Optional[str]]) -> str:
        lines = [
            f"{key.replace('_', ' ').capitalize()}: {value}"
            for key, value in context.items()
            if value
        ]
        return PROMPT_TEMPLATE.format(
            current_address=current_address,
            context="\n".join(lines) + ("\n" if lines else ""),
        )

    async def refine_address(
        self, current_address: str, context: Optional[Dict[str, Optional[str]]] = None
    ) -> Optional[AddressRefinement]:
        """
        Returns:
            The refinement when the model is confident enough, else None

        Raises:
            EnrichmentError: the model could not be reached or answered garbage
        """
        if not self.enabled:
            return None

        body = {
            "contents": [{"parts": [{"text": self.build_prompt(current_address, context or {})}]}],
            "generationConfig": {
                "temperature": 0.1,
                "topK": 1,
                "topP": 0.8,
                "maxOutputTokens": 1024,
                "responseMimeType": "application/json",
            },
        }

        try:
            response = await self.client.post(
                f"{self.api_url}/{self.model}:generateContent",
                json=body,
                params={"key": self.api_key},
            )
            text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
            refinement = AddressRefinement.parse_obj(json.loads(text))
        except Exception as e:
            raise EnrichmentError(
                "Address refinement failed",
                context={"address": current_address},
                original_exception=e
            )

        if refinement.confidence < self.min_confidence:
            logger.debug(f"Low refinement confidence ({refinement.confidence}) for {current_address!r}")
            return None

        if not refinement.refined_address.strip():
            logger.debug(f"Empty refinement for {current_address!r}")
            return None

        return refinement
