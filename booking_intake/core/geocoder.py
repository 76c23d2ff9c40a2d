"""
Google Geocoding collaborator.
"""

import logging
from functools import lru_cache
from typing import Optional

from booking_intake.config import get_settings
from booking_intake.core.http_client import RetryingHttpClient
from booking_intake.pipeline.models import Coordinate


logger = logging.getLogger(__name__)


class GoogleGeocoder:
    """Resolves free-text addresses to coordinates via the Geocoding API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        http: Optional[RetryingHttpClient] = None,
        url: Optional[str] = None,
    ):
        settings = get_settings()
        self.api_key = settings.google_maps_api_key if api_key is None else api_key
        self.url = url or settings.google_geocode_url
        self.http = http or RetryingHttpClient()

    async def geocode(self, address: str) -> Optional[Coordinate]:
        """
        Geocode an address.

        Returns None when no key is configured or Google has no result.
        Raises httpx errors for non-2xx responses and transport failures.
        """
        if not self.api_key:
            logger.warning("Google Maps API key not configured, skipping geocode")
            return None

        response = await self.http.request(
            "GET", self.url, params={"address": address, "key": self.api_key}
        )
        response.raise_for_status()
        data = response.json()

        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            logger.info(f"No geocode result for '{address}' (status {data.get('status')})")
            return None

        location = results[0]["geometry"]["location"]
        return Coordinate(lat=location["lat"], lng=location["lng"])


@lru_cache()
def get_geocoder() -> GoogleGeocoder:
    """Get cached geocoder instance."""
    return GoogleGeocoder()
