"""
GraftWatch - Reverse Geocoding Client
Turns report coordinates into a readable address via Nominatim.

Best effort only: any failure falls back to the raw "lat, lng" string so the
report form is never blocked on the lookup.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from graftwatch.core.config import settings

logger = logging.getLogger(__name__)


def format_coordinates(latitude: float, longitude: float) -> str:
    return f"{latitude}, {longitude}"


class ReverseGeocoder:
    """
    Client for the Nominatim reverse endpoint.
    Rate limited to 1 request per second.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        language: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the geocoder.

        Args:
            base_url: Nominatim base URL
            timeout: Request timeout in seconds
            language: Preferred address language (accept-language)
            client: Pre-built HTTP client (tests inject a mock transport)
        """
        self.base_url = (base_url or settings.nominatim_url).rstrip("/")
        self.timeout = timeout or settings.geocoding_timeout_seconds
        self.language = language or settings.geocoding_language
        self._client = client
        self._last_request_time = 0.0

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": "GraftWatch/0.2"}
            )
        return self._client

    async def _rate_limit(self) -> None:
        """Ensure we don't exceed the public instance's rate limit."""
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < 1.0:
            await asyncio.sleep(1.0 - elapsed)
        self._last_request_time = time.monotonic()

    async def lookup(self, latitude: float, longitude: float) -> Optional[str]:
        """
        Reverse geocode coordinates to an address.

        Returns:
            Address string or None when the service has no answer

        Raises:
            httpx.HTTPError: on transport or HTTP status errors
        """
        await self._rate_limit()

        params = {
            "lat": latitude,
            "lon": longitude,
            "format": "json",
            "accept-language": self.language,
        }

        response = await self._get_client().get(f"{self.base_url}/reverse", params=params)
        response.raise_for_status()
        data = response.json()

        return data.get("display_name") or None

    async def address_for(self, latitude: float, longitude: float) -> str:
        """Address for the coordinates, or the coordinates themselves."""
        try:
            address = await self.lookup(latitude, longitude)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Reverse geocoding failed for ({latitude}, {longitude}): {e}")
            address = None
        return address or format_coordinates(latitude, longitude)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
