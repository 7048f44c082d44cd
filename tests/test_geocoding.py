"""
Tests for the reverse geocoding client
"""
import asyncio
import httpx
import pytest

import sys
sys.path.insert(0, '.')

from graftwatch.ingestion.geocoding import ReverseGeocoder, format_coordinates


def geocoder_with(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ReverseGeocoder(base_url="https://nominatim.test", language="bn", client=client)


class TestReverseGeocoder:
    """Test suite for Nominatim lookups."""

    def test_lookup_returns_display_name(self):
        """Test a successful lookup."""
        seen = {}

        def handler(request):
            seen["url"] = request.url
            return httpx.Response(200, json={"display_name": "মতিঝিল, ঢাকা"})

        geocoder = geocoder_with(handler)
        address = asyncio.run(geocoder.address_for(23.7330, 90.4172))

        assert address == "মতিঝিল, ঢাকা"
        assert seen["url"].path == "/reverse"
        assert seen["url"].params["accept-language"] == "bn"
        assert seen["url"].params["format"] == "json"

    def test_http_error_falls_back_to_coordinates(self):
        """Test server errors never block the form."""
        geocoder = geocoder_with(lambda request: httpx.Response(503))

        address = asyncio.run(geocoder.address_for(23.5, 90.25))

        assert address == format_coordinates(23.5, 90.25)

    def test_missing_name_falls_back(self):
        """Test an empty answer falls back to the coordinates."""
        geocoder = geocoder_with(lambda request: httpx.Response(200, json={"error": "Unable to geocode"}))

        assert asyncio.run(geocoder.address_for(1.0, 2.0)) == "1.0, 2.0"

    def test_lookup_raises_on_status(self):
        """Test the raw lookup surfaces HTTP errors."""
        geocoder = geocoder_with(lambda request: httpx.Response(500))

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(geocoder.lookup(1.0, 2.0))

    def test_invalid_json_falls_back(self):
        """Test a non-JSON body is treated as no answer."""
        geocoder = geocoder_with(lambda request: httpx.Response(200, text="<html>busy</html>"))

        assert asyncio.run(geocoder.address_for(1.0, 2.0)) == "1.0, 2.0"
