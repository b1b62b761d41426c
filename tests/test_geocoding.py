"""Tests for Nominatim reverse geocoding."""

import httpx
import pytest

from demand_intake.tools.geocoding import GeoError, ReverseGeocoder


def geocoder_for(handler) -> ReverseGeocoder:
    return ReverseGeocoder(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestReverseGeocoder:
    @pytest.mark.asyncio
    async def test_builds_address_from_parts(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            seen["agent"] = request.headers["user-agent"]
            return httpx.Response(200, json={
                "display_name": "ignored",
                "address": {
                    "road": "Rua das Flores",
                    "house_number": "120",
                    "suburb": "Centro",
                    "city": "Parnamirim",
                },
            })

        result = await geocoder_for(handler).reverse_geocode(-5.9155, -35.263)
        assert result.address_text == "Rua das Flores, 120, Centro, Parnamirim"
        assert result.neighborhood == "Centro"
        assert seen["params"]["lat"] == "-5.9155"
        assert seen["params"]["format"] == "json"
        assert seen["agent"] == "demand-intake/0.1"

    @pytest.mark.asyncio
    async def test_falls_back_to_display_name(self):
        def handler(request):
            return httpx.Response(200, json={
                "display_name": "Parque da Cidade, Parnamirim",
                "address": {"country": "Brasil"},
            })

        result = await geocoder_for(handler).reverse_geocode(-5.9, -35.2)
        assert result.address_text == "Parque da Cidade, Parnamirim"
        assert result.neighborhood is None

    @pytest.mark.asyncio
    async def test_non_200_raises(self):
        geocoder = geocoder_for(lambda request: httpx.Response(503))
        with pytest.raises(GeoError, match="503"):
            await geocoder.reverse_geocode(-5.9, -35.2)

    @pytest.mark.asyncio
    async def test_no_address_raises(self):
        geocoder = geocoder_for(lambda request: httpx.Response(200, json={"error": "Unable to geocode"}))
        with pytest.raises(GeoError, match="No address"):
            await geocoder.reverse_geocode(0.0, 0.0)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(GeoError, match="transport"):
            await geocoder_for(handler).reverse_geocode(-5.9, -35.2)
