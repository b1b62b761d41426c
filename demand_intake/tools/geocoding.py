"""Reverse geocoding of GPS pins through Nominatim."""

import logging
from typing import Optional

import httpx

from demand_intake.config import settings
from demand_intake.schemas.extraction_schema import GeoResult

logger = logging.getLogger(__name__)


class GeoError(Exception):
    """Raised when a coordinate pair cannot be resolved to an address."""


class ReverseGeocoder:
    """Resolves coordinates to a street address and neighborhood."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client

    async def reverse_geocode(self, lat: float, lon: float) -> GeoResult:
        cfg = settings.geo
        params = {
            "lat": lat,
            "lon": lon,
            "format": "json",
            "addressdetails": 1,
        }
        headers = {"User-Agent": cfg.user_agent}
        client = self._client or httpx.AsyncClient(timeout=cfg.timeout_sec)
        try:
            response = await client.get(cfg.nominatim_url, params=params, headers=headers)
            if response.status_code != 200:
                raise GeoError(f"Nominatim returned {response.status_code}")
            data = response.json()
        except httpx.HTTPError as exc:
            raise GeoError(f"Nominatim transport error: {exc}") from exc
        except ValueError as exc:
            raise GeoError("Nominatim returned a non-JSON body") from exc
        finally:
            if self._client is None:
                await client.aclose()

        address = data.get("address") if isinstance(data, dict) else None
        if not address:
            raise GeoError(f"No address found for {lat}, {lon}")

        neighborhood = address.get("suburb") or address.get("neighbourhood")
        street = address.get("road")
        if street and address.get("house_number"):
            street = f"{street}, {address['house_number']}"
        parts = [
            street,
            neighborhood,
            address.get("city") or address.get("town"),
        ]
        text = ", ".join(p for p in parts if p)
        if not text:
            text = data.get("display_name") or ""
        if not text:
            raise GeoError(f"No address found for {lat}, {lon}")
        logger.debug("Reverse geocoded %s, %s -> %s", lat, lon, text)
        return GeoResult(address_text=text, neighborhood=neighborhood)
