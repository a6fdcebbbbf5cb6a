"""Address lookup against the Mapbox forward-geocoding API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

from carpool.config import settings
from carpool.domain.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddressCandidate:
    label: str
    latitude: float
    longitude: float


class MapboxGeocoder:
    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places",
        limit: int = 5,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.limit = limit
        self._client = client

    async def search(self, query: str) -> list[AddressCandidate]:
        query = query.strip()
        if not query:
            raise ValidationError("Search query is required")

        url = f"{self.base_url}/{quote(query, safe='')}.json"
        params = {
            "access_token": self.access_token,
            "limit": self.limit,
            "autocomplete": "true",
        }
        try:
            if self._client is not None:
                resp = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    resp = await client.get(url, params=params)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Geocoding request failed: %s", exc)
            raise ExternalServiceError("Address lookup failed") from exc

        candidates = []
        for feature in resp.json().get("features", []):
            lng, lat = feature["center"]
            candidates.append(
                AddressCandidate(label=feature["place_name"], latitude=lat, longitude=lng)
            )
        return candidates


def build_geocoder() -> MapboxGeocoder:
    return MapboxGeocoder(
        settings.mapbox_access_token,
        settings.geocoding_base_url,
        settings.geocoding_limit,
    )
