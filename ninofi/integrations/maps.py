"""Geocoding client used to pin job sites.

Uses the real Google Maps Geocoding API when a valid key is configured,
otherwise returns deterministic mock coordinates.
"""

from __future__ import annotations

import hashlib
from typing import Any

import httpx

from ninofi.config import settings
from ninofi.integrations.base import BaseIntegration

_MOCK_ADDRESSES: list[dict[str, Any]] = [
    {"formatted_address": "742 Evergreen Terrace, Springfield, IL 62704, USA", "lat": 39.7817, "lng": -89.6501},
    {"formatted_address": "350 Fifth Avenue, New York, NY 10118, USA", "lat": 40.7484, "lng": -73.9857},
    {"formatted_address": "221 Baker Street, San Francisco, CA 94117, USA", "lat": 37.7749, "lng": -122.4194},
    {"formatted_address": "456 Oak Lane, Austin, TX 78701, USA", "lat": 30.2672, "lng": -97.7431},
]


def _is_mock() -> bool:
    return settings.MAPS_API_KEY.startswith("mock_")


class MapsClient(BaseIntegration):
    GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

    def __init__(self) -> None:
        super().__init__("maps")

    @property
    def is_mock(self) -> bool:
        return _is_mock()

    async def health_check(self) -> bool:
        if _is_mock():
            self.logger.info("Maps client health check: OK (mock)")
            return True
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(
                    self.GEOCODE_URL,
                    params={"address": "1600 Amphitheatre Parkway", "key": settings.MAPS_API_KEY},
                )
                return resp.json().get("status") == "OK"
        except httpx.HTTPError as e:
            self.logger.error("Maps health check failed: %s", e)
            return False

    async def geocode_address(self, address: str) -> dict[str, Any] | None:
        """Return ``{"lat", "lng", "formatted_address"}`` or None when nothing matched."""
        self.logger.info("Geocoding: '%s'", address)

        if not _is_mock():
            try:
                async with httpx.AsyncClient(timeout=15) as client:
                    resp = await client.get(
                        self.GEOCODE_URL, params={"address": address, "key": settings.MAPS_API_KEY}
                    )
                    data = resp.json()
            except httpx.HTTPError as e:
                self.logger.warning("Geocoding failed for '%s': %s", address, e)
                return None
            if data.get("status") != "OK" or not data.get("results"):
                return None
            r = data["results"][0]
            loc = r["geometry"]["location"]
            return {"lat": loc["lat"], "lng": loc["lng"], "formatted_address": r["formatted_address"]}

        digest = hashlib.sha256(address.encode()).digest()
        base = _MOCK_ADDRESSES[digest[0] % len(_MOCK_ADDRESSES)]
        return {
            "lat": round(base["lat"] + digest[1] / 100_000, 6),
            "lng": round(base["lng"] + digest[2] / 100_000, 6),
            "formatted_address": base["formatted_address"],
        }
