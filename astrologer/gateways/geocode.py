from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from astrologer.core.errors import (
    FailureKind,
    GatewayError,
    MalformedResponseError,
    wrap_gateway_error,
)
from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)


class Place(BaseModel):
    formatted: str
    lat: float
    lon: float


def _simplify_results(raw: Dict[str, Any]) -> List[Place]:
    places = []
    for item in raw.get("results") or []:
        geometry = item.get("geometry") or {}
        if geometry.get("lat") is None or geometry.get("lng") is None:
            continue
        places.append(
            Place(
                formatted=item.get("formatted") or "",
                lat=geometry["lat"],
                lon=geometry["lng"],
            )
        )
    return places


class OpenCageGeocoder:
    """City search and coordinate-to-timezone lookups against OpenCage."""

    name = "geocoding"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._client = client or httpx.AsyncClient(timeout=self.settings.http_timeout_seconds)

    async def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.settings.opencage_api_key:
            raise GatewayError(FailureKind.AUTH, "OPENCAGE_API_KEY not configured", gateway=self.name)
        params = {**params, "key": self.settings.opencage_api_key}
        try:
            response = await self._client.get(self.settings.opencage_url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise wrap_gateway_error(self.name, exc) from exc
        if not isinstance(data, dict):
            raise MalformedResponseError("Geocoding response is not a JSON object")
        return data

    async def search(self, query: str) -> List[Place]:
        params: Dict[str, Any] = {"q": query, "limit": self.settings.geocode_limit}
        if self.settings.geocode_country_code:
            params["countrycode"] = self.settings.geocode_country_code
        data = await self._get(params)
        places = _simplify_results(data)
        logger.info("City search: query_len=%s results=%s", len(query), len(places))
        return places

    async def timezone_for(self, lat: float, lon: float) -> str:
        data = await self._get({"q": f"{lat},{lon}", "no_annotations": 0})
        results = data.get("results") or [{}]
        annotations = results[0].get("annotations") or {}
        timezone = (annotations.get("timezone") or {}).get("name")
        if not timezone:
            raise MalformedResponseError(f"No timezone annotation for {lat:.4f},{lon:.4f}")
        return timezone

    async def aclose(self) -> None:
        await self._client.aclose()
