from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from astrologer.core.errors import (
    FailureKind,
    GatewayError,
    MalformedResponseError,
    wrap_gateway_error,
)
from astrologer.core.timeutil import format_chart_datetime
from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)

# Refresh the token this many seconds before the provider says it expires.
TOKEN_EXPIRY_MARGIN = 60


class ProkeralaChartGateway:
    """Birth-details charts from the Prokerala astrology API."""

    name = "astrology"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._client = client or httpx.AsyncClient(timeout=self.settings.http_timeout_seconds)
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0

    async def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expiry:
            return self._access_token

        if not (self.settings.astrology_client_id and self.settings.astrology_client_secret):
            raise GatewayError(FailureKind.AUTH, "Astrology client credentials not configured", gateway=self.name)

        payload = {
            "grant_type": "client_credentials",
            "client_id": self.settings.astrology_client_id,
            "client_secret": self.settings.astrology_client_secret,
        }
        try:
            response = await self._client.post(f"{self.settings.prokerala_base_url}/token", data=payload)
            response.raise_for_status()
            data = response.json()
            token = data["access_token"]
            expires_in = float(data.get("expires_in", 3600))
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Prokerala token request failed: %s", exc)
            raise wrap_gateway_error(self.name, exc) from exc

        self._access_token = token
        self._token_expiry = time.monotonic() + expires_in - TOKEN_EXPIRY_MARGIN
        return token

    async def birth_chart(self, instant_utc: datetime, lat: float, lon: float) -> Dict[str, Any]:
        token = await self._get_access_token()
        params = {
            "ayanamsa": self.settings.prokerala_ayanamsa,
            "datetime": format_chart_datetime(instant_utc),
            "coordinates": f"{lat},{lon}",
        }
        logger.info("Fetching birth chart: datetime=%s", params["datetime"])
        try:
            response = await self._client.get(
                f"{self.settings.prokerala_base_url}/v2/astrology/birth-details",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
            if response.status_code == 401:
                # Token revoked early; force a refresh on the next request.
                self._access_token = None
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise wrap_gateway_error(self.name, exc) from exc

        if not isinstance(data, dict) or not data:
            raise wrap_gateway_error(self.name, MalformedResponseError("Empty birth chart response"))
        return data

    async def aclose(self) -> None:
        await self._client.aclose()
