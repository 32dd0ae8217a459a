from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv


load_dotenv()


REQUIRED_KEYS = (
    "GOOGLE_API_KEY",
    "OPENCAGE_API_KEY",
    "ASTROLOGY_CLIENT_ID",
    "ASTROLOGY_CLIENT_SECRET",
)


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    def __init__(self) -> None:
        self.app_env: str = os.getenv("APP_ENV", "development")

        self.google_api_key: Optional[str] = os.getenv("GOOGLE_API_KEY")
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
        self.top_p: float = float(os.getenv("MODEL_TOP_P", "0.95"))
        self.top_k: int = int(os.getenv("MODEL_TOP_K", "40"))
        self.max_output_tokens: int = int(os.getenv("MODEL_MAX_OUTPUT_TOKENS", "1000"))
        self.model_timeout_seconds: float = float(os.getenv("MODEL_TIMEOUT_SECONDS", "30"))

        self.opencage_api_key: Optional[str] = os.getenv("OPENCAGE_API_KEY")
        self.opencage_url: str = os.getenv(
            "OPENCAGE_URL", "https://api.opencagedata.com/geocode/v1/json"
        )
        self.geocode_limit: int = int(os.getenv("GEOCODE_LIMIT", "5"))
        self.geocode_country_code: str = os.getenv("GEOCODE_COUNTRY_CODE", "us")

        self.astrology_client_id: Optional[str] = os.getenv("ASTROLOGY_CLIENT_ID")
        self.astrology_client_secret: Optional[str] = os.getenv("ASTROLOGY_CLIENT_SECRET")
        self.prokerala_base_url: str = os.getenv(
            "PROKERALA_BASE_URL", "https://api.prokerala.com"
        ).rstrip("/")
        self.prokerala_ayanamsa: int = int(os.getenv("PROKERALA_AYANAMSA", "1"))

        self.http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
        self.session_ttl_hours: float = float(os.getenv("SESSION_TTL_HOURS", "24"))
        self.reaper_interval_seconds: float = float(os.getenv("REAPER_INTERVAL_SECONDS", "3600"))
        self.max_history_turns: int = int(os.getenv("MAX_HISTORY_TURNS", "22"))

    def missing_required(self) -> List[str]:
        values = {
            "GOOGLE_API_KEY": self.google_api_key,
            "OPENCAGE_API_KEY": self.opencage_api_key,
            "ASTROLOGY_CLIENT_ID": self.astrology_client_id,
            "ASTROLOGY_CLIENT_SECRET": self.astrology_client_secret,
        }
        return [key for key in REQUIRED_KEYS if not values[key]]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
