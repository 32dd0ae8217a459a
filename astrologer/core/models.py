from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Speaker(str, Enum):
    USER = "user"
    SYSTEM_PRIMING = "system-priming"
    MODEL_PRIMING = "model-priming"
    MODEL = "model"


@dataclass(frozen=True)
class Turn:
    speaker: Speaker
    text: str


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90, description="Birth place latitude")
    lon: float = Field(..., ge=-180, le=180, description="Birth place longitude")


class BirthDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$", description="YYYY-MM-DD")
    time: str = Field(..., pattern=r"^\d{2}:\d{2}$", description="HH:mm, local to the birth place")
    location: Location

    @model_validator(mode="after")
    def _check_calendar(self) -> "BirthDetails":
        # The patterns accept 2001-02-30 or 25:99; strptime does not.
        datetime.strptime(f"{self.date} {self.time}", "%Y-%m-%d %H:%M")
        return self


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    session_id: str
    birth_details: BirthDetails
    chart_data: Dict[str, Any]
    history: List[Turn] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def organic_turns(self) -> List[Turn]:
        return self.history[2:]
