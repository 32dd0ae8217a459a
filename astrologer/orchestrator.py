from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol, Sequence

from pydantic import ValidationError

from astrologer.core.context import ContextAssembler
from astrologer.core.errors import (
    FALLBACK_REPLY,
    FailureKind,
    GatewayError,
    InvalidBirthDetails,
    MalformedResponseError,
    message_for,
    wrap_gateway_error,
)
from astrologer.core.models import BirthDetails, Session, Speaker, Turn
from astrologer.core.session_store import SessionStore
from astrologer.core.timeutil import DEFAULT_TIMEZONE, compose_utc_instant, is_known_timezone


logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    async def timezone_for(self, lat: float, lon: float) -> str: ...


class ChartGateway(Protocol):
    async def birth_chart(self, instant_utc: datetime, lat: float, lon: float) -> Dict[str, Any]: ...


class ModelGateway(Protocol):
    async def generate(self, turns: Sequence[Turn]) -> str: ...


@dataclass
class ChatOutcome:
    reply: str
    session_id: Optional[str]
    failure: Optional[FailureKind] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def parse_birth_details(raw: Any) -> BirthDetails:
    if isinstance(raw, BirthDetails):
        return raw
    if not isinstance(raw, dict) or not raw.get("location"):
        raise InvalidBirthDetails()
    try:
        return BirthDetails.model_validate(raw)
    except ValidationError as exc:
        raise InvalidBirthDetails(detail=str(exc)) from exc


class ChatOrchestrator:
    def __init__(
        self,
        store: SessionStore,
        geocoder: Geocoder,
        charts: ChartGateway,
        model: ModelGateway,
        assembler: Optional[ContextAssembler] = None,
    ) -> None:
        self.store = store
        self.geocoder = geocoder
        self.charts = charts
        self.model = model
        self.assembler = assembler or ContextAssembler()

    async def _resolve_timezone(self, lat: float, lon: float) -> str:
        try:
            timezone = await self.geocoder.timezone_for(lat, lon)
        except Exception as exc:
            logger.warning("Timezone lookup failed, using %s: %s", DEFAULT_TIMEZONE, exc)
            return DEFAULT_TIMEZONE
        if not is_known_timezone(timezone):
            logger.warning("Unknown timezone %r, using %s", timezone, DEFAULT_TIMEZONE)
            return DEFAULT_TIMEZONE
        return timezone

    async def _start_session(self, session_id: str, details: BirthDetails) -> Session:
        lat, lon = details.location.lat, details.location.lon
        timezone = await self._resolve_timezone(lat, lon)
        instant = compose_utc_instant(details.date, details.time, timezone)

        try:
            chart_data = await self.charts.birth_chart(instant, lat, lon)
        except Exception as exc:
            raise wrap_gateway_error("astrology", exc) from exc

        session = Session(
            session_id=session_id,
            birth_details=details,
            chart_data=chart_data,
            history=self.assembler.priming_turns(chart_data),
        )
        self.store.put(session_id, session)
        logger.info("New session %s: timezone=%s active=%s", session_id, timezone, len(self.store))
        return session

    def _commit(self, session: Session) -> None:
        session.history = self.assembler.trim(session.history)
        self.store.put(session.session_id, session)

    async def handle_message(
        self,
        session_id: Optional[str],
        birth_details: Any,
        message: Optional[str],
    ) -> ChatOutcome:
        try:
            details = parse_birth_details(birth_details)
        except InvalidBirthDetails as exc:
            logger.info("Rejected chat request: %s", exc.detail or exc.message)
            return ChatOutcome(exc.message, session_id, FailureKind.VALIDATION)

        requested_id = session_id
        session = self.store.get(session_id) if session_id else None
        if session is None:
            # Store keys are always server-generated, even when the client sent an id.
            if session_id:
                logger.info("Unknown session %s, starting a new one", session_id)
            session_id = self.store.create()

        try:
            if session is None:
                session = await self._start_session(session_id, details)
            else:
                logger.info("Using existing session %s (%s turns)", session_id, len(session.history))

            session.history.append(Turn(Speaker.USER, message or ""))
            turns = self.assembler.build(session.history)

            try:
                reply = await self.model.generate(turns)
            except MalformedResponseError as exc:
                logger.warning("Model reply unusable for session %s: %s", session_id, exc)
                reply = FALLBACK_REPLY
            except GatewayError:
                raise
            except Exception as exc:
                raise wrap_gateway_error("language model", exc) from exc
        except GatewayError as exc:
            logger.error(
                "Chat failed for session %s: gateway=%s kind=%s status=%s: %s",
                session_id,
                exc.gateway or "unknown",
                exc.kind.value,
                exc.status_code,
                exc,
            )
            if session is not None and self.store.get(session_id) is session:
                self._commit(session)
                echoed = session_id
            else:
                echoed = requested_id
            return ChatOutcome(message_for(exc.kind), echoed, exc.kind)

        session.history.append(Turn(Speaker.MODEL, reply))
        self._commit(session)
        logger.info("Replied to session %s: %s chars, %s turns", session_id, len(reply), len(session.history))
        return ChatOutcome(reply, session_id)
