from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from pydantic import BaseModel, Field

from astrologer.core.context import ContextAssembler
from astrologer.core.errors import FailureKind, GatewayError, message_for
from astrologer.core.reaper import SessionReaper
from astrologer.core.session_store import InMemorySessionStore, SessionStore
from astrologer.gateways.chart import ProkeralaChartGateway
from astrologer.gateways.geocode import OpenCageGeocoder
from astrologer.gateways.model import GeminiModelGateway
from astrologer.orchestrator import ChatOrchestrator
from config.settings import get_settings


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("astrologer")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    missing = settings.missing_required()
    if missing:
        raise RuntimeError(
            f"Missing required configuration: {', '.join(missing)}. "
            "Please configure them in environment or .env"
        )

    store = InMemorySessionStore()
    geocoder = OpenCageGeocoder(settings)
    charts = ProkeralaChartGateway(settings)
    app.state.store = store
    app.state.geocoder = geocoder
    app.state.orchestrator = ChatOrchestrator(
        store=store,
        geocoder=geocoder,
        charts=charts,
        model=GeminiModelGateway(settings),
        assembler=ContextAssembler(settings.max_history_turns),
    )
    reaper = SessionReaper(
        store,
        max_age=timedelta(hours=settings.session_ttl_hours),
        interval=settings.reaper_interval_seconds,
    )
    reaper.start()
    logger.info(
        "Config: model=%s max_turns=%s ttl_hours=%s",
        settings.gemini_model,
        settings.max_history_turns,
        settings.session_ttl_hours,
    )

    yield

    await reaper.stop()
    await geocoder.aclose()
    await charts.aclose()


app = FastAPI(title="Vedic Astrology Chat", version="1.0.0", lifespan=lifespan)

# CORS: allow local frontend during development
settings = get_settings()
if settings.app_env.lower() in {"dev", "development", "local"}:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


def get_geocoder(request: Request) -> OpenCageGeocoder:
    return request.app.state.geocoder


def get_store(request: Request) -> SessionStore:
    return request.app.state.store


class ChatRequest(BaseModel):
    message: Optional[str] = Field("", description="User's latest message")
    # Shape is checked by the orchestrator so malformed details get the 400 reply.
    birthDetails: Optional[Any] = Field(
        None,
        description="{date: YYYY-MM-DD, time: HH:mm, location: {lat, lon}}",
    )
    sessionId: Optional[str] = Field(None, description="Echoed back from the previous reply")


class CityResult(BaseModel):
    formatted: str
    lat: float
    lon: float


@app.get("/search-city", response_model=List[CityResult])
async def search_city(
    q: Optional[str] = Query(None),
    geocoder: OpenCageGeocoder = Depends(get_geocoder),
):
    if not q or not q.strip():
        return JSONResponse(status_code=400, content={"error": 'Query parameter "q" is required.'})

    try:
        places = await geocoder.search(q.strip())
    except Exception as e:
        logger.warning("Geocoding failed: %s", e)
        return JSONResponse(status_code=500, content={"error": "Failed to search for cities."})
    return [CityResult(**place.model_dump()) for place in places]


@app.post("/chat")
async def chat(req: ChatRequest, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    logger.info(
        "Incoming chat: session=%s has_birth_details=%s message_len=%s",
        req.sessionId,
        req.birthDetails is not None,
        len(req.message or ""),
    )
    try:
        outcome = await orchestrator.handle_message(req.sessionId, req.birthDetails, req.message)
    except Exception as e:
        # Full traceback is in server logs; the caller only gets the mapped message.
        logger.exception("Chat processing failed: %s", e)
        kind = e.kind if isinstance(e, GatewayError) else FailureKind.GENERIC
        return JSONResponse(
            status_code=500,
            content={"response": message_for(kind), "sessionId": req.sessionId},
        )

    if outcome.failure is FailureKind.VALIDATION:
        return JSONResponse(status_code=400, content={"response": outcome.reply})
    if outcome.failure is not None:
        return JSONResponse(
            status_code=500,
            content={"response": outcome.reply, "sessionId": outcome.session_id},
        )
    return {"response": outcome.reply, "sessionId": outcome.session_id}


@app.get("/health")
def health(store: SessionStore = Depends(get_store)):
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "activeSessions": len(store),
    }
