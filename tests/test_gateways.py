"""Wire-level tests for the OpenCage, Prokerala and Gemini gateways."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

import httpx
import pytest
import pytz
from langchain_core.messages import AIMessage, HumanMessage

from astrologer.core.errors import FailureKind, GatewayError, MalformedResponseError
from astrologer.core.models import Speaker, Turn
from astrologer.gateways.chart import ProkeralaChartGateway
from astrologer.gateways.geocode import OpenCageGeocoder
from astrologer.gateways.model import GeminiModelGateway, extract_reply_text, to_lc_messages


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# OpenCage
# =============================================================================

class TestOpenCageGeocoder:
    @pytest.mark.asyncio
    async def test_search_maps_results(self, test_settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"results": [
                {"formatted": "Paris, TX, United States", "geometry": {"lat": 33.66, "lng": -95.55}},
                {"formatted": "No geometry"},
            ]})

        geocoder = OpenCageGeocoder(test_settings, client=client_for(handler))
        places = await geocoder.search("Paris")

        assert [p.model_dump() for p in places] == [
            {"formatted": "Paris, TX, United States", "lat": 33.66, "lon": -95.55},
        ]
        params = seen[0].url.params
        assert params["q"] == "Paris"
        assert params["key"] == "test-opencage-key"
        assert params["limit"] == "5"
        assert params["countrycode"] == "us"

    @pytest.mark.asyncio
    async def test_search_without_country_filter(self, test_settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"results": []})

        test_settings.geocode_country_code = ""
        geocoder = OpenCageGeocoder(test_settings, client=client_for(handler))

        assert await geocoder.search("Pune") == []
        assert "countrycode" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_timezone_lookup(self, test_settings):
        def handler(request):
            assert request.url.params["q"] == "18.52,73.85"
            return httpx.Response(200, json={"results": [
                {"annotations": {"timezone": {"name": "Asia/Kolkata"}}},
            ]})

        geocoder = OpenCageGeocoder(test_settings, client=client_for(handler))

        assert await geocoder.timezone_for(18.52, 73.85) == "Asia/Kolkata"

    @pytest.mark.asyncio
    async def test_timezone_missing_annotation(self, test_settings):
        geocoder = OpenCageGeocoder(
            test_settings, client=client_for(lambda r: httpx.Response(200, json={"results": []}))
        )
        with pytest.raises(MalformedResponseError):
            await geocoder.timezone_for(0.0, 0.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, kind", [
        (401, FailureKind.AUTH),
        (402, FailureKind.GENERIC),
        (429, FailureKind.RATE_LIMIT),
    ])
    async def test_http_errors_are_classified(self, test_settings, status, kind):
        geocoder = OpenCageGeocoder(
            test_settings, client=client_for(lambda r: httpx.Response(status, json={}))
        )
        with pytest.raises(GatewayError) as info:
            await geocoder.search("Paris")
        assert info.value.kind is kind
        assert info.value.status_code == status

    @pytest.mark.asyncio
    async def test_missing_key(self, test_settings):
        test_settings.opencage_api_key = None
        geocoder = OpenCageGeocoder(test_settings, client=client_for(lambda r: httpx.Response(200)))

        with pytest.raises(GatewayError) as info:
            await geocoder.search("Paris")
        assert info.value.kind is FailureKind.AUTH


# =============================================================================
# Prokerala
# =============================================================================

class TestProkeralaChartGateway:
    INSTANT = datetime(2004, 1, 1, 9, 49, tzinfo=pytz.UTC)

    @pytest.mark.asyncio
    async def test_token_is_cached_between_charts(self, test_settings):
        calls = {"token": 0, "chart": 0}

        def handler(request):
            if request.url.path == "/token":
                calls["token"] += 1
                assert b"grant_type=client_credentials" in request.content
                return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})
            calls["chart"] += 1
            assert request.url.path == "/v2/astrology/birth-details"
            assert request.headers["Authorization"] == "Bearer tok-1"
            assert request.url.params["datetime"] == "2004-01-01T09:49:00Z"
            assert request.url.params["coordinates"] == "18.52,73.85"
            assert request.url.params["ayanamsa"] == "1"
            return httpx.Response(200, json={"status": "ok", "data": {"nakshatra": {"name": "Ashwini"}}})

        gateway = ProkeralaChartGateway(test_settings, client=client_for(handler))
        first = await gateway.birth_chart(self.INSTANT, 18.52, 73.85)
        await gateway.birth_chart(self.INSTANT, 18.52, 73.85)

        assert first["data"]["nakshatra"]["name"] == "Ashwini"
        assert calls == {"token": 1, "chart": 2}

    @pytest.mark.asyncio
    async def test_short_lived_token_is_refreshed(self, test_settings):
        tokens = []

        def handler(request):
            if request.url.path == "/token":
                tokens.append(1)
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 30})
            return httpx.Response(200, json={"status": "ok"})

        gateway = ProkeralaChartGateway(test_settings, client=client_for(handler))
        await gateway.birth_chart(self.INSTANT, 0, 0)
        await gateway.birth_chart(self.INSTANT, 0, 0)

        assert len(tokens) == 2

    @pytest.mark.asyncio
    async def test_token_failure(self, test_settings):
        gateway = ProkeralaChartGateway(
            test_settings, client=client_for(lambda r: httpx.Response(401, json={"error": "invalid_client"}))
        )
        with pytest.raises(GatewayError) as info:
            await gateway.birth_chart(self.INSTANT, 0, 0)
        assert info.value.kind is FailureKind.AUTH

    @pytest.mark.asyncio
    async def test_rate_limited_chart(self, test_settings):
        def handler(request):
            if request.url.path == "/token":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(429, json={"errors": [{"detail": "Too many requests"}]})

        gateway = ProkeralaChartGateway(test_settings, client=client_for(handler))
        with pytest.raises(GatewayError) as info:
            await gateway.birth_chart(self.INSTANT, 0, 0)
        assert info.value.kind is FailureKind.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_empty_chart_is_an_error(self, test_settings):
        def handler(request):
            if request.url.path == "/token":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(200, json={})

        gateway = ProkeralaChartGateway(test_settings, client=client_for(handler))
        with pytest.raises(GatewayError):
            await gateway.birth_chart(self.INSTANT, 0, 0)

    @pytest.mark.asyncio
    async def test_missing_credentials(self, test_settings):
        test_settings.astrology_client_secret = ""
        gateway = ProkeralaChartGateway(test_settings, client=client_for(lambda r: httpx.Response(200)))

        with pytest.raises(GatewayError) as info:
            await gateway.birth_chart(self.INSTANT, 0, 0)
        assert info.value.kind is FailureKind.AUTH


# =============================================================================
# Gemini
# =============================================================================

class TestMessageMapping:
    def test_speakers_map_to_alternating_roles(self):
        turns = [
            Turn(Speaker.SYSTEM_PRIMING, "chart"),
            Turn(Speaker.MODEL_PRIMING, "ack"),
            Turn(Speaker.USER, "q"),
            Turn(Speaker.MODEL, "a"),
        ]
        messages = to_lc_messages(turns)

        assert [type(m) for m in messages] == [HumanMessage, AIMessage, HumanMessage, AIMessage]
        assert [m.content for m in messages] == ["chart", "ack", "q", "a"]


class TestExtractReplyText:
    def test_plain_string(self):
        assert extract_reply_text(AIMessage(content="  Namaste  ")) == "Namaste"

    def test_content_parts(self):
        message = AIMessage(content=[{"type": "text", "text": "Hello "}, "world"])
        assert extract_reply_text(message) == "Hello world"

    @pytest.mark.parametrize("result", [AIMessage(content=""), AIMessage(content="   "), None, {"text": "x"}])
    def test_unusable(self, result):
        with pytest.raises(MalformedResponseError):
            extract_reply_text(result)


class TestGeminiModelGateway:
    @pytest.mark.asyncio
    async def test_generate(self, test_settings):
        llm = AsyncMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content="The stars align."))
        gateway = GeminiModelGateway(test_settings, llm=llm)

        reply = await gateway.generate([Turn(Speaker.SYSTEM_PRIMING, "c"), Turn(Speaker.MODEL_PRIMING, "a"),
                                        Turn(Speaker.USER, "q")])

        assert reply == "The stars align."
        sent = llm.ainvoke.await_args.args[0]
        assert len(sent) == 3

    @pytest.mark.asyncio
    async def test_timeout(self, test_settings):
        async def slow(_messages):
            await asyncio.sleep(1)

        llm = AsyncMock()
        llm.ainvoke = slow
        test_settings.model_timeout_seconds = 0.01
        gateway = GeminiModelGateway(test_settings, llm=llm)

        with pytest.raises(GatewayError) as info:
            await gateway.generate([Turn(Speaker.USER, "q")])
        assert info.value.kind is FailureKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_provider_error_with_code(self, test_settings):
        class ResourceExhausted(Exception):
            code = 429

        llm = AsyncMock()
        llm.ainvoke = AsyncMock(side_effect=ResourceExhausted("quota"))
        gateway = GeminiModelGateway(test_settings, llm=llm)

        with pytest.raises(GatewayError) as info:
            await gateway.generate([Turn(Speaker.USER, "q")])
        assert info.value.kind is FailureKind.RATE_LIMIT

    def test_requires_api_key(self, test_settings):
        test_settings.google_api_key = None
        with pytest.raises(RuntimeError):
            GeminiModelGateway(test_settings)
