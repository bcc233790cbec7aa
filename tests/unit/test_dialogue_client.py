"""Tests for the Voiceflow dialogue client."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from tests.conftest import make_config, make_http_client, make_response
from vfbridge.dialogue.client import FALLBACK_GREETING, DialogueClient
from vfbridge.models import RelayEventType, TextTrace


def _make_client(**kwargs: Any) -> DialogueClient:
    audit_logger = kwargs.pop("audit_logger", None)
    return DialogueClient(make_config(**kwargs), audit_logger=audit_logger)


class TestRequestShape:

    def test_request_body_matches_wire_contract(self) -> None:
        client = _make_client()
        assert client.build_request("hi there") == {
            "action": {"type": "text", "payload": "hi there"},
            "config": {
                "tts": False,
                "stripSSML": True,
                "stopAll": True,
                "excludeTypes": ["block", "debug", "flow"],
            },
        }

    @pytest.mark.asyncio
    async def test_posts_to_user_interact_endpoint(self) -> None:
        client = _make_client(voiceflow_api_key="VF.KEY", dialogue_timeout=12)
        http = make_http_client(make_response(200, []))

        with patch("vfbridge.dialogue.client.httpx.AsyncClient", return_value=http):
            await client.interact("15551234567", "hello")

        call = http.post.call_args
        assert call[0][0] == (
            "https://general-runtime.voiceflow.com/state/user/15551234567/interact"
        )
        assert call[1]["headers"]["Authorization"] == "VF.KEY"
        assert call[1]["headers"]["versionID"] == "production"
        assert call[1]["json"]["action"]["payload"] == "hello"
        assert call[1]["timeout"] == 12


class TestResponses:

    @pytest.mark.asyncio
    async def test_returns_parsed_traces(self) -> None:
        client = _make_client()
        http = make_http_client(make_response(200, [
            {"type": "text", "payload": {"message": "Hello!"}},
        ]))

        with patch("vfbridge.dialogue.client.httpx.AsyncClient", return_value=http):
            traces = await client.interact("u1", "hi")

        assert traces == [TextTrace(message="Hello!")]

    @pytest.mark.asyncio
    async def test_empty_array_is_success(self) -> None:
        client = _make_client()
        http = make_http_client(make_response(200, []))

        with patch("vfbridge.dialogue.client.httpx.AsyncClient", return_value=http):
            traces = await client.interact("u1", "hi")

        assert traces == []
        assert http.post.await_count == 1


class TestRetryPolicy:

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        client = _make_client()
        http = make_http_client(
            httpx.ConnectError("refused"),
            make_response(200, [{"type": "text", "payload": {"message": "ok"}}]),
        )

        with patch("vfbridge.dialogue.client.httpx.AsyncClient", return_value=http), \
             patch("vfbridge.retry.asyncio.sleep", new_callable=AsyncMock):
            traces = await client.interact("u1", "hi")

        assert traces == [TextTrace(message="ok")]
        assert http.post.await_count == 2

    @pytest.mark.asyncio
    async def test_unreachable_returns_fallback_after_three_attempts(self) -> None:
        client = _make_client()
        http = make_http_client(httpx.ConnectTimeout("timed out"))
        sleeps: list[float] = []

        async def capture(t: float) -> None:
            sleeps.append(t)

        with patch("vfbridge.dialogue.client.httpx.AsyncClient", return_value=http), \
             patch("vfbridge.retry.asyncio.sleep", side_effect=capture):
            traces = await client.interact("u1", "hi")

        assert traces == [TextTrace(message=FALLBACK_GREETING)]
        assert http.post.await_count == 3
        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_2xx_is_retried(self) -> None:
        client = _make_client()
        http = make_http_client(make_response(500), make_response(200, []))

        with patch("vfbridge.dialogue.client.httpx.AsyncClient", return_value=http), \
             patch("vfbridge.retry.asyncio.sleep", new_callable=AsyncMock):
            await client.interact("u1", "hi")

        assert http.post.await_count == 2

    @pytest.mark.asyncio
    async def test_non_array_body_is_retried(self) -> None:
        client = _make_client()
        http = make_http_client(
            make_response(200, {"error": "weird"}),
            make_response(200, ValueError("not json")),
            make_response(200, [{"type": "text", "payload": {"message": "ok"}}]),
        )

        with patch("vfbridge.dialogue.client.httpx.AsyncClient", return_value=http), \
             patch("vfbridge.retry.asyncio.sleep", new_callable=AsyncMock):
            traces = await client.interact("u1", "hi")

        assert http.post.await_count == 3
        assert traces == [TextTrace(message="ok")]

    @pytest.mark.asyncio
    async def test_respects_configured_attempts(self) -> None:
        client = _make_client(dialogue_max_attempts=1)
        http = make_http_client(make_response(503))

        with patch("vfbridge.dialogue.client.httpx.AsyncClient", return_value=http), \
             patch("vfbridge.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            traces = await client.interact("u1", "hi")

        assert traces == [TextTrace(message=FALLBACK_GREETING)]
        assert http.post.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fallback_is_audited(self, mock_audit_logger) -> None:
        client = _make_client(audit_logger=mock_audit_logger)
        http = make_http_client(make_response(502))

        with patch("vfbridge.dialogue.client.httpx.AsyncClient", return_value=http), \
             patch("vfbridge.retry.asyncio.sleep", new_callable=AsyncMock):
            await client.interact("u1", "hi")

        event = mock_audit_logger.log.call_args[0][0]
        assert event.event_type == RelayEventType.DIALOGUE_FALLBACK
        assert event.sender_id == "u1"
        assert event.details["attempts"] == 3
