"""Shared test fixtures for vfbridge."""

from __future__ import annotations

import time
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from vfbridge.audit.logger import RelayAuditLogger
from vfbridge.config import BridgeConfig
from vfbridge.models import DeliveryResult, InboundEvent, InboundKind, OutboundKind


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=RelayAuditLogger)


@pytest.fixture
def mock_sender() -> MagicMock:
    """WhatsAppSender double whose sends all succeed."""
    sender = MagicMock()
    sender.send_text = AsyncMock(
        return_value=DeliveryResult(kind=OutboundKind.TEXT, success=True),
    )
    sender.send_image = AsyncMock(
        return_value=DeliveryResult(kind=OutboundKind.IMAGE, success=True),
    )
    sender.send_buttons = AsyncMock(
        return_value=DeliveryResult(kind=OutboundKind.BUTTONS, success=True),
    )
    sender.send_list = AsyncMock(
        return_value=DeliveryResult(kind=OutboundKind.LIST, success=True),
    )
    sender.send_typing_indicator = AsyncMock(return_value=None)
    return sender


# --- Factory functions for test data ---


def make_config(**kwargs: Any) -> BridgeConfig:
    """Factory for BridgeConfig with every required setting filled in."""
    defaults: dict[str, Any] = {
        "whatsapp_token": "wa_token",
        "verify_token": "wa_verify",
        "phone_number_id": "123456",
        "voiceflow_api_key": "VF.DM.test",
        "message_delay": 0,
    }
    defaults.update(kwargs)
    return BridgeConfig(**defaults)


def make_inbound_event(**kwargs: Any) -> InboundEvent:
    """Factory for InboundEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "sender_id": "15551234567",
        "kind": InboundKind.TEXT,
        "raw_type": "text",
        "message_id": "wamid.TEST",
        "timestamp": int(time.time()),
        "body": "hello",
    }
    defaults.update(kwargs)
    return InboundEvent(**defaults)


def make_text_message(
    text: str = "hello",
    phone: str = "15551234567",
    message_id: str = "wamid.1",
    timestamp: str | None = None,
) -> dict[str, Any]:
    return {
        "from": phone,
        "id": message_id,
        "timestamp": timestamp or str(int(time.time())),
        "type": "text",
        "text": {"body": text},
    }


def make_webhook_payload(*messages: dict[str, Any]) -> dict[str, Any]:
    """Wrap raw messages in the WhatsApp Cloud API delivery envelope."""
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "BUSINESS_ID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": "123456"},
                            "messages": list(messages),
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }


def make_http_client(*responses: Any) -> AsyncMock:
    """httpx.AsyncClient double returning (or raising) ``responses`` in order.

    A single response is returned for every call.
    """
    client = AsyncMock()
    if len(responses) == 1:
        if isinstance(responses[0], BaseException):
            client.post.side_effect = responses[0]
        else:
            client.post.return_value = responses[0]
    else:
        client.post.side_effect = list(responses)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


def make_response(status_code: int = 200, json_data: Any = None, text: str = "") -> MagicMock:
    resp = MagicMock(status_code=status_code, text=text)
    if isinstance(json_data, Exception):
        resp.json.side_effect = json_data
    else:
        resp.json.return_value = json_data
    return resp
