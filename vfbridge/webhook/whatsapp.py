"""WhatsApp Cloud API webhook handling.

Covers the Meta verification handshake, optional HMAC signature
verification, and unwrapping of the ``entry[].changes[].value.messages[]``
envelope into :class:`InboundEvent` objects.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Any

from pydantic import ValidationError

from vfbridge.models import InboundEvent, InboundKind

logger = logging.getLogger(__name__)

_SIMPLE_KINDS = {
    "text": InboundKind.TEXT,
    "image": InboundKind.IMAGE,
    "audio": InboundKind.AUDIO,
    "document": InboundKind.DOCUMENT,
}


class WhatsAppWebhook:
    """Verifies and unpacks WhatsApp Cloud API webhook requests."""

    def __init__(
        self,
        verify_token: str,
        app_secret: str | None = None,
        max_message_age_seconds: int = 300,
    ) -> None:
        self._verify_token = verify_token
        self._app_secret = app_secret
        self._max_age = max_message_age_seconds

    def verify_signature(self, headers: dict[str, str], body: bytes) -> bool:
        """Check ``x-hub-signature-256`` against an HMAC-SHA256 of the raw body.

        Always true when no app secret is configured.
        """
        if not self._app_secret:
            return True
        signature = headers.get("x-hub-signature-256", "")
        if not signature.startswith("sha256="):
            return False

        expected = hmac.new(
            self._app_secret.encode(), body, hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(signature[7:].encode(), expected.encode())

    def handle_verification(self, params: dict[str, str]) -> tuple[int, str]:
        """Answer the Meta subscription handshake (GET).

        Returns ``(status_code, content)``: the challenge on a valid
        subscribe, 403 on a token mismatch or wrong mode, 400 when the mode
        or token is missing.
        """
        mode = params.get("hub.mode")
        token = params.get("hub.verify_token")
        if not mode or not token:
            logger.warning("Webhook verification missing parameters")
            return 400, "Missing verification parameters"

        if mode == "subscribe" and hmac.compare_digest(
            token.encode(), self._verify_token.encode(),
        ):
            logger.info("Webhook verified")
            return 200, params.get("hub.challenge", "")

        logger.warning("Webhook verification failed: token mismatch")
        return 403, "Verification failed"

    def extract_events(
        self, payload: dict[str, Any], now: float | None = None,
    ) -> list[InboundEvent]:
        """Unwrap every inbound message of a delivery payload.

        Status updates (delivered, read, ...) carry no messages and yield
        nothing. Malformed items and stale redeliveries are dropped.
        """
        current = time.time() if now is None else now
        events: list[InboundEvent] = []
        for entry in _dicts(payload.get("entry")):
            for change in _dicts(entry.get("changes")):
                if change.get("field", "messages") != "messages":
                    continue
                value = change.get("value")
                if not isinstance(value, dict):
                    continue
                for message in _dicts(value.get("messages")):
                    event = parse_message(message)
                    if event is None:
                        continue
                    if self._is_stale(event, current):
                        logger.warning(
                            "Dropping stale message %s from %s (timestamp %s)",
                            event.message_id, event.sender_id, event.timestamp,
                        )
                        continue
                    events.append(event)
        return events

    def _is_stale(self, event: InboundEvent, now: float) -> bool:
        if not self._max_age or event.timestamp is None:
            return False
        return now - event.timestamp > self._max_age


def parse_message(message: dict[str, Any]) -> InboundEvent | None:
    """Build an :class:`InboundEvent` from one raw webhook message.

    Returns None when the message has no sender or cannot be validated.
    """
    sender = message.get("from")
    if not sender:
        logger.info("Ignoring message without sender: %s", message.get("id"))
        return None

    raw_type = str(message.get("type") or "")
    fields: dict[str, Any] = {
        "sender_id": str(sender),
        "raw_type": raw_type,
        "message_id": message.get("id"),
        "timestamp": _parse_timestamp(message.get("timestamp")),
    }

    if raw_type == "interactive":
        interactive = _dict(message.get("interactive"))
        reply_type = interactive.get("type")
        if reply_type == "button_reply":
            reply = _dict(interactive.get("button_reply"))
            fields["kind"] = InboundKind.INTERACTIVE_BUTTON
        elif reply_type == "list_reply":
            reply = _dict(interactive.get("list_reply"))
            fields["kind"] = InboundKind.INTERACTIVE_LIST
        else:
            reply = {}
            fields["kind"] = InboundKind.UNSUPPORTED
            fields["raw_type"] = f"interactive:{reply_type}"
        fields["reply_id"] = reply.get("id")
        fields["reply_title"] = reply.get("title")
    elif raw_type == "button":
        # Quick-reply button on a template message
        button = _dict(message.get("button"))
        fields["kind"] = InboundKind.INTERACTIVE_BUTTON
        fields["reply_id"] = button.get("payload")
        fields["reply_title"] = button.get("text")
    else:
        fields["kind"] = _SIMPLE_KINDS.get(raw_type, InboundKind.UNSUPPORTED)
        content = _dict(message.get(raw_type))
        if raw_type == "text":
            fields["body"] = content.get("body")
        elif fields["kind"] is not InboundKind.UNSUPPORTED:
            fields["caption"] = content.get("caption")
            fields["filename"] = content.get("filename")

    try:
        return InboundEvent(**fields)
    except ValidationError as exc:
        logger.warning("Ignoring malformed message %s: %s", message.get("id"), exc)
        return None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _parse_timestamp(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
