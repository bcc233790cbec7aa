"""Outbound WhatsApp Cloud API sender.

One method per message primitive. Each enforces the platform's size
limits and, for the rich primitives, degrades to a plain-text rendering
when the platform rejects the send.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import httpx

from vfbridge.errors import DeliveryError, RetryExhaustedError, TransientNetworkError
from vfbridge.models import (
    DeliveryResult,
    ListSection,
    OutboundKind,
    RelayEvent,
    RelayEventType,
    ReplyButton,
)
from vfbridge.retry import retry_async

if TYPE_CHECKING:
    from vfbridge.audit.logger import RelayAuditLogger
    from vfbridge.config import BridgeConfig

logger = logging.getLogger(__name__)

# Platform hard limit is 4096
MAX_TEXT_LENGTH = 4000
CHUNK_DELAY_SECONDS = 0.5
MAX_CAPTION_LENGTH = 1024
MAX_BUTTONS = 3
MAX_BUTTON_TITLE_LENGTH = 20
MAX_LIST_ROWS = 10
MAX_ROW_TITLE_LENGTH = 24
MAX_ROW_DESCRIPTION_LENGTH = 72
LIST_HEADER = "Available Options"
IMAGE_PLACEHOLDER = "[Image]"

INDICATOR_TIMEOUT = 5.0
TEXT_TIMEOUT = 10.0
BUTTONS_TIMEOUT = 10.0
IMAGE_TIMEOUT = 15.0
LIST_TIMEOUT = 15.0

SEND_MAX_ATTEMPTS = 2


def split_text(text: str, max_length: int = MAX_TEXT_LENGTH) -> list[str]:
    """Split ``text`` into consecutive chunks of at most ``max_length`` chars."""
    if len(text) <= max_length:
        return [text]
    return [text[i:i + max_length] for i in range(0, len(text), max_length)]


def render_buttons_as_text(body: str, buttons: list[ReplyButton]) -> str:
    lines = [body, ""] if body else []
    lines.extend(f"{i}. {button.title}" for i, button in enumerate(buttons, start=1))
    return "\n".join(lines)


def render_list_as_text(body: str, sections: list[ListSection]) -> str:
    lines = [body, ""] if body else []
    number = 0
    for section in sections:
        for row in section.rows:
            number += 1
            line = f"{number}. {row.title}"
            if row.description:
                line += f" - {row.description}"
            lines.append(line)
    return "\n".join(lines)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, TransientNetworkError)


class WhatsAppSender:
    """Sends messages from one WhatsApp business phone number."""

    def __init__(
        self,
        config: BridgeConfig,
        audit_logger: RelayAuditLogger | None = None,
    ) -> None:
        self._url = f"{config.graph_api_base.rstrip('/')}/{config.phone_number_id}/messages"
        self._access_token = config.whatsapp_token
        self._base_delay = config.retry_base_delay
        self._audit = audit_logger

    async def send_text(self, to: str, text: str) -> DeliveryResult:
        """Send a text message, chunked when longer than MAX_TEXT_LENGTH.

        Every chunk is attempted even if an earlier one failed; the result is
        successful only when all chunks went through.
        """
        if not text or not text.strip():
            logger.info("Not sending blank text to %s", to)
            return DeliveryResult(kind=OutboundKind.TEXT, success=False)

        chunks = split_text(text)
        if len(chunks) > 1:
            logger.info(
                "Splitting %d-char text for %s into %d chunks", len(text), to, len(chunks),
            )

        delivered = 0
        for index, chunk in enumerate(chunks):
            if index:
                await asyncio.sleep(CHUNK_DELAY_SECONDS)
            ok = await self._deliver(
                to,
                {"type": "text", "text": {"body": chunk}},
                timeout=TEXT_TIMEOUT,
                kind=OutboundKind.TEXT,
            )
            if ok:
                delivered += 1

        success = delivered == len(chunks)
        if not success:
            self._record_failure(
                to, OutboundKind.TEXT,
                f"{len(chunks) - delivered} of {len(chunks)} chunks failed",
            )
        return DeliveryResult(kind=OutboundKind.TEXT, success=success)

    async def send_image(
        self, to: str, image_url: str, caption: str | None = None,
    ) -> DeliveryResult:
        """Send an image by link; falls back to a text carrying the caption."""
        if not image_url:
            raise ValueError("image_url is required")

        image: dict[str, Any] = {"link": image_url}
        if caption:
            image["caption"] = caption[:MAX_CAPTION_LENGTH]

        if await self._deliver(
            to, {"type": "image", "image": image},
            timeout=IMAGE_TIMEOUT, kind=OutboundKind.IMAGE,
        ):
            return DeliveryResult(kind=OutboundKind.IMAGE, success=True)

        logger.warning("Image send to %s failed, falling back to text", to)
        if caption and caption.strip():
            result = await self.send_text(to, caption)
        else:
            result = await self.send_text(to, f"{IMAGE_PLACEHOLDER} {image_url}")
        return DeliveryResult(
            kind=OutboundKind.IMAGE, success=result.success, fallback_used=True,
        )

    async def send_buttons(
        self, to: str, body: str, buttons: list[ReplyButton],
    ) -> DeliveryResult:
        """Send up to three reply buttons; falls back to a numbered text list."""
        if not 1 <= len(buttons) <= MAX_BUTTONS:
            raise ValueError(f"expected 1-{MAX_BUTTONS} buttons, got {len(buttons)}")

        payload = {
            "type": "interactive",
            "interactive": {
                "type": "button",
                "body": {"text": body},
                "action": {"buttons": [button.to_payload() for button in buttons]},
            },
        }
        if await self._deliver(
            to, payload, timeout=BUTTONS_TIMEOUT, kind=OutboundKind.BUTTONS,
        ):
            return DeliveryResult(kind=OutboundKind.BUTTONS, success=True)

        logger.warning("Button message to %s failed, falling back to text", to)
        result = await self.send_text(to, render_buttons_as_text(body, buttons))
        return DeliveryResult(
            kind=OutboundKind.BUTTONS, success=result.success, fallback_used=True,
        )

    async def send_list(
        self,
        to: str,
        body: str,
        button_label: str,
        sections: list[ListSection],
        header: str = LIST_HEADER,
    ) -> DeliveryResult:
        """Send an interactive list; falls back to a numbered text list."""
        rows = sum(len(section.rows) for section in sections)
        if rows == 0:
            raise ValueError("list message needs at least one row")
        if rows > MAX_LIST_ROWS:
            raise ValueError(f"list message allows {MAX_LIST_ROWS} rows, got {rows}")

        payload = {
            "type": "interactive",
            "interactive": {
                "type": "list",
                "header": {"type": "text", "text": header},
                "body": {"text": body},
                "action": {
                    "button": button_label,
                    "sections": [section.to_payload() for section in sections],
                },
            },
        }
        if await self._deliver(
            to, payload, timeout=LIST_TIMEOUT, kind=OutboundKind.LIST,
        ):
            return DeliveryResult(kind=OutboundKind.LIST, success=True)

        logger.warning("List message to %s failed, falling back to text", to)
        result = await self.send_text(to, render_list_as_text(body, sections))
        return DeliveryResult(
            kind=OutboundKind.LIST, success=result.success, fallback_used=True,
        )

    async def send_typing_indicator(self, message_id: str) -> None:
        """Mark the inbound message read and show "typing..." (best effort)."""
        payload = {
            "messaging_product": "whatsapp",
            "status": "read",
            "message_id": message_id,
            "typing_indicator": {"type": "text"},
        }
        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    self._url, json=payload, headers=self._headers(),
                    timeout=INDICATOR_TIMEOUT,
                )
        except Exception as exc:
            logger.debug("Typing indicator for %s failed: %r", message_id, exc)
            return
        if resp.status_code >= 400:
            logger.debug(
                "Typing indicator for %s rejected with HTTP %s",
                message_id, resp.status_code,
            )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    async def _deliver(
        self, to: str, message: dict[str, Any], *, timeout: float, kind: OutboundKind,
    ) -> bool:
        """POST one message, retrying transient failures. Returns success."""
        payload = {"messaging_product": "whatsapp", "to": to, **message}
        try:
            await retry_async(
                lambda: self._post(payload, timeout),
                max_attempts=SEND_MAX_ATTEMPTS,
                base_delay=self._base_delay,
                retryable=_is_retryable,
                description=f"WhatsApp {kind.value} send to {to}",
            )
        except (DeliveryError, RetryExhaustedError) as exc:
            logger.error("Failed to send %s to %s: %s", kind.value, to, exc)
            return False
        except Exception:
            logger.exception("Unexpected error sending %s to %s", kind.value, to)
            return False
        logger.info("Sent %s message to %s", kind.value, to)
        return True

    async def _post(self, payload: dict[str, Any], timeout: float) -> None:
        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    self._url, json=payload, headers=self._headers(), timeout=timeout,
                )
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"WhatsApp request failed: {exc!r}") from exc

        if resp.status_code < 400:
            return
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientNetworkError(
                f"WhatsApp returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        raise DeliveryError(
            f"WhatsApp rejected message with HTTP {resp.status_code}: {resp.text}",
            status_code=resp.status_code,
        )

    def _record_failure(self, to: str, kind: OutboundKind, reason: str) -> None:
        if self._audit:
            self._audit.log(RelayEvent(
                event_type=RelayEventType.DELIVERY_FAILED,
                sender_id=to,
                action=f"send_{kind.value}",
                result="failure",
                details={"reason": reason},
            ))
