"""Relay pipeline for one inbound WhatsApp message.

Stages, strictly in order:
1. Normalize the inbound event to an utterance
2. Typing indicator (best effort)
3. One Voiceflow dialogue turn
4. Dispatch the returned traces to WhatsApp
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from vfbridge.errors import SkippedInputError
from vfbridge.models import InboundEvent, RelayEvent, RelayEventType
from vfbridge.webhook.normalizer import normalize

if TYPE_CHECKING:
    from vfbridge.audit.logger import RelayAuditLogger
    from vfbridge.dialogue.client import DialogueClient
    from vfbridge.dispatch.dispatcher import TraceDispatcher
    from vfbridge.outbound.whatsapp import WhatsAppSender

logger = logging.getLogger(__name__)

TECHNICAL_DIFFICULTIES_TEXT = (
    "Sorry, I'm experiencing technical difficulties. "
    "Please try again in a moment. 🤖"
)


class RelayPipeline:
    """Runs normalize → interact → dispatch for one inbound event."""

    def __init__(
        self,
        dialogue: DialogueClient,
        dispatcher: TraceDispatcher,
        sender: WhatsAppSender,
        accept_media: bool = True,
        typing_indicator: bool = True,
        audit_logger: RelayAuditLogger | None = None,
    ) -> None:
        self._dialogue = dialogue
        self._dispatcher = dispatcher
        self._sender = sender
        self._accept_media = accept_media
        self._typing_indicator = typing_indicator
        self._audit = audit_logger

    async def handle(self, event: InboundEvent) -> None:
        """Relay one event end to end. Never raises."""
        logger.info(
            "Processing %s message %s from %s",
            event.raw_type or event.kind.value, event.message_id, event.sender_id,
        )

        try:
            utterance = normalize(event, accept_media=self._accept_media)
        except SkippedInputError as exc:
            logger.info("Skipping message %s: %s", event.message_id, exc)
            self._log(event, RelayEventType.MESSAGE_SKIPPED, "skipped", reason=str(exc))
            return

        self._log(event, RelayEventType.MESSAGE_RECEIVED, "success", kind=event.kind.value)

        if self._typing_indicator and event.message_id:
            try:
                await self._sender.send_typing_indicator(event.message_id)
            except Exception:
                logger.debug("Typing indicator failed for %s", event.message_id, exc_info=True)

        try:
            traces = await self._dialogue.interact(utterance.sender_id, utterance.text)
            await self._dispatcher.dispatch(utterance.sender_id, traces)
        except Exception:
            logger.exception("Relay failed for message %s", event.message_id)
            await self._apologize(event)

    async def _apologize(self, event: InboundEvent) -> None:
        try:
            await self._sender.send_text(event.sender_id, TECHNICAL_DIFFICULTIES_TEXT)
        except Exception:
            logger.exception("Could not notify %s of the failure", event.sender_id)

    def _log(
        self,
        event: InboundEvent,
        event_type: RelayEventType,
        result: str,
        **details: object,
    ) -> None:
        if self._audit:
            self._audit.log(RelayEvent(
                event_type=event_type,
                sender_id=event.sender_id,
                action="relay",
                result=result,
                details={"message_id": event.message_id, **details},
            ))
