"""Trace dispatcher: renders one dialogue turn as a paced series of WhatsApp sends."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from vfbridge.models import (
    Button,
    Card,
    CardTrace,
    CarouselTrace,
    ChoiceTrace,
    DeliveryResult,
    ListRow,
    ListSection,
    OtherTrace,
    ReplyButton,
    SpeakTrace,
    TextTrace,
    Trace,
    VisualTrace,
)
from vfbridge.outbound.whatsapp import (
    MAX_BUTTON_TITLE_LENGTH,
    MAX_BUTTONS,
    MAX_LIST_ROWS,
    MAX_ROW_DESCRIPTION_LENGTH,
    MAX_ROW_TITLE_LENGTH,
)

if TYPE_CHECKING:
    from vfbridge.outbound.whatsapp import WhatsAppSender

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "Sorry, I don't have a response for that right now."

CAROUSEL_PROMPT = "Please select an option from the list below:"
CAROUSEL_BUTTON_LABEL = "Select Option"
CAROUSEL_SECTION_TITLE = "Available Options"

CHOICE_PROMPT = "Please choose an option:"
CHOICE_BUTTON_LABEL = "Choose"
CHOICE_SECTION_TITLE = "Choose an Option"


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def compose_card_caption(card: Card) -> str:
    """``*title*`` followed by the description as its own paragraph."""
    parts = []
    if card.title.strip():
        parts.append(f"*{card.title.strip()}*")
    if card.description and card.description.strip():
        parts.append(card.description.strip())
    return "\n\n".join(parts)


def flatten_card(trace: CardTrace) -> str:
    fields = (trace.title, trace.description, trace.text)
    return "\n\n".join(field.strip() for field in fields if field and field.strip())


def carousel_rows(cards: list[Card], stamp: int) -> list[ListRow]:
    return [
        ListRow(
            id=f"card_{index}_{stamp}",
            title=(card.title.strip() or f"Option {index + 1}")[:MAX_ROW_TITLE_LENGTH],
            description=(card.description or "")[:MAX_ROW_DESCRIPTION_LENGTH],
        )
        for index, card in enumerate(cards[:MAX_LIST_ROWS])
    ]


def choice_buttons(buttons: list[Button], stamp: int) -> list[ReplyButton]:
    return [
        ReplyButton(
            id=f"btn_{index}_{stamp}",
            title=(button.name.strip() or f"Option {index + 1}")[:MAX_BUTTON_TITLE_LENGTH],
        )
        for index, button in enumerate(buttons[:MAX_BUTTONS])
    ]


def choice_rows(buttons: list[Button], stamp: int) -> list[ListRow]:
    return [
        ListRow(
            id=f"choice_{index}_{stamp}",
            title=(button.name.strip() or f"Option {index + 1}")[:MAX_ROW_TITLE_LENGTH],
            description=(button.label or "")[:MAX_ROW_DESCRIPTION_LENGTH],
        )
        for index, button in enumerate(buttons[:MAX_LIST_ROWS])
    ]


class _Pacer:
    """Spaces consecutive sends of one dispatch by a fixed delay."""

    def __init__(self, delay: float) -> None:
        self._delay = delay
        self._sent = False

    async def send(
        self, operation: Callable[[], Awaitable[DeliveryResult]],
    ) -> DeliveryResult:
        if self._sent and self._delay:
            await asyncio.sleep(self._delay)
        self._sent = True
        return await operation()


class TraceDispatcher:
    """Maps Voiceflow traces onto WhatsApp message primitives."""

    def __init__(self, sender: WhatsAppSender, message_delay: float = 0.5) -> None:
        self._sender = sender
        self._message_delay = message_delay

    async def dispatch(self, to: str, traces: Any) -> int:
        """Send every trace to ``to`` in order; returns the number processed.

        Never raises: a failing trace is logged and the next one proceeds.
        """
        pacer = _Pacer(self._message_delay)
        if not isinstance(traces, list) or not traces:
            logger.warning("No traces to deliver to %s", to)
            await self._guarded(pacer, to, TextTrace(message=NO_RESPONSE_TEXT))
            return 0

        processed = 0
        for trace in traces:
            if await self._guarded(pacer, to, trace):
                processed += 1
        return processed

    async def _guarded(self, pacer: _Pacer, to: str, trace: Trace) -> bool:
        kind = getattr(trace, "kind", type(trace).__name__)
        try:
            logger.info("Processing %s trace for %s", kind, to)
            await self._dispatch_one(pacer, to, trace)
        except Exception:
            logger.exception("Error processing %s trace for %s", kind, to)
            return False
        return True

    async def _dispatch_one(self, pacer: _Pacer, to: str, trace: Trace) -> None:
        if isinstance(trace, TextTrace | SpeakTrace):
            if not trace.message.strip():
                logger.info("Skipping empty %s trace", trace.kind)
                return
            await pacer.send(lambda: self._sender.send_text(to, trace.message))
        elif isinstance(trace, VisualTrace):
            if not trace.image_url:
                logger.info("Skipping visual trace without image")
                return
            await pacer.send(
                lambda: self._sender.send_image(to, trace.image_url, trace.caption),
            )
        elif isinstance(trace, CarouselTrace):
            await self.handle_carousel(pacer, to, trace)
        elif isinstance(trace, ChoiceTrace):
            await self.handle_choice(pacer, to, trace)
        elif isinstance(trace, CardTrace):
            text = flatten_card(trace)
            if not text:
                logger.info("Skipping card trace without content")
                return
            await pacer.send(lambda: self._sender.send_text(to, text))
        elif isinstance(trace, OtherTrace):
            logger.info("Skipping unsupported trace type %r", trace.raw_type)
        else:
            logger.info("Skipping unrecognized trace %r", trace)

    async def handle_carousel(self, pacer: _Pacer, to: str, trace: CarouselTrace) -> None:
        cards = trace.cards
        if not cards:
            return
        logger.info("Processing carousel with %d cards", len(cards))

        if trace.title and trace.title.strip():
            await pacer.send(lambda: self._sender.send_text(to, trace.title or ""))

        if len(cards) == 1:
            card = cards[0]
            caption = compose_card_caption(card)
            if card.image_url:
                await pacer.send(
                    lambda: self._sender.send_image(to, card.image_url or "", caption),
                )
            elif caption:
                await pacer.send(lambda: self._sender.send_text(to, caption))
            return

        if len(cards) > MAX_LIST_ROWS:
            logger.info("Carousel truncated from %d to %d cards", len(cards), MAX_LIST_ROWS)
        sections = [
            ListSection(
                title=CAROUSEL_SECTION_TITLE,
                rows=carousel_rows(cards, _timestamp_ms()),
            ),
        ]
        await pacer.send(
            lambda: self._sender.send_list(
                to, CAROUSEL_PROMPT, CAROUSEL_BUTTON_LABEL, sections,
            ),
        )

    async def handle_choice(self, pacer: _Pacer, to: str, trace: ChoiceTrace) -> None:
        buttons = trace.buttons
        if not buttons:
            return
        logger.info("Processing %d choice buttons", len(buttons))

        prompt = trace.message if trace.message and trace.message.strip() else CHOICE_PROMPT
        stamp = _timestamp_ms()

        if len(buttons) <= MAX_BUTTONS:
            replies = choice_buttons(buttons, stamp)
            await pacer.send(lambda: self._sender.send_buttons(to, prompt, replies))
            return

        if len(buttons) > MAX_LIST_ROWS:
            logger.info("Choice truncated from %d to %d options", len(buttons), MAX_LIST_ROWS)
        sections = [ListSection(title=CHOICE_SECTION_TITLE, rows=choice_rows(buttons, stamp))]
        await pacer.send(
            lambda: self._sender.send_list(to, prompt, CHOICE_BUTTON_LABEL, sections),
        )
