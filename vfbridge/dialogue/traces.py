"""Parsing of Voiceflow runtime traces into the bridge's trace models."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from vfbridge.models import (
    Button,
    Card,
    CardTrace,
    CarouselTrace,
    ChoiceTrace,
    OtherTrace,
    SpeakTrace,
    TextTrace,
    Trace,
    VisualTrace,
)

logger = logging.getLogger(__name__)


def _text_of(value: Any) -> str | None:
    """Voiceflow sends descriptions either as a string or as ``{"text": ...}``."""
    if isinstance(value, dict):
        value = value.get("text")
    if isinstance(value, str):
        return value
    return None


def _parse_card(raw: dict[str, Any]) -> Card:
    return Card(
        title=_text_of(raw.get("title")) or "",
        description=_text_of(raw.get("description")),
        image_url=raw.get("imageUrl") or None,
    )


def _parse_button(raw: dict[str, Any]) -> Button:
    request = raw.get("request") or {}
    payload = request.get("payload") if isinstance(request, dict) else None
    label = payload.get("label") if isinstance(payload, dict) else None
    return Button(name=_text_of(raw.get("name")) or "", label=_text_of(label))


def parse_trace(raw: Any) -> Trace:
    """Convert one raw trace object. Unknown or broken traces become OtherTrace."""
    if not isinstance(raw, dict):
        return OtherTrace(raw_type=type(raw).__name__)

    trace_type = raw.get("type", "")
    payload = raw.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    try:
        if trace_type == "text":
            return TextTrace(message=_text_of(payload.get("message")) or "")
        if trace_type == "speak":
            return SpeakTrace(message=_text_of(payload.get("message")) or "")
        if trace_type == "visual":
            return VisualTrace(
                image_url=payload.get("image") or "",
                caption=_text_of(payload.get("text")),
            )
        if trace_type == "carousel":
            return CarouselTrace(
                title=_text_of(payload.get("title")),
                cards=[
                    _parse_card(card) for card in payload.get("cards") or []
                    if isinstance(card, dict)
                ],
            )
        if trace_type == "choice":
            return ChoiceTrace(
                message=_text_of(payload.get("message")),
                buttons=[
                    _parse_button(button) for button in payload.get("buttons") or []
                    if isinstance(button, dict)
                ],
            )
        if trace_type in ("card", "cardV2"):
            return CardTrace(
                title=_text_of(payload.get("title")),
                description=_text_of(payload.get("description")),
                text=_text_of(payload.get("text")),
                image_url=payload.get("imageUrl") or None,
            )
    except ValidationError as exc:
        logger.warning("Malformed %s trace: %s", trace_type, exc)

    return OtherTrace(raw_type=str(trace_type))


def parse_traces(raw: list[Any]) -> list[Trace]:
    return [parse_trace(item) for item in raw]
