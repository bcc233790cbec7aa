"""Inbound normalizer: one WhatsApp event to one utterance for the dialogue backend."""

from __future__ import annotations

from vfbridge.errors import EmptyInputError, UnsupportedInputError
from vfbridge.models import InboundEvent, InboundKind, NormalizedUtterance

IMAGE_PLACEHOLDER = "User sent an image"
DOCUMENT_PLACEHOLDER = "User sent a document"
AUDIO_PLACEHOLDER = "User sent a voice message"

_MEDIA_PLACEHOLDERS = {
    InboundKind.IMAGE: IMAGE_PLACEHOLDER,
    InboundKind.DOCUMENT: DOCUMENT_PLACEHOLDER,
}


def extract_text(event: InboundEvent, *, accept_media: bool = True) -> str:
    """Return the raw text for ``event`` before blank-checking.

    Raises :class:`UnsupportedInputError` for kinds the bridge does not relay.
    """
    if event.kind is InboundKind.TEXT:
        return event.body or ""
    if event.kind in (InboundKind.INTERACTIVE_BUTTON, InboundKind.INTERACTIVE_LIST):
        # The title is what the user saw and tapped; the id is ours.
        return event.reply_title or ""
    if event.kind in _MEDIA_PLACEHOLDERS and accept_media:
        if event.caption and event.caption.strip():
            return event.caption
        return _MEDIA_PLACEHOLDERS[event.kind]
    if event.kind is InboundKind.AUDIO:
        return AUDIO_PLACEHOLDER
    raise UnsupportedInputError(event.raw_type or event.kind.value)


def normalize(event: InboundEvent, *, accept_media: bool = True) -> NormalizedUtterance:
    """Map an inbound event to a non-blank utterance.

    Raises :class:`UnsupportedInputError` or :class:`EmptyInputError`; both
    mean "skip this message", never "fail".
    """
    text = extract_text(event, accept_media=accept_media)
    if not text.strip():
        raise EmptyInputError(event.kind.value)
    return NormalizedUtterance(sender_id=event.sender_id, text=text)
