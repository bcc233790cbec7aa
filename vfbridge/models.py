"""Shared Pydantic data models for the WhatsApp/Voiceflow bridge."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Enums ---


class InboundKind(str, Enum):
    TEXT = "text"
    INTERACTIVE_BUTTON = "interactive_button"
    INTERACTIVE_LIST = "interactive_list"
    IMAGE = "image"
    AUDIO = "audio"
    DOCUMENT = "document"
    UNSUPPORTED = "unsupported"


class OutboundKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    BUTTONS = "interactive_buttons"
    LIST = "interactive_list"


class RelayEventType(str, Enum):
    MESSAGE_RECEIVED = "message_received"
    MESSAGE_SKIPPED = "message_skipped"
    DIALOGUE_FALLBACK = "dialogue_fallback"
    DELIVERY_FAILED = "delivery_failed"
    WEBHOOK_REJECTED = "webhook_rejected"


# --- Inbound Models ---


class InboundEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    sender_id: str
    kind: InboundKind
    raw_type: str = ""
    message_id: str | None = None
    timestamp: int | None = None
    body: str | None = None
    reply_id: str | None = None
    reply_title: str | None = None
    caption: str | None = None
    filename: str | None = None


class NormalizedUtterance(BaseModel):
    model_config = ConfigDict(frozen=True)

    sender_id: str
    text: str

    @field_validator("text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("utterance must not be blank")
        return value


# --- Trace Models ---


class Card(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    description: str | None = None
    image_url: str | None = None


class Button(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    label: str | None = None


class TextTrace(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    message: str = ""


class SpeakTrace(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["speak"] = "speak"
    message: str = ""


class VisualTrace(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["visual"] = "visual"
    image_url: str = ""
    caption: str | None = None


class CarouselTrace(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["carousel"] = "carousel"
    title: str | None = None
    cards: list[Card] = Field(default_factory=list)


class ChoiceTrace(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["choice"] = "choice"
    message: str | None = None
    buttons: list[Button] = Field(default_factory=list)


class CardTrace(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["card"] = "card"
    title: str | None = None
    description: str | None = None
    text: str | None = None
    image_url: str | None = None


class OtherTrace(BaseModel):
    """Any trace type the bridge does not render."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["other"] = "other"
    raw_type: str = ""


Trace = (
    TextTrace
    | SpeakTrace
    | VisualTrace
    | CarouselTrace
    | ChoiceTrace
    | CardTrace
    | OtherTrace
)


# --- Outbound Models ---


class ReplyButton(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = Field(max_length=20)

    def to_payload(self) -> dict[str, object]:
        return {"type": "reply", "reply": {"id": self.id, "title": self.title}}


class ListRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = Field(max_length=24)
    description: str = Field(default="", max_length=72)

    def to_payload(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title, "description": self.description}


class ListSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    rows: list[ListRow] = Field(default_factory=list)

    def to_payload(self) -> dict[str, object]:
        return {
            "title": self.title,
            "rows": [row.to_payload() for row in self.rows],
        }


class DeliveryResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: OutboundKind
    success: bool
    fallback_used: bool = False


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class RelayEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: RelayEventType
    sender_id: str | None = None
    source_ip: str | None = None
    action: str
    result: str  # "success" | "failure" | "skipped"
    details: dict[str, object] | None = None
