"""Timeline messages and the request/reply shapes exchanged with the chat service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import math
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from .attachment import ImageFile


class Sender(str, Enum):
    """Closed set of timeline message authors."""

    USER = "user"
    BOT = "bot"
    LOADING = "loading"


class IntentSource(str, Enum):
    """Where a pending intent originated in the UI."""

    INPUT = "input"
    SUGGESTION = "suggestion"
    DICTATION = "dictation"


@dataclass(frozen=True)
class Message:
    """One timeline entry."""

    id: int
    text: str
    sender: Sender
    timestamp: int
    image_url: str | None = None
    model_used: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the persisted key names."""
        payload: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "sender": self.sender.value,
            "timestamp": self.timestamp,
        }
        if self.image_url:
            payload["imageUrl"] = self.image_url
        if self.model_used:
            payload["modelUsed"] = self.model_used
        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> Message:
        """Build a message from persisted data, raising ValueError when malformed."""
        if not isinstance(payload, dict):
            raise ValueError("Message entry must be an object.")
        raw_id = payload.get("id")
        raw_timestamp = payload.get("timestamp", raw_id)
        if isinstance(raw_id, bool) or not isinstance(raw_id, (int, float)):
            raise ValueError("Message id must be a number.")
        if isinstance(raw_timestamp, bool) or not isinstance(
            raw_timestamp, (int, float)
        ):
            raise ValueError("Message timestamp must be a number.")
        if not (math.isfinite(raw_id) and math.isfinite(raw_timestamp)):
            raise ValueError("Message id and timestamp must be finite.")
        text = payload.get("text", "")
        if not isinstance(text, str):
            raise ValueError("Message text must be a string.")
        try:
            sender = Sender(payload.get("sender"))
        except ValueError as exc:
            raise ValueError(f"Unknown sender {payload.get('sender')!r}.") from exc

        image_url = payload.get("imageUrl")
        model_used = payload.get("modelUsed")
        return cls(
            id=int(raw_id),
            text=text,
            sender=sender,
            timestamp=int(raw_timestamp),
            image_url=image_url if isinstance(image_url, str) and image_url else None,
            model_used=(
                model_used if isinstance(model_used, str) and model_used else None
            ),
        )


@dataclass(frozen=True)
class HistoryItem:
    """Role-tagged projection of a message used as outbound context."""

    role: Literal["user", "model"]
    content: str

    def to_wire(self) -> dict[str, Any]:
        return {"role": self.role, "parts": [{"text": self.content}]}


@dataclass(frozen=True)
class EncodedImage:
    """Image payload ready for transmission."""

    media_type: str
    data_url: str


@dataclass(frozen=True)
class PendingIntent:
    """The (text, image) tuple captured at dispatch start."""

    text: str
    image: ImageFile | None = None
    source: IntentSource = IntentSource.INPUT

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and self.image is None

    @property
    def image_name(self) -> str:
        if self.image is None:
            return ""
        return self.image.name or Path(str(self.image.path)).name

    def display_text(self) -> str:
        """Text for the optimistic user message."""
        text = self.text.strip()
        if self.image is None:
            return text
        if not text:
            return f"[Image: {self.image_name}]"
        return f"{text} (+image)"

    def prompt(self, default_image_prompt: str) -> str:
        """Prompt sent to the service; images without text get a default prompt."""
        text = self.text.strip()
        if not text and self.image is not None:
            return default_image_prompt
        return text


@dataclass(frozen=True)
class ChatSettings:
    """Per-request selections read at dispatch time."""

    model: str
    persona: str
    access_key: str = ""


@dataclass(frozen=True)
class ChatRequest:
    """Outbound chat request body."""

    prompt: str
    model: str
    persona: str
    history: list[HistoryItem] = field(default_factory=list)
    access_key: str = ""
    image: EncodedImage | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "action": "chat",
            "prompt": self.prompt,
            "model": self.model,
            "persona": self.persona,
            "history": [item.to_wire() for item in self.history],
        }
        if self.access_key.strip():
            payload["accessKey"] = self.access_key.strip()
        if self.image is not None:
            payload["imageMimeType"] = self.image.media_type
            payload["imageDataUrl"] = self.image.data_url
        return payload


@dataclass(frozen=True)
class ChatReply:
    """Successful reply from the chat service."""

    text: str = ""
    image_url: str | None = None
    model_used: str | None = None
    username: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.image_url
