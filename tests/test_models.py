"""Tests for timeline messages and wire payload shapes."""

from __future__ import annotations

from pathlib import Path
import unittest

from proxychat.attachment import ImageFile
from proxychat.models import (
    ChatReply,
    ChatRequest,
    EncodedImage,
    HistoryItem,
    IntentSource,
    Message,
    PendingIntent,
    Sender,
)


def _image(name: str = "cat.png") -> ImageFile:
    return ImageFile(path=Path("/tmp") / name, name=name, media_type="image/png", size=10)


class MessageSerializationTests(unittest.TestCase):
    """Validate persisted message key names and malformed input handling."""

    def test_to_dict_uses_persisted_key_names(self) -> None:
        message = Message(
            id=5,
            text="hi",
            sender=Sender.BOT,
            timestamp=5,
            image_url="https://img/x.png",
            model_used="gemini-2.0-flash",
        )
        self.assertEqual(
            message.to_dict(),
            {
                "id": 5,
                "text": "hi",
                "sender": "bot",
                "timestamp": 5,
                "imageUrl": "https://img/x.png",
                "modelUsed": "gemini-2.0-flash",
            },
        )

    def test_optional_fields_are_omitted_when_empty(self) -> None:
        message = Message(id=1, text="hello", sender=Sender.USER, timestamp=1)
        self.assertNotIn("imageUrl", message.to_dict())
        self.assertNotIn("modelUsed", message.to_dict())

    def test_from_dict_accepts_missing_timestamp(self) -> None:
        message = Message.from_dict({"id": 42, "text": "x", "sender": "user"})
        self.assertEqual(message.timestamp, 42)
        self.assertEqual(message.sender, Sender.USER)

    def test_from_dict_rejects_malformed_entries(self) -> None:
        for payload in (
            "not a dict",
            {"id": "1", "text": "x", "sender": "user"},
            {"id": True, "text": "x", "sender": "user"},
            {"id": 1, "text": 3, "sender": "user"},
            {"id": 1, "text": "x", "sender": "robot"},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError):
                    Message.from_dict(payload)


class PendingIntentTests(unittest.TestCase):
    """Validate display text and prompt derivation."""

    def test_empty_intent(self) -> None:
        self.assertTrue(PendingIntent(text="   ").is_empty)
        self.assertFalse(PendingIntent(text="", image=_image()).is_empty)

    def test_display_text_variants(self) -> None:
        self.assertEqual(PendingIntent(text=" hi ").display_text(), "hi")
        self.assertEqual(
            PendingIntent(text="", image=_image("dog.jpg")).display_text(),
            "[Image: dog.jpg]",
        )
        self.assertEqual(
            PendingIntent(text="look", image=_image()).display_text(), "look (+image)"
        )

    def test_image_only_prompt_uses_default(self) -> None:
        intent = PendingIntent(text="", image=_image(), source=IntentSource.INPUT)
        self.assertEqual(intent.prompt("Describe this image."), "Describe this image.")
        self.assertEqual(PendingIntent(text="why").prompt("unused"), "why")


class ChatRequestTests(unittest.TestCase):
    """Validate the outbound chat body."""

    def test_payload_without_key_or_image(self) -> None:
        request = ChatRequest(
            prompt="hello",
            model="gemini-2.0-flash",
            persona="counselor",
            history=[HistoryItem(role="user", content="earlier")],
        )
        payload = request.to_payload()
        self.assertEqual(payload["action"], "chat")
        self.assertEqual(
            payload["history"], [{"role": "user", "parts": [{"text": "earlier"}]}]
        )
        self.assertNotIn("accessKey", payload)
        self.assertNotIn("imageDataUrl", payload)
        self.assertNotIn("imageMimeType", payload)

    def test_payload_with_key_and_image(self) -> None:
        request = ChatRequest(
            prompt="what is this",
            model="m",
            persona="p",
            access_key=" secret ",
            image=EncodedImage(media_type="image/png", data_url="data:image/png;base64,AA=="),
        )
        payload = request.to_payload()
        self.assertEqual(payload["accessKey"], "secret")
        self.assertEqual(payload["imageMimeType"], "image/png")
        self.assertEqual(payload["imageDataUrl"], "data:image/png;base64,AA==")

    def test_reply_emptiness(self) -> None:
        self.assertTrue(ChatReply(text="  ").is_empty)
        self.assertFalse(ChatReply(text="", image_url="https://x").is_empty)
        self.assertFalse(ChatReply(text="ok").is_empty)


if __name__ == "__main__":
    unittest.main()
