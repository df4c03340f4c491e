"""Message bubble widget for conversation rendering."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from rich.markdown import Markdown
from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.message import Message as TextualMessage
from textual.widgets import Button, Static

from ..exceptions import is_error_text
from ..models import Message, Sender
from ..response_parser import parse_reply

EMPTY_REPLY_TEXT = "[Empty response]"


def format_clock(timestamp_ms: int) -> str:
    """Render an epoch-millisecond timestamp as local HH:MM."""
    try:
        return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%H:%M")
    except (OverflowError, OSError, ValueError):
        return ""


class MessageBubble(Vertical):
    """Render one timeline message with header, body, image link, and suggestions."""

    DEFAULT_CSS = """
    MessageBubble {
        height: auto;
        margin-bottom: 1;
    }
    MessageBubble > #header-block {
        padding: 0;
    }
    MessageBubble > #content-block {
        height: auto;
    }
    MessageBubble.error > #content-block {
        color: $error;
    }
    MessageBubble.sender-loading > #content-block {
        color: $text-muted;
        text-style: italic;
    }
    MessageBubble > #image-link {
        color: $accent;
    }
    MessageBubble > #suggestions {
        height: auto;
    }
    MessageBubble > #suggestions > Button {
        margin-right: 1;
        min-width: 8;
    }
    """

    class SuggestionSelected(TextualMessage):
        """Posted when a suggestion button is clicked."""

        def __init__(self, text: str) -> None:
            super().__init__()
            self.text = text

    def __init__(self, message: Message, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.message = message
        self.add_class(f"sender-{message.sender.value}")
        if message.sender == Sender.BOT and is_error_text(message.text):
            self.add_class("error")
        if message.sender == Sender.BOT:
            parsed = parse_reply(message.text)
            self.body = parsed.body
            self.suggestions = list(parsed.suggestions)
        else:
            self.body = message.text
            self.suggestions = []

    @property
    def sender_label(self) -> str:
        if self.message.sender == Sender.USER:
            return "You"
        return "Bot"

    def _compose_header(self) -> str:
        parts = [f"**{self.sender_label}**"]
        clock = format_clock(self.message.timestamp)
        if clock:
            parts.append(f"_{clock}_")
        if self.message.model_used:
            parts.append(f"`{self.message.model_used}`")
        return "  ".join(parts)

    def _render_body(self) -> Text | Markdown:
        if self.message.sender == Sender.LOADING:
            return Text(self.message.text)
        if self.message.sender == Sender.USER:
            return Text(self.body)
        if is_error_text(self.body):
            return Text(self.body)
        if not self.body and not self.message.image_url:
            return Text(EMPTY_REPLY_TEXT, style="dim italic")
        return Markdown(self.body)

    def compose(self) -> ComposeResult:
        if self.message.sender != Sender.LOADING:
            yield Static(Markdown(self._compose_header()), id="header-block")
        if self.body or self.message.sender != Sender.BOT or not self.message.image_url:
            yield Static(self._render_body(), id="content-block")
        if self.message.image_url:
            yield Static(
                Text(f"Image: {self.message.image_url}", style="underline"),
                id="image-link",
            )
        if self.suggestions:
            with Horizontal(id="suggestions"):
                for index, suggestion in enumerate(self.suggestions):
                    yield Button(
                        suggestion,
                        id=f"suggestion-{index}",
                        classes="suggestion",
                        variant="primary",
                    )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        """Forward suggestion clicks to the app."""
        button_id = event.button.id or ""
        if not button_id.startswith("suggestion-"):
            return
        event.stop()
        index = int(button_id.removeprefix("suggestion-"))
        self.post_message(self.SuggestionSelected(self.suggestions[index]))
