"""Input row containing message field, image, mic, and send buttons."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.message import Message
from textual.widgets import Button, Input, Label


class InputBox(Vertical):
    """Input region with attachment preview line and action buttons."""

    DEFAULT_CSS = """
    InputBox {
        height: auto;
    }
    InputBox > #attachment_row {
        height: auto;
    }
    InputBox > #attachment_row.hidden {
        display: none;
    }
    InputBox #attachment_label {
        width: 1fr;
        color: $text-muted;
    }
    InputBox #message_input {
        width: 1fr;
    }
    InputBox #mic_button.recording {
        background: $error;
    }
    """

    class AttachRequested(Message):
        """Posted when the user clicks the image button."""

    class AttachmentCleared(Message):
        """Posted when the user removes the pending image."""

    class DictationToggled(Message):
        """Posted when the user clicks the mic button."""

    class SendRequested(Message):
        """Posted when the user clicks Send."""

    def compose(self) -> ComposeResult:
        with Horizontal(id="attachment_row", classes="hidden"):
            yield Label("", id="attachment_label")
            yield Button("Remove", id="clear_attachment_button", variant="warning")
        with Horizontal(id="input_row"):
            yield Input(placeholder="Type your message...", id="message_input")
            yield Button("Image", id="attach_button", variant="default")
            yield Button("Mic", id="mic_button", variant="default")
            yield Button("Send", id="send_button", variant="success")

    @property
    def text(self) -> str:
        return self.query_one("#message_input", Input).value

    @text.setter
    def text(self, value: str) -> None:
        field = self.query_one("#message_input", Input)
        field.value = value
        field.cursor_position = len(value)

    def set_send_enabled(self, enabled: bool) -> None:
        self.query_one("#send_button", Button).disabled = not enabled

    def set_recording(self, recording: bool) -> None:
        mic = self.query_one("#mic_button", Button)
        mic.label = "Stop" if recording else "Mic"
        mic.set_class(recording, "recording")

    def set_dictation_available(self, available: bool) -> None:
        self.query_one("#mic_button", Button).disabled = not available

    def show_attachment(self, label: str | None) -> None:
        row = self.query_one("#attachment_row", Horizontal)
        self.query_one("#attachment_label", Label).update(
            f"Attached: {label}" if label else ""
        )
        row.set_class(not label, "hidden")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "attach_button":
            event.stop()
            self.post_message(self.AttachRequested())
        elif button_id == "clear_attachment_button":
            event.stop()
            self.post_message(self.AttachmentCleared())
        elif button_id == "mic_button":
            event.stop()
            self.post_message(self.DictationToggled())
        elif button_id == "send_button":
            event.stop()
            self.post_message(self.SendRequested())
