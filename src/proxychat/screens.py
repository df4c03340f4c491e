"""Modal screens for settings, confirmations, and notices."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Select, Static

BETA_NOTICE_TITLE = "Beta Version"
BETA_NOTICE_TEXT = (
    "Welcome! This chatbot is currently in beta. Features may change, and "
    "occasional errors might occur. Your feedback is valuable!"
)
CLEAR_CHAT_QUESTION = (
    "Are you sure you want to clear the entire chat history? This cannot be undone."
)


class NoticeScreen(ModalScreen[bool]):
    """Introductory notice that stays until acknowledged."""

    CSS = """
    NoticeScreen {
        align: center middle;
    }

    #notice-dialog {
        width: 64;
        height: auto;
        padding: 1 2;
        border: round $warning;
        background: $surface;
    }

    #notice-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #notice-actions {
        height: 3;
        align: right middle;
    }
    """

    def __init__(self, title: str = BETA_NOTICE_TITLE, text: str = BETA_NOTICE_TEXT) -> None:
        super().__init__()
        self._title = title
        self._text = text

    def compose(self) -> ComposeResult:
        with Container(id="notice-dialog"):
            yield Static(self._title, id="notice-title")
            yield Static(self._text, id="notice-body")
            with Horizontal(id="notice-actions"):
                yield Button("Accept & Continue", id="notice-accept", variant="primary")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "notice-accept":
            event.stop()
            self.dismiss(True)


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no question; Escape answers no."""

    CSS = """
    ConfirmScreen {
        align: center middle;
    }

    #confirm-dialog {
        width: 64;
        height: auto;
        padding: 1 2;
        border: round $panel;
        background: $surface;
    }

    #confirm-actions {
        height: 3;
        align: right middle;
    }

    #confirm-actions Button {
        margin-left: 1;
    }
    """

    def __init__(self, question: str) -> None:
        super().__init__()
        self._question = question

    def compose(self) -> ComposeResult:
        with Container(id="confirm-dialog"):
            yield Static(self._question, id="confirm-question")
            with Horizontal(id="confirm-actions"):
                yield Button("Cancel", id="confirm-no")
                yield Button("Confirm", id="confirm-yes", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id in {"confirm-yes", "confirm-no"}:
            event.stop()
            self.dismiss(event.button.id == "confirm-yes")

    def on_key(self, event: Any) -> None:  # noqa: ANN401
        if str(getattr(event, "key", "")).lower() == "escape":
            self.dismiss(False)


class ImageAttachScreen(ModalScreen[str | None]):
    """Collect an image path; the terminal has no native file dialog."""

    CSS = """
    ImageAttachScreen {
        align: center middle;
    }

    #image-attach-dialog {
        width: 60;
        height: auto;
        padding: 1 3;
        border: round $panel;
        background: $surface;
    }

    #image-attach-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #image-attach-input {
        width: 100%;
        margin: 1 0;
    }

    #image-attach-help {
        padding-top: 1;
        text-align: center;
    }
    """

    def compose(self) -> ComposeResult:
        with Container(id="image-attach-dialog"):
            yield Static("Attach image", id="image-attach-title")
            yield Input(
                placeholder="Path to a PNG, JPG, GIF, or WEBP file...",
                id="image-attach-input",
            )
            yield Static("Enter to confirm  |  Esc to cancel", id="image-attach-help")

    def on_mount(self) -> None:
        self.query_one("#image-attach-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "image-attach-input":
            return
        value = event.value.strip()
        self.dismiss(value if value else None)

    def on_key(self, event: Any) -> None:  # noqa: ANN401
        if str(getattr(event, "key", "")).lower() == "escape":
            self.dismiss(None)


@dataclass(frozen=True)
class SettingsResult:
    """Values chosen in the settings modal; ``clear_chat`` asks for a reset."""

    access_key: str
    language: str
    model: str
    persona: str
    clear_chat: bool = False


class SettingsScreen(ModalScreen[SettingsResult | None]):
    """Access key, dictation language, model, and persona selection."""

    CSS = """
    SettingsScreen {
        align: center middle;
    }

    #settings-dialog {
        width: 72;
        height: auto;
        max-height: 40;
        padding: 1 2;
        border: round $panel;
        background: $surface;
    }

    #settings-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #settings-dialog Label {
        padding-top: 1;
    }

    #settings-actions {
        height: 3;
        margin-top: 1;
        align: right middle;
    }

    #settings-actions Button {
        margin-left: 1;
    }
    """

    def __init__(
        self,
        *,
        access_key: str,
        language: str,
        languages: list[tuple[str, str]],
        model: str,
        models: list[tuple[str, str]],
        persona: str,
        personas: list[tuple[str, str]],
    ) -> None:
        super().__init__()
        self._access_key = access_key
        self._language = language
        self._languages = languages
        self._model = model
        self._models = models
        self._persona = persona
        self._personas = personas

    def compose(self) -> ComposeResult:
        with Container(id="settings-dialog"):
            yield Static("Settings", id="settings-title")
            yield Label("Access key (unlocks restricted models and personas)")
            yield Input(
                value=self._access_key,
                placeholder="Enter access key",
                password=True,
                id="settings-access-key",
            )
            yield Label("Dictation language")
            yield Select(
                self._languages,
                value=self._language,
                allow_blank=False,
                id="settings-language",
            )
            yield Label("Model")
            yield Select(
                self._models, value=self._model, allow_blank=False, id="settings-model"
            )
            yield Label("Persona")
            yield Select(
                self._personas,
                value=self._persona,
                allow_blank=False,
                id="settings-persona",
            )
            with Horizontal(id="settings-actions"):
                yield Button("Clear chat", id="settings-clear", variant="error")
                yield Button("Cancel", id="settings-cancel")
                yield Button("Save", id="settings-save", variant="primary")

    def _collect(self, clear_chat: bool = False) -> SettingsResult:
        return SettingsResult(
            access_key=self.query_one("#settings-access-key", Input).value.strip(),
            language=str(self.query_one("#settings-language", Select).value),
            model=str(self.query_one("#settings-model", Select).value),
            persona=str(self.query_one("#settings-persona", Select).value),
            clear_chat=clear_chat,
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "settings-save":
            event.stop()
            self.dismiss(self._collect())
        elif button_id == "settings-clear":
            event.stop()
            self.dismiss(self._collect(clear_chat=True))
        elif button_id == "settings-cancel":
            event.stop()
            self.dismiss(None)

    def on_key(self, event: Any) -> None:  # noqa: ANN401
        if str(getattr(event, "key", "")).lower() == "escape":
            self.dismiss(None)
