"""Status bar widget for the current selections and dispatch state."""

from __future__ import annotations

from textual import events
from textual.app import ComposeResult
from textual.message import Message
from textual.widgets import Label, Static


class StatusBar(Static):
    """Render compact runtime status information.

    Segments (left to right):
        Model: gemini-2.0-flash  |  Persona: Stress Coach  |  Voice: en-US  |  User: ann  |  ready
    The user segment is hidden until the service has reported a username.
    """

    DEFAULT_CSS = """
    StatusBar {
        layout: horizontal;
        height: auto;
    }
    StatusBar Label {
        margin-right: 1;
    }
    StatusBar #status_state {
        color: $text-muted;
    }
    """

    class SettingsRequested(Message):
        """Posted when the status bar is clicked."""

    def compose(self) -> ComposeResult:
        yield Label("Model: -", id="status_model")
        yield Label("|")
        yield Label("Persona: -", id="status_persona")
        yield Label("|")
        yield Label("Voice: -", id="status_language")
        yield Label("|", id="status_sep_user")
        yield Label("", id="status_user")
        yield Label("|")
        yield Label("ready", id="status_state")

    def on_mount(self) -> None:
        self._lbl_model = self.query_one("#status_model", Label)
        self._lbl_persona = self.query_one("#status_persona", Label)
        self._lbl_language = self.query_one("#status_language", Label)
        self._lbl_user = self.query_one("#status_user", Label)
        self._sep_user = self.query_one("#status_sep_user", Label)
        self._lbl_state = self.query_one("#status_state", Label)

    def set_status(
        self,
        *,
        model: str,
        persona: str,
        language: str,
        username: str | None,
        state: str,
    ) -> None:
        self._lbl_model.update(f"Model: {model}")
        self._lbl_persona.update(f"Persona: {persona}")
        self._lbl_language.update(f"Voice: {language}")
        self._lbl_user.update(f"User: {username}" if username else "")
        self._lbl_user.display = bool(username)
        self._sep_user.display = bool(username)
        self._lbl_state.update(state)

    def on_click(self, event: events.Click) -> None:
        event.stop()
        self.post_message(self.SettingsRequested())
