"""Main Textual application for the proxy chat client."""

from __future__ import annotations

from collections.abc import Callable, Sequence
import logging
from typing import Any, TypeVar

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.widgets import Footer, Header, Input

from .attachment import AttachmentPreparer, AttachmentSlot, ImageFile
from .catalog import Catalog
from .config import load_config
from .dictation import (
    Dictation,
    DictationState,
    SpeechEngine,
    create_dictation,
    discover_speech_engine,
)
from .dispatch import ChatService, DispatchOutcome, DispatchPipeline
from .exceptions import AttachmentError, PersistenceError
from .logging_utils import configure_logging
from .message_store import ConversationStore
from .models import ChatSettings, IntentSource, Message, PendingIntent
from .persistence import SessionPersistence, build_session_persistence
from .screens import (
    CLEAR_CHAT_QUESTION,
    ConfirmScreen,
    ImageAttachScreen,
    NoticeScreen,
    SettingsResult,
    SettingsScreen,
)
from .service import ChatServiceClient
from .task_manager import TaskManager
from .widgets.conversation import ConversationView
from .widgets.input_box import InputBox
from .widgets.message import MessageBubble
from .widgets.status_bar import StatusBar

LOGGER = logging.getLogger(__name__)

DISPATCH_TASK = "dispatch"

T = TypeVar("T")


class ProxyChatApp(App[None]):
    """Chat with a remote model proxy: timeline, attachments, dictation, settings."""

    CSS = """
    Screen {
        layout: vertical;
    }

    #app-root {
        layout: vertical;
        width: 100%;
        height: 1fr;
        background: $background;
    }

    #conversation {
        height: 1fr;
        padding: 1;
    }

    InputBox {
        padding: 0 1 1 1;
        border-top: solid $panel;
        background: $surface;
    }

    #input_row {
        height: auto;
    }

    #attach_button, #mic_button, #send_button {
        margin-left: 1;
        min-width: 8;
    }

    #status_bar {
        height: auto;
        padding: 0 1;
        border-top: solid $panel;
        background: $surface;
    }

    MessageBubble {
        width: 85%;
        padding: 1 2;
        border: round $panel;
    }

    .sender-user {
        background: $primary 30%;
    }

    .sender-bot, .sender-loading {
        background: $surface;
    }
    """

    BINDINGS = [
        Binding("ctrl+s", "open_settings", "Settings"),
        Binding("ctrl+o", "attach_image", "Image"),
        Binding("ctrl+r", "toggle_dictation", "Mic"),
        Binding("ctrl+l", "clear_chat", "Clear"),
        Binding("ctrl+q", "quit", "Quit"),
    ]

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        service: ChatService | None = None,
        persistence: SessionPersistence | None = None,
        speech_engine: SpeechEngine | None = None,
        discover_engine: bool = True,
    ) -> None:
        self.config = config or load_config()
        configure_logging(self.config["logging"])
        super().__init__()
        self.title = str(self.config["app"]["title"])

        self.catalog = Catalog.from_config(self.config)
        self.persistence = persistence or build_session_persistence(
            self.config["persistence"]
        )
        self.languages: list[tuple[str, str]] = [
            (str(entry.get("label") or entry["code"]), str(entry["code"]))
            for entry in self.config["dictation"]["languages"]
        ]
        self._load_preferences()

        dispatch_cfg = self.config["dispatch"]
        self.store = ConversationStore(
            greeting=str(dispatch_cfg["greeting"]),
            messages=self._load_timeline(),
        )
        self.attachments = AttachmentSlot()
        self.preparer = AttachmentPreparer(int(dispatch_cfg["max_image_bytes"]))

        self._owns_service = service is None
        if service is None:
            service_cfg = self.config["service"]
            service = ChatServiceClient(
                str(service_cfg["endpoint"]),
                timeout_seconds=float(service_cfg["timeout_seconds"]),
            )
        self.service = service
        self.pipeline = DispatchPipeline(
            self.store,
            self.service,
            self.preparer,
            self._current_settings,
            cooldown_seconds=int(dispatch_cfg["cooldown_ms"]) / 1000,
            history_limit=int(dispatch_cfg["history_window"]),
            default_image_prompt=str(dispatch_cfg["default_image_prompt"]),
            loading_text=str(dispatch_cfg["loading_text"]),
            on_sent=self._on_intent_sent,
            on_cooldown_change=self._on_cooldown_change,
        )

        if speech_engine is None and discover_engine:
            speech_engine = discover_speech_engine(
                str(self.config["dictation"]["engine"])
            )
        self.dictation: Dictation = create_dictation(
            speech_engine,
            read_input=self._read_input,
            write_input=self._write_input,
            notify=self._notify_warning,
            on_state_change=self._on_dictation_state,
        )

        self.username: str | None = None
        self._task_manager = TaskManager()
        self._unsubscribe = self.store.subscribe(self._on_timeline_changed)
        self._ui_ready = False
        self._w_conversation: ConversationView | None = None
        self._w_input: InputBox | None = None
        self._w_status: StatusBar | None = None

    # -- preferences -------------------------------------------------------

    def _load_saved(self, name: str, loader: Callable[[], T], default: T) -> T:
        try:
            return loader()
        except PersistenceError as exc:
            LOGGER.warning(
                "app.preference.load_failed",
                extra={
                    "event": "app.preference.load_failed",
                    "preference": name,
                    "reason": str(exc),
                },
            )
            return default

    def _load_preferences(self) -> None:
        self.access_key = self._load_saved(
            "access_key", self.persistence.load_access_key, ""
        )
        has_access = Catalog.has_access(self.access_key)
        self.selected_model = self.catalog.resolve_model(
            self._load_saved(
                "selected_model", self.persistence.load_selected_model, None
            ),
            has_access,
        )
        self.selected_persona = self.catalog.resolve_persona(
            self._load_saved(
                "selected_persona", self.persistence.load_selected_persona, None
            ),
            has_access,
        )
        codes = {code for _, code in self.languages}
        saved_language = self._load_saved(
            "dictation_language", self.persistence.load_dictation_language, None
        )
        self.language = (
            saved_language
            if saved_language in codes
            else str(self.config["dictation"]["default_language"])
        )

    def _load_timeline(self) -> list[Message] | None:
        try:
            return self.persistence.load_timeline()
        except PersistenceError as exc:
            LOGGER.warning(
                "app.timeline.load_failed",
                extra={"event": "app.timeline.load_failed", "reason": str(exc)},
            )
            return None

    def _save_preferences(self) -> None:
        try:
            self.persistence.save_access_key(self.access_key)
            self.persistence.save_selected_model(self.selected_model)
            self.persistence.save_selected_persona(self.selected_persona)
            self.persistence.save_dictation_language(self.language)
        except PersistenceError as exc:
            LOGGER.warning(
                "app.preferences.save_failed",
                extra={"event": "app.preferences.save_failed", "reason": str(exc)},
            )

    def _save_timeline(self, messages: Sequence[Message]) -> None:
        try:
            self.persistence.save_timeline(
                messages, seed_only=self.store.is_seed_only()
            )
        except PersistenceError as exc:
            LOGGER.warning(
                "app.timeline.save_failed",
                extra={"event": "app.timeline.save_failed", "reason": str(exc)},
            )

    def _current_settings(self) -> ChatSettings:
        return ChatSettings(
            model=self.selected_model,
            persona=self.selected_persona,
            access_key=self.access_key,
        )

    # -- layout ------------------------------------------------------------

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="app-root"):
            yield ConversationView(id="conversation")
            yield InputBox()
            yield StatusBar(id="status_bar")
        yield Footer()

    async def on_mount(self) -> None:
        self._w_conversation = self.query_one(ConversationView)
        self._w_input = self.query_one(InputBox)
        self._w_status = self.query_one("#status_bar", StatusBar)
        self._w_input.set_dictation_available(self.dictation.available)
        self._ui_ready = True
        await self._w_conversation.sync(self.store.snapshot())
        self._refresh_controls()
        self.query_one("#message_input", Input).focus()
        LOGGER.info(
            "app.mounted",
            extra={
                "event": "app.mounted",
                "model": self.selected_model,
                "persona": self.selected_persona,
                "dictation": self.dictation.available,
            },
        )
        if not self._load_saved(
            "notice_acknowledged", self.persistence.is_notice_acknowledged, False
        ):
            self.push_screen(NoticeScreen(), self._on_notice_dismissed)

    def _on_notice_dismissed(self, accepted: bool | None) -> None:
        if not accepted:
            return
        try:
            self.persistence.acknowledge_notice()
        except PersistenceError as exc:
            LOGGER.warning(
                "app.notice.save_failed",
                extra={"event": "app.notice.save_failed", "reason": str(exc)},
            )

    def _status_text(self) -> str:
        if self.dictation.is_recording:
            return "recording"
        if self.pipeline.is_busy:
            return "waiting for reply"
        if self.pipeline.cooldown_active:
            return "cooldown"
        return "ready"

    def _refresh_controls(self) -> None:
        if not self._ui_ready or self._w_input is None or self._w_status is None:
            return
        self._w_input.set_send_enabled(self.pipeline.can_dispatch)
        self._w_input.set_recording(self.dictation.is_recording)
        preview = self.attachments.preview
        self._w_input.show_attachment(preview.label if preview else None)
        persona = self.catalog.persona(self.selected_persona)
        self._w_status.set_status(
            model=self.selected_model,
            persona=persona.display if persona else self.selected_persona,
            language=self.language,
            username=self.username,
            state=self._status_text(),
        )

    # -- store and pipeline callbacks ---------------------------------------

    def _on_timeline_changed(self, messages: Sequence[Message]) -> None:
        self._save_timeline(messages)
        if self._ui_ready and self._w_conversation is not None:
            self._task_manager.spawn(self._w_conversation.sync(messages))

    def _on_intent_sent(self, intent: PendingIntent) -> None:
        if intent.source == IntentSource.INPUT:
            self._write_input("")
            self.attachments.clear()
        self._refresh_controls()

    def _on_cooldown_change(self, _active: bool) -> None:
        self._refresh_controls()

    def _on_dictation_state(self, _state: DictationState) -> None:
        self._refresh_controls()

    def _notify_warning(self, text: str) -> None:
        self.notify(text, severity="warning")

    def _read_input(self) -> str:
        if self._w_input is None:
            return ""
        return self._w_input.text

    def _write_input(self, value: str) -> None:
        if self._w_input is not None:
            self._w_input.text = value

    # -- sending -----------------------------------------------------------

    def _submit(self, text: str, source: IntentSource) -> None:
        if self._task_manager.is_running(DISPATCH_TASK):
            return
        image: ImageFile | None = None
        if source == IntentSource.INPUT:
            image = self.attachments.selected
        self._task_manager.spawn(self._dispatch(text, image, source), DISPATCH_TASK)

    async def _dispatch(
        self, text: str, image: ImageFile | None, source: IntentSource
    ) -> None:
        try:
            result = await self.pipeline.dispatch(text, image, source=source)
        except Exception:  # noqa: BLE001 - the UI must outlive a broken dispatch.
            LOGGER.exception(
                "app.dispatch.crashed", extra={"event": "app.dispatch.crashed"}
            )
            self.notify("Something went wrong while sending.", severity="error")
            return
        finally:
            self._refresh_controls()
        if result.outcome == DispatchOutcome.REJECTED_COOLDOWN:
            self.notify("Please wait a moment before sending again.", timeout=2)
        if result.reply is not None and result.reply.username:
            self.username = result.reply.username
            self._refresh_controls()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "message_input":
            return
        event.stop()
        self._submit(event.value, IntentSource.INPUT)

    async def on_input_box_send_requested(self, _event: InputBox.SendRequested) -> None:
        self._submit(self._read_input(), IntentSource.INPUT)

    async def on_message_bubble_suggestion_selected(
        self, event: MessageBubble.SuggestionSelected
    ) -> None:
        event.stop()
        self._submit(event.text, IntentSource.SUGGESTION)

    # -- attachments -------------------------------------------------------

    async def action_attach_image(self) -> None:
        self.push_screen(ImageAttachScreen(), self._on_image_path)

    async def on_input_box_attach_requested(
        self, _event: InputBox.AttachRequested
    ) -> None:
        await self.action_attach_image()

    def on_input_box_attachment_cleared(
        self, _event: InputBox.AttachmentCleared
    ) -> None:
        self.attachments.clear()
        self._refresh_controls()

    def _on_image_path(self, path: str | None) -> None:
        if not path:
            return
        try:
            image = ImageFile.from_path(path)
            self.preparer.validate(image)
            self.attachments.select(image)
        except AttachmentError as exc:
            self.attachments.clear()
            self.notify(str(exc), severity="error")
        self._refresh_controls()

    # -- dictation ---------------------------------------------------------

    def action_toggle_dictation(self) -> None:
        if (
            self.dictation.available
            and not self.dictation.is_recording
            and not self.pipeline.can_dispatch
        ):
            LOGGER.debug(
                "app.dictation.blocked", extra={"event": "app.dictation.blocked"}
            )
            return
        self.dictation.toggle(self.language)
        self._refresh_controls()

    def on_input_box_dictation_toggled(
        self, _event: InputBox.DictationToggled
    ) -> None:
        self.action_toggle_dictation()

    # -- settings ----------------------------------------------------------

    def _settings_screen(self) -> SettingsScreen:
        has_access = Catalog.has_access(self.access_key)
        return SettingsScreen(
            access_key=self.access_key,
            language=self.language,
            languages=self.languages,
            model=self.selected_model,
            models=[
                (m.label, m.value) for m in self.catalog.available_models(has_access)
            ],
            persona=self.selected_persona,
            personas=[
                (p.display, p.value)
                for p in self.catalog.available_personas(has_access)
            ],
        )

    def action_open_settings(self) -> None:
        self.push_screen(self._settings_screen(), self._on_settings_dismissed)

    def on_status_bar_settings_requested(
        self, _event: StatusBar.SettingsRequested
    ) -> None:
        self.action_open_settings()

    def apply_settings(self, result: SettingsResult) -> None:
        """Apply chosen settings, falling back to defaults for disallowed entries."""
        self.access_key = result.access_key.strip()
        has_access = Catalog.has_access(self.access_key)
        self.selected_model = self.catalog.resolve_model(result.model, has_access)
        self.selected_persona = self.catalog.resolve_persona(result.persona, has_access)
        if result.language in {code for _, code in self.languages}:
            self.language = result.language
        self._save_preferences()
        LOGGER.info(
            "app.settings.applied",
            extra={
                "event": "app.settings.applied",
                "model": self.selected_model,
                "persona": self.selected_persona,
                "language": self.language,
                "has_access": has_access,
            },
        )
        self._refresh_controls()

    def _on_settings_dismissed(self, result: SettingsResult | None) -> None:
        if result is None:
            return
        self.apply_settings(result)
        if result.clear_chat:
            self.action_clear_chat()

    def action_clear_chat(self) -> None:
        self.push_screen(ConfirmScreen(CLEAR_CHAT_QUESTION), self._on_clear_confirmed)

    def _on_clear_confirmed(self, confirmed: bool | None) -> None:
        if confirmed:
            self.clear_chat()

    def clear_chat(self) -> None:
        self.store.clear()
        try:
            self.persistence.clear_timeline()
        except PersistenceError as exc:
            LOGGER.warning(
                "app.timeline.clear_failed",
                extra={"event": "app.timeline.clear_failed", "reason": str(exc)},
            )

    # -- teardown ----------------------------------------------------------

    async def on_unmount(self) -> None:
        """Flush state, release owned resources, and await background tasks."""
        self._ui_ready = False
        self.pipeline.dispose()
        self.dictation.dispose()
        self.attachments.dispose()
        self._unsubscribe()
        self._save_timeline(self.store.snapshot())
        self._save_preferences()
        await self._task_manager.cancel_all()
        if self._owns_service and isinstance(self.service, ChatServiceClient):
            await self.service.aclose()
        LOGGER.info("app.unmounted", extra={"event": "app.unmounted"})
