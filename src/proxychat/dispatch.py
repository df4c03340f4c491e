"""Message dispatch pipeline.

Turns one user intent into exactly one request to the chat service and
reconciles the reply back into the conversation store. The pipeline owns the
single-flight gate and the send cooldown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
import logging
import time
from typing import TYPE_CHECKING, Protocol

from .exceptions import AttachmentError, format_error_text, is_error_text
from .message_store import ConversationStore
from .models import (
    ChatReply,
    ChatRequest,
    ChatSettings,
    EncodedImage,
    HistoryItem,
    IntentSource,
    Message,
    PendingIntent,
    Sender,
)
from .state import DispatchState, StateManager

if TYPE_CHECKING:
    from .attachment import AttachmentPreparer, ImageFile

LOGGER = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 1.5
DEFAULT_HISTORY_LIMIT = 20
DEFAULT_IMAGE_PROMPT = "Describe this image."
DEFAULT_LOADING_TEXT = "Bot is typing..."


class ChatService(Protocol):
    async def send(self, request: ChatRequest) -> ChatReply: ...


class DispatchOutcome(str, Enum):
    REJECTED_EMPTY = "rejected_empty"
    REJECTED_BUSY = "rejected_busy"
    REJECTED_COOLDOWN = "rejected_cooldown"
    REJECTED_DISPOSED = "rejected_disposed"
    ATTACHMENT_FAILED = "attachment_failed"
    REPLIED = "replied"
    FAILED = "failed"
    EMPTY = "empty"
    DISCARDED = "discarded"

    @property
    def rejected(self) -> bool:
        return self.value.startswith("rejected_")


@dataclass(frozen=True)
class DispatchResult:
    outcome: DispatchOutcome
    message: Message | None = None
    reply: ChatReply | None = None


def build_history_window(
    messages: Iterable[Message], limit: int = DEFAULT_HISTORY_LIMIT
) -> list[HistoryItem]:
    """Project the most recent eligible messages into outbound history."""
    eligible = [
        m
        for m in messages
        if m.sender in (Sender.USER, Sender.BOT)
        and m.text.strip()
        and not is_error_text(m.text)
    ]
    window = eligible[-limit:] if limit > 0 else []
    return [
        HistoryItem(
            role="user" if m.sender == Sender.USER else "model", content=m.text
        )
        for m in window
    ]


class CooldownTimer:
    """Minimum interval between dispatch starts.

    ``active`` is computed from the clock so checks are exact; the loop
    handle only exists to tell observers when the window closes. Only one
    handle is live at a time.
    """

    def __init__(
        self,
        duration_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_change: Callable[[bool], None] | None = None,
    ) -> None:
        self.duration_seconds = max(0.0, duration_seconds)
        self._clock = clock
        self._on_change = on_change
        self._deadline: float | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._disposed = False

    @property
    def active(self) -> bool:
        return self._deadline is not None and self._clock() < self._deadline

    def arm(self) -> None:
        """Start or restart the cooldown window."""
        if self._disposed:
            return
        self._cancel_handle()
        self._deadline = self._clock() + self.duration_seconds
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._handle = loop.call_later(self.duration_seconds, self._expire)
        self._emit(True)

    def disarm(self) -> None:
        self._cancel_handle()
        was_set = self._deadline is not None
        self._deadline = None
        if was_set:
            self._emit(False)

    def dispose(self) -> None:
        self._disposed = True
        self._cancel_handle()
        self._deadline = None

    def _expire(self) -> None:
        self._handle = None
        if self._disposed:
            return
        self._emit(False)

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _emit(self, active: bool) -> None:
        if self._on_change is not None and not self._disposed:
            self._on_change(active)


class DispatchPipeline:
    """Orchestrates validation, optimistic append, the remote call, and reconciliation."""

    def __init__(
        self,
        store: ConversationStore,
        service: ChatService,
        preparer: AttachmentPreparer,
        settings_provider: Callable[[], ChatSettings],
        *,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        default_image_prompt: str = DEFAULT_IMAGE_PROMPT,
        loading_text: str = DEFAULT_LOADING_TEXT,
        on_sent: Callable[[PendingIntent], None] | None = None,
        on_cooldown_change: Callable[[bool], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.service = service
        self.preparer = preparer
        self.settings_provider = settings_provider
        self.history_limit = history_limit
        self.default_image_prompt = default_image_prompt
        self.loading_text = loading_text
        self._on_sent = on_sent
        self._state = StateManager()
        self._cooldown = CooldownTimer(
            cooldown_seconds, clock=clock, on_change=on_cooldown_change
        )

    @property
    def is_busy(self) -> bool:
        return self._state.current == DispatchState.DISPATCHING

    @property
    def cooldown_active(self) -> bool:
        return self._cooldown.active

    @property
    def disposed(self) -> bool:
        return self._state.current == DispatchState.DISPOSED

    @property
    def can_dispatch(self) -> bool:
        return self._state.current == DispatchState.IDLE and not self._cooldown.active

    def dispose(self) -> None:
        """Stop accepting work; late completions will not touch the store."""
        self._state.dispose()
        self._cooldown.dispose()

    async def dispatch(
        self,
        text: str | None,
        image: ImageFile | None = None,
        *,
        source: IntentSource = IntentSource.INPUT,
    ) -> DispatchResult:
        intent = PendingIntent(text=(text or "").strip(), image=image, source=source)

        if self.disposed:
            return DispatchResult(DispatchOutcome.REJECTED_DISPOSED)
        if intent.is_empty:
            return DispatchResult(DispatchOutcome.REJECTED_EMPTY)
        if await self._state.get_state() != DispatchState.IDLE:
            LOGGER.debug(
                "dispatch.rejected.busy", extra={"event": "dispatch.rejected.busy"}
            )
            return DispatchResult(DispatchOutcome.REJECTED_BUSY)
        if self._cooldown.active:
            LOGGER.debug(
                "dispatch.rejected.cooldown",
                extra={"event": "dispatch.rejected.cooldown"},
            )
            return DispatchResult(DispatchOutcome.REJECTED_COOLDOWN)
        if not await self._state.transition_if(
            DispatchState.IDLE, DispatchState.DISPATCHING
        ):
            return DispatchResult(DispatchOutcome.REJECTED_BUSY)

        try:
            return await self._run(intent)
        finally:
            await self._state.transition_if(
                DispatchState.DISPATCHING, DispatchState.IDLE
            )

    async def _run(self, intent: PendingIntent) -> DispatchResult:
        history = build_history_window(self.store.snapshot(), self.history_limit)
        user_message = self.store.create_message(intent.display_text(), Sender.USER)
        self.store.append(user_message)
        loading = self.store.create_message(self.loading_text, Sender.LOADING)
        self.store.append(loading)
        if self._on_sent is not None:
            self._on_sent(intent)
        self._cooldown.arm()
        LOGGER.info(
            "dispatch.start",
            extra={
                "event": "dispatch.start",
                "source": intent.source.value,
                "history": len(history),
                "has_image": intent.image is not None,
            },
        )

        try:
            encoded: EncodedImage | None = None
            if intent.image is not None:
                try:
                    encoded = await self.preparer.prepare(intent.image)
                except AttachmentError as exc:
                    LOGGER.warning(
                        "dispatch.attachment.failed",
                        extra={
                            "event": "dispatch.attachment.failed",
                            "kind": exc.kind.value,
                        },
                    )
                    if self.disposed:
                        return DispatchResult(DispatchOutcome.DISCARDED)
                    self._cooldown.disarm()
                    error_message = self.store.create_message(
                        format_error_text(exc), Sender.BOT
                    )
                    self._reconcile(loading, error_message)
                    return DispatchResult(
                        DispatchOutcome.ATTACHMENT_FAILED, message=error_message
                    )

            settings = self.settings_provider()
            request = ChatRequest(
                prompt=intent.prompt(self.default_image_prompt),
                model=settings.model,
                persona=settings.persona,
                history=history,
                access_key=settings.access_key,
                image=encoded,
            )

            try:
                reply = await self.service.send(request)
            except Exception as exc:  # noqa: BLE001 - every failure becomes a timeline message.
                LOGGER.warning(
                    "dispatch.failed",
                    extra={
                        "event": "dispatch.failed",
                        "error_type": exc.__class__.__name__,
                    },
                )
                if self.disposed:
                    return DispatchResult(DispatchOutcome.DISCARDED)
                error_message = self.store.create_message(
                    format_error_text(exc), Sender.BOT
                )
                self._reconcile(loading, error_message)
                return DispatchResult(DispatchOutcome.FAILED, message=error_message)

            if self.disposed:
                return DispatchResult(DispatchOutcome.DISCARDED, reply=reply)

            if reply.is_empty:
                LOGGER.warning(
                    "dispatch.reply.empty",
                    extra={"event": "dispatch.reply.empty", "model": settings.model},
                )
                self.store.remove_by_id(loading.id)
                return DispatchResult(DispatchOutcome.EMPTY, reply=reply)

            bot_message = self.store.create_message(
                reply.text,
                Sender.BOT,
                image_url=reply.image_url,
                model_used=reply.model_used,
            )
            self._reconcile(loading, bot_message)
            LOGGER.info(
                "dispatch.replied",
                extra={
                    "event": "dispatch.replied",
                    "model_used": reply.model_used or settings.model,
                    "has_image": bool(reply.image_url),
                },
            )
            return DispatchResult(
                DispatchOutcome.REPLIED, message=bot_message, reply=reply
            )
        except asyncio.CancelledError:
            self.store.remove_by_id(loading.id)
            LOGGER.info("dispatch.cancelled", extra={"event": "dispatch.cancelled"})
            raise
        except Exception as exc:
            self.store.remove_by_id(loading.id)
            LOGGER.warning(
                "dispatch.aborted",
                extra={
                    "event": "dispatch.aborted",
                    "error_type": exc.__class__.__name__,
                },
            )
            raise

    def _reconcile(self, loading: Message, final: Message) -> None:
        if not self.store.replace(loading.id, final):
            LOGGER.info(
                "dispatch.reply.dropped",
                extra={"event": "dispatch.reply.dropped", "reason": "placeholder_gone"},
            )
