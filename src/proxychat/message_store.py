"""Ordered conversation timeline with observer notifications."""

from __future__ import annotations

from collections.abc import Callable, Iterable
import logging
import time

from .exceptions import ConversationInvariantError
from .models import Message, Sender

LOGGER = logging.getLogger(__name__)

DEFAULT_GREETING = (
    "Welcome! How can I help you plan your future, manage stress, "
    "or discuss college options today?"
)

Listener = Callable[[tuple[Message, ...]], None]


class MessageIdSequence:
    """Monotonic message id source seeded from the wall clock.

    Ids are milliseconds since the epoch, bumped past the previous id when
    several messages are created within the same millisecond.
    """

    def __init__(self, clock: Callable[[], float] = time.time, floor: int = 0) -> None:
        self._clock = clock
        self._last = floor

    def observe(self, message_id: int) -> None:
        """Make sure future ids sort after an externally supplied id."""
        if message_id > self._last:
            self._last = message_id

    def next(self) -> tuple[int, int]:
        """Return ``(id, timestamp_ms)`` for a new message."""
        now_ms = int(self._clock() * 1000)
        message_id = max(now_ms, self._last + 1)
        self._last = message_id
        return message_id, now_ms


class ConversationStore:
    """Single source of truth for the rendered and persisted timeline."""

    def __init__(
        self,
        greeting: str = DEFAULT_GREETING,
        messages: Iterable[Message] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.greeting = greeting.strip() or DEFAULT_GREETING
        self._ids = MessageIdSequence(clock=clock)
        self._listeners: list[Listener] = []
        self._messages: list[Message] = self._normalize(messages or [])

    def _seed(self) -> list[Message]:
        return [self.create_message(self.greeting, Sender.BOT)]

    def _normalize(self, messages: Iterable[Message]) -> list[Message]:
        kept: list[Message] = []
        seen: set[int] = set()
        for message in messages:
            if message.sender == Sender.LOADING:
                continue
            if message.id in seen:
                continue
            seen.add(message.id)
            self._ids.observe(message.id)
            kept.append(message)
        return kept or self._seed()

    @property
    def loading_message(self) -> Message | None:
        for message in self._messages:
            if message.sender == Sender.LOADING:
                return message
        return None

    @property
    def message_count(self) -> int:
        return len(self._messages)

    def snapshot(self) -> tuple[Message, ...]:
        """Return the ordered timeline as an immutable sequence."""
        return tuple(self._messages)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener and return a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001 - one bad observer must not block others.
                LOGGER.exception(
                    "store.listener.failed",
                    extra={"event": "store.listener.failed"},
                )

    def create_message(
        self,
        text: str,
        sender: Sender,
        image_url: str | None = None,
        model_used: str | None = None,
    ) -> Message:
        """Build a message with the next id; it is not appended."""
        message_id, timestamp = self._ids.next()
        return Message(
            id=message_id,
            text=text,
            sender=sender,
            timestamp=timestamp,
            image_url=image_url,
            model_used=model_used,
        )

    def _check_insertable(self, message: Message, ignore_id: int | None = None) -> None:
        if message.sender == Sender.USER and not message.text.strip():
            raise ConversationInvariantError("User messages must carry text.")
        if message.sender == Sender.LOADING:
            current = self.loading_message
            if current is not None and current.id != ignore_id:
                raise ConversationInvariantError(
                    "A loading placeholder is already present."
                )
        if any(m.id == message.id and m.id != ignore_id for m in self._messages):
            raise ConversationInvariantError(f"Duplicate message id {message.id}.")

    def append(self, message: Message) -> None:
        self._check_insertable(message)
        self._ids.observe(message.id)
        self._messages.append(message)
        self._notify()

    def remove_by_id(self, message_id: int) -> bool:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                del self._messages[index]
                if not self._messages:
                    self._messages = self._seed()
                self._notify()
                return True
        return False

    def replace(self, old_id: int, new_message: Message) -> bool:
        """Remove ``old_id`` and append ``new_message`` as one observable change."""
        index = next(
            (i for i, m in enumerate(self._messages) if m.id == old_id), None
        )
        if index is None:
            return False
        self._check_insertable(new_message, ignore_id=old_id)
        self._ids.observe(new_message.id)
        updated = list(self._messages)
        del updated[index]
        updated.append(new_message)
        self._messages = updated
        self._notify()
        return True

    def replace_all(self, messages: Iterable[Message]) -> None:
        self._messages = self._normalize(messages)
        self._notify()

    def clear(self) -> None:
        """Reseed the timeline with a single greeting."""
        self._messages = self._seed()
        LOGGER.info("store.cleared", extra={"event": "store.cleared"})
        self._notify()

    def is_seed_only(self) -> bool:
        """Return True when the timeline is just the greeting."""
        return (
            len(self._messages) == 1
            and self._messages[0].sender == Sender.BOT
            and self._messages[0].text == self.greeting
        )
