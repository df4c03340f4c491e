"""Voice dictation: a small state machine over a platform speech engine.

Whether dictation exists is decided once at startup by :func:`create_dictation`,
which returns either a :class:`DictationController` bound to an engine or the
:class:`UnavailableDictation` stand-in. Call sites never check for the engine
themselves.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from importlib import metadata
import logging
from typing import Any, Protocol

LOGGER = logging.getLogger(__name__)

ENGINE_ENTRY_POINT_GROUP = "proxychat.speech_engines"

UNAVAILABLE_NOTICE = "Speech recognition is not available on this system."
START_FAILED_NOTICE = "Could not start recording. Please check microphone permissions."

ERROR_NOTICES: dict[str, str] = {
    "no-speech": "No speech was detected. Please try again.",
    "audio-capture": "No microphone was found or it could not be opened.",
    "not-allowed": "Microphone permission was denied.",
    "service-not-allowed": "Microphone permission was denied.",
}


class DictationState(str, Enum):
    UNAVAILABLE = "unavailable"
    IDLE = "idle"
    RECORDING = "recording"


class EngineEvent(str, Enum):
    """Events a speech engine reports back to its listener."""

    START = "start"
    RESULT = "result"
    ERROR = "error"
    END = "end"


EngineListener = Callable[[EngineEvent, str], None]


class SpeechEngine(Protocol):
    """Contract for speech capture engines.

    Listeners must be invoked on the event loop thread. ``payload`` is the
    transcript for RESULT and the error category for ERROR.
    """

    language: str

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def abort(self) -> None: ...

    def set_listener(self, listener: EngineListener | None) -> None: ...


def error_notice(category: str) -> str:
    """Map an engine error category to a human-readable notice."""
    normalized = (category or "").strip().lower()
    return ERROR_NOTICES.get(
        normalized, f"Speech recognition error: {normalized or 'unknown error'}."
    )


def merge_transcript(existing: str, transcript: str) -> str:
    """Append a transcript to the pending input, space separated."""
    addition = transcript.strip()
    if not addition:
        return existing
    if not existing.strip():
        return addition
    return f"{existing.rstrip()} {addition}"


class DictationController:
    """Drives one speech engine through idle/recording transitions."""

    def __init__(
        self,
        engine: SpeechEngine,
        *,
        read_input: Callable[[], str],
        write_input: Callable[[str], None],
        notify: Callable[[str], None],
        on_state_change: Callable[[DictationState], None] | None = None,
    ) -> None:
        self._engine = engine
        self._read_input = read_input
        self._write_input = write_input
        self._notify = notify
        self._on_state_change = on_state_change
        self._state = DictationState.IDLE
        self._disposed = False
        self._engine.set_listener(self.handle_event)

    @property
    def available(self) -> bool:
        return True

    @property
    def state(self) -> DictationState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state == DictationState.RECORDING

    def _set_state(self, new_state: DictationState) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        LOGGER.debug(
            "dictation.state",
            extra={"event": "dictation.state", "state": new_state.value},
        )
        if self._on_state_change is not None:
            self._on_state_change(new_state)

    def start(self, language: str) -> bool:
        """Begin recording; returns False when the engine refuses."""
        if self._disposed or self.is_recording:
            return False
        self._engine.language = language
        self._set_state(DictationState.RECORDING)
        try:
            self._engine.start()
        except Exception as exc:  # noqa: BLE001 - platform engines fail in many ways.
            LOGGER.warning(
                "dictation.start_failed",
                extra={"event": "dictation.start_failed", "reason": str(exc)},
            )
            self._set_state(DictationState.IDLE)
            self._notify(START_FAILED_NOTICE)
            return False
        LOGGER.info(
            "dictation.started",
            extra={"event": "dictation.started", "language": language},
        )
        return True

    def stop(self) -> None:
        if self._disposed or not self.is_recording:
            return
        try:
            self._engine.stop()
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "dictation.stop_failed",
                extra={"event": "dictation.stop_failed", "reason": str(exc)},
            )
        self._set_state(DictationState.IDLE)

    def toggle(self, language: str) -> None:
        if self.is_recording:
            self.stop()
        else:
            self.start(language)

    def handle_event(self, event: EngineEvent, payload: str = "") -> None:
        """Apply an engine event; late events after dispose are ignored."""
        if self._disposed:
            return
        if event == EngineEvent.START:
            self._set_state(DictationState.RECORDING)
        elif event == EngineEvent.RESULT:
            if payload.strip():
                self._write_input(merge_transcript(self._read_input(), payload))
            self._set_state(DictationState.IDLE)
        elif event == EngineEvent.ERROR:
            LOGGER.warning(
                "dictation.error",
                extra={"event": "dictation.error", "category": payload},
            )
            self._set_state(DictationState.IDLE)
            self._notify(error_notice(payload))
        elif event == EngineEvent.END:
            self._set_state(DictationState.IDLE)

    def dispose(self) -> None:
        """Detach engine callbacks and force-stop any active recording."""
        if self._disposed:
            return
        self._disposed = True
        self._engine.set_listener(None)
        if self._state == DictationState.RECORDING:
            try:
                self._engine.abort()
            except Exception:  # noqa: BLE001
                LOGGER.debug("dictation.abort_failed", exc_info=True)
        self._state = DictationState.IDLE


class UnavailableDictation:
    """Stand-in used when the platform offers no speech engine."""

    def __init__(self, notify: Callable[[str], None]) -> None:
        self._notify = notify

    @property
    def available(self) -> bool:
        return False

    @property
    def state(self) -> DictationState:
        return DictationState.UNAVAILABLE

    @property
    def is_recording(self) -> bool:
        return False

    def start(self, language: str) -> bool:  # noqa: ARG002
        self._notify(UNAVAILABLE_NOTICE)
        return False

    def stop(self) -> None:
        self._notify(UNAVAILABLE_NOTICE)

    def toggle(self, language: str) -> None:  # noqa: ARG002
        self._notify(UNAVAILABLE_NOTICE)

    def dispose(self) -> None:
        return None


Dictation = DictationController | UnavailableDictation


def discover_speech_engine(name: str = "") -> SpeechEngine | None:
    """Instantiate a speech engine registered under the entry-point group.

    With an empty ``name`` the first registered engine that loads is used.
    """
    try:
        candidates = list(metadata.entry_points(group=ENGINE_ENTRY_POINT_GROUP))
    except Exception:  # noqa: BLE001 - broken distributions must not block startup.
        LOGGER.warning("dictation.discovery_failed", exc_info=True)
        return None
    if name:
        candidates = [ep for ep in candidates if ep.name == name]
    for entry_point in candidates:
        try:
            factory: Any = entry_point.load()
            engine = factory()
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "dictation.engine_unavailable",
                extra={
                    "event": "dictation.engine_unavailable",
                    "engine": entry_point.name,
                    "reason": str(exc),
                },
            )
            continue
        LOGGER.info(
            "dictation.engine_loaded",
            extra={"event": "dictation.engine_loaded", "engine": entry_point.name},
        )
        return engine
    return None


def create_dictation(
    engine: SpeechEngine | None,
    *,
    read_input: Callable[[], str],
    write_input: Callable[[str], None],
    notify: Callable[[str], None],
    on_state_change: Callable[[DictationState], None] | None = None,
) -> Dictation:
    """Select the dictation variant once, based on engine availability."""
    if engine is None:
        LOGGER.info("dictation.unavailable", extra={"event": "dictation.unavailable"})
        return UnavailableDictation(notify)
    return DictationController(
        engine,
        read_input=read_input,
        write_input=write_input,
        notify=notify,
        on_state_change=on_state_change,
    )
