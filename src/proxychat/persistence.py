"""Key-value persistence for the timeline and user preferences."""

from __future__ import annotations

from collections.abc import Iterable
import json
import logging
import os
from pathlib import Path
import re
from typing import Protocol
from uuid import uuid4

from .exceptions import PersistenceError
from .models import Message, Sender

LOGGER = logging.getLogger(__name__)

TIMELINE_KEY = "chat_messages"
MODEL_KEY = "selected_model"
PERSONA_KEY = "selected_persona"
DICTATION_LANGUAGE_KEY = "dictation_language"
ACCESS_KEY_KEY = "access_key"
NOTICE_KEY = "notice_acknowledged"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(Protocol):
    """Byte-oriented key-value store."""

    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """In-process store used when persistence is disabled and in tests."""

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self.data: dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.data[key] = bytes(value)

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class FileKeyValueStore:
    """One file per key inside a private directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def _enforce_permissions(self, path: Path, mode: int = 0o600) -> None:
        """Set POSIX permissions on a file or directory; silently ignores failures."""
        if os.name != "posix":
            return
        try:
            path.chmod(mode)
        except OSError:
            pass

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise PersistenceError(f"Invalid storage key {key!r}.")
        return self.directory / f"{key}.value"

    def _ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._enforce_permissions(self.directory, 0o700)

    def get(self, key: str) -> bytes | None:
        target = self._path_for(key)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(f"Unable to read {key!r}: {exc}") from exc

    def set(self, key: str, value: bytes) -> None:
        target = self._path_for(key)
        try:
            self._ensure_directory()
            staging = target.with_name(f".{target.name}.{uuid4().hex[:8]}.tmp")
            staging.write_bytes(value)
            self._enforce_permissions(staging)
            staging.replace(target)
        except OSError as exc:
            raise PersistenceError(f"Unable to write {key!r}: {exc}") from exc

    def delete(self, key: str) -> None:
        target = self._path_for(key)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Unable to delete {key!r}: {exc}") from exc


class SessionPersistence:
    """Typed accessors over a key-value store; every value loads independently."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def _get_text(self, key: str) -> str | None:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            LOGGER.warning(
                "persistence.value.undecodable",
                extra={"event": "persistence.value.undecodable", "key": key},
            )
            return None

    def _set_text(self, key: str, value: str) -> None:
        self.store.set(key, value.encode("utf-8"))

    def load_timeline(self) -> list[Message] | None:
        """Return the saved timeline, or None when absent or corrupt."""
        text = self._get_text(TIMELINE_KEY)
        if text is None:
            return None
        try:
            payload = json.loads(text)
            if not isinstance(payload, list):
                raise ValueError("Timeline payload is not an array.")
            messages = [Message.from_dict(item) for item in payload]
        except ValueError as exc:
            LOGGER.warning(
                "persistence.timeline.corrupt",
                extra={"event": "persistence.timeline.corrupt", "reason": str(exc)},
            )
            self.store.delete(TIMELINE_KEY)
            return None
        return [m for m in messages if m.sender != Sender.LOADING]

    def save_timeline(self, messages: Iterable[Message], seed_only: bool = False) -> None:
        """Persist the timeline without transient placeholders.

        A timeline that is only the greeting seed is not worth keeping, so the
        key is removed instead and the next session seeds a fresh greeting.
        """
        kept = [m.to_dict() for m in messages if m.sender != Sender.LOADING]
        if seed_only or not kept:
            self.store.delete(TIMELINE_KEY)
            return
        self._set_text(
            TIMELINE_KEY,
            json.dumps(kept, ensure_ascii=False, separators=(",", ":")),
        )

    def clear_timeline(self) -> None:
        self.store.delete(TIMELINE_KEY)

    def load_selected_model(self) -> str | None:
        value = self._get_text(MODEL_KEY)
        return value.strip() if value and value.strip() else None

    def save_selected_model(self, model: str) -> None:
        self._set_text(MODEL_KEY, model)

    def load_selected_persona(self) -> str | None:
        value = self._get_text(PERSONA_KEY)
        return value.strip() if value and value.strip() else None

    def save_selected_persona(self, persona: str) -> None:
        self._set_text(PERSONA_KEY, persona)

    def load_dictation_language(self) -> str | None:
        value = self._get_text(DICTATION_LANGUAGE_KEY)
        return value.strip() if value and value.strip() else None

    def save_dictation_language(self, language: str) -> None:
        self._set_text(DICTATION_LANGUAGE_KEY, language)

    def load_access_key(self) -> str:
        return (self._get_text(ACCESS_KEY_KEY) or "").strip()

    def save_access_key(self, access_key: str) -> None:
        normalized = access_key.strip()
        if normalized:
            self._set_text(ACCESS_KEY_KEY, normalized)
        else:
            self.store.delete(ACCESS_KEY_KEY)

    def is_notice_acknowledged(self) -> bool:
        return self._get_text(NOTICE_KEY) == "true"

    def acknowledge_notice(self) -> None:
        self._set_text(NOTICE_KEY, "true")


def build_session_persistence(persistence_config: dict) -> SessionPersistence:
    """Create session persistence from the ``[persistence]`` config section."""
    if not bool(persistence_config.get("enabled", True)):
        return SessionPersistence(MemoryKeyValueStore())
    directory = str(
        persistence_config.get("directory", "~/.local/state/proxychat/session")
    )
    return SessionPersistence(FileKeyValueStore(directory))
