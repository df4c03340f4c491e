"""Top-level package for proxychat."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import ProxyChatApp
    from .config import ensure_config_dir, load_config
    from .dispatch import DispatchOutcome, DispatchPipeline
    from .exceptions import (
        ApplicationError,
        AttachmentError,
        ConfigValidationError,
        ProxyChatError,
        ServiceError,
        TransportError,
    )
    from .message_store import ConversationStore
    from .persistence import SessionPersistence
    from .response_parser import parse_reply
    from .service import ChatServiceClient

__all__ = [
    "ApplicationError",
    "AttachmentError",
    "ChatServiceClient",
    "ConfigValidationError",
    "ConversationStore",
    "DispatchOutcome",
    "DispatchPipeline",
    "ProxyChatApp",
    "ProxyChatError",
    "ServiceError",
    "SessionPersistence",
    "TransportError",
    "ensure_config_dir",
    "load_config",
    "parse_reply",
]

_EXCEPTIONS = {
    "ApplicationError",
    "AttachmentError",
    "ConfigValidationError",
    "ProxyChatError",
    "ServiceError",
    "TransportError",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols to keep the UI dependencies out of plain imports."""
    if name in {"ensure_config_dir", "load_config"}:
        from . import config

        return getattr(config, name)
    if name in _EXCEPTIONS:
        from . import exceptions

        return getattr(exceptions, name)
    if name in {"DispatchOutcome", "DispatchPipeline"}:
        from . import dispatch

        return getattr(dispatch, name)
    if name == "ConversationStore":
        from .message_store import ConversationStore

        return ConversationStore
    if name == "SessionPersistence":
        from .persistence import SessionPersistence

        return SessionPersistence
    if name == "parse_reply":
        from .response_parser import parse_reply

        return parse_reply
    if name == "ChatServiceClient":
        from .service import ChatServiceClient

        return ChatServiceClient
    if name == "ProxyChatApp":
        from .app import ProxyChatApp

        return ProxyChatApp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
