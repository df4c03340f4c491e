"""Domain exception hierarchy for the proxy chat client."""

from __future__ import annotations

from enum import Enum

ERROR_MARKER = "Error:"


class ProxyChatError(RuntimeError):
    """Base class for all domain-level chat errors."""


class ConfigValidationError(ProxyChatError):
    """Raised when configuration cannot be validated safely."""


class ConversationInvariantError(ProxyChatError):
    """Raised when a timeline mutation would break a conversation invariant."""


class PersistenceError(ProxyChatError):
    """Raised when the key-value store cannot be read or written."""


class AttachmentErrorKind(str, Enum):
    """Reasons an image attachment can be refused."""

    INVALID_TYPE = "invalid_type"
    TOO_LARGE = "too_large"
    UNREADABLE = "unreadable"


class AttachmentError(ProxyChatError):
    """Raised when an image cannot be attached or encoded."""

    def __init__(self, kind: AttachmentErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class ServiceError(ProxyChatError):
    """Base class for failures talking to the remote chat service."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(ServiceError):
    """Raised on network failures or unparsable non-2xx responses."""


class ApplicationError(ServiceError):
    """Raised when the service answers with an ``error`` field."""


class AdminError(ServiceError):
    """Raised when a staff operation is rejected by the service."""


class SpeechEngineError(ProxyChatError):
    """Raised by speech engines that refuse to start capturing."""


def is_error_text(text: str | None) -> bool:
    """Return True when text carries the application error marker."""
    return bool(text) and str(text).startswith(ERROR_MARKER)


def format_error_text(exc: BaseException | str) -> str:
    """Render an exception or message as a displayable error string."""
    detail = str(exc).strip() or "Could not fetch response."
    if is_error_text(detail):
        return detail
    return f"{ERROR_MARKER} {detail}"
