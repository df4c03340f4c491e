"""Configuration loading and validation for the proxy chat client."""

from __future__ import annotations

from copy import deepcopy
import ipaddress
import logging
import os
from pathlib import Path
import tomllib
from typing import Any
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .attachment import MAX_IMAGE_BYTES
from .exceptions import ConfigValidationError
from .message_store import DEFAULT_GREETING

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "proxychat"
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


def _require_text(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


class AppConfig(BaseModel):
    """Application metadata."""

    title: str = "Project Theraphy - Chatbot"

    @field_validator("title", mode="before")
    @classmethod
    def _validate_title(cls, value: Any) -> str:
        return _require_text(value)


class ServiceConfig(BaseModel):
    """Remote chat endpoint settings."""

    endpoint: str = "https://project-theraphy-ai-proxy.luckgun99.workers.dev/"
    timeout_seconds: float = Field(default=60.0, ge=1, le=600)
    allow_insecure_http: bool = False

    @field_validator("endpoint", mode="before")
    @classmethod
    def _validate_endpoint(cls, value: Any) -> str:
        return _require_text(value)

    @model_validator(mode="after")
    def _validate_scheme(self) -> ServiceConfig:
        parsed = urlparse(self.endpoint)
        scheme = parsed.scheme.lower()
        hostname = (parsed.hostname or "").strip().lower()
        if scheme not in {"http", "https"}:
            raise ValueError("service.endpoint must use http or https scheme.")
        if not hostname:
            raise ValueError("service.endpoint must include a hostname.")
        if scheme == "http" and not self.allow_insecure_http:
            if hostname not in LOOPBACK_HOSTS and not _is_loopback_address(hostname):
                raise ValueError(
                    "service.endpoint uses plain http for a non-local host "
                    "while allow_insecure_http is false."
                )
        return self


def _is_loopback_address(hostname: str) -> bool:
    try:
        return ipaddress.ip_address(hostname).is_loopback
    except ValueError:
        return False


class DispatchConfig(BaseModel):
    """Send-rate, history, and attachment limits."""

    cooldown_ms: int = Field(default=1500, ge=0, le=60_000)
    history_window: int = Field(default=20, ge=0, le=500)
    max_image_bytes: int = Field(default=MAX_IMAGE_BYTES, ge=1024, le=50 * 1024 * 1024)
    default_image_prompt: str = "Describe this image."
    loading_text: str = "Bot is typing..."
    greeting: str = DEFAULT_GREETING

    @field_validator("default_image_prompt", "loading_text", "greeting", mode="before")
    @classmethod
    def _validate_text(cls, value: Any) -> str:
        return _require_text(value)


class ModelEntry(BaseModel):
    value: str
    label: str = ""
    restricted: bool = False

    @field_validator("value", mode="before")
    @classmethod
    def _validate_value(cls, value: Any) -> str:
        return _require_text(value)


class ModelsConfig(BaseModel):
    """Model catalog; restricted models need an access key."""

    default: str = "gemini-2.0-flash"
    catalog: list[ModelEntry] = Field(
        default_factory=lambda: [
            ModelEntry(value="gemini-2.0-flash-lite", label="Gemini 2.0 Flash Lite"),
            ModelEntry(value="gemini-2.0-flash", label="Gemini 2.0 Flash"),
            ModelEntry(
                value="gemini-2.0-flash-thinking-exp-01-21",
                label="Gemini 2.0 Flash Thinking Experimental",
                restricted=True,
            ),
            ModelEntry(
                value="gemini-2.0-flash-exp-image-generation",
                label="Gemini 2.0 Flash Image Generation Experimental",
                restricted=True,
            ),
            ModelEntry(
                value="gemini-2.5-pro-exp-03-25",
                label="Gemini 2.5 Pro Experimental",
                restricted=True,
            ),
        ]
    )

    @model_validator(mode="after")
    def _validate_default(self) -> ModelsConfig:
        values = [entry.value for entry in self.catalog]
        if len(set(values)) != len(values):
            raise ValueError("models.catalog contains duplicate values.")
        entry = next((e for e in self.catalog if e.value == self.default), None)
        if entry is None:
            raise ValueError("models.default must be listed in models.catalog.")
        if entry.restricted:
            raise ValueError("models.default must not be restricted.")
        return self


class PersonaEntry(BaseModel):
    value: str
    label: str = ""
    emoji: str = ""
    restricted: bool = False

    @field_validator("value", mode="before")
    @classmethod
    def _validate_value(cls, value: Any) -> str:
        return _require_text(value)


class PersonasConfig(BaseModel):
    """Persona catalog sent with every chat request."""

    default: str = "counselor"
    catalog: list[PersonaEntry] = Field(
        default_factory=lambda: [
            PersonaEntry(value="counselor", label="Supportive Counselor", emoji="🧑‍⚕️"),
            PersonaEntry(value="college_mentor", label="College Mentor", emoji="🎓"),
            PersonaEntry(value="stress_coach", label="Stress Coach", emoji="🧘"),
        ]
    )

    @model_validator(mode="after")
    def _validate_default(self) -> PersonasConfig:
        entry = next((e for e in self.catalog if e.value == self.default), None)
        if entry is None:
            raise ValueError("personas.default must be listed in personas.catalog.")
        if entry.restricted:
            raise ValueError("personas.default must not be restricted.")
        return self


class LanguageEntry(BaseModel):
    code: str
    label: str = ""


class DictationConfig(BaseModel):
    """Speech-to-text language choices and engine selection."""

    default_language: str = "en-US"
    engine: str = ""
    languages: list[LanguageEntry] = Field(
        default_factory=lambda: [
            LanguageEntry(code="en-US", label="English (US)"),
            LanguageEntry(code="th-TH", label="ไทย (Thai)"),
            LanguageEntry(code="es-ES", label="Español (España)"),
            LanguageEntry(code="fr-FR", label="Français (France)"),
        ]
    )

    @model_validator(mode="after")
    def _validate_default(self) -> DictationConfig:
        codes = [entry.code for entry in self.languages]
        if not codes:
            raise ValueError("dictation.languages must not be empty.")
        if self.default_language not in codes:
            raise ValueError("dictation.default_language must be listed in languages.")
        return self


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/proxychat/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        return _require_text(value)


class PersistenceConfig(BaseModel):
    """Where the timeline and preferences are kept between sessions."""

    enabled: bool = True
    directory: str = "~/.local/state/proxychat/session"

    @field_validator("directory", mode="before")
    @classmethod
    def _validate_directory(cls, value: Any) -> str:
        return _require_text(value)


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    app: AppConfig = AppConfig()
    service: ServiceConfig = ServiceConfig()
    dispatch: DispatchConfig = DispatchConfig()
    models: ModelsConfig = ModelsConfig()
    personas: PersonasConfig = PersonasConfig()
    dictation: DictationConfig = DictationConfig()
    logging: LoggingConfig = LoggingConfig()
    persistence: PersistenceConfig = PersistenceConfig()


DEFAULT_CONFIG: dict[str, Any] = Config().model_dump()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values; lists are replaced."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _validate_config(raw: dict[str, Any]) -> dict[str, Any]:
    """Validate merged config and fall back to safe defaults when possible."""
    try:
        return Config.model_validate(raw).model_dump()
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return deepcopy(DEFAULT_CONFIG)
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except Exception as exc:  # noqa: BLE001 - we must not crash on invalid user config.
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = (
        _deep_merge(DEFAULT_CONFIG, raw_data)
        if isinstance(raw_data, dict)
        else deepcopy(DEFAULT_CONFIG)
    )
    return _validate_config(merged)
