"""Selectable models and personas, with access-key gating for restricted ones."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelInfo:
    value: str
    label: str
    restricted: bool = False


@dataclass(frozen=True)
class PersonaInfo:
    value: str
    label: str
    emoji: str = ""
    restricted: bool = False

    @property
    def display(self) -> str:
        return f"{self.emoji} {self.label}".strip()


class Catalog:
    """Resolve saved selections against what the current credentials allow."""

    def __init__(
        self,
        models: list[ModelInfo],
        personas: list[PersonaInfo],
        default_model: str,
        default_persona: str,
    ) -> None:
        self.models = list(models)
        self.personas = list(personas)
        self.default_model = default_model
        self.default_persona = default_persona

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> Catalog:
        models_cfg = config.get("models", {})
        personas_cfg = config.get("personas", {})
        models = [
            ModelInfo(
                value=str(item["value"]),
                label=str(item.get("label") or item["value"]),
                restricted=bool(item.get("restricted", False)),
            )
            for item in models_cfg.get("catalog", [])
        ]
        personas = [
            PersonaInfo(
                value=str(item["value"]),
                label=str(item.get("label") or item["value"]),
                emoji=str(item.get("emoji", "")),
                restricted=bool(item.get("restricted", False)),
            )
            for item in personas_cfg.get("catalog", [])
        ]
        return cls(
            models=models,
            personas=personas,
            default_model=str(models_cfg.get("default", "")),
            default_persona=str(personas_cfg.get("default", "")),
        )

    @staticmethod
    def has_access(access_key: str) -> bool:
        """The service validates keys; locally a stored key unlocks restricted entries."""
        return bool(access_key.strip())

    def model(self, value: str) -> ModelInfo | None:
        return next((m for m in self.models if m.value == value), None)

    def persona(self, value: str) -> PersonaInfo | None:
        return next((p for p in self.personas if p.value == value), None)

    def available_models(self, has_access: bool) -> list[ModelInfo]:
        return [m for m in self.models if has_access or not m.restricted]

    def available_personas(self, has_access: bool) -> list[PersonaInfo]:
        return [p for p in self.personas if has_access or not p.restricted]

    def resolve_model(self, saved: str | None, has_access: bool) -> str:
        """Return ``saved`` when known and allowed, else the default model."""
        if not saved:
            return self.default_model
        info = self.model(saved)
        if info is None:
            return self.default_model
        if info.restricted and not has_access:
            LOGGER.warning(
                "catalog.model.restricted",
                extra={"event": "catalog.model.restricted", "model": saved},
            )
            return self.default_model
        return info.value

    def resolve_persona(self, saved: str | None, has_access: bool) -> str:
        if not saved:
            return self.default_persona
        info = self.persona(saved)
        if info is None:
            return self.default_persona
        if info.restricted and not has_access:
            LOGGER.warning(
                "catalog.persona.restricted",
                extra={"event": "catalog.persona.restricted", "persona": saved},
            )
            return self.default_persona
        return info.value
