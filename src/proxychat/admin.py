"""Staff administration actions against the chat service endpoint."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from .exceptions import AdminError, ApplicationError
from .service import ChatServiceClient

LOGGER = logging.getLogger(__name__)

KEY_STATUSES = ("active", "inactive")


@dataclass(frozen=True)
class UserKeyInfo:
    key: str
    username: str | None
    status: str
    created_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserKeyInfo:
        username = data.get("username")
        created = data.get("created_at")
        return cls(
            key=str(data.get("key", "")),
            username=str(username) if username else None,
            status=str(data.get("status", "inactive")),
            created_at=str(created) if created else None,
        )

    @property
    def short_key(self) -> str:
        return f"{self.key[:8]}..." if len(self.key) > 8 else self.key


@dataclass(frozen=True)
class Restrictions:
    models: tuple[str, ...] = ()
    personas: tuple[str, ...] = ()


def toggled(values: tuple[str, ...] | list[str], value: str) -> list[str]:
    """Add ``value`` when absent, remove it when present."""
    if value in values:
        return [item for item in values if item != value]
    return [*values, value]


class StaffAdminClient:
    """Typed wrappers for the ``admin*`` actions; every call needs the staff key."""

    def __init__(self, client: ChatServiceClient, staff_key: str) -> None:
        if not staff_key.strip():
            raise AdminError("A staff key is required.")
        self._client = client
        self._staff_key = staff_key.strip()

    async def _call(self, action: str, **fields: Any) -> dict[str, Any]:
        body = {"action": action, "staffKey": self._staff_key, **fields}
        try:
            payload = await self._client.post_action(body)
        except ApplicationError as exc:
            raise AdminError(str(exc), status_code=exc.status_code) from exc
        if payload.get("success") is not True:
            raise AdminError(f"{action} was not acknowledged by the service.")
        LOGGER.info("admin.action", extra={"event": "admin.action", "action": action})
        return payload

    async def list_keys(self) -> list[UserKeyInfo]:
        payload = await self._call("adminListKeys")
        keys = payload.get("keys") or []
        return [UserKeyInfo.from_dict(item) for item in keys if isinstance(item, dict)]

    async def get_restrictions(self) -> Restrictions:
        payload = await self._call("adminGetRestrictions")
        return Restrictions(
            models=tuple(str(m) for m in payload.get("restrictedModels") or []),
            personas=tuple(str(p) for p in payload.get("restrictedPersonas") or []),
        )

    async def add_key(self, username: str | None = None) -> str:
        name = (username or "").strip() or None
        payload = await self._call("adminAddKey", username=name)
        return str(payload.get("message") or "Key added!")

    async def delete_key(self, key: str) -> str:
        payload = await self._call("adminDeleteKey", key=key)
        return str(payload.get("message") or "Key deleted!")

    async def update_key_status(self, key: str, status: str) -> str:
        if status not in KEY_STATUSES:
            raise AdminError(f"Unknown key status {status!r}.")
        payload = await self._call("adminUpdateKeyStatus", key=key, newStatus=status)
        return str(payload.get("message") or "Status updated.")

    async def edit_username(self, key: str, username: str | None) -> str:
        name = (username or "").strip() or None
        payload = await self._call("adminEditUsername", key=key, newUsername=name)
        return str(payload.get("message") or "Username updated!")

    async def set_restricted_models(self, models: list[str]) -> str:
        payload = await self._call("adminSetRestrictedModels", models=list(models))
        return str(payload.get("message") or "Models updated.")

    async def set_restricted_personas(self, personas: list[str]) -> str:
        payload = await self._call(
            "adminSetRestrictedPersonas", personas=list(personas)
        )
        return str(payload.get("message") or "Personas updated.")

    async def toggle_model_restriction(self, model: str) -> str:
        current = await self.get_restrictions()
        return await self.set_restricted_models(toggled(current.models, model))

    async def toggle_persona_restriction(self, persona: str) -> str:
        current = await self.get_restrictions()
        return await self.set_restricted_personas(toggled(current.personas, persona))
