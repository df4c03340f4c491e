"""HTTP client for the remote chat service."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ApplicationError, TransportError
from .models import ChatReply, ChatRequest

LOGGER = logging.getLogger(__name__)


class ReplyBody(BaseModel):
    """Success body of a chat reply; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    reply: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    model_used: str | None = Field(default=None, alias="modelUsed")
    username: str | None = None

    @field_validator("reply", "image_url", "model_used", "username", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            return str(value)
        return value if value.strip() else None

    def to_reply(self) -> ChatReply:
        return ChatReply(
            text=self.reply or "",
            image_url=self.image_url,
            model_used=self.model_used,
            username=self.username,
        )


class ChatServiceClient:
    """Post JSON actions to the chat endpoint and normalize failures."""

    def __init__(
        self,
        endpoint: str,
        timeout_seconds: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _error_field(payload: Any) -> str | None:
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, str) and error.strip():
                return error.strip()
        return None

    async def post_action(self, body: dict[str, Any]) -> dict[str, Any]:
        """POST one action and return the decoded JSON object.

        Raises TransportError for network failures and unparsable responses,
        ApplicationError when the service reports an ``error``.
        """
        action = str(body.get("action", ""))
        try:
            response = await self._client.post(
                self.endpoint,
                json=body,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as exc:
            LOGGER.warning(
                "service.request.timeout",
                extra={"event": "service.request.timeout", "action": action},
            )
            raise TransportError("The chat service did not respond in time.") from exc
        except httpx.HTTPError as exc:
            LOGGER.warning(
                "service.request.failed",
                extra={
                    "event": "service.request.failed",
                    "action": action,
                    "error_type": exc.__class__.__name__,
                },
            )
            raise TransportError("Could not reach the chat service.") from exc

        try:
            payload: Any = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            error = self._error_field(payload)
            LOGGER.warning(
                "service.response.status",
                extra={
                    "event": "service.response.status",
                    "action": action,
                    "status_code": response.status_code,
                },
            )
            if error is not None:
                raise ApplicationError(error, status_code=response.status_code)
            reason = response.reason_phrase or ""
            raise TransportError(
                f"HTTP error! Status: {response.status_code} {reason}".strip(),
                status_code=response.status_code,
            )

        if not isinstance(payload, dict):
            raise TransportError(
                "Invalid response from the chat service.",
                status_code=response.status_code,
            )
        error = self._error_field(payload)
        if error is not None:
            raise ApplicationError(error, status_code=response.status_code)
        return payload

    async def send(self, request: ChatRequest) -> ChatReply:
        """Send a chat request and return the parsed reply."""
        LOGGER.info(
            "service.chat.send",
            extra={
                "event": "service.chat.send",
                "model": request.model,
                "persona": request.persona,
                "history": len(request.history),
                "has_image": request.image is not None,
            },
        )
        payload = await self.post_action(request.to_payload())
        try:
            body = ReplyBody.model_validate(payload)
        except ValidationError as exc:
            raise TransportError("Invalid response from the chat service.") from exc
        return body.to_reply()
