"""Scrollable conversation view widget."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

from textual.containers import VerticalScroll

from ..models import Message
from .message import MessageBubble


class ConversationView(VerticalScroll):
    """Hosts one bubble per timeline message, keyed by message id."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._bubbles: dict[int, MessageBubble] = {}
        self._sync_lock = asyncio.Lock()

    @property
    def message_ids(self) -> list[int]:
        return list(self._bubbles)

    def bubble_for(self, message_id: int) -> MessageBubble | None:
        return self._bubbles.get(message_id)

    async def sync(self, messages: Sequence[Message]) -> None:
        """Mount bubbles for new ids and remove bubbles whose ids are gone."""
        async with self._sync_lock:
            wanted = {message.id for message in messages}
            for stale_id in [i for i in self._bubbles if i not in wanted]:
                await self._bubbles.pop(stale_id).remove()

            previous: MessageBubble | None = None
            for message in messages:
                bubble = self._bubbles.get(message.id)
                if bubble is None:
                    bubble = MessageBubble(message)
                    self._bubbles[message.id] = bubble
                    if previous is not None:
                        await self.mount(bubble, after=previous)
                    elif self.children:
                        await self.mount(bubble, before=0)
                    else:
                        await self.mount(bubble)
                previous = bubble
            self.scroll_end(animate=False)
