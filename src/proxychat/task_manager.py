"""Lifecycle tracking for the app's background asyncio tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Track named and anonymous tasks so teardown can cancel them all."""

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}
        self._anonymous: set[asyncio.Task[Any]] = set()

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create a task from ``coro`` and track it."""
        task = asyncio.create_task(coro)
        self.add(task, name=name)
        return task

    def add(self, task: asyncio.Task[Any], name: str | None = None) -> None:
        """Register a task, optionally under a unique name.

        A named task drops out of tracking when it finishes, unless another
        task has been registered under the same name since.
        """
        if name is not None:
            self._named[name] = task

            def _forget(done: asyncio.Task[Any], _name: str = name) -> None:
                if self._named.get(_name) is done:
                    del self._named[_name]

            task.add_done_callback(_forget)
        else:
            self._anonymous.add(task)
            task.add_done_callback(self._finish_anonymous)

    def _finish_anonymous(self, task: asyncio.Task[Any]) -> None:
        self._anonymous.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning(
                "tasks.anonymous.failed",
                extra={
                    "event": "tasks.anonymous.failed",
                    "error_type": type(exc).__name__,
                },
                exc_info=exc,
            )

    def get(self, name: str) -> asyncio.Task[Any] | None:
        return self._named.get(name)

    def is_running(self, name: str) -> bool:
        task = self._named.get(name)
        return task is not None and not task.done()

    async def cancel(self, name: str) -> None:
        """Cancel a named task and await its completion."""
        task = self._named.pop(name, None)
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        all_tasks: list[asyncio.Task[Any]] = list(self._named.values()) + [
            t for t in self._anonymous if not t.done()
        ]
        for task in all_tasks:
            if not task.done():
                task.cancel()
        for task in all_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # noqa: BLE001 - teardown keeps going.
                LOGGER.warning(
                    "tasks.teardown_error",
                    extra={"event": "tasks.teardown_error"},
                    exc_info=True,
                )
        self._named.clear()
        self._anonymous.clear()
