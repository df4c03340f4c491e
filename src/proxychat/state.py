"""Single-flight dispatch state with lock-protected transitions."""

from __future__ import annotations

import asyncio
from enum import Enum


class DispatchState(str, Enum):
    """Lifecycle of the dispatch pipeline."""

    IDLE = "IDLE"
    DISPATCHING = "DISPATCHING"
    DISPOSED = "DISPOSED"


class StateManager:
    """Manage dispatch state transitions with async lock semantics."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._state = DispatchState.IDLE

    @property
    def current(self) -> DispatchState:
        """Unlocked read for synchronous UI checks."""
        return self._state

    async def get_state(self) -> DispatchState:
        async with self._lock:
            return self._state

    async def transition_to(self, new_state: DispatchState) -> DispatchState:
        async with self._lock:
            if self._state == DispatchState.DISPOSED:
                return self._state
            self._state = new_state
            return self._state

    async def transition_if(
        self,
        expected_state: DispatchState,
        new_state: DispatchState,
    ) -> bool:
        """Transition only when current state matches expected state."""
        async with self._lock:
            if self._state != expected_state:
                return False
            self._state = new_state
            return True

    def dispose(self) -> None:
        """Enter the terminal state; later transitions are refused."""
        self._state = DispatchState.DISPOSED
