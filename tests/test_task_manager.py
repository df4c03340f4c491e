"""Tests for the TaskManager lifecycle helper."""

from __future__ import annotations

import asyncio
import unittest

from proxychat.task_manager import TaskManager


class TaskManagerTests(unittest.IsolatedAsyncioTestCase):
    """Validate named and anonymous task lifecycle management."""

    async def test_spawn_anonymous_and_cancel_all(self) -> None:
        tm = TaskManager()
        cancelled: list[bool] = []

        async def _worker() -> None:
            try:
                await asyncio.sleep(9999)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        task = tm.spawn(_worker())
        await asyncio.sleep(0)  # Let the task start.
        await tm.cancel_all()
        self.assertTrue(task.done())
        self.assertTrue(cancelled)

    async def test_named_task_cancel_by_name(self) -> None:
        tm = TaskManager()
        task = tm.spawn(asyncio.sleep(9999), name="dispatch")
        await asyncio.sleep(0)
        self.assertIs(tm.get("dispatch"), task)
        self.assertTrue(tm.is_running("dispatch"))

        await tm.cancel("dispatch")
        self.assertTrue(task.done())
        self.assertIsNone(tm.get("dispatch"))
        self.assertFalse(tm.is_running("dispatch"))

    async def test_cancel_nonexistent_name_is_noop(self) -> None:
        tm = TaskManager()
        await tm.cancel("does_not_exist")

    async def test_finished_named_task_forgets_itself(self) -> None:
        tm = TaskManager()

        async def _quick() -> str:
            return "done"

        task = tm.spawn(_quick(), name="quick")
        self.assertEqual(await task, "done")
        await asyncio.sleep(0)  # Done callbacks run on the next loop pass.
        self.assertIsNone(tm.get("quick"))

    async def test_replaced_name_keeps_newer_task(self) -> None:
        tm = TaskManager()

        async def _quick() -> None:
            return None

        first = tm.spawn(_quick(), name="job")
        second = tm.spawn(asyncio.sleep(9999), name="job")
        await first
        await asyncio.sleep(0)
        self.assertIs(tm.get("job"), second)
        await tm.cancel_all()

    async def test_anonymous_failure_is_logged(self) -> None:
        tm = TaskManager()

        async def _broken() -> None:
            raise ValueError("sync failed")

        with self.assertLogs("proxychat.task_manager", level="WARNING") as logs:
            task = tm.spawn(_broken())
            with self.assertRaises(ValueError):
                await task
            await asyncio.sleep(0)
        self.assertTrue(any("tasks.anonymous.failed" in line for line in logs.output))

    async def test_cancel_all_logs_teardown_errors(self) -> None:
        tm = TaskManager()
        started = asyncio.Event()

        async def _stubborn() -> None:
            try:
                started.set()
                await asyncio.sleep(9999)
            except asyncio.CancelledError:
                raise RuntimeError("cleanup failed") from None

        tm.spawn(_stubborn(), name="stubborn")
        await started.wait()
        with self.assertLogs("proxychat.task_manager", level="WARNING") as logs:
            await tm.cancel_all()
        self.assertTrue(any("tasks.teardown_error" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
