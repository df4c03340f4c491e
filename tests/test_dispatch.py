"""Tests for the message dispatch pipeline."""

from __future__ import annotations

import asyncio
from pathlib import Path
import tempfile
import unittest

from proxychat.attachment import AttachmentPreparer, ImageFile
from proxychat.dispatch import (
    CooldownTimer,
    DispatchOutcome,
    DispatchPipeline,
    build_history_window,
)
from proxychat.exceptions import ApplicationError, TransportError
from proxychat.message_store import ConversationStore
from proxychat.models import (
    ChatReply,
    ChatRequest,
    ChatSettings,
    IntentSource,
    Message,
    PendingIntent,
    Sender,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class FakeService:
    """Chat service whose replies are released by the test."""

    def __init__(self) -> None:
        self.requests: list[ChatRequest] = []
        self.replies: asyncio.Queue[ChatReply | Exception] = asyncio.Queue()

    async def send(self, request: ChatRequest) -> ChatReply:
        self.requests.append(request)
        outcome = await self.replies.get()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class HistoryWindowTests(unittest.TestCase):
    """Validate outbound history projection."""

    def test_window_skips_errors_loading_and_blank_messages(self) -> None:
        messages = [
            Message(id=1, text="Welcome!", sender=Sender.BOT, timestamp=1),
            Message(id=2, text="hi", sender=Sender.USER, timestamp=2),
            Message(id=3, text="Error: boom", sender=Sender.BOT, timestamp=3),
            Message(id=4, text="", sender=Sender.BOT, timestamp=4),
            Message(id=5, text="...", sender=Sender.LOADING, timestamp=5),
        ]
        window = build_history_window(messages, limit=20)
        self.assertEqual(
            [(item.role, item.content) for item in window],
            [("model", "Welcome!"), ("user", "hi")],
        )

    def test_window_keeps_most_recent_entries(self) -> None:
        messages = [
            Message(id=i, text=f"m{i}", sender=Sender.USER, timestamp=i)
            for i in range(1, 31)
        ]
        window = build_history_window(messages, limit=20)
        self.assertEqual(len(window), 20)
        self.assertEqual(window[0].content, "m11")
        self.assertEqual(build_history_window(messages, limit=0), [])


class CooldownTimerTests(unittest.IsolatedAsyncioTestCase):
    """Validate the single-handle cooldown."""

    async def test_active_follows_clock_and_notifies(self) -> None:
        clock = FakeClock()
        changes: list[bool] = []
        timer = CooldownTimer(0.01, clock=clock, on_change=changes.append)
        timer.arm()
        self.assertTrue(timer.active)
        clock.now += 0.02
        self.assertFalse(timer.active)
        await asyncio.sleep(0.05)
        self.assertEqual(changes, [True, False])
        timer.dispose()

    async def test_rearm_replaces_pending_handle(self) -> None:
        changes: list[bool] = []
        timer = CooldownTimer(0.02, on_change=changes.append)
        timer.arm()
        timer.arm()
        await asyncio.sleep(0.06)
        self.assertEqual(changes, [True, True, False])
        timer.dispose()

    async def test_dispose_silences_expiry(self) -> None:
        changes: list[bool] = []
        timer = CooldownTimer(0.01, on_change=changes.append)
        timer.arm()
        timer.dispose()
        await asyncio.sleep(0.03)
        self.assertEqual(changes, [True])
        self.assertFalse(timer.active)


class DispatchPipelineTests(unittest.IsolatedAsyncioTestCase):
    """Validate single-flight dispatch and reconciliation."""

    def setUp(self) -> None:
        self.clock = FakeClock()
        self.store = ConversationStore(clock=lambda: 1_700_000_000.0)
        self.service = FakeService()
        self.sent: list[PendingIntent] = []
        self.settings = ChatSettings(model="gemini-2.0-flash", persona="counselor")
        self.pipeline = DispatchPipeline(
            self.store,
            self.service,
            AttachmentPreparer(max_bytes=1024),
            lambda: self.settings,
            cooldown_seconds=1.5,
            on_sent=self.sent.append,
            clock=self.clock,
        )

    def tearDown(self) -> None:
        self.pipeline.dispose()

    def _senders(self) -> list[Sender]:
        return [m.sender for m in self.store.snapshot()]

    async def _start(self, text: str, **kwargs) -> asyncio.Task:
        task = asyncio.create_task(self.pipeline.dispatch(text, **kwargs))
        while not self.service.requests and not task.done():
            await asyncio.sleep(0)
        return task

    async def test_reply_replaces_loading_placeholder(self) -> None:
        task = await self._start("hello")
        self.assertEqual(self._senders(), [Sender.BOT, Sender.USER, Sender.LOADING])
        self.assertTrue(self.pipeline.is_busy)

        await self.service.replies.put(
            ChatReply(text="Hi! [Suggestion: More]", model_used="gemini-2.0-flash")
        )
        result = await task

        self.assertEqual(result.outcome, DispatchOutcome.REPLIED)
        self.assertEqual(self._senders(), [Sender.BOT, Sender.USER, Sender.BOT])
        last = self.store.snapshot()[-1]
        self.assertEqual(last.text, "Hi! [Suggestion: More]")
        self.assertEqual(last.model_used, "gemini-2.0-flash")
        self.assertFalse(self.pipeline.is_busy)

    async def test_request_carries_history_before_new_message(self) -> None:
        task = await self._start("hello")
        request = self.service.requests[0]
        self.assertEqual(request.prompt, "hello")
        self.assertEqual([item.role for item in request.history], ["model"])
        self.assertEqual(request.model, "gemini-2.0-flash")
        await self.service.replies.put(ChatReply(text="ok"))
        await task

    async def test_settings_are_read_at_dispatch_time(self) -> None:
        self.settings = ChatSettings(model="m2", persona="stress_coach", access_key="k")
        task = await self._start("hello")
        request = self.service.requests[0]
        self.assertEqual((request.model, request.persona), ("m2", "stress_coach"))
        self.assertEqual(request.to_payload()["accessKey"], "k")
        await self.service.replies.put(ChatReply(text="ok"))
        await task

    async def test_second_dispatch_while_busy_is_rejected(self) -> None:
        task = await self._start("first")
        result = await self.pipeline.dispatch("second")
        self.assertEqual(result.outcome, DispatchOutcome.REJECTED_BUSY)
        self.assertEqual(len(self.service.requests), 1)
        await self.service.replies.put(ChatReply(text="ok"))
        await task

    async def test_cooldown_rejects_until_clock_advances(self) -> None:
        task = await self._start("first")
        await self.service.replies.put(ChatReply(text="ok"))
        await task

        result = await self.pipeline.dispatch("again")
        self.assertEqual(result.outcome, DispatchOutcome.REJECTED_COOLDOWN)
        self.assertFalse(self.pipeline.can_dispatch)

        self.clock.now += 1.6
        self.assertTrue(self.pipeline.can_dispatch)
        task = await self._start("again")
        await self.service.replies.put(ChatReply(text="ok"))
        self.assertEqual((await task).outcome, DispatchOutcome.REPLIED)

    async def test_empty_intent_is_rejected_without_side_effects(self) -> None:
        result = await self.pipeline.dispatch("   ")
        self.assertEqual(result.outcome, DispatchOutcome.REJECTED_EMPTY)
        self.assertTrue(result.outcome.rejected)
        self.assertEqual(len(self.store.snapshot()), 1)
        self.assertEqual(self.sent, [])

    async def test_service_failure_becomes_error_message(self) -> None:
        task = await self._start("hello")
        await self.service.replies.put(ApplicationError("Invalid access key."))
        result = await task
        self.assertEqual(result.outcome, DispatchOutcome.FAILED)
        last = self.store.snapshot()[-1]
        self.assertEqual(last.sender, Sender.BOT)
        self.assertEqual(last.text, "Error: Invalid access key.")
        self.assertIsNone(self.store.loading_message)

    async def test_error_messages_are_excluded_from_next_history(self) -> None:
        task = await self._start("hello")
        await self.service.replies.put(TransportError("Could not reach the chat service."))
        await task
        self.clock.now += 2
        task = await self._start("retry")
        history = self.service.requests[-1].history
        self.assertEqual([h.content for h in history][-1], "hello")
        await self.service.replies.put(ChatReply(text="ok"))
        await task

    async def test_empty_reply_removes_placeholder(self) -> None:
        task = await self._start("hello")
        await self.service.replies.put(ChatReply(text="  "))
        with self.assertLogs("proxychat.dispatch", level="WARNING") as logs:
            result = await task
        self.assertEqual(result.outcome, DispatchOutcome.EMPTY)
        self.assertEqual(self._senders(), [Sender.BOT, Sender.USER])
        self.assertTrue(any("dispatch.reply.empty" in line for line in logs.output))

    async def test_image_only_intent_uses_default_prompt(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "cat.png"
            path.write_bytes(b"\x89PNG")
            image = ImageFile.from_path(path)
            task = await self._start("", image=image)
            request = self.service.requests[0]
            self.assertEqual(request.prompt, "Describe this image.")
            self.assertTrue(request.image.data_url.startswith("data:image/png;base64,"))
            self.assertEqual(self.store.snapshot()[1].text, "[Image: cat.png]")
            await self.service.replies.put(ChatReply(text="", image_url="https://i/x.png"))
            result = await task
        self.assertEqual(result.outcome, DispatchOutcome.REPLIED)
        self.assertEqual(self.store.snapshot()[-1].image_url, "https://i/x.png")

    async def test_attachment_failure_skips_request_and_disarms_cooldown(self) -> None:
        image = ImageFile(
            path=Path("/definitely/not/here.png"),
            name="here.png",
            media_type="image/png",
            size=10,
        )
        result = await self.pipeline.dispatch("look", image=image)
        self.assertEqual(result.outcome, DispatchOutcome.ATTACHMENT_FAILED)
        self.assertEqual(self.service.requests, [])
        self.assertEqual(self.store.snapshot()[1].text, "look (+image)")
        self.assertEqual(self.store.snapshot()[-1].text, "Error: Could not read image file.")
        self.assertFalse(self.pipeline.cooldown_active)

    async def test_on_sent_receives_intent_with_source(self) -> None:
        task = await self._start("tip", source=IntentSource.SUGGESTION)
        self.assertEqual(len(self.sent), 1)
        self.assertEqual(self.sent[0].source, IntentSource.SUGGESTION)
        await self.service.replies.put(ChatReply(text="ok"))
        await task

    async def test_cleared_timeline_drops_late_reply(self) -> None:
        task = await self._start("hello")
        self.store.clear()
        await self.service.replies.put(ChatReply(text="late"))
        result = await task
        self.assertEqual(result.outcome, DispatchOutcome.REPLIED)
        self.assertTrue(self.store.is_seed_only())

    async def test_dispose_discards_late_reply(self) -> None:
        task = await self._start("hello")
        before = self.store.snapshot()
        self.pipeline.dispose()
        await self.service.replies.put(ChatReply(text="late"))
        result = await task
        self.assertEqual(result.outcome, DispatchOutcome.DISCARDED)
        self.assertEqual(self.store.snapshot(), before)
        rejected = await self.pipeline.dispatch("more")
        self.assertEqual(rejected.outcome, DispatchOutcome.REJECTED_DISPOSED)

    async def test_cancellation_removes_placeholder(self) -> None:
        task = await self._start("hello")
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertIsNone(self.store.loading_message)
        self.assertFalse(self.pipeline.is_busy)

    async def test_settings_failure_removes_placeholder_and_propagates(self) -> None:
        def _broken_settings() -> ChatSettings:
            raise RuntimeError("settings unavailable")

        pipeline = DispatchPipeline(
            self.store,
            self.service,
            AttachmentPreparer(max_bytes=1024),
            _broken_settings,
            clock=self.clock,
        )
        with self.assertLogs("proxychat.dispatch", level="WARNING") as logs:
            with self.assertRaises(RuntimeError):
                await pipeline.dispatch("hello")
        pipeline.dispose()
        self.assertIsNone(self.store.loading_message)
        self.assertEqual(self._senders(), [Sender.BOT, Sender.USER])
        self.assertFalse(pipeline.is_busy)
        self.assertEqual(self.service.requests, [])
        self.assertTrue(any("dispatch.aborted" in line for line in logs.output))

    async def test_unexpected_preparer_error_removes_placeholder(self) -> None:
        class _ExplodingPreparer(AttachmentPreparer):
            async def prepare(self, file: ImageFile):  # type: ignore[override]
                raise KeyError("codec")

        pipeline = DispatchPipeline(
            self.store,
            self.service,
            _ExplodingPreparer(max_bytes=1024),
            lambda: self.settings,
            clock=self.clock,
        )
        image = ImageFile(
            path=Path("/tmp/cat.png"), name="cat.png", media_type="image/png", size=10
        )
        with self.assertRaises(KeyError):
            await pipeline.dispatch("look", image=image)
        pipeline.dispose()
        self.assertIsNone(self.store.loading_message)
        self.assertEqual(self.service.requests, [])


if __name__ == "__main__":
    unittest.main()
