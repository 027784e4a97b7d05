"""Tests for events/bus.py -- execution event relay.

Covers publish/subscribe, dropping events without watchers, close_execution
sentinel, thread-safe publish_sync, error isolation between watchers, and
the emit helpers' payload shapes.
"""

import asyncio
import threading

from events.bus import ExecutionEventBus
from events.types import ExecutionEvent, ExecutionEventType

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_event(
    execution_id: str = "exec_test",
    event_type: ExecutionEventType = ExecutionEventType.AGENT_STARTED,
) -> ExecutionEvent:
    return ExecutionEvent(
        type=event_type,
        execution_id=execution_id,
        agent_id="node_1",
        agent_name="Planner",
        data={"status": "running"},
    )


# =========================================================================
# Subscribe / Publish basics
# =========================================================================


class TestSubscribePublish:
    """Basic subscribe and async publish."""

    async def test_subscribe_returns_queue(self, event_bus: ExecutionEventBus) -> None:
        queue = event_bus.subscribe("exec_1")
        assert isinstance(queue, asyncio.Queue)

    async def test_publish_delivers_to_subscriber(self, event_bus: ExecutionEventBus) -> None:
        queue = event_bus.subscribe("exec_1")
        await event_bus.publish(_make_event("exec_1"))
        received = await asyncio.wait_for(queue.get(), timeout=1.0)
        assert received is not None
        assert received.type == ExecutionEventType.AGENT_STARTED
        assert received.execution_id == "exec_1"

    async def test_publish_multiple_subscribers(self, event_bus: ExecutionEventBus) -> None:
        q1 = event_bus.subscribe("exec_1")
        q2 = event_bus.subscribe("exec_1")
        await event_bus.publish(_make_event("exec_1"))
        r1 = await asyncio.wait_for(q1.get(), timeout=1.0)
        r2 = await asyncio.wait_for(q2.get(), timeout=1.0)
        assert r1 is r2

    async def test_publish_does_not_cross_executions(self, event_bus: ExecutionEventBus) -> None:
        q1 = event_bus.subscribe("exec_1")
        q2 = event_bus.subscribe("exec_2")
        await event_bus.publish(_make_event("exec_1"))
        r1 = await asyncio.wait_for(q1.get(), timeout=1.0)
        assert r1 is not None
        assert r1.execution_id == "exec_1"
        assert q2.empty()

    async def test_publish_preserves_order(self, event_bus: ExecutionEventBus) -> None:
        queue = event_bus.subscribe("exec_1")
        for i in range(5):
            await event_bus.emit_log("exec_1", "info", f"line {i}")
        messages = [queue.get_nowait().payload["message"] for _ in range(5)]  # type: ignore[union-attr]
        assert messages == [f"line {i}" for i in range(5)]


# =========================================================================
# No watchers
# =========================================================================


class TestNoWatchers:
    """Events published with nobody watching are not replayed later."""

    async def test_events_before_subscribe_are_dropped(self, event_bus: ExecutionEventBus) -> None:
        await event_bus.publish(_make_event("exec_1"))
        queue = event_bus.subscribe("exec_1")
        assert queue.empty()


# =========================================================================
# Unsubscribe
# =========================================================================


class TestUnsubscribe:
    """Unsubscribe removes a specific queue from the execution."""

    async def test_unsubscribe_removes_queue(self, event_bus: ExecutionEventBus) -> None:
        queue = event_bus.subscribe("exec_1")
        event_bus.unsubscribe("exec_1", queue)
        assert event_bus.get_subscriber_count("exec_1") == 0
        assert event_bus.get_active_executions() == []

    async def test_unsubscribe_nonexistent_is_noop(self, event_bus: ExecutionEventBus) -> None:
        event_bus.unsubscribe("no_such_execution", asyncio.Queue())

    async def test_unsubscribe_wrong_queue_is_noop(self, event_bus: ExecutionEventBus) -> None:
        event_bus.subscribe("exec_1")
        event_bus.unsubscribe("exec_1", asyncio.Queue())
        assert event_bus.get_subscriber_count("exec_1") == 1

    async def test_after_unsubscribe_events_not_delivered(
        self, event_bus: ExecutionEventBus
    ) -> None:
        queue = event_bus.subscribe("exec_1")
        event_bus.unsubscribe("exec_1", queue)
        await event_bus.publish(_make_event("exec_1"))
        assert queue.empty()


# =========================================================================
# close_execution -- sentinel
# =========================================================================


class TestCloseExecution:
    """close_execution sends a None sentinel and removes watchers."""

    async def test_close_sends_sentinel_to_every_watcher(
        self, event_bus: ExecutionEventBus
    ) -> None:
        q1 = event_bus.subscribe("exec_1")
        q2 = event_bus.subscribe("exec_1")
        await event_bus.close_execution("exec_1")
        assert await asyncio.wait_for(q1.get(), timeout=1.0) is None
        assert await asyncio.wait_for(q2.get(), timeout=1.0) is None

    async def test_close_removes_subscribers(self, event_bus: ExecutionEventBus) -> None:
        event_bus.subscribe("exec_1")
        await event_bus.close_execution("exec_1")
        assert event_bus.get_subscriber_count("exec_1") == 0

    async def test_close_nonexistent_is_noop(self, event_bus: ExecutionEventBus) -> None:
        await event_bus.close_execution("no_such_execution")


# =========================================================================
# publish_sync -- thread-safe synchronous publish
# =========================================================================


class TestPublishSync:
    """publish_sync uses call_soon_threadsafe for thread safety."""

    async def test_publish_sync_from_thread(self, event_bus: ExecutionEventBus) -> None:
        queue = event_bus.subscribe("exec_1")
        event_bus._loop = asyncio.get_running_loop()

        done = threading.Event()

        def bg_publish() -> None:
            event_bus.publish_sync(_make_event("exec_1"))
            done.set()

        thread = threading.Thread(target=bg_publish)
        thread.start()
        done.wait(timeout=2.0)
        thread.join(timeout=2.0)

        received = await asyncio.wait_for(queue.get(), timeout=1.0)
        assert received is not None
        assert received.execution_id == "exec_1"

    async def test_publish_sync_no_loop_fallback(self, event_bus: ExecutionEventBus) -> None:
        """When no event loop is cached, publish_sync falls back to put_nowait."""
        queue = event_bus.subscribe("exec_1")
        event_bus._loop = None

        event_bus.publish_sync(_make_event("exec_1"))

        assert not queue.empty()

    async def test_publish_sync_without_watchers(self, event_bus: ExecutionEventBus) -> None:
        event_bus.publish_sync(_make_event("exec_1"))
        assert event_bus.subscribe("exec_1").empty()


# =========================================================================
# Error isolation
# =========================================================================


class TestErrorIsolation:
    """A failing watcher should not prevent delivery to other watchers."""

    async def test_error_does_not_block_other_subscribers(
        self, event_bus: ExecutionEventBus
    ) -> None:
        q1 = event_bus.subscribe("exec_1")
        q2 = event_bus.subscribe("exec_1")
        call_count = 0

        async def failing_put(item: ExecutionEvent) -> None:
            nonlocal call_count
            call_count += 1
            raise RuntimeError("watcher error")

        q1.put = failing_put  # type: ignore[method-assign]

        await event_bus.publish(_make_event("exec_1"))

        assert not q2.empty()
        assert call_count == 1

    async def test_stalled_subscriber_times_out(self) -> None:
        bus = ExecutionEventBus(delivery_timeout_seconds=0.05)
        stalled = bus.subscribe("exec_1")
        healthy = bus.subscribe("exec_1")

        async def never_put(item: ExecutionEvent) -> None:
            await asyncio.Event().wait()

        stalled.put = never_put  # type: ignore[method-assign]

        await asyncio.wait_for(bus.publish(_make_event("exec_1")), timeout=1.0)
        assert not healthy.empty()


# =========================================================================
# Emit helpers
# =========================================================================


class TestEmitHelpers:
    """Each emit helper publishes the payload shape watchers expect."""

    async def test_execution_lifecycle(self, event_bus: ExecutionEventBus) -> None:
        queue = event_bus.subscribe("exec_1")
        await event_bus.emit_execution_started("exec_1", "Research pipeline")
        await event_bus.emit_execution_completed("exec_1", {"summary": "done"})
        await event_bus.emit_execution_failed("exec_1", "provider timeout")

        started, completed, failed = (queue.get_nowait() for _ in range(3))
        assert started is not None and completed is not None and failed is not None
        assert started.type == ExecutionEventType.EXECUTION_STARTED
        assert started.data == {"workflowName": "Research pipeline"}
        assert completed.data == {"status": "completed", "output": {"summary": "done"}}
        assert failed.data == {"status": "error", "error": "provider timeout"}

    async def test_agent_lifecycle(self, event_bus: ExecutionEventBus) -> None:
        queue = event_bus.subscribe("exec_1")
        await event_bus.emit_agent_started("exec_1", "node_1", "Planner")
        await event_bus.emit_agent_completed("exec_1", "node_1", "Planner", "plan ready")

        started, completed = queue.get_nowait(), queue.get_nowait()
        assert started is not None and completed is not None
        assert (started.agent_id, started.agent_name) == ("node_1", "Planner")
        assert started.data == {"status": "running"}
        assert completed.data == {"status": "completed", "result": "plan ready"}

    async def test_log_and_message(self, event_bus: ExecutionEventBus) -> None:
        queue = event_bus.subscribe("exec_1")
        log = await event_bus.emit_log("exec_1", "warn", "retrying", agent_id="node_2")
        message = await event_bus.emit_message("exec_1", "node_2", "Writer", "assistant", "Draft")

        assert queue.get_nowait() is log
        assert queue.get_nowait() is message
        assert log.data == {"level": "warn", "message": "retrying"}
        assert message.data == {"role": "assistant", "content": "Draft"}
        assert message.type == ExecutionEventType.MESSAGE


# =========================================================================
# Subscriber info
# =========================================================================


class TestSubscriberInfo:
    async def test_subscriber_count(self, event_bus: ExecutionEventBus) -> None:
        assert event_bus.get_subscriber_count("exec_1") == 0
        event_bus.subscribe("exec_1")
        event_bus.subscribe("exec_1")
        assert event_bus.get_subscriber_count("exec_1") == 2

    async def test_active_executions(self, event_bus: ExecutionEventBus) -> None:
        event_bus.subscribe("exec_1")
        event_bus.subscribe("exec_2")
        assert set(event_bus.get_active_executions()) == {"exec_1", "exec_2"}
