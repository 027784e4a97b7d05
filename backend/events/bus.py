"""Async event bus relaying execution events to watching clients.

This module provides an ExecutionEventBus that fans events of one execution
out to every WebSocket watcher of that execution. It is only the transport
between an execution engine and its watchers; it does not run executions.

The event bus is thread-safe and supports:
- Multiple watchers per execution
- Async event delivery via asyncio.Queue
- Execution close (terminates all watchers of that execution)
"""

import asyncio
import contextlib
import threading
from collections import defaultdict
from typing import Any

import structlog

from events.types import ExecutionEvent, ExecutionEventType

logger = structlog.get_logger()

# Queue items are events, or None once the execution has been closed.
WatcherQueue = asyncio.Queue[ExecutionEvent | None]


class ExecutionEventBus:
    """Async pub/sub event bus for execution events.

    Watchers subscribe per execution id and receive events through an
    asyncio.Queue. Events published while an execution has no watchers are
    dropped: a watcher that connects later sees the stream from that point
    on, and a reconnecting watcher is never sent an event twice.

    Thread Safety:
        All operations use a threading.Lock to guard the subscription
        registry, so engines running in worker threads can publish through
        publish_sync().

    Usage:
        >>> bus = ExecutionEventBus()
        >>> queue = bus.subscribe("exec_123")
        >>> await bus.emit_log("exec_123", "info", "Fetching sources")
        >>> event = await queue.get()
        >>> bus.unsubscribe("exec_123", queue)

    Attributes:
        _subscribers: Dict mapping execution_id to list of watcher queues
        _lock: Threading lock for thread-safe subscriber management
    """

    def __init__(self, delivery_timeout_seconds: float = 5.0) -> None:
        """Initialize an empty event bus.

        Args:
            delivery_timeout_seconds: How long publish() waits on a single
                stalled watcher queue before skipping it.
        """
        self._subscribers: dict[str, list[WatcherQueue]] = defaultdict(list)
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._delivery_timeout = delivery_timeout_seconds
        logger.info("event_bus_initialized")

    def subscribe(self, execution_id: str) -> WatcherQueue:
        """Register a new watcher queue for an execution.

        Args:
            execution_id: The execution to watch

        Returns:
            A queue receiving ExecutionEvent objects, then None when the
            execution is closed
        """
        queue: WatcherQueue = asyncio.Queue()

        with self._lock:
            self._subscribers[execution_id].append(queue)
            subscriber_count = len(self._subscribers[execution_id])

        logger.info(
            "subscriber_added",
            execution_id=execution_id,
            subscriber_count=subscriber_count,
        )
        return queue

    def unsubscribe(self, execution_id: str, queue: WatcherQueue) -> None:
        """Remove a watcher queue. Unknown queues are a no-op."""
        with self._lock:
            if execution_id not in self._subscribers:
                return
            try:
                self._subscribers[execution_id].remove(queue)
            except ValueError:
                logger.warning("unsubscribe_queue_not_found", execution_id=execution_id)
                return

            subscriber_count = len(self._subscribers[execution_id])
            if not self._subscribers[execution_id]:
                del self._subscribers[execution_id]

        logger.info(
            "subscriber_removed",
            execution_id=execution_id,
            subscriber_count=subscriber_count,
        )

    async def publish(self, event: ExecutionEvent) -> None:
        """Deliver an event to every watcher of its execution.

        A watcher whose queue fails or stalls past the delivery timeout is
        skipped; the remaining watchers still receive the event.

        Args:
            event: The ExecutionEvent to publish
        """
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        with self._lock:
            subscribers = list(self._subscribers.get(event.execution_id, []))

        if not subscribers:
            logger.debug(
                "event_dropped_no_watchers",
                execution_id=event.execution_id,
                event_type=event.type.value,
            )
            return

        for queue in subscribers:
            try:
                await asyncio.wait_for(queue.put(event), timeout=self._delivery_timeout)
            except TimeoutError:
                logger.warning(
                    "event_delivery_timeout",
                    execution_id=event.execution_id,
                    event_type=event.type.value,
                )
            except Exception:
                logger.warning(
                    "event_delivery_failed",
                    execution_id=event.execution_id,
                    event_type=event.type.value,
                )

        logger.debug(
            "event_published",
            execution_id=event.execution_id,
            event_type=event.type.value,
            subscriber_count=len(subscribers),
            agent_id=event.agent_id,
        )

    def publish_sync(self, event: ExecutionEvent) -> None:
        """Publish from synchronous code, e.g. an engine's worker thread.

        asyncio.Queue is not thread-safe, so the put is scheduled on the
        loop thread via call_soon_threadsafe once a loop has been seen.

        Args:
            event: The ExecutionEvent to publish
        """
        with self._lock:
            subscribers = list(self._subscribers.get(event.execution_id, []))
            loop = self._loop

        if not subscribers:
            logger.debug(
                "event_dropped_no_watchers",
                execution_id=event.execution_id,
                event_type=event.type.value,
            )
            return

        if loop is not None and not loop.is_closed():
            for queue in subscribers:
                with contextlib.suppress(RuntimeError):
                    loop.call_soon_threadsafe(queue.put_nowait, event)
        else:
            for queue in subscribers:
                try:
                    queue.put_nowait(event)
                except asyncio.QueueFull:
                    logger.warning(
                        "queue_full_event_dropped",
                        execution_id=event.execution_id,
                        event_type=event.type.value,
                    )

        logger.debug(
            "event_published_sync",
            execution_id=event.execution_id,
            event_type=event.type.value,
            subscriber_count=len(subscribers),
        )

    async def close_execution(self, execution_id: str) -> None:
        """Remove every watcher of an execution and signal them to stop.

        Each queue receives a None sentinel so the WebSocket send loop can
        break out and close the socket cleanly.
        """
        with self._lock:
            queues = self._subscribers.pop(execution_id, [])

        for queue in queues:
            queue.put_nowait(None)

        if queues:
            logger.info(
                "execution_closed",
                execution_id=execution_id,
                subscribers_removed=len(queues),
            )
        else:
            logger.debug("close_execution_not_found", execution_id=execution_id)

    def get_subscriber_count(self, execution_id: str) -> int:
        """Number of watchers currently subscribed to an execution."""
        with self._lock:
            return len(self._subscribers.get(execution_id, []))

    def get_active_executions(self) -> list[str]:
        """Execution ids with at least one watcher."""
        with self._lock:
            return list(self._subscribers.keys())

    # ------------------------------------------------------------------
    # Emit helpers, one per event kind
    # ------------------------------------------------------------------

    async def emit(
        self,
        execution_id: str,
        event_type: ExecutionEventType,
        data: dict[str, Any],
        agent_id: str | None = None,
        agent_name: str | None = None,
    ) -> ExecutionEvent:
        """Build an event stamped with the current time and publish it."""
        event = ExecutionEvent(
            type=event_type,
            execution_id=execution_id,
            agent_id=agent_id,
            agent_name=agent_name,
            data=data,
        )
        await self.publish(event)
        return event

    async def emit_execution_started(self, execution_id: str, workflow_name: str) -> ExecutionEvent:
        return await self.emit(
            execution_id,
            ExecutionEventType.EXECUTION_STARTED,
            {"workflowName": workflow_name},
        )

    async def emit_agent_started(
        self, execution_id: str, agent_id: str, agent_name: str
    ) -> ExecutionEvent:
        return await self.emit(
            execution_id,
            ExecutionEventType.AGENT_STARTED,
            {"status": "running"},
            agent_id=agent_id,
            agent_name=agent_name,
        )

    async def emit_agent_completed(
        self, execution_id: str, agent_id: str, agent_name: str, result: Any
    ) -> ExecutionEvent:
        return await self.emit(
            execution_id,
            ExecutionEventType.AGENT_COMPLETED,
            {"status": "completed", "result": result},
            agent_id=agent_id,
            agent_name=agent_name,
        )

    async def emit_execution_completed(self, execution_id: str, output: Any) -> ExecutionEvent:
        return await self.emit(
            execution_id,
            ExecutionEventType.EXECUTION_COMPLETED,
            {"status": "completed", "output": output},
        )

    async def emit_execution_failed(self, execution_id: str, error: str) -> ExecutionEvent:
        return await self.emit(
            execution_id,
            ExecutionEventType.EXECUTION_FAILED,
            {"status": "error", "error": error},
        )

    async def emit_log(
        self,
        execution_id: str,
        level: str,
        message: str,
        agent_id: str | None = None,
        agent_name: str | None = None,
    ) -> ExecutionEvent:
        return await self.emit(
            execution_id,
            ExecutionEventType.LOG,
            {"level": level, "message": message},
            agent_id=agent_id,
            agent_name=agent_name,
        )

    async def emit_message(
        self,
        execution_id: str,
        agent_id: str,
        agent_name: str,
        role: str,
        content: str,
    ) -> ExecutionEvent:
        return await self.emit(
            execution_id,
            ExecutionEventType.MESSAGE,
            {"role": role, "content": content},
            agent_id=agent_id,
            agent_name=agent_name,
        )
