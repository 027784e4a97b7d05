"""WebSocket handler serving execution feeds.

Each watcher connects to ``/ws?executionId=...&userId=...`` and receives
every event of that execution as camelCase JSON, in publish order. Clients
may send ``{"type": "ping"}`` and get a pong back; other client messages are
logged and ignored.
"""

import asyncio
import contextlib
import json
from typing import Annotated

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from events import ExecutionEvent, ExecutionEventBus, ExecutionEventType

logger = structlog.get_logger(__name__)

websocket_router = APIRouter()

_event_bus: ExecutionEventBus | None = None


def set_event_bus(bus: ExecutionEventBus) -> None:
    """Set the event bus used by the feed endpoint."""
    global _event_bus
    _event_bus = bus
    logger.info("websocket_event_bus_configured")


def get_event_bus() -> ExecutionEventBus:
    """Return the configured event bus."""
    if _event_bus is None:
        raise RuntimeError(
            "ExecutionEventBus not configured for WebSocket handlers. "
            "Call set_event_bus() during startup."
        )
    return _event_bus


@websocket_router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    execution_id: Annotated[str | None, Query(alias="executionId")] = None,
    user_id: Annotated[str | None, Query(alias="userId")] = None,
) -> None:
    """WebSocket endpoint streaming the events of one execution.

    Args:
        websocket: The WebSocket connection.
        execution_id: The execution to watch.
        user_id: Identity of the watcher.
    """
    await websocket.accept()

    if not execution_id or not user_id:
        logger.warning("websocket_rejected_missing_params")
        await websocket.close(
            code=status.WS_1008_POLICY_VIOLATION,
            reason="Missing executionId or userId",
        )
        return

    log = logger.bind(execution_id=execution_id, user_id=user_id)
    log.info("websocket_connected")

    event_bus = get_event_bus()
    queue = event_bus.subscribe(execution_id)

    try:
        ack = ExecutionEvent(
            type=ExecutionEventType.LOG,
            execution_id=execution_id,
            data={"message": "Connected to execution monitor", "level": "info"},
        )
        await websocket.send_json(ack.to_wire())

        async def send_events() -> None:
            """Forward events from the bus to the watcher until the execution closes."""
            try:
                while True:
                    event = await queue.get()
                    if event is None:
                        log.info("execution_closed_sentinel")
                        with contextlib.suppress(RuntimeError):
                            await websocket.close()
                        break

                    await websocket.send_json(event.to_wire())
                    log.debug("event_sent", event_type=event.type.value)
            except WebSocketDisconnect:
                log.info("websocket_disconnect_during_send")
            except Exception as e:
                log.error("websocket_send_error", error=str(e))

        async def receive_commands() -> None:
            """Handle messages sent by the watcher."""
            try:
                while True:
                    text = await websocket.receive_text()
                    try:
                        data = json.loads(text)
                    except json.JSONDecodeError:
                        log.warning("invalid_ws_message")
                        continue
                    if not isinstance(data, dict):
                        log.warning("invalid_ws_message")
                        continue

                    command_type = data.get("type")
                    log.info("command_received", command_type=command_type)

                    if command_type == "ping":
                        await websocket.send_json(
                            {"type": "pong", "timestamp": data.get("timestamp")}
                        )
                    else:
                        log.warning("unknown_command", command_type=command_type)
            except WebSocketDisconnect:
                log.info("websocket_disconnect_during_receive")
            except Exception as e:
                log.error("websocket_receive_error", error=str(e))

        send_task = asyncio.create_task(send_events())
        receive_task = asyncio.create_task(receive_commands())

        # Wait for either task to complete (usually due to disconnect)
        _, pending = await asyncio.wait(
            [send_task, receive_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    except WebSocketDisconnect:
        log.info("websocket_disconnected")
    except Exception as e:
        log.error("websocket_error", error=str(e))
    finally:
        event_bus.unsubscribe(execution_id, queue)
        log.info("websocket_cleanup_complete")
