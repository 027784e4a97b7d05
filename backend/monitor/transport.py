"""Feed transports for execution monitor sessions.

A session talks to its transport only through callbacks: the transport
reports open, each inbound message, errors, and close. A FeedFactory builds
a fresh transport for every connection attempt; transports are never reused.

The production transport is WebSocketFeed, a `websockets` client running as
an asyncio task on the caller's loop.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

import structlog
from websockets.asyncio.client import connect
from websockets.exceptions import WebSocketException

from config import settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FeedHandlers:
    """Callbacks a transport invokes on its owning session."""

    on_open: Callable[[], None]
    on_message: Callable[[str | bytes], None]
    on_error: Callable[[str], None]
    on_close: Callable[[], None]


class FeedTransport(Protocol):
    def close(self) -> None: ...


FeedFactory = Callable[[FeedHandlers], FeedTransport]


def build_feed_url(host: str, execution_id: str, identity: str, *, secure: bool) -> str:
    """Build the feed endpoint for one execution.

    Whether to use ``wss`` is the caller's decision, normally mirroring the
    security of the page or API the host was obtained from.
    """
    scheme = "wss" if secure else "ws"
    query = urlencode({"executionId": execution_id, "userId": identity})
    return f"{scheme}://{host}/ws?{query}"


class WebSocketFeed:
    """A single WebSocket connection to an execution feed.

    Connecting starts immediately on construction, so it must be created
    from inside a running event loop. Every exit path other than close()
    ends with exactly one ``on_close`` callback; a connection failure or
    abnormal closure is preceded by ``on_error``.
    """

    def __init__(
        self,
        url: str,
        handlers: FeedHandlers,
        *,
        open_timeout: float | None = None,
    ) -> None:
        self._url = url
        self._handlers = handlers
        self.open_timeout = (
            settings.feed_open_timeout_seconds if open_timeout is None else open_timeout
        )
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            async with connect(self._url, open_timeout=self.open_timeout) as websocket:
                logger.debug("feed_socket_open", url=self._url)
                self._handlers.on_open()
                async for message in websocket:
                    self._handlers.on_message(message)
        except asyncio.CancelledError:
            logger.debug("feed_socket_cancelled", url=self._url)
            raise
        except (OSError, TimeoutError, WebSocketException) as e:
            logger.warning("feed_socket_error", url=self._url, error=str(e))
            self._handlers.on_error(str(e) or type(e).__name__)
        except Exception as e:
            logger.error("feed_socket_failed", url=self._url, error=str(e), exc_info=True)
            self._handlers.on_error(str(e) or type(e).__name__)
        self._handlers.on_close()

    def close(self) -> None:
        """Close the socket without reporting it back to the session."""
        self._task.cancel()


def websocket_feed_factory(url: str, *, open_timeout: float | None = None) -> FeedFactory:
    """Return a FeedFactory that opens a new WebSocketFeed to ``url`` per attempt.

    ``open_timeout`` defaults to ``settings.feed_open_timeout_seconds``.
    """

    def factory(handlers: FeedHandlers) -> FeedTransport:
        return WebSocketFeed(url, handlers, open_timeout=open_timeout)

    return factory
