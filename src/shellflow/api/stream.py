"""Bridge between the workflow threads and WebSocket connections."""

import asyncio
import logging

import anyio
from fastapi import WebSocket

logger = logging.getLogger(__name__)


class QueueSubscriber:
    """Broadcaster subscriber feeding one connection's asyncio queue.

    send() and close() are called from workflow threads while the status lock
    is held, so they only schedule work on the event loop and never block.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
        self._loop = loop
        self._queue = queue

    def send(self, payload: str) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, payload)

    def close(self) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, None)


async def pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    """Send queued payloads until the subscriber is closed."""
    while True:
        payload = await queue.get()
        if payload is None:
            return
        await websocket.send_text(payload)


async def wait_disconnect(websocket: WebSocket) -> None:
    """Discard client messages until the client disconnects."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def stream_status(websocket: WebSocket, queue: asyncio.Queue) -> bool:
    """Serve one connection until either side ends it.

    Both directions run in one task group, so whichever ends first cancels
    the other and nothing outlives the connection.

    Returns True when the workflow closed the stream, False when the client left.
    """
    closed_by_workflow = False

    async with anyio.create_task_group() as tg:

        async def send_updates() -> None:
            nonlocal closed_by_workflow
            try:
                await pump(websocket, queue)
                closed_by_workflow = True
            except Exception as e:
                logger.debug(f"WebSocket stream ended: {e}")
            tg.cancel_scope.cancel()

        async def watch_client() -> None:
            try:
                await wait_disconnect(websocket)
            except Exception as e:
                logger.debug(f"WebSocket stream ended: {e}")
            tg.cancel_scope.cancel()

        tg.start_soon(send_updates)
        tg.start_soon(watch_client)

    return closed_by_workflow
