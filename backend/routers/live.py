"""
Live streams over WebSocket.

Each connection holds one subscription and receives a JSON message per
snapshot. Identity comes from the ``X-User-Id`` header or a ``user_id``
query parameter (browsers cannot set headers on WebSocket upgrades).
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, WebSocket, WebSocketDisconnect

from models import DonorResponse
from services import DonorDirectory, RequestCatalog
from routers.deps import get_catalog, get_directory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["Live"])


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    """Forward queued messages until the client goes away."""

    async def send():
        while True:
            await websocket.send_json(await queue.get())

    async def receive():
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    tasks = [asyncio.create_task(send()), asyncio.create_task(receive())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def _error_message(error) -> dict:
    return {"type": "error", "code": error.code.value, "detail": error.message}


@router.websocket("/donors")
async def donors_stream(
    websocket: WebSocket,
    x_user_id: Optional[str] = Header(None),
    user_id: Optional[str] = Query(None),
    directory: DonorDirectory = Depends(get_directory),
) -> None:
    identity = x_user_id or user_id
    if not identity:
        await websocket.close(code=4001, reason="Missing user identity")
        return

    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue()

    def push(donors):
        queue.put_nowait({
            "type": "donors",
            "donors": [DonorResponse(**d.model_dump()).model_dump(mode="json") for d in donors],
        })

    subscription = await directory.subscribe_for_recipient(
        identity, push, lambda e: queue.put_nowait(_error_message(e))
    )
    logger.info("Donor stream opened for %s", identity)
    try:
        await _pump(websocket, queue)
    except WebSocketDisconnect:
        pass
    finally:
        subscription.dispose()
        logger.info("Donor stream closed for %s", identity)


@router.websocket("/requests")
async def open_requests_stream(
    websocket: WebSocket,
    catalog: RequestCatalog = Depends(get_catalog),
) -> None:
    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue()

    def push(views):
        queue.put_nowait({
            "type": "requests",
            "requests": [v.model_dump(mode="json") for v in views],
        })

    subscription = catalog.subscribe_open(push, lambda e: queue.put_nowait(_error_message(e)))
    try:
        await _pump(websocket, queue)
    except WebSocketDisconnect:
        pass
    finally:
        subscription.dispose()
