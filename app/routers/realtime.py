"""WebSocket rate stream.

Protocol (JSON frames):
    <- {"event": "rates:update", "rates": [...], "timestamp": "..."}   on connect, every tick, after admin edits
    -> "subscribe:rates" | {"action": "subscribe:rates"}                 request a fresh snapshot now
    -> "ping" | {"action": "ping"}
    <- {"event": "pong"}
"""

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.services.rates.broadcast import RateBroadcaster

logger = logging.getLogger("app.realtime")

router = APIRouter(tags=["realtime"])

SUBSCRIBE_ACTION = "subscribe:rates"


def _action(raw: str) -> str:
    try:
        data = json.loads(raw)
    except ValueError:
        return raw.strip()
    if isinstance(data, dict):
        return str(data.get("action") or data.get("event") or "")
    return raw.strip()


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


async def _listen(websocket: WebSocket, broadcaster: RateBroadcaster, queue: asyncio.Queue) -> None:
    while True:
        action = _action(await websocket.receive_text())
        if action == SUBSCRIBE_ACTION:
            await broadcaster.send_snapshot(queue)
        elif action == "ping":
            queue.put_nowait({"event": "pong"})
        else:
            queue.put_nowait({"event": "error", "detail": f"Unknown action: {action or '<empty>'}"})


@router.websocket("/ws/rates")
async def ws_rates(websocket: WebSocket) -> None:
    broadcaster: RateBroadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    queue = await broadcaster.subscribe()
    tasks = [
        asyncio.create_task(_pump(websocket, queue)),
        asyncio.create_task(_listen(websocket, broadcaster, queue)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("rate stream closed with error: %s", exc)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        broadcaster.unsubscribe(queue)
