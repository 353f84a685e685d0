from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from routers.rooms import rooms_router
from routers.messages import messages_router
from routers.typing_status import typing_router
from routers.deps import get_room_manager
from schemas.rooms import RoomInfoResponse
from auth import extract_token, validate_membership
from backend import get_backend
from errors import ChatError, RateLimitedError
from events import EVENT_DESTROY
from gateway import RoomGatewayMiddleware
import json
import asyncio
import math
import time
import uuid
from typing import Dict, Optional
from logging_config import get_logger, setup_logging
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)

app = FastAPI()

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)
app.add_middleware(RoomGatewayMiddleware)

app.include_router(rooms_router)
app.include_router(messages_router)
app.include_router(typing_router)

logger.info("FastAPI application initialized")


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    headers = {}
    if isinstance(exc, RateLimitedError) and exc.reset_at is not None:
        headers["Retry-After"] = str(max(0, math.ceil(exc.reset_at - time.time())))
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} ({exc.message})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.get("/")
async def landing(error: Optional[str] = None, roomId: Optional[str] = None):
    # Landing page state; the gateway redirects here with an error code
    return {"status": "ok", "error": error, "roomId": roomId}


@app.get("/room/{room_id}", response_model=RoomInfoResponse)
async def room_page(room_id: str):
    # Only reachable once the gateway admitted the visitor
    return RoomInfoResponse(**get_room_manager().get_room_info(room_id))


# In-memory connection tracking per room
# Format: {room_id: {connection_id: websocket}}
# NOTE: This is intentionally in-memory per instance. Redis pub/sub distributes
# events across all instances, and each instance relays to its local sockets.
room_connections: Dict[str, Dict[str, WebSocket]] = {}

# Background tasks for Redis pub/sub listeners per room
# Format: {room_id: task}
room_pubsub_tasks: Dict[str, asyncio.Task] = {}


async def listen_to_redis_channel(room_id: str):
    """Background task relaying a room's pub/sub events to local WebSocket connections."""
    logger.info(f"Starting Redis pub/sub listener for room: {room_id}")
    backend = get_backend()
    pubsub = None
    try:
        pubsub = backend.subscribe_to_room(room_id)
        loop = asyncio.get_event_loop()

        while room_connections.get(room_id):
            def get_message():
                """Blocking call to get next message from Redis pub/sub with timeout."""
                try:
                    return pubsub.get_message(timeout=1.0, ignore_subscribe_messages=True)
                except Exception as e:
                    logger.error(f"Error in pubsub.get_message() for room {room_id}: {e}", exc_info=True)
                    return None

            message = await loop.run_in_executor(None, get_message)
            if message is None or message.get("type") != "message":
                continue

            try:
                event = json.loads(message["data"])
            except json.JSONDecodeError as e:
                logger.error(f"Error parsing event from Redis for room {room_id}: {e}")
                continue

            connections = list(room_connections.get(room_id, {}).items())
            results = await asyncio.gather(
                *(ws.send_text(json.dumps(event)) for _, ws in connections), return_exceptions=True
            )
            for (conn_id, _), result in zip(connections, results):
                if isinstance(result, Exception):
                    logger.warning(f"Error sending to connection {conn_id} in room {room_id}: {result}")
                    room_connections.get(room_id, {}).pop(conn_id, None)

            if event.get("event") == EVENT_DESTROY:
                logger.info(f"Room {room_id} destroyed, closing {len(connections)} local connections")
                for _, ws in connections:
                    try:
                        await ws.close(code=1000, reason="Room destroyed")
                    except Exception as e:
                        logger.debug(f"Error closing WebSocket: {e}")
                room_connections.pop(room_id, None)
    except asyncio.CancelledError:
        logger.info(f"Redis listener task cancelled for room: {room_id}")
    except Exception as e:
        logger.error(f"Error in Redis listener for room {room_id}: {e}", exc_info=True)
    finally:
        if pubsub:
            try:
                pubsub.close()
            except Exception as e:
                logger.error(f"Error closing pub/sub for room {room_id}: {e}")
        # A newer listener may already own this room's slot
        if room_pubsub_tasks.get(room_id) is asyncio.current_task():
            del room_pubsub_tasks[room_id]


@app.websocket("/api/realtime")
async def realtime_endpoint(websocket: WebSocket, roomId: str):
    """Live event stream for a room. Requires the membership token issued by the gateway."""
    try:
        membership = validate_membership(roomId, extract_token(websocket, roomId))
    except ChatError as e:
        logger.info(f"WebSocket rejected for room {roomId}: {e.code}")
        await websocket.close(code=1008, reason=e.message)
        return

    await websocket.accept()
    connection_id = uuid.uuid4().hex
    room_connections.setdefault(roomId, {})[connection_id] = websocket
    logger.info(f"WebSocket {connection_id} connected to room {roomId}")

    if roomId not in room_pubsub_tasks or room_pubsub_tasks[roomId].done():
        room_pubsub_tasks[roomId] = asyncio.create_task(listen_to_redis_channel(roomId))

    try:
        while True:
            # Clients only listen; inbound frames are keep-alives
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text(json.dumps({"event": "pong", "roomId": membership.room_id}))
    except WebSocketDisconnect:
        logger.info(f"WebSocket {connection_id} disconnected from room {roomId}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id} in room {roomId}: {e}", exc_info=True)
    finally:
        local = room_connections.get(roomId)
        if local is not None:
            local.pop(connection_id, None)
            if not local:
                del room_connections[roomId]
                task = room_pubsub_tasks.pop(roomId, None)
                if task:
                    task.cancel()
