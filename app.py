from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from routers.monitoring import monitoring_router
from presence import presence_store
from broadcast import room_broadcaster
from handlers import connection_handler
from constants import LOG_LEVEL, LOG_FILE, PORT
import constants
import uuid
import json
import os
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Chat server running on http://localhost:{PORT}")
    logger.info(f"Stats available at http://localhost:{PORT}/api/stats")
    logger.info(f"Rooms info at http://localhost:{PORT}/api/rooms")
    yield
    # All state is in memory and is lost on restart
    presence_store.clear()
    room_broadcaster.connections.clear()
    logger.info("Chat server stopped")


app = FastAPI(title="Chat Relay", lifespan=lifespan)

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)

app.include_router(monitoring_router)

logger.info("FastAPI application initialized")


@app.get("/", include_in_schema=False)
async def index():
    index_path = os.path.join(constants.STATIC_DIR, "index.html")
    if not os.path.isfile(index_path):
        logger.debug(f"Index page not found at {index_path}")
        raise HTTPException(status_code=404, detail="Index page not found")
    return FileResponse(index_path)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for the chat relay.

    Every frame in both directions is a JSON envelope: {"event": name, "data": {...}}.
    Frames that are not valid envelopes are ignored.
    """
    connection_id = str(uuid.uuid4())
    await websocket.accept()
    room_broadcaster.register(connection_id, websocket)
    logger.info(f"User connected: {connection_id}")

    try:
        frame_count = 0
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            frame_count += 1
            logger.debug(f"Received frame #{frame_count} from connection {connection_id}")

            data = message.get("text")
            if data is None:
                logger.debug(f"Ignoring binary frame from connection {connection_id}")
                continue

            try:
                envelope = json.loads(data)
            except json.JSONDecodeError:
                logger.debug(f"Ignoring non-JSON frame from connection {connection_id}")
                continue
            if not isinstance(envelope, dict):
                logger.debug(f"Ignoring non-object frame from connection {connection_id}")
                continue

            await connection_handler.dispatch(connection_id, envelope.get("event"), envelope.get("data"))

    except WebSocketDisconnect:
        logger.debug(f"WebSocket disconnected normally for connection {connection_id}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
        try:
            await websocket.close()
        except Exception as close_error:
            logger.debug(f"Error closing WebSocket: {close_error}")
    finally:
        await connection_handler.disconnect(connection_id)
