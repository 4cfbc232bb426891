from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from routers.rooms import rooms_router
from hub import presentation_hub, websocket_transport
from supervisor import LivenessSupervisor
from constants import CORS_ORIGINS, LOG_LEVEL, LOG_FILE
from errors import InvalidPayload
import uuid
import json
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

supervisor = LivenessSupervisor(presentation_hub)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the liveness sweeps with the server and warn peers on shutdown."""
    logger.info(f"Starting presenter relay v{presentation_hub.server_version}")
    supervisor.start()

    yield

    logger.info("Shutting down presenter relay")
    presentation_hub.broadcast_shutdown()
    await supervisor.stop()


app = FastAPI(title="Presenter Relay", version=presentation_hub.server_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Relay socket shared by displays and controllers.

    Frames are JSON objects of the form ``{"type": <kind>, "data": {...}}``.
    A peer has no role until it sends ``register_display`` or
    ``register_controller``.
    """
    await websocket.accept()
    connection_id = uuid.uuid4().hex
    address = websocket.client.host if websocket.client else None

    writer = websocket_transport.attach(connection_id, websocket)
    presentation_hub.on_connect(connection_id, address)

    reason = "transport_closed"
    message_count = 0
    try:
        while True:
            data = await websocket.receive_text()
            message_count += 1

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                presentation_hub.reject(connection_id, InvalidPayload("Messages must be JSON"))
                continue
            if not isinstance(message, dict):
                presentation_hub.reject(connection_id, InvalidPayload("Messages must be JSON objects"))
                continue

            logger.debug(f"Received message #{message_count} from connection {connection_id}: {message.get('type')}")
            presentation_hub.on_message(connection_id, message.get("type"), message.get("data"))

    except WebSocketDisconnect as e:
        reason = f"client_disconnect ({e.code})"
        logger.debug(f"WebSocket disconnected normally for connection {connection_id}")
    except RuntimeError as e:
        # Raised by receive after we closed the socket ourselves
        reason = "server_disconnect"
        logger.debug(f"WebSocket for connection {connection_id} closed by server: {e}")
    except Exception as e:
        reason = "server_error"
        logger.error(f"Error receiving message from connection {connection_id}: {e}", exc_info=True)
    finally:
        presentation_hub.on_disconnect(connection_id, reason)
        websocket_transport.detach(connection_id)
        await writer
