from fastapi import APIRouter, HTTPException, Request

from backend import normalize_room_code
from errors import CounterpartNotConnected, MissingRoom
from events import format_timestamp
from hub import presentation_hub
from logging_config import get_logger
from registry import Role
from schemas.rooms import (
    ApiMessageRequest,
    ApiMessageResponse,
    CloseRoomResponse,
    ConnectionCountersResponse,
    ConnectionStatusResponse,
    HealthResponse,
    RoomDetailsResponse,
    RoomListResponse,
    ServerInfo,
    StatusResponse,
)

logger = get_logger(__name__)

rooms_router = APIRouter(tags=["rooms"])


def _room_list(snapshot) -> RoomListResponse:
    return RoomListResponse(
        total=snapshot.room_count,
        rooms=[RoomDetailsResponse.from_summary(summary) for summary in snapshot.rooms],
    )


@rooms_router.get("/")
async def root():
    snapshot = presentation_hub.snapshot()
    counters = snapshot.counters
    return {
        "status": "Presenter relay server running",
        "version": presentation_hub.server_version,
        "uptime": snapshot.uptime_seconds,
        "stats": {
            "current_connections": counters.current,
            "total_connections": counters.total,
            "active_rooms": snapshot.room_count,
            "display_connections": counters.displays,
            "controller_connections": counters.controllers,
        },
        "timestamp": format_timestamp(snapshot.taken_at),
    }


@rooms_router.get("/health", response_model=HealthResponse)
async def health_check():
    snapshot = presentation_hub.snapshot()
    return HealthResponse(
        status="healthy",
        timestamp=format_timestamp(snapshot.taken_at),
        uptime=snapshot.uptime_seconds,
        connections=snapshot.counters.current,
    )


@rooms_router.get("/api/status", response_model=StatusResponse)
async def get_status():
    snapshot = presentation_hub.snapshot()
    counters = snapshot.counters
    return StatusResponse(
        server=ServerInfo(
            status="running",
            version=presentation_hub.server_version,
            uptime=snapshot.uptime_seconds,
            start_time=format_timestamp(snapshot.started_at),
        ),
        connections=ConnectionStatusResponse(
            total_rooms=snapshot.room_count,
            connected_displays=sum(1 for room in snapshot.rooms if room.has_display),
            connected_controllers=sum(1 for room in snapshot.rooms if room.has_controller),
            paired_rooms=snapshot.paired_rooms,
        ),
        statistics=ConnectionCountersResponse(
            total_connections=counters.total,
            current_connections=counters.current,
            display_connections=counters.displays,
            controller_connections=counters.controllers,
            unregistered_connections=counters.unregistered,
        ),
        rooms=_room_list(snapshot),
    )


@rooms_router.get("/api/rooms", response_model=RoomListResponse)
async def list_rooms():
    return _room_list(presentation_hub.snapshot())


@rooms_router.get("/api/rooms/{room_code}", response_model=RoomDetailsResponse)
async def get_room_details(room_code: str):
    summary = presentation_hub.room_info(room_code)
    if summary is None:
        logger.info(f"Room details failed: Room {room_code} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    return RoomDetailsResponse.from_summary(summary)


@rooms_router.post("/api/rooms/{room_code}/message", response_model=ApiMessageResponse)
async def send_room_message(room_code: str, body: ApiMessageRequest, request: Request):
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"API message request for room {room_code} from {client_host}, target: {body.target}")

    if not body.message:
        raise HTTPException(status_code=400, detail="Message is required")

    target = Role(body.target)
    try:
        presentation_hub.send_api_message(room_code, target, body.message)
    except MissingRoom:
        raise HTTPException(status_code=404, detail="Room not found")
    except CounterpartNotConnected:
        raise HTTPException(status_code=404, detail=f"{target.value} not connected in this room")

    return ApiMessageResponse(status="sent", message=body.message, target=target.value, room_code=normalize_room_code(room_code))


@rooms_router.delete("/api/rooms/{room_code}", response_model=CloseRoomResponse)
async def close_room(room_code: str, request: Request):
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Close room request for {room_code} from {client_host}")

    if not presentation_hub.close_room(room_code, reason="closed_by_api"):
        logger.warning(f"Close room failed: Room {room_code} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    return CloseRoomResponse.closed(normalize_room_code(room_code), presentation_hub.clock())
