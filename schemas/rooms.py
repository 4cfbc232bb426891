from pydantic import BaseModel
from typing import Optional, Literal

from backend import RoomSummary
from events import format_timestamp


class RoomDetailsResponse(BaseModel):
    room_code: str
    state: str
    has_display: bool
    has_controller: bool
    display_id: Optional[str] = None
    controller_id: Optional[str] = None
    display_name: Optional[str] = None
    controller_name: Optional[str] = None
    created_at: str

    @classmethod
    def from_summary(cls, summary: RoomSummary) -> "RoomDetailsResponse":
        return cls(**summary.to_dict())


class RoomListResponse(BaseModel):
    total: int
    rooms: list[RoomDetailsResponse]


class ConnectionCountersResponse(BaseModel):
    total_connections: int
    current_connections: int
    display_connections: int
    controller_connections: int
    unregistered_connections: int


class ConnectionStatusResponse(BaseModel):
    total_rooms: int
    connected_displays: int
    connected_controllers: int
    paired_rooms: int


class ServerInfo(BaseModel):
    status: str
    version: str
    uptime: int
    start_time: str


class StatusResponse(BaseModel):
    server: ServerInfo
    connections: ConnectionStatusResponse
    statistics: ConnectionCountersResponse
    rooms: RoomListResponse


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: int
    connections: int


class ApiMessageRequest(BaseModel):
    message: Optional[str] = None
    target: Literal["display", "controller"] = "display"


class ApiMessageResponse(BaseModel):
    status: str
    message: str
    target: str
    room_code: str


class CloseRoomResponse(BaseModel):
    message: str
    room_code: str
    closed_at: str

    @classmethod
    def closed(cls, room_code: str, ts: float) -> "CloseRoomResponse":
        return cls(message="Room closed successfully", room_code=room_code, closed_at=format_timestamp(ts))
