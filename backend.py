import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH, ROOM_CODE_MAX_LENGTH, ROOM_CODE_MIN_LENGTH
from events import format_timestamp
from logging_config import get_logger
from registry import Peer, Role

logger = get_logger(__name__)

_random = random.SystemRandom()


class SlotState(str, Enum):
    EMPTY = "empty"
    LIVE = "live"
    STALE = "stale"


class RoomState(str, Enum):
    EMPTY = "empty"
    DISPLAY_ONLY = "display_only"
    CONTROLLER_ONLY = "controller_only"
    PAIRED = "paired"


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return "".join(_random.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def normalize_room_code(code) -> Optional[str]:
    """Turn client input into a canonical code, or None if there is nothing usable.

    Numbers are accepted because some remotes send the code as a numeric field.
    """
    if code is None or isinstance(code, bool):
        return None
    if isinstance(code, int):
        code = str(code)
    if not isinstance(code, str):
        return None
    code = code.strip().upper()
    return code or None


def is_valid_room_code(code: Optional[str]) -> bool:
    return (
        bool(code)
        and ROOM_CODE_MIN_LENGTH <= len(code) <= ROOM_CODE_MAX_LENGTH
        and code.isascii()
        and code.isalnum()
    )


@dataclass
class Room:
    code: str
    created_at: float
    display: Optional[Peer] = None
    controller: Optional[Peer] = None

    def occupant(self, role: Role) -> Optional[Peer]:
        return self.display if role is Role.DISPLAY else self.controller

    def set_occupant(self, role: Role, peer: Optional[Peer]):
        if role is Role.DISPLAY:
            self.display = peer
        else:
            self.controller = peer

    def occupants(self) -> List[Tuple[Role, Peer]]:
        pairs = []
        for role in Role:
            peer = self.occupant(role)
            if peer is not None:
                pairs.append((role, peer))
        return pairs

    @property
    def is_empty(self) -> bool:
        return self.display is None and self.controller is None

    @property
    def state(self) -> RoomState:
        if self.display and self.controller:
            return RoomState.PAIRED
        if self.display:
            return RoomState.DISPLAY_ONLY
        if self.controller:
            return RoomState.CONTROLLER_ONLY
        return RoomState.EMPTY

    def age(self, now: float) -> float:
        return now - self.created_at

    def slot_state(self, role: Role, now: float, timeout: float, is_connected: Callable[[Peer], bool]) -> SlotState:
        peer = self.occupant(role)
        if peer is None:
            return SlotState.EMPTY
        if not is_connected(peer) or peer.ack_age(now) > timeout:
            return SlotState.STALE
        return SlotState.LIVE


@dataclass(frozen=True)
class RoomSummary:
    code: str
    state: RoomState
    has_display: bool
    has_controller: bool
    display_id: Optional[str]
    controller_id: Optional[str]
    display_name: Optional[str]
    controller_name: Optional[str]
    created_at: float

    @classmethod
    def from_room(cls, room: Room) -> "RoomSummary":
        return cls(
            code=room.code,
            state=room.state,
            has_display=room.display is not None,
            has_controller=room.controller is not None,
            display_id=room.display.peer_id if room.display else None,
            controller_id=room.controller.peer_id if room.controller else None,
            display_name=room.display.label if room.display else None,
            controller_name=room.controller.label if room.controller else None,
            created_at=room.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "room_code": self.code,
            "state": self.state.value,
            "has_display": self.has_display,
            "has_controller": self.has_controller,
            "display_id": self.display_id,
            "controller_id": self.controller_id,
            "display_name": self.display_name,
            "controller_name": self.controller_name,
            "created_at": format_timestamp(self.created_at),
        }


class RoomTable:
    """In-memory map of room code to Room.

    Callers are expected to hold the hub lock; the table itself never blocks.
    """

    def __init__(self, clock: Callable[[], float]):
        self._rooms: Dict[str, Room] = {}
        self._clock = clock

    @staticmethod
    def resolve_code(code) -> Optional[str]:
        """Canonical form of a client-supplied code, or None if it must be replaced."""
        requested = normalize_room_code(code)
        if requested is not None and not is_valid_room_code(requested):
            logger.info(f"Invalid room code {requested!r} requested, generating a new one")
            return None
        return requested

    def get_or_create(self, code=None) -> Tuple[Room, str]:
        code = self.resolve_code(code) or self._fresh_code()
        room = self._rooms.get(code)
        if room is None:
            room = Room(code=code, created_at=self._clock())
            self._rooms[code] = room
            logger.info(f"Created room {code} (active rooms: {len(self._rooms)})")
        return room, code

    def get(self, code) -> Optional[Room]:
        code = normalize_room_code(code)
        if code is None:
            return None
        return self._rooms.get(code)

    def delete(self, code) -> bool:
        code = normalize_room_code(code)
        room = self._rooms.pop(code, None) if code else None
        if room is None:
            return False
        logger.info(f"Deleted room {code} (active rooms: {len(self._rooms)})")
        return True

    def codes(self) -> List[str]:
        return list(self._rooms)

    def list_active(self) -> List[RoomSummary]:
        return [RoomSummary.from_room(room) for room in self._rooms.values()]

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, code):
        return normalize_room_code(code) in self._rooms

    def _fresh_code(self) -> str:
        while True:
            code = generate_room_code()
            if code not in self._rooms:
                return code
