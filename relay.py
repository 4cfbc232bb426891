from typing import Callable, Dict, Type

from pydantic import ValidationError

import events
from backend import RoomTable
from errors import CounterpartNotConnected, InvalidPayload, InvalidRole, MissingRoom
from logging_config import get_logger
from registry import ConnectionRegistry, Peer, Role
from schemas.messages import (
    CustomEvent,
    DocumentScroll,
    LoadDocument,
    PageChange,
    PresentationAction,
    RelayPayload,
    SlideChange,
)
from transport import Transport, send_event

logger = get_logger(__name__)

RELAY_SCHEMAS: Dict[str, Type[RelayPayload]] = {
    events.SLIDE_CHANGE: SlideChange,
    events.DOCUMENT_SCROLL: DocumentScroll,
    events.PAGE_CHANGE: PageChange,
    events.PRESENTATION_ACTION: PresentationAction,
    events.LOAD_DOCUMENT: LoadDocument,
    events.CUSTOM_EVENT: CustomEvent,
}


def describe_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors(include_url=False):
        location = ".".join(str(item) for item in err["loc"]) or "payload"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


class RelayEngine:
    """Authorises and forwards room traffic between the two slots.

    Typed presentation messages only flow controller -> display. The custom
    event channel flows both ways. A rejected message raises a RelayError and
    is never queued.
    """

    def __init__(self, registry: ConnectionRegistry, rooms: RoomTable, transport: Transport, clock: Callable[[], float]):
        self.registry = registry
        self.rooms = rooms
        self.transport = transport
        self.clock = clock

    def relay(self, sender: Peer, kind: str, payload) -> Peer:
        schema = RELAY_SCHEMAS.get(kind)
        if schema is None:
            raise InvalidPayload(f"Unknown message type: {kind}", kind=kind)

        if sender.room_code is None or sender.role is None:
            raise InvalidRole(f"Register in a room before sending {kind}", kind=kind)
        if kind in events.TYPED_RELAY_KINDS and sender.role is not Role.CONTROLLER:
            raise InvalidRole(f"Only controllers in a room can send {kind}", kind=kind)

        room = self.rooms.get(sender.room_code)
        if room is None:
            raise MissingRoom(room_code=sender.room_code, kind=kind)

        target_role = sender.role.counterpart
        target = room.occupant(target_role)
        if target is None or not self.registry.is_connected(target):
            raise CounterpartNotConnected(
                f"{target_role.value.capitalize()} not connected in this room",
                room_code=room.code,
                kind=kind,
            )

        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise InvalidPayload(f"{kind} payload must be an object", kind=kind)
        try:
            message = schema.model_validate(payload)
        except ValidationError as e:
            raise InvalidPayload(f"Invalid {kind}: {describe_validation_error(e)}", kind=kind)

        data = message.to_relay()
        data.update({
            "room_code": room.code,
            "from": sender.peer_id,
            "from_role": sender.role.value,
        })
        now = self.clock()
        send_event(self.transport, target.peer_id, kind, data, now)
        logger.debug(f"Room {room.code} - {kind} from {sender.role.value} {sender.peer_id} to {target.peer_id}")

        if kind == events.SLIDE_CHANGE:
            send_event(self.transport, sender.peer_id, events.SLIDE_CHANGE_ACK, {
                "slide_index": data["slide_index"],
            }, now)
        return target
