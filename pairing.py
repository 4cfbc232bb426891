"""Room pairing state machine.

A room moves ``EMPTY -> DISPLAY_ONLY -> PAIRED`` as a display and then a
controller register, and back down as peers leave. Every way a peer can leave
a slot (transport disconnect, liveness eviction, re-registration elsewhere)
goes through :meth:`PairingProtocol.vacate`, which is safe to call repeatedly.
"""
from typing import Callable, Optional

import events
from backend import Room, RoomTable, is_valid_room_code, normalize_room_code
from errors import InvalidPayload, InvalidRole, MissingRoom, RoomHasNoDisplay
from logging_config import get_logger
from registry import ConnectionRegistry, Peer, Role
from transport import Transport, send_event

logger = get_logger(__name__)

_DISCONNECT_EVENTS = {
    Role.DISPLAY: events.DISPLAY_DISCONNECTED,
    Role.CONTROLLER: events.CONTROLLER_DISCONNECTED,
}
_CONNECT_EVENTS = {
    Role.DISPLAY: events.DISPLAY_CONNECTED,
    Role.CONTROLLER: events.CONTROLLER_CONNECTED,
}


class PairingProtocol:
    def __init__(self, registry: ConnectionRegistry, rooms: RoomTable, transport: Transport, clock: Callable[[], float]):
        self.registry = registry
        self.rooms = rooms
        self.transport = transport
        self.clock = clock

    def register_display(self, peer: Peer, code=None, device_name: Optional[str] = None) -> Room:
        """Install ``peer`` as the display of ``code``, creating the room if needed.

        A different peer already holding the display slot is replaced. The
        same peer registering again is treated as a refresh.
        """
        requested = self.rooms.resolve_code(code)
        if peer.room_code is not None and (peer.room_code != requested or peer.role is not Role.DISPLAY):
            self.vacate(peer, reason="re_registered")

        room, code = self.rooms.get_or_create(requested)
        incumbent = room.display
        if incumbent is not None and incumbent is not peer:
            logger.info(f"Room {code} already has display {incumbent.peer_id}, replacing with {peer.peer_id}")
            self._replace(incumbent, "New display connected to this room")

        self._install(room, Role.DISPLAY, peer, device_name)
        logger.info(f"Display registered in room {code}: {peer.peer_id} ({peer.label})")

        send_event(self.transport, peer.peer_id, events.REGISTERED, {
            "device_type": Role.DISPLAY.value,
            "room_code": code,
            "client_id": peer.peer_id,
            "device_name": peer.label,
            "message": "Display registered successfully",
        }, self.clock())

        controller = room.controller
        if controller is not None and self.registry.is_connected(controller):
            self._announce(room, controller, peer)
            self._announce(room, peer, controller)
            logger.info(f"Notified devices about existing connections in room {code}")
        return room

    def register_controller(self, peer: Peer, code, device_name: Optional[str] = None) -> Room:
        """Join ``peer`` to an existing room as its controller.

        Raises InvalidPayload for a missing or malformed code, MissingRoom if
        no such room exists and RoomHasNoDisplay if nobody is showing it.
        Nothing is mutated before these checks pass.
        """
        requested = normalize_room_code(code)
        if requested is None:
            raise InvalidPayload("Room code is required for controller registration")
        if not is_valid_room_code(requested):
            raise InvalidPayload("Invalid room code format", room_code=requested)

        room = self.rooms.get(requested)
        if room is None:
            logger.info(f"Room {requested} not found for controller {peer.peer_id}")
            raise MissingRoom(room_code=requested)

        display = room.display
        if display is None or not self.registry.is_connected(display):
            logger.info(f"No display connected in room {requested} for controller {peer.peer_id}")
            raise RoomHasNoDisplay(room_code=requested)
        if display is peer:
            raise InvalidRole("The display of a room cannot also control it", room_code=requested)

        if peer.room_code is not None and (peer.room_code != requested or peer.role is not Role.CONTROLLER):
            self.vacate(peer, reason="re_registered")

        incumbent = room.controller
        if incumbent is not None and incumbent is not peer:
            logger.info(f"Replacing controller {incumbent.peer_id} in room {requested} with {peer.peer_id}")
            self._replace(incumbent, "New controller connected to this room")

        self._install(room, Role.CONTROLLER, peer, device_name)
        logger.info(f"Controller registered in room {requested}: {peer.peer_id} ({peer.label})")

        send_event(self.transport, peer.peer_id, events.REGISTERED, {
            "device_type": Role.CONTROLLER.value,
            "room_code": requested,
            "client_id": peer.peer_id,
            "device_name": peer.label,
            "connected_display": True,
            "display_id": display.peer_id,
            "display_name": display.label,
            "message": "Controller registered successfully",
        }, self.clock())

        self._announce(room, peer, display)
        self._announce(room, display, peer)
        return room

    def vacate(self, peer: Peer, reason: str) -> bool:
        """Clear ``peer``'s slot, tell its counterpart, and drop the room if it emptied.

        Returns False when the peer no longer occupies a slot, which makes a
        second call for the same peer a silent no-op.
        """
        code, role = peer.room_code, peer.role
        peer.room_code = None
        if code is None or role is None:
            return False

        room = self.rooms.get(code)
        if room is None or room.occupant(role) is not peer:
            return False

        room.set_occupant(role, None)
        logger.info(f"{role.value.capitalize()} {peer.peer_id} left room {code} - Reason: {reason}")

        counterpart = room.occupant(role.counterpart)
        if counterpart is not None and self.registry.is_connected(counterpart):
            send_event(self.transport, counterpart.peer_id, _DISCONNECT_EVENTS[role], {
                "status": "disconnected",
                "device_id": peer.peer_id,
                "reason": reason,
            }, self.clock())

        if room.is_empty:
            self.rooms.delete(code)
        return True

    def remove_peer(self, peer_id: str, reason: str) -> bool:
        peer = self.registry.lookup(peer_id)
        if peer is None:
            return False
        return self.vacate(peer, reason)

    def _install(self, room: Room, role: Role, peer: Peer, device_name: Optional[str]):
        room.set_occupant(role, peer)
        peer.role = role
        peer.room_code = room.code
        if device_name:
            peer.device_name = str(device_name)

    def _replace(self, incumbent: Peer, message: str):
        # The slot is overwritten by the caller; the incumbent's own disconnect
        # later finds it no longer seated and does nothing.
        incumbent.room_code = None
        if not self.registry.is_connected(incumbent):
            return
        send_event(self.transport, incumbent.peer_id, events.REPLACED, {"message": message}, self.clock())
        self.transport.disconnect(incumbent.peer_id)

    def _announce(self, room: Room, recipient: Peer, newcomer: Peer):
        send_event(self.transport, recipient.peer_id, _CONNECT_EVENTS[newcomer.role], {
            "status": _CONNECT_EVENTS[newcomer.role],
            "room_code": room.code,
            "device_id": newcomer.peer_id,
            "device_name": newcomer.label,
        }, self.clock())
