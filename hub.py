"""The relay hub: single owner of the room table and connection registry.

All inbound transport events funnel through :class:`PresentationHub`, which
serialises them behind one re-entrant lock. Outbound traffic only enqueues on
the transport, so no critical section waits on the network.
"""
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from pydantic import ValidationError

import events
from backend import RoomSummary, RoomTable
from constants import PEER_TIMEOUT_SECONDS, SERVER_VERSION
from errors import CounterpartNotConnected, InvalidPayload, MissingRoom, RegistrationFailed, RelayError
from logging_config import get_logger
from pairing import PairingProtocol
from registry import ConnectionCounters, ConnectionRegistry, Peer, Role
from relay import RelayEngine, describe_validation_error
from schemas.messages import RegisterControllerRequest, RegisterDisplayRequest
from transport import Transport, WebSocketTransport, send_event

logger = get_logger(__name__)


@dataclass
class HubSnapshot:
    taken_at: float
    started_at: float
    rooms: List[RoomSummary] = field(default_factory=list)
    counters: ConnectionCounters = field(default_factory=ConnectionCounters)

    @property
    def uptime_seconds(self) -> int:
        return int(self.taken_at - self.started_at)

    @property
    def room_count(self) -> int:
        return len(self.rooms)

    @property
    def paired_rooms(self) -> int:
        return sum(1 for room in self.rooms if room.has_display and room.has_controller)


class PresentationHub:
    def __init__(
        self,
        transport: Transport,
        clock: Callable[[], float] = time.time,
        peer_timeout: float = PEER_TIMEOUT_SECONDS,
        server_version: str = SERVER_VERSION,
    ):
        self.transport = transport
        self.clock = clock
        self.peer_timeout = peer_timeout
        self.server_version = server_version
        self.started_at = clock()
        self.lock = threading.RLock()
        self.registry = ConnectionRegistry()
        self.rooms = RoomTable(clock)
        self.pairing = PairingProtocol(self.registry, self.rooms, transport, clock)
        self.relay = RelayEngine(self.registry, self.rooms, transport, clock)

    # Inbound transport events

    def on_connect(self, peer_id: str, address: Optional[str] = None) -> Peer:
        with self.lock:
            peer = self.registry.register(Peer(peer_id=peer_id, connected_at=self.clock(), address=address))
            send_event(self.transport, peer_id, events.CONNECTED, {
                "message": "Connected to presenter relay",
                "client_id": peer_id,
                "server_version": self.server_version,
            }, self.clock())
        logger.info(f"Client connected: {peer_id} from {address or 'unknown'}")
        return peer

    def on_disconnect(self, peer_id: str, reason: str = "transport_closed") -> bool:
        with self.lock:
            peer = self.registry.lookup(peer_id)
            if peer is None:
                return False
            room_code = peer.room_code
            self.pairing.remove_peer(peer_id, reason)
            self.registry.unregister(peer_id)
        role = peer.role.value if peer.role else "unknown"
        logger.info(f"Client disconnected: {peer_id} - Device: {role} - Room: {room_code or 'none'} - Reason: {reason}")
        return True

    def on_message(self, peer_id: str, kind, payload=None):
        with self.lock:
            peer = self.registry.lookup(peer_id)
            if peer is None:
                logger.warning(f"Ignoring {kind} from unknown connection {peer_id}")
                return
            try:
                self._dispatch(peer, kind, payload)
            except RelayError as e:
                logger.warning(f"Rejected {kind} from {peer_id}: {e.code} - {e.message}")
                self.reject(peer_id, e, kind)

    def reject(self, peer_id: str, error: RelayError, kind=None):
        data = error.to_payload()
        if kind is not None:
            data.setdefault("kind", kind)
        send_event(self.transport, peer_id, events.ERROR, data, self.clock())

    def _dispatch(self, peer: Peer, kind, payload):
        if not isinstance(kind, str) or not kind:
            raise InvalidPayload("Message type is required")

        if kind == events.REGISTER_DISPLAY:
            self._register(peer, Role.DISPLAY, payload)
        elif kind == events.REGISTER_CONTROLLER:
            self._register(peer, Role.CONTROLLER, payload)
        elif kind == events.PROBE_ACK:
            self.registry.mark_probe_acked(peer.peer_id, self.clock())
        elif kind == events.PING:
            now = self.clock()
            self.registry.mark_probe_acked(peer.peer_id, now)
            send_event(self.transport, peer.peer_id, events.PONG, {"client_id": peer.peer_id}, now)
        elif kind == events.CONNECTION_TEST:
            send_event(self.transport, peer.peer_id, events.CONNECTION_TEST_RESPONSE, {
                "received": payload,
                "server_id": peer.peer_id,
                "status": "connected",
            }, self.clock())
        else:
            self.relay.relay(peer, kind, payload)

    def _register(self, peer: Peer, role: Role, payload):
        schema = RegisterDisplayRequest if role is Role.DISPLAY else RegisterControllerRequest
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise InvalidPayload("Registration payload must be an object")
        try:
            request = schema.model_validate(payload)
        except ValidationError as e:
            raise InvalidPayload(f"Invalid registration: {describe_validation_error(e)}")

        logger.info(f"{role.value.capitalize()} registration request from {peer.peer_id}: room_code={request.room_code}")
        try:
            if role is Role.DISPLAY:
                self.pairing.register_display(peer, request.room_code, request.device_name)
            else:
                self.pairing.register_controller(peer, request.room_code, request.device_name)
        except RelayError:
            raise
        except Exception as e:
            logger.error(f"{role.value.capitalize()} registration error for {peer.peer_id}: {e}", exc_info=True)
            raise RegistrationFailed(f"{role.value.capitalize()} registration failed", details=str(e))

        # Registering proves the peer is alive
        self.registry.mark_probe_acked(peer.peer_id, self.clock())

    # Forced removal, shared by the liveness supervisor and the HTTP layer

    def evict(self, peer: Peer, kind: str, message: str, reason: str) -> bool:
        """Notify ``peer``, disconnect it, then clear its slot."""
        with self.lock:
            if self.registry.is_connected(peer):
                send_event(self.transport, peer.peer_id, kind, {"message": message}, self.clock())
                self.transport.disconnect(peer.peer_id)
            return self.pairing.vacate(peer, reason)

    def close_room(self, code, reason: str = "closed") -> bool:
        with self.lock:
            room = self.rooms.get(code)
            if room is None:
                return False
            for role, peer in room.occupants():
                peer.room_code = None
                room.set_occupant(role, None)
                if self.registry.is_connected(peer):
                    send_event(self.transport, peer.peer_id, events.ROOM_CLEANUP, {"reason": reason}, self.clock())
                    self.transport.disconnect(peer.peer_id)
            self.rooms.delete(room.code)
        logger.info(f"Room {room.code} closed - Reason: {reason}")
        return True

    def send_api_message(self, code, target: Role, message: str) -> Peer:
        with self.lock:
            room = self.rooms.get(code)
            if room is None:
                raise MissingRoom(room_code=code)
            peer = room.occupant(target)
            if peer is None or not self.registry.is_connected(peer):
                raise CounterpartNotConnected(f"{target.value.capitalize()} not connected in this room", room_code=room.code)
            send_event(self.transport, peer.peer_id, events.API_MESSAGE, {
                "message": message,
                "from": "api",
            }, self.clock())
        logger.info(f"API message sent to {target.value} in room {room.code}")
        return peer

    def broadcast_shutdown(self) -> int:
        notified = 0
        with self.lock:
            for peer in self.registry.peers():
                send_event(self.transport, peer.peer_id, events.SERVER_SHUTDOWN, {
                    "message": "Server is shutting down for maintenance",
                }, self.clock())
                notified += 1
        logger.info(f"Notified {notified} connections about server shutdown")
        return notified

    # Read-only snapshot surface

    def snapshot(self) -> HubSnapshot:
        with self.lock:
            return HubSnapshot(
                taken_at=self.clock(),
                started_at=self.started_at,
                rooms=self.rooms.list_active(),
                counters=self.registry.counters(),
            )

    def room_info(self, code) -> Optional[RoomSummary]:
        with self.lock:
            room = self.rooms.get(code)
            return RoomSummary.from_room(room) if room else None

    def room_codes(self) -> List[str]:
        with self.lock:
            return self.rooms.codes()


websocket_transport = WebSocketTransport()
presentation_hub = PresentationHub(websocket_transport)
