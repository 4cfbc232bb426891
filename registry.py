from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from logging_config import get_logger

logger = get_logger(__name__)


class Role(str, Enum):
    DISPLAY = "display"
    CONTROLLER = "controller"

    @property
    def counterpart(self) -> "Role":
        return Role.CONTROLLER if self is Role.DISPLAY else Role.DISPLAY


DEFAULT_DEVICE_NAMES = {
    Role.DISPLAY: "Display",
    Role.CONTROLLER: "Controller",
}


@dataclass
class Peer:
    """A connected endpoint, owned by the registry for its connection lifetime."""

    peer_id: str
    connected_at: float
    address: Optional[str] = None
    role: Optional[Role] = None
    room_code: Optional[str] = None
    device_name: Optional[str] = None
    last_probe_sent: Optional[float] = None
    last_probe_ack: Optional[float] = None

    def __post_init__(self):
        # A peer that never answers a probe is measured from its connect time
        if self.last_probe_ack is None:
            self.last_probe_ack = self.connected_at

    @property
    def label(self) -> str:
        if self.device_name:
            return self.device_name
        if self.role is not None:
            return DEFAULT_DEVICE_NAMES[self.role]
        return f"Peer_{self.peer_id[:8]}"

    def ack_age(self, now: float) -> float:
        return now - self.last_probe_ack


@dataclass
class ConnectionCounters:
    total: int = 0
    current: int = 0
    displays: int = 0
    controllers: int = 0
    unregistered: int = 0


class ConnectionRegistry:
    """Live peer handles keyed by connection id.

    Not synchronised on its own; the hub serialises every call.
    """

    def __init__(self):
        self._peers: Dict[str, Peer] = {}
        self._total_connections = 0

    def register(self, peer: Peer) -> Peer:
        if peer.peer_id not in self._peers:
            self._total_connections += 1
        self._peers[peer.peer_id] = peer
        logger.debug(f"Registered connection {peer.peer_id} (current: {len(self._peers)})")
        return peer

    def unregister(self, peer_id: str) -> Optional[Peer]:
        peer = self._peers.pop(peer_id, None)
        if peer:
            logger.debug(f"Unregistered connection {peer_id} (current: {len(self._peers)})")
        return peer

    def lookup(self, peer_id: str) -> Optional[Peer]:
        return self._peers.get(peer_id)

    def is_connected(self, peer: Optional[Peer]) -> bool:
        return peer is not None and self._peers.get(peer.peer_id) is peer

    def mark_probe_sent(self, peer_id: str, now: float) -> bool:
        peer = self._peers.get(peer_id)
        if not peer:
            return False
        peer.last_probe_sent = now
        return True

    def mark_probe_acked(self, peer_id: str, now: float) -> bool:
        peer = self._peers.get(peer_id)
        if not peer:
            return False
        peer.last_probe_ack = now
        return True

    def peers(self) -> List[Peer]:
        return list(self._peers.values())

    def counters(self) -> ConnectionCounters:
        counters = ConnectionCounters(total=self._total_connections, current=len(self._peers))
        for peer in self._peers.values():
            if peer.room_code is None:
                counters.unregistered += 1
            elif peer.role is Role.DISPLAY:
                counters.displays += 1
            elif peer.role is Role.CONTROLLER:
                counters.controllers += 1
        return counters

    def __len__(self):
        return len(self._peers)

    def __contains__(self, peer_id: str):
        return peer_id in self._peers
