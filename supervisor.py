import asyncio
from typing import Callable, Dict, Optional

import events
from backend import SlotState
from constants import (
    EVICTION_INTERVAL_SECONDS,
    EXPIRY_INTERVAL_SECONDS,
    PROBE_INTERVAL_SECONDS,
    ROOM_MAX_AGE_SECONDS,
    STATS_INTERVAL_SECONDS,
)
from hub import PresentationHub
from logging_config import get_logger
from registry import Role
from transport import send_event

logger = get_logger(__name__)


class LivenessSupervisor:
    """Periodic sweeps over the room table.

    Each sweep reads the clock once, takes a fresh list of room codes and
    handles every room in its own critical section, so a broken room is
    logged and skipped instead of stalling the rest.
    """

    def __init__(
        self,
        hub: PresentationHub,
        probe_interval: float = PROBE_INTERVAL_SECONDS,
        eviction_interval: float = EVICTION_INTERVAL_SECONDS,
        expiry_interval: float = EXPIRY_INTERVAL_SECONDS,
        room_max_age: float = ROOM_MAX_AGE_SECONDS,
        stats_interval: float = STATS_INTERVAL_SECONDS,
    ):
        self.hub = hub
        self.probe_interval = probe_interval
        self.eviction_interval = eviction_interval
        self.expiry_interval = expiry_interval
        self.room_max_age = room_max_age
        self.stats_interval = stats_interval
        self._tasks: Dict[str, asyncio.Task] = {}

    def probe_sweep(self) -> int:
        now = self.hub.clock()
        sent = 0
        for code in self.hub.room_codes():
            try:
                with self.hub.lock:
                    room = self.hub.rooms.get(code)
                    if room is None:
                        continue
                    for role, peer in room.occupants():
                        if not self.hub.registry.is_connected(peer):
                            continue
                        send_event(self.hub.transport, peer.peer_id, events.PROBE, {"type": "health_check"}, now)
                        self.hub.registry.mark_probe_sent(peer.peer_id, now)
                        sent += 1
            except Exception as e:
                logger.error(f"Probe sweep failed for room {code}: {e}", exc_info=True)
        logger.debug(f"Liveness probe sent to {sent} connections")
        return sent

    def eviction_sweep(self) -> int:
        now = self.hub.clock()
        evicted = 0
        for code in self.hub.room_codes():
            try:
                with self.hub.lock:
                    room = self.hub.rooms.get(code)
                    if room is None:
                        continue
                    for role in Role:
                        state = room.slot_state(role, now, self.hub.peer_timeout, self.hub.registry.is_connected)
                        if state is SlotState.EMPTY or state is SlotState.LIVE:
                            continue
                        peer = room.occupant(role)
                        logger.info(f"{role.value.capitalize()} {peer.peer_id} in room {code} is unhealthy, removing")
                        self.hub.evict(peer, events.CONNECTION_TIMEOUT, "Connection timed out", reason="connection_timeout")
                        evicted += 1
            except Exception as e:
                logger.error(f"Eviction sweep failed for room {code}: {e}", exc_info=True)
        if evicted:
            logger.info(f"Evicted {evicted} unhealthy connections")
        return evicted

    def expiry_sweep(self) -> int:
        now = self.hub.clock()
        expired = 0
        for code in self.hub.room_codes():
            try:
                with self.hub.lock:
                    room = self.hub.rooms.get(code)
                    if room is None or room.age(now) <= self.room_max_age:
                        continue
                    if any(self.hub.registry.is_connected(peer) for _, peer in room.occupants()):
                        continue
                    for role, peer in room.occupants():
                        peer.room_code = None
                        room.set_occupant(role, None)
                    if self.hub.rooms.delete(code):
                        expired += 1
            except Exception as e:
                logger.error(f"Expiry sweep failed for room {code}: {e}", exc_info=True)
        if expired:
            logger.info(f"Cleaned up {expired} expired rooms")
        return expired

    def log_statistics(self):
        snapshot = self.hub.snapshot()
        counters = snapshot.counters
        logger.info(
            f"Server Statistics - Connections: {counters.current}, Active Rooms: {snapshot.room_count}, "
            f"Displays: {counters.displays}, Controllers: {counters.controllers}"
        )

    def start(self):
        schedule = {
            "probe": (self.probe_interval, self.probe_sweep),
            "eviction": (self.eviction_interval, self.eviction_sweep),
            "expiry": (self.expiry_interval, self.expiry_sweep),
            "statistics": (self.stats_interval, self.log_statistics),
        }
        for name, (interval, sweep) in schedule.items():
            if name in self._tasks and not self._tasks[name].done():
                continue
            self._tasks[name] = asyncio.create_task(self._run_every(name, interval, sweep))
        logger.info(
            f"Liveness supervisor started (probe every {self.probe_interval}s, "
            f"eviction every {self.eviction_interval}s, expiry every {self.expiry_interval}s)"
        )

    async def stop(self):
        for name, task in list(self._tasks.items()):
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            del self._tasks[name]
        logger.info("Liveness supervisor stopped")

    async def _run_every(self, name: str, interval: float, sweep: Callable[[], Optional[int]]):
        while True:
            await asyncio.sleep(interval)
            try:
                sweep()
            except Exception as e:
                logger.error(f"{name} sweep failed: {e}", exc_info=True)
