import asyncio

import events
from backend import RoomState
from supervisor import LivenessSupervisor


class BrokenRoom:
    code = "BROKEN"

    def __getattr__(self, name):
        raise RuntimeError("corrupt room entry")


def test_probe_sweep_probes_every_occupied_slot(harness, hub, transport, clock, supervisor, paired):
    harness.display("display-2")
    transport.clear()

    assert supervisor.probe_sweep() == 3
    for peer_id in ("display-1", "controller-1", "display-2"):
        assert harness.last(peer_id, events.PROBE)["type"] == "health_check"
        assert hub.registry.lookup(peer_id).last_probe_sent == clock()


def test_probe_ack_refreshes_liveness(harness, hub, clock, paired):
    clock.advance(90)
    harness.send("display-1", events.PROBE_ACK, {})
    assert hub.registry.lookup("display-1").last_probe_ack == clock()


def test_live_peers_survive_eviction_sweep(hub, transport, clock, supervisor, paired):
    clock.advance(60)
    transport.clear()

    assert supervisor.eviction_sweep() == 0
    assert transport.log == []
    assert hub.rooms.get(paired).state is RoomState.PAIRED


def test_stale_peer_is_evicted_and_counterpart_notified(harness, hub, transport, clock, supervisor, paired):
    clock.advance(121)
    harness.send("display-1", events.PROBE_ACK, {})
    transport.clear()

    assert supervisor.eviction_sweep() == 1

    timeout_at = transport.index_of("send", "controller-1", events.CONNECTION_TIMEOUT)
    assert timeout_at < transport.index_of("disconnect", "controller-1")
    room = hub.rooms.get(paired)
    assert room.controller is None
    assert room.state is RoomState.DISPLAY_ONLY
    notice = harness.last("display-1", events.CONTROLLER_DISCONNECTED)
    assert notice["device_id"] == "controller-1"
    assert notice["reason"] == "connection_timeout"

    # The transport reporting the close afterwards changes nothing
    transport.clear()
    assert hub.on_disconnect("controller-1")
    assert transport.log == []


def test_room_disappears_when_both_peers_time_out(hub, transport, clock, supervisor, paired):
    clock.advance(121)

    assert supervisor.eviction_sweep() == 2
    assert set(transport.disconnected()) == {"display-1", "controller-1"}
    assert hub.rooms.get(paired) is None
    assert paired not in [room.code for room in hub.snapshot().rooms]


def test_disconnected_occupant_is_swept(hub, harness, supervisor, paired):
    # Simulate a handle that vanished from the registry without a disconnect event
    hub.registry.unregister("controller-1")

    assert supervisor.eviction_sweep() == 1
    assert hub.rooms.get(paired).controller is None
    assert harness.last("display-1", events.CONTROLLER_DISCONNECTED)["device_id"] == "controller-1"


def test_expiry_sweep_removes_old_empty_rooms(hub, clock, supervisor):
    hub.rooms.get_or_create("OLD234")
    clock.advance(1000)
    hub.rooms.get_or_create("NEW234")
    clock.advance(801)

    assert supervisor.expiry_sweep() == 1
    codes = [room.code for room in hub.snapshot().rooms]
    assert "OLD234" not in codes
    assert "NEW234" in codes


def test_expiry_sweep_keeps_old_rooms_with_connected_peers(clock, supervisor, paired):
    clock.advance(3600)
    assert supervisor.expiry_sweep() == 0
    assert paired in [room.code for room in supervisor.hub.snapshot().rooms]


def test_broken_room_does_not_stall_sweeps(hub, clock, supervisor, paired):
    hub.rooms._rooms["BROKEN"] = BrokenRoom()
    hub.rooms.get_or_create("OLD234")
    clock.advance(1801)

    assert supervisor.probe_sweep() == 2
    assert supervisor.eviction_sweep() == 2
    assert supervisor.expiry_sweep() == 1
    assert hub.rooms.get(paired) is None
    assert hub.rooms.get("OLD234") is None


def test_scheduled_sweeps_run_and_stop(hub, transport, paired):
    supervisor = LivenessSupervisor(
        hub,
        probe_interval=0.01,
        eviction_interval=0.01,
        expiry_interval=0.01,
        stats_interval=0.01,
    )

    async def scenario():
        supervisor.start()
        await asyncio.sleep(0.1)
        await supervisor.stop()

    asyncio.run(scenario())

    assert transport.messages("display-1", events.PROBE)
    assert hub.rooms.get(paired).state is RoomState.PAIRED
