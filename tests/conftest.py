import pytest

import events
from hub import PresentationHub
from supervisor import LivenessSupervisor


class RecordingTransport:
    """Transport double that records every send and forced disconnect in order."""

    def __init__(self):
        self.log = []

    def send(self, peer_id, kind, payload):
        self.log.append(("send", peer_id, kind, payload))

    def disconnect(self, peer_id):
        self.log.append(("disconnect", peer_id, None, None))

    def messages(self, peer_id, kind=None):
        return [
            payload for action, pid, k, payload in self.log
            if action == "send" and pid == peer_id and (kind is None or k == kind)
        ]

    def sent_kinds(self):
        return [k for action, _, k, _ in self.log if action == "send"]

    def disconnected(self):
        return [pid for action, pid, _, _ in self.log if action == "disconnect"]

    def index_of(self, action, peer_id, kind=None):
        for i, (a, pid, k, _) in enumerate(self.log):
            if a == action and pid == peer_id and (kind is None or k == kind):
                return i
        raise AssertionError(f"no {action} {kind or ''} for {peer_id}")

    def clear(self):
        self.log.clear()


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class Harness:
    """Drives a hub the way the WebSocket endpoint does."""

    def __init__(self, hub, transport):
        self.hub = hub
        self.transport = transport

    def connect(self, peer_id):
        return self.hub.on_connect(peer_id, "127.0.0.1")

    def send(self, peer_id, kind, data=None):
        self.hub.on_message(peer_id, kind, data)

    def display(self, peer_id, code=None, device_name=None):
        if peer_id not in self.hub.registry:
            self.connect(peer_id)
        data = {}
        if code is not None:
            data["room_code"] = code
        if device_name is not None:
            data["device_name"] = device_name
        self.send(peer_id, events.REGISTER_DISPLAY, data)
        return self.last(peer_id, events.REGISTERED)["room_code"]

    def controller(self, peer_id, code, device_name=None):
        if peer_id not in self.hub.registry:
            self.connect(peer_id)
        data = {"room_code": code}
        if device_name is not None:
            data["device_name"] = device_name
        self.send(peer_id, events.REGISTER_CONTROLLER, data)

    def last(self, peer_id, kind=None):
        messages = self.transport.messages(peer_id, kind)
        assert messages, f"{peer_id} received no {kind or 'messages'}"
        return messages[-1]

    def error_code(self, peer_id):
        return self.last(peer_id, events.ERROR)["code"]


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hub(transport, clock):
    return PresentationHub(transport, clock=clock, peer_timeout=120, server_version="test")


@pytest.fixture
def harness(hub, transport):
    return Harness(hub, transport)


@pytest.fixture
def supervisor(hub):
    return LivenessSupervisor(hub, room_max_age=1800)


@pytest.fixture
def paired(harness):
    """A room with display-1 and controller-1, returning its code."""
    code = harness.display("display-1", device_name="Lobby TV")
    harness.controller("controller-1", code, device_name="Pixel")
    return code
