import pytest

import events
from events import format_timestamp

TYPED_MESSAGES = [
    (events.SLIDE_CHANGE, {"slide_index": 3}),
    (events.DOCUMENT_SCROLL, {"scroll_offset": 120.5, "page_number": 2}),
    (events.PAGE_CHANGE, {"page_number": 4}),
    (events.PRESENTATION_ACTION, {"action": "next", "params": {"step": 1}}),
    (events.LOAD_DOCUMENT, {
        "document_type": "pdf",
        "document_url": "https://example.com/deck.pdf",
        "metadata": {"title": "Quarterly review"},
    }),
]


@pytest.mark.parametrize("kind, data", TYPED_MESSAGES)
def test_controller_message_reaches_display_once_with_server_stamp(harness, transport, clock, paired, kind, data):
    transport.clear()
    clock.advance(5)

    harness.send("controller-1", kind, dict(data, timestamp="1999-01-01T00:00:00+00:00"))

    delivered = transport.messages("display-1", kind)
    assert len(delivered) == 1
    message = delivered[0]
    for key, value in data.items():
        assert message[key] == value
    assert message["timestamp"] == format_timestamp(clock())
    assert message["from"] == "controller-1"
    assert message["from_role"] == "controller"
    assert message["room_code"] == paired
    assert transport.messages("controller-1", events.ERROR) == []


@pytest.mark.parametrize("kind, data", TYPED_MESSAGES)
def test_display_cannot_send_typed_messages(harness, transport, paired, kind, data):
    transport.clear()

    harness.send("display-1", kind, data)

    assert harness.error_code("display-1") == "INVALID_ROLE"
    assert harness.last("display-1", events.ERROR)["kind"] == kind
    assert kind not in transport.sent_kinds()


def test_slide_change_is_acknowledged_to_controller(harness, paired):
    harness.send("controller-1", events.SLIDE_CHANGE, {"slide_index": 7})
    assert harness.last("controller-1", events.SLIDE_CHANGE_ACK)["slide_index"] == 7


def test_document_scroll_defaults_page_number(harness, paired):
    harness.send("controller-1", events.DOCUMENT_SCROLL, {"scroll_offset": 10})
    message = harness.last("display-1", events.DOCUMENT_SCROLL)
    assert message["scroll_offset"] == 10
    assert message["page_number"] == 1


@pytest.mark.parametrize("kind, data", [
    (events.SLIDE_CHANGE, {"slide_index": "3"}),
    (events.SLIDE_CHANGE, {"slide_index": -1}),
    (events.SLIDE_CHANGE, {"slide_index": True}),
    (events.SLIDE_CHANGE, {}),
    (events.DOCUMENT_SCROLL, {"scroll_offset": "top"}),
    (events.DOCUMENT_SCROLL, {"scroll_offset": 1.0, "page_number": 0}),
    (events.PAGE_CHANGE, {"page_number": 0}),
    (events.PAGE_CHANGE, {"page_number": 2.5}),
    (events.PRESENTATION_ACTION, {"action": "rewind"}),
    (events.LOAD_DOCUMENT, {"document_type": "spreadsheet", "document_url": "https://example.com/a.xls"}),
    (events.LOAD_DOCUMENT, {"document_type": "pdf"}),
    (events.LOAD_DOCUMENT, {"document_type": "pdf", "document_url": ""}),
    (events.CUSTOM_EVENT, {"payload": {"x": 1}}),
])
def test_invalid_payloads_are_rejected(harness, transport, paired, kind, data):
    transport.clear()

    harness.send("controller-1", kind, data)

    assert harness.error_code("controller-1") == "INVALID_PAYLOAD"
    assert transport.messages("display-1") == []


def test_payload_must_be_an_object(harness, transport, paired):
    transport.clear()
    harness.send("controller-1", events.SLIDE_CHANGE, [1, 2, 3])
    assert harness.error_code("controller-1") == "INVALID_PAYLOAD"
    assert transport.messages("display-1") == []


def test_unknown_message_type_is_rejected(harness, paired):
    harness.send("controller-1", "teleport", {})
    error = harness.last("controller-1", events.ERROR)
    assert error["code"] == "INVALID_PAYLOAD"
    assert error["kind"] == "teleport"


def test_unregistered_peer_cannot_relay(harness, transport):
    harness.connect("stranger")
    harness.send("stranger", events.SLIDE_CHANGE, {"slide_index": 1})
    assert harness.error_code("stranger") == "INVALID_ROLE"

    harness.send("stranger", events.CUSTOM_EVENT, {"event_type": "hello"})
    assert harness.error_code("stranger") == "INVALID_ROLE"
    assert events.CUSTOM_EVENT not in transport.sent_kinds()


def test_custom_event_flows_both_ways(harness, transport, paired):
    transport.clear()

    harness.send("controller-1", events.CUSTOM_EVENT, {"event_type": "laser", "payload": {"x": 0.5, "y": 0.25}})
    to_display = harness.last("display-1", events.CUSTOM_EVENT)
    assert to_display["event_type"] == "laser"
    assert to_display["payload"] == {"x": 0.5, "y": 0.25}
    assert to_display["from_role"] == "controller"

    harness.send("display-1", events.CUSTOM_EVENT, {"event_type": "video_ended", "payload": None})
    to_controller = harness.last("controller-1", events.CUSTOM_EVENT)
    assert to_controller["event_type"] == "video_ended"
    assert to_controller["from"] == "display-1"
    assert to_controller["from_role"] == "display"

    assert transport.messages("display-1", events.ERROR) == []
    assert transport.messages("controller-1", events.ERROR) == []


def test_custom_event_without_counterpart_is_rejected(harness, transport):
    harness.display("display-1")
    transport.clear()

    harness.send("display-1", events.CUSTOM_EVENT, {"event_type": "hello"})

    assert harness.error_code("display-1") == "COUNTERPART_NOT_CONNECTED"
    assert events.CUSTOM_EVENT not in transport.sent_kinds()


def test_typed_message_after_display_left_is_rejected(harness, hub, transport, paired):
    hub.on_disconnect("display-1")
    transport.clear()

    harness.send("controller-1", events.SLIDE_CHANGE, {"slide_index": 1})

    assert harness.error_code("controller-1") == "COUNTERPART_NOT_CONNECTED"
    assert events.SLIDE_CHANGE not in transport.sent_kinds()


def test_rejection_leaves_room_state_untouched(harness, hub, paired):
    room = hub.rooms.get(paired)
    harness.send("display-1", events.PAGE_CHANGE, {"page_number": 2})
    assert hub.rooms.get(paired) is room
    assert room.display.peer_id == "display-1"
    assert room.controller.peer_id == "controller-1"
