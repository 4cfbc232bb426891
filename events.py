from datetime import datetime, timezone

# Inbound: registration and liveness
REGISTER_DISPLAY = "register_display"
REGISTER_CONTROLLER = "register_controller"
PROBE_ACK = "probe_ack"
PING = "ping"
CONNECTION_TEST = "connection_test"

# Relayed controller -> display
SLIDE_CHANGE = "slide_change"
DOCUMENT_SCROLL = "document_scroll"
PAGE_CHANGE = "page_change"
PRESENTATION_ACTION = "presentation_action"
LOAD_DOCUMENT = "load_document"

# Relayed in either direction
CUSTOM_EVENT = "custom_event"

# Outbound only
CONNECTED = "connected"
REGISTERED = "registered"
DISPLAY_CONNECTED = "display_connected"
CONTROLLER_CONNECTED = "controller_connected"
DISPLAY_DISCONNECTED = "display_disconnected"
CONTROLLER_DISCONNECTED = "controller_disconnected"
REPLACED = "replaced"
PROBE = "probe"
PONG = "pong"
ERROR = "error"
SLIDE_CHANGE_ACK = "slide_change_ack"
CONNECTION_TIMEOUT = "connection_timeout"
CONNECTION_TEST_RESPONSE = "connection_test_response"
ROOM_CLEANUP = "room_cleanup"
SERVER_SHUTDOWN = "server_shutdown"
API_MESSAGE = "api_message"

TYPED_RELAY_KINDS = frozenset({
    SLIDE_CHANGE,
    DOCUMENT_SCROLL,
    PAGE_CHANGE,
    PRESENTATION_ACTION,
    LOAD_DOCUMENT,
})


def format_timestamp(ts: float) -> str:
    """Render an epoch timestamp as the ISO string sent on the wire."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()
