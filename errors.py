class RelayError(Exception):
    """Base class for errors reported back to the peer that caused them.

    Every subclass carries a stable ``code`` that clients can switch on.
    """

    code = "RELAY_ERROR"
    default_message = "Request rejected"

    def __init__(self, message: str = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        payload.update(self.details)
        return payload


class InvalidRole(RelayError):
    code = "INVALID_ROLE"
    default_message = "Your device role does not permit this operation"


class MissingRoom(RelayError):
    code = "MISSING_ROOM"
    default_message = "Room not found. Make sure the display is connected and showing the correct room code."


class RoomHasNoDisplay(RelayError):
    code = "ROOM_HAS_NO_DISPLAY"
    default_message = "No display connected in this room. Please make sure the display is online."


class CounterpartNotConnected(RelayError):
    code = "COUNTERPART_NOT_CONNECTED"
    default_message = "The other device is not connected in this room"


class InvalidPayload(RelayError):
    code = "INVALID_PAYLOAD"
    default_message = "Invalid message payload"


class RegistrationFailed(RelayError):
    code = "REGISTRATION_FAILED"
    default_message = "Registration failed"
