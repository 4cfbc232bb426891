from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field


class PresentationActionKind(str, Enum):
    PLAY = "play"
    PAUSE = "pause"
    STOP = "stop"
    NEXT = "next"
    PREVIOUS = "previous"
    FULLSCREEN = "fullscreen"
    EXIT_FULLSCREEN = "exit_fullscreen"


class DocumentType(str, Enum):
    PDF = "pdf"
    SLIDESHOW = "slideshow"
    IMAGE = "image"
    VIDEO = "video"


class RegisterDisplayRequest(BaseModel):
    room_code: Optional[Union[str, int]] = None
    device_name: Optional[str] = Field(None, max_length=64)


class RegisterControllerRequest(BaseModel):
    room_code: Optional[Union[str, int]] = None
    device_name: Optional[str] = Field(None, max_length=64)


class RelayPayload(BaseModel):
    """Base for payloads forwarded to the counterpart.

    Unknown fields, including any client ``timestamp``, are dropped.
    """

    def to_relay(self) -> dict:
        return self.model_dump(mode="json")


class SlideChange(RelayPayload):
    slide_index: int = Field(..., ge=0, strict=True)


class DocumentScroll(RelayPayload):
    scroll_offset: float = Field(..., strict=True, allow_inf_nan=False)
    page_number: Optional[int] = Field(None, ge=1, strict=True)

    def to_relay(self) -> dict:
        data = super().to_relay()
        if data["page_number"] is None:
            data["page_number"] = 1
        return data


class PageChange(RelayPayload):
    page_number: int = Field(..., ge=1, strict=True)


class PresentationAction(RelayPayload):
    action: PresentationActionKind
    params: Dict[str, Any] = Field(default_factory=dict)


class LoadDocument(RelayPayload):
    document_type: DocumentType
    document_url: str = Field(..., min_length=1, strict=True)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CustomEvent(RelayPayload):
    event_type: str = Field(..., min_length=1, max_length=128, strict=True)
    payload: Any = None
