"""LINE domain entities, independent of the webhook wire format."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class LineEventType(str, Enum):
    """Type of webhook event from LINE."""

    MESSAGE = "message"
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"
    JOIN = "join"
    LEAVE = "leave"
    POSTBACK = "postback"


class LineMessageType(str, Enum):
    """Type of a LINE message."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"
    LOCATION = "location"
    STICKER = "sticker"


class LineSourceType(str, Enum):
    """Where an event originated."""

    USER = "user"
    GROUP = "group"
    ROOM = "room"


class LineSource(BaseModel):
    type: LineSourceType = LineSourceType.USER
    user_id: str = ""
    group_id: Optional[str] = None
    room_id: Optional[str] = None


class LineMessage(BaseModel):
    id: str = ""
    type: LineMessageType
    text: str = ""
    package_id: Optional[str] = None
    sticker_id: Optional[str] = None


class LineWebhookEvent(BaseModel):
    """A normalized inbound event handed to the chatbot service."""

    type: LineEventType
    source: LineSource = Field(default_factory=LineSource)
    reply_token: str = ""
    timestamp: Optional[datetime] = None
    message: Optional[LineMessage] = None


class LineOutgoingMessage(BaseModel):
    """A message sent back to LINE (text or sticker)."""

    type: LineMessageType = LineMessageType.TEXT
    text: str = ""
    package_id: Optional[str] = None
    sticker_id: Optional[str] = None

    @classmethod
    def text_message(cls, text: str) -> "LineOutgoingMessage":
        return cls(type=LineMessageType.TEXT, text=text)

    def to_api(self) -> dict:
        """Serialize to the Messaging API message object."""
        if self.type == LineMessageType.TEXT:
            return {"type": "text", "text": self.text}
        if self.type == LineMessageType.STICKER:
            return {
                "type": "sticker",
                "packageId": self.package_id,
                "stickerId": self.sticker_id,
            }
        raise ValueError(f"unsupported message type: {self.type.value}")
