"""LINE webhook payload schemas and their conversion to domain events."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from linechat.core.logging import setup_logger
from linechat.models.line import (
    LineEventType,
    LineMessage,
    LineMessageType,
    LineSource,
    LineSourceType,
    LineWebhookEvent,
)

logger = setup_logger(__name__)

SUPPORTED_MESSAGE_TYPES = {
    LineMessageType.TEXT.value,
    LineMessageType.STICKER.value,
    LineMessageType.IMAGE.value,
}


class WebhookSource(BaseModel):
    """Event source as sent by LINE."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(default="user", description="user, group or room")
    user_id: Optional[str] = Field(default=None, alias="userId")
    group_id: Optional[str] = Field(default=None, alias="groupId")
    room_id: Optional[str] = Field(default=None, alias="roomId")


class WebhookMessage(BaseModel):
    """Message content of a message event."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(default="", description="Message ID")
    type: str = Field(..., description="Message type, e.g. text or sticker")
    text: Optional[str] = Field(default=None, description="Text of a text message")
    package_id: Optional[str] = Field(default=None, alias="packageId")
    sticker_id: Optional[str] = Field(default=None, alias="stickerId")


class WebhookEvent(BaseModel):
    """One webhook event."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(..., description="Event type")
    timestamp: Optional[int] = Field(
        default=None, description="Event time in milliseconds since the epoch"
    )
    source: Optional[WebhookSource] = None
    reply_token: Optional[str] = Field(default=None, alias="replyToken")
    message: Optional[WebhookMessage] = None


class WebhookRequest(BaseModel):
    """Body of a LINE webhook call."""

    model_config = ConfigDict(extra="ignore")

    destination: Optional[str] = Field(
        default=None, description="Bot user ID receiving the events"
    )
    events: List[WebhookEvent] = Field(default_factory=list)

    def to_domain_events(self) -> List[LineWebhookEvent]:
        """Convert supported events, dropping the rest with a warning."""
        domain_events = []
        for event in self.events:
            domain_event = convert_event(event)
            if domain_event is not None:
                domain_events.append(domain_event)
        return domain_events


def convert_event(event: WebhookEvent) -> Optional[LineWebhookEvent]:
    """Convert one webhook event; returns None for unsupported events."""
    if event.type == LineEventType.MESSAGE.value:
        message = _convert_message(event.message)
        if message is None:
            return None
        return _build_event(event, LineEventType.MESSAGE, message=message)

    if event.type == LineEventType.FOLLOW.value:
        return _build_event(event, LineEventType.FOLLOW)

    if event.type == LineEventType.UNFOLLOW.value:
        # Unfollow events carry no reply token
        return _build_event(event, LineEventType.UNFOLLOW, with_reply_token=False)

    logger.warning(f"Unsupported event type: {event.type}")
    return None


def _build_event(
    event: WebhookEvent,
    event_type: LineEventType,
    message: Optional[LineMessage] = None,
    with_reply_token: bool = True,
) -> LineWebhookEvent:
    timestamp = None
    if event.timestamp is not None:
        timestamp = datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc)

    return LineWebhookEvent(
        type=event_type,
        source=_convert_source(event.source),
        reply_token=(event.reply_token or "") if with_reply_token else "",
        timestamp=timestamp,
        message=message,
    )


def _convert_source(source: Optional[WebhookSource]) -> LineSource:
    if source is None:
        return LineSource()

    try:
        source_type = LineSourceType(source.type)
    except ValueError:
        logger.warning(f"Unsupported source type: {source.type}")
        return LineSource()

    return LineSource(
        type=source_type,
        user_id=source.user_id or "",
        group_id=source.group_id,
        room_id=source.room_id,
    )


def _convert_message(message: Optional[WebhookMessage]) -> Optional[LineMessage]:
    if message is None or message.type not in SUPPORTED_MESSAGE_TYPES:
        logger.warning(
            f"Unsupported message type: {message.type if message else None}"
        )
        return None

    return LineMessage(
        id=message.id,
        type=LineMessageType(message.type),
        text=message.text or "",
        package_id=message.package_id,
        sticker_id=message.sticker_id,
    )
