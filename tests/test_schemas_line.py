from datetime import datetime, timezone

from linechat.models import LineEventType, LineMessageType, LineSourceType
from linechat.schemas.line import WebhookRequest

PAYLOAD = {
    "destination": "Ubot",
    "events": [
        {
            "type": "message",
            "timestamp": 1700000000000,
            "source": {"type": "user", "userId": "U1"},
            "replyToken": "rt-1",
            "message": {"id": "m1", "type": "text", "text": "hello"},
        },
        {
            "type": "message",
            "source": {"type": "group", "groupId": "G1", "userId": "U2"},
            "replyToken": "rt-2",
            "message": {"id": "m2", "type": "sticker", "packageId": "1", "stickerId": "2"},
        },
        {
            "type": "message",
            "source": {"type": "user", "userId": "U3"},
            "replyToken": "rt-3",
            "message": {"id": "m3", "type": "video"},
        },
        {"type": "follow", "source": {"type": "user", "userId": "U4"}, "replyToken": "rt-4"},
        {"type": "unfollow", "source": {"type": "user", "userId": "U5"}, "replyToken": "rt-5"},
        {"type": "beacon", "source": {"type": "user", "userId": "U6"}},
    ],
}


def test_supported_events_are_converted_in_order():
    events = WebhookRequest.model_validate(PAYLOAD).to_domain_events()

    assert [e.type for e in events] == [
        LineEventType.MESSAGE,
        LineEventType.MESSAGE,
        LineEventType.FOLLOW,
        LineEventType.UNFOLLOW,
    ]


def test_text_message_event_fields():
    event = WebhookRequest.model_validate(PAYLOAD).to_domain_events()[0]

    assert event.source.type == LineSourceType.USER
    assert event.source.user_id == "U1"
    assert event.reply_token == "rt-1"
    assert event.message.type == LineMessageType.TEXT
    assert event.message.text == "hello"
    assert event.timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)


def test_sticker_message_keeps_ids():
    event = WebhookRequest.model_validate(PAYLOAD).to_domain_events()[1]

    assert event.source.type == LineSourceType.GROUP
    assert event.source.group_id == "G1"
    assert event.message.package_id == "1"
    assert event.message.sticker_id == "2"


def test_unfollow_drops_reply_token():
    events = WebhookRequest.model_validate(PAYLOAD).to_domain_events()

    assert events[2].reply_token == "rt-4"
    assert events[3].reply_token == ""


def test_empty_body_has_no_events():
    assert WebhookRequest.model_validate_json(b'{"events": []}').to_domain_events() == []
