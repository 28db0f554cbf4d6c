from __future__ import annotations

from pushworker.domain.payloads import DeviceToken
from pushworker.services.push.builder import build_message
from pushworker.services.push.classifier import classify


_ANDROID = DeviceToken(token="tok-android", platform="android")
_CHANNEL = "plan_invites_v6"


def _build(payload: dict, token: DeviceToken = _ANDROID) -> dict:
    return build_message(classify(payload, default_title="Plans"), token, android_channel_id=_CHANNEL)["message"]


def test_invitee_invite_has_no_notification_blocks() -> None:
    message = _build(
        {
            "type": "PLAN_INTERNAL_INVITE",
            "invite_id": "inv-1",
            "plan_id": "plan-1",
            "title": "Join Trip",
            "body": "Bob invited you",
            "action_token": "act-1",
        }
    )
    assert message["token"] == "tok-android"
    assert "notification" not in message
    assert message["android"] == {"priority": "HIGH"}
    assert message["apns"] == {"headers": {"apns-priority": "10"}, "payload": {"aps": {"content-available": 1}}}
    assert message["data"] == {
        "type": "PLAN_INTERNAL_INVITE",
        "invite_id": "inv-1",
        "plan_id": "plan-1",
        "title": "Join Trip",
        "body": "Bob invited you",
        "action": "",
        "action_token": "act-1",
        "internal_invite_mode": "INVITEE_INVITE",
    }


def test_owner_result_marks_invite_mode() -> None:
    message = _build({"type": "PLAN_INTERNAL_INVITE", "action": "decline", "invite_id": "inv-1"})
    assert message["data"]["internal_invite_mode"] == "OWNER_RESULT"
    assert message["data"]["action"] == "decline"
    assert "notification" not in message["android"]


def test_member_left_data_payload() -> None:
    message = _build(
        {
            "type": "PLAN_MEMBER_LEFT",
            "plan_id": "plan-7",
            "plan_title": "Trip",
            "left_user_id": "u-2",
            "left_nickname": "Ann",
        }
    )
    assert "notification" not in message
    assert "notification" not in message["android"]
    assert message["data"] == {
        "type": "PLAN_MEMBER_LEFT",
        "plan_id": "plan-7",
        "plan_title": "Trip",
        "left_user_id": "u-2",
        "left_nickname": "Ann",
        "title": "Ann left the plan",
        "body": "Ann left the plan “Trip”.",
    }


def test_generic_type_carries_os_notification() -> None:
    ios = DeviceToken(token="tok-ios", platform="ios")
    message = _build({"type": "PLAN_UPDATED", "title": "Dinner", "body": "Moved to 8pm", "plan_id": 5}, ios)
    assert message["notification"] == {"title": "Dinner", "body": "Moved to 8pm"}
    assert message["android"] == {
        "priority": "HIGH",
        "notification": {
            "title": "Dinner",
            "body": "Moved to 8pm",
            "channel_id": _CHANNEL,
            "sound": "default",
        },
    }
    assert message["apns"]["payload"]["aps"] == {
        "alert": {"title": "Dinner", "body": "Moved to 8pm"},
        "sound": "default",
    }
    assert message["data"] == {"type": "PLAN_UPDATED", "title": "Dinner", "body": "Moved to 8pm", "plan_id": "5"}


def test_missing_type_defaults_to_unknown_and_strings() -> None:
    message = _build({"body": None})
    assert message["data"] == {"type": "UNKNOWN", "title": "Plans", "body": "", "plan_id": ""}
    assert all(isinstance(value, str) for value in message["data"].values())
