from __future__ import annotations

from typing import Any

from pushworker.domain.payloads import (
    TYPE_PLAN_INTERNAL_INVITE,
    TYPE_PLAN_MEMBER_LEFT,
    TYPE_UNKNOWN,
    DeviceToken,
    InternalInvite,
    MemberLeft,
    as_text,
)
from pushworker.services.push.classifier import Classification


INVITE_MODE_OWNER_RESULT = "OWNER_RESULT"
INVITE_MODE_INVITEE_INVITE = "INVITEE_INVITE"
_APNS_HEADERS = {"apns-priority": "10"}


def build_data(classification: Classification) -> dict[str, str]:
    # FCM rejects non-string data values, so everything is coerced here.
    notification = classification.notification
    if isinstance(notification, InternalInvite):
        data = {
            "type": TYPE_PLAN_INTERNAL_INVITE,
            "invite_id": notification.invite_id,
            "plan_id": notification.plan_id,
            "title": classification.title,
            "body": classification.body,
            "action": notification.action,
            # Lets the client accept/decline from the notification without opening the app.
            "action_token": notification.action_token,
            "internal_invite_mode": (
                INVITE_MODE_OWNER_RESULT if classification.invite_result_for_owner else INVITE_MODE_INVITEE_INVITE
            ),
        }
    elif isinstance(notification, MemberLeft):
        data = {
            "type": TYPE_PLAN_MEMBER_LEFT,
            "plan_id": notification.plan_id,
            "plan_title": notification.plan_title,
            "left_user_id": notification.left_user_id,
            "left_nickname": notification.left_nickname,
            "title": classification.title,
            "body": classification.body,
        }
    else:
        data = {
            "type": notification.type or TYPE_UNKNOWN,
            "title": classification.title,
            "body": classification.body,
            "plan_id": notification.plan_id,
        }
    return {key: as_text(value) for key, value in data.items()}


def build_android_config(classification: Classification, *, channel_id: str) -> dict[str, Any]:
    if not classification.include_notification:
        # No notification block at all, otherwise Android renders its own banner.
        return {"priority": "HIGH"}
    return {
        "priority": "HIGH",
        "notification": {
            "title": classification.title,
            "body": classification.body,
            "channel_id": channel_id,
            "sound": "default",
        },
    }


def build_apns_config(classification: Classification) -> dict[str, Any]:
    if not classification.include_notification:
        return {"headers": dict(_APNS_HEADERS), "payload": {"aps": {"content-available": 1}}}
    return {
        "headers": dict(_APNS_HEADERS),
        "payload": {
            "aps": {
                "alert": {"title": classification.title, "body": classification.body},
                "sound": "default",
            }
        },
    }


def build_message(
    classification: Classification,
    device_token: DeviceToken,
    *,
    android_channel_id: str,
) -> dict[str, Any]:
    """Build the FCM HTTP v1 request body for one device token."""
    message: dict[str, Any] = {"token": device_token.token}
    if classification.include_notification:
        message["notification"] = {"title": classification.title, "body": classification.body}
    message["data"] = build_data(classification)
    message["android"] = build_android_config(classification, channel_id=android_channel_id)
    message["apns"] = build_apns_config(classification)
    return {"message": message}
