from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union


TYPE_PLAN_INTERNAL_INVITE = "PLAN_INTERNAL_INVITE"
TYPE_PLAN_MEMBER_LEFT = "PLAN_MEMBER_LEFT"
TYPE_UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Delivery:
    # Store-boundary projection of one pending notification_deliveries row.
    id: str
    user_id: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeviceToken:
    token: str
    platform: str


@dataclass(frozen=True)
class InternalInvite:
    invite_id: str
    plan_id: str
    title: str
    body: str
    action: str
    action_token: str


@dataclass(frozen=True)
class MemberLeft:
    plan_id: str
    plan_title: str
    left_user_id: str
    left_nickname: str
    title: str
    body: str


@dataclass(frozen=True)
class GenericNotification:
    type: str
    title: str
    body: str
    plan_id: str


@dataclass(frozen=True)
class UnknownNotification:
    # Payloads without a usable type tag; still delivered as an OS notification.
    title: str
    body: str
    plan_id: str
    type: str = TYPE_UNKNOWN


NotificationPayload = Union[InternalInvite, MemberLeft, GenericNotification, UnknownNotification]


def as_text(value: Any) -> str:
    # The gateway data map only accepts strings, so null/absent collapse to "".
    if value is None:
        return ""
    return str(value)


def parse_payload(payload: Mapping[str, Any] | None) -> NotificationPayload:
    """Project an untyped delivery payload into its notification variant.

    Total over any input: anything that is not a mapping, or carries no type
    tag, becomes ``UnknownNotification``.
    """
    if not isinstance(payload, Mapping):
        payload = {}

    def text(key: str) -> str:
        return as_text(payload.get(key))

    type_tag = text("type").strip()
    if type_tag == TYPE_PLAN_INTERNAL_INVITE:
        return InternalInvite(
            invite_id=text("invite_id"),
            plan_id=text("plan_id"),
            title=text("title"),
            body=text("body"),
            action=text("action"),
            action_token=text("action_token"),
        )
    if type_tag == TYPE_PLAN_MEMBER_LEFT:
        return MemberLeft(
            plan_id=text("plan_id"),
            plan_title=text("plan_title"),
            left_user_id=text("left_user_id"),
            left_nickname=text("left_nickname"),
            title=text("title"),
            body=text("body"),
        )
    if type_tag:
        return GenericNotification(
            type=type_tag,
            title=text("title"),
            body=text("body"),
            plan_id=text("plan_id"),
        )
    return UnknownNotification(title=text("title"), body=text("body"), plan_id=text("plan_id"))
