from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from pushworker.domain.payloads import (
    InternalInvite,
    MemberLeft,
    NotificationPayload,
    parse_payload,
)
from pushworker.domain.trace import ClassificationTrace


_OWNER_RESULT_ACTIONS = {"ACCEPT", "DECLINE"}


@dataclass(frozen=True)
class Classification:
    notification: NotificationPayload
    internal_invite: bool
    invite_result_for_owner: bool
    invitee_interactive: bool
    member_left: bool
    include_notification: bool
    title: str
    body: str

    def as_trace(self) -> ClassificationTrace:
        return {
            "internal_invite": self.internal_invite,
            "invite_result_for_owner": self.invite_result_for_owner,
            "invitee_interactive": self.invitee_interactive,
            "member_left": self.member_left,
            "include_notification": self.include_notification,
        }


def is_invite_result_action(action: Any) -> bool:
    return str(action or "").strip().upper() in _OWNER_RESULT_ACTIONS


def member_left_display(notification: MemberLeft) -> tuple[str, str]:
    nickname = notification.left_nickname.strip()
    plan_title = notification.plan_title.strip()
    title = f"{nickname} left the plan" if nickname else notification.title
    if nickname and plan_title:
        body = f"{nickname} left the plan “{plan_title}”."
    elif nickname:
        body = f"{nickname} left the plan."
    elif plan_title:
        body = f"A member left the plan “{plan_title}”."
    else:
        body = notification.body
    return title, body


def classify(payload: Mapping[str, Any] | None, *, default_title: str = "") -> Classification:
    """Decide the wire shape for one delivery payload.

    Internal invites and member-left notices are rendered on the device from
    the data payload alone, so they never carry an OS notification block.
    Every other type does. Pure: the same payload always yields the same result.
    """
    notification = parse_payload(payload)
    internal_invite = isinstance(notification, InternalInvite)
    member_left = isinstance(notification, MemberLeft)
    # Only an internal invite can be an owner result; other types may reuse "action".
    invite_result_for_owner = internal_invite and is_invite_result_action(notification.action)

    if member_left:
        title, body = member_left_display(notification)
    else:
        title, body = notification.title, notification.body

    return Classification(
        notification=notification,
        internal_invite=internal_invite,
        invite_result_for_owner=invite_result_for_owner,
        invitee_interactive=internal_invite and not invite_result_for_owner,
        member_left=member_left,
        include_notification=not (internal_invite or member_left),
        title=title or default_title,
        body=body,
    )
