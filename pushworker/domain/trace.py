from __future__ import annotations

from typing import TypedDict


class ClassificationTrace(TypedDict):
    internal_invite: bool
    invite_result_for_owner: bool
    invitee_interactive: bool
    member_left: bool
    include_notification: bool


class AttemptTrace(TypedDict):
    platform: str
    include_notification: bool
    ok: bool
    http_status: int | None
    error_short: str | None


class DeliveryTrace(TypedDict, total=False):
    at: str
    delivery_id: str
    user_id: str
    stage: str
    error: str
    classification: ClassificationTrace
    attempts: list[AttemptTrace]
