"""Notification intents emitted by the leave workflow.

An intent is a value describing who must be told what; it carries no
transport. ``NotificationService.record`` persists intents as in-app rows.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict

from leavepro.common.constants import DATE_FORMAT, NotificationKind

_TITLES: dict[NotificationKind, str] = {
    NotificationKind.applied: "New Leave Application",
    NotificationKind.approved: "Leave Application Approved",
    NotificationKind.rejected: "Leave Application Rejected",
}


class NotificationIntent(BaseModel):
    model_config = ConfigDict(frozen=True)

    recipient_id: uuid.UUID
    kind: NotificationKind
    application_id: uuid.UUID
    applicant_id: uuid.UUID
    applicant_name: str
    leave_type_name: str
    start_date: date
    end_date: date
    total_days: int
    comment: Optional[str] = None
    # Applied: the applicant is a manager, so the request goes to admins.
    applicant_is_manager: bool = False
    department_name: Optional[str] = None
    # Approved / rejected: the decision was taken by an admin.
    decided_by_admin: bool = False

    @property
    def title(self) -> str:
        return _TITLES[self.kind]

    @property
    def message(self) -> str:
        start = self.start_date.strftime(DATE_FORMAT)
        end = self.end_date.strftime(DATE_FORMAT)

        if self.kind is NotificationKind.applied:
            who = self.applicant_name
            if self.applicant_is_manager:
                who = f"{who} (Manager)"
            text = (
                f"{who} has applied for {self.total_days} day(s) of "
                f"{self.leave_type_name} from {start} to {end}."
            )
            if self.applicant_is_manager:
                text += f" Department: {self.department_name or 'N/A'}"
            return text

        decider = "Admin" if self.decided_by_admin else "your manager"
        text = (
            f"Your {self.leave_type_name} request from {start} to {end} "
            f"has been {self.kind.value.upper()} by {decider}."
        )
        if self.comment:
            text += f" Comments: {self.comment}"
        return text
