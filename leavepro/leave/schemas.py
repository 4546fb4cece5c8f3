"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations

Business validation of a new application (date order, reason length) is
done by the state machine so that service callers and HTTP callers get
the same ``ValidationError``.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leavepro.common.constants import LeaveStatus, UserRole
from leavepro.common.pagination import PaginationMeta
from leavepro.notifications.intents import NotificationIntent


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    email: str
    role: UserRole


class LeaveTypeBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    max_per_year: int = Field(..., description="Days granted per year (>= 0)")


class LeaveTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    max_per_year: Optional[int] = None


class LeaveTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    max_per_year: int


class ClampedBalance(BaseModel):
    """A holder whose ``used`` exceeded the new cap and was truncated."""

    employee_id: uuid.UUID
    previous_used: int
    new_used: int


class EntitlementAdjustment(BaseModel):
    """Outcome of re-basing every balance of a leave type on a new cap."""

    leave_type_id: uuid.UUID
    old_max: int
    new_max: int
    balances_updated: int = 0
    truncated: list[ClampedBalance] = Field(default_factory=list)


class LeaveTypeUpdateOut(BaseModel):
    leave_type: LeaveTypeOut
    adjustment: Optional[EntitlementAdjustment] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    total_assigned: int
    used: int
    remaining: int

    leave_type: Optional[LeaveTypeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Application — Create / Review
# ═════════════════════════════════════════════════════════════════════


class LeaveApplicationCreate(BaseModel):
    """Payload for submitting a leave application."""

    leave_type_id: uuid.UUID
    start_date: Optional[date] = Field(None, description="First day of leave (inclusive)")
    end_date: Optional[date] = Field(None, description="Last day of leave (inclusive)")
    reason: str = Field("", max_length=2000)


class ReviewRequest(BaseModel):
    """Body for approve / reject."""

    comment: Optional[str] = Field(None, max_length=1000)


# ═════════════════════════════════════════════════════════════════════
# Leave Application — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    total_days: int
    reason: str
    status: LeaveStatus
    reviewer_comment: Optional[str] = None
    reviewed_by: Optional[uuid.UUID] = None
    applied_on: datetime
    action_date: Optional[datetime] = None
    version: int

    employee: Optional[EmployeeBrief] = None
    leave_type: Optional[LeaveTypeBrief] = None


class LeaveApplicationListResponse(BaseModel):
    data: list[LeaveApplicationOut]
    meta: PaginationMeta


class TransitionResult(BaseModel):
    """What a workflow operation changed and who must be told."""

    application: LeaveApplicationOut
    notifications: list[NotificationIntent] = Field(default_factory=list)


class ConflictCheckOut(BaseModel):
    has_conflict: bool
    conflicting_ids: list[uuid.UUID] = Field(default_factory=list)
