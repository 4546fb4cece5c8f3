"""Core HR Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create  → request bodies (write)
  - *Out     → response bodies (read)
"""


import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from leavepro.common.constants import UserRole


# ═════════════════════════════════════════════════════════════════════
# Department
# ═════════════════════════════════════════════════════════════════════


class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)


class DepartmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class EmployeeCreate(BaseModel):
    """Payload for creating an employee account.

    Role rules: an admin has neither department nor manager, a manager has
    a department and no manager, an employee has both.
    """

    full_name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    role: UserRole = UserRole.employee
    department_id: Optional[uuid.UUID] = None
    manager_id: Optional[uuid.UUID] = None
    date_of_joining: Optional[date] = None


class EmployeeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    email: str
    role: UserRole
    department_id: Optional[uuid.UUID] = None
    manager_id: Optional[uuid.UUID] = None
    is_active: bool
    date_of_joining: date


class EmployeeDeletionOut(BaseModel):
    """What went with a deleted employee."""

    employee_id: uuid.UUID
    balances_deleted: int
    applications_deleted: int
    notifications_deleted: int
    reports_detached: int
    # Reports left without a manager and their pending requests, which
    # nobody can review until the reports are reassigned.
    detached_report_ids: list[uuid.UUID] = Field(default_factory=list)
    unreviewed_application_ids: list[uuid.UUID] = Field(default_factory=list)
