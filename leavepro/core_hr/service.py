"""Core HR service layer — organisation invariants and balance provisioning.

All methods are async and expect an ``AsyncSession`` injected by the
router (or a test). Cross-cutting concerns used here:
  - ``create_audit_entry`` from leavepro.common.audit
  - ``BalanceLedger`` from leavepro.leave.ledger for provisioning
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leavepro.common.audit import create_audit_entry
from leavepro.common.constants import LeaveStatus, UserRole
from leavepro.common.exceptions import ConflictError, NotFoundError, ValidationError
from leavepro.common.transaction import unit_of_work
from leavepro.core_hr.models import Department, Employee
from leavepro.core_hr.schemas import (
    DepartmentCreate,
    EmployeeCreate,
    EmployeeDeletionOut,
)
from leavepro.leave.ledger import BalanceLedger
from leavepro.leave.models import LeaveApplication, LeaveBalance
from leavepro.notifications.models import Notification

logger = logging.getLogger(__name__)


class EmployeeService:
    """Async employee and department operations."""

    # ── Invariants ──────────────────────────────────────────────────

    @staticmethod
    async def _validate_placement(db: AsyncSession, data: EmployeeCreate) -> None:
        """Enforce the role / department / manager rules for a new account."""
        errors: dict[str, list[str]] = {}

        if data.role == UserRole.admin:
            if data.department_id is not None:
                errors["department_id"] = ["Admins do not belong to a department."]
            if data.manager_id is not None:
                errors["manager_id"] = ["Admins do not report to a manager."]
        else:
            if data.department_id is None:
                errors["department_id"] = ["A department is required."]
            elif await db.get(Department, data.department_id) is None:
                errors["department_id"] = ["Unknown department."]

            if data.role == UserRole.manager and data.manager_id is not None:
                errors["manager_id"] = ["Managers do not report to a manager."]

            if data.role == UserRole.employee:
                manager = (
                    await db.get(Employee, data.manager_id)
                    if data.manager_id is not None
                    else None
                )
                if data.manager_id is None:
                    errors["manager_id"] = ["A manager is required."]
                elif (
                    manager is None
                    or not manager.is_active
                    or manager.role != UserRole.manager
                ):
                    errors["manager_id"] = ["Manager must be an active manager."]
                elif manager.department_id != data.department_id:
                    errors["manager_id"] = [
                        "Manager must belong to the same department."
                    ]

        if errors:
            raise ValidationError(errors)

    # ── Employees ───────────────────────────────────────────────────

    @staticmethod
    async def get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return employee

    @staticmethod
    async def create_employee(
        db: AsyncSession,
        data: EmployeeCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        """Create an account and provision a balance for every leave type."""
        email = data.email.strip().lower()
        async with unit_of_work(db, "Employee creation"):
            taken = await db.execute(
                select(Employee.id).where(func.lower(Employee.email) == email)
            )
            if taken.first() is not None:
                raise ConflictError.duplicate("email", email)

            await EmployeeService._validate_placement(db, data)

            fields = data.model_dump(exclude={"email", "date_of_joining"})
            employee = Employee(**fields, email=email)
            if data.date_of_joining is not None:
                employee.date_of_joining = data.date_of_joining
            db.add(employee)
            await db.flush()

            provisioned = await BalanceLedger.provision_for_employee(db, employee)

            await create_audit_entry(
                db,
                action="create",
                entity_type="employee",
                entity_id=employee.id,
                actor_id=actor_id,
                new_values={
                    **data.model_dump(mode="json"),
                    "balances_created": len(provisioned),
                },
            )

        logger.info(
            "Created %s account %s (%d balance(s))",
            employee.role.value, employee.id, len(provisioned),
        )
        return employee

    @staticmethod
    async def delete_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> EmployeeDeletionOut:
        """Delete a non-admin account with its balances, applications and
        notifications. Direct reports are detached from it."""
        async with unit_of_work(db, "Employee deletion"):
            employee = await EmployeeService.get_employee(db, employee_id)
            if employee.role == UserRole.admin:
                raise ValidationError({"employee_id": ["Admin accounts cannot be deleted."]})

            balances = await db.execute(
                delete(LeaveBalance)
                .where(LeaveBalance.employee_id == employee_id)
                .execution_options(synchronize_session=False)
            )
            applications = await db.execute(
                delete(LeaveApplication)
                .where(LeaveApplication.employee_id == employee_id)
                .execution_options(synchronize_session=False)
            )
            notifications = await db.execute(
                delete(Notification)
                .where(Notification.recipient_id == employee_id)
                .execution_options(synchronize_session=False)
            )
            report_ids = (
                await db.execute(
                    select(Employee.id)
                    .where(Employee.manager_id == employee_id)
                    .order_by(Employee.full_name)
                )
            ).scalars().all()
            unreviewed_ids = []
            if report_ids:
                unreviewed_ids = (
                    await db.execute(
                        select(LeaveApplication.id)
                        .where(
                            LeaveApplication.employee_id.in_(report_ids),
                            LeaveApplication.status == LeaveStatus.pending,
                        )
                        .order_by(LeaveApplication.applied_on)
                    )
                ).scalars().all()
            reports = await db.execute(
                update(Employee)
                .where(Employee.manager_id == employee_id)
                .values(manager_id=None)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                update(LeaveApplication)
                .where(LeaveApplication.reviewed_by == employee_id)
                .values(reviewed_by=None)
                .execution_options(synchronize_session=False)
            )

            result = EmployeeDeletionOut(
                employee_id=employee_id,
                balances_deleted=balances.rowcount,
                applications_deleted=applications.rowcount,
                notifications_deleted=notifications.rowcount,
                reports_detached=reports.rowcount,
                detached_report_ids=list(report_ids),
                unreviewed_application_ids=list(unreviewed_ids),
            )
            await create_audit_entry(
                db,
                action="delete",
                entity_type="employee",
                entity_id=employee_id,
                actor_id=actor_id,
                old_values={
                    "full_name": employee.full_name,
                    "email": employee.email,
                    "role": employee.role.value,
                },
                new_values=result.model_dump(mode="json"),
            )
            await db.execute(
                delete(Employee)
                .where(Employee.id == employee_id)
                .execution_options(synchronize_session=False)
            )
            db.expunge(employee)

        logger.info(
            "Deleted employee %s (%d application(s), %d report(s) detached)",
            employee_id, result.applications_deleted, result.reports_detached,
        )
        if result.detached_report_ids:
            logger.warning(
                "Employee %s left %d report(s) without a manager; "
                "%d pending application(s) have no reviewer until reassigned",
                employee_id,
                len(result.detached_report_ids),
                len(result.unreviewed_application_ids),
            )
        return result

    # ── Departments ─────────────────────────────────────────────────

    @staticmethod
    async def create_department(
        db: AsyncSession,
        data: DepartmentCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Department:
        name = data.name.strip()
        async with unit_of_work(db, "Department creation"):
            if not name:
                raise ValidationError({"name": ["Name is required."]})
            taken = await db.execute(
                select(Department.id).where(func.lower(Department.name) == name.lower())
            )
            if taken.first() is not None:
                raise ConflictError.duplicate("name", name)

            department = Department(name=name)
            db.add(department)
            await db.flush()

            await create_audit_entry(
                db,
                action="create",
                entity_type="department",
                entity_id=department.id,
                actor_id=actor_id,
                new_values={"name": name},
            )
        return department
