"""Leave service layer — submission, approval workflow and leave-type catalog.

Business logic:
  - Submission with speculative (non-reserving) balance check and overlap guard
  - Approve / reject / cancel as single units of work over a locked row
  - Balance debit exactly once per application, at approval
  - Leave-type catalog with entitlement re-basing and a deletion guard
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavepro.auth.schemas import CallerIdentity
from leavepro.common.audit import create_audit_entry
from leavepro.common.constants import LeaveStatus, NotificationKind, UserRole
from leavepro.common.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from leavepro.common.pagination import PaginationMeta, PaginationParams
from leavepro.common.transaction import unit_of_work
from leavepro.core_hr.models import Employee
from leavepro.leave.ledger import BalanceLedger
from leavepro.leave.models import LeaveApplication, LeaveBalance, LeaveType
from leavepro.leave.overlap import OverlapChecker
from leavepro.leave.schemas import (
    ConflictCheckOut,
    LeaveApplicationCreate,
    LeaveApplicationListResponse,
    LeaveApplicationOut,
    LeaveBalanceOut,
    LeaveTypeCreate,
    LeaveTypeOut,
    LeaveTypeUpdate,
    LeaveTypeUpdateOut,
    TransitionResult,
)
from leavepro.leave.state_machine import ApplicationStateMachine
from leavepro.notifications.intents import NotificationIntent
from leavepro.notifications.service import NotificationService

logger = logging.getLogger(__name__)


def _in_review_scope(caller: CallerIdentity, applicant: Employee) -> bool:
    """Managers review their direct reports; admins review managers."""
    if caller.role == UserRole.admin:
        return applicant.role == UserRole.manager
    return applicant.manager_id == caller.id


def _snapshot(application: LeaveApplication) -> dict:
    return {
        "status": application.status.value,
        "reviewer_comment": application.reviewer_comment,
        "reviewed_by": str(application.reviewed_by) if application.reviewed_by else None,
    }


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: submission, review, cancellation, queries."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _load_application(
        db: AsyncSession,
        application_id: uuid.UUID,
        *,
        lock: bool = False,
    ) -> Optional[LeaveApplication]:
        query = (
            select(LeaveApplication)
            .where(LeaveApplication.id == application_id)
            .options(
                selectinload(LeaveApplication.employee),
                selectinload(LeaveApplication.leave_type),
            )
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def _load_for_review(
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: uuid.UUID,
    ) -> LeaveApplication:
        """Lock and re-read the application; 404 when outside the caller's scope."""
        application = await LeaveService._load_application(
            db, application_id, lock=True,
        )
        if application is None or not _in_review_scope(caller, application.employee):
            raise NotFoundError("LeaveApplication", application_id)
        return application

    @staticmethod
    async def _reviewer_intents(
        db: AsyncSession,
        applicant: Employee,
        application: LeaveApplication,
    ) -> list[NotificationIntent]:
        """Tell whoever reviews this applicant that a request is waiting."""
        is_manager = applicant.role == UserRole.manager
        if is_manager:
            recipients = (
                await db.execute(
                    select(Employee.id).where(
                        Employee.role == UserRole.admin,
                        Employee.is_active.is_(True),
                    )
                )
            ).scalars().all()
        elif applicant.manager_id is not None:
            recipients = [applicant.manager_id]
        else:
            recipients = []

        return [
            NotificationIntent(
                recipient_id=recipient_id,
                kind=NotificationKind.applied,
                application_id=application.id,
                applicant_id=applicant.id,
                applicant_name=applicant.full_name,
                leave_type_name=application.leave_type.name,
                start_date=application.start_date,
                end_date=application.end_date,
                total_days=application.total_days,
                applicant_is_manager=is_manager,
                department_name=applicant.department.name if applicant.department else None,
            )
            for recipient_id in recipients
        ]

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        caller: CallerIdentity,
        data: LeaveApplicationCreate,
    ) -> TransitionResult:
        """Create a pending application for the caller.

        The balance check here is advisory: nothing is reserved, and the
        authoritative debit happens at approval.
        """
        async with unit_of_work(db, "Leave submission"):
            employee = (
                await db.execute(
                    select(Employee)
                    .where(Employee.id == caller.id, Employee.is_active.is_(True))
                    .options(selectinload(Employee.department))
                    .execution_options(populate_existing=True)
                )
            ).scalars().first()
            if employee is None:
                raise NotFoundError("Employee", caller.id)
            if employee.role == UserRole.admin:
                raise ValidationError(
                    {"employee_id": ["Admins cannot apply for leave."]}
                )

            leave_type = await db.get(LeaveType, data.leave_type_id)
            application = ApplicationStateMachine.submit(
                employee, leave_type, data.start_date, data.end_date, data.reason,
            )

            balance = await BalanceLedger.ensure_balance(db, employee, leave_type)
            if application.total_days > balance.remaining:
                raise InsufficientBalanceError(
                    leave_type.name, balance.remaining, application.total_days,
                )

            if await OverlapChecker.has_conflict(
                db, employee.id, application.start_date, application.end_date,
            ):
                raise ConflictError(
                    "You already have a leave application overlapping these dates.",
                    errors={"start_date": ["Overlaps a pending or approved application."]},
                )

            db.add(application)
            application.employee = employee
            application.leave_type = leave_type
            await db.flush()

            intents = await LeaveService._reviewer_intents(db, employee, application)
            await NotificationService.record(db, intents)

            await create_audit_entry(
                db,
                action="submit",
                entity_type="leave_application",
                entity_id=application.id,
                actor_id=caller.id,
                new_values={
                    "status": LeaveStatus.pending.value,
                    "leave_type_id": str(leave_type.id),
                    "start_date": application.start_date.isoformat(),
                    "end_date": application.end_date.isoformat(),
                    "total_days": application.total_days,
                },
            )

        logger.info(
            "Employee %s submitted application %s for %d day(s) of %s",
            employee.id, application.id, application.total_days, leave_type.name,
        )
        return TransitionResult(
            application=LeaveApplicationOut.model_validate(application),
            notifications=intents,
        )

    # ─────────────────────────────────────────────────────────────────
    # Approve
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: uuid.UUID,
        comment: Optional[str] = None,
    ) -> TransitionResult:
        """Debit the balance and approve, or change nothing at all."""
        async with unit_of_work(db, "Leave approval"):
            application = await LeaveService._load_for_review(db, caller, application_id)
            if application.status != LeaveStatus.pending:
                raise InvalidTransitionError(application.status, "approve")

            before = _snapshot(application)
            await BalanceLedger.ensure_balance(
                db, application.employee, application.leave_type,
            )
            await BalanceLedger.debit(
                db,
                application.employee_id,
                application.leave_type_id,
                application.total_days,
            )

            intent = await ApplicationStateMachine.approve(
                db, application, caller, comment,
            )
            await NotificationService.record(db, [intent])

            await create_audit_entry(
                db,
                action="approve",
                entity_type="leave_application",
                entity_id=application.id,
                actor_id=caller.id,
                old_values=before,
                new_values=_snapshot(application),
            )

        return TransitionResult(
            application=LeaveApplicationOut.model_validate(application),
            notifications=[intent],
        )

    # ─────────────────────────────────────────────────────────────────
    # Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reject(
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: uuid.UUID,
        comment: Optional[str] = None,
    ) -> TransitionResult:
        async with unit_of_work(db, "Leave rejection"):
            application = await LeaveService._load_for_review(db, caller, application_id)
            if application.status != LeaveStatus.pending:
                raise InvalidTransitionError(application.status, "reject")

            before = _snapshot(application)
            intent = await ApplicationStateMachine.reject(
                db, application, caller, comment,
            )
            await NotificationService.record(db, [intent])

            await create_audit_entry(
                db,
                action="reject",
                entity_type="leave_application",
                entity_id=application.id,
                actor_id=caller.id,
                old_values=before,
                new_values=_snapshot(application),
            )

        return TransitionResult(
            application=LeaveApplicationOut.model_validate(application),
            notifications=[intent],
        )

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel(
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: uuid.UUID,
    ) -> TransitionResult:
        """Withdraw the caller's own pending application."""
        async with unit_of_work(db, "Leave cancellation"):
            application = await LeaveService._load_application(
                db, application_id, lock=True,
            )
            if application is None or application.employee_id != caller.id:
                raise NotFoundError("LeaveApplication", application_id)
            if application.status != LeaveStatus.pending:
                raise InvalidTransitionError(application.status, "cancel")

            before = _snapshot(application)
            await ApplicationStateMachine.cancel(db, application)

            await create_audit_entry(
                db,
                action="cancel",
                entity_type="leave_application",
                entity_id=application.id,
                actor_id=caller.id,
                old_values=before,
                new_values=_snapshot(application),
            )

        return TransitionResult(
            application=LeaveApplicationOut.model_validate(application),
            notifications=[],
        )

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_application(
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: uuid.UUID,
    ) -> LeaveApplicationOut:
        """Visible to the applicant, an in-scope reviewer, or any admin."""
        application = await LeaveService._load_application(db, application_id)
        if application is None or not (
            application.employee_id == caller.id
            or caller.role == UserRole.admin
            or _in_review_scope(caller, application.employee)
        ):
            raise NotFoundError("LeaveApplication", application_id)
        return LeaveApplicationOut.model_validate(application)

    @staticmethod
    async def list_applications_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        status: Optional[LeaveStatus] = None,
    ) -> LeaveApplicationListResponse:
        """An employee's applications, newest first."""
        query = (
            select(LeaveApplication)
            .where(LeaveApplication.employee_id == employee_id)
            .options(
                selectinload(LeaveApplication.employee),
                selectinload(LeaveApplication.leave_type),
            )
            .order_by(LeaveApplication.applied_on.desc())
        )
        if status is not None:
            query = query.where(LeaveApplication.status == status)

        count_q = query.with_only_columns(func.count()).order_by(None)
        total = (await db.execute(count_q)).scalar_one()

        result = await db.execute(
            query.offset(pagination.offset).limit(pagination.page_size)
        )
        return LeaveApplicationListResponse(
            data=[LeaveApplicationOut.model_validate(a) for a in result.scalars().all()],
            meta=PaginationMeta.build(
                page=pagination.page, page_size=pagination.page_size, total=total,
            ),
        )

    @staticmethod
    async def list_pending_for_reviewer(
        db: AsyncSession,
        caller: CallerIdentity,
    ) -> list[LeaveApplicationOut]:
        """Pending applications the caller may act on, oldest first."""
        query = (
            select(LeaveApplication)
            .join(Employee, Employee.id == LeaveApplication.employee_id)
            .where(LeaveApplication.status == LeaveStatus.pending)
            .options(
                selectinload(LeaveApplication.employee),
                selectinload(LeaveApplication.leave_type),
            )
            .order_by(LeaveApplication.applied_on.asc())
        )
        if caller.role == UserRole.admin:
            query = query.where(Employee.role == UserRole.manager)
        else:
            query = query.where(Employee.manager_id == caller.id)

        result = await db.execute(query)
        return [LeaveApplicationOut.model_validate(a) for a in result.scalars().all()]

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> list[LeaveBalanceOut]:
        balances = await BalanceLedger.get_balances(db, employee_id)
        return [LeaveBalanceOut.model_validate(b) for b in balances]

    @staticmethod
    async def check_conflict(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start: date,
        end: date,
        exclude_application_id: Optional[uuid.UUID] = None,
    ) -> ConflictCheckOut:
        if end < start:
            raise ValidationError({"end_date": ["End date cannot be before start date."]})
        conflicts = await OverlapChecker.find_conflicts(
            db, employee_id, start, end, exclude_application_id,
        )
        return ConflictCheckOut(
            has_conflict=bool(conflicts),
            conflicting_ids=[a.id for a in conflicts],
        )


# ═════════════════════════════════════════════════════════════════════
# LeaveTypeService
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeService:
    """Leave-type catalog: uniqueness, entitlement changes, deletion guard."""

    @staticmethod
    async def _get_or_404(db: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError("LeaveType", leave_type_id)
        return leave_type

    @staticmethod
    async def _ensure_unique_name(
        db: AsyncSession,
        name: str,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(LeaveType.id).where(func.lower(LeaveType.name) == name.lower())
        if exclude_id is not None:
            query = query.where(LeaveType.id != exclude_id)
        if (await db.execute(query)).first() is not None:
            raise ConflictError.duplicate("name", name)

    @staticmethod
    def _check_cap(max_per_year: int) -> None:
        if max_per_year < 0:
            raise ValidationError({"max_per_year": ["Must be zero or greater."]})

    @staticmethod
    async def list_leave_types(db: AsyncSession) -> list[LeaveTypeOut]:
        result = await db.execute(select(LeaveType).order_by(LeaveType.name))
        return [LeaveTypeOut.model_validate(lt) for lt in result.scalars().all()]

    @staticmethod
    async def create_leave_type(
        db: AsyncSession,
        data: LeaveTypeCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveTypeOut:
        """Add a leave type and give every eligible employee a full balance."""
        name = data.name.strip()
        async with unit_of_work(db, "Leave type creation"):
            if not name:
                raise ValidationError({"name": ["Name is required."]})
            LeaveTypeService._check_cap(data.max_per_year)
            await LeaveTypeService._ensure_unique_name(db, name)

            leave_type = LeaveType(name=name, max_per_year=data.max_per_year)
            db.add(leave_type)
            await db.flush()

            provisioned = await BalanceLedger.provision_for_leave_type(db, leave_type)

            await create_audit_entry(
                db,
                action="create",
                entity_type="leave_type",
                entity_id=leave_type.id,
                actor_id=actor_id,
                new_values={
                    "name": name,
                    "max_per_year": data.max_per_year,
                    "balances_created": len(provisioned),
                },
            )

        logger.info("Created leave type %r (%d/year)", name, data.max_per_year)
        return LeaveTypeOut.model_validate(leave_type)

    @staticmethod
    async def update_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        data: LeaveTypeUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveTypeUpdateOut:
        """Rename and/or change the yearly cap; a cap change re-bases balances."""
        adjustment = None
        async with unit_of_work(db, "Leave type update"):
            leave_type = await LeaveTypeService._get_or_404(db, leave_type_id)
            before = {"name": leave_type.name, "max_per_year": leave_type.max_per_year}

            if data.name is not None:
                name = data.name.strip()
                if not name:
                    raise ValidationError({"name": ["Name is required."]})
                await LeaveTypeService._ensure_unique_name(
                    db, name, exclude_id=leave_type.id,
                )
                leave_type.name = name

            if data.max_per_year is not None and data.max_per_year != leave_type.max_per_year:
                LeaveTypeService._check_cap(data.max_per_year)
                old_max = leave_type.max_per_year
                leave_type.max_per_year = data.max_per_year
                adjustment = await BalanceLedger.adjust_entitlement(
                    db, leave_type.id, old_max, data.max_per_year,
                )

            await db.flush()
            await create_audit_entry(
                db,
                action="adjust_entitlement" if adjustment else "update",
                entity_type="leave_type",
                entity_id=leave_type.id,
                actor_id=actor_id,
                old_values=before,
                new_values={
                    "name": leave_type.name,
                    "max_per_year": leave_type.max_per_year,
                    "clamped": len(adjustment.truncated) if adjustment else 0,
                },
            )

        return LeaveTypeUpdateOut(
            leave_type=LeaveTypeOut.model_validate(leave_type),
            adjustment=adjustment,
        )

    @staticmethod
    async def delete_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Delete an unused leave type together with its balances."""
        async with unit_of_work(db, "Leave type deletion"):
            leave_type = await LeaveTypeService._get_or_404(db, leave_type_id)

            in_use = (
                await db.execute(
                    select(func.count())
                    .select_from(LeaveApplication)
                    .where(LeaveApplication.leave_type_id == leave_type.id)
                )
            ).scalar_one()
            if in_use:
                raise ConflictError(
                    f"Cannot delete '{leave_type.name}' because it is being used "
                    f"in {in_use} leave application(s).",
                    errors={"leave_type_id": [f"Referenced by {in_use} application(s)."]},
                )

            await db.execute(
                delete(LeaveBalance)
                .where(LeaveBalance.leave_type_id == leave_type.id)
                .execution_options(synchronize_session=False)
            )
            await create_audit_entry(
                db,
                action="delete",
                entity_type="leave_type",
                entity_id=leave_type.id,
                actor_id=actor_id,
                old_values={"name": leave_type.name, "max_per_year": leave_type.max_per_year},
            )
            await db.delete(leave_type)

        logger.info("Deleted leave type %s", leave_type_id)
