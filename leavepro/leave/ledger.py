"""Balance ledger — per-employee, per-leave-type entitlement accounting.

Every mutation keeps ``remaining == total_assigned - used`` with
``used >= 0`` and ``remaining >= 0``; the same rules are CHECK constraints
on ``leave_balances``. ``debit`` is the only path that lowers ``remaining``
and runs once per application, at approval.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavepro.common.constants import UserRole
from leavepro.common.exceptions import (
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from leavepro.core_hr.models import Employee
from leavepro.leave.models import LeaveBalance, LeaveType
from leavepro.leave.schemas import ClampedBalance, EntitlementAdjustment

logger = logging.getLogger(__name__)


async def _find_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    lock: bool = False,
) -> Optional[LeaveBalance]:
    query = (
        select(LeaveBalance)
        .where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
        )
        .execution_options(populate_existing=True)
    )
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalars().first()


class BalanceLedger:
    """Async balance operations. All methods flush, none commit."""

    # ─── Creation ───────────────────────────────────────────────────

    @staticmethod
    async def ensure_balance(
        db: AsyncSession,
        employee: Employee,
        leave_type: LeaveType,
    ) -> LeaveBalance:
        """Return the balance row, creating it at the full yearly cap if missing.

        Admins never hold balances. A duplicate insert from a concurrent
        caller is absorbed inside a savepoint and the winner's row returned.
        """
        if employee.role == UserRole.admin:
            raise ValidationError(
                {"employee_id": ["Admins do not hold leave balances."]}
            )

        existing = await _find_balance(db, employee.id, leave_type.id)
        if existing is not None:
            return existing

        balance = LeaveBalance(
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            total_assigned=leave_type.max_per_year,
            used=0,
            remaining=leave_type.max_per_year,
        )
        try:
            async with db.begin_nested():
                db.add(balance)
        except IntegrityError:
            logger.info(
                "Balance for employee %s / leave type %s created concurrently; re-reading",
                employee.id, leave_type.id,
            )
            existing = await _find_balance(db, employee.id, leave_type.id)
            if existing is None:
                raise
            return existing

        logger.info(
            "Created balance for employee %s / leave type %s with %d day(s)",
            employee.id, leave_type.id, leave_type.max_per_year,
        )
        return balance

    @staticmethod
    async def provision_for_employee(
        db: AsyncSession,
        employee: Employee,
    ) -> list[LeaveBalance]:
        """Create a balance for every leave type the employee lacks."""
        if employee.role == UserRole.admin:
            return []

        held = set(
            (
                await db.execute(
                    select(LeaveBalance.leave_type_id).where(
                        LeaveBalance.employee_id == employee.id
                    )
                )
            ).scalars().all()
        )
        leave_types = (await db.execute(select(LeaveType))).scalars().all()

        created = [
            LeaveBalance(
                employee_id=employee.id,
                leave_type_id=lt.id,
                total_assigned=lt.max_per_year,
                used=0,
                remaining=lt.max_per_year,
            )
            for lt in leave_types
            if lt.id not in held
        ]
        if created:
            db.add_all(created)
            await db.flush()
            logger.info(
                "Provisioned %d balance(s) for employee %s", len(created), employee.id
            )
        return created

    @staticmethod
    async def provision_for_leave_type(
        db: AsyncSession,
        leave_type: LeaveType,
    ) -> list[LeaveBalance]:
        """Create a balance for every active non-admin employee lacking one."""
        held = set(
            (
                await db.execute(
                    select(LeaveBalance.employee_id).where(
                        LeaveBalance.leave_type_id == leave_type.id
                    )
                )
            ).scalars().all()
        )
        employee_ids = (
            await db.execute(
                select(Employee.id).where(
                    Employee.is_active.is_(True),
                    Employee.role != UserRole.admin,
                )
            )
        ).scalars().all()

        created = [
            LeaveBalance(
                employee_id=emp_id,
                leave_type_id=leave_type.id,
                total_assigned=leave_type.max_per_year,
                used=0,
                remaining=leave_type.max_per_year,
            )
            for emp_id in employee_ids
            if emp_id not in held
        ]
        if created:
            db.add_all(created)
            await db.flush()
            logger.info(
                "Provisioned %d balance(s) for leave type %s", len(created), leave_type.id
            )
        return created

    # ─── Debit ──────────────────────────────────────────────────────

    @staticmethod
    async def debit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        days: int,
    ) -> LeaveBalance:
        """Consume ``days`` from the balance or raise ``InsufficientBalanceError``.

        The row is locked first, then updated with a guarded statement so
        two approvals can never both pass ``days <= remaining``.
        """
        if days <= 0:
            raise ValidationError({"days": ["Days to debit must be positive."]})

        balance = await _find_balance(db, employee_id, leave_type_id, lock=True)
        if balance is None:
            raise NotFoundError("LeaveBalance", f"{employee_id}/{leave_type_id}")

        result = await db.execute(
            update(LeaveBalance)
            .where(
                LeaveBalance.id == balance.id,
                LeaveBalance.remaining >= days,
            )
            .values(
                used=LeaveBalance.used + days,
                remaining=LeaveBalance.total_assigned - (LeaveBalance.used + days),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            type_name = (
                await db.execute(
                    select(LeaveType.name).where(LeaveType.id == leave_type_id)
                )
            ).scalar_one()
            raise InsufficientBalanceError(type_name, balance.remaining, days)

        await db.refresh(balance)
        logger.info(
            "Debited %d day(s) from employee %s / leave type %s; remaining %d",
            days, employee_id, leave_type_id, balance.remaining,
        )
        return balance

    # ─── Entitlement changes ────────────────────────────────────────

    @staticmethod
    async def adjust_entitlement(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        old_max: int,
        new_max: int,
    ) -> EntitlementAdjustment:
        """Re-base every non-admin balance of a leave type on a new yearly cap.

        ``remaining`` shifts by the cap delta and floors at zero. A holder
        who already used more than the new cap has ``used`` clamped to it;
        those holders are logged and listed in the returned report.
        """
        if new_max < 0:
            raise ValidationError({"max_per_year": ["Must be zero or greater."]})
        report = EntitlementAdjustment(
            leave_type_id=leave_type_id, old_max=old_max, new_max=new_max,
        )

        balances = (
            await db.execute(
                select(LeaveBalance)
                .join(Employee, Employee.id == LeaveBalance.employee_id)
                .where(
                    LeaveBalance.leave_type_id == leave_type_id,
                    Employee.role != UserRole.admin,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalars().all()

        delta = new_max - old_max
        for balance in balances:
            used = balance.used
            remaining = max(0, balance.remaining + delta)

            if used > new_max:
                logger.warning(
                    "Clamped used days for employee %s / leave type %s: %d -> %d",
                    balance.employee_id, leave_type_id, used, new_max,
                )
                report.truncated.append(
                    ClampedBalance(
                        employee_id=balance.employee_id,
                        previous_used=used,
                        new_used=new_max,
                    )
                )
                used = new_max
                remaining = 0
            elif remaining != new_max - used:
                logger.info(
                    "Re-derived remaining for employee %s / leave type %s: %d -> %d",
                    balance.employee_id, leave_type_id, remaining, new_max - used,
                )
                remaining = new_max - used

            balance.total_assigned = new_max
            balance.used = used
            balance.remaining = remaining
            report.balances_updated += 1

        await db.flush()
        logger.info(
            "Adjusted %d balance(s) of leave type %s from %d to %d (%d clamped)",
            report.balances_updated, leave_type_id, old_max, new_max,
            len(report.truncated),
        )
        return report

    # ─── Queries ────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> list[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .join(LeaveType, LeaveType.id == LeaveBalance.leave_type_id)
            .where(LeaveBalance.employee_id == employee_id)
            .options(selectinload(LeaveBalance.leave_type))
            .order_by(LeaveType.name)
        )
        return list(result.scalars().all())
