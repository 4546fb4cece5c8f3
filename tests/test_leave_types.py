"""Leave-type catalog tests — creation with provisioning, renames, cap
changes re-basing balances, and the deletion guard.
"""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavepro.common.exceptions import ConflictError, NotFoundError, ValidationError
from leavepro.leave.models import LeaveBalance, LeaveType
from leavepro.leave.schemas import (
    LeaveApplicationCreate,
    LeaveTypeCreate,
    LeaveTypeUpdate,
)
from leavepro.leave.service import LeaveService, LeaveTypeService
from tests.conftest import TestSessionFactory, caller, fetch_balance


async def _balance_count(leave_type_id: uuid.UUID) -> int:
    async with TestSessionFactory() as session:
        return (
            await session.execute(
                select(func.count())
                .select_from(LeaveBalance)
                .where(LeaveBalance.leave_type_id == leave_type_id)
            )
        ).scalar_one()


class TestCreateLeaveType:

    async def test_create_provisions_every_non_admin(self, db: AsyncSession, org):
        lt = await LeaveTypeService.create_leave_type(
            db, LeaveTypeCreate(name="  Sick Leave ", max_per_year=6), actor_id=org.admin.id,
        )

        assert lt.name == "Sick Leave"
        assert await _balance_count(lt.id) == 3  # manager + two reports
        balance = await fetch_balance(org.employee.id, lt.id)
        assert (balance.total_assigned, balance.used, balance.remaining) == (6, 0, 6)
        assert await fetch_balance(org.admin.id, lt.id) is None

    async def test_duplicate_name_is_case_insensitive(self, db: AsyncSession, org):
        with pytest.raises(ConflictError):
            await LeaveTypeService.create_leave_type(
                db, LeaveTypeCreate(name="casual leave", max_per_year=5),
            )

    async def test_negative_cap_refused(self, db: AsyncSession, org):
        with pytest.raises(ValidationError) as exc_info:
            await LeaveTypeService.create_leave_type(
                db, LeaveTypeCreate(name="Odd Leave", max_per_year=-1),
            )
        assert "max_per_year" in exc_info.value.errors

    async def test_zero_cap_is_allowed(self, db: AsyncSession, org):
        lt = await LeaveTypeService.create_leave_type(
            db, LeaveTypeCreate(name="Unpaid Leave", max_per_year=0),
        )
        assert lt.max_per_year == 0

    async def test_list_is_alphabetical(self, db: AsyncSession, org):
        await LeaveTypeService.create_leave_type(
            db, LeaveTypeCreate(name="Annual Leave", max_per_year=20),
        )
        names = [lt.name for lt in await LeaveTypeService.list_leave_types(db)]
        assert names == ["Annual Leave", "Casual Leave"]


class TestUpdateLeaveType:

    async def test_lowering_cap_rebases_holders(self, db: AsyncSession, org):
        """Cap 12 to 8 for a holder with 5 used: total 8, remaining 3."""
        submitted = await LeaveService.submit(
            db,
            caller(org.employee),
            LeaveApplicationCreate(
                leave_type_id=org.leave_type.id,
                start_date=date(2026, 1, 1),
                end_date=date(2026, 1, 5),
                reason="Family function out of town",
            ),
        )
        await LeaveService.approve(db, caller(org.manager), submitted.application.id)

        result = await LeaveTypeService.update_leave_type(
            db, org.leave_type.id, LeaveTypeUpdate(max_per_year=8), actor_id=org.admin.id,
        )

        assert result.leave_type.max_per_year == 8
        assert result.adjustment.old_max == 12
        assert result.adjustment.new_max == 8
        balance = await fetch_balance(org.employee.id, org.leave_type.id)
        assert (balance.total_assigned, balance.used, balance.remaining) == (8, 5, 3)

    async def test_rename_only_leaves_balances_alone(self, db: AsyncSession, org):
        result = await LeaveTypeService.update_leave_type(
            db, org.leave_type.id, LeaveTypeUpdate(name="Casual"),
        )
        assert result.leave_type.name == "Casual"
        assert result.adjustment is None

    async def test_same_cap_is_not_an_adjustment(self, db: AsyncSession, org):
        result = await LeaveTypeService.update_leave_type(
            db, org.leave_type.id, LeaveTypeUpdate(max_per_year=12),
        )
        assert result.adjustment is None

    async def test_rename_to_existing_name_refused(self, db: AsyncSession, org):
        await LeaveTypeService.create_leave_type(
            db, LeaveTypeCreate(name="Sick Leave", max_per_year=6),
        )
        with pytest.raises(ConflictError):
            await LeaveTypeService.update_leave_type(
                db, org.leave_type.id, LeaveTypeUpdate(name="SICK LEAVE"),
            )

    async def test_unknown_leave_type(self, db: AsyncSession, org):
        with pytest.raises(NotFoundError):
            await LeaveTypeService.update_leave_type(
                db, uuid.uuid4(), LeaveTypeUpdate(max_per_year=3),
            )


class TestDeleteLeaveType:

    async def test_delete_unused_type_removes_its_balances(self, db: AsyncSession, org):
        lt = await LeaveTypeService.create_leave_type(
            db, LeaveTypeCreate(name="Sick Leave", max_per_year=6),
        )
        assert await _balance_count(lt.id) == 3

        await LeaveTypeService.delete_leave_type(db, lt.id, actor_id=org.admin.id)

        assert await _balance_count(lt.id) == 0
        async with TestSessionFactory() as session:
            assert await session.get(LeaveType, lt.id) is None

    async def test_type_in_use_cannot_be_deleted(self, db: AsyncSession, org):
        await LeaveService.submit(
            db,
            caller(org.employee),
            LeaveApplicationCreate(
                leave_type_id=org.leave_type.id,
                start_date=date(2026, 1, 1),
                end_date=date(2026, 1, 2),
                reason="Family function out of town",
            ),
        )

        with pytest.raises(ConflictError) as exc_info:
            await LeaveTypeService.delete_leave_type(db, org.leave_type.id)
        assert exc_info.value.detail == (
            "Cannot delete 'Casual Leave' because it is being used in 1 leave application(s)."
        )
        assert await _balance_count(org.leave_type.id) == 1
