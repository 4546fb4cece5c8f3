"""Application state machine tests — transition table, submission rules,
decision stamps, and the optimistic version check.

Uses the shared conftest.py pattern with in-memory SQLite.
"""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from leavepro.common.constants import LeaveStatus, NotificationKind
from leavepro.common.exceptions import InvalidTransitionError, ValidationError
from leavepro.leave.models import LeaveApplication
from leavepro.leave.service import LeaveService
from leavepro.leave.state_machine import ApplicationStateMachine, can_transition
from tests.conftest import (
    TestSessionFactory,
    caller,
    fetch_application,
    seed_application,
)


async def _seed_and_load(db: AsyncSession, org, **kwargs) -> LeaveApplication:
    async with TestSessionFactory() as session:
        seeded = await seed_application(session, org.employee, org.leave_type, **kwargs)
        await session.commit()
        application_id = seeded.id
    return await LeaveService._load_application(db, application_id)


# ═════════════════════════════════════════════════════════════════════
# Transition table
# ═════════════════════════════════════════════════════════════════════


class TestTransitionTable:

    @pytest.mark.parametrize(
        "target", [LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled],
    )
    def test_pending_moves_to_every_terminal_status(self, target):
        assert can_transition(LeaveStatus.pending, target)

    @pytest.mark.parametrize(
        "current", [LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled],
    )
    def test_terminal_statuses_are_final(self, current):
        for target in LeaveStatus:
            assert not can_transition(current, target)

    def test_pending_cannot_stay_pending(self):
        assert not can_transition(LeaveStatus.pending, LeaveStatus.pending)


# ═════════════════════════════════════════════════════════════════════
# Submission rules
# ═════════════════════════════════════════════════════════════════════


class TestSubmit:

    async def test_builds_pending_application_with_inclusive_day_count(self, org):
        app = ApplicationStateMachine.submit(
            org.employee, org.leave_type,
            date(2026, 1, 1), date(2026, 1, 5), "  Family function out of town  ",
        )
        assert app.status == LeaveStatus.pending
        assert app.total_days == 5
        assert app.reason == "Family function out of town"
        assert app.employee_id == org.employee.id
        assert app.leave_type_id == org.leave_type.id
        assert app.applied_on is not None
        assert app.reviewed_by is None and app.action_date is None

    async def test_single_day_counts_as_one(self, org):
        app = ApplicationStateMachine.submit(
            org.employee, org.leave_type,
            date(2026, 3, 10), date(2026, 3, 10), "Doctor appointment",
        )
        assert app.total_days == 1

    async def test_end_before_start_rejected(self, org):
        with pytest.raises(ValidationError) as exc_info:
            ApplicationStateMachine.submit(
                org.employee, org.leave_type,
                date(2026, 1, 5), date(2026, 1, 1), "Family function out of town",
            )
        assert "end_date" in exc_info.value.errors

    async def test_reason_length_bounds(self, org):
        with pytest.raises(ValidationError) as exc_info:
            ApplicationStateMachine.submit(
                org.employee, org.leave_type,
                date(2026, 1, 1), date(2026, 1, 1), "   short  ",
            )
        assert "reason" in exc_info.value.errors

        with pytest.raises(ValidationError) as exc_info:
            ApplicationStateMachine.submit(
                org.employee, org.leave_type,
                date(2026, 1, 1), date(2026, 1, 1), "x" * 501,
            )
        assert "reason" in exc_info.value.errors

    async def test_reports_every_problem_at_once(self, org):
        with pytest.raises(ValidationError) as exc_info:
            ApplicationStateMachine.submit(org.employee, None, None, None, "")
        assert set(exc_info.value.errors) == {
            "leave_type_id", "start_date", "end_date", "reason",
        }


# ═════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════


class TestTransitions:

    async def test_approve_stamps_decision_and_bumps_version(self, db: AsyncSession, org):
        app = await _seed_and_load(db, org)
        assert app.version == 1

        intent = await ApplicationStateMachine.approve(
            db, app, caller(org.manager), "  Enjoy  ",
        )
        await db.commit()

        assert app.status == LeaveStatus.approved
        assert app.reviewed_by == org.manager.id
        assert app.reviewer_comment == "Enjoy"
        assert app.action_date is not None
        assert app.version == 2

        assert intent.kind == NotificationKind.approved
        assert intent.recipient_id == org.employee.id
        assert intent.comment == "Enjoy"
        assert intent.decided_by_admin is False

    async def test_reject_with_blank_comment_stores_none(self, db: AsyncSession, org):
        app = await _seed_and_load(db, org)

        intent = await ApplicationStateMachine.reject(db, app, caller(org.manager), "   ")
        await db.commit()

        assert app.status == LeaveStatus.rejected
        assert app.reviewer_comment is None
        assert app.action_date is not None
        assert intent.kind == NotificationKind.rejected

    async def test_cancel_clears_review_fields(self, db: AsyncSession, org):
        app = await _seed_and_load(db, org)

        await ApplicationStateMachine.cancel(db, app)
        await db.commit()

        stored = await fetch_application(app.id)
        assert stored.status == LeaveStatus.cancelled
        assert stored.reviewed_by is None
        assert stored.action_date is None

    @pytest.mark.parametrize(
        "status", [LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled],
    )
    async def test_terminal_application_cannot_be_approved(
        self, db: AsyncSession, org, status,
    ):
        app = await _seed_and_load(db, org, status=status)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await ApplicationStateMachine.approve(db, app, caller(org.manager))
        assert exc_info.value.current_status == status.value
        assert exc_info.value.action == "approve"

    async def test_stale_version_loses_to_concurrent_writer(self, db: AsyncSession, org):
        """A writer holding an old version is refused and told the real status."""
        app = await _seed_and_load(db, org)
        application_id = app.id

        # Another session approves first and bumps the version.
        async with TestSessionFactory() as other:
            await other.execute(
                update(LeaveApplication)
                .where(LeaveApplication.id == application_id)
                .values(
                    status=LeaveStatus.approved,
                    version=LeaveApplication.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            await other.commit()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await ApplicationStateMachine.reject(db, app, caller(org.manager), "No")
        assert exc_info.value.current_status == "approved"

        stored = await fetch_application(application_id)
        assert stored.status == LeaveStatus.approved
        assert stored.reviewer_comment is None
        assert stored.version == 2
