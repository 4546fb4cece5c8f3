"""Leave application lifecycle.

    pending ──approve──▶ approved
       │ ├───reject───▶ rejected
       │ └───cancel───▶ cancelled

Nothing leaves a terminal status. Every transition is flushed through the
mapper's ``version_id_col`` check, so of two writers holding the same
version only the first succeeds. Authorization is the caller's concern.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from leavepro.auth.schemas import CallerIdentity
from leavepro.common.constants import LeaveStatus, NotificationKind
from leavepro.common.exceptions import InvalidTransitionError, ValidationError
from leavepro.config import settings
from leavepro.core_hr.models import Employee
from leavepro.database import utcnow
from leavepro.leave.models import LeaveApplication, LeaveType
from leavepro.notifications.intents import NotificationIntent

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[LeaveStatus, frozenset[LeaveStatus]] = {
    LeaveStatus.pending: frozenset(
        {LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled}
    ),
    LeaveStatus.approved: frozenset(),
    LeaveStatus.rejected: frozenset(),
    LeaveStatus.cancelled: frozenset(),
}


def can_transition(current: LeaveStatus, target: LeaveStatus) -> bool:
    return target in _TRANSITIONS[current]


def _clean_comment(comment: Optional[str]) -> Optional[str]:
    if comment is None:
        return None
    comment = comment.strip()
    return comment or None


def _decision_intent(
    application: LeaveApplication,
    kind: NotificationKind,
    reviewer: CallerIdentity,
) -> NotificationIntent:
    return NotificationIntent(
        recipient_id=application.employee_id,
        kind=kind,
        application_id=application.id,
        applicant_id=application.employee_id,
        applicant_name=application.employee.full_name,
        leave_type_name=application.leave_type.name,
        start_date=application.start_date,
        end_date=application.end_date,
        total_days=application.total_days,
        comment=application.reviewer_comment,
        decided_by_admin=reviewer.is_admin,
    )


class ApplicationStateMachine:

    # ─── Creation ───────────────────────────────────────────────────

    @staticmethod
    def validate_submission(
        leave_type: Optional[LeaveType],
        start: Optional[date],
        end: Optional[date],
        reason: Optional[str],
    ) -> str:
        """Check a new application's inputs; return the trimmed reason.

        All problems are reported together in one ``ValidationError``.
        """
        errors: dict[str, list[str]] = {}

        if leave_type is None:
            errors.setdefault("leave_type_id", []).append("Unknown leave type.")
        if start is None:
            errors.setdefault("start_date", []).append("Start date is required.")
        if end is None:
            errors.setdefault("end_date", []).append("End date is required.")
        if start is not None and end is not None and end < start:
            errors.setdefault("end_date", []).append(
                "End date cannot be before start date."
            )

        text = (reason or "").strip()
        if len(text) < settings.REASON_MIN_LENGTH:
            errors.setdefault("reason", []).append(
                f"Reason must be at least {settings.REASON_MIN_LENGTH} characters."
            )
        elif len(text) > settings.REASON_MAX_LENGTH:
            errors.setdefault("reason", []).append(
                f"Reason cannot exceed {settings.REASON_MAX_LENGTH} characters."
            )

        if errors:
            raise ValidationError(errors)
        return text

    @staticmethod
    def submit(
        employee: Employee,
        leave_type: Optional[LeaveType],
        start: Optional[date],
        end: Optional[date],
        reason: Optional[str],
    ) -> LeaveApplication:
        """Build a new pending application. The caller adds and flushes it.

        Only the foreign keys are set. Attaching the relationships here would
        put a transient row into ``employee.leave_applications`` and trip the
        next autoflush.
        """
        text = ApplicationStateMachine.validate_submission(
            leave_type, start, end, reason,
        )
        return LeaveApplication(
            id=uuid.uuid4(),
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            start_date=start,
            end_date=end,
            total_days=(end - start).days + 1,
            reason=text,
            status=LeaveStatus.pending,
            applied_on=utcnow(),
        )

    # ─── Transitions ────────────────────────────────────────────────

    @staticmethod
    async def _apply(
        db: AsyncSession,
        application: LeaveApplication,
        target: LeaveStatus,
        action: str,
        mutate: Callable[[LeaveApplication], None],
    ) -> None:
        current = application.status
        if not can_transition(current, target):
            raise InvalidTransitionError(current, action)

        application_id = application.id
        application.status = target
        mutate(application)
        try:
            await db.flush()
        except StaleDataError:
            # Another writer moved the row past the version we hold.
            await db.rollback()
            observed = (
                await db.execute(
                    select(LeaveApplication.status).where(
                        LeaveApplication.id == application_id
                    )
                )
            ).scalar_one_or_none()
            logger.info(
                "Lost race to %s application %s; now %s",
                action, application_id, getattr(observed, "value", observed),
            )
            raise InvalidTransitionError(observed or current, action)

        logger.info(
            "Application %s: %s -> %s (version %d)",
            application_id, current.value, target.value, application.version,
        )

    @staticmethod
    async def approve(
        db: AsyncSession,
        application: LeaveApplication,
        reviewer: CallerIdentity,
        comment: Optional[str] = None,
    ) -> NotificationIntent:
        """Mark the application approved and return the applicant's intent.

        The balance debit must already have happened in the same unit of work.
        """
        def _stamp(app: LeaveApplication) -> None:
            app.action_date = utcnow()
            app.reviewer_comment = _clean_comment(comment)
            app.reviewed_by = reviewer.id

        await ApplicationStateMachine._apply(
            db, application, LeaveStatus.approved, "approve", _stamp,
        )
        return _decision_intent(application, NotificationKind.approved, reviewer)

    @staticmethod
    async def reject(
        db: AsyncSession,
        application: LeaveApplication,
        reviewer: CallerIdentity,
        comment: Optional[str] = None,
    ) -> NotificationIntent:
        def _stamp(app: LeaveApplication) -> None:
            app.action_date = utcnow()
            app.reviewer_comment = _clean_comment(comment)
            app.reviewed_by = reviewer.id

        await ApplicationStateMachine._apply(
            db, application, LeaveStatus.rejected, "reject", _stamp,
        )
        return _decision_intent(application, NotificationKind.rejected, reviewer)

    @staticmethod
    async def cancel(
        db: AsyncSession,
        application: LeaveApplication,
    ) -> None:
        """Withdraw a pending application. No ledger change and no intent."""
        def _clear(app: LeaveApplication) -> None:
            app.action_date = None
            app.reviewer_comment = None
            app.reviewed_by = None

        await ApplicationStateMachine._apply(
            db, application, LeaveStatus.cancelled, "cancel", _clear,
        )
