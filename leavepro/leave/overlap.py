"""Overlap checks between an employee's leave applications.

Ranges are inclusive on both ends, so applications that merely touch
(one ends on the day the other starts) do overlap. Only pending and
approved applications hold a claim on the calendar.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from sqlalchemy import Select, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavepro.common.constants import ACTIVE_LEAVE_STATUSES
from leavepro.leave.models import LeaveApplication


def _overlap_clause(
    employee_id: uuid.UUID,
    start: date,
    end: date,
    exclude_application_id: Optional[uuid.UUID],
) -> list:
    clauses = [
        LeaveApplication.employee_id == employee_id,
        LeaveApplication.status.in_(ACTIVE_LEAVE_STATUSES),
        LeaveApplication.start_date <= end,
        LeaveApplication.end_date >= start,
    ]
    if exclude_application_id is not None:
        clauses.append(LeaveApplication.id != exclude_application_id)
    return clauses


class OverlapChecker:

    @staticmethod
    def conflicts_query(
        employee_id: uuid.UUID,
        start: date,
        end: date,
        exclude_application_id: Optional[uuid.UUID] = None,
    ) -> Select:
        return (
            select(LeaveApplication)
            .where(*_overlap_clause(employee_id, start, end, exclude_application_id))
            .order_by(LeaveApplication.start_date)
        )

    @staticmethod
    async def has_conflict(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start: date,
        end: date,
        exclude_application_id: Optional[uuid.UUID] = None,
    ) -> bool:
        result = await db.execute(
            select(
                exists().where(
                    *_overlap_clause(employee_id, start, end, exclude_application_id)
                )
            )
        )
        return bool(result.scalar())

    @staticmethod
    async def find_conflicts(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start: date,
        end: date,
        exclude_application_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveApplication]:
        result = await db.execute(
            OverlapChecker.conflicts_query(
                employee_id, start, end, exclude_application_id
            )
        )
        return list(result.scalars().all())
