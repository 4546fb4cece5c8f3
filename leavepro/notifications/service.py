"""Notification service — in-app sink for intents plus the read API."""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leavepro.common.exceptions import NotFoundError
from leavepro.common.pagination import PaginationMeta, PaginationParams
from leavepro.common.transaction import unit_of_work
from leavepro.database import utcnow
from leavepro.notifications.intents import NotificationIntent
from leavepro.notifications.models import Notification
from leavepro.notifications.schemas import (
    NotificationListMeta,
    NotificationListResponse,
    NotificationResponse,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """Async notification operations."""

    # ─── Sink ───────────────────────────────────────────────────────

    @staticmethod
    async def record(
        db: AsyncSession,
        intents: Iterable[NotificationIntent],
    ) -> list[Notification]:
        """Persist intents as in-app notifications inside the caller's transaction.

        Only flushes; the surrounding unit of work commits.
        """
        rows = [
            Notification(
                recipient_id=intent.recipient_id,
                kind=intent.kind,
                title=intent.title,
                message=intent.message,
                entity_type="leave_application",
                entity_id=intent.application_id,
            )
            for intent in intents
        ]
        if rows:
            db.add_all(rows)
            await db.flush()
            logger.debug("Recorded %d notification(s)", len(rows))
        return rows

    # ─── Queries ────────────────────────────────────────────────────

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        employee_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        is_read: Optional[bool] = None,
    ) -> NotificationListResponse:
        """Return paginated notifications for an employee, newest first."""
        query = (
            select(Notification)
            .where(Notification.recipient_id == employee_id)
            .order_by(Notification.created_at.desc())
        )
        if is_read is not None:
            query = query.where(Notification.is_read == is_read)

        count_q = query.with_only_columns(func.count()).order_by(None)
        total: int = (await db.execute(count_q)).scalar_one()

        rows = (
            await db.execute(
                query.offset(pagination.offset).limit(pagination.page_size)
            )
        ).scalars().all()

        # Unread count is always unfiltered, for the badge.
        unread = await NotificationService.get_unread_count(db, employee_id)
        meta = PaginationMeta.build(
            page=pagination.page, page_size=pagination.page_size, total=total,
        )

        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in rows],
            meta=NotificationListMeta(**meta.model_dump(), unread=unread),
        )

    @staticmethod
    async def get_unread_count(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        """Return the number of unread notifications for an employee."""
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    # ─── Mutations ──────────────────────────────────────────────────

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        """Mark a single notification as read.

        Someone else's notification is reported as not found.
        """
        async with unit_of_work(db, "Marking notification read"):
            result = await db.execute(
                select(Notification).where(
                    Notification.id == notification_id,
                    Notification.recipient_id == employee_id,
                )
            )
            notification = result.scalars().first()
            if notification is None:
                raise NotFoundError("Notification", notification_id)

            if not notification.is_read:
                notification.is_read = True
                notification.read_at = utcnow()
            await db.flush()
        return notification

    @staticmethod
    async def mark_all_read(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        """Bulk-mark all unread notifications as read. Returns count updated."""
        async with unit_of_work(db, "Marking notifications read"):
            result = await db.execute(
                update(Notification)
                .where(
                    Notification.recipient_id == employee_id,
                    Notification.is_read.is_(False),
                )
                .values(is_read=True, read_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        return result.rowcount  # type: ignore[return-value]
