"""Leave ORM models: LeaveType, LeaveBalance, LeaveApplication."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavepro.common.constants import LeaveStatus
from leavepro.database import Base, utcnow

if TYPE_CHECKING:
    from leavepro.core_hr.models import Employee


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    max_per_year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )

    __table_args__ = (
        sa.CheckConstraint("max_per_year >= 0", name="ck_leave_type_max_non_negative"),
    )

    # Relationships
    balances: Mapped[list[LeaveBalance]] = relationship(
        back_populates="leave_type", passive_deletes=True,
    )
    applications: Mapped[list[LeaveApplication]] = relationship(
        back_populates="leave_type"
    )

    def __repr__(self) -> str:
        return f"<LeaveType {self.name!r} max={self.max_per_year}>"


class LeaveBalance(Base):
    """Per-employee, per-leave-type entitlement ledger row."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type_id", name="uq_leave_balance"
        ),
        sa.CheckConstraint("used >= 0", name="ck_leave_balance_used"),
        sa.CheckConstraint("remaining >= 0", name="ck_leave_balance_remaining"),
        sa.CheckConstraint(
            "remaining = total_assigned - used", name="ck_leave_balance_ledger"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_types.id", ondelete="CASCADE"),
        nullable=False,
    )
    total_assigned: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    used: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    remaining: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        server_default=sa.func.now(),
        onupdate=utcnow,
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="leave_balances")
    leave_type: Mapped[LeaveType] = relationship(back_populates="balances")

    def __repr__(self) -> str:
        return (
            f"<LeaveBalance emp={self.employee_id} type={self.leave_type_id} "
            f"{self.used}/{self.total_assigned} remaining={self.remaining}>"
        )


class LeaveApplication(Base):
    """A leave request moving from pending to exactly one terminal status.

    ``version`` is the optimistic-lock counter: every UPDATE issued by the
    ORM carries ``WHERE version = :seen`` and bumps it.
    """

    __tablename__ = "leave_applications"
    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_application_dates"),
        sa.CheckConstraint("total_days >= 1", name="ck_leave_application_days"),
        sa.Index("ix_leave_applications_employee_dates", "employee_id", "start_date", "end_date"),
        sa.Index("ix_leave_applications_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    reviewer_comment: Mapped[Optional[str]] = mapped_column(sa.Text)
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id", ondelete="SET NULL")
    )
    applied_on: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )
    action_date: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    employee: Mapped[Employee] = relationship(
        back_populates="leave_applications", foreign_keys=[employee_id]
    )
    leave_type: Mapped[LeaveType] = relationship(back_populates="applications")

    def __repr__(self) -> str:
        return (
            f"<LeaveApplication {self.id} {self.start_date}..{self.end_date} "
            f"{self.status.value}>"
        )
