"""Enums and constants for Leave Pro — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# Statuses that still hold a claim on the calendar.
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.approved,
)


# ── Notifications ───────────────────────────────────────────────────

class NotificationKind(str, enum.Enum):
    applied = "applied"
    approved = "approved"
    rejected = "rejected"


# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%d-%b-%Y"          # 05-Jan-2026
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
