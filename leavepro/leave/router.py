"""Leave router — submit, review, cancel, balances, conflicts, leave types.

All endpoints require authentication. Catalog writes are admin-only; review
scope is enforced by the service and reported as 404.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from leavepro.auth.dependencies import get_current_identity, require_role
from leavepro.auth.schemas import CallerIdentity
from leavepro.common.constants import LeaveStatus, UserRole
from leavepro.common.pagination import PaginationParams
from leavepro.common.rate_limit import limiter
from leavepro.database import get_db
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
    ReviewRequest,
    TransitionResult,
)
from leavepro.leave.service import LeaveService, LeaveTypeService

router = APIRouter(prefix="", tags=["leave"])


# ── POST /applications ──────────────────────────────────────────────

@router.post("/applications", response_model=TransitionResult, status_code=201)
@limiter.limit("20/minute")
async def submit_application(
    request: Request,
    body: LeaveApplicationCreate,
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave application. Checks balance (advisory) and overlap."""
    return await LeaveService.submit(db, caller, body)


# ── GET /applications/mine ──────────────────────────────────────────

@router.get("/applications/mine", response_model=LeaveApplicationListResponse)
async def my_applications(
    status: Optional[LeaveStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """The authenticated user's applications, newest first."""
    return await LeaveService.list_applications_for_employee(
        db, caller.id, pagination, status=status,
    )


# ── GET /applications/pending ───────────────────────────────────────

@router.get("/applications/pending", response_model=list[LeaveApplicationOut])
async def pending_applications(
    caller: CallerIdentity = Depends(require_role(UserRole.manager, UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Pending applications the caller may approve or reject."""
    return await LeaveService.list_pending_for_reviewer(db, caller)


# ── GET /applications/{id} ──────────────────────────────────────────

@router.get("/applications/{application_id}", response_model=LeaveApplicationOut)
async def get_application(
    application_id: uuid.UUID,
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_application(db, caller, application_id)


# ── PUT /applications/{id}/approve ──────────────────────────────────

@router.put("/applications/{application_id}/approve", response_model=TransitionResult)
async def approve_application(
    application_id: uuid.UUID,
    body: Optional[ReviewRequest] = None,
    caller: CallerIdentity = Depends(require_role(UserRole.manager, UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending application and debit the applicant's balance."""
    return await LeaveService.approve(
        db, caller, application_id, body.comment if body else None,
    )


# ── PUT /applications/{id}/reject ───────────────────────────────────

@router.put("/applications/{application_id}/reject", response_model=TransitionResult)
async def reject_application(
    application_id: uuid.UUID,
    body: Optional[ReviewRequest] = None,
    caller: CallerIdentity = Depends(require_role(UserRole.manager, UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending application. The balance is untouched."""
    return await LeaveService.reject(
        db, caller, application_id, body.comment if body else None,
    )


# ── PUT /applications/{id}/cancel ───────────────────────────────────

@router.put("/applications/{application_id}/cancel", response_model=TransitionResult)
async def cancel_application(
    application_id: uuid.UUID,
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw one of the caller's own pending applications."""
    return await LeaveService.cancel(db, caller, application_id)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def my_balances(
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_balances(db, caller.id)


# ── GET /conflicts ──────────────────────────────────────────────────

@router.get("/conflicts", response_model=ConflictCheckOut)
async def check_conflicts(
    start_date: date = Query(...),
    end_date: date = Query(...),
    exclude_application_id: Optional[uuid.UUID] = Query(None),
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Would the given range overlap one of the caller's active applications?"""
    return await LeaveService.check_conflict(
        db, caller.id, start_date, end_date, exclude_application_id,
    )


# ── Leave types ─────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeService.list_leave_types(db)


@router.post("/types", response_model=LeaveTypeOut, status_code=201)
async def create_leave_type(
    body: LeaveTypeCreate,
    caller: CallerIdentity = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Create a leave type and provision balances for eligible employees."""
    return await LeaveTypeService.create_leave_type(db, body, actor_id=caller.id)


@router.put("/types/{leave_type_id}", response_model=LeaveTypeUpdateOut)
async def update_leave_type(
    leave_type_id: uuid.UUID,
    body: LeaveTypeUpdate,
    caller: CallerIdentity = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Rename or re-cap a leave type; a new cap re-bases every balance."""
    return await LeaveTypeService.update_leave_type(
        db, leave_type_id, body, actor_id=caller.id,
    )


@router.delete("/types/{leave_type_id}", status_code=204)
async def delete_leave_type(
    leave_type_id: uuid.UUID,
    caller: CallerIdentity = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    await LeaveTypeService.delete_leave_type(db, leave_type_id, actor_id=caller.id)
    return Response(status_code=204)
