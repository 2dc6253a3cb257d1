"""Leave router — apply, approve/reject, ledger status, overtime, accrual, promotion.

All endpoints require authentication. HR-specific endpoints enforce role checks.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.auth.dependencies import get_current_user, has_role, require_role
from leave_engine.auth.schemas import CurrentUser
from leave_engine.common.constants import LeaveCategory, LeaveStatus, UserRole
from leave_engine.common.exceptions import ForbiddenException
from leave_engine.common.pagination import PaginatedResponse, PaginationParams
from leave_engine.common.rate_limit import limiter
from leave_engine.database import get_db
from leave_engine.dependencies import get_calendar_publisher, get_holiday_classifier
from leave_engine.holidays.classifier import HolidayClassifier
from leave_engine.leave.schemas import (
    AccrualRunOut,
    AccrualRunRequest,
    AvailabilityOut,
    AvailabilityRequest,
    LeaveApplicationOut,
    LeaveApplyRequest,
    LeaveDecisionRequest,
    LeaveRequestOut,
    LedgerAdjustRequest,
    LedgerGrantRequest,
    LedgerOut,
    LegalEntitlementOut,
    OvertimeCreditCreate,
    OvertimeCreditOut,
    PromotionStatusOut,
)
from leave_engine.leave.service import LeaveService
from leave_engine.notifications.calendar import CalendarPublisher

router = APIRouter(prefix="", tags=["leave"])

_hr_only = require_role(UserRole.hr_admin, UserRole.system_admin)


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveApplicationOut, status_code=201)
@limiter.limit("20/minute")
async def apply_leave(
    request: Request,
    body: LeaveApplyRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Fails fast when the balance cannot cover the request."""
    return await LeaveService.apply_leave(db, user.employee_id, body)


# ── GET /status ─────────────────────────────────────────────────────

@router.get("/status", response_model=LedgerOut)
async def my_status(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's ledger snapshot."""
    return await LeaveService.get_leave_status(db, user.employee_id)


@router.get("/status/{employee_id}", response_model=LedgerOut)
async def employee_status(
    employee_id: uuid.UUID,
    user: CurrentUser = Depends(_hr_only),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_status(db, employee_id)


# ── POST /availability ──────────────────────────────────────────────

@router.post("/availability", response_model=AvailabilityOut)
async def check_availability(
    body: AvailabilityRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Whether the caller could apply for *amount* of a category right now."""
    return await LeaveService.check_availability(db, user.employee_id, body)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=PaginatedResponse[LeaveRequestOut])
async def list_requests(
    status: Optional[LeaveStatus] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Own requests for employees; any employee's for HR."""
    if not has_role(user, UserRole.hr_admin):
        if employee_id is not None and employee_id != user.employee_id:
            raise ForbiddenException("You can only view your own leave requests.")
        employee_id = user.employee_id
    return await LeaveService.list_leave_requests(
        db, pagination, employee_id=employee_id, status=status,
    )


# ── PUT /requests/{id}/approve ──────────────────────────────────────

@router.put("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_request(
    request_id: uuid.UUID,
    body: Optional[LeaveDecisionRequest] = None,
    user: CurrentUser = Depends(_hr_only),
    db: AsyncSession = Depends(get_db),
    publisher: CalendarPublisher = Depends(get_calendar_publisher),
):
    """Approve a pending request; rejects it instead if the balance has drifted."""
    return await LeaveService.approve_leave(
        db,
        request_id,
        user.employee_id,
        notes=body.notes if body else None,
        publisher=publisher,
    )


# ── PUT /requests/{id}/reject ───────────────────────────────────────

@router.put("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_request(
    request_id: uuid.UUID,
    body: Optional[LeaveDecisionRequest] = None,
    user: CurrentUser = Depends(_hr_only),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.reject_leave(
        db, request_id, user.employee_id, notes=body.notes if body else None,
    )


# ── POST /overtime ──────────────────────────────────────────────────

@router.post("/overtime", response_model=OvertimeCreditOut, status_code=201)
async def credit_overtime(
    body: OvertimeCreditCreate,
    user: CurrentUser = Depends(_hr_only),
    db: AsyncSession = Depends(get_db),
    classifier: HolidayClassifier = Depends(get_holiday_classifier),
):
    """Convert a worked rest day into substitute / compensatory hours."""
    return await LeaveService.credit_overtime(db, body, user.employee_id, classifier)


# ── POST /ledger/{employee_id}/grant ────────────────────────────────

@router.post("/ledger/{employee_id}/grant", response_model=LedgerOut)
async def grant_leave(
    employee_id: uuid.UUID,
    body: LedgerGrantRequest,
    user: CurrentUser = Depends(_hr_only),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.grant_leave(db, employee_id, body, user.employee_id)


# ── POST /ledger/{employee_id}/adjust ───────────────────────────────

@router.post("/ledger/{employee_id}/adjust", response_model=LedgerOut)
async def adjust_ledger(
    employee_id: uuid.UUID,
    body: LedgerAdjustRequest,
    user: CurrentUser = Depends(_hr_only),
    db: AsyncSession = Depends(get_db),
):
    """Correct a granted entitlement, used days or an hour balance, up or down."""
    return await LeaveService.adjust_ledger(db, employee_id, body, user.employee_id)


# ── POST /accrual/run ───────────────────────────────────────────────

@router.post("/accrual/run", response_model=AccrualRunOut)
async def run_accrual(
    body: Optional[AccrualRunRequest] = None,
    user: CurrentUser = Depends(_hr_only),
    db: AsyncSession = Depends(get_db),
):
    """Recompute annual entitlements and open a new leave period."""
    as_of = body.as_of if body else None
    return await LeaveService.run_annual_accrual(db, as_of, actor_id=user.employee_id)


# ── Promotion ───────────────────────────────────────────────────────

@router.get("/promotion-targets", response_model=list[PromotionStatusOut])
async def promotion_targets(
    as_of: Optional[date] = Query(None),
    user: CurrentUser = Depends(_hr_only),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.find_promotion_targets(db, as_of)


@router.get("/promotion-status", response_model=PromotionStatusOut)
async def promotion_status(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_promotion_status(db, user.employee_id)


# ── GET /legal-entitlements ─────────────────────────────────────────

@router.get("/legal-entitlements", response_model=list[LegalEntitlementOut])
async def legal_entitlements(
    category: Optional[LeaveCategory] = Query(None),
    user: CurrentUser = Depends(get_current_user),
):
    """Statutory family-event and civil-duty entitlements."""
    return LeaveService.list_legal_entitlements(category)
