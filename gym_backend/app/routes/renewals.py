"""API routes for renewals, due payments and the renewal journal."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import StaffContext, get_current_staff, require_admin
from ..schemas.membership import (
    DuePaymentResponse,
    JournalCorrectionRequest,
    MemberResponse,
    MessageResponse,
    PayDueRequest,
    RenewalRecordListResponse,
    RenewalRecordResponse,
    RenewRequest,
)
from ..services.membership import get_membership_service


router = APIRouter(prefix="/api", tags=["renewals"])


@router.post("/renew", response_model=MemberResponse)
def renew_membership(
    payload: RenewRequest,
    *,
    staff: StaffContext = Depends(get_current_staff),
) -> MemberResponse:
    service = get_membership_service()
    member = service.renew(
        staff.gym_id,
        payload.number,
        membership_type=payload.membership_type,
        membership_amount=payload.membership_amount,
        membership_due_amount=payload.membership_due_amount,
        payment_status=payload.payment_status,
        payment_mode=payload.payment_mode,
        actor_id=staff.user_id,
    )
    return MemberResponse(message="Membership renewed successfully", member=member)


@router.post("/pay-due", response_model=DuePaymentResponse)
def pay_due(
    payload: PayDueRequest,
    *,
    staff: StaffContext = Depends(get_current_staff),
) -> DuePaymentResponse:
    service = get_membership_service()
    result = service.pay_due(
        staff.gym_id,
        payload.number,
        amount_paid=payload.amount_paid,
        payment_mode=payload.payment_mode,
        actor_id=staff.user_id,
    )
    return DuePaymentResponse.from_result(result)


@router.get("/renew", response_model=RenewalRecordListResponse)
def list_journal(*, staff: StaffContext = Depends(get_current_staff)) -> RenewalRecordListResponse:
    service = get_membership_service()
    return RenewalRecordListResponse(records=list(service.list_journal(staff.gym_id)))


@router.get("/renew/{number}", response_model=RenewalRecordListResponse)
def list_member_journal(
    number: str,
    *,
    staff: StaffContext = Depends(get_current_staff),
) -> RenewalRecordListResponse:
    service = get_membership_service()
    return RenewalRecordListResponse(records=list(service.list_member_journal(staff.gym_id, number)))


@router.put("/renew/{record_id}", response_model=RenewalRecordResponse)
def correct_journal_record(
    record_id: str,
    payload: JournalCorrectionRequest,
    *,
    staff: StaffContext = Depends(require_admin),
) -> RenewalRecordResponse:
    service = get_membership_service()
    record = service.correct_journal_record(
        staff.gym_id,
        record_id,
        membership_type=payload.membership_type,
        amount=payload.membership_amount,
        payment_status=payload.payment_status,
        payment_mode=payload.payment_mode,
        actor_id=staff.user_id,
    )
    return RenewalRecordResponse(message="Renew record updated successfully", record=record)


@router.delete("/renew/{record_id}", response_model=MessageResponse)
def delete_journal_record(
    record_id: str,
    *,
    staff: StaffContext = Depends(require_admin),
) -> MessageResponse:
    service = get_membership_service()
    service.delete_journal_record(staff.gym_id, record_id, actor_id=staff.user_id)
    return MessageResponse(message="Renew record deleted successfully")
