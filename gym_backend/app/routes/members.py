"""API routes for member signup, member records and day adjustments."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from ..auth import StaffContext, get_current_staff, require_admin
from ..schemas.membership import (
    ComplimentaryDaysRequest,
    MemberListResponse,
    MemberResponse,
    MemberSearchResponse,
    MemberUpdateRequest,
    MessageResponse,
    SignupRequest,
    TransferRequest,
    TransferResponse,
)
from ..services.membership import get_membership_service


router = APIRouter(prefix="/api", tags=["members"])


@router.post("/signup", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def signup(
    payload: SignupRequest,
    *,
    staff: StaffContext = Depends(get_current_staff),
) -> MemberResponse:
    service = get_membership_service()
    member = service.signup(
        staff.gym_id,
        name=payload.name,
        number=payload.number,
        gender=payload.gender,
        age=payload.age,
        email=payload.email,
        membership_type=payload.membership_type,
        membership_amount=payload.membership_amount,
        membership_due_amount=payload.membership_due_amount,
        payment_status=payload.payment_status,
        payment_mode=payload.payment_mode,
        payment_date=payload.payment_date,
        actor_id=staff.user_id,
    )
    return MemberResponse(message="Member created successfully", member=member)


@router.get("/members", response_model=MemberListResponse)
def list_members(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    *,
    staff: StaffContext = Depends(get_current_staff),
) -> MemberListResponse:
    service = get_membership_service()
    return MemberListResponse.from_page(service.list_members(staff.gym_id, page=page, limit=limit))


@router.get("/members/search", response_model=MemberSearchResponse)
def search_members(
    q: str = Query(..., min_length=1, description="Name, email or phone number fragment"),
    *,
    staff: StaffContext = Depends(get_current_staff),
) -> MemberSearchResponse:
    service = get_membership_service()
    return MemberSearchResponse(members=list(service.search_members(staff.gym_id, q)))


@router.get("/members/{number}", response_model=MemberResponse)
def get_member(
    number: str,
    *,
    staff: StaffContext = Depends(get_current_staff),
) -> MemberResponse:
    service = get_membership_service()
    return MemberResponse(message="Member found", member=service.get_member(staff.gym_id, number))


@router.put("/members/{number}", response_model=MemberResponse)
def update_member(
    number: str,
    payload: MemberUpdateRequest,
    *,
    staff: StaffContext = Depends(get_current_staff),
) -> MemberResponse:
    service = get_membership_service()
    member = service.update_member(staff.gym_id, number, payload.to_update(), actor_id=staff.user_id)
    return MemberResponse(message="Member updated successfully", member=member)


@router.delete("/members/{number}", response_model=MessageResponse)
def delete_member(
    number: str,
    *,
    staff: StaffContext = Depends(require_admin),
) -> MessageResponse:
    service = get_membership_service()
    service.delete_member(staff.gym_id, number, actor_id=staff.user_id)
    return MessageResponse(message="Member deleted successfully")


@router.post("/transfer", response_model=TransferResponse)
def transfer_days(
    payload: TransferRequest,
    *,
    staff: StaffContext = Depends(get_current_staff),
) -> TransferResponse:
    service = get_membership_service()
    result = service.transfer_days(
        staff.gym_id,
        source_number=payload.source_number,
        target_number=payload.target_number,
        actor_id=staff.user_id,
    )
    return TransferResponse.from_result(result)


@router.post("/complimentary-days", response_model=MemberResponse)
def grant_complimentary_days(
    payload: ComplimentaryDaysRequest,
    *,
    staff: StaffContext = Depends(get_current_staff),
) -> MemberResponse:
    service = get_membership_service()
    member = service.grant_complimentary_days(
        staff.gym_id,
        payload.number,
        days=payload.days,
        actor_id=staff.user_id,
    )
    return MemberResponse(message=f"Added {payload.days} complimentary days", member=member)
