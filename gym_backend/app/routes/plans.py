"""API routes for the per-gym membership plan catalog."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..auth import StaffContext, get_current_staff, require_admin
from ..schemas.membership import MessageResponse, PlanListResponse, PlanRequest, PlanResponse
from ..services.membership import get_membership_service


router = APIRouter(prefix="/api/plans", tags=["plans"])


@router.get("", response_model=PlanListResponse)
def list_plans(*, staff: StaffContext = Depends(get_current_staff)) -> PlanListResponse:
    service = get_membership_service()
    return PlanListResponse(plans=list(service.list_plans(staff.gym_id)))


@router.post("", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
def create_plan(
    payload: PlanRequest,
    *,
    staff: StaffContext = Depends(require_admin),
) -> PlanResponse:
    service = get_membership_service()
    plan = service.create_plan(
        staff.gym_id,
        name=payload.name,
        duration_months=payload.duration_months,
        price=payload.price,
        description=payload.description,
        features=payload.features,
        actor_id=staff.user_id,
    )
    return PlanResponse(message="Membership plan created successfully", plan=plan)


@router.put("/{plan_id}", response_model=PlanResponse)
def update_plan(
    plan_id: str,
    payload: PlanRequest,
    *,
    staff: StaffContext = Depends(require_admin),
) -> PlanResponse:
    service = get_membership_service()
    plan = service.update_plan(
        staff.gym_id,
        plan_id,
        name=payload.name,
        duration_months=payload.duration_months,
        price=payload.price,
        description=payload.description,
        features=payload.features,
        actor_id=staff.user_id,
    )
    return PlanResponse(message="Membership plan updated successfully", plan=plan)


@router.delete("/{plan_id}", response_model=MessageResponse)
def delete_plan(
    plan_id: str,
    *,
    staff: StaffContext = Depends(require_admin),
) -> MessageResponse:
    service = get_membership_service()
    service.delete_plan(staff.gym_id, plan_id, actor_id=staff.user_id)
    return MessageResponse(message="Membership plan deleted successfully")
