"""API schemas for membership, billing and plan catalog endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..membership import (
    DuePaymentResult,
    Member,
    MemberPage,
    MemberUpdate,
    MembershipPlan,
    RenewalRecord,
    TransferResult,
)
from ..membership.models import Money


class SignupRequest(BaseModel):
    name: Optional[str] = None
    number: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    email: Optional[str] = None
    membership_type: Optional[str] = Field(alias="membershipType", default=None)
    membership_amount: Optional[Decimal] = Field(alias="membershipAmount", default=None)
    membership_due_amount: Optional[Decimal] = Field(alias="membershipDueAmount", default=None)
    payment_status: Optional[str] = Field(alias="paymentStatus", default=None)
    payment_mode: Optional[str] = Field(alias="paymentMode", default=None)
    payment_date: Optional[datetime] = Field(alias="paymentDate", default=None)

    model_config = ConfigDict(populate_by_name=True)


class RenewRequest(BaseModel):
    number: Optional[str] = None
    membership_type: Optional[str] = Field(alias="membershipType", default=None)
    membership_amount: Optional[Decimal] = Field(alias="membershipAmount", default=None)
    membership_due_amount: Optional[Decimal] = Field(alias="membershipDueAmount", default=None)
    payment_status: Optional[str] = Field(alias="paymentStatus", default=None)
    payment_mode: Optional[str] = Field(alias="paymentMode", default=None)

    model_config = ConfigDict(populate_by_name=True)


class PayDueRequest(BaseModel):
    number: Optional[str] = None
    amount_paid: Optional[Decimal] = Field(alias="amountPaid", default=None)
    payment_mode: Optional[str] = Field(alias="paymentMode", default=None)

    model_config = ConfigDict(populate_by_name=True)


class MemberUpdateRequest(BaseModel):
    name: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    email: Optional[str] = None
    membership_type: Optional[str] = Field(alias="membershipType", default=None)
    membership_amount: Optional[Decimal] = Field(alias="membershipAmount", default=None)
    membership_due_amount: Optional[Decimal] = Field(alias="membershipDueAmount", default=None)
    payment_status: Optional[str] = Field(alias="paymentStatus", default=None)
    payment_mode: Optional[str] = Field(alias="paymentMode", default=None)
    start_date: Optional[datetime] = Field(alias="startDate", default=None)

    model_config = ConfigDict(populate_by_name=True)

    def to_update(self) -> MemberUpdate:
        """Carry over only the fields the caller actually sent."""

        return MemberUpdate(**{name: getattr(self, name) for name in self.model_fields_set})


class TransferRequest(BaseModel):
    source_number: Optional[str] = Field(alias="sourceNumber", default=None)
    target_number: Optional[str] = Field(alias="targetNumber", default=None)

    model_config = ConfigDict(populate_by_name=True)


class ComplimentaryDaysRequest(BaseModel):
    number: Optional[str] = None
    days: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True)


class JournalCorrectionRequest(BaseModel):
    membership_type: Optional[str] = Field(alias="membershipType", default=None)
    membership_amount: Optional[Decimal] = Field(alias="membershipAmount", default=None)
    payment_status: Optional[str] = Field(alias="paymentStatus", default=None)
    payment_mode: Optional[str] = Field(alias="paymentMode", default=None)

    model_config = ConfigDict(populate_by_name=True)


class PlanRequest(BaseModel):
    name: Optional[str] = None
    duration_months: Optional[int] = Field(alias="durationMonths", default=None)
    price: Optional[Decimal] = None
    description: str = ""
    features: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(BaseModel):
    message: str


class MemberResponse(BaseModel):
    message: str
    member: Member


class MemberListResponse(BaseModel):
    members: List[Member]
    total: int
    page: int
    total_pages: int = Field(alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_page(cls, page: MemberPage) -> "MemberListResponse":
        return cls(members=page.members, total=page.total, page=page.page, total_pages=page.total_pages)


class MemberSearchResponse(BaseModel):
    members: List[Member]


class DuePaymentResponse(BaseModel):
    message: str
    member: Member
    record: RenewalRecord
    amount_paid: Money = Field(alias="amountPaid")
    remaining_due: Money = Field(alias="remainingDue")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: DuePaymentResult) -> "DuePaymentResponse":
        return cls(
            message="Due payment processed successfully",
            member=result.member,
            record=result.record,
            amount_paid=result.amount_paid,
            remaining_due=result.remaining_due,
        )


class TransferResponse(BaseModel):
    message: str
    source: Member
    target: Member
    days_transferred: float = Field(alias="daysTransferred")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: TransferResult) -> "TransferResponse":
        return cls(
            message="Membership days transferred successfully",
            source=result.source,
            target=result.target,
            days_transferred=result.days_transferred,
        )


class RenewalRecordResponse(BaseModel):
    message: str
    record: RenewalRecord


class RenewalRecordListResponse(BaseModel):
    records: List[RenewalRecord]


class PlanResponse(BaseModel):
    message: str
    plan: MembershipPlan


class PlanListResponse(BaseModel):
    plans: List[MembershipPlan]


__all__ = [
    "ComplimentaryDaysRequest",
    "DuePaymentResponse",
    "JournalCorrectionRequest",
    "MemberListResponse",
    "MemberResponse",
    "MemberSearchResponse",
    "MemberUpdateRequest",
    "MessageResponse",
    "PayDueRequest",
    "PlanListResponse",
    "PlanRequest",
    "PlanResponse",
    "RenewRequest",
    "RenewalRecordListResponse",
    "RenewalRecordResponse",
    "SignupRequest",
    "TransferRequest",
]
