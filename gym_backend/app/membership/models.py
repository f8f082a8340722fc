"""Domain models for the membership ledger, plan catalog and payment journal."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator

from .dates import days_between

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

ZERO = Decimal("0")


class MemberStatus(str, Enum):
    """Lifecycle status of a membership."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"
    EXPIRED = "Expired"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"


class PaymentMode(str, Enum):
    CASH = "Cash"
    CARD = "Card"
    ONLINE = "Online"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class PaymentType(str, Enum):
    """Kind of billing event captured by a journal entry."""

    MEMBERSHIP_RENEWAL = "Membership Renewal"
    DUE_PAYMENT = "Due Payment"


class StaffRole(str, Enum):
    """Closed set of roles a session token may carry."""

    ADMIN = "admin"
    STAFF = "staff"


class MembershipAuditEventType(str, Enum):
    """Audit event categories emitted by billing operations."""

    MEMBER_SIGNED_UP = "member_signed_up"
    MEMBERSHIP_RENEWED = "membership_renewed"
    DUE_PAID = "due_paid"
    MEMBER_UPDATED = "member_updated"
    MEMBER_DELETED = "member_deleted"
    DAYS_TRANSFERRED = "days_transferred"
    COMPLIMENTARY_DAYS_GRANTED = "complimentary_days_granted"
    JOURNAL_CORRECTED = "journal_corrected"
    JOURNAL_DELETED = "journal_deleted"
    PLAN_CREATED = "plan_created"
    PLAN_UPDATED = "plan_updated"
    PLAN_DELETED = "plan_deleted"


def derive_payment_status(total_due: Decimal) -> PaymentStatus:
    """``Paid`` when nothing is outstanding, ``Pending`` otherwise."""

    return PaymentStatus.PAID if total_due <= ZERO else PaymentStatus.PENDING


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MembershipPlan(BaseModel):
    """A named plan in a gym's catalog."""

    id: str
    gym_id: str
    name: str = Field(min_length=1)
    duration_months: int = Field(gt=0, description="Length of one membership period in months")
    price: Money = Field(ge=0)
    description: str = ""
    features: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped


class Member(BaseModel):
    """Current membership and billing state of a member (the ledger row)."""

    id: str = Field(description="Tenant scoped human readable identifier, e.g. KN12")
    gym_id: str
    name: str
    gender: Gender
    age: int = Field(ge=14)
    email: Optional[str] = None
    number: str = Field(description="Phone number, unique within the gym")
    plan_id: Optional[str] = Field(
        default=None,
        description="Catalog plan the snapshot below was taken from; None once the plan is deleted.",
    )
    membership_type: str
    membership_amount: Money = Field(ge=0)
    duration_months: int = Field(gt=0)
    total_paid: Money = ZERO
    total_due: Money = Field(default=ZERO, ge=0)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_mode: Optional[PaymentMode] = None
    payment_date: Optional[datetime] = None
    start_date: datetime
    end_date: datetime
    status: MemberStatus = MemberStatus.ACTIVE
    last_due_payment_date: Optional[datetime] = None
    last_due_payment_amount: Optional[Money] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    def days_remaining(self, now: datetime) -> float:
        """Fractional days until expiry, never negative."""

        return max(days_between(now, self.end_date), 0.0)


class RenewalRecord(BaseModel):
    """Journal entry written once per billing event."""

    id: str
    gym_id: str
    member_id: str
    member_number: str
    member_name: str
    membership_type: str
    amount: Money = Field(ge=0)
    due_amount: Money = Field(default=ZERO, ge=0)
    payment_status: PaymentStatus
    payment_mode: Optional[PaymentMode] = None
    end_date: datetime = Field(description="Membership end date at the time of the event")
    is_due_payment: bool = False
    payment_type: PaymentType = PaymentType.MEMBERSHIP_RENEWAL
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class MembershipAuditEvent(BaseModel):
    """Structured audit event for billing operations that bypass the journal or mutate it."""

    event_type: MembershipAuditEventType
    gym_id: str
    member_number: Optional[str] = None
    actor_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class MemberUpdate(BaseModel):
    """Partial update of a member; only fields that were explicitly set are applied."""

    name: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    email: Optional[str] = None
    membership_type: Optional[str] = None
    membership_amount: Optional[Decimal] = None
    membership_due_amount: Optional[Decimal] = None
    payment_status: Optional[str] = None
    payment_mode: Optional[str] = None
    start_date: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def marks_paid(self) -> bool:
        return bool(self.payment_status) and self.payment_status.strip().lower() == "paid"


class MemberPage(BaseModel):
    members: List[Member]
    total: int
    page: int
    total_pages: int

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class DuePaymentResult(BaseModel):
    member: Member
    record: RenewalRecord
    amount_paid: Money
    remaining_due: Money

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TransferResult(BaseModel):
    source: Member
    target: Member
    days_transferred: float

    model_config = ConfigDict(populate_by_name=True, frozen=True)


@dataclass
class SweepSummary:
    """Aggregated results for one expiry sweep."""

    examined: int = 0
    expired: int = 0
    failures: int = 0


__all__ = [
    "DuePaymentResult",
    "Gender",
    "Member",
    "MemberPage",
    "MemberStatus",
    "MemberUpdate",
    "MembershipAuditEvent",
    "MembershipAuditEventType",
    "MembershipPlan",
    "Money",
    "PaymentMode",
    "PaymentStatus",
    "PaymentType",
    "RenewalRecord",
    "StaffRole",
    "SweepSummary",
    "TransferResult",
    "ZERO",
    "derive_payment_status",
]
