"""Membership domain package: plan catalog, member ledger and renewal journal."""

from .errors import (
    ConflictError,
    InvariantViolation,
    MembershipError,
    NotFoundError,
    UnexpectedError,
    ValidationError,
)
from .models import (
    DuePaymentResult,
    Gender,
    Member,
    MemberPage,
    MemberStatus,
    MemberUpdate,
    MembershipAuditEvent,
    MembershipAuditEventType,
    MembershipPlan,
    PaymentMode,
    PaymentStatus,
    PaymentType,
    RenewalRecord,
    StaffRole,
    SweepSummary,
    TransferResult,
)
from .service import MembershipEventLogger, MembershipRepository, MembershipService

__all__ = [
    "ConflictError",
    "DuePaymentResult",
    "Gender",
    "InvariantViolation",
    "Member",
    "MemberPage",
    "MemberStatus",
    "MemberUpdate",
    "MembershipAuditEvent",
    "MembershipAuditEventType",
    "MembershipError",
    "MembershipEventLogger",
    "MembershipPlan",
    "MembershipRepository",
    "MembershipService",
    "NotFoundError",
    "PaymentMode",
    "PaymentStatus",
    "PaymentType",
    "RenewalRecord",
    "StaffRole",
    "SweepSummary",
    "TransferResult",
    "UnexpectedError",
    "ValidationError",
]
