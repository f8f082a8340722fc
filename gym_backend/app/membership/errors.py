"""Domain errors raised by membership and billing operations."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class MembershipError(Exception):
    """Base error surfaced to API callers as ``{"message": ...}``."""

    message: str
    detail: Optional[Mapping[str, Any]] = None

    code: ClassVar[str] = "membership_error"
    status_code: ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __post_init__(self) -> None:
        base_payload: Dict[str, Any] = {"message": self.message}
        if self.detail:
            base_payload.update(self.detail)
        object.__setattr__(self, "_payload", base_payload)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class ValidationError(MembershipError):
    """Missing or malformed input."""

    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(MembershipError):
    """Member, plan or journal record absent for the tenant."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(MembershipError):
    """Duplicate member or plan name."""

    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InvariantViolation(MembershipError):
    """The request is well formed but the ledger state does not allow it."""

    code = "invariant_violation"
    status_code = status.HTTP_400_BAD_REQUEST


class UnexpectedError(MembershipError):
    """Storage or other unexpected failure."""

    code = "unexpected_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


__all__ = [
    "ConflictError",
    "InvariantViolation",
    "MembershipError",
    "NotFoundError",
    "UnexpectedError",
    "ValidationError",
]
