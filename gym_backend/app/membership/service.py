"""Core service coordinating the member ledger, plan catalog and payment journal."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, ContextManager, Iterable, List, Optional, Protocol, Sequence, Type, TypeVar
from uuid import uuid4

from .dates import add_days, add_months, ensure_aware, later_of
from .errors import ConflictError, InvariantViolation, NotFoundError, ValidationError
from .models import (
    ZERO,
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
    SweepSummary,
    TransferResult,
    derive_payment_status,
)

logger = logging.getLogger("membership")

MIN_MEMBER_AGE = 14
MAX_PAGE_SIZE = 100
# Amounts are stored as NUMERIC(12, 2).
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999.99")

_E = TypeVar("_E")


class MembershipRepository(Protocol):
    """Persistence operations required by the membership service.

    Every lookup and mutation takes the gym id; there is no unscoped access to
    members, plans or journal entries. ``atomic`` yields a repository bound to a
    single transaction that commits on success and rolls back on error.
    """

    def atomic(self) -> ContextManager["MembershipRepository"]:
        ...

    def list_gym_ids(self) -> Sequence[str]:
        ...

    def get_plan(self, gym_id: str, plan_id: str) -> Optional[MembershipPlan]:
        ...

    def find_plan_by_name(self, gym_id: str, name: str) -> Optional[MembershipPlan]:
        ...

    def list_plans(self, gym_id: str) -> Sequence[MembershipPlan]:
        ...

    def insert_plan(self, plan: MembershipPlan) -> MembershipPlan:
        ...

    def update_plan(self, plan: MembershipPlan) -> MembershipPlan:
        ...

    def delete_plan(self, gym_id: str, plan_id: str) -> bool:
        ...

    def next_member_sequence(self, gym_id: str) -> int:
        ...

    def get_member(self, gym_id: str, number: str, *, for_update: bool = False) -> Optional[Member]:
        ...

    def list_members(self, gym_id: str, *, offset: int, limit: int) -> Sequence[Member]:
        ...

    def count_members(self, gym_id: str) -> int:
        ...

    def search_members(self, gym_id: str, term: str, *, limit: int) -> Sequence[Member]:
        ...

    def insert_member(self, member: Member) -> Member:
        ...

    def save_member(self, member: Member) -> Member:
        ...

    def delete_member(self, gym_id: str, number: str) -> bool:
        ...

    def list_expired_active_members(self, gym_id: str, now: datetime) -> Sequence[Member]:
        ...

    def mark_member_expired(self, gym_id: str, member_id: str, now: datetime) -> bool:
        ...

    def append_record(self, record: RenewalRecord) -> RenewalRecord:
        ...

    def get_record(self, gym_id: str, record_id: str) -> Optional[RenewalRecord]:
        ...

    def latest_record(self, gym_id: str, member_number: str) -> Optional[RenewalRecord]:
        ...

    def save_record(self, record: RenewalRecord) -> RenewalRecord:
        ...

    def list_records(self, gym_id: str) -> Sequence[RenewalRecord]:
        ...

    def list_member_records(self, gym_id: str, member_number: str) -> Sequence[RenewalRecord]:
        ...

    def delete_record(self, gym_id: str, record_id: str) -> bool:
        ...


class MembershipEventLogger(Protocol):
    """Captures structured audit events for billing operations."""

    def log(self, event: MembershipAuditEvent) -> None:
        ...


def _current_time(clock: Optional[Callable[[], datetime]]) -> datetime:
    if clock is None:
        return datetime.now(timezone.utc)
    return ensure_aware(clock())


def _parse_amount(value: object, field: str, *, default: Optional[Decimal] = None) -> Decimal:
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < ZERO:
        raise ValidationError(f"{field} must not be negative")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} must not exceed {MAX_AMOUNT}")
    if amount != amount.quantize(CENT):
        raise ValidationError(f"{field} must have at most two decimal places")
    return amount.quantize(CENT)


def _parse_enum(enum_type: Type[_E], value: object, field: str) -> _E:
    if isinstance(value, enum_type):
        return value
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    for member in enum_type:  # type: ignore[attr-defined]
        if member.value.lower() == text.lower():
            return member
    allowed = ", ".join(member.value for member in enum_type)  # type: ignore[attr-defined]
    raise ValidationError(f"{field} must be one of: {allowed}")


def _require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def _parse_age(value: object) -> int:
    try:
        age = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError("age must be a whole number") from exc
    if age < MIN_MEMBER_AGE:
        raise ValidationError(f"age must be at least {MIN_MEMBER_AGE}")
    return age


def _clean_features(features: Optional[Iterable[str]]) -> List[str]:
    return [feature.strip() for feature in (features or []) if feature and feature.strip()]

def _parse_duration(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError("duration_months must be a positive whole number")
    try:
        duration = int(value)
    except ValueError as exc:
        raise ValidationError("duration_months must be a positive whole number") from exc
    if duration <= 0:
        raise ValidationError("duration_months must be a positive whole number")
    return duration


@dataclass
class MembershipService:
    """Implements the membership lifecycle: plans, billing operations and expiry."""

    repository: MembershipRepository
    event_logger: MembershipEventLogger
    clock: Optional[Callable[[], datetime]] = None
    member_id_prefix: str = "KN"

    def _now(self) -> datetime:
        return _current_time(self.clock)

    # ------------------------------------------------------------------
    # Plan catalog
    # ------------------------------------------------------------------
    def create_plan(
        self,
        gym_id: str,
        *,
        name: str,
        duration_months: object,
        price: object,
        description: str = "",
        features: Optional[Iterable[str]] = None,
        actor_id: Optional[str] = None,
    ) -> MembershipPlan:
        plan_name = _require_text(name, "name")
        duration = _parse_duration(duration_months)
        plan_price = _parse_amount(price, "price")
        now = self._now()

        with self.repository.atomic() as repo:
            if repo.find_plan_by_name(gym_id, plan_name) is not None:
                raise ConflictError("A plan with this name already exists")
            plan = repo.insert_plan(
                MembershipPlan(
                    id=f"plan_{uuid4().hex}",
                    gym_id=gym_id,
                    name=plan_name,
                    duration_months=duration,
                    price=plan_price,
                    description=(description or "").strip(),
                    features=_clean_features(features),
                    created_at=now,
                    updated_at=now,
                )
            )

        self._log(MembershipAuditEventType.PLAN_CREATED, gym_id, actor_id=actor_id, plan_id=plan.id, name=plan.name)
        return plan

    def find_plan(self, gym_id: str, name: str) -> MembershipPlan:
        return self._require_plan(self.repository, gym_id, name)

    def list_plans(self, gym_id: str) -> Sequence[MembershipPlan]:
        return self.repository.list_plans(gym_id)

    def update_plan(
        self,
        gym_id: str,
        plan_id: str,
        *,
        name: str,
        duration_months: object,
        price: object,
        description: str = "",
        features: Optional[Iterable[str]] = None,
        actor_id: Optional[str] = None,
    ) -> MembershipPlan:
        plan_name = _require_text(name, "name")
        duration = _parse_duration(duration_months)
        plan_price = _parse_amount(price, "price")

        with self.repository.atomic() as repo:
            plan = repo.get_plan(gym_id, plan_id)
            if plan is None:
                raise NotFoundError("Membership plan not found")
            clash = repo.find_plan_by_name(gym_id, plan_name)
            if clash is not None and clash.id != plan.id:
                raise ConflictError("Another plan with this name already exists")
            updated = repo.update_plan(
                plan.model_copy(
                    update={
                        "name": plan_name,
                        "duration_months": duration,
                        "price": plan_price,
                        "description": (description or "").strip(),
                        "features": _clean_features(features),
                        "updated_at": self._now(),
                    }
                )
            )

        self._log(MembershipAuditEventType.PLAN_UPDATED, gym_id, actor_id=actor_id, plan_id=plan_id, name=updated.name)
        return updated

    def delete_plan(self, gym_id: str, plan_id: str, *, actor_id: Optional[str] = None) -> None:
        with self.repository.atomic() as repo:
            if not repo.delete_plan(gym_id, plan_id):
                raise NotFoundError("Membership plan not found")
        self._log(MembershipAuditEventType.PLAN_DELETED, gym_id, actor_id=actor_id, plan_id=plan_id)

    # ------------------------------------------------------------------
    # Billing operations
    # ------------------------------------------------------------------
    def signup(
        self,
        gym_id: str,
        *,
        name: str,
        number: str,
        gender: object,
        age: object,
        membership_type: str,
        membership_amount: object,
        payment_status: object,
        payment_mode: object,
        email: Optional[str] = None,
        membership_due_amount: object = None,
        payment_date: Optional[datetime] = None,
        actor_id: Optional[str] = None,
    ) -> Member:
        member_name = _require_text(name, "name")
        phone = _require_text(number, "number")
        plan_name = _require_text(membership_type, "membership_type")
        member_gender = _parse_enum(Gender, gender, "gender")
        member_age = _parse_age(age)
        _parse_enum(PaymentStatus, payment_status, "payment_status")
        mode = _parse_enum(PaymentMode, payment_mode, "payment_mode")
        amount = _parse_amount(membership_amount, "membership_amount")
        due = _parse_amount(membership_due_amount, "membership_due_amount", default=ZERO)
        if due > amount:
            raise ValidationError("membership_due_amount cannot exceed membership_amount")
        contact_email = (email or "").strip() or None

        now = self._now()
        start_date = ensure_aware(payment_date) if payment_date else now

        with self.repository.atomic() as repo:
            plan = self._require_plan(repo, gym_id, plan_name)
            if repo.get_member(gym_id, phone) is not None:
                raise ConflictError("Member already exists")

            end_date = add_months(start_date, plan.duration_months)
            sequence = repo.next_member_sequence(gym_id)
            member = repo.insert_member(
                Member(
                    id=f"{self.member_id_prefix}{sequence}",
                    gym_id=gym_id,
                    name=member_name,
                    gender=member_gender,
                    age=member_age,
                    email=contact_email,
                    number=phone,
                    plan_id=plan.id,
                    membership_type=plan.name,
                    membership_amount=amount,
                    duration_months=plan.duration_months,
                    total_paid=amount - due,
                    total_due=due,
                    payment_status=derive_payment_status(due),
                    payment_mode=mode,
                    payment_date=now,
                    start_date=start_date,
                    end_date=end_date,
                    status=MemberStatus.EXPIRED if end_date < now else MemberStatus.ACTIVE,
                    created_at=now,
                    updated_at=now,
                )
            )
            repo.append_record(self._renewal_entry(member, amount=amount, due=due, mode=mode, now=now))

        self._log(
            MembershipAuditEventType.MEMBER_SIGNED_UP,
            gym_id,
            member_number=member.number,
            actor_id=actor_id,
            member_id=member.id,
            plan=member.membership_type,
        )
        return member

    def renew(
        self,
        gym_id: str,
        number: str,
        *,
        membership_type: str,
        membership_amount: object,
        payment_mode: object,
        membership_due_amount: object = None,
        payment_status: object = None,
        actor_id: Optional[str] = None,
    ) -> Member:
        phone = _require_text(number, "number")
        plan_name = _require_text(membership_type, "membership_type")
        amount = _parse_amount(membership_amount, "membership_amount")
        due = _parse_amount(membership_due_amount, "membership_due_amount", default=ZERO)
        if due > amount:
            raise ValidationError("membership_due_amount cannot exceed membership_amount")
        if payment_status:
            _parse_enum(PaymentStatus, payment_status, "payment_status")
        mode = _parse_enum(PaymentMode, payment_mode, "payment_mode")

        now = self._now()
        with self.repository.atomic() as repo:
            member = self._require_member(repo, gym_id, phone, for_update=True)
            plan = self._require_plan(repo, gym_id, plan_name)

            current_expiry = later_of(member.end_date, now)
            new_end_date = add_months(current_expiry, plan.duration_months)
            updated = repo.save_member(
                member.model_copy(
                    update={
                        "plan_id": plan.id,
                        "membership_type": plan.name,
                        "membership_amount": amount,
                        "duration_months": plan.duration_months,
                        "payment_status": derive_payment_status(due),
                        "payment_date": now,
                        "payment_mode": mode,
                        "start_date": current_expiry,
                        "end_date": new_end_date,
                        "status": MemberStatus.ACTIVE,
                        "total_due": due,
                        "total_paid": member.total_paid + (amount - due),
                        "updated_at": now,
                    }
                )
            )
            repo.append_record(self._renewal_entry(updated, amount=amount, due=due, mode=mode, now=now))

        logger.info("Membership renewed for member %s at gym %s until %s", phone, gym_id, new_end_date.isoformat())
        self._log(
            MembershipAuditEventType.MEMBERSHIP_RENEWED,
            gym_id,
            member_number=phone,
            actor_id=actor_id,
            plan=updated.membership_type,
            end_date=new_end_date.isoformat(),
        )
        return updated

    def pay_due(
        self,
        gym_id: str,
        number: str,
        *,
        amount_paid: object,
        payment_mode: object,
        actor_id: Optional[str] = None,
    ) -> DuePaymentResult:
        phone = _require_text(number, "number")
        amount = _parse_amount(amount_paid, "amount_paid")
        if amount <= ZERO:
            raise ValidationError("Amount paid must be a positive number")
        mode = _parse_enum(PaymentMode, payment_mode, "payment_mode")

        now = self._now()
        with self.repository.atomic() as repo:
            member = self._require_member(repo, gym_id, phone, for_update=True)
            if member.total_due <= ZERO:
                raise InvariantViolation("Member has no due amount")
            if amount > member.total_due:
                raise InvariantViolation("Payment amount cannot be more than due amount")

            remaining = member.total_due - amount
            updated = repo.save_member(
                member.model_copy(
                    update={
                        "total_due": remaining,
                        "total_paid": member.total_paid + amount,
                        "payment_status": derive_payment_status(remaining),
                        "last_due_payment_date": now,
                        "last_due_payment_amount": amount,
                        "updated_at": now,
                    }
                )
            )
            record = repo.append_record(
                RenewalRecord(
                    id=f"rr_{uuid4().hex}",
                    gym_id=gym_id,
                    member_id=updated.id,
                    member_number=updated.number,
                    member_name=updated.name,
                    membership_type=updated.membership_type,
                    amount=amount,
                    due_amount=remaining,
                    payment_status=PaymentStatus.PAID,
                    payment_mode=mode,
                    end_date=updated.end_date,
                    is_due_payment=True,
                    payment_type=PaymentType.DUE_PAYMENT,
                    created_at=now,
                )
            )

        logger.info("Processed due payment of %s for member %s at gym %s", amount, phone, gym_id)
        self._log(
            MembershipAuditEventType.DUE_PAID,
            gym_id,
            member_number=phone,
            actor_id=actor_id,
            amount=str(amount),
            remaining=str(remaining),
        )
        return DuePaymentResult(member=updated, record=record, amount_paid=amount, remaining_due=remaining)

    def update_member(
        self,
        gym_id: str,
        number: str,
        changes: MemberUpdate,
        *,
        actor_id: Optional[str] = None,
    ) -> Member:
        phone = _require_text(number, "number")
        provided = changes.model_fields_set
        update: dict = {}

        if "name" in provided:
            update["name"] = _require_text(changes.name, "name")
        if "gender" in provided and changes.gender:
            update["gender"] = _parse_enum(Gender, changes.gender, "gender")
        if "age" in provided:
            update["age"] = _parse_age(changes.age)
        if "email" in provided:
            update["email"] = (changes.email or "").strip() or None
        if "payment_mode" in provided and changes.payment_mode:
            update["payment_mode"] = _parse_enum(PaymentMode, changes.payment_mode, "payment_mode")

        explicit_amount: Optional[Decimal] = None
        if "membership_amount" in provided and changes.membership_amount is not None:
            explicit_amount = _parse_amount(changes.membership_amount, "membership_amount")
        explicit_due: Optional[Decimal] = None
        if "membership_due_amount" in provided and changes.membership_due_amount is not None:
            explicit_due = _parse_amount(changes.membership_due_amount, "membership_due_amount")
        requested_type = (changes.membership_type or "").strip() if "membership_type" in provided else ""

        now = self._now()
        with self.repository.atomic() as repo:
            member = self._require_member(repo, gym_id, phone, for_update=True)
            new_amount: Optional[Decimal] = None

            if requested_type and requested_type != member.membership_type:
                plan = self._require_plan(repo, gym_id, requested_type)
                start_date = ensure_aware(changes.start_date) if changes.start_date else member.start_date
                end_date = add_months(start_date, plan.duration_months)
                update.update(
                    {
                        "plan_id": plan.id,
                        "membership_type": plan.name,
                        "duration_months": plan.duration_months,
                        "start_date": start_date,
                        "end_date": end_date,
                        "status": MemberStatus.EXPIRED if end_date < now else MemberStatus.ACTIVE,
                    }
                )
                new_amount = plan.price
            elif changes.start_date is not None:
                start_date = ensure_aware(changes.start_date)
                end_date = add_months(start_date, member.duration_months)
                update.update(
                    {
                        "start_date": start_date,
                        "end_date": end_date,
                        "status": MemberStatus.EXPIRED if end_date < now else MemberStatus.ACTIVE,
                    }
                )

            if explicit_amount is not None:
                new_amount = explicit_amount

            amount_changed = new_amount is not None and new_amount != member.membership_amount
            if amount_changed:
                update["membership_amount"] = new_amount
                update["total_paid"] = member.total_paid + (new_amount - member.membership_amount)

            if changes.marks_paid:
                total_due = ZERO
            elif explicit_due is not None:
                total_due = explicit_due
            else:
                total_due = member.total_due
            update["total_due"] = total_due
            update["payment_status"] = derive_payment_status(total_due)
            update["updated_at"] = now

            updated = repo.save_member(member.model_copy(update=update))

            if amount_changed:
                latest = repo.latest_record(gym_id, phone)
                if latest is not None:
                    repo.save_record(latest.model_copy(update={"amount": new_amount}))

        self._log(
            MembershipAuditEventType.MEMBER_UPDATED,
            gym_id,
            member_number=phone,
            actor_id=actor_id,
            fields=",".join(sorted(provided)),
        )
        return updated

    def transfer_days(
        self,
        gym_id: str,
        *,
        source_number: str,
        target_number: str,
        actor_id: Optional[str] = None,
    ) -> TransferResult:
        source_phone = _require_text(source_number, "source_number")
        target_phone = _require_text(target_number, "target_number")
        if source_phone == target_phone:
            raise ValidationError("Source and target members must be different")

        now = self._now()
        with self.repository.atomic() as repo:
            # Lock both rows in a stable order so concurrent transfers cannot deadlock.
            locked = {
                phone: repo.get_member(gym_id, phone, for_update=True)
                for phone in sorted((source_phone, target_phone))
            }
            source, target = locked[source_phone], locked[target_phone]
            if source is None or target is None:
                raise NotFoundError("One or both members not found")
            if not source.is_active:
                raise InvariantViolation(f"{source.name} has no active membership")
            if not target.is_active:
                raise InvariantViolation(f"{target.name} has no active membership")

            remaining = ensure_aware(source.end_date) - now
            if remaining <= timedelta(0):
                raise InvariantViolation(f"{source.name} has no days to transfer")

            source_end = ensure_aware(source.end_date) - remaining
            updated_source = repo.save_member(
                source.model_copy(
                    update={
                        "end_date": source_end,
                        "status": MemberStatus.INACTIVE if source_end <= now else source.status,
                        "updated_at": now,
                    }
                )
            )
            updated_target = repo.save_member(
                target.model_copy(
                    update={
                        "end_date": ensure_aware(target.end_date) + remaining,
                        "updated_at": now,
                    }
                )
            )

        days = remaining.total_seconds() / (24 * 60 * 60)
        self._log(
            MembershipAuditEventType.DAYS_TRANSFERRED,
            gym_id,
            member_number=source_phone,
            actor_id=actor_id,
            target=target_phone,
            days=f"{days:.4f}",
        )
        return TransferResult(source=updated_source, target=updated_target, days_transferred=days)

    def grant_complimentary_days(
        self,
        gym_id: str,
        number: str,
        *,
        days: object,
        actor_id: Optional[str] = None,
    ) -> Member:
        """Extend a membership for free.

        The journal only records paid events, so nothing is appended there; the
        grant is still visible through the audit event.
        """

        phone = _require_text(number, "number")
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            raise ValidationError("days must be a positive whole number")

        now = self._now()
        with self.repository.atomic() as repo:
            member = self._require_member(repo, gym_id, phone, for_update=True)
            base = ensure_aware(member.end_date) if member.end_date else now
            updated = repo.save_member(
                member.model_copy(
                    update={
                        "end_date": add_days(base, days),
                        "status": MemberStatus.ACTIVE,
                        "updated_at": now,
                    }
                )
            )

        self._log(
            MembershipAuditEventType.COMPLIMENTARY_DAYS_GRANTED,
            gym_id,
            member_number=phone,
            actor_id=actor_id,
            days=str(days),
            end_date=updated.end_date.isoformat(),
        )
        return updated

    # ------------------------------------------------------------------
    # Member and journal reads / admin corrections
    # ------------------------------------------------------------------
    def get_member(self, gym_id: str, number: str) -> Member:
        return self._require_member(self.repository, gym_id, _require_text(number, "number"))

    def list_members(self, gym_id: str, *, page: int = 1, limit: int = 10) -> MemberPage:
        page = max(int(page), 1)
        limit = min(max(int(limit), 1), MAX_PAGE_SIZE)
        total = self.repository.count_members(gym_id)
        members = self.repository.list_members(gym_id, offset=(page - 1) * limit, limit=limit)
        return MemberPage(
            members=list(members),
            total=total,
            page=page,
            total_pages=math.ceil(total / limit) if total else 0,
        )

    def search_members(self, gym_id: str, term: str, *, limit: int = 50) -> Sequence[Member]:
        query = _require_text(term, "search term")
        return self.repository.search_members(gym_id, query, limit=min(max(int(limit), 1), MAX_PAGE_SIZE))

    def delete_member(self, gym_id: str, number: str, *, actor_id: Optional[str] = None) -> None:
        phone = _require_text(number, "number")
        with self.repository.atomic() as repo:
            if not repo.delete_member(gym_id, phone):
                raise NotFoundError("Member does not exist")
        self._log(MembershipAuditEventType.MEMBER_DELETED, gym_id, member_number=phone, actor_id=actor_id)

    def list_journal(self, gym_id: str) -> Sequence[RenewalRecord]:
        return self.repository.list_records(gym_id)

    def list_member_journal(self, gym_id: str, number: str) -> Sequence[RenewalRecord]:
        return self.repository.list_member_records(gym_id, _require_text(number, "number"))

    def correct_journal_record(
        self,
        gym_id: str,
        record_id: str,
        *,
        membership_type: str,
        amount: object,
        payment_status: object,
        payment_mode: object,
        actor_id: Optional[str] = None,
    ) -> RenewalRecord:
        plan_name = _require_text(membership_type, "membership_type")
        corrected_amount = _parse_amount(amount, "membership_amount")
        status = _parse_enum(PaymentStatus, payment_status, "payment_status")
        mode = _parse_enum(PaymentMode, payment_mode, "payment_mode")

        with self.repository.atomic() as repo:
            record = repo.get_record(gym_id, record_id)
            if record is None:
                raise NotFoundError("Renew record not found")
            plan = self._require_plan(repo, gym_id, plan_name)
            updated = repo.save_record(
                record.model_copy(
                    update={
                        "membership_type": plan.name,
                        "amount": corrected_amount,
                        "payment_status": status,
                        "payment_mode": mode,
                    }
                )
            )

        self._log(MembershipAuditEventType.JOURNAL_CORRECTED, gym_id, member_number=updated.member_number, actor_id=actor_id, record_id=record_id)
        return updated

    def delete_journal_record(self, gym_id: str, record_id: str, *, actor_id: Optional[str] = None) -> None:
        with self.repository.atomic() as repo:
            record = repo.get_record(gym_id, record_id)
            if record is None or not repo.delete_record(gym_id, record_id):
                raise NotFoundError("Renew record not found")
        self._log(MembershipAuditEventType.JOURNAL_DELETED, gym_id, member_number=record.member_number, actor_id=actor_id, record_id=record_id)

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------
    def expire_memberships(self, *, now: Optional[datetime] = None) -> SweepSummary:
        """Flip every Active member whose end date has passed to Expired.

        Each member is updated on its own; a failure is logged and counted and
        the sweep moves on. The update is conditional on the row still being
        Active and past its end date, so a renewal that lands between the read
        and the write is never overwritten.
        """

        current_time = ensure_aware(now) if now is not None else self._now()
        summary = SweepSummary()
        for gym_id in self.repository.list_gym_ids():
            try:
                stale = self.repository.list_expired_active_members(gym_id, current_time)
            except Exception:
                summary.failures += 1
                logger.exception("Failed to load expired memberships", extra={"gym_id": gym_id})
                continue

            for member in stale:
                summary.examined += 1
                try:
                    if self.repository.mark_member_expired(gym_id, member.id, current_time):
                        summary.expired += 1
                        logger.info("Updated membership status to Expired for member: %s", member.id)
                except Exception:
                    summary.failures += 1
                    logger.exception(
                        "Failed to update membership status for member %s",
                        member.id,
                        extra={"gym_id": gym_id},
                    )
        return summary

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require_plan(self, repo: MembershipRepository, gym_id: str, name: str) -> MembershipPlan:
        plan = repo.find_plan_by_name(gym_id, name)
        if plan is None:
            raise NotFoundError(f"Membership plan not found: {name}")
        return plan

    def _require_member(
        self,
        repo: MembershipRepository,
        gym_id: str,
        number: str,
        *,
        for_update: bool = False,
    ) -> Member:
        member = repo.get_member(gym_id, number, for_update=for_update)
        if member is None:
            raise NotFoundError("Member not found")
        return member

    def _renewal_entry(
        self,
        member: Member,
        *,
        amount: Decimal,
        due: Decimal,
        mode: PaymentMode,
        now: datetime,
    ) -> RenewalRecord:
        return RenewalRecord(
            id=f"rr_{uuid4().hex}",
            gym_id=member.gym_id,
            member_id=member.id,
            member_number=member.number,
            member_name=member.name,
            membership_type=member.membership_type,
            amount=amount,
            due_amount=due,
            payment_status=derive_payment_status(due),
            payment_mode=mode,
            end_date=member.end_date,
            is_due_payment=False,
            payment_type=PaymentType.MEMBERSHIP_RENEWAL,
            created_at=now,
        )

    def _log(
        self,
        event_type: MembershipAuditEventType,
        gym_id: str,
        *,
        member_number: Optional[str] = None,
        actor_id: Optional[str] = None,
        **metadata: str,
    ) -> None:
        self.event_logger.log(
            MembershipAuditEvent(
                event_type=event_type,
                gym_id=gym_id,
                member_number=member_number,
                actor_id=actor_id,
                metadata={key: str(value) for key, value in metadata.items()},
                occurred_at=self._now(),
            )
        )


__all__ = [
    "MembershipEventLogger",
    "MembershipRepository",
    "MembershipService",
]
