"""Application wiring for the membership service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ...app_context import get_config
from ..membership import MembershipAuditEvent, MembershipEventLogger, MembershipService
from ..membership.repository import PostgresMembershipRepository


logger = logging.getLogger("membership")


class LoggingMembershipEventLogger(MembershipEventLogger):
    """Simple event logger forwarding membership audit events to logging."""

    def log(self, event: MembershipAuditEvent) -> None:
        logger.info(
            "Membership event %s gym=%s member=%s actor=%s metadata=%s",
            event.event_type.value,
            event.gym_id,
            event.member_number,
            event.actor_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_membership_service() -> MembershipService:
    config = get_config()
    repository = PostgresMembershipRepository()
    event_logger = LoggingMembershipEventLogger()
    service = MembershipService(
        repository=repository,
        event_logger=event_logger,
        member_id_prefix=config.member_id_prefix,
    )
    return service


__all__ = ["get_membership_service", "LoggingMembershipEventLogger"]
