from __future__ import annotations

import logging
from typing import List, Optional

import audit
from audit import AuditSink
from database import EVENT_EMERGENCY_REASSIGNMENT, EVENT_PTO_SUSPENSION
from errors import ConflictError, ValidationError
from partnerships import Partnership, PartnershipManager
from resolver import CATEGORY_OFFICER, EffectiveAssignment, ScheduleResolver, ShiftKey

logger = logging.getLogger(__name__)


def _by_last_name(assignments: List[EffectiveAssignment]) -> List[EffectiveAssignment]:
    return sorted(assignments, key=lambda item: (item.last_name.lower(), item.name.lower(), item.officer_id))


def _free(assignment: EffectiveAssignment) -> bool:
    return assignment.is_working and assignment.pto is None and not assignment.has_active_partnership


class EmergencyFinder:
    """Finds replacement partners when a probationary officer loses theirs."""

    def __init__(
        self,
        gateway,
        resolver: Optional[ScheduleResolver] = None,
        partnerships: Optional[PartnershipManager] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> None:
        self.gateway = gateway
        self.resolver = resolver or ScheduleResolver(gateway)
        self.audit = audit_sink or AuditSink(gateway)
        self.partnerships = partnerships or PartnershipManager(gateway, self.resolver, self.audit)

    def find_emergency_partners(self, suspended_officer_id: int, key: ShiftKey) -> List[EffectiveAssignment]:
        """Regular officers on the shift who are working, not on PTO and not already partnered."""
        schedule = self.resolver.resolve(key.date, key.shift_type_id)
        candidates = [
            item
            for item in schedule.assignments
            if item.officer_id != suspended_officer_id
            and item.category == CATEGORY_OFFICER
            and not item.is_probationary
            and _free(item)
        ]
        return _by_last_name(candidates)

    def find_available_ppo_partners(self, requester_id: int, key: ShiftKey) -> List[EffectiveAssignment]:
        """Probationary officers on the shift who could ride with ``requester_id``."""
        schedule = self.resolver.resolve(key.date, key.shift_type_id)
        candidates = [
            item
            for item in schedule.assignments
            if item.officer_id != requester_id and item.is_probationary and _free(item)
        ]
        return _by_last_name(candidates)

    def assign_emergency_partner(
        self,
        ppo_id: int,
        partner_id: int,
        key: ShiftKey,
        actor: Optional[str] = None,
    ) -> Partnership:
        ppo = self.gateway.get_officer(ppo_id)
        if not ppo.is_probationary:
            raise ValidationError(f"{ppo.full_name} is not a probationary officer.")
        current = self.resolver.effective_assignment(ppo_id, key.date, key.shift_type_id)
        if current is None or not current.is_working:
            raise ValidationError(
                f"{ppo.full_name} is not working on {key.date.isoformat()} for shift {key.shift_type_id}."
            )
        if partner_id not in {item.officer_id for item in self.find_emergency_partners(ppo_id, key)}:
            raise ConflictError(
                f"Officer {partner_id} is not available as an emergency partner for {ppo.full_name} "
                f"on {key.date.isoformat()}.",
                existing={"partner_officer_id": partner_id},
            )

        partnership = self.partnerships.create_partnership(ppo_id, partner_id, key, actor, emergency=True)

        for event in self.gateway.list_suspension_events(date=key.date, open_only=True):
            if event.shift_type_id != key.shift_type_id or event.event_type != EVENT_PTO_SUSPENSION:
                continue
            if ppo_id in (event.officer_id, event.partner_officer_id):
                self.gateway.mark_emergency_assignment(event.id, partner_id)
        self.gateway.add_suspension_event(
            {
                "officer_id": ppo_id,
                "partner_officer_id": partner_id,
                "date": key.date,
                "shift_type_id": key.shift_type_id,
                "event_type": EVENT_EMERGENCY_REASSIGNMENT,
                "reason": f"Emergency partner for {ppo.full_name}",
                "emergency_partner_id": partner_id,
            }
        )
        self.audit.log(
            audit.EMERGENCY_PARTNER_ASSIGNED,
            actor,
            f"Officer {partner_id} assigned as emergency partner for {ppo.full_name} on {key.label()}",
            target_id=ppo_id,
            details={"partner_officer_id": partner_id},
        )
        logger.info("Emergency partner %s assigned to %s for %s", partner_id, ppo.full_name, key.label())
        return partnership
