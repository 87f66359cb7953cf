"""Partnership consistency.

A partnership is stored as two directed records, one on each officer, that
point at each other for the same key. Date keys live on schedule exception
rows; weekly keys live on recurring assignment rows. Nothing stores the pair
itself: ``Partnership`` values are computed by joining both directions on
read, and every write here touches both sides so the pair stays reciprocal.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import audit
from audit import AuditSink
from database import RecurringAssignment, SEGMENT_PRIMARY, SEGMENT_REMAINDER
from errors import ConflictError, IntegrityWarning, ValidationError
from resolver import EffectiveAssignment, ScheduleResolver, ShiftKey, WeeklyKey
from saga import Saga

logger = logging.getLogger(__name__)

PartnerKey = Union[ShiftKey, WeeklyKey]

PARTNERSHIP_FIELDS = (
    "is_partnership",
    "partnership_suspended",
    "partnership_suspension_reason",
    "partner_officer_id",
    "is_emergency_partnership",
)

RESTORED = "restored"
KEPT_SUSPENDED = "kept_suspended"
NOTHING_SUSPENDED = "noop"


def cleared_fields() -> Dict[str, Any]:
    return {
        "is_partnership": False,
        "partnership_suspended": False,
        "partnership_suspension_reason": None,
        "partner_officer_id": None,
        "is_emergency_partnership": False,
    }


def active_fields(partner_id: int, *, emergency: bool = False) -> Dict[str, Any]:
    return {
        "is_partnership": True,
        "partnership_suspended": False,
        "partnership_suspension_reason": None,
        "partner_officer_id": partner_id,
        "is_emergency_partnership": emergency,
    }


def suspended_fields(partner_id: int, reason: str) -> Dict[str, Any]:
    return {
        "is_partnership": False,
        "partnership_suspended": True,
        "partnership_suspension_reason": reason,
        "partner_officer_id": partner_id,
        "is_emergency_partnership": False,
    }


@dataclass(frozen=True)
class Partnership:
    officer_id: int
    partner_officer_id: int
    key: PartnerKey
    is_active: bool
    is_suspended: bool = False
    is_emergency: bool = False
    is_reciprocal: bool = True
    suspension_reason: Optional[str] = None

    @property
    def members(self) -> frozenset:
        return frozenset((self.officer_id, self.partner_officer_id))

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "officer_id": self.officer_id,
            "partner_officer_id": self.partner_officer_id,
            "shift_type_id": self.key.shift_type_id,
            "is_active": self.is_active,
            "is_suspended": self.is_suspended,
            "is_emergency": self.is_emergency,
            "is_reciprocal": self.is_reciprocal,
            "suspension_reason": self.suspension_reason,
        }
        if isinstance(self.key, ShiftKey):
            payload["date"] = self.key.date.isoformat()
        else:
            payload["day_of_week"] = self.key.day_of_week
        return payload


@dataclass
class PartnershipReport:
    valid: int = 0
    suspended: int = 0
    orphaned: int = 0
    orphans: List[IntegrityWarning] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.valid + self.suspended + self.orphaned

    def merge(self, other: "PartnershipReport") -> "PartnershipReport":
        self.valid += other.valid
        self.suspended += other.suspended
        self.orphaned += other.orphaned
        self.orphans.extend(other.orphans)
        return self

    def as_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "suspended": self.suspended,
            "orphaned": self.orphaned,
            "orphans": [warning.as_dict() for warning in self.orphans],
        }


def _edge(record) -> Optional[Tuple[PartnerKey, int, int, bool, bool]]:
    """(key, officer, partner, active, suspended) for a partnership-bearing record."""
    partner_id = getattr(record, "partner_officer_id", None)
    if not partner_id:
        return None
    if getattr(record, "segment", SEGMENT_PRIMARY) != SEGMENT_PRIMARY:
        return None
    if isinstance(record, RecurringAssignment):
        key: PartnerKey = WeeklyKey(record.shift_type_id, record.day_of_week)
    else:
        key = ShiftKey(record.shift_type_id, record.date)
    active = bool(record.is_partnership)
    suspended = bool(getattr(record, "partnership_suspended", False))
    if not active and not suspended:
        return None
    return key, record.officer_id, partner_id, active, suspended


class PartnershipManager:
    def __init__(self, gateway, resolver: Optional[ScheduleResolver] = None, audit_sink: Optional[AuditSink] = None):
        self.gateway = gateway
        self.resolver = resolver or ScheduleResolver(gateway)
        self.audit = audit_sink or AuditSink(gateway)

    # Lookups

    def _assignment(self, officer_id: int, key: ShiftKey) -> Optional[EffectiveAssignment]:
        return self.resolver.effective_assignment(officer_id, key.date, key.shift_type_id)

    def _weekly_row(self, officer_id: int, key: WeeklyKey) -> Optional[RecurringAssignment]:
        rows = [
            row
            for row in self.gateway.list_recurring(
                officer_id=officer_id, shift_type_id=key.shift_type_id, day_of_week=key.day_of_week
            )
            if not row.is_malformed()
        ]
        if not rows:
            return None
        open_ended = [row for row in rows if row.end_date is None]
        return (open_ended or rows)[-1]

    def _recurring_on(self, officer_id: int, key: ShiftKey) -> Optional[RecurringAssignment]:
        for row in self.gateway.list_recurring(
            officer_id=officer_id, shift_type_id=key.shift_type_id, day_of_week=key.day_of_week
        ):
            if row.covers(key.date):
                return row
        return None

    def partnership_for(self, officer_id: int, key: PartnerKey) -> Optional[Partnership]:
        if isinstance(key, WeeklyKey):
            row = self._weekly_row(officer_id, key)
            if row is None or not row.partner_officer_id or not row.is_partnership:
                return None
            other = self._weekly_row(row.partner_officer_id, key)
            return Partnership(
                officer_id=officer_id,
                partner_officer_id=row.partner_officer_id,
                key=key,
                is_active=True,
                is_reciprocal=bool(other and other.is_partnership and other.partner_officer_id == officer_id),
            )
        mine = self._assignment(officer_id, key)
        if mine is None or not mine.partner_officer_id:
            return None
        if not (mine.is_partnership or mine.partnership_suspended):
            return None
        theirs = self._assignment(mine.partner_officer_id, key)
        return Partnership(
            officer_id=officer_id,
            partner_officer_id=mine.partner_officer_id,
            key=key,
            is_active=mine.has_active_partnership,
            is_suspended=mine.partnership_suspended,
            is_emergency=mine.is_emergency_partnership,
            is_reciprocal=bool(theirs and theirs.partner_officer_id == officer_id),
            suspension_reason=mine.partnership_suspension_reason,
        )

    def list_partnerships(self, date_value: datetime.date, shift_type_id: Optional[int] = None) -> List[Partnership]:
        schedule = self.resolver.resolve(date_value, shift_type_id)
        by_officer = {(item.officer_id, item.shift_type_id): item for item in schedule.assignments}
        pairs: List[Partnership] = []
        seen = set()
        for item in schedule.assignments:
            if not item.partner_officer_id or not (item.is_partnership or item.partnership_suspended):
                continue
            marker = (item.shift_type_id, frozenset((item.officer_id, item.partner_officer_id)))
            if marker in seen:
                continue
            seen.add(marker)
            other = by_officer.get((item.partner_officer_id, item.shift_type_id))
            pairs.append(
                Partnership(
                    officer_id=item.officer_id,
                    partner_officer_id=item.partner_officer_id,
                    key=item.key,
                    is_active=item.has_active_partnership,
                    is_suspended=item.partnership_suspended,
                    is_emergency=item.is_emergency_partnership,
                    is_reciprocal=bool(other and other.partner_officer_id == item.officer_id),
                    suspension_reason=item.partnership_suspension_reason,
                )
            )
        return pairs

    # Create / remove

    def create_partnership(
        self,
        officer_id: int,
        partner_id: int,
        key: PartnerKey,
        actor: Optional[str] = None,
        *,
        emergency: bool = False,
    ) -> Partnership:
        if officer_id == partner_id:
            raise ValidationError("An officer cannot be partnered with themselves.")
        officer = self.gateway.get_officer(officer_id)
        partner = self.gateway.get_officer(partner_id)

        if isinstance(key, WeeklyKey):
            self._create_weekly(officer, partner, key)
        else:
            self._create_dated(officer, partner, key, emergency=emergency)

        self.audit.log(
            audit.PARTNERSHIP_CREATED,
            actor,
            f"Partnered {officer.full_name} with {partner.full_name} for {key.label()}",
            target_id=officer_id,
            details={"partner_officer_id": partner_id, "emergency": emergency},
        )
        logger.info("Partnership created: %s + %s (%s)", officer.full_name, partner.full_name, key.label())
        return self.partnership_for(officer_id, key)

    def _create_dated(self, officer, partner, key: ShiftKey, *, emergency: bool) -> None:
        self.gateway.get_shift_type(key.shift_type_id)
        for person in (officer, partner):
            current = self._assignment(person.id, key)
            if current is None:
                raise ValidationError(
                    f"{person.full_name} is not scheduled on {key.date.isoformat()} for shift {key.shift_type_id}."
                )
            if current.has_active_partnership:
                raise ConflictError(
                    f"{person.full_name} is already partnered on {key.date.isoformat()} "
                    f"for shift {key.shift_type_id}.",
                    existing={
                        "officer_id": person.id,
                        "partner_officer_id": current.partner_officer_id,
                        "record_id": current.record_id,
                    },
                )
            if not current.is_working:
                raise ValidationError(
                    f"{person.full_name} is off duty on {key.date.isoformat()} for shift {key.shift_type_id}."
                )

        saga = Saga(f"create_partnership:{officer.id}+{partner.id}")
        for person, other in ((officer, partner), (partner, officer)):
            snapshot = self._snapshot(person.id, key)
            saga.step(
                f"link:{person.id}",
                lambda person=person, other=other: self._write_sides(
                    person.id, key, active_fields(other.id, emergency=emergency)
                ),
                lambda _result, person=person, snapshot=snapshot: self._revert(person.id, key, snapshot),
            )
        saga.run()

    def _create_weekly(self, officer, partner, key: WeeklyKey) -> None:
        rows = {}
        for person in (officer, partner):
            row = self._weekly_row(person.id, key)
            if row is None:
                raise ValidationError(
                    f"{person.full_name} has no recurring assignment on weekday {key.day_of_week} "
                    f"for shift {key.shift_type_id}."
                )
            if row.is_partnership and row.partner_officer_id:
                raise ConflictError(
                    f"{person.full_name} is already partnered every weekday {key.day_of_week} "
                    f"for shift {key.shift_type_id}.",
                    existing={"officer_id": person.id, "partner_officer_id": row.partner_officer_id, "record_id": row.id},
                )
            rows[person.id] = row

        saga = Saga(f"create_weekly_partnership:{officer.id}+{partner.id}")
        for person, other in ((officer, partner), (partner, officer)):
            row = rows[person.id]
            previous = {"is_partnership": row.is_partnership, "partner_officer_id": row.partner_officer_id}
            saga.step(
                f"link:{person.id}",
                lambda row=row, other=other: self.gateway.update_recurring(
                    row.id, {"is_partnership": True, "partner_officer_id": other.id}
                ),
                lambda _result, row=row, previous=previous: self.gateway.update_recurring(row.id, previous),
            )
        saga.run()

    def remove_partnership(self, officer_id: int, key: PartnerKey, actor: Optional[str] = None) -> int:
        """Clear both sides of the officer's partnership for ``key``; return how many sides changed."""
        if isinstance(key, WeeklyKey):
            cleared = self._remove_weekly(officer_id, key)
        else:
            cleared = self._remove_dated(officer_id, key)
        if cleared:
            self.audit.log(
                audit.PARTNERSHIP_REMOVED,
                actor,
                f"Removed partnership for officer {officer_id} on {key.label()}",
                target_id=officer_id,
                details={"records_cleared": cleared},
            )
        return cleared

    def _remove_dated(self, officer_id: int, key: ShiftKey) -> int:
        mine = self._assignment(officer_id, key)
        partner_id = mine.partner_officer_id if mine is not None else None
        if partner_id is None:
            pointing = self.gateway.list_exceptions(
                date=key.date, shift_type_id=key.shift_type_id, partner_officer_id=officer_id, segment=SEGMENT_PRIMARY
            )
            partner_id = pointing[0].officer_id if pointing else None
        cleared = 0
        if mine is not None and mine.partner_officer_id:
            self._write_sides(officer_id, key, cleared_fields())
            cleared += 1
        if partner_id:
            theirs = self._assignment(partner_id, key)
            if theirs is not None and theirs.partner_officer_id == officer_id:
                self._write_sides(partner_id, key, cleared_fields())
                cleared += 1
        return cleared

    def _remove_weekly(self, officer_id: int, key: WeeklyKey) -> int:
        cleared = 0
        mine = self._weekly_row(officer_id, key)
        partner_id = mine.partner_officer_id if mine is not None else None
        if mine is not None and (mine.partner_officer_id or mine.is_partnership):
            self.gateway.update_recurring(mine.id, {"is_partnership": False, "partner_officer_id": None})
            cleared += 1
        candidates = []
        if partner_id:
            candidates.append(self._weekly_row(partner_id, key))
        else:
            candidates.extend(
                row
                for row in self.gateway.list_recurring(shift_type_id=key.shift_type_id, day_of_week=key.day_of_week)
                if row.partner_officer_id == officer_id
            )
        for row in candidates:
            if row is not None and row.partner_officer_id == officer_id:
                self.gateway.update_recurring(row.id, {"is_partnership": False, "partner_officer_id": None})
                cleared += 1
        return cleared

    def end_assignment(self, recurring_id: int, end_date: datetime.date, actor: Optional[str] = None):
        row = self.gateway.end_assignment(recurring_id, end_date)
        if row.is_partnership and row.partner_officer_id:
            logger.info(
                "Recurring assignment %s ended %s while partnered with officer %s",
                row.id,
                end_date.isoformat(),
                row.partner_officer_id,
            )
        return row

    # Validation / repair

    def validate(self, records: Iterable[Any]) -> PartnershipReport:
        """Check each partnership record for a reciprocal record with the ids swapped."""
        edges = [edge for edge in (_edge(record) for record in records) if edge is not None]
        index = {(key, officer, partner) for key, officer, partner, _active, _suspended in edges}
        report = PartnershipReport()
        for key, officer, partner, active, suspended in edges:
            if suspended and not active:
                report.suspended += 1
                continue
            if (key, partner, officer) in index:
                report.valid += 1
                continue
            report.orphaned += 1
            report.orphans.append(
                IntegrityWarning(
                    kind="orphaned_partnership",
                    message=f"Officer {officer} is partnered with {partner} on {key.label()} but not the other way round.",
                    officer_id=officer,
                    date=getattr(key, "date", None),
                    shift_type_id=key.shift_type_id,
                    details={"partner_officer_id": partner, "day_of_week": getattr(key, "day_of_week", None)},
                )
            )
        return report

    def validate_day(self, date_value: datetime.date, shift_type_id: Optional[int] = None) -> PartnershipReport:
        return self.validate(self.resolver.resolve(date_value, shift_type_id).assignments)

    def validate_weekly(self, as_of: Optional[datetime.date] = None) -> PartnershipReport:
        as_of = as_of or datetime.date.today()
        rows = [
            row
            for row in self.gateway.list_recurring(partnered_only=True)
            if not row.is_malformed() and (row.end_date is None or row.end_date >= as_of)
        ]
        return self.validate(rows)

    def repair_orphaned(
        self,
        start: datetime.date,
        end: Optional[datetime.date] = None,
        actor: Optional[str] = None,
    ) -> int:
        """Clear every orphaned partnership between ``start`` and ``end``.

        Weekly pairs are repaired first so the per-day pass only sees
        date-specific leftovers. Each orphan is handled on its own, so the scan
        can be interrupted and re-run.
        """
        end = end or start
        if end < start:
            raise ValidationError("Repair range ends before it starts.")
        repaired = 0
        for orphan in self.validate_weekly(as_of=start).orphans:
            key = WeeklyKey(orphan.shift_type_id, orphan.details["day_of_week"])
            repaired += 1 if self.remove_partnership(orphan.officer_id, key, actor) else 0
        current = start
        while current <= end:
            for orphan in self.validate_day(current).orphans:
                key = ShiftKey(orphan.shift_type_id, current)
                repaired += 1 if self.remove_partnership(orphan.officer_id, key, actor) else 0
            current += datetime.timedelta(days=1)
        if repaired:
            self.audit.log(
                audit.ORPHANS_REPAIRED,
                actor,
                f"Repaired {repaired} orphaned partnerships between {start.isoformat()} and {end.isoformat()}",
                target_type="Partnership",
                details={"repaired": repaired},
            )
        logger.info("Orphan repair %s..%s: %d repaired", start.isoformat(), end.isoformat(), repaired)
        return repaired

    # Suspension

    def suspend_for_pto(
        self,
        officer_id: int,
        partner_id: int,
        key: ShiftKey,
        reason: str,
        actor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Suspend the pair because ``officer_id`` is taking time off.

        Only partnership fields are written on the officer's row; the PTO
        fields are written by the caller. The partner keeps working and gets a
        working, suspended row if it had none. Running this twice leaves the
        same state and a single open suspension event.
        """
        snapshots = {officer_id: self._snapshot(officer_id, key), partner_id: self._snapshot(partner_id, key)}

        self.gateway.upsert_exception(officer_id, key.date, key.shift_type_id, suspended_fields(partner_id, reason))

        partner_row = self.gateway.get_exception(partner_id, key.date, key.shift_type_id)
        partner_created = False
        if partner_row is not None and partner_row.is_pto:
            logger.debug("Partner %s already on PTO for %s; left untouched", partner_id, key.label())
        else:
            values = suspended_fields(officer_id, reason)
            if partner_row is None:
                recurring = self._recurring_on(partner_id, key)
                values.update({"is_off": False, "position": recurring.position if recurring else None})
                partner_created = True
            self._write_sides(partner_id, key, values)

        event = self.gateway.find_open_suspension(
            officer_id, key.date, key.shift_type_id, partner_officer_id=partner_id
        )
        event_created = False
        if event is None:
            event = self.gateway.add_suspension_event(
                {
                    "officer_id": officer_id,
                    "partner_officer_id": partner_id,
                    "date": key.date,
                    "shift_type_id": key.shift_type_id,
                    "reason": reason,
                }
            )
            event_created = True

        self.audit.log(
            audit.PARTNERSHIP_SUSPENDED,
            actor,
            f"Partnership of officers {officer_id} and {partner_id} suspended for {key.label()}: {reason}",
            target_id=officer_id,
            details={"partner_officer_id": partner_id, "event_id": event.id},
        )
        logger.info("Partnership %s/%s suspended for %s", officer_id, partner_id, key.label())
        return {
            "officer_id": officer_id,
            "partner_id": partner_id,
            "key": key,
            "event_id": event.id,
            "event_created": event_created,
            "partner_record_created": partner_created,
            "snapshots": snapshots,
        }

    def revert_suspension(self, suspension: Dict[str, Any]) -> None:
        """Put both rows back the way ``suspend_for_pto`` found them."""
        key = suspension["key"]
        for officer_id, snapshot in suspension["snapshots"].items():
            self._revert(officer_id, key, snapshot)
        if suspension["event_created"]:
            self.gateway.delete_suspension_event(suspension["event_id"])

    def restore_after_pto_removal(
        self,
        officer_id: int,
        key: ShiftKey,
        actor: Optional[str] = None,
        *,
        partner_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Re-pair an officer whose partnership was suspended for PTO.

        The partner comes from the hint, the officer's suspended row, the
        partner's suspended row pointing back, or the open suspension event.
        When the partner is no longer available the pair stays suspended.
        """
        if partner_id is None:
            partner_id = self._suspended_partner(officer_id, key)
        if partner_id is None:
            return {"status": NOTHING_SUSPENDED, "officer_id": officer_id, "partner_id": None}

        problem = self._unavailable_reason(officer_id, partner_id, key)
        if problem is None:
            recurring = self._recurring_on(officer_id, key)
            mine = self.gateway.get_exception(officer_id, key.date, key.shift_type_id)
            values = active_fields(partner_id)
            if mine is None:
                values.update({"is_off": False, "position": recurring.position if recurring else None})
            self._write_sides(officer_id, key, values)
            self._write_sides(partner_id, key, active_fields(officer_id))
            resolved = self.gateway.resolve_suspension_events(officer_id, partner_id, key.date, key.shift_type_id)
            self.audit.log(
                audit.PARTNERSHIP_RESTORED,
                actor,
                f"Partnership of officers {officer_id} and {partner_id} restored for {key.label()}",
                target_id=officer_id,
                details={"partner_officer_id": partner_id, "events_resolved": resolved},
            )
            logger.info("Partnership %s/%s restored for %s", officer_id, partner_id, key.label())
            return {"status": RESTORED, "officer_id": officer_id, "partner_id": partner_id}

        reason = f"Original partner unavailable: {problem}"
        mine = self.gateway.get_exception(officer_id, key.date, key.shift_type_id)
        if mine is None or not mine.is_pto:
            values = suspended_fields(partner_id, reason)
            if mine is None:
                recurring = self._recurring_on(officer_id, key)
                values.update({"is_off": False, "position": recurring.position if recurring else None})
            self._write_sides(officer_id, key, values)
        theirs = self.gateway.get_exception(partner_id, key.date, key.shift_type_id)
        if theirs is not None and theirs.partnership_suspended and theirs.partner_officer_id == officer_id:
            if not theirs.is_pto:
                self._write_sides(partner_id, key, {"partnership_suspension_reason": reason})
        self.audit.log(
            audit.PARTNERSHIP_KEPT_SUSPENDED,
            actor,
            f"Partnership of officers {officer_id} and {partner_id} left suspended for {key.label()}: {problem}",
            target_id=officer_id,
            details={"partner_officer_id": partner_id},
        )
        logger.warning("Partnership %s/%s kept suspended for %s: %s", officer_id, partner_id, key.label(), problem)
        return {"status": KEPT_SUSPENDED, "officer_id": officer_id, "partner_id": partner_id, "reason": problem}

    def _suspended_partner(self, officer_id: int, key: ShiftKey) -> Optional[int]:
        mine = self.gateway.get_exception(officer_id, key.date, key.shift_type_id)
        if mine is not None and mine.partnership_suspended and mine.partner_officer_id:
            return mine.partner_officer_id
        pointing = self.gateway.list_exceptions(
            date=key.date,
            shift_type_id=key.shift_type_id,
            partner_officer_id=officer_id,
            segment=SEGMENT_PRIMARY,
            suspended_only=True,
        )
        if pointing:
            return pointing[0].officer_id
        event = self.gateway.find_open_suspension(officer_id, key.date, key.shift_type_id)
        return event.partner_officer_id if event is not None else None

    def _unavailable_reason(self, officer_id: int, partner_id: int, key: ShiftKey) -> Optional[str]:
        mine = self.gateway.get_exception(officer_id, key.date, key.shift_type_id)
        if mine is not None and mine.is_pto:
            return f"officer {officer_id} still has PTO on this shift"
        theirs = self._assignment(partner_id, key)
        if theirs is None:
            return f"officer {partner_id} is not scheduled"
        if theirs.pto is not None:
            return f"officer {partner_id} is on {theirs.pto.pto_type} PTO"
        if not theirs.is_working:
            return f"officer {partner_id} is off duty"
        if theirs.has_active_partnership and theirs.partner_officer_id != officer_id:
            return f"officer {partner_id} is now partnered with officer {theirs.partner_officer_id}"
        return None

    # Row helpers

    def _write_sides(self, officer_id: int, key: ShiftKey, values: Dict[str, Any]) -> None:
        """Write partnership values to the officer's primary row and any working remainder."""
        self.gateway.upsert_exception(officer_id, key.date, key.shift_type_id, values)
        remainder = self.gateway.get_exception(officer_id, key.date, key.shift_type_id, SEGMENT_REMAINDER)
        if remainder is not None:
            partnership_only = {name: value for name, value in values.items() if name in PARTNERSHIP_FIELDS}
            self.gateway.upsert_exception(
                officer_id, key.date, key.shift_type_id, partnership_only, segment=SEGMENT_REMAINDER
            )

    def _snapshot(self, officer_id: int, key: ShiftKey) -> Optional[Dict[str, Any]]:
        row = self.gateway.get_exception(officer_id, key.date, key.shift_type_id)
        if row is None:
            return None
        return {name: getattr(row, name) for name in PARTNERSHIP_FIELDS}

    def _revert(self, officer_id: int, key: ShiftKey, snapshot: Optional[Dict[str, Any]]) -> None:
        if snapshot is not None:
            self._write_sides(officer_id, key, snapshot)
            return
        row = self.gateway.get_exception(officer_id, key.date, key.shift_type_id)
        if row is not None and not row.is_off:
            self.gateway.delete_exception(officer_id, key.date, key.shift_type_id, SEGMENT_PRIMARY)
        elif row is not None:
            self.gateway.upsert_exception(officer_id, key.date, key.shift_type_id, cleared_fields())
