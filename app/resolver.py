"""Schedule overlay resolution.

The effective schedule for a date is built from two assignment sources: the
weekly recurring assignments and the date-specific schedule exceptions. Both
are indexed by (officer, shift) and merged so that an exception for a key
fully overrides the recurring row for the same key. Everything that needs to
know "who is working this shift" goes through ``ScheduleResolver`` so the
precedence rule lives in one place.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from database import (
    Officer,
    RecurringAssignment,
    ScheduleException,
    ShiftType,
    SEGMENT_PRIMARY,
    SEGMENT_REMAINDER,
)
from errors import IntegrityWarning
from ranks import Rank, is_special_assignment
from settings import load_settings
from shift_time import TimeRange, minutes_to_hours, span_minutes

logger = logging.getLogger(__name__)

CATEGORY_SUPERVISOR = "supervisor"
CATEGORY_OFFICER = "officer"
CATEGORY_PROBATIONARY = "probationary"
CATEGORY_SPECIAL = "special"

SOURCE_RECURRING = "recurring"
SOURCE_EXCEPTION = "exception"
SOURCE_ADDED = "added"


@dataclass(frozen=True)
class ShiftKey:
    """A single shift on a single date."""

    shift_type_id: int
    date: datetime.date

    @property
    def day_of_week(self) -> int:
        return self.date.weekday()

    def label(self) -> str:
        return f"{self.date.isoformat()} shift {self.shift_type_id}"


@dataclass(frozen=True)
class WeeklyKey:
    """A shift on a day of the week, as used by recurring assignments."""

    shift_type_id: int
    day_of_week: int

    def label(self) -> str:
        return f"weekday {self.day_of_week} shift {self.shift_type_id}"


@dataclass
class PTORecord:
    officer_id: int
    name: str
    shift_type_id: int
    pto_type: str
    start_time: datetime.time
    end_time: datetime.time
    hours: float
    is_full_shift: bool
    record_id: Optional[int] = None


@dataclass
class EffectiveAssignment:
    officer_id: int
    name: str
    badge_number: str
    rank: Rank
    date: datetime.date
    shift_type_id: int
    position: Optional[str]
    unit_number: Optional[str]
    start_time: datetime.time
    end_time: datetime.time
    source: str
    is_off: bool = False
    is_extra_shift: bool = False
    is_partnership: bool = False
    partner_officer_id: Optional[int] = None
    partner_name: Optional[str] = None
    partnership_suspended: bool = False
    partnership_suspension_reason: Optional[str] = None
    is_emergency_partnership: bool = False
    pto: Optional[PTORecord] = None
    category: Optional[str] = None
    record_id: Optional[int] = None
    recurring_id: Optional[int] = None
    last_name: str = ""

    @property
    def is_working(self) -> bool:
        return not self.is_off or (self.pto is not None and not self.pto.is_full_shift)

    @property
    def is_probationary(self) -> bool:
        return self.rank.is_probationary()

    @property
    def is_supervisor(self) -> bool:
        return self.rank.is_supervisor()

    @property
    def has_active_partnership(self) -> bool:
        return bool(self.is_partnership and self.partner_officer_id and not self.partnership_suspended)

    @property
    def hours(self) -> float:
        return minutes_to_hours(span_minutes(self.start_time, self.end_time))

    @property
    def key(self) -> ShiftKey:
        return ShiftKey(self.shift_type_id, self.date)


@dataclass
class EffectiveDailySchedule:
    date: datetime.date
    shift_type_id: Optional[int]
    shift_name: Optional[str]
    assignments: List[EffectiveAssignment] = field(default_factory=list)
    supervisors: List[EffectiveAssignment] = field(default_factory=list)
    officers: List[EffectiveAssignment] = field(default_factory=list)
    probationary: List[EffectiveAssignment] = field(default_factory=list)
    special_assignments: List[EffectiveAssignment] = field(default_factory=list)
    pto_records: List[PTORecord] = field(default_factory=list)
    off_duty: List[EffectiveAssignment] = field(default_factory=list)
    warnings: List[IntegrityWarning] = field(default_factory=list)

    def get(self, officer_id: int, shift_type_id: Optional[int] = None) -> Optional[EffectiveAssignment]:
        for assignment in self.assignments:
            if assignment.officer_id != officer_id:
                continue
            if shift_type_id is not None and assignment.shift_type_id != shift_type_id:
                continue
            return assignment
        return None

    def working(self) -> List[EffectiveAssignment]:
        return [assignment for assignment in self.assignments if assignment.is_working]


class AssignmentSource:
    """Supplies rows for a date indexed by (officer_id, shift_type_id)."""

    name = ""

    def __init__(self, gateway) -> None:
        self.gateway = gateway

    def collect(self, date_value: datetime.date, *, shift_type_id=None, officer_id=None, warnings=None):
        raise NotImplementedError


class RecurringSource(AssignmentSource):
    name = SOURCE_RECURRING

    def collect(self, date_value, *, shift_type_id=None, officer_id=None, warnings=None):
        rows = self.gateway.list_recurring(
            day_of_week=date_value.weekday(),
            shift_type_id=shift_type_id,
            officer_id=officer_id,
        )
        indexed: Dict[Tuple[int, int], RecurringAssignment] = {}
        for row in rows:
            if row.is_malformed():
                if warnings is not None:
                    warnings.append(
                        IntegrityWarning(
                            kind="malformed_recurring",
                            message=(
                                f"Recurring assignment {row.id} ends {row.end_date.isoformat()} "
                                f"before it starts {row.start_date.isoformat()}; skipped."
                            ),
                            officer_id=row.officer_id,
                            date=date_value,
                            shift_type_id=row.shift_type_id,
                            record_id=row.id,
                        )
                    )
                continue
            if not row.covers(date_value):
                continue
            key = (row.officer_id, row.shift_type_id)
            current = indexed.get(key)
            if current is not None:
                if warnings is not None:
                    warnings.append(
                        IntegrityWarning(
                            kind="overlapping_recurring",
                            message=(
                                f"Recurring assignments {current.id} and {row.id} both cover "
                                f"{date_value.isoformat()}; using the later one."
                            ),
                            officer_id=row.officer_id,
                            date=date_value,
                            shift_type_id=row.shift_type_id,
                            record_id=row.id,
                        )
                    )
                if current.start_date > row.start_date:
                    continue
            indexed[key] = row
        return indexed


class ExceptionSource(AssignmentSource):
    name = SOURCE_EXCEPTION

    def collect(self, date_value, *, shift_type_id=None, officer_id=None, warnings=None):
        rows = self.gateway.list_exceptions(date=date_value, shift_type_id=shift_type_id, officer_id=officer_id)
        indexed: Dict[Tuple[int, int], Dict[str, ScheduleException]] = {}
        for row in rows:
            indexed.setdefault((row.officer_id, row.shift_type_id), {})[row.segment] = row
        return indexed


class ScheduleResolver:
    def __init__(self, gateway, *, extra_positions: Optional[List[str]] = None) -> None:
        self.gateway = gateway
        if extra_positions is None:
            extra_positions = load_settings().get("extra_positions", [])
        self.extra_positions = list(extra_positions)
        self.recurring = RecurringSource(gateway)
        self.exceptions = ExceptionSource(gateway)

    def resolve(self, date_value: datetime.date, shift_type_id: Optional[int] = None) -> EffectiveDailySchedule:
        """Return the effective schedule for a date, for one shift or for every shift."""
        if shift_type_id is not None:
            shift = self.gateway.get_shift_type(shift_type_id)
            shifts = {shift.id: shift}
            schedule = EffectiveDailySchedule(date=date_value, shift_type_id=shift.id, shift_name=shift.name)
        else:
            shifts = {shift.id: shift for shift in self.gateway.list_shift_types()}
            schedule = EffectiveDailySchedule(date=date_value, shift_type_id=None, shift_name=None)
        self._merge(schedule, shifts, shift_type_id=shift_type_id)
        return schedule

    def resolve_range(
        self,
        start: datetime.date,
        end: datetime.date,
        shift_type_id: Optional[int] = None,
    ) -> Iterator[EffectiveDailySchedule]:
        current = start
        while current <= end:
            yield self.resolve(current, shift_type_id)
            current += datetime.timedelta(days=1)

    def effective_assignment(
        self,
        officer_id: int,
        date_value: datetime.date,
        shift_type_id: int,
    ) -> Optional[EffectiveAssignment]:
        shift = self.gateway.get_shift_type(shift_type_id)
        schedule = EffectiveDailySchedule(date=date_value, shift_type_id=shift.id, shift_name=shift.name)
        self._merge(schedule, {shift.id: shift}, shift_type_id=shift.id, officer_id=officer_id)
        return schedule.get(officer_id, shift.id)

    def _merge(
        self,
        schedule: EffectiveDailySchedule,
        shifts: Dict[int, ShiftType],
        *,
        shift_type_id: Optional[int] = None,
        officer_id: Optional[int] = None,
    ) -> None:
        date_value = schedule.date
        warnings = schedule.warnings
        recurring = self.recurring.collect(
            date_value, shift_type_id=shift_type_id, officer_id=officer_id, warnings=warnings
        )
        exceptions = self.exceptions.collect(
            date_value, shift_type_id=shift_type_id, officer_id=officer_id, warnings=warnings
        )
        keys = sorted(set(recurring) | set(exceptions))
        people = {oid for oid, _ in keys}
        for rows in exceptions.values():
            people.update(row.partner_officer_id for row in rows.values() if row.partner_officer_id)
        people.update(row.partner_officer_id for row in recurring.values() if row.partner_officer_id)
        officers = self.gateway.officers_by_id(people)

        for key in keys:
            oid, sid = key
            shift = shifts.get(sid)
            if shift is None:
                continue
            officer = officers.get(oid)
            if officer is None:
                warnings.append(
                    IntegrityWarning(
                        kind="unknown_officer",
                        message=f"Schedule rows reference officer {oid}, who is not on the roster; skipped.",
                        officer_id=oid,
                        date=date_value,
                        shift_type_id=sid,
                    )
                )
                continue
            assignment = self._build(
                officer, shift, date_value, recurring.get(key), exceptions.get(key, {}), officers, warnings
            )
            if assignment is None:
                continue
            schedule.assignments.append(assignment)
            if assignment.pto is not None:
                schedule.pto_records.append(assignment.pto)
            if not assignment.is_working:
                if assignment.pto is None:
                    schedule.off_duty.append(assignment)
                continue
            bucket = {
                CATEGORY_SUPERVISOR: schedule.supervisors,
                CATEGORY_OFFICER: schedule.officers,
                CATEGORY_PROBATIONARY: schedule.probationary,
                CATEGORY_SPECIAL: schedule.special_assignments,
            }[assignment.category]
            bucket.append(assignment)

        for bucket in (
            schedule.supervisors,
            schedule.officers,
            schedule.probationary,
            schedule.special_assignments,
            schedule.off_duty,
        ):
            bucket.sort(key=lambda item: (item.rank.order, item.last_name.lower(), item.name.lower()))
        schedule.pto_records.sort(key=lambda item: item.name.lower())
        if warnings:
            logger.debug("Resolved %s with %d integrity warnings", date_value.isoformat(), len(warnings))

    def _build(
        self,
        officer: Officer,
        shift: ShiftType,
        date_value: datetime.date,
        recurring: Optional[RecurringAssignment],
        exception_rows: Dict[str, ScheduleException],
        officers: Dict[int, Officer],
        warnings: List[IntegrityWarning],
    ) -> Optional[EffectiveAssignment]:
        rank = officer.rank_enum
        if rank is None:
            warnings.append(
                IntegrityWarning(
                    kind="unknown_rank",
                    message=f"{officer.full_name} has unrecognised rank '{officer.rank}'; treated as Officer.",
                    officer_id=officer.id,
                    date=date_value,
                    shift_type_id=shift.id,
                )
            )
            rank = Rank.OFFICER

        primary = exception_rows.get(SEGMENT_PRIMARY)
        remainder = exception_rows.get(SEGMENT_REMAINDER)
        if primary is None and remainder is not None:
            warnings.append(
                IntegrityWarning(
                    kind="orphaned_remainder",
                    message=(
                        f"{officer.full_name} has a working remainder on {date_value.isoformat()} "
                        "without its PTO record; using it as the working record."
                    ),
                    officer_id=officer.id,
                    date=date_value,
                    shift_type_id=shift.id,
                    record_id=remainder.id,
                )
            )
            primary, remainder = remainder, None

        if primary is None and recurring is None:
            return None

        if primary is None:
            source = SOURCE_RECURRING
        elif recurring is None:
            source = SOURCE_ADDED
        else:
            source = SOURCE_EXCEPTION

        override = primary
        position = None
        unit_number = None
        for row in (remainder, override, recurring):
            if row is None:
                continue
            position = position or row.position
            unit_number = unit_number or row.unit_number

        start_time, end_time = shift.start_time, shift.end_time
        pto: Optional[PTORecord] = None
        is_off = False
        if override is not None:
            is_off = bool(override.is_off)
            if override.custom_start_time and override.custom_end_time:
                start_time, end_time = override.custom_start_time, override.custom_end_time
            if override.is_off and override.reason:
                pto_range = TimeRange(start_time, end_time)
                is_full = override.custom_start_time is None and override.custom_end_time is None
                pto = PTORecord(
                    officer_id=officer.id,
                    name=officer.full_name,
                    shift_type_id=shift.id,
                    pto_type=override.reason,
                    start_time=pto_range.start,
                    end_time=pto_range.end,
                    hours=override.pto_hours or pto_range.hours,
                    is_full_shift=is_full,
                    record_id=override.id,
                )
                if not is_full:
                    if remainder is not None and remainder.custom_start_time and remainder.custom_end_time:
                        start_time, end_time = remainder.custom_start_time, remainder.custom_end_time
                    else:
                        # Partial PTO with nothing left to work.
                        pto.is_full_shift = True

        link = override if override is not None else recurring
        partner_id = link.partner_officer_id
        partner = officers.get(partner_id) if partner_id else None
        suspended = bool(getattr(link, "partnership_suspended", False))
        assignment = EffectiveAssignment(
            officer_id=officer.id,
            name=officer.full_name,
            badge_number=officer.badge_number,
            rank=rank,
            date=date_value,
            shift_type_id=shift.id,
            position=position,
            unit_number=unit_number,
            start_time=start_time,
            end_time=end_time,
            source=source,
            is_off=is_off,
            is_extra_shift=bool(override.is_extra_shift) if override is not None else False,
            is_partnership=bool(link.is_partnership),
            partner_officer_id=partner_id,
            partner_name=partner.full_name if partner else None,
            partnership_suspended=suspended,
            partnership_suspension_reason=getattr(link, "partnership_suspension_reason", None),
            is_emergency_partnership=bool(getattr(link, "is_emergency_partnership", False)),
            pto=pto,
            record_id=override.id if override is not None else None,
            recurring_id=recurring.id if recurring is not None else None,
            last_name=officer.last_name,
        )
        if source == SOURCE_ADDED and not is_off:
            assignment.is_extra_shift = True
        if assignment.is_working:
            assignment.category = self._categorize(rank, position)
        return assignment

    def _categorize(self, rank: Rank, position: Optional[str]) -> str:
        if is_special_assignment(position, self.extra_positions):
            return CATEGORY_SPECIAL
        if rank.is_supervisor():
            return CATEGORY_SUPERVISOR
        if rank.is_probationary():
            return CATEGORY_PROBATIONARY
        return CATEGORY_OFFICER
