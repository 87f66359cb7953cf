from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from resolver import EffectiveDailySchedule, ScheduleResolver

logger = logging.getLogger(__name__)

STATUS_UNDERSTAFFED = "understaffed"
STATUS_ADEQUATE = "adequate"
STATUS_NO_REQUIREMENTS = "no_requirements"


@dataclass(frozen=True)
class Minimums:
    minimum_supervisors: int = 0
    minimum_officers: int = 0

    @property
    def has_requirements(self) -> bool:
        return self.minimum_supervisors > 0 or self.minimum_officers > 0


@dataclass
class StaffingStatus:
    date: Optional[datetime.date]
    shift_type_id: Optional[int]
    current_supervisors: int
    current_officers: int
    current_probationary: int
    min_supervisors: int
    min_officers: int
    is_understaffed: bool
    status: str

    @property
    def supervisor_shortfall(self) -> int:
        return max(0, self.min_supervisors - self.current_supervisors)

    @property
    def officer_shortfall(self) -> int:
        return max(0, self.min_officers - self.current_officers)

    def as_dict(self) -> Dict[str, object]:
        return {
            "date": self.date.isoformat() if self.date else None,
            "shift_type_id": self.shift_type_id,
            "current_supervisors": self.current_supervisors,
            "current_officers": self.current_officers,
            "current_probationary": self.current_probationary,
            "min_supervisors": self.min_supervisors,
            "min_officers": self.min_officers,
            "supervisor_shortfall": self.supervisor_shortfall,
            "officer_shortfall": self.officer_shortfall,
            "is_understaffed": self.is_understaffed,
            "status": self.status,
        }


def compute_staffing(schedule: EffectiveDailySchedule, minimums: Optional[Minimums]) -> StaffingStatus:
    """Count who is actually on the street against the configured minimums.

    Only the working buckets count. Full-shift PTO and scheduled-off officers
    never reach them, special assignments have their own bucket, and
    probationary officers are reported separately from regular officers.
    """
    minimums = minimums or Minimums()
    supervisors = len(schedule.supervisors)
    officers = len(schedule.officers)
    understaffed = (
        (minimums.minimum_supervisors > 0 and supervisors < minimums.minimum_supervisors)
        or (minimums.minimum_officers > 0 and officers < minimums.minimum_officers)
    )
    if not minimums.has_requirements:
        status = STATUS_NO_REQUIREMENTS
    elif understaffed:
        status = STATUS_UNDERSTAFFED
    else:
        status = STATUS_ADEQUATE
    return StaffingStatus(
        date=schedule.date,
        shift_type_id=schedule.shift_type_id,
        current_supervisors=supervisors,
        current_officers=officers,
        current_probationary=len(schedule.probationary),
        min_supervisors=minimums.minimum_supervisors,
        min_officers=minimums.minimum_officers,
        is_understaffed=understaffed,
        status=status,
    )


def load_minimums(gateway, day_of_week: int, shift_type_id: int) -> Minimums:
    row = gateway.get_minimums(day_of_week, shift_type_id)
    if row is None:
        return Minimums()
    return Minimums(
        minimum_supervisors=int(row.minimum_supervisors or 0),
        minimum_officers=int(row.minimum_officers or 0),
    )


def staffing_for(resolver: ScheduleResolver, date_value: datetime.date, shift_type_id: int) -> StaffingStatus:
    schedule = resolver.resolve(date_value, shift_type_id)
    status = compute_staffing(schedule, load_minimums(resolver.gateway, date_value.weekday(), shift_type_id))
    if status.is_understaffed:
        logger.warning(
            "%s shift %s understaffed: %d/%d supervisors, %d/%d officers",
            date_value.isoformat(),
            shift_type_id,
            status.current_supervisors,
            status.min_supervisors,
            status.current_officers,
            status.min_officers,
        )
    return status


def staffing_for_range(
    resolver: ScheduleResolver,
    start: datetime.date,
    end: datetime.date,
    shift_type_id: int,
) -> List[StaffingStatus]:
    results: List[StaffingStatus] = []
    minimums_by_day: Dict[int, Minimums] = {}
    for schedule in resolver.resolve_range(start, end, shift_type_id):
        weekday = schedule.date.weekday()
        if weekday not in minimums_by_day:
            minimums_by_day[weekday] = load_minimums(resolver.gateway, weekday, shift_type_id)
        results.append(compute_staffing(schedule, minimums_by_day[weekday]))
    return results
