from __future__ import annotations

import datetime
from typing import Any, Dict, List, Optional

from errors import ValidationError
from partnerships import PartnershipManager
from resolver import EffectiveDailySchedule, ScheduleResolver
from staffing import compute_staffing, load_minimums

WEEKDAY_TOKENS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def validate_schedule_range(
    gateway,
    start: datetime.date,
    end: Optional[datetime.date] = None,
    *,
    shift_type_id: Optional[int] = None,
    resolver: Optional[ScheduleResolver] = None,
    partnerships: Optional[PartnershipManager] = None,
) -> Dict[str, Any]:
    """Return integrity findings for every day between ``start`` and ``end``."""
    end = end or start
    if end < start:
        raise ValidationError("Validation range ends before it starts.")
    resolver = resolver or ScheduleResolver(gateway)
    partnerships = partnerships or PartnershipManager(gateway, resolver)
    shifts = {shift.id: shift for shift in gateway.list_shift_types()}
    if shift_type_id is not None and shift_type_id not in shifts:
        gateway.get_shift_type(shift_type_id)

    issues: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    weekly = partnerships.validate_weekly(as_of=start)
    issues.extend(_orphan_issues(weekly.orphans))

    current = start
    while current <= end:
        schedule = resolver.resolve(current, shift_type_id)
        warnings.extend(warning.as_dict() for warning in schedule.warnings)
        issues.extend(_orphan_issues(partnerships.validate(schedule.assignments).orphans))
        ppo_errors, ppo_warnings = _probationary_issues(schedule)
        issues.extend(ppo_errors)
        warnings.extend(ppo_warnings)
        wanted = [shift_type_id] if shift_type_id is not None else list(shifts)
        issues.extend(_staffing_issues(gateway, schedule, wanted, shifts))
        current += datetime.timedelta(days=1)

    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "checks": _build_checklist(issues, warnings),
        "issues": issues,
        "warnings": warnings,
    }


def _orphan_issues(orphans) -> List[Dict[str, Any]]:
    issues = []
    for orphan in orphans:
        entry = orphan.as_dict()
        entry["severity"] = "error"
        issues.append(entry)
    return issues


def _probationary_issues(schedule: EffectiveDailySchedule):
    errors: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    day = WEEKDAY_TOKENS[schedule.date.weekday()]
    for assignment in schedule.probationary:
        if assignment.has_active_partnership:
            continue
        entry = {
            "officer_id": assignment.officer_id,
            "officer": assignment.name,
            "date": schedule.date.isoformat(),
            "day": day,
            "shift_type_id": assignment.shift_type_id,
        }
        if assignment.partnership_suspended:
            warnings.append(
                {
                    **entry,
                    "type": "ppo_suspended",
                    "severity": "warning",
                    "message": f"{assignment.name} has a suspended partnership on {day} "
                    f"{schedule.date.isoformat()} and needs an emergency partner.",
                }
            )
            continue
        errors.append(
            {
                **entry,
                "type": "ppo_unpartnered",
                "severity": "error",
                "message": f"{assignment.name} is on duty {day} {schedule.date.isoformat()} without a partner.",
            }
        )
    return errors, warnings


def _staffing_issues(gateway, schedule: EffectiveDailySchedule, shift_ids: List[int], shifts) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for shift_id in shift_ids:
        subset = EffectiveDailySchedule(date=schedule.date, shift_type_id=shift_id, shift_name=shifts[shift_id].name)
        subset.supervisors = [item for item in schedule.supervisors if item.shift_type_id == shift_id]
        subset.officers = [item for item in schedule.officers if item.shift_type_id == shift_id]
        subset.probationary = [item for item in schedule.probationary if item.shift_type_id == shift_id]
        status = compute_staffing(subset, load_minimums(gateway, schedule.date.weekday(), shift_id))
        if not status.is_understaffed:
            continue
        issues.append(
            {
                "type": "staffing",
                "severity": "error",
                "date": schedule.date.isoformat(),
                "day": WEEKDAY_TOKENS[schedule.date.weekday()],
                "shift_type_id": shift_id,
                "shift": shifts[shift_id].name,
                **status.as_dict(),
                "message": f"{shifts[shift_id].name} on {schedule.date.isoformat()} is understaffed: "
                f"{status.current_supervisors}/{status.min_supervisors} supervisors, "
                f"{status.current_officers}/{status.min_officers} officers.",
            }
        )
    return issues


def _build_checklist(issues: List[Dict[str, Any]], warnings: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    checks: List[Dict[str, Any]] = []

    def add_check(label: str, items: List[Dict[str, Any]], *, limit: int = 5) -> None:
        parts = [str(item.get("message") or "") for item in items[:limit]]
        if len(items) > limit:
            parts.append(f"+{len(items) - limit} more")
        checks.append(
            {
                "label": label,
                "status": "fail" if items else "ok",
                "details": "; ".join(part for part in parts if part),
            }
        )

    add_check("Partnerships reciprocal?", [item for item in issues if item.get("type") == "orphaned_partnership"])
    add_check("Probationary officers partnered?", [item for item in issues if item.get("type") == "ppo_unpartnered"])
    add_check("Minimum staffing met?", [item for item in issues if item.get("type") == "staffing"])
    add_check(
        "Recurring assignments well-formed?",
        [item for item in warnings if item.get("type") in {"malformed_recurring", "overlapping_recurring"}],
    )
    return checks
