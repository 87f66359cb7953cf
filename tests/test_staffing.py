from __future__ import annotations

import datetime

from resolver import ShiftKey
from staffing import (
    STATUS_ADEQUATE,
    STATUS_NO_REQUIREMENTS,
    STATUS_UNDERSTAFFED,
    Minimums,
    compute_staffing,
    load_minimums,
    staffing_for,
    staffing_for_range,
)

DAY = datetime.date(2025, 3, 10)


def _seed(roster, gateway):
    shift = roster.shift()
    roster.recurring(roster.officer("Lee Grant", "Sergeant"), shift, position="Supervisor")
    roster.recurring(roster.officer("Dana Reyes"), shift)
    roster.recurring(roster.officer("Kim Park", "Probationary"), shift, position="Riding with partner")
    roster.recurring(roster.officer("Ray Stone"), shift, position="Detective")
    away = roster.officer("Sam Ortiz")
    roster.recurring(away, shift)
    gateway.upsert_exception(away.id, DAY, shift.id, {"is_off": True, "reason": "vacation", "pto_hours": 9.0})
    off = roster.officer("Ann Blank")
    roster.recurring(off, shift)
    gateway.upsert_exception(off.id, DAY, shift.id, {"is_off": True})
    return shift


def test_counts_exclude_pto_off_duty_and_special(roster, gateway, resolver):
    shift = _seed(roster, gateway)

    status = compute_staffing(resolver.resolve(DAY, shift.id), Minimums(minimum_supervisors=1, minimum_officers=2))

    assert status.current_supervisors == 1
    assert status.current_officers == 1
    assert status.current_probationary == 1
    assert status.is_understaffed
    assert status.status == STATUS_UNDERSTAFFED
    assert status.officer_shortfall == 1
    assert status.supervisor_shortfall == 0


def test_zero_minimums_mean_no_requirements(roster, gateway, resolver):
    shift = _seed(roster, gateway)

    status = compute_staffing(resolver.resolve(DAY, shift.id), Minimums())

    assert not status.is_understaffed
    assert status.status == STATUS_NO_REQUIREMENTS


def test_partial_pto_officer_still_counts(roster, gateway, resolver, pto_manager):
    shift = roster.shift()
    officer = roster.officer("Dana Reyes")
    roster.recurring(officer, shift)
    pto_manager.assign_pto(officer.id, ShiftKey(shift.id, DAY), "sick", ("08:00", "10:00"))

    status = compute_staffing(resolver.resolve(DAY, shift.id), Minimums(minimum_officers=1))

    assert status.current_officers == 1
    assert status.status == STATUS_ADEQUATE


def test_staffing_for_reads_stored_minimums(roster, gateway, resolver):
    shift = _seed(roster, gateway)
    gateway.set_minimums(DAY.weekday(), shift.id, minimum_officers=1, minimum_supervisors=1)

    assert load_minimums(gateway, DAY.weekday(), shift.id) == Minimums(minimum_supervisors=1, minimum_officers=1)
    status = staffing_for(resolver, DAY, shift.id)
    assert status.status == STATUS_ADEQUATE
    assert load_minimums(gateway, (DAY.weekday() + 1) % 7, shift.id) == Minimums()


def test_staffing_for_range_reports_each_day(roster, gateway, resolver):
    shift = _seed(roster, gateway)
    gateway.set_minimums(DAY.weekday(), shift.id, minimum_officers=3, minimum_supervisors=0)

    statuses = staffing_for_range(resolver, DAY, DAY + datetime.timedelta(days=6), shift.id)

    assert len(statuses) == 7
    assert statuses[0].status == STATUS_UNDERSTAFFED
    assert all(status.status == STATUS_NO_REQUIREMENTS for status in statuses[1:])
