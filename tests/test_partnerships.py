from __future__ import annotations

import datetime

import pytest

from errors import ConflictError, ValidationError
from partnerships import active_fields
from resolver import ShiftKey, WeeklyKey

DAY = datetime.date(2025, 3, 10)


def _three_on_shift(roster):
    shift = roster.shift()
    senior = roster.officer("Dana Reyes")
    ppo = roster.officer("Kim Park", "Probationary")
    other = roster.officer("Sam Ortiz")
    for person in (senior, ppo, other):
        roster.recurring(person, shift)
    return shift, senior, ppo, other


def test_create_then_validate_reports_both_sides_valid(roster, partnerships):
    shift, senior, ppo, _ = _three_on_shift(roster)
    key = ShiftKey(shift.id, DAY)

    pair = partnerships.create_partnership(senior.id, ppo.id, key, actor="sgt.grant")

    assert pair.is_active and pair.is_reciprocal
    report = partnerships.validate_day(DAY, shift.id)
    assert (report.valid, report.suspended, report.orphaned) == (2, 0, 0)
    listed = partnerships.list_partnerships(DAY, shift.id)
    assert len(listed) == 1
    assert listed[0].members == frozenset((senior.id, ppo.id))


def test_create_rejects_self_and_existing_partnerships(roster, partnerships):
    shift, senior, ppo, other = _three_on_shift(roster)
    key = ShiftKey(shift.id, DAY)
    partnerships.create_partnership(senior.id, ppo.id, key)

    with pytest.raises(ValidationError):
        partnerships.create_partnership(other.id, other.id, key)
    with pytest.raises(ConflictError) as excinfo:
        partnerships.create_partnership(other.id, ppo.id, key)
    assert excinfo.value.existing["partner_officer_id"] == senior.id


def test_create_rejects_officer_on_pto(roster, gateway, partnerships):
    shift, senior, ppo, _ = _three_on_shift(roster)
    gateway.upsert_exception(senior.id, DAY, shift.id, {"is_off": True, "reason": "sick", "pto_hours": 9.0})

    with pytest.raises(ValidationError):
        partnerships.create_partnership(senior.id, ppo.id, ShiftKey(shift.id, DAY))


def test_create_rejects_officer_not_on_the_shift(roster, gateway, partnerships, resolver):
    shift, _, ppo, _ = _three_on_shift(roster)
    stranger = roster.officer("Lou Vega")

    with pytest.raises(ValidationError):
        partnerships.create_partnership(stranger.id, ppo.id, ShiftKey(shift.id, DAY))

    assert resolver.effective_assignment(stranger.id, DAY, shift.id) is None
    assert gateway.get_exception(stranger.id, DAY, shift.id) is None
    assert gateway.get_exception(ppo.id, DAY, shift.id) is None


def test_remove_is_idempotent(roster, partnerships, resolver):
    shift, senior, ppo, _ = _three_on_shift(roster)
    key = ShiftKey(shift.id, DAY)
    partnerships.create_partnership(senior.id, ppo.id, key)

    assert partnerships.remove_partnership(senior.id, key) == 2
    first = [(item.officer_id, item.partner_officer_id) for item in resolver.resolve(DAY, shift.id).assignments]
    assert partnerships.remove_partnership(senior.id, key) == 0
    second = [(item.officer_id, item.partner_officer_id) for item in resolver.resolve(DAY, shift.id).assignments]

    assert first == second
    assert all(partner is None for _, partner in second)


def test_removing_a_recurring_pair_for_one_date(roster, partnerships, resolver):
    shift = roster.shift()
    senior = roster.officer("Dana Reyes")
    ppo = roster.officer("Kim Park", "Probationary")
    roster.pair(senior, ppo, shift)

    assert partnerships.remove_partnership(ppo.id, ShiftKey(shift.id, DAY)) == 2

    assert resolver.effective_assignment(senior.id, DAY, shift.id).partner_officer_id is None
    next_week = DAY + datetime.timedelta(days=7)
    assert resolver.effective_assignment(senior.id, next_week, shift.id).partner_officer_id == ppo.id


def test_one_sided_record_is_orphaned_and_repair_is_rerunnable(roster, gateway, partnerships):
    shift, senior, ppo, _ = _three_on_shift(roster)
    gateway.upsert_exception(senior.id, DAY, shift.id, active_fields(ppo.id))

    report = partnerships.validate_day(DAY, shift.id)
    assert report.orphaned == 1
    assert report.orphans[0].officer_id == senior.id

    assert partnerships.repair_orphaned(DAY) == 1
    assert partnerships.repair_orphaned(DAY) == 0
    assert partnerships.validate_day(DAY, shift.id).orphaned == 0


def test_repair_leaves_the_partner_of_someone_else_alone(roster, gateway, partnerships, resolver):
    shift, senior, ppo, other = _three_on_shift(roster)
    key = ShiftKey(shift.id, DAY)
    partnerships.create_partnership(other.id, ppo.id, key)
    gateway.upsert_exception(senior.id, DAY, shift.id, active_fields(ppo.id))

    assert partnerships.repair_orphaned(DAY) == 1

    assert resolver.effective_assignment(ppo.id, DAY, shift.id).partner_officer_id == other.id
    assert resolver.effective_assignment(senior.id, DAY, shift.id).partner_officer_id is None


def test_weekly_partnership_uses_recurring_rows(roster, gateway, partnerships, resolver):
    shift, senior, ppo, _ = _three_on_shift(roster)
    key = WeeklyKey(shift.id, DAY.weekday())

    pair = partnerships.create_partnership(senior.id, ppo.id, key)

    assert pair.is_reciprocal
    assert partnerships.validate_weekly(as_of=DAY).valid == 2
    later = DAY + datetime.timedelta(days=14)
    assert resolver.effective_assignment(ppo.id, later, shift.id).partner_officer_id == senior.id
    assert partnerships.remove_partnership(senior.id, key) == 2
    assert partnerships.partnership_for(senior.id, key) is None


def test_weekly_partnership_needs_both_recurring_rows(roster, partnerships):
    shift = roster.shift()
    senior = roster.officer("Dana Reyes")
    ppo = roster.officer("Kim Park", "Probationary")
    roster.recurring(senior, shift)

    with pytest.raises(ValidationError):
        partnerships.create_partnership(senior.id, ppo.id, WeeklyKey(shift.id, DAY.weekday()))


def test_weekly_orphan_is_repaired(roster, gateway, partnerships):
    shift = roster.shift()
    senior = roster.officer("Dana Reyes")
    ppo = roster.officer("Kim Park", "Probationary")
    row = roster.recurring(senior, shift, partner=ppo)
    roster.recurring(ppo, shift)

    assert partnerships.validate_weekly(as_of=DAY).orphaned == 1
    assert partnerships.repair_orphaned(DAY) == 1

    refreshed = gateway.get_recurring(row.id)
    assert refreshed.partner_officer_id is None
    assert not refreshed.is_partnership


def test_suspend_for_pto_is_idempotent(roster, gateway, partnerships):
    shift = roster.shift()
    senior = roster.officer("Dana Reyes")
    ppo = roster.officer("Kim Park", "Probationary")
    roster.pair(senior, ppo, shift)
    key = ShiftKey(shift.id, DAY)

    first = partnerships.suspend_for_pto(senior.id, ppo.id, key, "Dana Reyes on Sick Leave PTO")
    second = partnerships.suspend_for_pto(senior.id, ppo.id, key, "Dana Reyes on Sick Leave PTO")

    assert first["event_created"] and not second["event_created"]
    assert first["partner_record_created"]
    assert len(gateway.list_suspension_events(date=DAY, open_only=True)) == 1
    mine = gateway.get_exception(senior.id, DAY, shift.id)
    theirs = gateway.get_exception(ppo.id, DAY, shift.id)
    assert mine.partnership_suspended and not mine.is_partnership and not mine.is_off
    assert theirs.partnership_suspended and theirs.partner_officer_id == senior.id
    assert theirs.position == "Riding with partner"
    report = partnerships.validate(gateway.list_exceptions(date=DAY))
    assert (report.valid, report.suspended, report.orphaned) == (0, 2, 0)


def test_restore_without_suspension_is_a_noop(roster, partnerships):
    shift, senior, _, _ = _three_on_shift(roster)
    outcome = partnerships.restore_after_pto_removal(senior.id, ShiftKey(shift.id, DAY))
    assert outcome["status"] == "noop"


def test_end_assignment_sets_end_date(roster, gateway, partnerships):
    shift = roster.shift()
    officer = roster.officer("Dana Reyes")
    row = roster.recurring(officer, shift)

    partnerships.end_assignment(row.id, DAY)

    assert gateway.get_recurring(row.id).end_date == DAY
    with pytest.raises(ValidationError):
        partnerships.end_assignment(row.id, row.start_date - datetime.timedelta(days=1))
