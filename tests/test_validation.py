from __future__ import annotations

import datetime

import pytest

from errors import ValidationError
from partnerships import active_fields
from resolver import ShiftKey
from validation import validate_schedule_range

DAY = datetime.date(2025, 3, 10)


def _checks(report):
    return {check["label"]: check["status"] for check in report["checks"]}


def test_clean_schedule_passes_every_check(roster, gateway, resolver, partnerships):
    shift = roster.shift()
    roster.pair(roster.officer("Dana Reyes"), roster.officer("Kim Park", "Probationary"), shift)

    report = validate_schedule_range(gateway, DAY, resolver=resolver, partnerships=partnerships)

    assert report["issues"] == []
    assert report["warnings"] == []
    assert set(_checks(report).values()) == {"ok"}


def test_findings_across_a_range(roster, gateway, resolver, partnerships):
    shift = roster.shift()
    senior = roster.officer("Dana Reyes")
    ppo = roster.officer("Kim Park", "Probationary")
    broken = roster.officer("Broken Row")
    roster.recurring(senior, shift)
    roster.recurring(ppo, shift, position="Riding with partner")
    roster.recurring(broken, shift, DAY + datetime.timedelta(days=1), start_date=DAY, end_date=DAY - datetime.timedelta(days=2))
    gateway.upsert_exception(senior.id, DAY, shift.id, active_fields(roster.officer("Sam Ortiz").id))
    gateway.set_minimums(DAY.weekday(), shift.id, minimum_officers=3, minimum_supervisors=1)

    report = validate_schedule_range(
        gateway, DAY, DAY + datetime.timedelta(days=1), resolver=resolver, partnerships=partnerships
    )

    kinds = sorted(issue["type"] for issue in report["issues"])
    assert kinds == ["orphaned_partnership", "ppo_unpartnered", "staffing"]
    assert [warning["type"] for warning in report["warnings"]] == ["malformed_recurring"]
    checks = _checks(report)
    assert checks["Partnerships reciprocal?"] == "fail"
    assert checks["Probationary officers partnered?"] == "fail"
    assert checks["Minimum staffing met?"] == "fail"
    assert checks["Recurring assignments well-formed?"] == "fail"


def test_suspended_ppo_is_a_warning(roster, gateway, resolver, partnerships, pto_manager):
    shift = roster.shift()
    senior = roster.officer("Dana Reyes")
    ppo = roster.officer("Kim Park", "Probationary")
    roster.pair(senior, ppo, shift)
    pto_manager.assign_pto(senior.id, ShiftKey(shift.id, DAY), "sick")
    report = validate_schedule_range(gateway, DAY, resolver=resolver, partnerships=partnerships)

    assert report["issues"] == []
    assert [warning["type"] for warning in report["warnings"]] == ["ppo_suspended"]


def test_backwards_range_is_rejected(gateway):
    with pytest.raises(ValidationError):
        validate_schedule_range(gateway, DAY, DAY - datetime.timedelta(days=1))
