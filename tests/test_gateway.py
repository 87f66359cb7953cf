from __future__ import annotations

import datetime
import json

import pytest
from sqlalchemy import Text

from audit import AuditSink
from database import AuditLog
from errors import ConflictError, InsufficientBalanceError, NotFoundError, ValidationError

DAY = datetime.date(2025, 3, 10)


def test_deduct_is_conditional_on_the_balance(roster, gateway):
    officer = roster.officer("Dana Reyes", vacation=6.0)

    assert gateway.deduct_balance(officer.id, "vacation", 4.0) == 2.0
    with pytest.raises(InsufficientBalanceError) as excinfo:
        gateway.deduct_balance(officer.id, "vacation", 4.0)

    assert excinfo.value.available == 2.0
    assert excinfo.value.required == 4.0
    assert gateway.get_officer(officer.id).vacation_hours == 2.0
    assert gateway.refund_balance(officer.id, "vacation", 4.0) == 6.0


def test_balance_calls_reject_unknown_types_and_officers(roster, gateway):
    officer = roster.officer("Dana Reyes")

    with pytest.raises(ValidationError):
        gateway.deduct_balance(officer.id, "bereavement", 1.0)
    with pytest.raises(NotFoundError):
        gateway.refund_balance(999, "sick", 1.0)
    with pytest.raises(NotFoundError):
        gateway.get_officer(999)


def test_end_assignment_keeps_history(roster, gateway, resolver):
    shift = roster.shift()
    officer = roster.officer("Dana Reyes")
    row = roster.recurring(officer, shift)

    gateway.end_assignment(row.id, DAY - datetime.timedelta(days=1))

    assert gateway.get_recurring(row.id).end_date == DAY - datetime.timedelta(days=1)
    assert resolver.resolve(DAY - datetime.timedelta(days=7), shift.id).get(officer.id) is not None
    assert resolver.resolve(DAY, shift.id).get(officer.id) is None
    with pytest.raises(ValidationError):
        gateway.end_assignment(row.id, row.start_date - datetime.timedelta(days=1))


def test_claim_pto_row_refuses_a_second_writer(roster, gateway):
    shift = roster.shift()
    officer = roster.officer("Dana Reyes")
    gateway.upsert_exception(officer.id, DAY, shift.id, {"position": "District 3"})

    claimed = gateway.claim_pto_row(officer.id, DAY, shift.id, {"reason": "sick", "pto_hours": 9.0})

    assert claimed.is_off and claimed.position == "District 3"
    with pytest.raises(ConflictError):
        gateway.claim_pto_row(officer.id, DAY, shift.id, {"reason": "vacation", "pto_hours": 9.0})


def test_minimums_upsert_per_day_and_shift(roster, gateway):
    shift = roster.shift()

    gateway.set_minimums(0, shift.id, minimum_officers=4, minimum_supervisors=1)
    gateway.set_minimums(0, shift.id, minimum_officers=5, minimum_supervisors=1)

    row = gateway.get_minimums(0, shift.id)
    assert (row.minimum_officers, row.minimum_supervisors) == (5, 1)
    assert gateway.get_minimums(1, shift.id) is None


def test_audit_payload_keeps_long_step_logs(gateway):
    sink = AuditSink(gateway)
    steps = [{"step": f"step-{index}", "status": "done", "attempts": 1, "error": None} for index in range(60)]

    sink.log("PTO_ASSIGNED", "sgt.grant", "PTO with a long step log", target_id=1, details={"steps": steps})

    assert isinstance(AuditLog.__table__.c.payloadJSON.type, Text)
    stored = gateway.list_audit(action="PTO_ASSIGNED")[0]
    assert len(stored.payloadJSON) > 2000
    assert json.loads(stored.payloadJSON)["steps"] == steps
