"""PTO assignment, edit and removal.

Every write path validates first and then runs its writes as a ``Saga`` so a
failure part-way through is compensated instead of leaving, say, a deducted
balance without the PTO record that justified it.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import audit
from audit import AuditSink
from database import PTO_BALANCE_COLUMNS, PTO_TYPE_LABELS, SEGMENT_PRIMARY, SEGMENT_REMAINDER
from errors import ConflictError, InsufficientBalanceError, NotFoundError, RosterError, ValidationError
from partnerships import PARTNERSHIP_FIELDS, PartnershipManager
from resolver import ScheduleResolver, ShiftKey
from saga import Saga
from settings import load_settings
from shift_time import PTOWindow, TimeRange, format_hours, place_pto

logger = logging.getLogger(__name__)

_ROW_SKIP = {"id", "officer_id", "date", "shift_type_id", "segment", "created_at", "updated_at"}

Unit = Tuple[datetime.date, int]


def _row_values(row) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {column.name: getattr(row, column.name) for column in row.__table__.columns if column.name not in _ROW_SKIP}


def _cleared_pto() -> Dict[str, Any]:
    return {
        "is_off": False,
        "reason": None,
        "custom_start_time": None,
        "custom_end_time": None,
        "pto_hours": 0.0,
        "balance_deducted": False,
        "is_partial_shift": False,
    }


def _coerce_range(time_range) -> Optional[TimeRange]:
    if time_range is None or isinstance(time_range, TimeRange):
        return time_range
    start, end = time_range
    return TimeRange.of(start, end)


@dataclass
class PTOSummary:
    officer_id: int
    key: ShiftKey
    pto_type: str
    hours_used: float
    partnership_impacted: bool = False
    balance_impacted: bool = False
    is_full_shift: bool = True
    remainder: Optional[TimeRange] = None
    partner_officer_id: Optional[int] = None
    balance_after: Optional[float] = None
    record_id: Optional[int] = None
    removed: bool = True
    restoration: Optional[Dict[str, Any]] = None
    steps: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "officer_id": self.officer_id,
            "date": self.key.date.isoformat(),
            "shift_type_id": self.key.shift_type_id,
            "pto_type": self.pto_type,
            "hours_used": self.hours_used,
            "hours_display": format_hours(self.hours_used),
            "partnership_impacted": self.partnership_impacted,
            "balance_impacted": self.balance_impacted,
            "is_full_shift": self.is_full_shift,
            "remainder": self.remainder.label() if self.remainder else None,
            "partner_officer_id": self.partner_officer_id,
            "balance_after": self.balance_after,
            "record_id": self.record_id,
            "removed": self.removed,
            "restoration": self.restoration,
            "steps": self.steps,
        }


@dataclass
class BulkPTOResult:
    officer_id: int
    pto_type: str
    units: List[Unit] = field(default_factory=list)
    completed: List[PTOSummary] = field(default_factory=list)
    skipped: List[Unit] = field(default_factory=list)
    failed_unit: Optional[Unit] = None
    error: Optional[str] = None

    @property
    def next_unit(self) -> Optional[Unit]:
        return self.failed_unit

    @property
    def is_complete(self) -> bool:
        return self.failed_unit is None

    @property
    def total_hours(self) -> float:
        return sum(summary.hours_used for summary in self.completed)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "officer_id": self.officer_id,
            "pto_type": self.pto_type,
            "completed": [summary.as_dict() for summary in self.completed],
            "skipped": [(day.isoformat(), shift_id) for day, shift_id in self.skipped],
            "failed_unit": (self.failed_unit[0].isoformat(), self.failed_unit[1]) if self.failed_unit else None,
            "error": self.error,
            "total_hours": self.total_hours,
            "is_complete": self.is_complete,
        }


class PTOManager:
    def __init__(
        self,
        gateway,
        *,
        resolver: Optional[ScheduleResolver] = None,
        partnerships: Optional[PartnershipManager] = None,
        audit_sink: Optional[AuditSink] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings if settings is not None else load_settings()
        self.resolver = resolver or ScheduleResolver(
            gateway, extra_positions=self.settings.get("extra_positions", [])
        )
        self.audit = audit_sink or AuditSink(gateway)
        self.partnerships = partnerships or PartnershipManager(gateway, self.resolver, self.audit)

    @property
    def balances_enabled(self) -> bool:
        return bool(self.settings.get("pto_balances_enabled", True))

    def _saga(self, name: str) -> Saga:
        return Saga(name, max_attempts=int(self.settings.get("max_step_attempts", 3)))

    def _preflight(self, officer_id: int, key: ShiftKey, pto_type: str, time_range, *, replacing=None):
        if pto_type not in PTO_BALANCE_COLUMNS:
            raise ValidationError(
                f"Unknown PTO type '{pto_type}'. Expected one of: {', '.join(PTO_BALANCE_COLUMNS)}."
            )
        officer = self.gateway.get_officer(officer_id)
        shift = self.gateway.get_shift_type(key.shift_type_id)
        window = place_pto(TimeRange(shift.start_time, shift.end_time), _coerce_range(time_range))

        where = f"{officer.full_name} on {key.date.isoformat()} ({shift.name})"
        if replacing is None:
            existing = self.gateway.get_exception(officer_id, key.date, key.shift_type_id)
            if existing is not None and existing.is_off:
                what = f"{existing.reason} PTO" if existing.reason else "an off-duty record"
                raise ConflictError(
                    f"{where} already has {what}. Remove it before assigning new PTO.",
                    existing={"id": existing.id, "reason": existing.reason, "pto_hours": existing.pto_hours},
                )
            assignment = self.resolver.effective_assignment(officer_id, key.date, key.shift_type_id)
            if assignment is None:
                raise ValidationError(f"{where}: the officer is not scheduled for this shift.")
        else:
            assignment = self.resolver.effective_assignment(officer_id, key.date, key.shift_type_id)

        if self.balances_enabled:
            available = officer.balance_for(pto_type)
            if replacing is not None and replacing.balance_deducted and replacing.reason == pto_type:
                available += float(replacing.pto_hours or 0.0)
            if available < window.hours_used:
                raise InsufficientBalanceError(
                    f"Insufficient {PTO_TYPE_LABELS[pto_type]} balance for {where}. "
                    f"Available: {format_hours(available)} hours, required: {format_hours(window.hours_used)} hours.",
                    available=available,
                    required=window.hours_used,
                )
        return officer, shift, window, assignment

    def _pto_values(self, pto_type: str, window: PTOWindow, notes: str = "") -> Dict[str, Any]:
        full = window.is_full_shift
        return {
            "reason": pto_type,
            "custom_start_time": None if full else window.pto.start,
            "custom_end_time": None if full else window.pto.end,
            "pto_hours": window.hours_used,
            "balance_deducted": self.balances_enabled,
            "is_partial_shift": not full,
            "notes": notes or "",
        }

    def _remainder_values(self, window: PTOWindow, primary, assignment) -> Dict[str, Any]:
        values = {
            "is_off": False,
            "reason": None,
            "custom_start_time": window.remainder.start,
            "custom_end_time": window.remainder.end,
            "pto_hours": 0.0,
            "balance_deducted": False,
            "is_partial_shift": True,
            "position": (primary.position if primary is not None else None)
            or (assignment.position if assignment else None),
            "unit_number": (primary.unit_number if primary is not None else None)
            or (assignment.unit_number if assignment else None),
        }
        if primary is not None:
            values.update({name: getattr(primary, name) for name in PARTNERSHIP_FIELDS})
        return values

    def _add_pto_steps(self, saga: Saga, officer_id: int, key: ShiftKey, pto_type, window, assignment, notes):
        date_value, shift_id = key.date, key.shift_type_id

        def write_record():
            existed = self.gateway.get_exception(officer_id, date_value, shift_id) is not None
            row = self.gateway.claim_pto_row(officer_id, date_value, shift_id, self._pto_values(pto_type, window, notes))
            return {"row": row, "existed": existed}

        def undo_record(result):
            if result["existed"]:
                self.gateway.upsert_exception(officer_id, date_value, shift_id, _cleared_pto())
            else:
                self.gateway.delete_exception(officer_id, date_value, shift_id, SEGMENT_PRIMARY)

        saga.step("write_pto_record", write_record, undo_record)

        if window.remainder is not None:
            saga.step(
                "write_remainder",
                lambda: self.gateway.upsert_exception(
                    officer_id,
                    date_value,
                    shift_id,
                    self._remainder_values(window, saga.results["write_pto_record"]["row"], assignment),
                    segment=SEGMENT_REMAINDER,
                ),
                lambda _row: self.gateway.delete_exception(officer_id, date_value, shift_id, SEGMENT_REMAINDER),
            )

    def assign_pto(
        self,
        officer_id: int,
        key: ShiftKey,
        pto_type: str,
        time_range=None,
        actor: Optional[str] = None,
        *,
        notes: str = "",
    ) -> PTOSummary:
        """Give an officer PTO for a shift, whole or partial.

        ``time_range`` is a ``TimeRange`` or a (start, end) pair inside the
        shift; None means the whole shift. An active partnership is suspended
        first, the balance is charged with a conditional update, and a partial
        range leaves a working remainder row for the rest of the shift.
        """
        officer, shift, window, assignment = self._preflight(officer_id, key, pto_type, time_range)
        partner_id = assignment.partner_officer_id if assignment.has_active_partnership else None
        label = PTO_TYPE_LABELS[pto_type]

        saga = self._saga(f"assign_pto:{officer_id}:{key.label()}")
        if partner_id:
            saga.step(
                "suspend_partnership",
                lambda: self.partnerships.suspend_for_pto(
                    officer_id, partner_id, key, f"{officer.full_name} on {label} PTO", actor
                ),
                self.partnerships.revert_suspension,
            )
        if self.balances_enabled:
            saga.step(
                "deduct_balance",
                lambda: self.gateway.deduct_balance(officer_id, pto_type, window.hours_used),
                lambda _balance: self.gateway.refund_balance(officer_id, pto_type, window.hours_used),
            )
        self._add_pto_steps(saga, officer_id, key, pto_type, window, assignment, notes)
        results = saga.run()

        summary = PTOSummary(
            officer_id=officer_id,
            key=key,
            pto_type=pto_type,
            hours_used=window.hours_used,
            partnership_impacted=bool(partner_id),
            balance_impacted=self.balances_enabled,
            is_full_shift=window.is_full_shift,
            remainder=window.remainder,
            partner_officer_id=partner_id,
            balance_after=results.get("deduct_balance"),
            record_id=results["write_pto_record"]["row"].id,
            steps=[entry.as_dict() for entry in saga.log],
        )
        self.audit.log(
            audit.PTO_ASSIGNED,
            actor,
            f"{label} PTO for {officer.full_name} on {key.date.isoformat()} ({shift.name}): "
            f"{format_hours(window.hours_used)} hours",
            target_id=officer_id,
            details=summary.as_dict(),
        )
        logger.info(
            "PTO assigned: %s %s %s %s hours",
            officer.full_name,
            key.label(),
            pto_type,
            format_hours(window.hours_used),
        )
        return summary

    def edit_pto(
        self,
        officer_id: int,
        key: ShiftKey,
        pto_type: str,
        time_range=None,
        actor: Optional[str] = None,
        *,
        notes: Optional[str] = None,
    ) -> PTOSummary:
        """Replace an officer's PTO for a shift with a new type and/or range.

        The old charge is refunded before the new one is taken, so the balance
        only ever moves by the difference.
        """
        existing = self.gateway.get_exception(officer_id, key.date, key.shift_type_id)
        if existing is None or not existing.is_pto:
            raise NotFoundError(
                f"Officer {officer_id} has no PTO on {key.date.isoformat()} for shift {key.shift_type_id}."
            )
        officer, shift, window, assignment = self._preflight(
            officer_id, key, pto_type, time_range, replacing=existing
        )
        old_type = existing.reason
        old_hours = float(existing.pto_hours or 0.0)
        old_deducted = self.balances_enabled and bool(existing.balance_deducted) and old_type in PTO_BALANCE_COLUMNS
        old_primary = _row_values(existing)
        old_remainder = _row_values(
            self.gateway.get_exception(officer_id, key.date, key.shift_type_id, SEGMENT_REMAINDER)
        )
        keep = {name: old_primary[name] for name in PARTNERSHIP_FIELDS}
        keep.update({"position": old_primary["position"], "unit_number": old_primary["unit_number"]})
        if notes is None:
            notes = old_primary["notes"]

        saga = self._saga(f"edit_pto:{officer_id}:{key.label()}")
        if old_deducted and old_hours > 0:
            saga.step(
                "refund_previous",
                lambda: self.gateway.refund_balance(officer_id, old_type, old_hours),
                lambda _balance: self.gateway.deduct_balance(officer_id, old_type, old_hours),
            )
        if self.balances_enabled:
            saga.step(
                "deduct_balance",
                lambda: self.gateway.deduct_balance(officer_id, pto_type, window.hours_used),
                lambda _balance: self.gateway.refund_balance(officer_id, pto_type, window.hours_used),
            )

        def clear_previous():
            self.gateway.delete_exception(officer_id, key.date, key.shift_type_id)
            self.gateway.upsert_exception(officer_id, key.date, key.shift_type_id, dict(keep))

        def restore_previous(_result):
            self.gateway.delete_exception(officer_id, key.date, key.shift_type_id)
            self.gateway.upsert_exception(officer_id, key.date, key.shift_type_id, old_primary)
            if old_remainder is not None:
                self.gateway.upsert_exception(
                    officer_id, key.date, key.shift_type_id, old_remainder, segment=SEGMENT_REMAINDER
                )

        saga.step("clear_previous", clear_previous, restore_previous)
        self._add_pto_steps(saga, officer_id, key, pto_type, window, assignment, notes)
        results = saga.run()

        summary = PTOSummary(
            officer_id=officer_id,
            key=key,
            pto_type=pto_type,
            hours_used=window.hours_used,
            partnership_impacted=bool(keep["partnership_suspended"]),
            balance_impacted=self.balances_enabled or old_deducted,
            is_full_shift=window.is_full_shift,
            remainder=window.remainder,
            partner_officer_id=keep["partner_officer_id"],
            balance_after=results.get("deduct_balance"),
            record_id=results["write_pto_record"]["row"].id,
            steps=[entry.as_dict() for entry in saga.log],
        )
        self.audit.log(
            audit.PTO_UPDATED,
            actor,
            f"PTO for {officer.full_name} on {key.date.isoformat()} ({shift.name}) changed from "
            f"{old_type} {format_hours(old_hours)}h to {pto_type} {format_hours(window.hours_used)}h",
            target_id=officer_id,
            details=summary.as_dict(),
        )
        logger.info("PTO updated: %s %s %s -> %s", officer.full_name, key.label(), old_type, pto_type)
        return summary

    def remove_pto(self, officer_id: int, key: ShiftKey, actor: Optional[str] = None) -> PTOSummary:
        """Delete an officer's PTO for a shift, refund it and try to re-pair the officer.

        Without a PTO record this only runs the partnership restoration, which
        makes it the recovery path for a removal that was interrupted.
        """
        existing = self.gateway.get_exception(officer_id, key.date, key.shift_type_id)
        if existing is None or not existing.is_pto:
            restoration = self.partnerships.restore_after_pto_removal(officer_id, key, actor)
            return PTOSummary(
                officer_id=officer_id,
                key=key,
                pto_type="",
                hours_used=0.0,
                partnership_impacted=restoration["status"] != "noop",
                removed=False,
                restoration=restoration,
            )

        officer = self.gateway.get_officer(officer_id)
        pto_type = existing.reason
        hours = float(existing.pto_hours or 0.0)
        refund = self.balances_enabled and bool(existing.balance_deducted) and pto_type in PTO_BALANCE_COLUMNS and hours > 0
        partner_hint = existing.partner_officer_id if existing.partnership_suspended else None
        primary_values = _row_values(existing)
        remainder_values = _row_values(
            self.gateway.get_exception(officer_id, key.date, key.shift_type_id, SEGMENT_REMAINDER)
        )

        saga = self._saga(f"remove_pto:{officer_id}:{key.label()}")
        if refund:
            saga.step(
                "refund_balance",
                lambda: self.gateway.refund_balance(officer_id, pto_type, hours),
                lambda _balance: self.gateway.deduct_balance(officer_id, pto_type, hours),
            )
        if remainder_values is not None:
            saga.step(
                "delete_remainder",
                lambda: self.gateway.delete_exception(officer_id, key.date, key.shift_type_id, SEGMENT_REMAINDER),
                lambda _count: self.gateway.upsert_exception(
                    officer_id, key.date, key.shift_type_id, remainder_values, segment=SEGMENT_REMAINDER
                ),
            )
        saga.step(
            "delete_pto_record",
            lambda: self.gateway.delete_exception(officer_id, key.date, key.shift_type_id, SEGMENT_PRIMARY),
            lambda _count: self.gateway.upsert_exception(officer_id, key.date, key.shift_type_id, primary_values),
        )
        results = saga.run()

        restoration = self.partnerships.restore_after_pto_removal(officer_id, key, actor, partner_id=partner_hint)
        summary = PTOSummary(
            officer_id=officer_id,
            key=key,
            pto_type=pto_type,
            hours_used=hours,
            partnership_impacted=restoration["status"] != "noop",
            balance_impacted=refund,
            is_full_shift=not existing.is_partial_shift,
            partner_officer_id=restoration.get("partner_id"),
            balance_after=results.get("refund_balance"),
            record_id=existing.id,
            removed=True,
            restoration=restoration,
            steps=[entry.as_dict() for entry in saga.log],
        )
        self.audit.log(
            audit.PTO_REMOVED,
            actor,
            f"Removed {pto_type} PTO for {officer.full_name} on {key.date.isoformat()}: "
            f"{format_hours(hours)} hours {'refunded' if refund else 'not charged'}",
            target_id=officer_id,
            details=summary.as_dict(),
        )
        logger.info("PTO removed: %s %s (%s)", officer.full_name, key.label(), restoration["status"])
        return summary

    def plan_units(
        self,
        officer_id: int,
        start: datetime.date,
        end: datetime.date,
        *,
        shift_type_ids: Optional[Sequence[int]] = None,
        exclude_weekends: bool = False,
    ) -> List[Unit]:
        """(date, shift) pairs in the span that the officer is scheduled to work."""
        if end < start:
            raise ValidationError("The PTO range ends before it starts.")
        wanted = set(shift_type_ids) if shift_type_ids else None
        units: List[Unit] = []
        current = start
        while current <= end:
            if not (exclude_weekends and current.weekday() >= 5):
                schedule = self.resolver.resolve(current)
                for assignment in schedule.assignments:
                    if assignment.officer_id != officer_id:
                        continue
                    if wanted is not None and assignment.shift_type_id not in wanted:
                        continue
                    units.append((current, assignment.shift_type_id))
            current += datetime.timedelta(days=1)
        return units

    def assign_pto_range(
        self,
        officer_id: int,
        start: datetime.date,
        end: datetime.date,
        pto_type: str,
        *,
        shift_type_ids: Optional[Sequence[int]] = None,
        time_range=None,
        exclude_weekends: bool = False,
        actor: Optional[str] = None,
        resume_from: Optional[Unit] = None,
    ) -> BulkPTOResult:
        """Assign PTO for every scheduled shift in a date span, one unit at a time.

        Units already off are skipped. The first failing unit stops the run and
        is reported as ``next_unit``; passing it back as ``resume_from``
        continues from there.
        """
        if pto_type not in PTO_BALANCE_COLUMNS:
            raise ValidationError(f"Unknown PTO type '{pto_type}'.")
        officer = self.gateway.get_officer(officer_id)
        units = self.plan_units(
            officer_id, start, end, shift_type_ids=shift_type_ids, exclude_weekends=exclude_weekends
        )
        if resume_from is not None:
            units = [unit for unit in units if unit >= tuple(resume_from)]
        result = BulkPTOResult(officer_id=officer_id, pto_type=pto_type, units=list(units))

        pending: List[Unit] = []
        required = 0.0
        shifts = {shift.id: shift for shift in self.gateway.list_shift_types()}
        for unit in units:
            existing = self.gateway.get_exception(officer_id, unit[0], unit[1])
            if existing is not None and existing.is_off:
                result.skipped.append(unit)
                continue
            shift = shifts[unit[1]]
            window = place_pto(TimeRange(shift.start_time, shift.end_time), _coerce_range(time_range))
            required += window.hours_used
            pending.append(unit)

        if self.balances_enabled and officer.balance_for(pto_type) < required:
            raise InsufficientBalanceError(
                f"Insufficient {PTO_TYPE_LABELS[pto_type]} balance for {officer.full_name} between "
                f"{start.isoformat()} and {end.isoformat()}. Available: "
                f"{format_hours(officer.balance_for(pto_type))} hours, required: {format_hours(required)} hours.",
                available=officer.balance_for(pto_type),
                required=required,
            )

        for unit in pending:
            try:
                summary = self.assign_pto(officer_id, ShiftKey(unit[1], unit[0]), pto_type, time_range, actor)
            except RosterError as exc:
                result.failed_unit = unit
                result.error = str(exc)
                logger.warning("Bulk PTO for %s stopped at %s shift %s: %s", officer.full_name, unit[0], unit[1], exc)
                break
            result.completed.append(summary)
        logger.info(
            "Bulk PTO for %s: %d assigned, %d skipped%s",
            officer.full_name,
            len(result.completed),
            len(result.skipped),
            "" if result.is_complete else ", stopped early",
        )
        return result
