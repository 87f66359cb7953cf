"""Store access for the roster core.

``ScheduleGateway`` is the single seam between the scheduling logic and the
store: it plays the roster provider (officers and PTO balances), the shift
catalog, and the persistence gateway for recurring assignments, schedule
exceptions, suspension events and minimum staffing. Every call runs in its own
short session; driver failures are translated into ``TransientStoreError``
(retry the same logical operation) or ``ConflictError`` (a uniqueness check
fired at write time).
"""

from __future__ import annotations

import datetime
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

import database as db
from database import (
    AuditLog,
    Officer,
    RecurringAssignment,
    ScheduleException,
    ShiftType,
    SuspensionEvent,
    PTO_BALANCE_COLUMNS,
    SEGMENT_PRIMARY,
)
from errors import ConflictError, InsufficientBalanceError, NotFoundError, TransientStoreError, ValidationError
from shift_time import format_hours

logger = logging.getLogger(__name__)


class ScheduleGateway:
    def __init__(
        self,
        session_factory: Optional[Callable] = None,
        roster_session_factory: Optional[Callable] = None,
    ) -> None:
        self._session_factory = session_factory
        self._roster_session_factory = roster_session_factory

    @contextmanager
    def _open(self, factory: Callable) -> Iterator[Any]:
        session = factory()
        try:
            yield session
        except OperationalError as exc:
            session.rollback()
            logger.warning("Store operation failed transiently: %s", exc)
            raise TransientStoreError() from exc
        except IntegrityError as exc:
            session.rollback()
            detail = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
            raise ConflictError("A record with the same key already exists.", existing={"detail": detail}) from exc
        finally:
            session.close()

    def schedule_session(self):
        return self._open(self._session_factory or db.SessionLocal)

    def roster_session(self):
        return self._open(self._roster_session_factory or db.RosterSessionLocal)

    # Roster provider

    def list_officers(self, only_active: bool = True) -> List[Officer]:
        with self.roster_session() as session:
            return db.get_all_officers(session, only_active=only_active)

    def get_officer(self, officer_id: int) -> Officer:
        with self.roster_session() as session:
            officer = session.get(Officer, officer_id)
        if officer is None:
            raise NotFoundError(f"Officer {officer_id} was not found.")
        return officer

    def officers_by_id(self, officer_ids: Iterable[int]) -> Dict[int, Officer]:
        with self.roster_session() as session:
            return db.get_officers_by_id(session, officer_ids)

    def add_officer(self, **values: Any) -> Officer:
        with self.roster_session() as session:
            officer = Officer(**values)
            session.add(officer)
            session.commit()
            session.refresh(officer)
            return officer

    def deduct_balance(self, officer_id: int, pto_type: str, hours: float) -> float:
        if pto_type not in PTO_BALANCE_COLUMNS:
            raise ValidationError(f"Unknown PTO type '{pto_type}'.")
        with self.roster_session() as session:
            balance = db.adjust_officer_balance(session, officer_id, pto_type, -hours)
            if balance is not None:
                return balance
            officer = session.get(Officer, officer_id)
        if officer is None:
            raise NotFoundError(f"Officer {officer_id} was not found.")
        available = officer.balance_for(pto_type)
        raise InsufficientBalanceError(
            f"Insufficient {pto_type} balance for {officer.full_name}. "
            f"Available: {format_hours(available)} hours, required: {format_hours(hours)} hours.",
            available=available,
            required=hours,
        )

    def refund_balance(self, officer_id: int, pto_type: str, hours: float) -> float:
        if pto_type not in PTO_BALANCE_COLUMNS:
            raise ValidationError(f"Unknown PTO type '{pto_type}'.")
        with self.roster_session() as session:
            balance = db.adjust_officer_balance(session, officer_id, pto_type, hours)
        if balance is None:
            raise NotFoundError(f"Officer {officer_id} was not found.")
        return balance

    # Shift catalog

    def list_shift_types(self) -> List[ShiftType]:
        with self.schedule_session() as session:
            return db.list_shift_types(session)

    def get_shift_type(self, shift_type_id: int) -> ShiftType:
        with self.schedule_session() as session:
            shift = session.get(ShiftType, shift_type_id)
        if shift is None:
            raise NotFoundError(f"Shift type {shift_type_id} was not found.")
        return shift

    def add_shift_type(self, name: str, start_time: datetime.time, end_time: datetime.time) -> ShiftType:
        with self.schedule_session() as session:
            shift = ShiftType(name=name, start_time=start_time, end_time=end_time)
            session.add(shift)
            session.commit()
            session.refresh(shift)
            return shift

    # Recurring assignments

    def list_recurring(self, **filters: Any) -> List[RecurringAssignment]:
        with self.schedule_session() as session:
            return db.list_recurring(session, **filters)

    def get_recurring(self, record_id: int) -> RecurringAssignment:
        with self.schedule_session() as session:
            row = session.get(RecurringAssignment, record_id)
        if row is None:
            raise NotFoundError(f"Recurring assignment {record_id} was not found.")
        return row

    def upsert_recurring(self, values: Dict[str, Any]) -> RecurringAssignment:
        with self.schedule_session() as session:
            try:
                return db.upsert_recurring(session, values)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc

    def update_recurring(self, record_id: int, values: Dict[str, Any]) -> RecurringAssignment:
        with self.schedule_session() as session:
            row = session.get(RecurringAssignment, record_id)
            if row is None:
                raise NotFoundError(f"Recurring assignment {record_id} was not found.")
            for key, value in values.items():
                setattr(row, key, value)
            session.commit()
            session.refresh(row)
            return row

    def end_assignment(self, record_id: int, end_date: datetime.date) -> RecurringAssignment:
        row = self.get_recurring(record_id)
        if end_date < row.start_date:
            raise ValidationError(
                f"End date {end_date.isoformat()} is before the assignment start {row.start_date.isoformat()}."
            )
        return self.update_recurring(record_id, {"end_date": end_date})

    # Schedule exceptions

    def list_exceptions(self, **filters: Any) -> List[ScheduleException]:
        with self.schedule_session() as session:
            return db.list_exceptions(session, **filters)

    def get_exception(
        self,
        officer_id: int,
        date: datetime.date,
        shift_type_id: int,
        segment: str = SEGMENT_PRIMARY,
    ) -> Optional[ScheduleException]:
        with self.schedule_session() as session:
            return db.get_exception(session, officer_id, date, shift_type_id, segment)

    def upsert_exception(
        self,
        officer_id: int,
        date: datetime.date,
        shift_type_id: int,
        values: Dict[str, Any],
        *,
        segment: str = SEGMENT_PRIMARY,
    ) -> ScheduleException:
        with self.schedule_session() as session:
            return db.upsert_exception(session, officer_id, date, shift_type_id, values, segment=segment)

    def claim_pto_row(
        self,
        officer_id: int,
        date: datetime.date,
        shift_type_id: int,
        values: Dict[str, Any],
    ) -> ScheduleException:
        with self.schedule_session() as session:
            return db.claim_pto_row(session, officer_id, date, shift_type_id, values)

    def delete_exception(
        self,
        officer_id: int,
        date: datetime.date,
        shift_type_id: int,
        segment: Optional[str] = None,
    ) -> int:
        with self.schedule_session() as session:
            return db.delete_exception(session, officer_id, date, shift_type_id, segment)

    # Suspension events

    def find_open_suspension(self, officer_id: int, date: datetime.date, shift_type_id: int, **kwargs: Any):
        with self.schedule_session() as session:
            return db.find_open_suspension(session, officer_id, date, shift_type_id, **kwargs)

    def add_suspension_event(self, values: Dict[str, Any]) -> SuspensionEvent:
        with self.schedule_session() as session:
            return db.add_suspension_event(session, values)

    def delete_suspension_event(self, event_id: int) -> int:
        with self.schedule_session() as session:
            return db.delete_suspension_event(session, event_id)

    def resolve_suspension_events(
        self,
        officer_id: int,
        partner_officer_id: int,
        date: datetime.date,
        shift_type_id: int,
    ) -> int:
        with self.schedule_session() as session:
            return db.resolve_suspension_events(session, officer_id, partner_officer_id, date, shift_type_id)

    def mark_emergency_assignment(self, event_id: int, emergency_partner_id: int) -> None:
        with self.schedule_session() as session:
            event = session.get(SuspensionEvent, event_id)
            if event is None:
                return
            event.emergency_partner_id = emergency_partner_id
            session.commit()

    def list_suspension_events(
        self,
        *,
        date: Optional[datetime.date] = None,
        open_only: bool = False,
    ) -> List[SuspensionEvent]:
        with self.schedule_session() as session:
            stmt = select(SuspensionEvent)
            if date is not None:
                stmt = stmt.where(SuspensionEvent.date == date)
            if open_only:
                stmt = stmt.where(SuspensionEvent.resolved_at.is_(None))
            stmt = stmt.order_by(SuspensionEvent.created_at, SuspensionEvent.id)
            return list(session.scalars(stmt))

    # Minimum staffing

    def get_minimums(self, day_of_week: int, shift_type_id: int):
        with self.schedule_session() as session:
            return db.get_minimum_staffing(session, day_of_week, shift_type_id)

    def set_minimums(
        self,
        day_of_week: int,
        shift_type_id: int,
        *,
        minimum_officers: int,
        minimum_supervisors: int,
    ):
        with self.schedule_session() as session:
            return db.upsert_minimum_staffing(
                session,
                day_of_week,
                shift_type_id,
                minimum_officers=minimum_officers,
                minimum_supervisors=minimum_supervisors,
            )

    # Audit

    def record_audit(self, **values: Any) -> AuditLog:
        with self.schedule_session() as session:
            return db.record_audit_log(session, **values)

    def list_audit(self, **filters: Any) -> List[AuditLog]:
        with self.schedule_session() as session:
            return db.list_audit_log(session, **filters)
