from __future__ import annotations

import datetime
import json
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    or_,
    select,
    update,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.types import Time

from errors import ConflictError
from ranks import Rank
from settings import DATA_DIR


DATA_DIR.mkdir(parents=True, exist_ok=True)
ROSTER_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'roster.db').as_posix()}"
SCHEDULE_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'schedule.db').as_posix()}"

PTO_BALANCE_COLUMNS: Dict[str, str] = {
    "vacation": "vacation_hours",
    "sick": "sick_hours",
    "comp": "comp_hours",
    "holiday": "holiday_hours",
}
PTO_TYPE_LABELS: Dict[str, str] = {
    "vacation": "Vacation",
    "sick": "Sick Leave",
    "comp": "Comp Time",
    "holiday": "Holiday",
}
SEGMENT_PRIMARY = "primary"
SEGMENT_REMAINDER = "remainder"
EVENT_PTO_SUSPENSION = "pto_suspension"
EVENT_EMERGENCY_REASSIGNMENT = "emergency_reassignment"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class RosterBase(DeclarativeBase):
    """Standalone metadata for officer tables living in roster.db."""

    pass


class Base(DeclarativeBase):
    """Metadata for schedule tables living in schedule.db."""

    pass


class Officer(RosterBase):
    __tablename__ = "officers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(120), nullable=False)
    badge_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    rank: Mapped[str] = mapped_column(String(40), nullable=False, default=Rank.OFFICER.value)
    vacation_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    sick_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    comp_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    holiday_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    service_credit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(12), default="active", nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    @property
    def rank_enum(self) -> Optional[Rank]:
        return Rank.parse(self.rank)

    @property
    def is_probationary(self) -> bool:
        rank = self.rank_enum
        return bool(rank and rank.is_probationary())

    @property
    def last_name(self) -> str:
        parts = (self.full_name or "").strip().split()
        return parts[-1] if parts else ""

    def balance_for(self, pto_type: str) -> float:
        column = PTO_BALANCE_COLUMNS[pto_type]
        return float(getattr(self, column) or 0.0)


class ShiftType(Base):
    __tablename__ = "shift_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(60), nullable=False, unique=True)
    start_time: Mapped[datetime.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[datetime.time] = mapped_column(Time, nullable=False)


class RecurringAssignment(Base):
    __tablename__ = "recurring_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    officer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    shift_type_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = Monday
    position: Mapped[str | None] = mapped_column(String(80), nullable=True)
    unit_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)  # null = open-ended
    partner_officer_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_partnership: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "officer_id", "shift_type_id", "day_of_week", "start_date", name="uq_recurring_natural_key"
        ),
    )

    def is_malformed(self) -> bool:
        return self.end_date is not None and self.end_date < self.start_date

    def covers(self, date_value: datetime.date) -> bool:
        if self.is_malformed():
            return False
        if date_value < self.start_date:
            return False
        return self.end_date is None or date_value <= self.end_date


class ScheduleException(Base):
    __tablename__ = "schedule_exceptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    officer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)
    shift_type_id: Mapped[int] = mapped_column(Integer, nullable=False)
    segment: Mapped[str] = mapped_column(String(12), nullable=False, default=SEGMENT_PRIMARY)
    is_off: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reason: Mapped[str | None] = mapped_column(String(20), nullable=True)
    custom_start_time: Mapped[datetime.time | None] = mapped_column(Time, nullable=True)
    custom_end_time: Mapped[datetime.time | None] = mapped_column(Time, nullable=True)
    pto_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    balance_deducted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_partial_shift: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_partnership: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    partnership_suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    partnership_suspension_reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    partner_officer_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_emergency_partnership: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    position: Mapped[str | None] = mapped_column(String(80), nullable=True)
    unit_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_extra_shift: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("officer_id", "date", "shift_type_id", "segment", name="uq_exception_natural_key"),
    )

    @property
    def is_pto(self) -> bool:
        return bool(self.is_off and self.reason)


class SuspensionEvent(Base):
    __tablename__ = "suspension_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    officer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    partner_officer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    shift_type_id: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False, default=EVENT_PTO_SUSPENSION)
    reason: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    emergency_partner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    resolved_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class MinimumStaffing(Base):
    __tablename__ = "minimum_staffing"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    shift_type_id: Mapped[int] = mapped_column(Integer, nullable=False)
    minimum_officers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minimum_supervisors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("day_of_week", "shift_type_id", name="uq_minimum_staffing_day_shift"),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Officer")
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    payloadJSON: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


roster_engine = create_engine(
    ROSTER_DATABASE_URL,
    echo=False,
    future=True,
)
schedule_engine = create_engine(
    SCHEDULE_DATABASE_URL,
    echo=False,
    future=True,
)
SessionLocal = sessionmaker(bind=schedule_engine, expire_on_commit=False, future=True)
RosterSessionLocal = sessionmaker(bind=roster_engine, expire_on_commit=False, future=True)


def init_database() -> None:
    RosterBase.metadata.create_all(roster_engine)
    Base.metadata.create_all(schedule_engine)


# Roster


def get_all_officers(roster_session, only_active: bool = True) -> List[Officer]:
    stmt = select(Officer)
    if only_active:
        stmt = stmt.where(Officer.status == "active")
    stmt = stmt.order_by(Officer.full_name.asc())
    return list(roster_session.scalars(stmt))


def get_officers_by_id(roster_session, officer_ids: Iterable[int]) -> Dict[int, Officer]:
    ids = sorted({officer_id for officer_id in officer_ids if officer_id is not None})
    if not ids:
        return {}
    stmt = select(Officer).where(Officer.id.in_(ids))
    return {officer.id: officer for officer in roster_session.scalars(stmt)}


def adjust_officer_balance(
    roster_session,
    officer_id: int,
    pto_type: str,
    delta: float,
) -> Optional[float]:
    """Add ``delta`` hours to a balance; return the new balance or None if it would go negative."""
    column = getattr(Officer, PTO_BALANCE_COLUMNS[pto_type])
    stmt = update(Officer).where(Officer.id == officer_id).values({column: column + delta})
    if delta < 0:
        stmt = stmt.where(column >= -delta)
    result = roster_session.execute(stmt)
    if result.rowcount == 0:
        roster_session.rollback()
        return None
    roster_session.commit()
    officer = roster_session.get(Officer, officer_id)
    roster_session.refresh(officer)
    return officer.balance_for(pto_type)


# Shift catalog


def list_shift_types(session) -> List[ShiftType]:
    stmt = select(ShiftType).order_by(ShiftType.start_time, ShiftType.id)
    return list(session.scalars(stmt))


# Recurring assignments


def list_recurring(
    session,
    *,
    officer_id: Optional[int] = None,
    shift_type_id: Optional[int] = None,
    day_of_week: Optional[int] = None,
    active_on: Optional[datetime.date] = None,
    partnered_only: bool = False,
) -> List[RecurringAssignment]:
    stmt = select(RecurringAssignment)
    if officer_id is not None:
        stmt = stmt.where(RecurringAssignment.officer_id == officer_id)
    if shift_type_id is not None:
        stmt = stmt.where(RecurringAssignment.shift_type_id == shift_type_id)
    if day_of_week is not None:
        stmt = stmt.where(RecurringAssignment.day_of_week == day_of_week)
    if active_on is not None:
        stmt = stmt.where(
            RecurringAssignment.start_date <= active_on,
            or_(RecurringAssignment.end_date.is_(None), RecurringAssignment.end_date >= active_on),
        )
    if partnered_only:
        stmt = stmt.where(RecurringAssignment.is_partnership.is_(True))
    stmt = stmt.order_by(RecurringAssignment.officer_id, RecurringAssignment.start_date, RecurringAssignment.id)
    return list(session.scalars(stmt))


def upsert_recurring(session, values: Dict[str, Any]) -> RecurringAssignment:
    required = ("officer_id", "shift_type_id", "day_of_week", "start_date")
    missing = [name for name in required if values.get(name) is None]
    if missing:
        raise ValueError(f"Recurring assignment is missing {', '.join(missing)}.")
    stmt = select(RecurringAssignment).where(
        RecurringAssignment.officer_id == values["officer_id"],
        RecurringAssignment.shift_type_id == values["shift_type_id"],
        RecurringAssignment.day_of_week == values["day_of_week"],
        RecurringAssignment.start_date == values["start_date"],
    )
    row = session.scalars(stmt).first()
    if row is None:
        row = RecurringAssignment()
        session.add(row)
    for key, value in values.items():
        setattr(row, key, value)
    session.commit()
    session.refresh(row)
    return row


# Schedule exceptions


def list_exceptions(
    session,
    *,
    date: Optional[datetime.date] = None,
    start: Optional[datetime.date] = None,
    end: Optional[datetime.date] = None,
    officer_id: Optional[int] = None,
    shift_type_id: Optional[int] = None,
    segment: Optional[str] = None,
    partner_officer_id: Optional[int] = None,
    partnered_only: bool = False,
    suspended_only: bool = False,
) -> List[ScheduleException]:
    stmt = select(ScheduleException)
    if date is not None:
        stmt = stmt.where(ScheduleException.date == date)
    if start is not None:
        stmt = stmt.where(ScheduleException.date >= start)
    if end is not None:
        stmt = stmt.where(ScheduleException.date <= end)
    if officer_id is not None:
        stmt = stmt.where(ScheduleException.officer_id == officer_id)
    if shift_type_id is not None:
        stmt = stmt.where(ScheduleException.shift_type_id == shift_type_id)
    if segment is not None:
        stmt = stmt.where(ScheduleException.segment == segment)
    if partner_officer_id is not None:
        stmt = stmt.where(ScheduleException.partner_officer_id == partner_officer_id)
    if partnered_only:
        stmt = stmt.where(ScheduleException.is_partnership.is_(True))
    if suspended_only:
        stmt = stmt.where(ScheduleException.partnership_suspended.is_(True))
    stmt = stmt.order_by(ScheduleException.date, ScheduleException.officer_id, ScheduleException.id)
    return list(session.scalars(stmt))


def get_exception(
    session,
    officer_id: int,
    date: datetime.date,
    shift_type_id: int,
    segment: str = SEGMENT_PRIMARY,
) -> Optional[ScheduleException]:
    stmt = select(ScheduleException).where(
        ScheduleException.officer_id == officer_id,
        ScheduleException.date == date,
        ScheduleException.shift_type_id == shift_type_id,
        ScheduleException.segment == segment,
    )
    return session.scalars(stmt).first()


def upsert_exception(
    session,
    officer_id: int,
    date: datetime.date,
    shift_type_id: int,
    values: Dict[str, Any],
    *,
    segment: str = SEGMENT_PRIMARY,
) -> ScheduleException:
    row = get_exception(session, officer_id, date, shift_type_id, segment)
    if row is None:
        row = ScheduleException(
            officer_id=officer_id,
            date=date,
            shift_type_id=shift_type_id,
            segment=segment,
        )
        session.add(row)
    for key, value in values.items():
        setattr(row, key, value)
    session.commit()
    session.refresh(row)
    return row


def claim_pto_row(
    session,
    officer_id: int,
    date: datetime.date,
    shift_type_id: int,
    values: Dict[str, Any],
) -> ScheduleException:
    """Turn the officer's primary row into a PTO row unless another writer already did."""
    row = get_exception(session, officer_id, date, shift_type_id)
    if row is not None and row.is_off:
        raise ConflictError(
            f"Officer {officer_id} already has an off-duty record on {date.isoformat()} "
            f"for shift {shift_type_id}.",
            existing={"id": row.id, "reason": row.reason, "is_off": row.is_off},
        )
    payload = {**values, "is_off": True}
    if row is None:
        return upsert_exception(session, officer_id, date, shift_type_id, payload)
    result = session.execute(
        update(ScheduleException)
        .where(ScheduleException.id == row.id, ScheduleException.is_off.is_(False))
        .values(payload)
    )
    if result.rowcount == 0:
        session.rollback()
        raise ConflictError(
            f"Officer {officer_id} was given an off-duty record on {date.isoformat()} "
            f"for shift {shift_type_id} by another request.",
            existing={"id": row.id},
        )
    session.commit()
    session.refresh(row)
    return row


def delete_exception(
    session,
    officer_id: int,
    date: datetime.date,
    shift_type_id: int,
    segment: Optional[str] = None,
) -> int:
    stmt = delete(ScheduleException).where(
        ScheduleException.officer_id == officer_id,
        ScheduleException.date == date,
        ScheduleException.shift_type_id == shift_type_id,
    )
    if segment is not None:
        stmt = stmt.where(ScheduleException.segment == segment)
    result = session.execute(stmt)
    session.commit()
    return int(result.rowcount or 0)


# Suspension events


def find_open_suspension(
    session,
    officer_id: int,
    date: datetime.date,
    shift_type_id: int,
    *,
    partner_officer_id: Optional[int] = None,
    event_type: str = EVENT_PTO_SUSPENSION,
) -> Optional[SuspensionEvent]:
    stmt = select(SuspensionEvent).where(
        SuspensionEvent.officer_id == officer_id,
        SuspensionEvent.date == date,
        SuspensionEvent.shift_type_id == shift_type_id,
        SuspensionEvent.event_type == event_type,
        SuspensionEvent.resolved_at.is_(None),
    )
    if partner_officer_id is not None:
        stmt = stmt.where(SuspensionEvent.partner_officer_id == partner_officer_id)
    stmt = stmt.order_by(SuspensionEvent.created_at.desc(), SuspensionEvent.id.desc())
    return session.scalars(stmt).first()


def add_suspension_event(session, values: Dict[str, Any]) -> SuspensionEvent:
    event = SuspensionEvent(**values)
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


def delete_suspension_event(session, event_id: int) -> int:
    result = session.execute(delete(SuspensionEvent).where(SuspensionEvent.id == event_id))
    session.commit()
    return result.rowcount or 0


def resolve_suspension_events(
    session,
    officer_id: int,
    partner_officer_id: int,
    date: datetime.date,
    shift_type_id: int,
) -> int:
    result = session.execute(
        update(SuspensionEvent)
        .where(
            SuspensionEvent.officer_id == officer_id,
            SuspensionEvent.partner_officer_id == partner_officer_id,
            SuspensionEvent.date == date,
            SuspensionEvent.shift_type_id == shift_type_id,
            SuspensionEvent.event_type == EVENT_PTO_SUSPENSION,
            SuspensionEvent.resolved_at.is_(None),
        )
        .values(resolved_at=_utcnow())
    )
    session.commit()
    return int(result.rowcount or 0)


# Minimum staffing


def get_minimum_staffing(session, day_of_week: int, shift_type_id: int) -> Optional[MinimumStaffing]:
    stmt = select(MinimumStaffing).where(
        MinimumStaffing.day_of_week == day_of_week,
        MinimumStaffing.shift_type_id == shift_type_id,
    )
    return session.scalars(stmt).first()


def upsert_minimum_staffing(
    session,
    day_of_week: int,
    shift_type_id: int,
    *,
    minimum_officers: int,
    minimum_supervisors: int,
) -> MinimumStaffing:
    row = get_minimum_staffing(session, day_of_week, shift_type_id)
    if row is None:
        row = MinimumStaffing(day_of_week=day_of_week, shift_type_id=shift_type_id)
        session.add(row)
    row.minimum_officers = max(0, int(minimum_officers))
    row.minimum_supervisors = max(0, int(minimum_supervisors))
    session.commit()
    session.refresh(row)
    return row


# Audit


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "Officer",
    target_id: Optional[int] = None,
    description: str = "",
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        description=description[:500],
        payloadJSON=json.dumps(payload or {}, default=str),
    )
    session.add(log)
    session.commit()
    return log


def list_audit_log(session, *, action: Optional[str] = None, limit: int = 200) -> List[AuditLog]:
    stmt = select(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    return list(session.scalars(stmt))
