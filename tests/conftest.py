from __future__ import annotations

import datetime
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from database import Base, RosterBase  # noqa: E402
from emergency import EmergencyFinder  # noqa: E402
from gateway import ScheduleGateway  # noqa: E402
from partnerships import PartnershipManager  # noqa: E402
from pto import PTOManager  # noqa: E402
from resolver import ScheduleResolver, ShiftKey  # noqa: E402
from settings import baseline_settings  # noqa: E402
from shift_time import parse_time  # noqa: E402

# Monday
DAY = datetime.date(2025, 3, 10)


def _memory_engine():
    return create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


class RosterBuilder:
    """Seeds officers, shifts and recurring assignments through the gateway."""

    def __init__(self, gateway: ScheduleGateway) -> None:
        self.gateway = gateway
        self._badges = 0

    def officer(self, name, rank="Officer", *, vacation=40.0, sick=40.0, comp=0.0, holiday=0.0):
        self._badges += 1
        return self.gateway.add_officer(
            full_name=name,
            badge_number=f"B{self._badges:03d}",
            rank=rank,
            vacation_hours=vacation,
            sick_hours=sick,
            comp_hours=comp,
            holiday_hours=holiday,
        )

    def shift(self, name="Day", start="08:00", end="17:00"):
        return self.gateway.add_shift_type(name, parse_time(start), parse_time(end))

    def recurring(self, officer, shift, day=DAY, *, position="District 1", start_date=None, end_date=None, partner=None):
        return self.gateway.upsert_recurring(
            {
                "officer_id": officer.id,
                "shift_type_id": shift.id,
                "day_of_week": day.weekday(),
                "position": position,
                "start_date": start_date or day - datetime.timedelta(days=28),
                "end_date": end_date,
                "partner_officer_id": partner.id if partner else None,
                "is_partnership": partner is not None,
            }
        )

    def pair(self, senior, ppo, shift, day=DAY):
        self.recurring(senior, shift, day, position="District 2", partner=ppo)
        self.recurring(ppo, shift, day, position="Riding with partner", partner=senior)

    def key(self, shift, day=DAY) -> ShiftKey:
        return ShiftKey(shift.id, day)


@pytest.fixture()
def gateway():
    roster_engine = _memory_engine()
    schedule_engine = _memory_engine()
    RosterBase.metadata.create_all(roster_engine)
    Base.metadata.create_all(schedule_engine)
    yield ScheduleGateway(
        sessionmaker(bind=schedule_engine, expire_on_commit=False, future=True),
        sessionmaker(bind=roster_engine, expire_on_commit=False, future=True),
    )
    schedule_engine.dispose()
    roster_engine.dispose()


@pytest.fixture()
def roster(gateway):
    return RosterBuilder(gateway)


@pytest.fixture()
def settings():
    return baseline_settings()


@pytest.fixture()
def resolver(gateway):
    return ScheduleResolver(gateway, extra_positions=[])


@pytest.fixture()
def partnerships(gateway, resolver):
    return PartnershipManager(gateway, resolver)


@pytest.fixture()
def pto_manager(gateway, resolver, partnerships, settings):
    return PTOManager(gateway, resolver=resolver, partnerships=partnerships, settings=settings)


@pytest.fixture()
def finder(gateway, resolver, partnerships):
    return EmergencyFinder(gateway, resolver, partnerships)
