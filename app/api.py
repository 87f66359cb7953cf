"""FastAPI wrapper exposing the roster core to rendering, export and notification clients.

Every endpoint delegates to the service objects; domain errors are mapped to
HTTP status codes in one exception handler.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
import datetime
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

# Ensure bare imports (e.g., "import database") resolve when served as a package path.
APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from emergency import EmergencyFinder  # noqa: E402
from errors import (  # noqa: E402
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    RosterError,
    TransientStoreError,
    ValidationError,
)
from database import init_database  # noqa: E402
from gateway import ScheduleGateway  # noqa: E402
from partnerships import PartnershipManager  # noqa: E402
from ranks import position_group  # noqa: E402
from pto import PTOManager  # noqa: E402
from resolver import EffectiveAssignment, EffectiveDailySchedule, ScheduleResolver, ShiftKey, WeeklyKey  # noqa: E402
from settings import configure_logging, load_settings  # noqa: E402
from staffing import staffing_for, staffing_for_range  # noqa: E402
from validation import validate_schedule_range  # noqa: E402


@dataclass
class Services:
    gateway: ScheduleGateway
    resolver: ScheduleResolver
    partnerships: PartnershipManager
    pto: PTOManager
    emergency: EmergencyFinder


def build_services(gateway: Optional[ScheduleGateway] = None, settings: Optional[Dict[str, Any]] = None) -> Services:
    gateway = gateway or ScheduleGateway()
    settings = settings if settings is not None else load_settings()
    resolver = ScheduleResolver(gateway, extra_positions=settings.get("extra_positions", []))
    partnerships = PartnershipManager(gateway, resolver)
    return Services(
        gateway=gateway,
        resolver=resolver,
        partnerships=partnerships,
        pto=PTOManager(gateway, resolver=resolver, partnerships=partnerships, settings=settings),
        emergency=EmergencyFinder(gateway, resolver, partnerships),
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = load_settings()
    configure_logging(settings.get("log_level"))
    init_database()
    yield


app = FastAPI(title="Duty Roster API", version="0.1", lifespan=lifespan)


def get_services() -> Services:
    return build_services()


@app.exception_handler(RosterError)
def roster_error_handler(_: Request, exc: RosterError) -> JSONResponse:
    content: Dict[str, Any] = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, InsufficientBalanceError):
        status = 409
        content.update({"available": exc.available, "required": exc.required})
    elif isinstance(exc, ConflictError):
        status = 409
        content["existing"] = exc.existing
    elif isinstance(exc, TransientStoreError):
        status = 503
        content["retriable"] = True
    else:
        status = 500
    return JSONResponse(status_code=status, content=jsonable_encoder(content))


def _parse_date(value: Any, name: str = "date") -> datetime.date:
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{name} must be YYYY-MM-DD")


def _require(payload: Dict[str, Any], *names: str) -> None:
    missing = [name for name in names if payload.get(name) in (None, "")]
    if missing:
        raise HTTPException(status_code=400, detail=f"{', '.join(missing)} required")


def _shift_key(payload: Dict[str, Any]) -> ShiftKey:
    _require(payload, "date", "shift_type_id")
    return ShiftKey(int(payload["shift_type_id"]), _parse_date(payload["date"]))


def _partner_key(payload: Dict[str, Any]):
    if payload.get("day_of_week") is not None:
        _require(payload, "shift_type_id")
        return WeeklyKey(int(payload["shift_type_id"]), int(payload["day_of_week"]))
    return _shift_key(payload)


def _time_range(payload: Dict[str, Any]):
    start, end = payload.get("start_time"), payload.get("end_time")
    if not start and not end:
        return None
    if not start or not end:
        raise HTTPException(status_code=400, detail="start_time and end_time go together")
    return (start, end)


def _assignment_payload(item: EffectiveAssignment) -> Dict[str, Any]:
    payload = asdict(item)
    payload.update(
        {
            "is_working": item.is_working,
            "hours": item.hours,
            "is_probationary": item.is_probationary,
            "position_group": position_group(item.position),
        }
    )
    return payload


def _schedule_payload(schedule: EffectiveDailySchedule) -> Dict[str, Any]:
    return {
        "date": schedule.date,
        "shift_type_id": schedule.shift_type_id,
        "shift_name": schedule.shift_name,
        "supervisors": [_assignment_payload(item) for item in schedule.supervisors],
        "officers": [_assignment_payload(item) for item in schedule.officers],
        "probationary": [_assignment_payload(item) for item in schedule.probationary],
        "special_assignments": [_assignment_payload(item) for item in schedule.special_assignments],
        "off_duty": [_assignment_payload(item) for item in schedule.off_duty],
        "pto_records": [asdict(record) for record in schedule.pto_records],
        "warnings": [warning.as_dict() for warning in schedule.warnings],
    }


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/v1/schedule/{date_value}")
def daily_schedule(
    date_value: str,
    shift_type_id: Optional[int] = Query(default=None),
    services: Services = Depends(get_services),
) -> JSONResponse:
    schedule = services.resolver.resolve(_parse_date(date_value), shift_type_id)
    return JSONResponse(content=jsonable_encoder(_schedule_payload(schedule)))


@app.get("/api/v1/staffing/{date_value}/{shift_type_id}")
def staffing(date_value: str, shift_type_id: int, services: Services = Depends(get_services)) -> JSONResponse:
    status = staffing_for(services.resolver, _parse_date(date_value), shift_type_id)
    return JSONResponse(content=jsonable_encoder(status.as_dict()))


@app.get("/api/v1/staffing")
def staffing_range(
    start: str,
    end: str,
    shift_type_id: int,
    services: Services = Depends(get_services),
) -> JSONResponse:
    statuses = staffing_for_range(
        services.resolver, _parse_date(start, "start"), _parse_date(end, "end"), shift_type_id
    )
    return JSONResponse(content=jsonable_encoder([status.as_dict() for status in statuses]))


@app.put("/api/v1/staffing/minimums")
def set_minimums(payload: Dict[str, Any], services: Services = Depends(get_services)) -> JSONResponse:
    _require(payload, "day_of_week", "shift_type_id")
    row = services.gateway.set_minimums(
        int(payload["day_of_week"]),
        int(payload["shift_type_id"]),
        minimum_officers=int(payload.get("minimum_officers") or 0),
        minimum_supervisors=int(payload.get("minimum_supervisors") or 0),
    )
    return JSONResponse(
        content={
            "day_of_week": row.day_of_week,
            "shift_type_id": row.shift_type_id,
            "minimum_officers": row.minimum_officers,
            "minimum_supervisors": row.minimum_supervisors,
        }
    )


@app.post("/api/v1/pto")
def assign_pto(payload: Dict[str, Any], services: Services = Depends(get_services)) -> JSONResponse:
    _require(payload, "officer_id", "pto_type")
    summary = services.pto.assign_pto(
        int(payload["officer_id"]),
        _shift_key(payload),
        payload["pto_type"],
        _time_range(payload),
        payload.get("actor"),
        notes=payload.get("notes") or "",
    )
    return JSONResponse(status_code=201, content=jsonable_encoder(summary.as_dict()))


@app.put("/api/v1/pto")
def edit_pto(payload: Dict[str, Any], services: Services = Depends(get_services)) -> JSONResponse:
    _require(payload, "officer_id", "pto_type")
    summary = services.pto.edit_pto(
        int(payload["officer_id"]),
        _shift_key(payload),
        payload["pto_type"],
        _time_range(payload),
        payload.get("actor"),
        notes=payload.get("notes"),
    )
    return JSONResponse(content=jsonable_encoder(summary.as_dict()))


@app.delete("/api/v1/pto/{officer_id}/{date_value}/{shift_type_id}")
def remove_pto(
    officer_id: int,
    date_value: str,
    shift_type_id: int,
    actor: Optional[str] = Query(default=None),
    services: Services = Depends(get_services),
) -> JSONResponse:
    summary = services.pto.remove_pto(officer_id, ShiftKey(shift_type_id, _parse_date(date_value)), actor)
    return JSONResponse(content=jsonable_encoder(summary.as_dict()))


@app.post("/api/v1/pto/range")
def assign_pto_range(payload: Dict[str, Any], services: Services = Depends(get_services)) -> JSONResponse:
    _require(payload, "officer_id", "pto_type", "start", "end")
    resume = payload.get("resume_from")
    result = services.pto.assign_pto_range(
        int(payload["officer_id"]),
        _parse_date(payload["start"], "start"),
        _parse_date(payload["end"], "end"),
        payload["pto_type"],
        shift_type_ids=payload.get("shift_type_ids"),
        time_range=_time_range(payload),
        exclude_weekends=bool(payload.get("exclude_weekends")),
        actor=payload.get("actor"),
        resume_from=(_parse_date(resume[0], "resume_from"), int(resume[1])) if resume else None,
    )
    return JSONResponse(content=jsonable_encoder(result.as_dict()))


@app.get("/api/v1/partnerships/{date_value}")
def partnerships(
    date_value: str,
    shift_type_id: Optional[int] = Query(default=None),
    services: Services = Depends(get_services),
) -> JSONResponse:
    pairs = services.partnerships.list_partnerships(_parse_date(date_value), shift_type_id)
    return JSONResponse(content=jsonable_encoder([pair.as_dict() for pair in pairs]))


@app.post("/api/v1/partnerships")
def create_partnership(payload: Dict[str, Any], services: Services = Depends(get_services)) -> JSONResponse:
    _require(payload, "officer_id", "partner_officer_id")
    pair = services.partnerships.create_partnership(
        int(payload["officer_id"]),
        int(payload["partner_officer_id"]),
        _partner_key(payload),
        payload.get("actor"),
    )
    return JSONResponse(status_code=201, content=jsonable_encoder(pair.as_dict()))


@app.post("/api/v1/partnerships/remove")
def remove_partnership(payload: Dict[str, Any], services: Services = Depends(get_services)) -> JSONResponse:
    _require(payload, "officer_id")
    cleared = services.partnerships.remove_partnership(
        int(payload["officer_id"]), _partner_key(payload), payload.get("actor")
    )
    return JSONResponse(content={"records_cleared": cleared})


@app.post("/api/v1/partnerships/repair")
def repair_partnerships(payload: Dict[str, Any], services: Services = Depends(get_services)) -> JSONResponse:
    _require(payload, "start")
    start = _parse_date(payload["start"], "start")
    end = _parse_date(payload["end"], "end") if payload.get("end") else None
    repaired = services.partnerships.repair_orphaned(start, end, payload.get("actor"))
    return JSONResponse(content={"repaired": repaired})


@app.get("/api/v1/emergency/{date_value}/{shift_type_id}")
def emergency_candidates(
    date_value: str,
    shift_type_id: int,
    officer_id: int,
    probationary: bool = Query(default=False),
    services: Services = Depends(get_services),
) -> JSONResponse:
    key = ShiftKey(shift_type_id, _parse_date(date_value))
    if probationary:
        candidates = services.emergency.find_available_ppo_partners(officer_id, key)
    else:
        candidates = services.emergency.find_emergency_partners(officer_id, key)
    return JSONResponse(content=jsonable_encoder([_assignment_payload(item) for item in candidates]))


@app.post("/api/v1/emergency/assign")
def assign_emergency(payload: Dict[str, Any], services: Services = Depends(get_services)) -> JSONResponse:
    _require(payload, "officer_id", "partner_officer_id")
    pair = services.emergency.assign_emergency_partner(
        int(payload["officer_id"]),
        int(payload["partner_officer_id"]),
        _shift_key(payload),
        payload.get("actor"),
    )
    return JSONResponse(status_code=201, content=jsonable_encoder(pair.as_dict()))


@app.get("/api/v1/validate")
def validate(
    start: str,
    end: Optional[str] = Query(default=None),
    shift_type_id: Optional[int] = Query(default=None),
    services: Services = Depends(get_services),
) -> JSONResponse:
    report = validate_schedule_range(
        services.gateway,
        _parse_date(start, "start"),
        _parse_date(end, "end") if end else None,
        shift_type_id=shift_type_id,
        resolver=services.resolver,
        partnerships=services.partnerships,
    )
    return JSONResponse(content=jsonable_encoder(report))


@app.get("/api/v1/audit")
def audit_log(
    action: Optional[str] = Query(default=None),
    limit: int = Query(default=200),
    services: Services = Depends(get_services),
) -> JSONResponse:
    rows = services.gateway.list_audit(action=action, limit=limit)
    return JSONResponse(
        content=jsonable_encoder(
            [
                {
                    "id": row.id,
                    "actor": row.user_id,
                    "action": row.action,
                    "target_type": row.target_type,
                    "target_id": row.target_id,
                    "description": row.description,
                    "created_at": row.created_at,
                }
                for row in rows
            ]
        )
    )
